"""Monitor a daemon's event stream and route events to callbacks."""

from daemon_events.bus import (
    HandlerRegistry,
    MonitorSession,
    by_action,
    by_type,
    monitor,
    monitor_with_handler,
)
from daemon_events.client import DockerEventSource, NopEventSource, StaticEventSource
from daemon_events.core import EventsOptions, Message

__version__ = "0.1.0"

__all__ = [
    "DockerEventSource",
    "EventsOptions",
    "HandlerRegistry",
    "Message",
    "MonitorSession",
    "NopEventSource",
    "StaticEventSource",
    "by_action",
    "by_type",
    "monitor",
    "monitor_with_handler",
]
