"""Core primitives: event model, options, interfaces, errors, config."""

from daemon_events.core.errors import (
    ConfigError,
    DaemonEventsError,
    DecodeError,
    RegistryError,
    StreamError,
    SubscriptionError,
)
from daemon_events.core.events import Actor, Message
from daemon_events.core.models import EventsOptions

__all__ = [
    "Actor",
    "ConfigError",
    "DaemonEventsError",
    "DecodeError",
    "EventsOptions",
    "Message",
    "RegistryError",
    "StreamError",
    "SubscriptionError",
]
