"""Event bus: stream decoding, supervision, routing and the monitor."""

from daemon_events.bus.decoder import decode_events, iter_messages
from daemon_events.bus.monitor import MonitorSession, monitor, monitor_with_handler
from daemon_events.bus.registry import CATCH_ALL, HandlerRegistry, by_action, by_type
from daemon_events.bus.supervisor import END_OF_STREAM, StreamSupervisor

__all__ = [
    "CATCH_ALL",
    "END_OF_STREAM",
    "HandlerRegistry",
    "MonitorSession",
    "StreamSupervisor",
    "by_action",
    "by_type",
    "decode_events",
    "iter_messages",
    "monitor",
    "monitor_with_handler",
]
