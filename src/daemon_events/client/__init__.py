"""Stream sources: the daemon HTTP client and in-process replays."""

from daemon_events.client.docker import DockerEventSource, HTTPEventStream
from daemon_events.client.static import NopEventSource, StaticEventSource, StaticEventStream

__all__ = [
    "DockerEventSource",
    "HTTPEventStream",
    "NopEventSource",
    "StaticEventSource",
    "StaticEventStream",
]
