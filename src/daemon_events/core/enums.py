"""Enumerations used across the event monitor."""

from enum import Enum


class SessionState(str, Enum):
    STARTING = "starting"
    RUNNING = "running"
    TERMINATED = "terminated"


class SessionOutcome(str, Enum):
    COMPLETED = "completed"  # Stream ended cleanly
    CANCELLED = "cancelled"  # Caller stop or deadline
    FAILED = "failed"  # Subscription, transport or decode error


class EventType(str, Enum):
    """Object types the daemon reports events for."""

    CONTAINER = "container"
    IMAGE = "image"
    VOLUME = "volume"
    NETWORK = "network"
    DAEMON = "daemon"
    PLUGIN = "plugin"
    NODE = "node"
    SERVICE = "service"
    SECRET = "secret"
    CONFIG = "config"
