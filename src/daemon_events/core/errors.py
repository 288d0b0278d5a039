"""Custom exception hierarchy for the event monitor."""


class DaemonEventsError(Exception):
    """Base exception for all daemon-events errors."""


# --- Configuration ---
class ConfigError(DaemonEventsError):
    """Invalid or missing configuration."""


# --- Stream ---
class SubscriptionError(DaemonEventsError):
    """The event stream could not be opened (daemon unreachable, rejected)."""

    def __init__(self, message: str, status: int | None = None):
        self.status = status
        super().__init__(message)


class StreamError(DaemonEventsError):
    """Transport failure while reading an already open event stream."""


class DecodeError(DaemonEventsError):
    """A record on the event stream could not be parsed.

    Fatal to the session: the decoder never resynchronises past a
    corrupt record.
    """

    def __init__(self, reason: str, record_index: int, fragment: str = ""):
        self.reason = reason
        self.record_index = record_index
        self.fragment = fragment
        detail = f"record {record_index}: {reason}"
        if fragment:
            detail += f" (near {fragment!r})"
        super().__init__(detail)


# --- Routing ---
class RegistryError(DaemonEventsError):
    """Invalid use of a handler registry."""
