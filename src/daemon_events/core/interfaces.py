"""Protocol interfaces for the event monitor.

The stream source and the stream it returns are external collaborators:
a real daemon client, or an in-process double replaying fixed records.
Anything with these shapes can be monitored.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable, Hashable
from typing import Protocol, Union, runtime_checkable

from .events import Message
from .models import EventsOptions

# A callback is either a coroutine function or a plain callable.
Callback = Callable[[Message], Union[Awaitable[None], None]]

# Maps a message to the routing key of the callback that should get it.
Classifier = Callable[[Message], Hashable]

# (key, message, exc) for callback failures.
HandlerErrorHook = Callable[[Hashable, Message, Exception], None]


# ---------------------------------------------------------------------------
# Event stream
# ---------------------------------------------------------------------------

@runtime_checkable
class IEventStream(Protocol):
    """Readable byte stream of self-delimited JSON records."""

    def __aiter__(self) -> AsyncIterator[bytes]: ...

    async def close(self) -> None:
        """Release the underlying connection.  Safe to call twice."""
        ...


@runtime_checkable
class IEventSource(Protocol):
    """Opens event streams.  Raises when the subscription cannot start."""

    async def events(self, options: EventsOptions) -> IEventStream: ...
