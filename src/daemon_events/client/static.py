"""In-process stream sources.

``StaticEventSource`` replays a fixed sequence of records (or raw bytes)
as if a daemon had sent them; ``NopEventSource`` stands in for a daemon
that is gone.  Both satisfy ``IEventSource`` and are used for offline
replays and tests.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Iterable
from pathlib import Path
from typing import Any

from daemon_events.core.errors import SubscriptionError
from daemon_events.core.events import Message
from daemon_events.core.models import EventsOptions


def _encode(record: Message | dict[str, Any]) -> bytes:
    if isinstance(record, Message):
        return (record.model_dump_json(by_alias=True) + "\n").encode()
    return (json.dumps(record) + "\n").encode()


class StaticEventStream:
    """Replays byte chunks, optionally pausing between them."""

    def __init__(self, chunks: Iterable[bytes], *, delay: float = 0.0) -> None:
        self._chunks = list(chunks)
        self._delay = delay
        self._closed = False

    async def __aiter__(self) -> AsyncIterator[bytes]:
        for chunk in self._chunks:
            if self._closed:
                return
            if self._delay:
                await asyncio.sleep(self._delay)
            yield chunk

    async def close(self) -> None:
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed


class StaticEventSource:
    """Serves the same records to every subscriber.

    Args:
        records: Events to encode as JSON lines.
        raw: Bytes to serve verbatim instead of *records*.
        delay: Seconds to wait before each chunk.
        chunk_size: Re-slice the payload into chunks of this many bytes
            (records then straddle chunk boundaries).
    """

    def __init__(
        self,
        records: Iterable[Message | dict[str, Any]] | None = None,
        *,
        raw: bytes | None = None,
        delay: float = 0.0,
        chunk_size: int | None = None,
    ) -> None:
        if raw is not None:
            self._chunks = [raw]
        else:
            self._chunks = [_encode(record) for record in records or ()]
        if chunk_size:
            payload = b"".join(self._chunks)
            self._chunks = [
                payload[i:i + chunk_size] for i in range(0, len(payload), chunk_size)
            ]
        self._delay = delay
        self.opened: list[StaticEventStream] = []
        self.last_options: EventsOptions | None = None

    @classmethod
    def from_file(cls, path: str | Path, **kwargs: Any) -> StaticEventSource:
        """Replay a capture of the event stream (one JSON record per line)."""
        return cls(raw=Path(path).read_bytes(), **kwargs)

    async def events(self, options: EventsOptions) -> StaticEventStream:
        self.last_options = options
        stream = StaticEventStream(self._chunks, delay=self._delay)
        self.opened.append(stream)
        return stream


class NopEventSource:
    """A source whose daemon no longer exists: every subscription fails."""

    def __init__(self, error: BaseException | None = None) -> None:
        self._error = error

    async def events(self, options: EventsOptions) -> StaticEventStream:
        raise self._error or SubscriptionError("Engine no longer exists")
