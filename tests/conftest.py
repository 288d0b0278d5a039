"""Shared fixtures for the daemon-events test suite."""

from __future__ import annotations

import asyncio
import json
import threading
from typing import Any

import pytest

from daemon_events.core.errors import StreamError
from daemon_events.core.events import Message
from daemon_events.core.models import EventsOptions


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

def _make_record(type_: str, action: str, **extra: Any) -> dict[str, Any]:
    """A record the way the daemon writes it on the wire."""
    record: dict[str, Any] = {
        "Type": type_,
        "Action": action,
        "Actor": {"ID": f"{type_}-id", "Attributes": {"name": f"{type_}-name"}},
        "scope": "local",
        "time": 1700000000,
        "timeNano": 1700000000000000000,
    }
    record.update(extra)
    return record


def _encode(*records: dict[str, Any]) -> bytes:
    return b"".join((json.dumps(r) + "\n").encode() for r in records)


@pytest.fixture
def make_record():
    return _make_record


@pytest.fixture
def encode():
    return _encode


@pytest.fixture
def lifecycle_records() -> list[dict[str, Any]]:
    """container/create, network/create, volume/create, container/destroy."""
    return [
        _make_record("container", "create"),
        _make_record("network", "create"),
        _make_record("volume", "create"),
        _make_record("container", "destroy"),
    ]


# ---------------------------------------------------------------------------
# Callback recorder
# ---------------------------------------------------------------------------

class Recorder:
    """Thread-safe log of ``type-action`` labels seen by callbacks."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._labels: list[str] = []

    async def __call__(self, message: Message) -> None:
        self.add(message)

    def add(self, message: Message) -> None:
        with self._lock:
            self._labels.append(message.label)

    @property
    def labels(self) -> list[str]:
        with self._lock:
            return list(self._labels)


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def make_recorder():
    return Recorder


# ---------------------------------------------------------------------------
# Stream doubles
# ---------------------------------------------------------------------------

class HangingEventStream:
    """Serves some chunks, then idles like a quiet daemon connection."""

    def __init__(self, chunks: list[bytes]) -> None:
        self._chunks = chunks
        self.closed = False

    async def __aiter__(self):
        for chunk in self._chunks:
            yield chunk
        await asyncio.Event().wait()

    async def close(self) -> None:
        self.closed = True


class HangingEventSource:
    def __init__(self, chunks: list[bytes] | None = None) -> None:
        self._chunks = chunks or []
        self.streams: list[HangingEventStream] = []

    async def events(self, options: EventsOptions) -> HangingEventStream:
        stream = HangingEventStream(self._chunks)
        self.streams.append(stream)
        return stream


class BrokenEventStream:
    """Serves some chunks, then loses the connection."""

    def __init__(self, chunks: list[bytes]) -> None:
        self._chunks = chunks
        self.closed = False

    async def __aiter__(self):
        for chunk in self._chunks:
            yield chunk
        raise StreamError("connection reset by peer")

    async def close(self) -> None:
        self.closed = True


class BrokenEventSource:
    def __init__(self, chunks: list[bytes] | None = None) -> None:
        self._chunks = chunks or []
        self.streams: list[BrokenEventStream] = []

    async def events(self, options: EventsOptions) -> BrokenEventStream:
        stream = BrokenEventStream(self._chunks)
        self.streams.append(stream)
        return stream


class StalledSubscribeSource:
    """A daemon that accepts the connection but never answers."""

    async def events(self, options: EventsOptions):
        await asyncio.Event().wait()


@pytest.fixture
def hanging_source():
    return HangingEventSource


@pytest.fixture
def broken_source():
    return BrokenEventSource


@pytest.fixture
def stalled_source():
    return StalledSubscribeSource
