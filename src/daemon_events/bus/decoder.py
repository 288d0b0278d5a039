"""Incremental decoder for the daemon event stream.

The daemon writes one JSON object per event, normally newline
terminated, but nothing guarantees that a network read ends on a record
boundary.  Bytes are fed through an incremental UTF-8 decoder into a
small structural framer which finds where each top-level JSON value
ends; only complete values are handed to ``json`` and validated into a
``Message``.  Framing is purely structural, so a corrupt record is
reported as soon as it is closed instead of when the stream ends.
"""

from __future__ import annotations

import codecs
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable

from pydantic import ValidationError

from daemon_events.core.errors import DecodeError
from daemon_events.core.events import Message
from daemon_events.observability.metrics import record_decode_error, record_decoded

logger = logging.getLogger(__name__)

_WHITESPACE = " \t\r\n"
# Characters that end a bare scalar (number, true, false, null).
_SCALAR_END = _WHITESPACE + '{}[]",:'

# (message, None) for a good record, (None, error) for a bad one.
# Returning an exception stops decoding and raises it.
EventProcessor = Callable[
    [Message | None, DecodeError | None], Awaitable[BaseException | None]
]


def _fragment(text: str, limit: int = 60) -> str:
    text = text.strip()
    return text if len(text) <= limit else text[:limit] + "..."


class _Framer:
    """Splits text into complete top-level JSON values.

    Scan state survives between ``feed`` calls so a record split over
    many chunks is scanned once.
    """

    def __init__(self) -> None:
        self._reset()

    def _reset(self) -> None:
        self._buf = ""
        self._pos = 0
        self._start: int | None = None
        self._depth = 0
        self._in_string = False
        self._escape = False
        self._scalar = False

    def feed(self, text: str) -> list[str]:
        buf = self._buf + text
        frames: list[str] = []
        i = self._pos
        n = len(buf)

        while i < n:
            ch = buf[i]

            if self._start is None:
                if ch in _WHITESPACE:
                    i += 1
                    continue
                self._start = i
                if ch in "{[":
                    self._depth = 1
                elif ch == '"':
                    self._in_string = True
                else:
                    self._scalar = True
                i += 1
                continue

            if self._in_string:
                if self._escape:
                    self._escape = False
                elif ch == "\\":
                    self._escape = True
                elif ch == '"':
                    self._in_string = False
                    if self._depth == 0:
                        frames.append(buf[self._start:i + 1])
                        self._start = None
                i += 1
                continue

            if self._scalar:
                if ch in _SCALAR_END:
                    frames.append(buf[self._start:i])
                    self._start = None
                    self._scalar = False
                    # ch is re-read as the start of the next value
                    continue
                i += 1
                continue

            if ch == '"':
                self._in_string = True
            elif ch in "{[":
                self._depth += 1
            elif ch in "}]":
                self._depth -= 1
                if self._depth == 0:
                    frames.append(buf[self._start:i + 1])
                    self._start = None
            i += 1

        if self._start is None:
            self._buf, self._pos = "", 0
        else:
            self._buf, self._pos = buf[self._start:], i - self._start
            self._start = 0
        return frames

    def flush(self) -> str | None:
        """Return whatever is left at end of input (a truncated value)."""
        rest = self._buf if self._start is not None else ""
        self._reset()
        return rest or None


def _parse(frame: str, index: int) -> Message:
    try:
        payload = json.loads(frame)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"invalid JSON: {exc.msg}", index, _fragment(frame)) from exc
    if not isinstance(payload, dict):
        raise DecodeError(
            f"expected a JSON object, got {type(payload).__name__}",
            index,
            _fragment(frame),
        )
    try:
        return Message.model_validate(payload)
    except ValidationError as exc:
        raise DecodeError(
            f"invalid event record: {exc.error_count()} validation error(s)",
            index,
            _fragment(frame),
        ) from exc


async def iter_messages(stream: AsyncIterable[bytes]) -> AsyncIterator[Message]:
    """Yield each event on *stream* in order.

    Raises ``DecodeError`` on the first malformed or truncated record;
    nothing after it is yielded.
    """
    text_decoder = codecs.getincrementaldecoder("utf-8")()
    framer = _Framer()
    index = 0

    try:
        async for chunk in stream:
            if not chunk:
                continue
            try:
                text = text_decoder.decode(chunk)
            except UnicodeDecodeError as exc:
                raise DecodeError(f"invalid UTF-8: {exc.reason}", index) from exc
            for frame in framer.feed(text):
                message = _parse(frame, index)
                index += 1
                record_decoded()
                yield message

        try:
            tail = text_decoder.decode(b"", final=True)
        except UnicodeDecodeError as exc:
            raise DecodeError(f"invalid UTF-8: {exc.reason}", index) from exc
        frames = framer.feed(tail)
        rest = framer.flush()
        for frame in frames:
            message = _parse(frame, index)
            index += 1
            record_decoded()
            yield message
        if rest is not None:
            if rest.strip()[:1] in ("{", "[", '"'):
                raise DecodeError("unexpected end of stream", index, _fragment(rest))
            # A bare scalar needs no terminator; let json judge it.
            message = _parse(rest, index)
            index += 1
            record_decoded()
            yield message
    except DecodeError:
        record_decode_error()
        raise

    logger.debug("Event stream exhausted after %d records", index)


async def decode_events(
    stream: AsyncIterable[bytes], processor: EventProcessor
) -> None:
    """Feed every record on *stream* to *processor*, in order.

    A clean end of input returns ``None``.  On a malformed record the
    processor is called with the ``DecodeError`` and decoding stops:
    whatever exception it returns is raised, or the ``DecodeError``
    itself if it returns ``None``.  A processor returning an exception
    for a good record also stops decoding with that exception.
    """
    messages = iter_messages(stream)
    try:
        async for message in messages:
            signal = await processor(message, None)
            if signal is not None:
                break
        else:
            return
    except DecodeError as exc:
        signal = await processor(None, exc)
        if signal is None or signal is exc:
            raise
        raise signal from exc
    finally:
        await messages.aclose()
    raise signal
