"""Stream supervisor: owns the network read for one monitor session.

Opens the event stream, runs the decoder over it and republishes each
message on an ``asyncio.Queue``.  The queue is bounded, so a slow
consumer delays further reads instead of buffering without limit.

Signals
-------
``started``
    Set exactly once when the subscription attempt has finished,
    whether it succeeded or not.  Success or failure is observed on
    ``errors``.
``errors``
    Holds at most one terminal error: the subscription failure, the
    transport failure or the ``DecodeError`` that ended the stream.
``events``
    Decoded messages in stream order, followed by ``END_OF_STREAM``
    once the stream has ended for any reason other than cancellation.

The stream handle is closed on every exit path, including cancellation
of the supervisor task, so stopping a session releases the connection
immediately instead of waiting for the daemon to hang up.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

from daemon_events.core.errors import DecodeError
from daemon_events.core.events import Message
from daemon_events.core.interfaces import IEventSource, IEventStream
from daemon_events.core.models import EventsOptions
from daemon_events.observability.metrics import record_subscription_failure

from .decoder import decode_events

logger = logging.getLogger(__name__)


class _EndOfStream:
    def __repr__(self) -> str:
        return "END_OF_STREAM"


END_OF_STREAM = _EndOfStream()


class StreamSupervisor:
    """Bridges a blocking stream read to a queue-based consumer.

    Parameters
    ----------
    source:
        Stream source to subscribe to.
    options:
        Subscription options forwarded verbatim to ``source.events()``.
    buffer_size:
        Capacity of the event queue (``1`` hands messages over one at
        a time).
    """

    def __init__(
        self,
        source: IEventSource,
        options: EventsOptions | None = None,
        *,
        buffer_size: int = 1,
    ) -> None:
        self._source = source
        self._options = options or EventsOptions()
        self.started = asyncio.Event()
        self.events: asyncio.Queue[Message | _EndOfStream] = asyncio.Queue(
            maxsize=buffer_size
        )
        self.errors: asyncio.Queue[BaseException] = asyncio.Queue(maxsize=1)
        self._task: asyncio.Task | None = None
        self._messages_published = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> asyncio.Task:
        """Launch the read-decode-publish loop as a background task."""
        if self._task is None:
            self._task = asyncio.create_task(self.run(), name="event-stream-supervisor")
        return self._task

    async def stop(self) -> None:
        """Cancel the read loop and wait until the stream is closed."""
        if self._task is None or self._task.done():
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)

    async def run(self) -> None:
        """Subscribe, decode and publish until the stream ends."""
        stream: IEventStream | None = None
        try:
            stream = await self._source.events(self._options)
        except Exception as exc:
            logger.warning("Event subscription failed: %s", exc)
            record_subscription_failure()
            self._fail(exc)
        finally:
            # Unblock whoever waits for monitoring to begin, even if it
            # never will.
            self.started.set()

        if stream is not None:
            logger.info("Subscribed to daemon events")
            try:
                await decode_events(stream, self._publish)
            except DecodeError as exc:
                logger.error("Malformed event on stream, stopping: %s", exc)
                self._fail(exc)
            except Exception as exc:
                logger.error("Event stream failed: %s", exc)
                self._fail(exc)
            else:
                logger.info(
                    "Event stream ended after %d messages",
                    self._messages_published,
                )
            finally:
                await stream.close()

        await self.events.put(END_OF_STREAM)

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    async def messages(self) -> AsyncIterator[Message]:
        """Iterate published messages until the end-of-stream marker."""
        while True:
            item = await self.events.get()
            if item is END_OF_STREAM:
                return
            yield item

    def error(self) -> BaseException | None:
        """The terminal error, if one was reported."""
        try:
            exc = self.errors.get_nowait()
        except asyncio.QueueEmpty:
            return None
        # Leave it in place for later readers.
        self.errors.put_nowait(exc)
        return exc

    @property
    def messages_published(self) -> int:
        return self._messages_published

    @property
    def task(self) -> asyncio.Task | None:
        return self._task

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _publish(
        self, message: Message | None, error: DecodeError | None
    ) -> BaseException | None:
        if error is not None:
            return error
        await self.events.put(message)
        self._messages_published += 1
        return None

    def _fail(self, exc: BaseException) -> None:
        if self.errors.full():
            logger.debug("Dropping secondary stream error: %s", exc)
            return
        self.errors.put_nowait(exc)
