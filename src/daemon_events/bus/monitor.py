"""Monitor: wires a stream supervisor into a handler registry.

Usage::

    from daemon_events import DockerEventSource, monitor

    async def on_event(message):
        print(message.label)

    session = await monitor(DockerEventSource(), on_event, timeout=10)
    error = await session.wait()   # None on clean end or stop

Each call starts one monitor session made of three tasks: the
supervisor's read loop, the registry's dispatch loop and a watcher that
races the end of the stream against the caller's stop signal.  Callers
get the session back once the subscription attempt has finished and
read its single terminal value from ``wait()``:

- ``None`` when the stream ended cleanly or the caller stopped the
  session (stop event, ``session.stop()`` or ``timeout``);
- the ``SubscriptionError`` / ``StreamError`` / ``DecodeError`` (or
  whatever the source raised) otherwise, or the exception that
  stopped the dispatch loop.

When the stream ends, every event decoded before the end is dispatched
and launched callbacks get up to ``settle_timeout`` seconds to finish
before the terminal value is published.  Stopping cancels the stream
read at once and does not wait for callbacks.
"""

from __future__ import annotations

import asyncio
import contextvars
import logging

from daemon_events.core.config import MonitorConfig
from daemon_events.core.enums import SessionOutcome, SessionState
from daemon_events.core.interfaces import Callback, IEventSource
from daemon_events.core.models import EventsOptions
from daemon_events.observability.logger import new_session_id
from daemon_events.observability.metrics import record_session

from .registry import HandlerRegistry
from .supervisor import StreamSupervisor

logger = logging.getLogger(__name__)


class MonitorSession:
    """One subscribe-decode-dispatch lifecycle.

    Owns the stream (through its supervisor) and releases it on every
    exit path.  Also usable as an async context manager: leaving the
    block stops the session and waits for it.
    """

    def __init__(
        self,
        supervisor: StreamSupervisor,
        registry: HandlerRegistry,
        *,
        stop: asyncio.Event | None = None,
        timeout: float | None = None,
        config: MonitorConfig | None = None,
    ) -> None:
        self._supervisor = supervisor
        self._registry = registry
        # The caller's event may be shared; only ever read it.
        self._stop = stop
        # Set by stop() and the timeout.
        self._stopped = asyncio.Event()
        self._timeout = timeout
        self._config = config or MonitorConfig()
        self._state = SessionState.STARTING
        self._outcome: SessionOutcome | None = None
        self._session_id = ""
        self._result: asyncio.Future[BaseException | None] | None = None
        self._dispatch_task: asyncio.Task | None = None
        self._watch_task: asyncio.Task | None = None
        self._deadline: asyncio.TimerHandle | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> MonitorSession:
        """Launch the session; return once the subscription attempt is done."""
        if self._result is not None:
            raise RuntimeError("Monitor session already started")

        loop = asyncio.get_running_loop()
        self._result = loop.create_future()

        # Tasks created inside this context inherit the session id.
        ctx = contextvars.copy_context()
        self._session_id = ctx.run(new_session_id)
        self._dispatch_task = asyncio.create_task(
            self._registry.watch(self._supervisor.messages()),
            name="event-dispatch",
            context=ctx,
        )
        ctx.run(self._supervisor.start)
        self._watch_task = asyncio.create_task(
            self._watch(), name="event-monitor", context=ctx,
        )
        if self._timeout is not None:
            self._deadline = loop.call_later(self._timeout, self._stopped.set)

        try:
            await self._supervisor.started.wait()
        except asyncio.CancelledError:
            self._watch_task.cancel()
            await self._teardown()
            self._finish(None, SessionOutcome.CANCELLED)
            raise

        if not self._result.done():
            self._state = SessionState.RUNNING
        logger.debug("Monitor session %s running", self._session_id)
        return self

    def stop(self) -> None:
        """Ask the session to stop; ``wait()`` then returns ``None``."""
        self._stopped.set()

    async def wait(self) -> BaseException | None:
        """Block until the session ends and return its terminal value."""
        if self._result is None:
            raise RuntimeError("Monitor session not started")
        return await asyncio.shield(self._result)

    def done(self) -> bool:
        return self._result is not None and self._result.done()

    async def __aenter__(self) -> MonitorSession:
        if self._result is None:
            await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.stop()
        await self.wait()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def outcome(self) -> SessionOutcome | None:
        """How the session ended (``None`` while it is still running)."""
        return self._outcome

    @property
    def registry(self) -> HandlerRegistry:
        return self._registry

    @property
    def supervisor(self) -> StreamSupervisor:
        return self._supervisor

    @property
    def session_id(self) -> str:
        return self._session_id

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _watch(self) -> None:
        assert self._dispatch_task is not None
        waiters = {
            asyncio.create_task(self._stopped.wait(), name="event-monitor-stop"),
        }
        if self._stop is not None:
            waiters.add(
                asyncio.create_task(self._stop.wait(), name="event-monitor-caller-stop")
            )
        try:
            done, _ = await asyncio.wait(
                {self._dispatch_task, *waiters},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if self._dispatch_task in done:
                failure = self._dispatch_failure()
                if failure is not None:
                    # Nothing drains the queue any more; release the stream.
                    logger.error("Dispatch loop failed: %s", failure)
                    await self._teardown()
                    self._finish(failure, SessionOutcome.FAILED)
                    return
                await self._settle()
                error = self._supervisor.error()
                outcome = (
                    SessionOutcome.FAILED if error is not None
                    else SessionOutcome.COMPLETED
                )
                self._finish(error, outcome)
            else:
                logger.info("Monitor session %s stopped by caller", self._session_id)
                await self._teardown()
                self._finish(None, SessionOutcome.CANCELLED)
        except asyncio.CancelledError:
            await self._teardown()
            self._finish(None, SessionOutcome.CANCELLED)
            raise
        finally:
            for waiter in waiters:
                waiter.cancel()

    def _dispatch_failure(self) -> BaseException | None:
        assert self._dispatch_task is not None
        if self._dispatch_task.cancelled():
            return None
        return self._dispatch_task.exception()

    async def _settle(self) -> None:
        """Give callbacks launched before the end of stream time to run."""
        if self._registry.in_flight == 0:
            return
        try:
            await asyncio.wait_for(self._registry.join(), self._config.settle_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "%d handlers still running %.1fs after end of stream",
                self._registry.in_flight,
                self._config.settle_timeout,
            )

    async def _teardown(self) -> None:
        await self._supervisor.stop()
        if self._dispatch_task is not None and not self._dispatch_task.done():
            self._dispatch_task.cancel()
            await asyncio.gather(self._dispatch_task, return_exceptions=True)

    def _finish(self, error: BaseException | None, outcome: SessionOutcome) -> None:
        if self._deadline is not None:
            self._deadline.cancel()
        if self._result is None or self._result.done():
            return
        self._state = SessionState.TERMINATED
        self._outcome = outcome
        record_session(outcome.value)
        if error is not None:
            logger.warning("Monitor session %s failed: %s", self._session_id, error)
        else:
            logger.info("Monitor session %s %s", self._session_id, outcome.value)
        self._result.set_result(error)


async def monitor_with_handler(
    source: IEventSource,
    registry: HandlerRegistry,
    *,
    options: EventsOptions | None = None,
    stop: asyncio.Event | None = None,
    timeout: float | None = None,
    config: MonitorConfig | None = None,
) -> MonitorSession:
    """Monitor *source*, routing events through a caller-built *registry*.

    Args:
        source: Where to subscribe.
        registry: Classifier plus key-bound callbacks.
        options: Subscription options passed to the source.
        stop: External stop signal; setting it ends the session.  The
            session only reads it, so one event can stop many sessions.
        timeout: Seconds after which the session stops by itself.
        config: Queue size and end-of-stream settle time.
    """
    config = config or MonitorConfig()
    supervisor = StreamSupervisor(source, options, buffer_size=config.buffer_size)
    session = MonitorSession(
        supervisor, registry, stop=stop, timeout=timeout, config=config,
    )
    return await session.start()


async def monitor(
    source: IEventSource,
    callback: Callback,
    *,
    options: EventsOptions | None = None,
    stop: asyncio.Event | None = None,
    timeout: float | None = None,
    config: MonitorConfig | None = None,
) -> MonitorSession:
    """Monitor *source*, sending every event to *callback*."""
    return await monitor_with_handler(
        source,
        HandlerRegistry.catch_all(callback),
        options=options,
        stop=stop,
        timeout=timeout,
        config=config,
    )
