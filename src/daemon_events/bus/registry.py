"""Keyed handler registry: routes each event to at most one callback.

A classifier maps every message to a key; the callback bound to that
key is launched as a detached task and dispatch moves on immediately,
so a slow callback never holds up the next event.  Launch order follows
dispatch order; completion order is up to the callbacks.

Callbacks may be coroutine functions (run as tasks on the loop) or
plain callables (each run on its own thread, or on a caller-supplied
executor, so they cannot block the loop or each other).

Callback failures are caught, logged with their traceback, counted per
key and passed to the optional ``on_handler_error`` hook.  They never
reach the monitor session's terminal error.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import contextvars
import inspect
import logging
import threading
from collections import defaultdict
from collections.abc import AsyncIterable, Hashable

from daemon_events.core.errors import RegistryError
from daemon_events.core.events import Message
from daemon_events.core.interfaces import Callback, Classifier, HandlerErrorHook
from daemon_events.observability.metrics import (
    handler_finished,
    handler_started,
    record_dispatched,
    record_dropped,
    record_handler_error,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Built-in classifiers
# ---------------------------------------------------------------------------

def by_type(message: Message) -> str:
    """Route on the kind of object the event is about."""
    return message.type


def by_action(message: Message) -> str:
    """Route on what happened."""
    return message.action


def _is_async(callback: Callback) -> bool:
    if inspect.iscoroutinefunction(callback):
        return True
    call = getattr(callback, "__call__", None)
    return inspect.iscoroutinefunction(call)


class _CatchAll:
    def __repr__(self) -> str:
        return "*"


# Routing key reported for catch-all registries; never a caller key.
CATCH_ALL = _CatchAll()


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class HandlerRegistry:
    """Thread-safe key -> callback table with detached dispatch.

    Parameters
    ----------
    classifier:
        Maps a message to its routing key.  Must be deterministic for
        the lifetime of the registry.
    on_handler_error:
        Optional ``(key, message, exc)`` hook for callback failures.
    executor:
        Executor for plain (non-async) callbacks; its worker count then
        bounds how many run at once.  ``None`` starts a thread per call.
    """

    def __init__(
        self,
        classifier: Classifier,
        *,
        on_handler_error: HandlerErrorHook | None = None,
        executor: concurrent.futures.Executor | None = None,
    ) -> None:
        self._classifier: Classifier | None = classifier
        self._catch_all: Callback | None = None
        self._handlers: dict[Hashable, Callback] = {}
        self._lock = threading.Lock()
        self._on_handler_error = on_handler_error
        self._executor = executor
        self._tasks: set[asyncio.Task] = set()

        # Observability
        self._error_counts: dict[str, int] = defaultdict(int)
        self._messages_dispatched = 0
        self._messages_dropped = 0

    @classmethod
    def catch_all(
        cls,
        callback: Callback,
        *,
        on_handler_error: HandlerErrorHook | None = None,
        executor: concurrent.futures.Executor | None = None,
    ) -> HandlerRegistry:
        """Build a registry that sends every message to *callback*.

        Catch-all registries have no classifier and no keys, so they
        cannot collide with keys chosen by callers.
        """
        if not callable(callback):
            raise RegistryError(f"Callback must be callable, got {callback!r}")
        registry = cls(by_type, on_handler_error=on_handler_error, executor=executor)
        registry._classifier = None
        registry._catch_all = callback
        return registry

    # ------------------------------------------------------------------
    # Bindings
    # ------------------------------------------------------------------

    @property
    def is_catch_all(self) -> bool:
        return self._classifier is None

    def bind(self, key: Hashable, callback: Callback) -> None:
        """Bind *callback* to *key*, replacing any previous binding."""
        if self.is_catch_all:
            raise RegistryError("A catch-all registry has no keys to bind")
        if not callable(callback):
            raise RegistryError(f"Callback for {key!r} must be callable, got {callback!r}")
        with self._lock:
            self._handlers[key] = callback

    def unbind(self, key: Hashable) -> Callback | None:
        """Remove the binding for *key* and return it, if any."""
        with self._lock:
            return self._handlers.pop(key, None)

    def keys(self) -> list[Hashable]:
        with self._lock:
            return list(self._handlers)

    def __len__(self) -> int:
        with self._lock:
            return len(self._handlers)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._handlers

    def lookup(self, message: Message) -> tuple[Hashable, Callback | None]:
        """Classify *message* and return ``(key, callback or None)``."""
        if self._classifier is None:
            return CATCH_ALL, self._catch_all
        key = self._classifier(message)
        with self._lock:
            return key, self._handlers.get(key)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def watch(self, messages: AsyncIterable[Message]) -> None:
        """Dispatch every message from *messages* until it is exhausted.

        Never waits for callbacks; use ``join()`` for that.
        """
        async for message in messages:
            self.dispatch(message)

    def dispatch(self, message: Message) -> bool:
        """Route one message.  Returns whether a callback was launched."""
        try:
            key, callback = self.lookup(message)
            # Keys label tasks and metrics, so they must render as text.
            label = str(key)
        except Exception:
            logger.exception("Could not classify %s event, dropping it", message.label)
            self._messages_dropped += 1
            record_dropped()
            return False

        if callback is None:
            logger.debug("No handler for key %s, dropping %s", label, message.label)
            self._messages_dropped += 1
            record_dropped()
            return False

        task = asyncio.create_task(
            self._invoke(key, label, callback, message), name=f"event-handler-{label}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._messages_dispatched += 1
        record_dispatched(label)
        return True

    async def join(self) -> None:
        """Wait until every launched callback has finished."""
        while self._tasks:
            await asyncio.wait(list(self._tasks))

    async def _invoke(
        self, key: Hashable, label: str, callback: Callback, message: Message
    ) -> None:
        handler_started()
        try:
            if _is_async(callback):
                await callback(message)
            else:
                result = await self._run_blocking(callback, message, label)
                if inspect.isawaitable(result):
                    await result
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._error_counts[label] += 1
            record_handler_error(label)
            logger.exception(
                "Handler error for key=%s event=%s", label, message.label,
            )
            if self._on_handler_error is not None:
                try:
                    self._on_handler_error(key, message, exc)
                except Exception:
                    logger.warning("on_handler_error callback failed", exc_info=True)
        finally:
            handler_finished()

    def _run_blocking(
        self, callback: Callback, message: Message, label: str
    ) -> asyncio.Future:
        """Run a plain callable off the loop and return its result future.

        Without an explicit executor every call gets its own thread, so a
        callback that blocks never delays callbacks for other events.
        """
        loop = asyncio.get_running_loop()
        ctx = contextvars.copy_context()
        if self._executor is not None:
            return loop.run_in_executor(self._executor, ctx.run, callback, message)

        future = loop.create_future()

        def _resolve(result: object, exc: BaseException | None) -> None:
            if future.done():
                return
            if exc is not None:
                future.set_exception(exc)
            else:
                future.set_result(result)

        def _target() -> None:
            try:
                result = ctx.run(callback, message)
            except Exception as exc:
                outcome: tuple[object, BaseException | None] = (None, exc)
            else:
                outcome = (result, None)
            if loop.is_closed():
                return
            loop.call_soon_threadsafe(_resolve, *outcome)

        threading.Thread(
            target=_target, name=f"event-handler-{label}", daemon=True,
        ).start()
        return future

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    def get_error_counts(self) -> dict[str, int]:
        """Return per-key callback failure counts."""
        return dict(self._error_counts)

    @property
    def in_flight(self) -> int:
        """Callbacks launched and not yet finished."""
        return len(self._tasks)

    @property
    def messages_dispatched(self) -> int:
        return self._messages_dispatched

    @property
    def messages_dropped(self) -> int:
        return self._messages_dropped
