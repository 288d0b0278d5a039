"""Test session id propagation and the structlog processor."""

import asyncio
import contextvars

import pytest

from daemon_events.observability.logger import (
    _add_session_id,
    get_logger,
    get_session_id,
    new_session_id,
    set_session_id,
    setup_logging,
)


class TestSessionId:
    def test_empty_outside_a_session(self):
        ctx = contextvars.Context()
        assert ctx.run(get_session_id) == ""

    def test_new_session_id_is_set(self):
        ctx = contextvars.copy_context()
        sid = ctx.run(new_session_id)
        assert len(sid) == 12
        assert ctx.run(get_session_id) == sid

    def test_ids_are_unique(self):
        ids = {contextvars.copy_context().run(new_session_id) for _ in range(50)}
        assert len(ids) == 50

    @pytest.mark.asyncio
    async def test_tasks_inherit_the_id(self):
        def spawn():
            set_session_id("abc123")
            return asyncio.ensure_future(_read())

        async def _read():
            return get_session_id()

        task = contextvars.copy_context().run(spawn)
        assert await task == "abc123"
        assert get_session_id() == ""


class TestProcessor:
    def test_adds_session_id_when_set(self):
        def run():
            set_session_id("feedbeef0000")
            return _add_session_id(None, "info", {"event": "x"})

        assert contextvars.copy_context().run(run) == {
            "event": "x",
            "session_id": "feedbeef0000",
        }

    def test_leaves_explicit_session_id(self):
        def run():
            set_session_id("one")
            return _add_session_id(None, "info", {"event": "x", "session_id": "two"})

        assert contextvars.copy_context().run(run)["session_id"] == "two"

    def test_no_session_id_outside_a_session(self):
        event = contextvars.Context().run(_add_session_id, None, "info", {"event": "x"})
        assert "session_id" not in event


class TestSetup:
    @pytest.mark.parametrize("fmt", ["json", "console"])
    def test_setup_logging(self, fmt):
        setup_logging("DEBUG", fmt)
        log = get_logger("daemon_events.test")
        log.info("configured", format=fmt)
