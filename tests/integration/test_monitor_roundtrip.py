"""Integration test: HTTP daemon -> decoder -> supervisor -> registry.

Runs the whole pipeline against a local aiohttp server that speaks the
``/events`` endpoint, with records split across many small writes.
"""

from __future__ import annotations

import asyncio

import pytest
from aiohttp import test_utils, web

from daemon_events import DockerEventSource, HandlerRegistry, by_type, monitor_with_handler
from daemon_events.core.config import MonitorConfig
from daemon_events.core.enums import SessionOutcome
from daemon_events.core.errors import DecodeError
from daemon_events.core.models import EventsOptions


def _daemon(payload: bytes, *, hang: asyncio.Event | None = None) -> web.Application:
    async def handler(request: web.Request) -> web.StreamResponse:
        response = web.StreamResponse()
        await response.prepare(request)
        for i in range(0, len(payload), 7):
            await response.write(payload[i:i + 7])
            await asyncio.sleep(0)
        if hang is not None:
            await hang.wait()
        try:
            await response.write_eof()
        except (ConnectionResetError, RuntimeError):
            pass
        return response

    app = web.Application()
    app.router.add_get("/v1.43/events", handler)
    return app


class TestMonitorRoundtrip:
    @pytest.mark.asyncio
    async def test_routes_events_from_http_stream(self, lifecycle_records, encode, make_recorder):
        server = test_utils.TestServer(_daemon(encode(*lifecycle_records)))
        await server.start_server()
        containers, others = make_recorder(), make_recorder()
        registry = HandlerRegistry(by_type)
        registry.bind("container", containers)
        registry.bind("volume", others)
        registry.bind("network", others)
        try:
            session = await monitor_with_handler(
                DockerEventSource(f"http://{server.host}:{server.port}", api_version="1.43"),
                registry,
                options=EventsOptions(filters={"scope": ["local"]}),
                config=MonitorConfig(buffer_size=2),
            )
            error = await asyncio.wait_for(session.wait(), 5)
        finally:
            await server.close()

        assert error is None
        assert session.outcome is SessionOutcome.COMPLETED
        assert containers.labels == ["container-create", "container-destroy"]
        assert others.labels == ["network-create", "volume-create"]

    @pytest.mark.asyncio
    async def test_corrupt_record_ends_session(self, make_record, encode, recorder):
        payload = encode(make_record("image", "pull")) + b'{"Type": "image", "Action": }\n'
        server = test_utils.TestServer(_daemon(payload))
        await server.start_server()
        registry = HandlerRegistry.catch_all(recorder)
        try:
            session = await monitor_with_handler(
                DockerEventSource(f"http://{server.host}:{server.port}", api_version="1.43"),
                registry,
            )
            error = await asyncio.wait_for(session.wait(), 5)
        finally:
            await server.close()

        assert isinstance(error, DecodeError)
        assert recorder.labels == ["image-pull"]
        assert session.outcome is SessionOutcome.FAILED

    @pytest.mark.asyncio
    async def test_timeout_closes_the_connection(self, make_record, encode, recorder):
        hang = asyncio.Event()
        server = test_utils.TestServer(_daemon(encode(make_record("container", "start")), hang=hang))
        await server.start_server()
        try:
            session = await monitor_with_handler(
                DockerEventSource(f"http://{server.host}:{server.port}", api_version="1.43"),
                HandlerRegistry.catch_all(recorder),
                timeout=0.2,
            )
            error = await asyncio.wait_for(session.wait(), 5)
        finally:
            hang.set()
            await server.close()

        assert error is None
        assert session.outcome is SessionOutcome.CANCELLED
        assert recorder.labels == ["container-start"]
