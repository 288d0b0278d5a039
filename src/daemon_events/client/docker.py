"""Daemon HTTP client for the ``/events`` endpoint.

Speaks the Docker Engine API over a unix socket or TCP using aiohttp.
Every ``events()`` call opens its own ``ClientSession`` which the
returned stream owns, so closing the stream releases the connection.

Environment variables:
  - ``DOCKER_HOST``: daemon address when none is given
    (``unix:///var/run/docker.sock`` by default)
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

import aiohttp

from daemon_events.core.config import DaemonConfig
from daemon_events.core.errors import ConfigError, StreamError, SubscriptionError
from daemon_events.core.models import EventsOptions

if TYPE_CHECKING:
    from daemon_events.core.config import Settings

logger = logging.getLogger(__name__)


def _resolve_host(host: str) -> tuple[str, str | None]:
    """Map a daemon address to ``(base_url, unix_socket_path)``."""
    if host.startswith("unix://"):
        path = host[len("unix://"):]
        if not path:
            raise ConfigError(f"Daemon host {host!r} has no socket path")
        return "http://localhost", path
    if host.startswith("tcp://"):
        return "http://" + host[len("tcp://"):].rstrip("/"), None
    if host.startswith(("http://", "https://")):
        return host.rstrip("/"), None
    raise ConfigError(f"Unsupported daemon host {host!r}")


class HTTPEventStream:
    """Chunked ``/events`` response body.

    Iteration yields raw chunks as they arrive.  Connection failures
    while reading surface as ``StreamError``.
    """

    def __init__(
        self, session: aiohttp.ClientSession, response: aiohttp.ClientResponse
    ) -> None:
        self._session = session
        self._response = response
        self._closed = False

    async def __aiter__(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.content.iter_any():
                yield chunk
        except aiohttp.ClientError as exc:
            raise StreamError(f"Event stream interrupted: {exc}") from exc

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._response.close()
        await self._session.close()

    @property
    def closed(self) -> bool:
        return self._closed


class DockerEventSource:
    """Subscribes to the daemon's event stream.

    Args:
        host: ``unix:///path``, ``tcp://host:port`` or an ``http(s)://``
            URL.  Defaults to ``DOCKER_HOST`` or the local socket.
        api_version: API version prefix such as ``"1.43"``; ``None``
            lets the daemon pick.
        connect_timeout: Seconds allowed to establish the connection.
            Reads never time out: the stream is idle between events.
        headers: Extra request headers (e.g. for an authenticating proxy).
    """

    def __init__(
        self,
        host: str | None = None,
        *,
        api_version: str | None = None,
        connect_timeout: float = 10.0,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._host = host or DaemonConfig().host
        self._base_url, self._socket_path = _resolve_host(self._host)
        version = (api_version or "").lstrip("v")
        self._url = f"{self._base_url}/v{version}/events" if version else f"{self._base_url}/events"
        self._timeout = aiohttp.ClientTimeout(total=None, sock_connect=connect_timeout)
        self._headers = dict(headers or {})

    @classmethod
    def from_settings(cls, settings: Settings) -> DockerEventSource:
        daemon = settings.daemon
        return cls(
            daemon.host,
            api_version=daemon.api_version,
            connect_timeout=daemon.connect_timeout,
        )

    @property
    def url(self) -> str:
        return self._url

    async def events(self, options: EventsOptions) -> HTTPEventStream:
        """Open the event stream.  Raises ``SubscriptionError`` on failure."""
        connector = (
            aiohttp.UnixConnector(path=self._socket_path)
            if self._socket_path
            else None
        )
        session = aiohttp.ClientSession(
            connector=connector, timeout=self._timeout, headers=self._headers,
        )
        try:
            response = await session.get(self._url, params=options.to_query())
        except (aiohttp.ClientError, OSError) as exc:
            await session.close()
            raise SubscriptionError(
                f"Cannot connect to daemon at {self._host}: {exc}"
            ) from exc
        except BaseException:
            await session.close()
            raise

        if response.status != 200:
            detail = await self._error_detail(response)
            response.release()
            await session.close()
            raise SubscriptionError(
                f"Daemon rejected event subscription ({response.status}): {detail}",
                status=response.status,
            )

        logger.debug("Opened event stream %s", self._url)
        return HTTPEventStream(session, response)

    @staticmethod
    async def _error_detail(response: aiohttp.ClientResponse) -> str:
        """The daemon's ``{"message": ...}`` body, or the raw text."""
        try:
            data = await response.json(content_type=None)
        except (aiohttp.ClientError, ValueError):
            return response.reason or ""
        if isinstance(data, dict) and data.get("message"):
            return str(data["message"])
        return response.reason or ""
