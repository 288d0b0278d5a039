"""CLI entry point for the event monitor."""

from __future__ import annotations

import asyncio
import sys

import click

from .bus.monitor import monitor_with_handler
from .bus.registry import HandlerRegistry, by_action, by_type
from .client.docker import DockerEventSource
from .client.static import StaticEventSource
from .core.config import Settings, load_settings
from .core.enums import EventType
from .core.errors import ConfigError
from .core.events import Message
from .core.interfaces import IEventSource
from .core.models import EventsOptions, parse_filters
from .observability.logger import get_logger, setup_logging
from .observability.metrics import start_metrics_server

_CLASSIFIERS = {"type": by_type, "action": by_action}


@click.group()
def main() -> None:
    """Daemon event monitor."""


async def _print_event(message: Message) -> None:
    click.echo(message.model_dump_json(by_alias=True))


def _build_registry(by: str, only: tuple[str, ...]) -> HandlerRegistry:
    if by == "all":
        if only:
            raise click.UsageError("--only needs --by type or --by action")
        return HandlerRegistry.catch_all(_print_event)
    if not only:
        raise click.UsageError(f"--by {by} needs at least one --only key")
    if by == "type":
        known = {t.value for t in EventType}
        unknown = sorted(set(only) - known)
        if unknown:
            raise click.UsageError(
                f"Unknown event type(s) {', '.join(unknown)}; "
                f"expected one of {', '.join(sorted(known))}"
            )
    registry = HandlerRegistry(_CLASSIFIERS[by])
    for key in only:
        registry.bind(key, _print_event)
    return registry


async def _watch(
    source: IEventSource,
    registry: HandlerRegistry,
    options: EventsOptions,
    settings: Settings,
    timeout: float | None,
) -> BaseException | None:
    session = await monitor_with_handler(
        source, registry, options=options, timeout=timeout, config=settings.monitor,
    )
    return await session.wait()


@main.command()
@click.option("--config", default=None, help="Config file path (TOML)")
@click.option("--host", default=None, help="Daemon address (unix://, tcp://, http://)")
@click.option("--api-version", default=None, help="Daemon API version, e.g. 1.43")
@click.option("--filter", "filters", multiple=True, help="Event filter key=value (repeatable)")
@click.option("--since", default=None, help="Show events created since this time")
@click.option("--until", default=None, help="Stream events until this time")
@click.option(
    "--by",
    type=click.Choice(["all", "type", "action"]),
    default="all",
    show_default=True,
    help="How to route events",
)
@click.option(
    "--only",
    multiple=True,
    help="Only print events with this routing key (repeatable); with --by type, one of "
    + ", ".join(t.value for t in EventType),
)
@click.option("--timeout", type=float, default=None, help="Stop after this many seconds")
@click.option(
    "--replay",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Replay a captured JSON-lines file instead of connecting",
)
@click.option("--log-level", default=None, help="Log level override")
@click.option(
    "--log-format", type=click.Choice(["console", "json"]), default=None, help="Log format override",
)
@click.option("--metrics-port", type=int, default=None, help="Serve Prometheus metrics on this port")
def watch(
    config: str | None,
    host: str | None,
    api_version: str | None,
    filters: tuple[str, ...],
    since: str | None,
    until: str | None,
    by: str,
    only: tuple[str, ...],
    timeout: float | None,
    replay: str | None,
    log_level: str | None,
    log_format: str | None,
    metrics_port: int | None,
) -> None:
    """Stream daemon events to stdout, one JSON object per line."""
    overrides: dict = {}
    if host:
        overrides.setdefault("daemon", {})["host"] = host
    if api_version:
        overrides.setdefault("daemon", {})["api_version"] = api_version
    if log_level:
        overrides.setdefault("observability", {})["log_level"] = log_level
    if log_format:
        overrides.setdefault("observability", {})["log_format"] = log_format
    if metrics_port is not None:
        overrides.setdefault("observability", {})["metrics_port"] = metrics_port

    try:
        settings = load_settings(config, overrides)
        options = EventsOptions(since=since, until=until, filters=parse_filters(filters))
        source: IEventSource = (
            StaticEventSource.from_file(replay)
            if replay
            else DockerEventSource.from_settings(settings)
        )
    except ConfigError as exc:
        raise click.BadParameter(str(exc)) from exc

    registry = _build_registry(by, only)
    setup_logging(settings.observability.log_level, settings.observability.log_format)
    log = get_logger(__name__)
    if settings.observability.metrics_port:
        start_metrics_server(settings.observability.metrics_port)

    error = asyncio.run(_watch(source, registry, options, settings, timeout))
    if error is not None:
        log.error("monitor_failed", error=str(error))
        click.echo(f"Error: {error}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
