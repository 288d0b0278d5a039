"""Prometheus metrics endpoint.

Exposes event monitor metrics: decode throughput, routing outcomes,
callback failures and session results.
"""

from __future__ import annotations

from collections.abc import Hashable

from prometheus_client import (
    Counter,
    Gauge,
    Info,
    start_http_server,
)

SYSTEM_INFO = Info("daemon_events", "Daemon event monitor information")

# ---------------------------------------------------------------------------
# Stream metrics
# ---------------------------------------------------------------------------

MESSAGES_DECODED = Counter(
    "daemon_events_decoded_total",
    "Event records decoded from the daemon stream",
)

DECODE_ERRORS = Counter(
    "daemon_events_decode_errors_total",
    "Malformed event records",
)

SUBSCRIPTION_FAILURES = Counter(
    "daemon_events_subscription_failures_total",
    "Event stream subscriptions that could not be opened",
)

# ---------------------------------------------------------------------------
# Routing metrics
# ---------------------------------------------------------------------------

MESSAGES_DISPATCHED = Counter(
    "daemon_events_dispatched_total",
    "Events handed to a bound callback",
    ["key"],
)

MESSAGES_DROPPED = Counter(
    "daemon_events_dropped_total",
    "Events with no callback bound for their key",
)

HANDLER_ERRORS = Counter(
    "daemon_events_handler_errors_total",
    "Callbacks that raised",
    ["key"],
)

HANDLERS_IN_FLIGHT = Gauge(
    "daemon_events_handlers_in_flight",
    "Callbacks launched and not yet finished",
)

# ---------------------------------------------------------------------------
# Session metrics
# ---------------------------------------------------------------------------

SESSIONS_TOTAL = Counter(
    "daemon_events_sessions_total",
    "Monitor sessions by outcome",
    ["outcome"],
)


def start_metrics_server(port: int = 9090) -> None:
    """Start Prometheus metrics HTTP server in a background thread."""
    SYSTEM_INFO.info({"version": "0.1.0"})
    start_http_server(port)


def record_decoded() -> None:
    """Record one decoded event record."""
    MESSAGES_DECODED.inc()


def record_decode_error() -> None:
    """Record a malformed record."""
    DECODE_ERRORS.inc()


def record_subscription_failure() -> None:
    """Record a subscription that could not be opened."""
    SUBSCRIPTION_FAILURES.inc()


def record_dispatched(key: Hashable) -> None:
    """Record an event routed to a callback."""
    MESSAGES_DISPATCHED.labels(key=str(key)).inc()


def record_dropped() -> None:
    """Record an event without a matching callback."""
    MESSAGES_DROPPED.inc()


def record_handler_error(key: Hashable) -> None:
    """Record a callback failure."""
    HANDLER_ERRORS.labels(key=str(key)).inc()


def handler_started() -> None:
    HANDLERS_IN_FLIGHT.inc()


def handler_finished() -> None:
    HANDLERS_IN_FLIGHT.dec()


def record_session(outcome: str) -> None:
    """Record a finished monitor session."""
    SESSIONS_TOTAL.labels(outcome=outcome).inc()
