"""Request-side models for event subscriptions."""

from __future__ import annotations

import json
from typing import Iterable

from pydantic import BaseModel, Field

from .errors import ConfigError


class EventsOptions(BaseModel):
    """Options forwarded to the stream source when subscribing.

    ``since``/``until`` take whatever the daemon accepts (unix
    timestamps, RFC 3339 dates or relative durations such as ``10m``).
    ``filters`` maps a filter name to the accepted values, e.g.
    ``{"type": ["container"], "event": ["start", "die"]}``.
    """

    since: str | None = None
    until: str | None = None
    filters: dict[str, list[str]] = Field(default_factory=dict)

    def to_query(self) -> dict[str, str]:
        """Render as query string parameters for ``GET /events``."""
        query: dict[str, str] = {}
        if self.since:
            query["since"] = self.since
        if self.until:
            query["until"] = self.until
        if self.filters:
            query["filters"] = json.dumps(self.filters, sort_keys=True)
        return query

    def with_filter(self, key: str, value: str) -> EventsOptions:
        """Return a copy with *value* added to filter *key*."""
        filters = {k: list(v) for k, v in self.filters.items()}
        values = filters.setdefault(key, [])
        if value not in values:
            values.append(value)
        return self.model_copy(update={"filters": filters})


def parse_filters(pairs: Iterable[str]) -> dict[str, list[str]]:
    """Build a filters mapping from ``key=value`` strings."""
    filters: dict[str, list[str]] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        key, value = key.strip(), value.strip()
        if not sep or not key or not value:
            raise ConfigError(f"Invalid filter {pair!r}, expected key=value")
        values = filters.setdefault(key, [])
        if value not in values:
            values.append(value)
    return filters
