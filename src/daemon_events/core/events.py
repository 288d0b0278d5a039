"""Event schema for the daemon event stream.

A ``Message`` is one decoded record.  Only ``type`` and ``action`` are
used for routing; everything else the daemon sends is kept verbatim so
callbacks can read it, including fields this model does not know about.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class Actor(BaseModel):
    """The object an event is about, with its labels/attributes."""

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    id: str = Field(default="", alias="ID")
    attributes: dict[str, str] = Field(default_factory=dict, alias="Attributes")


class Message(BaseModel):
    """One event reported by the daemon.

    Accepts the daemon's wire keys (``Type``, ``Action``, ``Actor``,
    ``timeNano``) as well as the plain field names.  Instances are
    read-only once decoded and may be shared freely between tasks.
    """

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    type: str = Field(default="", alias="Type")
    action: str = Field(default="", alias="Action")
    actor: Actor = Field(default_factory=Actor, alias="Actor")
    scope: str = ""

    # Legacy fields still emitted for container events
    status: str = ""
    id: str = ""
    from_: str = Field(default="", alias="from")

    time: int = 0
    time_nano: int = Field(default=0, alias="timeNano")

    @property
    def label(self) -> str:
        """``<type>-<action>``, e.g. ``container-create``."""
        return f"{self.type}-{self.action}"
