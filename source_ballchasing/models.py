"""Typed payloads returned by the ballchasing API.

Only the fields the sweep relies on are declared; everything else the API
sends is kept (``extra="allow"``) so log output stays informative.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .lib.timestamps import parse_rfc3339

T = TypeVar("T")


class Visibility(str, Enum):
    PUBLIC = "public"
    UNLISTED = "unlisted"
    PRIVATE = "private"


class GroupSummary(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    direct_replays: Optional[int] = None
    indirect_replays: Optional[int] = None


class Uploader(BaseModel):
    model_config = ConfigDict(extra="allow")

    steam_id: str
    name: Optional[str] = None


class ReplaySummary(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    created: datetime
    visibility: Optional[Visibility] = None
    uploader: Uploader

    @field_validator("created", mode="before")
    @classmethod
    def _parse_created(cls, v: object) -> object:
        if isinstance(v, (str, datetime)):
            return parse_rfc3339(v)
        return v

    @property
    def is_public(self) -> bool:
        return (self.visibility or Visibility.PUBLIC) is Visibility.PUBLIC


class PingResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    steam_id: str
    name: Optional[str] = None


class Listing(BaseModel, Generic[T]):
    """One page of a list endpoint; ``next`` is an absolute URL when more pages exist."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    items: list[T] = Field(default_factory=list, alias="list")
    next: Optional[str] = None


__all__ = ["Visibility", "GroupSummary", "Uploader", "ReplaySummary", "PingResponse", "Listing"]
