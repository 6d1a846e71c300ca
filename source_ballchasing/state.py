"""Durable sweep state: the group frontier and per-binding progress.

The whole ``State`` is what gets committed in every checkpoint, so it has to
round-trip through JSON without loss, including half-explored group trees.
Fields at their default value are left out of the serialized form to keep
checkpoints small.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Iterable, Iterator, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    RootModel,
    ValidationError,
    field_serializer,
    field_validator,
    model_serializer,
)
from pydantic.alias_generators import to_camel

from .errors import ProtocolError
from .lib import json
from .lib.log import get_logger
from .lib.timestamps import format_rfc3339, parse_rfc3339, utc_now
from .models import GroupSummary

if TYPE_CHECKING:
    from .fetcher import Fetcher

logger = get_logger(__name__)


def binding_key(creator_id: str, collection_name: str) -> str:
    return f"{creator_id};{collection_name}"


def _is_default(value: Any) -> bool:
    return value is None or value is False or (isinstance(value, (list, dict)) and not value)


class _CompactModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    @model_serializer(mode="wrap")
    def _omit_defaults(self, handler: Any) -> dict[str, Any]:
        data = handler(self)
        return {key: value for key, value in data.items() if not _is_default(value)}


class TodoGroup(_CompactModel):
    """A group that may still hold work for the current sweep."""

    id: str
    name: str
    must_fetch_children: bool = False
    must_fetch_replays: bool = False
    children: list[TodoGroup] = Field(default_factory=list)

    @classmethod
    def from_summary(cls, summary: GroupSummary) -> TodoGroup:
        return cls(
            id=summary.id,
            name=summary.name,
            must_fetch_children=(summary.indirect_replays or 0) > 0,
            must_fetch_replays=(summary.direct_replays or 0) > 0,
        )

    def is_done(self) -> bool:
        return not self.must_fetch_children and not self.must_fetch_replays and not self.children

    def prune_children(self) -> None:
        self.children = [child for child in self.children if not child.is_done()]


class BindingState(_CompactModel):
    collection_name: str
    creator_id: str
    sweep_start: Optional[datetime] = None
    last_completed_sweep: Optional[datetime] = None
    todo_groups: list[TodoGroup] = Field(default_factory=list)

    @field_validator("sweep_start", "last_completed_sweep", mode="before")
    @classmethod
    def _parse_ts(cls, v: Any) -> Any:
        if isinstance(v, (str, datetime)):
            return parse_rfc3339(v)
        return v

    @field_serializer("sweep_start", "last_completed_sweep")
    def _format_ts(self, v: Optional[datetime]) -> Optional[str]:
        return format_rfc3339(v) if v is not None else None

    @property
    def binding_key(self) -> str:
        return binding_key(self.creator_id, self.collection_name)

    def is_sweep_complete(self) -> bool:
        return not self.todo_groups

    def prune_todo_groups(self) -> None:
        self.todo_groups = [group for group in self.todo_groups if not group.is_done()]

    async def start_sweep(self, fetcher: Fetcher, now: Optional[datetime] = None) -> None:
        """Snapshot the new high-water mark and seed the frontier with top-level groups."""
        logger.info("starting sweep", creator_id=self.creator_id)
        self.sweep_start = now or utc_now()
        groups = await fetcher.fetch_creator_groups(self.creator_id)
        logger.info("fetched top-level groups for creator", creator_id=self.creator_id, group_count=len(groups))
        self.todo_groups.extend(groups)

    def finish_sweep(self) -> None:
        if self.sweep_start is None:
            return
        self.last_completed_sweep = self.sweep_start
        self.sweep_start = None


class State(RootModel[dict[str, BindingState]]):
    """Checkpointed state: a JSON object keyed on ``"<creator_id>;<collection_name>"``.

    Changing either the creator or the target collection yields a new key, so
    the old progress is thrown away and the new binding starts from scratch.
    """

    root: dict[str, BindingState] = Field(default_factory=dict)

    @field_serializer("root", mode="wrap")
    def _sorted_bindings(self, value: dict[str, BindingState], handler: Any) -> Any:
        return handler(dict(sorted(value.items())))

    @property
    def bindings(self) -> dict[str, BindingState]:
        return self.root

    @classmethod
    def parse(cls, state_json: str | bytes | dict[str, Any] | None) -> State:
        """Decode a checkpoint handed back by the host. Blank input is an empty state."""
        if state_json is None:
            return cls()
        if isinstance(state_json, (str, bytes)):
            if not state_json.strip():
                return cls()
            try:
                data = json.loads(state_json)
            except json.JSONDecodeError as exc:
                raise ProtocolError(f"deserializing state checkpoint: {exc}") from exc
        else:
            data = state_json
        if data is None:
            return cls()
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ProtocolError(f"deserializing state checkpoint: {exc}") from exc

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    def sorted_items(self) -> Iterator[tuple[str, BindingState]]:
        for key in sorted(self.root):
            yield key, self.root[key]

    def is_sweep_complete(self) -> bool:
        return all(b.is_sweep_complete() for b in self.root.values())


@dataclass(frozen=True)
class BindingSpec:
    """A binding as configured for this invocation."""

    index: int
    creator_id: str
    collection_name: str

    @property
    def key(self) -> str:
        return binding_key(self.creator_id, self.collection_name)


def reconcile(state: State, bindings: Iterable[BindingSpec]) -> State:
    """Align ``state`` with the configured bindings.

    Bindings without prior state get an empty ``BindingState``; state for
    bindings that are no longer configured is discarded.
    """
    configured = {spec.key: spec for spec in bindings}
    for key, spec in configured.items():
        if key not in state.bindings:
            logger.info("initializing new empty state for binding", binding_key=key)
            state.bindings[key] = BindingState(collection_name=spec.collection_name, creator_id=spec.creator_id)
    for key in list(state.bindings):
        if key not in configured:
            stale = state.bindings.pop(key)
            logger.info(
                "clearing out unused state",
                binding_key=key,
                sweep_start=stale.sweep_start,
                pending_groups=len(stale.todo_groups),
            )
    state.root = dict(sorted(state.root.items()))
    return state


__all__ = ["TodoGroup", "BindingState", "BindingSpec", "State", "binding_key", "reconcile"]
