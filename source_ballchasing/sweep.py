"""Resumable depth-first sweep over a creator's group hierarchy.

Each call to ``next_replays`` does one unit of work against the persisted
frontier and returns, so the traversal can be checkpointed between network
calls and resumed from the serialized state after a restart. The descent is
an explicit loop over the frontier rather than recursion, because a call
stack cannot be checkpointed.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Mapping, Optional

from pydantic import BaseModel

from .fetcher import Fetcher
from .lib.log import get_logger
from .models import ReplaySummary
from .state import BindingState, State, TodoGroup

if TYPE_CHECKING:
    from .protocol import Emitter

logger = get_logger(__name__)


class ParentGroup(BaseModel):
    id: str
    name: str

    @classmethod
    def of(cls, group: TodoGroup) -> ParentGroup:
        return cls(id=group.id, name=group.name)


def should_ingest(
    last_completed_sweep: Optional[datetime],
    replay: ReplaySummary,
    caller_steam_id: str,
) -> bool:
    # Filter out replays that the previous sweep already captured
    if last_completed_sweep is not None and not replay.created > last_completed_sweep:
        return False

    # Filter out replays that we don't have permission to download
    if replay.is_public or replay.uploader.steam_id == caller_steam_id:
        return True
    logger.warning(
        "skipping replay because it is not public and does not belong to the caller",
        replay_id=replay.id,
        visibility=replay.visibility.value if replay.visibility else None,
        uploader=replay.uploader.steam_id,
        caller_steam_id=caller_steam_id,
    )
    return False


async def next_replays(
    state: BindingState,
    fetcher: Fetcher,
    caller_steam_id: str,
) -> Optional[tuple[list[ParentGroup], list[ReplaySummary]]]:
    """Advance the binding's traversal by one unit of work.

    Returns the lineage and the replays to ingest when the step found some,
    or ``None`` when this step found nothing (or the frontier is drained).
    A group's own replays are always tried before its children are listed.
    """
    state.prune_todo_groups()
    if not state.todo_groups:
        return None

    group = state.todo_groups[0]
    lineage = [ParentGroup.of(group)]

    while True:
        if group.must_fetch_replays:
            replays = await fetcher.fetch_replay_ids(group.id)
            group.must_fetch_replays = False
            replays = [rp for rp in replays if should_ingest(state.last_completed_sweep, rp, caller_steam_id)]
            if replays:
                return lineage, replays

        if group.must_fetch_children:
            children = await fetcher.fetch_child_groups(group.id)
            group.must_fetch_children = False
            group.children.extend(children)
            logger.debug("fetched child groups", group_id=group.id, child_count=len(children))

        group.prune_children()
        if not group.children:
            return None

        group = group.children[0]
        lineage.append(ParentGroup.of(group))


async def ingest_replays(
    lineage: list[ParentGroup],
    binding: int,
    replays: list[ReplaySummary],
    fetcher: Fetcher,
    emitter: Emitter,
) -> None:
    meta = {"parent_groups": [parent.model_dump() for parent in lineage]}
    for replay in replays:
        try:
            doc = await fetcher.fetch_replay(replay.id)
        except Exception as exc:
            logger.warning(
                "failed to fetch replay",
                binding=binding,
                replay_id=replay.id,
                parent_group_ids=[parent.id for parent in lineage],
                error=str(exc),
            )
            raise
        doc["_meta"] = meta
        await emitter.emit_doc(binding, doc)


async def run_sweep(
    binding_indices: Mapping[str, int],
    state: State,
    fetcher: Fetcher,
    emitter: Emitter,
) -> None:
    """Drive every binding's sweep to completion, checkpointing after each step."""
    ping = await fetcher.ping_server()
    caller_steam_id = ping.steam_id
    logger.info("successfully pinged the ballchasing API", steam_id=caller_steam_id)

    # Is there an in-progress sweep? If not, then we'll start one.
    for _, binding_state in state.sorted_items():
        if binding_state.sweep_start is None:
            await binding_state.start_sweep(fetcher)

    while not state.is_sweep_complete():
        for binding_key, binding_state in state.sorted_items():
            if binding_state.is_sweep_complete():
                continue
            logger.debug(
                "checking for next replays",
                binding_key=binding_key,
                todo_groups=len(binding_state.todo_groups),
            )
            found = await next_replays(binding_state, fetcher, caller_steam_id)
            if found is not None:
                lineage, replays = found
                logger.debug(
                    "found replays to fetch",
                    binding_key=binding_key,
                    parent_group_ids=[parent.id for parent in lineage],
                    num_replays=len(replays),
                )
                await ingest_replays(lineage, binding_indices[binding_key], replays, fetcher, emitter)
            else:
                logger.debug("no replays found under group", binding_key=binding_key)
            await emitter.commit(state)

    logger.info("sweep complete, finalizing", bindings=len(state.bindings))
    for _, binding_state in state.sorted_items():
        binding_state.finish_sweep()
    await emitter.commit(state)


__all__ = ["ParentGroup", "should_ingest", "next_replays", "ingest_replays", "run_sweep"]
