"""source-ballchasing - incremental capture of ballchasing.com replays.

The connector crawls a creator's group hierarchy depth first, emits every
replay that is new since the last completed sweep, and checkpoints the
traversal frontier so an interrupted run resumes where it stopped.

Example:
    from source_ballchasing import Fetcher, State, next_replays

    async with Fetcher(auth_token) as fetcher:
        caller = (await fetcher.ping_server()).steam_id
        state = State.parse(previous_checkpoint)
        for key, binding in state.sorted_items():
            found = await next_replays(binding, fetcher, caller)
"""

from source_ballchasing.config import EndpointConfig, ResourceConfig, SourceSettings
from source_ballchasing.errors import ConfigError, FetchError, ProtocolError, SourceError
from source_ballchasing.fetcher import Fetcher
from source_ballchasing.state import BindingState, State, TodoGroup
from source_ballchasing.sweep import next_replays, run_sweep, should_ingest

__all__ = [
    "EndpointConfig",
    "ResourceConfig",
    "SourceSettings",
    "SourceError",
    "ConfigError",
    "FetchError",
    "ProtocolError",
    "Fetcher",
    "BindingState",
    "State",
    "TodoGroup",
    "next_replays",
    "run_sweep",
    "should_ingest",
]
