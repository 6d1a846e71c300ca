"""The ``open`` phase: reconcile state, then sweep and emit."""

from __future__ import annotations

from typing import IO, Optional

import httpx

from .config import SourceSettings, parse_endpoint_config, parse_resource_config
from .errors import ConfigError, ProtocolError
from .fetcher import Fetcher
from .lib.log import get_logger
from .protocol import Acknowledgements, CaptureSpec, Emitter, OpenRequest, Opened, Response, write_response
from .state import BindingSpec, State, reconcile
from .sweep import run_sweep

logger = get_logger(__name__)


def binding_specs(capture: CaptureSpec) -> list[BindingSpec]:
    specs: list[BindingSpec] = []
    for index, binding in enumerate(capture.bindings):
        if binding.collection is None or not binding.collection.name:
            raise ConfigError(f"binding {index} is missing a collection name")
        resource_config = parse_resource_config(binding.resource_config_json)
        specs.append(BindingSpec(index=index, creator_id=resource_config.creator_id, collection_name=binding.collection.name))
    return specs


async def do_pull(
    open_request: OpenRequest,
    reader: IO[bytes],
    writer: IO[bytes],
    settings: SourceSettings,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> None:
    logger.info("starting to pull")
    capture = open_request.capture
    if capture is None:
        raise ProtocolError("open request is missing capture spec")
    config = parse_endpoint_config(capture.config_json)
    specs = binding_specs(capture)

    state = reconcile(State.parse(open_request.state_json), specs)
    binding_indices = {spec.key: spec.index for spec in specs}

    write_response(writer, Response(opened=Opened(explicit_acknowledgements=True)))

    acks = Acknowledgements(reader)
    emitter = Emitter(writer, acks)
    async with Fetcher(config.auth_token, settings, transport=transport) as fetcher:
        await run_sweep(binding_indices, state, fetcher, emitter)
    await acks.wait_for(emitter.checkpoints)
    logger.info("pull finished", checkpoints=emitter.checkpoints)


__all__ = ["do_pull", "binding_specs"]
