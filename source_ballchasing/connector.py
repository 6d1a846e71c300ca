"""Request dispatch for the capture connector.

Every invocation handles exactly one request: ``spec``, ``discover``,
``validate`` and ``apply`` answer with a single response, while ``open``
starts the long-running pull.
"""

from __future__ import annotations

from typing import IO, Any, Optional

import httpx

from .config import (
    ResourceConfig,
    SourceSettings,
    config_schema,
    parse_endpoint_config,
    parse_resource_config,
    resource_config_schema,
)
from .errors import ProtocolError
from .fetcher import Fetcher
from .lib import json
from .lib.log import get_logger
from .protocol import (
    Applied,
    Discovered,
    DiscoveredBinding,
    DiscoverRequest,
    Response,
    SpecResponse,
    Validated,
    ValidatedBinding,
    ValidateRequest,
    read_request,
    write_response,
)
from .pull import do_pull

logger = get_logger(__name__)

DOCUMENTATION_URL = "https://go.estuary.dev/placeholder"
RECOMMENDED_COLLECTION = "replays"


def replay_document_schema() -> dict[str, Any]:
    return {
        "type": "object",
        "x-infer-schema": True,
        "properties": {
            "_meta": {
                "type": "object",
                "properties": {
                    "parent_groups": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "id": {"type": "string"},
                                "name": {"type": "string"},
                            },
                            "required": ["name", "id"],
                        },
                    }
                },
            },
            "id": {"type": "string"},
        },
        "required": ["_meta", "id"],
    }


async def run_connector(
    reader: IO[bytes],
    writer: IO[bytes],
    settings: SourceSettings,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> None:
    request = await read_request(reader)
    logger.debug("received request", kind=request.kind())
    if request.spec is not None:
        return do_spec(writer)
    if request.discover is not None:
        return await do_discover(request.discover, writer, settings, transport=transport)
    if request.validate_ is not None:
        return await do_validate(request.validate_, writer, settings, transport=transport)
    if request.apply is not None:
        # There's nothing to apply
        return write_response(writer, Response(applied=Applied(action_description="")))
    if request.open is not None:
        return await do_pull(request.open, reader, writer, settings, transport=transport)
    raise ProtocolError(f"invalid request, expected spec|discover|validate|apply|open, got: {request.kind()}")


def do_spec(writer: IO[bytes]) -> None:
    write_response(
        writer,
        Response(
            spec=SpecResponse(
                config_schema_json=json.dumps(config_schema()),
                resource_config_schema_json=json.dumps(resource_config_schema()),
                documentation_url=DOCUMENTATION_URL,
                resource_path_pointers=["/creatorId"],
            )
        ),
    )


async def do_discover(
    request: DiscoverRequest,
    writer: IO[bytes],
    settings: SourceSettings,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> None:
    config = parse_endpoint_config(request.config_json)
    async with Fetcher(config.auth_token, settings, transport=transport) as fetcher:
        ping = await fetcher.ping_server()

    binding = DiscoveredBinding(
        recommended_name=RECOMMENDED_COLLECTION,
        resource_config_json=ResourceConfig(creator_id=ping.steam_id).model_dump_json(by_alias=True),
        document_schema_json=json.dumps(replay_document_schema()),
        key=["/id"],
    )
    write_response(writer, Response(discovered=Discovered(bindings=[binding])))


async def do_validate(
    request: ValidateRequest,
    writer: IO[bytes],
    settings: SourceSettings,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> None:
    config = parse_endpoint_config(request.config_json)
    resource_configs = [parse_resource_config(binding.resource_config_json) for binding in request.bindings]

    output: list[ValidatedBinding] = []
    async with Fetcher(config.auth_token, settings, transport=transport) as fetcher:
        ping = await fetcher.ping_server()
        logger.info("successfully pinged the ballchasing API", steam_id=ping.steam_id)
        for resource_config in resource_configs:
            groups = await fetcher.fetch_creator_groups(resource_config.creator_id)
            logger.info("fetched groups for creator", creator_id=resource_config.creator_id, num_groups=len(groups))
            output.append(ValidatedBinding(resource_path=[resource_config.creator_id]))

    write_response(writer, Response(validated=Validated(bindings=output)))


__all__ = ["run_connector", "do_spec", "do_discover", "do_validate", "replay_document_schema"]
