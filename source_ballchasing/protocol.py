"""Newline-delimited JSON capture protocol.

Requests arrive on stdin and responses leave on stdout, one JSON value per
line. Incoming JSON-valued fields (``config_json`` and friends) are accepted
either as encoded strings or as inline objects, and under either their proto
or camelCase names. Outgoing messages use the proto field names.
"""

from __future__ import annotations

import asyncio
from typing import IO, Annotated, Any, Optional

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field, ValidationError

from .errors import ProtocolError
from .lib import json
from .lib.log import get_logger
from .state import State

logger = get_logger(__name__)

PROTOCOL_VERSION = 3032023


def _as_json_text(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return value


JsonText = Annotated[str, BeforeValidator(_as_json_text)]


def _json_field(name: str, camel: str, inline: str) -> Any:
    return Field(default="", validation_alias=AliasChoices(name, camel, inline))


class _Incoming(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class CollectionSpec(_Incoming):
    name: str


class CaptureBinding(_Incoming):
    resource_config_json: JsonText = _json_field("resource_config_json", "resourceConfigJson", "resourceConfig")
    collection: Optional[CollectionSpec] = None


class CaptureSpec(_Incoming):
    name: Optional[str] = None
    config_json: JsonText = _json_field("config_json", "configJson", "config")
    bindings: list[CaptureBinding] = Field(default_factory=list)


class SpecRequest(_Incoming):
    pass


class DiscoverRequest(_Incoming):
    config_json: JsonText = _json_field("config_json", "configJson", "config")


class ValidateRequest(_Incoming):
    name: Optional[str] = None
    config_json: JsonText = _json_field("config_json", "configJson", "config")
    bindings: list[CaptureBinding] = Field(default_factory=list)


class ApplyRequest(_Incoming):
    pass


class OpenRequest(_Incoming):
    capture: Optional[CaptureSpec] = None
    state_json: JsonText = _json_field("state_json", "stateJson", "state")


class Acknowledge(_Incoming):
    checkpoints: int = Field(default=1, ge=0)


class Request(_Incoming):
    spec: Optional[SpecRequest] = None
    discover: Optional[DiscoverRequest] = None
    validate_: Optional[ValidateRequest] = Field(default=None, alias="validate")
    apply: Optional[ApplyRequest] = None
    open: Optional[OpenRequest] = None
    acknowledge: Optional[Acknowledge] = None

    def kind(self) -> str:
        for name in ("spec", "discover", "validate_", "apply", "open", "acknowledge"):
            if getattr(self, name) is not None:
                return name.rstrip("_")
        return "unknown"


class SpecResponse(BaseModel):
    protocol: int = PROTOCOL_VERSION
    config_schema_json: str
    resource_config_schema_json: str
    documentation_url: str
    resource_path_pointers: list[str]


class DiscoveredBinding(BaseModel):
    recommended_name: str
    resource_config_json: str
    document_schema_json: str
    key: list[str]
    disable: bool = False


class Discovered(BaseModel):
    bindings: list[DiscoveredBinding]


class ValidatedBinding(BaseModel):
    resource_path: list[str]


class Validated(BaseModel):
    bindings: list[ValidatedBinding]


class Applied(BaseModel):
    action_description: str = ""


class Opened(BaseModel):
    explicit_acknowledgements: bool


class Captured(BaseModel):
    binding: int
    doc_json: str


class ConnectorState(BaseModel):
    updated_json: str
    merge_patch: bool = False


class Checkpoint(BaseModel):
    state: ConnectorState


class Response(BaseModel):
    spec: Optional[SpecResponse] = None
    discovered: Optional[Discovered] = None
    validated: Optional[Validated] = None
    applied: Optional[Applied] = None
    opened: Optional[Opened] = None
    captured: Optional[Captured] = None
    checkpoint: Optional[Checkpoint] = None


async def read_request(reader: IO[bytes]) -> Request:
    line = await asyncio.to_thread(reader.readline)
    if not line.strip():
        raise ProtocolError("unexpected EOF reading request from stdin")
    try:
        return Request.model_validate(json.loads(line))
    except (json.JSONDecodeError, ValidationError) as exc:
        raise ProtocolError(f"deserializing request: {exc}") from exc


def write_response(writer: IO[bytes], response: Response, *, flush: bool = True) -> None:
    """Write one response line. Flushing makes sure the line is complete even if the
    process exits right after this call returns."""
    writer.write(json.dumps_line(response.model_dump(exclude_none=True)))
    if flush:
        writer.flush()


class Emitter:
    """Writes captured documents and state checkpoints.

    With ``acks`` given, every checkpoint before this one must have been
    acknowledged by the host before the next checkpoint is written, so a
    host that stops acknowledging (or sends something else) is caught at the
    next step boundary rather than at exit.
    """

    def __init__(self, writer: IO[bytes], acks: Optional[Acknowledgements] = None) -> None:
        self._writer = writer
        self._acks = acks
        self.checkpoints = 0

    async def emit_doc(self, binding: int, doc: dict[str, Any]) -> None:
        # Documents are not flushed individually; the checkpoint that follows
        # them flushes the whole batch.
        response = Response(captured=Captured(binding=binding, doc_json=json.dumps(doc)))
        write_response(self._writer, response, flush=False)

    async def commit(self, state: State, merge_patch: bool = False) -> None:
        if self._acks is not None:
            await self._acks.wait_for(self.checkpoints)
        response = Response(
            checkpoint=Checkpoint(state=ConnectorState(updated_json=state.to_json(), merge_patch=merge_patch))
        )
        write_response(self._writer, response)
        self.checkpoints += 1


class Acknowledgements:
    """Reads the host's acknowledgements of committed checkpoints."""

    def __init__(self, reader: IO[bytes]) -> None:
        self._reader = reader
        self.acknowledged = 0

    async def next_ack(self) -> int:
        request = await read_request(self._reader)
        if request.acknowledge is None:
            raise ProtocolError(f"expected Acknowledge message, got: {request.kind()}")
        self.acknowledged += request.acknowledge.checkpoints
        return request.acknowledge.checkpoints

    async def wait_for(self, checkpoints: int) -> None:
        while self.acknowledged < checkpoints:
            await self.next_ack()
        logger.debug("checkpoints acknowledged", acknowledged=self.acknowledged, committed=checkpoints)


__all__ = [
    "Request",
    "Response",
    "Emitter",
    "Acknowledgements",
    "read_request",
    "write_response",
    "PROTOCOL_VERSION",
]
