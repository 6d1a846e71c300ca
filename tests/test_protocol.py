"""Tests for request parsing, response framing and acknowledgements."""

from __future__ import annotations

import io

import pytest

from source_ballchasing.errors import ProtocolError
from source_ballchasing.lib import json
from source_ballchasing.protocol import Acknowledgements, Emitter, Request, read_request
from source_ballchasing.state import BindingState, State


def _reader(*messages: object) -> io.BytesIO:
    return io.BytesIO(b"".join(json.dumps_line(message) for message in messages))


class TestReadRequest:
    @pytest.mark.asyncio
    async def test_spec(self):
        request = await read_request(_reader({"spec": {"connectorType": "IMAGE"}}))
        assert request.kind() == "spec"

    @pytest.mark.parametrize(
        "payload",
        [
            {"config_json": '{"authToken": "t"}'},
            {"configJson": '{"authToken": "t"}'},
            {"config": {"authToken": "t"}},
        ],
    )
    def test_json_fields_accept_every_spelling(self, payload):
        request = Request.model_validate({"discover": payload})
        assert json.loads(request.discover.config_json) == {"authToken": "t"}

    def test_validate_keeps_its_wire_name(self):
        request = Request.model_validate({"validate": {"name": "acme/source", "config": {}, "bindings": []}})
        assert request.kind() == "validate"
        assert request.validate_.name == "acme/source"

    def test_open_with_inline_state(self):
        request = Request.model_validate(
            {
                "open": {
                    "capture": {
                        "config": {"authToken": "t"},
                        "bindings": [{"resourceConfig": {"creatorId": "c"}, "collection": {"name": "replays"}}],
                    },
                    "state": {},
                }
            }
        )
        capture = request.open.capture
        assert json.loads(capture.bindings[0].resource_config_json) == {"creatorId": "c"}
        assert capture.bindings[0].collection.name == "replays"
        assert State.parse(request.open.state_json) == State()

    def test_missing_state_is_blank(self):
        request = Request.model_validate({"open": {"capture": {}}})
        assert request.open.state_json == ""

    @pytest.mark.asyncio
    async def test_eof_is_a_protocol_error(self):
        with pytest.raises(ProtocolError, match="EOF"):
            await read_request(io.BytesIO(b""))

    @pytest.mark.asyncio
    async def test_garbage_is_a_protocol_error(self):
        with pytest.raises(ProtocolError, match="deserializing request"):
            await read_request(io.BytesIO(b"not json\n"))

    @pytest.mark.asyncio
    async def test_unknown_message_kind(self):
        request = await read_request(_reader({"frobnicate": {}}))
        assert request.kind() == "unknown"


class TestEmitter:
    @pytest.mark.asyncio
    async def test_captured_line(self):
        buf = io.BytesIO()
        await Emitter(buf).emit_doc(2, {"id": "r1", "_meta": {"parent_groups": []}})

        line = buf.getvalue()
        assert line.endswith(b"\n")
        message = json.loads(line)
        assert list(message) == ["captured"]
        assert message["captured"]["binding"] == 2
        assert json.loads(message["captured"]["doc_json"]) == {"id": "r1", "_meta": {"parent_groups": []}}

    @pytest.mark.asyncio
    async def test_checkpoint_line(self):
        buf = io.BytesIO()
        emitter = Emitter(buf)
        state = State({"c;replays": BindingState(collection_name="replays", creator_id="c")})

        await emitter.commit(state)

        message = json.loads(buf.getvalue())
        assert message == {
            "checkpoint": {
                "state": {
                    "updated_json": '{"c;replays":{"collectionName":"replays","creatorId":"c"}}',
                    "merge_patch": False,
                }
            }
        }
        assert emitter.checkpoints == 1

    @pytest.mark.asyncio
    async def test_checkpoint_flushes_buffered_documents(self):
        class Recorder(io.BytesIO):
            flushes: list[int]

            def flush(self) -> None:
                self.flushes.append(len(self.getvalue().splitlines()))

        buf = Recorder()
        buf.flushes = []
        emitter = Emitter(buf)
        await emitter.emit_doc(0, {"id": "a"})
        await emitter.emit_doc(0, {"id": "b"})
        await emitter.commit(State())

        assert buf.flushes == [3]


class TestAcknowledgements:
    @pytest.mark.asyncio
    async def test_counts_acknowledged_checkpoints(self):
        acks = Acknowledgements(_reader({"acknowledge": {}}, {"acknowledge": {"checkpoints": 2}}))
        await acks.wait_for(3)
        assert acks.acknowledged == 3

    @pytest.mark.asyncio
    async def test_nothing_to_wait_for(self):
        acks = Acknowledgements(io.BytesIO(b""))
        await acks.wait_for(0)
        assert acks.acknowledged == 0

    @pytest.mark.asyncio
    async def test_other_message_is_a_protocol_error(self):
        acks = Acknowledgements(_reader({"spec": {}}))
        with pytest.raises(ProtocolError, match="expected Acknowledge message, got: spec"):
            await acks.next_ack()

    @pytest.mark.asyncio
    async def test_eof_before_all_acks(self):
        acks = Acknowledgements(_reader({"acknowledge": {}}))
        with pytest.raises(ProtocolError):
            await acks.wait_for(2)


class TestAcknowledgedEmitter:
    @pytest.mark.asyncio
    async def test_first_checkpoint_needs_no_acknowledgement(self):
        buf = io.BytesIO()
        acks = Acknowledgements(io.BytesIO(b""))
        await Emitter(buf, acks).commit(State())
        assert acks.acknowledged == 0
        assert len(buf.getvalue().splitlines()) == 1

    @pytest.mark.asyncio
    async def test_next_checkpoint_waits_for_acknowledgement(self):
        buf = io.BytesIO()
        acks = Acknowledgements(_reader({"acknowledge": {}}))
        emitter = Emitter(buf, acks)
        await emitter.commit(State())
        await emitter.commit(State())
        assert acks.acknowledged == 1
        assert emitter.checkpoints == 2

    @pytest.mark.asyncio
    async def test_other_message_blocks_next_checkpoint(self):
        buf = io.BytesIO()
        emitter = Emitter(buf, Acknowledgements(_reader({"open": {}})))
        await emitter.commit(State())
        await emitter.emit_doc(0, {"id": "r1"})

        with pytest.raises(ProtocolError, match="got: open"):
            await emitter.commit(State())
        assert emitter.checkpoints == 1
        assert sum(1 for line in buf.getvalue().splitlines() if b"checkpoint" in line) == 1
