from __future__ import annotations

import asyncio
import base64
import json

from fastapi.testclient import TestClient
from loguru import logger

from engine.app.domain.errors import NetworkError
from engine.app.domain.models import ProcessingEvent, Transaction
from engine.app.domain.processing_config import ProcessingConfig
from engine.app.ports.network_client import NetworkClientError
from json_interface.app.routers.processing import stream_operation
from tests.fakes import EXPIRING_ABI, PLAIN_ABI, FakeClock, FakeNetwork, build_service

CONFIG = ProcessingConfig(transaction_wait_timeout_ms=10_000)


def _lines(response) -> list[dict]:  # noqa: ANN001
    return [json.loads(line) for line in response.text.splitlines() if line.strip()]


def _encode_params(abi=EXPIRING_ABI) -> dict:  # noqa: ANN001
    return {"abi": abi, "address": "0:abc", "function_name": "transfer", "input": {"to": "0:d", "amount": 1}}


def _message_payload(message_id: str = "msg-0", expiration_time_ms: int | None = None) -> dict:
    return {
        "destination": "0:abc",
        "body": base64.b64encode(b"payload").decode(),
        "message_id": message_id,
        "expiration_time_ms": expiration_time_ms,
    }


def test_live_is_always_200(test_app):
    r = TestClient(test_app).get("/health/live")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_ready_503_until_engine_is_wired(test_app):
    client = TestClient(test_app)
    assert client.get("/health/ready").status_code == 503

    clock = FakeClock()
    test_app.state.processing_service = build_service(FakeNetwork(clock), clock, CONFIG)
    assert client.get("/health/ready").status_code == 200


def test_process_message_503_when_engine_missing(test_app):
    r = TestClient(test_app).post("/processing/process_message", json={"message_encode_params": _encode_params()})
    assert r.status_code == 503


def test_process_message_streams_events_then_result(test_app):
    clock = FakeClock()
    network = FakeNetwork(clock, deliver_after_blocks=2)
    test_app.state.processing_service = build_service(network, clock, CONFIG)

    r = TestClient(test_app).post(
        "/processing/process_message",
        json={"message_encode_params": _encode_params(), "send_events": True},
    )

    assert r.status_code == 200
    assert r.headers["content-type"].startswith("application/x-ndjson")
    lines = _lines(r)
    assert [line["response_type"] for line in lines[:-1]] == [100] * (len(lines) - 1)
    assert [line["event"]["type"] for line in lines[:-1]] == [
        "WillFetchFirstBlock",
        "WillSend",
        "DidSend",
        "WillFetchNextBlock",
        "WillFetchNextBlock",
        "TransactionFound",
    ]
    assert lines[-1]["response_type"] == 0
    assert lines[-1]["result"]["message_id"] == "msg-0"
    assert lines[-1]["result"]["last_checked_block_ref"]["seq_no"] == 22


def test_process_message_without_events_streams_only_result(test_app):
    clock = FakeClock()
    test_app.state.processing_service = build_service(FakeNetwork(clock, deliver_after_blocks=1), clock, CONFIG)

    r = TestClient(test_app).post("/processing/process_message", json={"message_encode_params": _encode_params()})

    lines = _lines(r)
    assert len(lines) == 1
    assert lines[0]["response_type"] == 0


def test_process_message_timeout_streams_terminal_error(test_app):
    clock = FakeClock()
    test_app.state.processing_service = build_service(FakeNetwork(clock), clock, CONFIG)

    r = TestClient(test_app).post(
        "/processing/process_message",
        json={"message_encode_params": _encode_params(PLAIN_ABI)},
    )

    lines = _lines(r)
    assert lines[-1]["response_type"] == 1
    assert lines[-1]["error"]["code"] == "TRANSACTION_MISSING"


def test_send_message_returns_shard_block_ref(test_app):
    clock = FakeClock()
    network = FakeNetwork(clock)
    test_app.state.processing_service = build_service(network, clock, CONFIG)

    r = TestClient(test_app).post("/processing/send_message", json={"message": _message_payload()})

    lines = _lines(r)
    assert lines[-1] == {
        "response_type": 0,
        "result": {"shard_block_ref": {"shard": "0:8000000000000000", "block_id": "block-20", "seq_no": 20}},
    }
    assert network.posted[0].body == b"payload"


def test_send_message_network_failure_streams_error_and_event(test_app):
    clock = FakeClock()
    network = FakeNetwork(clock)
    network.post_error = NetworkClientError("refused")
    test_app.state.processing_service = build_service(network, clock, CONFIG)

    r = TestClient(test_app).post(
        "/processing/send_message",
        json={"message": _message_payload(), "send_events": True},
    )

    lines = _lines(r)
    assert lines[-2]["event"]["type"] == "SendFailed"
    assert lines[-1]["response_type"] == 1
    assert lines[-1]["error"]["code"] == "NETWORK_ERROR"


def test_send_message_rejects_non_base64_body(test_app):
    clock = FakeClock()
    test_app.state.processing_service = build_service(FakeNetwork(clock), clock, CONFIG)
    payload = _message_payload()
    payload["body"] = "***"

    r = TestClient(test_app).post("/processing/send_message", json={"message": payload})

    assert r.status_code == 422


def test_wait_for_transaction_resumes_from_reference(test_app):
    clock = FakeClock()
    network = FakeNetwork(clock)
    network.transactions[22] = [Transaction(id="tx-1", in_msg_id="msg-0")]
    test_app.state.processing_service = build_service(network, clock, CONFIG)

    r = TestClient(test_app).post(
        "/processing/wait_for_transaction",
        json={
            "message": _message_payload(),
            "shard_block_ref": {"shard": "0:8000000000000000", "block_id": "block-20"},
            "send_events": True,
        },
    )

    lines = _lines(r)
    assert lines[-1]["result"]["transaction"]["id"] == "tx-1"
    assert network.fetch_block_calls[0].block_id == "block-20"
    assert network.delivered_seq_nos == [21, 22]


def test_stream_closed_early_still_collects_operation_failure():
    warnings: list[str] = []
    handler_id = logger.add(lambda message: warnings.append(message.record["message"]), level="WARNING")

    async def scenario() -> list[bytes]:
        release = asyncio.Event()

        async def operation(sink):  # noqa: ANN001
            sink.emit(ProcessingEvent(type="WillSend", message_id="msg-0"))
            await release.wait()
            raise NetworkError("node down")

        stream = stream_operation("process_message", operation)
        first = await stream.__anext__()
        await stream.aclose()
        release.set()
        for _ in range(5):
            await asyncio.sleep(0)
        return [first]

    try:
        lines = asyncio.run(scenario())
    finally:
        logger.remove(handler_id)

    assert json.loads(lines[0])["event"]["type"] == "WillSend"
    assert any("failed after the client disconnected: node down" in text for text in warnings)
