"""Unit tests for BlockMonitor polling, ordering and deadline handling."""
from __future__ import annotations

import asyncio

import pytest

from engine.app.constants import PROCESSING_EVENT
from engine.app.domain.block_monitor import BlockMonitor
from engine.app.domain.deadline import ExpirationBased, WaitOnly
from engine.app.domain.errors import MessageExpired, NetworkError, TransactionMissing
from engine.app.domain.models import Block, Message, Transaction
from engine.app.domain.processing_state import ProcessingState
from engine.app.domain.transaction_locator import TransactionLocator
from engine.app.ports.network_client import NetworkClientError
from tests.fakes import SHARD, FakeAbiCodec, FakeClock, FakeNetwork, RecordingSink, ref_at


def _monitor(network: FakeNetwork, clock: FakeClock) -> BlockMonitor:
    return BlockMonitor(network, TransactionLocator(FakeAbiCodec()), clock, poll_interval_ms=1_000)


def _state(start_seq_no: int = 20, *, with_seq_no: bool = True) -> ProcessingState:
    return ProcessingState(
        current_message=Message(destination="0:abc", body=b"x", message_id="msg-0"),
        shard_block_ref_at_send=ref_at(start_seq_no, with_seq_no=with_seq_no),
    )


def _place(network: FakeNetwork, seq_no: int, message_id: str = "msg-0") -> None:
    network.transactions.setdefault(seq_no, []).append(Transaction(id=f"tx-{message_id}", in_msg_id=message_id))


def test_finds_transaction_in_third_block_and_records_last_checked():
    clock = FakeClock()
    network = FakeNetwork(clock)
    _place(network, 23)
    state = _state()
    sink = RecordingSink()

    located = asyncio.run(_monitor(network, clock).wait(state, WaitOnly(100_000), 130_000, sink))

    assert located.transaction.id == "tx-msg-0"
    assert network.delivered_seq_nos == [21, 22, 23]
    assert state.last_checked_block_ref == ref_at(23)
    assert sink.types == [PROCESSING_EVENT.WILL_FETCH_NEXT_BLOCK] * 3 + [PROCESSING_EVENT.TRANSACTION_FOUND]
    assert sink.events[-1].details == {"transaction_id": "tx-msg-0"}


def test_wait_only_deadline_reached_raises_transaction_missing():
    clock = FakeClock()
    network = FakeNetwork(clock)
    state = _state()

    with pytest.raises(TransactionMissing) as exc_info:
        asyncio.run(_monitor(network, clock).wait(state, WaitOnly(100_000), 130_000, RecordingSink()))

    # block 26 is generated at 130_000, the first block at or past the deadline
    assert network.delivered_seq_nos == [21, 22, 23, 24, 25, 26]
    assert exc_info.value.data["deadline_ms"] == 130_000


def test_expiration_deadline_reached_raises_message_expired_and_emits_event():
    clock = FakeClock()
    network = FakeNetwork(clock)
    sink = RecordingSink()

    with pytest.raises(MessageExpired):
        asyncio.run(_monitor(network, clock).wait(_state(), ExpirationBased(140_000), 150_000, sink))

    assert sink.types[-1] == PROCESSING_EVENT.MESSAGE_EXPIRED
    assert network.delivered_seq_nos[-1] == 30


def test_transaction_in_deadline_block_is_still_found():
    clock = FakeClock()
    network = FakeNetwork(clock)
    _place(network, 26)

    located = asyncio.run(_monitor(network, clock).wait(_state(), WaitOnly(100_000), 130_000, RecordingSink()))

    assert located.block_ref == ref_at(26)


def test_not_yet_produced_blocks_are_polled_until_clock_passes_deadline():
    clock = FakeClock()
    network = FakeNetwork(clock, gated=True)

    with pytest.raises(TransactionMissing):
        asyncio.run(_monitor(network, clock).wait(_state(), WaitOnly(100_000), 103_000, RecordingSink()))

    assert clock.sleeps == [1_000] * 4
    assert clock.now == 104_000
    assert network.delivered_seq_nos == []


def test_gated_blocks_are_inspected_in_order_as_time_passes():
    clock = FakeClock()
    network = FakeNetwork(clock, gated=True)
    _place(network, 22)
    sink = RecordingSink()

    located = asyncio.run(_monitor(network, clock).wait(_state(), WaitOnly(100_000), 160_000, sink))

    assert located.block_ref == ref_at(22)
    assert network.delivered_seq_nos == [21, 22]
    assert clock.now == 110_000


def test_never_inspects_blocks_at_or_before_start_reference():
    clock = FakeClock()
    network = FakeNetwork(clock)
    _place(network, 19)
    _place(network, 27)

    located = asyncio.run(_monitor(network, clock).wait(_state(25), WaitOnly(100_000), 200_000, RecordingSink()))

    assert located.block_ref == ref_at(27)
    assert min(network.delivered_seq_nos) == 26
    assert len(network.delivered_seq_nos) == len(set(network.delivered_seq_nos))


def test_reference_without_seq_no_is_resolved_through_fetch_block():
    clock = FakeClock()
    network = FakeNetwork(clock)
    _place(network, 22)

    located = asyncio.run(
        _monitor(network, clock).wait(_state(20, with_seq_no=False), WaitOnly(100_000), 200_000, RecordingSink())
    )

    assert len(network.fetch_block_calls) == 1
    assert network.delivered_seq_nos == [21, 22]
    assert located.block_ref == ref_at(22)


def test_backward_block_is_rejected_as_network_error():
    clock = FakeClock()
    network = FakeNetwork(clock)
    network.override_next = Block(id="block-20", shard=SHARD, seq_no=20, gen_utime_ms=100_000)

    with pytest.raises(NetworkError, match="invalid block"):
        asyncio.run(_monitor(network, clock).wait(_state(), WaitOnly(100_000), 200_000, RecordingSink()))


def test_fetch_failure_surfaces_network_error_and_event():
    clock = FakeClock()
    network = FakeNetwork(clock)
    network.fetch_error = NetworkClientError("connection reset")
    sink = RecordingSink()

    with pytest.raises(NetworkError, match="connection reset"):
        asyncio.run(_monitor(network, clock).wait(_state(), WaitOnly(100_000), 200_000, sink))

    assert sink.types == [PROCESSING_EVENT.WILL_FETCH_NEXT_BLOCK, PROCESSING_EVENT.FETCH_NEXT_BLOCK_FAILED]
    assert sink.events[-1].error["code"] == "NETWORK_ERROR"
