"""Block monitor: polls a shard block by block until the awaited transaction shows up.

Polling starts strictly after the run's monitoring start reference and only
moves forward. Each fetched block is checked for the transaction first; the
run then stops once a block's generation time reaches the deadline, or once
the clock passes the deadline while no new block is being produced.
"""
from __future__ import annotations

from typing import Any

from loguru import logger

from engine.app.constants import PROCESSING_EVENT
from engine.app.core import SERVICE_NAME
from engine.app.domain.deadline import DeadlineStrategy, ExpirationBased
from engine.app.domain.errors import MessageExpired, NetworkError, ProcessingError, TransactionMissing
from engine.app.domain.events import emit_event
from engine.app.domain.models import Block, LocatedTransaction, ShardBlockRef
from engine.app.domain.processing_state import ProcessingState
from engine.app.domain.transaction_locator import TransactionLocator
from engine.app.ports.clock import Clock
from engine.app.ports.event_sink import EventSink
from engine.app.ports.network_client import NetworkClient, NetworkClientError


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class BlockMonitor:
    def __init__(
        self,
        network: NetworkClient,
        locator: TransactionLocator,
        clock: Clock,
        *,
        poll_interval_ms: int,
    ) -> None:
        self._network = network
        self._locator = locator
        self._clock = clock
        self._poll_interval_ms = max(int(poll_interval_ms), 1)

    async def wait(
        self,
        state: ProcessingState,
        strategy: DeadlineStrategy,
        deadline_ms: int,
        sink: EventSink,
        *,
        abi: dict[str, Any] | None = None,
    ) -> LocatedTransaction:
        """Return the located transaction or raise MessageExpired / TransactionMissing / NetworkError."""
        message_id = state.current_message.message_id
        ref = await self._resolve(state.monitoring_start())
        _log(
            "monitoring_started",
            message_id=message_id,
            attempt=state.attempt_count,
            block_id=ref.block_id,
            deadline_ms=deadline_ms,
        )

        while True:
            emit_event(
                sink,
                PROCESSING_EVENT.WILL_FETCH_NEXT_BLOCK,
                message_id=message_id,
                shard_block_ref=ref,
                attempt=state.attempt_count,
            )
            block = await self._fetch_next(ref, state, sink)

            if block is None:
                if self._clock.now_ms() > deadline_ms:
                    raise self._deadline_error(state, strategy, deadline_ms, ref, sink)
                await self._clock.sleep_ms(self._poll_interval_ms)
                continue

            self._ensure_forward(ref, block)
            state.last_checked_block_ref = block.ref
            ref = block.ref

            located = self._locator.locate(block, message_id, abi)
            if located is not None:
                emit_event(
                    sink,
                    PROCESSING_EVENT.TRANSACTION_FOUND,
                    message_id=message_id,
                    shard_block_ref=ref,
                    attempt=state.attempt_count,
                    details={"transaction_id": located.transaction.id},
                )
                _log(
                    "transaction_found",
                    message_id=message_id,
                    attempt=state.attempt_count,
                    block_id=ref.block_id,
                    transaction_id=located.transaction.id,
                )
                return located

            if block.gen_utime_ms >= deadline_ms:
                raise self._deadline_error(state, strategy, deadline_ms, ref, sink)

    async def _resolve(self, ref: ShardBlockRef) -> ShardBlockRef:
        if ref.seq_no is not None:
            return ref
        try:
            block = await self._network.fetch_block(ref)
        except NetworkClientError as exc:
            raise NetworkError(
                f"cannot resolve shard block {ref.block_id}: {exc}",
                data={"shard_block_ref": ref.to_dict()},
            ) from exc
        return block.ref

    async def _fetch_next(
        self,
        ref: ShardBlockRef,
        state: ProcessingState,
        sink: EventSink,
    ) -> Block | None:
        try:
            return await self._network.fetch_next_block(ref)
        except NetworkClientError as exc:
            error = NetworkError(
                f"fetch next block failed: {exc}",
                data={"shard_block_ref": ref.to_dict()},
            )
            emit_event(
                sink,
                PROCESSING_EVENT.FETCH_NEXT_BLOCK_FAILED,
                message_id=state.current_message.message_id,
                shard_block_ref=ref,
                attempt=state.attempt_count,
                error=error.to_dict(),
            )
            raise error from exc

    @staticmethod
    def _ensure_forward(ref: ShardBlockRef, block: Block) -> None:
        if block.shard != ref.shard or ref.seq_no is None or block.seq_no <= ref.seq_no:
            raise NetworkError(
                f"invalid block received after {ref.block_id}: {block.id} (seq_no {block.seq_no})",
                data={"shard_block_ref": ref.to_dict(), "block_id": block.id},
            )

    def _deadline_error(
        self,
        state: ProcessingState,
        strategy: DeadlineStrategy,
        deadline_ms: int,
        ref: ShardBlockRef,
        sink: EventSink,
    ) -> ProcessingError:
        message_id = state.current_message.message_id
        data = {
            "message_id": message_id,
            "deadline_ms": deadline_ms,
            "last_checked_block_ref": ref.to_dict(),
        }
        if isinstance(strategy, ExpirationBased):
            emit_event(
                sink,
                PROCESSING_EVENT.MESSAGE_EXPIRED,
                message_id=message_id,
                shard_block_ref=ref,
                attempt=state.attempt_count,
            )
            _log("message_expired", message_id=message_id, attempt=state.attempt_count, deadline_ms=deadline_ms)
            return MessageExpired(f"message {message_id} expired", data=data)

        _log("transaction_wait_timeout", message_id=message_id, deadline_ms=deadline_ms)
        return TransactionMissing(
            f"no transaction for message {message_id} before block time {deadline_ms}",
            data=data,
        )
