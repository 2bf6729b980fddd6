from __future__ import annotations

from typing import Any

from loguru import logger

from engine.app.constants import PROCESSING_STATE
from engine.app.core import SERVICE_NAME
from engine.app.domain.block_monitor import BlockMonitor
from engine.app.domain.deadline import (
    DeadlineStrategy,
    compute_deadline,
    expiration_timeouts,
    select_strategy,
)
from engine.app.domain.errors import InvalidMessage, MessageExpired, ProcessingError
from engine.app.domain.events import NULL_EVENT_SINK
from engine.app.domain.message_sender import MessageSender
from engine.app.domain.models import (
    LocatedTransaction,
    Message,
    ProcessingResult,
    ProcessMessageParams,
    ShardBlockRef,
)
from engine.app.domain.processing_config import ProcessingConfig
from engine.app.domain.processing_state import ProcessingState
from engine.app.domain.transaction_locator import TransactionLocator
from engine.app.ports.abi import AbiCodec, MessageEncoder
from engine.app.ports.clock import Clock
from engine.app.ports.event_sink import EventSink
from engine.app.ports.network_client import NetworkClient


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class ProcessingService:
    """
    Sends external messages and waits for their transactions; retries expiring messages.

    Strategy is chosen once per logical call from the ABI:
    - ABI declares the `expire` header: each attempt encodes a message that expires
      after base_expiration_timeout_ms * growth_factor ** attempt. When monitoring
      hits MessageExpired the message is re-encoded (new id) and resent, up to
      retry_limit resends. With retry_limit=3 there are at most 4 submissions,
      expiring after 40000, 60000, 90000 and 135000 ms with the defaults. A
      reading where retry_limit counts submissions would stop after the third.
    - Otherwise: one submission, wait transaction_wait_timeout_ms, then
      TransactionMissing. Nothing is resent since an earlier copy could still land.

    NetworkError and InvalidMessage are never retried.
    """

    def __init__(
        self,
        network: NetworkClient,
        abi_codec: AbiCodec,
        encoder: MessageEncoder,
        clock: Clock,
        config: ProcessingConfig | None = None,
    ) -> None:
        self._abi_codec = abi_codec
        self._encoder = encoder
        self._clock = clock
        self._config = config or ProcessingConfig()
        self._sender = MessageSender(network, clock)
        self._monitor = BlockMonitor(
            network,
            TransactionLocator(abi_codec),
            clock,
            poll_interval_ms=self._config.block_poll_interval_ms,
        )

    @property
    def config(self) -> ProcessingConfig:
        return self._config

    async def process_message(
        self,
        params: ProcessMessageParams,
        event_sink: EventSink | None = None,
    ) -> ProcessingResult:
        sink = self._sink_for(params.send_events, event_sink)
        encode_params = params.encode_params
        abi = encode_params.abi
        expiring = self._abi_codec.has_expiration_pragma(abi)
        timeouts = expiration_timeouts(
            self._config.base_expiration_timeout_ms,
            self._config.expiration_growth_factor,
            self._config.retry_limit,
        )

        message = self._encode(params, next(timeouts) if expiring else None)
        state = ProcessingState(current_message=message)
        _log(
            "processing_started",
            message_id=message.message_id,
            destination=message.destination,
            expiring=expiring,
            retry_limit=self._config.retry_limit if expiring else 0,
        )

        while True:
            state.transition(PROCESSING_STATE.SENDING)
            state.record_submission(message)
            try:
                state.shard_block_ref_at_send = await self._sender.send(
                    message, sink, attempt=state.attempt_count
                )
            except ProcessingError as exc:
                state.transition(PROCESSING_STATE.FAILED)
                self._log_failed(state, exc)
                raise

            state.transition(PROCESSING_STATE.MONITORING)
            strategy = select_strategy(
                supports_expiration=expiring,
                expiration_time_ms=message.expiration_time_ms,
                now_ms=self._clock.now_ms(),
            )
            try:
                located = await self._monitor_attempt(state, strategy, sink, abi)
            except MessageExpired as exc:
                state.transition(PROCESSING_STATE.EXPIRED)
                if not expiring or state.attempt_count >= self._config.retry_limit:
                    state.transition(PROCESSING_STATE.FAILED)
                    exc.data["attempts"] = state.attempt_count + 1
                    exc.data["message_ids"] = list(state.submitted_message_ids)
                    self._log_failed(state, exc)
                    raise
                state.attempt_count += 1
                try:
                    message = self._encode(params, next(timeouts))
                except ProcessingError as encode_exc:
                    state.transition(PROCESSING_STATE.FAILED)
                    self._log_failed(state, encode_exc)
                    raise
                _log(
                    "message_retry_scheduled",
                    expired_message_id=exc.data.get("message_id"),
                    message_id=message.message_id,
                    attempt=state.attempt_count,
                    expiration_time_ms=message.expiration_time_ms,
                )
                continue
            except ProcessingError as exc:
                state.transition(PROCESSING_STATE.FAILED)
                self._log_failed(state, exc)
                raise

            state.transition(PROCESSING_STATE.SUCCEEDED)
            return self._result(state, located)

    async def send_message(
        self,
        message: Message,
        *,
        send_events: bool = False,
        event_sink: EventSink | None = None,
    ) -> ShardBlockRef:
        """Submit only. The returned reference is what wait_for_transaction resumes from."""
        sink = self._sink_for(send_events, event_sink)
        return await self._sender.send(message, sink)

    async def wait_for_transaction(
        self,
        message: Message,
        shard_block_ref: ShardBlockRef,
        *,
        abi: dict[str, Any] | None = None,
        send_events: bool = False,
        event_sink: EventSink | None = None,
    ) -> ProcessingResult:
        """Monitor only, starting strictly after shard_block_ref. Never resends."""
        sink = self._sink_for(send_events, event_sink)
        state = ProcessingState(current_message=message, shard_block_ref_at_send=shard_block_ref)
        strategy = select_strategy(
            supports_expiration=self._abi_codec.has_expiration_pragma(abi),
            expiration_time_ms=message.expiration_time_ms,
            now_ms=self._clock.now_ms(),
        )
        state.transition(PROCESSING_STATE.MONITORING)
        try:
            located = await self._monitor_attempt(state, strategy, sink, abi)
        except ProcessingError as exc:
            if isinstance(exc, MessageExpired):
                state.transition(PROCESSING_STATE.EXPIRED)
            state.transition(PROCESSING_STATE.FAILED)
            self._log_failed(state, exc)
            raise

        state.transition(PROCESSING_STATE.SUCCEEDED)
        return self._result(state, located)

    async def _monitor_attempt(
        self,
        state: ProcessingState,
        strategy: DeadlineStrategy,
        sink: EventSink,
        abi: dict[str, Any] | None,
    ) -> LocatedTransaction:
        deadline_ms = compute_deadline(strategy, self._config.transaction_wait_timeout_ms)
        return await self._monitor.wait(state, strategy, deadline_ms, sink, abi=abi)

    def _encode(self, params: ProcessMessageParams, timeout_ms: int | None) -> Message:
        expiration_time_ms = self._clock.now_ms() + timeout_ms if timeout_ms is not None else None
        encode_params = params.encode_params
        message = self._encoder.encode(encode_params.abi, encode_params, expiration_time_ms)
        if not message.message_id:
            raise InvalidMessage("encoder produced a message without id")
        return message

    def _result(self, state: ProcessingState, located: LocatedTransaction) -> ProcessingResult:
        result = ProcessingResult(
            transaction=located.transaction,
            message_id=state.current_message.message_id,
            attempts=state.attempt_count + 1,
            last_checked_block_ref=located.block_ref,
            decoded=located.decoded,
            output=located.output,
        )
        _log(
            "processing_succeeded",
            message_id=result.message_id,
            transaction_id=result.transaction.id,
            attempts=result.attempts,
            aborted=result.transaction.aborted,
        )
        return result

    @staticmethod
    def _sink_for(send_events: bool, event_sink: EventSink | None) -> EventSink:
        if send_events and event_sink is not None:
            return event_sink
        return NULL_EVENT_SINK

    @staticmethod
    def _log_failed(state: ProcessingState, exc: ProcessingError) -> None:
        _log(
            "processing_failed",
            message_id=state.current_message.message_id,
            attempt=state.attempt_count,
            status=state.status,
            code=exc.code,
            error=exc.message,
        )
