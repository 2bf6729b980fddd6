"""Message sender: records the destination shard's head block, then posts the message.

The returned shard block reference is the point monitoring resumes from, so it
is captured before the message can possibly land in a block.
"""
from __future__ import annotations

from typing import Any

from loguru import logger

from engine.app.constants import PROCESSING_EVENT
from engine.app.core import SERVICE_NAME
from engine.app.domain.errors import InvalidMessage, NetworkError
from engine.app.domain.events import emit_event
from engine.app.domain.models import Message, ShardBlockRef
from engine.app.ports.clock import Clock
from engine.app.ports.event_sink import EventSink
from engine.app.ports.network_client import NetworkClient, NetworkClientError


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class MessageSender:
    def __init__(self, network: NetworkClient, clock: Clock) -> None:
        self._network = network
        self._clock = clock

    async def send(self, message: Message, sink: EventSink, *, attempt: int = 0) -> ShardBlockRef:
        self._validate(message)
        message_id = message.message_id

        emit_event(sink, PROCESSING_EVENT.WILL_FETCH_FIRST_BLOCK, message_id=message_id, attempt=attempt)
        try:
            shard_block_ref = await self._network.find_last_shard_block(message.destination)
        except NetworkClientError as exc:
            error = NetworkError(
                f"fetch first block failed: {exc}",
                data={"message_id": message_id, "destination": message.destination},
            )
            emit_event(
                sink,
                PROCESSING_EVENT.FETCH_FIRST_BLOCK_FAILED,
                message_id=message_id,
                attempt=attempt,
                error=error.to_dict(),
            )
            raise error from exc

        emit_event(
            sink,
            PROCESSING_EVENT.WILL_SEND,
            message_id=message_id,
            shard_block_ref=shard_block_ref,
            attempt=attempt,
        )
        try:
            await self._network.post_message(message)
        except NetworkClientError as exc:
            error = NetworkError(
                f"send message failed: {exc}",
                data={"message_id": message_id, "shard_block_ref": shard_block_ref.to_dict()},
            )
            emit_event(
                sink,
                PROCESSING_EVENT.SEND_FAILED,
                message_id=message_id,
                shard_block_ref=shard_block_ref,
                attempt=attempt,
                error=error.to_dict(),
            )
            _log("message_send_failed", message_id=message_id, attempt=attempt, error=str(exc))
            raise error from exc

        emit_event(
            sink,
            PROCESSING_EVENT.DID_SEND,
            message_id=message_id,
            shard_block_ref=shard_block_ref,
            attempt=attempt,
        )
        _log(
            "message_sent",
            message_id=message_id,
            attempt=attempt,
            destination=message.destination,
            block_id=shard_block_ref.block_id,
        )
        return shard_block_ref

    def _validate(self, message: Message) -> None:
        if not message.body:
            raise InvalidMessage("message body is empty", data={"message_id": message.message_id})
        if not message.destination.strip():
            raise InvalidMessage("message has no destination address", data={"message_id": message.message_id})
        if not message.message_id.strip():
            raise InvalidMessage("message has no id")
        expiration = message.expiration_time_ms
        if expiration is not None and expiration <= self._clock.now_ms():
            raise InvalidMessage(
                f"message {message.message_id} already expired",
                data={"message_id": message.message_id, "expiration_time_ms": expiration},
            )
