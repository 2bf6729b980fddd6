import base64
import binascii
from typing import Any

from pydantic import BaseModel, Field, field_validator

from engine.app.domain.models import Message, MessageEncodeParams, ProcessMessageParams, ShardBlockRef


class MessageEncodeParamsPayload(BaseModel):
    abi: dict[str, Any] | None = None
    address: str
    function_name: str
    input: dict[str, Any] = Field(default_factory=dict)


class ProcessMessageRequest(BaseModel):
    message_encode_params: MessageEncodeParamsPayload
    send_events: bool = False

    def to_params(self) -> ProcessMessageParams:
        encode = self.message_encode_params
        return ProcessMessageParams(
            encode_params=MessageEncodeParams(
                abi=encode.abi,
                address=encode.address,
                function_name=encode.function_name,
                input=dict(encode.input),
            ),
            send_events=self.send_events,
        )


class MessagePayload(BaseModel):
    destination: str
    body: str
    message_id: str
    expiration_time_ms: int | None = None

    @field_validator("body")
    @classmethod
    def _base64_body(cls, value: str) -> str:
        try:
            base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("body must be base64") from exc
        return value

    def to_message(self) -> Message:
        return Message.from_dict(self.model_dump())


class ShardBlockRefPayload(BaseModel):
    shard: str
    block_id: str
    seq_no: int | None = None

    def to_ref(self) -> ShardBlockRef:
        return ShardBlockRef.from_dict(self.model_dump())


class SendMessageRequest(BaseModel):
    message: MessagePayload
    send_events: bool = False


class WaitForTransactionRequest(BaseModel):
    message: MessagePayload
    shard_block_ref: ShardBlockRefPayload
    abi: dict[str, Any] | None = None
    send_events: bool = False
