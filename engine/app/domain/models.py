"""Domain models."""
from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ShardBlockRef:
    """Position in a shard's block sequence; the resumption point for polling.

    ``seq_no`` may be unknown when the reference comes from a caller; the
    block monitor resolves it through the network before polling.
    """

    shard: str
    block_id: str
    seq_no: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"shard": self.shard, "block_id": self.block_id, "seq_no": self.seq_no}

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "ShardBlockRef":
        seq_no = data.get("seq_no")
        return ShardBlockRef(
            shard=str(data["shard"]),
            block_id=str(data["block_id"]),
            seq_no=int(seq_no) if seq_no is not None else None,
        )


@dataclass(frozen=True)
class MessageEncodeParams:
    """What the caller wants to call; the encoder turns this into a Message."""

    abi: dict[str, Any] | None
    address: str
    function_name: str
    input: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ProcessMessageParams:
    encode_params: MessageEncodeParams
    send_events: bool = False


@dataclass(frozen=True)
class Message:
    """Encoded external message. A retry produces a new Message, never a mutated one."""

    destination: str
    body: bytes
    message_id: str
    expiration_time_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "destination": self.destination,
            "body": base64.b64encode(self.body).decode("ascii"),
            "message_id": self.message_id,
            "expiration_time_ms": self.expiration_time_ms,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Message":
        expiration = data.get("expiration_time_ms")
        return Message(
            destination=str(data.get("destination", "")),
            body=base64.b64decode(data.get("body", "")),
            message_id=str(data.get("message_id", "")),
            expiration_time_ms=int(expiration) if expiration is not None else None,
        )


@dataclass(frozen=True)
class Transaction:
    """Ledger-recorded effect of executing an inbound message."""

    id: str
    in_msg_id: str
    aborted: bool = False
    out_messages: tuple[bytes, ...] = ()

    @property
    def success(self) -> bool:
        return not self.aborted

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "in_msg_id": self.in_msg_id,
            "aborted": self.aborted,
            "out_messages": [base64.b64encode(body).decode("ascii") for body in self.out_messages],
        }


@dataclass(frozen=True)
class Block:
    id: str
    shard: str
    seq_no: int
    gen_utime_ms: int
    transactions: tuple[Transaction, ...] = ()

    @property
    def ref(self) -> ShardBlockRef:
        return ShardBlockRef(shard=self.shard, block_id=self.id, seq_no=self.seq_no)


@dataclass(frozen=True)
class DecodedBody:
    """Decode outcome for one output message: either a value or a serialised DecodingError."""

    index: int
    value: Any = None
    error: dict[str, Any] | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "value": self.value,
            "error": dict(self.error) if self.error is not None else None,
        }


@dataclass(frozen=True)
class LocatedTransaction:
    """Transaction found in a block, with its output bodies decoded best-effort."""

    transaction: Transaction
    block_ref: ShardBlockRef
    decoded: tuple[DecodedBody, ...] | None = None

    @property
    def output(self) -> Any:
        if not self.decoded:
            return None
        for body in self.decoded:
            if body.ok:
                return body.value
        return None


@dataclass(frozen=True)
class ProcessingResult:
    """Terminal success value of process_message / wait_for_transaction."""

    transaction: Transaction
    message_id: str
    attempts: int
    last_checked_block_ref: ShardBlockRef
    decoded: tuple[DecodedBody, ...] | None = None
    output: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "transaction": self.transaction.to_dict(),
            "message_id": self.message_id,
            "attempts": self.attempts,
            "last_checked_block_ref": self.last_checked_block_ref.to_dict(),
            "decoded": [body.to_dict() for body in self.decoded] if self.decoded is not None else None,
            "output": self.output,
        }


@dataclass(frozen=True)
class ProcessingEvent:
    """Tagged notification pushed to the caller's event sink."""

    type: str
    message_id: str | None = None
    shard_block_ref: ShardBlockRef | None = None
    attempt: int = 0
    error: dict[str, Any] | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type, "attempt": self.attempt}
        if self.message_id is not None:
            payload["message_id"] = self.message_id
        if self.shard_block_ref is not None:
            payload["shard_block_ref"] = self.shard_block_ref.to_dict()
        if self.error is not None:
            payload["error"] = dict(self.error)
        if self.details:
            payload["details"] = dict(self.details)
        return payload
