"""ABI ports: introspect an ABI, decode output bodies, build messages."""
from __future__ import annotations

from typing import Any, Protocol

from engine.app.domain.models import Message, MessageEncodeParams


class AbiCodec(Protocol):
    def has_expiration_pragma(self, abi: dict[str, Any] | None) -> bool: ...

    def decode_output(self, body: bytes, abi: dict[str, Any]) -> Any:
        """Decode one output message body; raise DecodingError if it does not fit the ABI."""
        ...


class MessageEncoder(Protocol):
    def encode(
        self,
        abi: dict[str, Any] | None,
        params: MessageEncodeParams,
        expiration_time_ms: int | None,
    ) -> Message:
        """Build the message bytes and id; raise InvalidMessage on bad params."""
        ...
