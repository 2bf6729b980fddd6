"""Processing error taxonomy.

Every terminal failure of a processing run is one of these. Each carries a
stable ``code`` and an optional ``data`` dict so the dispatch layer can
serialise it without knowing the concrete class.
"""
from __future__ import annotations

from typing import Any


class ProcessingError(Exception):
    """Base for all processing failures."""

    code = "PROCESSING_ERROR"

    def __init__(self, message: str, *, data: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.data = dict(data) if data else {}

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "data": dict(self.data)}


class NetworkError(ProcessingError):
    """Transport or node failure. Never retried by the engine."""

    code = "NETWORK_ERROR"


class MessageExpired(ProcessingError):
    """No transaction before the expiration deadline of an expiring message."""

    code = "MESSAGE_EXPIRED"


class TransactionMissing(ProcessingError):
    """No transaction before the wait deadline of a non-expiring message."""

    code = "TRANSACTION_MISSING"


class DecodingError(ProcessingError):
    """An output message body could not be decoded with the supplied ABI."""

    code = "DECODING_ERROR"


class InvalidMessage(ProcessingError):
    """Malformed input to the sender (empty body, no destination, already expired)."""

    code = "INVALID_MESSAGE"
