"""Transaction locator: finds the transaction produced by a message inside one block.

Absence is a normal outcome (returns None). Output message bodies are decoded
through the AbiCodec port; a body that fails to decode is recorded next to the
transaction instead of hiding it.
"""
from __future__ import annotations

from typing import Any

from loguru import logger

from engine.app.core import SERVICE_NAME
from engine.app.domain.errors import DecodingError
from engine.app.domain.models import Block, DecodedBody, LocatedTransaction, Transaction
from engine.app.ports.abi import AbiCodec


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class TransactionLocator:
    def __init__(self, abi_codec: AbiCodec) -> None:
        self._abi_codec = abi_codec

    def locate(
        self,
        block: Block,
        message_id: str,
        abi: dict[str, Any] | None = None,
    ) -> LocatedTransaction | None:
        transaction = self._find(block, message_id)
        if transaction is None:
            return None
        decoded = self.decode_out_messages(transaction, abi) if abi is not None else None
        return LocatedTransaction(transaction=transaction, block_ref=block.ref, decoded=decoded)

    def decode_out_messages(
        self,
        transaction: Transaction,
        abi: dict[str, Any],
    ) -> tuple[DecodedBody, ...]:
        decoded: list[DecodedBody] = []
        for index, body in enumerate(transaction.out_messages):
            try:
                value = self._abi_codec.decode_output(body, abi)
            except DecodingError as exc:
                error = exc
            except Exception as exc:
                logger.warning("unexpected decode failure for {}[{}]: {}", transaction.id, index, exc)
                error = DecodingError(str(exc), data={"exception": type(exc).__name__})
            else:
                decoded.append(DecodedBody(index=index, value=value))
                continue
            _log("out_message_decode_failed", transaction_id=transaction.id, index=index, error=error.message)
            decoded.append(DecodedBody(index=index, error=error.to_dict()))
        return tuple(decoded)

    @staticmethod
    def _find(block: Block, message_id: str) -> Transaction | None:
        for transaction in block.transactions:
            if transaction.in_msg_id == message_id:
                return transaction
        return None
