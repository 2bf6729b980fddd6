"""Network client port: contract for talking to the ledger's node API.

Domain and application code depend on this port; infrastructure (e.g. httpx)
implements it. Keeps domain free of infrastructure imports.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from engine.app.domain.models import Block, Message, ShardBlockRef


class NetworkClientError(Exception):
    """Base for network client failures (status, transport, bad payload)."""


class NetworkClientTimeoutError(NetworkClientError):
    """Raised when the node does not answer in time."""


class NetworkClientRejectedError(NetworkClientError):
    """Raised when the node refuses a request (e.g. malformed message)."""


@runtime_checkable
class NetworkClient(Protocol):
    """Port: query blocks and post messages. Implementations live in infrastructure."""

    async def find_last_shard_block(self, address: str) -> ShardBlockRef:
        """Latest block of the shard that hosts `address`."""
        ...

    async def post_message(self, message: Message) -> None: ...

    async def fetch_next_block(self, after: ShardBlockRef) -> Block | None:
        """Next block of after.shard, or None when it has not been produced yet."""
        ...

    async def fetch_block(self, ref: ShardBlockRef) -> Block: ...

    async def close(self) -> None:
        """Release resources (e.g. connection pool). No-op allowed if nothing to close."""
        ...
