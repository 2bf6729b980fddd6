"""Concrete network client using httpx against the node's JSON block API.

Endpoints (relative to the configured base URL):
    GET  /blocks/last?address=...             -> block header of the account's shard head
    GET  /blocks/next?shard=...&after=...     -> next block, or 204 when not produced yet
    GET  /blocks/{id}?shard=...               -> one block
    POST /messages                            -> submit an encoded message

Only 204 means "nothing yet"; any other non-2xx status is a NetworkClientError.
"""
from __future__ import annotations

import base64
from typing import Any

import httpx

from engine.app.domain.models import Block, Message, ShardBlockRef, Transaction
from engine.app.ports.network_client import (
    NetworkClient,
    NetworkClientError,
    NetworkClientRejectedError,
    NetworkClientTimeoutError,
)


def _block_from_json(data: dict[str, Any]) -> Block:
    try:
        transactions = tuple(
            Transaction(
                id=str(tx["id"]),
                in_msg_id=str(tx["in_msg"]),
                aborted=bool(tx.get("aborted", False)),
                out_messages=tuple(base64.b64decode(body) for body in tx.get("out_messages", [])),
            )
            for tx in data.get("transactions", [])
        )
        return Block(
            id=str(data["id"]),
            shard=str(data["shard"]),
            seq_no=int(data["seq_no"]),
            gen_utime_ms=int(data["gen_utime_ms"]),
            transactions=transactions,
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise NetworkClientError(f"malformed block payload: {exc}") from exc


class HttpxNetworkClient(NetworkClient):
    """NetworkClient implementation using httpx.AsyncClient."""

    def __init__(self, client: httpx.AsyncClient, *, timeout_seconds: float) -> None:
        self._client = client
        self._timeout = httpx.Timeout(timeout_seconds)

    async def find_last_shard_block(self, address: str) -> ShardBlockRef:
        data = await self._get_json("/blocks/last", params={"address": address})
        if data is None:
            raise NetworkClientError(f"no shard block known for {address}")
        block = _block_from_json(data)
        return block.ref

    async def post_message(self, message: Message) -> None:
        payload = {
            "id": message.message_id,
            "destination": message.destination,
            "body": base64.b64encode(message.body).decode("ascii"),
            "expire_at": message.expiration_time_ms,
        }
        response = await self._request("POST", "/messages", json=payload)
        if 400 <= response.status_code < 500:
            raise NetworkClientRejectedError(
                f"message {message.message_id} rejected with status {response.status_code}: {response.text}"
            )
        self._raise_for_status(response)

    async def fetch_next_block(self, after: ShardBlockRef) -> Block | None:
        data = await self._get_json(
            "/blocks/next",
            params={"shard": after.shard, "after": after.block_id},
        )
        if data is None:
            return None
        return _block_from_json(data)

    async def fetch_block(self, ref: ShardBlockRef) -> Block:
        data = await self._get_json(f"/blocks/{ref.block_id}", params={"shard": ref.shard})
        if data is None:
            raise NetworkClientError(f"block {ref.block_id} not found")
        return _block_from_json(data)

    async def close(self) -> None:
        await self._client.aclose()

    async def _get_json(self, path: str, *, params: dict[str, str]) -> dict[str, Any] | None:
        response = await self._request("GET", path, params=params)
        if response.status_code == 204:
            return None
        self._raise_for_status(response)
        try:
            data = response.json()
        except ValueError as exc:
            raise NetworkClientError(f"invalid JSON from {path}") from exc
        if not isinstance(data, dict):
            raise NetworkClientError(f"unexpected payload from {path}")
        return data

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, path, timeout=self._timeout, **kwargs)
        except httpx.TimeoutException as exc:
            raise NetworkClientTimeoutError(f"timeout on {method} {path}") from exc
        except httpx.HTTPError as exc:
            raise NetworkClientError(f"{method} {path} failed: {exc}") from exc

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise NetworkClientError(
                f"http status {exc.response.status_code} for {exc.request.url}"
            ) from exc
