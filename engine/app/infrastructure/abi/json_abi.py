"""JSON ABI codec and message encoder.

ABI shape::

    {
        "header": ["expire"],
        "functions": [{"name": "transfer", "inputs": ["to", "amount"], "outputs": ["ok"]}]
    }

Message bodies are canonical JSON (sorted keys, no whitespace); the message id
is the SHA-256 hex digest of those bytes, so a regenerated message with a new
expiration always gets a new id. Output bodies are expected as
``{"function": <name>, "output": {...}}``.
"""
from __future__ import annotations

import hashlib
import json
from typing import Any

from engine.app.constants import EXPIRE_HEADER
from engine.app.domain.errors import DecodingError, InvalidMessage
from engine.app.domain.models import Message, MessageEncodeParams


def _functions(abi: dict[str, Any]) -> dict[str, dict[str, Any]]:
    functions = abi.get("functions", [])
    if not isinstance(functions, list):
        return {}
    return {str(fn.get("name")): fn for fn in functions if isinstance(fn, dict) and fn.get("name")}


def _canonical(payload: dict[str, Any]) -> bytes:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


class JsonAbiCodec:
    def has_expiration_pragma(self, abi: dict[str, Any] | None) -> bool:
        if not abi:
            return False
        header = abi.get("header", [])
        return isinstance(header, list) and EXPIRE_HEADER in header

    def decode_output(self, body: bytes, abi: dict[str, Any]) -> Any:
        try:
            payload = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise DecodingError(f"output body is not JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise DecodingError("output body must be a JSON object")

        name = str(payload.get("function", ""))
        function = _functions(abi).get(name)
        if function is None:
            raise DecodingError(f"function {name!r} is not in the ABI", data={"function": name})

        output = payload.get("output", {})
        if not isinstance(output, dict):
            raise DecodingError(f"output of {name!r} must be an object", data={"function": name})
        expected = list(function.get("outputs", []))
        missing = [key for key in expected if key not in output]
        if missing:
            raise DecodingError(
                f"output of {name!r} is missing {', '.join(missing)}",
                data={"function": name, "missing": missing},
            )
        return {"name": name, "value": {key: output[key] for key in expected}}


class JsonMessageEncoder:
    def __init__(self, codec: JsonAbiCodec) -> None:
        self._codec = codec

    def encode(
        self,
        abi: dict[str, Any] | None,
        params: MessageEncodeParams,
        expiration_time_ms: int | None,
    ) -> Message:
        if not abi:
            raise InvalidMessage("abi is required to encode a message")
        if not params.address.strip():
            raise InvalidMessage("destination address is empty")
        function = _functions(abi).get(params.function_name)
        if function is None:
            raise InvalidMessage(f"function {params.function_name!r} is not in the ABI")
        missing = [key for key in function.get("inputs", []) if key not in params.input]
        if missing:
            raise InvalidMessage(f"missing inputs for {params.function_name!r}: {', '.join(missing)}")

        header: dict[str, Any] = {}
        expiration = None
        if self._codec.has_expiration_pragma(abi) and expiration_time_ms is not None:
            expiration = int(expiration_time_ms)
            header[EXPIRE_HEADER] = expiration

        body = _canonical(
            {
                "function": params.function_name,
                "header": header,
                "input": dict(params.input),
            }
        )
        return Message(
            destination=params.address,
            body=body,
            message_id=hashlib.sha256(body).hexdigest(),
            expiration_time_ms=expiration,
        )
