"""ABI factory: selects codec and encoder from config. Only place that imports concrete codecs."""
from __future__ import annotations

from engine.app.config.settings import Settings
from engine.app.infrastructure.abi.json_abi import JsonAbiCodec, JsonMessageEncoder
from engine.app.ports.abi import AbiCodec, MessageEncoder


def create_abi_components(settings: Settings) -> tuple[AbiCodec, MessageEncoder]:
    backend = settings.abi_backend.strip().lower()

    if backend == "json":
        codec = JsonAbiCodec()
        return codec, JsonMessageEncoder(codec)

    raise ValueError(f"Unsupported ABI backend: {backend}")
