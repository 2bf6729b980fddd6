from __future__ import annotations

import asyncio

import pytest

from engine.app.application.processing_service import ProcessingService
from engine.app.composition import create_engine_dependencies
from engine.app.config.settings import Settings


def test_connect_wires_processing_service_from_settings(monkeypatch):
    monkeypatch.setenv("MESSAGE_RETRIES_LIMIT", "2")
    deps = create_engine_dependencies(Settings(_env_file=None))

    async def scenario() -> ProcessingService:
        await deps.connect()
        try:
            return deps.processing_service
        finally:
            await deps.close()

    service = asyncio.run(scenario())

    assert isinstance(service, ProcessingService)
    assert service.config.retry_limit == 2
    assert deps.connected is False
    with pytest.raises(RuntimeError):
        _ = deps.processing_service


def test_unknown_network_backend_is_rejected(monkeypatch):
    monkeypatch.setenv("NETWORK_BACKEND", "carrier-pigeon")
    deps = create_engine_dependencies(Settings(_env_file=None))

    with pytest.raises(ValueError, match="Unsupported network backend"):
        asyncio.run(deps.connect())
