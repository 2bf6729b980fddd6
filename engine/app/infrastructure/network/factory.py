"""Network client factory: builds NetworkClient from settings (no provider logic in composition)."""
from __future__ import annotations

import httpx

from engine.app.config.settings import Settings
from engine.app.infrastructure.network.httpx_client import HttpxNetworkClient
from engine.app.ports.network_client import NetworkClient


def create_network_client(settings: Settings) -> NetworkClient:
    backend = settings.network_backend.strip().lower()

    if backend == "http":
        async_client = httpx.AsyncClient(base_url=settings.network_endpoint)
        return HttpxNetworkClient(async_client, timeout_seconds=settings.network_request_timeout_seconds)

    raise ValueError(f"Unsupported network backend: {backend}")
