"""Engine composition root: build and lifecycle-manage concrete dependencies.

Composition may: import concrete classes, call factories, store interface types,
manage high-level lifecycle.
"""
from __future__ import annotations

from typing import Any

from loguru import logger

from engine.app.application.processing_service import ProcessingService
from engine.app.config.settings import Settings
from engine.app.core import SERVICE_NAME
from engine.app.infrastructure.abi.factory import create_abi_components
from engine.app.infrastructure.clock.system_clock import SystemClock
from engine.app.infrastructure.network.factory import create_network_client
from engine.app.ports.network_client import NetworkClient


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class EngineDependencies:
    """Holds wired engine dependencies and their lifecycle."""

    def __init__(self, *, settings: Settings) -> None:
        self._settings = settings
        self._network: NetworkClient | None = None
        self._processing_service: ProcessingService | None = None
        self._connected = False

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def processing_service(self) -> ProcessingService:
        if self._processing_service is None:
            raise RuntimeError("processing_service is not initialized")
        return self._processing_service

    async def connect(self) -> None:
        self._network = create_network_client(self._settings)
        abi_codec, encoder = create_abi_components(self._settings)
        self._processing_service = ProcessingService(
            self._network,
            abi_codec,
            encoder,
            SystemClock(),
            self._settings.processing_config(),
        )
        self._connected = True
        _log("engine_ready", network_endpoint=self._settings.network_endpoint)

    async def close(self) -> None:
        if self._network is not None:
            try:
                await self._network.close()
            except Exception as exc:
                logger.warning("network client close failed: {}", exc)
            self._network = None

        self._processing_service = None
        self._connected = False


def create_engine_dependencies(settings: Settings | None = None) -> EngineDependencies:
    return EngineDependencies(settings=settings or Settings())
