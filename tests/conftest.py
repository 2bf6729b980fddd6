from __future__ import annotations

import pytest
from fastapi import FastAPI

from engine.app.domain.processing_config import ProcessingConfig
from json_interface.app.routers.health import health_router
from json_interface.app.routers.processing import processing_router
from tests.fakes import FakeClock


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def config() -> ProcessingConfig:
    return ProcessingConfig(
        retry_limit=3,
        base_expiration_timeout_ms=40_000,
        expiration_growth_factor=1.5,
        transaction_wait_timeout_ms=10_000,
        block_poll_interval_ms=1_000,
    )


@pytest.fixture()
def test_app() -> FastAPI:
    app = FastAPI()
    app.state.processing_service = None
    app.include_router(health_router)
    app.include_router(processing_router)
    return app
