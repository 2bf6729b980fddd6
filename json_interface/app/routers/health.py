from typing import Any

from fastapi import APIRouter, Request, Response
from loguru import logger

from json_interface.app.core import SERVICE_NAME

health_router = APIRouter(tags=["Health"])

def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")

@health_router.get(
    "/health/live",
    summary="Liveness probe",
    description="Returns 200 if the dispatch process is running.",
    responses={200: {"description": "Service is alive."}},
)
async def live() -> dict:
    return {"status": "ok"}


@health_router.get(
    "/health/ready",
    summary="Readiness probe",
    description="Returns 200 only when the processing engine is wired.",
    responses={
        200: {"description": "Engine is ready."},
        503: {"description": "Engine not ready."},
    },
)
async def ready(request: Request) -> Response:
    service = getattr(request.app.state, "processing_service", None)
    if service is None:
        _log("engine_not_initialized")
        return Response(status_code=503, content="Not ready")
    return Response(status_code=200, content="OK")
