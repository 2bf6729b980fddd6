from __future__ import annotations

import asyncio
import functools
import json
from typing import Any, AsyncIterator, Awaitable, Callable

from fastapi import APIRouter, Request, Response
from fastapi.responses import StreamingResponse
from loguru import logger

from engine.app.application.processing_service import ProcessingService
from engine.app.domain.errors import ProcessingError
from engine.app.infrastructure.events.sinks import QueueEventSink
from engine.app.ports.event_sink import EventSink
from json_interface.app.constants import NDJSON_MEDIA_TYPE, ResponseType
from json_interface.app.core import SERVICE_NAME
from json_interface.app.schemas.processing import (
    ProcessMessageRequest,
    SendMessageRequest,
    WaitForTransactionRequest,
)

Operation = Callable[[EventSink], Awaitable[Any]]


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def _line(payload: dict[str, Any]) -> bytes:
    return (json.dumps(payload, separators=(",", ":")) + "\n").encode("utf-8")


async def _run(operation: Operation, sink: QueueEventSink) -> Any:
    try:
        return await operation(sink)
    finally:
        sink.close()


def _log_abandoned(name: str, task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is None:
        _log("operation_completed_unread", operation=name)
    else:
        logger.warning("{} failed after the client disconnected: {}", name, exc)


async def stream_operation(name: str, operation: Operation) -> AsyncIterator[bytes]:
    """Yield one line per processing event, then exactly one terminal result or error line."""
    sink = QueueEventSink()
    task = asyncio.create_task(_run(operation, sink))
    try:
        while True:
            event = await sink.queue.get()
            if event is None:
                break
            yield _line({"response_type": ResponseType.PROCESSING_EVENT, "event": event.to_dict()})
    except BaseException:
        # consumer went away; the operation still runs to its terminal state
        task.add_done_callback(functools.partial(_log_abandoned, name))
        raise

    try:
        result = await task
    except ProcessingError as exc:
        _log("operation_failed", operation=name, code=exc.code, error=exc.message)
        yield _line({"response_type": ResponseType.ERROR, "error": exc.to_dict()})
        return
    except Exception as exc:
        logger.exception("{} failed: {}", name, exc)
        yield _line(
            {
                "response_type": ResponseType.ERROR,
                "error": {"code": "INTERNAL_ERROR", "message": str(exc), "data": {}},
            }
        )
        return

    _log("operation_completed", operation=name)
    yield _line({"response_type": ResponseType.SUCCESS, "result": result})


processing_router = APIRouter(prefix="/processing", tags=["Processing"])


def _service_or_none(request: Request) -> ProcessingService | None:
    return getattr(request.app.state, "processing_service", None)


def _streaming(name: str, operation: Operation) -> StreamingResponse:
    return StreamingResponse(stream_operation(name, operation), media_type=NDJSON_MEDIA_TYPE)


@processing_router.post(
    "/process_message",
    summary="Encode, send and monitor a message",
    description="Encodes the message from ABI params, sends it and waits for the resulting transaction. Messages whose ABI declares the `expire` header are regenerated and resent on expiration. Streams processing events (when send_events is set) followed by the result.",
    responses={
        200: {"description": "NDJSON stream of events and one terminal result or error line."},
        503: {"description": "Processing engine not available."},
    },
)
async def process_message(request: Request, body: ProcessMessageRequest) -> Response:
    service = _service_or_none(request)
    if service is None:
        return Response(status_code=503, content="Processing engine not available")
    params = body.to_params()

    async def operation(sink: EventSink) -> Any:
        result = await service.process_message(params, sink)
        return result.to_dict()

    return _streaming("process_message", operation)


@processing_router.post(
    "/send_message",
    summary="Send a message",
    description="Sends an encoded message and returns the shard block reference captured before sending. Pass it to wait_for_transaction to resume monitoring.",
    responses={
        200: {"description": "NDJSON stream of events and one terminal result or error line."},
        503: {"description": "Processing engine not available."},
    },
)
async def send_message(request: Request, body: SendMessageRequest) -> Response:
    service = _service_or_none(request)
    if service is None:
        return Response(status_code=503, content="Processing engine not available")
    message = body.message.to_message()

    async def operation(sink: EventSink) -> Any:
        ref = await service.send_message(message, send_events=body.send_events, event_sink=sink)
        return {"shard_block_ref": ref.to_dict()}

    return _streaming("send_message", operation)


@processing_router.post(
    "/wait_for_transaction",
    summary="Wait for a sent message's transaction",
    description="Monitors shard blocks after the given reference for the transaction of the message. With an ABI declaring `expire`, waits until the message expiration plus the wait timeout; otherwise waits the wait timeout from now.",
    responses={
        200: {"description": "NDJSON stream of events and one terminal result or error line."},
        503: {"description": "Processing engine not available."},
    },
)
async def wait_for_transaction(request: Request, body: WaitForTransactionRequest) -> Response:
    service = _service_or_none(request)
    if service is None:
        return Response(status_code=503, content="Processing engine not available")
    message = body.message.to_message()
    ref = body.shard_block_ref.to_ref()

    async def operation(sink: EventSink) -> Any:
        result = await service.wait_for_transaction(
            message,
            ref,
            abi=body.abi,
            send_events=body.send_events,
            event_sink=sink,
        )
        return result.to_dict()

    return _streaming("wait_for_transaction", operation)
