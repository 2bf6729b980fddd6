"""Event emission helper shared by sender, monitor and retry controller."""
from __future__ import annotations

from typing import Any

from loguru import logger

from engine.app.core import SERVICE_NAME
from engine.app.domain.models import ProcessingEvent
from engine.app.ports.event_sink import EventSink


def emit_event(sink: EventSink, event_type: str, **fields: Any) -> None:
    """Build and push one event. A failing sink never changes the processing outcome."""
    event = ProcessingEvent(type=event_type, **fields)
    try:
        sink.emit(event)
    except Exception as exc:
        logger.bind(service_name=SERVICE_NAME, event="event_sink_failed").warning(
            "event sink rejected {}: {}", event_type, exc
        )


class NullEventSink:
    """Used when the caller disabled event reporting."""

    def emit(self, event: ProcessingEvent) -> None:
        return None


NULL_EVENT_SINK = NullEventSink()
