"""Port: caller-owned sink for processing events."""
from __future__ import annotations

from typing import Protocol

from engine.app.domain.models import ProcessingEvent


class EventSink(Protocol):
    def emit(self, event: ProcessingEvent) -> None:
        """Fire-and-forget. Must not block; the engine does not wait on it."""
        ...
