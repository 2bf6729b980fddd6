"""Queue-backed event sink for streaming consumers. emit() never awaits."""
from __future__ import annotations

import asyncio

from engine.app.domain.models import ProcessingEvent


class QueueEventSink:
    """Buffers events in an asyncio.Queue for a streaming consumer.

    close() enqueues a None sentinel; consumers stop reading when they see it.
    """

    def __init__(self) -> None:
        self.queue: asyncio.Queue[ProcessingEvent | None] = asyncio.Queue()
        self._closed = False

    def emit(self, event: ProcessingEvent) -> None:
        if self._closed:
            return
        self.queue.put_nowait(event)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self.queue.put_nowait(None)
