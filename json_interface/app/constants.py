"""Dispatch-level constants shared across modules."""
from __future__ import annotations


class ResponseType:
    """response_type tag of each NDJSON line in a processing stream."""

    SUCCESS = 0
    ERROR = 1
    PROCESSING_EVENT = 100


NDJSON_MEDIA_TYPE = "application/x-ndjson"
