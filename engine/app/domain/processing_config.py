"""Domain value object for retry and timeout policy. Built from Settings in the composition root."""
from __future__ import annotations

from dataclasses import dataclass

from engine.app.constants import (
    DEFAULT_BLOCK_POLL_INTERVAL_MS,
    DEFAULT_EXPIRATION_GROWTH_FACTOR,
    DEFAULT_EXPIRATION_TIMEOUT_MS,
    DEFAULT_RETRY_LIMIT,
    DEFAULT_TRANSACTION_WAIT_TIMEOUT_MS,
)


@dataclass(frozen=True)
class ProcessingConfig:
    """Retry and timeout policy.

    retry_limit is the number of resends after the first send, so one logical
    call submits at most retry_limit + 1 distinct messages.
    """

    retry_limit: int = DEFAULT_RETRY_LIMIT
    base_expiration_timeout_ms: int = DEFAULT_EXPIRATION_TIMEOUT_MS
    expiration_growth_factor: float = DEFAULT_EXPIRATION_GROWTH_FACTOR
    transaction_wait_timeout_ms: int = DEFAULT_TRANSACTION_WAIT_TIMEOUT_MS
    block_poll_interval_ms: int = DEFAULT_BLOCK_POLL_INTERVAL_MS

    def __post_init__(self) -> None:
        if self.retry_limit < 0:
            raise ValueError("retry_limit must be >= 0")
        if self.base_expiration_timeout_ms <= 0:
            raise ValueError("base_expiration_timeout_ms must be > 0")
        if self.expiration_growth_factor < 1.0:
            raise ValueError("expiration_growth_factor must be >= 1.0")
        if self.transaction_wait_timeout_ms <= 0:
            raise ValueError("transaction_wait_timeout_ms must be > 0")
        if self.block_poll_interval_ms <= 0:
            raise ValueError("block_poll_interval_ms must be > 0")
