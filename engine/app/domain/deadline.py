"""Deadline arithmetic for message processing.

Pure functions only: no clock reads, no I/O. A processing run picks one
strategy per logical call; each attempt computes its maximum block
generation time once from that strategy.

- ExpirationBased: deadline = expire_at + transaction_wait_timeout.
- WaitOnly:        deadline = started_at + transaction_wait_timeout.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Union


@dataclass(frozen=True)
class ExpirationBased:
    """Message carries an ABI `expire` header; expired copies are invalid on-chain."""

    expire_at_ms: int


@dataclass(frozen=True)
class WaitOnly:
    """Message cannot expire; wait a fixed window from when monitoring started."""

    started_at_ms: int


DeadlineStrategy = Union[ExpirationBased, WaitOnly]


def select_strategy(
    *,
    supports_expiration: bool,
    expiration_time_ms: int | None,
    now_ms: int,
) -> DeadlineStrategy:
    if supports_expiration and expiration_time_ms is not None:
        return ExpirationBased(expire_at_ms=int(expiration_time_ms))
    return WaitOnly(started_at_ms=int(now_ms))


def compute_deadline(strategy: DeadlineStrategy, wait_timeout_ms: int) -> int:
    """Maximum block generation time (ms) for one attempt."""
    if wait_timeout_ms < 0:
        raise ValueError("wait_timeout_ms must be non-negative")
    if isinstance(strategy, ExpirationBased):
        return strategy.expire_at_ms + int(wait_timeout_ms)
    if isinstance(strategy, WaitOnly):
        return strategy.started_at_ms + int(wait_timeout_ms)
    raise TypeError(f"unsupported deadline strategy: {strategy!r}")


def expiration_timeouts(
    base_timeout_ms: int,
    growth_factor: float,
    retry_limit: int,
) -> Iterator[int]:
    """Yield the expiration timeout for the first send and each of retry_limit resends."""
    timeout = float(base_timeout_ms)
    for attempt in range(retry_limit + 1):
        yield int(round(timeout))
        if attempt < retry_limit:
            timeout = timeout * growth_factor
