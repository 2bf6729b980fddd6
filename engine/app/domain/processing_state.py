"""Per-run processing state. Owned by exactly one run; never shared."""
from __future__ import annotations

from dataclasses import dataclass, field

from engine.app.constants import PROCESSING_STATE
from engine.app.domain.models import Message, ShardBlockRef

_TRANSITIONS: dict[str, frozenset[str]] = {
    PROCESSING_STATE.IDLE: frozenset({PROCESSING_STATE.SENDING, PROCESSING_STATE.MONITORING}),
    PROCESSING_STATE.SENDING: frozenset({PROCESSING_STATE.MONITORING, PROCESSING_STATE.FAILED}),
    PROCESSING_STATE.MONITORING: frozenset(
        {PROCESSING_STATE.SUCCEEDED, PROCESSING_STATE.EXPIRED, PROCESSING_STATE.FAILED}
    ),
    PROCESSING_STATE.EXPIRED: frozenset({PROCESSING_STATE.SENDING, PROCESSING_STATE.FAILED}),
    PROCESSING_STATE.SUCCEEDED: frozenset(),
    PROCESSING_STATE.FAILED: frozenset(),
}


class InvalidStateTransition(RuntimeError):
    """Raised when a run tries to move between states that are not connected."""


@dataclass
class ProcessingState:
    """Mutable record of one logical message submission.

    attempt_count is 0-based: 0 for the first send, incremented once per
    regeneration. submitted_message_ids keeps every distinct message id
    handed to the network, in order.
    """

    current_message: Message
    attempt_count: int = 0
    shard_block_ref_at_send: ShardBlockRef | None = None
    last_checked_block_ref: ShardBlockRef | None = None
    status: str = PROCESSING_STATE.IDLE
    submitted_message_ids: list[str] = field(default_factory=list)

    def transition(self, status: str) -> None:
        if status not in _TRANSITIONS[self.status]:
            raise InvalidStateTransition(f"cannot move from {self.status} to {status}")
        self.status = status

    def record_submission(self, message: Message) -> None:
        self.current_message = message
        self.submitted_message_ids.append(message.message_id)

    def monitoring_start(self) -> ShardBlockRef:
        """Block after which the next poll starts: the later of send ref and last checked block."""
        start = self.shard_block_ref_at_send
        last = self.last_checked_block_ref
        if start is None:
            if last is None:
                raise InvalidStateTransition("no shard block reference to monitor from")
            return last
        if last is None or last.shard != start.shard:
            return start
        if start.seq_no is None or (last.seq_no is not None and last.seq_no > start.seq_no):
            return last
        return start
