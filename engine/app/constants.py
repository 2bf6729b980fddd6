"""Engine-level constants shared across modules."""
from __future__ import annotations

DEFAULT_RETRY_LIMIT = 3
DEFAULT_EXPIRATION_TIMEOUT_MS = 40_000
DEFAULT_EXPIRATION_GROWTH_FACTOR = 1.5
DEFAULT_TRANSACTION_WAIT_TIMEOUT_MS = 60_000
DEFAULT_BLOCK_POLL_INTERVAL_MS = 1_000

EXPIRE_HEADER = "expire"


class PROCESSING_STATE:
    IDLE = "IDLE"
    SENDING = "SENDING"
    MONITORING = "MONITORING"
    SUCCEEDED = "SUCCEEDED"
    EXPIRED = "EXPIRED"
    FAILED = "FAILED"


class PROCESSING_EVENT:
    WILL_FETCH_FIRST_BLOCK = "WillFetchFirstBlock"
    FETCH_FIRST_BLOCK_FAILED = "FetchFirstBlockFailed"
    WILL_SEND = "WillSend"
    DID_SEND = "DidSend"
    SEND_FAILED = "SendFailed"
    WILL_FETCH_NEXT_BLOCK = "WillFetchNextBlock"
    FETCH_NEXT_BLOCK_FAILED = "FetchNextBlockFailed"
    MESSAGE_EXPIRED = "MessageExpired"
    TRANSACTION_FOUND = "TransactionFound"
