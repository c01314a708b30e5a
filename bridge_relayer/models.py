"""
Domain records passed between the relayer components.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


# Destination hash recorded when the contract reports the operation as done.
ALREADY_PROCESSED = "already-processed"


def now_ms() -> int:
    """Current wall-clock time in milliseconds."""
    return int(time.time() * 1000)


class EventKind(str, Enum):
    """Bridge events the relayer listens for."""

    LOCKED = "Locked"
    BURNED = "Burned"


class OperationKind(str, Enum):
    """Actions the relayer issues on the opposite chain."""

    MINT = "mint"
    UNLOCK = "unlock"


class TxState(str, Enum):
    """Lifecycle state of a bridge operation."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TxState.COMPLETE, TxState.FAILED)


class ReceiptStatus(str, Enum):
    """Outcome of a mined transaction."""

    SUCCESS = "success"
    REVERTED = "reverted"


@dataclass(frozen=True)
class BridgeEvent:
    """A Locked or Burned log observed on a chain."""

    kind: EventKind
    source_chain: int
    destination_chain: int
    sender: str
    recipient: str
    amount: int  # wei
    nonce: int
    source_tx_hash: str
    log_index: int
    block_number: int = 0
    wrapped_token: Optional[str] = None  # Burned only

    @property
    def dedup_key(self) -> tuple[str, int]:
        return (self.source_tx_hash.lower(), self.log_index)


@dataclass
class TransactionStatus:
    """Current status of a bridge operation, keyed by source tx hash."""

    state: TxState
    timestamp: int = field(default_factory=now_ms)
    dest_tx_hash: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"status": self.state.value, "timestamp": self.timestamp}
        if self.dest_tx_hash is not None:
            data["destTxHash"] = self.dest_tx_hash
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class FailedOperation:
    """A mint or unlock waiting in the retry queue."""

    operation_kind: OperationKind
    source_tx_hash: str
    recipient: str
    amount: int
    nonce: int
    source_chain: int
    last_error: str
    attempts: int = 1
    created_at: int = field(default_factory=now_ms)

    def to_dict(self) -> dict[str, Any]:
        # uint256 values do not fit in a JSON number on the client side
        return {
            "type": self.operation_kind.value,
            "sourceTxHash": self.source_tx_hash,
            "recipient": self.recipient,
            "amount": str(self.amount),
            "nonce": str(self.nonce),
            "sourceChainId": self.source_chain,
            "attempts": self.attempts,
            "lastError": self.last_error,
            "createdAt": self.created_at,
        }
