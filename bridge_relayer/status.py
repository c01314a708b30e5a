"""
In-memory status store for bridge operations.

Entries are keyed by the lower-cased source transaction hash and expire
after a retention window regardless of state.
"""

import asyncio
import threading
from typing import Callable, Optional

import structlog

from .models import TransactionStatus, TxState, now_ms

logger = structlog.get_logger()


class StatusStore:
    """
    Mapping from source tx hash to TransactionStatus.

    A single lock guards the whole map; the HTTP layer may read it from a
    different thread than the engine's event loop.
    """

    def __init__(
        self,
        retention_seconds: float = 3600.0,
        sweep_interval_seconds: float = 300.0,
        clock: Callable[[], int] = now_ms,
    ):
        self.retention_ms = int(retention_seconds * 1000)
        self.sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock
        self._entries: dict[str, TransactionStatus] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, tx_hash: str) -> bool:
        with self._lock:
            return tx_hash.lower() in self._entries

    def get(self, tx_hash: str) -> TransactionStatus:
        """Current status; unknown hashes report `pending`."""
        with self._lock:
            status = self._entries.get(tx_hash.lower())
            if status is None:
                return TransactionStatus(state=TxState.PENDING, timestamp=self._clock())
            return TransactionStatus(
                state=status.state,
                timestamp=status.timestamp,
                dest_tx_hash=status.dest_tx_hash,
                error=status.error,
            )

    def set(self, tx_hash: str, status: TransactionStatus) -> bool:
        """
        Store a status unless the current entry is already terminal.

        Returns:
            True if the entry was written
        """
        key = tx_hash.lower()
        with self._lock:
            current = self._entries.get(key)
            if current is not None and current.state.is_terminal:
                logger.warning(
                    "status_transition_ignored",
                    source_tx_hash=key,
                    current=current.state.value,
                    requested=status.state.value,
                )
                return False
            self._entries[key] = status
        return True

    def set_processing(self, tx_hash: str) -> bool:
        return self.set(tx_hash, TransactionStatus(state=TxState.PROCESSING, timestamp=self._clock()))

    def set_complete(self, tx_hash: str, dest_tx_hash: str) -> bool:
        return self.set(
            tx_hash,
            TransactionStatus(state=TxState.COMPLETE, timestamp=self._clock(), dest_tx_hash=dest_tx_hash),
        )

    def set_failed(self, tx_hash: str, error: str) -> bool:
        return self.set(
            tx_hash,
            TransactionStatus(state=TxState.FAILED, timestamp=self._clock(), error=error),
        )

    def sweep(self, now: Optional[int] = None) -> int:
        """
        Evict entries older than the retention window.

        Returns:
            Number of evicted entries
        """
        cutoff = (self._clock() if now is None else now) - self.retention_ms
        with self._lock:
            expired = [key for key, status in self._entries.items() if status.timestamp < cutoff]
            for key in expired:
                del self._entries[key]

        if expired:
            logger.info("status_entries_expired", count=len(expired), remaining=len(self))
        return len(expired)

    async def run_sweeper(self, stop_event: asyncio.Event) -> None:
        """Sweep on a fixed interval until `stop_event` is set."""
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.sweep_interval_seconds)
            except asyncio.TimeoutError:
                self.sweep()
