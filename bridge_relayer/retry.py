"""
Retry queue for mints/unlocks that failed on the dispatch path.

One worker attempts one operation per cycle. The operation stays at the
head of the queue while it is in flight; a failed attempt moves it to the
tail so a persistently failing operation does not starve the others.
"""

import asyncio
import threading
from collections import deque
from dataclasses import replace
from typing import Awaitable, Callable, Optional

import structlog

from .errors import TransactionReverted
from .evm import wait_or_stop
from .models import FailedOperation
from .status import StatusStore

logger = structlog.get_logger()

# Performs one attempt with the given confirmation timeout and returns the
# destination tx hash.
RetryExecutor = Callable[[FailedOperation, float], Awaitable[str]]


class RetryQueue:
    """Ordered, single-flight retry queue."""

    def __init__(
        self,
        status: StatusStore,
        max_attempts: int = 5,
        interval_seconds: float = 30.0,
        confirmation_timeout: float = 90.0,
    ):
        self.status = status
        self.max_attempts = max_attempts
        self.interval_seconds = interval_seconds
        self.confirmation_timeout = confirmation_timeout
        self._queue: deque[FailedOperation] = deque()
        self._lock = threading.Lock()
        self._processing = False

    def __len__(self) -> int:
        with self._lock:
            return len(self._queue)

    def __contains__(self, source_tx_hash: str) -> bool:
        key = source_tx_hash.lower()
        with self._lock:
            return any(op.source_tx_hash.lower() == key for op in self._queue)

    @property
    def is_processing(self) -> bool:
        return self._processing

    def enqueue(self, operation: FailedOperation) -> bool:
        """
        Append an operation unless one for the same source tx is queued.

        An operation that has already used up its attempts is marked failed
        instead of being queued.

        Returns:
            True if the operation was added
        """
        if operation.attempts >= self.max_attempts:
            self._fail_exhausted(operation)
            return False

        key = operation.source_tx_hash.lower()
        with self._lock:
            if any(op.source_tx_hash.lower() == key for op in self._queue):
                return False
            self._queue.append(operation)
            count = len(self._queue)

        logger.info(
            "retry_enqueued",
            operation=operation.operation_kind.value,
            source_tx_hash=operation.source_tx_hash,
            error=operation.last_error,
            queue_length=count,
        )
        return True

    def snapshot(self) -> list[FailedOperation]:
        """Copies of the queued operations, head first."""
        with self._lock:
            return [replace(op) for op in self._queue]

    def _fail_exhausted(self, operation: FailedOperation) -> None:
        logger.error(
            "retry_exhausted",
            source_tx_hash=operation.source_tx_hash,
            attempts=operation.attempts,
            error=operation.last_error,
        )
        self.status.set_failed(
            operation.source_tx_hash,
            f"Failed after {operation.attempts} attempts: {operation.last_error}",
        )

    def _discard(self, operation: FailedOperation) -> None:
        # caller holds the lock
        for i, op in enumerate(self._queue):
            if op is operation:
                del self._queue[i]
                return

    async def process_next(self, executor: RetryExecutor) -> Optional[bool]:
        """
        Attempt the head operation once.

        Returns:
            True on success, False on failure, None if the queue was empty
            or another attempt is in flight
        """
        with self._lock:
            if self._processing or not self._queue:
                return None
            self._processing = True
            operation = self._queue[0]

        logger.info(
            "retry_attempt",
            operation=operation.operation_kind.value,
            source_tx_hash=operation.source_tx_hash,
            attempt=operation.attempts + 1,
            max_attempts=self.max_attempts,
        )

        try:
            dest_tx_hash = await executor(operation, self.confirmation_timeout)
        except TransactionReverted as e:
            with self._lock:
                operation.attempts += 1
                operation.last_error = str(e)
                self._discard(operation)
            logger.error(
                "retry_reverted",
                source_tx_hash=operation.source_tx_hash,
                tx_hash=e.tx_hash,
            )
            self.status.set_failed(operation.source_tx_hash, "Transaction reverted")
            return False
        except Exception as e:
            with self._lock:
                operation.attempts += 1
                operation.last_error = str(e)
                self._discard(operation)
                exhausted = operation.attempts >= self.max_attempts
                if not exhausted:
                    self._queue.append(operation)

            if exhausted:
                self._fail_exhausted(operation)
            else:
                logger.warning(
                    "retry_attempt_failed",
                    source_tx_hash=operation.source_tx_hash,
                    attempts=operation.attempts,
                    error=str(e),
                    next_retry_seconds=self.interval_seconds,
                )
            return False
        else:
            with self._lock:
                self._discard(operation)
                remaining = len(self._queue)
            self.status.set_complete(operation.source_tx_hash, dest_tx_hash)
            logger.info(
                "retry_succeeded",
                source_tx_hash=operation.source_tx_hash,
                dest_tx_hash=dest_tx_hash,
                remaining=remaining,
            )
            return True
        finally:
            with self._lock:
                self._processing = False

    async def run(self, executor: RetryExecutor, stop_event: asyncio.Event) -> None:
        """
        Process one operation per interval until `stop_event` is set.

        An attempt in flight when the stop signal arrives runs to completion.
        """
        logger.info("retry_loop_started", interval=self.interval_seconds)
        while not stop_event.is_set():
            await wait_or_stop(stop_event, self.interval_seconds)
            if stop_event.is_set():
                break
            await self.process_next(executor)
        logger.info("retry_loop_stopped", queued=len(self))
