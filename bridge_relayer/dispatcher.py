"""
Event dispatcher: turns Locked/Burned events into mint/unlock calls on
the opposite chain.

Dedup state lives in memory only. After a restart the contracts'
AlreadyProcessed() rejection is what prevents a double mint/unlock.
"""

import threading
from typing import Any

import structlog

from .errors import TransactionReverted, is_already_processed
from .evm import ChainClient, confirm_with_retry
from .models import (
    ALREADY_PROCESSED,
    BridgeEvent,
    EventKind,
    FailedOperation,
    OperationKind,
    ReceiptStatus,
)
from .retry import RetryQueue
from .status import StatusStore

logger = structlog.get_logger()

ACTIONS = {
    OperationKind.MINT: "mintTokens",
    OperationKind.UNLOCK: "unlockEth",
}


class EventDispatcher:
    """
    Relays bridge events between the source and destination chains.

    Locked events on the source chain mint on the destination chain;
    Burned events on the destination chain unlock on the source chain.
    """

    def __init__(
        self,
        source: ChainClient,
        destination: ChainClient,
        status: StatusStore,
        retry_queue: RetryQueue,
        source_token: str,
        confirmation_timeout: float = 60.0,
        confirmation_attempts: int = 3,
    ):
        self.source = source
        self.destination = destination
        self.status = status
        self.retry_queue = retry_queue
        self.source_token = source_token
        self.confirmation_timeout = confirmation_timeout
        self.confirmation_attempts = confirmation_attempts
        self._seen: set[tuple[str, int]] = set()
        self._seen_lock = threading.Lock()

    def _mark_seen(self, event: BridgeEvent) -> bool:
        """Record the event's dedup key. False if it was already recorded."""
        key = event.dedup_key
        with self._seen_lock:
            if key in self._seen:
                return False
            self._seen.add(key)
            return True

    @property
    def seen_count(self) -> int:
        with self._seen_lock:
            return len(self._seen)

    def _route(self, kind: OperationKind) -> ChainClient:
        return self.destination if kind == OperationKind.MINT else self.source

    def _action_args(
        self, kind: OperationKind, recipient: str, amount: int, nonce: int, source_chain: int
    ) -> list[Any]:
        if kind == OperationKind.MINT:
            return [self.source_token, recipient, amount, nonce, source_chain]
        return [recipient, amount, nonce, source_chain]

    async def dispatch(self, event: BridgeEvent) -> bool:
        """
        Relay one event.

        Returns:
            False if the event was a duplicate and was dropped
        """
        if not self._mark_seen(event):
            logger.debug(
                "duplicate_event_dropped",
                source_tx_hash=event.source_tx_hash,
                log_index=event.log_index,
            )
            return False

        kind = OperationKind.MINT if event.kind == EventKind.LOCKED else OperationKind.UNLOCK
        client = self._route(kind)
        function_name = ACTIONS[kind]
        tx_hash = event.source_tx_hash

        self.status.set_processing(tx_hash)

        logger.info(
            "event_received",
            event_kind=event.kind.value,
            source_chain=event.source_chain,
            source_tx_hash=tx_hash,
            sender=event.sender,
            recipient=event.recipient,
            amount=str(event.amount),
            nonce=event.nonce,
            wrapped_token=event.wrapped_token,
        )

        try:
            dest_tx_hash = await client.submit(
                function_name,
                self._action_args(kind, event.recipient, event.amount, event.nonce, event.source_chain),
            )
            receipt_status = await confirm_with_retry(
                client,
                dest_tx_hash,
                timeout=self.confirmation_timeout,
                attempts=self.confirmation_attempts,
            )
        except Exception as e:
            if is_already_processed(e):
                logger.info(
                    "already_processed",
                    operation=kind.value,
                    source_tx_hash=tx_hash,
                )
                self.status.set_complete(tx_hash, ALREADY_PROCESSED)
            else:
                logger.error(
                    "dispatch_failed",
                    operation=kind.value,
                    source_tx_hash=tx_hash,
                    error=str(e),
                )
                self.retry_queue.enqueue(
                    FailedOperation(
                        operation_kind=kind,
                        source_tx_hash=tx_hash,
                        recipient=event.recipient,
                        amount=event.amount,
                        nonce=event.nonce,
                        source_chain=event.source_chain,
                        last_error=str(e),
                    )
                )
            return True

        if receipt_status == ReceiptStatus.SUCCESS:
            self.status.set_complete(tx_hash, dest_tx_hash)
            logger.info(
                "relay_complete",
                operation=kind.value,
                source_tx_hash=tx_hash,
                dest_tx_hash=dest_tx_hash,
            )
        else:
            self.status.set_failed(tx_hash, "Transaction reverted")
        return True

    async def execute(self, operation: FailedOperation, timeout: float) -> str:
        """
        One retry attempt for a queued operation.

        Resubmits the action and waits once for its receipt.

        Returns:
            Destination tx hash, or ALREADY_PROCESSED if the contract reports
            the operation as done

        Raises:
            TransactionReverted: If the new transaction reverts
        """
        kind = operation.operation_kind
        client = self._route(kind)

        logger.info(
            "retrying_operation",
            operation=kind.value,
            source_tx_hash=operation.source_tx_hash,
            recipient=operation.recipient,
            amount=str(operation.amount),
        )

        try:
            dest_tx_hash = await client.submit(
                ACTIONS[kind],
                self._action_args(
                    kind,
                    operation.recipient,
                    operation.amount,
                    operation.nonce,
                    operation.source_chain,
                ),
            )
            receipt_status = await client.confirm(dest_tx_hash, timeout)
        except Exception as e:
            if is_already_processed(e):
                logger.info("already_processed", operation=kind.value, source_tx_hash=operation.source_tx_hash)
                return ALREADY_PROCESSED
            raise

        if receipt_status != ReceiptStatus.SUCCESS:
            raise TransactionReverted(dest_tx_hash)
        return dest_tx_hash
