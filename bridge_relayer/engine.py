"""
Relay engine: builds the relayer components and owns their lifecycle.
"""

import asyncio
from typing import Optional

import structlog
from web3 import Web3

from .config import Settings
from .dispatcher import EventDispatcher
from .evm import BRIDGE_DESTINATION_ABI, BRIDGE_SOURCE_ABI, ChainClient
from .models import EventKind
from .retry import RetryQueue
from .status import StatusStore

logger = structlog.get_logger()


class RelayEngine:
    """
    Composition root for the relayer.

    `start()` launches one subscription per chain, the retry loop and the
    status sweeper. `stop()` stops the subscriptions, waits for dispatches
    already in flight, then lets the retry loop and sweeper exit.
    """

    def __init__(
        self,
        settings: Settings,
        source_client: Optional[ChainClient] = None,
        destination_client: Optional[ChainClient] = None,
    ):
        settings.validate_required()
        self.settings = settings

        self.status = StatusStore(
            retention_seconds=settings.status_retention_seconds,
            sweep_interval_seconds=settings.status_sweep_interval_seconds,
        )
        self.retry_queue = RetryQueue(
            self.status,
            max_attempts=settings.max_retry_attempts,
            interval_seconds=settings.retry_interval_seconds,
            confirmation_timeout=settings.retry_confirmation_timeout_seconds,
        )

        self.source = source_client or ChainClient(
            name="source",
            rpc_url=settings.source_rpc_url,
            private_key=settings.relayer_private_key,
            contract_address=settings.bridge_source_address,
            abi=BRIDGE_SOURCE_ABI,
            chain_id=settings.source_chain_id,
            poll_interval=settings.poll_interval_seconds,
        )
        self.destination = destination_client or ChainClient(
            name="destination",
            rpc_url=settings.destination_rpc_url,
            private_key=settings.relayer_private_key,
            contract_address=settings.bridge_destination_address,
            abi=BRIDGE_DESTINATION_ABI,
            chain_id=settings.destination_chain_id,
            poll_interval=settings.poll_interval_seconds,
        )

        self.dispatcher = EventDispatcher(
            source=self.source,
            destination=self.destination,
            status=self.status,
            retry_queue=self.retry_queue,
            source_token=settings.source_token,
            confirmation_timeout=settings.confirmation_timeout_seconds,
            confirmation_attempts=settings.confirmation_attempts,
        )

        self._stop_event: Optional[asyncio.Event] = None
        self._subscriptions: list[asyncio.Task] = []
        self._background: list[asyncio.Task] = []
        self._dispatches: set[asyncio.Task] = set()

    @property
    def is_running(self) -> bool:
        return self._stop_event is not None and not self._stop_event.is_set()

    async def log_startup(self) -> None:
        """Log the relayer account and its balance on both chains."""
        for client in (self.source, self.destination):
            if not await client.check_connectivity():
                logger.warning("rpc_unreachable", chain=client.name, chain_id=client.chain_id)
                continue
            try:
                balance = await client.get_balance()
                logger.info(
                    "relayer_balance",
                    chain=client.name,
                    chain_id=client.chain_id,
                    address=client.address,
                    balance_eth=str(Web3.from_wei(balance, "ether")),
                )
            except Exception as e:
                logger.warning("balance_check_failed", chain=client.name, error=str(e))

    async def start(self) -> None:
        """Start subscriptions, the retry loop and the status sweeper."""
        if self.is_running:
            return

        self._stop_event = asyncio.Event()
        await self.log_startup()

        self._subscriptions = [
            asyncio.create_task(self._consume(self.source, EventKind.LOCKED)),
            asyncio.create_task(self._consume(self.destination, EventKind.BURNED)),
        ]
        self._background = [
            asyncio.create_task(self.retry_queue.run(self.dispatcher.execute, self._stop_event)),
            asyncio.create_task(self.status.run_sweeper(self._stop_event)),
        ]

        logger.info(
            "relayer_started",
            bridge_source=self.settings.bridge_source_address,
            bridge_destination=self.settings.bridge_destination_address,
        )

    async def stop(self) -> None:
        """Signal shutdown and wait for in-flight work to finish."""
        if self._stop_event is None or self._stop_event.is_set():
            return

        logger.info("relayer_stopping", in_flight=len(self._dispatches), queued=len(self.retry_queue))
        self._stop_event.set()

        await asyncio.gather(*self._subscriptions, return_exceptions=True)
        if self._dispatches:
            await asyncio.gather(*list(self._dispatches), return_exceptions=True)
        await asyncio.gather(*self._background, return_exceptions=True)

        logger.info("relayer_stopped")

    async def _consume(self, client: ChainClient, kind: EventKind) -> None:
        assert self._stop_event is not None
        try:
            async for event in client.subscribe(kind, self._stop_event):
                task = asyncio.create_task(self.dispatcher.dispatch(event))
                self._dispatches.add(task)
                task.add_done_callback(self._on_dispatch_done)
        except Exception as e:
            logger.error("subscription_failed", chain=client.name, kind=kind.value, error=str(e))
            raise

    def _on_dispatch_done(self, task: asyncio.Task) -> None:
        self._dispatches.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("dispatch_task_error", error=str(task.exception()))
