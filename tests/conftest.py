from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Optional, Union

import pytest

from bridge_relayer.config import Settings
from bridge_relayer.engine import RelayEngine
from bridge_relayer.errors import SubmissionError
from bridge_relayer.models import BridgeEvent, EventKind, ReceiptStatus

# Hardhat's first dev account; never holds real funds.
TEST_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
TEST_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

SOURCE_CHAIN_ID = 11155111
DESTINATION_CHAIN_ID = 84532

Outcome = Union[ReceiptStatus, Exception]


class FakeChainClient:
    """In-memory stand-in for ChainClient with scripted outcomes."""

    def __init__(self, name: str, chain_id: int):
        self.name = name
        self.chain_id = chain_id
        self.address = TEST_ADDRESS
        self.submissions: list[tuple[str, list[Any]]] = []
        self.confirm_calls: list[tuple[str, float]] = []
        # One entry per submit call: None for success or an exception to raise
        self.submit_errors: list[Optional[Exception]] = []
        # One entry per confirm call; SUCCESS once exhausted
        self.confirm_outcomes: list[Outcome] = []
        self.events: list[BridgeEvent] = []
        self.connected = True
        self.balance_calls = 0

    async def check_connectivity(self) -> bool:
        return self.connected

    async def submit(self, function_name: str, args: list[Any]) -> str:
        self.submissions.append((function_name, list(args)))
        if self.submit_errors:
            error = self.submit_errors.pop(0)
            if error is not None:
                raise error
        return f"0x{self.chain_id:08x}{len(self.submissions):056x}"

    async def confirm(self, tx_hash: str, timeout: float) -> ReceiptStatus:
        self.confirm_calls.append((tx_hash, timeout))
        await asyncio.sleep(0)
        if self.confirm_outcomes:
            outcome = self.confirm_outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return ReceiptStatus.SUCCESS

    async def get_balance(self) -> int:
        self.balance_calls += 1
        return 10**18

    async def subscribe(
        self, kind: EventKind, stop_event: asyncio.Event, from_block: Optional[int] = None
    ) -> AsyncIterator[BridgeEvent]:
        for event in self.events:
            if event.kind == kind:
                yield event
        await stop_event.wait()


def already_processed_error() -> SubmissionError:
    return SubmissionError(
        "execution reverted: custom error 0x57eee766",
        function_name="mintTokens",
        data="0x57eee766",
    )


def make_locked_event(
    tx_hash: str = "0x" + "ab" * 32,
    log_index: int = 0,
    amount: int = 1_000000000000000000,
    nonce: int = 7,
) -> BridgeEvent:
    return BridgeEvent(
        kind=EventKind.LOCKED,
        source_chain=SOURCE_CHAIN_ID,
        destination_chain=DESTINATION_CHAIN_ID,
        sender="0x1111111111111111111111111111111111111111",
        recipient="0x2222222222222222222222222222222222222222",
        amount=amount,
        nonce=nonce,
        source_tx_hash=tx_hash,
        log_index=log_index,
        block_number=100,
    )


def make_burned_event(
    tx_hash: str = "0x" + "cd" * 32,
    log_index: int = 1,
    amount: int = 500_000000000000000,
    nonce: int = 3,
) -> BridgeEvent:
    return BridgeEvent(
        kind=EventKind.BURNED,
        source_chain=DESTINATION_CHAIN_ID,
        destination_chain=SOURCE_CHAIN_ID,
        sender="0x2222222222222222222222222222222222222222",
        recipient="0x1111111111111111111111111111111111111111",
        amount=amount,
        nonce=nonce,
        source_tx_hash=tx_hash,
        log_index=log_index,
        block_number=200,
        wrapped_token="0x3333333333333333333333333333333333333333",
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        relayer_private_key=TEST_PRIVATE_KEY,
        source_rpc_url="http://localhost:8545",
        destination_rpc_url="http://localhost:8546",
        source_chain_id=SOURCE_CHAIN_ID,
        destination_chain_id=DESTINATION_CHAIN_ID,
        retry_interval_seconds=0.01,
        status_sweep_interval_seconds=0.01,
    )


@pytest.fixture
def source() -> FakeChainClient:
    return FakeChainClient("source", SOURCE_CHAIN_ID)


@pytest.fixture
def destination() -> FakeChainClient:
    return FakeChainClient("destination", DESTINATION_CHAIN_ID)


@pytest.fixture
def engine(settings: Settings, source: FakeChainClient, destination: FakeChainClient) -> RelayEngine:
    return RelayEngine(settings, source_client=source, destination_client=destination)  # type: ignore[arg-type]
