"""
Tests for the relay engine lifecycle.
"""

import asyncio

import pytest
from structlog.testing import capture_logs

from bridge_relayer.engine import RelayEngine
from bridge_relayer.models import ReceiptStatus, TxState

from conftest import (
    DESTINATION_CHAIN_ID,
    SOURCE_CHAIN_ID,
    FakeChainClient,
    make_burned_event,
    make_locked_event,
)


class GatedClient(FakeChainClient):
    """Fake client whose confirmations block until released."""

    def __init__(self, name: str, chain_id: int):
        super().__init__(name, chain_id)
        self.gate = asyncio.Event()

    async def confirm(self, tx_hash: str, timeout: float) -> ReceiptStatus:
        await self.gate.wait()
        return await super().confirm(tx_hash, timeout)


async def _wait_for(condition, timeout: float = 1.0) -> None:
    for _ in range(int(timeout / 0.01)):
        if condition():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("condition not reached")


class TestLifecycle:
    """start() and stop()."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, engine: RelayEngine) -> None:
        """The engine reports running between start and stop."""
        assert not engine.is_running

        await engine.start()
        assert engine.is_running

        await asyncio.wait_for(engine.stop(), timeout=1.0)
        assert not engine.is_running

    @pytest.mark.asyncio
    async def test_stop_without_start_is_noop(self, engine: RelayEngine) -> None:
        """Stopping an engine that never started is harmless."""
        await engine.stop()
        assert not engine.is_running

    @pytest.mark.asyncio
    async def test_start_twice_keeps_one_set_of_tasks(self, engine: RelayEngine) -> None:
        """A second start does not spawn duplicate tasks."""
        await engine.start()
        subscriptions = list(engine._subscriptions)

        await engine.start()

        assert engine._subscriptions == subscriptions
        await engine.stop()


class TestRelaying:
    """Events observed on either chain are relayed to the other."""

    @pytest.mark.asyncio
    async def test_relays_both_directions(self, engine, source, destination) -> None:
        """Locks mint on the destination chain and burns unlock on the source chain."""
        locked = make_locked_event()
        burned = make_burned_event()
        source.events = [locked]
        destination.events = [burned]

        await engine.start()
        await _wait_for(
            lambda: engine.status.get(locked.source_tx_hash).state == TxState.COMPLETE
            and engine.status.get(burned.source_tx_hash).state == TxState.COMPLETE
        )
        await engine.stop()

        assert [name for name, _ in destination.submissions] == ["mintTokens"]
        assert [name for name, _ in source.submissions] == ["unlockEth"]
        assert source.submissions[0][1][3] == DESTINATION_CHAIN_ID

    @pytest.mark.asyncio
    async def test_duplicate_delivery_submits_once(self, engine, source, destination) -> None:
        """A log delivered twice is relayed once."""
        locked = make_locked_event()
        source.events = [locked, locked]

        await engine.start()
        await _wait_for(lambda: engine.status.get(locked.source_tx_hash).state == TxState.COMPLETE)
        await engine.stop()

        assert len(destination.submissions) == 1
        assert engine.dispatcher.seen_count == 1

    @pytest.mark.asyncio
    async def test_stop_waits_for_in_flight_dispatch(self, settings, source) -> None:
        """Shutdown lets a pending confirmation finish."""
        destination = GatedClient("destination", DESTINATION_CHAIN_ID)
        engine = RelayEngine(settings, source_client=source, destination_client=destination)  # type: ignore[arg-type]
        locked = make_locked_event()
        source.events = [locked]

        await engine.start()
        await _wait_for(lambda: len(destination.submissions) == 1)

        stopping = asyncio.create_task(engine.stop())
        await asyncio.sleep(0.05)
        assert not stopping.done()
        assert engine.status.get(locked.source_tx_hash).state == TxState.PROCESSING

        destination.gate.set()
        await asyncio.wait_for(stopping, timeout=1.0)

        assert engine.status.get(locked.source_tx_hash).state == TxState.COMPLETE


class BrokenSubscriptionClient(FakeChainClient):
    """Fake client whose event stream fails on first use."""

    async def subscribe(self, kind, stop_event, from_block=None):
        raise RuntimeError("filter not found")
        yield  # pragma: no cover


class TestStartup:
    """Startup checks and failure reporting."""

    @pytest.mark.asyncio
    async def test_unreachable_rpc_logged_and_balance_skipped(self, engine, source, destination) -> None:
        """An unreachable chain is reported and its balance is not queried."""
        destination.connected = False

        with capture_logs() as logs:
            await engine.log_startup()

        unreachable = [entry for entry in logs if entry["event"] == "rpc_unreachable"]
        assert [entry["chain"] for entry in unreachable] == ["destination"]
        assert destination.balance_calls == 0
        assert source.balance_calls == 1
        balances = [entry for entry in logs if entry["event"] == "relayer_balance"]
        assert [entry["chain"] for entry in balances] == ["source"]
        assert balances[0]["balance_eth"] == "1"

    @pytest.mark.asyncio
    async def test_failed_subscription_is_logged(self, settings, destination) -> None:
        """A subscription that dies is reported instead of vanishing."""
        source = BrokenSubscriptionClient("source", SOURCE_CHAIN_ID)
        engine = RelayEngine(settings, source_client=source, destination_client=destination)  # type: ignore[arg-type]

        with capture_logs() as logs:
            await engine.start()
            await _wait_for(lambda: engine._subscriptions[0].done())
            await asyncio.wait_for(engine.stop(), timeout=1.0)

        failures = [entry for entry in logs if entry["event"] == "subscription_failed"]
        assert len(failures) == 1
        assert failures[0]["chain"] == "source"
        assert failures[0]["kind"] == "Locked"
        assert failures[0]["error"] == "filter not found"
