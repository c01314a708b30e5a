"""
EVM chain client: submits bridge actions, waits for receipts and
streams bridge events from one chain.
"""

import asyncio
from typing import Any, AsyncIterator, Mapping, Optional, Sequence

import structlog
from eth_account import Account
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import TimeExhausted

from .errors import ConfirmationTimeout, SubmissionError
from .models import BridgeEvent, EventKind, ReceiptStatus

logger = structlog.get_logger()


# BridgeSource ABI (minimal: EthLocked + unlockEth)
BRIDGE_SOURCE_ABI = [
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "sender", "type": "address"},
            {"indexed": True, "name": "recipient", "type": "address"},
            {"indexed": False, "name": "amount", "type": "uint256"},
            {"indexed": False, "name": "nonce", "type": "uint256"},
            {"indexed": False, "name": "destinationChainId", "type": "uint256"},
        ],
        "name": "EthLocked",
        "type": "event",
    },
    {
        "inputs": [
            {"name": "recipient", "type": "address"},
            {"name": "amount", "type": "uint256"},
            {"name": "sourceNonce", "type": "uint256"},
            {"name": "sourceChainId", "type": "uint256"},
        ],
        "name": "unlockEth",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {"inputs": [], "name": "AlreadyProcessed", "type": "error"},
]

# BridgeDestination ABI (minimal: TokensBurned + mintTokens)
BRIDGE_DESTINATION_ABI = [
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "wrappedToken", "type": "address"},
            {"indexed": True, "name": "sender", "type": "address"},
            {"indexed": True, "name": "recipient", "type": "address"},
            {"indexed": False, "name": "amount", "type": "uint256"},
            {"indexed": False, "name": "nonce", "type": "uint256"},
            {"indexed": False, "name": "destinationChainId", "type": "uint256"},
        ],
        "name": "TokensBurned",
        "type": "event",
    },
    {
        "inputs": [
            {"name": "sourceToken", "type": "address"},
            {"name": "recipient", "type": "address"},
            {"name": "amount", "type": "uint256"},
            {"name": "sourceNonce", "type": "uint256"},
            {"name": "sourceChainId", "type": "uint256"},
        ],
        "name": "mintTokens",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {"inputs": [], "name": "AlreadyProcessed", "type": "error"},
]

EVENT_NAMES = {
    EventKind.LOCKED: "EthLocked",
    EventKind.BURNED: "TokensBurned",
}

# Most public RPCs cap eth_getLogs ranges
MAX_BLOCK_RANGE = 1000


def to_hex(value: Any) -> str:
    """Normalize a tx hash / bytes value to a 0x-prefixed hex string."""
    if isinstance(value, str):
        return value if value.startswith("0x") else f"0x{value}"
    hex_value = bytes(value).hex()
    return hex_value if hex_value.startswith("0x") else f"0x{hex_value}"


def event_topic(abi: Sequence[Mapping[str, Any]], event_name: str) -> str:
    """Compute topic0 for an event from its ABI entry."""
    for item in abi:
        if item.get("type") == "event" and item.get("name") == event_name:
            types = ",".join(i["type"] for i in item["inputs"])
            return to_hex(Web3.keccak(text=f"{event_name}({types})"))
    raise ValueError(f"Event {event_name} not in ABI")


def decode_bridge_event(
    kind: EventKind, event_data: Mapping[str, Any], chain_id: int
) -> BridgeEvent:
    """
    Convert a decoded log (web3 EventData) into a BridgeEvent.

    `chain_id` is the chain the log was observed on, i.e. the event's
    source chain.
    """
    args = event_data["args"]
    return BridgeEvent(
        kind=kind,
        source_chain=chain_id,
        destination_chain=int(args["destinationChainId"]),
        sender=args["sender"],
        recipient=args["recipient"],
        amount=int(args["amount"]),
        nonce=int(args["nonce"]),
        source_tx_hash=to_hex(event_data["transactionHash"]),
        log_index=int(event_data["logIndex"]),
        block_number=int(event_data.get("blockNumber") or 0),
        wrapped_token=args.get("wrappedToken") if kind == EventKind.BURNED else None,
    )


class ChainClient:
    """
    Async client for one chain's bridge contract.

    Submissions are serialized per client so that transactions from the
    relayer account get consecutive nonces.
    """

    def __init__(
        self,
        name: str,
        rpc_url: str,
        private_key: str,
        contract_address: str,
        abi: list[dict[str, Any]],
        chain_id: int,
        poll_interval: float = 4.0,
        w3: Optional[AsyncWeb3] = None,
    ):
        self.name = name
        self.chain_id = chain_id
        self.poll_interval = poll_interval
        self.w3 = w3 or AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self.account = Account.from_key(private_key)
        self.abi = abi
        self.contract = self.w3.eth.contract(
            address=Web3.to_checksum_address(contract_address),
            abi=abi,
        )
        self._submit_lock = asyncio.Lock()

        logger.info(
            "chain_client_initialized",
            chain=name,
            chain_id=chain_id,
            contract=contract_address,
            sender=self.account.address,
        )

    @property
    def address(self) -> str:
        """Relayer account address."""
        return self.account.address

    async def check_connectivity(self) -> bool:
        """Check if the RPC endpoint is reachable."""
        try:
            await self.w3.eth.block_number
            return True
        except Exception:
            return False

    async def get_balance(self) -> int:
        """Relayer account balance in wei."""
        return await self.w3.eth.get_balance(self.account.address)

    async def submit(self, function_name: str, args: Sequence[Any]) -> str:
        """
        Build, sign and broadcast a contract call.

        Gas is estimated by the node, so a call that would revert fails
        here with the revert data attached.

        Returns:
            Transaction hash (0x-prefixed hex)

        Raises:
            SubmissionError: On any signing or RPC failure
        """
        try:
            fn = getattr(self.contract.functions, function_name)(*args)
            async with self._submit_lock:
                nonce = await self.w3.eth.get_transaction_count(self.account.address, "pending")
                gas_price = await self.w3.eth.gas_price

                tx = await fn.build_transaction(
                    {
                        "from": self.account.address,
                        "nonce": nonce,
                        "gasPrice": gas_price,
                        "chainId": self.chain_id,
                    }
                )

                signed_tx = self.account.sign_transaction(tx)
                tx_hash = await self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
        except Exception as e:
            data = getattr(e, "data", None)
            raise SubmissionError(
                str(e),
                function_name=function_name,
                data=data if isinstance(data, str) else None,
            ) from e

        tx_hash_hex = to_hex(tx_hash)
        logger.info(
            "tx_sent",
            chain=self.name,
            function=function_name,
            tx_hash=tx_hash_hex,
            nonce=nonce,
        )
        return tx_hash_hex

    async def confirm(self, tx_hash: str, timeout: float) -> ReceiptStatus:
        """
        Wait for a receipt.

        Raises:
            ConfirmationTimeout: If no receipt arrives within `timeout` seconds
        """
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        except TimeExhausted as e:
            raise ConfirmationTimeout(tx_hash, timeout) from e

        if receipt["status"] == 1:
            logger.info(
                "tx_confirmed",
                chain=self.name,
                tx_hash=tx_hash,
                gas_used=receipt.get("gasUsed"),
            )
            return ReceiptStatus.SUCCESS

        logger.error("tx_reverted", chain=self.name, tx_hash=tx_hash)
        return ReceiptStatus.REVERTED

    async def subscribe(
        self,
        kind: EventKind,
        stop_event: asyncio.Event,
        from_block: Optional[int] = None,
    ) -> AsyncIterator[BridgeEvent]:
        """
        Stream bridge events of one kind, in emission order.

        Polls eth_getLogs from a block cursor. Starts at the current head block
        unless `from_block` is given. RPC errors are logged and the same
        range is fetched again on the next poll. Ends once `stop_event`
        is set.
        """
        event_name = EVENT_NAMES[kind]
        topic = event_topic(self.abi, event_name)
        contract_event = getattr(self.contract.events, event_name)()
        cursor = from_block

        logger.info("subscription_started", chain=self.name, event_name=event_name)

        while not stop_event.is_set():
            batch: list[BridgeEvent] = []
            try:
                head = await self.w3.eth.block_number
                if cursor is None:
                    cursor = head

                if head >= cursor:
                    to_block = min(head, cursor + MAX_BLOCK_RANGE - 1)
                    logs = await self.w3.eth.get_logs(
                        {
                            "address": self.contract.address,
                            "fromBlock": cursor,
                            "toBlock": to_block,
                            "topics": [topic],
                        }
                    )
                    for log in sorted(logs, key=lambda l: (l["blockNumber"], l["logIndex"])):
                        try:
                            decoded = contract_event.process_log(log)
                            batch.append(decode_bridge_event(kind, decoded, self.chain_id))
                        except Exception as e:
                            logger.warning(
                                "log_decode_failed",
                                chain=self.name,
                                event_name=event_name,
                                tx_hash=to_hex(log["transactionHash"]),
                                error=str(e),
                            )
                    cursor = to_block + 1
            except Exception as e:
                logger.warning(
                    "subscription_poll_error",
                    chain=self.name,
                    event_name=event_name,
                    cursor=cursor,
                    error=str(e),
                )

            for event in batch:
                yield event

            await wait_or_stop(stop_event, self.poll_interval)

        logger.info("subscription_stopped", chain=self.name, event_name=event_name)


async def wait_or_stop(stop_event: asyncio.Event, seconds: float) -> None:
    """Sleep for `seconds`, returning early when `stop_event` is set."""
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        pass


async def confirm_with_retry(
    client: ChainClient,
    tx_hash: str,
    timeout: float,
    attempts: int,
) -> ReceiptStatus:
    """
    Wait for a receipt, re-waiting on the same tx hash after a timeout.

    The transaction is already broadcast, so a timeout only starts another
    wait; nothing is resubmitted. The final timeout is raised.
    """
    for attempt in range(1, attempts + 1):
        logger.info(
            "waiting_for_confirmation",
            chain=client.name,
            tx_hash=tx_hash,
            attempt=attempt,
            max_attempts=attempts,
        )
        try:
            return await client.confirm(tx_hash, timeout)
        except ConfirmationTimeout:
            if attempt >= attempts:
                raise
            logger.warning("confirmation_timeout_retrying", chain=client.name, tx_hash=tx_hash)

    raise ConfirmationTimeout(tx_hash, timeout)
