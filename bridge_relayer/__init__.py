"""
EVM Bridge Relayer

Watches the BridgeSource contract for EthLocked events and mints wrapped
tokens on the destination chain; watches BridgeDestination for
TokensBurned events and unlocks ETH on the source chain. Exposes a small
HTTP API with per-transaction bridge status.

Usage:
    # Run the relayer and its status API
    bridge-relayer run

    # Query a running relayer
    bridge-relayer status 0xabc...
    bridge-relayer retry-queue
"""

__version__ = "0.1.0"

from .config import Settings
from .dispatcher import EventDispatcher
from .engine import RelayEngine
from .evm import ChainClient, confirm_with_retry
from .models import BridgeEvent, FailedOperation, TransactionStatus
from .retry import RetryQueue
from .status import StatusStore

__all__ = [
    "__version__",
    "Settings",
    "EventDispatcher",
    "RelayEngine",
    "ChainClient",
    "confirm_with_retry",
    "BridgeEvent",
    "FailedOperation",
    "TransactionStatus",
    "RetryQueue",
    "StatusStore",
]
