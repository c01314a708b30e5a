"""
Error types for the bridge relayer.
"""

from typing import Optional


# Selector of the bridge contracts' `AlreadyProcessed()` custom error.
ALREADY_PROCESSED_SELECTOR = "0x57eee766"


class RelayerError(Exception):
    """Base exception for all relayer errors."""


class ConfigurationError(RelayerError):
    """Missing or invalid configuration. Fatal at startup."""


class SubmissionError(RelayerError):
    """Signing or RPC failure while building/broadcasting a transaction."""

    def __init__(self, message: str, function_name: str = "", data: Optional[str] = None):
        self.function_name = function_name
        self.data = data
        super().__init__(message)


class ConfirmationTimeout(RelayerError, TimeoutError):
    """No receipt arrived within the confirmation timeout."""

    def __init__(self, tx_hash: str, timeout: float):
        self.tx_hash = tx_hash
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout}s waiting for receipt of {tx_hash}")


class TransactionReverted(RelayerError):
    """The transaction was mined with status 0."""

    def __init__(self, tx_hash: str):
        self.tx_hash = tx_hash
        super().__init__(f"Transaction reverted: {tx_hash}")


def is_already_processed(error: BaseException) -> bool:
    """
    Check whether an error is the contracts' "already processed" rejection.

    web3 surfaces custom errors as ContractCustomError whose message and
    `data` carry the 4-byte selector; SubmissionError keeps the same data.
    """
    data = getattr(error, "data", None)
    if isinstance(data, str) and data.lower().startswith(ALREADY_PROCESSED_SELECTOR):
        return True
    return ALREADY_PROCESSED_SELECTOR in str(error).lower()
