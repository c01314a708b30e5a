"""
Pydantic models for API responses.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    """Liveness response."""

    ok: bool = Field(True, description="Always true while the process is serving")
    timestamp: int = Field(..., description="Server time (ms since epoch)")


class StatusResponse(BaseModel):
    """Status of a bridge operation keyed by its source tx hash."""

    model_config = ConfigDict(populate_by_name=True)

    status: str = Field(..., description="pending | processing | complete | failed")
    dest_tx_hash: Optional[str] = Field(None, alias="destTxHash", description="Destination tx hash (complete only)")
    error: Optional[str] = Field(None, description="Failure reason (failed only)")
    timestamp: int = Field(..., description="Last update (ms since epoch)")


class RetryQueueItem(BaseModel):
    """An operation waiting in the retry queue."""

    model_config = ConfigDict(populate_by_name=True)

    type: str = Field(..., description="mint | unlock")
    source_tx_hash: str = Field(..., alias="sourceTxHash")
    recipient: str
    amount: str = Field(..., description="Amount in wei (decimal string)")
    nonce: str = Field(..., description="Source contract nonce (decimal string)")
    source_chain_id: int = Field(..., alias="sourceChainId")
    attempts: int
    last_error: str = Field(..., alias="lastError")
    created_at: int = Field(..., alias="createdAt")


class RetryQueueResponse(BaseModel):
    """Retry queue contents, head first."""

    count: int
    items: list[RetryQueueItem]
