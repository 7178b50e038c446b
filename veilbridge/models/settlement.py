"""Settlement outcome reported by the processor."""

from typing import Optional
from pydantic import BaseModel, Field, ConfigDict


class SettlementResult(BaseModel):
    """
    Outcome of driving one transfer to settlement.

    A failed result is reported, never raised; the transfer stays eligible
    for the next poll cycle.
    """
    model_config = ConfigDict(populate_by_name=True)

    transfer_id: str = Field(alias="transferId")
    success: bool
    tx_hash: Optional[str] = Field(default=None, alias="txHash", description="Settlement transaction, if this run sent one")
    error: Optional[str] = None
    attempts: int = 0
