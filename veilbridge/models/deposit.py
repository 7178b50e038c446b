"""Deposit model for pre-funded value escrowed on the source chain."""

from typing import Optional
from pydantic import BaseModel, Field, ConfigDict


class Deposit(BaseModel):
    """
    A deposit held by the ingress contract.

    Created once from a DepositCreated event and afterwards only debited by
    completed transfers. remaining_amount never drops below zero.
    """
    model_config = ConfigDict(populate_by_name=True)

    deposit_id: str = Field(alias="depositId", description="32-byte deposit identifier")
    depositor: str = Field(description="Depositor address")
    token: str = Field(description="Token address, zero address for the native asset")
    initial_amount: int = Field(alias="initialAmount", ge=0)
    remaining_amount: int = Field(alias="remainingAmount", ge=0)
    is_native: bool = Field(alias="isNative")
    released: bool = False
    created_at: int = Field(alias="createdAt", description="Block timestamp in seconds")
    created_at_block: int = Field(alias="createdAtBlock")
    tx_hash: str = Field(alias="txHash", description="Funding transaction hash")
    last_used_at: Optional[int] = Field(default=None, alias="lastUsedAt")
