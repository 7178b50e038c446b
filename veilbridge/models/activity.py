"""Per-user activity feed rows."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict

from .constants import ZERO_ADDRESS


class ActivityType(str, Enum):
    """Kind of activity row."""
    DEPOSIT = "DEPOSIT"
    SEND = "SEND"
    RECEIVE = "RECEIVE"


def activity_id(user: str, timestamp: int, activity_type: ActivityType, suffix: str) -> str:
    """Composite row identity; the suffix separates rows in the same second."""
    return f"{user}-{timestamp}-{activity_type.value}-{suffix}"


class UserActivity(BaseModel):
    """
    A read-optimized history row for one user.

    SEND rows are written with amount 0 when a transfer is first seen and
    filled in once the decrypted payload is known.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str
    user: str
    type: ActivityType
    deposit_id: Optional[str] = Field(default=None, alias="depositId")
    transfer_id: Optional[str] = Field(default=None, alias="transferId")
    amount: int = 0
    token: str = ZERO_ADDRESS
    is_native: bool = Field(default=False, alias="isNative")
    timestamp: int
    block_number: int = Field(alias="blockNumber")
    tx_hash: str = Field(alias="txHash")
    receiver: Optional[str] = Field(default=None, description="Set on SEND rows")
    sender: Optional[str] = Field(default=None, description="Set on RECEIVE rows")
