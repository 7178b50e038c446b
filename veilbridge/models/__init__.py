from .constants import ZERO_ADDRESS, ZERO_BYTES32, is_unset
from .deposit import Deposit
from .transfer import Transfer, TransferStatus, PendingCommitment, PendingCompletion
from .activity import UserActivity, ActivityType, activity_id
from .events import (
    Chain,
    ChainEvent,
    EventContext,
    EventType,
    SOURCE_EVENTS,
    DESTINATION_EVENTS,
)
from .settlement import SettlementResult

__all__ = [
    "ZERO_ADDRESS",
    "ZERO_BYTES32",
    "is_unset",
    "Deposit",
    "Transfer",
    "TransferStatus",
    "PendingCommitment",
    "PendingCompletion",
    "UserActivity",
    "ActivityType",
    "activity_id",
    "Chain",
    "ChainEvent",
    "EventContext",
    "EventType",
    "SOURCE_EVENTS",
    "DESTINATION_EVENTS",
    "SettlementResult",
]
