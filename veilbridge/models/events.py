"""Decoded contract events as delivered by a chain event source."""

from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field, ConfigDict


class Chain(str, Enum):
    """Which side of the bridge an event came from."""
    SOURCE = "source"
    DESTINATION = "destination"


class EventType(str, Enum):
    """Contract events the indexer subscribes to."""
    # Ingress (source chain)
    DEPOSIT_CREATED = "DepositCreated"
    INSTRUCTIONS_RECEIVED = "EncryptedInstructionsReceived"
    INSTRUCTIONS_PROCESSED = "EncryptedInstructionsProcessed"
    # Vault (destination chain)
    TRANSFER_STORED = "EncryptedTransferStored"
    TRANSFER_ACKNOWLEDGED = "TransferAcknowledged"
    PAYLOAD_PROCESSED = "PrivatePayloadProcessed"


SOURCE_EVENTS = (
    EventType.DEPOSIT_CREATED,
    EventType.INSTRUCTIONS_RECEIVED,
    EventType.INSTRUCTIONS_PROCESSED,
)

DESTINATION_EVENTS = (
    EventType.TRANSFER_STORED,
    EventType.TRANSFER_ACKNOWLEDGED,
    EventType.PAYLOAD_PROCESSED,
)


class EventContext(BaseModel):
    """Transaction metadata attached to every event."""
    model_config = ConfigDict(populate_by_name=True)

    block_number: int = Field(alias="blockNumber")
    block_timestamp: int = Field(alias="blockTimestamp", description="Seconds")
    transaction_hash: str = Field(alias="transactionHash")
    transaction_sender: str = Field(alias="transactionSender")
    raw_transaction_input: Optional[str] = Field(
        default=None,
        alias="rawTransactionInput",
        description="Hex-encoded call data of the emitting transaction",
    )
    log_index: int = Field(default=0, alias="logIndex")


class ChainEvent(BaseModel):
    """One decoded event plus its context."""

    chain: Chain
    type: EventType
    args: dict[str, Any]
    context: EventContext

    @property
    def sort_key(self) -> tuple[int, int]:
        return (self.context.block_number, self.context.log_index)
