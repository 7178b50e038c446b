"""Transfer model tracking one private transfer across both chains."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict

from .constants import ZERO_ADDRESS, ZERO_BYTES32, is_unset


class TransferStatus(str, Enum):
    """Lifecycle status. Only ever moves forward."""
    PENDING = "PENDING"
    STORED = "STORED"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    COMPLETED = "COMPLETED"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)

    def advance(self, target: "TransferStatus") -> "TransferStatus":
        """Return whichever of self and target is further along."""
        return target if target.rank > self.rank else self


_STATUS_ORDER = [
    TransferStatus.PENDING,
    TransferStatus.STORED,
    TransferStatus.ACKNOWLEDGED,
    TransferStatus.COMPLETED,
]


class Transfer(BaseModel):
    """
    A cross-chain transfer record.

    May be created by whichever chain's event is seen first. Records created
    from destination-chain events carry placeholder origin fields
    (origin_resolved is False) until the source-chain event back-fills them.
    """
    model_config = ConfigDict(populate_by_name=True)

    transfer_id: str = Field(alias="transferId")
    deposit_id: str = Field(default=ZERO_BYTES32, alias="depositId")

    # Source chain (ingress)
    sender: str = ZERO_ADDRESS
    destination_domain: int = Field(alias="destinationDomain")
    encrypted_data_hash: Optional[str] = Field(default=None, alias="encryptedDataHash")
    initiated_at: int = Field(alias="initiatedAt")
    initiated_at_block: int = Field(alias="initiatedAtBlock")
    initiated_tx_hash: str = Field(alias="initiatedTxHash")
    origin_resolved: bool = Field(default=False, alias="originResolved")

    # Destination chain (vault), known after decryption
    receiver: Optional[str] = None
    token: Optional[str] = None
    amount: Optional[int] = None
    is_native: Optional[bool] = Field(default=None, alias="isNative")

    status: TransferStatus = TransferStatus.PENDING

    stored_at: Optional[int] = Field(default=None, alias="storedAt")
    stored_at_block: Optional[int] = Field(default=None, alias="storedAtBlock")
    acknowledged_at: Optional[int] = Field(default=None, alias="acknowledgedAt")
    acknowledged_at_block: Optional[int] = Field(default=None, alias="acknowledgedAtBlock")
    processed_at: Optional[int] = Field(default=None, alias="processedAt")
    processed_at_block: Optional[int] = Field(default=None, alias="processedAtBlock")

    # Completion echo back on the source chain
    completed_at: Optional[int] = Field(default=None, alias="completedAt")
    completed_at_block: Optional[int] = Field(default=None, alias="completedAtBlock")
    completed_tx_hash: Optional[str] = Field(default=None, alias="completedTxHash")

    deposit_debited: bool = Field(default=False, alias="depositDebited")

    @property
    def has_payload(self) -> bool:
        """Whether the decrypted payload has been recorded."""
        return self.amount is not None

    @property
    def deposit_resolved(self) -> bool:
        return not is_unset(self.deposit_id)

    @property
    def sender_resolved(self) -> bool:
        return not is_unset(self.sender)


class PendingCommitment(BaseModel):
    """A received commitment that could not yet be mapped to a transfer id."""
    model_config = ConfigDict(populate_by_name=True)

    encrypted_data_hash: str = Field(alias="encryptedDataHash")
    block_number: int = Field(alias="blockNumber")
    block_timestamp: int = Field(alias="blockTimestamp")
    transaction_hash: str = Field(alias="transactionHash")
    transaction_sender: str = Field(alias="transactionSender")
    raw_transaction_input: Optional[str] = Field(default=None, alias="rawTransactionInput")
    attempts: int = 0


class PendingCompletion(BaseModel):
    """A completion echo whose transfer could not be found when it was indexed."""
    model_config = ConfigDict(populate_by_name=True)

    encrypted_data_hash: str = Field(alias="encryptedDataHash")
    block_number: int = Field(alias="blockNumber")
    block_timestamp: int = Field(alias="blockTimestamp")
    transaction_hash: str = Field(alias="transactionHash")
    attempts: int = 0
