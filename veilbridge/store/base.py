"""Abstract base class for record stores."""

from abc import ABC, abstractmethod
from typing import Optional

from veilbridge.models import (
    ActivityType,
    Deposit,
    PendingCommitment,
    PendingCompletion,
    Transfer,
    TransferStatus,
    UserActivity,
)


class RecordStore(ABC):
    """
    Durable keyed storage for deposits, transfers and activity rows.

    The reconciliation engine is the only writer. Every write touches a single
    record by primary key, so implementations only need per-record atomicity.
    """

    # Deposits

    @abstractmethod
    async def get_deposit(self, deposit_id: str) -> Optional[Deposit]:
        """Point lookup by deposit id."""
        pass

    @abstractmethod
    async def insert_deposit(self, deposit: Deposit) -> None:
        """
        Insert a new deposit.

        Raises:
            DuplicateRecordError: if the deposit id is already present
        """
        pass

    @abstractmethod
    async def update_deposit(self, deposit: Deposit) -> None:
        """Overwrite an existing deposit keyed by its id."""
        pass

    @abstractmethod
    async def list_deposits(self, depositor: Optional[str] = None) -> list[Deposit]:
        """List deposits, optionally filtered by depositor, oldest first."""
        pass

    # Transfers

    @abstractmethod
    async def get_transfer(self, transfer_id: str) -> Optional[Transfer]:
        """Point lookup by transfer id."""
        pass

    @abstractmethod
    async def insert_transfer(self, transfer: Transfer) -> bool:
        """
        Insert a transfer, ignoring it if the id already exists.

        Returns:
            True if a row was written, False if one was already present
        """
        pass

    @abstractmethod
    async def save_transfer(self, transfer: Transfer) -> None:
        """Upsert a transfer keyed by its id."""
        pass

    @abstractmethod
    async def find_transfers(
        self,
        status: Optional[TransferStatus] = None,
        sender: Optional[str] = None,
        deposit_id: Optional[str] = None,
    ) -> list[Transfer]:
        """
        Filter transfers.

        Args:
            status: Only transfers currently in this status
            sender: Only transfers from this sender
            deposit_id: Only transfers debiting this deposit

        Returns:
            Matching transfers ordered by initiation time ascending
        """
        pass

    # Activity

    @abstractmethod
    async def get_activity(self, activity_id: str) -> Optional[UserActivity]:
        """Point lookup by composite activity id."""
        pass

    @abstractmethod
    async def insert_activity(self, activity: UserActivity) -> bool:
        """Insert an activity row, ignoring duplicates. Returns True if written."""
        pass

    @abstractmethod
    async def update_activity(self, activity: UserActivity) -> None:
        """Overwrite an existing activity row."""
        pass

    @abstractmethod
    async def list_activity(
        self,
        user: str,
        activity_type: Optional[ActivityType] = None,
    ) -> list[UserActivity]:
        """Activity rows for a user, newest first."""
        pass

    # Unresolved commitments

    @abstractmethod
    async def save_pending_commitment(self, pending: PendingCommitment) -> None:
        """Upsert an unresolved commitment keyed by its hash."""
        pass

    @abstractmethod
    async def get_pending_commitment(self, encrypted_data_hash: str) -> Optional[PendingCommitment]:
        pass

    @abstractmethod
    async def delete_pending_commitment(self, encrypted_data_hash: str) -> None:
        pass

    @abstractmethod
    async def list_pending_commitments(self) -> list[PendingCommitment]:
        """All unresolved commitments, oldest block first."""
        pass

    @abstractmethod
    async def save_pending_completion(self, pending: PendingCompletion) -> None:
        """Upsert a completion echo that could not be applied yet."""
        pass

    @abstractmethod
    async def delete_pending_completion(self, encrypted_data_hash: str) -> None:
        pass

    @abstractmethod
    async def list_pending_completions(self) -> list[PendingCompletion]:
        """All parked completion echoes, oldest block first."""
        pass

    # Indexer checkpoints

    @abstractmethod
    async def get_checkpoint(self, chain: str) -> Optional[int]:
        """Last fully indexed block for a chain, or None if never indexed."""
        pass

    @abstractmethod
    async def save_checkpoint(self, chain: str, block_number: int) -> None:
        pass

    async def close(self) -> None:
        """
        Clean up resources (e.g., dispose connection pools).

        Override this if the store holds resources that need cleanup.
        """
        pass
