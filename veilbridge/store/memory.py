"""In-process record store."""

from typing import Optional

from veilbridge.errors import DuplicateRecordError
from veilbridge.models import (
    ActivityType,
    Deposit,
    PendingCommitment,
    PendingCompletion,
    Transfer,
    TransferStatus,
    UserActivity,
)
from .base import RecordStore


class InMemoryRecordStore(RecordStore):
    """
    Record store backed by dictionaries.

    Records are copied on the way in and out so callers never share state
    with the store. Used by tests and by single-process dry runs.
    """

    def __init__(self):
        self.deposits: dict[str, Deposit] = {}
        self.transfers: dict[str, Transfer] = {}
        self.activity: dict[str, UserActivity] = {}
        self.pending: dict[str, PendingCommitment] = {}
        self.pending_completions: dict[str, PendingCompletion] = {}
        self.checkpoints: dict[str, int] = {}

    async def get_deposit(self, deposit_id: str) -> Optional[Deposit]:
        deposit = self.deposits.get(deposit_id)
        return deposit.model_copy() if deposit else None

    async def insert_deposit(self, deposit: Deposit) -> None:
        if deposit.deposit_id in self.deposits:
            raise DuplicateRecordError("deposit", deposit.deposit_id)
        self.deposits[deposit.deposit_id] = deposit.model_copy()

    async def update_deposit(self, deposit: Deposit) -> None:
        self.deposits[deposit.deposit_id] = deposit.model_copy()

    async def list_deposits(self, depositor: Optional[str] = None) -> list[Deposit]:
        deposits = [
            d.model_copy() for d in self.deposits.values()
            if depositor is None or d.depositor == depositor
        ]
        deposits.sort(key=lambda d: (d.created_at_block, d.created_at))
        return deposits

    async def get_transfer(self, transfer_id: str) -> Optional[Transfer]:
        transfer = self.transfers.get(transfer_id)
        return transfer.model_copy() if transfer else None

    async def insert_transfer(self, transfer: Transfer) -> bool:
        if transfer.transfer_id in self.transfers:
            return False
        self.transfers[transfer.transfer_id] = transfer.model_copy()
        return True

    async def save_transfer(self, transfer: Transfer) -> None:
        self.transfers[transfer.transfer_id] = transfer.model_copy()

    async def find_transfers(
        self,
        status: Optional[TransferStatus] = None,
        sender: Optional[str] = None,
        deposit_id: Optional[str] = None,
    ) -> list[Transfer]:
        transfers = [
            t.model_copy() for t in self.transfers.values()
            if (status is None or t.status == status)
            and (sender is None or t.sender == sender)
            and (deposit_id is None or t.deposit_id == deposit_id)
        ]
        transfers.sort(key=lambda t: t.initiated_at)
        return transfers

    async def get_activity(self, activity_id: str) -> Optional[UserActivity]:
        row = self.activity.get(activity_id)
        return row.model_copy() if row else None

    async def insert_activity(self, activity: UserActivity) -> bool:
        if activity.id in self.activity:
            return False
        self.activity[activity.id] = activity.model_copy()
        return True

    async def update_activity(self, activity: UserActivity) -> None:
        self.activity[activity.id] = activity.model_copy()

    async def list_activity(
        self,
        user: str,
        activity_type: Optional[ActivityType] = None,
    ) -> list[UserActivity]:
        rows = [
            a.model_copy() for a in self.activity.values()
            if a.user == user and (activity_type is None or a.type == activity_type)
        ]
        rows.sort(key=lambda a: a.timestamp, reverse=True)
        return rows

    async def save_pending_commitment(self, pending: PendingCommitment) -> None:
        self.pending[pending.encrypted_data_hash] = pending.model_copy()

    async def get_pending_commitment(self, encrypted_data_hash: str) -> Optional[PendingCommitment]:
        pending = self.pending.get(encrypted_data_hash)
        return pending.model_copy() if pending else None

    async def delete_pending_commitment(self, encrypted_data_hash: str) -> None:
        self.pending.pop(encrypted_data_hash, None)

    async def list_pending_commitments(self) -> list[PendingCommitment]:
        return sorted(
            (p.model_copy() for p in self.pending.values()),
            key=lambda p: p.block_number,
        )

    async def save_pending_completion(self, pending: PendingCompletion) -> None:
        self.pending_completions[pending.encrypted_data_hash] = pending.model_copy()

    async def delete_pending_completion(self, encrypted_data_hash: str) -> None:
        self.pending_completions.pop(encrypted_data_hash, None)

    async def list_pending_completions(self) -> list[PendingCompletion]:
        return sorted(
            (p.model_copy() for p in self.pending_completions.values()),
            key=lambda p: p.block_number,
        )

    async def get_checkpoint(self, chain: str) -> Optional[int]:
        return self.checkpoints.get(chain)

    async def save_checkpoint(self, chain: str, block_number: int) -> None:
        self.checkpoints[chain] = block_number
