"""
Pure record transitions for the reconciliation engine.

Every function takes the current record (or None) plus the data carried by
one event and returns the new record without touching storage. Each event
owns a disjoint set of fields and status is the furthest status reached, so
applying the same events in any order, any number of times, converges on the
same record.
"""

from typing import Optional

from veilbridge.models import (
    ActivityType,
    Deposit,
    EventContext,
    Transfer,
    TransferStatus,
    UserActivity,
    ZERO_ADDRESS,
    ZERO_BYTES32,
    activity_id,
    is_unset,
)
from .resolver import Resolution


def placeholder_transfer(
    transfer_id: str,
    context: EventContext,
    default_domain: int,
    status: TransferStatus,
) -> Transfer:
    """
    A transfer first seen on the destination chain.

    Origin fields are approximated from the destination event until the
    source-chain event back-fills them.
    """
    return Transfer(
        transfer_id=transfer_id,
        deposit_id=ZERO_BYTES32,
        sender=ZERO_ADDRESS,
        destination_domain=default_domain,
        encrypted_data_hash=None,
        initiated_at=context.block_timestamp,
        initiated_at_block=context.block_number,
        initiated_tx_hash=context.transaction_hash,
        origin_resolved=False,
        status=status,
    )


def apply_received(
    current: Optional[Transfer],
    resolution: Resolution,
    encrypted_data_hash: str,
    context: EventContext,
    default_domain: int,
) -> Transfer:
    """
    EncryptedInstructionsReceived: create in PENDING, or back-fill a placeholder.

    Never changes status. A record whose origin is already resolved only gains
    a deposit id it was missing.
    """
    deposit_id = resolution.deposit_id or ZERO_BYTES32
    sender = resolution.sender or context.transaction_sender

    if current is None:
        return Transfer(
            transfer_id=resolution.transfer_id,
            deposit_id=deposit_id,
            sender=sender,
            destination_domain=resolution.destination_domain or default_domain,
            encrypted_data_hash=encrypted_data_hash,
            initiated_at=context.block_timestamp,
            initiated_at_block=context.block_number,
            initiated_tx_hash=context.transaction_hash,
            origin_resolved=True,
            status=TransferStatus.PENDING,
        )

    if current.origin_resolved:
        if not current.deposit_resolved and not is_unset(deposit_id):
            return current.model_copy(update={"deposit_id": deposit_id})
        return current

    return current.model_copy(update={
        "deposit_id": deposit_id,
        "sender": sender,
        "destination_domain": resolution.destination_domain or default_domain,
        "encrypted_data_hash": encrypted_data_hash,
        "initiated_at": context.block_timestamp,
        "initiated_at_block": context.block_number,
        "initiated_tx_hash": context.transaction_hash,
        "origin_resolved": True,
    })


def apply_stored(
    current: Optional[Transfer],
    transfer_id: str,
    context: EventContext,
    default_domain: int,
) -> Transfer:
    """EncryptedTransferStored: advance to STORED or create a STORED placeholder."""
    if current is None:
        current = placeholder_transfer(transfer_id, context, default_domain, TransferStatus.STORED)
    update = {"status": current.status.advance(TransferStatus.STORED)}
    if current.stored_at is None:
        update["stored_at"] = context.block_timestamp
        update["stored_at_block"] = context.block_number
    return current.model_copy(update=update)


def apply_acknowledged(
    current: Optional[Transfer],
    transfer_id: str,
    context: EventContext,
    default_domain: int,
) -> Transfer:
    """TransferAcknowledged: advance to ACKNOWLEDGED or create a placeholder."""
    if current is None:
        current = placeholder_transfer(transfer_id, context, default_domain, TransferStatus.ACKNOWLEDGED)
    update = {"status": current.status.advance(TransferStatus.ACKNOWLEDGED)}
    if current.acknowledged_at is None:
        update["acknowledged_at"] = context.block_timestamp
        update["acknowledged_at_block"] = context.block_number
    return current.model_copy(update=update)


def apply_payload(
    current: Optional[Transfer],
    transfer_id: str,
    receiver: str,
    token: str,
    amount: int,
    is_native: bool,
    context: EventContext,
    default_domain: int,
) -> Transfer:
    """
    PrivatePayloadProcessed: record the decrypted payload exactly once.

    Does not move status; a missing record is created as a PENDING placeholder.
    """
    if current is None:
        current = placeholder_transfer(transfer_id, context, default_domain, TransferStatus.PENDING)
    if current.has_payload:
        return current
    return current.model_copy(update={
        "receiver": receiver,
        "token": token,
        "amount": amount,
        "is_native": is_native,
        "processed_at": context.block_timestamp,
        "processed_at_block": context.block_number,
    })


def apply_completed(current: Transfer, context: EventContext) -> Transfer:
    """EncryptedInstructionsProcessed: the release came back to the source chain."""
    update = {"status": current.status.advance(TransferStatus.COMPLETED)}
    if current.completed_at is None:
        update["completed_at"] = context.block_timestamp
        update["completed_at_block"] = context.block_number
        update["completed_tx_hash"] = context.transaction_hash
    return current.model_copy(update=update)


def is_debit_due(transfer: Transfer) -> bool:
    """A completed transfer with a known amount and deposit that has not been debited."""
    return (
        transfer.status == TransferStatus.COMPLETED
        and not transfer.deposit_debited
        and transfer.has_payload
        and transfer.amount > 0
        and transfer.deposit_resolved
    )


def debit_deposit(deposit: Deposit, amount: int, timestamp: int) -> Deposit:
    """Subtract a transfer amount, clamped at zero; released once nothing remains."""
    remaining = deposit.remaining_amount - amount if deposit.remaining_amount >= amount else 0
    return deposit.model_copy(update={
        "remaining_amount": remaining,
        "released": remaining == 0,
        "last_used_at": timestamp,
    })


def deposit_activity(deposit: Deposit) -> UserActivity:
    return UserActivity(
        id=activity_id(deposit.depositor, deposit.created_at, ActivityType.DEPOSIT, deposit.deposit_id),
        user=deposit.depositor,
        type=ActivityType.DEPOSIT,
        deposit_id=deposit.deposit_id,
        amount=deposit.initial_amount,
        token=deposit.token,
        is_native=deposit.is_native,
        timestamp=deposit.created_at,
        block_number=deposit.created_at_block,
        tx_hash=deposit.tx_hash,
    )


def send_activity_id(transfer: Transfer) -> str:
    return activity_id(transfer.sender, transfer.initiated_at, ActivityType.SEND, transfer.transfer_id)


def send_activity(transfer: Transfer) -> UserActivity:
    """SEND row for a transfer; amount stays 0 until the payload is decrypted."""
    return with_payload(UserActivity(
        id=send_activity_id(transfer),
        user=transfer.sender,
        type=ActivityType.SEND,
        deposit_id=transfer.deposit_id if transfer.deposit_resolved else None,
        transfer_id=transfer.transfer_id,
        timestamp=transfer.initiated_at,
        block_number=transfer.initiated_at_block,
        tx_hash=transfer.initiated_tx_hash,
    ), transfer)


def with_payload(activity: UserActivity, transfer: Transfer) -> UserActivity:
    """Copy decrypted amount/token/receiver onto a SEND row, if known."""
    if not transfer.has_payload:
        return activity
    return activity.model_copy(update={
        "amount": transfer.amount,
        "token": transfer.token or ZERO_ADDRESS,
        "is_native": bool(transfer.is_native),
        "receiver": transfer.receiver,
    })


def receive_activity(transfer: Transfer, context: EventContext) -> Optional[UserActivity]:
    """
    RECEIVE row for the decrypted receiver.

    Keyed on the payload timestamp so the payload event and the completion
    echo address the same row.
    """
    if is_unset(transfer.receiver) or not transfer.has_payload:
        return None
    timestamp = transfer.processed_at if transfer.processed_at is not None else context.block_timestamp
    block_number = (
        transfer.processed_at_block if transfer.processed_at_block is not None else context.block_number
    )
    return UserActivity(
        id=activity_id(transfer.receiver, timestamp, ActivityType.RECEIVE, transfer.transfer_id),
        user=transfer.receiver,
        type=ActivityType.RECEIVE,
        deposit_id=transfer.deposit_id if transfer.deposit_resolved else None,
        transfer_id=transfer.transfer_id,
        amount=transfer.amount,
        token=transfer.token or ZERO_ADDRESS,
        is_native=bool(transfer.is_native),
        timestamp=timestamp,
        block_number=block_number,
        tx_hash=context.transaction_hash,
        sender=transfer.sender if transfer.sender_resolved else None,
    )
