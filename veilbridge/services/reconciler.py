"""Reconciliation engine: the only writer of deposits, transfers and activity."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from veilbridge.models import (
    ChainEvent,
    Deposit,
    EventContext,
    EventType,
    PendingCommitment,
    PendingCompletion,
    Transfer,
    ZERO_ADDRESS,
)
from veilbridge.store import RecordStore
from .reducers import (
    apply_acknowledged,
    apply_completed,
    apply_payload,
    apply_received,
    apply_stored,
    debit_deposit,
    deposit_activity,
    is_debit_due,
    receive_activity,
    send_activity,
    send_activity_id,
    with_payload,
)
from .resolver import IdentifierResolver, Resolution

logger = logging.getLogger(__name__)

MAX_PENDING_ATTEMPTS = 12
MAX_BACKOFF_EXPONENT = 10
LOCK_POOL_SIZE = 64


class KeyedLocks:
    """Fixed pool of asyncio locks, one picked per key."""

    def __init__(self, size: int = LOCK_POOL_SIZE):
        self._locks = [asyncio.Lock() for _ in range(size)]

    def __call__(self, key: str) -> asyncio.Lock:
        return self._locks[hash(key) % len(self._locks)]


class ReconciliationEngine:
    """
    Applies chain events from both chains to the record store.

    Handlers are idempotent and tolerate their counterpart events arriving in
    any order: records are loaded, passed through a pure reducer and written
    back only when something changed.

    Both chain indexers share one engine. Every load/reduce/save of a transfer
    runs under that transfer's lock, and every deposit debit under the
    deposit's lock, so concurrent handlers never overwrite each other's
    updates. A transfer lock may be held while taking a deposit lock, never
    the other way round.
    """

    def __init__(
        self,
        store: RecordStore,
        resolver: IdentifierResolver,
        default_domain: int,
        max_pending_attempts: int = MAX_PENDING_ATTEMPTS,
    ):
        self.store = store
        self.resolver = resolver
        self.default_domain = default_domain
        self.max_pending_attempts = max_pending_attempts
        self._transfer_locks = KeyedLocks()
        self._deposit_locks = KeyedLocks()
        self._retry_pass = 0
        self._handlers: dict[EventType, Callable[[ChainEvent], Awaitable[None]]] = {
            EventType.DEPOSIT_CREATED: self.on_deposit_created,
            EventType.INSTRUCTIONS_RECEIVED: self.on_instructions_received,
            EventType.INSTRUCTIONS_PROCESSED: self.on_instructions_processed,
            EventType.TRANSFER_STORED: self.on_transfer_stored,
            EventType.TRANSFER_ACKNOWLEDGED: self.on_transfer_acknowledged,
            EventType.PAYLOAD_PROCESSED: self.on_payload_processed,
        }

    async def handle(self, event: ChainEvent) -> None:
        """Dispatch one event to its handler."""
        await self._handlers[event.type](event)

    # Source chain

    async def on_deposit_created(self, event: ChainEvent) -> None:
        """
        Insert a new deposit and its DEPOSIT activity row.

        Raises:
            DuplicateRecordError: deposit ids are unique by construction, so a
                second insert points at an upstream problem
        """
        args, ctx = event.args, event.context
        deposit = Deposit(
            deposit_id=args["depositId"],
            depositor=args["depositor"],
            token=args["token"],
            initial_amount=args["amount"],
            remaining_amount=args["amount"],
            is_native=args["isNative"],
            released=False,
            created_at=ctx.block_timestamp,
            created_at_block=ctx.block_number,
            tx_hash=ctx.transaction_hash,
        )
        await self.store.insert_deposit(deposit)
        await self.store.insert_activity(deposit_activity(deposit))
        logger.info(f"Deposit {deposit.deposit_id} created by {deposit.depositor}")

    async def on_instructions_received(self, event: ChainEvent) -> None:
        commitment = event.args["encryptedDataHash"]
        resolution = await self.resolver.resolve(commitment, event.context)

        if resolution.transfer_id is None:
            await self._park_commitment(commitment, event.context)
            return

        async with self._transfer_locks(resolution.transfer_id):
            await self._apply_received(resolution, commitment, event.context)

    async def on_instructions_processed(self, event: ChainEvent) -> None:
        """
        Completion echo: mark COMPLETED, debit the deposit, finish activity rows.

        An echo whose transfer id or transfer record is not available yet is
        parked and replayed by retry_pending_commitments.
        """
        commitment, ctx = event.args["encryptedDataHash"], event.context

        pending = await self.store.get_pending_commitment(commitment)
        if pending is not None:
            await self._replay_pending(pending)

        if not await self._apply_completion(commitment, ctx):
            await self.store.save_pending_completion(PendingCompletion(
                encrypted_data_hash=commitment,
                block_number=ctx.block_number,
                block_timestamp=ctx.block_timestamp,
                transaction_hash=ctx.transaction_hash,
                attempts=1,
            ))
            logger.warning(f"Completion for commitment {commitment} cannot be applied yet, parked")

    # Destination chain

    async def on_transfer_stored(self, event: ChainEvent) -> None:
        transfer_id = event.args["transferId"]
        async with self._transfer_locks(transfer_id):
            current = await self.store.get_transfer(transfer_id)
            if current is None:
                logger.info(f"Transfer {transfer_id} stored before it was seen on the source chain")
            updated = apply_stored(current, transfer_id, event.context, self.default_domain)
            await self._save_transfer(current, updated)

    async def on_transfer_acknowledged(self, event: ChainEvent) -> None:
        transfer_id = event.args["transferId"]
        async with self._transfer_locks(transfer_id):
            current = await self.store.get_transfer(transfer_id)
            updated = apply_acknowledged(current, transfer_id, event.context, self.default_domain)
            await self._save_transfer(current, updated)

    async def on_payload_processed(self, event: ChainEvent) -> None:
        args, ctx = event.args, event.context
        transfer_id = args["transferId"]
        async with self._transfer_locks(transfer_id):
            current = await self.store.get_transfer(transfer_id)
            updated = apply_payload(
                current,
                transfer_id,
                receiver=args["receiver"],
                token=args["token"],
                amount=args["amount"],
                is_native=args["isNative"],
                context=ctx,
                default_domain=self.default_domain,
            )
            transfer = await self._save_transfer(current, updated)
            transfer = await self._apply_debit(transfer)
            await self._sync_activity(transfer, ctx)

    # Parked commitments and completions

    async def retry_pending_commitments(self) -> int:
        """
        Replay parked commitments, then parked completion echoes.

        A record that failed n times is retried every 2**(n-1) passes and is
        dropped once it has failed max_pending_attempts times.

        Returns:
            Number of records resolved in this pass
        """
        self._retry_pass += 1
        resolved = 0

        for pending in await self.store.list_pending_commitments():
            if self._is_due(pending.attempts) and await self._replay_pending(pending):
                resolved += 1

        for parked in await self.store.list_pending_completions():
            if not self._is_due(parked.attempts):
                continue
            ctx = EventContext(
                block_number=parked.block_number,
                block_timestamp=parked.block_timestamp,
                transaction_hash=parked.transaction_hash,
                transaction_sender=ZERO_ADDRESS,
            )
            if await self._apply_completion(parked.encrypted_data_hash, ctx):
                await self.store.delete_pending_completion(parked.encrypted_data_hash)
                resolved += 1
                continue

            attempts = parked.attempts + 1
            if attempts >= self.max_pending_attempts:
                logger.error(
                    f"Giving up on completion for commitment {parked.encrypted_data_hash} "
                    f"after {attempts} attempts (tx {parked.transaction_hash})"
                )
                await self.store.delete_pending_completion(parked.encrypted_data_hash)
            else:
                await self.store.save_pending_completion(parked.model_copy(update={"attempts": attempts}))

        if resolved:
            logger.info(f"Resolved {resolved} parked record(s)")
        return resolved

    def _is_due(self, attempts: int) -> bool:
        exponent = min(max(attempts - 1, 0), MAX_BACKOFF_EXPONENT)
        return self._retry_pass % (2 ** exponent) == 0

    async def _replay_pending(self, pending: PendingCommitment) -> bool:
        ctx = EventContext(
            block_number=pending.block_number,
            block_timestamp=pending.block_timestamp,
            transaction_hash=pending.transaction_hash,
            transaction_sender=pending.transaction_sender,
            raw_transaction_input=pending.raw_transaction_input,
        )
        resolution = await self.resolver.resolve(pending.encrypted_data_hash, ctx)
        if resolution.transfer_id is None:
            attempts = pending.attempts + 1
            if attempts >= self.max_pending_attempts:
                logger.error(
                    f"Giving up on commitment {pending.encrypted_data_hash} "
                    f"after {attempts} attempts (tx {pending.transaction_hash})"
                )
                await self.store.delete_pending_commitment(pending.encrypted_data_hash)
            else:
                await self.store.save_pending_commitment(pending.model_copy(update={"attempts": attempts}))
            return False

        async with self._transfer_locks(resolution.transfer_id):
            await self._apply_received(resolution, pending.encrypted_data_hash, ctx)
        return True

    async def _park_commitment(self, commitment: str, ctx: EventContext) -> None:
        existing = await self.store.get_pending_commitment(commitment)
        attempts = existing.attempts + 1 if existing else 1
        await self.store.save_pending_commitment(PendingCommitment(
            encrypted_data_hash=commitment,
            block_number=ctx.block_number,
            block_timestamp=ctx.block_timestamp,
            transaction_hash=ctx.transaction_hash,
            transaction_sender=ctx.transaction_sender,
            raw_transaction_input=ctx.raw_transaction_input,
            attempts=attempts,
        ))
        logger.warning(f"Commitment {commitment} not resolvable yet, parked (attempt {attempts})")

    # Shared steps

    async def _apply_completion(self, commitment: str, ctx: EventContext) -> bool:
        """Returns False when the transfer id or the transfer record is not available."""
        transfer_id = await self.resolver.resolve_transfer_id(commitment)
        if transfer_id is None:
            logger.warning(f"Completion for commitment {commitment} has no transfer id")
            return False

        async with self._transfer_locks(transfer_id):
            current = await self.store.get_transfer(transfer_id)
            if current is None:
                logger.warning(f"Completion for unknown transfer {transfer_id}")
                return False

            if current.origin_resolved and not current.deposit_resolved:
                deposit_id = await self.resolver.resolve_deposit_id(current.initiated_tx_hash)
                if deposit_id is not None:
                    current = current.model_copy(update={"deposit_id": deposit_id})

            updated = apply_completed(current, ctx)
            transfer = await self._save_transfer(current, updated)
            transfer = await self._apply_debit(transfer)
            await self._sync_activity(transfer, ctx)

        logger.info(f"Transfer {transfer_id} completed")
        return True

    async def _apply_received(self, resolution: Resolution, commitment: str, ctx: EventContext) -> None:
        """Caller holds the transfer lock."""
        current = await self.store.get_transfer(resolution.transfer_id)
        updated = apply_received(current, resolution, commitment, ctx, self.default_domain)

        if current is None:
            await self.store.insert_transfer(updated)
            transfer = updated
        else:
            transfer = await self._save_transfer(current, updated)
            if not current.origin_resolved:
                logger.info(f"Back-filled origin of transfer {transfer.transfer_id}")

        await self.store.delete_pending_commitment(commitment)
        if not resolution.complete:
            logger.warning(
                f"Transfer {transfer.transfer_id} indexed with incomplete identifiers "
                f"(deposit {'resolved' if transfer.deposit_resolved else 'unknown'})"
            )

        transfer = await self._apply_debit(transfer)
        await self._sync_activity(transfer, ctx)

    async def _save_transfer(self, current: Optional[Transfer], updated: Transfer) -> Transfer:
        if updated != current:
            await self.store.save_transfer(updated)
        return updated

    async def _apply_debit(self, transfer: Transfer) -> Transfer:
        """Debit the deposit once per transfer, as soon as everything needed is known."""
        if not is_debit_due(transfer):
            return transfer

        async with self._deposit_locks(transfer.deposit_id):
            deposit = await self.store.get_deposit(transfer.deposit_id)
            if deposit is None:
                logger.warning(f"Deposit {transfer.deposit_id} for transfer {transfer.transfer_id} not found")
                return transfer

            debited = debit_deposit(deposit, transfer.amount, transfer.completed_at)
            await self.store.update_deposit(debited)
        transfer = transfer.model_copy(update={"deposit_debited": True})
        await self.store.save_transfer(transfer)
        logger.info(
            f"Deposit {deposit.deposit_id} debited {transfer.amount} "
            f"({debited.remaining_amount} remaining, released={debited.released})"
        )
        return transfer

    async def _sync_activity(self, transfer: Transfer, ctx: EventContext) -> None:
        """Bring the SEND and RECEIVE rows of a transfer up to date."""
        if transfer.origin_resolved and transfer.sender_resolved:
            row = await self.store.get_activity(send_activity_id(transfer))
            if row is None:
                await self.store.insert_activity(send_activity(transfer))
            else:
                filled = with_payload(row, transfer)
                if filled != row:
                    await self.store.update_activity(filled)

        receive = receive_activity(transfer, ctx)
        if receive is None:
            return
        if not await self.store.insert_activity(receive):
            row = await self.store.get_activity(receive.id)
            if row is not None and (row.sender is None or row.deposit_id is None):
                update = {}
                if row.sender is None and receive.sender is not None:
                    update["sender"] = receive.sender
                if row.deposit_id is None and receive.deposit_id is not None:
                    update["deposit_id"] = receive.deposit_id
                if update:
                    await self.store.update_activity(row.model_copy(update=update))
