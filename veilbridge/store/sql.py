"""
SQLAlchemy-backed record store.

Works with any async driver SQLAlchemy supports. The default deployment uses
SQLite through aiosqlite; point DATABASE_URL at postgresql+asyncpg for a
shared database.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from sqlalchemy import Boolean, Column, Integer, String, Text, select
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from veilbridge.errors import DuplicateRecordError, StoreUnavailableError
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

logger = logging.getLogger(__name__)

# uint256 needs 78 decimal digits; stored as text so every backend keeps full precision
AMOUNT_LENGTH = 78


class Base(DeclarativeBase):
    pass


class DepositRow(Base):
    __tablename__ = "deposit"

    deposit_id = Column(String(66), primary_key=True)
    depositor = Column(String(42), nullable=False, index=True)
    token = Column(String(42), nullable=False)
    initial_amount = Column(String(AMOUNT_LENGTH), nullable=False)
    remaining_amount = Column(String(AMOUNT_LENGTH), nullable=False)
    is_native = Column(Boolean, nullable=False)
    released = Column(Boolean, nullable=False, default=False)
    created_at = Column(Integer, nullable=False)
    created_at_block = Column(Integer, nullable=False)
    tx_hash = Column(String(66), nullable=False)
    last_used_at = Column(Integer, nullable=True)


class TransferRow(Base):
    __tablename__ = "transfer"

    transfer_id = Column(String(66), primary_key=True)
    deposit_id = Column(String(66), nullable=False, index=True)
    sender = Column(String(42), nullable=False, index=True)
    destination_domain = Column(Integer, nullable=False)
    encrypted_data_hash = Column(String(66), nullable=True)
    initiated_at = Column(Integer, nullable=False)
    initiated_at_block = Column(Integer, nullable=False)
    initiated_tx_hash = Column(String(66), nullable=False)
    origin_resolved = Column(Boolean, nullable=False, default=False)
    receiver = Column(String(42), nullable=True)
    token = Column(String(42), nullable=True)
    amount = Column(String(AMOUNT_LENGTH), nullable=True)
    is_native = Column(Boolean, nullable=True)
    status = Column(String(16), nullable=False, index=True)
    stored_at = Column(Integer, nullable=True)
    stored_at_block = Column(Integer, nullable=True)
    acknowledged_at = Column(Integer, nullable=True)
    acknowledged_at_block = Column(Integer, nullable=True)
    processed_at = Column(Integer, nullable=True)
    processed_at_block = Column(Integer, nullable=True)
    completed_at = Column(Integer, nullable=True)
    completed_at_block = Column(Integer, nullable=True)
    completed_tx_hash = Column(String(66), nullable=True)
    deposit_debited = Column(Boolean, nullable=False, default=False)


class UserActivityRow(Base):
    __tablename__ = "user_activity"

    id = Column(Text, primary_key=True)
    user = Column(String(42), nullable=False, index=True)
    type = Column(String(16), nullable=False)
    deposit_id = Column(String(66), nullable=True)
    transfer_id = Column(String(66), nullable=True)
    amount = Column(String(AMOUNT_LENGTH), nullable=False)
    token = Column(String(42), nullable=False)
    is_native = Column(Boolean, nullable=False)
    timestamp = Column(Integer, nullable=False)
    block_number = Column(Integer, nullable=False)
    tx_hash = Column(String(66), nullable=False)
    receiver = Column(String(42), nullable=True)
    sender = Column(String(42), nullable=True)


class PendingCommitmentRow(Base):
    __tablename__ = "pending_commitment"

    encrypted_data_hash = Column(String(66), primary_key=True)
    block_number = Column(Integer, nullable=False)
    block_timestamp = Column(Integer, nullable=False)
    transaction_hash = Column(String(66), nullable=False)
    transaction_sender = Column(String(42), nullable=False)
    raw_transaction_input = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)


class PendingCompletionRow(Base):
    __tablename__ = "pending_completion"

    encrypted_data_hash = Column(String(66), primary_key=True)
    block_number = Column(Integer, nullable=False)
    block_timestamp = Column(Integer, nullable=False)
    transaction_hash = Column(String(66), nullable=False)
    attempts = Column(Integer, nullable=False, default=0)


class ChainCheckpointRow(Base):
    __tablename__ = "chain_checkpoint"

    chain = Column(String(32), primary_key=True)
    block_number = Column(Integer, nullable=False)


_AMOUNT_FIELDS = {"initial_amount", "remaining_amount", "amount"}


def _to_values(model) -> dict[str, Any]:
    """Model fields as column values; amounts become decimal strings."""
    values = model.model_dump(mode="python")
    for key, value in values.items():
        if key in _AMOUNT_FIELDS and value is not None:
            values[key] = str(value)
        elif isinstance(value, (TransferStatus, ActivityType)):
            values[key] = value.value
    return values


def _from_row(model_cls, row):
    values = {c.name: getattr(row, c.name) for c in row.__table__.columns}
    for key in _AMOUNT_FIELDS & values.keys():
        if values[key] is not None:
            values[key] = int(values[key])
    return model_cls.model_validate(values)


class SqlRecordStore(RecordStore):
    """Record store on top of an async SQLAlchemy engine."""

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        self._engine = create_async_engine(database_url, echo=echo, pool_pre_ping=True)
        self._sessionmaker = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            autoflush=False,
            expire_on_commit=False,
        )

    async def initialize(self) -> None:
        """Create tables that do not exist yet."""
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except DBAPIError as e:
            raise StoreUnavailableError(f"Could not initialize {self.database_url}: {e}") from e
        logger.info("Record store ready")

    @asynccontextmanager
    async def _session(self):
        """One transaction per call; driver failures become StoreUnavailableError."""
        try:
            async with self._sessionmaker() as session:
                async with session.begin():
                    yield session
        except IntegrityError:
            raise
        except DBAPIError as e:
            logger.error(f"Record store operation failed: {e}")
            raise StoreUnavailableError(str(e)) from e

    async def get_deposit(self, deposit_id: str) -> Optional[Deposit]:
        async with self._session() as session:
            row = await session.get(DepositRow, deposit_id)
            return _from_row(Deposit, row) if row else None

    async def insert_deposit(self, deposit: Deposit) -> None:
        try:
            async with self._session() as session:
                session.add(DepositRow(**_to_values(deposit)))
        except IntegrityError:
            raise DuplicateRecordError("deposit", deposit.deposit_id) from None

    async def update_deposit(self, deposit: Deposit) -> None:
        async with self._session() as session:
            await session.merge(DepositRow(**_to_values(deposit)))

    async def list_deposits(self, depositor: Optional[str] = None) -> list[Deposit]:
        stmt = select(DepositRow).order_by(DepositRow.created_at_block, DepositRow.created_at)
        if depositor is not None:
            stmt = stmt.where(DepositRow.depositor == depositor)
        async with self._session() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_from_row(Deposit, r) for r in rows]

    async def get_transfer(self, transfer_id: str) -> Optional[Transfer]:
        async with self._session() as session:
            row = await session.get(TransferRow, transfer_id)
            return _from_row(Transfer, row) if row else None

    async def insert_transfer(self, transfer: Transfer) -> bool:
        try:
            async with self._session() as session:
                if await session.get(TransferRow, transfer.transfer_id) is not None:
                    return False
                session.add(TransferRow(**_to_values(transfer)))
        except IntegrityError:
            return False
        return True

    async def save_transfer(self, transfer: Transfer) -> None:
        async with self._session() as session:
            await session.merge(TransferRow(**_to_values(transfer)))

    async def find_transfers(
        self,
        status: Optional[TransferStatus] = None,
        sender: Optional[str] = None,
        deposit_id: Optional[str] = None,
    ) -> list[Transfer]:
        stmt = select(TransferRow).order_by(TransferRow.initiated_at)
        if status is not None:
            stmt = stmt.where(TransferRow.status == status.value)
        if sender is not None:
            stmt = stmt.where(TransferRow.sender == sender)
        if deposit_id is not None:
            stmt = stmt.where(TransferRow.deposit_id == deposit_id)
        async with self._session() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_from_row(Transfer, r) for r in rows]

    async def get_activity(self, activity_id: str) -> Optional[UserActivity]:
        async with self._session() as session:
            row = await session.get(UserActivityRow, activity_id)
            return _from_row(UserActivity, row) if row else None

    async def insert_activity(self, activity: UserActivity) -> bool:
        try:
            async with self._session() as session:
                if await session.get(UserActivityRow, activity.id) is not None:
                    return False
                session.add(UserActivityRow(**_to_values(activity)))
        except IntegrityError:
            return False
        return True

    async def update_activity(self, activity: UserActivity) -> None:
        async with self._session() as session:
            await session.merge(UserActivityRow(**_to_values(activity)))

    async def list_activity(
        self,
        user: str,
        activity_type: Optional[ActivityType] = None,
    ) -> list[UserActivity]:
        stmt = (
            select(UserActivityRow)
            .where(UserActivityRow.user == user)
            .order_by(UserActivityRow.timestamp.desc())
        )
        if activity_type is not None:
            stmt = stmt.where(UserActivityRow.type == activity_type.value)
        async with self._session() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_from_row(UserActivity, r) for r in rows]

    async def save_pending_commitment(self, pending: PendingCommitment) -> None:
        async with self._session() as session:
            await session.merge(PendingCommitmentRow(**_to_values(pending)))

    async def get_pending_commitment(self, encrypted_data_hash: str) -> Optional[PendingCommitment]:
        async with self._session() as session:
            row = await session.get(PendingCommitmentRow, encrypted_data_hash)
            return _from_row(PendingCommitment, row) if row else None

    async def delete_pending_commitment(self, encrypted_data_hash: str) -> None:
        async with self._session() as session:
            row = await session.get(PendingCommitmentRow, encrypted_data_hash)
            if row is not None:
                await session.delete(row)

    async def list_pending_commitments(self) -> list[PendingCommitment]:
        stmt = select(PendingCommitmentRow).order_by(PendingCommitmentRow.block_number)
        async with self._session() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_from_row(PendingCommitment, r) for r in rows]

    async def save_pending_completion(self, pending: PendingCompletion) -> None:
        async with self._session() as session:
            await session.merge(PendingCompletionRow(**_to_values(pending)))

    async def delete_pending_completion(self, encrypted_data_hash: str) -> None:
        async with self._session() as session:
            row = await session.get(PendingCompletionRow, encrypted_data_hash)
            if row is not None:
                await session.delete(row)

    async def list_pending_completions(self) -> list[PendingCompletion]:
        stmt = select(PendingCompletionRow).order_by(PendingCompletionRow.block_number)
        async with self._session() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_from_row(PendingCompletion, r) for r in rows]

    async def get_checkpoint(self, chain: str) -> Optional[int]:
        async with self._session() as session:
            row = await session.get(ChainCheckpointRow, chain)
            return row.block_number if row else None

    async def save_checkpoint(self, chain: str, block_number: int) -> None:
        async with self._session() as session:
            await session.merge(ChainCheckpointRow(chain=chain, block_number=block_number))

    async def close(self) -> None:
        """Dispose the engine's connection pool."""
        await self._engine.dispose()
