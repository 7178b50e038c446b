"""API routes for querying indexed deposits, transfers and activity."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict

from veilbridge.models import (
    ActivityType,
    Deposit,
    Transfer,
    TransferStatus,
    UserActivity,
)
from veilbridge.store import RecordStore
from .dependencies import get_store

router = APIRouter(prefix="/v1")


class DepositWithTransfers(Deposit):
    """A deposit together with every transfer that draws on it."""
    model_config = ConfigDict(populate_by_name=True)

    transfers: list[Transfer] = []


def _normalize(value: Optional[str]) -> Optional[str]:
    return value.lower() if value else value


@router.get("/deposits", response_model=list[Deposit])
async def list_deposits(
    depositor: Optional[str] = Query(
        None,
        description="Depositor address",
    ),
    store: RecordStore = Depends(get_store),
) -> list[Deposit]:
    """List deposits, oldest first."""
    return await store.list_deposits(depositor=_normalize(depositor))


@router.get("/deposits/{deposit_id}", response_model=DepositWithTransfers)
async def get_deposit(
    deposit_id: str,
    store: RecordStore = Depends(get_store),
) -> DepositWithTransfers:
    """
    Get one deposit and its transfers.

    Returns: remainingAmount, released, and the transfers debiting it
    """
    deposit = await store.get_deposit(_normalize(deposit_id))
    if deposit is None:
        raise HTTPException(status_code=404, detail=f"Deposit {deposit_id} not found")
    transfers = await store.find_transfers(deposit_id=deposit.deposit_id)
    return DepositWithTransfers(**deposit.model_dump(), transfers=transfers)


@router.get("/transfers", response_model=list[Transfer])
async def list_transfers(
    status: Optional[TransferStatus] = Query(
        None,
        description="Lifecycle status filter",
    ),
    sender: Optional[str] = Query(
        None,
        description="Sender address",
    ),
    depositId: Optional[str] = Query(
        None,
        description="Deposit the transfers draw on",
    ),
    store: RecordStore = Depends(get_store),
) -> list[Transfer]:
    """
    List transfers ordered by initiation time.

    The settlement processor polls this with status=STORED.
    """
    return await store.find_transfers(
        status=status,
        sender=_normalize(sender),
        deposit_id=_normalize(depositId),
    )


@router.get("/transfers/{transfer_id}", response_model=Transfer)
async def get_transfer(
    transfer_id: str,
    store: RecordStore = Depends(get_store),
) -> Transfer:
    transfer = await store.get_transfer(_normalize(transfer_id))
    if transfer is None:
        raise HTTPException(status_code=404, detail=f"Transfer {transfer_id} not found")
    return transfer


@router.get("/activity", response_model=list[UserActivity])
async def get_activity(
    user: str = Query(
        ...,
        description="User address",
    ),
    type: Optional[ActivityType] = Query(
        None,
        description="DEPOSIT, SEND or RECEIVE",
    ),
    store: RecordStore = Depends(get_store),
) -> list[UserActivity]:
    """Activity feed for a user, newest first."""
    return await store.list_activity(_normalize(user), activity_type=type)
