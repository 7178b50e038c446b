"""
Autonomous settlement of stored transfers on the destination vault.

The chain is the source of truth: every attempt re-reads the vault's
acknowledged flag before acting, because the record store may lag behind.
"""

import asyncio
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterator, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from veilbridge.datasources.base import VaultClient
from veilbridge.errors import TransientError
from veilbridge.models import SettlementResult
from .monitor import TransferSource

logger = logging.getLogger(__name__)

DUPLICATE_MARKERS = ("duplicate", "already processed", "already acknowledged")
JOB_ID = "settlement_cycle"


def is_duplicate_error(message: Optional[str]) -> bool:
    """Whether an error says the settlement may already have happened."""
    if not message:
        return False
    lowered = message.lower()
    return any(marker in lowered for marker in DUPLICATE_MARKERS)


class InFlightRegistry:
    """
    Transfer ids being settled in the current cycle.

    Bounded so a runaway candidate list cannot grow it without limit; ids
    beyond capacity wait for a later cycle.
    """

    def __init__(self, capacity: int = 1000):
        self.capacity = capacity
        self._ids: set[str] = set()

    def add(self, transfer_id: str) -> bool:
        """Claim an id. False if it is already claimed or the registry is full."""
        if transfer_id in self._ids or len(self._ids) >= self.capacity:
            return False
        self._ids.add(transfer_id)
        return True

    def discard(self, transfer_id: str) -> None:
        self._ids.discard(transfer_id)

    def clear(self) -> None:
        self._ids.clear()

    def __contains__(self, transfer_id: str) -> bool:
        return transfer_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    @contextmanager
    def cycle(self) -> Iterator["InFlightRegistry"]:
        """Scope one poll cycle; everything claimed inside is released on exit."""
        try:
            yield self
        finally:
            self.clear()


@dataclass
class CycleReport:
    """What one poll cycle did."""
    skipped: bool = False
    candidates: int = 0
    results: list[SettlementResult] = field(default_factory=list)

    @property
    def settled(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)


class SettlementProcessor:
    """Polls for STORED transfers and drives each to settlement exactly once in effect."""

    def __init__(
        self,
        source: TransferSource,
        vault: VaultClient,
        poll_interval: float = 10.0,
        max_retries: int = 3,
        retry_delay: float = 5.0,
        registry: Optional[InFlightRegistry] = None,
    ):
        self.source = source
        self.vault = vault
        self.poll_interval = poll_interval
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.in_flight = registry or InFlightRegistry()
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._idle = asyncio.Event()
        self._idle.set()

    async def is_settled_on_chain(self, transfer_id: str) -> bool:
        """Vault acknowledged flag; read failures count as not settled."""
        try:
            acknowledged = await self.vault.is_acknowledged(transfer_id)
        except Exception as e:
            logger.error(f"[Processor] Failed to check on-chain status for {transfer_id}: {e}")
            return False
        if acknowledged:
            logger.info(f"[Processor] Transfer {transfer_id} is already acknowledged on-chain")
        return acknowledged

    async def settle_once(self, transfer_id: str) -> SettlementResult:
        """
        Submit processTransfer once and wait for inclusion.

        A duplicate-classified failure is resolved by reading the vault instead
        of being reported as a plain error.
        """
        tx_hash: Optional[str] = None
        try:
            tx_hash = await self.vault.process_transfer(transfer_id)
            logger.info(f"[Processor] Transaction sent: {tx_hash}")
            included = await self.vault.wait_for_receipt(tx_hash)
        except Exception as e:
            message = str(e) or type(e).__name__
            if is_duplicate_error(message):
                logger.info(f"[Processor] Transfer {transfer_id} reported as duplicate, verifying on-chain...")
                if await self.is_settled_on_chain(transfer_id):
                    return SettlementResult(transfer_id=transfer_id, success=True, tx_hash=tx_hash)
                return SettlementResult(
                    transfer_id=transfer_id,
                    success=False,
                    tx_hash=tx_hash,
                    error="Duplicate transaction but not acknowledged on-chain",
                )
            if tx_hash is not None:
                logger.error(f"[Processor] ❌ Failed to confirm {tx_hash} for transfer {transfer_id}: {message}")
            else:
                logger.error(f"[Processor] ❌ Failed to process transfer {transfer_id}: {message}")
            return SettlementResult(transfer_id=transfer_id, success=False, tx_hash=tx_hash, error=message)

        if not included:
            logger.error(f"[Processor] ❌ Transaction reverted: {tx_hash}")
            return SettlementResult(transfer_id=transfer_id, success=False, tx_hash=tx_hash, error="Transaction reverted")
        return SettlementResult(transfer_id=transfer_id, success=True, tx_hash=tx_hash)

    async def settle_with_retry(self, transfer_id: str) -> SettlementResult:
        """
        Settle with up to max_retries attempts and linear backoff.

        Never raises; the returned result carries the last error on failure.
        """
        last_error: Optional[str] = None
        last_tx_hash: Optional[str] = None

        for attempt in range(1, self.max_retries + 1):
            if await self.is_settled_on_chain(transfer_id):
                return SettlementResult(
                    transfer_id=transfer_id, success=True, tx_hash=last_tx_hash, attempts=attempt - 1
                )

            logger.info(f"[Processor] Attempt {attempt}/{self.max_retries} for transfer {transfer_id}")
            result = await self.settle_once(transfer_id)

            if result.success and result.tx_hash is None:
                # duplicate already verified on-chain
                return result.model_copy(update={"attempts": attempt, "tx_hash": last_tx_hash})

            if result.success:
                last_tx_hash = result.tx_hash
                if await self.is_settled_on_chain(transfer_id):
                    logger.info(f"[Processor] ✅ Transfer verified on-chain: {transfer_id}")
                    return result.model_copy(update={"attempts": attempt})
                logger.warning(
                    f"[Processor] ⚠️ Transaction {result.tx_hash} included but transfer not acknowledged, will retry"
                )
                last_error = "Transaction included but transfer not acknowledged on-chain"
            else:
                last_error = result.error
                last_tx_hash = result.tx_hash or last_tx_hash

            if attempt < self.max_retries:
                wait_time = attempt * self.retry_delay
                logger.info(f"[Processor] Retrying in {wait_time}s...")
                await asyncio.sleep(wait_time)

        if await self.is_settled_on_chain(transfer_id):
            logger.info(f"[Processor] ✅ Transfer {transfer_id} processed on-chain after retries")
            return SettlementResult(
                transfer_id=transfer_id, success=True, tx_hash=last_tx_hash, attempts=self.max_retries
            )

        logger.error(f"[Processor] ❌ Failed after {self.max_retries} attempts: {transfer_id}: {last_error}")
        return SettlementResult(
            transfer_id=transfer_id,
            success=False,
            tx_hash=last_tx_hash,
            error=last_error or "Max retries exceeded",
            attempts=self.max_retries,
        )

    async def run_cycle(self) -> CycleReport:
        """
        One poll cycle.

        Skipped entirely while a previous cycle still holds in-flight work.
        The registry is cleared when the cycle ends, however it ends.
        """
        if len(self.in_flight) > 0 or not self._idle.is_set():
            logger.info("[Monitor] Previous batch still processing, skipping...")
            return CycleReport(skipped=True)

        report = CycleReport()
        self._idle.clear()
        try:
            with self.in_flight.cycle():
                await self._process_candidates(report)
        except TransientError as e:
            logger.error(f"[Monitor] Could not fetch pending transfers: {e}")
        except Exception:
            logger.exception("[Monitor] Error in processing loop")
        finally:
            self._idle.set()

        if report.results:
            logger.info(f"[Monitor] Cycle finished: {report.settled} settled, {report.failed} failed")
        return report

    async def _process_candidates(self, report: CycleReport) -> None:
        logger.debug("[Monitor] Checking for pending transfers...")
        transfers = await self.source.get_stored_transfers()
        report.candidates = len(transfers)

        if not transfers:
            logger.debug("[Monitor] No pending transfers found")
            return
        logger.info(f"[Monitor] Found {len(transfers)} pending transfer(s)")

        for transfer in transfers:
            transfer_id = transfer.transfer_id

            if transfer_id in self.in_flight:
                logger.info(f"[Monitor] Transfer {transfer_id} is currently being processed, skipping")
                continue
            if await self.is_settled_on_chain(transfer_id):
                logger.info(f"[Monitor] Transfer {transfer_id} already processed on-chain, skipping")
                continue
            if not self.in_flight.add(transfer_id):
                logger.warning(f"[Monitor] In-flight registry full, deferring {transfer_id}")
                continue

            logger.info(
                f"[Monitor] Processing transfer {transfer_id} "
                f"(deposit {transfer.deposit_id}, sender {transfer.sender})"
            )
            try:
                result = await self.settle_with_retry(transfer_id)
            except Exception as e:
                logger.exception(f"[Monitor] ❌ Error processing transfer {transfer_id}")
                result = SettlementResult(transfer_id=transfer_id, success=False, error=str(e))
            report.results.append(result)

            if result.success:
                logger.info(f"[Monitor] ✅ Successfully processed transfer {transfer_id}")
            else:
                logger.error(f"[Monitor] ❌ Failed to process transfer {transfer_id}: {result.error}")

    def start(self) -> None:
        """Run a cycle now and then every poll_interval seconds."""
        self._scheduler = AsyncIOScheduler(
            job_defaults={"coalesce": True, "max_instances": 1},
            timezone="UTC",
        )
        self._scheduler.add_job(
            self.run_cycle,
            trigger=IntervalTrigger(seconds=self.poll_interval),
            id=JOB_ID,
            name="Settle Stored Transfers",
            next_run_time=datetime.now(timezone.utc),
        )
        self._scheduler.start()
        logger.info(f"✅ Settlement processor started. Polling every {self.poll_interval}s")

    async def stop(self) -> None:
        """Stop triggering new cycles and let an in-progress cycle finish."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
        await self._idle.wait()
        logger.info("🛑 Settlement processor stopped")
