"""Per-chain ingestion loop feeding the reconciliation engine."""

import asyncio
import logging
from typing import Optional

from veilbridge.datasources.base import EventSource
from veilbridge.errors import DuplicateRecordError, StoreUnavailableError, TransientError
from veilbridge.models import ChainEvent
from veilbridge.store import RecordStore
from .reconciler import ReconciliationEngine

logger = logging.getLogger(__name__)


class ChainIndexer:
    """
    Single worker for one chain.

    Events are handled strictly one at a time in (block, log index) order. The
    checkpoint only moves after every event of a block window was handled, so
    a restart re-delivers at most one window, which the engine tolerates.

    With retry_pending set, parked commitments and completions are replayed
    once per poll. Only the source-chain indexer sets it.
    """

    def __init__(
        self,
        source: EventSource,
        engine: ReconciliationEngine,
        store: RecordStore,
        start_block: int = 0,
        block_range: int = 100,
        poll_interval: float = 5.0,
        retry_pending: bool = False,
    ):
        self.source = source
        self.engine = engine
        self.store = store
        self.start_block = start_block
        self.block_range = block_range
        self.poll_interval = poll_interval
        self.retry_pending = retry_pending

    @property
    def chain(self) -> str:
        return self.source.chain

    async def poll_once(self) -> int:
        """
        Index everything between the checkpoint and the chain head.

        Returns:
            Number of events handled

        Raises:
            StoreUnavailableError: the store failed; the checkpoint was not advanced
        """
        checkpoint = await self.store.get_checkpoint(self.chain)
        next_block = checkpoint + 1 if checkpoint is not None else self.start_block

        try:
            head = await self.source.get_head_block()
        except TransientError as e:
            logger.warning(f"[Indexer] {self.chain}: head block unavailable: {e}")
            return 0

        handled = 0
        while next_block <= head:
            to_block = min(next_block + self.block_range - 1, head)
            try:
                events = await self.source.get_events(next_block, to_block)
            except TransientError as e:
                logger.warning(f"[Indexer] {self.chain}: logs for {next_block}-{to_block} unavailable: {e}")
                break

            for event in events:
                await self._dispatch(event)
                handled += 1

            await self.store.save_checkpoint(self.chain, to_block)
            if events:
                logger.info(f"[Indexer] {self.chain}: handled {len(events)} event(s) up to block {to_block}")
            next_block = to_block + 1

        if self.retry_pending:
            await self.engine.retry_pending_commitments()
        return handled

    async def _dispatch(self, event: ChainEvent) -> None:
        """Handle one event; failures other than the store's are isolated to it."""
        try:
            await self.engine.handle(event)
        except StoreUnavailableError:
            raise
        except DuplicateRecordError as e:
            logger.error(
                f"[Indexer] {self.chain}: {e} "
                f"(block {event.context.block_number}, tx {event.context.transaction_hash})"
            )
        except Exception:
            logger.exception(
                f"[Indexer] {self.chain}: {event.type.value} handler failed "
                f"(block {event.context.block_number}, tx {event.context.transaction_hash})"
            )

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Poll until stop_event is set."""
        stop_event = stop_event or asyncio.Event()
        logger.info(f"[Indexer] {self.chain}: starting at block {self.start_block}")

        while not stop_event.is_set():
            try:
                await self.poll_once()
            except StoreUnavailableError as e:
                logger.error(f"[Indexer] {self.chain}: record store unavailable, stopping: {e}")
                raise

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass

        logger.info(f"[Indexer] {self.chain}: stopped")
