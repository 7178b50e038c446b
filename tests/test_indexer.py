"""
Tests for the per-chain ingestion loop.

Run with: pytest tests/test_indexer.py -v
"""
import asyncio

import pytest

from veilbridge.errors import StoreUnavailableError, TransientError
from veilbridge.models import Chain, EventType, TransferStatus
from veilbridge.services import ChainIndexer, IdentifierResolver, ReconciliationEngine

from conftest import (
    DOMAIN,
    ONE,
    ListEventSource,
    YieldingStore,
    ctx,
    deposit_event,
    event,
    hex32,
    lifecycle_events,
)

DEPOSIT_ID = hex32(0xD1)
TRANSFER_ID = hex32(0x71)
COMMITMENT = hex32(0xC1)


class TestPolling:
    """Block windows and checkpoints"""

    @pytest.mark.asyncio
    async def test_windows_and_checkpoint(self, engine, store):
        source = ListEventSource(Chain.SOURCE, [deposit_event(DEPOSIT_ID, ONE, block=7)], head=25)
        indexer = ChainIndexer(source, engine, store, start_block=0, block_range=10)

        handled = await indexer.poll_once()

        assert handled == 1
        assert source.requests == [(0, 9), (10, 19), (20, 25)]
        assert await store.get_checkpoint("source") == 25
        assert await store.get_deposit(DEPOSIT_ID) is not None

    @pytest.mark.asyncio
    async def test_resumes_after_checkpoint(self, engine, store):
        await store.save_checkpoint("source", 25)
        source = ListEventSource(Chain.SOURCE, [], head=30)
        indexer = ChainIndexer(source, engine, store, start_block=0, block_range=10)

        assert await indexer.poll_once() == 0
        assert source.requests == [(26, 30)]

    @pytest.mark.asyncio
    async def test_nothing_new(self, engine, store):
        await store.save_checkpoint("source", 30)
        source = ListEventSource(Chain.SOURCE, [], head=30)

        assert await ChainIndexer(source, engine, store).poll_once() == 0
        assert source.requests == []


class TestFailureIsolation:
    """Handler, RPC and store failures"""

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_the_window(self, engine, store):
        bad = event(EventType.DEPOSIT_CREATED, {"depositId": hex32(0xBAD)}, ctx(3))
        source = ListEventSource(Chain.SOURCE, [bad, deposit_event(DEPOSIT_ID, ONE, block=4)], head=4)

        await ChainIndexer(source, engine, store).poll_once()

        assert await store.get_deposit(DEPOSIT_ID) is not None
        assert await store.get_checkpoint("source") == 4

    @pytest.mark.asyncio
    async def test_duplicate_deposit_is_logged_not_raised(self, engine, store):
        source = ListEventSource(
            Chain.SOURCE,
            [deposit_event(DEPOSIT_ID, ONE, block=1), deposit_event(DEPOSIT_ID, ONE, block=2)],
        )

        await ChainIndexer(source, engine, store).poll_once()

        assert await store.get_checkpoint("source") == 2

    @pytest.mark.asyncio
    async def test_rpc_failure_stops_before_window(self, engine, store):
        class FlakySource(ListEventSource):
            async def get_events(self, from_block, to_block):
                if from_block >= 10:
                    raise TransientError("429 Too Many Requests")
                return await super().get_events(from_block, to_block)

        source = FlakySource(Chain.SOURCE, [], head=25)
        await ChainIndexer(source, engine, store, block_range=10).poll_once()

        assert await store.get_checkpoint("source") == 9

    @pytest.mark.asyncio
    async def test_store_failure_keeps_checkpoint(self, engine, store):
        async def broken(*args, **kwargs):
            raise StoreUnavailableError("disk I/O error")

        store.insert_deposit = broken
        source = ListEventSource(Chain.SOURCE, [deposit_event(DEPOSIT_ID, ONE, block=3)])

        with pytest.raises(StoreUnavailableError):
            await ChainIndexer(source, engine, store).poll_once()

        assert await store.get_checkpoint("source") is None


@pytest.mark.asyncio
async def test_destination_chain_indexed_first(engine, store, ingress):
    ingress.register(COMMITMENT, TRANSFER_ID)
    events = lifecycle_events(TRANSFER_ID, COMMITMENT, DEPOSIT_ID, ONE, base_block=10)
    source = ListEventSource(
        Chain.SOURCE,
        [deposit_event(DEPOSIT_ID, ONE, block=2), events["received"], events["completed"]],
    )
    destination = ListEventSource(
        Chain.DESTINATION,
        [events["stored"], events["acknowledged"], events["payload"]],
    )

    # destination chain first: its records start as placeholders
    await ChainIndexer(destination, engine, store).poll_once()
    assert (await store.get_transfer(TRANSFER_ID)).origin_resolved is False

    await ChainIndexer(source, engine, store).poll_once()

    transfer = await store.get_transfer(TRANSFER_ID)
    assert transfer.status == TransferStatus.COMPLETED
    assert transfer.deposit_debited is True
    assert (await store.get_deposit(DEPOSIT_ID)).released is True


@pytest.mark.asyncio
async def test_two_chains_share_one_engine(ingress):
    store = YieldingStore()
    engine = ReconciliationEngine(store, IdentifierResolver(ingress, DOMAIN), DOMAIN)
    ingress.register(COMMITMENT, TRANSFER_ID)
    events = lifecycle_events(TRANSFER_ID, COMMITMENT, DEPOSIT_ID, ONE, base_block=10)
    source = ListEventSource(
        Chain.SOURCE,
        [deposit_event(DEPOSIT_ID, ONE, block=2), events["received"], events["completed"]],
    )
    destination = ListEventSource(
        Chain.DESTINATION,
        [events["stored"], events["acknowledged"], events["payload"]],
    )

    await asyncio.gather(
        ChainIndexer(source, engine, store, block_range=1, retry_pending=True).poll_once(),
        ChainIndexer(destination, engine, store, block_range=1).poll_once(),
    )

    transfer = await store.get_transfer(TRANSFER_ID)
    assert transfer.status == TransferStatus.COMPLETED
    assert transfer.origin_resolved is True
    assert transfer.amount == ONE
    assert transfer.deposit_debited is True
    assert (await store.get_deposit(DEPOSIT_ID)).released is True


class TestParkedRetries:
    """Which indexer replays parked records, and how often"""

    @pytest.mark.asyncio
    async def test_only_flagged_indexer_replays_once_per_poll(self, engine, store, ingress):
        await engine.handle(lifecycle_events(TRANSFER_ID, COMMITMENT, DEPOSIT_ID, ONE)["received"])

        destination = ListEventSource(Chain.DESTINATION, [], head=30)
        await ChainIndexer(destination, engine, store, block_range=10).poll_once()
        assert (await store.get_pending_commitment(COMMITMENT)).attempts == 1

        source = ListEventSource(Chain.SOURCE, [], head=30)
        indexer = ChainIndexer(source, engine, store, block_range=10, retry_pending=True)
        await indexer.poll_once()
        assert len(source.requests) == 4
        assert (await store.get_pending_commitment(COMMITMENT)).attempts == 2

        ingress.register(COMMITMENT, TRANSFER_ID)
        await indexer.poll_once()

        assert await store.get_pending_commitment(COMMITMENT) is None
        assert (await store.get_transfer(TRANSFER_ID)).origin_resolved is True


@pytest.mark.asyncio
async def test_run_stops_on_event(engine, store):
    source = ListEventSource(Chain.SOURCE, [deposit_event(DEPOSIT_ID, ONE, block=1)])
    indexer = ChainIndexer(source, engine, store, poll_interval=0.01)
    stop = asyncio.Event()

    task = asyncio.create_task(indexer.run(stop))
    await asyncio.sleep(0.05)
    stop.set()
    await asyncio.wait_for(task, timeout=1)

    assert await store.get_checkpoint("source") == 1
