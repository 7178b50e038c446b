"""
Shared fixtures and fakes for the test suite.

The on-chain collaborators (ingress reads, vault calls, event sources) are
replaced with in-process fakes so the engine and the processor can be driven
event by event without a node.
"""

import asyncio
import logging
from typing import Optional

import pytest
import pytest_asyncio
from eth_abi import encode as abi_encode
from eth_utils import function_signature_to_4byte_selector

from veilbridge.datasources.abis import INITIATE_TRANSFER_SIGNATURE, INITIATE_TRANSFER_TYPES
from veilbridge.datasources.base import (
    EventSource,
    IngressReader,
    TransactionInfo,
    TransferMetadata,
    VaultClient,
)
from veilbridge.models import Chain, ChainEvent, EventContext, EventType
from veilbridge.services import IdentifierResolver, ReconciliationEngine
from veilbridge.store import InMemoryRecordStore

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

DOMAIN = 23295
ONE = 10 ** 18

DEPOSITOR = "0x" + "a1" * 20
RECEIVER = "0x" + "b2" * 20
NATIVE = "0x" + "00" * 20


def hex32(n: int) -> str:
    return "0x" + n.to_bytes(32, "big").hex()


def initiate_call_data(deposit_id: str, destination_domain: int = DOMAIN, ciphertext: bytes = b"sealed") -> str:
    """Encoded initiateTransfer(uint32,bytes32,bytes) call data."""
    selector = function_signature_to_4byte_selector(INITIATE_TRANSFER_SIGNATURE)
    args = abi_encode(INITIATE_TRANSFER_TYPES, [destination_domain, bytes.fromhex(deposit_id[2:]), ciphertext])
    return "0x" + (selector + args).hex()


def ctx(
    block: int,
    timestamp: Optional[int] = None,
    tx: Optional[str] = None,
    sender: str = DEPOSITOR,
    call_data: Optional[str] = None,
    log_index: int = 0,
) -> EventContext:
    return EventContext(
        block_number=block,
        block_timestamp=timestamp if timestamp is not None else 1_700_000_000 + block,
        transaction_hash=tx or hex32(0xF000 + block),
        transaction_sender=sender,
        raw_transaction_input=call_data,
        log_index=log_index,
    )


def event(event_type: EventType, args: dict, context: EventContext) -> ChainEvent:
    chain = Chain.SOURCE if event_type in (
        EventType.DEPOSIT_CREATED,
        EventType.INSTRUCTIONS_RECEIVED,
        EventType.INSTRUCTIONS_PROCESSED,
    ) else Chain.DESTINATION
    return ChainEvent(chain=chain, type=event_type, args=args, context=context)


class FakeIngress(IngressReader):
    """Ingress contract state held in dictionaries."""

    def __init__(self):
        self.transfer_ids: dict[str, str] = {}
        self.metadata: dict[str, TransferMetadata] = {}
        self.transactions: dict[str, TransactionInfo] = {}
        self.fail_reads = False
        self.fail_metadata = False

    def register(self, commitment: str, transfer_id: str, sender: str = DEPOSITOR, domain: int = DOMAIN):
        self.transfer_ids[commitment] = transfer_id
        self.metadata[transfer_id] = TransferMetadata(sender, domain, 1, False)

    async def get_transfer_id(self, encrypted_data_hash: str) -> Optional[str]:
        if self.fail_reads:
            raise ConnectionError("rpc down")
        return self.transfer_ids.get(encrypted_data_hash)

    async def get_transfer_metadata(self, transfer_id: str) -> TransferMetadata:
        if self.fail_reads or self.fail_metadata:
            raise ConnectionError("rpc down")
        return self.metadata[transfer_id]

    async def get_transaction(self, tx_hash: str) -> TransactionInfo:
        if self.fail_reads:
            raise ConnectionError("rpc down")
        return self.transactions[tx_hash]


class FakeVault(VaultClient):
    """
    Vault that settles on a successful process_transfer call.

    failures holds exceptions raised by successive process_transfer calls
    before one goes through.
    """

    def __init__(self):
        self.acknowledged: set[str] = set()
        self.failures: list[Exception] = []
        self.submissions: list[str] = []
        self.included: list[str] = []
        self.revert = False
        self.settle_on_inclusion = True
        self.fail_reads = False

    async def is_acknowledged(self, transfer_id: str) -> bool:
        if self.fail_reads:
            raise ConnectionError("rpc down")
        return transfer_id in self.acknowledged

    async def process_transfer(self, transfer_id: str) -> str:
        self.submissions.append(transfer_id)
        if self.failures:
            raise self.failures.pop(0)
        tx_hash = hex32(len(self.submissions))
        if not self.revert:
            self.included.append(tx_hash)
            if self.settle_on_inclusion:
                self.acknowledged.add(transfer_id)
        return tx_hash

    async def wait_for_receipt(self, tx_hash: str) -> bool:
        return tx_hash in self.included


class ListEventSource(EventSource):
    """Event source over a fixed list of events."""

    def __init__(self, chain: Chain, events: list[ChainEvent], head: Optional[int] = None):
        self.chain = chain.value
        self.events = events
        self.head = head if head is not None else max((e.context.block_number for e in events), default=0)
        self.requests: list[tuple[int, int]] = []

    async def get_head_block(self) -> int:
        return self.head

    async def get_events(self, from_block: int, to_block: int) -> list[ChainEvent]:
        self.requests.append((from_block, to_block))
        return sorted(
            (e for e in self.events if from_block <= e.context.block_number <= to_block),
            key=lambda e: e.sort_key,
        )


class YieldingStore(InMemoryRecordStore):
    """In-memory store that gives up control on reads, as a networked store does."""

    async def get_transfer(self, transfer_id):
        await asyncio.sleep(0)
        return await super().get_transfer(transfer_id)

    async def get_deposit(self, deposit_id):
        await asyncio.sleep(0)
        return await super().get_deposit(deposit_id)


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def ingress():
    return FakeIngress()


@pytest.fixture
def vault():
    return FakeVault()


@pytest.fixture
def resolver(ingress):
    return IdentifierResolver(ingress, default_domain=DOMAIN)


@pytest_asyncio.fixture
async def engine(store, resolver):
    return ReconciliationEngine(store, resolver, default_domain=DOMAIN)


def deposit_event(deposit_id: str, amount: int, block: int = 1, depositor: str = DEPOSITOR) -> ChainEvent:
    return event(
        EventType.DEPOSIT_CREATED,
        {"depositId": deposit_id, "depositor": depositor, "token": NATIVE, "amount": amount, "isNative": True},
        ctx(block, tx=hex32(0xD000 + block)),
    )


def lifecycle_events(
    transfer_id: str,
    commitment: str,
    deposit_id: str,
    amount: int,
    base_block: int = 10,
) -> dict[str, ChainEvent]:
    """The five events of one transfer, keyed by a short name, in canonical order."""
    return {
        "received": event(
            EventType.INSTRUCTIONS_RECEIVED,
            {"encryptedDataHash": commitment},
            ctx(base_block, tx=hex32(0xA000 + base_block), call_data=initiate_call_data(deposit_id)),
        ),
        "stored": event(
            EventType.TRANSFER_STORED,
            {"transferId": transfer_id, "originDomain": 5003, "originRouter": hex32(7), "ciphertext": "0x00"},
            ctx(base_block + 1, tx=hex32(0xB000 + base_block)),
        ),
        "acknowledged": event(
            EventType.TRANSFER_ACKNOWLEDGED,
            {"transferId": transfer_id, "destinationDomain": 5003},
            ctx(base_block + 2, tx=hex32(0xB100 + base_block)),
        ),
        "payload": event(
            EventType.PAYLOAD_PROCESSED,
            {"transferId": transfer_id, "receiver": RECEIVER, "token": NATIVE, "amount": amount, "isNative": True},
            ctx(base_block + 3, tx=hex32(0xB200 + base_block)),
        ),
        "completed": event(
            EventType.INSTRUCTIONS_PROCESSED,
            {"encryptedDataHash": commitment},
            ctx(base_block + 4, tx=hex32(0xC000 + base_block)),
        ),
    }
