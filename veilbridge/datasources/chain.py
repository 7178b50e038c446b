"""JSON-RPC event source implementation on top of web3.py."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from web3 import AsyncWeb3
from web3.exceptions import Web3Exception

from veilbridge.errors import TransientError
from veilbridge.models import Chain, ChainEvent, EventContext, EventType
from .base import EventSource

logger = logging.getLogger(__name__)

# RPC constants
MAX_RETRIES = 5
RETRY_DELAY = 2.0

T = TypeVar("T")


def to_hex(value: Any) -> str:
    """Lower-case 0x-prefixed hex for bytes, HexBytes, checksum addresses and hex strings."""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    text = str(value)
    if not text.startswith("0x"):
        text = "0x" + text
    return text.lower()


def to_bytes32(value: str) -> bytes:
    raw = bytes.fromhex(value[2:] if value.startswith("0x") else value)
    if len(raw) > 32:
        raise ValueError(f"{value} is longer than 32 bytes")
    return raw.rjust(32, b"\0")


def normalize_args(args: dict[str, Any]) -> dict[str, Any]:
    """Event args with bytes and addresses turned into lower-case hex strings."""
    normalized = {}
    for key, value in args.items():
        if isinstance(value, (bytes, bytearray)) or (isinstance(value, str) and value.startswith("0x")):
            normalized[key] = to_hex(value)
        else:
            normalized[key] = value
    return normalized


def connect(rpc_url: str) -> AsyncWeb3:
    """Create an AsyncWeb3 instance for an HTTP JSON-RPC endpoint."""
    return AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))


async def call_with_retry(
    label: str,
    func: Callable[[], Awaitable[T]],
    retries: int = MAX_RETRIES,
    delay: float = RETRY_DELAY,
) -> T:
    """
    Run an RPC coroutine, retrying transport failures.

    Raises:
        TransientError: once all retries are used up
    """
    for attempt in range(1, retries + 1):
        try:
            return await func()
        except (asyncio.TimeoutError, OSError, Web3Exception) as e:
            if attempt == retries:
                logger.error(f"{label} failed after {retries} attempts: {e}")
                raise TransientError(f"{label}: {e}") from e
            logger.warning(
                f"{label} failed (attempt {attempt}/{retries}): {e}. "
                f"Retrying in {delay}s..."
            )
            await asyncio.sleep(delay)
    raise TransientError(label)


class Web3EventSource(EventSource):
    """
    Event source polling `eth_getLogs` for one contract.

    Block timestamps and transaction metadata are looked up per event and
    cached for the duration of one get_events call.
    """

    def __init__(
        self,
        chain: Chain,
        w3: AsyncWeb3,
        address: str,
        abi: list[dict],
        event_types: tuple[EventType, ...],
    ):
        self.chain = chain.value
        self._chain = chain
        self.w3 = w3
        self.contract = w3.eth.contract(address=AsyncWeb3.to_checksum_address(address), abi=abi)
        self.event_types = event_types

    async def get_head_block(self) -> int:
        return await call_with_retry(f"{self.chain} block_number", lambda: self.w3.eth.block_number)

    async def get_events(self, from_block: int, to_block: int) -> list[ChainEvent]:
        logs = []
        for event_type in self.event_types:
            event = getattr(self.contract.events, event_type.value)
            batch = await call_with_retry(
                f"{self.chain} get_logs {event_type.value}",
                lambda event=event: event().get_logs(from_block=from_block, to_block=to_block),
            )
            logs.extend((event_type, log) for log in batch)

        logs.sort(key=lambda item: (item[1]["blockNumber"], item[1]["logIndex"]))

        timestamps: dict[int, int] = {}
        transactions: dict[str, dict] = {}
        events: list[ChainEvent] = []

        for event_type, log in logs:
            block_number = log["blockNumber"]
            tx_hash = to_hex(log["transactionHash"])

            if block_number not in timestamps:
                block = await call_with_retry(
                    f"{self.chain} get_block {block_number}",
                    lambda: self.w3.eth.get_block(block_number),
                )
                timestamps[block_number] = int(block["timestamp"])
            if tx_hash not in transactions:
                transactions[tx_hash] = await call_with_retry(
                    f"{self.chain} get_transaction {tx_hash}",
                    lambda: self.w3.eth.get_transaction(tx_hash),
                )
            tx = transactions[tx_hash]

            events.append(ChainEvent(
                chain=self._chain,
                type=event_type,
                args=normalize_args(dict(log["args"])),
                context=EventContext(
                    block_number=block_number,
                    block_timestamp=timestamps[block_number],
                    transaction_hash=tx_hash,
                    transaction_sender=to_hex(tx["from"]),
                    raw_transaction_input=to_hex(tx["input"]) if tx.get("input") is not None else None,
                    log_index=log["logIndex"],
                ),
            ))

        logger.debug(f"[Indexer] {self.chain}: {len(events)} events in blocks {from_block}-{to_block}")
        return events

    async def close(self) -> None:
        provider = self.w3.provider
        disconnect: Optional[Callable[[], Awaitable[None]]] = getattr(provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()
