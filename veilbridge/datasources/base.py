"""Abstract interfaces for the on-chain collaborators."""

from abc import ABC, abstractmethod
from typing import NamedTuple, Optional

from veilbridge.models import ChainEvent


class TransferMetadata(NamedTuple):
    """Ingress `transfers(id)` tuple."""
    sender: str
    destination_domain: int
    dispatched_at: int
    acknowledged: bool


class TransactionInfo(NamedTuple):
    sender: str
    input: str


class EventSource(ABC):
    """
    Per-chain stream of decoded contract events.

    Events are returned in block order, then log order within a block.
    """

    chain: str

    @abstractmethod
    async def get_head_block(self) -> int:
        """Latest block number on the chain."""
        pass

    @abstractmethod
    async def get_events(self, from_block: int, to_block: int) -> list[ChainEvent]:
        """
        Retrieve every subscribed event in an inclusive block range.

        Args:
            from_block: First block (inclusive)
            to_block: Last block (inclusive)

        Returns:
            ChainEvent objects sorted by (block_number, log_index)
        """
        pass

    async def close(self) -> None:
        pass


class IngressReader(ABC):
    """
    Read-only view of the source-chain ingress contract.

    Implementations raise on transport failure; callers decide how to degrade.
    """

    @abstractmethod
    async def get_transfer_id(self, encrypted_data_hash: str) -> Optional[str]:
        """
        Map a ciphertext commitment to its transfer id.

        Returns:
            The transfer id, or None when the contract has no mapping (zero value)
        """
        pass

    @abstractmethod
    async def get_transfer_metadata(self, transfer_id: str) -> TransferMetadata:
        pass

    @abstractmethod
    async def get_transaction(self, tx_hash: str) -> TransactionInfo:
        """Sender and raw call data of a source-chain transaction."""
        pass


class VaultClient(ABC):
    """Destination-chain vault: the settled flag and the settle call."""

    @abstractmethod
    async def is_acknowledged(self, transfer_id: str) -> bool:
        """
        Read `encryptedTransfers(id).acknowledged`.

        Raises on transport failure; the settlement processor treats that as
        "not settled".
        """
        pass

    @abstractmethod
    async def process_transfer(self, transfer_id: str) -> str:
        """Sign and submit `processTransfer(id)`. Returns the transaction hash."""
        pass

    @abstractmethod
    async def wait_for_receipt(self, tx_hash: str) -> bool:
        """Wait for inclusion. Returns True if the transaction succeeded."""
        pass

    async def close(self) -> None:
        pass
