"""
Identifier resolution for events that only carry a ciphertext commitment.

EncryptedInstructionsReceived/Processed emit nothing but the hash of the
encrypted envelope. The transfer id, sender and destination domain are read
back from the ingress contract; the deposit id is not stored in any event or
view the ingress exposes for this purpose, so it is recovered from the call
data of the initiateTransfer transaction that emitted the event.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from eth_abi import decode as abi_decode
from eth_utils import function_signature_to_4byte_selector

from veilbridge.datasources.abis import INITIATE_TRANSFER_SIGNATURE, INITIATE_TRANSFER_TYPES
from veilbridge.datasources.base import IngressReader
from veilbridge.datasources.chain import to_hex
from veilbridge.models import EventContext, is_unset

logger = logging.getLogger(__name__)

SELECTOR_SIZE = 4
WORD_SIZE = 32
# initiateTransfer(uint32 destinationDomain, bytes32 depositId, bytes ciphertext):
# selector, then one head word for destinationDomain, then depositId
DEPOSIT_ID_OFFSET = SELECTOR_SIZE + WORD_SIZE


def _call_data_bytes(call_data: str) -> bytes:
    text = call_data[2:] if call_data.startswith("0x") else call_data
    return bytes.fromhex(text)


class CallDataStrategy(ABC):
    """One way of pulling the deposit id out of initiateTransfer call data."""

    name: str = "strategy"

    @abstractmethod
    def supports(self, call_data: bytes) -> bool:
        """Whether this strategy can be attempted on the given call data."""
        pass

    @abstractmethod
    def extract_deposit_id(self, call_data: bytes) -> str:
        """
        Returns:
            The deposit id as lower-case hex

        Raises:
            ValueError: if the call data cannot be decoded by this strategy
        """
        pass


class StructuredCallDecoder(CallDataStrategy):
    """ABI-decodes the arguments after checking the function selector."""

    name = "structured"

    def __init__(
        self,
        signature: str = INITIATE_TRANSFER_SIGNATURE,
        types: list[str] = INITIATE_TRANSFER_TYPES,
        deposit_arg_index: int = 1,
    ):
        self.selector = function_signature_to_4byte_selector(signature)
        self.types = types
        self.deposit_arg_index = deposit_arg_index

    def supports(self, call_data: bytes) -> bool:
        return len(call_data) >= SELECTOR_SIZE

    def extract_deposit_id(self, call_data: bytes) -> str:
        if call_data[:SELECTOR_SIZE] != self.selector:
            raise ValueError(f"selector {call_data[:SELECTOR_SIZE].hex()} does not match {self.selector.hex()}")
        try:
            args = abi_decode(self.types, call_data[SELECTOR_SIZE:])
        except Exception as e:
            raise ValueError(f"ABI decode failed: {e}") from e
        return to_hex(args[self.deposit_arg_index])


class FixedOffsetCallDecoder(CallDataStrategy):
    """Slices the deposit id word at a fixed byte offset, ignoring the selector."""

    name = "fixed-offset"

    def __init__(self, offset: int = DEPOSIT_ID_OFFSET):
        self.offset = offset

    def supports(self, call_data: bytes) -> bool:
        return len(call_data) >= self.offset + WORD_SIZE

    def extract_deposit_id(self, call_data: bytes) -> str:
        if len(call_data) < self.offset + WORD_SIZE:
            raise ValueError("call data too short")
        return to_hex(call_data[self.offset:self.offset + WORD_SIZE])


@dataclass
class Resolution:
    """
    Identifiers recovered for one commitment.

    transfer_id is None when the ingress has no mapping for the commitment
    yet. complete is False whenever any lookup failed and fallbacks were used.
    """
    transfer_id: Optional[str]
    sender: Optional[str] = None
    destination_domain: Optional[int] = None
    deposit_id: Optional[str] = None
    complete: bool = True


class IdentifierResolver:
    """Maps ciphertext commitments to transfer/deposit identifiers. Never raises."""

    def __init__(
        self,
        ingress: IngressReader,
        default_domain: int,
        strategies: Optional[list[CallDataStrategy]] = None,
    ):
        self.ingress = ingress
        self.default_domain = default_domain
        self.strategies = strategies if strategies is not None else [
            StructuredCallDecoder(),
            FixedOffsetCallDecoder(),
        ]

    async def resolve_transfer_id(self, encrypted_data_hash: str) -> Optional[str]:
        """Commitment → transfer id, or None when unmapped or unreachable."""
        try:
            return await self.ingress.get_transfer_id(encrypted_data_hash)
        except Exception as e:
            logger.warning(f"Could not read transfer id for commitment {encrypted_data_hash}: {e}")
            return None

    async def resolve(self, encrypted_data_hash: str, context: EventContext) -> Resolution:
        """
        Recover the full identifier set for a received commitment.

        Args:
            encrypted_data_hash: Commitment emitted by the ingress
            context: Context of the emitting transaction

        Returns:
            Resolution; RPC failures fall back to the transaction sender and
            the default destination domain
        """
        transfer_id = await self.resolve_transfer_id(encrypted_data_hash)
        if transfer_id is None:
            logger.info(f"Commitment {encrypted_data_hash} has no transfer id yet")
            return Resolution(
                transfer_id=None,
                sender=context.transaction_sender,
                destination_domain=self.default_domain,
                complete=False,
            )

        complete = True
        sender = context.transaction_sender
        destination_domain = self.default_domain
        try:
            metadata = await self.ingress.get_transfer_metadata(transfer_id)
            if not is_unset(metadata.sender):
                sender = metadata.sender
            if metadata.destination_domain:
                destination_domain = metadata.destination_domain
        except Exception as e:
            logger.error(f"Failed to read transfer metadata for {transfer_id}: {e}")
            complete = False

        deposit_id = await self._deposit_id_for(context.transaction_hash, context.raw_transaction_input)

        return Resolution(
            transfer_id=transfer_id,
            sender=sender,
            destination_domain=destination_domain,
            deposit_id=deposit_id,
            complete=complete and deposit_id is not None,
        )

    async def resolve_deposit_id(self, tx_hash: str) -> Optional[str]:
        """Re-read an initiating transaction to back-fill its deposit id."""
        return await self._deposit_id_for(tx_hash, None)

    async def _deposit_id_for(self, tx_hash: str, call_data: Optional[str]) -> Optional[str]:
        if not call_data:
            try:
                call_data = (await self.ingress.get_transaction(tx_hash)).input
            except Exception as e:
                logger.error(f"Failed to fetch transaction {tx_hash} for deposit id: {e}")
                return None
        return self.decode_deposit_id(call_data)

    def decode_deposit_id(self, call_data: str) -> Optional[str]:
        """
        Run every applicable strategy over the call data.

        Returns the deposit id when at least one strategy succeeds and all
        successful strategies agree; None otherwise (including a zero id).
        """
        try:
            data = _call_data_bytes(call_data)
        except ValueError:
            logger.warning("Transaction input is not valid hex")
            return None

        results: dict[str, str] = {}
        for strategy in self.strategies:
            if not strategy.supports(data):
                continue
            try:
                results[strategy.name] = strategy.extract_deposit_id(data)
            except ValueError as e:
                logger.debug(f"{strategy.name} decode failed: {e}")

        if not results:
            logger.warning("No call data strategy could decode the deposit id")
            return None

        values = set(results.values())
        if len(values) > 1:
            logger.error(f"Call data strategies disagree on deposit id: {results}")
            return None

        deposit_id = values.pop()
        return None if is_unset(deposit_id) else deposit_id
