"""Read-only access to the source-chain ingress contract."""

import logging
from typing import Optional

from web3 import AsyncWeb3

from veilbridge.models import is_unset
from .abis import INGRESS_ABI
from .base import IngressReader, TransactionInfo, TransferMetadata
from .chain import to_bytes32, to_hex

logger = logging.getLogger(__name__)


class Web3IngressReader(IngressReader):
    """Ingress contract reads over JSON-RPC."""

    def __init__(self, w3: AsyncWeb3, address: str):
        self.w3 = w3
        self.contract = w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(address),
            abi=INGRESS_ABI,
        )

    async def get_transfer_id(self, encrypted_data_hash: str) -> Optional[str]:
        raw = await self.contract.functions.getTransferIdByCiphertextHash(
            to_bytes32(encrypted_data_hash)
        ).call()
        transfer_id = to_hex(raw)
        return None if is_unset(transfer_id) else transfer_id

    async def get_transfer_metadata(self, transfer_id: str) -> TransferMetadata:
        sender, destination_domain, dispatched_at, acknowledged = await self.contract.functions.transfers(
            to_bytes32(transfer_id)
        ).call()
        return TransferMetadata(
            sender=to_hex(sender),
            destination_domain=int(destination_domain),
            dispatched_at=int(dispatched_at),
            acknowledged=bool(acknowledged),
        )

    async def get_transaction(self, tx_hash: str) -> TransactionInfo:
        tx = await self.w3.eth.get_transaction(tx_hash)
        return TransactionInfo(sender=to_hex(tx["from"]), input=to_hex(tx["input"]))
