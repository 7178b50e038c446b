"""Destination-chain vault contract: settled flag reads and the settle call."""

import logging

from eth_account import Account
from web3 import AsyncWeb3

from .abis import VAULT_ABI
from .base import VaultClient
from .chain import to_bytes32, to_hex

logger = logging.getLogger(__name__)

RECEIPT_TIMEOUT = 120.0


class Web3VaultClient(VaultClient):
    """
    Vault client signing with the single configured owner key.

    processTransfer carries no native value; interchain gas payment is not
    configured on the vault.
    """

    def __init__(self, w3: AsyncWeb3, address: str, private_key: str):
        self.w3 = w3
        self.contract = w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(address),
            abi=VAULT_ABI,
        )
        self.account = Account.from_key(private_key)

    async def is_acknowledged(self, transfer_id: str) -> bool:
        # (originDomain, originRouter, envelope, acknowledged)
        record = await self.contract.functions.encryptedTransfers(to_bytes32(transfer_id)).call()
        return bool(record[3])

    async def process_transfer(self, transfer_id: str) -> str:
        nonce = await self.w3.eth.get_transaction_count(self.account.address, "pending")
        tx = await self.contract.functions.processTransfer(to_bytes32(transfer_id)).build_transaction({
            "from": self.account.address,
            "nonce": nonce,
            "value": 0,
        })
        signed = self.account.sign_transaction(tx)
        tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        return to_hex(tx_hash)

    async def wait_for_receipt(self, tx_hash: str) -> bool:
        receipt = await self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=RECEIPT_TIMEOUT)
        return receipt["status"] == 1

    @property
    def address(self) -> str:
        return self.account.address
