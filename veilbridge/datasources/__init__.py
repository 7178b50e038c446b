from .base import (
    EventSource,
    IngressReader,
    VaultClient,
    TransferMetadata,
    TransactionInfo,
)
from .chain import Web3EventSource, connect, to_hex
from .ingress import Web3IngressReader
from .vault import Web3VaultClient

__all__ = [
    "EventSource",
    "IngressReader",
    "VaultClient",
    "TransferMetadata",
    "TransactionInfo",
    "Web3EventSource",
    "Web3IngressReader",
    "Web3VaultClient",
    "connect",
    "to_hex",
]
