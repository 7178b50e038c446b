from .resolver import (
    IdentifierResolver,
    Resolution,
    CallDataStrategy,
    StructuredCallDecoder,
    FixedOffsetCallDecoder,
)
from .reconciler import ReconciliationEngine
from .indexer import ChainIndexer
from .monitor import TransferSource, StoreTransferSource, IndexerApiTransferSource
from .settlement import SettlementProcessor, InFlightRegistry, CycleReport, is_duplicate_error

__all__ = [
    "IdentifierResolver",
    "Resolution",
    "CallDataStrategy",
    "StructuredCallDecoder",
    "FixedOffsetCallDecoder",
    "ReconciliationEngine",
    "ChainIndexer",
    "TransferSource",
    "StoreTransferSource",
    "IndexerApiTransferSource",
    "SettlementProcessor",
    "InFlightRegistry",
    "CycleReport",
    "is_duplicate_error",
]
