"""Cross-chain private transfer indexer and settlement processor."""

__version__ = "1.0.0"
