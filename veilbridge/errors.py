"""Exception types shared across the indexer and the settlement processor."""


class VeilbridgeError(Exception):
    """Base class for all errors raised by this package."""


class ConfigError(VeilbridgeError):
    """Required configuration is missing or invalid. Fatal at startup."""


class TransientError(VeilbridgeError):
    """An RPC node or the read API could not be reached. Retried on the next cycle."""


class DuplicateRecordError(VeilbridgeError):
    """A record that must be unique already exists in the store."""

    def __init__(self, table: str, key: str):
        super().__init__(f"{table} record {key} already exists")
        self.table = table
        self.key = key


class StoreUnavailableError(VeilbridgeError):
    """The record store could not be read or written."""
