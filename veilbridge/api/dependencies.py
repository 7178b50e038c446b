"""FastAPI dependencies for dependency injection."""

from veilbridge.store import RecordStore

# Global store instance - initialized at app startup
_store: RecordStore | None = None


def set_store(store: RecordStore | None) -> None:
    """Set the global record store instance."""
    global _store
    _store = store


def get_store() -> RecordStore:
    """Get the global record store instance for dependency injection."""
    if _store is None:
        raise RuntimeError("RecordStore not initialized. Call set_store() first.")
    return _store
