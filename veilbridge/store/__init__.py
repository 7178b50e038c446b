from .base import RecordStore
from .memory import InMemoryRecordStore
from .sql import SqlRecordStore

__all__ = [
    "RecordStore",
    "InMemoryRecordStore",
    "SqlRecordStore",
    "open_store",
]


async def open_store(database_url: str) -> RecordStore:
    """Open the store named by a URL; "memory://" gives a process-local store."""
    if database_url.startswith("memory://"):
        return InMemoryRecordStore()
    store = SqlRecordStore(database_url)
    await store.initialize()
    return store
