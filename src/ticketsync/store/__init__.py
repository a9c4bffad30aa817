"""Backing-store clients for snapshot rows."""

from ticketsync.store.factory import build_snapshot_adapter, get_backing_store
from ticketsync.store.memory import MemoryStore
from ticketsync.store.protocol import BackingStoreProtocol

__all__ = [
    "BackingStoreProtocol",
    "MemoryStore",
    "build_snapshot_adapter",
    "get_backing_store",
]
