"""Backing store and snapshot adapter factories.

Builds the configured backing store (PostgreSQL, or in-memory for local
development) and the snapshot adapter wired to it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ticketsync.config import get_settings

if TYPE_CHECKING:
    from ticketsync.config import Settings
    from ticketsync.snapshots.adapter import SnapshotAdapter
    from ticketsync.store.protocol import BackingStoreProtocol


# Cached memory store so every caller in the process sees the same rows
_memory_store_instance: BackingStoreProtocol | None = None


def get_backing_store(settings: Settings | None = None) -> BackingStoreProtocol:
    """Get the backing store selected by STORE__BACKEND.

    Returns:
        A store implementing BackingStoreProtocol.
    """
    global _memory_store_instance  # noqa: PLW0603
    settings = settings or get_settings()

    if settings.store.backend == "memory":
        if _memory_store_instance is None:
            from ticketsync.store.memory import MemoryStore

            _memory_store_instance = MemoryStore()
        return _memory_store_instance

    from ticketsync.store.postgres import PostgresStore

    return PostgresStore()


def build_snapshot_adapter(settings: Settings | None = None) -> SnapshotAdapter:
    """Build a SnapshotAdapter from configuration."""
    from ticketsync.snapshots.adapter import SnapshotAdapter
    from ticketsync.snapshots.codec import SnapshotDecoder
    from ticketsync.snapshots.retry import RetryPolicy

    settings = settings or get_settings()
    snapshot = settings.snapshot
    return SnapshotAdapter(
        get_backing_store(settings),
        decoder=SnapshotDecoder(fail_open=snapshot.fail_open),
        retry=RetryPolicy(
            attempts=snapshot.retry_attempts,
            base_delay=snapshot.retry_base_delay,
            max_delay=snapshot.retry_max_delay,
        ),
    )


def clear_store_cache() -> None:
    """Clear the configuration and memory store caches (for tests)."""
    global _memory_store_instance  # noqa: PLW0603
    get_settings.cache_clear()
    _memory_store_instance = None
