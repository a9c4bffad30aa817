"""Shared pytest fixtures for TicketSync tests."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock

import pytest
from dotenv import load_dotenv

from ticketsync.snapshots.adapter import SnapshotAdapter
from ticketsync.snapshots.codec import SnapshotDecoder
from ticketsync.snapshots.retry import RetryPolicy
from ticketsync.store.factory import clear_store_cache
from ticketsync.store.memory import MemoryStore

if TYPE_CHECKING:
    from collections.abc import Callable, Generator

load_dotenv()

FIXED_NOW = datetime(2026, 3, 14, 9, 26, 53, tzinfo=UTC)


@pytest.fixture(autouse=True)
def _reset_caches() -> Generator[None]:
    """Clear cached Settings and the shared memory store around every test."""
    clear_store_cache()
    yield
    clear_store_cache()


@pytest.fixture
def memory_store() -> MemoryStore:
    """Empty in-memory backing store surfacing values as stored."""
    return MemoryStore()


@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    """Clock that always returns FIXED_NOW."""
    return lambda: FIXED_NOW


@pytest.fixture
def fake_sleep() -> AsyncMock:
    """Stand-in for asyncio.sleep so retry backoff costs no wall time."""
    return AsyncMock()


@pytest.fixture
def retry_policy(fake_sleep: AsyncMock) -> RetryPolicy:
    """Three attempts, 0.1s base delay, sleeping via fake_sleep."""
    return RetryPolicy(attempts=3, base_delay=0.1, max_delay=2.0, sleep=fake_sleep)


@pytest.fixture
def make_adapter(
    memory_store: MemoryStore,
    fixed_clock: Callable[[], datetime],
    retry_policy: RetryPolicy,
) -> Callable[..., SnapshotAdapter]:
    """Factory for adapters over memory_store; override any dependency by kwarg."""

    def _make(
        store: MemoryStore | None = None,
        *,
        fail_open: bool = True,
        retry: RetryPolicy | None = None,
    ) -> SnapshotAdapter:
        return SnapshotAdapter(
            store if store is not None else memory_store,
            decoder=SnapshotDecoder(fail_open=fail_open),
            retry=retry or retry_policy,
            clock=fixed_clock,
        )

    return _make


@pytest.fixture
def adapter(make_adapter: Callable[..., SnapshotAdapter]) -> SnapshotAdapter:
    """Default fail-open adapter over memory_store."""
    return make_adapter()
