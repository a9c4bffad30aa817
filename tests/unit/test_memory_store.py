"""Unit tests for the in-memory backing store."""

from __future__ import annotations

import pytest

from ticketsync.snapshots.errors import (
    ROW_NOT_FOUND_CODE,
    FatalStoreError,
    RowNotFoundError,
    TransientStoreError,
)
from ticketsync.store.memory import MemoryStore

TABLE = "ticket_documents"


@pytest.mark.asyncio
class TestMemoryStore:
    """Tests for MemoryStore's select_one/upsert behaviour."""

    async def test_missing_row_raises_not_found(self, memory_store: MemoryStore) -> None:
        """No matching row raises RowNotFoundError with the PostgREST code."""
        with pytest.raises(RowNotFoundError) as exc_info:
            await memory_store.select_one(TABLE, {"id": "ticket-1"})
        assert exc_info.value.code == ROW_NOT_FOUND_CODE

    async def test_upsert_then_select(self, memory_store: MemoryStore) -> None:
        """An upserted row is returned with only the requested columns."""
        await memory_store.upsert(
            TABLE,
            {"id": "ticket-1", "binary_state": "AQI=", "updated_at": "t1"},
            conflict_key="id",
        )

        row = await memory_store.select_one(
            TABLE, {"id": "ticket-1"}, columns=("binary_state",)
        )

        assert row == {"binary_state": "AQI="}

    async def test_upsert_replaces_existing_row(self, memory_store: MemoryStore) -> None:
        """A second upsert with the same key replaces the first."""
        for state in ("AQI=", "AwQ="):
            await memory_store.upsert(
                TABLE, {"id": "ticket-1", "binary_state": state}, conflict_key="id"
            )

        assert memory_store.rows(TABLE) == [{"id": "ticket-1", "binary_state": "AwQ="}]

    async def test_unknown_column_is_fatal(self, memory_store: MemoryStore) -> None:
        """Selecting a column the row lacks behaves like a schema mismatch."""
        memory_store.seed(TABLE, {"id": "ticket-1", "binary_state": None})
        with pytest.raises(FatalStoreError, match="does not exist"):
            await memory_store.select_one(TABLE, {"id": "ticket-1"}, columns=("nope",))

    async def test_missing_conflict_key_is_fatal(self, memory_store: MemoryStore) -> None:
        """Upserting a row without its conflict key is rejected."""
        with pytest.raises(FatalStoreError, match="conflict key"):
            await memory_store.upsert(TABLE, {"binary_state": "AA=="}, conflict_key="id")

    @pytest.mark.parametrize(
        ("stored", "surfaced"),
        [
            ("AQI=", "\\x" + b"AQI=".hex()),
            (b"\x01\x02", "\\x0102"),
            (None, None),
        ],
    )
    async def test_escaped_hex_surface(self, stored: object, surfaced: object) -> None:
        """Binary columns render like PostgreSQL's bytea hex output."""
        store = MemoryStore(surface="escaped_hex")
        store.seed(TABLE, {"id": "ticket-1", "binary_state": stored})

        row = await store.select_one(TABLE, {"id": "ticket-1"})

        assert row["binary_state"] == surfaced
        assert row["id"] == "ticket-1"

    async def test_injected_failures_are_consumed_in_order(
        self, memory_store: MemoryStore
    ) -> None:
        """fail_next raises the queued error for the next N calls only."""
        memory_store.fail_next("upsert", TransientStoreError("reset"), times=2)
        row = {"id": "ticket-1", "binary_state": "AA=="}

        for _ in range(2):
            with pytest.raises(TransientStoreError):
                await memory_store.upsert(TABLE, row, conflict_key="id")
        await memory_store.upsert(TABLE, row, conflict_key="id")

        assert memory_store.rows(TABLE) == [row]
        assert [op for op, _, _ in memory_store.calls] == ["upsert"] * 3
