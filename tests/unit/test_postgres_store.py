"""Unit tests for the PostgreSQL backing store.

Statements are captured by a fake session and compiled with the
PostgreSQL dialect, so no database is needed.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any
from unittest.mock import MagicMock

import pytest
from sqlalchemy import exc as sa_exc
from sqlalchemy.dialects import postgresql

from ticketsync.db.models import DOCUMENTS_TABLE
from ticketsync.snapshots.errors import (
    FatalStoreError,
    RowNotFoundError,
    TransientStoreError,
)
from ticketsync.store.postgres import PostgresStore, classify_error

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.sql import Executable


class FakeSession:
    """Records executed statements and returns canned rows."""

    def __init__(self, rows: list[dict[str, Any]], error: Exception | None) -> None:
        self.rows = rows
        self.error = error
        self.statements: list[Executable] = []

    async def execute(self, stmt: Executable) -> MagicMock:
        self.statements.append(stmt)
        if self.error is not None:
            raise self.error
        result = MagicMock()
        result.mappings.return_value.all.return_value = self.rows
        return result


def _store(
    rows: list[dict[str, Any]] | None = None, error: Exception | None = None
) -> tuple[PostgresStore, FakeSession]:
    session = FakeSession(rows or [], error)

    @asynccontextmanager
    async def session_factory() -> AsyncIterator[FakeSession]:
        yield session

    return PostgresStore(session_factory=session_factory), session  # type: ignore[arg-type]


def _compiled(stmt: Executable) -> Any:
    return stmt.compile(dialect=postgresql.dialect())


class TestClassifyError:
    """Tests for mapping driver exceptions to store errors."""

    @pytest.mark.parametrize(
        "exc",
        [
            sa_exc.OperationalError("SELECT 1", {}, OSError("connection refused")),
            sa_exc.InterfaceError("SELECT 1", {}, Exception("connection is closed")),
            sa_exc.TimeoutError("QueuePool limit reached"),
            TimeoutError(),
            ConnectionRefusedError(111, "Connection refused"),
        ],
    )
    def test_connectivity_errors_are_transient(self, exc: Exception) -> None:
        """Connection loss and timeouts may succeed on retry."""
        assert isinstance(classify_error(exc, "select"), TransientStoreError)

    def test_invalidated_connection_is_transient(self) -> None:
        """A DBAPI error that invalidated the connection is transient."""
        exc = sa_exc.DBAPIError(
            "SELECT 1",
            {},
            Exception("terminating connection"),
            connection_invalidated=True,
        )
        assert isinstance(classify_error(exc, "select"), TransientStoreError)

    @pytest.mark.parametrize(
        "exc",
        [
            sa_exc.ProgrammingError("SELECT", {}, Exception("permission denied")),
            sa_exc.IntegrityError("INSERT", {}, Exception("violates not-null")),
            ValueError("DATABASE__URL is not configured"),
        ],
    )
    def test_other_errors_are_fatal(self, exc: Exception) -> None:
        """Permission, schema and configuration errors will not heal by retrying."""
        result = classify_error(exc, "upsert into ticket_documents")
        assert isinstance(result, FatalStoreError)
        assert str(result).startswith("upsert into ticket_documents: ")

    def test_sqlstate_is_carried_as_code(self) -> None:
        """The driver's SQLSTATE, when present, becomes the error code."""
        orig = Exception("permission denied for table ticket_documents")
        orig.sqlstate = "42501"  # type: ignore[attr-defined]
        exc = sa_exc.ProgrammingError("SELECT", {}, orig)

        assert classify_error(exc, "select").code == "42501"

    def test_store_errors_pass_through(self) -> None:
        """Already-classified errors are returned unchanged."""
        error = RowNotFoundError(DOCUMENTS_TABLE, {"id": "x"})
        assert classify_error(error, "select") is error


@pytest.mark.asyncio
class TestSelectOne:
    """Tests for PostgresStore.select_one."""

    async def test_reads_binary_column_as_text(self) -> None:
        """bytea columns are cast to text so PostgreSQL renders hex."""
        store, session = _store(rows=[{"binary_state": "\\x41513d3d"}])

        row = await store.select_one(
            DOCUMENTS_TABLE, {"id": "ticket-42"}, columns=("binary_state",)
        )

        assert row == {"binary_state": "\\x41513d3d"}
        sql = str(_compiled(session.statements[0]))
        assert "CAST(ticket_documents.binary_state AS TEXT) AS binary_state" in sql
        assert "WHERE ticket_documents.id = " in sql
        assert "LIMIT" in sql

    async def test_no_rows_raises_not_found(self) -> None:
        """An empty result is RowNotFoundError."""
        store, _ = _store(rows=[])
        with pytest.raises(RowNotFoundError):
            await store.select_one(DOCUMENTS_TABLE, {"id": "ticket-missing"})

    async def test_multiple_rows_are_fatal(self) -> None:
        """A filter that matches more than one row is an error."""
        store, _ = _store(rows=[{"id": "a"}, {"id": "a"}])
        with pytest.raises(FatalStoreError, match="More than one row"):
            await store.select_one(DOCUMENTS_TABLE, {"id": "a"})

    async def test_unknown_table_is_fatal(self) -> None:
        """Querying a table that is not mapped fails without touching the DB."""
        store, session = _store()
        with pytest.raises(FatalStoreError) as exc_info:
            await store.select_one("tickets", {"id": "a"})
        assert exc_info.value.code == "42P01"
        assert session.statements == []

    async def test_unknown_column_is_fatal(self) -> None:
        """Selecting a missing column is a schema error."""
        store, _ = _store()
        with pytest.raises(FatalStoreError, match="does not exist"):
            await store.select_one(DOCUMENTS_TABLE, {"id": "a"}, columns=("state",))

    async def test_driver_error_is_translated(self) -> None:
        """Connection failures during execute surface as TransientStoreError."""
        error = sa_exc.OperationalError("SELECT", {}, OSError("connection reset"))
        store, _ = _store(error=error)

        with pytest.raises(TransientStoreError) as exc_info:
            await store.select_one(DOCUMENTS_TABLE, {"id": "a"})

        assert exc_info.value.__cause__ is error


@pytest.mark.asyncio
class TestUpsert:
    """Tests for PostgresStore.upsert."""

    async def test_upsert_replaces_on_conflict(self) -> None:
        """Insert falls back to updating every non-key column."""
        store, session = _store()

        await store.upsert(
            DOCUMENTS_TABLE,
            {"id": "ticket-42", "binary_state": "AAEC/f7/"},
            conflict_key="id",
        )

        compiled = _compiled(session.statements[0])
        sql = str(compiled)
        assert "INSERT INTO ticket_documents" in sql
        assert "ON CONFLICT (id) DO UPDATE SET" in sql
        assert "binary_state = excluded.binary_state" in sql
        assert compiled.params["binary_state"] == b"AAEC/f7/"

    async def test_key_only_row_does_nothing_on_conflict(self) -> None:
        """A row with only the key column cannot update anything."""
        store, session = _store()

        await store.upsert(DOCUMENTS_TABLE, {"id": "ticket-42"}, conflict_key="id")

        assert "ON CONFLICT (id) DO NOTHING" in str(_compiled(session.statements[0]))

    async def test_missing_conflict_key_is_fatal(self) -> None:
        """The conflict key must be present in the row."""
        store, session = _store()
        with pytest.raises(FatalStoreError, match="conflict key"):
            await store.upsert(
                DOCUMENTS_TABLE, {"binary_state": "AA=="}, conflict_key="id"
            )
        assert session.statements == []

    async def test_permission_error_is_fatal(self) -> None:
        """Driver errors that are not connectivity problems are fatal."""
        error = sa_exc.ProgrammingError("INSERT", {}, Exception("permission denied"))
        store, _ = _store(error=error)

        with pytest.raises(FatalStoreError, match="upsert into ticket_documents"):
            await store.upsert(DOCUMENTS_TABLE, {"id": "a"}, conflict_key="id")
