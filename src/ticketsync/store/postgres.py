"""PostgreSQL backing store.

Implements BackingStoreProtocol over the async SQLModel session. Reads
render ``bytea`` columns as text, which PostgreSQL prints in its ``\\x`` hex
form, the same representation a PostgREST client surfaces. Text written to a
``bytea`` column is stored as its UTF-8 bytes, as PostgREST does.

Driver exceptions are translated into the store error taxonomy:
connection loss and timeouts become TransientStoreError, everything else
FatalStoreError.
"""

from __future__ import annotations

import logging
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from sqlalchemy import exc as sa_exc
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlmodel import SQLModel

from ticketsync.db.engine import get_session
from ticketsync.snapshots.errors import (
    FatalStoreError,
    RowNotFoundError,
    StoreError,
    TransientStoreError,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Mapping, Sequence

    from sqlmodel.ext.asyncio.session import AsyncSession

logger = logging.getLogger(__name__)

_TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    sa_exc.OperationalError,
    sa_exc.InterfaceError,
    sa_exc.DisconnectionError,
    sa_exc.TimeoutError,
    TimeoutError,
    OSError,
)


def _sqlstate(exc: BaseException) -> str | None:
    """Best-effort SQLSTATE code from a wrapped DBAPI error."""
    orig = getattr(exc, "orig", None)
    for candidate in (orig, exc):
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if isinstance(code, str):
            return code
    return None


def classify_error(exc: BaseException, describe: str) -> StoreError:
    """Map a driver or configuration exception onto the store error taxonomy."""
    if isinstance(exc, StoreError):
        return exc
    message = f"{describe}: {type(exc).__name__}: {exc}"
    if isinstance(exc, sa_exc.DBAPIError) and exc.connection_invalidated:
        return TransientStoreError(message, code=_sqlstate(exc))
    if isinstance(exc, _TRANSIENT_ERRORS):
        return TransientStoreError(message, code=_sqlstate(exc))
    return FatalStoreError(message, code=_sqlstate(exc))


@asynccontextmanager
async def _translate_errors(describe: str) -> AsyncIterator[None]:
    try:
        yield
    except StoreError:
        raise
    except (sa_exc.SQLAlchemyError, OSError, TimeoutError, ValueError) as exc:
        # ValueError: DATABASE__URL missing when the engine initializes lazily
        raise classify_error(exc, describe) from exc


class PostgresStore:
    """BackingStoreProtocol implementation for PostgreSQL.

    Each call opens its own session, so calls for different documents run
    independently and share no state beyond the connection pool.

    Args:
        session_factory: Async context manager factory yielding a session.
            Defaults to ``ticketsync.db.engine.get_session``.
        metadata: Where table definitions are looked up by name.
    """

    def __init__(
        self,
        session_factory: Callable[[], AbstractAsyncContextManager[AsyncSession]] = (
            get_session
        ),
        metadata: sa.MetaData = SQLModel.metadata,
    ) -> None:
        self._session_factory = session_factory
        self._metadata = metadata

    def _table(self, name: str) -> sa.Table:
        table = self._metadata.tables.get(name)
        if table is None:
            msg = f"Unknown table {name!r}"
            raise FatalStoreError(msg, code="42P01")
        return table

    @staticmethod
    def _column(table: sa.Table, name: str) -> sa.Column[Any]:
        try:
            return table.c[name]
        except KeyError:
            msg = f"column {table.name}.{name} does not exist"
            raise FatalStoreError(msg, code="42703") from None

    @staticmethod
    def _readable(column: sa.Column[Any]) -> sa.ColumnElement[Any]:
        if isinstance(column.type, sa.LargeBinary):
            return sa.cast(column, sa.Text).label(column.name)
        return column

    @staticmethod
    def _writable(column: sa.Column[Any], value: Any) -> Any:
        if isinstance(column.type, sa.LargeBinary) and isinstance(value, str):
            return value.encode("utf-8")
        return value

    async def select_one(
        self,
        table: str,
        filters: Mapping[str, Any],
        *,
        columns: Sequence[str] | None = None,
    ) -> Mapping[str, Any]:
        sa_table = self._table(table)
        names = list(columns) if columns is not None else list(sa_table.c.keys())
        selected = [self._readable(self._column(sa_table, name)) for name in names]
        conditions = [self._column(sa_table, k) == v for k, v in filters.items()]
        # Two rows are enough to tell "exactly one" from "ambiguous"
        stmt = sa.select(*selected).where(*conditions).limit(2)

        async with _translate_errors(f"select from {table}"):
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                rows = result.mappings().all()

        if not rows:
            raise RowNotFoundError(table, dict(filters))
        if len(rows) > 1:
            msg = f"More than one row in {table} matches {dict(filters)}"
            raise FatalStoreError(msg)
        return dict(rows[0])

    async def upsert(
        self,
        table: str,
        row: Mapping[str, Any],
        *,
        conflict_key: str,
    ) -> None:
        sa_table = self._table(table)
        if conflict_key not in row:
            msg = f"row is missing conflict key {conflict_key!r}"
            raise FatalStoreError(msg)
        values = {
            name: self._writable(self._column(sa_table, name), value)
            for name, value in row.items()
        }

        stmt = pg_insert(sa_table).values(**values)
        replace = {name: stmt.excluded[name] for name in values if name != conflict_key}
        if replace:
            stmt = stmt.on_conflict_do_update(
                index_elements=[self._column(sa_table, conflict_key)], set_=replace
            )
        else:
            stmt = stmt.on_conflict_do_nothing(
                index_elements=[self._column(sa_table, conflict_key)]
            )

        async with _translate_errors(f"upsert into {table}"):
            async with self._session_factory() as session:
                await session.execute(stmt)
