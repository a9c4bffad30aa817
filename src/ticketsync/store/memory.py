"""In-memory backing store for tests and local development.

Implements BackingStoreProtocol without a database. Binary columns can be
surfaced either as stored or in PostgreSQL's ``\\x`` hex rendering, so the
decoder's legacy paths can be exercised end to end. Failures can be
injected per operation.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from typing import TYPE_CHECKING, Any, Literal

from ticketsync.snapshots.codec import ESCAPE_PREFIX
from ticketsync.snapshots.errors import (
    FatalStoreError,
    RowNotFoundError,
    StoreError,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

type Operation = Literal["select_one", "upsert"]
type Surface = Literal["raw", "escaped_hex"]


def _as_escaped_hex(value: Any) -> Any:
    """Render a binary column value the way PostgreSQL prints ``bytea``."""
    if value is None:
        return None
    raw = value.encode("utf-8") if isinstance(value, str) else bytes(value)
    return ESCAPE_PREFIX + raw.hex()


class MemoryStore:
    """Dict-backed implementation of BackingStoreProtocol.

    Rows are keyed per table by the upsert conflict key. Each call yields to
    the event loop once so concurrent callers interleave as they would
    against a real server.

    Attributes:
        surface: How binary columns are returned by ``select_one``.
            ``"raw"`` returns the stored value unchanged; ``"escaped_hex"``
            returns ``\\x`` + hex of its bytes.
        binary_columns: Column names treated as binary.
    """

    def __init__(
        self,
        *,
        surface: Surface = "raw",
        binary_columns: Iterable[str] = ("binary_state",),
        key_column: str = "id",
    ) -> None:
        self.surface: Surface = surface
        self.binary_columns = frozenset(binary_columns)
        self.key_column = key_column
        self._tables: dict[str, dict[Any, dict[str, Any]]] = defaultdict(dict)
        self._failures: dict[Operation, deque[StoreError]] = defaultdict(deque)
        self.calls: list[tuple[Operation, str, Any]] = []

    def fail_next(self, operation: Operation, error: StoreError, times: int = 1) -> None:
        """Make the next ``times`` calls of ``operation`` raise ``error``."""
        for _ in range(times):
            self._failures[operation].append(error)

    def seed(self, table: str, row: Mapping[str, Any]) -> None:
        """Write a row directly, bypassing failure injection.

        Useful for planting rows in legacy encodings.
        """
        self._tables[table][row[self.key_column]] = dict(row)

    def rows(self, table: str) -> list[dict[str, Any]]:
        """Return copies of every stored row in ``table``."""
        return [dict(row) for row in self._tables[table].values()]

    def _raise_injected(self, operation: Operation) -> None:
        pending = self._failures[operation]
        if pending:
            raise pending.popleft()

    def _render(self, row: dict[str, Any], columns: Sequence[str] | None) -> dict[str, Any]:
        names = list(columns) if columns is not None else list(row)
        rendered: dict[str, Any] = {}
        for name in names:
            if name not in row:
                msg = f"column {name!r} does not exist"
                raise FatalStoreError(msg, code="42703")
            value = row[name]
            if self.surface == "escaped_hex" and name in self.binary_columns:
                value = _as_escaped_hex(value)
            rendered[name] = value
        return rendered

    async def select_one(
        self,
        table: str,
        filters: Mapping[str, Any],
        *,
        columns: Sequence[str] | None = None,
    ) -> Mapping[str, Any]:
        self.calls.append(("select_one", table, dict(filters)))
        await asyncio.sleep(0)
        self._raise_injected("select_one")

        matches = [
            row
            for row in self._tables[table].values()
            if all(row.get(k) == v for k, v in filters.items())
        ]
        if not matches:
            raise RowNotFoundError(table, dict(filters))
        if len(matches) > 1:
            msg = f"{len(matches)} rows in {table} match {dict(filters)}"
            raise FatalStoreError(msg)
        return self._render(matches[0], columns)

    async def upsert(
        self,
        table: str,
        row: Mapping[str, Any],
        *,
        conflict_key: str,
    ) -> None:
        self.calls.append(("upsert", table, row.get(conflict_key)))
        await asyncio.sleep(0)
        self._raise_injected("upsert")

        if conflict_key not in row:
            msg = f"row is missing conflict key {conflict_key!r}"
            raise FatalStoreError(msg)
        key = row[conflict_key]
        existing = self._tables[table].get(key, {})
        self._tables[table][key] = {**existing, **row}
