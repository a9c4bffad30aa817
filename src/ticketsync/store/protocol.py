"""Protocol defining the backing-store client interface.

Both PostgresStore and MemoryStore implement this protocol, so the
snapshot adapter can run against either without knowing which.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence


class BackingStoreProtocol(Protocol):
    """The narrow query surface the snapshot adapter depends on."""

    async def select_one(
        self,
        table: str,
        filters: Mapping[str, Any],
        *,
        columns: Sequence[str] | None = None,
    ) -> Mapping[str, Any]:
        """Return the single row matching every ``column == value`` filter.

        Args:
            table: Table name.
            filters: Equality filters, combined with AND.
            columns: Columns to return. None returns all columns.

        Returns:
            The row as a column -> value mapping. Binary columns may surface
            in whatever representation the client uses.

        Raises:
            RowNotFoundError: If no row matches.
            TransientStoreError: On connectivity or timeout failures.
            FatalStoreError: On any other store failure.
        """
        ...

    async def upsert(
        self,
        table: str,
        row: Mapping[str, Any],
        *,
        conflict_key: str,
    ) -> None:
        """Insert ``row``, or replace the conflicting row's other columns.

        Args:
            table: Table name.
            row: Column -> value mapping. Must include ``conflict_key``.
            conflict_key: Unique column that identifies an existing row.

        Raises:
            TransientStoreError: On connectivity or timeout failures.
            FatalStoreError: On any other store failure.
        """
        ...
