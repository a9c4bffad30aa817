"""Exception hierarchy for snapshot persistence.

Store errors are raised by backing-store implementations and turned into
``Failed`` outcomes by the adapter. Decode errors are raised by format
detectors and, under the default fail-open policy, demoted to absence.
"""

from __future__ import annotations

# PostgREST's code for a `.single()` query that matched zero rows.
ROW_NOT_FOUND_CODE = "PGRST116"


class SnapshotError(Exception):
    """Base class for all snapshot persistence errors."""


class StoreError(SnapshotError):
    """A backing-store query or upsert failed."""

    def __init__(self, message: str, code: str | None = None) -> None:
        self.code = code
        super().__init__(message)


class RowNotFoundError(StoreError):
    """The query matched no row. Expected for brand-new documents."""

    def __init__(self, table: str, filters: dict[str, object]) -> None:
        self.table = table
        self.filters = filters
        super().__init__(
            f"No row in {table} matching {filters}", code=ROW_NOT_FOUND_CODE
        )


class TransientStoreError(StoreError):
    """Connectivity or timeout failure; the same request may succeed later."""


class FatalStoreError(StoreError):
    """Permission, schema or configuration failure; retrying will not help."""


class MalformedEncodingError(SnapshotError):
    """A column value claimed a format but could not be decoded by it."""

    def __init__(self, format_name: str, detail: str) -> None:
        self.format_name = format_name
        self.detail = detail
        super().__init__(f"Malformed {format_name} value: {detail}")


class SnapshotFetchError(SnapshotError):
    """Raised to the collaboration engine when a fetch failed outright."""

    def __init__(self, document_id: str, cause: BaseException) -> None:
        self.document_id = document_id
        self.cause = cause
        super().__init__(f"Failed to fetch snapshot for {document_id}: {cause}")


class SnapshotStoreError(SnapshotError):
    """Raised to the collaboration engine when a store failed."""

    def __init__(self, document_id: str, cause: BaseException) -> None:
        self.document_id = document_id
        self.cause = cause
        super().__init__(f"Failed to store snapshot for {document_id}: {cause}")
