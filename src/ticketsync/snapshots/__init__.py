"""Snapshot persistence: column decoding, outcomes and the store adapter."""

from ticketsync.snapshots.adapter import SnapshotAdapter
from ticketsync.snapshots.codec import (
    DEFAULT_FORMATS,
    SnapshotDecoder,
    SnapshotFormat,
    encode_snapshot,
)
from ticketsync.snapshots.errors import (
    FatalStoreError,
    MalformedEncodingError,
    RowNotFoundError,
    SnapshotError,
    SnapshotFetchError,
    SnapshotStoreError,
    StoreError,
    TransientStoreError,
)
from ticketsync.snapshots.outcome import (
    Failed,
    FetchOutcome,
    Found,
    NotFound,
    NotFoundReason,
    StoreOutcome,
    Stored,
)
from ticketsync.snapshots.retry import RetryPolicy

__all__ = [
    "DEFAULT_FORMATS",
    "Failed",
    "FatalStoreError",
    "FetchOutcome",
    "Found",
    "MalformedEncodingError",
    "NotFound",
    "NotFoundReason",
    "RetryPolicy",
    "RowNotFoundError",
    "SnapshotAdapter",
    "SnapshotDecoder",
    "SnapshotError",
    "SnapshotFetchError",
    "SnapshotFormat",
    "SnapshotStoreError",
    "StoreError",
    "StoreOutcome",
    "Stored",
    "TransientStoreError",
    "encode_snapshot",
]
