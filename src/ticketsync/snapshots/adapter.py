"""Snapshot persistence adapter.

Bridges the collaboration engine's in-memory document state and the backing
store. ``fetch`` and ``store`` return explicit outcomes; ``on_fetch`` and
``on_store`` are the two hooks the engine calls, translating outcomes into
return values and exceptions.

The adapter holds no per-document state: calls for different documents can
run concurrently, and callers are expected to serialize calls for the same
document.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ticketsync.db.models import DOCUMENTS_TABLE, utcnow
from ticketsync.snapshots.codec import SnapshotDecoder, encode_snapshot
from ticketsync.snapshots.errors import (
    MalformedEncodingError,
    RowNotFoundError,
    SnapshotFetchError,
    SnapshotStoreError,
    StoreError,
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

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from ticketsync.store.protocol import BackingStoreProtocol

logger = logging.getLogger(__name__)

ID_COLUMN = "id"
STATE_COLUMN = "binary_state"
UPDATED_AT_COLUMN = "updated_at"


def _is_empty(value: object) -> bool:
    if value is None:
        return True
    try:
        return len(value) == 0  # type: ignore[arg-type]
    except TypeError:
        return False


class SnapshotAdapter:
    """Fetches and stores document snapshots in a backing store.

    Args:
        store: Backing store client.
        decoder: Column decoder; its ``fail_open`` flag decides whether corrupt
            rows read as NotFound or Failed.
        retry: Retry policy for transient store failures.
        clock: Source of ``updated_at`` timestamps.
        table: Table holding one row per document.
    """

    def __init__(
        self,
        store: BackingStoreProtocol,
        *,
        decoder: SnapshotDecoder | None = None,
        retry: RetryPolicy | None = None,
        clock: Callable[[], datetime] = utcnow,
        table: str = DOCUMENTS_TABLE,
    ) -> None:
        self.backing_store = store
        self.decoder = decoder or SnapshotDecoder()
        self.retry = retry or RetryPolicy()
        self.clock = clock
        self.table = table

    async def fetch(self, document_id: str) -> FetchOutcome:
        """Retrieve the latest snapshot for ``document_id``.

        Returns:
            Found with the bytes; NotFound for a missing row, an empty column
            or (when fail-open) an undecodable column; Failed with the cause
            for any error raised by the backing store.
        """
        try:
            row = await self.retry.run(
                lambda: self.backing_store.select_one(
                    self.table,
                    {ID_COLUMN: document_id},
                    columns=(STATE_COLUMN,),
                ),
                f"fetch {document_id}",
            )
        except RowNotFoundError:
            logger.info(
                "No snapshot for %s, will be created on first store", document_id
            )
            return NotFound(NotFoundReason.NO_ROW)
        except StoreError as exc:
            logger.error("Error fetching snapshot for %s: %s", document_id, exc)
            return Failed(exc)
        except Exception as exc:
            logger.exception("Unexpected error fetching snapshot for %s", document_id)
            return Failed(exc)

        value = row.get(STATE_COLUMN)
        if _is_empty(value):
            logger.info("Snapshot column for %s is empty", document_id)
            return NotFound(NotFoundReason.EMPTY_COLUMN)

        try:
            decoded = self.decoder.decode_with_format(value, document_id=document_id)
        except MalformedEncodingError as exc:
            logger.error("Corrupt snapshot for %s: %s", document_id, exc)
            return Failed(exc)

        if decoded is None:
            return NotFound(NotFoundReason.UNDECODABLE)
        if not decoded.data:
            # e.g. a column holding only "=" padding
            logger.info("Snapshot for %s decodes to no bytes", document_id)
            return NotFound(NotFoundReason.EMPTY_COLUMN)

        logger.info(
            "Loaded snapshot for %s (%s, %d bytes)",
            document_id,
            decoded.format,
            len(decoded.data),
        )
        return Found(decoded.data, format=decoded.format)

    async def store(self, document_id: str, data: bytes) -> StoreOutcome:
        """Replace the snapshot for ``document_id`` with ``data``.

        The row is upserted with a fresh ``updated_at``. Re-issuing the same
        store leaves the same row, so retries are safe.

        Returns:
            Stored with the new timestamp, or Failed with the cause.
        """
        encoded = encode_snapshot(bytes(data))
        updated_at = self.clock()
        row = {
            ID_COLUMN: document_id,
            STATE_COLUMN: encoded,
            UPDATED_AT_COLUMN: updated_at,
        }
        logger.debug(
            "Storing snapshot for %s (%d bytes, %d encoded)",
            document_id,
            len(data),
            len(encoded),
        )

        try:
            await self.retry.run(
                lambda: self.backing_store.upsert(
                    self.table, row, conflict_key=ID_COLUMN
                ),
                f"store {document_id}",
            )
        except StoreError as exc:
            logger.error("Error storing snapshot for %s: %s", document_id, exc)
            return Failed(exc)
        except Exception as exc:
            logger.exception("Unexpected error storing snapshot for %s", document_id)
            return Failed(exc)

        logger.info("Stored snapshot for %s (%d bytes)", document_id, len(data))
        return Stored(updated_at)

    async def on_fetch(self, document_id: str) -> bytes | None:
        """Collaboration-engine hook: load a document at session open.

        Returns:
            Snapshot bytes, or None when the engine should start empty.

        Raises:
            SnapshotFetchError: If the store failed; the engine must not
                start an empty document in that case.
        """
        outcome = await self.fetch(document_id)
        match outcome:
            case Found(data=data):
                return data
            case NotFound():
                return None
            case Failed(cause=cause):
                raise SnapshotFetchError(document_id, cause) from cause
        msg = f"unexpected fetch outcome {outcome!r}"
        raise AssertionError(msg)

    async def on_store(self, document_id: str, data: bytes) -> None:
        """Collaboration-engine hook: persist a document after mutation.

        Raises:
            SnapshotStoreError: If the store failed.
        """
        outcome = await self.store(document_id, data)
        if isinstance(outcome, Failed):
            raise SnapshotStoreError(document_id, outcome.cause) from outcome.cause
