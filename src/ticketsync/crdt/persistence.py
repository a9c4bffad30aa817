"""CRDT persistence manager for document sessions and debounced writes.

Loads each document once through the ``on_fetch`` hook when its first
client connects, and saves it through ``on_store`` with debouncing to avoid
overwhelming the database during rapid edits. The last client to leave
forces a save.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from ticketsync.crdt.sync import SharedDocument

logger = logging.getLogger(__name__)


class SnapshotHooks(Protocol):
    """The two hooks a persistence backend exposes to the engine."""

    async def on_fetch(self, document_id: str) -> bytes | None: ...

    async def on_store(self, document_id: str, data: bytes) -> None: ...


class PersistenceManager:
    """Manages loading and debounced persistence of shared documents.

    Attributes:
        debounce_seconds: Delay before persisting after the last change.
        _doc_registry: Dict of doc_id -> SharedDocument for loaded documents.
        _dirty_docs: Set of doc_ids that have unsaved changes.
        _pending_saves: Dict of doc_id -> asyncio.Task for pending debounced saves.
        _versions: Dict of doc_id -> change counter, so a save only clears the
            dirty flag if no change arrived while it was in flight.
    """

    debounce_seconds: float = 2.0

    def __init__(
        self, hooks: SnapshotHooks, debounce_seconds: float | None = None
    ) -> None:
        self.hooks = hooks
        if debounce_seconds is not None:
            self.debounce_seconds = debounce_seconds
        self._doc_registry: dict[str, SharedDocument] = {}
        self._dirty_docs: set[str] = set()
        self._pending_saves: dict[str, asyncio.Task[None]] = {}
        self._opening: dict[str, asyncio.Task[SharedDocument]] = {}
        self._save_locks: dict[str, asyncio.Lock] = {}
        self._versions: dict[str, int] = {}
        self._last_editors: dict[str, str | None] = {}

    # --- Document lifecycle ---

    def get_document(self, doc_id: str) -> SharedDocument | None:
        """Return the loaded document, if any."""
        return self._doc_registry.get(doc_id)

    async def open_document(self, doc_id: str) -> SharedDocument:
        """Return the loaded document, fetching its snapshot on first use.

        Concurrent calls for the same document share a single fetch.

        Raises:
            SnapshotFetchError: If the snapshot could not be retrieved. The
                document is not created, so no empty state can overwrite it.
        """
        doc = self._doc_registry.get(doc_id)
        if doc is not None:
            return doc

        task = self._opening.get(doc_id)
        if task is None:
            task = asyncio.create_task(self._load_document(doc_id))
            self._opening[doc_id] = task
        return await task

    async def _load_document(self, doc_id: str) -> SharedDocument:
        try:
            snapshot = await self.hooks.on_fetch(doc_id)
            doc = SharedDocument(doc_id, snapshot)
            doc.set_change_callback(self._on_change)
            self._doc_registry[doc_id] = doc
            if snapshot is None:
                logger.info("Document %s starts empty", doc_id)
            else:
                logger.info("Document %s loaded (%d bytes)", doc_id, len(snapshot))
            return doc
        finally:
            self._opening.pop(doc_id, None)

    def unregister_document(self, doc_id: str) -> None:
        """Unload a document, canceling any pending save."""
        self._doc_registry.pop(doc_id, None)
        self._last_editors.pop(doc_id, None)
        self._versions.pop(doc_id, None)
        self._save_locks.pop(doc_id, None)
        self._dirty_docs.discard(doc_id)
        self._cancel_pending_save(doc_id)

    async def connect(self, doc_id: str, client_id: str) -> SharedDocument:
        """Attach a client to a document, loading it if needed."""
        doc = await self.open_document(doc_id)
        doc.register_client(client_id)
        logger.info("Client %s connected to document %s", client_id, doc_id)
        return doc

    async def disconnect(self, doc_id: str, client_id: str) -> None:
        """Detach a client. The last client out persists and unloads the document.

        If the final save fails the document stays loaded and dirty so that
        a later save can still succeed.
        """
        doc = self._doc_registry.get(doc_id)
        if doc is None:
            return
        doc.unregister_client(client_id)
        logger.info("Client %s disconnected from document %s", client_id, doc_id)

        if doc.get_client_ids():
            return

        await self.force_persist(doc_id)
        if doc.get_client_ids() or self._doc_registry.get(doc_id) is not doc:
            # Another client joined during the final save
            return
        if doc_id in self._dirty_docs:
            logger.warning(
                "Document %s still has unsaved changes, keeping it loaded", doc_id
            )
            return
        self.unregister_document(doc_id)

    # --- Dirty tracking and debounced saves ---

    def _on_change(self, doc_id: str, origin: str | None) -> None:
        self.mark_dirty(doc_id, last_editor=origin)

    def mark_dirty(self, doc_id: str, last_editor: str | None = None) -> None:
        """Mark a document as having unsaved changes, schedule debounced save.

        Args:
            doc_id: ID of the document that changed.
            last_editor: Client ID that made the change, if known.
        """
        self._dirty_docs.add(doc_id)
        self._versions[doc_id] = self._versions.get(doc_id, 0) + 1
        if last_editor:
            self._last_editors[doc_id] = last_editor
        self._schedule_debounced_save(doc_id)

    def _schedule_debounced_save(self, doc_id: str) -> None:
        """Schedule or reschedule a debounced save."""
        self._cancel_pending_save(doc_id)

        async def debounced_save() -> None:
            await asyncio.sleep(self.debounce_seconds)
            # Detach before saving so a new edit cannot cancel an in-flight store
            self._pending_saves.pop(doc_id, None)
            await self._persist_document(doc_id)

        self._pending_saves[doc_id] = asyncio.create_task(debounced_save())

    def _cancel_pending_save(self, doc_id: str) -> None:
        """Cancel a pending debounced save if exists."""
        task = self._pending_saves.pop(doc_id, None)
        if task and not task.done():
            task.cancel()

    async def _persist_document(self, doc_id: str) -> bool:
        """Store the document's full state. Returns True on success."""
        doc = self._doc_registry.get(doc_id)
        if not doc:
            logger.warning(
                "Document %s not found in registry, skipping persist", doc_id
            )
            return False

        lock = self._save_locks.setdefault(doc_id, asyncio.Lock())
        async with lock:
            version = self._versions.get(doc_id, 0)
            state = doc.get_full_state()
            try:
                await self.hooks.on_store(doc_id, state)
            except Exception:
                logger.exception("Failed to persist document %s", doc_id)
                return False

            if self._versions.get(doc_id, 0) == version:
                self._dirty_docs.discard(doc_id)
            logger.info(
                "Persisted document %s (%d bytes, last editor %s)",
                doc_id,
                len(state),
                self._last_editors.get(doc_id),
            )
            return True

    async def force_persist(self, doc_id: str) -> None:
        """Immediately persist a document (e.g., on last client disconnect).

        Args:
            doc_id: ID of the document to persist.
        """
        self._cancel_pending_save(doc_id)
        if doc_id in self._dirty_docs:
            await self._persist_document(doc_id)

    async def persist_all_dirty(self) -> None:
        """Persist all dirty documents (e.g., on shutdown)."""
        for doc_id in list(self._dirty_docs):
            await self.force_persist(doc_id)


# Global singleton instance
_persistence_manager: PersistenceManager | None = None


def get_persistence_manager() -> PersistenceManager:
    """Get the global persistence manager, wired to the configured store."""
    global _persistence_manager  # noqa: PLW0603
    if _persistence_manager is None:
        from ticketsync.config import get_settings
        from ticketsync.store.factory import build_snapshot_adapter

        settings = get_settings()
        _persistence_manager = PersistenceManager(
            build_snapshot_adapter(settings),
            debounce_seconds=settings.app.debounce_seconds,
        )
    return _persistence_manager
