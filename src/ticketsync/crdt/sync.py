"""Shared document management for CRDT synchronization.

This module provides the server-side document state, handling multiple
connected clients and broadcasting updates.
"""

from __future__ import annotations

from contextvars import ContextVar
from typing import TYPE_CHECKING, Any

from pycrdt import Doc, Text, TransactionEvent

if TYPE_CHECKING:
    from collections.abc import Callable

# Async-safe storage for the origin client ID during updates.
_origin_var: ContextVar[str | None] = ContextVar("origin", default=None)


class SharedDocument:
    """A pycrdt document hosted by the server for one ticket.

    The document is seeded from a persisted snapshot (or starts empty) and
    notifies listeners of every subsequent update, so they can broadcast it
    to other clients and schedule persistence.
    """

    def __init__(self, doc_id: str, snapshot: bytes | None = None) -> None:
        """Create the document, applying ``snapshot`` if one was persisted."""
        self.doc_id = doc_id
        self.doc = Doc()
        self.doc["text"] = Text()
        if snapshot:
            self.doc.apply_update(snapshot)

        self._clients: dict[str, Any] = {}
        self._broadcast_callback: Callable[[bytes, str | None], None] | None = None
        self._change_callback: Callable[[str, str | None], None] | None = None

        # Observe after seeding so loading a snapshot is not reported as a change
        self.doc.observe(self._on_update)

    @property
    def text(self) -> Text:
        """Get the shared text object."""
        return self.doc["text"]

    def get_full_state(self) -> bytes:
        """Get the full document state, as persisted and sent to new clients."""
        return self.doc.get_update()

    def apply_update(self, update: bytes, origin_client_id: str | None = None) -> None:
        """Apply an update from a client.

        Args:
            update: Binary update from a client
            origin_client_id: ID of the client that sent the update
                (for echo prevention)
        """
        token = _origin_var.set(origin_client_id)
        try:
            self.doc.apply_update(update)
        finally:
            _origin_var.reset(token)

    def insert_at(
        self, position: int, content: str, origin_client_id: str | None = None
    ) -> None:
        """Insert text at a specific position."""
        token = _origin_var.set(origin_client_id)
        try:
            self.text.insert(position, content)
        finally:
            _origin_var.reset(token)

    def get_content(self) -> str:
        """Get the current text content as a string."""
        return str(self.text)

    def register_client(self, client_id: str, client_data: Any = None) -> None:
        """Register a new connected client."""
        self._clients[client_id] = client_data

    def unregister_client(self, client_id: str) -> None:
        """Unregister a disconnected client."""
        self._clients.pop(client_id, None)

    def get_client_ids(self) -> list[str]:
        """Get list of connected client IDs."""
        return list(self._clients.keys())

    def set_broadcast_callback(
        self, callback: Callable[[bytes, str | None], None] | None
    ) -> None:
        """Set the callback for broadcasting updates to clients.

        Args:
            callback: Function that takes (update_bytes, origin_client_id)
                     and broadcasts to all clients except the origin
        """
        self._broadcast_callback = callback

    def set_change_callback(
        self, callback: Callable[[str, str | None], None] | None
    ) -> None:
        """Set the callback notified with (doc_id, origin_client_id) on change."""
        self._change_callback = callback

    def _on_update(self, event: TransactionEvent) -> None:
        origin = _origin_var.get()
        if self._broadcast_callback is not None:
            self._broadcast_callback(event.update, origin)
        if self._change_callback is not None:
            self._change_callback(self.doc_id, origin)
