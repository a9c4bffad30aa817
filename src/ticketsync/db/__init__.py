"""Database module for TicketSync.

Provides async SQLModel operations with PostgreSQL.
"""

from __future__ import annotations

from ticketsync.db.engine import close_db, get_engine, get_session, init_db
from ticketsync.db.models import DOCUMENTS_TABLE, TicketDocument

__all__ = [
    # Models
    "DOCUMENTS_TABLE",
    "TicketDocument",
    # Engine
    "close_db",
    "get_engine",
    "get_session",
    "init_db",
]
