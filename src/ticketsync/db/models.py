"""SQLModel database models for TicketSync.

One table: the latest CRDT snapshot per ticket document.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import sqlalchemy as sa
from sqlalchemy import Column, DateTime, String
from sqlmodel import Field, SQLModel

DOCUMENTS_TABLE = "ticket_documents"


def utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


def _timestamptz_column() -> Any:
    """Create a TIMESTAMP WITH TIME ZONE column for PostgreSQL."""
    return Column(DateTime(timezone=True), nullable=False)


class TicketDocument(SQLModel, table=True):
    """Latest persisted snapshot of one collaboratively-edited document.

    Replaced wholesale on every store; there is never more than one row per id.

    Attributes:
        id: Document identifier (e.g. "ticket-42"), primary key.
        binary_state: Encoded CRDT snapshot. Written as base64 text, which
            PostgreSQL stores as that text's bytes.
        updated_at: Time of the last successful store.
    """

    __tablename__ = DOCUMENTS_TABLE

    id: str = Field(sa_column=Column(String(255), primary_key=True, nullable=False))
    binary_state: bytes | None = Field(
        default=None, sa_column=Column(sa.LargeBinary(), nullable=True)
    )
    updated_at: datetime = Field(default_factory=utcnow, sa_column=_timestamptz_column())
