"""Result types for snapshot fetch and store operations.

These dataclasses give the collaboration engine an explicit tri-state for
retrieval, so a missing document is never confused with a failed query.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from ticketsync.snapshots.errors import TransientStoreError

if TYPE_CHECKING:
    from datetime import datetime


class NotFoundReason(StrEnum):
    """Why a fetch produced no snapshot. Diagnostic only."""

    NO_ROW = "no_row"
    EMPTY_COLUMN = "empty_column"
    UNDECODABLE = "undecodable"


@dataclass(frozen=True)
class Found:
    """A snapshot was retrieved and decoded.

    Attributes:
        data: The snapshot bytes, exactly as last stored.
        format: Name of the format detector that decoded the column value.
    """

    data: bytes
    format: str = field(default="", compare=False)


@dataclass(frozen=True)
class NotFound:
    """No usable snapshot exists; the caller may start from an empty document.

    All reasons compare equal, since the caller must treat them the same way.
    """

    reason: NotFoundReason = field(default=NotFoundReason.NO_ROW, compare=False)


@dataclass(frozen=True)
class Failed:
    """The backing store reported an error. The cause is attached."""

    cause: BaseException

    @property
    def transient(self) -> bool:
        """Whether the underlying failure is worth retrying later."""
        return isinstance(self.cause, TransientStoreError)


@dataclass(frozen=True)
class Stored:
    """A snapshot was written. ``updated_at`` is the row's new timestamp."""

    updated_at: datetime


type FetchOutcome = Found | NotFound | Failed
type StoreOutcome = Stored | Failed
