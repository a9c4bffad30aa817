"""Snapshot column encodings.

Snapshots are always written as plain base64. Reading is more forgiving:
depending on how a row was written and which client reads it back, the
``binary_state`` column can surface as

- a raw byte buffer,
- ``\\x``-prefixed hex whose bytes spell out a base64 string (a base64 string
  stored as text in a ``bytea`` column, rendered in PostgreSQL's hex output),
- a plain base64 string,
- a string where each character's code point is one byte.

Each representation is handled by a ``SnapshotFormat`` detector. The decoder
tries detectors in order and uses the first that claims the value.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from ticketsync.snapshots.errors import MalformedEncodingError

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)

ESCAPE_PREFIX = "\\x"

_BASE64_PATTERN = re.compile(r"[A-Za-z0-9+/]*={0,2}")
_HEX_PATTERN = re.compile(r"[0-9a-fA-F]*")


def encode_snapshot(data: bytes) -> str:
    """Encode snapshot bytes in the canonical on-write form (plain base64)."""
    return base64.b64encode(data).decode("ascii")


def _decode_base64(text: str, format_name: str) -> bytes:
    """Decode base64 text, tolerating missing ``=`` padding."""
    if not _BASE64_PATTERN.fullmatch(text):
        raise MalformedEncodingError(format_name, "not in the base64 alphabet")

    body = text.rstrip("=")
    if len(body) % 4 == 1:
        msg = f"impossible base64 length {len(body)}"
        raise MalformedEncodingError(format_name, msg)

    try:
        return base64.b64decode(body + "=" * (-len(body) % 4), validate=True)
    except binascii.Error as exc:
        raise MalformedEncodingError(format_name, str(exc)) from exc


class SnapshotFormat(Protocol):
    """One way a snapshot column value can be represented."""

    name: str

    def matches(self, value: object) -> bool:
        """Return True if this format claims the value."""
        ...

    def decode(self, value: Any) -> bytes:
        """Decode a claimed value.

        Raises:
            MalformedEncodingError: If the value is claimed but corrupt.
        """
        ...


class RawBufferFormat:
    """Values that are already bytes."""

    name = "raw_buffer"

    def matches(self, value: object) -> bool:
        return isinstance(value, (bytes, bytearray, memoryview))

    def decode(self, value: bytes | bytearray | memoryview) -> bytes:
        return bytes(value)


class EscapedHexBase64Format:
    """``\\x`` + hex of the UTF-8 bytes of a base64 string."""

    name = "escaped_hex_base64"

    def matches(self, value: object) -> bool:
        return isinstance(value, str) and value.startswith(ESCAPE_PREFIX)

    def decode(self, value: str) -> bytes:
        hex_digits = value[len(ESCAPE_PREFIX) :]
        # bytes.fromhex skips whitespace
        if not _HEX_PATTERN.fullmatch(hex_digits):
            raise MalformedEncodingError(self.name, "non-hex character after \\x")
        try:
            inner = bytes.fromhex(hex_digits).decode("utf-8")
        except ValueError as exc:
            # UnicodeDecodeError is a ValueError subclass
            raise MalformedEncodingError(self.name, str(exc)) from exc
        return _decode_base64(inner, self.name)


class Base64Format:
    """Plain base64 text, the canonical stored form."""

    name = "base64"

    def matches(self, value: object) -> bool:
        return isinstance(value, str) and _BASE64_PATTERN.fullmatch(value) is not None

    def decode(self, value: str) -> bytes:
        return _decode_base64(value, self.name)


class CharCodeFormat:
    """Fallback: every character's code point is one byte."""

    name = "char_code"

    def matches(self, value: object) -> bool:
        return isinstance(value, str)

    def decode(self, value: str) -> bytes:
        try:
            return value.encode("latin-1")
        except UnicodeEncodeError as exc:
            msg = f"code point {ord(value[exc.start])} at {exc.start} exceeds 255"
            raise MalformedEncodingError(self.name, msg) from exc


DEFAULT_FORMATS: tuple[SnapshotFormat, ...] = (
    RawBufferFormat(),
    EscapedHexBase64Format(),
    Base64Format(),
    CharCodeFormat(),
)

# Formats a row written by encode_snapshot() can surface as.
CANONICAL_FORMATS = frozenset({Base64Format.name, EscapedHexBase64Format.name})


@dataclass(frozen=True)
class DecodedSnapshot:
    """Decoded bytes plus the name of the format that produced them."""

    data: bytes
    format: str


class SnapshotDecoder:
    """Turns a column value of unknown representation into snapshot bytes.

    With ``fail_open`` (the default) a corrupt value is logged and reported as
    absent, so the caller starts a fresh document instead of failing the
    session. With ``fail_open=False`` the ``MalformedEncodingError`` propagates.
    """

    def __init__(
        self,
        formats: Sequence[SnapshotFormat] = DEFAULT_FORMATS,
        *,
        fail_open: bool = True,
    ) -> None:
        self.formats = tuple(formats)
        self.fail_open = fail_open

    def detect(self, value: object) -> SnapshotFormat | None:
        """Return the first format that claims ``value``, if any."""
        for fmt in self.formats:
            if fmt.matches(value):
                return fmt
        return None

    def decode_with_format(
        self, value: object, *, document_id: str | None = None
    ) -> DecodedSnapshot | None:
        """Decode ``value``, reporting which format was used.

        Args:
            value: The raw column value.
            document_id: Only used to make log lines traceable.

        Returns:
            The decoded snapshot, or None if the value is absent or unusable.

        Raises:
            MalformedEncodingError: Only when ``fail_open`` is disabled.
        """
        if value is None:
            return None

        fmt = self.detect(value)
        if fmt is None:
            logger.warning(
                "Unexpected snapshot value type %s for %s, treating as absent",
                type(value).__name__,
                document_id,
            )
            return None

        try:
            data = fmt.decode(value)
        except MalformedEncodingError:
            if not self.fail_open:
                raise
            logger.warning(
                "Undecodable %s snapshot for %s, treating as absent",
                fmt.name,
                document_id,
                exc_info=True,
            )
            return None

        logger.debug(
            "Decoded snapshot for %s via %s (%d bytes)",
            document_id,
            fmt.name,
            len(data),
        )
        return DecodedSnapshot(data=data, format=fmt.name)

    def decode(self, value: object, *, document_id: str | None = None) -> bytes | None:
        """Decode ``value`` to snapshot bytes, or None if absent/unusable."""
        decoded = self.decode_with_format(value, document_id=document_id)
        return decoded.data if decoded is not None else None
