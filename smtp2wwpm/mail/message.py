# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Header block parsing and message reconstruction.

The SMTP session hands over the raw bytes collected between ``DATA`` and
the terminating dot.  ``reconstruct_message`` splits them into a header
mapping and a body, synthesizing a minimal header block when the sender
omitted or mangled its own.
"""

import logging
import re
from email.errors import (
    FirstHeaderLineIsContinuationDefect,
    HeaderParseError,
    InvalidHeaderDefect,
    MissingHeaderBodySeparatorDefect,
)
from email.header import Header, decode_header
from email.message import Message
from email.parser import BytesHeaderParser


logger = logging.getLogger(__name__)

#: Header block prepended when the original one cannot be parsed.
FALLBACK_HEADERS = (
    b"Subject: (no subject)\r\n"
    b"Content-Type: text/plain; charset=utf-8\r\n"
    b"\r\n"
)

# Parser defects that mean the header block itself is unusable.
_HEADER_BLOCK_DEFECTS = (
    FirstHeaderLineIsContinuationDefect,
    MissingHeaderBodySeparatorDefect,
    InvalidHeaderDefect,
)

# Line break of a folded header value (the whitespace after it stays).
_FOLD_RE = re.compile(r"\r?\n(?=[ \t])")


class MessageParseError(Exception):
    """Raised when a header block is malformed."""


def parse_header_block(data: bytes) -> tuple[Message, bytes]:
    """Split ``data`` into parsed headers and the raw body after them.

    The blank line separating headers from body is consumed and the body
    is returned byte-for-byte.  Input that starts with a blank line has
    no headers; input without a blank line is all headers.  Field syntax
    is checked by the ``email`` parser; the defects it records for the
    header block are turned into errors.

    Args:
        data: Header block followed by body bytes.

    Returns:
        Tuple of (headers, body).  ``headers`` is a case-insensitive
        ``Message`` holding only the header fields.

    Raises:
        MessageParseError: If the first line is a continuation line, or a
            line before the separator is not a ``Name: value`` field.
    """
    lines = data.splitlines(keepends=True)
    header_end = next(
        (i for i, line in enumerate(lines) if not line.strip(b"\r\n")),
        len(lines),
    )
    header_bytes = b"".join(lines[:header_end])
    body = b"".join(lines[header_end + 1 :])

    headers = BytesHeaderParser().parsebytes(header_bytes + b"\r\n")
    for defect in headers.defects:
        if isinstance(defect, FirstHeaderLineIsContinuationDefect):
            raise MessageParseError(
                "Malformed header block: first line is a continuation"
            )
        if isinstance(defect, _HEADER_BLOCK_DEFECTS):
            raise MessageParseError(
                f"Malformed header block: {type(defect).__name__}"
            )
    return headers, body


def read_message(raw: bytes) -> tuple[Message, bytes]:
    """Parse a complete message, rejecting an empty or malformed one.

    Raises:
        MessageParseError: If the message is empty or its header block
            is malformed.
    """
    if not raw.strip():
        raise MessageParseError("Empty message")
    return parse_header_block(raw)


def reconstruct_message(raw: bytes) -> tuple[Message, bytes]:
    """Parse ``raw``, retrying once behind a synthesized header block.

    The retry treats the whole original input as a plain-text body with
    subject ``(no subject)``.

    Raises:
        MessageParseError: If the retry fails as well.
    """
    try:
        return read_message(raw)
    except MessageParseError as e:
        logger.warning("Header block unparseable (%s), using defaults", e)
        return read_message(FALLBACK_HEADERS + raw)


def header_str(headers: Message, name: str) -> str | None:
    """Return a header as plain text, or None if absent."""
    value = headers.get(name)
    if value is None:
        return None
    return str(value)


def decode_header_value(raw: str | Header | None) -> str:
    """Decode RFC 2047 encoded words (``=?utf-8?B?...?=``) in a header.

    Unknown charsets, and codecs that reject ``errors="replace"``, decode
    as UTF-8 with replacement characters rather than failing.

    Returns:
        Decoded text, or empty string if ``raw`` is empty or None.
    """
    if not raw:
        return ""
    if isinstance(raw, str):
        raw = _FOLD_RE.sub("", raw)

    try:
        parts = decode_header(raw)
    except HeaderParseError:
        logger.debug("Could not decode header %r, using raw value", raw)
        return str(raw)

    decoded_parts: list[str] = []
    for data, charset in parts:
        if isinstance(data, bytes):
            try:
                decoded_parts.append(
                    data.decode(charset or "utf-8", errors="replace")
                )
            except (LookupError, UnicodeError):
                decoded_parts.append(data.decode("utf-8", errors="replace"))
        else:
            decoded_parts.append(data)
    return "".join(decoded_parts)
