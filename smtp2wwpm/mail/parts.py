# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""MIME structure as a tree of parts.

A message body is either a single leaf (``SinglePart``) or a container
of further parts (``MultipartPart``).  ``parse_part`` builds the tree
from a header mapping and raw body bytes, decoding every leaf with its
own Content-Transfer-Encoding; the walker in ``extract`` then works on
the finished tree without touching bytes or boundaries.
"""

import logging
import re
from dataclasses import dataclass
from email.message import Message
from email.utils import collapse_rfc2231_value

from smtp2wwpm.mail.decoding import decode_or_raw
from smtp2wwpm.mail.message import (
    MessageParseError,
    decode_header_value,
    header_str,
    parse_header_block,
)


logger = logging.getLogger(__name__)

_TOKEN = r"[!#$%&'*+.^_`|~0-9A-Za-z-]+"
_MEDIA_TYPE_RE = re.compile(rf"^{_TOKEN}/{_TOKEN}$")
_FOLD_RE = re.compile(r"\r?\n[ \t]*")

#: Containers nested deeper than this are kept but not split further.
MAX_DEPTH = 32


class MediaTypeError(Exception):
    """Raised when a Content-Type value has no valid ``type/subtype``."""


@dataclass(frozen=True)
class _BasePart:
    """Fields shared by leaf and container parts.

    Attributes:
        headers: The part's own header fields (case-insensitive lookup).
        media_type: Lower-cased ``type/subtype``; ``""`` when the
            Content-Type header could not be parsed.
        params: Content-Type parameters, names lower-cased.
    """

    headers: Message
    media_type: str
    params: dict[str, str]

    @property
    def is_attachment(self) -> bool:
        """Whether Content-Disposition starts with ``attachment``."""
        disposition = header_str(self.headers, "Content-Disposition") or ""
        return disposition.lower().startswith("attachment")

    @property
    def filename(self) -> str | None:
        """The disposition ``filename`` parameter, decoded, if present."""
        raw = self.headers.get_param(
            "filename", failobj=None, header="content-disposition"
        )
        if raw is None:
            return None
        return decode_header_value(collapse_rfc2231_value(raw))

    @property
    def charset(self) -> str | None:
        return self.params.get("charset")


@dataclass(frozen=True)
class SinglePart(_BasePart):
    """A leaf part whose body has been transfer-decoded."""

    body: bytes


@dataclass(frozen=True)
class MultipartPart(_BasePart):
    """A ``multipart/*`` container and its child parts, in order."""

    parts: tuple["SinglePart | MultipartPart", ...]


Part = SinglePart | MultipartPart


def parse_media_type(value: str | None) -> tuple[str, dict[str, str]]:
    """Parse a Content-Type value into media type and parameters.

    Args:
        value: Raw header value, possibly folded.  ``None`` or blank
            means the header is absent.

    Returns:
        Tuple of (lower-cased media type, parameters).  An absent header
        yields ``("text/plain", {})``.

    Raises:
        MediaTypeError: If the value does not start with ``type/subtype``.
    """
    if value is None or not value.strip():
        return "text/plain", {}

    scratch = Message()
    scratch["Content-Type"] = _FOLD_RE.sub(" ", value)
    fields = scratch.get_params(failobj=[])
    if not fields:
        raise MediaTypeError(f"Empty media type: {value!r}")

    media_type = fields[0][0].strip().lower()
    if not _MEDIA_TYPE_RE.match(media_type):
        raise MediaTypeError(f"Invalid media type: {value!r}")

    params: dict[str, str] = {}
    for name, param_value in fields[1:]:
        name = name.lower()
        if name and name not in params:
            params[name] = collapse_rfc2231_value(param_value)
    return media_type, params


def split_multipart(body: bytes, boundary: str) -> list[bytes]:
    """Split a multipart body into its raw part chunks (RFC 2046).

    The preamble before the first delimiter and the epilogue after the
    close delimiter are dropped.  Whitespace around a delimiter line is
    ignored, and the line break preceding a delimiter belongs to the
    delimiter, not to the part.  A body cut off before the close
    delimiter ends its last part at end of input.

    Args:
        body: Raw multipart body.
        boundary: The ``boundary`` parameter, without leading dashes.

    Returns:
        Each part's header block and body, in order.
    """
    delimiter = b"--" + boundary.encode("utf-8", "surrogateescape")
    close_delimiter = delimiter + b"--"

    chunks: list[bytes] = []
    current: list[bytes] | None = None
    for line in body.splitlines(keepends=True):
        marker = line.strip()
        if marker == delimiter or marker == close_delimiter:
            if current is not None:
                chunks.append(_strip_line_break(b"".join(current)))
            if marker == close_delimiter:
                return chunks
            current = []
        elif current is not None:
            current.append(line)

    if current is not None:
        chunks.append(b"".join(current))
    return chunks


def _strip_line_break(chunk: bytes) -> bytes:
    if chunk.endswith(b"\r\n"):
        return chunk[:-2]
    if chunk.endswith((b"\n", b"\r")):
        return chunk[:-1]
    return chunk


def parse_part(headers: Message, body: bytes) -> Part:
    """Build the part tree for a message or part.

    A non-multipart body is decoded with its own transfer encoding.  A
    multipart body is split as-is; each child is decoded with the
    child's transfer encoding before it is classified or split in turn.

    Args:
        headers: Header mapping of the message or part.
        body: Raw body bytes following the header block.

    Returns:
        A ``SinglePart`` or a ``MultipartPart``.
    """
    media_type, params = _content_type(headers)
    if media_type.startswith("multipart/"):
        return _parse_multipart(headers, media_type, params, body, depth=0)

    encoding = header_str(headers, "Content-Transfer-Encoding")
    decoded = decode_or_raw(body, encoding)
    return SinglePart(headers, media_type, params, decoded)


def _content_type(headers: Message) -> tuple[str, dict[str, str]]:
    """Parse a part's Content-Type, treating bad values as opaque."""
    try:
        return parse_media_type(header_str(headers, "Content-Type"))
    except MediaTypeError as e:
        logger.debug("Treating part as opaque content: %s", e)
        return "", {}


def _parse_multipart(
    headers: Message,
    media_type: str,
    params: dict[str, str],
    body: bytes,
    *,
    depth: int,
) -> MultipartPart:
    boundary = params.get("boundary")
    if not boundary:
        logger.debug("%s without boundary, no parts", media_type)
        return MultipartPart(headers, media_type, params, ())
    if depth >= MAX_DEPTH:
        logger.warning("Multipart nesting deeper than %d, skipping", MAX_DEPTH)
        return MultipartPart(headers, media_type, params, ())

    children: list[Part] = []
    for chunk in split_multipart(body, boundary):
        try:
            child_headers, child_body = parse_header_block(chunk)
        except MessageParseError as e:
            # Later parts are unreachable once framing is lost.
            logger.debug("Stopping at malformed part: %s", e)
            break

        encoding = header_str(child_headers, "Content-Transfer-Encoding")
        decoded = decode_or_raw(child_body, encoding)
        child_type, child_params = _content_type(child_headers)
        if child_type.startswith("multipart/"):
            children.append(
                _parse_multipart(
                    child_headers,
                    child_type,
                    child_params,
                    decoded,
                    depth=depth + 1,
                )
            )
        else:
            children.append(
                SinglePart(child_headers, child_type, child_params, decoded)
            )

    return MultipartPart(headers, media_type, params, tuple(children))
