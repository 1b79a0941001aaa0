# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Display body extraction from a part tree.

Every message yields something renderable, however badly it is formed.
Precedence inside a container:

- the first ``text/html`` leaf is the HTML candidate;
- the first ``text/plain`` leaf is the plain candidate, wrapped in
  ``<pre>`` so its line breaks survive HTML rendering;
- a nested container that produced HTML replaces the HTML candidate,
  so the most deeply nested HTML wins;
- attachments contribute only their filename, never their content.

HTML is returned when present, then the wrapped plain text, then an
empty body.
"""

import logging
from dataclasses import dataclass
from email.message import Message

from smtp2wwpm.mail.message import decode_header_value
from smtp2wwpm.mail.parts import MultipartPart, Part, SinglePart, parse_part


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtractionResult:
    """What the notifier needs from one message.

    Attributes:
        subject: Decoded Subject header, empty if absent.
        body: Display body as HTML markup.
        attachments: Attachment filenames in depth-first order.
    """

    subject: str
    body: str
    attachments: tuple[str, ...] = ()


def extract(headers: Message, body: bytes) -> ExtractionResult:
    """Extract subject, display body and attachment names from a message.

    Args:
        headers: Top-level header mapping.
        body: Raw body bytes following the header block.

    Returns:
        The extraction result.  Never raises for malformed content.
    """
    return walk(parse_part(headers, body))


def walk(part: Part) -> ExtractionResult:
    """Extract the display representation of an already-parsed part tree."""
    result, _is_html = _walk(part)
    return result


def wrap_plain(text: str) -> str:
    """Wrap plain text so whitespace is preserved when shown as HTML."""
    return f"<pre>{text}</pre>"


def _walk(part: Part) -> tuple[ExtractionResult, bool]:
    """Walk ``part``; the flag tells whether the body is HTML content."""
    subject = decode_header_value(part.headers.get("Subject"))
    if isinstance(part, MultipartPart):
        return _walk_multipart(part, subject)

    text = _to_text(part)
    if "text/html" in part.media_type:
        return ExtractionResult(subject, text), True
    if "text/plain" in part.media_type:
        return ExtractionResult(subject, wrap_plain(text)), False
    return ExtractionResult(subject, text), False


def _walk_multipart(
    part: MultipartPart, subject: str
) -> tuple[ExtractionResult, bool]:
    html_body = ""
    plain_body = ""
    attachments: list[str] = []

    for child in part.parts:
        if isinstance(child, MultipartPart):
            nested, nested_is_html = _walk(child)
            if nested.body:
                if nested_is_html:
                    html_body = nested.body
                elif not plain_body:
                    plain_body = nested.body
            if nested.subject and not subject:
                subject = nested.subject
            attachments.extend(nested.attachments)
            continue

        if child.is_attachment:
            filename = child.filename
            if filename:
                attachments.append(filename)
            continue

        if "text/html" in child.media_type:
            if not html_body:
                html_body = _to_text(child)
        elif "text/plain" in child.media_type:
            if not plain_body:
                plain_body = wrap_plain(_to_text(child))

    logger.debug(
        "Walked %s: %d parts, html=%d chars, plain=%d chars, attachments=%d",
        part.media_type,
        len(part.parts),
        len(html_body),
        len(plain_body),
        len(attachments),
    )

    if html_body:
        return ExtractionResult(subject, html_body, tuple(attachments)), True
    return ExtractionResult(subject, plain_body, tuple(attachments)), False


def _to_text(part: SinglePart) -> str:
    """Decode a leaf body with its declared charset, defaulting to UTF-8."""
    charset = part.charset or "utf-8"
    try:
        return part.body.decode(charset, errors="replace")
    except (LookupError, UnicodeError):
        logger.debug("Cannot decode as %r, decoding as UTF-8", charset)
        return part.body.decode("utf-8", errors="replace")
