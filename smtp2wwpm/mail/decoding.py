# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Content-Transfer-Encoding decoding.

Unknown encodings pass through unchanged: senders in the wild declare
all sorts of values, and raw content is more useful to the reader than
a dropped message.
"""

import base64
import binascii
import logging
import quopri


logger = logging.getLogger(__name__)

_PASSTHROUGH = frozenset({"", "7bit", "8bit", "binary"})


class DecodeError(Exception):
    """Raised when encoded content cannot be decoded."""


def decode(data: bytes, encoding: str | None) -> bytes:
    """Decode a body according to its Content-Transfer-Encoding.

    Args:
        data: Encoded body bytes.
        encoding: Transfer-encoding name (case-insensitive).  ``None``
            means the header was absent.

    Returns:
        Decoded bytes.  Identity for ``7bit``, ``8bit``, ``binary``,
        absent and unrecognized encodings.

    Raises:
        DecodeError: If a base64 body has an invalid alphabet or padding.
    """
    name = (encoding or "").strip().lower()

    if name == "base64":
        compact = data.replace(b"\r", b"").replace(b"\n", b"")
        try:
            return base64.b64decode(compact, validate=True)
        except binascii.Error as e:
            raise DecodeError(f"Invalid base64 content: {e}") from e

    if name == "quoted-printable":
        return quopri.decodestring(data)

    if name not in _PASSTHROUGH:
        logger.debug("Unknown transfer encoding %r, passing through", name)
    return data


def decode_or_raw(data: bytes, encoding: str | None) -> bytes:
    """Decode ``data``, falling back to the undecoded bytes on failure."""
    try:
        return decode(data, encoding)
    except DecodeError as e:
        logger.debug("Using raw content: %s", e)
        return data
