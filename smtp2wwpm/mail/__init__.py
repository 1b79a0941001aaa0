# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Message structure decomposition.

- decoding: Content-Transfer-Encoding decoding
- message: header block parsing and message reconstruction
- parts: MIME part tree (SinglePart / MultipartPart)
- extract: subject, display body and attachment extraction
"""

from smtp2wwpm.mail.decoding import DecodeError, decode, decode_or_raw
from smtp2wwpm.mail.extract import ExtractionResult, extract, walk
from smtp2wwpm.mail.message import (
    FALLBACK_HEADERS,
    MessageParseError,
    decode_header_value,
    parse_header_block,
    read_message,
    reconstruct_message,
)
from smtp2wwpm.mail.parts import (
    MediaTypeError,
    MultipartPart,
    Part,
    SinglePart,
    parse_media_type,
    parse_part,
    split_multipart,
)


__all__ = [
    # decoding
    "DecodeError",
    "decode",
    "decode_or_raw",
    # extract
    "ExtractionResult",
    "extract",
    "walk",
    # message
    "FALLBACK_HEADERS",
    "MessageParseError",
    "decode_header_value",
    "parse_header_block",
    "read_message",
    "reconstruct_message",
    # parts
    "MediaTypeError",
    "MultipartPart",
    "Part",
    "SinglePart",
    "parse_media_type",
    "parse_part",
    "split_multipart",
]
