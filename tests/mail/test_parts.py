# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for smtp2wwpm/mail/parts.py."""

import base64

import pytest

from smtp2wwpm.mail.message import parse_header_block
from smtp2wwpm.mail.parts import (
    MAX_DEPTH,
    MediaTypeError,
    MultipartPart,
    SinglePart,
    parse_media_type,
    parse_part,
    split_multipart,
)


def _parse(raw: bytes) -> SinglePart | MultipartPart:
    headers, body = parse_header_block(raw)
    return parse_part(headers, body)


class TestParseMediaType:
    """Tests for parse_media_type."""

    def test_absent_is_plain_text(self) -> None:
        """A missing header defaults to text/plain."""
        assert parse_media_type(None) == ("text/plain", {})
        assert parse_media_type("   ") == ("text/plain", {})

    def test_lowercases_type(self) -> None:
        """Media types are lower-cased."""
        media_type, _ = parse_media_type("Text/HTML")
        assert media_type == "text/html"

    def test_parameters(self) -> None:
        """Parameters are returned with lower-cased names."""
        media_type, params = parse_media_type(
            'multipart/mixed; Boundary="abc 123"; charset=utf-8'
        )
        assert media_type == "multipart/mixed"
        assert params == {"boundary": "abc 123", "charset": "utf-8"}

    def test_folded_value(self) -> None:
        """Folded header values parse like unfolded ones."""
        media_type, params = parse_media_type(
            "multipart/alternative;\r\n\tboundary=XYZ"
        )
        assert media_type == "multipart/alternative"
        assert params["boundary"] == "XYZ"

    def test_rfc2231_parameter(self) -> None:
        """RFC 2231 encoded parameters are decoded."""
        _, params = parse_media_type(
            "text/plain; charset*=utf-8''iso-8859-1"
        )
        assert params["charset"] == "iso-8859-1"

    @pytest.mark.parametrize("value", ["text", "garbage;;", "/html", "a/b/c"])
    def test_invalid(self, value: str) -> None:
        """Values without type/subtype raise MediaTypeError."""
        with pytest.raises(MediaTypeError):
            parse_media_type(value)


class TestSplitMultipart:
    """Tests for split_multipart."""

    def test_basic(self) -> None:
        """Parts between delimiters are returned in order."""
        body = (
            b"preamble\r\n"
            b"--B\r\n"
            b"one\r\n"
            b"--B\r\n"
            b"two\r\n"
            b"--B--\r\n"
            b"epilogue\r\n"
        )
        assert split_multipart(body, "B") == [b"one", b"two"]

    def test_line_break_before_delimiter_belongs_to_delimiter(self) -> None:
        """Only the final line break of a part is removed."""
        body = b"--B\r\nline1\r\n\r\n--B--\r\n"
        assert split_multipart(body, "B") == [b"line1\r\n"]

    def test_lf_only(self) -> None:
        """LF-only bodies split the same way."""
        body = b"--B\none\n--B\ntwo\n--B--\n"
        assert split_multipart(body, "B") == [b"one", b"two"]

    def test_delimiter_whitespace_ignored(self) -> None:
        """Trailing whitespace after a delimiter is ignored."""
        body = b"--B  \r\none\r\n--B-- \r\n"
        assert split_multipart(body, "B") == [b"one"]

    def test_unterminated(self) -> None:
        """A missing close delimiter keeps the last part."""
        body = b"--B\r\none\r\n--B\r\ntwo\r\n"
        assert split_multipart(body, "B") == [b"one", b"two\r\n"]

    def test_no_delimiters(self) -> None:
        """A body without delimiters has no parts."""
        assert split_multipart(b"nothing here\r\n", "B") == []

    def test_boundary_prefix_is_not_delimiter(self) -> None:
        """A line that only starts with the delimiter is content."""
        body = b"--B\r\n--Bogus\r\n--B--\r\n"
        assert split_multipart(body, "B") == [b"--Bogus"]


class TestParsePart:
    """Tests for parse_part."""

    def test_single_plain(self) -> None:
        """A non-multipart message becomes one leaf."""
        part = _parse(b"Subject: x\r\n\r\nHello\r\n")
        assert isinstance(part, SinglePart)
        assert part.media_type == "text/plain"
        assert part.body == b"Hello\r\n"

    def test_single_decodes_transfer_encoding(self) -> None:
        """Leaf bodies are transfer-decoded."""
        part = _parse(
            b"Content-Type: text/plain; charset=utf-8\r\n"
            b"Content-Transfer-Encoding: base64\r\n"
            b"\r\n"
            b"SGVsbG8=\r\n"
        )
        assert isinstance(part, SinglePart)
        assert part.body == b"Hello"
        assert part.charset == "utf-8"

    def test_malformed_content_type_is_opaque(self) -> None:
        """An unparseable Content-Type gives an empty media type."""
        part = _parse(b"Content-Type: nonsense\r\n\r\nbody")
        assert isinstance(part, SinglePart)
        assert part.media_type == ""
        assert part.body == b"body"

    def test_multipart_children(self) -> None:
        """Children are parsed with their own headers and encodings."""
        part = _parse(
            b'Content-Type: multipart/mixed; boundary="b1"\r\n'
            b"\r\n"
            b"--b1\r\n"
            b"Content-Type: text/plain\r\n"
            b"\r\n"
            b"plain text\r\n"
            b"--b1\r\n"
            b"Content-Type: text/html\r\n"
            b"Content-Transfer-Encoding: quoted-printable\r\n"
            b"\r\n"
            b"<p>a=3Db</p>\r\n"
            b"--b1--\r\n"
        )
        assert isinstance(part, MultipartPart)
        assert part.media_type == "multipart/mixed"
        assert [child.media_type for child in part.parts] == [
            "text/plain",
            "text/html",
        ]
        assert part.parts[0].body == b"plain text"
        assert part.parts[1].body == b"<p>a=b</p>"

    def test_child_without_content_type_is_plain(self) -> None:
        """A child without Content-Type is text/plain."""
        part = _parse(
            b"Content-Type: multipart/mixed; boundary=b\r\n\r\n"
            b"--b\r\n\r\nno headers\r\n--b--\r\n"
        )
        assert isinstance(part, MultipartPart)
        assert part.parts[0].media_type == "text/plain"
        assert part.parts[0].body == b"no headers"

    def test_nested_multipart(self) -> None:
        """Nested containers are split recursively."""
        part = _parse(
            b"Content-Type: multipart/mixed; boundary=outer\r\n\r\n"
            b"--outer\r\n"
            b"Content-Type: multipart/alternative; boundary=inner\r\n\r\n"
            b"--inner\r\n"
            b"Content-Type: text/plain\r\n\r\n"
            b"deep\r\n"
            b"--inner--\r\n"
            b"--outer--\r\n"
        )
        assert isinstance(part, MultipartPart)
        inner = part.parts[0]
        assert isinstance(inner, MultipartPart)
        assert inner.media_type == "multipart/alternative"
        assert inner.parts[0].body == b"deep"

    def test_encoded_nested_multipart_is_decoded_first(self) -> None:
        """A transfer-encoded container is decoded before splitting."""
        inner_body = (
            b"--inner\r\nContent-Type: text/html\r\n\r\n<i>hi</i>\r\n"
            b"--inner--\r\n"
        )
        part = _parse(
            b"Content-Type: multipart/mixed; boundary=outer\r\n\r\n"
            b"--outer\r\n"
            b"Content-Type: multipart/related; boundary=inner\r\n"
            b"Content-Transfer-Encoding: base64\r\n\r\n"
            + base64.encodebytes(inner_body)
            + b"--outer--\r\n"
        )
        assert isinstance(part, MultipartPart)
        inner = part.parts[0]
        assert isinstance(inner, MultipartPart)
        assert inner.parts[0].body == b"<i>hi</i>"

    def test_multipart_without_boundary(self) -> None:
        """A container without boundary has no children."""
        part = _parse(b"Content-Type: multipart/mixed\r\n\r\n--x\r\nhi\r\n")
        assert isinstance(part, MultipartPart)
        assert part.parts == ()

    def test_malformed_child_stops_walk(self) -> None:
        """Parts after a malformed child header block are dropped."""
        part = _parse(
            b"Content-Type: multipart/mixed; boundary=b\r\n\r\n"
            b"--b\r\n"
            b"Content-Type: text/plain\r\n\r\nfirst\r\n"
            b"--b\r\n"
            b"this is not a header\r\n\r\nbroken\r\n"
            b"--b\r\n"
            b"Content-Type: text/plain\r\n\r\nthird\r\n"
            b"--b--\r\n"
        )
        assert isinstance(part, MultipartPart)
        assert len(part.parts) == 1
        assert part.parts[0].body == b"first"

    def test_depth_limit(self) -> None:
        """Containers beyond the nesting limit are not split."""
        depth = MAX_DEPTH + 2
        raw = b""
        for level in range(depth):
            raw += (
                f"--b{level}\r\n"
                f"Content-Type: multipart/mixed; boundary=b{level + 1}\r\n"
                "\r\n"
            ).encode()
        raw = b"Content-Type: multipart/mixed; boundary=b0\r\n\r\n" + raw

        part = _parse(raw)
        levels = 0
        while isinstance(part, MultipartPart) and part.parts:
            part = part.parts[0]
            levels += 1
        assert levels == MAX_DEPTH

    def test_attachment_filename(self) -> None:
        """Disposition and filename are exposed on the part."""
        part = _parse(
            b"Content-Type: application/pdf\r\n"
            b'Content-Disposition: attachment; filename="report.pdf"\r\n'
            b"\r\n%PDF"
        )
        assert part.is_attachment
        assert part.filename == "report.pdf"

    def test_encoded_filename(self) -> None:
        """RFC 2047 and RFC 2231 filenames are decoded."""
        part = _parse(
            b"Content-Disposition: attachment;"
            b" filename*=utf-8''%E6%8A%A5%E5%91%8A.txt\r\n\r\nx"
        )
        assert part.filename == "报告.txt"

        part = _parse(
            b"Content-Disposition: ATTACHMENT;"
            b' filename="=?utf-8?B?5oql5ZGKLnR4dA==?="\r\n\r\nx'
        )
        assert part.is_attachment
        assert part.filename == "报告.txt"

    def test_inline_is_not_attachment(self) -> None:
        """Inline parts are not attachments."""
        part = _parse(
            b'Content-Disposition: inline; filename="a.png"\r\n\r\nx'
        )
        assert not part.is_attachment
        assert part.filename == "a.png"

    def test_no_filename(self) -> None:
        """Parts without a filename report None."""
        part = _parse(b"Content-Disposition: attachment\r\n\r\nx")
        assert part.is_attachment
        assert part.filename is None
