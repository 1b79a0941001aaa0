# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""SMTP dialog state machine for a single connection.

Every command is acknowledged with a success code.  The bridge exists to
take mail from trusted internal senders that insist on an SMTP dialog,
so nothing the client says is validated.

AUTHENTICATION IS NOT CHECKED.  ``AUTH PLAIN`` and ``AUTH LOGIN`` always
succeed; credentials are read off the wire and discarded without being
inspected, stored or logged.  The handshake only exists to satisfy
clients that refuse to send without one.  Do not expose the listening
ports to untrusted networks.

Commands are processed strictly one line at a time even though
``PIPELINING`` is advertised; buffered reads make pipelined input work
without special handling.
"""

import logging
from collections.abc import Callable
from enum import Enum
from typing import BinaryIO


logger = logging.getLogger(__name__)

#: Name used in the greeting, the EHLO reply and the queue acknowledgment.
SERVER_NAME = "smtp2wwpm"

GREETING = f"220 {SERVER_NAME} ready"
TLS_GREETING_SUFFIX = " (TLS/SMTPS)"
EHLO_REPLY = (
    f"250-{SERVER_NAME}",
    "250-AUTH LOGIN PLAIN",
    "250-PIPELINING",
    "250 8BITMIME",
)
OK = "250 OK"
DATA_READY = "354 End data with <CR><LF>.<CR><LF>"
QUEUED = f"250 OK : queued as {SERVER_NAME}"
GOODBYE = "221 Bye"
AUTH_CHALLENGE_PLAIN = "334 "
AUTH_CHALLENGE_USERNAME = "334 VXNlcm5hbWU6"  # base64("Username:")
AUTH_CHALLENGE_PASSWORD = "334 UGFzc3dvcmQ6"  # base64("Password:")
AUTH_OK = "235 Authentication successful"

#: Longest line read in one piece.  Longer data lines are collected in
#: several reads; nothing else depends on line length.
MAX_LINE_LENGTH = 1024 * 1024


class SessionPhase(Enum):
    """Where the dialog currently is."""

    GREETING = "greeting"
    COMMAND = "command"
    DATA = "data"
    CLOSED = "closed"


class _ConnectionClosed(Exception):
    """The client closed the stream."""


class SMTPSession:
    """One client conversation over a byte stream.

    The session owns its message buffer.  When the terminating dot
    arrives, a copy of the buffer is handed to ``submit`` and the buffer
    is cleared before the next line is read, so processing of the
    finished message never shares memory with the next one.
    """

    def __init__(
        self,
        rfile: BinaryIO,
        wfile: BinaryIO,
        submit: Callable[[bytes], None],
        *,
        is_tls: bool = False,
        peer: str = "-",
        max_line_length: int = MAX_LINE_LENGTH,
    ) -> None:
        """Initialize a session.

        Args:
            rfile: Readable binary stream from the client.
            wfile: Writable binary stream to the client.
            submit: Receives the raw bytes of each completed message.
                Must not block for long; it runs on the session thread.
            is_tls: Whether the transport is already encrypted (only
                changes the greeting).
            peer: Client address for log messages.
            max_line_length: Longest line read in one piece.
        """
        self._rfile = rfile
        self._wfile = wfile
        self._submit = submit
        self._is_tls = is_tls
        self._peer = peer
        self._max_line_length = max_line_length
        self._buffer = bytearray()
        # False while the previous read stopped mid-line at the read limit.
        self._at_line_start = True
        self.phase = SessionPhase.GREETING
        self.messages_submitted = 0

    def run(self) -> None:
        """Drive the dialog until QUIT, end of stream or a transport error.

        Never raises for transport problems; a partially received message
        is discarded when the connection ends.
        """
        logger.debug("Session %s opened (tls=%s)", self._peer, self._is_tls)
        try:
            greeting = GREETING
            if self._is_tls:
                greeting += TLS_GREETING_SUFFIX
            self._reply(greeting)
            self.phase = SessionPhase.COMMAND

            while self.phase is not SessionPhase.CLOSED:
                line = self._readline()
                if self.phase is SessionPhase.DATA:
                    self._handle_data_line(line)
                else:
                    self._handle_command(line)
        except _ConnectionClosed:
            logger.debug("Session %s: client closed connection", self._peer)
        except OSError as e:
            logger.debug("Session %s: transport error: %s", self._peer, e)
        finally:
            if self._buffer:
                logger.info(
                    "Session %s: discarding incomplete message (%d bytes)",
                    self._peer,
                    len(self._buffer),
                )
            self._buffer.clear()
            self.phase = SessionPhase.CLOSED
            logger.debug(
                "Session %s closed after %d messages",
                self._peer,
                self.messages_submitted,
            )

    def _readline(self) -> bytes:
        line = self._rfile.readline(self._max_line_length)
        if not line:
            raise _ConnectionClosed
        return line

    def _reply(self, *lines: str) -> None:
        for line in lines:
            self._wfile.write(line.encode("utf-8") + b"\r\n")
        self._wfile.flush()

    def _handle_command(self, line: bytes) -> None:
        text = line.decode("utf-8", errors="replace").rstrip("\r\n")
        words = text.split()
        verb = words[0].upper() if words else ""

        if verb in ("EHLO", "HELO"):
            self._reply(*EHLO_REPLY)
        elif verb == "AUTH" and len(words) > 1:
            self._handle_auth(words)
        elif verb == "MAIL" or verb == "RCPT":
            logger.debug("Session %s: %s", self._peer, text)
            self._reply(OK)
        elif verb == "DATA":
            self._reply(DATA_READY)
            self.phase = SessionPhase.DATA
            self._at_line_start = True
        elif verb == "RSET":
            self._buffer.clear()
            self._reply(OK)
        elif verb == "QUIT":
            self._reply(GOODBYE)
            self.phase = SessionPhase.CLOSED
        else:
            # NOOP and anything unrecognized
            self._reply(OK)

    def _handle_auth(self, words: list[str]) -> None:
        """Run the AUTH exchange, discarding every credential line."""
        mechanism = words[1].upper()
        has_initial = len(words) > 2

        if mechanism == "PLAIN":
            if not has_initial:
                self._reply(AUTH_CHALLENGE_PLAIN)
                self._readline()
        elif mechanism == "LOGIN":
            if not has_initial:
                self._reply(AUTH_CHALLENGE_USERNAME)
                self._readline()
            self._reply(AUTH_CHALLENGE_PASSWORD)
            self._readline()
        else:
            self._reply(OK)
            return

        logger.debug(
            "Session %s: AUTH %s accepted without verification",
            self._peer,
            mechanism,
        )
        self._reply(AUTH_OK)

    def _handle_data_line(self, line: bytes) -> None:
        at_line_start = self._at_line_start
        self._at_line_start = line.endswith(b"\n")
        if not at_line_start or line.rstrip(b"\r\n") != b".":
            self._buffer.extend(line)
            return

        raw = bytes(self._buffer)
        self._buffer.clear()
        self.phase = SessionPhase.COMMAND
        try:
            self._submit(raw)
            self.messages_submitted += 1
        except Exception:
            logger.exception(
                "Session %s: failed to hand off message (%d bytes)",
                self._peer,
                len(raw),
            )
        self._reply(QUEUED)
