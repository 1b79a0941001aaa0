# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Threaded TCP listener running one SMTP session per connection."""

import logging
import socketserver
import ssl
import sys
import threading
from collections.abc import Callable

from smtp2wwpm.smtp.session import SMTPSession


logger = logging.getLogger(__name__)


class _SessionHandler(socketserver.StreamRequestHandler):
    """Runs an ``SMTPSession`` over the accepted socket."""

    server: "_ThreadingSMTPServer"

    # Unbuffered writes; the session flushes after every reply anyway.
    wbufsize = 0

    def setup(self) -> None:
        self.request.settimeout(self.server.idle_timeout)
        context = self.server.ssl_context
        if context is not None:
            # Handshake happens here; failure is reported via handle_error.
            self.request = context.wrap_socket(self.request, server_side=True)
        super().setup()

    def handle(self) -> None:
        host, port = self.client_address[:2]
        session = SMTPSession(
            self.rfile,
            self.wfile,
            self.server.submit,
            is_tls=self.server.ssl_context is not None,
            peer=f"{host}:{port}",
        )
        session.run()

    def finish(self) -> None:
        try:
            super().finish()
        finally:
            if isinstance(self.request, ssl.SSLSocket):
                self.request.close()


class _ThreadingSMTPServer(socketserver.ThreadingTCPServer):
    daemon_threads = True
    allow_reuse_address = True

    def __init__(
        self,
        address: tuple[str, int],
        submit: Callable[[bytes], None],
        *,
        label: str,
        ssl_context: ssl.SSLContext | None,
        idle_timeout: float | None,
    ) -> None:
        self.submit = submit
        self.label = label
        self.ssl_context = ssl_context
        self.idle_timeout = idle_timeout
        super().__init__(address, _SessionHandler)

    def process_request(self, request, client_address) -> None:
        thread = threading.Thread(
            target=self.process_request_thread,
            args=(request, client_address),
            name=f"{self.label}-{client_address[0]}:{client_address[1]}",
            daemon=True,
        )
        thread.start()

    def handle_error(self, request, client_address) -> None:
        error = sys.exc_info()[1]
        if isinstance(error, (ssl.SSLError, OSError)):
            logger.warning(
                "%s connection from %s failed: %s",
                self.label,
                client_address[0],
                error,
            )
        else:
            logger.exception(
                "%s connection from %s crashed", self.label, client_address[0]
            )


class SMTPServer:
    """SMTP listener on one address.

    Each accepted connection gets its own thread and ``SMTPSession``.
    With ``ssl_context`` the listener speaks implicit TLS (SMTPS): the
    handshake runs before the greeting is sent.
    """

    def __init__(
        self,
        host: str,
        port: int,
        submit: Callable[[bytes], None],
        *,
        ssl_context: ssl.SSLContext | None = None,
        idle_timeout: float | None = None,
    ) -> None:
        """Initialize the listener without binding.

        Args:
            host: Address to bind.
            port: Port to bind; 0 picks a free port.
            submit: Called with the raw bytes of every completed message.
            ssl_context: Server context for implicit TLS, or None for
                plaintext.
            idle_timeout: Seconds a connection may stay silent before it
                is closed; None waits forever.
        """
        self.host = host
        self.port = port
        self.submit = submit
        self.ssl_context = ssl_context
        self.idle_timeout = idle_timeout
        self._server: _ThreadingSMTPServer | None = None
        self._thread: threading.Thread | None = None

    @property
    def label(self) -> str:
        return "SMTPS" if self.ssl_context is not None else "SMTP"

    @property
    def server_address(self) -> tuple[str, int]:
        """Bound (host, port); only valid after ``start()``."""
        if self._server is None:
            raise RuntimeError(f"{self.label} server not started")
        host, port = self._server.server_address[:2]
        return str(host), int(port)

    def start(self) -> None:
        """Bind and serve in a background thread.

        Raises:
            OSError: If the address cannot be bound.
        """
        self._server = _ThreadingSMTPServer(
            (self.host, self.port),
            self.submit,
            label=self.label,
            ssl_context=self.ssl_context,
            idle_timeout=self.idle_timeout,
        )
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            daemon=True,
            name=f"{self.label}Server",
        )
        self._thread.start()
        host, port = self.server_address
        logger.info("%s server listening on %s:%d", self.label, host, port)

    def stop(self) -> None:
        """Stop accepting connections and close the listening socket.

        Sessions already running finish on their own threads.
        """
        if self._server is None:
            return
        self._server.shutdown()
        self._server.server_close()
        if self._thread is not None:
            self._thread.join(timeout=5)
        self._server = None
        self._thread = None
        logger.info("%s server stopped", self.label)
