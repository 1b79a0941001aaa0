# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""SMTP to webhook gateway service.

Wires the listeners, the dispatcher and the notifier together and
provides the ``smtp2wwpm`` command-line entry point.
"""

import argparse
import logging
import signal
import threading
from pathlib import Path

from smtp2wwpm import __version__
from smtp2wwpm.config import ConfigError, ServerConfig
from smtp2wwpm.logging import configure_logging
from smtp2wwpm.notifier import WebhookNotifier
from smtp2wwpm.service.dispatcher import MessageDispatcher
from smtp2wwpm.smtp import SMTPServer, create_server_context


logger = logging.getLogger(__name__)


class SMTPGatewayService:
    """Runs the plaintext and TLS listeners in front of one webhook."""

    def __init__(self, config: ServerConfig) -> None:
        self.config = config
        self.notifier = WebhookNotifier(
            config.webhook_url, timeout=config.notify_timeout_seconds
        )
        self.dispatcher: MessageDispatcher | None = None
        self.servers: list[SMTPServer] = []
        self._stop_requested = threading.Event()
        self._stopped = False
        self._stop_lock = threading.Lock()

    def start(self) -> None:
        """Start the dispatcher and bind every listener.

        Raises:
            OSError: If a listener cannot bind or the TLS certificate
                cannot be set up (``ssl.SSLError`` is an ``OSError``).
        """
        self.dispatcher = MessageDispatcher(
            self.notifier, max_workers=self.config.max_workers
        )
        logger.info(
            "Started dispatch pool with %d workers", self.config.max_workers
        )

        servers = [
            SMTPServer(
                self.config.host,
                self.config.smtp_port,
                self.dispatcher.submit,
                idle_timeout=self.config.idle_timeout_seconds,
            )
        ]
        if self.config.smtps_enabled:
            context = create_server_context(
                self.config.tls_cert_file, self.config.tls_key_file
            )
            servers.append(
                SMTPServer(
                    self.config.host,
                    self.config.smtps_port,
                    self.dispatcher.submit,
                    ssl_context=context,
                    idle_timeout=self.config.idle_timeout_seconds,
                )
            )

        for server in servers:
            server.start()
            self.servers.append(server)

        logger.info("Service started")

    def wait(self, timeout: float | None = None) -> bool:
        """Block until a stop is requested.

        Returns:
            True if a stop was requested, False on timeout.
        """
        return self._stop_requested.wait(timeout)

    def request_stop(self) -> None:
        """Wake up ``wait()``; safe to call from a signal handler."""
        self._stop_requested.set()

    def stop(self) -> None:
        """Close the listeners, then drain pending deliveries.

        Idempotent.
        """
        with self._stop_lock:
            if self._stopped:
                return
            self._stopped = True

        logger.info("Stopping gateway service...")
        self._stop_requested.set()

        for server in self.servers:
            server.stop()

        if self.dispatcher is not None:
            self.dispatcher.shutdown(wait=True)

        logger.info("Service stopped")


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Args:
        argv: Command-line arguments. If None, uses sys.argv[1:].

    Returns:
        Exit code (0=success, 1=config error, 2=startup, 3=runtime error).
    """
    parser = argparse.ArgumentParser(
        prog="smtp2wwpm",
        description="smtp2wwpm: SMTP to webhook bridge",
        epilog=(
            "Accepts mail over SMTP and SMTPS and posts each message to a "
            "webhook as an HTML notification. Authentication is accepted "
            "without verification; only expose it to trusted networks."
        ),
    )
    parser.add_argument(
        "--url",
        default=None,
        metavar="URL",
        help="Webhook URL (required unless set in the config file)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        metavar="PATH",
        help=(
            "Path to smtp2wwpm.yaml config file"
            " (default: ~/.config/smtp2wwpm/smtp2wwpm.yaml, if present)"
        ),
    )
    parser.add_argument(
        "--host",
        default=None,
        help="Address to bind (default: 0.0.0.0)",
    )
    parser.add_argument(
        "--smtp-port",
        type=int,
        default=None,
        metavar="PORT",
        help="Plaintext SMTP port (default: 25)",
    )
    parser.add_argument(
        "--smtps-port",
        type=int,
        default=None,
        metavar="PORT",
        help="Implicit-TLS SMTP port (default: 465)",
    )
    parser.add_argument(
        "--no-smtps",
        action="store_true",
        help="Do not open the implicit-TLS listener",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    args = parser.parse_args(argv)

    configure_logging(
        level=logging.DEBUG if args.debug else logging.INFO,
        add_secret_filter=True,
    )

    logger.info("smtp2wwpm %s starting...", __version__)

    try:
        config = ServerConfig.load(
            args.config,
            webhook_url=args.url,
            host=args.host,
            smtp_port=args.smtp_port,
            smtps_port=args.smtps_port,
            smtps_enabled=False if args.no_smtps else None,
        )
    except (ConfigError, OSError) as e:
        logger.critical("Configuration error: %s", e)
        return 1

    service = SMTPGatewayService(config)

    def shutdown_handler(signum: int, frame: object) -> None:
        """Handle shutdown signals."""
        logger.info("Received signal %d, initiating shutdown...", signum)
        service.request_stop()

    signal.signal(signal.SIGINT, shutdown_handler)
    signal.signal(signal.SIGTERM, shutdown_handler)

    try:
        try:
            service.start()
        except OSError as e:
            logger.critical("Failed to start listeners: %s", e)
            return 2
        service.wait()
        return 0
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except Exception as e:
        logger.exception("Fatal runtime error: %s", e)
        return 3
    finally:
        service.stop()
