# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Background processing of received messages.

SMTP sessions hand each finished message to ``MessageDispatcher.submit``
and acknowledge the client immediately.  Parsing, extraction and webhook
delivery run on a worker pool, so a slow endpoint never stalls a
session.
"""

import concurrent.futures
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Protocol

from smtp2wwpm.mail import (
    ExtractionResult,
    MessageParseError,
    extract,
    reconstruct_message,
)


logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Anything that can deliver an extracted message."""

    def notify(self, subject: str, body: str) -> bool: ...


def process_raw_message(
    raw: bytes, notifier: Notifier
) -> ExtractionResult | None:
    """Parse one raw message and deliver it.

    Args:
        raw: Bytes collected between DATA and the terminating dot.
        notifier: Delivery target.

    Returns:
        The extraction result, or None if the message could not be
        parsed even behind the fallback header block.
    """
    try:
        headers, body = reconstruct_message(raw)
    except MessageParseError as e:
        logger.error("Dropping unparseable message (%d bytes): %s", len(raw), e)
        return None

    result = extract(headers, body)
    logger.info("Subject: %s, bodyLen: %d", result.subject, len(result.body))
    if result.attachments:
        logger.info("Attachments: %s", ", ".join(result.attachments))

    notifier.notify(result.subject, result.body)
    return result


class MessageDispatcher:
    """Runs ``process_raw_message`` for submitted messages on a pool."""

    def __init__(self, notifier: Notifier, max_workers: int = 4) -> None:
        self.notifier = notifier
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="Dispatch",
        )
        self._pending_futures: set[Future[ExtractionResult | None]] = set()
        self._futures_lock = threading.Lock()

    @property
    def pending(self) -> int:
        """Number of messages submitted but not yet processed."""
        with self._futures_lock:
            return len(self._pending_futures)

    def submit(self, raw: bytes) -> None:
        """Schedule processing of one message.

        The bytes are copied, so the caller may reuse its buffer.

        Raises:
            RuntimeError: If the dispatcher has been shut down.
        """
        future = self._executor.submit(
            process_raw_message, bytes(raw), self.notifier
        )
        with self._futures_lock:
            self._pending_futures.add(future)
        future.add_done_callback(self._on_future_complete)

    def _on_future_complete(
        self, future: Future[ExtractionResult | None]
    ) -> None:
        """Callback when a future completes."""
        with self._futures_lock:
            self._pending_futures.discard(future)

        try:
            exception = future.exception()
            if exception:
                logger.error(
                    "Message processing failed: %s",
                    exception,
                    exc_info=exception,
                )
        except concurrent.futures.CancelledError:
            logger.debug("Message processing was cancelled")

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work.

        Args:
            wait: Block until every submitted message has been processed.
        """
        pending = self.pending
        if wait and pending:
            logger.info("Waiting for %d pending messages...", pending)
        self._executor.shutdown(wait=wait)
        logger.info("Dispatcher shut down")
