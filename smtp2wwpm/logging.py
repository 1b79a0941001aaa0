# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Logging configuration with webhook credential redaction.

Webhook endpoints carry their access key in the URL itself (for example
``https://qyapi.weixin.qq.com/cgi-bin/webhook/send?key=...``), so the
configured URL and its query values are registered as secrets and
scrubbed from every log record.

Usage:
    # In the entry point
    from smtp2wwpm.logging import configure_logging
    configure_logging(level=logging.INFO)

    # In library modules
    import logging
    logger = logging.getLogger(__name__)
    logger.info("Delivered message: %s", subject)
"""

import logging
import re
from typing import ClassVar
from urllib.parse import parse_qsl, urlsplit


#: Default record layout.  Sessions run one per thread, so the thread name
#: identifies the connection a line belongs to.
DEFAULT_FORMAT = (
    "%(asctime)s - %(name)s - %(threadName)s - %(levelname)s - %(message)s"
)


class SecretFilter(logging.Filter):
    """Replaces registered secret values in log records with a marker.

    Secrets are registered process-wide; any registered value appearing
    in a message or in a string argument is replaced with ``[REDACTED]``.

    Example:
        SecretFilter.register_url("https://hook.example/send?key=abc123")
        logger.info("Posting to %s", url)
        # Output: "Posting to [REDACTED]"
    """

    _secrets: ClassVar[set[str]] = set()
    _pattern: ClassVar[re.Pattern[str] | None] = None

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact registered secrets in place.

        Returns:
            Always True (records are modified, never suppressed).
        """
        if self._pattern is not None:
            record.msg = self._pattern.sub("[REDACTED]", str(record.msg))
            if record.args:
                record.args = tuple(
                    self._pattern.sub("[REDACTED]", str(arg))
                    if isinstance(arg, str)
                    else arg
                    for arg in record.args
                )
        return True

    @classmethod
    def register_secret(cls, secret: str) -> None:
        """Add one literal value to the process-wide redaction set.

        Empty strings are ignored.
        """
        if secret:
            cls._secrets.add(secret)
            cls._rebuild_pattern()

    @classmethod
    def register_url(cls, url: str) -> None:
        """Register a webhook URL and each of its query values.

        Query values shorter than 8 characters are skipped; they are
        flags or format selectors rather than keys, and redacting them
        would mangle unrelated log text.
        """
        cls.register_secret(url)
        for _name, value in parse_qsl(urlsplit(url).query):
            if len(value) >= 8:
                cls.register_secret(value)

    @classmethod
    def clear_secrets(cls) -> None:
        """Forget every registered value (used between tests)."""
        cls._secrets.clear()
        cls._pattern = None

    @classmethod
    def _rebuild_pattern(cls) -> None:
        if cls._secrets:
            # Longest first so a URL wins over the key embedded in it.
            escaped = [
                re.escape(s)
                for s in sorted(cls._secrets, key=len, reverse=True)
            ]
            cls._pattern = re.compile("|".join(escaped))
        else:
            cls._pattern = None


def configure_logging(
    level: int = logging.INFO,
    format_string: str | None = None,
    add_secret_filter: bool = True,
) -> None:
    """Configure the root logger with a single stream handler.

    Args:
        level: Root logger level.
        format_string: Record layout; defaults to ``DEFAULT_FORMAT``.
        add_secret_filter: Attach a ``SecretFilter`` to the handler.
    """
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(format_string or DEFAULT_FORMAT))

    if add_secret_filter:
        handler.addFilter(SecretFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Repeated calls replace the handler instead of stacking another.
    for old in root_logger.handlers[:]:
        root_logger.removeHandler(old)

    root_logger.addHandler(handler)
