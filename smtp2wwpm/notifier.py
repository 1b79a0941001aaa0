# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Webhook notification delivery.

Each message becomes one JSON POST of the form::

    {"msgtype": "html", "html": {"title": <subject>, "content": <body>}}

Delivery is at most once.  Failures are logged and never retried or
reported back to the SMTP client, which was acknowledged long before.
"""

import logging
from typing import Any

import httpx

from smtp2wwpm.logging import SecretFilter


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0

# Response text is logged for troubleshooting; keep log lines bounded.
_MAX_LOGGED_RESPONSE = 500


def build_payload(subject: str, body: str) -> dict[str, Any]:
    """Build the webhook JSON document for one message."""
    return {
        "msgtype": "html",
        "html": {
            "title": subject,
            "content": body,
        },
    }


class WebhookNotifier:
    """Posts extracted messages to a webhook endpoint."""

    def __init__(
        self, url: str, timeout: float = DEFAULT_TIMEOUT_SECONDS
    ) -> None:
        """Initialize the notifier.

        Args:
            url: Webhook endpoint.  Treated as a secret and redacted
                from logs, since such URLs carry their access key.
            timeout: Total request timeout in seconds.
        """
        self.url = url
        self.timeout = timeout
        SecretFilter.register_url(url)

    def notify(self, subject: str, body: str) -> bool:
        """Deliver one notification.

        Args:
            subject: Notification title.
            body: HTML content.

        Returns:
            True if the endpoint answered with a 2xx status.
        """
        payload = build_payload(subject, body)
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(self.url, json=payload)
        except httpx.HTTPError as e:
            logger.warning(
                "Webhook delivery failed for %r: %s: %s",
                subject,
                type(e).__name__,
                e,
            )
            return False

        text = response.text[:_MAX_LOGGED_RESPONSE]
        if not response.is_success:
            logger.warning(
                "Webhook rejected %r: HTTP %d: %s",
                subject,
                response.status_code,
                text,
            )
            return False

        logger.info(
            "Webhook accepted %r: HTTP %d: %s",
            subject,
            response.status_code,
            text,
        )
        return True
