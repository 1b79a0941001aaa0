# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""SMTP front end: dialog state machine, listeners and TLS setup."""

from smtp2wwpm.smtp.server import SMTPServer
from smtp2wwpm.smtp.session import SMTPSession, SessionPhase
from smtp2wwpm.smtp.tls import create_server_context, generate_self_signed_cert


__all__ = [
    # server
    "SMTPServer",
    # session
    "SMTPSession",
    "SessionPhase",
    # tls
    "create_server_context",
    "generate_self_signed_cert",
]
