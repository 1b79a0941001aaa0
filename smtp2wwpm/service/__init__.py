# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Gateway service: message dispatch and process entry point."""

from smtp2wwpm.service.dispatcher import MessageDispatcher, process_raw_message
from smtp2wwpm.service.gateway import SMTPGatewayService, main


__all__ = [
    "MessageDispatcher",
    "SMTPGatewayService",
    "main",
    "process_raw_message",
]
