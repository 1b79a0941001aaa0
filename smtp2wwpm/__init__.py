# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""SMTP to webhook notification bridge.

Accepts mail from any SMTP sender, extracts a displayable HTML body and
posts it to a single webhook endpoint.
"""

__version__ = "0.1.0"
