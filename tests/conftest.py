# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Shared pytest fixtures used across multiple test packages."""

import socket
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import patch

import pytest

from smtp2wwpm.logging import SecretFilter


WEBHOOK_URL = "https://hook.example.com/cgi-bin/webhook/send?key=test-key-1234"


@pytest.fixture(autouse=True)
def _clear_secret_filter() -> Iterator[None]:
    """Keep registered secrets from leaking between tests."""
    SecretFilter.clear_secrets()
    yield
    SecretFilter.clear_secrets()


@pytest.fixture
def isolated_config(tmp_path: Path) -> Iterator[Path]:
    """Point config discovery at an empty directory and skip ``.env``.

    Yields:
        The (not yet existing) default config file path.
    """
    config_path = tmp_path / "config" / "smtp2wwpm.yaml"
    with (
        patch("smtp2wwpm.config.get_config_path", return_value=config_path),
        patch("smtp2wwpm.config.load_dotenv_once"),
    ):
        yield config_path


def find_free_port() -> int:
    """Find a free TCP port on loopback."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]
