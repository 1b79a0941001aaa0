# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""``.env`` loading for the bridge process.

Candidate files, highest priority first:

1. ``~/.config/smtp2wwpm/.env`` (next to ``smtp2wwpm.yaml``)
2. ``.env`` in the current working directory

``python-dotenv`` never overwrites a variable that is already set, so the
process environment beats both files and the XDG file beats the working
directory one.
"""

import functools
import logging
from pathlib import Path

from dotenv import load_dotenv


logger = logging.getLogger(__name__)


def dotenv_candidates() -> list[Path]:
    """Return the ``.env`` locations in the order they are read."""
    from smtp2wwpm import config

    return [config.get_dotenv_path(), Path.cwd() / ".env"]


@functools.cache
def load_dotenv_once() -> tuple[Path, ...]:
    """Read every existing candidate file, once per process.

    Returns:
        The files that were read, in order.
    """
    loaded = []
    for path in dotenv_candidates():
        if not path.is_file():
            continue
        load_dotenv(path)
        loaded.append(path)

    if loaded:
        logger.debug("Loaded .env from %s", ", ".join(map(str, loaded)))
    return tuple(loaded)


def reset_dotenv_state() -> None:
    """Allow the next ``load_dotenv_once()`` call to read again."""
    load_dotenv_once.cache_clear()
