"""Locate ``artcards.toml`` for the current invocation."""

from __future__ import annotations

import os
from pathlib import Path

CONFIG_FILENAME = "artcards.toml"
CONFIG_ENV_VAR = "ARTCARDS_CONFIG"


def find_config(start: Path | None = None) -> Path | None:
    """Return the config file that applies to *start* (default: cwd).

    ``ARTCARDS_CONFIG`` wins outright; if it names a missing file there is
    no config. Otherwise the nearest ``artcards.toml`` in *start* or any of
    its ancestors is used, the way git finds ``.git``.
    """
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        path = Path(override)
        return path if path.is_file() else None

    here = (start or Path.cwd()).resolve()
    for directory in (here, *here.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None
