"""Read ``config.toml`` and hand out its ``[songsearch.*]`` tables."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Mapping

from song_search.errors import LoadError

ROOT_TABLE = "songsearch"
DEFAULT_CONFIG_PATH = Path(os.getenv("SONGSEARCH_CONFIG", "config.toml"))


def load_raw_config(path: str | Path | None = None) -> Dict[str, Any]:
    """
    Parse the TOML file at ``path`` (``DEFAULT_CONFIG_PATH`` when omitted).

    A missing file yields ``{}`` so every setting falls back to the
    environment. A file that exists but is not valid TOML raises
    :class:`LoadError`.
    """
    target = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    if not target.is_file():
        return {}

    try:
        with target.open("rb") as handle:
            raw = tomllib.load(handle)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise LoadError(f"Invalid config file {target}: {exc}") from exc

    if not isinstance(raw.get(ROOT_TABLE, {}), dict):
        raise LoadError(f"{target}: [{ROOT_TABLE}] must be a table")
    return raw


def section(config: Mapping[str, Any] | None, name: str) -> Dict[str, Any]:
    """Return the ``[songsearch.<name>]`` table, empty when absent."""
    table = (config or {}).get(ROOT_TABLE, {}).get(name, {})
    if not isinstance(table, dict):
        raise LoadError(f"[{ROOT_TABLE}.{name}] must be a table")
    return table


__all__ = ["load_raw_config", "section", "DEFAULT_CONFIG_PATH", "ROOT_TABLE"]
