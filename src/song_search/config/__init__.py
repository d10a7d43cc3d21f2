"""Application configuration.

Settings are read from ``config.toml`` (``[songsearch.*]`` tables), then the
environment (a local ``.env`` is loaded first), then defaults. Nothing is
resolved at import time: call :func:`load_config` and pass the resulting
:class:`Config` to the components that need it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from dotenv import load_dotenv

from .loader import load_raw_config, DEFAULT_CONFIG_PATH
from .core import Core
from .embedding import Embedding
from .postgres import Postgres
from .ingest import Ingest
from .query import Query

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s]: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class Config:
    def __init__(self, raw: dict | None = None) -> None:
        self.core = Core(raw)
        self.embedding = Embedding(raw)
        self.postgres = Postgres(raw)
        self.ingest = Ingest(raw)
        self.query = Query(raw)


def load_config(path: str | Path | None = None, *, dotenv: bool = True) -> Config:
    """Build a :class:`Config` from ``path`` (default ``config.toml``) and the environment."""
    if dotenv:
        load_dotenv()
    return Config(load_raw_config(path))


def configure_logging(level: int | str = logging.INFO) -> None:
    logging.basicConfig(format=LOG_FORMAT, datefmt=DATE_FORMAT, level=level)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)


__all__ = [
    "Config",
    "Core",
    "Embedding",
    "Postgres",
    "Ingest",
    "Query",
    "load_config",
    "load_raw_config",
    "configure_logging",
    "DEFAULT_CONFIG_PATH",
    "LOG_FORMAT",
    "DATE_FORMAT",
]
