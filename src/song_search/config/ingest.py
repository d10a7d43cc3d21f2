import os
from typing import List

from .loader import section

_DEFAULT_INPUTS = [
    "data/input/ColdPlay.csv",
    "data/input/EdSheeran.csv",
    "data/input/JustinBieber.csv",
    "data/input/SelenaGomez.csv",
]


def _split_paths(raw: str) -> List[str]:
    return [token.strip() for token in raw.split(",") if token.strip()]


def _as_bool(raw) -> bool:
    return str(raw).lower() in ("1", "true", "yes")


class Ingest:
    def __init__(self, config: dict | None = None) -> None:
        ingest_cfg = section(config, "ingest")
        self.CONCURRENCY: int = int(ingest_cfg.get("concurrency", os.getenv("INGEST_CONCURRENCY", "5")))

        timeout_raw = ingest_cfg.get("record_timeout", os.getenv("INGEST_RECORD_TIMEOUT", "300"))
        timeout = float(timeout_raw) if timeout_raw not in (None, "") else 0.0
        self.RECORD_TIMEOUT: float | None = timeout if timeout > 0 else None

        self.STORE_ERRORS_FATAL: bool = _as_bool(
            ingest_cfg.get("store_errors_fatal", os.getenv("INGEST_STORE_ERRORS_FATAL", "0"))
        )

        inputs_cfg = ingest_cfg.get("input_paths")
        if inputs_cfg:
            self.INPUT_PATHS: List[str] = [str(p) for p in inputs_cfg]
        else:
            self.INPUT_PATHS = _split_paths(os.getenv("INGEST_INPUT_PATHS", "")) or list(_DEFAULT_INPUTS)

        self.BATCH_PATH: str = str(
            ingest_cfg.get("batch_path", os.getenv("INGEST_BATCH_PATH", "data/output/song_embedding.yaml"))
        )

        if self.CONCURRENCY <= 0:
            raise ValueError("INGEST_CONCURRENCY must be a positive integer")
