import os

from .loader import section


class Embedding:
    def __init__(self, config: dict | None = None) -> None:
        emb_cfg = section(config, "embedding")
        self.EMB_MODEL_ID: str = str(emb_cfg.get("model_id", os.getenv("EMB_MODEL_ID", "text-embedding-ada-002")))
        self.EMB_DIM: int = int(emb_cfg.get("dim", os.getenv("EMB_DIM", "1536")))
        self.REQUEST_TIMEOUT: float = float(emb_cfg.get("request_timeout", os.getenv("EMB_REQUEST_TIMEOUT", "30")))

        # Backoff: initial * multiplier**n, scaled by a random factor in [1 - jitter, 1 + jitter]
        self.RETRY_INITIAL_INTERVAL: float = float(
            emb_cfg.get("retry_initial_interval", os.getenv("EMB_RETRY_INITIAL_INTERVAL", "0.5"))
        )
        self.RETRY_MULTIPLIER: float = float(emb_cfg.get("retry_multiplier", os.getenv("EMB_RETRY_MULTIPLIER", "3.0")))
        self.RETRY_JITTER: float = float(emb_cfg.get("retry_jitter", os.getenv("EMB_RETRY_JITTER", "0.15")))
        self.RETRY_MAX_INTERVAL: float = float(
            emb_cfg.get("retry_max_interval", os.getenv("EMB_RETRY_MAX_INTERVAL", "60"))
        )
        self.RETRY_MAX_ATTEMPTS: int = int(
            emb_cfg.get("retry_max_attempts", os.getenv("EMB_RETRY_MAX_ATTEMPTS", "6"))
        )

        if self.EMB_DIM <= 0:
            raise ValueError("EMB_DIM must be a positive integer")
        if self.RETRY_MAX_ATTEMPTS <= 0:
            raise ValueError("EMB_RETRY_MAX_ATTEMPTS must be a positive integer")
