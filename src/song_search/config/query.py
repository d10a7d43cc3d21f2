import os

from .loader import section


class Query:
    def __init__(self, config: dict | None = None) -> None:
        query_cfg = section(config, "query")
        self.TOP_K: int = int(query_cfg.get("top_k", os.getenv("QUERY_TOP_K", "10")))
        self.INDEX_TOP_K: int = int(query_cfg.get("index_top_k", os.getenv("QUERY_INDEX_TOP_K", "5")))

        if self.TOP_K <= 0:
            raise ValueError("QUERY_TOP_K must be a positive integer")
        if self.INDEX_TOP_K <= 0:
            raise ValueError("QUERY_INDEX_TOP_K must be a positive integer")
