import os

from .loader import section


class Core:
    def __init__(self, config: dict | None = None) -> None:
        openai_cfg = section(config, "openai")

        key_env = str(openai_cfg.get("api_key_env", "OPENAI_API_KEY"))
        self.OPENAI_API_KEY: str | None = os.getenv(key_env)
        self.OPENAI_BASE_URL: str | None = openai_cfg.get("base_url") or os.getenv("OPENAI_BASE_URL")

    def require_openai_key(self) -> str:
        """Return the API key or fail the way startup validation does."""
        if not self.OPENAI_API_KEY:
            raise ValueError("Missing environment variables: OPENAI_API_KEY")
        return self.OPENAI_API_KEY
