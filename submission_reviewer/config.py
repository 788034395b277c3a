"""Application configuration from environment variables."""

import os
from dataclasses import dataclass

DEFAULT_MODEL = "gemini-2.0-flash"
DEFAULT_MAX_TOKENS_PER_CHUNK = 12000
DEFAULT_INNGEST_BASE_URL = "https://inn.gs"
DEFAULT_SWEEP_INTERVAL_SECONDS = 900


@dataclass
class Settings:
    """Application configuration."""

    ai_model: str = DEFAULT_MODEL
    gemini_api_key: str = ""
    openai_api_key: str = ""
    openrouter_api_key: str = ""
    anthropic_api_key: str = ""
    app_url: str = "https://earn.superteam.fun"
    github_token: str = ""
    use_bullmq: bool = False
    redis_url: str = ""
    inngest_event_key: str = ""
    inngest_base_url: str = DEFAULT_INNGEST_BASE_URL
    max_tokens_per_chunk: int = DEFAULT_MAX_TOKENS_PER_CHUNK
    worker_concurrency: int = 5
    # 0 disables the pending-review sweep
    sweep_interval_seconds: int = DEFAULT_SWEEP_INTERVAL_SECONDS
    port: int = 8000
    host: str = "0.0.0.0"

    @property
    def broker_enabled(self) -> bool:
        """Use the Redis broker only when it is both requested and reachable by URL."""
        return self.use_bullmq and bool(self.redis_url)

    @classmethod
    def from_env(cls) -> "Settings":
        """Load configuration from environment variables."""
        max_tokens = int(
            os.environ.get("MAX_TOKENS_PER_CHUNK", str(DEFAULT_MAX_TOKENS_PER_CHUNK))
        )
        if max_tokens <= 0:
            raise ValueError("MAX_TOKENS_PER_CHUNK must be a positive integer")

        concurrency = int(os.environ.get("WORKER_CONCURRENCY", "5"))
        if not 1 <= concurrency <= 10:
            raise ValueError("WORKER_CONCURRENCY must be between 1 and 10")

        sweep_interval = int(
            os.environ.get(
                "REVIEW_SWEEP_INTERVAL_SECONDS", str(DEFAULT_SWEEP_INTERVAL_SECONDS)
            )
        )
        if sweep_interval < 0:
            raise ValueError("REVIEW_SWEEP_INTERVAL_SECONDS must not be negative")

        return cls(
            ai_model=os.environ.get("AI_MODEL", "") or DEFAULT_MODEL,
            gemini_api_key=os.environ.get("GEMINI_API_KEY", ""),
            openai_api_key=os.environ.get("OPENAI_API_KEY", ""),
            openrouter_api_key=os.environ.get("OPENROUTER_API_KEY", ""),
            anthropic_api_key=os.environ.get("ANTHROPIC_API_KEY", ""),
            app_url=os.environ.get("APP_URL", "https://earn.superteam.fun"),
            github_token=os.environ.get("GITHUB_TOKEN", ""),
            use_bullmq=os.environ.get("USE_BULLMQ", "").lower() == "true",
            redis_url=os.environ.get("REDIS_URL", ""),
            inngest_event_key=os.environ.get("INNGEST_EVENT_KEY", ""),
            inngest_base_url=os.environ.get(
                "INNGEST_BASE_URL", DEFAULT_INNGEST_BASE_URL
            ),
            max_tokens_per_chunk=max_tokens,
            worker_concurrency=concurrency,
            sweep_interval_seconds=sweep_interval,
            port=int(os.environ.get("PORT", "8000")),
            host=os.environ.get("HOST", "0.0.0.0"),
        )
