"""Configuration management for the devotional reflection server."""

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Devotional configuration settings loaded from environment variables."""

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # OpenAI
    openai_api_key: str = ""
    devotional_evaluation_model: str = "gpt-3.5-turbo"
    devotional_verse_model: str = "gpt-4-turbo"
    devotional_reflection_model: str = "gpt-4-turbo"
    devotional_evaluation_timeout_seconds: float = 15.0
    devotional_verse_timeout_seconds: float = 20.0
    devotional_reflection_timeout_seconds: float = 60.0

    # Upstream retry / backoff
    devotional_max_retries: int = 3
    devotional_initial_retry_delay_seconds: float = 2.0

    # Rate limiting (fixed window, per client and request class)
    devotional_rate_window_seconds: float = 60.0
    devotional_search_requests_per_window: int = 10
    devotional_create_requests_per_window: int = 5
    devotional_status_requests_per_window: int = 60

    # Job store
    devotional_job_max_age_seconds: float = 30 * 60
    devotional_job_cleanup_delay_seconds: float = 60.0

    # Server-side waiting (MCP reflect_wait)
    devotional_max_wait_attempts: int = 30
    devotional_min_poll_interval_seconds: float = 0.5

    # Input limits
    devotional_max_topic_length: int = 1000
    devotional_max_reference_length: int = 100
    devotional_max_verse_text_length: int = 1000
    devotional_max_verses: int = 10

    # Server
    devotional_host: str = "0.0.0.0"
    devotional_port: int = 8787
    devotional_debug: bool = False
    devotional_log_level: str = "INFO"
    devotional_cors_origin: str = "*"

    # GitHub OAuth (MCP transport only; disabled when unset)
    github_client_id: str = ""
    github_client_secret: str = ""


# Global settings instance
settings = Settings()


def get_rate_limit(request_class: str) -> int:
    """Get the per-window request ceiling for a request class."""
    ceilings = {
        "search": settings.devotional_search_requests_per_window,
        "create": settings.devotional_create_requests_per_window,
        "status": settings.devotional_status_requests_per_window,
    }
    return ceilings.get(request_class, settings.devotional_create_requests_per_window)
