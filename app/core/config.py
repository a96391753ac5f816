import logging

from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # OpenAI upstream
    openai_api_key: str = ""
    openai_api_url: str = "https://api.openai.com/v1/chat/completions"
    openai_model: str = "gpt-4o-mini"
    openai_min_interval_ms: int = 2500  # Minimum spacing between upstream calls
    openai_timeout_seconds: float = 25.0
    openai_max_tokens: int = 350

    # Chat
    chat_history_limit: int = 6  # Most recent history turns sent upstream
    chat_rate_limit: str = "60/minute"  # Per client address, slowapi syntax
    max_request_bytes: int = 2 * 1024 * 1024

    # App
    app_env: str = "development"
    app_debug: bool = False
    app_host: str = "0.0.0.0"
    app_port: int = 4000

    # CORS
    allowed_origins: str = "*"  # comma-separated, e.g. "https://app.example.com,https://admin.example.com"

    # Logging
    log_level: str = "INFO"
    log_json: bool = False  # set True in production for structured JSON logs

    # Sentry
    sentry_dsn: str = ""  # leave empty to disable

    @property
    def allowed_origins_list(self) -> list[str]:
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]


settings = Settings()


def validate_settings_for_production() -> None:
    """Validate critical settings. Called on startup in non-test environments."""
    errors: list[str] = []

    if not settings.openai_api_key:
        # Not fatal: /chat answers ServiceUnavailable until a key is provided
        logger.warning("OPENAI_API_KEY is not set; /chat will refuse requests until it is configured")

    if settings.openai_min_interval_ms < 0:
        errors.append("OPENAI_MIN_INTERVAL_MS must not be negative")

    if settings.chat_history_limit < 0:
        errors.append("CHAT_HISTORY_LIMIT must not be negative")

    if settings.app_env == "production":
        if settings.allowed_origins == "*":
            errors.append("ALLOWED_ORIGINS must not be '*' in production")
        if settings.app_debug:
            errors.append("APP_DEBUG must be false in production")

    if errors:
        raise SystemExit("Configuration errors:\n  - " + "\n  - ".join(errors))
