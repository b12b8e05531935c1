"""Configuration management for the Docs Agent backend.

Uses Pydantic Settings for type-safe, environment-based configuration.
"""

from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file
# Use override=True to ensure .env changes take effect immediately
load_dotenv(override=True)


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # App configuration
    app_name: str = Field("Docs Agent", alias="DOCSAGENT_APP_NAME")
    debug: bool = Field(False, alias="DOCSAGENT_DEBUG")
    version: str = Field("0.0.0-dev", alias="DOCSAGENT_APP_VERSION")

    # API configuration
    api_host: str = Field("127.0.0.1", alias="DOCSAGENT_API_HOST")
    api_port: int = Field(8000, alias="DOCSAGENT_API_PORT")
    environment: str = Field("development", alias="DOCSAGENT_ENVIRONMENT")
    allowed_origins: str = Field("*", alias="DOCSAGENT_ALLOWED_ORIGINS")  # comma-separated

    # Agent identity advertised on /agent/info and the agent card
    agent_id: str = Field("google-docs-agent", alias="DOCSAGENT_AGENT_ID")
    agent_description: str = Field(
        "Google Docs and Drive automation agent", alias="DOCSAGENT_AGENT_DESCRIPTION"
    )
    workspace_id: str | None = Field(None, alias="DOCSAGENT_WORKSPACE_ID")
    public_url: str | None = Field(None, alias="DOCSAGENT_PUBLIC_URL")

    # Redis configuration
    # Set DOCSAGENT_REDIS_URL to persist credentials in Redis; omit for in-memory.
    redis_url: str | None = Field(None, alias="DOCSAGENT_REDIS_URL")
    redis_connection_timeout: int = Field(5, alias="DOCSAGENT_REDIS_CONNECTION_TIMEOUT")
    redis_socket_timeout: int = Field(5, alias="DOCSAGENT_REDIS_SOCKET_TIMEOUT")
    redis_required: bool = Field(False, alias="DOCSAGENT_REDIS_REQUIRED")
    redis_fallback_enabled: bool = Field(True, alias="DOCSAGENT_REDIS_FALLBACK_ENABLED")

    @property
    def redis_enabled(self) -> bool:
        """Whether Redis should be used, based on DOCSAGENT_REDIS_URL being set."""
        return bool(self.redis_url)

    # Google OAuth configuration
    google_client_id: str | None = Field(None, alias="GOOGLE_CLIENT_ID")
    google_client_secret: str | None = Field(None, alias="GOOGLE_CLIENT_SECRET")
    oauth_redirect_uri: str = Field("http://localhost:8000/auth/google/callback", alias="OAUTH_REDIRECT_URI")

    # Fernet key for credential records at rest; plaintext JSON when unset
    token_encryption_key: str | None = Field(None, alias="DOCSAGENT_TOKEN_ENCRYPTION_KEY")

    # Conversational agent (Gemini); the chat fallback runs keyword matching when unset
    google_api_key: str | None = Field(None, alias="GOOGLE_API_KEY")
    chat_model: str = Field("gemini-1.5-flash", alias="DOCSAGENT_CHAT_MODEL")

    # Task dispatch
    task_default_timeout_ms: int = Field(30000, alias="DOCSAGENT_TASK_TIMEOUT_MS")
    admin_key: str | None = Field(None, alias="DOCSAGENT_ADMIN_KEY")
    skip_task_auth: bool = Field(False, alias="DOCSAGENT_SKIP_TASK_AUTH")
    task_rate_limit_enabled: bool = Field(True, alias="DOCSAGENT_TASK_RATE_LIMIT_ENABLED")
    task_rate_limit_requests: int = Field(60, alias="DOCSAGENT_TASK_RATE_LIMIT_REQUESTS")
    task_rate_limit_period: int = Field(60, alias="DOCSAGENT_TASK_RATE_LIMIT_PERIOD")

    # Outbound HTTP (Google APIs, token endpoint)
    http_timeout: float = Field(30.0, alias="DOCSAGENT_HTTP_TIMEOUT")

    # Logging configuration
    log_level: str = Field("INFO", alias="DOCSAGENT_LOG_LEVEL")
    log_format: str = Field("text", alias="DOCSAGENT_LOG_FORMAT")  # text or json
    log_dir: str | None = Field(None, alias="DOCSAGENT_LOG_DIR")

    @staticmethod
    def _repo_root_from_this_file() -> Path:
        """Resolve repository root for both local and container layouts.

        - Local dev: <repo>/backend/src/docsagent/core/config.py -> repo root = <repo>
        - Container: /app/src/docsagent/core/config.py -> repo root = /app
        """
        here = Path(__file__).resolve()
        src_dir = here.parents[2]
        candidate_parent = src_dir.parent
        return candidate_parent.parent if candidate_parent.name == "backend" else candidate_parent

    @field_validator("log_dir", mode="before")
    @classmethod
    def _resolve_log_dir(cls, v: str | None) -> str | None:
        if not v:
            return None
        p = Path(v)
        if p.is_absolute():
            return str(p)
        return str((cls._repo_root_from_this_file() / p).resolve())

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        valid_formats = ["text", "json"]
        if v.lower() not in valid_formats:
            raise ValueError(f"Log format must be one of: {valid_formats}")
        return v.lower()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment setting."""
        valid_environments = ["development", "staging", "production"]
        if v.lower() not in valid_environments:
            raise ValueError(f"Environment must be one of: {valid_environments}")
        return v.lower()

    @property
    def allowed_origins_list(self) -> list[str]:
        """Parse allowed origins from the comma-separated setting."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    @field_validator("task_default_timeout_ms", "task_rate_limit_requests", "task_rate_limit_period")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Value must be a positive integer")
        return v

    @property
    def google_oauth_configured(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret and self.oauth_redirect_uri)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",  # Ignore extra environment variables instead of forbidding them
    )


def get_settings() -> Settings:
    """Build a fresh settings instance from the environment."""
    return Settings()  # type: ignore[call-arg]


# Global settings instance - will be created when first accessed
settings = None


def get_settings_instance() -> Settings:
    """Get the global settings instance, creating it if necessary."""
    global settings  # noqa: PLW0603
    if settings is None:
        settings = get_settings()
    return settings


def reset_settings_instance() -> None:
    """Drop the cached settings so the next access re-reads the environment (for testing)."""
    global settings  # noqa: PLW0603
    settings = None
