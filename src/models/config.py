"""Configuration models for the PR attribution system."""

from pydantic import BaseModel, Field, HttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict


class GitHubConfig(BaseModel):
    """Configuration for the GitHub REST API."""

    api_url: HttpUrl = Field(
        default="https://api.github.com", description="GitHub REST API base URL"
    )
    token: str | None = Field(
        default=None, description="Installation or personal access token"
    )
    page_size: int = Field(
        default=100, ge=1, le=100, description="Pull requests per page (GitHub caps at 100)"
    )
    request_timeout: float = Field(
        default=30.0, gt=0, description="Per-request HTTP timeout in seconds"
    )


class SyncConfig(BaseModel):
    """Configuration for incremental pull request sync."""

    batch_size: int = Field(
        default=10, ge=1, le=50, description="Pages fetched concurrently per phase-one batch"
    )
    max_retries: int = Field(
        default=3, ge=0, le=10, description="Retries per page on transient failures"
    )
    retry_base_delay: float = Field(
        default=1.0, ge=0.0, description="Linear backoff step in seconds"
    )
    timeout_seconds: float = Field(
        default=600.0, gt=0, description="Wall-clock ceiling for one sync run"
    )


class StorageConfig(BaseModel):
    """Configuration for the local contribution store."""

    database_url: str = Field(
        default="sqlite:///pr_attribution.db", description="SQLAlchemy database URL"
    )
    echo: bool = Field(default=False, description="Echo SQL statements")


class ClassificationConfig(BaseModel):
    """Configuration for classification runs."""

    batch_size: int = Field(
        default=10, ge=1, le=100, description="Contributions classified concurrently"
    )
    timeout_seconds: float = Field(
        default=3600.0, gt=0, description="Wall-clock ceiling for one classification run"
    )


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=True,
        description="If True, output JSON logs. If False, use console format.",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional path to log file. If None, logs only to stdout.",
    )


class AppConfig(BaseSettings):
    """Main application configuration.

    Loads from environment variables with the APP_ prefix, e.g.
    ``APP_GITHUB__TOKEN`` or ``APP_SYNC__BATCH_SIZE``.
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    github: GitHubConfig = Field(default_factory=GitHubConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    classification: ClassificationConfig = Field(default_factory=ClassificationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
