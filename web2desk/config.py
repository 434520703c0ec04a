"""Configuration settings for web2desk.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

import json
import logging
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict
from rich.console import Console
from rich.logging import RichHandler


def _default_storage_dir() -> Path:
    """Return the default blob storage directory."""
    return Path.home() / ".local" / "share" / "web2desk" / "storage"


def _default_db_url() -> str:
    """Return the default database URL (SQLite)."""
    db_path = Path.home() / ".local" / "share" / "web2desk" / "db.sqlite"
    return f"sqlite:///{db_path}"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the W2D_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="W2D_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Persistence
    db_url: str = Field(
        default_factory=_default_db_url,
        description="Database connection URL",
    )

    # Blob storage
    storage_backend: Literal["local", "supabase"] = Field(
        default="local",
        description="Blob storage backend for installers and generated projects",
    )
    storage_dir: Path = Field(
        default_factory=_default_storage_dir,
        description="Root directory for the local storage backend",
    )
    public_base_url: str = Field(
        default="http://localhost:8000/files",
        description="Base URL under which locally stored files are served",
    )
    supabase_url: str | None = Field(
        default=None,
        description="Project URL for the supabase storage backend",
    )
    supabase_service_key: SecretStr | None = Field(
        default=None,
        description="Service key for the supabase storage backend",
    )
    storage_bucket: str = Field(
        default="installers",
        description="Bucket name for the supabase storage backend",
    )

    # CI
    github_token: SecretStr | None = Field(
        default=None,
        description="GitHub token with workflow-dispatch and contents scope",
    )
    github_api_url: str = Field(
        default="https://api.github.com",
        description="GitHub REST API base URL",
    )
    template_repo: str = Field(
        default="web2desk/web2desk-builder",
        description="Repository (owner/repo) holding the shared build workflows",
    )
    default_strategy: Literal["template-repo", "user-repo", "simulated", "project"] = (
        Field(
            default="template-repo",
            description="Build strategy used when a request does not name one",
        )
    )
    create_missing_user_workflows: bool = Field(
        default=False,
        description="Write missing workflow files into user-specified repositories",
    )
    workflow_grace_period: float = Field(
        default=3.0,
        ge=0,
        description="Seconds to wait after creating a workflow before dispatching",
    )
    run_match_fallback: bool = Field(
        default=True,
        description="Assume the most recent run when no run carries the build id",
    )
    run_listing_limit: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Number of recent CI runs inspected per status check",
    )
    callback_token: SecretStr | None = Field(
        default=None,
        description="Bearer token CI workflows use to report build completion",
    )

    # Timeouts (in seconds)
    http_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for CI and storage API requests",
    )
    download_timeout: float = Field(
        default=600.0,
        gt=0,
        description="Timeout for downloading CI artifact bundles",
    )
    poll_interval: float = Field(
        default=12.0,
        ge=1,
        description="Interval between client status polls",
    )

    # Limits and modes
    max_artifact_bytes: int = Field(
        default=2 * 1024 * 1024 * 1024,
        ge=1,
        description="Largest single installer accepted from a CI bundle",
    )
    max_bundle_bytes: int = Field(
        default=4 * 1024 * 1024 * 1024,
        ge=1,
        description="Largest CI artifact bundle downloaded for archiving",
    )
    simulated_step_delay: float = Field(
        default=1.0,
        ge=0,
        description="Delay between states in the simulated build strategy",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )


def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Secret values are rendered as ``**********`` by pydantic.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return json.dumps(settings.model_dump(mode="json"), indent=2)


def configure_logging(settings: Settings | None = None) -> None:
    """Install a Rich log handler on the root logger.

    Safe to call more than once; an existing Rich handler is reused.

    Args:
        settings: Optional settings instance; uses default if not provided.
    """
    if settings is None:
        settings = get_settings()

    root = logging.getLogger()
    root.setLevel(settings.log_level)
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        root.addHandler(
            RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)
        )


__all__ = ["Settings", "configure_logging", "get_settings", "print_settings_json"]
