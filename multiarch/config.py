"""Configuration settings for multiarch.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > pipeline file >
env vars > defaults.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from multiarch.types import ShaFormat


def _default_work_dir() -> Path:
    """Return the default working directory for run-scoped data."""
    return Path.home() / ".local" / "share" / "multiarch-publish" / "work"


def _default_lock_dir() -> Path:
    """Return the default directory for per-repository run locks."""
    return Path.home() / ".cache" / "multiarch-publish" / "locks"


def _default_db_url() -> str:
    """Return the default database URL (SQLite)."""
    db_path = Path.home() / ".local" / "share" / "multiarch-publish" / "db.sqlite"
    return f"sqlite:///{db_path}"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the MULTIARCH_ prefix.
    CLI flags and pipeline files can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="MULTIARCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    work_dir: Path = Field(
        default_factory=_default_work_dir,
        description="Root directory for run-scoped digest stores and build logs",
    )
    lock_dir: Path = Field(
        default_factory=_default_lock_dir,
        description="Directory for per-repository run lock files",
    )
    db_url: str = Field(
        default_factory=_default_db_url,
        description="Database connection URL",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Builds
    docker_bin: str = Field(
        default="docker",
        description="Docker CLI executable used for buildx and imagetools",
    )
    max_concurrent_builds: int = Field(
        default=8,
        ge=1,
        le=64,
        description="Maximum platform builds running at once",
    )

    # Tagging
    nightly_schedule: str | None = Field(
        default="0 1 * * *",
        description="Cron expression identifying the nightly trigger",
    )
    nightly_pattern: str = Field(
        default="nightly",
        description="Tag applied to runs started by the nightly schedule",
    )
    sha_prefix: str = Field(
        default="sha-",
        description="Prefix of the commit-derived tag",
    )
    sha_format: ShaFormat = Field(
        default=ShaFormat.SHORT,
        description="Commit-derived tag length (short or long)",
    )

    # Registry credentials (opaque, handed to the registry client)
    registry_username: str | None = Field(default=None)
    registry_password: SecretStr | None = Field(default=None)

    # Verification
    verify: bool = Field(
        default=True,
        description="Read back the published manifest list after publishing",
    )
    verify_reader: Literal["imagetools", "distribution"] = Field(
        default="imagetools",
        description="How to read back the manifest list",
    )

    # Run serialization
    run_lock_timeout: float | None = Field(
        default=None,
        ge=0,
        description="Seconds to wait for the repository run lock (None = block)",
    )


def get_settings() -> Settings:
    """Get the application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Secret values are masked by pydantic's SecretStr serialization.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["Settings", "get_settings", "print_settings_json"]
