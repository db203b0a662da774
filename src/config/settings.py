# src/config/settings.py — v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for all deployment-specific settings of the build
pipeline, the package registry and the HTTP service.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shipyard.core.errors import ConfigurationError

__all__ = ["ConfigurationError", "Settings", "load_settings"]


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Pipeline ===
    workspace_root: Path = Path("~/.shipyard/workspaces")
    pipeline_template: Literal["basic", "comprehensive"] = "comprehensive"
    pipeline_environment: Literal["development", "staging", "production"] = (
        "production"
    )
    quality_threshold: float = 70.0
    retry_max_retries: int = 0
    retry_backoff_ms: int = 1000
    retry_backoff_multiplier: float = 2.0
    step_timeout_s: float | None = None
    pipeline_timeout_s: float | None = None
    keep_workspace: bool = False

    # === Toolchain ===
    git_binary: str = "git"
    clone_depth: int = 1
    default_branch: str = "main"
    build_output_dir: str = "dist"

    # === Pipeline run store ===
    run_store_backend: Literal["memory", "sqlite"] = "memory"
    run_store_path: Path = Path("~/.shipyard/pipelines.db")

    # === Registry ===
    registry_backend: Literal["memory", "sqlite"] = "memory"
    registry_db_path: Path = Path("~/.shipyard/registry.db")
    install_root: Path = Path("~/.shipyard/installed")
    verify_integrity: bool = True
    download_timeout_s: float = 30.0

    # === Package cache ===
    cache_backend: Literal["memory", "redis"] = "memory"
    cache_redis_url: str = ""

    # === Dist storage ===
    dist_storage: Literal["local", "s3"] = "local"
    dist_root: Path = Path("~/.shipyard/dist")
    dist_base_url: str = ""
    dist_s3_bucket: str = ""
    dist_s3_prefix: str = "packages/"
    dist_s3_region: str = ""
    dist_s3_endpoint_url: str = ""

    # === HTTP service ===
    api_host: str = "127.0.0.1"
    api_port: int = 8080
    developer_tokens: str = ""
    service_api_key: str = ""

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("quality_threshold")
    @classmethod
    def validate_quality_threshold(cls, v: float) -> float:  # noqa: N805
        if not 0 <= v <= 100:
            raise ValueError("quality_threshold must be within [0, 100]")
        return v

    @field_validator("retry_max_retries", "retry_backoff_ms")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:  # noqa: N805
        if v < 0:
            raise ValueError("retry settings must be >= 0")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.cache_backend == "redis" and not self.cache_redis_url:
            errors.append("CACHE_BACKEND=redis requires CACHE_REDIS_URL")

        if self.dist_storage == "s3" and not self.dist_s3_bucket:
            errors.append("DIST_STORAGE=s3 requires DIST_S3_BUCKET")

        if self.retry_backoff_multiplier < 1:
            errors.append("RETRY_BACKOFF_MULTIPLIER must be >= 1")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def developer_tokens_list(self) -> list[str]:
        """Parse comma-separated developer bearer tokens."""
        return [t.strip() for t in self.developer_tokens.split(",") if t.strip()]

    @property
    def resolved_dist_base_url(self) -> str:
        """Public base URL of published dist artifacts."""
        if self.dist_base_url:
            return self.dist_base_url.rstrip("/")
        if self.dist_storage == "s3":
            return f"https://{self.dist_s3_bucket}.s3.amazonaws.com/{self.dist_s3_prefix.strip('/')}"
        return self.dist_root.expanduser().resolve().as_uri()


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or per-run config).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
