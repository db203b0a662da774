# src/config/templates.py — v1
"""Declarative pipeline templates.

Two templates ship by default. 'basic' runs the build chain only;
'comprehensive' adds the security scan and the quality gate before
packaging. Both build with `npm run build` unless a step config says
otherwise.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from shipyard.core.errors import ConfigurationError
from shipyard.pipeline.models import PipelineConfig, RetryPolicy

if TYPE_CHECKING:
    from shipyard.config.settings import Settings

# Step declarations: (name, kind, config, dependencies).
PIPELINE_TEMPLATES: dict[str, dict[str, Any]] = {
    "basic": {
        "steps": [
            {"name": "clone", "kind": "clone"},
            {"name": "install", "kind": "install", "dependencies": ["clone"]},
            {"name": "test", "kind": "test", "dependencies": ["install"]},
            {
                "name": "build",
                "kind": "build",
                "config": {"commands": ["npm run build"]},
                "dependencies": ["test"],
            },
            {"name": "package", "kind": "package", "dependencies": ["build"]},
            {"name": "deploy", "kind": "deploy", "dependencies": ["package"]},
        ],
        "environment": "production",
        "timeout_s": 30 * 60,
        "retry_policy": {"max_retries": 2, "backoff_ms": 1000, "backoff_multiplier": 2},
    },
    "comprehensive": {
        "steps": [
            {"name": "clone", "kind": "clone"},
            {"name": "install", "kind": "install", "dependencies": ["clone"]},
            {"name": "test", "kind": "test", "dependencies": ["install"]},
            {"name": "security_scan", "kind": "security_scan", "dependencies": ["install"]},
            {
                "name": "build",
                "kind": "build",
                "config": {"commands": ["npm run build"]},
                "dependencies": ["test"],
            },
            {
                "name": "quality_check",
                "kind": "quality_check",
                "dependencies": ["test", "security_scan"],
            },
            {
                "name": "package",
                "kind": "package",
                "dependencies": ["build", "quality_check"],
            },
            {"name": "deploy", "kind": "deploy", "dependencies": ["package"]},
        ],
        "environment": "production",
        "timeout_s": 45 * 60,
        "retry_policy": {"max_retries": 3, "backoff_ms": 2000, "backoff_multiplier": 2},
    },
}


def template_names() -> list[str]:
    return sorted(PIPELINE_TEMPLATES)


def get_template(name: str, settings: Settings | None = None) -> PipelineConfig:
    """Build a fresh PipelineConfig from a named template.

    Settings may override the environment and the pipeline timeout.

    Raises:
        ConfigurationError: If the template name is unknown.
    """
    raw = PIPELINE_TEMPLATES.get(name)
    if raw is None:
        raise ConfigurationError(
            f"Unknown pipeline template '{name}' (available: {', '.join(template_names())})"
        )
    config = PipelineConfig.model_validate(raw)
    if settings is not None:
        config.environment = settings.pipeline_environment
        if settings.pipeline_timeout_s is not None:
            config.timeout_s = settings.pipeline_timeout_s
    return config


def default_retry_policy(settings: Settings) -> RetryPolicy:
    """Retry policy for pipelines built outside the templates."""
    return RetryPolicy(
        max_retries=settings.retry_max_retries,
        backoff_ms=settings.retry_backoff_ms,
        backoff_multiplier=settings.retry_backoff_multiplier,
    )
