# src/pipeline/models.py — v1
"""Pipeline domain models: StepKind, StepConfig, RetryPolicy, PipelineConfig,
PipelineStep, DeploymentPipeline, StepResult.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

PipelineStatus = Literal["pending", "running", "success", "failed", "cancelled"]
StepStatus = Literal["pending", "running", "success", "failed", "skipped"]
Environment = Literal["development", "staging", "production"]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class StepKind(str, Enum):
    """Closed set of step executor kinds."""

    CLONE = "clone"
    INSTALL = "install"
    TEST = "test"
    SECURITY_SCAN = "security_scan"
    QUALITY_CHECK = "quality_check"
    BUILD = "build"
    PACKAGE = "package"
    DEPLOY = "deploy"


class RetryPolicy(BaseModel):
    """Pipeline-level retry policy (delay = backoff_ms * multiplier^(attempt-1))."""

    max_retries: int = Field(default=0, ge=0)
    backoff_ms: int = Field(default=1000, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)


class StepConfig(BaseModel):
    """Configuration of one named, typed pipeline step."""

    name: str
    kind: StepKind
    config: dict[str, Any] = Field(default_factory=dict)
    dependencies: list[str] = Field(default_factory=list)
    retries: int | None = Field(default=None, ge=0)
    timeout_s: float | None = Field(default=None, gt=0)
    condition: str | None = None
    retry_on_timeout: bool = False


class PipelineConfig(BaseModel):
    """Full pipeline configuration (usually built from a template)."""

    steps: list[StepConfig] = Field(default_factory=list)
    environment: Environment = "production"
    timeout_s: float | None = Field(default=None, gt=0)
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)


class PipelineStep(BaseModel):
    """Runtime record of one step inside a DeploymentPipeline."""

    name: str
    status: StepStatus = "pending"
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration: float | None = None  # seconds
    attempts: int = 0
    logs: str | None = None
    output: Any = None
    error: str | None = None

    def mark_running(self) -> None:
        self.status = "running"
        self.start_time = _now()

    def mark_finished(self, status: StepStatus) -> None:
        self.status = status
        self.end_time = _now()
        if self.start_time is not None:
            self.duration = (self.end_time - self.start_time).total_seconds()


class DeploymentPipeline(BaseModel):
    """Audit record of one end-to-end pipeline run."""

    id: str = Field(default_factory=lambda: f"pipeline-{uuid.uuid4().hex[:12]}")
    repository_id: str
    trigger_event: str = "submission"
    environment: Environment = "production"
    status: PipelineStatus = "pending"
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration_seconds: float | None = None
    steps: list[PipelineStep] = Field(default_factory=list)
    package_url: str | None = None
    package_size_bytes: int | None = None
    error_message: str | None = None
    error_details: dict[str, Any] | None = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    def get_step(self, name: str) -> PipelineStep:
        for step in self.steps:
            if step.name == name:
                return step
        raise KeyError(name)

    def touch(self) -> None:
        self.updated_at = _now()

    @property
    def is_terminal(self) -> bool:
        return self.status in ("success", "failed", "cancelled")


class StepResult(BaseModel):
    """Return value of every step executor."""

    output: Any = None
    logs: str = ""
    artifacts: dict[str, Any] = Field(default_factory=dict)
