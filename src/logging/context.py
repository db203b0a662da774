# src/logging/context.py — v2
"""Contextual logging support — attach pipeline_id, repository_id, step, attempt.

Context variables are task-local under asyncio, so concurrent pipeline
runs each log with their own identifiers.
"""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

_pipeline_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "pipeline_id", default=None
)
_repository_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "repository_id", default=None
)
_step: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "step", default=None
)
_attempt: contextvars.ContextVar[int | None] = contextvars.ContextVar(
    "attempt", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    pipeline_id: str | None = None
    repository_id: str | None = None
    step: str | None = None
    attempt: int | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        pipeline_id=_pipeline_id.get(),
        repository_id=_repository_id.get(),
        step=_step.get(),
        attempt=_attempt.get(),
    )


def set_pipeline_context(pipeline_id: str, repository_id: str) -> None:
    """Set run-level context (called once per pipeline run)."""
    _pipeline_id.set(pipeline_id)
    _repository_id.set(repository_id)


def set_step_context(step: str | None, attempt: int | None = None) -> None:
    """Set step-level context (called per step attempt)."""
    _step.set(step)
    _attempt.set(attempt)


def clear_context() -> None:
    """Reset all context variables."""
    _pipeline_id.set(None)
    _repository_id.set(None)
    _step.set(None)
    _attempt.set(None)
