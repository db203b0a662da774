# src/pipeline/context.py — v1
"""Per-run pipeline context: artifact store, cancellation token, environment.

A PipelineContext is owned by exactly one pipeline run and discarded when
the run completes. Nothing in here is shared across runs.
"""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from shipyard.core.errors import CancellationError, StepExecutionError
from shipyard.core.models import DeveloperSubmissionForm

if TYPE_CHECKING:
    from shipyard.core.models import PackageDescriptor


class ArtifactStore:
    """In-memory named artifacts produced and consumed by steps of one run."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._items: dict[str, Any] = dict(initial or {})

    def get(self, name: str, default: Any = None) -> Any:
        return self._items.get(name, default)

    def set(self, name: str, value: Any) -> None:
        self._items[name] = value

    def merge(self, artifacts: dict[str, Any]) -> None:
        """Merge step artifacts, overwriting previous values of the same name."""
        self._items.update(artifacts)

    def require(self, name: str, step: str | None = None) -> Any:
        """Return an artifact or fail the step if an upstream step did not write it."""
        if name not in self._items:
            raise StepExecutionError(
                f"Required artifact '{name}' not found", step=step
            )
        return self._items[name]

    def snapshot(self) -> dict[str, Any]:
        """Deep copy of all artifacts (safe to persist or inspect)."""
        return copy.deepcopy(self._items)

    def __contains__(self, name: object) -> bool:
        return name in self._items

    def __len__(self) -> int:
        return len(self._items)


class CancellationToken:
    """Cooperative cancellation flag polled by step executors at checkpoints."""

    def __init__(self) -> None:
        self._cancelled = False
        self._reason = ""

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "Pipeline cancelled") -> None:
        self._cancelled = True
        self._reason = reason

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise CancellationError(self._reason or "Step execution cancelled")


class Publisher(Protocol):
    """Distribution endpoint used by the deploy step (the package registry)."""

    async def publish_build(
        self,
        submission: DeveloperSubmissionForm,
        package_info: PackageDescriptor,
        quality_score: float | None = None,
        author_id: str = "",
    ) -> str:
        """Publish a built package and return its deployment URL."""


@dataclass
class PipelineContext:
    """Everything a step executor may read or write during one run."""

    repository_id: str
    submission: DeveloperSubmissionForm
    workspace_dir: Path
    artifacts: ArtifactStore = field(default_factory=ArtifactStore)
    environment: dict[str, str] = field(default_factory=dict)
    cancel_token: CancellationToken = field(default_factory=CancellationToken)
    publisher: Publisher | None = None
    developer_id: str = ""

    @property
    def source_dir(self) -> Path:
        """Workspace path where the clone step places the repository."""
        return self.workspace_dir / "source"

    def checkpoint(self) -> None:
        """Raise CancellationError if the run has been cancelled."""
        self.cancel_token.raise_if_cancelled()

    def subprocess_env(self) -> dict[str, str]:
        """Environment for shelled-out commands (process env + run env)."""
        env = dict(os.environ)
        env.update(self.environment)
        return env
