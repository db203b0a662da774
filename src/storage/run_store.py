# src/storage/run_store.py — v1
"""Pipeline run store: persisted DeploymentPipeline and repository records.

Pipelines are audit records kept indefinitely. The in-memory backend is
the default and the one used by tests; see sqlite_run_store for the
durable backend.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from shipyard.pipeline.models import DeploymentPipeline
from shipyard.submission.models import RepositoryRecord


class BaseRunStore(ABC):
    """Unified interface for pipeline run persistence."""

    @abstractmethod
    async def save_pipeline(self, pipeline: DeploymentPipeline) -> None:
        """Insert or replace a pipeline record (with its steps)."""

    @abstractmethod
    async def get_pipeline(self, pipeline_id: str) -> DeploymentPipeline | None:
        """Fetch a pipeline by id."""

    @abstractmethod
    async def list_pipelines(self, repository_id: str) -> list[DeploymentPipeline]:
        """List pipelines of a repository, most recent first."""

    @abstractmethod
    async def save_repository(self, record: RepositoryRecord) -> None:
        """Insert or replace a repository record."""

    @abstractmethod
    async def get_repository(self, repository_id: str) -> RepositoryRecord | None:
        """Fetch a repository record by id."""


class MemoryRunStore(BaseRunStore):
    """Process-local run store."""

    def __init__(self) -> None:
        self._pipelines: dict[str, DeploymentPipeline] = {}
        self._repositories: dict[str, RepositoryRecord] = {}

    async def save_pipeline(self, pipeline: DeploymentPipeline) -> None:
        self._pipelines[pipeline.id] = pipeline.model_copy(deep=True)

    async def get_pipeline(self, pipeline_id: str) -> DeploymentPipeline | None:
        pipeline = self._pipelines.get(pipeline_id)
        return pipeline.model_copy(deep=True) if pipeline else None

    async def list_pipelines(self, repository_id: str) -> list[DeploymentPipeline]:
        matches = [
            p.model_copy(deep=True)
            for p in self._pipelines.values()
            if p.repository_id == repository_id
        ]
        return sorted(matches, key=lambda p: p.created_at, reverse=True)

    async def save_repository(self, record: RepositoryRecord) -> None:
        self._repositories[record.id] = record.model_copy(deep=True)

    async def get_repository(self, repository_id: str) -> RepositoryRecord | None:
        record = self._repositories.get(repository_id)
        return record.model_copy(deep=True) if record else None
