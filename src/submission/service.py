# src/submission/service.py — v1
"""Submission intake — turn a developer submission into a pipeline run.

submit() records the repository, prepares an isolated workspace and
starts the pipeline as a background task. The repository record is
updated once the run finishes: approved when every step succeeded,
rejected otherwise.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from shipyard.config.templates import get_template
from shipyard.core.errors import ShipyardError
from shipyard.core.models import DeveloperSubmissionForm
from shipyard.pipeline.context import PipelineContext
from shipyard.pipeline.executor import PipelineExecutor
from shipyard.storage.run_store import BaseRunStore, MemoryRunStore
from shipyard.submission.models import (
    PipelineTemplateName,
    RepositoryRecord,
    SubmissionStatus,
)

if TYPE_CHECKING:
    from pathlib import Path

    from shipyard.builder.package_builder import PackageBuilder
    from shipyard.config.settings import Settings
    from shipyard.pipeline.context import Publisher
    from shipyard.pipeline.notifier import PipelineNotifier

logger = logging.getLogger(__name__)


class SubmissionService:
    """Accept submissions and track their pipeline runs.

    Args:
        settings: Application settings (workspace root, templates, timeouts).
        publisher: Deploy target handed to every run (the package registry).
        run_store: Persistence of repository records and pipeline runs.
        builder: PackageBuilder shared by all runs.
        notifier: Pipeline lifecycle notifier.
    """

    def __init__(
        self,
        settings: Settings,
        publisher: Publisher | None = None,
        run_store: BaseRunStore | None = None,
        builder: PackageBuilder | None = None,
        notifier: PipelineNotifier | None = None,
    ) -> None:
        self._settings = settings
        self._publisher = publisher
        self._store = run_store or MemoryRunStore()
        self._builder = builder
        self._notifier = notifier
        self._executors: dict[str, PipelineExecutor] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}

    @property
    def run_store(self) -> BaseRunStore:
        return self._store

    async def submit(
        self,
        form: DeveloperSubmissionForm,
        template: PipelineTemplateName = "comprehensive",
        developer_id: str = "",
    ) -> str:
        """Record the submission and start its pipeline; return the repository id.

        Raises:
            ConfigurationError: If the template name is unknown.
        """
        config = get_template(template, self._settings)
        record = RepositoryRecord.from_submission(form, developer_id, template)
        await self._store.save_repository(record)

        workspace = self._settings.workspace_root.expanduser() / f"build-{record.id}"
        context = PipelineContext(
            repository_id=record.id,
            submission=form,
            workspace_dir=workspace,
            environment={
                "NODE_ENV": config.environment,
                "PACKAGE_NAME": form.technical.package_name,
                "PACKAGE_VERSION": form.technical.version,
            },
            publisher=self._publisher,
            developer_id=developer_id,
        )
        executor = PipelineExecutor(
            config,
            notifier=self._notifier,
            store=self._store,
            settings=self._settings,
            builder=self._builder,
        )
        self._executors[record.id] = executor
        self._tasks[record.id] = asyncio.create_task(
            self._run(record, executor, context), name=f"pipeline-{record.id}",
        )
        logger.info(
            "Submission %s accepted: %s@%s (template %s)",
            record.id, record.package_name, record.package_version, template,
        )
        return record.id

    async def _run(
        self,
        record: RepositoryRecord,
        executor: PipelineExecutor,
        context: PipelineContext,
    ) -> None:
        try:
            await executor.execute(None, context)
        except ShipyardError as e:
            logger.error("Pipeline for submission %s did not run: %s", record.id, e)
        except Exception:
            logger.exception("Unexpected error in pipeline for submission %s", record.id)
        finally:
            await self._complete(record, executor)
            self._cleanup(context.workspace_dir)
            self._executors.pop(record.id, None)
            self._tasks.pop(record.id, None)

    async def _complete(self, record: RepositoryRecord, executor: PipelineExecutor) -> None:
        pipeline = executor.pipeline
        if pipeline is not None:
            record.pipeline_ids.append(pipeline.id)
            record.package_url = pipeline.package_url
        succeeded = pipeline is not None and pipeline.status == "success"
        record.status = "approved" if succeeded else "rejected"
        record.updated_at = datetime.now(timezone.utc)
        await self._store.save_repository(record)
        logger.info("Submission %s %s", record.id, record.status)

    def _cleanup(self, workspace: Path) -> None:
        if self._settings.keep_workspace:
            return
        shutil.rmtree(workspace, ignore_errors=True)
        shutil.rmtree(workspace.with_name(workspace.name + ".partial"), ignore_errors=True)

    async def get_status(self, repository_id: str) -> SubmissionStatus | None:
        """Repository record plus its most recent pipeline; None if unknown."""
        record = await self._store.get_repository(repository_id)
        if record is None:
            return None
        executor = self._executors.get(repository_id)
        if executor is not None and executor.pipeline is not None:
            latest = executor.pipeline.model_copy(deep=True)
        else:
            pipelines = await self._store.list_pipelines(repository_id)
            latest = pipelines[0] if pipelines else None
        return SubmissionStatus(repository=record, latest_pipeline=latest)

    def cancel(self, repository_id: str, reason: str = "Cancelled by request") -> bool:
        """Cancel the running pipeline of a submission.

        Returns False if the submission is unknown or its run already ended.
        """
        executor = self._executors.get(repository_id)
        if executor is None:
            return False
        return executor.cancel(reason)

    async def wait(self, repository_id: str) -> RepositoryRecord | None:
        """Wait for the submission's pipeline task and return the final record."""
        task = self._tasks.get(repository_id)
        if task is not None:
            await task
        return await self._store.get_repository(repository_id)

    async def shutdown(self) -> None:
        """Cancel every running pipeline and wait for the tasks to settle."""
        for executor in list(self._executors.values()):
            executor.cancel("Service shutting down")
        tasks = [t for t in list(self._tasks.values()) if not t.done()]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


def create_submission_service(
    settings: Settings, publisher: Publisher | None = None,
) -> SubmissionService:
    """Factory: wire run store and package builder from settings."""
    from shipyard.builder.package_builder import create_package_builder
    from shipyard.storage.storage_factory import create_run_store

    return SubmissionService(
        settings,
        publisher=publisher,
        run_store=create_run_store(settings),
        builder=create_package_builder(settings),
    )
