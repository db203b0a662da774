# src/pipeline/notifier.py — v1
"""Pipeline lifecycle notifications.

The notification channel itself (email, chat, webhooks) lives outside
this package; the executor only talks to the PipelineNotifier interface.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from shipyard.pipeline.models import DeploymentPipeline

logger = logging.getLogger(__name__)


class PipelineNotifier(ABC):
    """Receives pipeline lifecycle events."""

    @abstractmethod
    async def pipeline_started(self, pipeline: DeploymentPipeline) -> None:
        """Called once the pipeline switches to running."""

    @abstractmethod
    async def pipeline_succeeded(self, pipeline: DeploymentPipeline) -> None:
        """Called when every step succeeded."""

    @abstractmethod
    async def pipeline_failed(self, pipeline: DeploymentPipeline) -> None:
        """Called when a step exhausted its retries or a precondition failed."""

    async def pipeline_cancelled(self, pipeline: DeploymentPipeline) -> None:
        """Called when a run stops because of cancellation."""


class LoggingNotifier(PipelineNotifier):
    """Default notifier: writes lifecycle events to the log."""

    async def pipeline_started(self, pipeline: DeploymentPipeline) -> None:
        logger.info(
            "Pipeline %s started for repository %s (%d steps)",
            pipeline.id, pipeline.repository_id, len(pipeline.steps),
        )

    async def pipeline_succeeded(self, pipeline: DeploymentPipeline) -> None:
        logger.info(
            "Pipeline %s completed successfully in %.1fs",
            pipeline.id, pipeline.duration_seconds or 0.0,
        )

    async def pipeline_failed(self, pipeline: DeploymentPipeline) -> None:
        logger.error("Pipeline %s failed: %s", pipeline.id, pipeline.error_message)

    async def pipeline_cancelled(self, pipeline: DeploymentPipeline) -> None:
        logger.warning("Pipeline %s cancelled", pipeline.id)
