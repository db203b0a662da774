# src/pipeline/steps/base_step.py — v1
"""Standard interface for pipeline step executors.

A step reads upstream artifacts from the PipelineContext, does its work
(usually through the PackageBuilder) and returns a StepResult. Steps must
be safe to re-invoke: the executor calls execute() again on retry.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any, ClassVar

from shipyard.builder.package_builder import PackageBuilder
from shipyard.pipeline.models import StepConfig, StepKind, StepResult

if TYPE_CHECKING:
    from shipyard.builder.shell import CommandResult
    from shipyard.config.settings import Settings
    from shipyard.pipeline.context import PipelineContext

logger = logging.getLogger(__name__)


class BaseStep(ABC):
    """Base class for the eight step executors."""

    kind: ClassVar[StepKind]

    def __init__(
        self,
        config: StepConfig,
        builder: PackageBuilder | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._config = config
        self._builder = builder or PackageBuilder()
        self._settings = settings

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def config(self) -> StepConfig:
        return self._config

    @property
    def builder(self) -> PackageBuilder:
        return self._builder

    def option(self, key: str, default: Any = None) -> Any:
        """Value from the step's free-form config dict."""
        return self._config.config.get(key, default)

    def check_cancellation(self, context: PipelineContext) -> None:
        context.checkpoint()

    def source_dir(self, context: PipelineContext) -> Path:
        """Checkout directory published by the clone step."""
        return Path(context.artifacts.require("sourceDir", self.name))

    async def run_command(
        self,
        context: PipelineContext,
        command: str | list[str],
        cwd: Path | None = None,
        check: bool = True,
    ) -> CommandResult:
        """Run a command with the run's environment and cancellation token."""
        return await self._builder.runner.run(
            command,
            cwd=cwd,
            env=context.subprocess_env(),
            token=context.cancel_token,
            check=check,
            timeout_s=self._config.timeout_s,
        )

    @abstractmethod
    async def execute(self, context: PipelineContext) -> StepResult:
        """Run the step once.

        Returns:
            StepResult with output, logs and artifacts for downstream steps.
        """
