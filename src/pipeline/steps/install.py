# src/pipeline/steps/install.py — v1
"""Install step — install dependencies with the detected package manager."""

from __future__ import annotations

from typing import TYPE_CHECKING

from shipyard.pipeline.models import StepKind, StepResult
from shipyard.pipeline.steps.base_step import BaseStep

if TYPE_CHECKING:
    from shipyard.pipeline.context import PipelineContext


class InstallStep(BaseStep):
    """Detect pnpm/yarn/npm/poetry/uv/pip from lock files and install.

    Config:
        package_manager: force a manager instead of detecting one.
        command: custom install command.
    """

    kind = StepKind.INSTALL

    async def execute(self, context: PipelineContext) -> StepResult:
        self.check_cancellation(context)
        source_dir = self.source_dir(context)
        logs = f"Installing dependencies in: {source_dir}\n"

        manager, result = await self.builder.install_dependencies(
            source_dir,
            manager=self.option("package_manager"),
            command=self.option("command"),
            token=context.cancel_token,
            env=context.subprocess_env(),
        )
        logs += f"Package manager: {manager}\n"
        logs += result.format_log()
        logs += "Dependencies installed successfully\n"

        return StepResult(
            output={"packageManager": manager},
            logs=logs,
            artifacts={"packageManager": manager},
        )
