# src/pipeline/steps/build.py — v1
"""Build step — run the configured build commands in the checkout."""

from __future__ import annotations

from typing import TYPE_CHECKING

from shipyard.pipeline.models import StepKind, StepResult
from shipyard.pipeline.steps.base_step import BaseStep

if TYPE_CHECKING:
    from shipyard.pipeline.context import PipelineContext


class BuildStep(BaseStep):
    """Run build commands and publish the output directory.

    Config:
        commands: commands run sequentially (default: the manager's build script).
        output_dir: build output directory relative to the checkout.
    """

    kind = StepKind.BUILD

    async def execute(self, context: PipelineContext) -> StepResult:
        self.check_cancellation(context)
        source_dir = self.source_dir(context)
        logs = f"Building project in: {source_dir}\n"

        build_dir, command_logs = await self.builder.run_build_commands(
            source_dir,
            manager=context.artifacts.get("packageManager"),
            token=context.cancel_token,
            env=context.subprocess_env(),
            commands=self.option("commands"),
            output_dir=self.option("output_dir"),
        )
        logs += command_logs
        logs += "Build completed successfully\n"
        logs += f"Output directory: {build_dir}\n"

        return StepResult(
            output={"buildDir": str(build_dir)},
            logs=logs,
            artifacts={"buildDir": str(build_dir)},
        )
