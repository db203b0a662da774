# src/pipeline/steps/package.py — v1
"""Package step — tar the build output and upload it to dist storage."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from shipyard.builder.package_builder import TARBALL_NAME
from shipyard.pipeline.models import StepKind, StepResult
from shipyard.pipeline.steps.base_step import BaseStep

if TYPE_CHECKING:
    from shipyard.pipeline.context import PipelineContext


class PackageStep(BaseStep):
    kind = StepKind.PACKAGE

    async def execute(self, context: PipelineContext) -> StepResult:
        self.check_cancellation(context)
        build_dir = Path(context.artifacts.require("buildDir", self.name))
        technical = context.submission.technical

        logs = "Packaging micro-app\n"
        logs += f"Package name: {technical.package_name}\n"
        logs += f"Version: {technical.version}\n"

        packed = self.builder.package_output(build_dir, context.workspace_dir / TARBALL_NAME)
        self.check_cancellation(context)
        descriptor = await self.builder.upload_package(
            packed,
            build_dir,
            name=technical.package_name,
            version=technical.version,
            entry_point=technical.entry_point,
        )

        logs += f"Package created: {descriptor.dist_url}\n"
        logs += f"Size: {descriptor.size_bytes / 1024:.1f} KB\n"
        logs += f"Integrity: {descriptor.integrity_hash}\n"

        return StepResult(
            output=descriptor.model_dump(by_alias=True),
            logs=logs,
            artifacts={"packageInfo": descriptor},
        )
