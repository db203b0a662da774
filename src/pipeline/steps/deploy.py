# src/pipeline/steps/deploy.py — v1
"""Deploy step — publish the packaged build to the registry."""

from __future__ import annotations

from typing import TYPE_CHECKING

from shipyard.core.errors import StepExecutionError
from shipyard.core.models import PackageDescriptor
from shipyard.pipeline.models import StepKind, StepResult
from shipyard.pipeline.steps.base_step import BaseStep

if TYPE_CHECKING:
    from shipyard.pipeline.context import PipelineContext


class DeployStep(BaseStep):
    kind = StepKind.DEPLOY

    async def execute(self, context: PipelineContext) -> StepResult:
        self.check_cancellation(context)
        package_info = PackageDescriptor.model_validate(
            context.artifacts.require("packageInfo", self.name)
        )
        if context.publisher is None:
            raise StepExecutionError("No registry configured for deployment", step=self.name)

        logs = "Deploying package to registry\n"
        deployment_url = await context.publisher.publish_build(
            context.submission,
            package_info,
            quality_score=context.artifacts.get("qualityScore"),
            author_id=context.developer_id,
        )
        logs += "Package deployed successfully\n"
        logs += f"Available at: {deployment_url}\n"

        return StepResult(
            output={"deploymentUrl": deployment_url},
            logs=logs,
            artifacts={"deploymentUrl": deployment_url},
        )
