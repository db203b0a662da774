# src/pipeline/steps/clone.py — v1
"""Clone step — check out the submitted repository into the workspace."""

from __future__ import annotations

from typing import TYPE_CHECKING

from shipyard.pipeline.models import StepKind, StepResult
from shipyard.pipeline.steps.base_step import BaseStep

if TYPE_CHECKING:
    from shipyard.pipeline.context import PipelineContext


class CloneStep(BaseStep):
    """git clone --depth 1 --branch <branch> into <workspace>/source."""

    kind = StepKind.CLONE

    async def execute(self, context: PipelineContext) -> StepResult:
        self.check_cancellation(context)
        repository = context.submission.repository
        default_branch = self._settings.default_branch if self._settings else "main"
        branch = self.option("branch") or repository.branch or default_branch
        target = context.source_dir

        logs = f"Cloning repository: {repository.url}\nBranch: {branch}\n"
        result = await self.builder.clone_repository(
            repository.url,
            target,
            branch=branch,
            access_token=repository.access_token,
            token=context.cancel_token,
            env=context.subprocess_env(),
        )
        logs += result.format_log()
        logs += f"Repository cloned to: {target}\n"

        self.check_cancellation(context)
        return StepResult(
            output={"cloneDir": str(target), "branch": branch},
            logs=logs,
            artifacts={"sourceDir": str(target)},
        )
