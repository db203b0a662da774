# src/pipeline/executor.py — v1
"""Pipeline executor — run the configured steps of one submission.

Steps run sequentially in dependency order. Each step is retried with
exponential backoff according to its own override or the pipeline retry
policy. The first step that exhausts its retries fails the pipeline and
the remaining steps are left pending. The pipeline record is persisted
at start, after each step and at the end.
"""

from __future__ import annotations

import asyncio
import logging
import traceback
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable

from pydantic import BaseModel

from shipyard.core.errors import (
    CancellationError,
    ConfigurationError,
    PipelineTimeoutError,
    ShipyardError,
    StepTimeoutError,
)
from shipyard.core.models import PackageDescriptor
from shipyard.logging.context import clear_context, set_pipeline_context, set_step_context
from shipyard.pipeline.conditions import evaluate_condition, parse_condition
from shipyard.pipeline.dag_builder import build_plan
from shipyard.pipeline.models import (
    DeploymentPipeline,
    PipelineConfig,
    PipelineStep,
    StepConfig,
    StepResult,
)
from shipyard.pipeline.notifier import LoggingNotifier, PipelineNotifier
from shipyard.pipeline.retry import Sleep, execute_with_retries
from shipyard.pipeline.step_registry import create_step_executor

if TYPE_CHECKING:
    from shipyard.builder.package_builder import PackageBuilder
    from shipyard.config.settings import Settings
    from shipyard.pipeline.context import PipelineContext
    from shipyard.pipeline.steps.base_step import BaseStep
    from shipyard.storage.run_store import BaseRunStore

logger = logging.getLogger(__name__)

StepFactory = Callable[[StepConfig], "BaseStep"]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _to_record(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    return value


def error_details(error: BaseException, step: str | None = None) -> dict[str, Any]:
    """Structured error details stored on the pipeline record."""
    if isinstance(error, ShipyardError):
        details = error.details()
    else:
        details = {"type": type(error).__name__}
    if step is not None:
        details["step"] = step
    details["traceback"] = "".join(
        traceback.format_exception(type(error), error, error.__traceback__)
    )
    return details


class PipelineExecutor:
    """Execute one pipeline run.

    Args:
        config: Pipeline configuration (steps, environment, timeout, retries).
        notifier: Lifecycle notifier (defaults to log output).
        store: Optional run store; the record is saved as it progresses.
        settings: Application settings handed to the step executors.
        builder: PackageBuilder shared by the step executors.
        step_factory: Override of the StepKind -> executor table (tests).
        sleep: Backoff sleep function (tests inject a recorder).
    """

    def __init__(
        self,
        config: PipelineConfig,
        notifier: PipelineNotifier | None = None,
        store: BaseRunStore | None = None,
        settings: Settings | None = None,
        builder: PackageBuilder | None = None,
        step_factory: StepFactory | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._config = config
        self._notifier = notifier or LoggingNotifier()
        self._store = store
        self._settings = settings
        self._step_factory = step_factory or (
            lambda step: create_step_executor(step, builder=builder, settings=settings)
        )
        self._sleep = sleep
        self._pipeline: DeploymentPipeline | None = None
        self._context: PipelineContext | None = None
        self._cancel_requested = False
        self._cancel_reason = "Pipeline cancelled"

    @property
    def pipeline(self) -> DeploymentPipeline | None:
        """Record of the current (or last) run."""
        return self._pipeline

    def cancel(self, reason: str = "Pipeline cancelled") -> bool:
        """Request cancellation of the run.

        The running step observes the flag at its next checkpoint; no step
        starts afterwards. Returns False if the run already finished.
        """
        pipeline = self._pipeline
        if pipeline is not None and pipeline.is_terminal:
            return False
        self._cancel_requested = True
        self._cancel_reason = reason
        if self._context is not None:
            self._context.cancel_token.cancel(reason)
        if pipeline is not None:
            pipeline.status = "cancelled"
            pipeline.touch()
        logger.info("Cancellation requested: %s", reason)
        return True

    async def execute(
        self,
        step_configs: list[StepConfig] | None,
        context: PipelineContext,
        *,
        trigger_event: str = "submission",
        raise_on_failure: bool = False,
    ) -> DeploymentPipeline:
        """Run all steps and return the finished pipeline record.

        Step failures are recorded on the returned record.

        Raises:
            ConfigurationError: On an invalid step graph or condition, before
                any step runs.
            ShipyardError: The failing step's error when raise_on_failure is set.
        """
        steps = list(step_configs if step_configs is not None else self._config.steps)
        pipeline = DeploymentPipeline(
            repository_id=context.repository_id,
            trigger_event=trigger_event,
            environment=self._config.environment,
            steps=[PipelineStep(name=s.name) for s in steps],
        )
        self._pipeline = pipeline
        self._context = context
        set_pipeline_context(pipeline.id, context.repository_id)

        try:
            try:
                plan = build_plan(steps)
                for step in steps:
                    if step.condition:
                        parse_condition(step.condition)
            except ConfigurationError as exc:
                self._record_failure(pipeline, exc)
                pipeline.end_time = _now()
                await self._save(pipeline)
                await self._notifier.pipeline_failed(pipeline)
                raise

            if self._cancel_requested:
                context.cancel_token.cancel(self._cancel_reason)

            pipeline.status = "cancelled" if self._cancel_requested else "running"
            pipeline.start_time = _now()
            pipeline.touch()
            await self._save(pipeline)
            await self._notifier.pipeline_started(pipeline)

            by_name = {s.name: s for s in steps}
            error: BaseException | None
            try:
                if self._config.timeout_s is not None:
                    error = await asyncio.wait_for(
                        self._run_steps(plan.order, by_name, context, pipeline),
                        self._config.timeout_s,
                    )
                else:
                    error = await self._run_steps(plan.order, by_name, context, pipeline)
            except asyncio.TimeoutError:
                error = PipelineTimeoutError(pipeline.id, self._config.timeout_s or 0)
                self._abort_running_steps(pipeline, str(error))
                self._record_failure(pipeline, error)

            await self._finish(pipeline, context, error)
        finally:
            clear_context()

        if error is not None and raise_on_failure and pipeline.status == "failed":
            raise error
        return pipeline

    # ------------------------------------------------------------------
    # Step loop
    # ------------------------------------------------------------------

    async def _run_steps(
        self,
        order: list[str],
        by_name: dict[str, StepConfig],
        context: PipelineContext,
        pipeline: DeploymentPipeline,
    ) -> BaseException | None:
        """Run steps in order; return the error that failed the run, if any."""
        for name in order:
            step_config = by_name[name]
            record = pipeline.get_step(name)

            if context.cancel_token.cancelled or pipeline.status == "cancelled":
                if pipeline.status != "cancelled":
                    pipeline.status = "cancelled"
                    pipeline.touch()
                logger.info("Pipeline cancelled; not starting step '%s'", name)
                return None

            if step_config.condition and not evaluate_condition(
                step_config.condition, context, self._config.environment
            ):
                record.status = "skipped"
                logger.info(
                    "Skipping step '%s': condition '%s' is false",
                    name, step_config.condition,
                )
                await self._save(pipeline)
                continue

            record.mark_running()
            set_step_context(name)
            await self._save(pipeline)
            logger.info("Executing step: %s (%s)", name, step_config.kind.value)

            try:
                result = await self._execute_step(step_config, context, record)
            except Exception as exc:
                if isinstance(exc, CancellationError) or context.cancel_token.cancelled:
                    record.error = "Step execution cancelled"
                    record.mark_finished("failed")
                    pipeline.status = "cancelled"
                    pipeline.touch()
                    logger.warning("Step '%s' cancelled", name)
                    await self._save(pipeline)
                    return None

                record.error = str(exc)
                record.logs = getattr(exc, "logs", None) or record.logs
                record.mark_finished("failed")
                logger.error(
                    "Step '%s' failed after %d attempt(s): %s",
                    name, record.attempts, exc,
                )
                self._record_failure(pipeline, exc, step=name)
                await self._save(pipeline)
                return exc
            finally:
                set_step_context(None)

            record.logs = result.logs
            record.output = _to_record(result.output)
            record.mark_finished("success")
            context.artifacts.merge(result.artifacts)
            logger.info("Step '%s' completed in %.2fs", name, record.duration or 0.0)
            await self._save(pipeline)

        return None

    async def _execute_step(
        self,
        step_config: StepConfig,
        context: PipelineContext,
        record: PipelineStep,
    ) -> StepResult:
        executor = self._step_factory(step_config)
        max_retries = (
            step_config.retries
            if step_config.retries is not None
            else self._config.retry_policy.max_retries
        )

        async def attempt() -> StepResult:
            context.checkpoint()
            if step_config.timeout_s is None:
                return await executor.execute(context)
            try:
                return await asyncio.wait_for(
                    executor.execute(context), step_config.timeout_s
                )
            except StepTimeoutError:
                raise
            except asyncio.TimeoutError as exc:
                raise StepTimeoutError(step_config.name, step_config.timeout_s) from exc

        def on_attempt(number: int) -> None:
            record.attempts = number
            set_step_context(step_config.name, number)

        return await execute_with_retries(
            attempt,
            max_retries=max_retries,
            policy=self._config.retry_policy,
            step=step_config.name,
            retry_on_timeout=step_config.retry_on_timeout,
            sleep=self._sleep,
            on_attempt=on_attempt,
        )

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def _record_failure(
        self,
        pipeline: DeploymentPipeline,
        error: BaseException,
        step: str | None = None,
    ) -> None:
        if pipeline.status != "cancelled":
            pipeline.status = "failed"
        pipeline.error_message = str(error)
        pipeline.error_details = error_details(error, step)
        pipeline.touch()

    @staticmethod
    def _abort_running_steps(pipeline: DeploymentPipeline, reason: str) -> None:
        for record in pipeline.steps:
            if record.status == "running":
                record.error = reason
                record.mark_finished("failed")

    async def _finish(
        self,
        pipeline: DeploymentPipeline,
        context: PipelineContext,
        error: BaseException | None,
    ) -> None:
        pipeline.end_time = _now()
        if pipeline.start_time is not None:
            pipeline.duration_seconds = (
                pipeline.end_time - pipeline.start_time
            ).total_seconds()
        pipeline.touch()

        if pipeline.status == "cancelled":
            await self._save(pipeline)
            await self._notifier.pipeline_cancelled(pipeline)
            return

        if error is not None:
            await self._save(pipeline)
            await self._notifier.pipeline_failed(pipeline)
            return

        pipeline.status = "success"
        package_info = context.artifacts.get("packageInfo")
        if package_info is not None:
            descriptor = PackageDescriptor.model_validate(package_info)
            pipeline.package_size_bytes = descriptor.size_bytes
            pipeline.package_url = descriptor.dist_url
        deployment_url = context.artifacts.get("deploymentUrl")
        if deployment_url:
            pipeline.package_url = deployment_url
        await self._save(pipeline)
        await self._notifier.pipeline_succeeded(pipeline)

    async def _save(self, pipeline: DeploymentPipeline) -> None:
        if self._store is not None:
            await self._store.save_pipeline(pipeline)
