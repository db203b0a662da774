# tests/unit/pipeline/test_executor.py — v1
"""Tests for pipeline/executor.py — ordering, retries, cancellation, timeouts."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

import pytest

from shipyard.core.errors import (
    ConfigurationError,
    QualityGateError,
    StepExecutionError,
)
from shipyard.pipeline.executor import PipelineExecutor
from shipyard.pipeline.models import (
    DeploymentPipeline,
    PipelineConfig,
    RetryPolicy,
    StepConfig,
    StepKind,
    StepResult,
)
from shipyard.pipeline.notifier import PipelineNotifier
from shipyard.storage.run_store import MemoryRunStore

Behaviour = Callable[[Any], Awaitable[StepResult]]


class RecordingNotifier(PipelineNotifier):
    def __init__(self) -> None:
        self.events: list[tuple[str, str]] = []

    async def pipeline_started(self, pipeline: DeploymentPipeline) -> None:
        self.events.append(("started", pipeline.status))

    async def pipeline_succeeded(self, pipeline: DeploymentPipeline) -> None:
        self.events.append(("succeeded", pipeline.status))

    async def pipeline_failed(self, pipeline: DeploymentPipeline) -> None:
        self.events.append(("failed", pipeline.status))

    async def pipeline_cancelled(self, pipeline: DeploymentPipeline) -> None:
        self.events.append(("cancelled", pipeline.status))


class FakeStep:
    """Step executor whose behaviour is a coroutine function of the context."""

    def __init__(self, name: str, behaviour: Behaviour, calls: list[str]) -> None:
        self.name = name
        self._behaviour = behaviour
        self._calls = calls

    async def execute(self, context):
        self._calls.append(self.name)
        return await self._behaviour(context)


async def _ok(context) -> StepResult:
    return StepResult(output="ok", logs="fine\n")


def _artifact(name: str, value: Any) -> Behaviour:
    async def behaviour(context) -> StepResult:
        return StepResult(output=value, artifacts={name: value})
    return behaviour


def _fail(message: str = "boom") -> Behaviour:
    async def behaviour(context) -> StepResult:
        raise StepExecutionError(message, logs="partial output\n")
    return behaviour


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def _executor(
    behaviours: dict[str, Behaviour],
    calls: list[str],
    *,
    retry: RetryPolicy | None = None,
    timeout_s: float | None = None,
    notifier: PipelineNotifier | None = None,
    store: MemoryRunStore | None = None,
    sleep: SleepRecorder | None = None,
) -> PipelineExecutor:
    config = PipelineConfig(
        retry_policy=retry or RetryPolicy(max_retries=0),
        timeout_s=timeout_s,
    )
    return PipelineExecutor(
        config,
        notifier=notifier or RecordingNotifier(),
        store=store,
        step_factory=lambda step: FakeStep(step.name, behaviours[step.name], calls),
        sleep=sleep or SleepRecorder(),
    )


def _chain(*names: str, **overrides: dict[str, Any]) -> list[StepConfig]:
    steps = []
    previous: list[str] = []
    for name in names:
        fields: dict[str, Any] = {"name": name, "kind": StepKind.BUILD, "dependencies": previous}
        fields.update(overrides.get(name, {}))
        steps.append(StepConfig(**fields))
        previous = [name]
    return steps


class TestSuccessfulRun:
    @pytest.mark.asyncio
    async def test_all_steps_succeed(self, make_context):
        calls: list[str] = []
        notifier = RecordingNotifier()
        store = MemoryRunStore()
        executor = _executor(
            {"a": _ok, "b": _artifact("deploymentUrl", "https://cdn/app.js")},
            calls, notifier=notifier, store=store,
        )
        ctx = make_context()

        pipeline = await executor.execute(_chain("a", "b"), ctx)

        assert pipeline.status == "success"
        assert calls == ["a", "b"]
        assert [s.status for s in pipeline.steps] == ["success", "success"]
        assert pipeline.steps[0].logs == "fine\n"
        assert pipeline.steps[0].attempts == 1
        assert pipeline.package_url == "https://cdn/app.js"
        assert pipeline.start_time is not None and pipeline.end_time is not None
        assert pipeline.duration_seconds is not None
        assert ctx.artifacts.get("deploymentUrl") == "https://cdn/app.js"
        assert notifier.events == [("started", "running"), ("succeeded", "success")]
        saved = await store.get_pipeline(pipeline.id)
        assert saved is not None and saved.status == "success"

    @pytest.mark.asyncio
    async def test_dependency_order_not_declaration_order(self, make_context):
        calls: list[str] = []
        steps = [
            StepConfig(name="deploy", kind=StepKind.DEPLOY, dependencies=["package"]),
            StepConfig(name="package", kind=StepKind.PACKAGE),
        ]
        executor = _executor({"deploy": _ok, "package": _ok}, calls)
        await executor.execute(steps, make_context())
        assert calls == ["package", "deploy"]

    @pytest.mark.asyncio
    async def test_artifacts_visible_downstream(self, make_context):
        calls: list[str] = []
        seen: dict[str, Any] = {}

        async def consumer(context) -> StepResult:
            seen["buildDir"] = context.artifacts.require("buildDir")
            return StepResult()

        executor = _executor({"a": _artifact("buildDir", "/w/dist"), "b": consumer}, calls)
        await executor.execute(_chain("a", "b"), make_context())
        assert seen == {"buildDir": "/w/dist"}


class TestRetries:
    @pytest.mark.asyncio
    async def test_exhausted_retries_fail_pipeline(self, make_context):
        calls: list[str] = []
        sleep = SleepRecorder()
        executor = _executor(
            {"a": _ok, "b": _fail("compile error"), "c": _ok},
            calls,
            retry=RetryPolicy(max_retries=2, backoff_ms=1000, backoff_multiplier=2),
            sleep=sleep,
        )

        pipeline = await executor.execute(_chain("a", "b", "c"), make_context())

        assert pipeline.status == "failed"
        assert calls == ["a", "b", "b", "b"]
        assert sleep.delays == [1.0, 2.0]
        failed = pipeline.get_step("b")
        assert failed.status == "failed"
        assert failed.attempts == 3
        assert failed.error == "compile error"
        assert failed.logs == "partial output\n"
        assert pipeline.get_step("c").status == "pending"
        assert pipeline.error_message == "compile error"
        assert pipeline.error_details["step"] == "b"
        assert "traceback" in pipeline.error_details

    @pytest.mark.asyncio
    async def test_step_override_beats_policy(self, make_context):
        calls: list[str] = []
        executor = _executor(
            {"a": _fail()}, calls, retry=RetryPolicy(max_retries=3),
        )
        steps = _chain("a", a={"retries": 0})
        pipeline = await executor.execute(steps, make_context())
        assert calls == ["a"]
        assert pipeline.get_step("a").attempts == 1

    @pytest.mark.asyncio
    async def test_quality_gate_is_not_retried(self, make_context):
        calls: list[str] = []

        async def gate(context) -> StepResult:
            raise QualityGateError(50, 70)

        executor = _executor({"q": gate}, calls, retry=RetryPolicy(max_retries=3))
        pipeline = await executor.execute(_chain("q"), make_context())
        assert calls == ["q"]
        assert pipeline.status == "failed"
        assert "Quality score too low" in pipeline.error_message

    @pytest.mark.asyncio
    async def test_flaky_step_recovers(self, make_context):
        calls: list[str] = []
        state = {"n": 0}

        async def flaky(context) -> StepResult:
            state["n"] += 1
            if state["n"] == 1:
                raise StepExecutionError("network hiccup")
            return StepResult(output="ok")

        executor = _executor({"a": flaky}, calls, retry=RetryPolicy(max_retries=1))
        pipeline = await executor.execute(_chain("a"), make_context())
        assert pipeline.status == "success"
        assert pipeline.get_step("a").attempts == 2

    @pytest.mark.asyncio
    async def test_raise_on_failure(self, make_context):
        executor = _executor({"a": _fail("nope")}, [])
        with pytest.raises(StepExecutionError, match="nope"):
            await executor.execute(_chain("a"), make_context(), raise_on_failure=True)
        assert executor.pipeline.status == "failed"


class TestValidation:
    @pytest.mark.asyncio
    async def test_cycle_rejected_before_any_step(self, make_context):
        calls: list[str] = []
        notifier = RecordingNotifier()
        executor = _executor({"a": _ok, "b": _ok}, calls, notifier=notifier)
        steps = [
            StepConfig(name="a", kind=StepKind.BUILD, dependencies=["b"]),
            StepConfig(name="b", kind=StepKind.BUILD, dependencies=["a"]),
        ]
        with pytest.raises(ConfigurationError, match="circular dependency"):
            await executor.execute(steps, make_context())
        assert calls == []
        assert executor.pipeline.status == "failed"
        assert all(s.status == "pending" for s in executor.pipeline.steps)
        assert notifier.events == [("failed", "failed")]

    @pytest.mark.asyncio
    async def test_malformed_condition_rejected(self, make_context):
        calls: list[str] = []
        executor = _executor({"a": _ok}, calls)
        with pytest.raises(ConfigurationError):
            await executor.execute(_chain("a", a={"condition": "bogus"}), make_context())
        assert calls == []


class TestConditions:
    @pytest.mark.asyncio
    async def test_false_condition_skips_step(self, make_context):
        calls: list[str] = []
        executor = _executor({"a": _ok, "b": _ok, "c": _ok}, calls)
        steps = _chain("a", "b", "c", b={"condition": "env:RUN_B=yes"})
        pipeline = await executor.execute(steps, make_context(environment={"RUN_B": "no"}))
        assert calls == ["a", "c"]
        assert pipeline.get_step("b").status == "skipped"
        assert pipeline.status == "success"


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_during_step(self, make_context):
        calls: list[str] = []
        notifier = RecordingNotifier()
        holder: dict[str, PipelineExecutor] = {}

        async def cancelling(context) -> StepResult:
            holder["executor"].cancel("stop requested")
            context.checkpoint()
            return StepResult()

        executor = _executor(
            {"a": _ok, "b": cancelling, "c": _ok},
            calls,
            retry=RetryPolicy(max_retries=3),
            notifier=notifier,
        )
        holder["executor"] = executor

        pipeline = await executor.execute(_chain("a", "b", "c"), make_context())

        assert pipeline.status == "cancelled"
        assert calls == ["a", "b"]
        assert pipeline.get_step("b").status == "failed"
        assert pipeline.get_step("b").error == "Step execution cancelled"
        assert pipeline.get_step("c").status == "pending"
        assert notifier.events[-1] == ("cancelled", "cancelled")

    @pytest.mark.asyncio
    async def test_cancel_before_start_runs_nothing(self, make_context):
        calls: list[str] = []
        executor = _executor({"a": _ok}, calls)
        assert executor.cancel() is True
        pipeline = await executor.execute(_chain("a"), make_context())
        assert calls == []
        assert pipeline.status == "cancelled"
        assert pipeline.get_step("a").status == "pending"

    @pytest.mark.asyncio
    async def test_cancel_after_finish_is_noop(self, make_context):
        executor = _executor({"a": _ok}, [])
        pipeline = await executor.execute(_chain("a"), make_context())
        assert executor.cancel() is False
        assert pipeline.status == "success"

    @pytest.mark.asyncio
    async def test_cancel_token_from_step_cancels_pipeline(self, make_context):
        calls: list[str] = []
        notifier = RecordingNotifier()

        async def cancelling(context) -> StepResult:
            context.cancel_token.cancel("stop requested")
            context.checkpoint()
            return StepResult()

        executor = _executor({"a": cancelling, "b": _ok}, calls, notifier=notifier)
        pipeline = await executor.execute(_chain("a", "b"), make_context())

        assert pipeline.status == "cancelled"
        assert [(s.name, s.status) for s in pipeline.steps] == [
            ("a", "failed"), ("b", "pending"),
        ]
        assert pipeline.package_url is None
        assert notifier.events[-1] == ("cancelled", "cancelled")

    @pytest.mark.asyncio
    async def test_cancel_token_after_step_success_cancels_pipeline(self, make_context):
        calls: list[str] = []

        async def cancel_then_return(context) -> StepResult:
            context.cancel_token.cancel("stop requested")
            return StepResult()

        executor = _executor({"a": cancel_then_return, "b": _ok}, calls)
        pipeline = await executor.execute(_chain("a", "b"), make_context())

        assert calls == ["a"]
        assert pipeline.status == "cancelled"
        assert pipeline.get_step("a").status == "success"
        assert pipeline.get_step("b").status == "pending"


class TestTimeouts:
    @pytest.mark.asyncio
    async def test_step_timeout_fails_step(self, make_context):
        calls: list[str] = []

        async def slow(context) -> StepResult:
            await asyncio.sleep(5)
            return StepResult()

        executor = _executor({"a": slow}, calls, retry=RetryPolicy(max_retries=2))
        pipeline = await executor.execute(_chain("a", a={"timeout_s": 0.05}), make_context())
        assert pipeline.status == "failed"
        assert calls == ["a"]
        assert "timed out" in pipeline.get_step("a").error

    @pytest.mark.asyncio
    async def test_step_timeout_retried_when_enabled(self, make_context):
        calls: list[str] = []

        async def slow(context) -> StepResult:
            await asyncio.sleep(5)
            return StepResult()

        executor = _executor({"a": slow}, calls, retry=RetryPolicy(max_retries=1))
        steps = _chain("a", a={"timeout_s": 0.05, "retry_on_timeout": True})
        pipeline = await executor.execute(steps, make_context())
        assert calls == ["a", "a"]
        assert pipeline.get_step("a").attempts == 2

    @pytest.mark.asyncio
    async def test_pipeline_timeout(self, make_context):
        calls: list[str] = []

        async def slow(context) -> StepResult:
            await asyncio.sleep(5)
            return StepResult()

        executor = _executor({"a": _ok, "b": slow, "c": _ok}, calls, timeout_s=0.1)
        pipeline = await executor.execute(_chain("a", "b", "c"), make_context())
        assert pipeline.status == "failed"
        assert "timed out" in pipeline.error_message
        assert pipeline.get_step("a").status == "success"
        assert pipeline.get_step("b").status == "failed"
        assert pipeline.get_step("c").status == "pending"
