# tests/unit/pipeline/test_dag_builder.py — v2
"""Tests for pipeline/dag_builder.py — dependency ordering and validation."""

from __future__ import annotations

import pytest

from shipyard.core.errors import ConfigurationError
from shipyard.pipeline.dag_builder import build_plan, resolve_execution_order
from shipyard.pipeline.models import StepConfig, StepKind


def _step(name: str, *deps: str, kind: StepKind = StepKind.BUILD) -> StepConfig:
    return StepConfig(name=name, kind=kind, dependencies=list(deps))


class TestResolveExecutionOrder:
    def test_empty(self):
        assert resolve_execution_order([]) == []

    def test_linear_chain(self):
        order = resolve_execution_order([_step("a"), _step("b", "a"), _step("c", "b")])
        assert order == ["a", "b", "c"]

    def test_dependencies_declared_later_run_first(self):
        order = resolve_execution_order([_step("deploy", "package"), _step("package")])
        assert order == ["package", "deploy"]

    def test_diamond(self):
        steps = [_step("a"), _step("b", "a"), _step("c", "a"), _step("d", "b", "c")]
        order = resolve_execution_order(steps)
        assert order.index("a") < order.index("b") < order.index("d")
        assert order.index("c") < order.index("d")
        assert sorted(order) == ["a", "b", "c", "d"]

    def test_independent_steps_keep_declaration_order(self):
        order = resolve_execution_order([_step("x"), _step("y"), _step("z")])
        assert order == ["x", "y", "z"]

    def test_cycle_detected(self):
        with pytest.raises(ConfigurationError, match="circular dependency"):
            resolve_execution_order([_step("a", "b"), _step("b", "a")])

    def test_self_cycle_detected(self):
        with pytest.raises(ConfigurationError, match="circular dependency"):
            resolve_execution_order([_step("a", "a")])

    def test_unknown_dependency(self):
        with pytest.raises(ConfigurationError, match="unknown step 'ghost'"):
            resolve_execution_order([_step("a", "ghost")])

    def test_duplicate_name(self):
        with pytest.raises(ConfigurationError, match="Duplicate"):
            resolve_execution_order([_step("a"), _step("a")])


class TestBuildPlan:
    def test_levels(self):
        plan = build_plan([
            _step("clone"),
            _step("install", "clone"),
            _step("test", "install"),
            _step("scan", "install"),
            _step("quality", "test", "scan"),
        ])
        assert plan.total_steps == 5
        assert plan.levels[0] == ["clone"]
        assert plan.levels[1] == ["install"]
        assert set(plan.levels[2]) == {"test", "scan"}
        assert plan.levels[3] == ["quality"]

    def test_empty_plan(self):
        plan = build_plan([])
        assert plan.order == []
        assert plan.levels == []
