# tests/unit/pipeline/test_conditions.py — v1
"""Tests for pipeline/conditions.py — step condition parsing and evaluation."""

from __future__ import annotations

import pytest

from shipyard.core.errors import ConfigurationError
from shipyard.pipeline.conditions import evaluate_condition, parse_condition


class TestParseCondition:
    def test_literal(self):
        cond = parse_condition("true")
        assert cond.source == "literal"
        assert cond.key == "true"

    def test_negated_artifact(self):
        cond = parse_condition("!artifact:qualityScore")
        assert cond.source == "artifact"
        assert cond.key == "qualityScore"
        assert cond.negate is True

    def test_env_with_value(self):
        cond = parse_condition("env:NODE_ENV=production")
        assert (cond.source, cond.key, cond.value) == ("env", "NODE_ENV", "production")

    @pytest.mark.parametrize("expr", ["", "nonsense", "artifact:", "branch:main"])
    def test_invalid(self, expr):
        with pytest.raises(ConfigurationError):
            parse_condition(expr)


class TestEvaluateCondition:
    def test_literals(self, make_context):
        ctx = make_context()
        assert evaluate_condition("true", ctx) is True
        assert evaluate_condition("false", ctx) is False
        assert evaluate_condition("!false", ctx) is True

    def test_artifact_presence(self, make_context):
        ctx = make_context()
        assert evaluate_condition("artifact:buildDir", ctx) is False
        ctx.artifacts.set("buildDir", "/tmp/dist")
        assert evaluate_condition("artifact:buildDir", ctx) is True

    def test_env_from_run_environment(self, make_context):
        ctx = make_context(environment={"NODE_ENV": "staging"})
        assert evaluate_condition("env:NODE_ENV=staging", ctx) is True
        assert evaluate_condition("env:NODE_ENV=production", ctx) is False
        assert evaluate_condition("env:NODE_ENV", ctx) is True

    def test_env_falls_back_to_process(self, make_context, monkeypatch):
        monkeypatch.setenv("SHIPYARD_TEST_FLAG", "1")
        assert evaluate_condition("env:SHIPYARD_TEST_FLAG=1", make_context()) is True

    def test_missing_env_is_false(self, make_context, monkeypatch):
        monkeypatch.delenv("SHIPYARD_UNSET_VAR", raising=False)
        assert evaluate_condition("env:SHIPYARD_UNSET_VAR", make_context()) is False

    def test_pipeline_environment(self, make_context):
        ctx = make_context()
        assert evaluate_condition("environment:production", ctx) is True
        assert evaluate_condition("environment:production", ctx, "staging") is False
