# tests/unit/config/test_settings.py — v1
"""Tests for config/settings.py and config/templates.py."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from shipyard.config.settings import Settings, load_settings
from shipyard.config.templates import (
    PIPELINE_TEMPLATES,
    default_retry_policy,
    get_template,
    template_names,
)
from shipyard.core.errors import ConfigurationError
from shipyard.pipeline.dag_builder import resolve_execution_order
from shipyard.pipeline.models import StepKind


class TestSettings:
    def test_defaults(self):
        s = Settings(_env_file=None)
        assert s.pipeline_template == "comprehensive"
        assert s.quality_threshold == 70.0
        assert s.registry_backend == "memory"
        assert s.cache_backend == "memory"
        assert s.dist_storage == "local"
        assert s.log_format == "json"

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("QUALITY_THRESHOLD", "55")
        monkeypatch.setenv("PIPELINE_ENVIRONMENT", "staging")
        s = Settings(_env_file=None)
        assert s.quality_threshold == 55
        assert s.pipeline_environment == "staging"

    def test_env_file(self, tmp_path):
        env = tmp_path / ".env"
        env.write_text("REGISTRY_BACKEND=sqlite\nKEEP_WORKSPACE=true\n")
        s = Settings(_env_file=str(env))
        assert s.registry_backend == "sqlite"
        assert s.keep_workspace is True

    def test_threshold_bounds(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, quality_threshold=101)

    def test_negative_retries(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, retry_max_retries=-1)

    def test_redis_requires_url(self):
        with pytest.raises(ConfigurationError, match="CACHE_REDIS_URL"):
            Settings(_env_file=None, cache_backend="redis")

    def test_multiplier_below_one(self):
        with pytest.raises(ConfigurationError, match="RETRY_BACKOFF_MULTIPLIER"):
            Settings(_env_file=None, retry_backoff_multiplier=0.5)

    def test_all_errors_reported(self):
        with pytest.raises(ConfigurationError) as exc_info:
            Settings(_env_file=None, cache_backend="redis", dist_storage="s3")
        assert "CACHE_REDIS_URL" in str(exc_info.value)
        assert "DIST_S3_BUCKET" in str(exc_info.value)

    def test_developer_tokens_list(self):
        s = Settings(_env_file=None, developer_tokens=" alice:t1 , ,bob:t2")
        assert s.developer_tokens_list == ["alice:t1", "bob:t2"]

    def test_dist_base_url(self, tmp_path):
        assert Settings(_env_file=None, dist_base_url="https://cdn.x/").resolved_dist_base_url == (
            "https://cdn.x"
        )
        s3 = Settings(_env_file=None, dist_storage="s3", dist_s3_bucket="b")
        assert s3.resolved_dist_base_url == "https://b.s3.amazonaws.com/packages"
        local = Settings(_env_file=None, dist_root=tmp_path)
        assert local.resolved_dist_base_url == tmp_path.resolve().as_uri()

    def test_load_settings_overrides(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        s = load_settings(workspace_root=Path("/tmp/ws"))
        assert s.workspace_root == Path("/tmp/ws")


class TestTemplates:
    def test_names(self):
        assert template_names() == ["basic", "comprehensive"]

    @pytest.mark.parametrize("name", sorted(PIPELINE_TEMPLATES))
    def test_templates_are_valid_dags(self, name):
        config = get_template(name)
        order = resolve_execution_order(config.steps)
        assert order[0] == "clone"
        assert order[-1] == "deploy"

    def test_comprehensive_gates_packaging(self):
        config = get_template("comprehensive")
        package = next(s for s in config.steps if s.kind is StepKind.PACKAGE)
        assert set(package.dependencies) == {"build", "quality_check"}
        assert config.retry_policy.max_retries == 3
        assert config.timeout_s == 45 * 60

    def test_basic_has_no_gate(self):
        kinds = {s.kind for s in get_template("basic").steps}
        assert StepKind.QUALITY_CHECK not in kinds
        assert StepKind.SECURITY_SCAN not in kinds

    def test_fresh_copies(self):
        first = get_template("basic")
        first.steps.clear()
        assert get_template("basic").steps

    def test_settings_override(self):
        s = Settings(_env_file=None, pipeline_environment="staging", pipeline_timeout_s=120)
        config = get_template("basic", s)
        assert config.environment == "staging"
        assert config.timeout_s == 120

    def test_unknown(self):
        with pytest.raises(ConfigurationError, match="available: basic, comprehensive"):
            get_template("exotic")

    def test_default_retry_policy(self):
        s = Settings(_env_file=None, retry_max_retries=4, retry_backoff_ms=10)
        policy = default_retry_policy(s)
        assert (policy.max_retries, policy.backoff_ms, policy.backoff_multiplier) == (4, 10, 2.0)
