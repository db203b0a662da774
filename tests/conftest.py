# tests/conftest.py — v2
"""Shared test fixtures for all unit tests.

Provides a sample submission form, pipeline contexts, a scripted command
runner and an in-memory registry. No network access; subprocesses only
where a test asks for a real CommandRunner.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import pytest

from shipyard.builder.package_builder import PackageBuilder
from shipyard.builder.shell import CommandResult, CommandRunner, split_command
from shipyard.core.errors import CommandError
from shipyard.core.models import (
    AppInfo,
    DeveloperSubmissionForm,
    LegalInfo,
    RepositoryInfo,
    TechnicalInfo,
)
from shipyard.pipeline.context import PipelineContext
from shipyard.registry.memory_store import MemoryPackageStore
from shipyard.registry.models import (
    PackageConfig,
    PackageManifest,
    PlatformMetadata,
    PublishRequest,
)
from shipyard.registry.service import PackageRegistry


# === FAKES ===


class ScriptedRunner(CommandRunner):
    """CommandRunner that records commands instead of spawning processes.

    responses maps the first argv word (or the full joined command) to
    (exit_code, stdout, stderr). Unknown commands succeed with no output.
    Callbacks may create files to simulate tool side effects.
    """

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[dict[str, Any]] = []
        self.responses: dict[str, tuple[int, str, str]] = {}
        self.side_effects: dict[str, Callable[[list[str], Path | None], None]] = {}

    async def run(self, command, *, cwd=None, env=None, timeout_s=None, token=None,
                  check=True, secrets=None):
        argv = split_command(command)
        self.calls.append({"argv": argv, "cwd": cwd, "env": env, "check": check})
        if token is not None:
            token.raise_if_cancelled()
        key = " ".join(argv)
        exit_code, stdout, stderr = self.responses.get(
            key, self.responses.get(argv[0], (0, "", ""))
        )
        effect = self.side_effects.get(key) or self.side_effects.get(argv[0])
        if effect is not None:
            effect(argv, Path(cwd) if cwd is not None else None)
        result = CommandResult(argv, exit_code, stdout, stderr, redact=secrets or [])
        if check and exit_code != 0:
            raise CommandError(argv, exit_code, stdout=stdout, stderr=stderr)
        return result


# === FIXTURES: Sample data ===


@pytest.fixture
def sample_form() -> DeveloperSubmissionForm:
    """Minimal valid developer submission."""
    return DeveloperSubmissionForm(
        repository=RepositoryInfo(url="https://github.com/acme/weather-widget", type="github"),
        app_info=AppInfo(
            name="Weather Widget",
            description="Shows the local forecast",
            category="utilities",
            target_brands=["brand-a"],
        ),
        technical=TechnicalInfo(
            package_name="weather-widget",
            version="1.0.0",
            entry_point="index.js",
            permissions=["geolocation"],
        ),
        legal=LegalInfo(license="MIT", terms_accepted=True),
    )


@pytest.fixture
def make_context(tmp_path: Path, sample_form: DeveloperSubmissionForm):
    """Factory for PipelineContext objects rooted in tmp_path."""

    def _make(**overrides: Any) -> PipelineContext:
        values: dict[str, Any] = dict(
            repository_id="repo-1",
            submission=sample_form,
            workspace_dir=tmp_path / "workspace",
        )
        values.update(overrides)
        return PipelineContext(**values)

    return _make


@pytest.fixture
def runner() -> ScriptedRunner:
    return ScriptedRunner()


@pytest.fixture
def builder(runner: ScriptedRunner) -> PackageBuilder:
    return PackageBuilder(runner=runner)


@pytest.fixture
def registry() -> PackageRegistry:
    return PackageRegistry(MemoryPackageStore())


@pytest.fixture
def make_request() -> Callable[..., PublishRequest]:
    """Factory for PublishRequest payloads."""

    def _make(
        name: str = "weather-widget",
        version: str = "1.0.0",
        **overrides: Any,
    ) -> PublishRequest:
        category = overrides.pop("category", "utilities")
        license_id = overrides.pop("license", "MIT")
        dependencies = overrides.pop("dependencies", {})
        values: dict[str, Any] = dict(
            package_name=name,
            display_name=name.replace("-", " ").title(),
            description=f"{name} micro-app",
            version=version,
            package_config=PackageConfig(entry="index.js", types="index.d.ts"),
            manifest=PackageManifest(
                name=name,
                version=version,
                keywords=[category] if category else [],
                license=license_id,
                dependencies=dependencies,
                platform=PlatformMetadata(category=category),
            ),
            dist_url=f"https://cdn.example.com/{name}/{version}/index.js",
            dependencies=dependencies,
        )
        values.update(overrides)
        return PublishRequest(**values)

    return _make
