# src/pipeline/step_registry.py — v1
"""Closed table mapping each StepKind to its executor class."""

from __future__ import annotations

from typing import TYPE_CHECKING

from shipyard.core.errors import ConfigurationError
from shipyard.pipeline.models import StepConfig, StepKind
from shipyard.pipeline.steps.base_step import BaseStep
from shipyard.pipeline.steps.build import BuildStep
from shipyard.pipeline.steps.clone import CloneStep
from shipyard.pipeline.steps.deploy import DeployStep
from shipyard.pipeline.steps.install import InstallStep
from shipyard.pipeline.steps.package import PackageStep
from shipyard.pipeline.steps.quality_check import QualityCheckStep
from shipyard.pipeline.steps.security_scan import SecurityScanStep
from shipyard.pipeline.steps.testing import TestStep

if TYPE_CHECKING:
    from shipyard.builder.package_builder import PackageBuilder
    from shipyard.config.settings import Settings

STEP_EXECUTORS: dict[StepKind, type[BaseStep]] = {
    StepKind.CLONE: CloneStep,
    StepKind.INSTALL: InstallStep,
    StepKind.TEST: TestStep,
    StepKind.SECURITY_SCAN: SecurityScanStep,
    StepKind.QUALITY_CHECK: QualityCheckStep,
    StepKind.BUILD: BuildStep,
    StepKind.PACKAGE: PackageStep,
    StepKind.DEPLOY: DeployStep,
}


def create_step_executor(
    config: StepConfig,
    builder: PackageBuilder | None = None,
    settings: Settings | None = None,
) -> BaseStep:
    """Instantiate the executor registered for config.kind.

    Raises:
        ConfigurationError: If no executor exists for the kind.
    """
    step_class = STEP_EXECUTORS.get(config.kind)
    if step_class is None:
        raise ConfigurationError(f"Unknown step type: {config.kind}")
    return step_class(config, builder=builder, settings=settings)
