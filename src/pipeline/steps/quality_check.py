# src/pipeline/steps/quality_check.py — v1
"""Quality gate step.

score = 100
        - 5 per failed test
        - 2 per coverage point below 80
        - 25 / 15 / 10 / 5 per critical / high / medium / low vulnerability
clamped to [0, 100]. A score below the threshold (70 by default) fails the
pipeline; it is never retried.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from shipyard.core.errors import QualityGateError
from shipyard.core.models import SecurityScanResult, TestResults
from shipyard.pipeline.models import StepKind, StepResult
from shipyard.pipeline.steps.base_step import BaseStep

if TYPE_CHECKING:
    from shipyard.pipeline.context import PipelineContext

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 70.0
COVERAGE_TARGET = 80.0
FAILED_TEST_PENALTY = 5
COVERAGE_POINT_PENALTY = 2
SEVERITY_PENALTY: dict[str, int] = {"critical": 25, "high": 15, "medium": 10, "low": 5}


def calculate_quality_score(
    test_results: TestResults | dict[str, Any] | None,
    scan_results: SecurityScanResult | dict[str, Any] | None,
) -> float:
    """Score a submission out of 100 from its test and scan results.

    Missing inputs contribute no deduction.
    """
    score = 100.0

    if test_results is not None:
        tests = TestResults.model_validate(test_results)
        if tests.failed > 0:
            score -= tests.failed * FAILED_TEST_PENALTY
        if tests.coverage < COVERAGE_TARGET:
            score -= (COVERAGE_TARGET - tests.coverage) * COVERAGE_POINT_PENALTY

    if scan_results is not None:
        scan = SecurityScanResult.model_validate(scan_results)
        for vuln in scan.vulnerabilities:
            score -= SEVERITY_PENALTY[vuln.severity]

    return max(0.0, min(100.0, score))


class QualityCheckStep(BaseStep):
    """Compute the quality score and enforce the threshold.

    Config:
        threshold: minimum passing score (defaults to QUALITY_THRESHOLD).
    """

    kind = StepKind.QUALITY_CHECK

    @property
    def threshold(self) -> float:
        default = (
            self._settings.quality_threshold if self._settings else DEFAULT_THRESHOLD
        )
        return float(self.option("threshold", default))

    async def execute(self, context: PipelineContext) -> StepResult:
        self.check_cancellation(context)
        test_results = context.artifacts.get("testResults")
        scan_results = context.artifacts.get("securityScanResults")
        if test_results is None:
            logger.warning("No test results available; skipping test deductions")
        if scan_results is None:
            logger.warning("No security scan results available; skipping scan deductions")

        logs = "Running quality checks\n"
        score = calculate_quality_score(test_results, scan_results)
        logs += f"Quality score: {score:g}/100\n"

        if score < self.threshold:
            raise QualityGateError(score, self.threshold)

        return StepResult(
            output={"qualityScore": score},
            logs=logs,
            artifacts={"qualityScore": score},
        )
