# src/pipeline/steps/testing.py — v1
"""Test step — run the repository's test suite and summarize the results.

Report formats read (first file found wins):
  - native summary: {"totalTests", "passed", "failed", "coverage"?, "duration"?}
  - Jest --json: {"numTotalTests", "numPassedTests", "numFailedTests", ...}
  - pytest-json-report: {"summary": {"total", "passed", "failed"}, "duration"}

Coverage comes from the report itself, an Istanbul coverage-summary.json
or a coverage.py coverage.json. Failing tests do not fail this step; the
quality gate accounts for them.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from shipyard.builder.toolchain import TEST_COMMANDS, detect_package_manager
from shipyard.core.models import TestResults
from shipyard.pipeline.models import StepKind, StepResult
from shipyard.pipeline.steps.base_step import BaseStep

if TYPE_CHECKING:
    from shipyard.pipeline.context import PipelineContext

logger = logging.getLogger(__name__)

DEFAULT_REPORT_FILES = (
    "test-results.json",
    "jest-results.json",
    ".report.json",
)
DEFAULT_COVERAGE_FILES = (
    "coverage/coverage-summary.json",
    "coverage.json",
)


def _load_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Could not read report %s: %s", path, exc)
        return None


def parse_test_report(data: Any) -> TestResults | None:
    """Normalize a native, Jest or pytest-json-report document."""
    if not isinstance(data, dict):
        return None

    if "totalTests" in data:
        return TestResults(
            total_tests=int(data.get("totalTests", 0)),
            passed=int(data.get("passed", 0)),
            failed=int(data.get("failed", 0)),
            coverage=float(data.get("coverage", 0.0)),
            duration=int(data.get("duration", 0)),
        )

    if "numTotalTests" in data:
        return TestResults(
            total_tests=int(data["numTotalTests"]),
            passed=int(data.get("numPassedTests", 0)),
            failed=int(data.get("numFailedTests", 0)),
        )

    summary = data.get("summary")
    if isinstance(summary, dict) and "total" in summary:
        return TestResults(
            total_tests=int(summary.get("total", 0)),
            passed=int(summary.get("passed", 0)),
            failed=int(summary.get("failed", 0)) + int(summary.get("error", 0)),
            duration=int(float(data.get("duration", 0.0)) * 1000),
        )

    return None


def parse_coverage_report(data: Any) -> float | None:
    """Line coverage percentage from Istanbul or coverage.py JSON."""
    if not isinstance(data, dict):
        return None
    total = data.get("total")
    if isinstance(total, dict):
        lines = total.get("lines")
        if isinstance(lines, dict) and "pct" in lines:
            return float(lines["pct"])
    totals = data.get("totals")
    if isinstance(totals, dict) and "percent_covered" in totals:
        return float(totals["percent_covered"])
    return None


class TestStep(BaseStep):
    """Run tests and publish a TestResults artifact.

    Config:
        command: custom test command.
        report: path of the JSON report, relative to the checkout.
        coverage_report: path of the coverage summary, relative to the checkout.
    """

    __test__ = False  # not a pytest class

    kind = StepKind.TEST

    async def execute(self, context: PipelineContext) -> StepResult:
        self.check_cancellation(context)
        source_dir = self.source_dir(context)
        manager = (
            context.artifacts.get("packageManager")
            or detect_package_manager(source_dir)
            or "npm"
        )
        command = self.option("command") or TEST_COMMANDS[manager]

        logs = f"Running tests in: {source_dir}\n"
        result = await self.run_command(context, command, cwd=source_dir, check=False)
        logs += result.format_log()

        results = self._read_results(source_dir)
        if results is None:
            # No report: all we know is whether the suite passed.
            failed = 0 if result.ok else 1
            results = TestResults(total_tests=failed, passed=0, failed=failed)
        if not results.duration:
            results.duration = result.duration_ms
        coverage = self._read_coverage(source_dir)
        if coverage is not None:
            results.coverage = coverage

        logs += f"Tests completed: {results.passed}/{results.total_tests} passed\n"
        logs += f"Coverage: {results.coverage:g}%\n"
        if results.failed > 0:
            logs += f"Warning: {results.failed} tests failed\n"

        return StepResult(
            output=results.model_dump(by_alias=True),
            logs=logs,
            artifacts={"testResults": results},
        )

    def _read_results(self, source_dir: Path) -> TestResults | None:
        candidates = [self.option("report")] if self.option("report") else DEFAULT_REPORT_FILES
        for candidate in candidates:
            path = source_dir / candidate
            if path.is_file():
                parsed = parse_test_report(_load_json(path))
                if parsed is not None:
                    return parsed
                logger.warning("Unrecognized test report format: %s", path)
        return None

    def _read_coverage(self, source_dir: Path) -> float | None:
        candidates = (
            [self.option("coverage_report")]
            if self.option("coverage_report")
            else DEFAULT_COVERAGE_FILES
        )
        for candidate in candidates:
            path = source_dir / candidate
            if path.is_file():
                coverage = parse_coverage_report(_load_json(path))
                if coverage is not None:
                    return coverage
        return None
