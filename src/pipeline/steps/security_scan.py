# src/pipeline/steps/security_scan.py — v1
"""Security scan step — dependency audit, code metrics and compliance checks.

Audit formats understood:
  - npm >= 7 `npm audit --json`: {"vulnerabilities": {name: {...}}}
  - npm 6 / pnpm `audit --json`: {"advisories": {id: {...}}}
  - pip-audit `-f json`: {"dependencies": [{"name", "version", "vulns": [...]}]}
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any

from shipyard.builder.toolchain import AUDIT_COMMANDS, detect_package_manager
from shipyard.core.errors import StepExecutionError
from shipyard.core.models import (
    CodeQualityMetrics,
    ComplianceCheck,
    DependencyCheck,
    SecurityScanResult,
    Severity,
    TestResults,
    Vulnerability,
)
from shipyard.pipeline.models import StepKind, StepResult
from shipyard.pipeline.steps.base_step import BaseStep

if TYPE_CHECKING:
    from shipyard.pipeline.context import PipelineContext

logger = logging.getLogger(__name__)

SOURCE_EXTENSIONS = frozenset(
    {".js", ".mjs", ".cjs", ".jsx", ".ts", ".tsx", ".vue", ".svelte", ".py"}
)
_SKIP_DIRS = frozenset({".git", "node_modules", "dist", "build", "__pycache__", ".venv"})

DEFAULT_ALLOWED_LICENSES = (
    "MIT",
    "Apache-2.0",
    "BSD-2-Clause",
    "BSD-3-Clause",
    "ISC",
    "MPL-2.0",
    "0BSD",
    "Unlicense",
)

_SEVERITY_ALIASES: dict[str, Severity] = {
    "info": "low",
    "low": "low",
    "moderate": "medium",
    "medium": "medium",
    "high": "high",
    "critical": "critical",
}


def normalize_severity(raw: Any) -> Severity:
    """Map audit tool severities onto low/medium/high/critical."""
    return _SEVERITY_ALIASES.get(str(raw or "").lower(), "medium")


def _first_advisory(via: Any) -> dict[str, Any]:
    if isinstance(via, list):
        for item in via:
            if isinstance(item, dict):
                return item
    return {}


def _fix_recommendation(name: str, fix: Any) -> str | None:
    if isinstance(fix, dict) and fix.get("name"):
        return f"Update {fix['name']} to {fix.get('version', 'a patched version')}"
    if fix:
        return "Run `npm audit fix`"
    return None


def _parse_npm_v7(vulnerabilities: dict[str, Any]) -> tuple[list[Vulnerability], list[DependencyCheck]]:
    vulns: list[Vulnerability] = []
    deps: list[DependencyCheck] = []
    for name, entry in sorted(vulnerabilities.items()):
        advisory = _first_advisory(entry.get("via"))
        recommendation = _fix_recommendation(name, entry.get("fixAvailable"))
        cvss = advisory.get("cvss") or {}
        cwe = advisory.get("cwe") or []
        vulns.append(
            Vulnerability(
                id=f"npm-audit-{advisory.get('source', name)}",
                severity=normalize_severity(entry.get("severity")),
                description=advisory.get("title") or f"Vulnerable dependency {name}",
                file="package.json",
                recommendation=recommendation or "No fix available",
                cwe=cwe[0] if isinstance(cwe, list) and cwe else None,
                cvss=cvss.get("score") if isinstance(cvss, dict) else None,
            )
        )
        via = entry.get("via") or []
        deps.append(
            DependencyCheck(
                package=name,
                version=str(entry.get("range", "")),
                vulnerabilities=max(1, sum(1 for v in via if isinstance(v, dict))),
                outdated=bool(entry.get("fixAvailable")),
                recommendation=recommendation,
            )
        )
    return vulns, deps


def _parse_npm_advisories(advisories: dict[str, Any]) -> tuple[list[Vulnerability], list[DependencyCheck]]:
    vulns: list[Vulnerability] = []
    per_module: dict[str, DependencyCheck] = {}
    for advisory_id, advisory in sorted(advisories.items()):
        module = advisory.get("module_name", "unknown")
        cvss = advisory.get("cvss") or {}
        cwe = advisory.get("cwe")
        findings = advisory.get("findings") or []
        version = findings[0].get("version", "") if findings else ""
        vulns.append(
            Vulnerability(
                id=f"npm-audit-{advisory_id}",
                severity=normalize_severity(advisory.get("severity")),
                description=advisory.get("title", ""),
                file="package.json",
                recommendation=advisory.get("recommendation", ""),
                cwe=cwe[0] if isinstance(cwe, list) and cwe else cwe or None,
                cvss=cvss.get("score") if isinstance(cvss, dict) else None,
            )
        )
        dep = per_module.setdefault(
            module, DependencyCheck(package=module, version=version, outdated=True)
        )
        dep.vulnerabilities += 1
        dep.recommendation = advisory.get("recommendation") or dep.recommendation
    return vulns, list(per_module.values())


def _parse_pip_audit(dependencies: list[Any]) -> tuple[list[Vulnerability], list[DependencyCheck]]:
    vulns: list[Vulnerability] = []
    deps: list[DependencyCheck] = []
    for dep in dependencies:
        if not isinstance(dep, dict):
            continue
        found = dep.get("vulns") or []
        recommendation = None
        for vuln in found:
            fixes = vuln.get("fix_versions") or []
            recommendation = (
                f"Update {dep.get('name')} to {fixes[0]}" if fixes else "No fix available"
            )
            vulns.append(
                Vulnerability(
                    id=vuln.get("id", "pip-audit"),
                    # pip-audit reports no severity.
                    severity="medium",
                    description=vuln.get("description", ""),
                    file="requirements.txt",
                    recommendation=recommendation,
                )
            )
        deps.append(
            DependencyCheck(
                package=dep.get("name", "unknown"),
                version=str(dep.get("version", "")),
                vulnerabilities=len(found),
                outdated=bool(found),
                recommendation=recommendation,
            )
        )
    return vulns, deps


def parse_audit_report(data: Any) -> tuple[list[Vulnerability], list[DependencyCheck]]:
    """Normalize npm, pnpm or pip-audit JSON into vulnerabilities + dependencies."""
    if isinstance(data, dict):
        if isinstance(data.get("vulnerabilities"), dict):
            return _parse_npm_v7(data["vulnerabilities"])
        if isinstance(data.get("advisories"), dict):
            return _parse_npm_advisories(data["advisories"])
        if isinstance(data.get("dependencies"), list):
            return _parse_pip_audit(data["dependencies"])
    if isinstance(data, list):
        return _parse_pip_audit(data)
    return [], []


def count_lines_of_code(source_dir: Path) -> int:
    total = 0
    for path in source_dir.rglob("*"):
        rel = path.relative_to(source_dir)
        if any(part in _SKIP_DIRS for part in rel.parts[:-1]):
            continue
        if path.suffix in SOURCE_EXTENSIONS and path.is_file():
            with path.open("rb") as fh:
                total += sum(1 for line in fh if line.strip())
    return total


def compliance_checks(
    vulnerabilities: list[Vulnerability],
    license_id: str,
    allowed_licenses: tuple[str, ...] | list[str],
) -> list[ComplianceCheck]:
    severities = {v.severity for v in vulnerabilities}
    if "critical" in severities:
        owasp = ComplianceCheck(
            rule="OWASP Top 10",
            status="failed",
            description="Critical security vulnerabilities found",
            recommendation="Resolve critical vulnerabilities before publishing",
        )
    elif "high" in severities:
        owasp = ComplianceCheck(
            rule="OWASP Top 10",
            status="warning",
            description="High severity vulnerabilities found",
            recommendation="Update affected dependencies",
        )
    else:
        owasp = ComplianceCheck(
            rule="OWASP Top 10",
            status="passed",
            description="No critical security vulnerabilities found",
        )

    if license_id in allowed_licenses:
        license_check = ComplianceCheck(
            rule="License",
            status="passed",
            description=f"License {license_id} is approved",
        )
    else:
        license_check = ComplianceCheck(
            rule="License",
            status="warning",
            description=f"License {license_id or 'unknown'} requires manual review",
            recommendation="Use an OSI-approved permissive license",
        )
    return [owasp, license_check]


def build_recommendations(
    vulnerabilities: list[Vulnerability], dependencies: list[DependencyCheck]
) -> list[str]:
    recommendations: list[str] = []
    if any(d.outdated for d in dependencies):
        recommendations.append("Update outdated dependencies")
    counts: dict[str, int] = {}
    for vuln in vulnerabilities:
        counts[vuln.severity] = counts.get(vuln.severity, 0) + 1
    for severity in ("critical", "high"):
        if counts.get(severity):
            recommendations.append(
                f"Resolve {counts[severity]} {severity} severity vulnerabilities"
            )
    return recommendations


class SecurityScanStep(BaseStep):
    """Audit dependencies and publish a SecurityScanResult artifact.

    Config:
        command: custom audit command printing JSON on stdout.
        allowed_licenses: licenses that pass the license compliance check.
    """

    kind = StepKind.SECURITY_SCAN

    async def execute(self, context: PipelineContext) -> StepResult:
        self.check_cancellation(context)
        started = time.monotonic()
        source_dir = self.source_dir(context)
        manager = (
            context.artifacts.get("packageManager")
            or detect_package_manager(source_dir)
            or "npm"
        )
        command = self.option("command") or AUDIT_COMMANDS[manager]

        logs = f"Running security scan on: {source_dir}\n"
        # Audit tools exit non-zero when they find vulnerabilities.
        result = await self.run_command(context, command, cwd=source_dir, check=False)
        logs += result.format_log()

        if result.stdout.strip():
            try:
                data = json.loads(result.stdout)
            except ValueError as exc:
                raise StepExecutionError(
                    "Security audit produced invalid JSON", step=self.name, logs=logs
                ) from exc
        elif result.ok:
            data = {}
        else:
            raise StepExecutionError(
                f"Security audit failed with exit code {result.exit_code}",
                step=self.name,
                logs=logs,
            )

        vulnerabilities, dependencies = parse_audit_report(data)
        self.check_cancellation(context)

        test_results = context.artifacts.get("testResults")
        coverage = 0.0
        if test_results is not None:
            coverage = TestResults.model_validate(test_results).coverage

        scan = SecurityScanResult(
            vulnerabilities=vulnerabilities,
            dependencies=dependencies,
            code_quality=CodeQualityMetrics(
                lines_of_code=count_lines_of_code(source_dir),
                test_coverage=coverage,
            ),
            compliance=compliance_checks(
                vulnerabilities,
                context.submission.legal.license,
                self.option("allowed_licenses", DEFAULT_ALLOWED_LICENSES),
            ),
            recommendations=build_recommendations(vulnerabilities, dependencies),
            scan_duration=int((time.monotonic() - started) * 1000),
        )

        logs += "Security scan completed\n"
        logs += f"Vulnerabilities found: {len(scan.vulnerabilities)}\n"
        logs += f"Dependencies scanned: {len(scan.dependencies)}\n"

        return StepResult(
            output=scan.model_dump(mode="json", by_alias=True),
            logs=logs,
            artifacts={"securityScanResults": scan},
        )
