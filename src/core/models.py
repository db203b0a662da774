# src/core/models.py — v1
"""Shared domain models: developer submission form, test and security scan results.

Wire-facing models accept both snake_case and camelCase keys so that
payloads coming from the developer portal validate unchanged.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

Severity = Literal["low", "medium", "high", "critical"]


class WireModel(BaseModel):
    """Base for models exchanged with external collaborators."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# === PACKAGE IDENTIFIERS ===

# npm package name: optional @scope/, lowercase URL-safe characters.
PACKAGE_NAME_PATTERN = re.compile(
    r"^(?:@[a-z0-9-~][a-z0-9-._~]*/)?[a-z0-9-~][a-z0-9-._~]*$"
)
# Version selectors understood by install; never valid as a published version.
RESERVED_VERSIONS = frozenset({"latest", "*", ""})


def validate_package_name(name: str) -> str:
    """Reject names that are not npm-style or could act as path segments."""
    if len(name) > 214 or not PACKAGE_NAME_PATTERN.match(name) or ".." in name:
        raise ValueError(f"Invalid package name: {name!r}")
    return name


def validate_version(version: str) -> str:
    """Reject reserved selectors and path-like version strings."""
    version = version.strip()
    if version in RESERVED_VERSIONS:
        raise ValueError(f"Version {version!r} is reserved")
    if "/" in version or "\\" in version or ".." in version:
        raise ValueError(f"Invalid version: {version!r}")
    return version


# === SUBMISSION FORM ===


class RepositoryInfo(WireModel):
    url: str
    type: Literal["github", "gitlab", "bitbucket", "git"] = "github"
    branch: str | None = None
    access_token: str | None = None


class AppInfo(WireModel):
    name: str
    description: str = ""
    category: str = ""
    target_brands: list[str] = Field(default_factory=list)
    demo_url: str | None = None
    documentation_url: str | None = None


class TechnicalInfo(WireModel):
    package_name: str
    version: str
    entry_point: str = "index.js"
    dependencies: dict[str, str] = Field(default_factory=dict)
    peer_dependencies: dict[str, str] = Field(default_factory=dict)
    permissions: list[str] = Field(default_factory=list)

    @field_validator("package_name")
    @classmethod
    def check_package_name(cls, value: str) -> str:
        return validate_package_name(value)

    @field_validator("version")
    @classmethod
    def check_version(cls, value: str) -> str:
        return validate_version(value)


class LegalInfo(WireModel):
    license: str
    terms_accepted: bool = False
    privacy_policy_url: str | None = None
    data_processing: list[str] = Field(default_factory=list)


class DeveloperSubmissionForm(WireModel):
    """Third-party code submission as received from the developer portal."""

    repository: RepositoryInfo
    app_info: AppInfo
    technical: TechnicalInfo
    legal: LegalInfo


# === TEST RESULTS ===


class TestResults(WireModel):
    """Summary produced by the test step."""

    __test__ = False  # not a pytest class

    total_tests: int = 0
    passed: int = 0
    failed: int = 0
    coverage: float = 0.0
    duration: int = 0  # milliseconds


# === SECURITY SCAN ===


class Vulnerability(WireModel):
    id: str
    severity: Severity
    type: str = "dependency"
    description: str = ""
    file: str = ""
    line: int | None = None
    recommendation: str = ""
    cwe: str | None = None
    cvss: float | None = None


class DependencyCheck(WireModel):
    package: str
    version: str = ""
    vulnerabilities: int = 0
    outdated: bool = False
    license: str = ""
    recommendation: str | None = None


class CodeQualityMetrics(WireModel):
    maintainability_index: float = 0.0
    cyclomatic_complexity: float = 0.0
    lines_of_code: int = 0
    test_coverage: float = 0.0
    duplicate_code_percentage: float = 0.0
    tech_debt_minutes: int = 0


class ComplianceCheck(WireModel):
    rule: str
    status: Literal["passed", "failed", "warning"]
    description: str = ""
    recommendation: str | None = None


class SecurityScanResult(WireModel):
    """Summary produced by the security scan step."""

    vulnerabilities: list[Vulnerability] = Field(default_factory=list)
    dependencies: list[DependencyCheck] = Field(default_factory=list)
    code_quality: CodeQualityMetrics = Field(default_factory=CodeQualityMetrics)
    compliance: list[ComplianceCheck] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    scan_duration: int = 0  # milliseconds
    scanned_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def count_by_severity(self) -> dict[str, int]:
        """Return vulnerability counts keyed by severity."""
        counts = {"low": 0, "medium": 0, "high": 0, "critical": 0}
        for vuln in self.vulnerabilities:
            counts[vuln.severity] += 1
        return counts


# === BUILD ARTIFACTS ===


class PackageDescriptor(WireModel):
    """Distributable artifact descriptor produced by the package step."""

    name: str
    version: str
    entry_point: str = "index.js"
    size_bytes: int = 0
    dist_url: str
    tarball_url: str
    integrity_hash: str
