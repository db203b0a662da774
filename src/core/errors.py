# src/core/errors.py — v1
"""Error taxonomy shared by the pipeline, the step executors and the registry.

Pipeline-level errors carry enough context for the executor to store a
human-readable message plus structured details on the pipeline record.
Registry errors are domain outcomes returned to the caller and are never
retried automatically.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ShipyardError(Exception):
    """Base class for all domain errors."""

    def details(self) -> dict[str, Any]:
        """Structured details stored next to the error message."""
        return {"type": type(self).__name__}


class ConfigurationError(ShipyardError):
    """Invalid step graph or inconsistent settings.

    Detected before execution starts; never retried.
    """


class StepExecutionError(ShipyardError):
    """Failure inside a step executor."""

    def __init__(self, message: str, step: str | None = None, logs: str = "") -> None:
        self.step = step
        self.logs = logs
        super().__init__(message)

    def details(self) -> dict[str, Any]:
        data = super().details()
        if self.step:
            data["step"] = self.step
        if self.logs:
            data["logs"] = self.logs
        return data


class CommandError(StepExecutionError):
    """An external command exited with a non-zero status."""

    def __init__(
        self,
        command: list[str],
        exit_code: int,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        self.command = command
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(
            f"Command {' '.join(command)!r} exited with code {exit_code}",
            logs=stderr or stdout,
        )

    def details(self) -> dict[str, Any]:
        data = super().details()
        data["command"] = self.command
        data["exit_code"] = self.exit_code
        return data


class QualityGateError(ShipyardError):
    """The submission built but its quality score is below the threshold."""

    def __init__(self, score: float, threshold: float) -> None:
        self.score = score
        self.threshold = threshold
        super().__init__(
            f"Quality score too low: {score:g}/100 (minimum: {threshold:g})"
        )

    def details(self) -> dict[str, Any]:
        data = super().details()
        data["score"] = self.score
        data["threshold"] = self.threshold
        return data


class CancellationError(ShipyardError):
    """A step observed the cooperative cancellation flag.

    Not a failure: does not count against the retry budget.
    """

    def __init__(self, message: str = "Step execution cancelled") -> None:
        super().__init__(message)


class StepTimeoutError(ShipyardError, TimeoutError):
    """A step attempt exceeded its configured timeout."""

    def __init__(self, step: str, timeout_s: float) -> None:
        self.step = step
        self.timeout_s = timeout_s
        super().__init__(f"Step '{step}' timed out after {timeout_s:g}s")

    def details(self) -> dict[str, Any]:
        data = super().details()
        data["step"] = self.step
        data["timeout_s"] = self.timeout_s
        return data


class PipelineTimeoutError(ShipyardError, TimeoutError):
    """The whole pipeline exceeded its configured timeout."""

    def __init__(self, pipeline_id: str, timeout_s: float) -> None:
        self.pipeline_id = pipeline_id
        self.timeout_s = timeout_s
        super().__init__(f"Pipeline '{pipeline_id}' timed out after {timeout_s:g}s")

    def details(self) -> dict[str, Any]:
        data = super().details()
        data["timeout_s"] = self.timeout_s
        return data


class RegistryErrorKind(str, Enum):
    CONFLICT = "conflict"
    VERSION_NOT_FOUND = "version_not_found"
    PACKAGE_NOT_FOUND = "package_not_found"


class RegistryError(ShipyardError):
    """Domain outcome of a registry operation (conflict / not found)."""

    def __init__(
        self,
        kind: RegistryErrorKind,
        message: str,
        package_name: str | None = None,
        version: str | None = None,
    ) -> None:
        self.kind = kind
        self.package_name = package_name
        self.version = version
        super().__init__(message)

    @classmethod
    def conflict(cls, package_name: str, version: str | None = None) -> RegistryError:
        if version is None:
            msg = f"Package name '{package_name}' already exists"
        else:
            msg = f"Version {version} of '{package_name}' already published"
        return cls(RegistryErrorKind.CONFLICT, msg, package_name, version)

    @classmethod
    def package_not_found(cls, package_name: str) -> RegistryError:
        return cls(
            RegistryErrorKind.PACKAGE_NOT_FOUND,
            f"Package {package_name} not found",
            package_name,
        )

    @classmethod
    def version_not_found(cls, package_name: str, version: str) -> RegistryError:
        return cls(
            RegistryErrorKind.VERSION_NOT_FOUND,
            f"Version {version} not found for package {package_name}",
            package_name,
            version,
        )

    def details(self) -> dict[str, Any]:
        data = super().details()
        data["kind"] = self.kind.value
        if self.package_name:
            data["package"] = self.package_name
        if self.version:
            data["version"] = self.version
        return data


class IntegrityError(ShipyardError):
    """Downloaded artifact does not match its published integrity hash."""

    def __init__(self, url: str, expected: str, actual: str) -> None:
        self.url = url
        self.expected = expected
        self.actual = actual
        super().__init__(f"Integrity mismatch for {url}: expected {expected}, got {actual}")
