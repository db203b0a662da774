# src/builder/package_builder.py — v1
"""Package builder — shell out to the submitted repository's toolchain.

Clones the repository, installs dependencies, runs build commands, packs
the build output into a tarball and uploads it to dist storage. The
pipeline's Clone/Install/Build/Package steps call the individual methods;
build_package() chains them for one-shot builds outside a pipeline.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import shutil
import tarfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import quote, urlsplit, urlunsplit

from shipyard.builder.shell import CommandResult, CommandRunner, split_command
from shipyard.builder.toolchain import (
    BUILD_COMMANDS,
    PackageManager,
    detect_package_manager,
    install_command,
)
from shipyard.core.errors import ShipyardError, StepExecutionError
from shipyard.core.models import PackageDescriptor

if TYPE_CHECKING:
    from shipyard.config.settings import Settings
    from shipyard.pipeline.context import CancellationToken
    from shipyard.storage.base_artifact_storage import BaseArtifactStorage

logger = logging.getLogger(__name__)

TARBALL_NAME = "package.tgz"
_SKIP_DIRS = frozenset({".git", "node_modules", "__pycache__", ".venv"})


@dataclass
class BuildConfig:
    """Toolchain configuration for one build."""

    build_commands: list[str | list[str]] = field(default_factory=list)
    output_dir: str = "dist"
    entry_point: str = "index.js"
    git_binary: str = "git"
    clone_depth: int = 1


@dataclass
class PackedOutput:
    """Local tarball produced from a build directory."""

    tarball: Path
    size_bytes: int
    integrity_hash: str
    files: list[str]


@dataclass
class BuildOutcome:
    """Result of a one-shot build_package() call."""

    success: bool
    descriptor: PackageDescriptor | None = None
    logs: str = ""
    errors: list[str] = field(default_factory=list)


def authenticated_url(url: str, access_token: str | None) -> str:
    """Embed an access token into an HTTPS clone URL."""
    if not access_token:
        return url
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.hostname:
        return url
    netloc = f"x-access-token:{quote(access_token, safe='')}@{parts.hostname}"
    if parts.port:
        netloc += f":{parts.port}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def integrity_of(data_path: Path) -> str:
    """Subresource-integrity style hash: 'sha256-<base64 digest>'."""
    digest = hashlib.sha256()
    with data_path.open("rb") as fh:
        for chunk in iter(lambda: fh.read(65536), b""):
            digest.update(chunk)
    return "sha256-" + base64.b64encode(digest.digest()).decode("ascii")


def integrity_of_bytes(data: bytes) -> str:
    return "sha256-" + base64.b64encode(hashlib.sha256(data).digest()).decode("ascii")


class PackageBuilder:
    """Drive the submitted repository's toolchain and produce a dist artifact."""

    def __init__(
        self,
        config: BuildConfig | None = None,
        runner: CommandRunner | None = None,
        storage: BaseArtifactStorage | None = None,
    ) -> None:
        self._config = config or BuildConfig()
        self._runner = runner or CommandRunner()
        self._storage = storage

    @property
    def config(self) -> BuildConfig:
        return self._config

    @property
    def runner(self) -> CommandRunner:
        return self._runner

    async def clone_repository(
        self,
        url: str,
        target: Path,
        branch: str = "main",
        access_token: str | None = None,
        token: CancellationToken | None = None,
        env: dict[str, str] | None = None,
    ) -> CommandResult:
        """Clone into target, replacing any previous checkout atomically.

        The clone goes to a sibling staging directory that is renamed into
        place only once git succeeded, so a failed or cancelled attempt never
        leaves a half-cloned tree at target.
        """
        staging = target.with_name(target.name + ".partial")
        if staging.exists():
            shutil.rmtree(staging)
        target.parent.mkdir(parents=True, exist_ok=True)

        command = [self._config.git_binary, "clone"]
        if self._config.clone_depth > 0:
            command += ["--depth", str(self._config.clone_depth)]
        command += ["--branch", branch, authenticated_url(url, access_token), str(staging)]

        try:
            result = await self._runner.run(
                command, env=env, token=token, secrets=[access_token or ""],
            )
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise

        if target.exists():
            shutil.rmtree(target)
        staging.rename(target)
        logger.info("Cloned %s (branch %s) into %s", url, branch, target)
        return result

    def detect_package_manager(self, source_dir: Path) -> PackageManager:
        manager = detect_package_manager(source_dir)
        if manager is None:
            raise StepExecutionError(
                f"Could not detect a package manager in {source_dir}"
            )
        return manager

    async def install_dependencies(
        self,
        source_dir: Path,
        manager: PackageManager | None = None,
        command: str | list[str] | None = None,
        token: CancellationToken | None = None,
        env: dict[str, str] | None = None,
    ) -> tuple[PackageManager, CommandResult]:
        """Install dependencies with the detected (or given) package manager."""
        manager = manager or self.detect_package_manager(source_dir)
        argv = split_command(command) if command else install_command(manager, source_dir)
        result = await self._runner.run(argv, cwd=source_dir, env=env, token=token)
        return manager, result

    async def run_build_commands(
        self,
        source_dir: Path,
        manager: str | None = None,
        token: CancellationToken | None = None,
        env: dict[str, str] | None = None,
        commands: list[str | list[str]] | None = None,
        output_dir: str | None = None,
    ) -> tuple[Path, str]:
        """Run build commands sequentially; return (build_dir, concatenated logs).

        The first failing command fails the build; logs gathered so far are
        attached to the raised error.
        """
        commands = list(commands or self._config.build_commands)
        if not commands:
            commands = [BUILD_COMMANDS.get(manager or "npm", BUILD_COMMANDS["npm"])]

        logs = ""
        for command in commands:
            if token is not None:
                token.raise_if_cancelled()
            try:
                result = await self._runner.run(
                    command, cwd=source_dir, env=env, token=token,
                )
            except StepExecutionError as exc:
                exc.logs = logs + (exc.logs or "")
                raise
            logs += result.format_log()

        build_dir = source_dir / (output_dir or self._config.output_dir)
        if not build_dir.is_dir():
            raise StepExecutionError(
                f"Build output directory not found: {build_dir}", logs=logs
            )
        return build_dir, logs

    def package_output(self, build_dir: Path, destination: Path) -> PackedOutput:
        """Pack build_dir into a gzip tarball under a top-level 'package/' folder."""
        destination.parent.mkdir(parents=True, exist_ok=True)
        files: list[str] = []
        with tarfile.open(destination, "w:gz") as tar:
            for path in sorted(build_dir.rglob("*")):
                rel = path.relative_to(build_dir)
                if any(part in _SKIP_DIRS for part in rel.parts) or not path.is_file():
                    continue
                tar.add(str(path), arcname=f"package/{rel.as_posix()}")
                files.append(rel.as_posix())
        if not files:
            raise StepExecutionError(f"Build output directory is empty: {build_dir}")
        return PackedOutput(
            tarball=destination,
            size_bytes=destination.stat().st_size,
            integrity_hash=integrity_of(destination),
            files=files,
        )

    async def upload_package(
        self,
        packed: PackedOutput,
        build_dir: Path,
        name: str,
        version: str,
        entry_point: str | None = None,
    ) -> PackageDescriptor:
        """Upload tarball and entry file; return the dist descriptor."""
        if self._storage is None:
            raise StepExecutionError("No dist storage configured for upload")
        entry = entry_point or self._config.entry_point
        prefix = f"{name}/{version}"

        tarball_url = await self._storage.put_file(f"{prefix}/{TARBALL_NAME}", packed.tarball)
        entry_file = build_dir / entry
        if entry_file.is_file():
            dist_url = await self._storage.put_file(f"{prefix}/{entry}", entry_file)
        else:
            logger.warning("Entry point %s not found in build output", entry)
            dist_url = self._storage.url_for(f"{prefix}/{entry}")

        return PackageDescriptor(
            name=name,
            version=version,
            entry_point=entry,
            size_bytes=packed.size_bytes,
            dist_url=dist_url,
            tarball_url=tarball_url,
            integrity_hash=packed.integrity_hash,
        )

    async def build_package(
        self,
        repository_url: str,
        workspace: Path,
        name: str,
        version: str,
        branch: str = "main",
        access_token: str | None = None,
    ) -> BuildOutcome:
        """One-shot build: clone, install, build, pack, upload."""
        source_dir = workspace / "source"
        logs = ""
        try:
            clone = await self.clone_repository(
                repository_url, source_dir, branch=branch, access_token=access_token,
            )
            logs += clone.format_log()
            manager, install = await self.install_dependencies(source_dir)
            logs += install.format_log()
            build_dir, build_logs = await self.run_build_commands(source_dir, manager)
            logs += build_logs
            packed = self.package_output(build_dir, workspace / TARBALL_NAME)
            descriptor = await self.upload_package(packed, build_dir, name, version)
        except ShipyardError as exc:
            logger.error("Build of %s@%s failed: %s", name, version, exc)
            return BuildOutcome(success=False, logs=logs, errors=[str(exc)])
        return BuildOutcome(success=True, descriptor=descriptor, logs=logs)


def create_package_builder(
    settings: Settings, storage: BaseArtifactStorage | None = None,
) -> PackageBuilder:
    """Factory: build a PackageBuilder from settings."""
    if storage is None:
        from shipyard.storage.storage_factory import create_artifact_storage

        storage = create_artifact_storage(settings)
    config = BuildConfig(
        output_dir=settings.build_output_dir,
        git_binary=settings.git_binary,
        clone_depth=settings.clone_depth,
    )
    return PackageBuilder(
        config=config,
        runner=CommandRunner(default_timeout_s=settings.step_timeout_s),
        storage=storage,
    )
