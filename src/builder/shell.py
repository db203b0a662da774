# src/builder/shell.py — v1
"""Async subprocess runner used by the build steps.

Runs real toolchain commands, captures stdout/stderr/exit code and polls
the cooperative cancellation token before and after each command. A
command that exceeds its timeout is killed.
"""

from __future__ import annotations

import asyncio
import logging
import shlex
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from shipyard.core.errors import CommandError, StepExecutionError, StepTimeoutError

if TYPE_CHECKING:
    from shipyard.pipeline.context import CancellationToken

logger = logging.getLogger(__name__)

_REDACTED = "***"


@dataclass
class CommandResult:
    """Captured outcome of one command."""

    command: list[str]
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0
    redact: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def display_command(self) -> str:
        return redact(shlex.join(self.command), self.redact)

    def format_log(self) -> str:
        """Render as a shell transcript: `$ cmd`, output, exit code."""
        lines = [f"$ {self.display_command}"]
        if self.stdout.strip():
            lines.append(redact(self.stdout.rstrip(), self.redact))
        if self.stderr.strip():
            lines.append(redact(self.stderr.rstrip(), self.redact))
        lines.append(f"[exit {self.exit_code}, {self.duration_ms}ms]")
        return "\n".join(lines) + "\n"


def redact(text: str, secrets: list[str]) -> str:
    for secret in secrets:
        if secret:
            text = text.replace(secret, _REDACTED)
    return text


def split_command(command: str | list[str]) -> list[str]:
    """Accept either a shell-like string or an argv list."""
    if isinstance(command, str):
        return shlex.split(command)
    return [str(part) for part in command]


class CommandRunner:
    """Execute external commands as blocking steps of a pipeline run."""

    def __init__(self, default_timeout_s: float | None = None) -> None:
        self._default_timeout_s = default_timeout_s

    async def run(
        self,
        command: str | list[str],
        *,
        cwd: Path | str | None = None,
        env: dict[str, str] | None = None,
        timeout_s: float | None = None,
        token: CancellationToken | None = None,
        check: bool = True,
        secrets: list[str] | None = None,
    ) -> CommandResult:
        """Run a command to completion.

        Raises:
            CancellationError: If the token is cancelled before or after the run.
            StepTimeoutError: If the command exceeds its timeout.
            CommandError: If check is set and the exit code is non-zero.
            StepExecutionError: If the executable cannot be started.
        """
        argv = split_command(command)
        secrets = [s for s in (secrets or []) if s]
        timeout = timeout_s if timeout_s is not None else self._default_timeout_s

        if token is not None:
            token.raise_if_cancelled()

        logger.debug("Running %s (cwd=%s)", redact(shlex.join(argv), secrets), cwd)
        start_ns = time.monotonic_ns()
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(cwd) if cwd is not None else None,
                env=env,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise StepExecutionError(f"Command not found: {argv[0]}") from exc
        except PermissionError as exc:
            raise StepExecutionError(f"Command not executable: {argv[0]}") from exc

        try:
            stdout_b, stderr_b = await asyncio.wait_for(proc.communicate(), timeout)
        except asyncio.TimeoutError as exc:
            await _kill(proc)
            raise StepTimeoutError(redact(shlex.join(argv), secrets), timeout or 0) from exc
        except BaseException:
            # Outer cancellation (step timeout): do not leave the child running.
            await _kill(proc)
            raise

        result = CommandResult(
            command=argv,
            exit_code=proc.returncode if proc.returncode is not None else -1,
            stdout=stdout_b.decode("utf-8", errors="replace"),
            stderr=stderr_b.decode("utf-8", errors="replace"),
            duration_ms=(time.monotonic_ns() - start_ns) // 1_000_000,
            redact=secrets,
        )
        logger.debug(
            "Command %s exited with %d in %dms",
            result.display_command, result.exit_code, result.duration_ms,
        )

        if token is not None:
            token.raise_if_cancelled()

        if check and not result.ok:
            raise CommandError(
                [redact(a, secrets) for a in argv],
                result.exit_code,
                stdout=redact(result.stdout, secrets),
                stderr=redact(result.stderr, secrets),
            )
        return result


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            return
        await proc.wait()
