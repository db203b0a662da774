# src/builder/toolchain.py — v1
"""Package manager detection and per-manager default commands.

Detection looks at lock files first, then manifests. JavaScript managers
win over Python ones when a repository carries both.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

PackageManager = Literal["pnpm", "yarn", "npm", "poetry", "uv", "pip"]

# Ordered: the first marker found decides.
_MARKERS: list[tuple[str, PackageManager]] = [
    ("pnpm-lock.yaml", "pnpm"),
    ("yarn.lock", "yarn"),
    ("package-lock.json", "npm"),
    ("package.json", "npm"),
    ("poetry.lock", "poetry"),
    ("uv.lock", "uv"),
    ("requirements.txt", "pip"),
    ("pyproject.toml", "pip"),
]

TEST_COMMANDS: dict[str, list[str]] = {
    "pnpm": ["pnpm", "test"],
    "yarn": ["yarn", "test"],
    "npm": ["npm", "test"],
    "poetry": ["poetry", "run", "pytest"],
    "uv": ["uv", "run", "pytest"],
    "pip": ["python", "-m", "pytest"],
}

AUDIT_COMMANDS: dict[str, list[str]] = {
    "pnpm": ["pnpm", "audit", "--json"],
    "yarn": ["npm", "audit", "--json"],
    "npm": ["npm", "audit", "--json"],
    "poetry": ["pip-audit", "-f", "json"],
    "uv": ["pip-audit", "-f", "json"],
    "pip": ["pip-audit", "-f", "json"],
}

BUILD_COMMANDS: dict[str, list[str]] = {
    "pnpm": ["pnpm", "run", "build"],
    "yarn": ["yarn", "build"],
    "npm": ["npm", "run", "build"],
    "poetry": ["poetry", "build"],
    "uv": ["uv", "build"],
    "pip": ["python", "-m", "build"],
}


def detect_package_manager(source_dir: Path) -> PackageManager | None:
    """Return the package manager implied by files in source_dir, if any."""
    for marker, manager in _MARKERS:
        if (source_dir / marker).is_file():
            return manager
    return None


def install_command(manager: PackageManager, source_dir: Path) -> list[str]:
    """Default dependency installation command for a manager."""
    if manager == "pnpm":
        return ["pnpm", "install", "--frozen-lockfile"]
    if manager == "yarn":
        return ["yarn", "install", "--frozen-lockfile"]
    if manager == "npm":
        if (source_dir / "package-lock.json").is_file():
            return ["npm", "ci"]
        return ["npm", "install"]
    if manager == "poetry":
        return ["poetry", "install", "--no-interaction"]
    if manager == "uv":
        return ["uv", "sync"]
    if (source_dir / "requirements.txt").is_file():
        return ["python", "-m", "pip", "install", "-r", "requirements.txt"]
    return ["python", "-m", "pip", "install", "."]
