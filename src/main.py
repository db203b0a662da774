# src/main.py — v2
"""CLI entry point — submit, search, info, install, list, serve commands.

Usage:
    shipyard submit <submission.json> [--template basic|comprehensive]
    shipyard search [query] [--category C] [--sort downloads]
    shipyard info <package>
    shipyard install <package> [--version 1.2.0]
    shipyard list [--environment production]
    shipyard serve [--host 0.0.0.0] [--port 8080]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from shipyard.version import __version__

if TYPE_CHECKING:
    from shipyard.config.settings import Settings

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    from shipyard.config.settings import load_settings

    settings = load_settings()
    _setup_logging(settings, args.verbose)

    try:
        if args.command == "serve":
            return _cmd_serve(args, settings)
        return asyncio.run(args.func(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="shipyard",
        description=f"Shipyard v{__version__} — submission build pipeline and package registry",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- submit ---
    p_submit = subparsers.add_parser(
        "submit", help="Run the build pipeline for a submission form (JSON)",
    )
    p_submit.add_argument("form", type=Path, help="Path to submission JSON")
    p_submit.add_argument(
        "-t", "--template", default="comprehensive",
        choices=["basic", "comprehensive"],
        help="Pipeline template (default: comprehensive)",
    )
    p_submit.add_argument(
        "--developer", default="", help="Developer id recorded as package author",
    )
    p_submit.set_defaults(func=_cmd_submit)

    # --- search ---
    p_search = subparsers.add_parser("search", help="Search published packages")
    p_search.add_argument("query", nargs="?", default=None, help="Free-text query")
    p_search.add_argument("--category", default=None)
    p_search.add_argument("--brand", default=None)
    p_search.add_argument(
        "--sort", default="relevance",
        choices=["relevance", "downloads", "rating", "updated", "created"],
    )
    p_search.add_argument("--limit", type=int, default=20)
    p_search.set_defaults(func=_cmd_search)

    # --- info ---
    p_info = subparsers.add_parser("info", help="Show a package and its versions")
    p_info.add_argument("package", help="Package name")
    p_info.set_defaults(func=_cmd_info)

    # --- install ---
    p_install = subparsers.add_parser("install", help="Install a package locally")
    p_install.add_argument("package", help="Package name")
    p_install.add_argument(
        "--version", dest="pkg_version", default="latest",
        help="Exact version or 'latest' (default: latest)",
    )
    p_install.add_argument(
        "--environment", default="production",
        choices=["development", "staging", "production"],
    )
    p_install.set_defaults(func=_cmd_install)

    # --- list ---
    p_list = subparsers.add_parser("list", help="List locally installed packages")
    p_list.add_argument(
        "--environment", default=None,
        choices=["development", "staging", "production"],
        help="Only show installs for this environment",
    )
    p_list.set_defaults(func=_cmd_list)

    # --- serve ---
    p_serve = subparsers.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--host", default=None, help="Bind host (default: API_HOST)")
    p_serve.add_argument("--port", type=int, default=None, help="Bind port (default: API_PORT)")
    p_serve.set_defaults(func=_cmd_serve)

    return parser


async def _cmd_submit(args: argparse.Namespace, settings: Settings) -> int:
    """Run one submission through the pipeline and wait for the outcome."""
    from shipyard.core.models import DeveloperSubmissionForm
    from shipyard.registry.store_factory import create_registry
    from shipyard.submission.service import create_submission_service

    form_path: Path = args.form
    if not form_path.is_file():
        logger.error("File not found: %s", form_path)
        return 1

    form = DeveloperSubmissionForm.model_validate_json(form_path.read_text(encoding="utf-8"))
    registry = create_registry(settings)
    service = create_submission_service(settings, publisher=registry)

    repository_id = await service.submit(form, args.template, args.developer)
    record = await service.wait(repository_id)
    status = await service.get_status(repository_id)
    pipeline = status.latest_pipeline if status else None

    print(f"\nSubmission {repository_id}: {record.status if record else 'unknown'}")
    if pipeline is not None:
        for step in pipeline.steps:
            print(f"  {step.name:<15} {step.status:<8} attempts={step.attempts}")
        if pipeline.package_url:
            print(f"  Package URL:  {pipeline.package_url}")
        if pipeline.error_message:
            print(f"  Error:        {pipeline.error_message}")
    return 0 if record is not None and record.status == "approved" else 2


async def _cmd_search(args: argparse.Namespace, settings: Settings) -> int:
    """Search the registry and print matches with facet counts."""
    from shipyard.registry.models import PackageSearchFilters
    from shipyard.registry.store_factory import create_registry

    registry = create_registry(settings)
    result = await registry.search_packages(
        PackageSearchFilters(
            query=args.query,
            category=args.category,
            brand=args.brand,
            sort=args.sort,
            limit=args.limit,
        )
    )
    print(f"\n{result.total_count} package(s) found")
    for package in result.packages:
        print(f"  {package.package_name}@{package.version}  {package.description[:60]}")
    if result.facets.categories:
        counts = ", ".join(f"{f.name} ({f.count})" for f in result.facets.categories)
        print(f"  Categories:   {counts}")
    if result.suggestions:
        print(f"  Did you mean: {', '.join(result.suggestions)}")
    return 0


async def _cmd_info(args: argparse.Namespace, settings: Settings) -> int:
    """Print a package record and its version history."""
    from shipyard.registry.store_factory import create_registry

    registry = create_registry(settings)
    package = await registry.get_package(args.package)
    if package is None:
        logger.error("Package not found: %s", args.package)
        return 1
    versions = await registry.get_package_versions(args.package)
    print(json.dumps(package.model_dump(mode="json", by_alias=True), indent=2))
    print("\nVersions:")
    for version in versions:
        marker = " (latest)" if version.is_latest else ""
        print(f"  {version.version}{marker}  downloads={version.download_count}")
    return 0


async def _cmd_install(args: argparse.Namespace, settings: Settings) -> int:
    """Resolve and install a package with its dependencies."""
    from shipyard.registry.models import PackageInstallOptions
    from shipyard.registry.store_factory import create_registry

    registry = create_registry(settings)
    result = await registry.install_package(
        args.package,
        PackageInstallOptions(version=args.pkg_version, environment=args.environment),
    )
    if not result.success:
        for error in result.errors:
            logger.error("%s", error)
        return 1
    print(f"\nInstalled {args.package}@{result.version} into {result.install_path}")
    if result.dependencies:
        print(f"  Dependencies: {', '.join(result.dependencies)}")
    for warning in result.warnings:
        print(f"  Warning:      {warning}")
    return 0


async def _cmd_list(args: argparse.Namespace, settings: Settings) -> int:
    """Print the packages installed under the install root."""
    from shipyard.registry.downloader import INSTALL_MANIFEST

    root = settings.install_root.expanduser()
    paths = sorted(root.rglob(INSTALL_MANIFEST)) if root.is_dir() else []
    manifests = []
    for path in paths:
        try:
            manifest = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Skipping unreadable install manifest %s: %s", path, e)
            continue
        if args.environment and manifest.get("environment") != args.environment:
            continue
        manifests.append((manifest, path.parent))

    print(f"\n{len(manifests)} installed package(s) in {root}")
    for manifest, install_dir in manifests:
        modules = manifest.get("enabledModules") or []
        line = (
            f"  {manifest.get('package')}@{manifest.get('version')}"
            f"  [{manifest.get('environment')}]  {install_dir}"
        )
        if modules:
            line += f"  modules={','.join(modules)}"
        print(line)
    return 0


def _cmd_serve(args: argparse.Namespace, settings: Settings) -> int:
    """Serve the HTTP API with uvicorn."""
    import uvicorn

    from shipyard.api.app import create_app

    app = create_app(settings)
    uvicorn.run(
        app,
        host=args.host or settings.api_host,
        port=args.port or settings.api_port,
        log_config=None,
    )
    return 0


def _setup_logging(settings: Settings, verbose: bool) -> None:
    """Configure logging for CLI usage."""
    from shipyard.logging.logger import quiet_libraries, setup_logging

    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=str(settings.log_file) if settings.log_file else None,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )
    if not verbose:
        quiet_libraries()


if __name__ == "__main__":
    sys.exit(main())
