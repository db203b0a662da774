# src/api/app.py — v1
"""FastAPI application factory.

Usage:
    from shipyard.api.app import create_app
    app = create_app()            # services wired from .env settings
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from shipyard.api.deps import AppServices
from shipyard.api.routes import packages_router, submissions_router
from shipyard.config.settings import Settings, load_settings
from shipyard.core.errors import ConfigurationError, RegistryError, RegistryErrorKind
from shipyard.registry.service import PackageRegistry
from shipyard.registry.store_factory import create_registry
from shipyard.submission.service import SubmissionService, create_submission_service
from shipyard.version import __version__

logger = logging.getLogger(__name__)

_REGISTRY_STATUS = {
    RegistryErrorKind.CONFLICT: 409,
    RegistryErrorKind.PACKAGE_NOT_FOUND: 404,
    RegistryErrorKind.VERSION_NOT_FOUND: 404,
}


async def _registry_error_handler(request: Request, exc: RegistryError) -> JSONResponse:
    return JSONResponse(
        status_code=_REGISTRY_STATUS.get(exc.kind, 400),
        content={"detail": str(exc), "error": exc.details()},
    )


async def _configuration_error_handler(
    request: Request, exc: ConfigurationError,
) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


def create_app(
    settings: Settings | None = None,
    registry: PackageRegistry | None = None,
    submissions: SubmissionService | None = None,
) -> FastAPI:
    """Build the HTTP app around a registry and a submission service.

    Services not given are created from settings.
    """
    settings = settings or load_settings()
    registry = registry or create_registry(settings)
    submissions = submissions or create_submission_service(settings, publisher=registry)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await submissions.shutdown()

    app = FastAPI(title="Shipyard", version=__version__, lifespan=lifespan)
    app.state.services = AppServices(
        settings=settings, registry=registry, submissions=submissions,
    )
    app.add_exception_handler(RegistryError, _registry_error_handler)
    app.add_exception_handler(ConfigurationError, _configuration_error_handler)
    app.include_router(packages_router)
    app.include_router(submissions_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    return app
