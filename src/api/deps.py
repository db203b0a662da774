# src/api/deps.py — v1
"""Request dependencies: service lookup and caller authentication.

Developer tokens are configured as DEVELOPER_TOKENS="alice:tok1,bob:tok2".
A bare token (no "id:" prefix) authenticates as developer "developer".
"""

from __future__ import annotations

import hmac
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, Request, status

from shipyard.config.settings import Settings
from shipyard.registry.service import PackageRegistry
from shipyard.submission.service import SubmissionService

DEFAULT_DEVELOPER_ID = "developer"


@dataclass
class AppServices:
    """Long-lived services attached to app.state.services."""

    settings: Settings
    registry: PackageRegistry
    submissions: SubmissionService


def developer_token_map(settings: Settings) -> dict[str, str]:
    """Map bearer token -> developer id."""
    tokens: dict[str, str] = {}
    for entry in settings.developer_tokens_list:
        developer_id, sep, token = entry.partition(":")
        if sep:
            tokens[token.strip()] = developer_id.strip()
        else:
            tokens[entry] = DEFAULT_DEVELOPER_ID
    return tokens


def get_services(request: Request) -> AppServices:
    return request.app.state.services


def get_registry(services: AppServices = Depends(get_services)) -> PackageRegistry:
    return services.registry


def get_submissions(services: AppServices = Depends(get_services)) -> SubmissionService:
    return services.submissions


def require_developer(
    authorization: str | None = Header(default=None),
    services: AppServices = Depends(get_services),
) -> str:
    """Authenticate a developer bearer token; return the developer id."""
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    for known, developer_id in developer_token_map(services.settings).items():
        if hmac.compare_digest(known, token.strip()):
            return developer_id
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def require_service_key(
    x_api_key: str | None = Header(default=None),
    services: AppServices = Depends(get_services),
) -> None:
    """Authenticate internal service calls by X-API-Key."""
    expected = services.settings.service_api_key
    if not expected or not x_api_key or not hmac.compare_digest(expected, x_api_key):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")
