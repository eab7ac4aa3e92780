"""API dependencies for authentication and app-scoped services."""

from __future__ import annotations

import secrets
from typing import Annotated, Optional

import httpx
from fastapi import Depends, Header, HTTPException, Request, status

from botmakers.config import Settings
from botmakers.integrations.registry import IntegrationRegistry
from botmakers.services.broker import ConnectionBroker
from botmakers.services.credentials import CredentialResolver
from botmakers.services.vault import CredentialVault


async def verify_api_key(
    request: Request,
    x_api_key: Annotated[str | None, Header()] = None,
) -> None:
    """Verify the API key from the X-API-Key header.

    If api_key is not configured in settings, authentication is disabled.
    """
    settings = request.app.state.settings

    if not settings.api_key:
        return

    if not x_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if not secrets.compare_digest(x_api_key, settings.api_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_registry(request: Request) -> IntegrationRegistry:
    return request.app.state.registry


def get_broker(request: Request) -> ConnectionBroker:
    return request.app.state.broker


def get_resolver(request: Request) -> CredentialResolver:
    return request.app.state.resolver


def get_vault(request: Request) -> CredentialVault:
    return request.app.state.vault


def get_vendor_client(request: Request) -> Optional[httpx.AsyncClient]:
    """HTTP client override for vendor calls; None means the shared client."""
    return getattr(request.app.state, "http_client", None)


# Dependencies to use in routes
RequireApiKey = Annotated[None, Depends(verify_api_key)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
Registry = Annotated[IntegrationRegistry, Depends(get_registry)]
Broker = Annotated[ConnectionBroker, Depends(get_broker)]
Resolver = Annotated[CredentialResolver, Depends(get_resolver)]
Vault = Annotated[CredentialVault, Depends(get_vault)]
VendorClient = Annotated[Optional[httpx.AsyncClient], Depends(get_vendor_client)]
