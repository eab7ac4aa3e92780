"""API routes for the integration registry and OAuth connect flow."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from botmakers.api.dependencies import AppSettings, Broker, Registry, RequireApiKey, Resolver
from botmakers.config import Settings, get_integration_definition
from botmakers.db.session import get_db
from botmakers.integrations.types import OAuthError
from botmakers.models import ConnectionSummary
from botmakers.services import connection_service
from botmakers.services.connection_service import tenant_cache_keys
from botmakers.services.credentials import find_active_connections
from botmakers.services.oauth import store_oauth_connection

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/integrations", tags=["integrations"])


def _settings_redirect(settings: Settings, **params: str) -> RedirectResponse:
    return RedirectResponse(f"{settings.app_url.rstrip('/')}/settings?{urlencode(params)}", status_code=302)


@router.get("")
async def list_integrations(registry: Registry, _: RequireApiKey) -> dict[str, Any]:
    """Registered adapters with their configured state."""
    return {"success": True, "integrations": registry.list_integrations()}


@router.get("/{integration_id}/connect/{tenant_id}")
async def connect(
    integration_id: str,
    tenant_id: str,
    registry: Registry,
    db: AsyncSession = Depends(get_db),
) -> RedirectResponse:
    """Start the OAuth flow by redirecting to the vendor's consent screen."""
    integration = registry.get(integration_id)
    if integration is None:
        raise HTTPException(status_code=404, detail=f"Unknown integration: {integration_id}")
    if not integration.is_configured():
        raise HTTPException(status_code=400, detail=f"Integration {integration_id} is not configured")
    if not integration.supports_oauth:
        raise HTTPException(status_code=400, detail=f"Integration {integration_id} does not support OAuth")

    tenant = await connection_service.get_or_create_tenant(db, tenant_id)
    state = json.dumps({"tenantId": tenant.id, "integrationId": integration_id})
    return RedirectResponse(integration.get_auth_url(tenant.id, state), status_code=302)


@router.get("/{integration_id}/status/{tenant_id}")
async def integration_status(
    integration_id: str,
    tenant_id: str,
    resolver: Resolver,
    _: RequireApiKey,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Whether a tenant can use an integration, and which accounts it has connected."""
    if get_integration_definition(integration_id) is None:
        raise HTTPException(status_code=404, detail=f"Unknown integration: {integration_id}")

    tenant = await connection_service.get_or_create_tenant(db, tenant_id)
    availability = await resolver.check_availability(db, integration_id, tenant.id)
    connections = await find_active_connections(db, integration_id, tenant.id)

    return {
        "success": True,
        "integrationId": integration_id,
        "connected": bool(connections),
        **availability,
        "connections": [ConnectionSummary.model_validate(c).model_dump(mode="json") for c in connections],
    }


@router.get("/callback/{integration_id}")
async def oauth_callback(
    integration_id: str,
    registry: Registry,
    broker: Broker,
    settings: AppSettings,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> RedirectResponse:
    """Exchange the authorization code and store the tenant's OAuth connection."""
    if error:
        logger.warning(f"OAuth error for {integration_id}: {error}")
        return _settings_redirect(settings, error="oauth_failed", integration=integration_id, message=error)

    if not code or not state:
        return _settings_redirect(settings, error="missing_params", integration=integration_id)

    integration = registry.get(integration_id)
    if integration is None or not integration.supports_oauth:
        return _settings_redirect(settings, error="unknown_integration", integration=integration_id)

    try:
        tenant_id = json.loads(state)["tenantId"]
    except (ValueError, KeyError, TypeError):
        tenant_id = state

    try:
        tenant = await connection_service.get_or_create_tenant(db, tenant_id)
        credentials = await integration.handle_callback(code, tenant.id)
        connection = await store_oauth_connection(db, tenant, credentials)
        await db.commit()
    except OAuthError as e:
        await db.rollback()
        logger.error(f"OAuth callback failed for {integration_id}: {e}")
        return _settings_redirect(settings, error="callback_failed", integration=integration_id, message=str(e))
    except Exception as e:
        await db.rollback()
        logger.error(f"Unexpected OAuth callback error for {integration_id}: {e}", exc_info=True)
        return _settings_redirect(settings, error="callback_failed", integration=integration_id, message="Unexpected error")

    broker.invalidate(*tenant_cache_keys(tenant, tenant_id))
    logger.info(f"Integration connected: {integration_id} for tenant {tenant.id} (connection {connection.id})")
    return _settings_redirect(
        settings,
        success="connected",
        integration=integration_id,
        email=connection.account_email or "",
    )
