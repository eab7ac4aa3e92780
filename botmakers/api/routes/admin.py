"""Admin API routes for platform integration configuration."""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from botmakers.api.dependencies import Broker, RequireApiKey, Vault, VendorClient
from botmakers.api.errors import http_error
from botmakers.config import get_integration_definition
from botmakers.db.session import get_db
from botmakers.models import IntegrationConfigUpdate
from botmakers.services import admin_service, usage
from botmakers.services.validators import has_validator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/integrations", tags=["admin"])


@router.get("")
async def list_integrations(vault: Vault, _: RequireApiKey, db: AsyncSession = Depends(get_db)) -> dict[str, Any]:
    """Full catalog merged with platform configs."""
    try:
        return await admin_service.list_admin_integrations(db, vault)
    except Exception as e:
        logger.error(f"Error listing admin integrations: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to list integrations")


@router.get("/usage/summary")
async def usage_summary(
    _: RequireApiKey,
    period: Optional[str] = Query(None, description="Billing period (YYYY-MM)"),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Cost and revenue of platform-provided integrations."""
    try:
        return await usage.get_usage_summary(db, period)
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error building usage summary: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to get usage summary")


@router.get("/{integration_id}")
async def get_integration(
    integration_id: str,
    vault: Vault,
    _: RequireApiKey,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    try:
        integration = await admin_service.get_admin_integration(db, vault, integration_id)
    except ValueError as e:
        raise http_error(e)
    return {"success": True, "integration": integration}


@router.put("/{integration_id}")
async def update_integration(
    integration_id: str,
    request: IntegrationConfigUpdate,
    broker: Broker,
    vault: Vault,
    _: RequireApiKey,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Upsert the platform config (mode, pricing, platform credentials)."""
    try:
        config = await admin_service.upsert_integration_config(db, vault, integration_id, request)
        await db.commit()
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error updating integration {integration_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update integration")

    # Mode changes affect every tenant's list
    broker.cache.clear()

    definition = get_integration_definition(integration_id)
    return {
        "success": True,
        "message": f'Integration "{definition["display_name"] if definition else integration_id}" updated',
        "integration": admin_service.serialize_admin_integration(definition, config, vault),
    }


@router.post("/{integration_id}/test")
async def test_integration(
    integration_id: str,
    vault: Vault,
    client: VendorClient,
    _: RequireApiKey,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Live validation of the platform credentials."""
    try:
        result = await admin_service.check_platform_credentials(db, vault, integration_id, client=client)
    except ValueError as e:
        raise http_error(e)
    return {**result.to_dict(), "hasAutomatedValidation": has_validator(integration_id)}


@router.delete("/{integration_id}/credentials")
async def delete_credentials(
    integration_id: str,
    broker: Broker,
    _: RequireApiKey,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Remove platform credentials and disable the integration."""
    try:
        await admin_service.clear_platform_credentials(db, integration_id)
        await db.commit()
    except ValueError as e:
        raise http_error(e)

    broker.cache.clear()
    return {"success": True, "message": "Credentials removed and integration disabled"}
