"""API routes for tenant connections (BYOK connect, health, usage)."""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from botmakers.api.dependencies import Broker, RequireApiKey, Vault, VendorClient
from botmakers.api.errors import http_error
from botmakers.config import get_integration_definition
from botmakers.db.session import get_db
from botmakers.models import ConnectionCreate, ConnectionUpdate
from botmakers.services import connection_service, usage
from botmakers.services.connection_service import tenant_cache_keys
from botmakers.services.validators import has_validator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/connections", tags=["connections"])


@router.get("/{tenant_id}")
async def list_connections(tenant_id: str, broker: Broker, _: RequireApiKey) -> Any:
    """List available integrations and the tenant's connection status."""
    result = await broker.list_integrations(tenant_id)
    if not result["success"]:
        return JSONResponse(status_code=503, content=result)
    return result


# /usage and /health must be declared before /{tenant_id}/{integration_id}


@router.get("/{tenant_id}/usage")
async def get_usage(
    tenant_id: str,
    _: RequireApiKey,
    period: Optional[str] = Query(None, description="Billing period (YYYY-MM)"),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Billed usage of platform-provided integrations for this tenant."""
    try:
        tenant = await connection_service.get_tenant(db, tenant_id)
        return await usage.get_tenant_usage(db, tenant, period)
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error getting usage for tenant {tenant_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to get usage")


@router.get("/{tenant_id}/health")
async def get_health(
    tenant_id: str,
    broker: Broker,
    client: VendorClient,
    _: RequireApiKey,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Validate every active connection of the tenant."""
    try:
        tenant = await connection_service.get_tenant(db, tenant_id)
        return await broker.health_check(db, tenant, client=client)
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error checking connection health for tenant {tenant_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to check connection health")


@router.get("/{tenant_id}/{integration_id}")
async def get_connection(
    tenant_id: str,
    integration_id: str,
    vault: Vault,
    _: RequireApiKey,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Integration details, mode and the tenant's connection (credentials masked)."""
    try:
        tenant = await connection_service.get_or_create_tenant(db, tenant_id)
        return await connection_service.get_connection_details(db, vault, tenant, integration_id)
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error getting {integration_id} connection for tenant {tenant_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to get connection")


@router.post("/{tenant_id}/{integration_id}", status_code=201)
async def create_connection(
    tenant_id: str,
    integration_id: str,
    request: ConnectionCreate,
    broker: Broker,
    vault: Vault,
    _: RequireApiKey,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Create a BYOK connection."""
    try:
        tenant = await connection_service.get_or_create_tenant(db, tenant_id)
        connection = await connection_service.create_connection(
            db,
            vault,
            tenant,
            integration_id,
            credentials=request.credentials,
            name=request.name,
            account_email=request.account_email,
        )
        await db.commit()
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error creating {integration_id} connection for tenant {tenant_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create connection")

    broker.invalidate(*tenant_cache_keys(tenant, tenant_id))
    definition = get_integration_definition(integration_id)
    return {
        "success": True,
        "message": f"Connected to {definition['display_name'] if definition else integration_id}",
        "connection": connection_service.serialize_connection(connection),
    }


@router.put("/{tenant_id}/{integration_id}/{connection_id}")
async def update_connection(
    tenant_id: str,
    integration_id: str,
    connection_id: str,
    request: ConnectionUpdate,
    broker: Broker,
    vault: Vault,
    _: RequireApiKey,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Rename a connection or replace its credentials."""
    try:
        tenant = await connection_service.get_tenant(db, tenant_id)
        connection = await connection_service.update_connection(
            db,
            vault,
            tenant,
            integration_id,
            connection_id,
            name=request.name,
            credentials=request.credentials,
        )
        await db.commit()
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error updating connection {connection_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update connection")

    broker.invalidate(*tenant_cache_keys(tenant, tenant_id))
    return {
        "success": True,
        "message": "Connection updated",
        "connection": connection_service.serialize_connection(connection),
    }


@router.delete("/{tenant_id}/{integration_id}/{connection_id}")
async def delete_connection(
    tenant_id: str,
    integration_id: str,
    connection_id: str,
    broker: Broker,
    _: RequireApiKey,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Disconnect (soft delete) a connection."""
    try:
        tenant = await connection_service.get_tenant(db, tenant_id)
        await connection_service.delete_connection(db, tenant, integration_id, connection_id)
        await db.commit()
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error disconnecting connection {connection_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to disconnect")

    broker.invalidate(*tenant_cache_keys(tenant, tenant_id))
    return {"success": True, "message": "Connection disconnected"}


@router.post("/{tenant_id}/{integration_id}/{connection_id}/test")
async def test_connection(
    tenant_id: str,
    integration_id: str,
    connection_id: str,
    broker: Broker,
    vault: Vault,
    client: VendorClient,
    _: RequireApiKey,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Validate a connection against the vendor and record the outcome."""
    try:
        tenant = await connection_service.get_tenant(db, tenant_id)
        result = await connection_service.run_connection_test(
            db, vault, tenant, integration_id, connection_id, client=client
        )
        await db.commit()
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error testing connection {connection_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to test connection")

    broker.invalidate(*tenant_cache_keys(tenant, tenant_id))
    definition = get_integration_definition(integration_id)
    return {
        **result.to_dict(),
        "hasAutomatedValidation": has_validator(integration_id),
        "integrationName": definition["display_name"] if definition else integration_id,
    }
