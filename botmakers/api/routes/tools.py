"""API routes for listing and executing integration tools."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from botmakers.api.dependencies import Registry, RequireApiKey, Resolver
from botmakers.api.errors import CREDENTIAL_FAILURE_STATUS, http_error
from botmakers.db.session import get_db
from botmakers.integrations.types import IntegrationCredentials
from botmakers.models import ToolExecuteRequest
from botmakers.services import connection_service
from botmakers.services.credentials import CredentialFailure
from botmakers.services.oauth import refresh_if_expired
from botmakers.services.usage import track_platform_usage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tools", tags=["tools"])


@router.get("")
async def list_tools(registry: Registry, _: RequireApiKey) -> dict[str, Any]:
    """Tools exposed by configured integrations."""
    tools = [tool.to_dict() for tool in registry.get_all_tools()]
    return {"success": True, "count": len(tools), "tools": tools}


@router.post("/{tool_name}/execute")
async def execute_tool(
    tool_name: str,
    request: ToolExecuteRequest,
    registry: Registry,
    resolver: Resolver,
    _: RequireApiKey,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Resolve the tenant's credentials and run one tool call."""
    match = registry.get_tool(tool_name)
    if match is None:
        raise HTTPException(status_code=404, detail=f"Unknown tool: {tool_name}")
    integration, _tool = match

    try:
        tenant = await connection_service.get_tenant(db, request.tenant_id)
    except ValueError as e:
        raise http_error(e)

    await refresh_if_expired(db, integration, tenant.id, request.account_email)
    await db.commit()

    resolved = await resolver.resolve(db, integration.id, tenant.id, request.account_email)
    if isinstance(resolved, CredentialFailure):
        raise HTTPException(
            status_code=CREDENTIAL_FAILURE_STATUS[resolved.code],
            detail={"error": resolved.error, "errorCode": resolved.code.value},
        )

    credentials = IntegrationCredentials(
        integration_id=integration.id,
        tenant_id=tenant.id,
        values=resolved.credentials,
        access_token=resolved.credentials.get("accessToken"),
        refresh_token=resolved.credentials.get("refreshToken"),
        account_email=resolved.account_email,
    )

    try:
        result = await integration.execute_tool(tool_name, request.params, credentials)
    except Exception as e:
        logger.error(f"Tool {tool_name} failed for tenant {tenant.id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Tool execution failed: {e}")

    if result.success:
        await track_platform_usage(db, tenant.id, integration.id, tool_name)
        await db.commit()

    return {**result.to_dict(), "mode": resolved.mode.value}
