"""
Connection Broker - what is available, what is connected, is it healthy.

The integration list is served from a short-TTL per-tenant cache; cache
misses run the datastore query under a hard timeout and degrade to an
empty-but-valid payload instead of failing the dashboard.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from botmakers.config import CATEGORIES, IntegrationMode, get_integration_definition, get_integration_definitions
from botmakers.config.integration_catalog import serialize_credential_fields
from botmakers.db.models import Connection, IntegrationConfig, Tenant
from botmakers.models import ConnectionSummary
from botmakers.services.cache import TTLCache
from botmakers.services.connection_service import get_or_create_tenant
from botmakers.services.validators import ValidationErrorCode, has_validator, validate_integration
from botmakers.services.vault import CredentialVault

logger = logging.getLogger(__name__)

EXPIRED_CODES = {ValidationErrorCode.TOKEN_EXPIRED, ValidationErrorCode.TOKEN_EXPIRED_NO_REFRESH}


def _empty_stats() -> dict[str, int]:
    return {"total": 0, "connected": 0, "included": 0, "byok": 0}


class ConnectionBroker:
    """Per-tenant integration listing and connection health checks."""

    def __init__(
        self,
        cache: TTLCache,
        session_factory: async_sessionmaker[AsyncSession],
        vault: CredentialVault,
        query_timeout: float = 8.0,
        retry_after: int = 10,
    ) -> None:
        self.cache = cache
        self.vault = vault
        self.query_timeout = query_timeout
        self.retry_after = retry_after
        self._session_factory = session_factory

    # =========================================================================
    # LIST
    # =========================================================================

    async def list_integrations(self, tenant_id: str) -> dict[str, Any]:
        """Integration list for a tenant; ``success`` is False when degraded."""
        cached = self.cache.get(tenant_id)
        if cached is not None:
            return copy.deepcopy(cached)

        try:
            # wait_for cancels the query task on timeout
            result = await asyncio.wait_for(self._load_integrations(tenant_id), timeout=self.query_timeout)
        except asyncio.TimeoutError:
            logger.error(f"Connections list for tenant {tenant_id} timed out after {self.query_timeout}s")
            return self.degraded_response("Database query timeout")
        except Exception as e:
            logger.error(f"Connections list error for tenant {tenant_id}: {e}", exc_info=True)
            return self.degraded_response(str(e) or "Failed to list integrations")

        self.cache.set(tenant_id, result)
        return copy.deepcopy(result)

    def degraded_response(self, error: str) -> dict[str, Any]:
        return {
            "success": False,
            "error": error,
            "integrations": [],
            "byCategory": {},
            "stats": _empty_stats(),
            "categories": copy.deepcopy(CATEGORIES),
            "retryAfter": self.retry_after,
        }

    def invalidate(self, *keys: str) -> None:
        """Evict cached lists after a write that changes them."""
        self.cache.invalidate(*keys)

    async def _load_integrations(self, tenant_id: str) -> dict[str, Any]:
        async with self._session_factory() as session:
            tenant = await get_or_create_tenant(session, tenant_id)
            await session.commit()

            config_result = await session.execute(select(IntegrationConfig))
            configs = {c.integration_id: c for c in config_result.scalars().all()}

            connection_result = await session.execute(
                select(Connection)
                .where(Connection.tenant_id == tenant.id, Connection.is_active.is_(True))
                .order_by(Connection.last_used_at.desc().nulls_last(), Connection.created_at.desc())
            )
            connections: dict[str, Connection] = {}
            for connection in connection_result.scalars().all():
                connections.setdefault(connection.integration_id, connection)

            integrations = []
            for definition in get_integration_definitions():
                config = configs.get(definition["id"])
                if config is not None and not config.is_active:
                    continue

                mode = IntegrationMode(config.mode) if config else definition["default_mode"]
                if mode == IntegrationMode.DISABLED:
                    continue

                connection = connections.get(definition["id"])
                byok = mode == IntegrationMode.BYOK
                integrations.append(
                    {
                        "id": definition["id"],
                        "displayName": definition["display_name"],
                        "description": definition["description"],
                        "category": definition["category"],
                        "iconUrl": definition.get("icon_url"),
                        "docsUrl": definition.get("docs_url"),
                        "mode": mode.value,
                        "authType": definition["auth_type"],
                        "isConnected": connection is not None,
                        "connection": (
                            ConnectionSummary.model_validate(connection).model_dump(mode="json") if connection else None
                        ),
                        "credentialFields": serialize_credential_fields(definition) if byok else None,
                        "oauthScopes": (
                            definition.get("oauth_scopes") if byok and definition["auth_type"] == "oauth2" else None
                        ),
                        "setupInstructions": config.setup_instructions if config else None,
                    }
                )

        by_category: dict[str, list[dict[str, Any]]] = {}
        for item in integrations:
            by_category.setdefault(item["category"], []).append(item)

        return {
            "success": True,
            "integrations": integrations,
            "byCategory": by_category,
            "stats": {
                "total": len(integrations),
                "connected": sum(1 for i in integrations if i["isConnected"]),
                "included": sum(1 for i in integrations if i["mode"] == IntegrationMode.INCLUDED.value),
                "byok": sum(1 for i in integrations if i["mode"] == IntegrationMode.BYOK.value),
            },
            "categories": copy.deepcopy(CATEGORIES),
        }

    # =========================================================================
    # HEALTH
    # =========================================================================

    async def health_check(
        self,
        db: AsyncSession,
        tenant: Tenant,
        client: Optional[httpx.AsyncClient] = None,
    ) -> dict[str, Any]:
        """Validate every active connection of a tenant in parallel."""
        result = await db.execute(
            select(Connection).where(Connection.tenant_id == tenant.id, Connection.is_active.is_(True))
        )
        connections = list(result.scalars().all())

        checks = await asyncio.gather(*(self._check_connection(c, client) for c in connections))

        return {
            "success": True,
            "summary": {
                "total": len(checks),
                "healthy": sum(1 for c in checks if c["status"] == "healthy"),
                "unhealthy": sum(1 for c in checks if c["status"] == "unhealthy"),
                "expired": sum(1 for c in checks if c["status"] == "expired"),
            },
            "connections": checks,
            "checkedAt": datetime.now(timezone.utc).isoformat(),
        }

    async def _check_connection(self, connection: Connection, client: Optional[httpx.AsyncClient]) -> dict[str, Any]:
        definition = get_integration_definition(connection.integration_id)
        entry: dict[str, Any] = {
            "integrationId": connection.integration_id,
            "integrationName": definition["display_name"] if definition else connection.integration_id,
            "connectionId": connection.id,
            "connectionName": connection.name,
            "lastUsed": connection.last_used_at.isoformat() if connection.last_used_at else None,
            "lastError": connection.last_error,
            "hasAutomatedValidation": has_validator(connection.integration_id),
        }

        try:
            validation = await validate_integration(
                connection.integration_id,
                self.vault,
                credentials_encrypted=connection.credentials_encrypted,
                access_token=connection.access_token,
                refresh_token=connection.refresh_token,
                token_expires_at=connection.token_expires_at,
                client=client,
            )
        except Exception as e:
            logger.error(f"Health check failed for connection {connection.id}: {e}", exc_info=True)
            entry.update(
                status="unhealthy",
                message=str(e) or "Health check failed",
                errorCode=ValidationErrorCode.UNKNOWN_ERROR.value,
            )
            return entry

        if validation.success:
            status = "healthy"
        elif validation.error_code in EXPIRED_CODES:
            status = "expired"
        else:
            status = "unhealthy"

        payload = validation.to_dict()
        entry.update(
            status=status,
            message=validation.message,
            latencyMs=payload.get("latencyMs"),
            details=payload.get("details"),
            errorCode=payload.get("errorCode"),
        )
        return entry
