"""Tenant connection management (BYOK connect, update, disconnect, test)."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from botmakers.config import IntegrationDefinition, IntegrationMode, get_integration_definition
from botmakers.config.integration_catalog import required_fields, serialize_credential_fields
from botmakers.db.models import Connection, IntegrationConfig, Tenant, utcnow
from botmakers.models import ConnectionDetail, ConnectionSummary
from botmakers.services.credentials import get_integration_config
from botmakers.services.validators import ValidationResult, has_validator, validate_integration
from botmakers.services.vault import CredentialVault

logger = logging.getLogger(__name__)


class TenantNotFoundError(ValueError):
    pass


class IntegrationNotFoundError(ValueError):
    pass


class ConnectionNotFoundError(ValueError):
    pass


class IntegrationUnavailableError(ValueError):
    """The integration's mode does not allow tenant connections."""


class MissingCredentialFieldsError(ValueError):
    pass


class ConnectionExistsError(ValueError):
    def __init__(self, message: str, existing_connection_id: str) -> None:
        super().__init__(message)
        self.existing_connection_id = existing_connection_id


# =============================================================================
# TENANTS
# =============================================================================


async def find_tenant(db: AsyncSession, tenant_id: str) -> Optional[Tenant]:
    """Look a tenant up by id or slug."""
    result = await db.execute(select(Tenant).where(or_(Tenant.id == tenant_id, Tenant.slug == tenant_id)))
    return result.scalars().first()


async def get_tenant(db: AsyncSession, tenant_id: str) -> Tenant:
    tenant = await find_tenant(db, tenant_id)
    if tenant is None:
        raise TenantNotFoundError("Tenant not found")
    return tenant


async def get_or_create_tenant(db: AsyncSession, tenant_id: str) -> Tenant:
    """Look a tenant up, creating it (id = slug = name) when missing."""
    tenant = await find_tenant(db, tenant_id)
    if tenant is None:
        tenant = Tenant(id=tenant_id, name=tenant_id, slug=tenant_id)
        db.add(tenant)
        await db.flush()
        logger.info(f"Auto-created tenant {tenant_id}")
    return tenant


def tenant_cache_keys(tenant: Tenant, requested_id: Optional[str] = None) -> tuple[str, ...]:
    """Every key a tenant's integration list may be cached under."""
    keys = {tenant.id}
    if tenant.slug:
        keys.add(tenant.slug)
    if requested_id:
        keys.add(requested_id)
    return tuple(keys)


# =============================================================================
# HELPERS
# =============================================================================


def effective_mode(definition: IntegrationDefinition, config: Optional[IntegrationConfig]) -> IntegrationMode:
    """Platform config overrides the catalog default."""
    if config is not None:
        return IntegrationMode(config.mode)
    return definition["default_mode"]


def _require_definition(integration_id: str) -> IntegrationDefinition:
    definition = get_integration_definition(integration_id)
    if definition is None:
        raise IntegrationNotFoundError(f"Unknown integration: {integration_id}")
    return definition


async def _get_tenant_connection(
    db: AsyncSession,
    tenant: Tenant,
    integration_id: str,
    connection_id: str,
) -> Connection:
    result = await db.execute(
        select(Connection).where(
            Connection.id == connection_id,
            Connection.tenant_id == tenant.id,
            Connection.integration_id == integration_id,
        )
    )
    connection = result.scalar_one_or_none()
    if connection is None:
        raise ConnectionNotFoundError("Connection not found")
    return connection


def serialize_connection_detail(connection: Connection, vault: CredentialVault) -> dict[str, Any]:
    detail = ConnectionDetail.model_validate(connection)
    if connection.credentials_encrypted:
        detail.masked_credentials = vault.masked_credentials(connection.credentials_encrypted)
    return detail.model_dump(mode="json")


# =============================================================================
# OPERATIONS
# =============================================================================


async def get_connection_details(
    db: AsyncSession,
    vault: CredentialVault,
    tenant: Tenant,
    integration_id: str,
) -> dict[str, Any]:
    """Definition, effective mode and the tenant's current connection."""
    definition = _require_definition(integration_id)
    config = await get_integration_config(db, integration_id)
    mode = effective_mode(definition, config)

    if mode == IntegrationMode.DISABLED:
        raise IntegrationUnavailableError("This integration is not available")

    result = await db.execute(
        select(Connection)
        .where(
            Connection.tenant_id == tenant.id,
            Connection.integration_id == integration_id,
            Connection.is_active.is_(True),
        )
        .order_by(Connection.created_at.desc())
    )
    connection = result.scalars().first()

    return {
        "success": True,
        "isConnected": connection is not None,
        "integration": {
            "id": definition["id"],
            "displayName": definition["display_name"],
            "description": definition["description"],
            "category": definition["category"],
            "iconUrl": definition.get("icon_url"),
            "docsUrl": definition.get("docs_url"),
            "mode": mode.value,
            "authType": definition["auth_type"],
            "credentialFields": serialize_credential_fields(definition) if mode == IntegrationMode.BYOK else None,
            "oauthScopes": definition.get("oauth_scopes") or None,
            "setupInstructions": config.setup_instructions if config else None,
            "hasAutomatedValidation": has_validator(integration_id),
        },
        "connection": serialize_connection_detail(connection, vault) if connection else None,
    }


async def create_connection(
    db: AsyncSession,
    vault: CredentialVault,
    tenant: Tenant,
    integration_id: str,
    credentials: Optional[dict[str, str]] = None,
    name: Optional[str] = None,
    account_email: Optional[str] = None,
) -> Connection:
    """Create a BYOK connection after checking mode and required fields."""
    definition = _require_definition(integration_id)
    config = await get_integration_config(db, integration_id)
    mode = effective_mode(definition, config)

    if mode != IntegrationMode.BYOK:
        raise IntegrationUnavailableError(
            "This integration is provided by the platform. No connection needed."
            if mode == IntegrationMode.INCLUDED
            else "This integration is not available."
        )

    if definition["auth_type"] == "api_key":
        missing = [f["label"] for f in required_fields(definition) if not (credentials or {}).get(f["key"])]
        if missing:
            raise MissingCredentialFieldsError(f"Missing required fields: {', '.join(missing)}")

    query = select(Connection).where(
        Connection.tenant_id == tenant.id,
        Connection.integration_id == integration_id,
        Connection.is_active.is_(True),
    )
    if account_email:
        query = query.where(Connection.account_email == account_email)
    else:
        query = query.where(Connection.account_email.is_(None))

    existing = (await db.execute(query)).scalars().first()
    if existing is not None:
        raise ConnectionExistsError("A connection already exists for this integration", existing.id)

    connection = Connection(
        tenant_id=tenant.id,
        integration_id=integration_id,
        name=name or f"{definition['display_name']} Connection",
        credentials_encrypted=vault.store_credentials(credentials) if credentials else None,
        account_email=account_email,
        status="active",
    )
    db.add(connection)
    await db.flush()
    await db.refresh(connection)

    logger.info(f"Created {integration_id} connection {connection.id} for tenant {tenant.id}")
    return connection


async def update_connection(
    db: AsyncSession,
    vault: CredentialVault,
    tenant: Tenant,
    integration_id: str,
    connection_id: str,
    name: Optional[str] = None,
    credentials: Optional[dict[str, str]] = None,
) -> Connection:
    """Rename and/or replace credentials; the status is reset to active."""
    connection = await _get_tenant_connection(db, tenant, integration_id, connection_id)

    if credentials:
        connection.credentials_encrypted = vault.store_credentials(credentials)
    if name:
        connection.name = name

    connection.status = "active"
    connection.last_error = None
    connection.updated_at = utcnow()

    await db.flush()
    await db.refresh(connection)

    logger.info(f"Updated connection {connection_id} for tenant {tenant.id}")
    return connection


async def delete_connection(
    db: AsyncSession,
    tenant: Tenant,
    integration_id: str,
    connection_id: str,
) -> None:
    """Soft delete: the row stays, ``is_active`` goes false."""
    connection = await _get_tenant_connection(db, tenant, integration_id, connection_id)
    connection.is_active = False
    await db.flush()

    logger.info(f"Disconnected connection {connection_id} for tenant {tenant.id}")


async def run_connection_test(
    db: AsyncSession,
    vault: CredentialVault,
    tenant: Tenant,
    integration_id: str,
    connection_id: str,
    client: Optional[httpx.AsyncClient] = None,
) -> ValidationResult:
    """Run the live validator and record the outcome on the connection."""
    connection = await _get_tenant_connection(db, tenant, integration_id, connection_id)

    if not connection.credentials_encrypted and not connection.access_token:
        raise MissingCredentialFieldsError("No credentials found for this connection")

    result = await validate_integration(
        integration_id,
        vault,
        credentials_encrypted=connection.credentials_encrypted,
        access_token=connection.access_token,
        refresh_token=connection.refresh_token,
        token_expires_at=connection.token_expires_at,
        client=client,
    )

    connection.status = "active" if result.success else "error"
    connection.last_used_at = utcnow()
    connection.last_error = None if result.success else result.message
    await db.flush()

    logger.info(f"Tested connection {connection_id} ({integration_id}): success={result.success}")
    return result


def serialize_connection(connection: Connection) -> dict[str, Any]:
    return ConnectionSummary.model_validate(connection).model_dump(mode="json")
