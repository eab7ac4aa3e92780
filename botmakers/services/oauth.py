"""OAuth token bookkeeping: storing callback tokens and refreshing expired ones."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from botmakers.db.models import Connection, Tenant, as_utc
from botmakers.integrations.types import Integration, IntegrationCredentials, OAuthError
from botmakers.services.credentials import find_active_connections

logger = logging.getLogger(__name__)

# Refresh slightly before the vendor's stated expiry
REFRESH_SKEW = timedelta(seconds=60)


def token_needs_refresh(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    expires_at = as_utc(expires_at)
    if expires_at is None:
        return False
    now = now or datetime.now(timezone.utc)
    return expires_at <= now + REFRESH_SKEW


async def refresh_if_expired(
    db: AsyncSession,
    integration: Integration,
    tenant_id: str,
    account_email: Optional[str] = None,
) -> bool:
    """Refresh the tenant's OAuth token for an integration when it is due.

    Returns True when a new access token was stored. A rejected refresh marks
    the connection ``expired`` with the vendor's error in ``last_error``.
    """
    if not integration.supports_oauth:
        return False

    connections = await find_active_connections(db, integration.id, tenant_id, account_email)
    if not connections:
        return False

    connection = connections[0]
    if not connection.access_token or not token_needs_refresh(connection.token_expires_at):
        return False

    if not connection.refresh_token:
        connection.status = "expired"
        connection.last_error = "Access token expired and no refresh token available"
        await db.flush()
        return False

    credentials = IntegrationCredentials(
        integration_id=integration.id,
        tenant_id=tenant_id,
        access_token=connection.access_token,
        refresh_token=connection.refresh_token,
        expires_at=as_utc(connection.token_expires_at),
        account_email=connection.account_email,
    )

    try:
        refreshed = await integration.refresh_token(credentials)
    except (OAuthError, NotImplementedError) as e:
        logger.warning(f"Token refresh failed for {integration.id} connection {connection.id}: {e}")
        connection.status = "expired"
        connection.last_error = str(e)
        await db.flush()
        return False

    connection.access_token = refreshed.access_token
    connection.token_expires_at = refreshed.expires_at
    if refreshed.refresh_token:
        connection.refresh_token = refreshed.refresh_token
    connection.status = "active"
    connection.last_error = None
    await db.flush()

    logger.info(f"Refreshed OAuth token for {integration.id} connection {connection.id}")
    return True


async def store_oauth_connection(db: AsyncSession, tenant: Tenant, credentials: IntegrationCredentials) -> Connection:
    """Create or update the tenant's OAuth connection after a successful callback."""
    query = select(Connection).where(
        Connection.tenant_id == tenant.id,
        Connection.integration_id == credentials.integration_id,
        Connection.is_active.is_(True),
    )
    if credentials.account_email:
        query = query.where(Connection.account_email == credentials.account_email)
    else:
        query = query.where(Connection.account_email.is_(None))

    result = await db.execute(query.order_by(Connection.created_at.desc()))
    connection = result.scalars().first()

    if connection is None:
        connection = Connection(
            tenant_id=tenant.id,
            integration_id=credentials.integration_id,
            name=credentials.account_email or credentials.integration_id,
            account_email=credentials.account_email,
        )
        db.add(connection)

    connection.access_token = credentials.access_token
    if credentials.refresh_token:
        connection.refresh_token = credentials.refresh_token
    connection.token_expires_at = credentials.expires_at
    connection.account_name = credentials.account_name or connection.account_name
    connection.status = "active"
    connection.last_error = None

    await db.flush()
    await db.refresh(connection)

    logger.info(f"Stored OAuth connection {connection.id} for {credentials.integration_id} (tenant {tenant.id})")
    return connection
