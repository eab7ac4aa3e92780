"""Credential resolution for integrations.

Decides, per tenant and per integration, where credentials come from:

- INCLUDED: the platform's own credentials stored on IntegrationConfig
- BYOK: the tenant's own Connection (API key fields and/or OAuth tokens)
- DISABLED: nothing resolves

Expected failures are returned as ``CredentialFailure`` values, never raised,
so callers branch on ``code`` rather than on message text.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from botmakers.config import IntegrationMode
from botmakers.db.models import Connection, IntegrationConfig, utcnow
from botmakers.services.vault import CredentialVault

logger = logging.getLogger(__name__)


class CredentialErrorCode(str, Enum):
    NOT_CONFIGURED = "NOT_CONFIGURED"
    DISABLED = "DISABLED"
    NO_CONNECTION = "NO_CONNECTION"
    NO_CREDENTIALS = "NO_CREDENTIALS"


@dataclass
class ResolvedCredentials:
    """Credentials ready for one vendor call; never persisted or cached."""

    mode: IntegrationMode
    credentials: dict[str, str] = field(repr=False)
    connection_id: Optional[str] = None
    account_email: Optional[str] = None

    @property
    def success(self) -> bool:
        return True


@dataclass
class CredentialFailure:
    code: CredentialErrorCode
    error: str

    @property
    def success(self) -> bool:
        return False


CredentialResult = Union[ResolvedCredentials, CredentialFailure]


async def get_integration_config(db: AsyncSession, integration_id: str) -> Optional[IntegrationConfig]:
    result = await db.execute(select(IntegrationConfig).where(IntegrationConfig.integration_id == integration_id))
    return result.scalar_one_or_none()


async def find_active_connections(
    db: AsyncSession,
    integration_id: str,
    tenant_id: str,
    account_email: Optional[str] = None,
) -> list[Connection]:
    """Active connections, most recently used first (never-used last)."""
    query = select(Connection).where(
        Connection.tenant_id == tenant_id,
        Connection.integration_id == integration_id,
        Connection.is_active.is_(True),
    )
    if account_email:
        query = query.where(Connection.account_email == account_email)

    query = query.order_by(Connection.last_used_at.desc().nulls_last(), Connection.created_at.desc())
    result = await db.execute(query)
    return list(result.scalars().all())


class CredentialResolver:
    """Resolves credentials for (integration, tenant) pairs.

    Usage:
        resolver = CredentialResolver(vault, session_factory)
        result = await resolver.resolve(db, "openai", tenant.id)
        if isinstance(result, CredentialFailure):
            ...
    """

    def __init__(self, vault: CredentialVault, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.vault = vault
        self._session_factory = session_factory
        self._pending: set[asyncio.Task] = set()

    async def resolve(
        self,
        db: AsyncSession,
        integration_id: str,
        tenant_id: str,
        account_email: Optional[str] = None,
    ) -> CredentialResult:
        config = await get_integration_config(db, integration_id)
        if config is None:
            return CredentialFailure(
                CredentialErrorCode.NOT_CONFIGURED,
                f"Integration {integration_id} is not configured",
            )

        mode = IntegrationMode(config.mode)

        if mode == IntegrationMode.DISABLED:
            return CredentialFailure(CredentialErrorCode.DISABLED, f"Integration {integration_id} is disabled")

        if mode == IntegrationMode.INCLUDED:
            if not config.credentials_encrypted:
                return CredentialFailure(
                    CredentialErrorCode.NO_CREDENTIALS,
                    f"Platform credentials not configured for {integration_id}",
                )
            credentials = self.vault.retrieve_credentials(config.credentials_encrypted)
            if not credentials:
                return CredentialFailure(
                    CredentialErrorCode.NO_CREDENTIALS,
                    f"Platform credentials for {integration_id} could not be read",
                )
            return ResolvedCredentials(mode=mode, credentials=credentials)

        connections = await find_active_connections(db, integration_id, tenant_id, account_email)
        if not connections:
            return CredentialFailure(
                CredentialErrorCode.NO_CONNECTION,
                f"No {integration_id} connection found. Please connect your account.",
            )

        connection = connections[0]
        if not connection.credentials_encrypted and not connection.access_token:
            return CredentialFailure(
                CredentialErrorCode.NO_CREDENTIALS,
                f"Connection has no credentials for {integration_id}",
            )

        credentials: dict[str, str] = {}
        if connection.credentials_encrypted:
            credentials.update(self.vault.retrieve_credentials(connection.credentials_encrypted))
        if connection.access_token:
            credentials["accessToken"] = connection.access_token
        if connection.refresh_token:
            credentials["refreshToken"] = connection.refresh_token

        if not credentials:
            return CredentialFailure(
                CredentialErrorCode.NO_CREDENTIALS,
                f"Connection credentials for {integration_id} could not be read",
            )

        self._touch_last_used(connection.id)

        return ResolvedCredentials(
            mode=mode,
            credentials=credentials,
            connection_id=connection.id,
            account_email=connection.account_email,
        )

    async def check_availability(self, db: AsyncSession, integration_id: str, tenant_id: str) -> dict:
        """Whether an integration can be used by a tenant, without decrypting anything."""
        config = await get_integration_config(db, integration_id)
        if config is None:
            return {"available": False, "reason": "Integration not configured"}

        mode = IntegrationMode(config.mode)

        if mode == IntegrationMode.DISABLED:
            return {"available": False, "mode": mode.value, "reason": "Integration is disabled"}

        if mode == IntegrationMode.INCLUDED:
            if not config.credentials_encrypted:
                return {"available": False, "mode": mode.value, "reason": "Platform credentials not configured"}
            return {"available": True, "mode": mode.value}

        connections = await find_active_connections(db, integration_id, tenant_id)
        if not connections:
            return {"available": False, "mode": mode.value, "reason": "Tenant needs to connect their account"}
        return {"available": True, "mode": mode.value}

    def _touch_last_used(self, connection_id: str) -> None:
        """Schedule the last_used_at update off the request path."""
        task = asyncio.create_task(self._update_last_used(connection_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _update_last_used(self, connection_id: str) -> None:
        try:
            async with self._session_factory() as session:
                await session.execute(
                    update(Connection).where(Connection.id == connection_id).values(last_used_at=utcnow())
                )
                await session.commit()
        except Exception as e:
            logger.warning(f"Failed to update last_used_at for connection {connection_id}: {e}")

    async def drain(self) -> None:
        """Wait for outstanding last_used_at updates (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
