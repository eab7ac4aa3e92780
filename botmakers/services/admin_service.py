"""Platform-level integration configuration (modes, pricing, platform credentials)."""

from __future__ import annotations

import copy
import logging
from typing import Any, Optional

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from botmakers.config import (
    CATEGORIES,
    IntegrationDefinition,
    IntegrationMode,
    get_integration_definition,
    get_integration_definitions,
)
from botmakers.config.integration_catalog import serialize_credential_fields
from botmakers.db.models import IntegrationConfig, utcnow
from botmakers.models import IntegrationConfigUpdate
from botmakers.services.connection_service import IntegrationNotFoundError
from botmakers.services.credentials import get_integration_config
from botmakers.services.validators import ValidationResult, has_validator, validate_integration
from botmakers.services.vault import CredentialVault

logger = logging.getLogger(__name__)


class InvalidModeError(ValueError):
    pass


class PlatformCredentialsMissingError(ValueError):
    pass


def _require_definition(integration_id: str) -> IntegrationDefinition:
    definition = get_integration_definition(integration_id)
    if definition is None:
        raise IntegrationNotFoundError(f"Unknown integration: {integration_id}")
    return definition


def _parse_mode(mode: Optional[str]) -> Optional[IntegrationMode]:
    if mode is None:
        return None
    try:
        return IntegrationMode(mode)
    except ValueError as e:
        raise InvalidModeError("Invalid mode. Must be INCLUDED, BYOK, or DISABLED") from e


def serialize_admin_integration(
    definition: IntegrationDefinition,
    config: Optional[IntegrationConfig],
    vault: CredentialVault,
) -> dict[str, Any]:
    """Catalog entry merged with its platform config, credentials masked."""
    encrypted = config.credentials_encrypted if config else None
    return {
        "id": definition["id"],
        "displayName": definition["display_name"],
        "description": definition["description"],
        "category": definition["category"],
        "authType": definition["auth_type"],
        "iconUrl": definition.get("icon_url"),
        "docsUrl": definition.get("docs_url"),
        "credentialFields": serialize_credential_fields(definition),
        "oauthScopes": definition.get("oauth_scopes") or [],
        "mode": (config.mode if config else definition["default_mode"].value),
        "hasCredentials": bool(encrypted),
        "maskedCredentials": vault.masked_credentials(encrypted) if encrypted else None,
        "markupPercent": (config.markup_percent if config else None) or 0,
        "basePricePerUnit": (
            config.base_price_per_unit if config and config.base_price_per_unit is not None else None
        )
        or definition.get("suggested_price_per_unit"),
        "isActive": config.is_active if config and config.is_active is not None else True,
        "setupInstructions": config.setup_instructions if config else None,
        "hasAutomatedValidation": has_validator(definition["id"]),
        "updatedAt": config.updated_at.isoformat() if config and config.updated_at else None,
    }


async def list_admin_integrations(db: AsyncSession, vault: CredentialVault) -> dict[str, Any]:
    result = await db.execute(select(IntegrationConfig))
    configs = {c.integration_id: c for c in result.scalars().all()}

    integrations = [
        serialize_admin_integration(definition, configs.get(definition["id"]), vault)
        for definition in get_integration_definitions()
    ]

    by_category: dict[str, list[dict[str, Any]]] = {}
    for item in integrations:
        by_category.setdefault(item["category"], []).append(item)

    return {
        "success": True,
        "integrations": integrations,
        "byCategory": by_category,
        "categories": copy.deepcopy(CATEGORIES),
    }


async def get_admin_integration(db: AsyncSession, vault: CredentialVault, integration_id: str) -> dict[str, Any]:
    definition = _require_definition(integration_id)
    config = await get_integration_config(db, integration_id)
    return serialize_admin_integration(definition, config, vault)


async def upsert_integration_config(
    db: AsyncSession,
    vault: CredentialVault,
    integration_id: str,
    update: IntegrationConfigUpdate,
) -> IntegrationConfig:
    """Create or update the platform config for an integration.

    Platform credentials are kept only while the integration is INCLUDED.
    """
    definition = _require_definition(integration_id)
    mode = _parse_mode(update.mode)

    config = await get_integration_config(db, integration_id)
    if config is None:
        config = IntegrationConfig(
            integration_id=integration_id,
            display_name=definition["display_name"],
            mode=(mode or definition["default_mode"]).value,
            markup_percent=update.markup_percent or 0.0,
            base_price_per_unit=(
                update.base_price_per_unit
                if update.base_price_per_unit is not None
                else definition.get("suggested_price_per_unit")
            ),
            is_active=True if update.is_active is None else update.is_active,
            setup_instructions=update.setup_instructions,
        )
        db.add(config)
    else:
        if mode is not None:
            config.mode = mode.value
        if update.markup_percent is not None:
            config.markup_percent = update.markup_percent
        if update.base_price_per_unit is not None:
            config.base_price_per_unit = update.base_price_per_unit
        if update.setup_instructions is not None:
            config.setup_instructions = update.setup_instructions
        if update.is_active is not None:
            config.is_active = update.is_active
        config.updated_at = utcnow()

    if update.credentials:
        config.credentials_encrypted = vault.store_credentials(update.credentials)
    if config.mode != IntegrationMode.INCLUDED.value:
        config.credentials_encrypted = None

    await db.flush()
    await db.refresh(config)

    logger.info(f"Updated platform config for {integration_id}: mode={config.mode}")
    return config


async def check_platform_credentials(
    db: AsyncSession,
    vault: CredentialVault,
    integration_id: str,
    client: Optional[httpx.AsyncClient] = None,
) -> ValidationResult:
    """Live validation of the platform's own credentials."""
    _require_definition(integration_id)
    config = await get_integration_config(db, integration_id)
    if config is None or not config.credentials_encrypted:
        raise PlatformCredentialsMissingError("No credentials configured for this integration")

    result = await validate_integration(
        integration_id,
        vault,
        credentials_encrypted=config.credentials_encrypted,
        client=client,
    )
    logger.info(f"Tested platform credentials for {integration_id}: success={result.success}")
    return result


async def clear_platform_credentials(db: AsyncSession, integration_id: str) -> None:
    """Remove platform credentials and disable the integration."""
    config = await get_integration_config(db, integration_id)
    if config is None:
        raise IntegrationNotFoundError("Integration not configured")

    config.credentials_encrypted = None
    config.mode = IntegrationMode.DISABLED.value
    config.updated_at = utcnow()
    await db.flush()

    logger.info(f"Removed platform credentials for {integration_id}; integration disabled")
