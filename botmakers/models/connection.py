"""Pydantic models for the connections, tools and admin APIs."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class ConnectionCreate(BaseModel):
    """Request model for creating a BYOK connection."""

    name: Optional[str] = Field(None, description="Display name for the connection")
    credentials: Optional[dict[str, str]] = Field(None, description="Credential fields from the catalog schema")
    account_email: Optional[str] = Field(None, alias="accountEmail", description="Account this connection belongs to")

    model_config = ConfigDict(populate_by_name=True)


class ConnectionUpdate(BaseModel):
    """Request model for updating a connection."""

    name: Optional[str] = Field(None, description="New display name")
    credentials: Optional[dict[str, str]] = Field(None, description="Replacement credentials")


class ConnectionSummary(BaseModel):
    """Connection as shown in integration lists."""

    id: str
    name: Optional[str] = None
    integration_id: str = Field(alias="integrationId")
    account_email: Optional[str] = Field(None, alias="accountEmail")
    account_name: Optional[str] = Field(None, alias="accountName")
    status: Optional[str] = None
    last_used_at: Optional[datetime] = Field(None, alias="lastUsedAt")
    created_at: Optional[datetime] = Field(None, alias="createdAt")

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        serialize_by_alias=True,
    )


class ConnectionDetail(ConnectionSummary):
    """Connection with masked credentials and error state."""

    last_error: Optional[str] = Field(None, alias="lastError")
    masked_credentials: Optional[dict[str, str]] = Field(None, alias="maskedCredentials")
    token_expires_at: Optional[datetime] = Field(None, alias="tokenExpiresAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")


class ToolExecuteRequest(BaseModel):
    """Request model for executing a tool on behalf of a tenant."""

    tenant_id: str = Field(..., alias="tenantId", description="Tenant id or slug")
    params: dict[str, Any] = Field(default_factory=dict, description="Tool parameters")
    account_email: Optional[str] = Field(None, alias="accountEmail", description="Pick a specific connected account")

    model_config = ConfigDict(populate_by_name=True)


class IntegrationConfigUpdate(BaseModel):
    """Admin request model for upserting a platform integration config."""

    mode: Optional[str] = Field(None, description="INCLUDED, BYOK or DISABLED")
    credentials: Optional[dict[str, str]] = Field(None, description="Platform credentials (INCLUDED mode)")
    markup_percent: Optional[float] = Field(None, alias="markupPercent")
    base_price_per_unit: Optional[float] = Field(None, alias="basePricePerUnit")
    is_active: Optional[bool] = Field(None, alias="isActive")
    setup_instructions: Optional[str] = Field(None, alias="setupInstructions")

    model_config = ConfigDict(populate_by_name=True)
