"""SQLAlchemy models for tenants, integration configs and connections."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, ForeignKey, Index, String, Text
from sqlalchemy.orm import relationship

from botmakers.db.session import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive timestamps (SQLite drops tzinfo)."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Tenant(Base):
    """Customer account; integrations and connections are scoped to it."""

    __tablename__ = "tenants"

    id = Column(String(64), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    connections = relationship("Connection", back_populates="tenant")


class IntegrationConfig(Base):
    """Platform-level settings for one integration (mode, pricing, platform credentials)."""

    __tablename__ = "integration_configs"

    id = Column(String(64), primary_key=True, default=_uuid)
    integration_id = Column(String(64), nullable=False, unique=True, index=True)
    display_name = Column(String(255))
    mode = Column(String(20), nullable=False, default="BYOK")  # INCLUDED, BYOK, DISABLED
    credentials_encrypted = Column(Text)  # Fernet-encrypted JSON, INCLUDED only
    markup_percent = Column(Float, default=0.0)
    base_price_per_unit = Column(Float)
    is_active = Column(Boolean, default=True)
    setup_instructions = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Connection(Base):
    """A tenant's stored credentials or OAuth tokens for one integration."""

    __tablename__ = "connections"

    id = Column(String(64), primary_key=True, default=_uuid)
    tenant_id = Column(String(64), ForeignKey("tenants.id"), nullable=False)
    integration_id = Column(String(64), nullable=False)
    name = Column(String(255))
    credentials_encrypted = Column(Text)
    access_token = Column(Text)
    refresh_token = Column(Text)
    token_expires_at = Column(DateTime(timezone=True))
    account_email = Column(String(255))
    account_name = Column(String(255))
    status = Column(String(20), default="pending")  # active, expired, error, pending
    last_used_at = Column(DateTime(timezone=True))
    last_error = Column(Text)
    is_active = Column(Boolean, default=True)  # soft-delete flag
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    tenant = relationship("Tenant", back_populates="connections")

    __table_args__ = (
        Index("ix_connections_tenant_integration", "tenant_id", "integration_id", "is_active"),
    )


class PlatformUsage(Base):
    """Metered usage of INCLUDED integrations, billed back to tenants with markup."""

    __tablename__ = "platform_usage"

    id = Column(String(64), primary_key=True, default=_uuid)
    tenant_id = Column(String(64), nullable=False, index=True)
    integration_id = Column(String(64), nullable=False)
    operation = Column(String(100), nullable=False)
    units = Column(Float, default=1.0)
    cost = Column(Float, default=0.0)
    details = Column(JSON)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
