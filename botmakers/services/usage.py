"""Platform usage metering for INCLUDED integrations."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from botmakers.config import IntegrationMode
from botmakers.db.models import IntegrationConfig, PlatformUsage, Tenant
from botmakers.services.credentials import get_integration_config

logger = logging.getLogger(__name__)


def current_period() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m")


def period_bounds(period: str) -> tuple[datetime, datetime]:
    """Start (inclusive) and end (exclusive) of a ``YYYY-MM`` billing period."""
    try:
        start = datetime.strptime(period, "%Y-%m").replace(tzinfo=timezone.utc)
    except ValueError as e:
        raise ValueError(f"Invalid period '{period}', expected YYYY-MM") from e

    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


def with_markup(cost: float, markup_percent: Optional[float]) -> float:
    return cost * (1 + (markup_percent or 0) / 100)


async def track_platform_usage(
    db: AsyncSession,
    tenant_id: str,
    integration_id: str,
    operation: str,
    units: float = 1,
    cost: Optional[float] = None,
    details: Optional[dict[str, Any]] = None,
) -> Optional[PlatformUsage]:
    """Record usage of a platform-paid integration; other modes are not metered."""
    config = await get_integration_config(db, integration_id)
    if config is None or config.mode != IntegrationMode.INCLUDED.value:
        return None

    if cost is None:
        cost = units * config.base_price_per_unit if config.base_price_per_unit else 0.0

    usage = PlatformUsage(
        tenant_id=tenant_id,
        integration_id=integration_id,
        operation=operation,
        units=units,
        cost=cost,
        details=details,
    )
    db.add(usage)
    await db.flush()

    logger.debug(f"Tracked {units} units of {integration_id}.{operation} for tenant {tenant_id}")
    return usage


async def _usage_by_integration(
    db: AsyncSession,
    period: str,
    tenant_id: Optional[str] = None,
) -> dict[str, dict[str, float]]:
    start, end = period_bounds(period)
    query = (
        select(
            PlatformUsage.integration_id,
            func.coalesce(func.sum(PlatformUsage.units), 0),
            func.coalesce(func.sum(PlatformUsage.cost), 0),
            func.count(PlatformUsage.id),
        )
        .where(PlatformUsage.created_at >= start, PlatformUsage.created_at < end)
        .group_by(PlatformUsage.integration_id)
    )
    if tenant_id:
        query = query.where(PlatformUsage.tenant_id == tenant_id)

    rows = (await db.execute(query)).all()
    return {
        integration_id: {"units": float(units), "cost": float(cost), "count": int(count)}
        for integration_id, units, cost, count in rows
    }


async def get_tenant_usage(db: AsyncSession, tenant: Tenant, period: Optional[str] = None) -> dict[str, Any]:
    """Billed usage of INCLUDED integrations for one tenant and month."""
    period = period or current_period()
    usage = await _usage_by_integration(db, period, tenant_id=tenant.id)

    configs: dict[str, IntegrationConfig] = {}
    if usage:
        result = await db.execute(select(IntegrationConfig).where(IntegrationConfig.integration_id.in_(list(usage))))
        configs = {c.integration_id: c for c in result.scalars().all()}

    items = []
    for integration_id, totals in usage.items():
        config = configs.get(integration_id)
        items.append(
            {
                "integrationId": integration_id,
                "displayName": (config.display_name if config else None) or integration_id,
                "units": totals["units"],
                "callCount": totals["count"],
                "estimatedCost": with_markup(totals["cost"], config.markup_percent if config else None),
            }
        )

    return {
        "success": True,
        "period": period,
        "usage": items,
        "total": {
            "estimatedCost": sum(item["estimatedCost"] for item in items),
            "totalCalls": sum(item["callCount"] for item in items),
        },
    }


async def get_usage_summary(db: AsyncSession, period: Optional[str] = None) -> dict[str, Any]:
    """Platform-wide cost and revenue for every INCLUDED integration."""
    period = period or current_period()
    usage = await _usage_by_integration(db, period)

    result = await db.execute(
        select(IntegrationConfig).where(IntegrationConfig.mode == IntegrationMode.INCLUDED.value)
    )
    summary = []
    for config in result.scalars().all():
        totals = usage.get(config.integration_id, {"units": 0.0, "cost": 0.0, "count": 0})
        summary.append(
            {
                "integrationId": config.integration_id,
                "displayName": config.display_name,
                "totalUnits": totals["units"],
                "totalCost": totals["cost"],
                "callCount": totals["count"],
                "markupPercent": config.markup_percent,
                "revenue": with_markup(totals["cost"], config.markup_percent),
            }
        )

    return {
        "success": True,
        "period": period,
        "summary": summary,
        "totals": {
            "totalCost": sum(s["totalCost"] for s in summary),
            "totalRevenue": sum(s["revenue"] for s in summary),
            "totalCalls": sum(s["callCount"] for s in summary),
        },
    }
