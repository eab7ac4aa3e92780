"""Pydantic models for API requests and responses."""

from botmakers.models.connection import (
    ConnectionCreate,
    ConnectionDetail,
    ConnectionSummary,
    ConnectionUpdate,
    IntegrationConfigUpdate,
    ToolExecuteRequest,
)

__all__ = [
    "ConnectionCreate",
    "ConnectionDetail",
    "ConnectionSummary",
    "ConnectionUpdate",
    "IntegrationConfigUpdate",
    "ToolExecuteRequest",
]
