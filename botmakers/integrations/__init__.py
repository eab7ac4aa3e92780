"""Integration adapters and the registry that catalogs them."""

from botmakers.integrations.registry import DuplicateIntegrationError, IntegrationRegistry, create_default_registry
from botmakers.integrations.types import (
    Integration,
    IntegrationCredentials,
    IntegrationInfo,
    OAuthError,
    ToolDefinition,
    ToolParameter,
    ToolResult,
)

__all__ = [
    "DuplicateIntegrationError",
    "Integration",
    "IntegrationCredentials",
    "IntegrationInfo",
    "IntegrationRegistry",
    "OAuthError",
    "ToolDefinition",
    "ToolParameter",
    "ToolResult",
    "create_default_registry",
]
