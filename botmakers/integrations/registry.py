"""
Integration Registry - catalog of adapters and their tools.

One registry instance is built by the application factory and stored on
``app.state.registry``; request handlers receive it through a dependency.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from botmakers.config import Settings
from botmakers.integrations.types import Integration, ToolDefinition

logger = logging.getLogger(__name__)


class DuplicateIntegrationError(ValueError):
    """Two adapters were registered under the same id."""


class IntegrationRegistry:
    """
    Registry of integration adapters keyed by id.

    Usage:
        registry = IntegrationRegistry()
        registry.register(ResendIntegration(settings))
        await registry.initialize_all()

        match = registry.get_tool("resend_send_email")
    """

    def __init__(self) -> None:
        self._integrations: dict[str, Integration] = {}
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def register(self, integration: Integration) -> None:
        """Register an adapter; a second adapter with the same id is rejected."""
        if integration.id in self._integrations:
            raise DuplicateIntegrationError(f"Integration {integration.id} is already registered")
        self._integrations[integration.id] = integration
        logger.debug(f"Registered integration: {integration.info.name} ({integration.id})")

    async def initialize_all(self) -> None:
        """Initialize every configured adapter once; later calls are no-ops."""
        if self._initialized:
            return

        for integration in self._integrations.values():
            if not integration.is_configured():
                logger.info(f"Integration {integration.id} not configured, skipping")
                continue
            try:
                await integration.initialize()
                logger.info(f"Initialized integration: {integration.id}")
            except Exception as e:
                logger.error(f"Failed to initialize integration {integration.id}: {e}", exc_info=True)

        self._initialized = True

    def get(self, integration_id: str) -> Optional[Integration]:
        return self._integrations.get(integration_id)

    def get_all(self) -> list[Integration]:
        return list(self._integrations.values())

    def get_by_category(self, category: str) -> list[Integration]:
        return [i for i in self._integrations.values() if i.info.category == category]

    def get_configured(self) -> list[Integration]:
        return [i for i in self._integrations.values() if i.is_configured()]

    def get_all_tools(self) -> list[ToolDefinition]:
        """Tools of configured adapters only."""
        tools: list[ToolDefinition] = []
        for integration in self.get_configured():
            tools.extend(integration.get_tools())
        return tools

    def get_tool(self, tool_name: str) -> Optional[tuple[Integration, ToolDefinition]]:
        for integration in self.get_configured():
            for tool in integration.get_tools():
                if tool.name == tool_name:
                    return integration, tool
        return None

    def list_integrations(self) -> list[dict]:
        """Adapter descriptions with a ``configured`` flag, for the API."""
        return [
            {
                "id": i.info.id,
                "name": i.info.name,
                "description": i.info.description,
                "category": i.info.category,
                "authType": i.info.auth_type,
                "scopes": list(i.info.scopes),
                "configured": i.is_configured(),
                "toolCount": len(i.get_tools()),
            }
            for i in self._integrations.values()
        ]


def create_default_registry(settings: Settings, client: Optional[httpx.AsyncClient] = None) -> IntegrationRegistry:
    """
    Factory function to create a registry with the built-in adapters.

    Args:
        settings: Application settings (OAuth app credentials, redirect URLs).
        client: Optional HTTP client override, used in tests.

    Returns:
        IntegrationRegistry with every built-in adapter registered.
    """
    from botmakers.integrations.cal_com import CalComIntegration
    from botmakers.integrations.google_calendar import GoogleCalendarIntegration
    from botmakers.integrations.resend import ResendIntegration

    registry = IntegrationRegistry()
    for integration_cls in (ResendIntegration, CalComIntegration, GoogleCalendarIntegration):
        registry.register(integration_cls(settings, client=client))

    logger.info(f"Integration registry built with {len(registry.get_all())} integrations")
    return registry
