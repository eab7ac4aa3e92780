"""Tests for the integration registry."""

import logging

import pytest

from botmakers.integrations import (
    DuplicateIntegrationError,
    Integration,
    IntegrationInfo,
    IntegrationRegistry,
    ToolDefinition,
    ToolResult,
    create_default_registry,
)


class StubIntegration(Integration):
    def __init__(self, settings, integration_id="stub", configured=True, fail_init=False):
        super().__init__(settings)
        self.info = IntegrationInfo(
            id=integration_id,
            name=integration_id.title(),
            description="Stub adapter",
            category="custom",
            auth_type="api_key",
        )
        self.configured = configured
        self.fail_init = fail_init
        self.init_calls = 0

    def is_configured(self):
        return self.configured

    async def initialize(self):
        self.init_calls += 1
        if self.fail_init:
            raise RuntimeError("vendor SDK unavailable")

    def get_tools(self):
        return [ToolDefinition(f"{self.id}_ping", "Ping", "custom", self.id)]

    async def execute_tool(self, tool_name, params, credentials):
        return ToolResult(success=True, data={"pong": True})


def test_duplicate_registration_fails(settings):
    registry = IntegrationRegistry()
    registry.register(StubIntegration(settings))

    with pytest.raises(DuplicateIntegrationError):
        registry.register(StubIntegration(settings))


@pytest.mark.asyncio
async def test_initialize_all_runs_once(settings):
    registry = IntegrationRegistry()
    stub = StubIntegration(settings)
    registry.register(stub)

    await registry.initialize_all()
    await registry.initialize_all()

    assert registry.initialized
    assert stub.init_calls == 1


@pytest.mark.asyncio
async def test_initialize_skips_unconfigured_and_survives_failures(settings, caplog):
    registry = IntegrationRegistry()
    unconfigured = StubIntegration(settings, "dormant", configured=False)
    broken = StubIntegration(settings, "broken", fail_init=True)
    healthy = StubIntegration(settings, "healthy")
    for integration in (unconfigured, broken, healthy):
        registry.register(integration)

    with caplog.at_level(logging.INFO, logger="botmakers.integrations.registry"):
        await registry.initialize_all()

    assert unconfigured.init_calls == 0
    assert healthy.init_calls == 1
    assert "Failed to initialize integration broken" in caplog.text


def test_tools_only_from_configured_integrations(settings):
    registry = IntegrationRegistry()
    registry.register(StubIntegration(settings, "live"))
    registry.register(StubIntegration(settings, "dormant", configured=False))

    assert [t.name for t in registry.get_all_tools()] == ["live_ping"]
    assert registry.get_tool("dormant_ping") is None

    integration, tool = registry.get_tool("live_ping")
    assert integration.id == "live"
    assert tool.integration == "live"


def test_default_registry(settings):
    registry = create_default_registry(settings)

    ids = {i.id for i in registry.get_all()}
    assert ids == {"resend", "cal_com", "google_calendar"}
    assert {i.id for i in registry.get_by_category("email")} == {"cal_com", "google_calendar"}

    listed = {item["id"]: item for item in registry.list_integrations()}
    assert listed["google_calendar"]["authType"] == "oauth2"
    assert listed["google_calendar"]["configured"] is True
    assert listed["resend"]["toolCount"] == 4


def test_google_unconfigured_without_client_secret(settings):
    registry = create_default_registry(settings.model_copy(update={"google_client_secret": None}))

    assert registry.get("google_calendar").is_configured() is False
    assert registry.get_tool("gcal_list_events") is None
