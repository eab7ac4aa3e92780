"""Tests for the platform admin endpoints."""

import pytest

from botmakers.config import INTEGRATION_CATALOG
from botmakers.services.credentials import ResolvedCredentials

PLATFORM_KEY = "sk-platform-1234567890"


class TestIntegrationConfig:
    @pytest.mark.asyncio
    async def test_list_merges_catalog_and_configs(self, client, seed):
        await seed.config("stripe", mode="DISABLED", markup_percent=10.0)

        body = (await client.get("/admin/integrations")).json()

        assert len(body["integrations"]) == len(INTEGRATION_CATALOG)
        by_id = {i["id"]: i for i in body["integrations"]}
        assert by_id["stripe"]["mode"] == "DISABLED"
        assert by_id["stripe"]["markupPercent"] == 10.0
        assert by_id["openai"]["mode"] == "INCLUDED"
        assert by_id["openai"]["hasCredentials"] is False
        assert by_id["openai"]["basePricePerUnit"] == 0.002

    @pytest.mark.asyncio
    async def test_set_included_with_platform_credentials(self, app, client):
        response = await client.put(
            "/admin/integrations/openai",
            json={"mode": "INCLUDED", "credentials": {"apiKey": PLATFORM_KEY}, "markupPercent": 20},
        )

        assert response.status_code == 200
        integration = response.json()["integration"]
        assert response.json()["message"] == 'Integration "OpenAI" updated'
        assert integration["mode"] == "INCLUDED"
        assert integration["hasCredentials"] is True
        assert integration["maskedCredentials"] == {"apiKey": "sk-p••••••••7890"}
        assert integration["markupPercent"] == 20
        assert PLATFORM_KEY not in response.text

        async with app.state.session_factory() as db:
            resolved = await app.state.resolver.resolve(db, "openai", "any-tenant")
        assert isinstance(resolved, ResolvedCredentials)
        assert resolved.credentials == {"apiKey": PLATFORM_KEY}

    @pytest.mark.asyncio
    async def test_leaving_included_drops_platform_credentials(self, client):
        await client.put("/admin/integrations/openai", json={"mode": "INCLUDED", "credentials": {"apiKey": PLATFORM_KEY}})

        response = await client.put("/admin/integrations/openai", json={"mode": "BYOK"})

        integration = response.json()["integration"]
        assert integration["mode"] == "BYOK"
        assert integration["hasCredentials"] is False

    @pytest.mark.asyncio
    async def test_invalid_mode(self, client):
        response = await client.put("/admin/integrations/openai", json={"mode": "FREE"})

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid mode. Must be INCLUDED, BYOK, or DISABLED"

    @pytest.mark.asyncio
    async def test_unknown_integration(self, client):
        assert (await client.get("/admin/integrations/nope")).status_code == 404
        assert (await client.put("/admin/integrations/nope", json={"mode": "BYOK"})).status_code == 404

    @pytest.mark.asyncio
    async def test_mode_change_clears_tenant_lists(self, client):
        before = (await client.get("/connections/t1")).json()
        assert "openai" in {i["id"] for i in before["integrations"]}

        await client.put("/admin/integrations/openai", json={"mode": "DISABLED"})

        after = (await client.get("/connections/t1")).json()
        assert "openai" not in {i["id"] for i in after["integrations"]}

    @pytest.mark.asyncio
    async def test_delete_credentials_disables(self, client, seed):
        await seed.config("resend", mode="INCLUDED", credentials={"apiKey": "re_platform_key"})

        response = await client.delete("/admin/integrations/resend/credentials")

        assert response.status_code == 200
        integration = (await client.get("/admin/integrations/resend")).json()["integration"]
        assert integration["mode"] == "DISABLED"
        assert integration["hasCredentials"] is False

    @pytest.mark.asyncio
    async def test_delete_credentials_without_config(self, client):
        response = await client.delete("/admin/integrations/resend/credentials")

        assert response.status_code == 404


class TestPlatformCredentialCheck:
    @pytest.mark.asyncio
    async def test_live_check(self, client, vendor, seed):
        vendor.json("GET", "https://api.resend.com/domains", {"data": [{"name": "example.com"}]})
        await seed.config("resend", mode="INCLUDED", credentials={"apiKey": "re_platform_key"})

        response = await client.post("/admin/integrations/resend/test")

        body = response.json()
        assert body["success"] is True
        assert body["details"]["accountInfo"] == {"domainsConfigured": 1}
        assert body["hasAutomatedValidation"] is True
        assert vendor.calls[0].headers["Authorization"] == "Bearer re_platform_key"

    @pytest.mark.asyncio
    async def test_no_validator_reports_configured(self, client, vendor, seed):
        await seed.config("hubspot", mode="INCLUDED", credentials={"accessToken": "hs-token"})

        body = (await client.post("/admin/integrations/hubspot/test")).json()

        assert body["success"] is True
        assert body["hasAutomatedValidation"] is False
        assert vendor.calls == []

    @pytest.mark.asyncio
    async def test_missing_platform_credentials(self, client, seed):
        await seed.config("resend", mode="INCLUDED")

        response = await client.post("/admin/integrations/resend/test")

        assert response.status_code == 400
        assert response.json()["error"] == "No credentials configured for this integration"
