"""Tests for the per-tenant integration list and connection health."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from botmakers.config import CATEGORIES, INTEGRATION_CATALOG


def _ids(body):
    return {item["id"] for item in body["integrations"]}


class TestListIntegrations:
    @pytest.mark.asyncio
    async def test_lists_catalog_with_default_modes(self, client):
        response = await client.get("/connections/t1")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert _ids(body) == {d["id"] for d in INTEGRATION_CATALOG}
        assert body["categories"] == CATEGORIES
        assert body["stats"]["total"] == len(INTEGRATION_CATALOG)
        assert body["stats"]["connected"] == 0
        assert body["stats"]["included"] + body["stats"]["byok"] == body["stats"]["total"]

        openai = next(i for i in body["integrations"] if i["id"] == "openai")
        assert openai["mode"] == "INCLUDED"
        assert openai["credentialFields"] is None
        assert openai in body["byCategory"]["ai"]

    @pytest.mark.asyncio
    async def test_disabled_and_inactive_configs_hidden(self, client, seed):
        await seed.config("twilio", mode="DISABLED")
        await seed.config("stripe", mode="BYOK", is_active=False)

        body = (await client.get("/connections/t1")).json()

        assert "twilio" not in _ids(body)
        assert "stripe" not in _ids(body)
        assert body["stats"]["total"] == len(INTEGRATION_CATALOG) - 2

    @pytest.mark.asyncio
    async def test_shows_connection_state(self, client, seed):
        await seed.tenant("t1")
        await seed.config("cal_com", mode="BYOK", setup_instructions="Create a key under Settings > Developer")
        await seed.connection("t1", "cal_com", credentials={"apiKey": "cal-key"})

        body = (await client.get("/connections/t1")).json()

        cal = next(i for i in body["integrations"] if i["id"] == "cal_com")
        assert cal["isConnected"] is True
        assert cal["connection"]["integrationId"] == "cal_com"
        assert cal["setupInstructions"] == "Create a key under Settings > Developer"
        assert "cal-key" not in str(body)
        assert body["stats"]["connected"] == 1

    @pytest.mark.asyncio
    async def test_cached_until_invalidated(self, client, seed):
        await seed.config("cal_com", mode="BYOK")
        first = (await client.get("/connections/t1")).json()

        # written behind the broker's back: still served from cache
        await seed.connection("t1", "cal_com", credentials={"apiKey": "cal-key"})
        cached = (await client.get("/connections/t1")).json()
        assert cached == first

        await client.post("/connections/t1/cal_com", json={"credentials": {"apiKey": "other"}, "accountEmail": "x@y.z"})
        fresh = (await client.get("/connections/t1")).json()
        assert fresh["stats"]["connected"] == 1

    @pytest.mark.asyncio
    async def test_cached_copy_is_not_shared(self, app, client):
        body = await app.state.broker.list_integrations("t1")
        body["integrations"].clear()

        again = await app.state.broker.list_integrations("t1")

        assert again["integrations"]

    @pytest.mark.asyncio
    async def test_auto_creates_tenant(self, app, client):
        await client.get("/connections/brand-new")

        response = await client.get("/connections/brand-new/usage")
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_timeout_degrades_and_cancels_query(self, app, client, monkeypatch):
        broker = app.state.broker
        broker.query_timeout = 0.05
        cancelled = asyncio.Event()

        async def slow_load(tenant_id):
            try:
                await asyncio.sleep(5)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        monkeypatch.setattr(broker, "_load_integrations", slow_load)

        response = await client.get("/connections/t1")

        assert response.status_code == 503
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "Database query timeout"
        assert body["integrations"] == []
        assert body["byCategory"] == {}
        assert body["stats"] == {"total": 0, "connected": 0, "included": 0, "byok": 0}
        assert body["categories"] == CATEGORIES
        assert body["retryAfter"] == 10
        assert cancelled.is_set()
        assert len(broker.cache) == 0

    @pytest.mark.asyncio
    async def test_query_error_degrades(self, app, client, monkeypatch):
        async def broken_load(tenant_id):
            raise RuntimeError("connection reset")

        monkeypatch.setattr(app.state.broker, "_load_integrations", broken_load)

        response = await client.get("/connections/t1")

        assert response.status_code == 503
        assert response.json()["error"] == "connection reset"


class TestHealth:
    @pytest.mark.asyncio
    async def test_health_summary(self, client, vendor, seed):
        vendor.json("GET", "https://api.openai.com/v1/models", {"data": []})
        vendor.json("GET", "https://api.cal.com/v1/me", {"message": "Invalid API key"}, status_code=401)
        await seed.tenant("t1")
        await seed.connection("t1", "openai", credentials={"apiKey": "sk-good"})
        await seed.connection("t1", "cal_com", credentials={"apiKey": "cal-bad"})
        await seed.connection(
            "t1",
            "google_calendar",
            access_token="ya29.stale",
            token_expires_at=datetime.now(timezone.utc) - timedelta(hours=1),
        )
        await seed.connection("t1", "hubspot", credentials={"accessToken": "hs"}, is_active=False)

        response = await client.get("/connections/t1/health")

        assert response.status_code == 200
        body = response.json()
        assert body["summary"] == {"total": 3, "healthy": 1, "unhealthy": 1, "expired": 1}
        by_id = {c["integrationId"]: c for c in body["connections"]}
        assert by_id["openai"]["status"] == "healthy"
        assert by_id["cal_com"]["status"] == "unhealthy"
        assert by_id["cal_com"]["message"] == "Invalid API key"
        assert by_id["google_calendar"]["status"] == "expired"
        assert by_id["google_calendar"]["errorCode"] == "TOKEN_EXPIRED_NO_REFRESH"
        assert by_id["google_calendar"]["integrationName"] == "Google Calendar"
        assert body["checkedAt"]

    @pytest.mark.asyncio
    async def test_one_failing_check_does_not_fail_the_batch(self, app, client, vendor, seed, monkeypatch):
        from botmakers.services import broker as broker_module

        real_validate = broker_module.validate_integration

        async def flaky_validate(integration_id, vault, **kwargs):
            if integration_id == "stripe":
                raise RuntimeError("validator crashed")
            return await real_validate(integration_id, vault, **kwargs)

        monkeypatch.setattr(broker_module, "validate_integration", flaky_validate)
        vendor.json("GET", "https://api.openai.com/v1/models", {"data": []})
        await seed.tenant("t1")
        await seed.connection("t1", "openai", credentials={"apiKey": "sk-good"})
        await seed.connection("t1", "stripe", credentials={"secretKey": "sk_live"})

        body = (await client.get("/connections/t1/health")).json()

        assert body["summary"] == {"total": 2, "healthy": 1, "unhealthy": 1, "expired": 0}
        stripe = next(c for c in body["connections"] if c["integrationId"] == "stripe")
        assert stripe["errorCode"] == "UNKNOWN_ERROR"

    @pytest.mark.asyncio
    async def test_health_unknown_tenant(self, client):
        response = await client.get("/connections/ghost/health")

        assert response.status_code == 404
