"""Tests for tool listing and execution."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest
from sqlalchemy import select

from botmakers.db.models import Connection, PlatformUsage


class TestListTools:
    @pytest.mark.asyncio
    async def test_lists_tools_of_configured_integrations(self, client):
        body = (await client.get("/tools")).json()

        names = {tool["name"] for tool in body["tools"]}
        assert body["count"] == len(body["tools"]) == 12
        assert {"resend_send_email", "calcom_list_bookings", "gcal_create_event"} <= names

    @pytest.mark.asyncio
    async def test_lists_integrations(self, client):
        body = (await client.get("/integrations")).json()

        assert {i["id"] for i in body["integrations"]} == {"resend", "cal_com", "google_calendar"}


class TestExecuteTool:
    @pytest.mark.asyncio
    async def test_included_tool_uses_platform_key_and_meters_usage(self, app, client, vendor, seed):
        vendor.json("POST", "https://api.resend.com/emails", {"id": "email_123"})
        await seed.tenant("t1")
        await seed.config(
            "resend",
            mode="INCLUDED",
            credentials={"apiKey": "re_platform_key"},
            base_price_per_unit=0.002,
            markup_percent=50.0,
        )

        response = await client.post(
            "/tools/resend_send_email/execute",
            json={
                "tenantId": "t1",
                "params": {"from": "bot@example.com", "to": ["user@example.com"], "subject": "Hi", "text": "Hello"},
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"] == {"id": "email_123"}
        assert body["mode"] == "INCLUDED"
        assert body["metadata"]["tool"] == "resend_send_email"

        sent = vendor.calls_to("https://api.resend.com/emails")[0]
        assert sent.headers["Authorization"] == "Bearer re_platform_key"
        assert vendor.body(sent)["subject"] == "Hi"

        async with app.state.session_factory() as db:
            usage = (await db.execute(select(PlatformUsage))).scalars().all()
        assert len(usage) == 1
        assert usage[0].operation == "resend_send_email"
        assert usage[0].cost == pytest.approx(0.002)

        tenant_usage = (await client.get("/connections/t1/usage")).json()
        assert tenant_usage["usage"][0]["callCount"] == 1
        assert tenant_usage["usage"][0]["estimatedCost"] == pytest.approx(0.003)

        summary = (await client.get("/admin/integrations/usage/summary")).json()
        assert summary["totals"]["totalCalls"] == 1
        assert summary["totals"]["totalRevenue"] == pytest.approx(0.003)

    @pytest.mark.asyncio
    async def test_byok_tool_not_metered(self, app, client, vendor, seed):
        vendor.json("GET", "https://api.cal.com/v1/event-types", {"event_types": []})
        await seed.tenant("t1")
        await seed.config("cal_com", mode="BYOK")
        await seed.connection("t1", "cal_com", credentials={"apiKey": "cal_live_tenant"})

        response = await client.post("/tools/calcom_list_event_types/execute", json={"tenantId": "t1"})

        assert response.json()["success"] is True
        assert response.json()["mode"] == "BYOK"
        assert vendor.calls[0].headers["Authorization"] == "Bearer cal_live_tenant"
        async with app.state.session_factory() as db:
            assert (await db.execute(select(PlatformUsage))).scalars().all() == []

    @pytest.mark.asyncio
    async def test_vendor_error_is_reported(self, client, vendor, seed):
        vendor.json("GET", "https://api.cal.com/v1/bookings/42", {"message": "Booking not found"}, status_code=404)
        await seed.tenant("t1")
        await seed.config("cal_com", mode="BYOK")
        await seed.connection("t1", "cal_com", credentials={"apiKey": "cal_live_tenant"})

        response = await client.post(
            "/tools/calcom_get_booking/execute", json={"tenantId": "t1", "params": {"booking_id": 42}}
        )

        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["error"] == "Booking not found"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("mode", "status_code", "error_code"),
        [
            (None, 404, "NOT_CONFIGURED"),
            ("DISABLED", 403, "DISABLED"),
            ("BYOK", 400, "NO_CONNECTION"),
            ("INCLUDED", 400, "NO_CREDENTIALS"),
        ],
    )
    async def test_credential_failures(self, client, vendor, seed, mode, status_code, error_code):
        await seed.tenant("t1")
        if mode:
            await seed.config("cal_com", mode=mode)

        response = await client.post("/tools/calcom_list_bookings/execute", json={"tenantId": "t1"})

        assert response.status_code == status_code
        assert response.json()["success"] is False
        assert response.json()["errorCode"] == error_code
        assert vendor.calls == []

    @pytest.mark.asyncio
    async def test_unknown_tool(self, client):
        response = await client.post("/tools/fax_send/execute", json={"tenantId": "t1"})

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_unknown_tenant(self, client):
        response = await client.post("/tools/resend_list_domains/execute", json={"tenantId": "ghost"})

        assert response.status_code == 404
        assert response.json()["error"] == "Tenant not found"

    @pytest.mark.asyncio
    async def test_expired_oauth_token_refreshed_before_call(self, app, client, vendor, seed):
        vendor.json("POST", "https://oauth2.googleapis.com/token", {"access_token": "ya29.fresh", "expires_in": 3600})
        vendor.json("GET", "https://www.googleapis.com/calendar/v3/users/me/calendarList", {"items": []})
        await seed.tenant("t1")
        await seed.config("google_calendar", mode="BYOK")
        connection = await seed.connection(
            "t1",
            "google_calendar",
            access_token="ya29.stale",
            refresh_token="1//refresh",
            token_expires_at=datetime.now(timezone.utc) - timedelta(minutes=1),
        )

        response = await client.post("/tools/gcal_list_calendars/execute", json={"tenantId": "t1"})

        assert response.json()["success"] is True
        calendar_call = vendor.calls_to("https://www.googleapis.com/calendar")[0]
        assert calendar_call.headers["Authorization"] == "Bearer ya29.fresh"

        async with app.state.session_factory() as db:
            row = (await db.execute(select(Connection).where(Connection.id == connection.id))).scalar_one()
        assert row.access_token == "ya29.fresh"

    @pytest.mark.asyncio
    async def test_unusable_refresh_response_marks_connection_expired(self, app, client, vendor, seed):
        vendor.add("POST", "https://oauth2.googleapis.com/token", httpx.Response(200, text="<html>maintenance</html>"))
        await seed.tenant("t1")
        await seed.config("google_calendar", mode="BYOK")
        connection = await seed.connection(
            "t1",
            "google_calendar",
            access_token="ya29.stale",
            refresh_token="1//refresh",
            token_expires_at=datetime.now(timezone.utc) - timedelta(minutes=1),
        )

        response = await client.post("/tools/gcal_list_calendars/execute", json={"tenantId": "t1"})

        assert response.status_code == 200
        async with app.state.session_factory() as db:
            row = (await db.execute(select(Connection).where(Connection.id == connection.id))).scalar_one()
        assert row.status == "expired"
        assert "non-JSON" in row.last_error
