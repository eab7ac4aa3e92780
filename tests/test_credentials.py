"""Tests for credential resolution."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from botmakers.config import IntegrationMode
from botmakers.db.models import Connection, as_utc
from botmakers.services.credentials import (
    CredentialErrorCode,
    CredentialFailure,
    ResolvedCredentials,
)


async def _resolve(resolver, session_factory, integration_id, tenant_id, account_email=None):
    async with session_factory() as db:
        result = await resolver.resolve(db, integration_id, tenant_id, account_email)
    await resolver.drain()
    return result


class TestResolve:
    @pytest.mark.asyncio
    async def test_not_configured(self, resolver, session_factory, seed):
        await seed.tenant("t1")

        result = await _resolve(resolver, session_factory, "openai", "t1")

        assert isinstance(result, CredentialFailure)
        assert result.code == CredentialErrorCode.NOT_CONFIGURED

    @pytest.mark.asyncio
    async def test_disabled_ignores_connections_and_platform_credentials(self, resolver, session_factory, seed):
        await seed.tenant("t1")
        await seed.config("openai", mode="DISABLED", credentials={"apiKey": "sk-platform"})
        await seed.connection("t1", "openai", credentials={"apiKey": "sk-tenant"})

        result = await _resolve(resolver, session_factory, "openai", "t1")

        assert isinstance(result, CredentialFailure)
        assert result.code == CredentialErrorCode.DISABLED

    @pytest.mark.asyncio
    async def test_included_without_credentials(self, resolver, session_factory, seed):
        await seed.config("openai", mode="INCLUDED")

        result = await _resolve(resolver, session_factory, "openai", "any-tenant")

        assert isinstance(result, CredentialFailure)
        assert result.code == CredentialErrorCode.NO_CREDENTIALS

    @pytest.mark.asyncio
    async def test_included_uses_platform_credentials_only(self, resolver, session_factory, seed):
        await seed.tenant("t1")
        await seed.config("openai", mode="INCLUDED", credentials={"apiKey": "sk-platform"})
        await seed.connection("t1", "openai", credentials={"apiKey": "sk-tenant"})

        result = await _resolve(resolver, session_factory, "openai", "t1")

        assert isinstance(result, ResolvedCredentials)
        assert result.mode == IntegrationMode.INCLUDED
        assert result.credentials == {"apiKey": "sk-platform"}
        assert result.connection_id is None

    @pytest.mark.asyncio
    async def test_byok_without_connection_never_falls_back(self, resolver, session_factory, seed):
        await seed.tenant("t1")
        await seed.config("openai", mode="BYOK", credentials={"apiKey": "sk-platform"})

        result = await _resolve(resolver, session_factory, "openai", "t1")

        assert isinstance(result, CredentialFailure)
        assert result.code == CredentialErrorCode.NO_CONNECTION

    @pytest.mark.asyncio
    async def test_byok_ignores_inactive_connections(self, resolver, session_factory, seed):
        await seed.tenant("t1")
        await seed.config("openai")
        await seed.connection("t1", "openai", credentials={"apiKey": "sk-old"}, is_active=False)

        result = await _resolve(resolver, session_factory, "openai", "t1")

        assert result.code == CredentialErrorCode.NO_CONNECTION

    @pytest.mark.asyncio
    async def test_byok_connection_without_credentials(self, resolver, session_factory, seed):
        await seed.tenant("t1")
        await seed.config("openai")
        await seed.connection("t1", "openai")

        result = await _resolve(resolver, session_factory, "openai", "t1")

        assert result.code == CredentialErrorCode.NO_CREDENTIALS

    @pytest.mark.asyncio
    async def test_selects_most_recently_used_connection(self, resolver, session_factory, seed):
        now = datetime.now(timezone.utc)
        await seed.tenant("t1")
        await seed.config("openai")
        await seed.connection("t1", "openai", credentials={"apiKey": "sk-never"})
        await seed.connection("t1", "openai", credentials={"apiKey": "sk-old"}, last_used_at=now - timedelta(days=2))
        recent = await seed.connection(
            "t1", "openai", credentials={"apiKey": "sk-recent"}, last_used_at=now - timedelta(minutes=5)
        )

        result = await _resolve(resolver, session_factory, "openai", "t1")

        assert isinstance(result, ResolvedCredentials)
        assert result.connection_id == recent.id
        assert result.credentials == {"apiKey": "sk-recent"}

    @pytest.mark.asyncio
    async def test_account_email_hint(self, resolver, session_factory, seed):
        await seed.tenant("t1")
        await seed.config("cal_com")
        await seed.connection("t1", "cal_com", credentials={"apiKey": "cal-a"}, account_email="a@example.com")
        await seed.connection("t1", "cal_com", credentials={"apiKey": "cal-b"}, account_email="b@example.com")

        result = await _resolve(resolver, session_factory, "cal_com", "t1", account_email="b@example.com")

        assert result.credentials == {"apiKey": "cal-b"}
        assert result.account_email == "b@example.com"

    @pytest.mark.asyncio
    async def test_merges_oauth_tokens(self, resolver, session_factory, seed):
        await seed.tenant("t1")
        await seed.config("google_calendar")
        await seed.connection(
            "t1",
            "google_calendar",
            credentials={"calendarId": "primary"},
            access_token="ya29.token",
            refresh_token="1//refresh",
        )

        result = await _resolve(resolver, session_factory, "google_calendar", "t1")

        assert result.mode == IntegrationMode.BYOK
        assert result.credentials == {
            "calendarId": "primary",
            "accessToken": "ya29.token",
            "refreshToken": "1//refresh",
        }

    @pytest.mark.asyncio
    async def test_touches_last_used_at(self, resolver, session_factory, seed):
        await seed.tenant("t1")
        await seed.config("openai")
        connection = await seed.connection("t1", "openai", credentials={"apiKey": "sk-test"})
        before = datetime.now(timezone.utc)

        await _resolve(resolver, session_factory, "openai", "t1")

        async with session_factory() as db:
            stored = (await db.execute(select(Connection).where(Connection.id == connection.id))).scalar_one()
        assert stored.last_used_at is not None
        assert as_utc(stored.last_used_at) >= before - timedelta(seconds=1)

    @pytest.mark.asyncio
    async def test_touch_failure_does_not_fail_resolution(self, vault, session_factory, seed, caplog):
        from botmakers.services.credentials import CredentialResolver

        def broken_factory():
            raise RuntimeError("datastore unavailable")

        resolver = CredentialResolver(vault, broken_factory)
        await seed.tenant("t1")
        await seed.config("openai")
        await seed.connection("t1", "openai", credentials={"apiKey": "sk-test"})

        result = await _resolve(resolver, session_factory, "openai", "t1")

        assert isinstance(result, ResolvedCredentials)
        assert "Failed to update last_used_at" in caplog.text


class TestAvailability:
    @pytest.mark.asyncio
    async def test_availability_by_mode(self, resolver, session_factory, seed):
        await seed.tenant("t1")
        await seed.config("openai", mode="INCLUDED", credentials={"apiKey": "sk-platform"})
        await seed.config("stripe", mode="BYOK")
        await seed.config("twilio", mode="DISABLED")

        async with session_factory() as db:
            openai = await resolver.check_availability(db, "openai", "t1")
            stripe = await resolver.check_availability(db, "stripe", "t1")
            twilio = await resolver.check_availability(db, "twilio", "t1")
            unknown = await resolver.check_availability(db, "hubspot", "t1")

        assert openai == {"available": True, "mode": "INCLUDED"}
        assert stripe["available"] is False and stripe["mode"] == "BYOK"
        assert twilio["available"] is False and twilio["mode"] == "DISABLED"
        assert unknown["available"] is False
