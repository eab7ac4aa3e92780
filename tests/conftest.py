"""Test configuration and fixtures."""

from __future__ import annotations

import json
from typing import Any, AsyncGenerator, Callable, Optional, Union

import httpx
import pytest
import pytest_asyncio
from cryptography.fernet import Fernet
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from botmakers.config import Settings
from botmakers.db import create_session_factory, init_db
from botmakers.db.models import Connection, IntegrationConfig, Tenant
from botmakers.main import create_app
from botmakers.services.credentials import CredentialResolver
from botmakers.services.vault import CredentialVault

Responder = Union[httpx.Response, Callable[[httpx.Request], httpx.Response]]


class VendorMock:
    """Records outbound vendor requests and answers them from registered routes.

    Routes match on method and URL prefix (query string ignored); unmatched
    requests get a 404.
    """

    def __init__(self) -> None:
        self.routes: list[tuple[str, str, Responder]] = []
        self.calls: list[httpx.Request] = []

    def add(self, method: str, url: str, response: Responder) -> None:
        self.routes.append((method.upper(), url, response))

    def json(self, method: str, url: str, payload: Any, status_code: int = 200) -> None:
        self.add(method, url, httpx.Response(status_code, json=payload))

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        url = str(request.url).split("?", 1)[0]
        for method, prefix, response in self.routes:
            if request.method == method and url.startswith(prefix):
                return response(request) if callable(response) else response
        return httpx.Response(404, json={"error": "no mock route"})

    def calls_to(self, prefix: str) -> list[httpx.Request]:
        return [c for c in self.calls if str(c.url).startswith(prefix)]

    @staticmethod
    def body(request: httpx.Request) -> Any:
        return json.loads(request.content.decode())


@pytest.fixture
def vendor() -> VendorMock:
    return VendorMock()


@pytest_asyncio.fixture
async def vendor_client(vendor: VendorMock) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(vendor.handle)) as client:
        yield client


@pytest.fixture
def encryption_key() -> str:
    return Fernet.generate_key().decode()


@pytest.fixture
def settings(encryption_key: str) -> Settings:
    return Settings(
        _env_file=None,
        api_key=None,
        encryption_key=encryption_key,
        google_client_id="google-client-id",
        google_client_secret="google-client-secret",
        api_url="http://api.test",
        app_url="http://app.test",
    )


@pytest.fixture
def vault(encryption_key: str) -> CredentialVault:
    return CredentialVault(encryption_key)


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite so detached tasks can open their own connections."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
def resolver(vault: CredentialVault, session_factory: async_sessionmaker[AsyncSession]) -> CredentialResolver:
    return CredentialResolver(vault, session_factory)


@pytest.fixture
def app(settings: Settings, engine: AsyncEngine, vendor_client: httpx.AsyncClient) -> FastAPI:
    return create_app(settings=settings, engine=engine, http_client=vendor_client)


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    await app.state.resolver.drain()


@pytest.fixture
def seed(session_factory: async_sessionmaker[AsyncSession], vault: CredentialVault):
    """Insert rows and commit them; returns the inserted objects."""

    class Seeder:
        async def tenant(self, tenant_id: str = "t1", slug: Optional[str] = None) -> Tenant:
            return await self._add(Tenant(id=tenant_id, name=tenant_id, slug=slug or tenant_id))

        async def config(
            self,
            integration_id: str,
            mode: str = "BYOK",
            credentials: Optional[dict[str, str]] = None,
            **kwargs: Any,
        ) -> IntegrationConfig:
            return await self._add(
                IntegrationConfig(
                    integration_id=integration_id,
                    display_name=integration_id,
                    mode=mode,
                    credentials_encrypted=vault.store_credentials(credentials) if credentials else None,
                    **kwargs,
                )
            )

        async def connection(
            self,
            tenant_id: str,
            integration_id: str,
            credentials: Optional[dict[str, str]] = None,
            **kwargs: Any,
        ) -> Connection:
            kwargs.setdefault("status", "active")
            return await self._add(
                Connection(
                    tenant_id=tenant_id,
                    integration_id=integration_id,
                    name=f"{integration_id} connection",
                    credentials_encrypted=vault.store_credentials(credentials) if credentials else None,
                    **kwargs,
                )
            )

        async def _add(self, obj):
            async with session_factory() as session:
                session.add(obj)
                await session.commit()
                await session.refresh(obj)
            return obj

    return Seeder()
