"""Base types shared by every integration adapter."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Literal, Optional

import httpx

from botmakers.config import Settings
from botmakers.utils.http_client import get_http_client

AuthType = Literal["oauth2", "api_key", "basic"]
ParameterType = Literal["string", "number", "boolean", "array", "object"]


class OAuthError(Exception):
    """Token exchange or refresh was rejected by the vendor."""


@dataclass(frozen=True)
class IntegrationInfo:
    """Static description of an adapter."""

    id: str
    name: str
    description: str
    category: str
    auth_type: AuthType
    scopes: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ToolParameter:
    name: str
    type: ParameterType
    description: str
    required: bool = False
    default: Any = None


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    category: str
    integration: str
    parameters: list[ToolParameter] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ToolResult:
    success: bool
    data: Any = None
    error: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"success": self.success}
        if self.data is not None:
            result["data"] = self.data
        if self.error is not None:
            result["error"] = self.error
        if self.metadata:
            result["metadata"] = self.metadata
        return result


@dataclass
class IntegrationCredentials:
    """Credentials handed to an adapter for one call, or produced by OAuth."""

    integration_id: str
    tenant_id: str
    values: dict[str, str] = field(default_factory=dict, repr=False)
    access_token: Optional[str] = field(default=None, repr=False)
    refresh_token: Optional[str] = field(default=None, repr=False)
    expires_at: Optional[datetime] = None
    account_email: Optional[str] = None
    account_name: Optional[str] = None


class Integration(ABC):
    """An adapter exposing one vendor's API as named tools."""

    info: IntegrationInfo

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> None:
        self.settings = settings
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client or get_http_client()

    @property
    def id(self) -> str:
        return self.info.id

    @property
    def supports_oauth(self) -> bool:
        return self.info.auth_type == "oauth2"

    async def initialize(self) -> None:
        """One-time setup, called once at startup when configured."""

    @abstractmethod
    def is_configured(self) -> bool: ...

    @abstractmethod
    def get_tools(self) -> list[ToolDefinition]: ...

    @abstractmethod
    async def execute_tool(
        self,
        tool_name: str,
        params: dict[str, Any],
        credentials: IntegrationCredentials,
    ) -> ToolResult: ...

    def get_auth_url(self, tenant_id: str, state: str) -> str:
        raise NotImplementedError(f"{self.id} does not support OAuth")

    async def handle_callback(self, code: str, tenant_id: str) -> IntegrationCredentials:
        raise NotImplementedError(f"{self.id} does not support OAuth")

    async def refresh_token(self, credentials: IntegrationCredentials) -> IntegrationCredentials:
        raise NotImplementedError(f"{self.id} does not support token refresh")

    async def _call(self, tool_name: str, method: str, url: str, **kwargs: Any) -> ToolResult:
        """Make one vendor request and wrap the response as a ToolResult."""
        start = time.monotonic()
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            return ToolResult(success=False, error=f"{self.info.name} request failed: {e}")

        metadata = {
            "integration": self.id,
            "tool": tool_name,
            "duration": int((time.monotonic() - start) * 1000),
        }

        try:
            data = response.json() if response.content else None
        except ValueError:
            data = response.text

        if response.is_error:
            message = data.get("message") if isinstance(data, dict) else None
            return ToolResult(
                success=False,
                error=message or f"{self.info.name} API error: {response.status_code}",
                metadata=metadata,
            )

        return ToolResult(success=True, data=data, metadata=metadata)
