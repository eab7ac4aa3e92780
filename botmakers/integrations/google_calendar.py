"""Google Calendar - OAuth2 calendar integration."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlencode

import httpx
from tenacity import before_sleep_log, retry, retry_if_exception, stop_after_attempt, wait_random_exponential

from botmakers.integrations.types import (
    Integration,
    IntegrationCredentials,
    IntegrationInfo,
    OAuthError,
    ToolDefinition,
    ToolParameter,
    ToolResult,
)

logger = logging.getLogger(__name__)

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
BASE_URL = "https://www.googleapis.com/calendar/v3"

RETRYABLE_STATUS = {500, 502, 503, 504}


def _is_transient(exception: BaseException) -> bool:
    if isinstance(exception, httpx.TransportError):
        return True
    return isinstance(exception, httpx.HTTPStatusError) and exception.response.status_code in RETRYABLE_STATUS


@retry(
    retry=retry_if_exception(_is_transient),
    stop=stop_after_attempt(3),
    wait=wait_random_exponential(multiplier=0.1, max=1),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
async def _post_token(client: httpx.AsyncClient, data: dict[str, str]) -> httpx.Response:
    response = await client.post(TOKEN_URL, data=data)
    if response.status_code in RETRYABLE_STATUS:
        response.raise_for_status()
    return response


class GoogleCalendarIntegration(Integration):
    info = IntegrationInfo(
        id="google_calendar",
        name="Google Calendar",
        description="Manage Google Calendar events and availability",
        category="email",
        auth_type="oauth2",
        scopes=[
            "https://www.googleapis.com/auth/calendar",
            "https://www.googleapis.com/auth/calendar.events",
        ],
    )

    def is_configured(self) -> bool:
        return bool(self.settings.google_client_id and self.settings.google_client_secret)

    @property
    def redirect_uri(self) -> str:
        return f"{self.settings.api_url.rstrip('/')}/integrations/callback/{self.id}"

    def get_auth_url(self, tenant_id: str, state: str) -> str:
        params = {
            "client_id": self.settings.google_client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.info.scopes),
            "access_type": "offline",
            "prompt": "consent",
            "state": state or tenant_id,
        }
        return f"{AUTH_URL}?{urlencode(params)}"

    async def _token_request(self, data: dict[str, str]) -> dict[str, Any]:
        try:
            response = await _post_token(self.client, data)
        except httpx.HTTPError as e:
            raise OAuthError(f"Token endpoint unavailable: {e}") from e

        if response.is_error:
            raise OAuthError(f"Token request failed ({response.status_code}): {response.text}")

        try:
            tokens = response.json()
        except ValueError as e:
            raise OAuthError(f"Token endpoint returned a non-JSON body: {response.text[:200]}") from e
        if not isinstance(tokens, dict) or not tokens.get("access_token"):
            raise OAuthError("Token response did not include an access token")
        return tokens

    async def handle_callback(self, code: str, tenant_id: str) -> IntegrationCredentials:
        tokens = await self._token_request(
            {
                "code": code,
                "client_id": self.settings.google_client_id or "",
                "client_secret": self.settings.google_client_secret or "",
                "redirect_uri": self.redirect_uri,
                "grant_type": "authorization_code",
            }
        )
        access_token = tokens["access_token"]

        # The primary calendar id is the account's email address
        email = None
        try:
            response = await self.client.get(
                f"{BASE_URL}/users/me/calendarList",
                params={"maxResults": 1},
                headers={"Authorization": f"Bearer {access_token}"},
            )
            if response.is_success:
                items = response.json().get("items") or []
                primary = next((item for item in items if item.get("primary")), items[0] if items else None)
                email = primary.get("id") if primary else None
        except httpx.HTTPError as e:
            logger.warning(f"Could not look up Google account email: {e}")

        return IntegrationCredentials(
            integration_id=self.id,
            tenant_id=tenant_id,
            access_token=access_token,
            refresh_token=tokens.get("refresh_token"),
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=int(tokens.get("expires_in", 3600))),
            account_email=email,
        )

    async def refresh_token(self, credentials: IntegrationCredentials) -> IntegrationCredentials:
        if not credentials.refresh_token:
            raise OAuthError("No refresh token available")

        tokens = await self._token_request(
            {
                "refresh_token": credentials.refresh_token,
                "client_id": self.settings.google_client_id or "",
                "client_secret": self.settings.google_client_secret or "",
                "grant_type": "refresh_token",
            }
        )
        credentials.access_token = tokens["access_token"]
        credentials.expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(tokens.get("expires_in", 3600)))
        # Google only occasionally rotates the refresh token
        if tokens.get("refresh_token"):
            credentials.refresh_token = tokens["refresh_token"]
        return credentials

    def get_tools(self) -> list[ToolDefinition]:
        def tool(name: str, description: str, *parameters: ToolParameter) -> ToolDefinition:
            return ToolDefinition(name, description, "calendar", self.id, list(parameters))

        return [
            tool("gcal_list_calendars", "List available Google calendars"),
            tool(
                "gcal_list_events",
                "List events from a Google calendar",
                ToolParameter("calendar_id", "string", "Calendar ID (default: primary)", default="primary"),
                ToolParameter("time_min", "string", "Start of range (ISO 8601)"),
                ToolParameter("time_max", "string", "End of range (ISO 8601)"),
                ToolParameter("max_results", "number", "Max events", default=50),
            ),
            tool(
                "gcal_create_event",
                "Create a Google Calendar event",
                ToolParameter("calendar_id", "string", "Calendar ID (default: primary)", default="primary"),
                ToolParameter("summary", "string", "Event title", required=True),
                ToolParameter("start_time", "string", "Start time (ISO 8601)", required=True),
                ToolParameter("end_time", "string", "End time (ISO 8601)", required=True),
                ToolParameter("description", "string", "Event description"),
                ToolParameter("attendees", "array", "Attendee email addresses"),
            ),
            tool(
                "gcal_delete_event",
                "Delete a Google Calendar event",
                ToolParameter("calendar_id", "string", "Calendar ID (default: primary)", default="primary"),
                ToolParameter("event_id", "string", "Event ID", required=True),
            ),
        ]

    async def execute_tool(
        self,
        tool_name: str,
        params: dict[str, Any],
        credentials: IntegrationCredentials,
    ) -> ToolResult:
        access_token = credentials.access_token or credentials.values.get("accessToken")
        if not access_token:
            return ToolResult(success=False, error="No access token available")

        headers = {"Authorization": f"Bearer {access_token}", "Content-Type": "application/json"}
        calendar_id = params.get("calendar_id") or "primary"

        if tool_name == "gcal_list_calendars":
            return await self._call(tool_name, "GET", f"{BASE_URL}/users/me/calendarList", headers=headers)

        if tool_name == "gcal_list_events":
            query = {
                "maxResults": params.get("max_results") or 50,
                "singleEvents": "true",
                "orderBy": "startTime",
            }
            if params.get("time_min"):
                query["timeMin"] = params["time_min"]
            if params.get("time_max"):
                query["timeMax"] = params["time_max"]
            return await self._call(
                tool_name, "GET", f"{BASE_URL}/calendars/{calendar_id}/events", headers=headers, params=query
            )

        if tool_name == "gcal_create_event":
            body: dict[str, Any] = {
                "summary": params.get("summary"),
                "description": params.get("description"),
                "start": {"dateTime": params.get("start_time")},
                "end": {"dateTime": params.get("end_time")},
            }
            if params.get("attendees"):
                body["attendees"] = [{"email": email} for email in params["attendees"]]
            return await self._call(
                tool_name, "POST", f"{BASE_URL}/calendars/{calendar_id}/events", headers=headers, json=body
            )

        if tool_name == "gcal_delete_event":
            result = await self._call(
                tool_name,
                "DELETE",
                f"{BASE_URL}/calendars/{calendar_id}/events/{params['event_id']}",
                headers=headers,
            )
            if result.success:
                result.data = {"deleted": True}
            return result

        return ToolResult(success=False, error=f"Unknown tool: {tool_name}")
