"""Cal.com - open source scheduling and appointment booking."""

from __future__ import annotations

from typing import Any

from botmakers.integrations.types import (
    Integration,
    IntegrationCredentials,
    IntegrationInfo,
    ToolDefinition,
    ToolParameter,
    ToolResult,
)

BASE_URL = "https://api.cal.com/v1"


class CalComIntegration(Integration):
    info = IntegrationInfo(
        id="cal_com",
        name="Cal.com",
        description="Open source scheduling and appointment booking",
        category="email",
        auth_type="api_key",
    )

    def is_configured(self) -> bool:
        # Per-tenant API keys
        return True

    def get_tools(self) -> list[ToolDefinition]:
        def tool(name: str, description: str, *parameters: ToolParameter) -> ToolDefinition:
            return ToolDefinition(name, description, "calendar", "cal_com", list(parameters))

        return [
            tool("calcom_list_event_types", "List available Cal.com event types (booking links)"),
            tool(
                "calcom_list_bookings",
                "List Cal.com bookings/appointments",
                ToolParameter("status", "string", "Filter by status (upcoming, past, cancelled)"),
                ToolParameter("limit", "number", "Max bookings", default=50),
            ),
            tool(
                "calcom_get_booking",
                "Get details of a specific Cal.com booking",
                ToolParameter("booking_id", "string", "Booking ID", required=True),
            ),
            tool(
                "calcom_cancel_booking",
                "Cancel a Cal.com booking",
                ToolParameter("booking_id", "string", "Booking ID", required=True),
                ToolParameter("reason", "string", "Cancellation reason"),
            ),
        ]

    async def execute_tool(
        self,
        tool_name: str,
        params: dict[str, Any],
        credentials: IntegrationCredentials,
    ) -> ToolResult:
        api_key = credentials.values.get("apiKey")
        if not api_key:
            return ToolResult(success=False, error="Cal.com API key not available")

        headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}

        if tool_name == "calcom_list_event_types":
            return await self._call(tool_name, "GET", f"{BASE_URL}/event-types", headers=headers)

        if tool_name == "calcom_list_bookings":
            query: dict[str, Any] = {"limit": params.get("limit") or 50}
            if params.get("status"):
                query["status"] = params["status"]
            return await self._call(tool_name, "GET", f"{BASE_URL}/bookings", headers=headers, params=query)

        if tool_name == "calcom_get_booking":
            return await self._call(tool_name, "GET", f"{BASE_URL}/bookings/{params['booking_id']}", headers=headers)

        if tool_name == "calcom_cancel_booking":
            return await self._call(
                tool_name,
                "DELETE",
                f"{BASE_URL}/bookings/{params['booking_id']}/cancel",
                headers=headers,
                params={"cancellationReason": params.get("reason") or ""},
            )

        return ToolResult(success=False, error=f"Unknown tool: {tool_name}")
