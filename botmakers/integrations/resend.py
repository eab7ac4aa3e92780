"""Resend - transactional email API."""

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

BASE_URL = "https://api.resend.com"


def _tool(name: str, description: str, *parameters: ToolParameter) -> ToolDefinition:
    return ToolDefinition(
        name=name,
        description=description,
        category="email",
        integration="resend",
        parameters=list(parameters),
    )


class ResendIntegration(Integration):
    info = IntegrationInfo(
        id="resend",
        name="Resend",
        description="Email API for developers - send transactional and marketing emails",
        category="communication",
        auth_type="api_key",
    )

    def is_configured(self) -> bool:
        # API key is resolved per call (platform or tenant)
        return True

    def get_tools(self) -> list[ToolDefinition]:
        return [
            _tool(
                "resend_send_email",
                "Send an email",
                ToolParameter("from", "string", "Sender email address", required=True),
                ToolParameter("to", "array", "Recipient email addresses", required=True),
                ToolParameter("subject", "string", "Email subject", required=True),
                ToolParameter("html", "string", "HTML content"),
                ToolParameter("text", "string", "Plain text content"),
                ToolParameter("cc", "array", "CC recipients"),
                ToolParameter("bcc", "array", "BCC recipients"),
                ToolParameter("reply_to", "array", "Reply-to addresses"),
            ),
            _tool("resend_list_emails", "List sent emails"),
            _tool(
                "resend_get_email",
                "Get email details",
                ToolParameter("email_id", "string", "Email ID", required=True),
            ),
            _tool("resend_list_domains", "List all domains"),
        ]

    async def execute_tool(
        self,
        tool_name: str,
        params: dict[str, Any],
        credentials: IntegrationCredentials,
    ) -> ToolResult:
        api_key = credentials.values.get("apiKey")
        if not api_key:
            return ToolResult(success=False, error="Resend API key not available")

        headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}

        if tool_name == "resend_send_email":
            body = {key: value for key, value in params.items() if value is not None}
            return await self._call(tool_name, "POST", f"{BASE_URL}/emails", headers=headers, json=body)
        if tool_name == "resend_list_emails":
            return await self._call(tool_name, "GET", f"{BASE_URL}/emails", headers=headers)
        if tool_name == "resend_get_email":
            return await self._call(tool_name, "GET", f"{BASE_URL}/emails/{params['email_id']}", headers=headers)
        if tool_name == "resend_list_domains":
            return await self._call(tool_name, "GET", f"{BASE_URL}/domains", headers=headers)

        return ToolResult(success=False, error=f"Unknown tool: {tool_name}")
