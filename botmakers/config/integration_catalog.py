"""Integration catalog: static definitions of every integration the platform offers."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional, TypedDict


class IntegrationMode(str, Enum):
    """Who supplies the credentials for an integration."""

    INCLUDED = "INCLUDED"  # platform pays, shared by all tenants
    BYOK = "BYOK"  # tenant brings their own key/connection
    DISABLED = "DISABLED"


class CredentialField(TypedDict, total=False):
    """Credential field definition."""

    key: str
    label: str
    type: str  # text, password, url
    required: bool
    placeholder: str


class IntegrationDefinition(TypedDict, total=False):
    """Integration catalog entry."""

    id: str
    display_name: str
    description: str
    category: str  # ai, communication, email, crm, finance, storage, productivity
    auth_type: str  # api_key, oauth2
    icon_url: str
    docs_url: str
    credential_fields: list[CredentialField]
    oauth_scopes: list[str]
    default_mode: IntegrationMode
    suggested_price_per_unit: float


def _oauth_app_fields(id_key: str = "clientId", secret_key: str = "clientSecret",
                      id_label: str = "Client ID", secret_label: str = "Client Secret") -> list[CredentialField]:
    return [
        {"key": id_key, "label": id_label, "type": "text", "required": True},
        {"key": secret_key, "label": secret_label, "type": "password", "required": True},
    ]


INTEGRATION_CATALOG: list[IntegrationDefinition] = [
    # AI
    {
        "id": "openai",
        "display_name": "OpenAI",
        "description": "GPT-4, DALL-E, Whisper, and Embeddings",
        "category": "ai",
        "auth_type": "api_key",
        "icon_url": "/icons/openai.svg",
        "docs_url": "https://platform.openai.com/docs",
        "credential_fields": [
            {"key": "apiKey", "label": "API Key", "type": "password", "required": True, "placeholder": "sk-..."},
            {"key": "orgId", "label": "Organization ID", "type": "text", "required": False, "placeholder": "org-..."},
        ],
        "default_mode": IntegrationMode.INCLUDED,
        "suggested_price_per_unit": 0.002,
    },
    {
        "id": "anthropic",
        "display_name": "Anthropic Claude",
        "description": "Claude AI for text generation and analysis",
        "category": "ai",
        "auth_type": "api_key",
        "icon_url": "/icons/anthropic.svg",
        "docs_url": "https://docs.anthropic.com",
        "credential_fields": [
            {"key": "apiKey", "label": "API Key", "type": "password", "required": True, "placeholder": "sk-ant-..."},
        ],
        "default_mode": IntegrationMode.INCLUDED,
        "suggested_price_per_unit": 0.003,
    },
    # Communication
    {
        "id": "twilio",
        "display_name": "Twilio",
        "description": "SMS, Voice, and WhatsApp messaging",
        "category": "communication",
        "auth_type": "api_key",
        "icon_url": "/icons/twilio.svg",
        "docs_url": "https://www.twilio.com/docs",
        "credential_fields": [
            {"key": "accountSid", "label": "Account SID", "type": "text", "required": True, "placeholder": "AC..."},
            {"key": "authToken", "label": "Auth Token", "type": "password", "required": True},
            {"key": "phoneNumber", "label": "Phone Number", "type": "text", "required": False, "placeholder": "+1..."},
        ],
        "default_mode": IntegrationMode.INCLUDED,
        "suggested_price_per_unit": 0.01,
    },
    {
        "id": "vapi",
        "display_name": "Vapi",
        "description": "AI voice agents and phone calls",
        "category": "communication",
        "auth_type": "api_key",
        "icon_url": "/icons/vapi.svg",
        "docs_url": "https://docs.vapi.ai",
        "credential_fields": [
            {"key": "apiKey", "label": "API Key", "type": "password", "required": True},
        ],
        "default_mode": IntegrationMode.INCLUDED,
        "suggested_price_per_unit": 0.05,
    },
    {
        "id": "resend",
        "display_name": "Resend",
        "description": "Transactional email sending",
        "category": "communication",
        "auth_type": "api_key",
        "icon_url": "/icons/resend.svg",
        "docs_url": "https://resend.com/docs",
        "credential_fields": [
            {"key": "apiKey", "label": "API Key", "type": "password", "required": True, "placeholder": "re_..."},
        ],
        "default_mode": IntegrationMode.INCLUDED,
        "suggested_price_per_unit": 0.001,
    },
    {
        "id": "dialpad",
        "display_name": "Dialpad",
        "description": "Business phone system and contact center",
        "category": "communication",
        "auth_type": "oauth2",
        "icon_url": "/icons/dialpad.svg",
        "docs_url": "https://developers.dialpad.com",
        "credential_fields": _oauth_app_fields(),
        "oauth_scopes": ["calls", "contacts", "users"],
        "default_mode": IntegrationMode.BYOK,
    },
    # Email / Calendar
    {
        "id": "nylas",
        "display_name": "Nylas",
        "description": "Email, Calendar, and Contacts API",
        "category": "email",
        "auth_type": "oauth2",
        "icon_url": "/icons/nylas.svg",
        "docs_url": "https://developer.nylas.com",
        "credential_fields": [
            {"key": "clientId", "label": "Client ID", "type": "text", "required": True},
            {"key": "apiKey", "label": "API Key", "type": "password", "required": True},
        ],
        "oauth_scopes": ["email", "calendar", "contacts"],
        "default_mode": IntegrationMode.BYOK,
    },
    {
        "id": "msgraph",
        "display_name": "Microsoft 365",
        "description": "Outlook, Calendar, OneDrive, Teams",
        "category": "email",
        "auth_type": "oauth2",
        "icon_url": "/icons/microsoft.svg",
        "docs_url": "https://docs.microsoft.com/graph",
        "credential_fields": _oauth_app_fields() + [
            {"key": "tenantId", "label": "Tenant ID", "type": "text", "required": False, "placeholder": "common"},
        ],
        "oauth_scopes": ["Mail.Read", "Mail.Send", "Calendars.ReadWrite", "Contacts.Read"],
        "default_mode": IntegrationMode.BYOK,
    },
    {
        "id": "google_calendar",
        "display_name": "Google Calendar",
        "description": "Calendar scheduling and event management",
        "category": "email",
        "auth_type": "oauth2",
        "icon_url": "/icons/google-calendar.svg",
        "docs_url": "https://developers.google.com/calendar",
        "credential_fields": _oauth_app_fields(),
        "oauth_scopes": [
            "https://www.googleapis.com/auth/calendar",
            "https://www.googleapis.com/auth/calendar.events",
        ],
        "default_mode": IntegrationMode.BYOK,
    },
    {
        "id": "cal_com",
        "display_name": "Cal.com",
        "description": "Open source scheduling and appointment booking",
        "category": "email",
        "auth_type": "api_key",
        "icon_url": "/icons/cal-com.svg",
        "docs_url": "https://cal.com/docs/api-reference",
        "credential_fields": [
            {"key": "apiKey", "label": "API Key", "type": "password", "required": True, "placeholder": "cal_live_..."},
        ],
        "default_mode": IntegrationMode.BYOK,
    },
    # CRM
    {
        "id": "filevine",
        "display_name": "Filevine",
        "description": "Legal case management",
        "category": "crm",
        "auth_type": "api_key",
        "icon_url": "/icons/filevine.svg",
        "docs_url": "https://developers.filevine.io",
        "credential_fields": [
            {"key": "apiKey", "label": "API Key", "type": "password", "required": True},
            {"key": "apiSecret", "label": "API Secret", "type": "password", "required": True},
            {"key": "baseUrl", "label": "Base URL", "type": "url", "required": True, "placeholder": "https://api.filevine.io"},
        ],
        "default_mode": IntegrationMode.BYOK,
    },
    {
        "id": "hubspot",
        "display_name": "HubSpot",
        "description": "CRM and marketing automation",
        "category": "crm",
        "auth_type": "oauth2",
        "icon_url": "/icons/hubspot.svg",
        "docs_url": "https://developers.hubspot.com",
        "credential_fields": _oauth_app_fields(),
        "oauth_scopes": ["contacts", "content", "automation"],
        "default_mode": IntegrationMode.BYOK,
    },
    {
        "id": "pipedrive",
        "display_name": "Pipedrive",
        "description": "Sales pipeline CRM",
        "category": "crm",
        "auth_type": "api_key",
        "icon_url": "/icons/pipedrive.svg",
        "docs_url": "https://developers.pipedrive.com/docs/api/v1",
        "credential_fields": [
            {"key": "apiToken", "label": "API Token", "type": "password", "required": True},
        ],
        "default_mode": IntegrationMode.BYOK,
    },
    {
        "id": "close",
        "display_name": "Close",
        "description": "Inside sales CRM with calling and email",
        "category": "crm",
        "auth_type": "api_key",
        "icon_url": "/icons/close.svg",
        "docs_url": "https://developer.close.com",
        "credential_fields": [
            {"key": "apiKey", "label": "API Key", "type": "password", "required": True, "placeholder": "api_..."},
        ],
        "default_mode": IntegrationMode.BYOK,
    },
    {
        "id": "smartoffice",
        "display_name": "SmartOffice (Zinnia)",
        "description": "Insurance CRM and sales automation",
        "category": "crm",
        "auth_type": "api_key",
        "icon_url": "/icons/smartoffice.svg",
        "docs_url": "https://www.zinnia.com/smartoffice",
        "credential_fields": [
            {"key": "apiKey", "label": "API Key", "type": "password", "required": True},
            {"key": "userId", "label": "User ID", "type": "text", "required": True},
            {"key": "baseUrl", "label": "Base URL", "type": "url", "required": True},
        ],
        "default_mode": IntegrationMode.BYOK,
    },
    # Finance
    {
        "id": "plaid",
        "display_name": "Plaid",
        "description": "Bank connections and financial data",
        "category": "finance",
        "auth_type": "api_key",
        "icon_url": "/icons/plaid.svg",
        "docs_url": "https://plaid.com/docs",
        "credential_fields": [
            {"key": "clientId", "label": "Client ID", "type": "text", "required": True},
            {"key": "secret", "label": "Secret", "type": "password", "required": True},
            {"key": "environment", "label": "Environment", "type": "text", "required": True,
             "placeholder": "sandbox | development | production"},
        ],
        "default_mode": IntegrationMode.BYOK,
    },
    {
        "id": "quickbooks",
        "display_name": "QuickBooks",
        "description": "Accounting and invoicing",
        "category": "finance",
        "auth_type": "oauth2",
        "icon_url": "/icons/quickbooks.svg",
        "docs_url": "https://developer.intuit.com",
        "credential_fields": _oauth_app_fields(),
        "oauth_scopes": ["com.intuit.quickbooks.accounting"],
        "default_mode": IntegrationMode.BYOK,
    },
    {
        "id": "stripe",
        "display_name": "Stripe",
        "description": "Payment processing",
        "category": "finance",
        "auth_type": "api_key",
        "icon_url": "/icons/stripe.svg",
        "docs_url": "https://stripe.com/docs",
        "credential_fields": [
            {"key": "secretKey", "label": "Secret Key", "type": "password", "required": True, "placeholder": "sk_..."},
            {"key": "publishableKey", "label": "Publishable Key", "type": "text", "required": False, "placeholder": "pk_..."},
        ],
        "default_mode": IntegrationMode.BYOK,
    },
    {
        "id": "square",
        "display_name": "Square",
        "description": "Payment processing and POS",
        "category": "finance",
        "auth_type": "oauth2",
        "icon_url": "/icons/square.svg",
        "docs_url": "https://developer.squareup.com",
        "credential_fields": _oauth_app_fields("applicationId", "applicationSecret", "Application ID", "Application Secret"),
        "oauth_scopes": ["PAYMENTS_READ", "PAYMENTS_WRITE"],
        "default_mode": IntegrationMode.BYOK,
    },
    # Storage
    {
        "id": "google_drive",
        "display_name": "Google Drive",
        "description": "Cloud file storage",
        "category": "storage",
        "auth_type": "oauth2",
        "icon_url": "/icons/google-drive.svg",
        "docs_url": "https://developers.google.com/drive",
        "credential_fields": _oauth_app_fields(),
        "oauth_scopes": ["https://www.googleapis.com/auth/drive.file"],
        "default_mode": IntegrationMode.BYOK,
    },
    {
        "id": "dropbox",
        "display_name": "Dropbox",
        "description": "Cloud file storage",
        "category": "storage",
        "auth_type": "oauth2",
        "icon_url": "/icons/dropbox.svg",
        "docs_url": "https://www.dropbox.com/developers",
        "credential_fields": _oauth_app_fields("appKey", "appSecret", "App Key", "App Secret"),
        "oauth_scopes": ["files.content.read", "files.content.write"],
        "default_mode": IntegrationMode.BYOK,
    },
    # Productivity
    {
        "id": "slack",
        "display_name": "Slack",
        "description": "Team messaging and notifications",
        "category": "productivity",
        "auth_type": "oauth2",
        "icon_url": "/icons/slack.svg",
        "docs_url": "https://api.slack.com",
        "credential_fields": _oauth_app_fields() + [
            {"key": "signingSecret", "label": "Signing Secret", "type": "password", "required": False},
        ],
        "oauth_scopes": ["chat:write", "channels:read"],
        "default_mode": IntegrationMode.BYOK,
    },
    {
        "id": "notion",
        "display_name": "Notion",
        "description": "Workspace and documentation",
        "category": "productivity",
        "auth_type": "oauth2",
        "icon_url": "/icons/notion.svg",
        "docs_url": "https://developers.notion.com",
        "credential_fields": _oauth_app_fields(),
        "oauth_scopes": [],
        "default_mode": IntegrationMode.BYOK,
    },
    {
        "id": "airtable",
        "display_name": "Airtable",
        "description": "Database and spreadsheet hybrid",
        "category": "productivity",
        "auth_type": "api_key",
        "icon_url": "/icons/airtable.svg",
        "docs_url": "https://airtable.com/developers/web/api",
        "credential_fields": [
            {"key": "apiKey", "label": "Personal Access Token", "type": "password", "required": True, "placeholder": "pat..."},
        ],
        "default_mode": IntegrationMode.BYOK,
    },
    {
        "id": "monday",
        "display_name": "monday.com",
        "description": "Work management boards and items",
        "category": "productivity",
        "auth_type": "api_key",
        "icon_url": "/icons/monday.svg",
        "docs_url": "https://developer.monday.com/api-reference",
        "credential_fields": [
            {"key": "apiToken", "label": "API Token", "type": "password", "required": True},
        ],
        "default_mode": IntegrationMode.BYOK,
    },
]

# Category taxonomy shown by the dashboard
CATEGORIES: list[dict[str, str]] = [
    {"id": "ai", "name": "AI & Machine Learning", "icon": "Brain", "description": "AI-powered tools and automation"},
    {"id": "communication", "name": "Communication", "icon": "MessageSquare", "description": "SMS, voice, and messaging"},
    {"id": "email", "name": "Email & Calendar", "icon": "Mail", "description": "Email, calendar, and contacts"},
    {"id": "crm", "name": "CRM", "icon": "Users", "description": "Customer relationship management"},
    {"id": "finance", "name": "Finance", "icon": "CreditCard", "description": "Payments and accounting"},
    {"id": "storage", "name": "Storage", "icon": "FolderOpen", "description": "File storage and sync"},
    {"id": "productivity", "name": "Productivity", "icon": "BarChart3", "description": "Workspace and collaboration"},
]

_CATALOG_BY_ID: dict[str, IntegrationDefinition] = {d["id"]: d for d in INTEGRATION_CATALOG}


def get_integration_definitions() -> list[IntegrationDefinition]:
    """Get all catalog entries."""
    return list(INTEGRATION_CATALOG)


def get_integration_definition(integration_id: str) -> Optional[IntegrationDefinition]:
    """Get a specific catalog entry by ID."""
    return _CATALOG_BY_ID.get(integration_id)


def required_fields(definition: IntegrationDefinition) -> list[CredentialField]:
    """Credential fields a tenant must supply to connect."""
    return [f for f in definition.get("credential_fields", []) if f.get("required")]


def serialize_credential_fields(definition: IntegrationDefinition) -> list[dict[str, Any]]:
    """Credential field schema as returned by the API."""
    return [
        {
            "key": f["key"],
            "label": f["label"],
            "type": f["type"],
            "required": f.get("required", False),
            "placeholder": f.get("placeholder"),
        }
        for f in definition.get("credential_fields", [])
    ]
