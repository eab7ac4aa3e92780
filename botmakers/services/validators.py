"""Vendor validators for checking that stored credentials actually work.

Each integration with an automated check has a validator that makes one
lightweight, read-only call to the vendor API (one 1-token completion for
Anthropic) and normalizes the outcome into a ValidationResult.
Validators never raise: network failures and unexpected errors come back as
``CONNECTION_ERROR`` results.
"""

from __future__ import annotations

import base64
import functools
import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

from botmakers.db.models import as_utc
from botmakers.utils.http_client import get_http_client

if TYPE_CHECKING:
    from botmakers.services.vault import CredentialVault

logger = logging.getLogger(__name__)


class ValidationErrorCode(str, Enum):
    """Normalized failure codes returned by validators."""

    MISSING_CREDENTIALS = "MISSING_CREDENTIALS"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    INVALID_KEY_FORMAT = "INVALID_KEY_FORMAT"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    TOKEN_EXPIRED_NO_REFRESH = "TOKEN_EXPIRED_NO_REFRESH"
    NO_CREDENTIALS = "NO_CREDENTIALS"
    API_ERROR = "API_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class ValidationDetails(BaseModel):
    """Structured details discovered during validation."""

    account_info: Optional[dict[str, Any]] = Field(None, alias="accountInfo")
    token_expires_at: Optional[str] = Field(None, alias="tokenExpiresAt")
    scopes: Optional[list[str]] = None

    model_config = ConfigDict(populate_by_name=True, serialize_by_alias=True)


class ValidationResult(BaseModel):
    """Normalized outcome of a credential check."""

    success: bool
    message: str
    latency_ms: Optional[int] = Field(None, alias="latencyMs")
    details: Optional[ValidationDetails] = None
    # Vendor-provided codes (e.g. Plaid's) pass through as plain strings
    error_code: Optional[ValidationErrorCode | str] = Field(None, alias="errorCode")

    model_config = ConfigDict(populate_by_name=True, serialize_by_alias=True)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


ValidatorFn = Callable[..., Awaitable[ValidationResult]]


def _failure(message: str, error_code: ValidationErrorCode | str, latency_ms: Optional[int] = None) -> ValidationResult:
    return ValidationResult(success=False, message=message, latency_ms=latency_ms, error_code=error_code)


def _json(response: httpx.Response) -> dict[str, Any]:
    """Response body as a dict; vendors sometimes answer errors with HTML."""
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _error_object(response: httpx.Response) -> dict[str, Any]:
    """The body's ``error`` member; some vendors send a bare string there."""
    error = _json(response).get("error")
    if isinstance(error, dict):
        return error
    return {"message": error} if isinstance(error, str) and error else {}


async def _timed_request(client: httpx.AsyncClient, method: str, url: str, **kwargs: Any) -> tuple[httpx.Response, int]:
    """Send one request and return it with wall-clock latency in ms."""
    start = time.monotonic()
    response = await client.request(method, url, **kwargs)
    return response, int((time.monotonic() - start) * 1000)


def _basic_auth(username: str, password: str) -> str:
    token = base64.b64encode(f"{username}:{password}".encode()).decode()
    return f"Basic {token}"


def validator(*required: str, missing_message: str) -> Callable[[Callable[..., Awaitable[ValidationResult]]], ValidatorFn]:
    """Declare a validator's required credential fields and make it exception-safe.

    The wrapped coroutine receives ``(credentials, client)`` and is only called
    when every required field is present.
    """

    def decorator(func: Callable[..., Awaitable[ValidationResult]]) -> ValidatorFn:
        @functools.wraps(func)
        async def wrapper(credentials: dict[str, str], *, client: Optional[httpx.AsyncClient] = None) -> ValidationResult:
            if any(not credentials.get(key) for key in required):
                return _failure(missing_message, ValidationErrorCode.MISSING_CREDENTIALS)

            try:
                return await func(credentials, client or get_http_client())
            except httpx.TimeoutException:
                return _failure("Connection timed out", ValidationErrorCode.CONNECTION_ERROR)
            except httpx.HTTPError as e:
                return _failure(str(e) or "Connection failed", ValidationErrorCode.CONNECTION_ERROR)
            except Exception as e:
                logger.exception("Validator %s failed", func.__name__)
                return _failure(str(e) or "Connection failed", ValidationErrorCode.CONNECTION_ERROR)

        wrapper.required_fields = required  # type: ignore[attr-defined]
        return wrapper

    return decorator


# =============================================================================
# API KEY VALIDATORS
# =============================================================================


@validator("apiKey", missing_message="API key is required")
async def validate_openai(credentials: dict[str, str], client: httpx.AsyncClient) -> ValidationResult:
    """List models with the key."""
    response, latency = await _timed_request(
        client,
        "GET",
        "https://api.openai.com/v1/models",
        headers={"Authorization": f"Bearer {credentials['apiKey']}", "Content-Type": "application/json"},
    )

    if response.is_success:
        data = _json(response)
        return ValidationResult(
            success=True,
            message="OpenAI connection successful",
            latency_ms=latency,
            details=ValidationDetails(account_info={"modelsAvailable": len(data.get("data") or [])}),
        )

    error = _error_object(response)
    return _failure(
        error.get("message") or "OpenAI API error",
        error.get("code") or ValidationErrorCode.API_ERROR,
        latency,
    )


@validator("apiKey", missing_message="API key is required")
async def validate_anthropic(credentials: dict[str, str], client: httpx.AsyncClient) -> ValidationResult:
    """Anthropic has no read-only probe; send a 1-token completion."""
    api_key = credentials["apiKey"]
    if not api_key.startswith("sk-ant-"):
        return _failure(
            'Invalid API key format. Anthropic keys should start with "sk-ant-"',
            ValidationErrorCode.INVALID_KEY_FORMAT,
        )

    response, latency = await _timed_request(
        client,
        "POST",
        "https://api.anthropic.com/v1/messages",
        headers={
            "x-api-key": api_key,
            "Content-Type": "application/json",
            "anthropic-version": "2023-06-01",
        },
        json={
            "model": "claude-3-haiku-20240307",
            "max_tokens": 1,
            "messages": [{"role": "user", "content": "Hi"}],
        },
    )

    if response.is_success:
        return ValidationResult(success=True, message="Anthropic connection successful", latency_ms=latency)

    error = _error_object(response)
    return _failure(
        error.get("message") or "Anthropic API error",
        error.get("type") or ValidationErrorCode.API_ERROR,
        latency,
    )


@validator("accountSid", "authToken", missing_message="Account SID and Auth Token are required")
async def validate_twilio(credentials: dict[str, str], client: httpx.AsyncClient) -> ValidationResult:
    account_sid = credentials["accountSid"]
    response, latency = await _timed_request(
        client,
        "GET",
        f"https://api.twilio.com/2010-04-01/Accounts/{account_sid}.json",
        headers={"Authorization": _basic_auth(account_sid, credentials["authToken"])},
    )

    if response.is_success:
        data = _json(response)
        return ValidationResult(
            success=True,
            message="Twilio connection successful",
            latency_ms=latency,
            details=ValidationDetails(
                account_info={
                    "friendlyName": data.get("friendly_name"),
                    "status": data.get("status"),
                    "type": data.get("type"),
                }
            ),
        )

    return _failure("Invalid Twilio credentials", ValidationErrorCode.INVALID_CREDENTIALS, latency)


@validator("apiKey", missing_message="API key is required")
async def validate_resend(credentials: dict[str, str], client: httpx.AsyncClient) -> ValidationResult:
    response, latency = await _timed_request(
        client,
        "GET",
        "https://api.resend.com/domains",
        headers={"Authorization": f"Bearer {credentials['apiKey']}"},
    )

    if response.is_success:
        data = _json(response)
        return ValidationResult(
            success=True,
            message="Resend connection successful",
            latency_ms=latency,
            details=ValidationDetails(account_info={"domainsConfigured": len(data.get("data") or [])}),
        )

    return _failure("Invalid Resend API key", ValidationErrorCode.INVALID_CREDENTIALS, latency)


@validator("secretKey", missing_message="Secret key is required")
async def validate_stripe(credentials: dict[str, str], client: httpx.AsyncClient) -> ValidationResult:
    response, latency = await _timed_request(
        client,
        "GET",
        "https://api.stripe.com/v1/balance",
        headers={"Authorization": f"Bearer {credentials['secretKey']}"},
    )

    if response.is_success:
        data = _json(response)
        return ValidationResult(
            success=True,
            message="Stripe connection successful",
            latency_ms=latency,
            details=ValidationDetails(account_info={"liveMode": data.get("livemode")}),
        )

    error = _error_object(response)
    return _failure(error.get("message") or "Invalid Stripe API key", ValidationErrorCode.INVALID_CREDENTIALS, latency)


@validator("apiKey", missing_message="Personal Access Token is required")
async def validate_airtable(credentials: dict[str, str], client: httpx.AsyncClient) -> ValidationResult:
    response, latency = await _timed_request(
        client,
        "GET",
        "https://api.airtable.com/v0/meta/whoami",
        headers={"Authorization": f"Bearer {credentials['apiKey']}"},
    )

    if response.is_success:
        data = _json(response)
        return ValidationResult(
            success=True,
            message="Airtable connection successful",
            latency_ms=latency,
            details=ValidationDetails(account_info={"userId": data.get("id")}, scopes=data.get("scopes")),
        )

    return _failure("Invalid Airtable Personal Access Token", ValidationErrorCode.INVALID_CREDENTIALS, latency)


@validator("apiKey", missing_message="API key is required")
async def validate_cal_com(credentials: dict[str, str], client: httpx.AsyncClient) -> ValidationResult:
    response, latency = await _timed_request(
        client,
        "GET",
        "https://api.cal.com/v1/me",
        headers={"Authorization": f"Bearer {credentials['apiKey']}", "Content-Type": "application/json"},
    )

    if response.is_success:
        user = _json(response).get("user") or {}
        return ValidationResult(
            success=True,
            message="Cal.com connection successful",
            latency_ms=latency,
            details=ValidationDetails(
                account_info={"userId": user.get("id"), "email": user.get("email"), "name": user.get("name")}
            ),
        )

    return _failure(
        _json(response).get("message") or "Invalid Cal.com API key",
        ValidationErrorCode.INVALID_CREDENTIALS,
        latency,
    )


@validator("clientId", "secret", missing_message="Client ID and Secret are required")
async def validate_plaid(credentials: dict[str, str], client: httpx.AsyncClient) -> ValidationResult:
    """Plaid takes credentials in the request body; host depends on environment."""
    environment = credentials.get("environment")
    if environment == "production":
        base_url = "https://production.plaid.com"
    elif environment == "development":
        base_url = "https://development.plaid.com"
    else:
        base_url = "https://sandbox.plaid.com"

    response, latency = await _timed_request(
        client,
        "POST",
        f"{base_url}/institutions/get",
        headers={"Content-Type": "application/json"},
        json={
            "client_id": credentials["clientId"],
            "secret": credentials["secret"],
            "count": 1,
            "offset": 0,
            "country_codes": ["US"],
        },
    )

    if response.is_success:
        return ValidationResult(
            success=True,
            message="Plaid connection successful",
            latency_ms=latency,
            details=ValidationDetails(account_info={"environment": environment}),
        )

    error = _json(response)
    return _failure(
        error.get("error_message") or "Invalid Plaid credentials",
        error.get("error_code") or ValidationErrorCode.INVALID_CREDENTIALS,
        latency,
    )


@validator("apiKey", missing_message="API key is required")
async def validate_vapi(credentials: dict[str, str], client: httpx.AsyncClient) -> ValidationResult:
    response, latency = await _timed_request(
        client,
        "GET",
        "https://api.vapi.ai/assistant",
        params={"limit": 1},
        headers={"Authorization": f"Bearer {credentials['apiKey']}"},
    )

    if response.is_success:
        return ValidationResult(success=True, message="Vapi connection successful", latency_ms=latency)

    return _failure("Invalid Vapi API key", ValidationErrorCode.INVALID_CREDENTIALS, latency)


@validator("apiToken", missing_message="API token is required")
async def validate_pipedrive(credentials: dict[str, str], client: httpx.AsyncClient) -> ValidationResult:
    """Pipedrive authenticates with an ``api_token`` query parameter."""
    response, latency = await _timed_request(
        client,
        "GET",
        "https://api.pipedrive.com/v1/users/me",
        params={"api_token": credentials["apiToken"]},
    )

    body = _json(response)
    if response.is_success and body.get("success", True):
        user = body.get("data") or {}
        return ValidationResult(
            success=True,
            message="Pipedrive connection successful",
            latency_ms=latency,
            details=ValidationDetails(
                account_info={"userId": user.get("id"), "email": user.get("email"), "company": user.get("company_name")}
            ),
        )

    return _failure(body.get("error") or "Invalid Pipedrive API token", ValidationErrorCode.INVALID_CREDENTIALS, latency)


@validator("apiKey", missing_message="API key is required")
async def validate_close(credentials: dict[str, str], client: httpx.AsyncClient) -> ValidationResult:
    """Close uses Basic auth with the API key as username and no password."""
    response, latency = await _timed_request(
        client,
        "GET",
        "https://api.close.com/api/v1/me/",
        headers={"Authorization": _basic_auth(credentials["apiKey"], "")},
    )

    if response.is_success:
        data = _json(response)
        return ValidationResult(
            success=True,
            message="Close connection successful",
            latency_ms=latency,
            details=ValidationDetails(account_info={"userId": data.get("id"), "email": data.get("email")}),
        )

    return _failure("Invalid Close API key", ValidationErrorCode.INVALID_CREDENTIALS, latency)


@validator("apiToken", missing_message="API token is required")
async def validate_monday(credentials: dict[str, str], client: httpx.AsyncClient) -> ValidationResult:
    """GraphQL ``me`` query; monday answers auth errors with 200 + errors."""
    response, latency = await _timed_request(
        client,
        "POST",
        "https://api.monday.com/v2",
        headers={"Authorization": credentials["apiToken"], "Content-Type": "application/json"},
        json={"query": "query { me { id name email } }"},
    )

    body = _json(response)
    me = (body.get("data") or {}).get("me")
    if response.is_success and me and not body.get("errors"):
        return ValidationResult(
            success=True,
            message="monday.com connection successful",
            latency_ms=latency,
            details=ValidationDetails(account_info={"userId": me.get("id"), "name": me.get("name"), "email": me.get("email")}),
        )

    errors = body.get("errors") or []
    message = errors[0].get("message") if errors and isinstance(errors[0], dict) else None
    return _failure(
        message or body.get("error_message") or "Invalid monday.com API token",
        ValidationErrorCode.INVALID_CREDENTIALS,
        latency,
    )


# =============================================================================
# OAUTH VALIDATORS
# =============================================================================


@validator("accessToken", missing_message="Access token is required")
async def validate_google_calendar(credentials: dict[str, str], client: httpx.AsyncClient) -> ValidationResult:
    response, latency = await _timed_request(
        client,
        "GET",
        "https://www.googleapis.com/calendar/v3/users/me/calendarList",
        params={"maxResults": 1},
        headers={"Authorization": f"Bearer {credentials['accessToken']}", "Content-Type": "application/json"},
    )

    if response.is_success:
        items = _json(response).get("items") or []
        return ValidationResult(
            success=True,
            message="Google Calendar connection successful",
            latency_ms=latency,
            details=ValidationDetails(
                account_info={
                    "calendarsAvailable": len(items),
                    "primaryCalendar": items[0].get("summary") if items else None,
                }
            ),
        )

    if response.status_code == 401:
        return _failure("Access token expired or invalid. Please reconnect.", ValidationErrorCode.TOKEN_EXPIRED, latency)

    message = _error_object(response).get("message")
    return _failure(message or "Google Calendar API error", ValidationErrorCode.API_ERROR, latency)


@validator("accessToken", missing_message="Access token is required")
async def validate_dialpad(credentials: dict[str, str], client: httpx.AsyncClient) -> ValidationResult:
    response, latency = await _timed_request(
        client,
        "GET",
        "https://dialpad.com/api/v2/users/me",
        headers={"Authorization": f"Bearer {credentials['accessToken']}", "Content-Type": "application/json"},
    )

    if response.is_success:
        data = _json(response)
        name = f"{data.get('first_name') or ''} {data.get('last_name') or ''}".strip()
        return ValidationResult(
            success=True,
            message="Dialpad connection successful",
            latency_ms=latency,
            details=ValidationDetails(account_info={"userId": data.get("id"), "email": data.get("email"), "name": name}),
        )

    if response.status_code == 401:
        return _failure("Access token expired or invalid. Please reconnect.", ValidationErrorCode.TOKEN_EXPIRED, latency)

    error = _json(response)
    return _failure(error.get("message") or error.get("error") or "Dialpad API error", ValidationErrorCode.API_ERROR, latency)


def validate_oauth_token(
    access_token: str,
    refresh_token: Optional[str],
    token_expires_at: Optional[datetime],
    integration_id: str,
) -> ValidationResult:
    """Check an OAuth token by expiry alone (no vendor call)."""
    expires_at = as_utc(token_expires_at)
    expires_iso = expires_at.isoformat() if expires_at else None

    if expires_at and expires_at < datetime.now(timezone.utc):
        if refresh_token:
            return ValidationResult(
                success=False,
                message="Access token expired. Token refresh required.",
                error_code=ValidationErrorCode.TOKEN_EXPIRED,
                details=ValidationDetails(token_expires_at=expires_iso),
            )
        return _failure(
            "Access token expired and no refresh token available. Reconnection required.",
            ValidationErrorCode.TOKEN_EXPIRED_NO_REFRESH,
        )

    return ValidationResult(
        success=True,
        message=f"OAuth token for {integration_id} is valid",
        details=ValidationDetails(token_expires_at=expires_iso),
    )


# =============================================================================
# VALIDATOR REGISTRY
# =============================================================================

VALIDATORS: dict[str, ValidatorFn] = {
    "openai": validate_openai,
    "anthropic": validate_anthropic,
    "twilio": validate_twilio,
    "resend": validate_resend,
    "stripe": validate_stripe,
    "airtable": validate_airtable,
    "plaid": validate_plaid,
    "cal_com": validate_cal_com,
    "vapi": validate_vapi,
    "pipedrive": validate_pipedrive,
    "close": validate_close,
    "monday": validate_monday,
    "google_calendar": validate_google_calendar,
    "dialpad": validate_dialpad,
}

# Validators that probe with an OAuth access token rather than stored fields
OAUTH_VALIDATORS = frozenset({"google_calendar", "dialpad"})


async def validate_integration(
    integration_id: str,
    vault: CredentialVault,
    *,
    credentials_encrypted: Optional[str] = None,
    access_token: Optional[str] = None,
    refresh_token: Optional[str] = None,
    token_expires_at: Optional[datetime] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> ValidationResult:
    """Validate whatever credential material a connection or config holds."""
    if access_token:
        result = validate_oauth_token(access_token, refresh_token, token_expires_at, integration_id)
        if not result.success or integration_id not in OAUTH_VALIDATORS:
            return result

        live = await VALIDATORS[integration_id]({"accessToken": access_token}, client=client)
        if live.success and result.details and not (live.details and live.details.token_expires_at):
            live.details = (live.details or ValidationDetails()).model_copy(
                update={"token_expires_at": result.details.token_expires_at}
            )
        return live

    if credentials_encrypted:
        credentials = vault.retrieve_credentials(credentials_encrypted)
        validate = VALIDATORS.get(integration_id)
        if validate:
            return await validate(credentials, client=client)

        has_credentials = len(credentials) > 0
        return ValidationResult(
            success=has_credentials,
            message=(
                f"Credentials configured for {integration_id} (no automated validation available)"
                if has_credentials
                else "No credentials configured"
            ),
            error_code=None if has_credentials else ValidationErrorCode.NO_CREDENTIALS,
        )

    return _failure("No credentials or tokens configured", ValidationErrorCode.NO_CREDENTIALS)


def has_validator(integration_id: str) -> bool:
    """Check if a validator exists for an integration."""
    return integration_id in VALIDATORS


def get_validatable_integrations() -> list[str]:
    """Integrations with automated validation."""
    return list(VALIDATORS)
