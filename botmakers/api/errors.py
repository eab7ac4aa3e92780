"""Mapping of domain errors to HTTP responses."""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from botmakers.services.admin_service import InvalidModeError, PlatformCredentialsMissingError
from botmakers.services.connection_service import (
    ConnectionExistsError,
    ConnectionNotFoundError,
    IntegrationNotFoundError,
    IntegrationUnavailableError,
    MissingCredentialFieldsError,
    TenantNotFoundError,
)
from botmakers.services.credentials import CredentialErrorCode

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: list[tuple[type[ValueError], int]] = [
    (TenantNotFoundError, 404),
    (IntegrationNotFoundError, 404),
    (ConnectionNotFoundError, 404),
    (IntegrationUnavailableError, 403),
    (ConnectionExistsError, 409),
    (MissingCredentialFieldsError, 400),
    (InvalidModeError, 400),
    (PlatformCredentialsMissingError, 400),
]

CREDENTIAL_FAILURE_STATUS = {
    CredentialErrorCode.NOT_CONFIGURED: 404,
    CredentialErrorCode.DISABLED: 403,
    CredentialErrorCode.NO_CONNECTION: 400,
    CredentialErrorCode.NO_CREDENTIALS: 400,
}


def http_error(error: ValueError) -> HTTPException:
    """HTTPException for a domain error; unknown ValueErrors are a 400."""
    status_code = next((code for cls, code in _STATUS_BY_ERROR if isinstance(error, cls)), 400)
    if isinstance(error, ConnectionExistsError):
        return HTTPException(
            status_code=status_code,
            detail={"error": str(error), "existingConnectionId": error.existing_connection_id},
        )
    return HTTPException(status_code=status_code, detail=str(error))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render errors as ``{success: false, error, ...}``."""
    if isinstance(exc.detail, dict):
        content = {"success": False, **exc.detail}
    else:
        content = {"success": False, "error": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})
