"""
HTTP Client Factory - shared async client for vendor API calls.

Validators and integration adapters make short, independent requests to
many different vendors. A single pooled HTTP/1.1 client keeps connection
reuse bounded and gives every probe the same timeout budget.

Usage:
    from botmakers.utils.http_client import get_http_client

    client = get_http_client()
    response = await client.get("https://api.openai.com/v1/models", headers=...)
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from botmakers.config import get_settings

logger = logging.getLogger(__name__)

# Module-level client instance (lazy initialization)
_http_client: Optional[httpx.AsyncClient] = None


def get_connection_limits() -> httpx.Limits:
    """
    Get connection pool limits for vendor probes.

    Returns:
        httpx.Limits sized for parallel health checks across tenants
    """
    return httpx.Limits(
        max_keepalive_connections=20,
        max_connections=100,
        keepalive_expiry=30.0,
    )


def get_http_client() -> httpx.AsyncClient:
    """
    Get the shared async HTTP client.

    Returns:
        Shared httpx.AsyncClient instance
    """
    global _http_client

    if _http_client is None:
        timeout = get_settings().validator_timeout_seconds
        logger.info("Creating shared HTTP client for vendor API calls")
        _http_client = httpx.AsyncClient(
            http2=False,
            limits=get_connection_limits(),
            timeout=httpx.Timeout(timeout, connect=timeout),
        )
        logger.info(f"HTTP client configured: max_connections=100, timeout={timeout}s")

    return _http_client


async def close_http_client() -> None:
    """
    Close the shared HTTP client.

    Call this during application shutdown to cleanly release connections.
    """
    global _http_client

    if _http_client is not None:
        logger.info("Closing shared HTTP client")
        await _http_client.aclose()
        _http_client = None
