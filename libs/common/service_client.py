"""Reusable async HTTP client for internal service-to-service communication.

Buyer profiles live in the users service and notifications are delivered by
the notifications service; both are reached through these helpers instead of
reading their tables directly.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx
from libs.auth.dependencies import _service_role_jwt
from libs.common.config import get_settings
from libs.common.logging import get_logger, get_request_id

logger = get_logger(__name__)

# Default timeout for internal calls (seconds).
_DEFAULT_TIMEOUT = 10.0

CALLING_SERVICE = "orders"


async def internal_request(
    *,
    service_url: str,
    method: str,
    path: str,
    calling_service: str = CALLING_SERVICE,
    json: Any = None,
    params: Optional[dict] = None,
    timeout: float = _DEFAULT_TIMEOUT,
) -> httpx.Response:
    """Make an authenticated internal service-to-service HTTP call.

    Args:
        service_url: Base URL of the target service (e.g. settings.USERS_SERVICE_URL).
        method: HTTP method (GET, POST, ...).
        path: URL path on the target service.
        calling_service: Name of the calling service for the JWT "sub" claim.
        json: Optional JSON body.
        params: Optional query parameters.
        timeout: Request timeout in seconds.

    Raises:
        httpx.RequestError on connection failures.
    """
    url = f"{service_url.rstrip('/')}{path}"
    headers = {
        "Authorization": f"Bearer {_service_role_jwt(calling_service)}",
        "X-Caller-Service": calling_service,
    }
    request_id = get_request_id()
    if request_id:
        headers["X-Request-ID"] = request_id

    async with httpx.AsyncClient(timeout=timeout) as client:
        response = await client.request(
            method,
            url,
            headers=headers,
            json=json,
            params=params,
        )
    return response


async def internal_get(
    *,
    service_url: str,
    path: str,
    params: Optional[dict] = None,
    timeout: float = _DEFAULT_TIMEOUT,
) -> httpx.Response:
    """Convenience wrapper for GET requests."""
    return await internal_request(
        service_url=service_url,
        method="GET",
        path=path,
        params=params,
        timeout=timeout,
    )


async def internal_post(
    *,
    service_url: str,
    path: str,
    json: Any = None,
    timeout: float = _DEFAULT_TIMEOUT,
) -> httpx.Response:
    """Convenience wrapper for POST requests."""
    return await internal_request(
        service_url=service_url,
        method="POST",
        path=path,
        json=json,
        timeout=timeout,
    )


# ---------------------------------------------------------------------------
# High-level helpers
# ---------------------------------------------------------------------------


async def get_buyer_profile(user_id: str) -> Optional[dict]:
    """Look up a buyer's profile.

    Returns dict with {user_id, email, name, first_name, last_name, phone, plan}
    or None when the users service does not know the buyer.
    """
    settings = get_settings()
    resp = await internal_get(
        service_url=settings.USERS_SERVICE_URL,
        path=f"/internal/users/{user_id}/profile",
    )
    if resp.status_code == 404:
        return None
    resp.raise_for_status()
    return resp.json()
