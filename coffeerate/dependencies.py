"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import re
from typing import Optional

from fastapi import Depends, Request

from coffeerate.auth import AuthClient, AuthUser, HostedAuthClient, InMemoryAuthClient
from coffeerate.config import get_settings
from coffeerate.db import DbClient, InMemoryDbClient, PostgresDbClient
from coffeerate.errors import ApiError

ACCESS_TOKEN_COOKIE = "sb-access-token"
REFRESH_TOKEN_COOKIE = "sb-refresh-token"

_BEARER_RE = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)

_db_client: DbClient | None = None
_auth_client: AuthClient | None = None


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so state persists across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _db_client = InMemoryDbClient()
    else:
        _db_client = PostgresDbClient(settings.database_url)
    return _db_client


def get_auth_client() -> AuthClient:
    global _auth_client
    if _auth_client:
        return _auth_client

    settings = get_settings()
    if settings.use_in_memory_backends or not (settings.auth_url and settings.auth_anon_key):
        _auth_client = InMemoryAuthClient(
            require_email_confirmation=settings.require_email_confirmation
        )
    else:
        _auth_client = HostedAuthClient(
            settings.auth_url,
            settings.auth_anon_key,
            service_role_key=settings.auth_service_role_key,
            timeout=settings.auth_request_timeout,
        )
    return _auth_client


def get_access_token(request: Request) -> Optional[str]:
    """Bearer token from the Authorization header, else the session cookie."""
    match = _BEARER_RE.match(request.headers.get("authorization", ""))
    if match:
        return match.group(1).strip()
    return request.cookies.get(ACCESS_TOKEN_COOKIE) or None


def get_current_user(
    access_token: Optional[str] = Depends(get_access_token),
    auth: AuthClient = Depends(get_auth_client),
) -> AuthUser:
    if not access_token:
        raise ApiError(401, "unauthorized", "Missing access token")
    user = auth.get_user(access_token)
    if user is None:
        raise ApiError(401, "unauthorized", "Invalid access token")
    return user
