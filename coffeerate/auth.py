"""
Auth provider abstraction for the hosted auth service and an in-memory test implementation.

The hosted implementation talks to the auth REST API (``/auth/v1``) with
``requests``; session issuance, password storage and reset emails all
happen on the provider side.
"""

from __future__ import annotations

import secrets
import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol

import requests
from passlib.context import CryptContext

import logging

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL_SECONDS = 3600
MIN_PROVIDER_PASSWORD_LENGTH = 6


class AuthProviderError(Exception):
    """Error reported by the auth provider, before mapping to API codes."""

    def __init__(self, status: int, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.message = message
        self.code = code


@dataclass
class AuthUser:
    id: str
    email: Optional[str]


@dataclass
class AuthSession:
    user: AuthUser
    access_token: str
    refresh_token: str
    expires_at: Optional[int] = None


@dataclass
class SignUpResult:
    user: AuthUser
    session: Optional[AuthSession] = None


class AuthClient(Protocol):
    """Operations the API needs from the auth provider."""

    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        ...

    def sign_up(self, email: str, password: str) -> SignUpResult:
        ...

    def sign_out(self, access_token: str) -> None:
        ...

    def reset_password_for_email(self, email: str, redirect_to: str) -> None:
        ...

    def update_password(self, access_token: str, new_password: str) -> None:
        ...

    def get_user(self, access_token: str) -> Optional[AuthUser]:
        ...

    def delete_user(self, user_id: str) -> None:
        ...


@dataclass
class _StoredUser:
    id: str
    email: str
    password_hash: str
    confirmed: bool


@dataclass
class InMemoryAuthClient:
    """Test double for the auth provider."""

    require_email_confirmation: bool = False
    session_ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS
    users: Dict[str, _StoredUser] = field(default_factory=dict)
    tokens: Dict[str, str] = field(default_factory=dict)
    reset_requests: list[tuple[str, str]] = field(default_factory=list)

    def __post_init__(self):
        self._pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

    def _find_by_email(self, email: str) -> Optional[_StoredUser]:
        key = email.strip().lower()
        for user in self.users.values():
            if user.email == key:
                return user
        return None

    def _issue_session(self, user: _StoredUser) -> AuthSession:
        access_token = secrets.token_urlsafe(32)
        self.tokens[access_token] = user.id
        return AuthSession(
            user=AuthUser(id=user.id, email=user.email),
            access_token=access_token,
            refresh_token=secrets.token_urlsafe(32),
            expires_at=int(time.time()) + self.session_ttl_seconds,
        )

    def confirm_email(self, email: str) -> None:
        user = self._find_by_email(email)
        if user:
            user.confirmed = True

    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        user = self._find_by_email(email)
        if not user or not self._pwd_context.verify(password, user.password_hash):
            raise AuthProviderError(400, "Invalid login credentials", "invalid_credentials")
        if not user.confirmed:
            raise AuthProviderError(400, "Email not confirmed", "email_not_confirmed")
        return self._issue_session(user)

    def sign_up(self, email: str, password: str) -> SignUpResult:
        if self._find_by_email(email):
            raise AuthProviderError(422, "User already registered", "user_already_exists")
        if len(password) < MIN_PROVIDER_PASSWORD_LENGTH:
            raise AuthProviderError(422, "Password is too weak", "weak_password")
        user = _StoredUser(
            id=str(uuid.uuid4()),
            email=email.strip().lower(),
            password_hash=self._pwd_context.hash(password),
            confirmed=not self.require_email_confirmation,
        )
        self.users[user.id] = user
        session = None if self.require_email_confirmation else self._issue_session(user)
        return SignUpResult(user=AuthUser(id=user.id, email=user.email), session=session)

    def sign_out(self, access_token: str) -> None:
        self.tokens.pop(access_token, None)

    def reset_password_for_email(self, email: str, redirect_to: str) -> None:
        # The provider never reveals whether the address exists.
        if self._find_by_email(email):
            self.reset_requests.append((email.strip().lower(), redirect_to))

    def update_password(self, access_token: str, new_password: str) -> None:
        user_id = self.tokens.get(access_token)
        if not user_id or user_id not in self.users:
            raise AuthProviderError(401, "Invalid or expired token", "bad_jwt")
        if len(new_password) < MIN_PROVIDER_PASSWORD_LENGTH:
            raise AuthProviderError(422, "Password is too weak", "weak_password")
        self.users[user_id].password_hash = self._pwd_context.hash(new_password)

    def get_user(self, access_token: str) -> Optional[AuthUser]:
        user_id = self.tokens.get(access_token)
        user = self.users.get(user_id) if user_id else None
        if not user:
            return None
        return AuthUser(id=user.id, email=user.email)

    def delete_user(self, user_id: str) -> None:
        if self.users.pop(user_id, None) is None:
            raise AuthProviderError(404, "User not found", "user_not_found")
        for token in [t for t, uid in self.tokens.items() if uid == user_id]:
            del self.tokens[token]


class HostedAuthClient:
    """Client for the hosted auth REST API."""

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        *,
        service_role_key: Optional[str] = None,
        timeout: float = 10.0,
    ):
        if not base_url or not anon_key:
            raise ValueError("Auth URL and anon key are required for HostedAuthClient")
        self.base_url = base_url.rstrip("/") + "/auth/v1"
        self.anon_key = anon_key
        self.service_role_key = service_role_key
        self.timeout = timeout
        self.http = requests.Session()

    def _headers(self, bearer: Optional[str] = None, *, admin: bool = False) -> dict:
        key = self.service_role_key if admin else self.anon_key
        return {
            "apikey": key,
            "Authorization": f"Bearer {bearer or key}",
            "Content-Type": "application/json",
        }

    def _request(
        self,
        method: str,
        path: str,
        *,
        bearer: Optional[str] = None,
        admin: bool = False,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
    ) -> dict:
        try:
            response = self.http.request(
                method,
                f"{self.base_url}{path}",
                headers=self._headers(bearer, admin=admin),
                params=params,
                json=json,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("Auth provider request %s %s failed: %s", method, path, exc)
            raise AuthProviderError(503, "Auth provider unreachable") from exc

        if response.status_code >= 400:
            raise self._error_from_response(response)
        if not response.content:
            return {}
        return response.json()

    @staticmethod
    def _error_from_response(response: requests.Response) -> AuthProviderError:
        try:
            body = response.json()
        except ValueError:
            body = {}
        message = (
            body.get("msg")
            or body.get("message")
            or body.get("error_description")
            or body.get("error")
            or response.reason
            or ""
        )
        code = body.get("error_code") or body.get("code")
        return AuthProviderError(
            response.status_code, str(message), str(code) if code else None
        )

    @staticmethod
    def _user_from(payload: dict) -> AuthUser:
        return AuthUser(id=payload["id"], email=payload.get("email"))

    def _session_from(self, payload: dict) -> AuthSession:
        return AuthSession(
            user=self._user_from(payload["user"]),
            access_token=payload["access_token"],
            refresh_token=payload["refresh_token"],
            expires_at=payload.get("expires_at"),
        )

    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        payload = self._request(
            "POST",
            "/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        return self._session_from(payload)

    def sign_up(self, email: str, password: str) -> SignUpResult:
        payload = self._request(
            "POST", "/signup", json={"email": email, "password": password}
        )
        # With confirmation enabled the provider returns a bare user object.
        if "access_token" in payload:
            session = self._session_from(payload)
            return SignUpResult(user=session.user, session=session)
        return SignUpResult(user=self._user_from(payload))

    def sign_out(self, access_token: str) -> None:
        self._request("POST", "/logout", bearer=access_token)

    def reset_password_for_email(self, email: str, redirect_to: str) -> None:
        self._request(
            "POST",
            "/recover",
            params={"redirect_to": redirect_to},
            json={"email": email},
        )

    def update_password(self, access_token: str, new_password: str) -> None:
        self._request(
            "PUT", "/user", bearer=access_token, json={"password": new_password}
        )

    def get_user(self, access_token: str) -> Optional[AuthUser]:
        try:
            payload = self._request("GET", "/user", bearer=access_token)
        except AuthProviderError as exc:
            if exc.status in (401, 403, 404):
                return None
            raise
        return self._user_from(payload)

    def delete_user(self, user_id: str) -> None:
        if not self.service_role_key:
            raise AuthProviderError(500, "Service role key is not configured")
        self._request("DELETE", f"/admin/users/{user_id}", admin=True)
