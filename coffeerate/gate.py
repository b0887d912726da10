"""
Session resolution and the display-name gate.

Pages that write data (rating a coffee, adding roasteries) require an
authenticated user with a display name. The gate decides whether the
caller may proceed or where they should be sent instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional
from urllib.parse import quote

from coffeerate.auth import AuthClient, AuthProviderError, AuthUser
from coffeerate.db import DbClient, ProfileRecord

import logging

logger = logging.getLogger(__name__)

LOGIN_PATH = "/login"
DISPLAY_NAME_PATH = "/account/display-name"


@dataclass
class SessionState:
    status: Literal["authenticated", "unauthenticated"]
    user: Optional[AuthUser] = None

    @property
    def is_authenticated(self) -> bool:
        return self.status == "authenticated"


@dataclass
class GateDecision:
    status: Literal["allowed", "redirecting", "blocked"]
    reason: Optional[Literal["unauthenticated", "display_name_missing", "error"]] = None
    redirect_to: Optional[str] = None
    profile: Optional[ProfileRecord] = None


def safe_return_to(return_to: Optional[str]) -> str:
    """Only local absolute paths are allowed as redirect targets."""
    if not return_to or not return_to.startswith("/") or return_to.startswith("//"):
        return "/"
    return return_to


def resolve_session(auth: AuthClient, access_token: Optional[str]) -> SessionState:
    if not access_token:
        return SessionState(status="unauthenticated")
    try:
        user = auth.get_user(access_token)
    except AuthProviderError as exc:
        logger.warning("Session lookup failed: %s", exc.message)
        return SessionState(status="unauthenticated")
    if user is None:
        return SessionState(status="unauthenticated")
    return SessionState(status="authenticated", user=user)


def evaluate_display_name_gate(
    session: SessionState, db: DbClient, return_to: Optional[str]
) -> GateDecision:
    target = quote(safe_return_to(return_to), safe="")
    if not session.is_authenticated or session.user is None:
        return GateDecision(
            status="redirecting",
            reason="unauthenticated",
            redirect_to=f"{LOGIN_PATH}?returnTo={target}",
        )

    try:
        profile = db.get_profile(session.user.id)
    except Exception:
        logger.exception("Profile lookup failed for %s", session.user.id)
        return GateDecision(status="blocked", reason="error")

    if profile is None or profile.display_name is None:
        return GateDecision(
            status="redirecting",
            reason="display_name_missing",
            redirect_to=f"{DISPLAY_NAME_PATH}?returnTo={target}",
            profile=profile,
        )
    return GateDecision(status="allowed", profile=profile)
