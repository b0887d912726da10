"""
Data-access service functions used by the HTTP routes.

Each function takes the database (and, where needed, auth) client
explicitly, maps records to DTOs and reports domain failures as
``ServiceError`` with a short string code.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from coffeerate.auth import AuthClient, AuthProviderError, AuthSession, SignUpResult
from coffeerate.db import (
    CoffeeRecord,
    DbClient,
    ProfileRecord,
    RatingRecord,
    RoasteryRecord,
    UniqueViolation,
)
from coffeerate.normalization import normalize_for_search
from coffeerate.pagination import Pagination
from coffeerate.rating_scale import from_storage, to_storage
from coffeerate.schemas import (
    CoffeeDto,
    ProfileDto,
    RatingDto,
    RoasteryCoffeeDto,
    RoasteryDto,
    UpsertRatingCommand,
)

import logging

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """Domain failure tagged with a short string code."""

    def __init__(self, code: str, message: str = ""):
        super().__init__(message or code)
        self.code = code
        self.message = message or code


def to_iso(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


# DTO mapping


def to_profile_dto(record: ProfileRecord) -> ProfileDto:
    return ProfileDto(
        user_id=record.user_id,
        display_name=record.display_name,
        created_at=to_iso(record.created_at),
    )


def to_roastery_dto(record: RoasteryRecord) -> RoasteryDto:
    return RoasteryDto(
        id=record.id,
        name=record.name,
        city=record.city,
        created_at=to_iso(record.created_at),
    )


def to_coffee_dto(record: CoffeeRecord) -> CoffeeDto:
    return CoffeeDto(
        id=record.id,
        roastery_id=record.roastery_id,
        name=record.name,
        avg_main=record.avg_main,
        ratings_count=record.ratings_count,
        small_sample=record.small_sample,
        created_at=to_iso(record.created_at),
    )


def to_roastery_coffee_dto(record: CoffeeRecord) -> RoasteryCoffeeDto:
    return RoasteryCoffeeDto(
        id=record.id,
        name=record.name,
        avg_main=record.avg_main,
        ratings_count=record.ratings_count,
        small_sample=record.small_sample,
        created_at=to_iso(record.created_at),
    )


def to_rating_dto(record: RatingRecord) -> RatingDto:
    """Map a stored rating (doubled scale) to its public DTO (0.5 steps)."""
    return RatingDto(
        id=record.id,
        coffee_id=record.coffee_id,
        user_id=record.user_id,
        main=from_storage(record.main),
        strength=from_storage(record.strength),
        acidity=from_storage(record.acidity),
        aftertaste=from_storage(record.aftertaste),
        created_at=to_iso(record.created_at),
        updated_at=to_iso(record.updated_at),
    )


# Auth


def _login_error_code(error: AuthProviderError) -> str:
    if error.status == 429:
        return "too_many_requests"
    message = error.message.lower()
    if "email not confirmed" in message or error.code == "email_not_confirmed":
        return "email_not_confirmed"
    if error.status in (400, 401) or "invalid" in message:
        return "invalid_credentials"
    return "internal_error"


def _register_error_code(error: AuthProviderError) -> str:
    if error.status == 429:
        return "too_many_requests"
    message = error.message.lower()
    if "already registered" in message or "user already" in message:
        return "email_taken"
    if "password" in message and "weak" in message:
        return "weak_password"
    if "invalid" in message and "email" in message:
        return "invalid_email"
    return "internal_error"


def _reset_error_code(error: AuthProviderError) -> str:
    message = error.message.lower()
    if "expired" in message or "invalid" in message:
        return "invalid_token"
    if "password" in message and "weak" in message:
        return "weak_password"
    return "internal_error"


def _forgot_password_error_code(error: AuthProviderError) -> str:
    if error.status == 429:
        return "too_many_requests"
    return "internal_error"


def login_user(auth: AuthClient, email: str, password: str) -> AuthSession:
    try:
        return auth.sign_in_with_password(email, password)
    except AuthProviderError as exc:
        raise ServiceError(_login_error_code(exc), exc.message) from exc


def register_user(
    auth: AuthClient, db: DbClient, email: str, password: str
) -> SignUpResult:
    """Sign the user up and make sure a (display-name-less) profile exists."""
    try:
        result = auth.sign_up(email, password)
    except AuthProviderError as exc:
        code = _register_error_code(exc)
        if code in ("weak_password", "invalid_email"):
            raise ServiceError(code, "Invalid registration data") from exc
        raise ServiceError(code, exc.message) from exc
    db.ensure_profile(result.user.id)
    logger.info("Registered user %s", result.user.id)
    return result


def logout_user(auth: AuthClient, access_token: Optional[str]) -> None:
    if not access_token:
        return
    try:
        auth.sign_out(access_token)
    except AuthProviderError as exc:
        raise ServiceError("internal_error", exc.message) from exc


def send_password_reset_email(auth: AuthClient, email: str, redirect_to: str) -> None:
    try:
        auth.reset_password_for_email(email, redirect_to)
    except AuthProviderError as exc:
        raise ServiceError(_forgot_password_error_code(exc), exc.message) from exc


def update_password(auth: AuthClient, access_token: str, new_password: str) -> None:
    try:
        auth.update_password(access_token, new_password)
    except AuthProviderError as exc:
        code = _reset_error_code(exc)
        if code == "weak_password":
            raise ServiceError(code, "Weak password") from exc
        raise ServiceError(code, exc.message) from exc


# Profiles and account


def get_public_profile(db: DbClient, user_id: str) -> Optional[ProfileDto]:
    record = db.get_profile(user_id)
    return to_profile_dto(record) if record else None


def set_display_name_once(db: DbClient, user_id: str, display_name: str) -> ProfileDto:
    """
    Set the user's display name unless one is already set.

    The write is a single conditional update, so two concurrent requests
    cannot both succeed.
    """
    profile = db.ensure_profile(user_id)
    if profile.display_name is not None:
        raise ServiceError("display_name_already_set", "Display name already set")
    try:
        updated = db.set_display_name_if_unset(user_id, display_name)
    except UniqueViolation as exc:
        raise ServiceError("display_name_conflict", "Display name already taken") from exc
    if updated is None:
        raise ServiceError("display_name_already_set", "Display name already set")
    return to_profile_dto(updated)


def delete_account(db: DbClient, auth: AuthClient, user_id: str) -> None:
    """
    Delete the profile (and with it every rating), then the auth user.
    """
    try:
        db.delete_profile(user_id)
    except Exception as exc:
        logger.exception("Failed to delete profile %s", user_id)
        raise ServiceError("delete_profile_failed", "Failed to delete profile") from exc

    try:
        auth.delete_user(user_id)
    except AuthProviderError as exc:
        logger.error("Failed to delete auth user %s: %s", user_id, exc.message)
        raise ServiceError("delete_auth_user_failed", "Failed to delete auth user") from exc
    logger.info("Deleted account %s", user_id)


# Roasteries


def list_roasteries(
    db: DbClient,
    pagination: Pagination,
    *,
    q: Optional[str] = None,
    city: Optional[str] = None,
) -> tuple[list[RoasteryDto], int]:
    records, total = db.list_roasteries(
        q_norm=normalize_for_search(q) if q else None,
        city_norm=normalize_for_search(city) if city else None,
        offset=pagination.offset,
        limit=pagination.page_size,
    )
    return [to_roastery_dto(r) for r in records], total


def get_roastery(db: DbClient, roastery_id: str) -> Optional[RoasteryDto]:
    record = db.get_roastery(roastery_id)
    return to_roastery_dto(record) if record else None


def create_roastery(db: DbClient, name: str, city: str) -> RoasteryDto:
    try:
        record = db.create_roastery(name, city)
    except UniqueViolation as exc:
        raise ServiceError("roastery_duplicate", "Roastery already exists") from exc
    return to_roastery_dto(record)


def list_roastery_coffees(
    db: DbClient, roastery_id: str, pagination: Pagination
) -> tuple[list[RoasteryCoffeeDto], int]:
    if db.get_roastery(roastery_id) is None:
        raise ServiceError("roastery_not_found", "Roastery not found")
    records, total = db.list_roastery_coffees(
        roastery_id, offset=pagination.offset, limit=pagination.page_size
    )
    return [to_roastery_coffee_dto(r) for r in records], total


# Coffees


def list_coffees(
    db: DbClient,
    pagination: Pagination,
    *,
    roastery_id: Optional[str] = None,
    q: Optional[str] = None,
) -> tuple[list[CoffeeDto], int]:
    records, total = db.list_coffees(
        roastery_id=roastery_id,
        q_norm=normalize_for_search(q) if q else None,
        offset=pagination.offset,
        limit=pagination.page_size,
    )
    return [to_coffee_dto(r) for r in records], total


def get_coffee(db: DbClient, coffee_id: str) -> Optional[CoffeeDto]:
    record = db.get_coffee(coffee_id)
    return to_coffee_dto(record) if record else None


def create_coffee(db: DbClient, roastery_id: str, name: str) -> CoffeeDto:
    if db.get_roastery(roastery_id) is None:
        raise ServiceError("roastery_not_found", f"Roastery with id {roastery_id} not found")
    try:
        record = db.create_coffee(roastery_id, name)
    except UniqueViolation as exc:
        raise ServiceError(
            "coffee_duplicate",
            f'Coffee with name "{name}" already exists in this roastery',
        ) from exc
    return to_coffee_dto(record)


# Ratings


def ensure_coffee_exists(db: DbClient, coffee_id: str) -> None:
    if db.get_coffee(coffee_id) is None:
        raise ServiceError("coffee_not_found", f"Coffee with id {coffee_id} not found")


def get_my_rating(db: DbClient, coffee_id: str, user_id: str) -> Optional[RatingDto]:
    # Always filter on both ids; callers only ever see their own rating.
    record = db.get_rating(user_id, coffee_id)
    return to_rating_dto(record) if record else None


def upsert_my_rating(
    db: DbClient, user_id: str, coffee_id: str, command: UpsertRatingCommand
) -> tuple[RatingDto, bool]:
    """
    Create or update the user's rating. Returns the DTO and whether the
    row was newly created.
    """
    db.ensure_profile(user_id)
    record = db.upsert_rating(
        user_id,
        coffee_id,
        main=to_storage(command.main),
        strength=to_storage(command.strength),
        acidity=to_storage(command.acidity),
        aftertaste=to_storage(command.aftertaste),
    )
    return to_rating_dto(record), record.is_new
