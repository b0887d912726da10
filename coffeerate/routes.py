"""
HTTP routes for the coffee rating API.
"""

from __future__ import annotations

from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response

from coffeerate import services
from coffeerate.auth import AuthClient, AuthSession, AuthUser
from coffeerate.config import get_settings
from coffeerate.db import DbClient
from coffeerate.dependencies import (
    ACCESS_TOKEN_COOKIE,
    REFRESH_TOKEN_COOKIE,
    get_access_token,
    get_auth_client,
    get_current_user,
    get_db_client,
)
from coffeerate.errors import ApiError
from coffeerate.gate import evaluate_display_name_gate, resolve_session
from coffeerate.pagination import (
    COFFEES_PAGINATION,
    ROASTERIES_PAGINATION,
    ROASTERY_COFFEES_PAGINATION,
    resolve_pagination,
)
from coffeerate.schemas import (
    AuthLoginResponse,
    AuthSessionDto,
    AuthUserDto,
    CoffeeDto,
    CoffeeListResponse,
    CreateCoffeeCommand,
    CreateRoasteryCommand,
    DeleteAccountResponse,
    ErrorResponse,
    ForgotPasswordRequest,
    GateDecisionResponse,
    LoginRequest,
    OkResponse,
    ProfileDto,
    RatingDto,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    RoasteryCoffeeListResponse,
    RoasteryDto,
    RoasteryListResponse,
    SearchTerm,
    SetDisplayNameCommand,
    UpsertRatingCommand,
)

import logging

logger = logging.getLogger(__name__)

router = APIRouter(
    responses={
        code: {"model": ErrorResponse} for code in (400, 401, 404, 409, 429, 500)
    }
)

PUBLIC_CACHE = "public, max-age=60, stale-while-revalidate=120"
NO_STORE = "no-store"


def _session_dto(session: AuthSession) -> AuthLoginResponse:
    return AuthLoginResponse(
        user=AuthUserDto(id=session.user.id, email=session.user.email),
        session=AuthSessionDto(
            access_token=session.access_token,
            refresh_token=session.refresh_token,
            expires_at=session.expires_at,
        ),
    )


def _set_session_cookies(response: Response, session: AuthSession) -> None:
    secure = get_settings().cookie_secure
    for name, value in (
        (ACCESS_TOKEN_COOKIE, session.access_token),
        (REFRESH_TOKEN_COOKIE, session.refresh_token),
    ):
        response.set_cookie(
            name, value, path="/", httponly=True, secure=secure, samesite="lax"
        )


# Auth


@router.post("/auth/login", response_model=AuthLoginResponse)
def login(
    payload: LoginRequest,
    response: Response,
    auth: AuthClient = Depends(get_auth_client),
):
    session = services.login_user(auth, payload.email, payload.password)
    _set_session_cookies(response, session)
    response.headers["Cache-Control"] = NO_STORE
    return _session_dto(session)


@router.post("/auth/register", response_model=RegisterResponse, status_code=201)
def register(
    payload: RegisterRequest,
    response: Response,
    auth: AuthClient = Depends(get_auth_client),
    db: DbClient = Depends(get_db_client),
):
    result = services.register_user(auth, db, payload.email, payload.password)
    response.headers["Cache-Control"] = NO_STORE
    return RegisterResponse(
        message="Registration successful",
        requires_email_confirmation=result.session is None,
    )


@router.post("/auth/logout", response_model=OkResponse)
def logout(
    response: Response,
    access_token: Optional[str] = Depends(get_access_token),
    auth: AuthClient = Depends(get_auth_client),
):
    services.logout_user(auth, access_token)
    response.delete_cookie(ACCESS_TOKEN_COOKIE, path="/")
    response.delete_cookie(REFRESH_TOKEN_COOKIE, path="/")
    response.headers["Cache-Control"] = NO_STORE
    return OkResponse()


@router.post("/auth/forgot-password", response_model=OkResponse)
def forgot_password(
    payload: ForgotPasswordRequest,
    request: Request,
    response: Response,
    auth: AuthClient = Depends(get_auth_client),
):
    redirect_to = f"{str(request.base_url).rstrip('/')}/auth/callback"
    services.send_password_reset_email(auth, payload.email, redirect_to)
    response.headers["Cache-Control"] = NO_STORE
    return OkResponse()


@router.post("/auth/reset-password", response_model=OkResponse)
def reset_password(
    payload: ResetPasswordRequest,
    response: Response,
    access_token: Optional[str] = Depends(get_access_token),
    auth: AuthClient = Depends(get_auth_client),
):
    if not access_token or auth.get_user(access_token) is None:
        raise ApiError(401, "invalid_token", "Invalid or expired token")
    services.update_password(auth, access_token, payload.password)
    response.headers["Cache-Control"] = NO_STORE
    return OkResponse()


@router.get("/auth/me", response_model=AuthLoginResponse)
def me(
    request: Request,
    response: Response,
    access_token: Optional[str] = Depends(get_access_token),
    auth: AuthClient = Depends(get_auth_client),
):
    user = auth.get_user(access_token) if access_token else None
    if user is None:
        raise ApiError(401, "unauthorized", "Authentication required")
    response.headers["Cache-Control"] = NO_STORE
    return AuthLoginResponse(
        user=AuthUserDto(id=user.id, email=user.email),
        session=AuthSessionDto(
            access_token=access_token,
            refresh_token=request.cookies.get(REFRESH_TOKEN_COOKIE),
        ),
    )


@router.get("/auth/gate", response_model=GateDecisionResponse)
def display_name_gate(
    response: Response,
    return_to: Optional[str] = Query(None, alias="returnTo"),
    access_token: Optional[str] = Depends(get_access_token),
    auth: AuthClient = Depends(get_auth_client),
    db: DbClient = Depends(get_db_client),
):
    session = resolve_session(auth, access_token)
    decision = evaluate_display_name_gate(session, db, return_to)
    response.headers["Cache-Control"] = NO_STORE
    return GateDecisionResponse(
        status=decision.status,
        reason=decision.reason,
        redirect_to=decision.redirect_to,
        profile=services.to_profile_dto(decision.profile) if decision.profile else None,
    )


# Account and profiles


@router.delete("/account", response_model=DeleteAccountResponse)
def delete_account(
    response: Response,
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    auth: AuthClient = Depends(get_auth_client),
):
    services.delete_account(db, auth, user.id)
    response.delete_cookie(ACCESS_TOKEN_COOKIE, path="/")
    response.delete_cookie(REFRESH_TOKEN_COOKIE, path="/")
    response.headers["Cache-Control"] = NO_STORE
    return DeleteAccountResponse()


@router.get("/profiles/{user_id}", response_model=ProfileDto)
def get_profile(
    user_id: UUID,
    response: Response,
    db: DbClient = Depends(get_db_client),
):
    profile = services.get_public_profile(db, str(user_id))
    if profile is None:
        raise ApiError(404, "profile_not_found", "Profile not found")
    response.headers["Cache-Control"] = PUBLIC_CACHE
    return profile


@router.post("/profiles/me/display-name", response_model=ProfileDto, status_code=201)
def set_display_name(
    payload: SetDisplayNameCommand,
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    return services.set_display_name_once(db, user.id, payload.display_name)


# Roasteries


@router.get("/roasteries", response_model=RoasteryListResponse)
def list_roasteries(
    response: Response,
    q: Optional[SearchTerm] = Query(None),
    city: Optional[SearchTerm] = Query(None),
    page: Optional[str] = Query(None),
    page_size: Optional[str] = Query(None, alias="pageSize"),
    db: DbClient = Depends(get_db_client),
):
    pagination = resolve_pagination(page, page_size, ROASTERIES_PAGINATION)
    items, total = services.list_roasteries(
        db,
        pagination,
        q=q,
        city=city,
    )
    response.headers["Cache-Control"] = PUBLIC_CACHE
    return RoasteryListResponse(
        page=pagination.page, page_size=pagination.page_size, total=total, items=items
    )


@router.post("/roasteries", response_model=RoasteryDto, status_code=201)
def create_roastery(
    payload: CreateRoasteryCommand,
    response: Response,
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    roastery = services.create_roastery(db, payload.name, payload.city)
    logger.info("User %s created roastery %s", user.id, roastery.id)
    response.headers["Location"] = f"{get_settings().api_prefix}/roasteries/{roastery.id}"
    return roastery


@router.get("/roasteries/{roastery_id}", response_model=RoasteryDto)
def get_roastery(
    roastery_id: UUID,
    response: Response,
    db: DbClient = Depends(get_db_client),
):
    roastery = services.get_roastery(db, str(roastery_id))
    if roastery is None:
        raise ApiError(404, "roastery_not_found", "Roastery not found")
    response.headers["Cache-Control"] = PUBLIC_CACHE
    return roastery


@router.get("/roasteries/{roastery_id}/coffees", response_model=RoasteryCoffeeListResponse)
def list_roastery_coffees(
    roastery_id: UUID,
    response: Response,
    page: Optional[str] = Query(None),
    page_size: Optional[str] = Query(None, alias="pageSize"),
    db: DbClient = Depends(get_db_client),
):
    pagination = resolve_pagination(page, page_size, ROASTERY_COFFEES_PAGINATION)
    items, total = services.list_roastery_coffees(db, str(roastery_id), pagination)
    response.headers["Cache-Control"] = PUBLIC_CACHE
    return RoasteryCoffeeListResponse(
        page=pagination.page, page_size=pagination.page_size, total=total, items=items
    )


@router.post("/roasteries/{roastery_id}/coffees", response_model=CoffeeDto, status_code=201)
def create_coffee(
    roastery_id: UUID,
    payload: CreateCoffeeCommand,
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    coffee = services.create_coffee(db, str(roastery_id), payload.name)
    logger.info("User %s created coffee %s", user.id, coffee.id)
    return coffee


# Coffees


@router.get("/coffees", response_model=CoffeeListResponse)
def list_coffees(
    response: Response,
    roastery_id: Optional[UUID] = Query(None, alias="roasteryId"),
    q: Optional[SearchTerm] = Query(None),
    sort: Literal["rating_desc"] = Query("rating_desc"),
    page: Optional[str] = Query(None),
    page_size: Optional[str] = Query(None, alias="pageSize"),
    db: DbClient = Depends(get_db_client),
):
    pagination = resolve_pagination(page, page_size, COFFEES_PAGINATION)
    # rating_desc is the only ordering the listing supports.
    items, total = services.list_coffees(
        db,
        pagination,
        roastery_id=str(roastery_id) if roastery_id else None,
        q=q,
    )
    response.headers["Cache-Control"] = PUBLIC_CACHE
    return CoffeeListResponse(
        page=pagination.page, page_size=pagination.page_size, total=total, items=items
    )


@router.get("/coffees/{coffee_id}", response_model=CoffeeDto)
def get_coffee(
    coffee_id: UUID,
    response: Response,
    db: DbClient = Depends(get_db_client),
):
    coffee = services.get_coffee(db, str(coffee_id))
    if coffee is None:
        raise ApiError(404, "coffee_not_found", "Coffee not found")
    response.headers["Cache-Control"] = PUBLIC_CACHE
    return coffee


@router.get(
    "/coffees/{coffee_id}/my-rating",
    response_model=RatingDto,
    responses={204: {"description": "No rating yet"}},
)
def get_my_rating(
    coffee_id: UUID,
    response: Response,
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    services.ensure_coffee_exists(db, str(coffee_id))
    rating = services.get_my_rating(db, str(coffee_id), user.id)
    if rating is None:
        return Response(status_code=204, headers={"Cache-Control": NO_STORE})
    response.headers["Cache-Control"] = NO_STORE
    return rating


@router.put(
    "/coffees/{coffee_id}/my-rating",
    response_model=RatingDto,
    responses={201: {"description": "Rating created"}},
)
def upsert_my_rating(
    coffee_id: UUID,
    payload: UpsertRatingCommand,
    response: Response,
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    services.ensure_coffee_exists(db, str(coffee_id))
    rating, created = services.upsert_my_rating(db, user.id, str(coffee_id), payload)
    response.status_code = 201 if created else 200
    response.headers["Cache-Control"] = NO_STORE
    return rating
