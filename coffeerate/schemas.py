"""
Pydantic schemas for the coffee rating API.

Request and response bodies use camelCase keys on the wire.
"""

from __future__ import annotations

from typing import Annotated, Generic, Literal, Optional, TypeVar

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    StringConstraints,
)
from pydantic.alias_generators import to_camel

DISPLAY_NAME_PATTERN = r"^[A-Za-z0-9ĄĆĘŁŃÓŚŹŻąćęłńóśźż .-]+$"

RatingScore = Annotated[float, Field(ge=1, le=5, multiple_of=0.5, strict=True)]
Password = Annotated[str, StringConstraints(min_length=8, max_length=72)]
SearchTerm = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=64)]
RoasteryField = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=64)]
CoffeeName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=128)]
DisplayName = Annotated[
    str, StringConstraints(min_length=1, max_length=32, pattern=DISPLAY_NAME_PATTERN)
]

ItemT = TypeVar("ItemT")


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorResponse(BaseModel):
    code: str
    message: str


class PaginatedResponse(ApiModel, Generic[ItemT]):
    page: int
    page_size: int
    total: int
    items: list[ItemT]


# Auth


class LoginRequest(ApiModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RegisterRequest(ApiModel):
    email: EmailStr
    password: Password


class ForgotPasswordRequest(ApiModel):
    email: EmailStr


class ResetPasswordRequest(ApiModel):
    password: Password


class AuthUserDto(ApiModel):
    id: str
    email: Optional[str] = None


class AuthSessionDto(ApiModel):
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None


class AuthLoginResponse(ApiModel):
    user: AuthUserDto
    session: AuthSessionDto


class RegisterResponse(ApiModel):
    message: str
    requires_email_confirmation: bool


class OkResponse(ApiModel):
    ok: Literal[True] = True


class DeleteAccountResponse(ApiModel):
    success: Literal[True] = True


class GateDecisionResponse(ApiModel):
    status: Literal["allowed", "redirecting", "blocked"]
    reason: Optional[Literal["unauthenticated", "display_name_missing", "error"]] = None
    redirect_to: Optional[str] = None
    profile: Optional["ProfileDto"] = None


# Profiles


class ProfileDto(ApiModel):
    user_id: str
    display_name: Optional[str] = None
    created_at: str


class SetDisplayNameCommand(ApiModel):
    display_name: DisplayName


# Roasteries


class RoasteryDto(ApiModel):
    id: str
    name: str
    city: str
    created_at: str


class CreateRoasteryCommand(ApiModel):
    name: RoasteryField
    city: RoasteryField


class RoasteryCoffeeDto(ApiModel):
    id: str
    name: str
    avg_main: Optional[float] = None
    ratings_count: int
    small_sample: bool
    created_at: str


# Coffees


class CoffeeDto(ApiModel):
    id: str
    roastery_id: str
    name: str
    avg_main: Optional[float] = None
    ratings_count: int
    small_sample: bool
    created_at: str


class CreateCoffeeCommand(ApiModel):
    name: CoffeeName


# Ratings


class UpsertRatingCommand(ApiModel):
    model_config = ConfigDict(extra="forbid")

    main: RatingScore
    strength: RatingScore
    acidity: RatingScore
    aftertaste: RatingScore


class RatingDto(ApiModel):
    id: str
    coffee_id: str
    user_id: str
    main: float
    strength: float
    acidity: float
    aftertaste: float
    created_at: str
    updated_at: str


RoasteryListResponse = PaginatedResponse[RoasteryDto]
RoasteryCoffeeListResponse = PaginatedResponse[RoasteryCoffeeDto]
CoffeeListResponse = PaginatedResponse[CoffeeDto]

GateDecisionResponse.model_rebuild()
