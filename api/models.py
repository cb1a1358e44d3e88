"""
API request and response models for Neon's auth endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Length limits mirror the column sizes in auth/store.py. Emptiness of handle,
nickname and password is checked in the route layer so the client receives
the specific kind string ("handle_too_short", ...) rather than a generic
validation error.
"""

from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from auth.models import Identity, Role, User

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/user/register."""

    handle: Annotated[str, StringConstraints(strip_whitespace=True, max_length=20)]
    nickname: Annotated[str, StringConstraints(strip_whitespace=True, max_length=100)]
    email: Annotated[str, StringConstraints(strip_whitespace=True, max_length=255)]
    # Not stripped: whitespace is part of a password.
    password: str = Field(max_length=255)


class LoginRequest(BaseModel):
    """Request body for POST /api/user/login."""

    handle: str = Field(max_length=255)
    password: str = Field(max_length=255)
    persist: bool = False


class ProfileUpdate(BaseModel):
    """Request body for PATCH /api/users/me. The current password is always required."""

    password: str = Field(max_length=255)
    nickname: Optional[str] = Field(default=None, max_length=100)
    email: Optional[str] = Field(default=None, max_length=255)
    new_password: Optional[str] = Field(default=None, max_length=255)


class RoleUpdate(BaseModel):
    role: Role


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class SuccessResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True


class ErrorResponse(BaseModel):
    """Error envelope returned on every 4xx/5xx response."""

    model_config = ConfigDict(frozen=True)

    success: bool = False
    message: str


class HandleCheckResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    exists: bool


class UserResponse(BaseModel):
    """Public view of a user row -- never includes the credential hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    handle: str
    nickname: str
    email: str
    role: str
    twitter_id: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            handle=user.handle,
            nickname=user.nickname,
            email=user.email,
            role=user.role,
            twitter_id=user.external_handle,
        )


class MeResponse(UserResponse):
    """GET /api/users/me: the authenticated identity plus its owned circles."""

    circles: list[int] = Field(default_factory=list)

    @classmethod
    def from_identity(cls, identity: Identity) -> "MeResponse":
        return cls(
            id=identity.id,
            handle=identity.handle,
            nickname=identity.nickname,
            email=identity.email,
            role=identity.role,
            twitter_id=identity.external_handle,
            circles=sorted(identity.circles),
        )


class CirclesResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    handle: str
    circles: list[int]


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
