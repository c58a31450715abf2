"""
API request and response models for Passgate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Request fields are Optional on purpose: a missing field is reported by the
flow as a 400 with a human message, the same way a blank one is. Length caps
still apply to values that are present.
"""

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from auth.models import User

# Character cap for early rejection. The 72-byte bcrypt limit is checked in AuthFlows.
_PASSWORD_MAX = 72


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SendOtpRequest(BaseModel):
    """Request body for PUT /api/v1/auth/send-otp."""

    model_config = ConfigDict(str_strip_whitespace=True)

    method: Optional[str] = Field(default=None, max_length=16, description='"email" or "number"')
    receiver: Optional[str] = Field(default=None, max_length=255)


class VerifyOtpRequest(BaseModel):
    """Request body for POST /api/v1/auth/verify-otp. otp may be sent as a number or a string."""

    model_config = ConfigDict(str_strip_whitespace=True)

    receiver: Optional[str] = Field(default=None, max_length=255)
    otp: Optional[Union[int, str]] = Field(default=None)


class LoginRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=_PASSWORD_MAX)


class ForgotPasswordRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: Optional[str] = Field(default=None, max_length=255)


class ResetPasswordRequest(BaseModel):
    """Request body for PATCH /api/v1/auth/reset-password/{token}."""

    newPassword: Optional[str] = Field(default=None, max_length=_PASSWORD_MAX)  # noqa: N815 -- wire name


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class MessageResponse(BaseModel):
    """Plain success acknowledgement."""

    model_config = ConfigDict(frozen=True)

    message: str


class SendOtpResponse(BaseModel):
    """Response for send-otp. otp is only populated when EXPOSE_OTP_IN_RESPONSE=true."""

    model_config = ConfigDict(frozen=True)

    message: str
    otp: Optional[int] = None


class UserResponse(BaseModel):
    """Public view of an identity. The password hash is never included."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    name: str
    phone: Optional[str]
    avatar: Optional[str]
    created_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        """Factory Method -- the mapping lives next to the output model."""
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            phone=user.phone,
            avatar=user.avatar_url,
            created_at=user.created_at or "",
        )


class UserEnvelope(BaseModel):
    """{"data": {...user...}} wrapper used by /me and /profile."""

    model_config = ConfigDict(frozen=True)

    data: UserResponse


class ErrorResponse(BaseModel):
    """Error envelope returned on every 4xx/5xx response."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
