"""
api/routes/v1/auth.py -- Credential lifecycle REST endpoints.

Routes:
  PUT   /api/v1/auth/send-otp               -- issue a one-time code (201)
  POST  /api/v1/auth/verify-otp             -- consume a one-time code
  POST  /api/v1/auth/register               -- create an account (multipart form, 201)
  POST  /api/v1/auth/login                  -- password login; sets both token cookies
  POST  /api/v1/auth/refresh                -- new access cookie from the renewal cookie
  POST  /api/v1/auth/logout                 -- expires both token cookies (requires session)
  PUT   /api/v1/auth/forgot-password        -- email a reset link (201)
  PATCH /api/v1/auth/reset-password/{token} -- set a new password with a reset token
  GET   /api/v1/auth/me                     -- current identity (requires session)
  PUT   /api/v1/auth/profile                -- update identity fields (requires session, multipart form)

Security:
  [H2] login, send-otp, verify-otp and forgot-password are rate-limited per IP.
  [C1] login goes through AuthFlows.login(), which equalizes timing -- never inline.
  [M5] Cache-Control: no-store on every response that sets token cookies.

Handlers touching the stores or bcrypt are plain `def` so FastAPI runs them
in its threadpool instead of blocking the event loop. Flow errors
(auth.errors.AuthFlowError) are rendered by the handler in api/main.py.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    ResetPasswordRequest,
    SendOtpRequest,
    SendOtpResponse,
    UserEnvelope,
    UserResponse,
    VerifyOtpRequest,
)
from auth.carrier import CookieCarrier
from auth.dependencies import require_renewal, require_session
from auth.flows import AuthFlows
from core.config import get_settings

_settings = get_settings()

# Auth policy:
# - send-otp, verify-otp, register, login, forgot-password, reset-password: public
# - refresh: renewal cookie only (Stage R)
# - logout, me, profile: full two-stage session (require_session)
router = APIRouter()


def _flows(request: Request) -> AuthFlows:
    return request.app.state.flows


def _carrier(request: Request) -> CookieCarrier:
    return request.app.state.carrier


def _file_or_none(upload: Optional[UploadFile]) -> Optional[UploadFile]:
    """Browsers submit an empty part with no filename when no file is chosen."""
    if upload is None or not upload.filename:
        return None
    return upload


def _message(message: str, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=MessageResponse(message=message).model_dump())


# ---------------------------------------------------------------------------
# One-time codes
# ---------------------------------------------------------------------------


@router.put("/auth/send-otp", response_model=SendOtpResponse, status_code=201)
@limiter.limit(_settings.otp_rate_limit)  # [H2]
def send_otp(request: Request, body: SendOtpRequest) -> JSONResponse:
    """Generate a code for receiver, store it (replacing any earlier one) and send it.

    The code is echoed back only when EXPOSE_OTP_IN_RESPONSE is on.
    """
    code = _flows(request).send_otp(body.method, body.receiver)
    expose = request.app.state.settings.expose_otp_in_response
    payload = SendOtpResponse(message="Code sent successfully...", otp=code if expose else None)
    return JSONResponse(status_code=201, content=payload.model_dump(exclude_none=True))


@router.post("/auth/verify-otp", response_model=MessageResponse)
@limiter.limit(_settings.otp_rate_limit)  # [H2]
def verify_otp(request: Request, body: VerifyOtpRequest) -> JSONResponse:
    """Check and consume the code for receiver. A verified code cannot be reused."""
    _flows(request).verify_otp(body.receiver, body.otp)
    return _message("Code verified successfully...")


# ---------------------------------------------------------------------------
# Registration, login, session
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=MessageResponse, status_code=201)
def register(
    request: Request,
    name: Optional[str] = Form(default=None),
    email: Optional[str] = Form(default=None),
    password: Optional[str] = Form(default=None, max_length=72),
    phone: Optional[str] = Form(default=None),
    avatar: Optional[UploadFile] = File(default=None),  # noqa: B008
) -> JSONResponse:
    """Create an account. The avatar file is optional."""
    _flows(request).register(name, email, password, phone=phone, avatar=_file_or_none(avatar))
    return _message("User registered successfully...", status_code=201)


@router.post("/auth/login", response_model=MessageResponse)
@limiter.limit(_settings.login_rate_limit)  # [H2]
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set the access and renewal cookies.

    Wrong password and unknown email produce the same 401 body.
    """
    tokens = _flows(request).login(body.email, body.password)
    resp = _message("User logged in successfully...")
    _carrier(request).attach(resp, tokens.access_token, tokens.renewal_token)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/refresh", response_model=MessageResponse)
def refresh(request: Request, identity_id: int = Depends(require_renewal)) -> JSONResponse:
    """Issue a new access cookie. Needs only a valid renewal cookie."""
    access_token = _flows(request).renew_access(identity_id)
    resp = _message("Access token renewed.")
    _carrier(request).attach_access(resp, access_token)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/logout", response_model=MessageResponse)
async def logout(request: Request, identity_id: int = Depends(require_session)) -> JSONResponse:
    """Expire both token cookies."""
    resp = _message("User logged out successfully...")
    _carrier(request).clear(resp)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


@router.put("/auth/forgot-password", response_model=MessageResponse, status_code=201)
@limiter.limit(_settings.otp_rate_limit)  # [H2]
def forgot_password(request: Request, body: ForgotPasswordRequest) -> JSONResponse:
    _flows(request).forgot_password(body.email)
    return _message("Password reset link has been sent to your email.", status_code=201)


@router.patch("/auth/reset-password", response_model=MessageResponse)
@router.patch("/auth/reset-password/{token}", response_model=MessageResponse)
def reset_password(request: Request, body: ResetPasswordRequest, token: str = "") -> JSONResponse:
    """Set a new password. Without a token in the path the request is refused with 403."""
    _flows(request).reset_password(token, body.newPassword)
    return _message("Password has been reset successfully...")


# ---------------------------------------------------------------------------
# Identity (session required)
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=UserEnvelope)
def me(request: Request, identity_id: int = Depends(require_session)) -> UserEnvelope:
    """Return the identity bound to the current session."""
    user = _flows(request).get_identity(identity_id)
    return UserEnvelope(data=UserResponse.from_user(user))


@router.put("/auth/profile", response_model=UserEnvelope)
def update_profile(
    request: Request,
    identity_id: int = Depends(require_session),
    name: Optional[str] = Form(default=None),
    email: Optional[str] = Form(default=None),
    phone: Optional[str] = Form(default=None),
    password: Optional[str] = Form(default=None, max_length=72),
    avatar: Optional[UploadFile] = File(default=None),  # noqa: B008
) -> UserEnvelope:
    """Merge the submitted fields into the current identity.

    A new avatar replaces the stored one; a new password is re-hashed.
    """
    user = _flows(request).update_profile(
        identity_id,
        name=name,
        email=email,
        phone=phone,
        password=password,
        avatar=_file_or_none(avatar),
    )
    return UserEnvelope(data=UserResponse.from_user(user))
