"""
auth/flows.py -- The user-facing credential flows.

AuthFlows composes the generator, stores, hasher, issuer and outbound
collaborators. Routes stay thin: they unpack the request, call one method
here, and shape the response.

Ordering rules every flow follows:
  1. Validate inputs first. Nothing is written for a request that will fail.
  2. Perform at most one durable mutation, as the last step before success.
     Message dispatch happens after the write and cannot fail the flow.
  3. Store and media failures are logged here with the stack trace and
     re-raised as InfrastructureError carrying a generic message.

Security:
  [C1] login() spends a bcrypt check even for unknown emails and returns the
       same AuthError for unknown email and wrong password.
  verify_otp() and reset_password() consume their entry; a second use fails.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.codes import OTP_MAX, OTP_MIN, generate_opaque_token, generate_otp
from auth.credentials import CredentialStore
from auth.errors import (
    AuthError,
    ConflictError,
    ForbiddenError,
    InfrastructureError,
    NotFoundError,
    ValidationError,
    VerificationError,
)
from auth.models import SessionTokens, User
from auth.passwords import MAX_PASSWORD_BYTES, PasswordHasher, password_fits
from auth.store import UserStore
from auth.tokens import TokenIssuer
from core.config import Settings
from media.store import MediaObject, MediaStoreError
from messaging.dispatcher import MessageDispatcher

logger = logging.getLogger("passgate.flows")

OTP_METHODS = ("email", "number")

_GENERIC_FAILURE = "Some problem occurred."
_BAD_CREDENTIALS = "Invalid credentials."


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _check_password(password: str) -> None:
    """Reject passwords bcrypt cannot hash whole. Counted in UTF-8 bytes, not characters."""
    if not password_fits(password):
        raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes.")


@contextmanager
def _infrastructure(flow: str) -> Iterator[None]:
    """Translate store/media failures into InfrastructureError at the flow boundary."""
    try:
        yield
    except (SQLAlchemyError, MediaStoreError) as exc:
        logger.exception("%s failed on an infrastructure call", flow)
        raise InfrastructureError(_GENERIC_FAILURE) from exc


class AuthFlows:
    """Credential lifecycle operations.

    Usage:
        flows = AuthFlows(settings, users, credentials, hasher, issuer, dispatcher, media)
        code = flows.send_otp("email", "a@x.com")
        flows.verify_otp("a@x.com", code)
    """

    def __init__(
        self,
        settings: Settings,
        users: UserStore,
        credentials: CredentialStore,
        hasher: PasswordHasher,
        issuer: TokenIssuer,
        dispatcher: MessageDispatcher,
        media,
    ) -> None:
        self.settings = settings
        self.users = users
        self.credentials = credentials
        self.hasher = hasher
        self.issuer = issuer
        self.dispatcher = dispatcher
        self.media = media

    # ------------------------------------------------------------------
    # One-time codes
    # ------------------------------------------------------------------

    def send_otp(self, method: Optional[str], receiver: Optional[str]) -> int:
        """Store a fresh code for receiver and send it out. Returns the code."""
        if _blank(method) or _blank(receiver):
            raise ValidationError("Please fill out required fields.")
        if method not in OTP_METHODS:
            raise ValidationError(f"Unsupported method {method!r}; use one of {', '.join(OTP_METHODS)}.")

        code = generate_otp()
        with _infrastructure("send-otp"):
            self.credentials.upsert_otp(receiver, method, code, self.settings.otp_expire_seconds)

        if method == "number":
            self.dispatcher.send_sms(receiver, code)
        else:
            self.dispatcher.send_email("", receiver, None, code)
        logger.info("OTP issued via %s", method)
        return code

    def verify_otp(self, receiver: Optional[str], otp) -> None:
        """Consume the pending code for receiver. Raises VerificationError on any mismatch."""
        if _blank(receiver) or _blank(otp):
            raise ValidationError("Please fill out required fields.")
        try:
            code = int(otp)
        except (TypeError, ValueError):
            # A non-numeric code can never match a stored one.
            raise VerificationError("Code is incorrect!") from None
        if not OTP_MIN <= code <= OTP_MAX:
            # Out-of-range values can never match, and oversized ints overflow the driver.
            raise VerificationError("Code is incorrect!")

        with _infrastructure("verify-otp"):
            entry = self.credentials.find_otp(receiver, code)
            if entry is None:
                raise VerificationError("Code is incorrect!")
            # Losing the delete race means another request consumed it first.
            if not self.credentials.delete_otp(entry.id):
                raise VerificationError("Code is incorrect!")
        logger.info("OTP verified (entry=%d)", entry.id)

    # ------------------------------------------------------------------
    # Registration and login
    # ------------------------------------------------------------------

    def register(
        self,
        name: Optional[str],
        email: Optional[str],
        password: Optional[str],
        phone: Optional[str] = None,
        avatar=None,
    ) -> User:
        """Create a new identity. Raises ConflictError if the email is taken."""
        if _blank(name) or _blank(email) or _blank(password):
            raise ValidationError("Please fill out the required fields!")
        _check_password(password)

        with _infrastructure("register"):
            if self.users.find_by_email(email) is not None:
                raise ConflictError("User already exists with the same email.")

            password_hash = self.hasher.hash(password)
            uploaded: MediaObject | None = None
            if avatar is not None:
                uploaded = self.media.upload(avatar)

            user = User(
                email=email,
                name=name,
                phone=None if _blank(phone) else phone,
                password_hash=password_hash,
                avatar_url=uploaded.url if uploaded else None,
                avatar_id=uploaded.object_id if uploaded else None,
            )
            try:
                user_id = self.users.create(user)
            except IntegrityError as exc:
                # A concurrent registration won the UNIQUE(email) race.
                self._discard_media(uploaded)
                raise ConflictError("User already exists with the same email.") from exc
            created = self.users.find_by_id(user_id)

        logger.info("User registered (id=%d)", user_id)
        return created

    def login(self, email: Optional[str], password: Optional[str]) -> SessionTokens:
        """Check the password and issue a fresh token pair."""
        if _blank(email) or _blank(password):
            raise ValidationError("All fields are required!")
        _check_password(password)

        with _infrastructure("login"):
            user = self.users.find_by_email(email)
        if user is None:
            # Equalize timing -- do NOT return before running bcrypt [C1]
            self.hasher.verify_dummy(password)
            raise AuthError(_BAD_CREDENTIALS)
        if not self.hasher.verify(password, user.password_hash):
            raise AuthError(_BAD_CREDENTIALS)

        logger.info("User logged in (id=%d)", user.id)
        return SessionTokens(
            access_token=self.issuer.issue_access_token(user.id),
            renewal_token=self.issuer.issue_renewal_token(user.id),
        )

    def renew_access(self, identity_id: int) -> str:
        """Issue a new access token for an identity whose renewal token checked out."""
        with _infrastructure("refresh"):
            user = self.users.find_by_id(identity_id)
        if user is None:
            raise AuthError("Authentication required.")
        return self.issuer.issue_access_token(user.id)

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def forgot_password(self, email: Optional[str]) -> None:
        """Store a reset token for the account and email the reset link."""
        if _blank(email):
            raise ValidationError("Please provide email to get reset password link!")

        with _infrastructure("forgot-password"):
            user = self.users.find_by_email(email)
            if user is None:
                raise NotFoundError("User does not exist with the provided email!")
            token = generate_opaque_token()
            self.credentials.upsert_reset(user.id, token, self.settings.reset_token_expire_seconds)

        link = f"{self.settings.client_app_url.rstrip('/')}/resetpassword/{token}"
        self.dispatcher.send_email(user.name, user.email, link)
        logger.info("Password reset requested (id=%d)", user.id)

    def reset_password(self, token: Optional[str], new_password: Optional[str]) -> None:
        """Set a new password using a reset token. The token is single-use."""
        if _blank(token):
            raise ForbiddenError("You are not eligible for making this request.")
        if _blank(new_password):
            raise ValidationError("New password is missing!")
        _check_password(new_password)

        with _infrastructure("reset-password"):
            entry = self.credentials.find_reset(token)
            if entry is None:
                raise NotFoundError("Looks like the reset password link has expired!")
            password_hash = self.hasher.hash(new_password)
            if self.users.update_by_id(entry.user_id, password_hash=password_hash) is None:
                # The account is gone; its reset entry can never be used.
                self.credentials.delete_reset(entry.id)
                raise NotFoundError("User not found!")
            self.credentials.delete_reset(entry.id)
        logger.info("Password reset completed (id=%d)", entry.user_id)

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def get_identity(self, identity_id: int) -> User:
        with _infrastructure("authenticate"):
            user = self.users.find_by_id(identity_id)
        if user is None:
            raise NotFoundError("User not found!")
        return user

    def update_profile(
        self,
        identity_id: int,
        name: Optional[str] = None,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        password: Optional[str] = None,
        avatar=None,
    ) -> User:
        """Merge the provided fields into the identity and return the result.

        A new avatar replaces the stored media object; the old one is
        destroyed only after the row points at the new one.
        """
        fields: dict = {}
        if not _blank(name):
            fields["name"] = name
        if not _blank(email):
            fields["email"] = email
        if not _blank(phone):
            fields["phone"] = phone
        if not fields and _blank(password) and avatar is None:
            raise ValidationError("No data found to update the profile.")
        if not _blank(password):
            _check_password(password)

        with _infrastructure("update-profile"):
            if "email" in fields:
                owner = self.users.find_by_email(fields["email"])
                if owner is not None and owner.id != identity_id:
                    raise ConflictError("User already exists with the same email.")
            if not _blank(password):
                fields["password_hash"] = self.hasher.hash(password)

            uploaded: MediaObject | None = None
            if avatar is not None:
                uploaded = self.media.upload(avatar)
                fields["avatar_url"] = uploaded.url
                fields["avatar_id"] = uploaded.object_id

            try:
                previous = self.users.update_by_id(identity_id, **fields)
            except IntegrityError as exc:
                self._discard_media(uploaded)
                raise ConflictError("User already exists with the same email.") from exc
            if previous is None:
                self._discard_media(uploaded)
                raise NotFoundError("User not found!")
            updated = self.users.find_by_id(identity_id)

        if uploaded is not None and previous.avatar_id:
            self._discard_media_id(previous.avatar_id)
        logger.info("Profile updated (id=%d, fields=%s)", identity_id, sorted(fields))
        return updated

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _discard_media(self, uploaded: MediaObject | None) -> None:
        if uploaded is not None:
            self._discard_media_id(uploaded.object_id)

    def _discard_media_id(self, object_id: str) -> None:
        """Best-effort delete of a media object the account no longer references."""
        try:
            self.media.destroy(object_id)
        except MediaStoreError:
            logger.warning("Could not delete media object %s; leaving it orphaned", object_id, exc_info=True)
