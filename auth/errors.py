"""
auth/errors.py -- Error taxonomy raised by the auth flows.

Each class pins the HTTP status and machine-readable code the API layer
returns for it. Flows raise these; api/main.py renders them. The message is
client-safe -- infrastructure details go to the log, never into `message`.
"""


class AuthFlowError(Exception):
    """Base for every expected failure of an auth flow."""

    status_code = 500
    code = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(AuthFlowError):
    """Missing or malformed input."""

    status_code = 400
    code = "validation_error"


class AuthError(AuthFlowError):
    """Bad credentials or a failed session check."""

    status_code = 401
    code = "unauthenticated"


class ForbiddenError(AuthFlowError):
    status_code = 403
    code = "forbidden"


class NotFoundError(AuthFlowError):
    status_code = 404
    code = "not_found"


class ConflictError(AuthFlowError):
    """A unique field (email) is already taken."""

    status_code = 422
    code = "conflict"


class VerificationError(AuthFlowError):
    """A one-time code did not match a live pending entry."""

    status_code = 422
    code = "verification_failed"


class InfrastructureError(AuthFlowError):
    """A store, hash or external-service call failed."""

    status_code = 500
    code = "internal_error"
