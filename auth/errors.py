"""
auth/errors.py -- Domain error taxonomy for the identity core.

Every error carries a stable machine-readable code and the HTTP status the API
layer should answer with. api/main.py registers one exception handler for
AuthError and renders the {"success": false, "error": {...}} envelope, so the
service and dependencies raise these and never build responses themselves.

Call sites may override the default code for finer distinctions, e.g.
Forbidden(code="USER_NOT_APPROVED").

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    code: str = "SERVER_ERROR"
    status_code: int = 500
    message: str = "Internal server error"

    def __init__(self, message: str | None = None, *, code: str | None = None, details: dict | None = None) -> None:
        self.message = message or self.message
        self.code = code or self.code
        self.details = details
        super().__init__(self.message)


class ValidationError(AuthError):
    """Malformed input. details maps field name -> message."""

    code = "VALIDATION_ERROR"
    status_code = 400
    message = "Validation failed"


class DuplicateIdentity(AuthError):
    code = "USER_EXISTS"
    status_code = 400
    message = "User with this email already exists"


class InvalidCredentials(AuthError):
    # Same message for unknown email and wrong password -- no enumeration.
    code = "INVALID_CREDENTIALS"
    status_code = 401
    message = "Invalid email or password"


class UserInactive(AuthError):
    code = "USER_INACTIVE"
    status_code = 401
    message = "Your account has been deactivated"


class Unauthorized(AuthError):
    code = "UNAUTHORIZED"
    status_code = 401
    message = "Not authorized to access this route"


class Forbidden(AuthError):
    code = "FORBIDDEN"
    status_code = 403
    message = "You do not have access to this resource"


class NotFound(AuthError):
    code = "NOT_FOUND"
    status_code = 404
    message = "Resource not found"


class InvalidToken(AuthError):
    """Password-reset token unknown, expired, or already consumed."""

    code = "INVALID_TOKEN"
    status_code = 401
    message = "Invalid or expired reset token"


class ServerError(AuthError):
    pass


# ---------------------------------------------------------------------------
# Token verification failures (raised by TokenIssuer.verify)
#
# The service and dependencies collapse all three into Unauthorized; they are
# kept distinct so the issuer's contract can be tested precisely.
# ---------------------------------------------------------------------------


class TokenError(AuthError):
    code = "INVALID_TOKEN"
    status_code = 401
    message = "Invalid token"


class TokenInvalid(TokenError):
    pass


class TokenExpired(TokenError):
    code = "TOKEN_EXPIRED"
    message = "Token expired"


class TokenKindMismatch(TokenError):
    code = "TOKEN_KIND_MISMATCH"
    message = "Token of the wrong kind"
