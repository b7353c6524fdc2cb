"""Error kinds raised across the authentication boundary."""

from enum import Enum


class ErrorKind(str, Enum):
    """Closed set of failure kinds callers can branch on."""

    VALIDATION = "validation"
    DUPLICATE_USER = "duplicate_user"
    INVALID_CREDENTIALS = "invalid_credentials"
    NOT_FOUND = "not_found"
    TOKEN_INVALID = "token_invalid"
    SERVICE_UNAVAILABLE = "service_unavailable"


class AuthError(Exception):
    """Base class for authentication-related exceptions."""

    kind: ErrorKind
    default_message = "Authentication error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AuthError):
    kind = ErrorKind.VALIDATION
    default_message = "Missing required field"


class DuplicateUserError(AuthError):
    kind = ErrorKind.DUPLICATE_USER
    default_message = "User already exists with this email"


class InvalidCredentialsError(AuthError):
    kind = ErrorKind.INVALID_CREDENTIALS
    default_message = "Invalid email or password"


class NotFoundError(AuthError):
    kind = ErrorKind.NOT_FOUND
    default_message = "User not found"


class TokenInvalidError(AuthError):
    kind = ErrorKind.TOKEN_INVALID
    default_message = "Invalid or expired token"


class ServiceUnavailableError(AuthError):
    kind = ErrorKind.SERVICE_UNAVAILABLE
    default_message = "Authentication service is temporarily unavailable"
