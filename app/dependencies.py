"""Authentication dependencies for FastAPI routes."""

from dataclasses import dataclass

from fastapi import Depends, Request, Response

from app.errors import TokenInvalidError
from app.services.auth import AuthService

AUTH_COOKIE_NAME = "auth_token"
COOKIE_MAX_AGE = 7 * 24 * 60 * 60  # 7 days


@dataclass
class CurrentUser:
    """Authenticated caller context."""

    user_id: str
    token: str


def get_auth_service(request: Request) -> AuthService:
    """Return the service instance built by the application factory."""
    return request.app.state.auth_service


def get_request_token(request: Request) -> str | None:
    """Read a token from the Bearer header, falling back to the cookie."""
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:]
    return request.cookies.get(AUTH_COOKIE_NAME)


def get_current_user(
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
) -> CurrentUser:
    """Extract and validate the caller's token. Raises TokenInvalidError if missing or invalid."""
    token = get_request_token(request)
    if not token:
        raise TokenInvalidError("Not authenticated")

    user_id = auth_service.verify_token(token)
    if not user_id:
        raise TokenInvalidError()

    return CurrentUser(user_id=user_id, token=token)


def set_auth_cookie(response: Response, token: str, secure: bool = False) -> None:
    """Set the authentication cookie."""
    response.set_cookie(
        key=AUTH_COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="lax",
        secure=secure,
        max_age=COOKIE_MAX_AGE,
    )


def clear_auth_cookie(response: Response) -> None:
    """Clear the authentication cookie."""
    response.delete_cookie(key=AUTH_COOKIE_NAME)
