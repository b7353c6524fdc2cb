"""Authentication API endpoints."""

import logging

from fastapi import APIRouter, Depends, Request, Response

from app.config import get_settings
from app.dependencies import (
    CurrentUser,
    clear_auth_cookie,
    get_auth_service,
    get_current_user,
    get_request_token,
    set_auth_cookie,
)
from app.errors import NotFoundError, TokenInvalidError
from app.rate_limit import limiter
from app.schemas.auth import (
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    ProfileUpdate,
    RegisterRequest,
    ResetPasswordRequest,
    SessionResponse,
    UserPublic,
    VerifyResponse,
)
from app.services.auth import AuthService, AuthSession

logger = logging.getLogger("secureapp")

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])


def _session_response(response: Response, session: AuthSession) -> SessionResponse:
    set_auth_cookie(response, session.token, secure=get_settings().APP_ENV == "production")
    return SessionResponse(token=session.token, user=session.user)


@router.post("/register", response_model=SessionResponse)
@limiter.limit("5/minute")
def register(
    request: Request,
    response: Response,
    body: RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> SessionResponse:
    """Register a new user account."""
    session = auth_service.sign_up(body.email, body.password, body.first_name, body.last_name)
    return _session_response(response, session)


@router.post("/login", response_model=SessionResponse)
@limiter.limit("10/minute")
def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> SessionResponse:
    """Authenticate and receive a session token."""
    session = auth_service.sign_in(body.email, body.password)
    return _session_response(response, session)


@router.post("/logout", response_model=MessageResponse)
def logout(
    request: Request,
    response: Response,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Clear the auth cookie. The token itself stays valid until it expires."""
    auth_service.sign_out(get_request_token(request))
    clear_auth_cookie(response)
    return MessageResponse(message="Signed out")


@router.get("/verify", response_model=VerifyResponse)
def verify_token(token: str, auth_service: AuthService = Depends(get_auth_service)) -> VerifyResponse:
    """Verify a session token and return the user it belongs to."""
    user_id = auth_service.verify_token(token)
    if not user_id:
        raise TokenInvalidError()
    return VerifyResponse(valid=True, user_id=user_id)


@router.post("/forgot-password", response_model=MessageResponse)
@limiter.limit("3/minute")
def forgot_password(
    request: Request,
    body: ForgotPasswordRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Request a password reset. Logs reset link to server console."""
    reset_token = auth_service.reset_password(body.email)

    base_url = str(request.base_url).rstrip("/")
    logger.info("PASSWORD RESET: %s/reset-password?token=%s", base_url, reset_token)

    return MessageResponse(message="A reset link has been generated. Check the server console.")


@router.post("/reset-password", response_model=SessionResponse)
@limiter.limit("5/minute")
def reset_password(
    request: Request,
    response: Response,
    body: ResetPasswordRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> SessionResponse:
    """Reset password using a valid ticket. Returns a session for auto-login."""
    session = auth_service.confirm_password_reset(body.token, body.new_password)
    return _session_response(response, session)


@router.get("/me", response_model=UserPublic)
def me(
    user: CurrentUser = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> UserPublic:
    """Return the signed-in user."""
    found = auth_service.get_user_by_id(user.user_id)
    if not found:
        raise NotFoundError()
    return found


@router.patch("/me", response_model=UserPublic)
def update_me(
    body: ProfileUpdate,
    user: CurrentUser = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> UserPublic:
    """Update first and/or last name of the signed-in user."""
    return auth_service.update_profile(user.token, user.user_id, body)
