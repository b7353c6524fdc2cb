"""Authentication service."""

import logging
import secrets
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta

from app.config import Settings, get_settings
from app.errors import (
    AuthError,
    DuplicateUserError,
    InvalidCredentialsError,
    NotFoundError,
    ServiceUnavailableError,
    TokenInvalidError,
    ValidationError,
)
from app.repositories.users import UserDirectory, UserRecord, create_user_directory, normalize_email
from app.schemas.auth import ProfileUpdate, UserPublic
from app.services.jwt import JWTService
from app.services.password import PasswordHasher

logger = logging.getLogger("secureapp")

# Column widths of the user table, enforced here so every backend agrees
MAX_EMAIL_LENGTH = 256
MAX_NAME_LENGTH = 128
MAX_RESET_TOKEN_LENGTH = 256


@dataclass
class AuthSession:
    """A signed-in user and the token proving it."""

    user: UserPublic
    token: str


@contextmanager
def _dependency_guard(operation: str) -> Iterator[None]:
    """Let AuthError through; turn any other dependency failure into ServiceUnavailableError."""
    try:
        yield
    except AuthError:
        raise
    except Exception as e:
        logger.exception("%s failed", operation)
        raise ServiceUnavailableError() from e


def check_text(value: str | None, field: str, max_length: int) -> None:
    """Reject values that are too long or not encodable as UTF-8."""
    if value is None:
        return
    if len(value) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        raise ValidationError(f"{field} must be valid text") from None


def to_public(record: UserRecord) -> UserPublic:
    """Project a stored record onto the fields callers may see."""
    return UserPublic.model_validate(record)


class AuthService:
    """Handles registration, sign-in, password reset and profile updates."""

    def __init__(
        self,
        directory: UserDirectory,
        hasher: PasswordHasher,
        tokens: JWTService,
        reset_token_expire_minutes: int = 60,
    ) -> None:
        self.directory = directory
        self.hasher = hasher
        self.tokens = tokens
        self.reset_token_expire_minutes = reset_token_expire_minutes
        self._dummy_hash = hasher.hash(secrets.token_urlsafe(16))

    def _start_session(self, record: UserRecord) -> AuthSession:
        return AuthSession(user=to_public(record), token=self.tokens.create_token(record.id))

    def _burn_verify(self, password: str) -> None:
        """Spend the same bcrypt time on unknown emails as on real ones."""
        self.hasher.verify(password, self._dummy_hash)

    def sign_up(
        self,
        email: str,
        password: str,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> AuthSession:
        """Register a new user and start a session for them."""
        email = normalize_email(email)
        if not email:
            raise ValidationError("Email is required")
        if not password:
            raise ValidationError("Password is required")
        check_text(email, "Email", MAX_EMAIL_LENGTH)
        check_text(first_name, "First name", MAX_NAME_LENGTH)
        check_text(last_name, "Last name", MAX_NAME_LENGTH)

        with _dependency_guard("Sign up"):
            # Advisory only; the directory's insert is what enforces uniqueness.
            if self.directory.find_by_email(email):
                raise DuplicateUserError()

            now = datetime.utcnow()
            candidate = UserRecord(
                id=uuid.uuid4().hex,
                email=email,
                password_hash=self.hasher.hash(password),
                first_name=first_name,
                last_name=last_name,
                email_verified=False,
                created_at=now,
                updated_at=now,
            )
            record = self.directory.insert(candidate)
            session = self._start_session(record)

        logger.info("User registered: %s", record.id)
        return session

    def sign_in(self, email: str, password: str) -> AuthSession:
        """Authenticate a user by email and password."""
        email = normalize_email(email)
        check_text(email, "Email", MAX_EMAIL_LENGTH)
        with _dependency_guard("Sign in"):
            record = self.directory.find_by_email(email) if email else None
            if record is None:
                self._burn_verify(password or "")
                raise InvalidCredentialsError()
            if not self.hasher.verify(password or "", record.password_hash):
                raise InvalidCredentialsError()
            return self._start_session(record)

    def sign_out(self, token: str | None = None) -> None:
        """End a session. Tokens are stateless, so only the holder's copy goes away."""
        user_id = self.tokens.decode_token(token) if token else None
        logger.info("Sign out: %s", user_id or "anonymous")

    def reset_password(self, email: str) -> str:
        """Open a reset ticket for the given email and return it for delivery."""
        email = normalize_email(email)
        if not email:
            raise ValidationError("Email is required")
        check_text(email, "Email", MAX_EMAIL_LENGTH)
        with _dependency_guard("Reset password"):
            record = self.directory.find_by_email(email)
            if record is None:
                raise NotFoundError()
            reset_token = secrets.token_urlsafe(32)
            self.directory.update_fields(
                record.id,
                {
                    "reset_token": reset_token,
                    "reset_token_expires_at": datetime.utcnow() + timedelta(minutes=self.reset_token_expire_minutes),
                },
            )
        logger.info("Reset ticket issued for user %s", record.id)
        return reset_token

    def confirm_password_reset(self, reset_token: str, new_password: str) -> AuthSession:
        """Set a new password using a live reset ticket. The ticket is consumed."""
        if not new_password:
            raise ValidationError("Password is required")
        check_text(reset_token, "Reset token", MAX_RESET_TOKEN_LENGTH)
        with _dependency_guard("Confirm password reset"):
            record = self.directory.find_by_reset_token(reset_token)
            if record is None:
                raise TokenInvalidError("Invalid or expired reset link")

            clear_ticket = {"reset_token": None, "reset_token_expires_at": None}
            if not record.reset_token_expires_at or record.reset_token_expires_at < datetime.utcnow():
                self.directory.update_fields(record.id, clear_ticket)
                raise TokenInvalidError("Reset link has expired. Please request a new one.")

            password_hash = self.hasher.hash(new_password)
            record = self.directory.update_fields(record.id, {"password_hash": password_hash, **clear_ticket})
            return self._start_session(record)

    def update_profile(self, token: str, user_id: str, changes: ProfileUpdate) -> UserPublic:
        """Apply the provided profile fields for the user the token belongs to."""
        token_user_id = self.tokens.decode_token(token)
        if token_user_id is None:
            raise TokenInvalidError()
        if token_user_id != user_id:
            raise TokenInvalidError("Token does not belong to this user")

        fields_set = changes.model_dump(exclude_unset=True)
        check_text(fields_set.get("first_name"), "First name", MAX_NAME_LENGTH)
        check_text(fields_set.get("last_name"), "Last name", MAX_NAME_LENGTH)

        with _dependency_guard("Update profile"):
            record = self.directory.update_fields(user_id, fields_set)
        return to_public(record)

    def verify_token(self, token: str) -> str | None:
        """Resolve a session token to its user id, or None."""
        return self.tokens.decode_token(token)

    def get_user_by_id(self, user_id: str) -> UserPublic | None:
        """Look up the public view of a user."""
        with _dependency_guard("Get user"):
            record = self.directory.find_by_id(user_id)
        return to_public(record) if record else None


def build_auth_service(settings: Settings | None = None) -> AuthService:
    """Wire an AuthService from settings."""
    settings = settings or get_settings()
    return AuthService(
        directory=create_user_directory(settings),
        hasher=PasswordHasher(settings.BCRYPT_ROUNDS),
        tokens=JWTService(settings.JWT_SECRET_KEY, settings.JWT_ALGORITHM, settings.JWT_EXPIRE_MINUTES),
        reset_token_expire_minutes=settings.RESET_TOKEN_EXPIRE_MINUTES,
    )
