"""JWT Token Service."""

from datetime import datetime, timedelta

from jose import JWTError, jwt

from app.config import get_settings


class JWTService:
    """Handles session token creation and validation."""

    def __init__(
        self,
        secret_key: str | None = None,
        algorithm: str | None = None,
        expire_minutes: int | None = None,
    ) -> None:
        settings = get_settings()
        self.secret_key = secret_key or settings.JWT_SECRET_KEY
        self.algorithm = algorithm or settings.JWT_ALGORITHM
        self.expire_minutes = expire_minutes if expire_minutes is not None else settings.JWT_EXPIRE_MINUTES

    def create_token(self, user_id: str, issued_at: datetime | None = None) -> str:
        """Create a signed token bound to the given user."""
        issued_at = issued_at or datetime.utcnow()
        payload = {
            "sub": user_id,
            "iat": issued_at,
            "exp": issued_at + timedelta(minutes=self.expire_minutes),
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def decode_token(self, token: str) -> str | None:
        """Decode and validate a token. Returns the user id, or None if invalid."""
        if not token:
            return None
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError:
            return None
        user_id = payload.get("sub")
        if not isinstance(user_id, str) or not user_id:
            return None
        return user_id

    def is_token_valid(self, token: str) -> bool:
        """Check if a token is valid."""
        return self.decode_token(token) is not None
