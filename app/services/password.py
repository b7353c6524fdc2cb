"""Password hashing service."""

import bcrypt

from app.config import get_settings
from app.errors import ValidationError

# bcrypt only reads the first 72 bytes of its input
MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """Salted bcrypt digests with a tunable work factor."""

    def __init__(self, rounds: int | None = None) -> None:
        self.rounds = rounds if rounds is not None else get_settings().BCRYPT_ROUNDS

    def hash(self, password: str) -> str:
        """Hash a password with a fresh random salt."""
        try:
            encoded = password.encode("utf-8")
        except UnicodeEncodeError:
            raise ValidationError("Password must be valid text") from None
        if len(encoded) > MAX_PASSWORD_BYTES:
            raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, password: str, password_hash: str | None) -> bool:
        """Check a password against a stored digest. Malformed input never matches."""
        if not password_hash:
            return False
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError:
            return False
