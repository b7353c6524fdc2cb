"""Client-side session cache.

``SessionHolder`` keeps the current token and user for one client and
persists the token in a single slot named ``auth_token``. On ``load()``
a stored token is only trusted if it still verifies and its user still
exists; otherwise it is discarded. If the user store is unreachable the
holder stays logged out but keeps the token for the next attempt.
"""

import json
import logging
from enum import Enum
from pathlib import Path

import pydantic

from app.errors import ServiceUnavailableError, TokenInvalidError, ValidationError
from app.schemas.auth import ProfileUpdate, UserPublic
from app.services.auth import AuthService, AuthSession

logger = logging.getLogger("secureapp")

AUTH_TOKEN_KEY = "auth_token"

# Marks a profile field the caller did not pass
_UNSET = object()


class SessionState(str, Enum):
    LOGGED_OUT = "logged_out"
    LOGGED_IN = "logged_in"


class MemoryTokenStore:
    """Token slot that lives as long as the process."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class FileTokenStore:
    """Token slot persisted as a small JSON file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable session file %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data), encoding="utf-8")

    def get(self, key: str) -> str | None:
        value = self._load().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def remove(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)


class SessionHolder:
    """Current session for one client, backed by a token store."""

    def __init__(self, auth_service: AuthService, store: MemoryTokenStore | FileTokenStore) -> None:
        self.auth_service = auth_service
        self.store = store
        self.user: UserPublic | None = None
        self.token: str | None = None

    @property
    def state(self) -> SessionState:
        return SessionState.LOGGED_IN if self.user and self.token else SessionState.LOGGED_OUT

    @property
    def is_authenticated(self) -> bool:
        return self.state is SessionState.LOGGED_IN

    def _clear(self) -> None:
        self.user = None
        self.token = None
        self.store.remove(AUTH_TOKEN_KEY)

    def _remember(self, session: AuthSession) -> AuthSession:
        self.user = session.user
        self.token = session.token
        self.store.set(AUTH_TOKEN_KEY, session.token)
        return session

    def load(self) -> SessionState:
        """Restore the session from the stored token, dropping it if stale."""
        token = self.store.get(AUTH_TOKEN_KEY)
        if not token:
            return self.state

        user_id = self.auth_service.verify_token(token)
        try:
            user = self.auth_service.get_user_by_id(user_id) if user_id else None
        except ServiceUnavailableError:
            logger.warning("User store unavailable; keeping session token for a later load()")
            return SessionState.LOGGED_OUT
        if user is None:
            logger.info("Discarding stale session token")
            self._clear()
            return self.state

        self.user = user
        self.token = token
        return self.state

    def sign_up(
        self,
        email: str,
        password: str,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> AuthSession:
        return self._remember(self.auth_service.sign_up(email, password, first_name, last_name))

    def sign_in(self, email: str, password: str) -> AuthSession:
        return self._remember(self.auth_service.sign_in(email, password))

    def sign_out(self) -> None:
        self.auth_service.sign_out(self.token)
        self._clear()

    def reset_password(self, email: str) -> str:
        return self.auth_service.reset_password(email)

    def update_profile(self, *, first_name=_UNSET, last_name=_UNSET) -> UserPublic:
        """Update the signed-in user's profile and refresh the cached user.

        Only the names actually passed are written; passing None clears one.
        """
        if not self.user or not self.token:
            raise TokenInvalidError("Not signed in")
        given = {"first_name": first_name, "last_name": last_name}
        try:
            changes = ProfileUpdate(**{key: value for key, value in given.items() if value is not _UNSET})
        except pydantic.ValidationError as e:
            raise ValidationError("First and last name must be text") from e
        self.user = self.auth_service.update_profile(self.token, self.user.id, changes)
        return self.user
