"""User directory: persistence of user records behind one interface.

Two backends are provided. ``SQLUserDirectory`` is durable and relies on
the unique index on ``user.email`` to reject duplicates atomically.
``InMemoryUserDirectory`` keeps records in process memory and takes a
lock around every read-modify-write. Both normalize emails the same way
and hand out detached ``UserRecord`` copies.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, fields, replace
from datetime import datetime
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import Settings
from app.errors import DuplicateUserError, NotFoundError, ServiceUnavailableError, ValidationError
from app.models.user import User

logger = logging.getLogger("secureapp")

# Fields update_fields may touch. id, email and created_at are fixed at insert.
MUTABLE_FIELDS = frozenset(
    {"password_hash", "first_name", "last_name", "email_verified", "reset_token", "reset_token_expires_at"}
)


def normalize_email(email: str | None) -> str:
    """Lowercase and trim an email for use as the uniqueness key."""
    return (email or "").strip().lower()


@dataclass
class UserRecord:
    """Full user record as stored, secrets included."""

    id: str
    email: str
    password_hash: str
    first_name: str | None = None
    last_name: str | None = None
    email_verified: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    reset_token: str | None = None
    reset_token_expires_at: datetime | None = None


_RECORD_FIELDS = tuple(f.name for f in fields(UserRecord))


def _check_changes(changes: dict[str, Any]) -> None:
    unknown = set(changes) - MUTABLE_FIELDS
    if unknown:
        raise ValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}")


class UserDirectory(ABC):
    """Lookup and mutation of user records."""

    @abstractmethod
    def find_by_email(self, email: str) -> UserRecord | None:
        """Find a user by email, case-insensitively."""

    @abstractmethod
    def find_by_id(self, user_id: str) -> UserRecord | None:
        """Find a user by exact id."""

    @abstractmethod
    def find_by_reset_token(self, reset_token: str) -> UserRecord | None:
        """Find the user holding a pending reset ticket."""

    @abstractmethod
    def insert(self, candidate: UserRecord) -> UserRecord:
        """Insert a new user. Raises DuplicateUserError if the email is taken."""

    @abstractmethod
    def update_fields(self, user_id: str, changes: dict[str, Any]) -> UserRecord:
        """Set only the given fields and bump updated_at. Raises NotFoundError."""


class InMemoryUserDirectory(UserDirectory):
    """Volatile directory for tests and single-process deployments."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_id: dict[str, UserRecord] = {}
        self._id_by_email: dict[str, str] = {}

    def find_by_email(self, email: str) -> UserRecord | None:
        with self._lock:
            user_id = self._id_by_email.get(normalize_email(email))
            return replace(self._by_id[user_id]) if user_id else None

    def find_by_id(self, user_id: str) -> UserRecord | None:
        with self._lock:
            record = self._by_id.get(user_id)
            return replace(record) if record else None

    def find_by_reset_token(self, reset_token: str) -> UserRecord | None:
        if not reset_token:
            return None
        with self._lock:
            for record in self._by_id.values():
                if record.reset_token == reset_token:
                    return replace(record)
        return None

    def insert(self, candidate: UserRecord) -> UserRecord:
        record = replace(candidate, email=normalize_email(candidate.email))
        now = datetime.utcnow()
        record.created_at = record.created_at or now
        record.updated_at = record.updated_at or record.created_at
        with self._lock:
            if record.email in self._id_by_email:
                raise DuplicateUserError()
            if record.id in self._by_id:
                raise DuplicateUserError(f"User id {record.id} already exists")
            self._by_id[record.id] = record
            self._id_by_email[record.email] = record.id
            return replace(record)

    def update_fields(self, user_id: str, changes: dict[str, Any]) -> UserRecord:
        _check_changes(changes)
        with self._lock:
            record = self._by_id.get(user_id)
            if record is None:
                raise NotFoundError()
            for key, value in changes.items():
                setattr(record, key, value)
            record.updated_at = datetime.utcnow()
            return replace(record)


class SQLUserDirectory(UserDirectory):
    """Durable directory backed by the ``user`` table."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    @staticmethod
    def _to_record(user: User) -> UserRecord:
        return UserRecord(**{name: getattr(user, name) for name in _RECORD_FIELDS})

    def _query_one(self, *criteria) -> UserRecord | None:
        try:
            with self._session_factory() as db:
                user = db.query(User).filter(*criteria).first()
                return self._to_record(user) if user else None
        except SQLAlchemyError as e:
            logger.error("User lookup failed: %s", e)
            raise ServiceUnavailableError() from e

    def find_by_email(self, email: str) -> UserRecord | None:
        return self._query_one(User.email == normalize_email(email))

    def find_by_id(self, user_id: str) -> UserRecord | None:
        return self._query_one(User.id == user_id)

    def find_by_reset_token(self, reset_token: str) -> UserRecord | None:
        if not reset_token:
            return None
        return self._query_one(User.reset_token == reset_token)

    def insert(self, candidate: UserRecord) -> UserRecord:
        now = datetime.utcnow()
        values = {name: getattr(candidate, name) for name in _RECORD_FIELDS}
        values["email"] = normalize_email(candidate.email)
        values["created_at"] = candidate.created_at or now
        values["updated_at"] = candidate.updated_at or values["created_at"]
        try:
            with self._session_factory() as db:
                user = User(**values)
                db.add(user)
                try:
                    db.commit()
                except IntegrityError as e:
                    db.rollback()
                    raise DuplicateUserError() from e
                db.refresh(user)
                return self._to_record(user)
        except SQLAlchemyError as e:
            logger.error("User insert failed: %s", e)
            raise ServiceUnavailableError() from e

    def update_fields(self, user_id: str, changes: dict[str, Any]) -> UserRecord:
        _check_changes(changes)
        try:
            with self._session_factory() as db:
                user = db.get(User, user_id)
                if user is None:
                    raise NotFoundError()
                for key, value in changes.items():
                    setattr(user, key, value)
                user.updated_at = datetime.utcnow()
                db.commit()
                db.refresh(user)
                return self._to_record(user)
        except SQLAlchemyError as e:
            logger.error("User update failed: %s", e)
            raise ServiceUnavailableError() from e


def create_user_directory(settings: Settings, session_factory: Callable[[], Session] | None = None) -> UserDirectory:
    """Build the directory backend selected by USER_STORE."""
    if settings.USER_STORE == "memory":
        logger.info("Using in-memory user directory")
        return InMemoryUserDirectory()
    if session_factory is None:
        from app.database import create_db_engine, create_session_factory

        session_factory = create_session_factory(create_db_engine(settings))
    return SQLUserDirectory(session_factory)
