"""Tests for the user directory backends."""

import threading
import uuid
from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import Settings
from app.errors import DuplicateUserError, NotFoundError, ServiceUnavailableError, ValidationError
from app.models.user import User
from app.repositories.users import (
    InMemoryUserDirectory,
    SQLUserDirectory,
    UserDirectory,
    UserRecord,
    create_user_directory,
    normalize_email,
)


def make_record(email: str = "alice@example.com", **kwargs) -> UserRecord:
    return UserRecord(id=uuid.uuid4().hex, email=email, password_hash="hashed", **kwargs)


def test_normalize_email():
    assert normalize_email("  Alice@Example.COM ") == "alice@example.com"
    assert normalize_email(None) == ""


class TestInsertAndLookup:
    def test_insert_normalizes_email(self, directory: UserDirectory):
        record = directory.insert(make_record(" Alice@Example.com "))
        assert record.email == "alice@example.com"
        assert record.created_at is not None
        assert record.updated_at == record.created_at
        assert record.email_verified is False

    def test_find_by_email_case_insensitive(self, directory: UserDirectory):
        record = directory.insert(make_record())
        found = directory.find_by_email("ALICE@example.COM")
        assert found is not None
        assert found.id == record.id

    def test_find_by_id_is_exact(self, directory: UserDirectory):
        record = directory.insert(make_record())
        assert directory.find_by_id(record.id).email == "alice@example.com"
        assert directory.find_by_id(record.id.upper()) is None
        assert directory.find_by_id("missing") is None

    def test_duplicate_email_rejected(self, directory: UserDirectory):
        directory.insert(make_record("alice@example.com"))
        with pytest.raises(DuplicateUserError):
            directory.insert(make_record("ALICE@EXAMPLE.COM"))

    def test_duplicate_does_not_replace_original(self, directory: UserDirectory):
        original = directory.insert(make_record(first_name="First"))
        with pytest.raises(DuplicateUserError):
            directory.insert(make_record(first_name="Second"))
        assert directory.find_by_email("alice@example.com").id == original.id

    def test_find_by_reset_token(self, directory: UserDirectory):
        record = directory.insert(make_record())
        directory.update_fields(record.id, {"reset_token": "ticket-123"})
        assert directory.find_by_reset_token("ticket-123").id == record.id
        assert directory.find_by_reset_token("other") is None
        assert directory.find_by_reset_token("") is None

    def test_returned_records_are_detached(self, directory: UserDirectory):
        record = directory.insert(make_record(first_name="Alice"))
        record.first_name = "Mallory"
        assert directory.find_by_id(record.id).first_name == "Alice"


class TestUpdateFields:
    def test_partial_update(self, directory: UserDirectory):
        created = datetime(2020, 1, 1)
        record = directory.insert(make_record(first_name="Alice", last_name="A", created_at=created, updated_at=created))

        updated = directory.update_fields(record.id, {"last_name": "B"})

        assert updated.first_name == "Alice"
        assert updated.last_name == "B"
        assert updated.email == "alice@example.com"
        assert updated.created_at == created
        assert updated.updated_at > created
        assert directory.find_by_id(record.id).last_name == "B"

    def test_explicit_none_clears_field(self, directory: UserDirectory):
        record = directory.insert(make_record())
        directory.update_fields(record.id, {"reset_token": "t", "reset_token_expires_at": datetime.utcnow()})
        cleared = directory.update_fields(record.id, {"reset_token": None, "reset_token_expires_at": None})
        assert cleared.reset_token is None
        assert cleared.reset_token_expires_at is None

    @pytest.mark.parametrize("field", ["id", "email", "created_at", "unknown"])
    def test_immutable_fields_rejected(self, directory: UserDirectory, field: str):
        record = directory.insert(make_record())
        with pytest.raises(ValidationError):
            directory.update_fields(record.id, {field: "x"})
        assert directory.find_by_id(record.id).email == "alice@example.com"

    def test_missing_user(self, directory: UserDirectory):
        with pytest.raises(NotFoundError):
            directory.update_fields("missing", {"first_name": "Ghost"})

    def test_reset_expiry_round_trips(self, directory: UserDirectory):
        record = directory.insert(make_record())
        expires = datetime(2030, 5, 1, 12, 30)
        directory.update_fields(record.id, {"reset_token_expires_at": expires})
        assert directory.find_by_id(record.id).reset_token_expires_at == expires


class TestSQLDirectory:
    def test_email_stored_lowercase(self, session_factory, db_session: Session):
        SQLUserDirectory(session_factory).insert(make_record("Bob@Example.com"))
        assert db_session.query(User).filter(User.email == "bob@example.com").count() == 1

    def test_storage_failure_is_unavailable(self):
        """A database without the user table surfaces as ServiceUnavailableError."""
        engine = create_engine("sqlite:///:memory:", poolclass=StaticPool)
        directory = SQLUserDirectory(sessionmaker(bind=engine))
        with pytest.raises(ServiceUnavailableError):
            directory.find_by_email("alice@example.com")
        with pytest.raises(ServiceUnavailableError):
            directory.insert(make_record())


class TestInMemoryDirectory:
    def test_concurrent_inserts_one_winner(self):
        """Racing inserts of the same email: exactly one succeeds."""
        directory = InMemoryUserDirectory()
        outcomes: list[str] = []
        barrier = threading.Barrier(8)

        def attempt(i: int) -> None:
            barrier.wait()
            try:
                directory.insert(make_record(f"Race@Example.com{' ' * i}"))
                outcomes.append("ok")
            except DuplicateUserError:
                outcomes.append("dup")

        threads = [threading.Thread(target=attempt, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("ok") == 1
        assert outcomes.count("dup") == 7


class TestFactory:
    def test_memory_backend(self, monkeypatch):
        settings = Settings()
        monkeypatch.setattr(settings, "USER_STORE", "memory")
        assert isinstance(create_user_directory(settings), InMemoryUserDirectory)

    def test_sql_backend(self, monkeypatch, session_factory):
        settings = Settings()
        monkeypatch.setattr(settings, "USER_STORE", "sql")
        assert isinstance(create_user_directory(settings, session_factory), SQLUserDirectory)


def test_ticket_expiry_is_comparable(directory: UserDirectory):
    """Stored expiries compare against naive UTC now in both backends."""
    record = directory.insert(make_record())
    directory.update_fields(record.id, {"reset_token_expires_at": datetime.utcnow() + timedelta(hours=1)})
    assert directory.find_by_id(record.id).reset_token_expires_at > datetime.utcnow()
