"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base
from app.models.user import User  # noqa: F401
from app.repositories.users import InMemoryUserDirectory, SQLUserDirectory, UserDirectory
from app.services.auth import AuthService
from app.services.jwt import JWTService
from app.services.password import PasswordHasher

TEST_SECRET = "test-secret-key"


@pytest.fixture(name="session_factory")
def session_factory_fixture():
    """Create an in-memory SQLite database for tests."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    try:
        yield factory
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(name="db_session")
def db_session_fixture(session_factory) -> Session:
    """Session for inspecting rows written by the SQL directory."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(name="directory", params=["sql", "memory"])
def directory_fixture(request, session_factory) -> UserDirectory:
    """Each directory backend in turn; behavior must not differ between them."""
    if request.param == "memory":
        return InMemoryUserDirectory()
    return SQLUserDirectory(session_factory)


@pytest.fixture(name="hasher")
def hasher_fixture() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture(name="jwt_service")
def jwt_service_fixture() -> JWTService:
    return JWTService(secret_key=TEST_SECRET, algorithm="HS256", expire_minutes=7 * 24 * 60)


@pytest.fixture(name="auth_service")
def auth_service_fixture(directory, hasher, jwt_service) -> AuthService:
    return AuthService(directory=directory, hasher=hasher, tokens=jwt_service, reset_token_expire_minutes=60)


@pytest.fixture(name="client")
def client_fixture(session_factory, hasher, jwt_service):
    """Create a test client over the SQL directory with fresh rate limit counters."""
    from app.rate_limit import limiter
    from main import create_app

    service = AuthService(
        directory=SQLUserDirectory(session_factory),
        hasher=hasher,
        tokens=jwt_service,
    )
    app = create_app(auth_service=service)

    limiter.reset()
    with TestClient(app) as c:
        yield c
    limiter.reset()


@pytest.fixture(name="test_user")
def test_user_fixture(client: TestClient):
    """Create a test user and return its public fields plus token."""
    service: AuthService = client.app.state.auth_service
    session = service.sign_up("test@example.com", "password123", "Test", "User")
    return {
        "user_id": session.user.id,
        "email": session.user.email,
        "token": session.token,
    }
