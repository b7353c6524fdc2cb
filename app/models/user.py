"""User model."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, String

from app.database import Base


class User(Base):
    """Application user."""

    __tablename__ = "user"

    id = Column(String(32), primary_key=True)
    email = Column(String(256), unique=True, nullable=False, index=True)
    password_hash = Column(String(256), nullable=False)
    first_name = Column(String(128), nullable=True)
    last_name = Column(String(128), nullable=True)
    email_verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    reset_token = Column(String(256), nullable=True, index=True)
    reset_token_expires_at = Column(DateTime, nullable=True)
