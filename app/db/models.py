"""
ORM models owned by the import service.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String

from app.db.session import Base, get_engine


def _utcnow() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """Account created by the bulk import (or any other user-creation path)."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    username = Column(String(50), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="member", server_default="member")
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} role={self.role}>"


def create_users_table(engine=None) -> None:
    """Create the users table if it does not exist."""
    engine = engine or get_engine()
    Base.metadata.create_all(bind=engine, tables=[User.__table__])
