"""
Pytest configuration and fixtures for the bulk user import tests.

Tests never touch the configured Postgres database: the API uses a
dependency override and the user-service tests bind to a throwaway SQLite file.
"""

import os

# Tests manage their own storage; keep startup from bootstrapping the real database.
os.environ.setdefault("SKIP_DB_INIT", "1")

import functools
import threading
import time
from typing import Dict, List, Optional

import bcrypt
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.db.models import create_users_table
from app.domain.users.service import CreateUserInput, DuplicateUserError, UserService


class FakeUserCreator:
    """
    Thread-safe stand-in for ``UserService.create_user``.

    ``failures`` maps an email to the error message raised for it.
    """

    def __init__(self, failures: Optional[Dict[str, str]] = None, delay: float = 0.0):
        self.failures = failures or {}
        self.delay = delay
        self.calls: List[CreateUserInput] = []
        self._lock = threading.Lock()

    def __call__(self, data: CreateUserInput) -> str:
        if self.delay:
            time.sleep(self.delay)
        with self._lock:
            self.calls.append(data)
        if data.email in self.failures:
            raise DuplicateUserError(self.failures[data.email])
        return f"user-{data.username}"

    def create_user(self, data: CreateUserInput) -> str:
        return self(data)

    @property
    def created_usernames(self) -> List[str]:
        with self._lock:
            return sorted(call.username for call in self.calls if call.email not in self.failures)


@pytest.fixture
def fake_creator():
    """Factory fixture: ``fake_creator(failures=..., delay=...)``."""
    return FakeUserCreator


def build_csv(rows, header: str = "username,email,password,role") -> str:
    lines = [header]
    lines.extend(",".join(row) for row in rows)
    return "\n".join(lines) + "\n"


@pytest.fixture
def csv_builder():
    return build_csv


@pytest.fixture
def user_rows():
    """Factory producing ``count`` distinct, valid member rows."""

    def _rows(count: int, role: str = "member"):
        return [
            (f"user{i:03d}", f"user{i:03d}@example.com", f"password{i:03d}", role)
            for i in range(1, count + 1)
        ]

    return _rows


@pytest.fixture
def fast_bcrypt(monkeypatch):
    """Use the minimum bcrypt cost so hashing does not dominate test time."""
    monkeypatch.setattr(bcrypt, "gensalt", functools.partial(bcrypt.gensalt, rounds=4))


@pytest.fixture
def sqlite_session_factory(tmp_path, fast_bcrypt):
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'users.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    create_users_table(engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def user_service(sqlite_session_factory):
    return UserService(sqlite_session_factory)
