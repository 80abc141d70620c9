"""
Tests for the SQLAlchemy-backed user creator, alone and driven by the import pipeline.
"""
import pytest

from app.core.security import verify_password
from app.db.models import User
from app.domain.imports.orchestrator import run_import
from app.domain.imports.records import ImportConfig, UserRole
from app.domain.users.service import (
    EMAIL_EXISTS_MESSAGE,
    USERNAME_EXISTS_MESSAGE,
    CreateUserInput,
    DuplicateUserError,
    UserService,
)


def _input(username="alice", email="alice@example.com", password="password123", role=UserRole.MEMBER):
    return CreateUserInput(username=username, email=email, password=password, role=role)


def test_create_user_persists_hashed_password(user_service, sqlite_session_factory):
    user_id = user_service.create_user(_input(role=UserRole.MANAGER))

    with sqlite_session_factory() as db:
        user = db.get(User, user_id)
        assert user is not None
        assert user.username == "alice"
        assert user.role == "manager"
        assert user.password_hash != "password123"
        assert verify_password("password123", user.password_hash)


def test_duplicate_email_is_rejected(user_service):
    user_service.create_user(_input())

    with pytest.raises(DuplicateUserError) as exc_info:
        user_service.create_user(_input(username="alice2"))

    assert str(exc_info.value) == EMAIL_EXISTS_MESSAGE


def test_duplicate_username_is_rejected(user_service):
    user_service.create_user(_input())

    with pytest.raises(DuplicateUserError) as exc_info:
        user_service.create_user(_input(email="other@example.com"))

    assert str(exc_info.value) == USERNAME_EXISTS_MESSAGE


def test_import_creates_users_concurrently(user_service, sqlite_session_factory, csv_builder, user_rows):
    config = ImportConfig(worker_count=4, batch_size=2, timeout_seconds=60, max_records=0)

    summary = run_import(csv_builder(user_rows(8)), user_service.create_user, config)

    assert summary.success_count == 8
    assert summary.failure_count == 0
    with sqlite_session_factory() as db:
        assert db.query(User).count() == 8
        ids = {user.id for user in db.query(User).all()}
    assert ids == {outcome.user_id for outcome in summary.outcomes}


def test_import_reports_existing_users_as_failed_outcomes(user_service, csv_builder):
    user_service.create_user(_input(username="existing", email="existing@example.com"))
    content = csv_builder([
        ("existing2", "existing@example.com", "password123", "member"),
        ("fresh", "fresh@example.com", "password123", "manager"),
    ])
    config = ImportConfig(worker_count=2, batch_size=5, timeout_seconds=60, max_records=0)

    summary = run_import(content, user_service, config)

    assert summary.success_count == 1
    assert summary.failure_count == 1
    failed = summary.failed_outcomes[0]
    assert failed.record.username == "existing2"
    assert failed.error == EMAIL_EXISTS_MESSAGE


def test_same_email_twice_in_one_run_creates_only_one_user(user_service, sqlite_session_factory, csv_builder):
    content = csv_builder([
        ("first", "shared@example.com", "password123", "member"),
        ("second", "shared@example.com", "password123", "member"),
    ])
    config = ImportConfig(worker_count=2, batch_size=5, timeout_seconds=60, max_records=0, skip_duplicates=False)

    summary = run_import(content, user_service.create_user, config)

    assert summary.success_count == 1
    assert summary.failure_count == 1
    assert summary.failed_outcomes[0].error == EMAIL_EXISTS_MESSAGE
    with sqlite_session_factory() as db:
        assert db.query(User).filter(User.email == "shared@example.com").count() == 1


def test_default_service_opens_sessions_from_configured_factory(monkeypatch, sqlite_session_factory):
    monkeypatch.setattr("app.domain.users.service.get_session_local", lambda: sqlite_session_factory)

    user_id = UserService().create_user(_input(username="carol", email="carol@example.com"))

    with sqlite_session_factory() as db:
        assert db.get(User, user_id).email == "carol@example.com"
