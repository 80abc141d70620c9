"""
User creation service used as the entity creator of the bulk import.

``UserService.create_user`` is called concurrently by every import worker.
Each call opens its own session, so the service holds no per-call state and
is safe to share across threads.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.security import get_password_hash
from app.db.models import User
from app.db.session import get_session_local
from app.domain.imports.records import UserRole

logger = logging.getLogger(__name__)

EMAIL_EXISTS_MESSAGE = "email already exists"
USERNAME_EXISTS_MESSAGE = "username already exists"


class DuplicateUserError(Exception):
    """The username or email is already taken."""


class UserCreationError(Exception):
    """The user could not be persisted for a reason other than a duplicate."""


@dataclass(frozen=True)
class CreateUserInput:
    username: str
    email: str
    password: str = field(repr=False)
    role: UserRole


class UserService:
    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self._session_factory = session_factory

    def _new_session(self) -> Session:
        factory = self._session_factory or get_session_local()
        return factory()

    def create_user(self, data: CreateUserInput) -> str:
        """
        Create a user and return its id.

        Raises:
            DuplicateUserError: email or username already exists
            UserCreationError: the insert failed for any other reason
        """
        with self._new_session() as db:
            if db.query(User.id).filter(User.email == data.email).first() is not None:
                raise DuplicateUserError(EMAIL_EXISTS_MESSAGE)
            if db.query(User.id).filter(User.username == data.username).first() is not None:
                raise DuplicateUserError(USERNAME_EXISTS_MESSAGE)

            user = User(
                username=data.username,
                email=data.email,
                password_hash=get_password_hash(data.password),
                role=data.role.value,
            )
            db.add(user)
            try:
                db.commit()
            except IntegrityError as e:
                # Another worker inserted the same email/username between the check and the commit
                db.rollback()
                raise DuplicateUserError(self._duplicate_message(db, data)) from e
            except Exception as e:
                db.rollback()
                raise UserCreationError(f"failed to create user: {e}") from e

            logger.debug("Created user %s (%s) with role %s", user.id, data.username, data.role.value)
            return user.id

    @staticmethod
    def _duplicate_message(db: Session, data: CreateUserInput) -> str:
        if db.query(User.id).filter(User.email == data.email).first() is not None:
            return EMAIL_EXISTS_MESSAGE
        if db.query(User.id).filter(User.username == data.username).first() is not None:
            return USERNAME_EXISTS_MESSAGE
        return "user already exists"

    def __call__(self, data: CreateUserInput) -> str:
        return self.create_user(data)


def get_user_service() -> UserService:
    """FastAPI dependency returning a service bound to the configured database."""
    return UserService()
