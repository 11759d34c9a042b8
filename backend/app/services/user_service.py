from sqlalchemy.orm import Session
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from passlib.context import CryptContext
from contextlib import contextmanager
from typing import Optional
from uuid import UUID
import logging

from app.errors import (
    AuthenticationError, ConflictError, ForbiddenError, NotFoundError, StorageError, ValidationError
)
from app.models import User, generate_api_key

logger = logging.getLogger(__name__)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 6


class UserService:
    """Accounts, credentials and profile visibility."""

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _storage(self, action: str):
        try:
            yield
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to {action}: {str(e)}")
            raise StorageError(f"Failed to {action}") from e

    def _commit(self, action: str) -> None:
        with self._storage(action):
            self.db.commit()

    def register(
        self,
        username: str,
        email: str,
        password: str,
        display_name: Optional[str] = None
    ) -> User:
        username = (username or "").strip()
        email = (email or "").strip().lower()

        if not username or not email or not password:
            raise ValidationError("Username, email, and password are required")
        if len(username) < MIN_USERNAME_LENGTH:
            raise ValidationError(f"Username must be at least {MIN_USERNAME_LENGTH} characters")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        with self._storage("check existing users"):
            existing = self.db.query(User).filter(
                or_(User.email == email, User.username == username)
            ).first()
        if existing:
            raise ConflictError("User already exists")

        user = User(
            username=username,
            email=email,
            password_hash=pwd_context.hash(password),
            display_name=display_name or username,
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise ConflictError("User already exists") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to register user: {str(e)}")
            raise StorageError("Failed to register user") from e

        self.db.refresh(user)
        logger.info(f"Registered user {user.username}")
        return user

    def authenticate(self, login: str, password: str) -> User:
        """Check credentials; login may be a username or an email."""
        if not login or not password:
            raise ValidationError("Username and password are required")

        with self._storage("load user"):
            user = self.db.query(User).filter(
                or_(User.username == login, User.email == login.strip().lower())
            ).first()
        if not user or not pwd_context.verify(password, user.password_hash):
            raise AuthenticationError("Invalid credentials")
        return user

    def get(self, user_id: UUID) -> Optional[User]:
        with self._storage("load user"):
            return self.db.query(User).filter(User.id == user_id).first()

    def get_by_username(self, username: str) -> Optional[User]:
        with self._storage("load user"):
            return self.db.query(User).filter(User.username == username).first()

    def get_by_api_key(self, api_key: str) -> Optional[User]:
        with self._storage("load user"):
            return self.db.query(User).filter(User.api_key == api_key).first()

    def update_profile(
        self,
        user: User,
        display_name: Optional[str] = None,
        profile_public: Optional[bool] = None
    ) -> User:
        if display_name is not None:
            user.display_name = display_name
        if profile_public is not None:
            user.profile_public = profile_public
        self._commit("update profile")
        self.db.refresh(user)
        return user

    def regenerate_api_key(self, user: User) -> str:
        user.api_key = generate_api_key()
        self._commit("regenerate API key")
        logger.info(f"Regenerated API key for user {user.username}")
        return user.api_key

    # Profile visibility

    def resolve_user_id(self, username: str) -> UUID:
        user = self.get_by_username(username)
        if not user:
            raise NotFoundError("User not found")
        return user.id

    def is_public(self, username: str) -> bool:
        user = self.get_by_username(username)
        if not user:
            raise NotFoundError("User not found")
        return bool(user.profile_public)

    def get_public_profile(self, username: str) -> User:
        """The user behind a public profile page."""
        user = self.get_by_username(username)
        if not user:
            raise NotFoundError("User not found")
        if not user.profile_public:
            raise ForbiddenError("This profile is private")
        return user
