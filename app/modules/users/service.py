"""
User administration service.

Owns every write to the ``users`` table: creation (used by both public
registration and the admin endpoints), updates, password resets and deletion.
"""
import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import (
    DuplicateKeyError, NotFoundError, SelfModificationError, ValidationError
)
from app.modules.auth.models import User, UserRole
from app.modules.auth.schemas import UserCreate, UserUpdate
from app.modules.auth.utils import hash_password

logger = logging.getLogger(__name__)


def validate_new_password(password: Optional[str], label: str = "Password") -> None:
    if not password:
        raise ValidationError(f"{label} is required")
    if len(password) < settings.MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"{label} must be at least {settings.MIN_PASSWORD_LENGTH} characters long"
        )


class UserService:
    def __init__(self, db: Session):
        self.db = db

    def _ensure_unique(self, username: Optional[str], email: Optional[str], exclude_id: Optional[UUID] = None):
        conditions = []
        if username:
            conditions.append(User.username == username)
        if email:
            conditions.append(User.email == email)
        if not conditions:
            return

        query = self.db.query(User).filter(or_(*conditions))
        if exclude_id is not None:
            query = query.filter(User.id != exclude_id)
        existing = query.first()

        if existing:
            if email and existing.email == email:
                raise DuplicateKeyError("email", "Email already registered")
            raise DuplicateKeyError("username", "Username already taken")

    def _commit_user(self, user: User) -> User:
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            # Lost a race against a concurrent writer after the pre-check
            if "email" in str(e.orig):
                raise DuplicateKeyError("email", "Email already registered")
            if "username" in str(e.orig):
                raise DuplicateKeyError("username", "Username already taken")
            raise
        self.db.refresh(user)
        return user

    def list_users(self, limit: int = 100, offset: int = 0) -> List[User]:
        return (
            self.db.query(User)
            .order_by(User.created_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def get_user(self, user_id: UUID) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError("User not found")
        return user

    def find_by_login(self, username_or_email: str) -> Optional[User]:
        """Active user matching a username or an email address."""
        identifier = username_or_email.strip()
        return self.db.query(User).filter(
            or_(User.username == identifier, User.email == identifier.lower()),
            User.is_active.is_(True),
        ).first()

    def create_user(self, user_data: UserCreate) -> User:
        """Crear usuario con contraseña hasheada."""
        validate_new_password(user_data.password)
        username = user_data.username.strip()
        email = str(user_data.email).strip().lower()

        self._ensure_unique(username, email)

        user = User(
            username=username,
            email=email,
            password=hash_password(user_data.password),
            role=user_data.role or UserRole.USER,
            is_active=True,
        )
        self.db.add(user)
        user = self._commit_user(user)
        logger.info(f"User {user.username} created with role {user.role.value}")
        return user

    def update_user(self, user_id: UUID, user_update: UserUpdate, acting_user: User) -> User:
        if user_id == acting_user.id and user_update.is_active is False:
            raise SelfModificationError("You cannot deactivate your own account")

        changes = user_update.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            raise ValidationError("No valid fields to update")

        user = self.get_user(user_id)

        username = changes.get("username")
        email = str(changes["email"]).lower() if "email" in changes else None
        self._ensure_unique(username, email, exclude_id=user.id)

        if username is not None:
            user.username = username
        if email is not None:
            user.email = email
        if "role" in changes:
            user.role = changes["role"]
        if "is_active" in changes:
            user.is_active = changes["is_active"]

        return self._commit_user(user)

    def set_password(self, user: User, new_password: str, label: str = "Password") -> User:
        validate_new_password(new_password, label)
        user.password = hash_password(new_password)
        self.db.commit()
        return user

    def reset_password(self, user_id: UUID, new_password: str) -> User:
        validate_new_password(new_password)
        user = self.get_user(user_id)
        self.set_password(user, new_password)
        logger.info(f"Password reset for user {user.username}")
        return user

    def delete_user(self, user_id: UUID, acting_user: User) -> None:
        if user_id == acting_user.id:
            raise SelfModificationError("You cannot delete your own account")

        user = self.get_user(user_id)
        username = user.username
        self.db.delete(user)
        self.db.commit()
        logger.info(f"User {username} deleted by {acting_user.username}")
