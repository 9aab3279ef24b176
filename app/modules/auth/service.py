import logging
from typing import Tuple

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import AuthenticationError, ValidationError
from app.modules.auth.models import User, UserRole
from app.modules.auth.schemas import UserCreate
from app.modules.auth.utils import (
    burn_password_check, create_access_token, verify_password
)
from app.modules.users.service import UserService

logger = logging.getLogger(__name__)


class AuthService:
    """
    Registro, login y cambio de contraseña.
    """

    def __init__(self, db: Session):
        self.db = db
        self.users = UserService(db)

    def register(self, user_data: UserCreate) -> Tuple[User, str]:
        """
        Crear nuevo usuario y devolver su token de acceso.

        Returns:
            Tuple[User, str]: Usuario creado y token
        """
        user = self.users.create_user(user_data)
        return user, create_access_token(user.id)

    def login(self, username_or_email: str, password: str) -> Tuple[User, str]:
        """
        Login by username or email.

        Unknown accounts, inactive accounts and wrong passwords all fail with the
        same message and comparable bcrypt work.
        """
        logger.info(f"Login attempt for {username_or_email}")
        user = self.users.find_by_login(username_or_email)

        if user is None:
            burn_password_check(password)
            raise AuthenticationError("Invalid credentials")

        if not verify_password(password, user.password):
            logger.info(f"Rejected login for {username_or_email}")
            raise AuthenticationError("Invalid credentials")

        logger.info(f"Login successful for {user.username}")
        return user, create_access_token(user.id)

    def change_password(self, user: User, current_password: str, new_password: str) -> None:
        if not verify_password(current_password, user.password):
            raise ValidationError("Current password is incorrect")

        self.users.set_password(user, new_password, label="New password")
        logger.info(f"Password changed for {user.username}")

    def ensure_demo_user(self) -> User:
        """Create the demo administrator when it does not exist yet."""
        existing = self.db.query(User).filter(User.username == settings.DEMO_USERNAME).first()
        if existing:
            logger.info("Demo user already exists")
            return existing

        user = self.users.create_user(UserCreate(
            username=settings.DEMO_USERNAME,
            email=settings.DEMO_EMAIL,
            password=settings.DEMO_PASSWORD,
            role=UserRole.ADMIN,
        ))
        logger.info(f"Demo user created: username={user.username}")
        return user
