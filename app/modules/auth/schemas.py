from pydantic import AliasChoices, EmailStr, Field, field_validator
from typing import Optional
from uuid import UUID
from datetime import datetime

from app.common.schemas import CamelModel, RequestModel
from app.modules.auth.models import UserRole

# User schemas
class UserCreate(RequestModel):
    username: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=1)
    role: UserRole = UserRole.USER

    @field_validator("username", "email", mode="before")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v


class UserLogin(RequestModel):
    username: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("username", "usernameOrEmail", "email"),
        description="Nombre de usuario o email",
    )
    password: str = Field(..., min_length=1)

    @field_validator("username", mode="before")
    @classmethod
    def strip_username(cls, v):
        return v.strip() if isinstance(v, str) else v


class UserSummary(CamelModel):
    """User fields returned alongside a token."""
    id: UUID
    username: str
    email: str
    role: UserRole


class UserOut(UserSummary):
    is_active: bool
    created_at: datetime
    updated_at: datetime


# Token schemas
class TokenResponse(CamelModel):
    message: str
    token: str
    user: UserSummary


class CurrentUserResponse(CamelModel):
    user: UserSummary


# Password change schema (for authenticated users)
class PasswordChangeRequest(RequestModel):
    current_password: str = Field(..., min_length=1, description="Contraseña actual")
    new_password: str = Field(..., min_length=1, description="Nueva contraseña")


class UserUpdate(RequestModel):
    """Admin update of a user account. Passwords change through reset-password."""
    username: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None

    @field_validator("username", "email", mode="before")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v


class PasswordResetRequest(RequestModel):
    new_password: str = Field(..., min_length=1)


class UserMutationResponse(CamelModel):
    message: str
    user: UserOut
