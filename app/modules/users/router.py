"""
User administration endpoints (administrators only).
"""
from typing import List
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.core.config import settings
from app.common.schemas import MessageResponse
from app.dependencies.dbDependecies import db_dependency
from app.dependencies.userDependencies import admin_dependency
from app.modules.auth.schemas import (
    UserCreate, UserOut, UserUpdate, PasswordResetRequest, UserMutationResponse
)
from app.modules.users.service import UserService

users_router = APIRouter()


@users_router.get("/", response_model=List[UserOut])
def list_users(
    db: db_dependency,
    current_user: admin_dependency,
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
):
    return UserService(db).list_users(limit=limit, offset=offset)


@users_router.get("/{user_id}", response_model=UserOut)
def get_user(user_id: UUID, db: db_dependency, current_user: admin_dependency):
    return UserService(db).get_user(user_id)


@users_router.post("/", response_model=UserMutationResponse, status_code=status.HTTP_201_CREATED)
def create_user(user_data: UserCreate, db: db_dependency, current_user: admin_dependency):
    """
    Crear usuario con un rol explícito.
    """
    user = UserService(db).create_user(user_data)
    return UserMutationResponse(message="User created successfully", user=UserOut.model_validate(user))


@users_router.put("/{user_id}", response_model=UserMutationResponse)
def update_user(user_id: UUID, user_update: UserUpdate, db: db_dependency, current_user: admin_dependency):
    user = UserService(db).update_user(user_id, user_update, acting_user=current_user)
    return UserMutationResponse(message="User updated successfully", user=UserOut.model_validate(user))


@users_router.put("/{user_id}/reset-password", response_model=MessageResponse)
def reset_password(user_id: UUID, data: PasswordResetRequest, db: db_dependency, current_user: admin_dependency):
    UserService(db).reset_password(user_id, data.new_password)
    return MessageResponse(message="Password reset successfully")


@users_router.delete("/{user_id}", response_model=MessageResponse)
def delete_user(user_id: UUID, db: db_dependency, current_user: admin_dependency):
    UserService(db).delete_user(user_id, acting_user=current_user)
    return MessageResponse(message="User deleted successfully")
