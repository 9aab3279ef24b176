from fastapi import APIRouter, status

from app.dependencies.dbDependecies import db_dependency
from app.dependencies.userDependencies import user_dependency
from app.common.schemas import MessageResponse
from app.modules.auth.service import AuthService
from app.modules.auth.schemas import (
    UserCreate, UserLogin, UserSummary, TokenResponse, CurrentUserResponse,
    PasswordChangeRequest
)

auth_router = APIRouter()


@auth_router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(user_data: UserCreate, db: db_dependency):
    """
    Registrar nuevo usuario y devolver token de acceso.
    """
    auth_service = AuthService(db)
    user, token = auth_service.register(user_data)
    return TokenResponse(
        message="User registered successfully",
        token=token,
        user=UserSummary.model_validate(user),
    )


@auth_router.post("/login", response_model=TokenResponse)
def login(credentials: UserLogin, db: db_dependency):
    """
    Login with username or email.
    """
    auth_service = AuthService(db)
    user, token = auth_service.login(credentials.username, credentials.password)
    return TokenResponse(
        message="Login successful",
        token=token,
        user=UserSummary.model_validate(user),
    )


@auth_router.get("/me", response_model=CurrentUserResponse)
def get_current_user_info(current_user: user_dependency):
    return CurrentUserResponse(user=UserSummary.model_validate(current_user))


@auth_router.post("/logout", response_model=MessageResponse)
def logout(current_user: user_dependency):
    # Tokens are stateless; the client discards its copy
    return MessageResponse(message="Logout successful")


@auth_router.put("/change-password", response_model=MessageResponse)
def change_password(data: PasswordChangeRequest, current_user: user_dependency, db: db_dependency):
    """
    Cambiar contraseña del usuario autenticado.
    """
    AuthService(db).change_password(current_user, data.current_password, data.new_password)
    return MessageResponse(message="Password changed successfully")
