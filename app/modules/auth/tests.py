"""
Tests para el módulo de autenticación

Cubren:
- Registro y login (por usuario o email)
- Mensajes idénticos para usuario desconocido y contraseña incorrecta
- Validación del token (ausente, inválido, expirado, usuario borrado)
- Cambio de contraseña
- Tabla de capacidades por rol
"""

from datetime import timedelta

import pytest

from app.core.exceptions import AuthenticationError
from app.modules.auth.dependencies import Capability, has_capability
from app.modules.auth.models import User, UserRole
from app.modules.auth.service import AuthService
from app.modules.auth.utils import (
    create_access_token, hash_password, verify_password, verify_token
)


# ===== TESTS DE UTILIDADES =====

class TestPasswordHashing:

    def test_hash_is_not_plain_text(self):
        hashed = hash_password("fromage1")
        assert hashed != "fromage1"
        assert verify_password("fromage1", hashed)

    def test_wrong_password_does_not_verify(self):
        assert not verify_password("other", hash_password("fromage1"))

    def test_empty_hash_never_verifies(self):
        assert not verify_password("fromage1", "")


class TestTokens:

    def test_token_round_trip(self, regular_user):
        payload = verify_token(create_access_token(regular_user.id))
        assert payload["sub"] == str(regular_user.id)
        assert payload["type"] == "access"

    def test_expired_token_rejected(self, regular_user):
        token = create_access_token(regular_user.id, expires_delta=timedelta(seconds=-10))
        with pytest.raises(AuthenticationError) as exc:
            verify_token(token)
        assert exc.value.message == "Token expired"

    def test_garbage_token_rejected(self):
        with pytest.raises(AuthenticationError) as exc:
            verify_token("not-a-jwt")
        assert exc.value.message == "Invalid token"


class TestCapabilities:

    def test_admin_holds_every_capability(self):
        assert all(has_capability(UserRole.ADMIN, capability) for capability in Capability)

    def test_user_cannot_manage_users(self):
        assert not has_capability(UserRole.USER, Capability.MANAGE_USERS)
        assert has_capability(UserRole.USER, Capability.MANAGE_INVOICES)
        assert has_capability(UserRole.USER, Capability.RENDER_INVOICES)
        assert has_capability(UserRole.USER, Capability.MANAGE_CLIENTS)


# ===== TESTS DE REGISTRO =====

class TestRegister:

    def test_register_returns_token_and_user(self, client):
        response = client.post("/auth/register", json={
            "username": "  amine ",
            "email": "Amine@Example.com",
            "password": "fromage1",
        })
        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "User registered successfully"
        assert body["token"]
        assert body["user"]["username"] == "amine"
        assert body["user"]["email"] == "amine@example.com"
        assert body["user"]["role"] == "user"
        assert "password" not in body["user"]

        me = client.get("/auth/me", headers={"Authorization": f"Bearer {body['token']}"})
        assert me.status_code == 200
        assert me.json()["user"]["username"] == "amine"

    def test_password_is_stored_hashed(self, client, db_session):
        client.post("/auth/register", json={
            "username": "amine", "email": "amine@example.com", "password": "fromage1",
        })
        user = db_session.query(User).filter(User.username == "amine").one()
        assert user.password != "fromage1"
        assert verify_password("fromage1", user.password)

    def test_duplicate_username(self, client, regular_user):
        response = client.post("/auth/register", json={
            "username": regular_user.username, "email": "new@example.com", "password": "fromage1",
        })
        assert response.status_code == 400
        assert response.json()["message"] == "Username already taken"

    def test_duplicate_email(self, client, regular_user):
        response = client.post("/auth/register", json={
            "username": "someone", "email": regular_user.email, "password": "fromage1",
        })
        assert response.status_code == 400
        assert response.json()["message"] == "Email already registered"

    def test_short_password(self, client):
        response = client.post("/auth/register", json={
            "username": "amine", "email": "amine@example.com", "password": "abc",
        })
        assert response.status_code == 400
        assert response.json()["message"] == "Password must be at least 6 characters long"

    def test_unknown_field_rejected(self, client):
        response = client.post("/auth/register", json={
            "username": "amine", "email": "amine@example.com", "password": "fromage1",
            "isAdmin": True,
        })
        assert response.status_code == 400
        assert "message" in response.json()


# ===== TESTS DE LOGIN =====

class TestLogin:

    def test_login_with_username(self, client, regular_user):
        response = client.post("/auth/login", json={"username": "vendeur", "password": "secret123"})
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Login successful"
        assert body["user"]["id"] == str(regular_user.id)
        assert verify_token(body["token"])["sub"] == str(regular_user.id)

    def test_login_with_email(self, client, regular_user):
        response = client.post("/auth/login", json={
            "usernameOrEmail": "VENDEUR@example.com", "password": "secret123",
        })
        assert response.status_code == 200
        assert response.json()["user"]["username"] == "vendeur"

    def test_wrong_password_matches_unknown_user(self, client, regular_user):
        wrong_password = client.post("/auth/login", json={"username": "vendeur", "password": "wrong-pass"})
        unknown_user = client.post("/auth/login", json={"username": "nobody", "password": "wrong-pass"})

        assert wrong_password.status_code == 401
        assert unknown_user.status_code == 401
        assert wrong_password.json() == unknown_user.json() == {"message": "Invalid credentials"}

    def test_inactive_user_cannot_login(self, client, regular_user, db_session):
        regular_user.is_active = False
        db_session.commit()

        response = client.post("/auth/login", json={"username": "vendeur", "password": "secret123"})
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid credentials"


# ===== TESTS DEL TOKEN EN PETICIONES =====

class TestBearerToken:

    def test_missing_token(self, client):
        response = client.get("/auth/me")
        assert response.status_code == 401
        assert response.json()["message"] == "Access token required"

    def test_invalid_token(self, client):
        response = client.get("/auth/me", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid token"

    def test_expired_token(self, client, regular_user):
        token = create_access_token(regular_user.id, expires_delta=timedelta(seconds=-10))
        response = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json()["message"] == "Token expired"

    def test_token_of_deleted_user(self, client, regular_user, user_headers, db_session):
        db_session.delete(regular_user)
        db_session.commit()

        response = client.get("/auth/me", headers=user_headers)
        assert response.status_code == 401

    def test_token_of_deactivated_user(self, client, regular_user, user_headers, db_session):
        regular_user.is_active = False
        db_session.commit()

        response = client.get("/auth/me", headers=user_headers)
        assert response.status_code == 401

    def test_logout(self, client, user_headers):
        response = client.post("/auth/logout", headers=user_headers)
        assert response.status_code == 200
        assert response.json() == {"message": "Logout successful"}


# ===== TESTS DE CAMBIO DE CONTRASEÑA =====

class TestChangePassword:

    def test_change_password(self, client, regular_user, user_headers):
        response = client.put("/auth/change-password", headers=user_headers, json={
            "currentPassword": "secret123", "newPassword": "nouveau99",
        })
        assert response.status_code == 200
        assert response.json()["message"] == "Password changed successfully"

        old = client.post("/auth/login", json={"username": "vendeur", "password": "secret123"})
        new = client.post("/auth/login", json={"username": "vendeur", "password": "nouveau99"})
        assert old.status_code == 401
        assert new.status_code == 200

    def test_wrong_current_password(self, client, user_headers):
        response = client.put("/auth/change-password", headers=user_headers, json={
            "currentPassword": "bad-guess", "newPassword": "nouveau99",
        })
        assert response.status_code == 400
        assert response.json()["message"] == "Current password is incorrect"

    def test_new_password_too_short(self, client, user_headers):
        response = client.put("/auth/change-password", headers=user_headers, json={
            "currentPassword": "secret123", "newPassword": "123",
        })
        assert response.status_code == 400
        assert response.json()["message"] == "New password must be at least 6 characters long"

    def test_requires_token(self, client):
        response = client.put("/auth/change-password", json={
            "currentPassword": "secret123", "newPassword": "nouveau99",
        })
        assert response.status_code == 401


# ===== TESTS DEL USUARIO DEMO =====

class TestDemoUser:

    def test_demo_user_created_once(self, db_session):
        service = AuthService(db_session)
        first = service.ensure_demo_user()
        second = service.ensure_demo_user()

        assert first.id == second.id
        assert first.role == UserRole.ADMIN
        assert db_session.query(User).filter(User.username == "demo").count() == 1

    def test_demo_user_can_login(self, db_session):
        AuthService(db_session).ensure_demo_user()
        user, token = AuthService(db_session).login("demo", "demo123")
        assert user.username == "demo"
        assert token
