"""
Tests para la administración de usuarios (solo administradores).
"""

from uuid import uuid4

from app.modules.auth.models import User, UserRole


class TestUserAccess:

    def test_requires_token(self, client):
        assert client.get("/users/").status_code == 401

    def test_regular_user_forbidden(self, client, user_headers):
        response = client.get("/users/", headers=user_headers)
        assert response.status_code == 403
        assert response.json()["message"] == "Insufficient permissions"

    def test_admin_lists_users(self, client, admin_headers, regular_user):
        response = client.get("/users/", headers=admin_headers)
        assert response.status_code == 200
        usernames = {user["username"] for user in response.json()}
        assert usernames == {"admin", "vendeur"}
        assert all("password" not in user for user in response.json())

    def test_list_pagination(self, client, admin_headers, make_user):
        for index in range(3):
            make_user(f"user{index}")
        response = client.get("/users/?limit=2&offset=0", headers=admin_headers)
        assert response.status_code == 200
        assert len(response.json()) == 2


class TestUserCrud:

    def test_create_user_with_role(self, client, admin_headers):
        response = client.post("/users/", headers=admin_headers, json={
            "username": "gerant", "email": "gerant@example.com", "password": "fromage1", "role": "admin",
        })
        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "User created successfully"
        assert body["user"]["role"] == "admin"
        assert body["user"]["isActive"] is True

    def test_get_user(self, client, admin_headers, regular_user):
        response = client.get(f"/users/{regular_user.id}", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["email"] == "vendeur@example.com"

    def test_get_missing_user(self, client, admin_headers):
        response = client.get(f"/users/{uuid4()}", headers=admin_headers)
        assert response.status_code == 404
        assert response.json()["message"] == "User not found"

    def test_update_user(self, client, admin_headers, regular_user):
        response = client.put(f"/users/{regular_user.id}", headers=admin_headers, json={
            "role": "admin", "isActive": False,
        })
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "User updated successfully"
        assert body["user"]["role"] == "admin"
        assert body["user"]["isActive"] is False

    def test_update_to_taken_email(self, client, admin_headers, admin_user, regular_user):
        response = client.put(f"/users/{regular_user.id}", headers=admin_headers, json={
            "email": admin_user.email,
        })
        assert response.status_code == 400
        assert response.json()["message"] == "Email already registered"

    def test_empty_update(self, client, admin_headers, regular_user):
        response = client.put(f"/users/{regular_user.id}", headers=admin_headers, json={})
        assert response.status_code == 400
        assert response.json()["message"] == "No valid fields to update"

    def test_cannot_deactivate_self(self, client, admin_headers, admin_user):
        response = client.put(f"/users/{admin_user.id}", headers=admin_headers, json={"isActive": False})
        assert response.status_code == 400
        assert response.json()["message"] == "You cannot deactivate your own account"

    def test_reset_password(self, client, admin_headers, regular_user):
        response = client.put(f"/users/{regular_user.id}/reset-password", headers=admin_headers, json={
            "newPassword": "remis123",
        })
        assert response.status_code == 200
        assert response.json()["message"] == "Password reset successfully"

        login = client.post("/auth/login", json={"username": "vendeur", "password": "remis123"})
        assert login.status_code == 200

    def test_reset_password_too_short(self, client, admin_headers, regular_user):
        response = client.put(f"/users/{regular_user.id}/reset-password", headers=admin_headers, json={
            "newPassword": "12",
        })
        assert response.status_code == 400


class TestUserDelete:

    def test_delete_user(self, client, admin_headers, regular_user, db_session):
        user_id = regular_user.id
        response = client.delete(f"/users/{user_id}", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["message"] == "User deleted successfully"

        db_session.expire_all()
        assert db_session.get(User, user_id) is None

    def test_cannot_delete_self(self, client, admin_headers, admin_user, db_session):
        response = client.delete(f"/users/{admin_user.id}", headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["message"] == "You cannot delete your own account"

        db_session.expire_all()
        remaining = db_session.get(User, admin_user.id)
        assert remaining is not None
        assert remaining.role == UserRole.ADMIN

    def test_deleted_user_token_stops_working(self, client, admin_headers, regular_user, user_headers):
        client.delete(f"/users/{regular_user.id}", headers=admin_headers)
        assert client.get("/auth/me", headers=user_headers).status_code == 401
