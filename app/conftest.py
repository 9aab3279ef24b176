"""
Shared pytest fixtures.

Every test gets its own SQLite database file, the application wired to it and
a renderer that records calls instead of producing PDFs.
"""
import os

# Settings are read at import time
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["APP_SECRET_STRING"] = "test-secret-key"
os.environ["DB_CREATE_TABLES"] = "true"
os.environ["DEMO_USER_ENABLED"] = "false"
os.environ["ISSUER_LOGO_URL"] = ""

import pytest
from fastapi.testclient import TestClient

from app.database.database import Database
from app.main import create_app
from app.modules.auth.models import UserRole
from app.modules.auth.schemas import UserCreate
from app.modules.auth.utils import create_access_token
from app.modules.invoices.rendering import RenderedInvoice, invoice_filename
from app.modules.users.service import UserService

TEST_PASSWORD = "secret123"


class RecordingRenderer:
    """Stands in for InvoiceRenderer and remembers what it was asked to render."""

    def __init__(self):
        self.calls = []

    def render(self, invoice, printed_by, printed_at=None):
        self.calls.append((invoice.invoice_number, printed_by))
        return RenderedInvoice(
            content=b"%PDF-1.4 test document",
            filename=invoice_filename(invoice.invoice_number),
        )


@pytest.fixture
def database(tmp_path):
    db = Database(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
    )
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def db_session(database):
    session = database.session()
    yield session
    session.close()


@pytest.fixture
def fake_renderer():
    return RecordingRenderer()


@pytest.fixture
def client(database, fake_renderer):
    app = create_app(database=database, renderer=fake_renderer)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_user(db_session):
    """Crear usuarios directamente en la base de datos."""
    def _make_user(username, role=UserRole.USER, password=TEST_PASSWORD, email=None):
        return UserService(db_session).create_user(UserCreate(
            username=username,
            email=email or f"{username}@example.com",
            password=password,
            role=role,
        ))
    return _make_user


def bearer(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
def admin_user(make_user):
    return make_user("admin", role=UserRole.ADMIN)


@pytest.fixture
def regular_user(make_user):
    return make_user("vendeur", role=UserRole.USER)


@pytest.fixture
def admin_headers(admin_user):
    return bearer(admin_user)


@pytest.fixture
def user_headers(regular_user):
    return bearer(regular_user)


@pytest.fixture
def headers_for():
    return bearer
