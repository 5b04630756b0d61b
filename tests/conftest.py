import os
import pathlib
import sys
import tempfile
import uuid

# Environment needed before importing application modules
_fd, _DB_PATH = tempfile.mkstemp(prefix="test_db_", suffix=".sqlite")
os.close(_fd)
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_PATH}"
os.environ.setdefault("JWT_SECRET_KEY", "testsecret")
os.environ.setdefault("JWT_ALGORITHM", "HS256")
os.environ.setdefault("JWT_ACCESS_TOKEN_EXPIRE_MINUTES", "30")
os.environ.setdefault("JWT_REFRESH_TOKEN_EXPIRE_MINUTES", "1440")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("CLINIC_TIMEZONE", "UTC")
os.environ.pop("LOGFIRE_TOKEN", None)

# Ensure project root on sys.path for application imports
PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from main import app as fastapi_app
from controllers.roster import invalidate_cache
from create_admin import create_admin
from database.database import Base, engine, get_db

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "adminpass"


@pytest.fixture(scope="function")
def db_session():
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    invalidate_cache()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="session")
def app():
    return fastapi_app


@pytest.fixture(autouse=True)
def _override_dependency(app, db_session):
    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    yield
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture()
def client(app):
    with TestClient(app) as c:
        yield c


def _uniq(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:8]}"


class Api:
    """Registers users and logs them in through the HTTP API."""

    def __init__(self, client):
        self.client = client
        self._numbers = iter(range(1, 10_000))
        # Logging in again deactivates the previous token, so reuse it
        self._headers = {}

    def register(self, *, email=None, number=None, name=None, password="password123"):
        email = email or f"{_uniq('student')}@example.com"
        number = number or f"2099{next(self._numbers):03d}"
        payload = {
            "email": email,
            "password": password,
            "number": number,
            "name": name or f"Student {number}",
        }
        r = self.client.post("/api/v1/auth/register", json=payload)
        assert r.status_code == 200, r.text
        return {**payload, "user_id": r.json()["user_id"]}

    def login(self, email, password="password123"):
        r = self.client.post(
            "/api/v1/auth/login", json={"email": email, "password": password}
        )
        assert r.status_code == 200, r.text
        return r.json()

    def headers(self, email, password="password123"):
        if email not in self._headers:
            tokens = self.login(email, password)
            self._headers[email] = {"Authorization": f"Bearer {tokens['access_token']}"}
        return self._headers[email]

    def forget(self, email):
        self._headers.pop(email, None)

    def student(self, **kwargs):
        user = self.register(**kwargs)
        return self.headers(user["email"], user["password"]), user

    def admin(self):
        if ADMIN_EMAIL not in self._headers:
            create_admin(ADMIN_EMAIL, ADMIN_PASSWORD)
        return self.headers(ADMIN_EMAIL, ADMIN_PASSWORD)

    def account(self, role, *, name, number=None):
        """Create a predefined account (resident, admin, student) via an admin."""
        email = f"{_uniq(role)}@example.com"
        r = self.client.post(
            "/api/v1/auth/predefined-account",
            json={
                "email": email,
                "password": "password123",
                "role": role,
                "number": number,
                "name": name,
            },
            headers=self.admin(),
        )
        assert r.status_code == 200, r.text
        return self.headers(email), r.json()["user_id"]

    def create_case(self, headers, **overrides):
        payload = {
            "datetime": "2024-03-05T10:30:00",
            "category": "fixed",
            "assigned_resident": "Dr. Han",
            "patient_number": _uniq("P"),
            "patient_name": "Hong Gildong",
        }
        payload.update(overrides)
        return self.client.post("/api/v1/cases/", json=payload, headers=headers)


@pytest.fixture()
def api(client):
    return Api(client)
