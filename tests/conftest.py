"""
Shared fixtures: every test gets its own SQLite file and upload directory.

The module-level ``repairdesk.main.app`` is built from the environment on
import, so point it at an in-memory database before anything imports it.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("NORMALIZE_ON_STARTUP", "false")

import pytest
from fastapi.testclient import TestClient

from repairdesk.config import Settings
from repairdesk.context import build_context
from repairdesk.db_models import TechnicianDB
from repairdesk.deps import hash_password, init_db
from repairdesk.main import create_app
from repairdesk.models import CustomerFields
from repairdesk.services import customers as customer_service

ADMIN_USER = "admin"
ADMIN_PASS = "admin123"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'repairdesk.db'}",
        jwt_secret="test-secret",
        admin_user=ADMIN_USER,
        admin_pass=ADMIN_PASS,
        public_base_url="http://testserver",
        upload_dir=tmp_path / "uploads",
        log_level="WARNING",
        cors_origins=["*"],
    )


@pytest.fixture
def ctx(settings):
    context = build_context(settings)
    init_db(context)
    yield context
    context.close()


@pytest.fixture
def db(ctx):
    with ctx.session_factory() as session:
        yield session


@pytest.fixture
def customer(db):
    return customer_service.find_or_create(
        db, "09171234567", CustomerFields(first_name="Ana", middle_name="P.", last_name="Reyes")
    )


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as test_client:
        yield test_client


def login(client, username: str, password: str) -> dict:
    resp = client.post("/api/tech/login", json={"username": username, "password": password})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['token']}"}


def add_technician(client, username: str, role: str, password: str = "secret-pass") -> dict:
    ctx = client.app.state.ctx
    with ctx.session_factory() as session:
        session.add(TechnicianDB(username=username, role=role, hashed_password=hash_password(password)))
        session.commit()
    return login(client, username, password)


@pytest.fixture
def admin_headers(client):
    return login(client, ADMIN_USER, ADMIN_PASS)


@pytest.fixture
def technician_headers(client):
    def _make(username: str, role: str = "tech") -> dict:
        return add_technician(client, username, role)

    return _make
