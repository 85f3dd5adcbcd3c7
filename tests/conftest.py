"""
Shared fixtures.

The app runs against an in-memory SQLite database that is created fresh for
every test and injected by overriding the ``get_db`` dependency. Tokens are
minted locally with the same secret the app verifies with.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["APP_ENV"] = "test"

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from auth import create_access_token
from config import get_settings
from database import Base, get_db
from main import app

get_settings.cache_clear()


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def auth_headers(auth_id, display_name="Test User", email=None, **extra):
    payload = {"id": auth_id, "displayName": display_name, "email": email}
    payload.update(extra)
    return {"Authorization": f"Bearer {create_access_token(payload)}"}


@pytest.fixture
def make_household(client):
    """Create a couple with a linked husband and wife; returns their ids and headers."""

    def _make(prefix="home"):
        response = client.post("/api/couples/anonymous", json={"name": f"{prefix} couple"})
        assert response.status_code == 201
        couple_id = response.json()["data"]["id"]

        members = {}
        for role, name in (("husband", "Taro"), ("wife", "Hanako")):
            headers = auth_headers(
                f"{prefix}-{role}", display_name=name, email=f"{role}@{prefix}.test"
            )
            response = client.post(
                "/api/users/from-auth",
                json={"role": role, "coupleId": couple_id},
                headers=headers,
            )
            assert response.status_code == 201, response.json()
            members[role] = (response.json()["data"]["id"], headers)

        return SimpleNamespace(
            couple_id=couple_id,
            husband_id=members["husband"][0],
            husband_headers=members["husband"][1],
            wife_id=members["wife"][0],
            wife_headers=members["wife"][1],
        )

    return _make


@pytest.fixture
def household(make_household):
    return make_household()


@pytest.fixture
def add_expense(client, household):
    """Post an expense for the default household and return its JSON."""

    def _add(amount=1000, payer="husband", year=2024, month=1, **fields):
        payer_id = household.husband_id if payer == "husband" else household.wife_id
        body = {
            "description": fields.pop("description", "Groceries"),
            "amount": amount,
            "payerId": payer_id,
            "expenseYear": year,
            "expenseMonth": month,
        }
        body.update(fields)
        response = client.post(
            "/api/expenses", json=body, headers=household.husband_headers
        )
        assert response.status_code == 201, response.json()
        return response.json()["data"]

    return _add
