"""
Shared fixtures: an in-memory SQLite database per test and an API client
bound to it.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from tripsplit.db.base import Base
from tripsplit.db.session import get_db
from tripsplit.main import app
import tripsplit.models  # noqa: F401


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def signup_and_login(client, username, password="testpassword123"):
    """Register a user and return (user_id, auth headers)."""
    response = client.post(
        "/api/auth/signup",
        json={"username": username, "email": f"{username}@example.com", "password": password}
    )
    assert response.status_code == 201, response.text
    user_id = response.json()["id"]

    response = client.post("/api/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    token = response.json()["access_token"]
    return user_id, {"Authorization": f"Bearer {token}"}


def create_trip(client, headers, name="Lisbon", base_currency="USD"):
    response = client.post(
        "/api/trips",
        json={
            "name": name,
            "start_date": "2024-05-01",
            "end_date": "2024-05-10",
            "base_currency": base_currency,
        },
        headers=headers
    )
    assert response.status_code == 201, response.text
    return response.json()["id"]


def join_trip(client, trip_id, owner_headers, username, headers):
    response = client.post(
        f"/api/trips/{trip_id}/participants",
        json={"username": username, "role": "editor"},
        headers=owner_headers
    )
    assert response.status_code == 201, response.text
    response = client.post(
        f"/api/trips/{trip_id}/participants/accept",
        json={"accept": True},
        headers=headers
    )
    assert response.status_code == 200, response.text


@pytest.fixture
def trip_group(client):
    """A trip owned by alice with bob and carol as accepted members."""
    alice_id, alice = signup_and_login(client, "alice")
    bob_id, bob = signup_and_login(client, "bob")
    carol_id, carol = signup_and_login(client, "carol")
    trip_id = create_trip(client, alice)
    join_trip(client, trip_id, alice, "bob", bob)
    join_trip(client, trip_id, alice, "carol", carol)
    return {
        "trip_id": trip_id,
        "ids": {"alice": alice_id, "bob": bob_id, "carol": carol_id},
        "headers": {"alice": alice, "bob": bob, "carol": carol},
    }


@pytest.fixture
def register(client):
    def _register(username, password="testpassword123"):
        return signup_and_login(client, username, password)
    return _register


@pytest.fixture
def new_trip(client):
    def _new_trip(headers, name="Lisbon", base_currency="USD"):
        return create_trip(client, headers, name, base_currency)
    return _new_trip
