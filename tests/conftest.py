"""
Shared pytest fixtures: an in-memory database per test and API clients
logged in as a landowner and two harvesters.
"""
import os

os.environ["APP_ENV"] = "testing"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app import app, get_db
from database import init_db
from storage import Storage


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def storage(db):
    return Storage(db)


@pytest.fixture
def client(session_factory):
    """API client bound to the test database."""
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def register(client, username, user_type, password="orchard-pass"):
    resp = client.post("/api/auth/register", json={
        "username": username,
        "email": f"{username}@example.com",
        "password": password,
        "userType": user_type,
        "fullName": username.title(),
    })
    assert resp.status_code == 200, resp.text
    body = resp.json()
    return {"user": body["user"], "headers": {"Authorization": f"Bearer {body['token']}"}}


@pytest.fixture
def landowner(client):
    return register(client, "olive", "landowner")


@pytest.fixture
def harvester(client):
    return register(client, "pat", "harvester")


@pytest.fixture
def other_harvester(client):
    return register(client, "sam", "harvester")


def property_payload(**overrides):
    payload = {
        "title": "Backyard apple trees",
        "description": "Two mature trees",
        "fruitType": "Apples",
        "address": "12 Orchard Lane, Bristol",
        "latitude": 51.4545,
        "longitude": -2.5879,
        "harvestStartDate": "2026-09-01",
        "harvestEndDate": "2026-10-15",
        "ownerShare": 30,
        "harvesterShare": 70,
        "estimatedYield": 120,
        "yieldUnit": "kg",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def make_property(client, landowner):
    def _make(**overrides):
        resp = client.post("/api/properties", json=property_payload(**overrides),
                           headers=landowner["headers"])
        assert resp.status_code == 201, resp.text
        return resp.json()
    return _make


@pytest.fixture
def listed_property(make_property):
    return make_property()


@pytest.fixture
def application(client, harvester, listed_property):
    resp = client.post("/api/applications", json={
        "propertyId": listed_property["id"],
        "message": "I have ladders and a free weekend",
        "preferredDates": ["2026-09-05"],
        "hasEquipment": True,
    }, headers=harvester["headers"])
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.fixture
def deal(client, landowner, application):
    resp = client.post("/api/deals", json={"applicationId": application["id"]},
                       headers=landowner["headers"])
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.fixture
def completed_deal(client, landowner, deal):
    resp = client.patch(f"/api/deals/{deal['id']}", json={"status": "completed"},
                        headers=landowner["headers"])
    assert resp.status_code == 200, resp.text
    return resp.json()
