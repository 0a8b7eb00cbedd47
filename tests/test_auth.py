"""
Registration, login, bearer tokens and profile edits.
"""
import pytest
from sqlalchemy import select, func

import lifecycle
from errors import Conflict
from models import User
from schemas import RegisterUser
from security import issue_token
from conftest import register


def _user_count(db):
    return db.scalar(select(func.count()).select_from(User))


class TestRegistration:

    def test_register_returns_user_without_password(self, client):
        resp = client.post("/api/auth/register", json={
            "username": "olive",
            "email": "olive@example.com",
            "password": "orchard-pass",
            "userType": "landowner",
            "fullName": "Olive Orchard",
        })
        assert resp.status_code == 200
        body = resp.json()
        assert body["token"]
        assert body["user"]["userType"] == "landowner"
        assert body["user"]["rating"] == 0
        assert body["user"]["totalRatings"] == 0
        assert "password" not in body["user"]
        assert "passwordHash" not in body["user"]

    def test_duplicate_email_rejected_without_second_record(self, client, db, landowner):
        resp = client.post("/api/auth/register", json={
            "username": "someone-else",
            "email": "olive@example.com",
            "password": "another-pass",
            "userType": "harvester",
            "fullName": "Someone Else",
        })
        assert resp.status_code == 400
        assert resp.json()["message"] == "User already exists with this email"
        assert _user_count(db) == 1

    def test_duplicate_username_rejected(self, client, db, landowner):
        resp = client.post("/api/auth/register", json={
            "username": "olive",
            "email": "other@example.com",
            "password": "another-pass",
            "userType": "harvester",
            "fullName": "Other",
        })
        assert resp.status_code == 400
        assert _user_count(db) == 1

    def test_duplicate_email_differing_in_case_rejected(self, client, db, landowner):
        resp = client.post("/api/auth/register", json={
            "username": "olive2",
            "email": "OLIVE@Example.com",
            "password": "another-pass",
            "userType": "harvester",
            "fullName": "Olive Again",
        })
        assert resp.status_code == 400
        assert _user_count(db) == 1

    def test_unique_constraint_race_is_a_conflict(self, storage, db, landowner, monkeypatch):
        # a concurrent request registered the same address after our lookups ran
        monkeypatch.setattr(storage, "get_user_by_email", lambda email: None)
        monkeypatch.setattr(storage, "get_user_by_username", lambda username: None)
        with pytest.raises(Conflict):
            lifecycle.register_user(storage, RegisterUser(
                username="olive", email="olive@example.com", password="orchard-pass",
                user_type="landowner", full_name="Olive"))
        assert _user_count(db) == 1

    def test_invalid_body_is_a_400_with_errors(self, client):
        resp = client.post("/api/auth/register", json={
            "username": "olive",
            "email": "not-an-email",
            "password": "orchard-pass",
            "userType": "gardener",
            "fullName": "Olive",
        })
        assert resp.status_code == 400
        body = resp.json()
        assert body["message"] == "Invalid request data"
        fields = {e["loc"][-1] for e in body["errors"]}
        assert {"email", "userType"} <= fields

    def test_password_is_stored_salted(self, client, db):
        register(client, "first", "harvester", password="same-secret")
        register(client, "second", "harvester", password="same-secret")
        hashes = db.scalars(select(User.password_hash)).all()
        assert len(set(hashes)) == 2
        assert all("same-secret" not in h for h in hashes)


class TestLogin:

    def test_login_with_matching_password(self, client, landowner):
        resp = client.post("/api/auth/login", json={"email": "olive@example.com", "password": "orchard-pass"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["user"]["id"] == landowner["user"]["id"]
        assert "password" not in body["user"]

    def test_wrong_password_is_401_without_user(self, client, landowner):
        resp = client.post("/api/auth/login", json={"email": "olive@example.com", "password": "Orchard-pass"})
        assert resp.status_code == 401
        assert "user" not in resp.json()

    def test_mixed_case_email_logs_in(self, client):
        resp = client.post("/api/auth/register", json={
            "username": "casey",
            "email": "Casey@Example.COM",
            "password": "orchard-pass",
            "userType": "harvester",
            "fullName": "Casey",
        })
        assert resp.status_code == 200
        for email in ("Casey@Example.COM", "casey@example.com"):
            resp = client.post("/api/auth/login", json={"email": email, "password": "orchard-pass"})
            assert resp.status_code == 200, email
            assert resp.json()["user"]["username"] == "casey"

    def test_unknown_email_is_401(self, client, landowner):
        resp = client.post("/api/auth/login", json={"email": "nobody@example.com", "password": "orchard-pass"})
        assert resp.status_code == 401
        assert resp.json()["message"] == "Invalid credentials"


class TestTokens:

    def test_me_requires_a_token(self, client):
        assert client.get("/api/auth/me").status_code == 401

    def test_me_rejects_tampered_token(self, client, landowner):
        token = landowner["headers"]["Authorization"] + "x"
        assert client.get("/api/auth/me", headers={"Authorization": token}).status_code == 401

    def test_me_rejects_expired_token(self, client, landowner):
        token = issue_token(landowner["user"]["id"], ttl_minutes=-1)
        resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
        assert resp.json()["message"] == "Token expired"

    def test_me_returns_token_owner(self, client, harvester):
        resp = client.get("/api/auth/me", headers=harvester["headers"])
        assert resp.status_code == 200
        assert resp.json()["username"] == "pat"


class TestUsers:

    def test_get_user_strips_password(self, client, landowner):
        resp = client.get(f"/api/users/{landowner['user']['id']}")
        assert resp.status_code == 200
        assert resp.json()["fullName"] == "Olive"
        assert "password" not in resp.json()

    def test_get_unknown_user_is_404(self, client):
        resp = client.get("/api/users/999")
        assert resp.status_code == 404
        assert resp.json()["message"] == "User not found"

    def test_edit_own_profile(self, client, landowner):
        resp = client.patch(f"/api/users/{landowner['user']['id']}",
                            json={"bio": "Three apple trees", "phone": "0117 000 000"},
                            headers=landowner["headers"])
        assert resp.status_code == 200
        assert resp.json()["bio"] == "Three apple trees"

    def test_cannot_edit_someone_else(self, client, landowner, harvester):
        resp = client.patch(f"/api/users/{landowner['user']['id']}", json={"bio": "hacked"},
                            headers=harvester["headers"])
        assert resp.status_code == 403

    def test_cannot_take_an_existing_email(self, client, landowner, harvester):
        resp = client.patch(f"/api/users/{harvester['user']['id']}", json={"email": "olive@example.com"},
                            headers=harvester["headers"])
        assert resp.status_code == 400

    def test_required_fields_cannot_be_nulled(self, client, landowner):
        url = f"/api/users/{landowner['user']['id']}"
        for field in ("fullName", "email", "username"):
            resp = client.patch(url, json={field: None}, headers=landowner["headers"])
            assert resp.status_code == 400, field
            assert resp.json()["message"] == f"{field} cannot be null"
        assert client.get(url).json()["fullName"] == "Olive"

    def test_optional_fields_can_be_cleared(self, client, landowner):
        url = f"/api/users/{landowner['user']['id']}"
        client.patch(url, json={"bio": "Three apple trees"}, headers=landowner["headers"])
        resp = client.patch(url, json={"bio": None}, headers=landowner["headers"])
        assert resp.status_code == 200
        assert resp.json()["bio"] is None

    def test_rating_fields_are_not_editable(self, client, harvester):
        resp = client.patch(f"/api/users/{harvester['user']['id']}", json={"rating": 5},
                            headers=harvester["headers"])
        assert resp.status_code == 400


def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok"}
