from __future__ import annotations

from fastapi.testclient import TestClient

from fleetmon.main import app

client = TestClient(app)


def test_login_rejects_wrong_password():
    response = client.post("/v1/auth/login", json={"username": "admin", "password": "nope"})

    assert response.status_code == 401
    assert response.json()["success"] is False


def test_session_round_trip():
    assert client.get("/v1/auth/session").json() == {"authenticated": False, "username": None}

    token = client.post("/v1/auth/login", json={"username": "admin", "password": "s3cret"}).json()["token"]
    response = client.get("/v1/auth/session", headers={"Authorization": f"Bearer {token}"})

    assert response.json() == {"authenticated": True, "username": "admin"}
