from datetime import datetime, timedelta, timezone

import pytest

import auth


@pytest.fixture
def demo_mode(monkeypatch):
    monkeypatch.setattr(auth, "DEMO_MODE", True)


def _login(client, email="linus@example.com", name=None):
    code = client.post("/api/auth/request-code", json={"email": email}).json()["debug_code"]
    body = {"email": email, "code": code}
    if name:
        body["name"] = name
    resp = client.post("/api/auth/verify", json=body)
    assert resp.status_code == 200, resp.text
    return resp.json()


def test_request_code_hides_code_outside_demo_mode(test_client):
    resp = test_client.post("/api/auth/request-code", json={"email": "linus@example.com"})
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "message": "Code sent"}


def test_request_code_rejects_bad_email(test_client):
    resp = test_client.post("/api/auth/request-code", json={"email": "not-an-email"})
    assert resp.status_code == 400
    assert resp.json()["errors"][0]["param"] == "email"


def test_login_creates_user_and_session(test_client, db, demo_mode):
    data = _login(test_client, name="Linus")

    assert data["user"]["name"] == "Linus"
    assert data["user"]["avatar"].startswith("https://gravatar.com/avatar/")
    assert db["user"].count_documents({"email": "linus@example.com"}) == 1
    assert db["session"].count_documents({"token": data["token"]}) == 1


def test_second_login_reuses_user(test_client, db, demo_mode):
    first = _login(test_client)
    second = _login(test_client)

    assert first["user"]["id"] == second["user"]["id"]
    assert first["user"]["name"] == "linus"
    assert first["token"] != second["token"]


def test_code_is_single_use(test_client, demo_mode):
    email = "linus@example.com"
    code = test_client.post("/api/auth/request-code", json={"email": email}).json()["debug_code"]

    assert test_client.post("/api/auth/verify", json={"email": email, "code": code}).status_code == 200
    assert test_client.post("/api/auth/verify", json={"email": email, "code": code}).status_code == 401


def test_wrong_code_is_rejected(test_client, demo_mode):
    code = test_client.post("/api/auth/request-code", json={"email": "a@example.com"}).json()["debug_code"]
    wrong = "000000" if code != "000000" else "111111"
    resp = test_client.post("/api/auth/verify", json={"email": "a@example.com", "code": wrong})
    assert resp.status_code == 401
    assert resp.json() == {"msg": "Invalid or expired code"}


def test_session_token_authorizes_profile_routes(test_client, demo_mode):
    token = _login(test_client)["token"]
    headers = {"Authorization": f"Bearer {token}"}

    resp = test_client.post("/api/profile", json={"status": "Kernel hacker"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["user"]["name"] == "linus"

    me = test_client.get("/api/profile/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["status"] == "Kernel hacker"


def test_account_deletion_ends_session(test_client, demo_mode):
    token = _login(test_client)["token"]
    headers = {"Authorization": f"Bearer {token}"}

    assert test_client.delete("/api/profile", headers=headers).status_code == 200
    assert test_client.get("/api/profile/me", headers=headers).status_code == 401


def test_missing_token(test_client):
    resp = test_client.get("/api/profile/me")
    assert resp.status_code == 401
    assert resp.json() == {"msg": "Missing bearer token"}


def test_unknown_token(test_client):
    resp = test_client.get("/api/profile/me", headers={"Authorization": "Bearer nope"})
    assert resp.status_code == 401
    assert resp.json() == {"msg": "Invalid session"}


def test_expired_session(test_client, db, user):
    db["session"].insert_one(
        {
            "user_id": user,
            "token": "stale",
            "expires_at": datetime.now(timezone.utc) - timedelta(minutes=1),
        }
    )
    resp = test_client.get("/api/profile/me", headers={"Authorization": "Bearer stale"})
    assert resp.status_code == 401
    assert resp.json() == {"msg": "Session expired"}
