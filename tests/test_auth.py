# File: tests/test_auth.py

import pytest

from duet.core.config import Settings
from duet.core.errors import ConfigurationError
from duet.main import create_application
from duet.models.user import UserStatus

from conftest import GOOD_PASSWORD

API = "/api/v1/auth"


def register(client, username="alice", password=GOOD_PASSWORD, **extra):
    return client.post(f"{API}/register", json={"username": username, "password": password, **extra})


def login(client, username="alice", password=GOOD_PASSWORD):
    return client.post(f"{API}/login", json={"username": username, "password": password})


# ---------- Registration ----------

def test_register_creates_user_and_sets_cookie(client):
    resp = register(client, display_name="Alice")
    assert resp.status_code == 201
    body = resp.json()
    assert body["token"]
    assert body["user"]["username"] == "alice"
    assert body["user"]["display_name"] == "Alice"
    assert body["user"]["role"] == "user"
    assert body["user"]["status"] == "active"
    assert body["user"]["couple_id"] is None
    assert "password" not in str(body["user"]).lower()
    assert client.cookies.get("auth-token") == body["token"]


def test_register_duplicate_username(client):
    assert register(client).status_code == 201
    resp = register(client)
    assert resp.status_code == 409
    assert resp.json()["code"] == "duplicate_username"


def test_register_weak_password_lists_violations(client):
    resp = register(client, password="abc")
    assert resp.status_code == 400
    body = resp.json()
    assert body["code"] == "password_policy"
    assert "too_short" in body["violations"]
    assert "missing_uppercase" in body["violations"]
    assert len(body["messages"]) == len(body["violations"])


def test_validate_password_endpoint(client):
    ok = client.post(f"{API}/validate-password", json={"password": GOOD_PASSWORD}).json()
    assert ok == {"valid": True, "violations": [], "messages": []}

    bad = client.post(f"{API}/validate-password", json={"password": ""}).json()
    assert bad["valid"] is False
    assert bad["violations"]


# ---------- Login / logout ----------

def test_login_sets_http_only_strict_cookie(client, new_client):
    register(client)
    browser = new_client()
    resp = login(browser)
    assert resp.status_code == 200
    assert resp.json()["token_type"] == "bearer"
    assert resp.json()["user"]["last_login_at"] is not None

    cookie = resp.headers["set-cookie"].lower()
    assert cookie.startswith("auth-token=")
    assert "httponly" in cookie
    assert "samesite=strict" in cookie
    assert "max-age=86400" in cookie
    # Development settings: not marked secure so the test client sends it back.
    assert "secure" not in cookie.replace("samesite", "")


@pytest.mark.parametrize(
    "username,password",
    [("alice", "Wrong123!"), ("nobody", GOOD_PASSWORD), ("alice", "")],
)
def test_login_rejects_bad_credentials(client, new_client, username, password):
    register(client)
    resp = login(new_client(), username, password)
    assert resp.status_code == 401
    assert resp.json()["code"] == "invalid_credentials"
    assert "set-cookie" not in resp.headers


def test_login_disabled_account(client, new_client, app, store):
    user_id = register(client).json()["user"]["id"]
    with app.state.session_factory() as db:
        store.update_profile(db, user_id, status=UserStatus.DISABLED)
        db.commit()

    resp = login(new_client())
    assert resp.status_code == 403
    assert resp.json()["code"] == "account_disabled"

    # The token issued at registration no longer authenticates either.
    assert client.get(f"{API}/me").status_code == 401


def test_logout_clears_cookie(client):
    register(client)
    assert client.get(f"{API}/me").status_code == 200

    resp = client.post(f"{API}/logout")
    assert resp.status_code == 200
    assert "max-age=0" in resp.headers["set-cookie"].lower()
    assert client.get(f"{API}/me").status_code == 401


# ---------- Authenticated requests ----------

def test_me_requires_authentication(client):
    resp = client.get(f"{API}/me")
    assert resp.status_code == 401
    assert resp.json()["code"] == "unauthenticated"


def test_me_accepts_bearer_header(client, new_client):
    token = register(client).json()["token"]
    api_client = new_client()
    resp = api_client.get(f"{API}/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 200
    assert resp.json()["user"]["username"] == "alice"
    assert resp.json()["partner"] is None


def test_me_rejects_tampered_token(client, new_client):
    token = register(client).json()["token"]
    head, payload, signature = token.split(".")
    forged = ".".join([head, payload, signature[:-2] + ("AA" if signature[-2:] != "AA" else "BB")])
    resp = new_client().get(f"{API}/me", headers={"Authorization": f"Bearer {forged}"})
    assert resp.status_code == 401
    assert resp.json()["code"] == "invalid_token"


def test_update_display_name(client):
    register(client)
    resp = client.patch(f"{API}/profile", json={"display_name": "Ally"})
    assert resp.status_code == 200
    assert resp.json()["display_name"] == "Ally"
    assert client.get(f"{API}/me").json()["user"]["display_name"] == "Ally"


def test_change_password(client, new_client):
    register(client)

    wrong = client.patch(f"{API}/profile", json={"current_password": "Nope1234!", "new_password": "Zz98765!"})
    assert wrong.status_code == 401

    weak = client.patch(f"{API}/profile", json={"current_password": GOOD_PASSWORD, "new_password": "weak"})
    assert weak.status_code == 400
    assert weak.json()["code"] == "password_policy"

    missing = client.patch(f"{API}/profile", json={"new_password": "Zz98765!"})
    assert missing.status_code == 400

    ok = client.patch(
        f"{API}/profile",
        json={"current_password": GOOD_PASSWORD, "new_password": "Zz98765!", "display_name": "New"},
    )
    assert ok.status_code == 200
    assert ok.json()["display_name"] == "New"

    assert login(new_client()).status_code == 401
    assert login(new_client(), password="Zz98765!").status_code == 200


# ---------- Application ----------

def test_healthz(client):
    assert client.get("/healthz").json() == {"status": "ok"}


def test_missing_secret_key_is_fatal(tmp_path):
    settings = Settings(database_url=f"sqlite:///{tmp_path}/x.db", secret_key=None)
    with pytest.raises(ConfigurationError):
        create_application(settings)


def test_short_secret_key_is_fatal(tmp_path):
    settings = Settings(database_url=f"sqlite:///{tmp_path}/x.db", secret_key="too-short")
    with pytest.raises(ConfigurationError):
        create_application(settings)


def test_admin_is_seeded_from_settings(tmp_path):
    settings = Settings(
        database_url=f"sqlite:///{tmp_path}/admin.db",
        secret_key="seeded-admin-secret-key-long-enough-0123456789",
        environment="development",
        admin_username="root",
        admin_password="Adm1nPass!",
        argon2_time_cost=1,
        argon2_memory_cost=1024,
        argon2_parallelism=1,
    )
    app = create_application(settings)
    try:
        from fastapi.testclient import TestClient

        resp = login(TestClient(app), "root", "Adm1nPass!")
        assert resp.status_code == 200
        assert resp.json()["user"]["role"] == "admin"
    finally:
        app.state.engine.dispose()
