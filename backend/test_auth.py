"""Registration, login, cookies and role checks."""
from conftest import TEST_PASSWORD, auth_headers
from quickpharma.core.config import settings
from quickpharma.models.log import Log
from quickpharma.models.lookup import LogTypeId, RoleName
from quickpharma.models.user import User


def register(client, email="new.customer@example.com", password="S3cure!pass"):
    return client.post("/api/Auth/register", json={
        "email": email, "password": password, "firstName": "Noor", "lastName": "Hassan",
        "contactNumber": "+973 3300 0000",
    })


def test_register_creates_customer(client, db):
    resp = register(client)

    assert resp.status_code == 201
    body = resp.json()
    assert body["email"] == "new.customer@example.com"
    assert body["role_name"] == RoleName.CUSTOMER
    assert "password" not in body and "hashed_password" not in body
    stored = db.query(User).filter(User.email == "new.customer@example.com").one()
    assert stored.hashed_password != "S3cure!pass"


def test_register_duplicate_email_is_conflict(client, db):
    register(client)

    resp = register(client, email="New.Customer@example.com")

    assert resp.status_code == 409
    assert db.query(User).count() == 1


def test_register_rejects_weak_password(client, db):
    no_digit = register(client, password="NoDigits!here")
    too_short = register(client, password="a1!")

    assert no_digit.status_code == 400
    assert too_short.status_code == 400
    assert db.query(User).count() == 0


def test_login_sets_cookie_and_returns_token(client, store):
    resp = client.post("/api/Auth/login", json={"email": "customer@test.com", "password": TEST_PASSWORD})

    assert resp.status_code == 200
    body = resp.json()
    assert body["role"] == RoleName.CUSTOMER
    assert body["user_id"] == store["customer"].id
    assert settings.AUTH_COOKIE_NAME in resp.cookies

    me = client.get("/api/Auth/me")
    assert me.status_code == 200
    assert me.json()["email"] == "customer@test.com"


def test_login_failure_is_generic(client, store):
    wrong_password = client.post("/api/Auth/login", json={"email": "customer@test.com", "password": "nope"})
    unknown_user = client.post("/api/Auth/login", json={"email": "ghost@example.com", "password": "nope"})

    assert wrong_password.status_code == 401
    assert unknown_user.status_code == 401
    assert wrong_password.json() == unknown_user.json()


def test_third_failed_login_writes_one_log(client, db, store):
    for _ in range(settings.MAX_FAILED_LOGINS + 1):
        client.post("/api/Auth/login", json={"email": "customer@test.com", "password": "wrong"})

    logs = db.query(Log).filter(Log.log_type_id == LogTypeId.LOGIN_FAILURE).all()
    assert len(logs) == 1
    assert "customer@test.com" in logs[0].description


def test_successful_login_resets_failure_count(client, db, store):
    client.post("/api/Auth/login", json={"email": "customer@test.com", "password": "wrong"})
    client.post("/api/Auth/login", json={"email": "customer@test.com", "password": TEST_PASSWORD})

    db.refresh(store["customer"])
    assert store["customer"].failed_login_count == 0


def test_logout_clears_cookie(client, store):
    client.post("/api/Auth/login", json={"email": "customer@test.com", "password": TEST_PASSWORD})

    resp = client.post("/api/Auth/logout")

    assert resp.status_code == 200
    assert client.get("/api/Auth/me").status_code == 401


def test_bad_token_is_rejected(client):
    resp = client.get("/api/Auth/me", headers={"Authorization": "Bearer not-a-jwt"})

    assert resp.status_code == 401


def test_me_reports_staff_branch(client, store):
    resp = client.get("/api/Auth/me", headers=auth_headers(store["manager"]))

    assert resp.json()["role_name"] == RoleName.MANAGER
    assert resp.json()["branch_id"] == store["branch"].id
