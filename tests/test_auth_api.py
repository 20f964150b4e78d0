from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Query

from conftest import PASSWORD, refresh_cookie, refresh_cookie_header
from models import storage
from models.refresh_token import RefreshToken
from models.user import User


def _cookie(token):
    return {"Cookie": f"refreshToken={token}"}


def _login(client, email="traveller@example.com"):
    return client.post("/api/v1/auth/login", json={"email": email, "password": PASSWORD})


def test_register_starts_a_session(client):
    resp = client.post(
        "/api/v1/auth/register",
        json={"email": "  New.User@Example.com ", "password": PASSWORD, "name": "New User"},
    )

    assert resp.status_code == 201
    body = resp.get_json()
    assert body["data"]["email"] == "new.user@example.com"
    assert body["data"]["role"] == "customer"
    assert body["token_type"] == "bearer"
    assert body["access_token"]
    assert refresh_cookie(resp)

    user = storage.get_session().query(User).filter_by(email="new.user@example.com").one()
    assert storage.get_session().query(RefreshToken).filter_by(user_id=user.id).count() == 1


def test_register_rejects_duplicate_email_case_insensitively(client, make_user):
    make_user("taken@example.com")

    resp = client.post("/api/v1/auth/register", json={"email": "TAKEN@example.com", "password": PASSWORD})

    assert resp.status_code == 409


def test_register_validates_password_length(client):
    resp = client.post("/api/v1/auth/register", json={"email": "short@example.com", "password": "short"})

    assert resp.status_code == 422
    assert "password" in resp.get_json()["details"]


def test_login_sets_http_only_refresh_cookie(client, make_user):
    make_user()

    resp = _login(client)

    assert resp.status_code == 200
    header = refresh_cookie_header(resp)
    assert "HttpOnly" in header
    assert "Path=/api/v1/auth" in header
    assert "SameSite=Strict" in header
    assert "Max-Age=604800" in header
    assert "refresh_token" not in resp.get_json()


def test_login_with_wrong_password_fails_without_cookie(client, make_user):
    make_user()

    resp = client.post("/api/v1/auth/login", json={"email": "traveller@example.com", "password": "wrong-password"})

    assert resp.status_code == 401
    assert refresh_cookie(resp) is None


def test_refresh_rotates_and_rejects_replay(client, make_user):
    make_user()
    original = refresh_cookie(_login(client))

    first = client.post("/api/v1/auth/refresh", headers=_cookie(original))
    assert first.status_code == 200
    rotated = refresh_cookie(first)
    assert rotated and rotated != original
    assert first.get_json()["access_token"]

    replay = client.post("/api/v1/auth/refresh", headers=_cookie(original))
    assert replay.status_code == 401
    assert replay.get_json()["message"] == "Not authorized"
    assert refresh_cookie(replay) is None


def test_replay_revokes_the_rotated_token_too(client, make_user):
    make_user()
    original = refresh_cookie(_login(client))
    rotated = refresh_cookie(client.post("/api/v1/auth/refresh", headers=_cookie(original)))

    client.post("/api/v1/auth/refresh", headers=_cookie(original))

    assert client.post("/api/v1/auth/refresh", headers=_cookie(rotated)).status_code == 401


def test_refresh_ignores_tokens_in_the_body(client, make_user):
    make_user()
    token = refresh_cookie(_login(client))

    resp = client.post("/api/v1/auth/refresh", json={"refreshToken": token, "refresh_token": token})

    assert resp.status_code == 401


def test_refresh_rejects_garbage_cookie(client):
    resp = client.post("/api/v1/auth/refresh", headers=_cookie("garbage"))

    assert resp.status_code == 401
    assert resp.get_json() == {"error": "UNAUTHORIZED", "message": "Not authorized", "status": 401}


def test_me_requires_a_valid_access_token(client, make_user):
    make_user()
    access = _login(client).get_json()["access_token"]

    assert client.get("/api/v1/auth/me").status_code == 401
    assert client.get("/api/v1/auth/me", headers={"Authorization": "Bearer nope"}).status_code == 401

    resp = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {access}"})
    assert resp.status_code == 200
    assert resp.get_json()["data"]["email"] == "traveller@example.com"


def test_refresh_token_is_not_a_bearer_token(client, make_user):
    make_user()
    token = refresh_cookie(_login(client))

    resp = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert resp.status_code == 401


def test_logout_clears_tokens_and_cookie(client, make_user):
    user = make_user()
    login = _login(client)
    _login(client)
    access = login.get_json()["access_token"]
    token = refresh_cookie(login)

    resp = client.post("/api/v1/auth/logout", headers={"Authorization": f"Bearer {access}"})

    assert resp.status_code == 200
    assert resp.get_json()["success"] is True
    header = refresh_cookie_header(resp)
    assert header.startswith("refreshToken=;")
    assert storage.get_session().query(RefreshToken).filter_by(user_id=user.id).count() == 0
    assert client.post("/api/v1/auth/refresh", headers=_cookie(token)).status_code == 401


def test_logout_succeeds_with_no_tokens_left(client, make_user):
    make_user()
    access = _login(client).get_json()["access_token"]
    headers = {"Authorization": f"Bearer {access}"}

    assert client.post("/api/v1/auth/logout", headers=headers).status_code == 200
    assert client.post("/api/v1/auth/logout-all", headers=headers).status_code == 200


def test_logout_requires_an_access_token(client):
    assert client.post("/api/v1/auth/logout").status_code == 401


def test_refresh_store_failure_is_retryable(client, make_user, monkeypatch):
    make_user()
    token = refresh_cookie(_login(client))

    def locked(self, values, *args, **kwargs):
        raise OperationalError("UPDATE", {}, Exception("database is locked"))

    monkeypatch.setattr(Query, "update", locked)
    resp = client.post("/api/v1/auth/refresh", headers=_cookie(token))

    assert resp.status_code == 500
    assert resp.get_json()["error"] == "STORE_WRITE_FAILED"
    assert refresh_cookie_header(resp) is None

    monkeypatch.undo()
    assert client.post("/api/v1/auth/refresh", headers=_cookie(token)).status_code == 200


def test_role_reports_the_current_role(client, make_user, bearer):
    employee = make_user("emp@example.com", role="employee")

    resp = client.get("/api/v1/auth/role", headers=bearer(employee))

    assert resp.status_code == 200
    assert resp.get_json()["role"] == "employee"
    assert resp.get_json()["data"]["email"] == "emp@example.com"


def test_profile_update_changes_only_supplied_fields(client, make_user, bearer):
    user = make_user(name="Old Name", phone="111", passport_number="P1234567")

    resp = client.put(
        "/api/v1/auth/profile",
        json={"name": "  New Name ", "phone": "", "address": "12 Harbour Rd", "passport_number": ""},
        headers=bearer(user),
    )

    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["name"] == "New Name"
    assert data["phone"] == "111"
    assert data["address"] == "12 Harbour Rd"
    assert data["passport_number"] is None


def test_profile_cannot_change_role_or_email(client, make_user, bearer):
    user = make_user()

    resp = client.put("/api/v1/auth/profile", json={"role": "admin"}, headers=bearer(user))

    assert resp.status_code == 422
    assert storage.get_session().get(User, user.id).role == "customer"


def test_profile_requires_an_access_token(client):
    assert client.put("/api/v1/auth/profile", json={"name": "x"}).status_code == 401
