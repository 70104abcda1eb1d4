"""
HTTP endpoint tests for register, login, logout and the session lookup.
"""

from datetime import timedelta

import pytest

from todo_app import auth, crud, models
from todo_app.config import get_settings

API = get_settings().api_prefix

COOKIE = get_settings().session_cookie_name


def register(client, username="alice", password="pw123"):
    return client.post(f"{API}/register", json={"username": username, "password": password})


def login(client, username="alice", password="pw123"):
    return client.post(f"{API}/login", json={"username": username, "password": password})


class TestPasswordHashing:

    def test_hash_is_salted_and_verifiable(self):
        first = auth.get_password_hash("pw123")
        second = auth.get_password_hash("pw123")

        assert first != "pw123"
        assert first != second
        assert auth.verify_password("pw123", first)
        assert not auth.verify_password("wrong", first)

    def test_session_tokens_are_unique(self):
        assert auth.new_session_token() != auth.new_session_token()


class TestRegister:

    def test_register(self, client, db_session):
        resp = register(client)

        assert resp.status_code == 200
        assert "message" in resp.json()
        user = crud.get_user_by_username(db_session, "alice")
        assert user is not None
        assert user.hashed_password != "pw123"

    def test_register_does_not_log_in(self, client):
        resp = register(client)

        assert COOKIE not in resp.cookies
        assert client.get(f"{API}/tasks").status_code == 401

    def test_duplicate_username(self, client, db_session):
        assert register(client).status_code == 200

        resp = register(client, password="other")

        assert resp.status_code == 400
        assert resp.json()["detail"] == "Username already registered"
        assert crud.get_users_count(db_session) == 1

    def test_concurrent_duplicate_registration(self, client, db_session, monkeypatch):
        assert register(client).status_code == 200
        # Simulate a second request that checked before the first one committed
        monkeypatch.setattr(crud, "get_user_by_username", lambda db, username: None)

        resp = register(client, password="other")

        assert resp.status_code == 400
        assert resp.json()["detail"] == "Username already registered"
        assert crud.get_users_count(db_session) == 1

    @pytest.mark.parametrize("payload,field", [
        ({"password": "pw123"}, "username"),
        ({"username": "alice"}, "password"),
        ({"username": "", "password": "pw123"}, "username"),
        ({"username": "alice", "password": ""}, "password"),
    ])
    def test_missing_fields(self, client, db_session, payload, field):
        resp = client.post(f"{API}/register", json=payload)

        assert resp.status_code == 400
        assert resp.json()["errors"][0]["field"] == field
        assert crud.get_users_count(db_session) == 0


class TestLogin:

    def test_login_sets_session_cookie(self, client):
        register(client)

        resp = login(client)

        assert resp.status_code == 200
        assert resp.json()["username"] == "alice"
        assert resp.cookies.get(COOKIE)
        set_cookie = resp.headers["set-cookie"].lower()
        assert "httponly" in set_cookie
        assert "samesite=lax" in set_cookie

    def test_login_grants_task_access(self, client):
        register(client)
        login(client)

        resp = client.get(f"{API}/tasks")

        assert resp.status_code == 200
        assert resp.json() == []

    def test_wrong_password(self, client):
        register(client)

        resp = login(client, password="wrong")

        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid credentials"
        assert COOKIE not in resp.cookies

    def test_unknown_user_gets_same_error(self, client):
        register(client)

        unknown = login(client, username="mallory", password="wrong")
        wrong = login(client, password="wrong")

        assert unknown.status_code == wrong.status_code == 400
        assert unknown.json() == wrong.json()

    def test_inactive_user_cannot_login(self, client, db_session):
        register(client)
        user = crud.get_user_by_username(db_session, "alice")
        user.is_active = False
        db_session.commit()

        assert login(client).status_code == 400

    def test_login_creates_server_side_session(self, client, db_session):
        register(client)
        token = login(client).cookies.get(COOKIE)

        stored = crud.get_active_session(db_session, token)

        assert stored is not None
        assert stored.user.username == "alice"

    def test_login_purges_expired_sessions(self, client, db_session):
        register(client)
        user = crud.get_user_by_username(db_session, "alice")
        crud.create_session(db_session, user.id, "stale", timedelta(seconds=-1))

        token = login(client).cookies.get(COOKIE)

        tokens = [s.token for s in db_session.query(models.UserSession).all()]
        assert tokens == [token]

    def test_me(self, client):
        register(client)
        login(client)

        resp = client.get(f"{API}/me")

        assert resp.status_code == 200
        assert resp.json()["username"] == "alice"


class TestLogout:

    def test_logout_invalidates_session(self, client, db_session):
        register(client)
        token = login(client).cookies.get(COOKIE)

        resp = client.post(f"{API}/logout")

        assert resp.status_code == 200
        assert client.get(f"{API}/tasks").status_code == 401
        # Replaying the old cookie is rejected as well
        client.cookies.set(COOKIE, token)
        assert client.get(f"{API}/tasks").status_code == 401
        assert db_session.query(models.UserSession).filter_by(token=token).one().revoked is True

    def test_logout_without_session(self, client):
        resp = client.post(f"{API}/logout")
        assert resp.status_code == 200
        assert "message" in resp.json()

    def test_logout_twice(self, client):
        register(client)
        login(client)

        assert client.post(f"{API}/logout").status_code == 200
        assert client.post(f"{API}/logout").status_code == 200

    def test_logout_only_ends_own_session(self, client):
        register(client)
        first = login(client).cookies.get(COOKIE)
        client.cookies.clear()
        second = login(client).cookies.get(COOKIE)

        client.post(f"{API}/logout")

        client.cookies.set(COOKIE, first)
        assert client.get(f"{API}/tasks").status_code == 200
        client.cookies.set(COOKIE, second)
        assert client.get(f"{API}/tasks").status_code == 401
