"""Tests for pypeweb.auth."""

import pytest

from pypeweb.auth import REMEMBER_TABLE, Auth
from pypeweb.database import Schema
from pypeweb.response import Response
from pypeweb.session import Session


@pytest.fixture
def users_db(db):
    schema = Schema(db)

    def users(table):
        table.id()
        table.string("name")
        table.string("email").unique()
        table.string("password")

    schema.create_table("users", users)
    return db


@pytest.fixture
def remember_db(users_db):
    def tokens(table):
        table.id()
        table.integer("user_id")
        table.string("token")
        table.datetime("expires_at")
        table.timestamp("created_at")

    Schema(users_db).create_table(REMEMBER_TABLE, tokens)
    return users_db


@pytest.fixture
def registered(users_db):
    Auth(users_db, {}).register({"name": "Ada", "email": "ada@example.com", "password": "secret-pass"}, auto_login=False)
    return users_db


class TestRegister:
    def test_hashes_password_and_logs_in(self, users_db):
        session = Session()
        user = Auth(users_db, session).register({"name": "Ada", "email": "ada@example.com", "password": "secret-pass"})
        assert "password" not in user
        assert session["user_id"] == user["id"]
        assert session["auth_user"]["email"] == "ada@example.com"
        stored = users_db.table("users").find(user["id"])
        assert stored["password"].startswith("pbkdf2_sha256$")

    def test_without_auto_login(self, users_db):
        session = {}
        Auth(users_db, session).register({"name": "A", "email": "a@example.com", "password": "x"}, auto_login=False)
        assert session == {}


class TestLogin:
    def test_success(self, registered):
        session = {}
        auth = Auth(registered, session)
        user = auth.login("ada@example.com", "secret-pass")
        assert user["name"] == "Ada"
        assert "password" not in user
        assert auth.check()
        assert auth.id() == user["id"]

    @pytest.mark.parametrize("email, password", [("ada@example.com", "wrong"), ("nobody@example.com", "secret-pass")])
    def test_failure(self, registered, email, password):
        auth = Auth(registered, {})
        assert auth.login(email, password) is None
        assert not auth.check()
        assert auth.user() is None

    def test_logout(self, registered):
        session = {}
        auth = Auth(registered, session)
        auth.login("ada@example.com", "secret-pass")
        auth.logout()
        assert not auth.check()
        assert "user_id" not in session


class TestRememberMe:
    def test_skipped_without_token_table(self, registered):
        response = Response()
        Auth(registered, {}).login("ada@example.com", "secret-pass", remember=True, response=response)
        assert "remember_me" not in response.cookies

    def test_token_restores_session(self, remember_db):
        Auth(remember_db, {}).register({"name": "Ada", "email": "ada@example.com", "password": "secret-pass"}, auto_login=False)
        response = Response()
        Auth(remember_db, {}).login("ada@example.com", "secret-pass", remember=True, response=response)
        token = response.cookies["remember_me"]

        session = {}
        auth = Auth(remember_db, session, cookies={"remember_me": token})
        user = auth.user()
        assert user["email"] == "ada@example.com"
        assert "password" not in user
        assert session["user_id"] == user["id"]
        # tokens are single use
        assert remember_db.table(REMEMBER_TABLE).count() == 0

    def test_expired_token_is_ignored(self, remember_db):
        remember_db.table(REMEMBER_TABLE).insert(
            {"user_id": 1, "token": "stale", "expires_at": "2000-01-01 00:00:00"}
        )
        assert Auth(remember_db, {}, cookies={"remember_me": "stale"}).user() is None

    def test_logout_clears_cookie(self, registered):
        response = Response()
        Auth(registered, {}, cookies={"remember_me": "abc"}).logout(response)
        assert response.cookies["remember_me"] == ""

    def test_from_request(self, registered, request_factory):
        request = request_factory(cookies={"remember_me": "abc"})
        auth = Auth.from_request(registered, request)
        assert auth.session is request.session
        assert auth.cookies == {"remember_me": "abc"}
