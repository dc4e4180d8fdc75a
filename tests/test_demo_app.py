"""End-to-end tests for the demo blog in ``app/``."""

import json

import pytest

from conftest import DEMO_MIGRATIONS
from app.main import create_app
from pypeweb.database import Migrator
from pypeweb.security import CSRF, hash_password
from pypeweb.session import Session


@pytest.fixture
def blog(db):
    Migrator(db, DEMO_MIGRATIONS).run()
    return create_app(db=db, debug=False)


@pytest.fixture
def user(db, blog):
    db.table("users").insert({"name": "Ada", "email": "ada@example.com", "password": hash_password("secret-pass")})
    return db.table("users").where("email", "ada@example.com").first()


def form_session(user_id=None):
    session = Session()
    CSRF.generate_token(session)
    if user_id is not None:
        session["user_id"] = user_id
        session["auth_user"] = {"id": user_id, "name": "Ada"}
    return session


def post_form(blog, path, session, **fields):
    fields.setdefault("csrf_token", session["csrf_token"])
    return blog.dispatch("POST", path, session=session, form_data=fields)


class TestPages:
    def test_home(self, blog):
        response = blog.dispatch("GET", "/")
        assert response.status_code == 200
        assert "Welcome to Pype Blog" in response.body
        assert response.get_header("Access-Control-Allow-Origin") == "*"

    def test_empty_index(self, blog):
        assert "No posts yet." in blog.dispatch("GET", "/posts").body

    def test_missing_post_is_404(self, blog):
        assert blog.dispatch("GET", "/posts/999").status_code == 404

    def test_create_form_requires_login(self, blog):
        response = blog.dispatch("GET", "/posts/create")
        assert response.status_code == 302
        assert response.get_header("Location") == "/login"


class TestPostLifecycle:
    def test_create_update_delete(self, blog, user, db):
        session = form_session(user["id"])

        response = post_form(blog, "/posts", session, title="Hello <b>World</b>", body="<p>Hi</p><script>x()</script>")
        assert response.get_header("Location") == "/posts/1"
        stored = db.table("posts").find(1)
        assert stored["title"] == "Hello World"
        assert stored["slug"] == "hello-world"
        assert stored["body"] == "<p>Hi</p>"
        assert stored["user_id"] == user["id"]

        page = blog.dispatch("GET", "/posts/1", session=session)
        assert "Post created." in page.body
        assert "Hello World" in page.body

        response = post_form(blog, "/posts/1", session, _method="PUT", title="Renamed", body="Updated")
        assert response.get_header("Location") == "/posts/1"
        assert db.table("posts").find(1)["title"] == "Renamed"

        response = post_form(blog, "/posts/1", session, _method="DELETE")
        assert response.get_header("Location") == "/posts"
        assert db.table("posts").count() == 0

    def test_slug_fits_the_column(self, blog, user, db):
        session = form_session(user["id"])
        title = "a@b " * 63
        assert len(title) <= 255
        post_form(blog, "/posts", session, title=title, body="text")
        slug = db.table("posts").find(1)["slug"]
        assert len(slug) <= 255
        assert slug.startswith("a-at-b-a-at-b")
        assert not slug.endswith("-")

    def test_validation_errors_are_flashed(self, blog, user):
        session = form_session(user["id"])
        response = post_form(blog, "/posts", session, title="", body="")
        assert response.get_header("Location") == "/posts/create"

        form = blog.dispatch("GET", "/posts/create", session=session)
        assert "title is required" in form.body
        assert "body is required" in form.body

    def test_overridden_methods_still_need_a_token(self, blog, user, db):
        session = form_session(user["id"])
        db.table("posts").insert({"title": "Keep", "slug": "keep", "body": "b"})
        response = blog.dispatch("POST", "/posts/1", session=session, form_data={"_method": "DELETE"})
        assert response.status_code == 419
        assert db.table("posts").count() == 1

    def test_index_paginates(self, blog, db):
        for n in range(12):
            db.table("posts").insert({"title": f"Post {n}", "slug": f"post-{n}", "body": "words"})
        first = blog.dispatch("GET", "/posts").body
        assert "Post 11" in first and "Older" in first
        second = blog.dispatch("GET", "/posts", query_params={"page": "2"}).body
        assert "Post 0" in second and "Older" not in second


class TestAuthentication:
    def test_register_logs_in(self, blog, db):
        session = form_session()
        response = post_form(
            blog,
            "/register",
            session,
            name="Grace",
            email="grace@example.com",
            password="long-password",
            password_confirmation="long-password",
        )
        assert response.get_header("Location") == "/dashboard"
        assert session["user_id"] is not None
        assert db.table("users").where("email", "grace@example.com").first()["password"] != "long-password"

        dashboard = blog.dispatch("GET", "/dashboard", session=session)
        assert "Hello, Grace" in dashboard.body

    def test_emails_are_case_insensitive(self, blog, user, db):
        session = form_session()
        response = post_form(blog, "/login", session, email="ADA@Example.com", password="secret-pass")
        assert response.get_header("Location") == "/dashboard"

        session = form_session()
        post_form(
            blog,
            "/register",
            session,
            name="Grace",
            email="Grace@Example.COM",
            password="long-password",
            password_confirmation="long-password",
        )
        assert db.table("users").where("email", "grace@example.com").exists()

        response = post_form(
            blog,
            "/register",
            form_session(),
            name="Ada again",
            email="Ada@Example.com",
            password="long-password",
            password_confirmation="long-password",
        )
        assert response.get_header("Location") == "/register"

    def test_register_rejects_taken_email(self, blog, user):
        session = form_session()
        response = post_form(
            blog,
            "/register",
            session,
            name="Other",
            email="ada@example.com",
            password="long-password",
            password_confirmation="long-password",
        )
        assert response.get_header("Location") == "/register"
        assert "already been taken" in blog.dispatch("GET", "/register", session=session).body

    def test_login_with_remember_me(self, blog, user, db):
        session = form_session()
        response = post_form(blog, "/login", session, email="ada@example.com", password="secret-pass", remember="1")
        assert response.get_header("Location") == "/dashboard"
        assert session["user_id"] == user["id"]
        assert "remember_me" in response.cookies
        assert db.table("remember_me_tokens").count() == 1

    def test_remember_cookie_restores_login_in_a_new_session(self, blog, user, db):
        response = post_form(
            blog, "/login", form_session(), email="ada@example.com", password="secret-pass", remember="1"
        )
        token = response.cookies["remember_me"]

        fresh = Session()
        dashboard = blog.dispatch("GET", "/dashboard", session=fresh, cookies={"remember_me": token})
        assert dashboard.status_code == 200
        assert "Hello, Ada" in dashboard.body
        assert fresh["user_id"] == user["id"]
        # tokens are single use
        assert db.table("remember_me_tokens").count() == 0

        again = blog.dispatch("GET", "/dashboard", session=Session(), cookies={"remember_me": token})
        assert again.get_header("Location") == "/login"

    def test_login_failure(self, blog, user):
        session = form_session()
        response = post_form(blog, "/login", session, email="ada@example.com", password="wrong")
        assert response.get_header("Location") == "/login"
        assert "do not match" in blog.dispatch("GET", "/login", session=session).body

    def test_guest_pages_redirect_logged_in_users(self, blog, user):
        response = blog.dispatch("GET", "/login", session=form_session(user["id"]))
        assert response.get_header("Location") == "/dashboard"

    def test_logout(self, blog, user):
        session = form_session(user["id"])
        response = post_form(blog, "/logout", session)
        assert response.get_header("Location") == "/"
        assert "user_id" not in session


class TestApi:
    def test_posts_pagination_envelope(self, blog, db):
        for n in range(3):
            db.table("posts").insert({"title": f"Post {n}", "slug": f"post-{n}", "body": "<p>Body</p>"})
        response = blog.dispatch("GET", "/api/posts", query_params={"per_page": "2"})
        payload = json.loads(response.body)
        assert payload["pagination"] == {"total": 3, "per_page": 2, "current_page": 1, "last_page": 2}
        assert [post["title"] for post in payload["data"]] == ["Post 2", "Post 1"]
        assert payload["data"][0]["excerpt"] == "Body"
        assert response.get_header("X-RateLimit-Limit") == "60"

    def test_post_not_found(self, blog):
        response = blog.dispatch("GET", "/api/posts/5")
        assert response.status_code == 404
        assert json.loads(response.body) == {"success": False, "message": "Post not found", "errors": []}

    def test_users_hide_passwords(self, blog, user):
        response = blog.dispatch("GET", "/api/users", session=form_session(user["id"]))
        users = json.loads(response.body)["data"]
        assert users[0]["email"] == "ada@example.com"
        assert "password" not in users[0]
