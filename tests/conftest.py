"""
Shared pytest fixtures for pypeweb tests.

Every database fixture is an isolated in-memory SQLite database, so tests
need no server and leave nothing behind.
"""

import os
from typing import Any, Dict

import pytest

from pypeweb import PypeApp
from pypeweb.config import load_database_settings
from pypeweb.database import Database, Schema
from pypeweb.request import Request
from pypeweb.security import CSRF
from pypeweb.session import Session

REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DEMO_MIGRATIONS = os.path.join(REPO_ROOT, "app", "migrations")
BOUNDARY = "pypeboundary"
MULTIPART_TYPE = f"multipart/form-data; boundary={BOUNDARY}"


def multipart_body(fields=None, files=None):
    """Encode ``fields`` and ``files`` ({name: (filename, content_type, bytes)}) as form-data."""
    chunks = []
    for name, value in (fields or {}).items():
        chunks.append(
            f'--{BOUNDARY}\r\nContent-Disposition: form-data; name="{name}"\r\n\r\n{value}\r\n'.encode("utf-8")
        )
    for name, (filename, content_type, content) in (files or {}).items():
        head = (
            f"--{BOUNDARY}\r\n"
            f'Content-Disposition: form-data; name="{name}"; filename="{filename}"\r\n'
            f"Content-Type: {content_type}\r\n\r\n"
        )
        chunks.append(head.encode("utf-8") + content + b"\r\n")
    chunks.append(f"--{BOUNDARY}--\r\n".encode("utf-8"))
    return b"".join(chunks)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep DB_/MAIL_/APP_ variables and stray .env files out of tests."""
    for key in list(os.environ):
        if key.startswith(("DB_", "MAIL_", "APP_")):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def db():
    database = Database(load_database_settings(type="sqlite", path=":memory:"))
    yield database
    database.close()


@pytest.fixture
def posts_db(db):
    """Database with ``users`` and ``posts`` tables and a few rows."""
    schema = Schema(db)

    def users(table):
        table.id()
        table.string("name")
        table.string("email").unique()
        table.timestamps()

    def posts(table):
        table.id()
        table.foreign_id("user_id").nullable()
        table.string("title")
        table.string("status").default("draft")
        table.integer("views").default(0)
        table.timestamps()

    schema.create_table("users", users)
    schema.create_table("posts", posts)

    ada = db.table("users").insert({"name": "Ada", "email": "ada@example.com"})
    alan = db.table("users").insert({"name": "Alan", "email": "alan@example.com"})
    db.table("posts").insert({"user_id": ada, "title": "First", "status": "published", "views": 10})
    db.table("posts").insert({"user_id": ada, "title": "Second", "status": "published", "views": 5})
    db.table("posts").insert({"user_id": alan, "title": "Third", "status": "draft", "views": 0})
    return db


@pytest.fixture
def templates_dir(tmp_path):
    path = tmp_path / "templates"
    path.mkdir()
    return path


@pytest.fixture
def app(templates_dir):
    return PypeApp("test-app", template_dir=str(templates_dir))


@pytest.fixture
def session():
    return Session()


@pytest.fixture
def csrf_session(session):
    """A session that already holds a CSRF token."""
    CSRF.generate_token(session)
    return session


def make_request(method: str = "GET", path: str = "/", session: Session = None, **environ: Any) -> Request:
    data: Dict[str, Any] = {"method": method, "path": path}
    data.update(environ)
    return Request(data, session=session)


@pytest.fixture
def request_factory():
    return make_request
