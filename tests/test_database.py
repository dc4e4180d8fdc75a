"""Tests for configuration, drivers, the connection pool and ``connect``."""

import pytest

from pypeweb.config import DatabaseSettings, load_app_settings, load_database_settings, load_mail_settings
from pypeweb.database import ConnectionPool, Database, SQLiteDriver, connect
from pypeweb.database.connection import settings_from_mapping
from pypeweb.database.drivers import MySQLDriver, PostgresDriver, create_driver, rewrite_placeholders
from pypeweb.errors import ConfigurationError, DatabaseConnectionError


class TestSettings:
    def test_missing_type(self):
        with pytest.raises(ConfigurationError, match=r"Database type \(DB_TYPE\) not configured"):
            load_database_settings()

    def test_unsupported_type(self):
        with pytest.raises(ConfigurationError, match="Unsupported database type: oracle"):
            load_database_settings(type="oracle")

    def test_server_backend_needs_host_user_name(self):
        with pytest.raises(ConfigurationError, match="MySQL configuration incomplete") as info:
            load_database_settings(type="mysql", host="localhost")
        assert "DB_USER: NOT SET" in str(info.value)

    @pytest.mark.parametrize(
        "alias, dialect",
        [("postgresql", "pgsql"), ("postgres", "pgsql"), ("MariaDB", "mysql"), ("sqlite3", "sqlite")],
    )
    def test_aliases(self, alias, dialect):
        assert DatabaseSettings(type=alias).dialect == dialect

    def test_default_ports(self):
        assert load_database_settings(type="pgsql", host="h", user="u", name="n").effective_port == 5432
        assert load_database_settings(type="mysql", host="h", user="u", name="n", port=3307).effective_port == 3307

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("DB_TYPE", "pgsql")
        monkeypatch.setenv("DB_HOST", "db.internal")
        monkeypatch.setenv("DB_USER", "app")
        monkeypatch.setenv("DB_NAME", "blog")
        monkeypatch.setenv("DB_PASS", "secret")
        settings = load_database_settings()
        assert settings.host == "db.internal"
        assert settings.password == "secret"

    def test_reads_dotenv_file(self, tmp_path):
        (tmp_path / ".env").write_text("DB_TYPE=sqlite\nDB_PATH=blog.sqlite\n")
        settings = load_database_settings()
        assert settings.dialect == "sqlite"
        assert settings.path == "blog.sqlite"

    def test_invalid_value_is_a_configuration_error(self):
        with pytest.raises(ConfigurationError, match="Invalid database configuration"):
            load_database_settings(type="mysql", port="not-a-port")

    def test_settings_from_mapping(self):
        settings = settings_from_mapping({"DB_TYPE": "sqlite", "DB_PATH": ":memory:", "IGNORED": "x"})
        assert settings.path == ":memory:"

    def test_app_and_mail_settings(self, monkeypatch):
        monkeypatch.setenv("APP_DEBUG", "true")
        monkeypatch.setenv("MAIL_FROM", "blog@example.com")
        assert load_app_settings().debug is True
        assert load_mail_settings().from_address == "blog@example.com"


class TestDrivers:
    def test_rewrite_placeholders(self):
        sql = "SELECT * FROM t WHERE a = ? AND b LIKE '%?%' AND c = ?"
        assert rewrite_placeholders(sql) == "SELECT * FROM t WHERE a = %s AND b LIKE '%%?%%' AND c = %s"

    def test_create_driver_picks_class(self):
        assert isinstance(create_driver(DatabaseSettings(type="sqlite")), SQLiteDriver)
        assert isinstance(create_driver(DatabaseSettings(type="postgresql")), PostgresDriver)
        assert isinstance(create_driver(DatabaseSettings(type="mysql")), MySQLDriver)

    def test_server_drivers_use_format_paramstyle(self):
        assert PostgresDriver(DatabaseSettings(type="pgsql")).prepare("a = ?") == "a = %s"
        assert PostgresDriver(DatabaseSettings(type="pgsql")).returning_clause("id") == " RETURNING id"
        assert MySQLDriver(DatabaseSettings(type="mysql")).returning_clause("id") == ""

    def test_sqlite_introspection(self, db):
        db.statement("CREATE TABLE things (id INTEGER PRIMARY KEY)")
        assert db.has_table("things")
        assert not db.has_table("nothing")
        assert db.tables() == ["things"]


class FakeConnection:
    def __init__(self):
        self.in_transaction = False
        self.closed = False
        self.rolled_back = False

    def open(self):
        return self

    def close(self):
        self.closed = True

    def rollback(self):
        self.rolled_back = True
        self.in_transaction = False


class TestConnectionPool:
    def test_size_must_be_positive(self):
        with pytest.raises(ValueError):
            ConnectionPool(FakeConnection, size=0)

    def test_reuses_released_connections(self):
        pool = ConnectionPool(FakeConnection, size=2)
        first = pool.acquire()
        pool.release(first)
        assert pool.acquire() is first
        assert pool.created == 1

    def test_times_out_when_exhausted(self):
        pool = ConnectionPool(FakeConnection, size=1, timeout=0.01)
        pool.acquire()
        with pytest.raises(DatabaseConnectionError, match="Timed out"):
            pool.acquire()

    def test_release_rolls_back_open_transaction(self):
        pool = ConnectionPool(FakeConnection, size=1)
        conn = pool.acquire()
        conn.in_transaction = True
        pool.release(conn)
        assert conn.rolled_back

    def test_close_all(self):
        pool = ConnectionPool(FakeConnection, size=2)
        conn = pool.acquire()
        pool.release(conn)
        pool.close_all()
        assert conn.closed
        assert pool.created == 0


class TestConnect:
    def test_connect_sqlite(self):
        db = connect(type="sqlite", path=":memory:")
        try:
            assert db.dialect == "sqlite"
            assert db.raw("SELECT 1 AS one") == [{"one": 1}]
        finally:
            db.close()

    def test_memory_database_uses_single_connection(self):
        db = Database(load_database_settings(type="sqlite", path=":memory:"), pool_size=5)
        assert db.pool.size == 1

    def test_bad_sqlite_path(self, tmp_path):
        with pytest.raises(DatabaseConnectionError, match="Database connection failed"):
            connect(type="sqlite", path=str(tmp_path / "missing" / "dir" / "db.sqlite"))

    def test_table_attribute_access(self, posts_db):
        assert posts_db.users.count() == 2
        with pytest.raises(AttributeError):
            posts_db._private
