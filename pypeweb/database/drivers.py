"""
Backend drivers.

Each driver wraps one DB-API module and hides its call conventions behind
the same small interface: ``prepare`` rewrites the builder's ``?``
placeholders into the module's paramstyle, ``bind_and_execute`` runs a
statement, ``fetch_all`` normalizes rows into dicts and ``last_insert_id``
reports the generated key. The driver is chosen once, by
:func:`create_driver`, and never branched on again downstream.
"""

import sqlite3
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from pypeweb.config import DatabaseSettings
from pypeweb.errors import ConfigurationError, DatabaseConnectionError, QueryError

Row = Dict[str, Any]


def rewrite_placeholders(sql: str, placeholder: str = "%s") -> str:
    """Replace ``?`` markers outside quoted literals and escape literal ``%``."""
    out = []
    quote: Optional[str] = None
    for char in sql:
        if quote:
            out.append("%%" if char == "%" else char)
            if char == quote:
                quote = None
        elif char in ("'", '"', "`"):
            quote = char
            out.append(char)
        elif char == "?":
            out.append(placeholder)
        elif char == "%":
            out.append("%%")
        else:
            out.append(char)
    return "".join(out)


class Driver(ABC):
    """One database backend. Holds exactly one native connection.

    Native connections run in autocommit mode; transactions are opened
    explicitly with :meth:`begin`.
    """

    dialect = ""

    def __init__(self, settings: DatabaseSettings):
        self.settings = settings
        self._conn: Any = None
        self._errors: tuple = (Exception,)

    # ── Lifecycle ───────────────────────────────────────────────────

    @abstractmethod
    def connect(self) -> None:
        """Open the native connection."""

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    # ── Statement execution ─────────────────────────────────────────

    def prepare(self, sql: str) -> str:
        """Translate ``?`` placeholders into the driver's paramstyle."""
        return sql

    def bind_and_execute(self, sql: str, params: Sequence[Any] = ()) -> Any:
        """Execute ``sql`` with ``params`` and return the native cursor."""
        if self._conn is None:
            self.connect()
        native_sql = self.prepare(sql) if params else sql
        cursor = self._conn.cursor()
        try:
            if params:
                cursor.execute(native_sql, tuple(params))
            else:
                cursor.execute(native_sql)
        except self._errors as exc:
            cursor.close()
            raise QueryError(f"Query failed: {exc}", sql=sql, params=list(params)) from exc
        return cursor

    def fetch_all(self, cursor: Any) -> List[Row]:
        if not cursor.description:
            return []
        columns = [desc[0] for desc in cursor.description]
        return [dict(zip(columns, row)) for row in cursor.fetchall()]

    def last_insert_id(self, lastrowid: Any, rows: List[Row], primary_key: str) -> Any:
        return lastrowid

    def returning_clause(self, primary_key: str) -> str:
        """SQL appended to an INSERT to read back the generated key."""
        return ""

    # ── Transactions ────────────────────────────────────────────────

    def begin(self) -> None:
        self.bind_and_execute("BEGIN").close()

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    # ── Introspection ───────────────────────────────────────────────

    @abstractmethod
    def list_tables(self) -> List[str]:
        """Names of the user tables in the current database."""

    def has_table(self, name: str) -> bool:
        return name in self.list_tables()

    def _column(self, sql: str, params: Sequence[Any] = ()) -> List[Any]:
        cursor = self.bind_and_execute(sql, params)
        try:
            return [row[0] for row in cursor.fetchall()]
        finally:
            cursor.close()


class SQLiteDriver(Driver):
    """SQLite through the stdlib ``sqlite3`` module (qmark paramstyle)."""

    dialect = "sqlite"

    def connect(self) -> None:
        path = self.settings.path or ":memory:"
        try:
            self._conn = sqlite3.connect(
                path,
                isolation_level=None,
                check_same_thread=False,
                uri=path.startswith("file:"),
            )
            self._conn.execute("PRAGMA foreign_keys = ON")
        except sqlite3.Error as exc:
            raise DatabaseConnectionError(f"Failed to connect to SQLite: {exc}", cause=exc) from exc
        self._errors = (sqlite3.Error,)

    def commit(self) -> None:
        if self._conn.in_transaction:
            self._conn.commit()

    def list_tables(self) -> List[str]:
        return self._column(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )

    def has_table(self, name: str) -> bool:
        return bool(self._column("SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?", [name]))


class PostgresDriver(Driver):
    """PostgreSQL through ``psycopg2`` (format paramstyle)."""

    dialect = "pgsql"

    def connect(self) -> None:
        try:
            import psycopg2
        except ImportError:
            raise ConfigurationError(
                "psycopg2 is required for PostgreSQL. Install with: pip install pypeweb[postgres]"
            ) from None

        try:
            self._conn = psycopg2.connect(
                host=self.settings.host,
                port=self.settings.effective_port,
                dbname=self.settings.name,
                user=self.settings.user,
                password=self.settings.password,
            )
            self._conn.autocommit = True
        except psycopg2.Error as exc:
            raise DatabaseConnectionError(f"Failed to connect to PostgreSQL: {exc}", cause=exc) from exc
        self._errors = (psycopg2.Error,)

    def prepare(self, sql: str) -> str:
        return rewrite_placeholders(sql, "%s")

    def returning_clause(self, primary_key: str) -> str:
        return f" RETURNING {primary_key}"

    def last_insert_id(self, lastrowid: Any, rows: List[Row], primary_key: str) -> Any:
        return rows[0].get(primary_key) if rows else None

    def commit(self) -> None:
        self.bind_and_execute("COMMIT").close()

    def rollback(self) -> None:
        self.bind_and_execute("ROLLBACK").close()

    def list_tables(self) -> List[str]:
        return self._column(
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = current_schema() AND table_type = 'BASE TABLE' ORDER BY table_name"
        )


class MySQLDriver(Driver):
    """MySQL / MariaDB through ``mysql-connector-python`` (format paramstyle)."""

    dialect = "mysql"

    def connect(self) -> None:
        try:
            import mysql.connector
        except ImportError:
            raise ConfigurationError(
                "mysql-connector-python is required for MySQL. Install with: pip install pypeweb[mysql]"
            ) from None

        try:
            self._conn = mysql.connector.connect(
                host=self.settings.host,
                port=self.settings.effective_port,
                database=self.settings.name,
                user=self.settings.user,
                password=self.settings.password,
                charset="utf8mb4",
                autocommit=True,
            )
        except mysql.connector.Error as exc:
            raise DatabaseConnectionError(f"Failed to connect to MySQL: {exc}", cause=exc) from exc
        self._errors = (mysql.connector.Error,)

    def prepare(self, sql: str) -> str:
        return rewrite_placeholders(sql, "%s")

    def begin(self) -> None:
        self._conn.start_transaction()

    def list_tables(self) -> List[str]:
        return self._column(
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = DATABASE() AND table_type = 'BASE TABLE' ORDER BY table_name"
        )


DRIVERS = {
    "sqlite": SQLiteDriver,
    "pgsql": PostgresDriver,
    "mysql": MySQLDriver,
}


def create_driver(settings: DatabaseSettings) -> Driver:
    """Pick the driver class for ``settings.dialect`` and instantiate it."""
    return DRIVERS[settings.dialect](settings)
