"""
Connections, the connection pool and the ``Database`` entry point.

A :class:`Database` is created once per process from configuration. It owns
a :class:`ConnectionPool`; every terminal query-builder call acquires a
:class:`Connection` for the duration of one statement and releases it.
Inside :meth:`Database.transaction` the acquired connection is pinned to the
current thread so every builder call in the unit of work shares it.
"""

import queue
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from pypeweb.config import DatabaseSettings, load_database_settings
from pypeweb.database.drivers import Driver, Row, create_driver
from pypeweb.errors import DatabaseConnectionError
from pypeweb.logging import get_logger

logger = get_logger(__name__)


@dataclass
class Result:
    """Outcome of one statement."""

    rows: List[Row] = field(default_factory=list)
    rowcount: int = -1
    lastrowid: Any = None


class Connection:
    """A single open handle to the configured backend."""

    def __init__(self, driver: Driver):
        self.driver = driver
        self.in_transaction = False

    @property
    def dialect(self) -> str:
        return self.driver.dialect

    def open(self) -> "Connection":
        if not self.driver.is_connected:
            self.driver.connect()
        return self

    def close(self) -> None:
        self.driver.close()

    # ── Statements ──────────────────────────────────────────────────

    def execute(self, sql: str, params: Sequence[Any] = ()) -> Result:
        """Run one statement and collect its rows, if any."""
        started = time.perf_counter()
        cursor = self.open().driver.bind_and_execute(sql, params)
        try:
            rows = self.driver.fetch_all(cursor)
            result = Result(rows=rows, rowcount=cursor.rowcount, lastrowid=getattr(cursor, "lastrowid", None))
        finally:
            cursor.close()
        logger.debug(
            "query_executed",
            sql=sql,
            bindings=len(params),
            rows=len(result.rows),
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return result

    def query(self, sql: str, params: Sequence[Any] = ()) -> List[Row]:
        return self.execute(sql, params).rows

    def returning_clause(self, primary_key: str) -> str:
        return self.driver.returning_clause(primary_key)

    def inserted_id(self, result: Result, primary_key: str) -> Any:
        return self.driver.last_insert_id(result.lastrowid, result.rows, primary_key)

    # ── Transactions ────────────────────────────────────────────────

    def begin(self) -> None:
        self.open().driver.begin()
        self.in_transaction = True

    def commit(self) -> None:
        self.in_transaction = False
        self.driver.commit()

    def rollback(self) -> None:
        self.in_transaction = False
        self.driver.rollback()

    # ── Introspection ───────────────────────────────────────────────

    def has_table(self, name: str) -> bool:
        return self.open().driver.has_table(name)

    def tables(self) -> List[str]:
        return self.open().driver.list_tables()


class ConnectionPool:
    """Fixed-size, thread-safe pool with explicit acquire/release."""

    def __init__(self, factory: Callable[[], Connection], size: int = 5, timeout: float = 30.0):
        if size < 1:
            raise ValueError("pool size must be at least 1")
        self._factory = factory
        self.size = size
        self.timeout = timeout
        self._idle: "queue.LifoQueue[Connection]" = queue.LifoQueue()
        self._created = 0
        self._lock = threading.Lock()

    def acquire(self) -> Connection:
        try:
            return self._idle.get_nowait()
        except queue.Empty:
            pass

        with self._lock:
            if self._created < self.size:
                self._created += 1
                try:
                    return self._factory().open()
                except Exception:
                    self._created -= 1
                    raise

        try:
            return self._idle.get(timeout=self.timeout)
        except queue.Empty:
            raise DatabaseConnectionError(
                f"Timed out after {self.timeout}s waiting for a database connection (pool size {self.size})"
            ) from None

    def release(self, conn: Connection) -> None:
        if conn.in_transaction:
            conn.rollback()
        self._idle.put(conn)

    @contextmanager
    def connection(self) -> Iterator[Connection]:
        conn = self.acquire()
        try:
            yield conn
        finally:
            self.release(conn)

    def close_all(self) -> None:
        while True:
            try:
                conn = self._idle.get_nowait()
            except queue.Empty:
                break
            conn.close()
        with self._lock:
            self._created = 0

    @property
    def created(self) -> int:
        return self._created


class Database:
    """Process-wide access point: pool, query builders and transactions."""

    def __init__(self, settings: DatabaseSettings, pool_size: Optional[int] = None):
        self.settings = settings
        self.dialect = settings.dialect
        size = pool_size or settings.pool_size
        if self.dialect == "sqlite" and (settings.path or ":memory:") == ":memory:":
            size = 1
        self.pool = ConnectionPool(lambda: Connection(create_driver(settings)), size=size)
        self._local = threading.local()

    @contextmanager
    def connection(self) -> Iterator[Connection]:
        """Yield the pinned transaction connection, or a pooled one."""
        pinned = getattr(self._local, "connection", None)
        if pinned is not None:
            yield pinned
            return
        with self.pool.connection() as conn:
            yield conn

    def table(self, name: str, primary_key: str = "id") -> "QueryBuilder":
        from pypeweb.database.query import QueryBuilder

        return QueryBuilder(self, name, primary_key=primary_key)

    def __getattr__(self, name: str) -> "QueryBuilder":
        # db.users -> db.table("users")
        if name.startswith("_"):
            raise AttributeError(name)
        return self.table(name)

    def raw(self, sql: str, params: Sequence[Any] = ()) -> List[Row]:
        with self.connection() as conn:
            return conn.query(sql, params)

    def statement(self, sql: str, params: Sequence[Any] = ()) -> Result:
        with self.connection() as conn:
            return conn.execute(sql, params)

    def has_table(self, name: str) -> bool:
        with self.connection() as conn:
            return conn.has_table(name)

    def tables(self) -> List[str]:
        with self.connection() as conn:
            return conn.tables()

    def transaction(self, callback: Callable[["Database"], Any]) -> Any:
        """Run ``callback(self)`` in a transaction.

        Any exception rolls back and is re-raised. A nested call joins the
        outer transaction.
        """
        if getattr(self._local, "connection", None) is not None:
            return callback(self)

        with self.pool.connection() as conn:
            conn.begin()
            self._local.connection = conn
            try:
                result = callback(self)
            except Exception:
                conn.rollback()
                logger.warning("transaction_rolled_back")
                raise
            finally:
                self._local.connection = None
            conn.commit()
            return result

    def close(self) -> None:
        self.pool.close_all()


def connect(settings: Optional[DatabaseSettings] = None, **overrides: Any) -> Database:
    """Connection factory: build a :class:`Database` from env configuration.

    A first connection is opened eagerly so that bad credentials fail at
    startup rather than on the first request.
    """
    settings = settings.validate_backend() if settings is not None else load_database_settings(**overrides)
    db = Database(settings)
    try:
        with db.pool.connection():
            pass
    except DatabaseConnectionError as exc:
        raise DatabaseConnectionError(
            "Database connection failed!\n\n"
            f"Error: {exc}\n\n"
            "Please check your database credentials in the .env file:\n" + settings.describe(),
            cause=exc.cause,
        ) from exc
    logger.info("database_connected", dialect=db.dialect)
    return db


def settings_from_mapping(values: Dict[str, Any]) -> DatabaseSettings:
    """Build settings from a ``DB_*`` style mapping, e.g. a parsed env file."""
    keys = {
        "DB_TYPE": "type",
        "DB_HOST": "host",
        "DB_USER": "user",
        "DB_PASS": "password",
        "DB_NAME": "name",
        "DB_PORT": "port",
        "DB_PATH": "path",
        "DB_POOL_SIZE": "pool_size",
    }
    return load_database_settings(**{keys[k]: v for k, v in values.items() if k in keys})
