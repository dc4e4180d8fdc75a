"""
Schema DSL.

A :class:`Blueprint` collects column definitions for one table and renders
dialect-specific DDL. Migrations use it through the :class:`Schema` facade::

    class CreatePostsTable(Migration):
        def up(self, schema):
            def columns(table):
                table.id()
                table.string("title")
                table.text("body").nullable()
                table.boolean("published").default(False)
                table.timestamps()

            schema.create_table("posts", columns)

        def down(self, schema):
            schema.drop_table("posts")
"""

from typing import Any, Callable, List, Optional, Sequence, Union

from pypeweb.errors import MigrationError, QueryError
from pypeweb.logging import get_logger

logger = get_logger(__name__)

UNQUOTED_DEFAULTS = {"CURRENT_TIMESTAMP", "NOW()", "NULL"}

MYSQL_TABLE_OPTIONS = "ENGINE=InnoDB DEFAULT CHARSET=utf8mb4 COLLATE=utf8mb4_unicode_ci"


def quote_identifier(name: str, dialect: str) -> str:
    if dialect == "pgsql":
        return f'"{name}"'
    return f"`{name}`"


def sql_literal(value: Any) -> str:
    """Render ``value`` as a DDL literal."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return str(value)
    text = str(value)
    if text.upper() in UNQUOTED_DEFAULTS:
        return text
    return "'" + text.replace("'", "''") + "'"


class Column:
    """One column definition with chainable modifiers."""

    def __init__(self, name: str, type: str, dialect: str, primary: bool = False):
        self.name = name
        self.type = type
        self.dialect = dialect
        self.primary = primary
        self.is_nullable = False
        self.default_value: Optional[str] = None
        self.is_unique = False

    def nullable(self) -> "Column":
        self.is_nullable = True
        return self

    def default(self, value: Any) -> "Column":
        self.default_value = sql_literal(value)
        return self

    def unique(self) -> "Column":
        self.is_unique = True
        return self

    def definition(self) -> str:
        parts = [self.type]
        if not self.primary and not self.is_nullable:
            parts.append("NOT NULL")
        if self.default_value is not None:
            parts.append(f"DEFAULT {self.default_value}")
        if self.is_unique:
            parts.append("UNIQUE")
        return " ".join(parts)

    def to_sql(self) -> str:
        return f"{quote_identifier(self.name, self.dialect)} {self.definition()}"

    def __repr__(self) -> str:
        return f"<Column {self.to_sql()}>"


class Blueprint:
    """Column builder for one ``CREATE TABLE`` or ``ALTER TABLE`` run."""

    def __init__(self, table: str, dialect: str, mode: str = "create"):
        if mode not in ("create", "modify"):
            raise MigrationError(f"Unknown blueprint mode: {mode!r}")
        self.table = table
        self.dialect = dialect
        self.mode = mode
        self.columns: List[Union[Column, str]] = []

    def _add(self, name: str, type: str, primary: bool = False) -> Column:
        column = Column(name, type, self.dialect, primary=primary)
        self.columns.append(column)
        return column

    def _pick(self, sqlite: str, pgsql: str, mysql: str) -> str:
        return {"sqlite": sqlite, "pgsql": pgsql}.get(self.dialect, mysql)

    # ── Column types ────────────────────────────────────────────────

    def id(self, name: str = "id") -> Column:
        return self._add(
            name,
            self._pick("INTEGER PRIMARY KEY AUTOINCREMENT", "SERIAL PRIMARY KEY", "INT AUTO_INCREMENT PRIMARY KEY"),
            primary=True,
        )

    def string(self, name: str, length: int = 255) -> Column:
        return self._add(name, self._pick("TEXT", f"VARCHAR({length})", f"VARCHAR({length})"))

    def integer(self, name: str) -> Column:
        return self._add(name, self._pick("INTEGER", "INTEGER", "INT"))

    def big_integer(self, name: str) -> Column:
        return self._add(name, self._pick("INTEGER", "BIGINT", "BIGINT"))

    def foreign_id(self, name: str) -> Column:
        return self._add(name, self._pick("INTEGER", "INTEGER", "INT"))

    def text(self, name: str) -> Column:
        return self._add(name, "TEXT")

    def timestamp(self, name: str) -> Column:
        return self._add(name, "TIMESTAMP").default("CURRENT_TIMESTAMP")

    def boolean(self, name: str) -> Column:
        return self._add(name, self._pick("INTEGER", "BOOLEAN", "BOOLEAN"))

    def double(self, name: str, total: int = 8, places: int = 2) -> Column:
        return self._add(name, self._pick("REAL", "DOUBLE PRECISION", f"DOUBLE({total},{places})"))

    def decimal(self, name: str, total: int = 8, places: int = 2) -> Column:
        return self._add(name, self._pick("NUMERIC", f"NUMERIC({total},{places})", f"DECIMAL({total},{places})"))

    def date(self, name: str) -> Column:
        return self._add(name, "DATE")

    def datetime(self, name: str) -> Column:
        return self._add(name, self._pick("DATETIME", "TIMESTAMP", "DATETIME"))

    def json(self, name: str) -> Column:
        return self._add(name, self._pick("TEXT", "JSON", "JSON"))

    def time(self, name: str) -> Column:
        return self._add(name, "TIME")

    def binary(self, name: str) -> Column:
        return self._add(name, self._pick("BLOB", "BYTEA", "LONGBLOB"))

    def enum(self, name: str, allowed: Sequence[str]) -> Column:
        if self.dialect == "mysql":
            return self._add(name, "ENUM(" + ", ".join(sql_literal(v) for v in allowed) + ")")
        return self._add(name, "VARCHAR(255)")

    def timestamps(self) -> "Blueprint":
        self.timestamp("created_at")
        self.timestamp("updated_at")
        return self

    def soft_deletes(self) -> "Blueprint":
        # NULL means "not deleted", so no CURRENT_TIMESTAMP default
        column = self.timestamp("deleted_at").nullable()
        column.default_value = None
        return self

    def raw(self, definition: str) -> "Blueprint":
        """Append a hand-written column or constraint definition."""
        self.columns.append(definition.strip())
        return self

    # ── Rendering ───────────────────────────────────────────────────

    def _column_sql(self) -> List[str]:
        parts = []
        for column in self.columns:
            text = column.to_sql() if isinstance(column, Column) else column
            if text:
                parts.append(text)
        return parts

    def to_sql(self) -> List[str]:
        """DDL statements for this blueprint, in execution order."""
        table = quote_identifier(self.table, self.dialect)
        if self.mode == "modify":
            return [f"ALTER TABLE {table} ADD COLUMN {column}" for column in self._column_sql()]

        sql = f"CREATE TABLE IF NOT EXISTS {table} ({', '.join(self._column_sql())})"
        if self.dialect == "mysql":
            sql += f" {MYSQL_TABLE_OPTIONS}"
        return [sql]


class Schema:
    """Executes blueprints against a :class:`~pypeweb.database.connection.Database`."""

    def __init__(self, db):
        self.db = db

    @property
    def dialect(self) -> str:
        return self.db.dialect

    def _execute(self, statements: List[str]) -> None:
        for sql in statements:
            try:
                self.db.statement(sql)
            except QueryError as exc:
                raise MigrationError(f"Migration Error: {exc}") from exc
            logger.debug("schema_statement", sql=sql)

    def create_table(self, table: str, callback: Callable[[Blueprint], Any]) -> Blueprint:
        blueprint = Blueprint(table, self.dialect)
        callback(blueprint)
        self._execute(blueprint.to_sql())
        return blueprint

    def modify_table(self, table: str, callback: Callable[[Blueprint], Any]) -> Blueprint:
        blueprint = Blueprint(table, self.dialect, mode="modify")
        callback(blueprint)
        self._execute(blueprint.to_sql())
        return blueprint

    def drop_table(self, table: str) -> None:
        self._execute([f"DROP TABLE IF EXISTS {quote_identifier(table, self.dialect)}"])

    def has_table(self, table: str) -> bool:
        return self.db.has_table(table)

    def raw(self, sql: str) -> None:
        self._execute([sql])


class Migration:
    """Base class for migration files. Override :meth:`up` and :meth:`down`."""

    def up(self, schema: Schema) -> None:
        raise NotImplementedError

    def down(self, schema: Schema) -> None:
        raise NotImplementedError
