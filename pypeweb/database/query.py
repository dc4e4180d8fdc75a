"""
Fluent query builder.

A :class:`QueryBuilder` is a "table session": clause methods accumulate
state on the instance and return it for chaining; a terminal method
(``get``, ``first``, ``count``, ``insert``, ``update``, ``delete``, ...)
compiles one parameterized statement, executes it and resets the clause
state so the next query on the same handle starts clean::

    posts = db.table("posts")
    rows = posts.where("status", "published").order_by("id", "DESC").limit(10).get()
    total = posts.count()          # no leftover WHERE / LIMIT

Statements are always compiled with ``?`` placeholders; the active driver
translates them to its own paramstyle.
"""

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from pypeweb.database.drivers import Row
from pypeweb.errors import NotFoundError, QueryBuilderMisuseError
from pypeweb.logging import get_logger

if TYPE_CHECKING:
    from pypeweb.database.connection import Database

logger = get_logger(__name__)

OPERATORS = {"=", "!=", "<>", "<", ">", "<=", ">=", "LIKE", "NOT LIKE", "ILIKE", "NOT ILIKE", "IS", "IS NOT"}
LIST_OPERATORS = {"IN", "NOT IN", "BETWEEN", "NOT BETWEEN"}
RAW = "RAW"

_STATEMENT_RE = re.compile(
    r"^\s*\(?\s*(select|insert|update|delete|with|create|drop|alter|replace|truncate)\b", re.IGNORECASE
)

# LIMIT value meaning "all rows", for backends that reject a bare OFFSET
NO_LIMIT = {"sqlite": "-1", "mysql": "18446744073709551615"}


@dataclass
class WhereClause:
    """One predicate: ``conjunction`` joins it to the previous one.

    For ``RAW`` clauses ``column`` holds the full predicate text. For list
    operators it holds text that already contains its placeholders and
    ``value`` is the list of values to bind.
    """

    conjunction: str
    column: str
    operator: str = RAW
    value: Any = None

    def compile(self, bindings: List[Any]) -> str:
        if self.operator == RAW:
            return self.column
        if self.operator in LIST_OPERATORS:
            bindings.extend(self.value)
            return self.column
        bindings.append(self.value)
        return f"{self.column} {self.operator} ?"


@dataclass
class QueryState:
    columns: str = "*"
    distinct: bool = False
    joins: List[str] = field(default_factory=list)
    wheres: List[WhereClause] = field(default_factory=list)
    groups: List[str] = field(default_factory=list)
    havings: List[str] = field(default_factory=list)
    having_bindings: List[Any] = field(default_factory=list)
    orders: List[str] = field(default_factory=list)
    limit: Optional[int] = None
    offset: Optional[int] = None

    def copy(self) -> "QueryState":
        return QueryState(
            columns=self.columns,
            distinct=self.distinct,
            joins=list(self.joins),
            wheres=list(self.wheres),
            groups=list(self.groups),
            havings=list(self.havings),
            having_bindings=list(self.having_bindings),
            orders=list(self.orders),
            limit=self.limit,
            offset=self.offset,
        )


def _guard_statement(text: str, what: str) -> None:
    if _STATEMENT_RE.search(text):
        raise QueryBuilderMisuseError(
            f'The "{what}" argument should be a column list or table name, not a full query: {text!r}. '
            "Use raw() for full queries."
        )


def _operator(op: str) -> str:
    normalized = " ".join(op.upper().split())
    if normalized not in OPERATORS:
        raise QueryBuilderMisuseError(f"Unsupported comparison operator: {op!r}")
    return normalized


class QueryBuilder:
    """Accumulates clause state for one table and compiles it to SQL."""

    def __init__(self, db: "Database", table: str, primary_key: str = "id"):
        _guard_statement(table, "table")
        self._db = db
        self.table = table
        self.primary_key = primary_key
        self._state = QueryState()
        self._debug = False

    @property
    def dialect(self) -> str:
        return self._db.dialect

    def _reset(self) -> None:
        self._state = QueryState()
        self._debug = False

    def debug(self) -> "QueryBuilder":
        """Log the next compiled statement at info level."""
        self._debug = True
        return self

    # ── SELECT ──────────────────────────────────────────────────────

    def select(self, *columns: Union[str, Sequence[str]]) -> "QueryBuilder":
        """Choose columns to select."""
        names: List[str] = []
        for column in columns:
            if isinstance(column, str):
                names.append(column)
            else:
                names.extend(column)
        text = ", ".join(names) if names else "*"
        _guard_statement(text, "select")
        self._state.columns = text
        return self

    def only(self, columns: Union[str, Sequence[str]]) -> "QueryBuilder":
        return self.select(columns)

    def distinct(self) -> "QueryBuilder":
        self._state.distinct = True
        return self

    # ── WHERE ───────────────────────────────────────────────────────

    def where(self, column: str, value: Any, operator: str = "=") -> "QueryBuilder":
        self._state.wheres.append(WhereClause("AND", column, _operator(operator), value))
        return self

    def or_where(self, column: str, value: Any, operator: str = "=") -> "QueryBuilder":
        self._state.wheres.append(WhereClause("OR", column, _operator(operator), value))
        return self

    def where_raw(self, predicate: str, bindings: Sequence[Any] = ()) -> "QueryBuilder":
        """Append a hand-written predicate; ``?`` markers bind ``bindings``."""
        self._state.wheres.append(WhereClause("AND", predicate, "IN", list(bindings)))
        return self

    def where_null(self, column: str) -> "QueryBuilder":
        self._state.wheres.append(WhereClause("AND", f"{column} IS NULL"))
        return self

    def where_not_null(self, column: str) -> "QueryBuilder":
        self._state.wheres.append(WhereClause("AND", f"{column} IS NOT NULL"))
        return self

    def where_in(self, column: str, values: Iterable[Any]) -> "QueryBuilder":
        return self._where_list(column, "IN", list(values))

    def where_not_in(self, column: str, values: Iterable[Any]) -> "QueryBuilder":
        return self._where_list(column, "NOT IN", list(values))

    def _where_list(self, column: str, operator: str, values: List[Any]) -> "QueryBuilder":
        if not values:
            # IN () is not valid SQL on any backend
            self._state.wheres.append(WhereClause("AND", "1 = 0" if operator == "IN" else "1 = 1"))
            return self
        placeholders = ", ".join("?" for _ in values)
        self._state.wheres.append(WhereClause("AND", f"{column} {operator} ({placeholders})", operator, values))
        return self

    def where_between(self, column: str, low: Any, high: Any) -> "QueryBuilder":
        self._state.wheres.append(WhereClause("AND", f"{column} BETWEEN ? AND ?", "BETWEEN", [low, high]))
        return self

    def where_not_between(self, column: str, low: Any, high: Any) -> "QueryBuilder":
        self._state.wheres.append(WhereClause("AND", f"{column} NOT BETWEEN ? AND ?", "NOT BETWEEN", [low, high]))
        return self

    def where_like(self, column: str, value: str) -> "QueryBuilder":
        return self.where(column, f"%{value}%", "LIKE")

    def where_not_like(self, column: str, value: str) -> "QueryBuilder":
        return self.where(column, f"%{value}%", "NOT LIKE")

    def where_starts_with(self, column: str, value: str) -> "QueryBuilder":
        return self.where(column, f"{value}%", "LIKE")

    def where_ends_with(self, column: str, value: str) -> "QueryBuilder":
        return self.where(column, f"%{value}", "LIKE")

    # ── JOIN / GROUP / HAVING / ORDER / LIMIT ───────────────────────

    def join(self, table: str, first: str, operator: str, second: str) -> "QueryBuilder":
        self._state.joins.append(f"JOIN {table} ON {first} {_operator(operator)} {second}")
        return self

    def left_join(self, table: str, first: str, operator: str, second: str) -> "QueryBuilder":
        self._state.joins.append(f"LEFT JOIN {table} ON {first} {_operator(operator)} {second}")
        return self

    def right_join(self, table: str, first: str, operator: str, second: str) -> "QueryBuilder":
        self._state.joins.append(f"RIGHT JOIN {table} ON {first} {_operator(operator)} {second}")
        return self

    def inner_join(self, table: str, first: str, operator: str, second: str) -> "QueryBuilder":
        self._state.joins.append(f"INNER JOIN {table} ON {first} {_operator(operator)} {second}")
        return self

    def cross_join(self, table: str) -> "QueryBuilder":
        self._state.joins.append(f"CROSS JOIN {table}")
        return self

    def group_by(self, *columns: str) -> "QueryBuilder":
        self._state.groups = list(columns)
        return self

    def having(self, column: str, operator: str, value: Any) -> "QueryBuilder":
        self._state.havings.append(f"{column} {_operator(operator)} ?")
        self._state.having_bindings.append(value)
        return self

    def order_by(self, column: str, direction: str = "ASC") -> "QueryBuilder":
        direction = direction.upper()
        if direction not in ("ASC", "DESC"):
            raise QueryBuilderMisuseError(f"Order direction must be ASC or DESC, got {direction!r}")
        self._state.orders.append(f"{column} {direction}")
        return self

    def latest(self, column: str = "created_at") -> "QueryBuilder":
        return self.order_by(column, "DESC")

    def limit(self, count: int) -> "QueryBuilder":
        self._state.limit = int(count)
        return self

    def offset(self, count: int) -> "QueryBuilder":
        self._state.offset = int(count)
        return self

    take = limit
    skip = offset

    # ── Compilation ─────────────────────────────────────────────────

    def _compile_where(self, wheres: List[WhereClause], bindings: List[Any]) -> str:
        if not wheres:
            return ""
        parts = []
        for index, clause in enumerate(wheres):
            predicate = clause.compile(bindings)
            parts.append(predicate if index == 0 else f"{clause.conjunction} {predicate}")
        return "WHERE " + " ".join(parts)

    def to_sql(self) -> Tuple[str, List[Any]]:
        """Compile the current state into a SELECT without executing it."""
        state = self._state
        bindings: List[Any] = []
        columns = f"DISTINCT {state.columns}" if state.distinct else state.columns
        parts = [f"SELECT {columns} FROM {self.table}"]
        parts.extend(state.joins)
        where = self._compile_where(state.wheres, bindings)
        if where:
            parts.append(where)
        if state.groups:
            parts.append("GROUP BY " + ", ".join(state.groups))
        if state.havings:
            parts.append("HAVING " + " AND ".join(state.havings))
            bindings.extend(state.having_bindings)
        if state.orders:
            parts.append("ORDER BY " + ", ".join(state.orders))
        if state.limit is not None:
            parts.append(f"LIMIT {state.limit}")
        elif state.offset is not None and self.dialect in NO_LIMIT:
            parts.append(f"LIMIT {NO_LIMIT[self.dialect]}")
        if state.offset is not None:
            parts.append(f"OFFSET {state.offset}")
        return " ".join(parts), bindings

    def _conditions(self, where: Optional[Dict[str, Any]]) -> Tuple[str, List[Any]]:
        wheres = list(self._state.wheres)
        wheres.extend(WhereClause("AND", column, "=", value) for column, value in (where or {}).items())
        bindings: List[Any] = []
        return self._compile_where(wheres, bindings), bindings

    def _log(self, sql: str, bindings: List[Any]) -> None:
        if self._debug:
            logger.info("query_debug", table=self.table, sql=sql, bindings=bindings)

    def _run(self, sql: str, bindings: List[Any]):
        self._log(sql, bindings)
        with self._db.connection() as conn:
            return conn.execute(sql, bindings)

    # ── Reads ───────────────────────────────────────────────────────

    def get(self) -> List[Row]:
        """Execute the SELECT and return every row."""
        try:
            sql, bindings = self.to_sql()
            return self._run(sql, bindings).rows
        finally:
            self._reset()

    def first(self) -> Optional[Row]:
        self.limit(1)
        rows = self.get()
        return rows[0] if rows else None

    def find(self, id: Any) -> Optional[Row]:
        return self.where(self.primary_key, id).first()

    def find_or_fail(self, id: Any) -> Row:
        row = self.find(id)
        if row is None:
            raise NotFoundError(f"Record with ID {id} not found in {self.table}", table=self.table, key=id)
        return row

    def find_by_or_fail(self, column: str, value: Any) -> Row:
        row = self.where(column, value).first()
        if row is None:
            raise NotFoundError(
                f"Record with {column} = {value} not found in {self.table}", table=self.table, key=value
            )
        return row

    def _aggregate(self, expression: str) -> Any:
        # ordering and paging apply to rows, not to the single aggregate row
        state = self._state
        state.columns = f"{expression} AS aggregate"
        state.distinct = False
        state.orders = []
        state.offset = None
        row = self.first()
        if row is None or row.get("aggregate") is None:
            return 0
        return row["aggregate"]

    def count(self, column: str = "*") -> int:
        state = self._state
        if state.distinct:
            target = state.columns if column == "*" else column
            if target != "*":
                return int(self._aggregate(f"COUNT(DISTINCT {target})"))
        return int(self._aggregate(f"COUNT({column})"))

    def sum(self, column: str) -> Any:
        return self._aggregate(f"SUM({column})")

    def avg(self, column: str) -> Any:
        return self._aggregate(f"AVG({column})")

    def min(self, column: str) -> Any:
        return self._aggregate(f"MIN({column})")

    def max(self, column: str) -> Any:
        return self._aggregate(f"MAX({column})")

    def exists(self) -> bool:
        return self.count() > 0

    def pluck(self, column: str) -> List[Any]:
        key = re.split(r"\s+as\s+", column, flags=re.IGNORECASE)[-1].split(".")[-1].strip()
        return [row[key] for row in self.select(column).get()]

    def paginate(self, per_page: int, page: int = 1) -> List[Row]:
        page = max(int(page), 1)
        return self.limit(per_page).offset((page - 1) * int(per_page)).get()

    def chunk(self, size: int, callback: Callable[[List[Row]], Any]) -> bool:
        """Feed pages of ``size`` rows to ``callback`` until exhausted.

        Stops early when ``callback`` returns ``False``. Clause state is
        replayed for every page and reset once at the end.
        """
        snapshot = self._state.copy()
        page = 1
        try:
            while True:
                self._state = snapshot.copy()
                rows = self.paginate(size, page)
                if not rows:
                    break
                if callback(rows) is False:
                    break
                page += 1
        finally:
            self._reset()
        return True

    def except_columns(self, columns: Union[str, Sequence[str]]) -> List[Row]:
        excluded = {columns} if isinstance(columns, str) else set(columns)
        return [{k: v for k, v in row.items() if k not in excluded} for row in self.get()]

    # ── Writes ──────────────────────────────────────────────────────

    def insert(self, data: Dict[str, Any]) -> Any:
        """Insert one row and return the generated primary key."""
        if not data:
            raise QueryBuilderMisuseError(f"Cannot insert an empty row into {self.table}")
        try:
            columns = ", ".join(data.keys())
            placeholders = ", ".join("?" for _ in data)
            bindings = list(data.values())
            with self._db.connection() as conn:
                sql = f"INSERT INTO {self.table} ({columns}) VALUES ({placeholders})"
                sql += conn.returning_clause(self.primary_key)
                self._log(sql, bindings)
                result = conn.execute(sql, bindings)
                new_id = conn.inserted_id(result, self.primary_key)
            logger.debug("row_inserted", table=self.table, id=new_id)
            return new_id
        finally:
            self._reset()

    create = insert

    def update(self, data: Dict[str, Any], where: Optional[Dict[str, Any]] = None) -> bool:
        """UPDATE ``data`` on rows matching ``where`` (and any chained wheres)."""
        if not data:
            raise QueryBuilderMisuseError(f"Cannot update {self.table} with no columns")
        try:
            assignments = ", ".join(f"{column} = ?" for column in data)
            clause, where_bindings = self._conditions(where)
            sql = f"UPDATE {self.table} SET {assignments}"
            if clause:
                sql += f" {clause}"
            self._run(sql, list(data.values()) + where_bindings)
            return True
        finally:
            self._reset()

    def delete(self, where: Optional[Dict[str, Any]] = None) -> bool:
        try:
            clause, bindings = self._conditions(where)
            sql = f"DELETE FROM {self.table}"
            if clause:
                sql += f" {clause}"
            self._run(sql, bindings)
            return True
        finally:
            self._reset()

    def increment(self, column: str, amount: Union[int, float] = 1, where: Optional[Dict[str, Any]] = None) -> bool:
        return self._step(column, "+", amount, where)

    def decrement(self, column: str, amount: Union[int, float] = 1, where: Optional[Dict[str, Any]] = None) -> bool:
        return self._step(column, "-", amount, where)

    def _step(self, column: str, sign: str, amount: Union[int, float], where: Optional[Dict[str, Any]]) -> bool:
        try:
            clause, bindings = self._conditions(where)
            sql = f"UPDATE {self.table} SET {column} = {column} {sign} ?"
            if clause:
                sql += f" {clause}"
            self._run(sql, [amount] + bindings)
            return True
        finally:
            self._reset()

    def update_or_create(self, conditions: Dict[str, Any], values: Dict[str, Any]) -> Any:
        """Update the row matching ``conditions`` or insert a new one.

        Returns the primary key of the touched row.
        """
        self._reset()
        for column, value in conditions.items():
            self.where(column, value)
        existing = self.first()
        if existing is not None:
            self.update(values, conditions)
            return existing.get(self.primary_key)
        return self.insert({**conditions, **values})

    def upsert(self, rows: Union[Dict[str, Any], List[Dict[str, Any]]], unique_columns: Sequence[str] = ("id",)) -> bool:
        """Batch insert, updating non-unique columns on key conflicts."""
        if isinstance(rows, dict):
            rows = [rows]
        if not rows:
            return False
        try:
            sql, bindings = self._compile_upsert(rows, list(unique_columns))
            self._run(sql, bindings)
            return True
        finally:
            self._reset()

    def _compile_upsert(self, rows: List[Dict[str, Any]], unique_columns: List[str]) -> Tuple[str, List[Any]]:
        columns = list(rows[0].keys())
        group = "(" + ", ".join("?" for _ in columns) + ")"
        values = ", ".join(group for _ in rows)
        bindings = [row.get(column) for row in rows for column in columns]
        updates = [column for column in columns if column not in unique_columns]

        sql = f"INSERT INTO {self.table} ({', '.join(columns)}) VALUES {values}"
        if self.dialect == "mysql":
            if updates:
                sql += " ON DUPLICATE KEY UPDATE " + ", ".join(f"{c} = VALUES({c})" for c in updates)
        elif updates:
            sql += f" ON CONFLICT ({', '.join(unique_columns)}) DO UPDATE SET "
            sql += ", ".join(f"{c} = excluded.{c}" for c in updates)
        else:
            sql += f" ON CONFLICT ({', '.join(unique_columns)}) DO NOTHING"
        return sql, bindings

    # ── Raw / transactions ──────────────────────────────────────────

    def raw(self, sql: str, bindings: Sequence[Any] = ()) -> List[Row]:
        self._log(sql, list(bindings))
        return self._db.raw(sql, bindings)

    def transaction(self, callback: Callable[["QueryBuilder"], Any]) -> Any:
        return self._db.transaction(lambda _db: callback(self))

    def __repr__(self) -> str:
        return f"<QueryBuilder table={self.table!r}>"
