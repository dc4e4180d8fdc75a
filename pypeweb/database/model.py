"""
Active-record style models on top of the query builder.

Models keep their column values in an explicit ``dict``; read them with
``model["email"]`` or ``model.get("email")``. Persistence goes through a
:class:`ModelQuery` bound to a database::

    class User(Model):
        table = "users"

        @classmethod
        def schema(cls, table):
            table.id()
            table.string("email").unique()
            table.timestamps()

    users = User.using(db)
    user = users.create({"email": "ada@example.com"})
    user["email"] = "ada@lovelace.dev"
    user.save()
"""

import json
from typing import Any, Dict, Generic, Iterator, List, Optional, Sequence, Type, TypeVar

from pypeweb.database.query import QueryBuilder
from pypeweb.database.schema import Blueprint
from pypeweb.errors import NotFoundError, PypeError

M = TypeVar("M", bound="Model")


class Model:
    """Base model. Subclasses set :attr:`table` and :attr:`primary_key`."""

    table: Optional[str] = None
    primary_key: str = "id"

    def __init__(self, attributes: Optional[Dict[str, Any]] = None, db=None):
        self.attributes: Dict[str, Any] = dict(attributes or {})
        self._db = db

    @classmethod
    def table_name(cls) -> str:
        return cls.table or cls.__name__.lower() + "s"

    @classmethod
    def schema(cls, table: Blueprint) -> None:
        """Column definitions used when generating a migration for this model."""
        table.id()

    @classmethod
    def using(cls: Type[M], db) -> "ModelQuery[M]":
        return ModelQuery(cls, db)

    # ── Attribute access ────────────────────────────────────────────

    def get(self, name: str, default: Any = None) -> Any:
        return self.attributes.get(name, default)

    def set(self, name: str, value: Any) -> "Model":
        self.attributes[name] = value
        return self

    def __getitem__(self, name: str) -> Any:
        return self.attributes[name]

    def __setitem__(self, name: str, value: Any) -> None:
        self.attributes[name] = value

    def __contains__(self, name: str) -> bool:
        return name in self.attributes

    @property
    def key(self) -> Any:
        return self.attributes.get(self.primary_key)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.attributes)

    def to_json(self) -> str:
        return json.dumps(self.attributes, default=str)

    # ── Persistence ─────────────────────────────────────────────────

    def _query(self) -> "ModelQuery":
        if self._db is None:
            raise PypeError(f"{type(self).__name__} is not bound to a database; load it via {type(self).__name__}.using(db)")
        return ModelQuery(type(self), self._db)

    def save(self) -> bool:
        """Insert when the primary key is empty, update otherwise."""
        query = self._query()
        if not self.key:
            self.attributes[self.primary_key] = query.builder().insert(self.attributes)
            return True
        data = {k: v for k, v in self.attributes.items() if k != self.primary_key}
        return query.update_record(self.key, data)

    def remove(self) -> bool:
        if not self.key:
            return False
        return self._query().destroy(self.key)

    def __eq__(self, other: object) -> bool:
        return type(other) is type(self) and other.attributes == self.attributes

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.primary_key}={self.key!r}>"


class ModelQuery(Generic[M]):
    """Queries for one model class against one database."""

    def __init__(self, model: Type[M], db):
        self.model = model
        self.db = db
        self._builder: Optional[QueryBuilder] = None

    def builder(self) -> QueryBuilder:
        if self._builder is None:
            self._builder = self.db.table(self.model.table_name(), primary_key=self.model.primary_key)
        return self._builder

    def _wrap(self, row: Optional[Dict[str, Any]]) -> Optional[M]:
        return self.model(row, db=self.db) if row is not None else None

    def _wrap_all(self, rows: List[Dict[str, Any]]) -> List[M]:
        return [self.model(row, db=self.db) for row in rows]

    # ── Reads ───────────────────────────────────────────────────────

    def all(self) -> List[M]:
        return self._wrap_all(self.builder().get())

    def find(self, id: Any) -> Optional[M]:
        return self._wrap(self.builder().find(id))

    def find_or_fail(self, id: Any) -> M:
        model = self.find(id)
        if model is None:
            raise NotFoundError(
                f"{self.model.__name__} with ID {id} not found in {self.model.table_name()}",
                table=self.model.table_name(),
                key=id,
            )
        return model

    def find_by(self, column: str, value: Any) -> Optional[M]:
        return self._wrap(self.builder().where(column, value).first())

    def filter(self, conditions: Optional[Dict[str, Any]] = None) -> List[M]:
        builder = self.builder()
        for column, value in (conditions or {}).items():
            builder.where(column, value)
        return self._wrap_all(builder.get())

    def first(self) -> Optional[M]:
        return self._wrap(self.builder().first())

    def count(self) -> int:
        return self.builder().count()

    def __iter__(self) -> Iterator[M]:
        return iter(self.all())

    # ── Writes ──────────────────────────────────────────────────────

    def create(self, data: Dict[str, Any]) -> M:
        attributes = dict(data)
        attributes[self.model.primary_key] = self.builder().insert(data)
        return self.model(attributes, db=self.db)

    def update_record(self, id: Any, data: Dict[str, Any]) -> bool:
        return self.builder().update(data, {self.model.primary_key: id})

    def destroy(self, id: Any) -> bool:
        return self.builder().delete({self.model.primary_key: id})

    def truncate(self) -> None:
        table = self.model.table_name()
        if self.db.dialect == "sqlite":
            self.db.statement(f"DELETE FROM {table}")
        else:
            self.db.statement(f"TRUNCATE TABLE {table}")

    def raw(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        return self.db.raw(sql, params)

    # ── Builder passthrough ─────────────────────────────────────────

    def where(self, column: str, value: Any, operator: str = "=") -> "ModelQuery[M]":
        self.builder().where(column, value, operator)
        return self

    def or_where(self, column: str, value: Any, operator: str = "=") -> "ModelQuery[M]":
        self.builder().or_where(column, value, operator)
        return self

    def where_in(self, column: str, values: Sequence[Any]) -> "ModelQuery[M]":
        self.builder().where_in(column, values)
        return self

    def where_null(self, column: str) -> "ModelQuery[M]":
        self.builder().where_null(column)
        return self

    def order_by(self, column: str, direction: str = "ASC") -> "ModelQuery[M]":
        self.builder().order_by(column, direction)
        return self

    def limit(self, count: int) -> "ModelQuery[M]":
        self.builder().limit(count)
        return self

    def offset(self, count: int) -> "ModelQuery[M]":
        self.builder().offset(count)
        return self

    def get_models(self) -> List[M]:
        return self._wrap_all(self.builder().get())

    def paginate(self, per_page: int, page: int = 1) -> List[M]:
        return self._wrap_all(self.builder().paginate(per_page, page))
