"""
Seeders populate tables with fixture data.

Example::

    class UserSeeder(Seeder):
        def run(self, db):
            self.insert("users", [
                {"name": "John", "email": "john@example.com"},
                {"name": "Jane", "email": "jane@example.com"},
            ])
"""

import importlib
from typing import Any, Callable, Dict, List, Sequence, Type, Union

from pypeweb.database.query import QueryBuilder
from pypeweb.errors import PypeError
from pypeweb.logging import get_logger

logger = get_logger(__name__)


class Seeder:
    """Base seeder. Override :meth:`run`."""

    def __init__(self):
        self.db = None

    def __call__(self, db) -> None:
        self.db = db
        logger.info("seeder_running", seeder=type(self).__name__)
        self.run(db)

    def run(self, db) -> None:
        raise NotImplementedError

    def table(self, name: str) -> QueryBuilder:
        return self.db.table(name)

    def insert(self, table: str, data: Union[Dict[str, Any], List[Dict[str, Any]]]) -> List[Any]:
        """Insert one record or a list of records; return the new ids."""
        records = [data] if isinstance(data, dict) else list(data)
        ids = [self.table(table).insert(record) for record in records]
        logger.info("records_seeded", table=table, count=len(ids))
        return ids

    def factory(self, table: str, count: int, make: Callable[[int], Dict[str, Any]]) -> List[Any]:
        return [self.table(table).insert(make(index)) for index in range(count)]

    def truncate(self, table: str) -> None:
        # SQLite has no TRUNCATE
        if self.db.dialect == "sqlite":
            self.db.statement(f"DELETE FROM {table}")
        else:
            self.db.statement(f"TRUNCATE TABLE {table}")

    def call(self, seeders: Sequence[Union[Type["Seeder"], "Seeder"]]) -> None:
        """Run other seeders in order."""
        for seeder in seeders:
            instance = seeder() if isinstance(seeder, type) else seeder
            instance(self.db)


class DatabaseSeeder(Seeder):
    """Root seeder; subclasses list the seeders to run in :attr:`seeders`."""

    seeders: Sequence[Type[Seeder]] = ()

    def run(self, db) -> None:
        self.call(self.seeders)


def resolve_seeder(path: str) -> Seeder:
    """Import ``"package.module:ClassName"`` and instantiate it."""
    module_name, _, class_name = path.partition(":")
    if not class_name:
        raise PypeError(f"Seeder must be given as 'module:ClassName', got {path!r}")
    module = importlib.import_module(module_name)
    try:
        cls = getattr(module, class_name)
    except AttributeError:
        raise PypeError(f"Seeder class {class_name} not found in {module_name}") from None
    return cls()
