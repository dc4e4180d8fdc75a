"""
Migration runner.

Migration files live in one directory and are applied in filename order.
Each file defines exactly one :class:`~pypeweb.database.schema.Migration`
subclass. Applied files are recorded in the ``migrations`` table together
with the batch number of the run that applied them, so ``rollback`` can
undo the most recent run as a unit.
"""

import importlib.util
import inspect
import os
import re
from datetime import datetime
from typing import Dict, List, Optional, Type

from pypeweb.database.schema import Blueprint, Migration, Schema
from pypeweb.errors import MigrationError
from pypeweb.logging import get_logger

logger = get_logger(__name__)

MIGRATIONS_TABLE = "migrations"

MIGRATION_TEMPLATE = '''from pypeweb.database import Migration


class {class_name}(Migration):
    def up(self, schema):
        def columns(table):
            table.id()
{columns}
            table.timestamps()

        schema.create_table("{table}", columns)

    def down(self, schema):
        schema.drop_table("{table}")
'''


def class_name_for(name: str) -> str:
    return "".join(part.capitalize() for part in re.split(r"[^a-zA-Z0-9]+", name) if part)


def table_name_for(name: str) -> str:
    """Guess the table from ``create_<table>_table`` style names."""
    match = re.match(r"^create_(\w+?)_table$", name)
    return match.group(1) if match else "example_table"


def load_migration(path: str) -> Migration:
    """Import ``path`` and instantiate the Migration subclass it defines."""
    module_name = "pypeweb_migration_" + os.path.splitext(os.path.basename(path))[0]
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise MigrationError(f"Cannot load migration file {path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    classes: List[Type[Migration]] = [
        obj
        for obj in vars(module).values()
        if inspect.isclass(obj) and issubclass(obj, Migration) and obj is not Migration and obj.__module__ == module_name
    ]
    if len(classes) != 1:
        raise MigrationError(f"{os.path.basename(path)} must define exactly one Migration subclass, found {len(classes)}")
    return classes[0]()


class Migrator:
    """Applies and reverts migration files against one database."""

    def __init__(self, db, directory: str = "migrations"):
        self.db = db
        self.directory = directory
        self.schema = Schema(db)

    # ── Bookkeeping ─────────────────────────────────────────────────

    def ensure_table(self) -> None:
        if self.db.has_table(MIGRATIONS_TABLE):
            return
        blueprint = Blueprint(MIGRATIONS_TABLE, self.db.dialect)
        blueprint.id()
        blueprint.string("migration")
        blueprint.integer("batch")
        blueprint.timestamp("created_at")
        for sql in blueprint.to_sql():
            self.db.statement(sql)
        logger.info("migrations_table_created")

    def files(self) -> List[str]:
        if not os.path.isdir(self.directory):
            return []
        return sorted(f for f in os.listdir(self.directory) if f.endswith(".py") and not f.startswith("_"))

    def applied(self) -> Dict[str, int]:
        self.ensure_table()
        rows = self.db.table(MIGRATIONS_TABLE).select("migration", "batch").order_by("id").get()
        return {row["migration"]: row["batch"] for row in rows}

    def pending(self) -> List[str]:
        applied = self.applied()
        return [name for name in self.files() if name not in applied]

    def _path(self, name: str) -> str:
        return os.path.join(self.directory, name)

    # ── Commands ────────────────────────────────────────────────────

    def run(self) -> List[str]:
        """Apply every pending file under one new batch number."""
        pending = self.pending()
        if not pending:
            logger.info("nothing_to_migrate")
            return []

        batch = int(self.db.table(MIGRATIONS_TABLE).max("batch") or 0) + 1
        for name in pending:
            load_migration(self._path(name)).up(self.schema)
            self.db.table(MIGRATIONS_TABLE).insert({"migration": name, "batch": batch})
            logger.info("migration_applied", migration=name, batch=batch)
        return pending

    def rollback(self) -> List[str]:
        """Revert the most recent batch, newest file first."""
        self.ensure_table()
        batch = self.db.table(MIGRATIONS_TABLE).max("batch")
        if not batch:
            logger.info("nothing_to_rollback")
            return []

        names = self.db.table(MIGRATIONS_TABLE).where("batch", batch).order_by("migration", "DESC").pluck("migration")
        for name in names:
            path = self._path(name)
            if os.path.exists(path):
                load_migration(path).down(self.schema)
            else:
                logger.warning("migration_file_missing", migration=name)
            self.db.table(MIGRATIONS_TABLE).delete({"migration": name})
            logger.info("migration_rolled_back", migration=name, batch=batch)
        return names

    def fresh(self) -> List[str]:
        """Drop every table and re-run all migrations from scratch."""
        for table in self.db.tables():
            self.schema.drop_table(table)
            logger.info("table_dropped", table=table)
        return self.run()

    def status(self) -> List[Dict[str, Optional[int]]]:
        applied = self.applied()
        names = sorted(set(self.files()) | set(applied))
        return [{"migration": name, "batch": applied.get(name)} for name in names]

    def make_migration(self, name: str, columns: Optional[List[str]] = None) -> str:
        """Write a timestamped migration template and return its path."""
        name = re.sub(r"[^a-z0-9_]+", "_", name.strip().lower()).strip("_")
        if not name:
            raise MigrationError("Migration name must contain letters or digits")
        os.makedirs(self.directory, exist_ok=True)
        stamp = datetime.now().strftime("%Y_%m_%d_%H%M%S")
        path = self._path(f"{stamp}_{name}.py")
        body = "\n".join(f"            {line}" for line in (columns or ['table.string("name")']))
        with open(path, "w") as f:
            f.write(MIGRATION_TEMPLATE.format(class_name=class_name_for(name), columns=body, table=table_name_for(name)))
        logger.info("migration_created", path=path)
        return path
