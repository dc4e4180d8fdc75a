"""
Command line interface: ``pype``.

Scaffolding (``pype make ...``), migrations (``pype migrate ...``),
seeding (``pype db seed``), route listing and a development server.
Database commands read ``DB_*`` settings from the environment or ``.env``;
``--database PATH`` forces a SQLite file instead.
"""

import importlib
import os
import re
import sys
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from pypeweb.errors import PypeError

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(name="pype", help="Pype Web command line tools.", no_args_is_help=True)
make_app = typer.Typer(no_args_is_help=True)
migrate_app = typer.Typer(no_args_is_help=True)
db_app = typer.Typer(no_args_is_help=True)

app.add_typer(make_app, name="make", help="Generate controllers, models, middleware, views and migrations.")
app.add_typer(migrate_app, name="migrate", help="Apply and revert migrations.")
app.add_typer(db_app, name="db", help="Database utilities.")


CONTROLLER_TEMPLATE = '''from pypeweb import Controller


class {class_name}(Controller):
    def index(self, request):
        return self.view("{view}", {{}}, request)
'''

MODEL_TEMPLATE = '''from pypeweb import Model


class {class_name}(Model):
    table = "{table}"
    primary_key = "id"

    @classmethod
    def schema(cls, table):
        table.id()
        table.timestamps()
'''

MIDDLEWARE_TEMPLATE = '''class {class_name}:
    def handle(self, request, params, next):
        return next(request, params)
'''

VIEW_TEMPLATE = """{{# {name} #}}
<div>
</div>
"""


def snake_case(name: str) -> str:
    name = re.sub(r"(?<!^)(?=[A-Z])", "_", name)
    return re.sub(r"[^a-z0-9_]+", "_", name.lower()).strip("_")


def _write(path: str, content: str, force: bool = False) -> None:
    if os.path.exists(path) and not force:
        err_console.print(f"[red]File already exists:[/red] {path}")
        raise typer.Exit(code=1)
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w") as f:
        f.write(content)
    console.print(f"[green]Created[/green] {path}")


def _database(database: Optional[str]):
    from pypeweb.database import connect

    try:
        if database:
            return connect(type="sqlite", path=database)
        return connect()
    except PypeError as exc:
        err_console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)


def _project_on_path() -> None:
    # console scripts do not put the working directory on sys.path
    cwd = os.getcwd()
    if cwd not in sys.path:
        sys.path.insert(0, cwd)


def _load_app(target: str):
    _project_on_path()
    module_name, _, attr = target.partition(":")
    module = importlib.import_module(module_name)
    return getattr(module, attr or "app")


# ── make ────────────────────────────────────────────────────────────


@make_app.command("controller")
def make_controller(
    name: str,
    directory: str = typer.Option("app/controllers", "--dir", help="Target directory"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file"),
) -> None:
    """Create a controller class."""
    class_name = name if name.endswith("Controller") else f"{name}Controller"
    view = snake_case(class_name[: -len("Controller")]) + ".index"
    _write(os.path.join(directory, snake_case(class_name) + ".py"), CONTROLLER_TEMPLATE.format(class_name=class_name, view=view), force)


@make_app.command("model")
def make_model(
    name: str,
    directory: str = typer.Option("app/models", "--dir", help="Target directory"),
    migration: bool = typer.Option(False, "--migration", "-m", help="Also create a migration"),
    migrations_dir: str = typer.Option("migrations", "--migrations-dir"),
    force: bool = typer.Option(False, "--force"),
) -> None:
    """Create a model class (and optionally its migration)."""
    table = snake_case(name) + "s"
    _write(os.path.join(directory, snake_case(name) + ".py"), MODEL_TEMPLATE.format(class_name=name, table=table), force)
    if migration:
        from pypeweb.database.migrations import Migrator

        path = Migrator(None, migrations_dir).make_migration(f"create_{table}_table")
        console.print(f"[green]Created[/green] {path}")


@make_app.command("middleware")
def make_middleware(
    name: str,
    directory: str = typer.Option("app/middleware", "--dir"),
    force: bool = typer.Option(False, "--force"),
) -> None:
    """Create a middleware class."""
    _write(os.path.join(directory, snake_case(name) + ".py"), MIDDLEWARE_TEMPLATE.format(class_name=name), force)


@make_app.command("view")
def make_view(
    name: str,
    directory: str = typer.Option("templates", "--dir"),
    force: bool = typer.Option(False, "--force"),
) -> None:
    """Create a template; dots become directories (admin.login)."""
    from pypeweb.templating import template_path

    _write(os.path.join(directory, template_path(name)), VIEW_TEMPLATE.format(name=name), force)


@make_app.command("migration")
def make_migration(
    name: str,
    directory: str = typer.Option("migrations", "--dir"),
) -> None:
    """Create a timestamped migration file."""
    from pypeweb.database.migrations import Migrator

    try:
        path = Migrator(None, directory).make_migration(name)
    except PypeError as exc:
        err_console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    console.print(f"[green]Created[/green] {path}")


# ── migrate ─────────────────────────────────────────────────────────


def _migrator(database: Optional[str], directory: str):
    from pypeweb.database.migrations import Migrator

    return Migrator(_database(database), directory)


def _report(names, verb: str, empty: str) -> None:
    if not names:
        console.print(f"[yellow]{empty}[/yellow]")
        return
    for name in names:
        console.print(f"[green]{verb}[/green] {name}")


@migrate_app.command("run")
def migrate_run(
    database: Optional[str] = typer.Option(None, "--database", "-d", help="SQLite file to use instead of DB_*"),
    directory: str = typer.Option("migrations", "--dir"),
) -> None:
    """Run all pending migrations."""
    try:
        _report(_migrator(database, directory).run(), "Migrated", "Nothing to migrate.")
    except PypeError as exc:
        err_console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)


@migrate_app.command("rollback")
def migrate_rollback(
    database: Optional[str] = typer.Option(None, "--database", "-d"),
    directory: str = typer.Option("migrations", "--dir"),
) -> None:
    """Revert the last batch of migrations."""
    try:
        _report(_migrator(database, directory).rollback(), "Rolled back", "Nothing to rollback.")
    except PypeError as exc:
        err_console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)


@migrate_app.command("fresh")
def migrate_fresh(
    database: Optional[str] = typer.Option(None, "--database", "-d"),
    directory: str = typer.Option("migrations", "--dir"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
) -> None:
    """Drop every table and re-run all migrations."""
    if not yes:
        typer.confirm("This drops ALL tables. Continue?", abort=True)
    try:
        _report(_migrator(database, directory).fresh(), "Migrated", "Nothing to migrate.")
    except PypeError as exc:
        err_console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)


@migrate_app.command("status")
def migrate_status(
    database: Optional[str] = typer.Option(None, "--database", "-d"),
    directory: str = typer.Option("migrations", "--dir"),
) -> None:
    """Show which migrations have run."""
    rows = _migrator(database, directory).status()
    table = Table(title="Migrations")
    table.add_column("Migration")
    table.add_column("Batch")
    table.add_column("Status")
    for row in rows:
        ran = row["batch"] is not None
        table.add_row(row["migration"], str(row["batch"] or ""), "[green]Ran[/green]" if ran else "[yellow]Pending[/yellow]")
    console.print(table)


# ── db ──────────────────────────────────────────────────────────────


@db_app.command("seed")
def db_seed(
    seeder: str = typer.Argument("app.seeders:DatabaseSeeder", help="module:ClassName"),
    database: Optional[str] = typer.Option(None, "--database", "-d"),
) -> None:
    """Run a seeder class."""
    from pypeweb.database.seeder import resolve_seeder

    db = _database(database)
    _project_on_path()
    try:
        instance = resolve_seeder(seeder)
        instance(db)
    except (PypeError, ImportError) as exc:
        err_console.print(f"[red]Seeding failed:[/red] {exc}")
        raise typer.Exit(code=1)
    console.print(f"[green]Seeded[/green] {seeder}")


# ── app ─────────────────────────────────────────────────────────────


@app.command("routes")
def routes(
    target: str = typer.Option("app.main:app", "--app", envvar="PYPE_APP", help="module:attribute of the PypeApp"),
) -> None:
    """List registered routes."""
    application = _load_app(target)
    table = Table(title="Routes")
    table.add_column("Method")
    table.add_column("Path")
    table.add_column("Name")
    table.add_column("Middleware")
    for route in application.router.routes:
        middleware = ", ".join(m if isinstance(m, str) else getattr(m, "__name__", type(m).__name__) for m in route.middleware_stack)
        table.add_row(route.method, route.path, route.route_name or "", middleware)
    console.print(table)


@app.command("serve")
def serve(
    target: str = typer.Option("app.main:app", "--app", envvar="PYPE_APP"),
    host: str = typer.Option("127.0.0.1", "--host"),
    port: int = typer.Option(8000, "--port", "-p"),
) -> None:
    """Start the development server."""
    application = _load_app(target)
    console.print(f"[green]Pype development server[/green] on http://{host}:{port} (Ctrl+C to stop)")
    application.run(host=host, port=port)


if __name__ == "__main__":
    app()
