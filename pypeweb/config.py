"""
Environment-driven configuration for Pype Web.

Settings are read from the process environment and from a ``.env`` file in
the working directory. Database settings are validated eagerly: a missing or
unsupported ``DB_TYPE``, or a server backend without host/user/name, raises
:class:`~pypeweb.errors.ConfigurationError` with a remediation message.
"""

from typing import Any, Optional

from pydantic import AliasChoices, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from pypeweb.errors import ConfigurationError

SAMPLE_ENV = (
    "DB_TYPE=mysql\n"
    "DB_HOST=localhost\n"
    "DB_USER=root\n"
    "DB_PASS=\n"
    "DB_NAME=your_database_name\n"
    "DB_PORT=3306\n\n"
    "Or use SQLite:\n\n"
    "DB_TYPE=sqlite\n"
    "DB_PATH=/path/to/database.sqlite"
)

DIALECT_ALIASES = {
    "mysql": "mysql",
    "mariadb": "mysql",
    "pgsql": "pgsql",
    "postgres": "pgsql",
    "postgresql": "pgsql",
    "sqlite": "sqlite",
    "sqlite3": "sqlite",
}

DEFAULT_PORTS = {"mysql": 3306, "pgsql": 5432}


class DatabaseSettings(BaseSettings):
    """Connection settings read from ``DB_*`` variables."""

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    type: Optional[str] = None
    host: Optional[str] = None
    user: Optional[str] = None
    password: str = Field("", validation_alias=AliasChoices("DB_PASS", "password"))
    name: Optional[str] = None
    port: Optional[int] = None
    path: str = "db.sqlite"
    pool_size: int = 5

    @property
    def dialect(self) -> str:
        """Normalized backend name: ``mysql``, ``pgsql`` or ``sqlite``."""
        if not self.type:
            raise ConfigurationError(
                "Database type (DB_TYPE) not configured.\n\n"
                "Supported types: mysql, postgresql (pgsql), sqlite\n"
                "Please set DB_TYPE in your .env file or environment variables.\n\n"
                + SAMPLE_ENV
            )
        dialect = DIALECT_ALIASES.get(self.type.strip().lower())
        if dialect is None:
            raise ConfigurationError(
                f"Unsupported database type: {self.type}\n\n"
                "Supported types:\n"
                "- mysql (MySQL/MariaDB)\n"
                "- postgresql or pgsql (PostgreSQL)\n"
                "- sqlite (SQLite)\n\n"
                "Set DB_TYPE in your .env file to one of these values."
            )
        return dialect

    @property
    def effective_port(self) -> Optional[int]:
        return self.port or DEFAULT_PORTS.get(self.dialect)

    def validate_backend(self) -> "DatabaseSettings":
        """Check that the selected backend has everything it needs."""
        dialect = self.dialect
        if dialect == "sqlite":
            return self

        missing = [key for key, value in (("DB_HOST", self.host), ("DB_USER", self.user), ("DB_NAME", self.name)) if not value]
        if missing:
            label = "MySQL" if dialect == "mysql" else "PostgreSQL"
            raise ConfigurationError(
                f"{label} configuration incomplete.\n"
                "Required settings: DB_HOST, DB_USER, DB_NAME\n"
                f"Optional: DB_PASS, DB_PORT (default: {DEFAULT_PORTS[dialect]})\n\n"
                "Current values:\n"
                f"- DB_HOST: {self.host or 'NOT SET'}\n"
                f"- DB_USER: {self.user or 'NOT SET'}\n"
                f"- DB_NAME: {self.name or 'NOT SET'}"
            )
        return self

    def describe(self) -> str:
        """Human-readable summary used in connection failure messages."""
        return (
            f"- DB_HOST: {self.host or 'NOT SET'}\n"
            f"- DB_NAME: {self.name or 'NOT SET'}\n"
            f"- DB_USER: {self.user or 'NOT SET'}\n"
            f"- DB_TYPE: {self.type or 'NOT SET'}"
        )


class AppSettings(BaseSettings):
    """Application-level settings read from ``APP_*`` and ``LOG_*`` variables."""

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    name: str = "pypeweb"
    debug: bool = False
    session_lifetime: int = 7200
    view_path: str = "templates"
    controllers: Optional[str] = None
    log_level: str = Field("INFO", validation_alias=AliasChoices("LOG_LEVEL", "log_level"))
    log_json: Optional[bool] = Field(None, validation_alias=AliasChoices("LOG_JSON", "log_json"))


class MailSettings(BaseSettings):
    """SMTP settings read from ``MAIL_*`` variables."""

    model_config = SettingsConfigDict(
        env_prefix="MAIL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    driver: str = "smtp"
    host: str = "localhost"
    port: int = 587
    username: Optional[str] = None
    password: Optional[str] = None
    from_address: str = Field("noreply@example.com", validation_alias=AliasChoices("MAIL_FROM", "from_address"))
    from_name: str = "Pype Web"
    use_tls: bool = True
    timeout: int = 10


def load_database_settings(**overrides: Any) -> DatabaseSettings:
    """Read and validate database settings, wrapping pydantic errors."""
    try:
        settings = DatabaseSettings(**overrides)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid database configuration:\n{exc}\n\n{SAMPLE_ENV}") from exc
    return settings.validate_backend()


def load_app_settings(**overrides: Any) -> AppSettings:
    try:
        return AppSettings(**overrides)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid application configuration:\n{exc}") from exc


def load_mail_settings(**overrides: Any) -> MailSettings:
    try:
        return MailSettings(**overrides)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid mail configuration:\n{exc}") from exc
