"""
Exception hierarchy for the Pype Web framework.

Configuration and connection errors abort request handling entirely.
Query errors propagate to the application, which logs them and renders a
500 page. HTTP errors raised by the router are converted into status
responses.
"""

from typing import Any, Dict, Optional


class PypeError(Exception):
    """Base class for every error raised by the framework."""


class ConfigurationError(PypeError):
    """Missing or invalid settings; fatal at boot."""


class DatabaseConnectionError(PypeError):
    """The driver could not open a connection."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class QueryError(PypeError):
    """Prepare or execute failed. Carries the driver's native message."""

    def __init__(self, message: str, sql: str = "", params: Optional[list] = None):
        super().__init__(message)
        self.sql = sql
        self.params = list(params or [])


class QueryBuilderMisuseError(QueryError, ValueError):
    """The builder was called with arguments it can never compile."""


class NotFoundError(PypeError):
    """A ``*_or_fail`` lookup matched no row."""

    def __init__(self, message: str, table: str = "", key: Any = None):
        super().__init__(message)
        self.table = table
        self.key = key


class MigrationError(PypeError):
    """A migration file could not be loaded or applied."""


class HttpError(PypeError):
    """An error that maps directly onto an HTTP status code."""

    status_code = 500

    def __init__(self, message: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "status": self.status_code, "message": self.message}


class RouteNotFound(HttpError):
    status_code = 404


class HandlerResolutionError(HttpError):
    status_code = 500


class CSRFError(HttpError):
    status_code = 419


class MailError(PypeError):
    """The SMTP server refused or dropped a message."""


class UploadError(HttpError):
    """An uploaded file was missing, too large or of a disallowed type."""

    status_code = 422
