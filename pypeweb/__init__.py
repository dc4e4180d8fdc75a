"""
Pype Web - a small server-rendered / JSON web framework.

Routing with middleware chaining, a multi-backend fluent query builder
(SQLite, PostgreSQL, MySQL), models, migrations and seeders, sessions,
authentication, CSRF protection, validation, Jinja2 views and a CLI.
"""

from pypeweb.app import Controller, PypeApp
from pypeweb.auth import Auth
from pypeweb.database import Database, Migration, Model, QueryBuilder, Seeder, connect
from pypeweb.logging import configure_logging, get_logger
from pypeweb.request import Request
from pypeweb.resources import Resource
from pypeweb.response import ApiResponse, HTMLResponse, JSONResponse, RedirectResponse, Response, error_response
from pypeweb.routing import Route, Router
from pypeweb.security import CSRF, Sanitizer, hash_password, verify_password
from pypeweb.session import Session
from pypeweb.templating import TemplateEngine
from pypeweb.uploads import FileUploader, UploadedFile
from pypeweb.utils import CacheManager
from pypeweb.validation import Validator

__version__ = "1.0.0"
__all__ = [
    "PypeApp",
    "Controller",
    "Request",
    "Response",
    "JSONResponse",
    "HTMLResponse",
    "RedirectResponse",
    "ApiResponse",
    "error_response",
    "Route",
    "Router",
    "Session",
    "Auth",
    "CSRF",
    "Sanitizer",
    "hash_password",
    "verify_password",
    "Validator",
    "Resource",
    "TemplateEngine",
    "CacheManager",
    "FileUploader",
    "UploadedFile",
    "Database",
    "QueryBuilder",
    "Model",
    "Migration",
    "Seeder",
    "connect",
    "configure_logging",
    "get_logger",
]
