"""
Request handling for Pype Web.

A :class:`Request` is built once per HTTP request, either from a WSGI
environ (:meth:`Request.from_wsgi`) or directly from a plain dict in tests.
It is passed explicitly to middleware and handlers and carries the
:class:`~pypeweb.session.Session` for the request.
"""

import json
from http.cookies import SimpleCookie
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl

from pypeweb.session import Session
from pypeweb.uploads import UploadedFile, parse_multipart

OVERRIDABLE_METHODS = {"PUT", "PATCH", "DELETE"}


def _parse_pairs(text: str) -> Dict[str, str]:
    return dict(parse_qsl(text, keep_blank_values=True))


class Request:
    """
    Represents an incoming HTTP request.

    ``environ`` is a simplified mapping with the keys ``method``, ``path``,
    ``headers``, ``query_params``, ``form_data``, ``body``, ``cookies``,
    ``files`` (field name to :class:`~pypeweb.uploads.UploadedFile`) and
    ``remote_addr``. Header names are stored lower-case.
    """

    def __init__(self, environ: Optional[Dict[str, Any]] = None, session: Optional[Session] = None):
        self._environ = environ or {}
        self._headers = {k.lower(): v for k, v in self._environ.get("headers", {}).items()}
        self._query_params = self._environ.get("query_params", {})
        self._body = self._environ.get("body", "")
        self._form_data = self._environ.get("form_data", {})
        self._cookies = self._environ.get("cookies", {})
        self._files = self._environ.get("files", {})
        self.session = session if session is not None else Session()
        self.params: Dict[str, str] = {}
        self.user: Optional[Dict[str, Any]] = None
        # set by the router once a route matches
        self.route: Any = None
        self.router: Any = None
        self.app: Any = None

    @classmethod
    def from_wsgi(cls, environ: Dict[str, Any], session: Optional[Session] = None) -> "Request":
        """Build a request from a PEP 3333 environ."""
        headers = {
            key[5:].replace("_", "-").lower(): value for key, value in environ.items() if key.startswith("HTTP_")
        }
        if environ.get("CONTENT_TYPE"):
            headers["content-type"] = environ["CONTENT_TYPE"]

        try:
            length = int(environ.get("CONTENT_LENGTH") or 0)
        except ValueError:
            length = 0
        raw = environ["wsgi.input"].read(length) if length > 0 else b""
        content_type = headers.get("content-type", "")

        form_data: Dict[str, str] = {}
        files: Dict[str, UploadedFile] = {}
        if content_type.startswith("multipart/form-data"):
            form_data, files = parse_multipart(raw, content_type)
            body = ""
        else:
            body = raw.decode("utf-8", "replace")
            if content_type.startswith("application/x-www-form-urlencoded"):
                form_data = _parse_pairs(body)

        cookies = {}
        if headers.get("cookie"):
            jar = SimpleCookie()
            jar.load(headers["cookie"])
            cookies = {name: morsel.value for name, morsel in jar.items()}

        return cls(
            {
                "method": environ.get("REQUEST_METHOD", "GET"),
                "path": environ.get("PATH_INFO", "/") or "/",
                "headers": headers,
                "query_params": _parse_pairs(environ.get("QUERY_STRING", "")),
                "form_data": form_data,
                "files": files,
                "body": body,
                "cookies": cookies,
                "remote_addr": environ.get("REMOTE_ADDR", "127.0.0.1"),
            },
            session=session,
        )

    # ── Input ───────────────────────────────────────────────────────

    def get_query_param(self, name: str, default: str = "") -> str:
        """Return a single query-string parameter value."""
        return self._query_params.get(name, default)

    def get_all_query_params(self) -> Dict[str, str]:
        return dict(self._query_params)

    def get_header(self, name: str, default: str = "") -> str:
        """Return a single HTTP header value (case-insensitive)."""
        return self._headers.get(name.lower(), default)

    def get_json_body(self) -> Any:
        """Parse and return the JSON request body."""
        if isinstance(self._body, str):
            return json.loads(self._body) if self._body else {}
        return self._body

    def get_raw_body(self) -> str:
        return self._body

    def get_form_field(self, name: str, default: str = "") -> str:
        return self._form_data.get(name, default)

    def get_all_form_fields(self) -> Dict[str, str]:
        return dict(self._form_data)

    def input(self, name: str, default: Any = None) -> Any:
        """Look ``name`` up in the form, then the JSON body, then the query string."""
        if name in self._form_data:
            return self._form_data[name]
        if self.is_json:
            body = self.get_json_body()
            if isinstance(body, dict) and name in body:
                return body[name]
        return self._query_params.get(name, default)

    def all(self) -> Dict[str, Any]:
        """Query string, JSON body and form fields merged, later sources winning."""
        data: Dict[str, Any] = dict(self._query_params)
        if self.is_json:
            body = self.get_json_body()
            if isinstance(body, dict):
                data.update(body)
        data.update(self._form_data)
        return data

    def get_cookie(self, name: str, default: str = "") -> str:
        return self._cookies.get(name, default)

    @property
    def cookies(self) -> Dict[str, str]:
        return dict(self._cookies)

    def file(self, name: str) -> Optional[UploadedFile]:
        """The uploaded file sent in field ``name``, if any."""
        return self._files.get(name)

    def has_file(self, name: str) -> bool:
        file = self._files.get(name)
        return file is not None and bool(file.filename)

    def get_uploaded_filename(self, field_name: str) -> str:
        file = self._files.get(field_name)
        return file.filename if file is not None else ""

    # ── Request line ────────────────────────────────────────────────

    @property
    def path(self) -> str:
        return self._environ.get("path", "/")

    @property
    def raw_method(self) -> str:
        """The method as sent on the wire."""
        return self._environ.get("method", "GET").upper()

    @property
    def method(self) -> str:
        """The effective method: a POST form may override it with ``_method``."""
        method = self.raw_method
        if method == "POST":
            override = str(self._form_data.get("_method", "")).upper()
            if override in OVERRIDABLE_METHODS:
                return override
        return method

    @property
    def remote_addr(self) -> str:
        return self._environ.get("remote_addr", "127.0.0.1")

    # ── Content negotiation ─────────────────────────────────────────

    @property
    def is_json(self) -> bool:
        return "application/json" in self.get_header("content-type")

    @property
    def is_ajax(self) -> bool:
        return self.get_header("x-requested-with").lower() == "xmlhttprequest"

    @property
    def wants_json(self) -> bool:
        return self.is_ajax or "application/json" in self.get_header("accept")

    def __repr__(self) -> str:
        return f"<Request {self.method} {self.path}>"
