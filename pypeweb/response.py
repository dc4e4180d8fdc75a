"""
Response classes for Pype Web.
"""

import json
import math
from http import HTTPStatus
from http.cookies import SimpleCookie
from typing import Any, Dict, List, Optional, Tuple

from pypeweb.security import escape


class Response:
    """Base HTTP response."""

    def __init__(self, body: str = "", status_code: int = 200, content_type: str = "text/plain"):
        self.body = body
        self.status_code = status_code
        self.content_type = content_type
        self._headers: Dict[str, str] = {"Content-Type": f"{content_type}; charset=utf-8"}
        self._cookies = SimpleCookie()

    @property
    def headers(self) -> Dict[str, str]:
        return dict(self._headers)

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        for key, value in self._headers.items():
            if key.lower() == name.lower():
                return value
        return default

    def set_header(self, name: str, value: str) -> "Response":
        self._headers[name] = value
        return self

    def set_cookie(
        self,
        name: str,
        value: str,
        max_age: Optional[int] = None,
        path: str = "/",
        http_only: bool = True,
        secure: bool = False,
        same_site: str = "Lax",
    ) -> "Response":
        self._cookies[name] = value
        morsel = self._cookies[name]
        morsel["path"] = path
        morsel["samesite"] = same_site
        if max_age is not None:
            morsel["max-age"] = max_age
        if http_only:
            morsel["httponly"] = True
        if secure:
            morsel["secure"] = True
        return self

    def delete_cookie(self, name: str, path: str = "/") -> "Response":
        return self.set_cookie(name, "", max_age=0, path=path)

    @property
    def cookies(self) -> Dict[str, str]:
        return {name: morsel.value for name, morsel in self._cookies.items()}

    def redirect(self, url: str, permanent: bool = False) -> "Response":
        self.status_code = 301 if permanent else 302
        self._headers["Location"] = url
        return self

    # ── WSGI ────────────────────────────────────────────────────────

    @property
    def status_line(self) -> str:
        try:
            phrase = HTTPStatus(self.status_code).phrase
        except ValueError:
            phrase = {419: "Page Expired"}.get(self.status_code, "Unknown")
        return f"{self.status_code} {phrase}"

    def wsgi_headers(self) -> List[Tuple[str, str]]:
        headers = list(self._headers.items())
        headers.extend(("Set-Cookie", morsel.OutputString()) for morsel in self._cookies.values())
        return headers

    def encoded_body(self) -> bytes:
        return self.body.encode("utf-8") if isinstance(self.body, str) else self.body

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.status_code}>"


class JSONResponse(Response):
    """JSON HTTP response."""

    def __init__(self, data: Any, status_code: int = 200):
        body = json.dumps(data, default=str)
        super().__init__(body=body, status_code=status_code, content_type="application/json")
        self.data = data


class HTMLResponse(Response):
    """HTML HTTP response."""

    def __init__(self, html_content: str, status_code: int = 200):
        super().__init__(body=html_content, status_code=status_code, content_type="text/html")


class RedirectResponse(Response):
    def __init__(self, url: str, status_code: int = 302):
        super().__init__(body="", status_code=status_code, content_type="text/html")
        self._headers["Location"] = url
        self.url = url


def make_response(value: Any) -> Response:
    """Coerce a handler's return value: str -> HTML, dict/list -> JSON."""
    if isinstance(value, Response):
        return value
    if value is None:
        return Response("", status_code=204)
    if isinstance(value, (dict, list)):
        return JSONResponse(value)
    if isinstance(value, bytes):
        return HTMLResponse(value.decode("utf-8"))
    return HTMLResponse(str(value))


def error_response(status_code: int, message: str = "", as_json: bool = False) -> Response:
    """A minimal error page, or a JSON error body when ``as_json`` is set."""
    if as_json:
        return JSONResponse({"success": False, "status": status_code, "message": message}, status_code=status_code)
    title = Response(status_code=status_code).status_line
    html = f"<!DOCTYPE html><html><head><title>{escape(title)}</title></head><body><h1>{escape(title)}</h1>"
    if message:
        html += f"<p>{escape(message)}</p>"
    html += "</body></html>"
    return HTMLResponse(html, status_code=status_code)


class ApiResponse:
    """Uniform JSON envelopes for API endpoints."""

    @staticmethod
    def success(data: Any = None, message: str = "Success", status_code: int = 200) -> JSONResponse:
        return JSONResponse({"success": True, "message": message, "data": data}, status_code=status_code)

    @staticmethod
    def error(message: str = "Error", status_code: int = 400, errors: Any = None) -> JSONResponse:
        return JSONResponse(
            {"success": False, "message": message, "errors": errors if errors is not None else []},
            status_code=status_code,
        )

    @staticmethod
    def pagination(data: List[Any], total: int, per_page: int, current_page: int) -> JSONResponse:
        per_page = max(int(per_page), 1)
        return JSONResponse(
            {
                "success": True,
                "data": data,
                "pagination": {
                    "total": int(total),
                    "per_page": per_page,
                    "current_page": int(current_page),
                    "last_page": math.ceil(int(total) / per_page),
                },
            }
        )
