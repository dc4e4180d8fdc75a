"""
Built-in middleware.

Middleware is any object with ``handle(request, params, next)`` or a plain
callable with the same signature. Return ``next(request, params)`` to
continue down the chain, or a response to short-circuit it.
"""

import time
from typing import Any, Callable, Dict, Iterable, Optional

from pypeweb.auth import Auth
from pypeweb.errors import RouteNotFound
from pypeweb.logging import get_logger
from pypeweb.request import Request
from pypeweb.response import JSONResponse, RedirectResponse, Response, make_response
from pypeweb.routing import Router
from pypeweb.utils import CacheManager

logger = get_logger(__name__)

Next = Callable[[Request, Dict[str, str]], Response]


def _redirect_to(request: Request, route_name: str, fallback: str) -> RedirectResponse:
    target = fallback
    if request.router is not None:
        try:
            target = request.router.url_for(route_name)
        except RouteNotFound:
            pass
    return RedirectResponse(target)


class AuthMiddleware:
    """Redirects to the ``login`` route unless a user is in the session.

    A request without a session user but with a valid remember-me cookie is
    logged back in through :class:`~pypeweb.auth.Auth`.
    """

    login_route = "login"

    def handle(self, request: Request, params: Dict[str, str], next: Next) -> Response:
        if request.session.get("user_id") is not None or self._remembered(request):
            return next(request, params)
        logger.info("auth_redirect", path=request.path)
        return _redirect_to(request, self.login_route, "/login")

    @staticmethod
    def _remembered(request: Request) -> bool:
        db = getattr(request.app, "db", None)
        if db is None:
            return False
        return Auth.from_request(db, request).check()


class GuestMiddleware:
    """Redirects logged-in users to the ``dashboard`` route."""

    home_route = "dashboard"

    def handle(self, request: Request, params: Dict[str, str], next: Next) -> Response:
        if request.session.get("user_id") is None:
            return next(request, params)
        return _redirect_to(request, self.home_route, "/dashboard")


class CorsMiddleware:
    def __init__(
        self,
        allow_origin: str = "*",
        allow_methods: str = "GET, POST, PUT, DELETE, OPTIONS",
        allow_headers: str = "Content-Type, Authorization, X-Requested-With, X-CSRF-Token",
    ):
        self.headers = {
            "Access-Control-Allow-Origin": allow_origin,
            "Access-Control-Allow-Methods": allow_methods,
            "Access-Control-Allow-Headers": allow_headers,
            "Access-Control-Allow-Credentials": "true",
        }

    def handle(self, request: Request, params: Dict[str, str], next: Next) -> Response:
        if request.method == "OPTIONS":
            response = Response("", status_code=200)
        else:
            response = make_response(next(request, params))
        for name, value in self.headers.items():
            response.set_header(name, value)
        return response


class RateLimitMiddleware:
    """Fixed-window limit per client address.

    Counters live in a shared :class:`~pypeweb.utils.CacheManager`; register
    one instance per application so the window survives across requests.
    """

    def __init__(self, max_attempts: int = 60, decay_seconds: int = 60, cache: Optional[CacheManager] = None):
        self.max_attempts = max_attempts
        self.decay_seconds = decay_seconds
        self.cache = cache if cache is not None else CacheManager()

    def handle(self, request: Request, params: Dict[str, str], next: Next) -> Response:
        key = f"rate_limit:{request.remote_addr}"
        attempts = self.cache.get(key, 0)

        if attempts >= self.max_attempts:
            logger.warning("rate_limit_exceeded", client=request.remote_addr)
            response = JSONResponse({"error": "Too Many Requests"}, status_code=429)
            retry_after = self.cache.ttl(key)
            if retry_after is not None:
                response.set_header("Retry-After", str(int(retry_after) + 1))
            self._limit_headers(response, 0)
            return response

        if attempts == 0:
            self.cache.set(key, 1, ttl=self.decay_seconds)
        else:
            # keep the window's original expiry
            remaining_ttl = self.cache.ttl(key)
            self.cache.set(key, attempts + 1, ttl=max(remaining_ttl or 0, 0.001))
        response = make_response(next(request, params))
        self._limit_headers(response, self.max_attempts - attempts - 1)
        return response

    def _limit_headers(self, response: Response, remaining: int) -> None:
        response.set_header("X-RateLimit-Limit", str(self.max_attempts))
        response.set_header("X-RateLimit-Remaining", str(max(remaining, 0)))


class CsrfMiddleware:
    """Explicit CSRF check for routes that skip the router's built-in gate."""

    def __init__(self, exempt_paths: Iterable[str] = ()):
        self.exempt_paths = set(exempt_paths)

    def handle(self, request: Request, params: Dict[str, str], next: Next) -> Response:
        if request.raw_method == "POST" and request.path not in self.exempt_paths:
            Router.enforce_csrf(request)
        return next(request, params)


class LogMiddleware:
    def handle(self, request: Request, params: Dict[str, str], next: Next) -> Response:
        started = time.perf_counter()
        response = make_response(next(request, params))
        logger.info(
            "request_handled",
            method=request.method,
            path=request.path,
            status=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return response


DEFAULT_MIDDLEWARE: Dict[str, Any] = {
    "auth": AuthMiddleware,
    "guest": GuestMiddleware,
    "cors": CorsMiddleware,
    "csrf": CsrfMiddleware,
    "log": LogMiddleware,
}


def register_defaults(router: Router, rate_limit: Optional[RateLimitMiddleware] = None) -> None:
    for alias, middleware in DEFAULT_MIDDLEWARE.items():
        router.register_middleware(alias, middleware)
    router.register_middleware("throttle", rate_limit or RateLimitMiddleware())
