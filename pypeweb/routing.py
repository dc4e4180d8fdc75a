"""
Routing and the middleware pipeline.

Routes are matched in registration order; the first full match wins.
``{name}`` segments capture one path segment each and are passed to the
handler as keyword arguments::

    router.get("/posts/{id}", show_post).name("posts.show").middleware("auth")

    with router.group(prefix="/admin", middleware=["auth"]):
        router.get("/dashboard", "DashboardController@index").name("dashboard")

Before any middleware runs, POST routes that are not ``csrf_exempt``
require a valid CSRF token. Middleware is folded right to left around the
handler, so the first middleware listed is the outermost.
"""

import importlib
import re
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple, Union
from urllib.parse import quote, urlencode

from pypeweb.errors import CSRFError, HandlerResolutionError, RouteNotFound
from pypeweb.logging import get_logger
from pypeweb.request import Request
from pypeweb.response import Response, make_response
from pypeweb.security import CSRF, CSRF_HEADER, CSRF_TOKEN_NAME

logger = get_logger(__name__)

Handler = Union[Callable[..., Any], Tuple[Any, str], str]
Next = Callable[[Request, Dict[str, str]], Response]

_PARAM_RE = re.compile(r"\{([a-zA-Z0-9_]+)\}")


def normalize_path(path: str) -> str:
    path = "/" + path.strip("/")
    return path


def compile_pattern(path: str) -> "re.Pattern":
    """``/posts/{id}`` -> ``^/posts/(?P<id>[^/]+)$``."""
    pattern = ""
    last = 0
    for match in _PARAM_RE.finditer(path):
        pattern += re.escape(path[last:match.start()]) + f"(?P<{match.group(1)}>[^/]+)"
        last = match.end()
    pattern += re.escape(path[last:])
    return re.compile(f"^{pattern}$")


class Route:
    """A registered route. Chainable modifiers return the route itself."""

    def __init__(self, method: str, path: str, handler: Handler, middleware: Optional[List[Any]] = None):
        self.method = method.upper()
        self.path = path
        self.handler = handler
        self.middleware_stack: List[Any] = list(middleware or [])
        self.route_name: Optional[str] = None
        self.is_csrf_exempt = False
        self.pattern = compile_pattern(path)

    def middleware(self, middleware: Union[Any, Sequence[Any]]) -> "Route":
        if isinstance(middleware, (list, tuple)):
            self.middleware_stack.extend(middleware)
        else:
            self.middleware_stack.append(middleware)
        return self

    def name(self, name: str) -> "Route":
        self.route_name = name
        return self

    def csrf_exempt(self) -> "Route":
        self.is_csrf_exempt = True
        return self

    def matches_method(self, method: str) -> bool:
        return self.method == method or (method == "HEAD" and self.method == "GET")

    def match(self, method: str, path: str) -> Optional[Dict[str, str]]:
        if not self.matches_method(method):
            return None
        found = self.pattern.match(path)
        return found.groupdict() if found else None

    def __repr__(self) -> str:
        return f"<Route {self.method} {self.path} name={self.route_name!r}>"


class Router:
    """Route table, middleware aliases and dispatch."""

    def __init__(self, controller_namespaces: Sequence[str] = ()):
        self.routes: List[Route] = []
        self.middleware_aliases: Dict[str, Any] = {}
        self.controllers: Dict[str, type] = {}
        self.controller_namespaces: List[str] = list(controller_namespaces)
        self.controller_factory: Callable[[type], Any] = lambda cls: cls()
        self._groups: List[Tuple[str, List[Any]]] = []

    # ── Registration ────────────────────────────────────────────────

    def add(self, method: str, path: str, handler: Handler, action: Optional[str] = None) -> Route:
        if action is not None and isinstance(handler, (str, type)):
            handler = (handler, action)

        prefix = ""
        middleware: List[Any] = []
        for group_prefix, group_middleware in self._groups:
            if group_prefix:
                prefix += "/" + group_prefix.strip("/")
            middleware.extend(group_middleware)

        route = Route(method, normalize_path(prefix + "/" + path.lstrip("/")), handler, middleware)
        self.routes.append(route)
        return route

    def get(self, path: str, handler: Handler, action: Optional[str] = None) -> Route:
        return self.add("GET", path, handler, action)

    def post(self, path: str, handler: Handler, action: Optional[str] = None) -> Route:
        return self.add("POST", path, handler, action)

    def put(self, path: str, handler: Handler, action: Optional[str] = None) -> Route:
        return self.add("PUT", path, handler, action)

    def patch(self, path: str, handler: Handler, action: Optional[str] = None) -> Route:
        return self.add("PATCH", path, handler, action)

    def delete(self, path: str, handler: Handler, action: Optional[str] = None) -> Route:
        return self.add("DELETE", path, handler, action)

    @contextmanager
    def group(self, prefix: str = "", middleware: Union[Any, Sequence[Any], None] = None) -> Iterator["Router"]:
        """Prefix paths and prepend middleware for routes defined inside."""
        if middleware is None:
            middleware = []
        elif not isinstance(middleware, (list, tuple)):
            middleware = [middleware]
        self._groups.append((prefix, list(middleware)))
        try:
            yield self
        finally:
            self._groups.pop()

    def register_middleware(self, alias: str, handler: Any) -> None:
        self.middleware_aliases[alias] = handler

    def register_controller(self, controller: type, name: Optional[str] = None) -> type:
        self.controllers[name or controller.__name__] = controller
        return controller

    # ── Lookup ──────────────────────────────────────────────────────

    def match(self, method: str, path: str) -> Tuple[Route, Dict[str, str]]:
        method = method.upper()
        path = normalize_path(path)
        for route in self.routes:
            params = route.match(method, path)
            if params is not None:
                return route, params
        raise RouteNotFound("Page Not Found")

    def url_for(self, name: str, **params: Any) -> str:
        """Build the path for the route called ``name``.

        Parameters that are not path placeholders become the query string.
        """
        for route in self.routes:
            if route.route_name != name:
                continue
            path = route.path
            leftovers = {}
            for key, value in params.items():
                placeholder = "{" + key + "}"
                if placeholder in path:
                    path = path.replace(placeholder, quote(str(value), safe=""))
                else:
                    leftovers[key] = value
            if leftovers:
                path += "?" + urlencode(leftovers)
            return path
        raise RouteNotFound(f"Route not found for name: {name}")

    def has_route(self, name: str) -> bool:
        return any(route.route_name == name for route in self.routes)

    # ── Dispatch ────────────────────────────────────────────────────

    def dispatch(self, request: Request) -> Response:
        """Run ``request`` through the matched route's pipeline.

        Raises :class:`RouteNotFound`, :class:`CSRFError` or
        :class:`HandlerResolutionError`; the application turns those into
        status responses.
        """
        route, params = self.match(request.method, request.path)
        request.params = params
        request.route = route
        request.router = self
        logger.debug("route_matched", method=request.method, path=request.path, route=route.path)

        if route.method == "POST" and not route.is_csrf_exempt:
            self.enforce_csrf(request)

        pipeline = self.build_pipeline(route)
        return pipeline(request, params)

    @staticmethod
    def enforce_csrf(request: Request) -> None:
        submitted = request.get_form_field(CSRF_TOKEN_NAME) or request.get_header(CSRF_HEADER)
        if not CSRF.validate_token(request.session, submitted):
            logger.warning("csrf_rejected", method=request.method, path=request.path)
            raise CSRFError("Page Expired. CSRF token mismatch, please refresh and try again.")

    def build_pipeline(self, route: Route) -> Next:
        handler = self.resolve_handler(route.handler)

        def endpoint(request: Request, params: Dict[str, str]) -> Response:
            return make_response(handler(request, **params))

        pipeline: Next = endpoint
        for middleware in reversed([self.resolve_middleware(m) for m in route.middleware_stack]):
            pipeline = self._wrap(middleware, pipeline)
        return pipeline

    @staticmethod
    def _wrap(middleware: Callable[..., Any], next_step: Next) -> Next:
        def step(request: Request, params: Dict[str, str]) -> Response:
            return make_response(middleware(request, params, next_step))

        return step

    def resolve_middleware(self, middleware: Any) -> Callable[..., Any]:
        if isinstance(middleware, str):
            if middleware not in self.middleware_aliases:
                raise HandlerResolutionError(f"Middleware {middleware} is not registered")
            middleware = self.middleware_aliases[middleware]
        if isinstance(middleware, type):
            middleware = middleware()
        if hasattr(middleware, "handle"):
            return middleware.handle
        if callable(middleware):
            return middleware
        raise HandlerResolutionError(f"Invalid middleware: {middleware!r}")

    def resolve_handler(self, handler: Handler) -> Callable[..., Any]:
        if isinstance(handler, str):
            if "@" not in handler:
                raise HandlerResolutionError(f"Invalid route handler: {handler}")
            controller, action = handler.rsplit("@", 1)
            handler = (controller, action)

        if isinstance(handler, tuple) and len(handler) == 2:
            controller, action = handler
            cls = self.resolve_controller(controller) if isinstance(controller, str) else controller
            instance = self.controller_factory(cls) if isinstance(cls, type) else cls
            method = getattr(instance, action, None)
            if method is None or not callable(method):
                raise HandlerResolutionError(f"Method {action} not found in {getattr(cls, '__name__', cls)}")
            return method

        if callable(handler):
            return handler
        raise HandlerResolutionError("Invalid route handler")

    def resolve_controller(self, name: str) -> type:
        """Find a controller class by registry name, ``module:Class`` or namespace."""
        if name in self.controllers:
            return self.controllers[name]

        candidates: List[Tuple[str, str]] = []
        if ":" in name:
            module_name, class_name = name.split(":", 1)
            candidates.append((module_name, class_name))
        else:
            candidates.extend((namespace, name) for namespace in self.controller_namespaces)

        for module_name, class_name in candidates:
            try:
                module = importlib.import_module(module_name)
            except ModuleNotFoundError as exc:
                # only skip when the namespace itself is missing, not one of its imports
                if exc.name is None or not (module_name + ".").startswith(exc.name + "."):
                    raise
                continue
            cls = getattr(module, class_name, None)
            if isinstance(cls, type):
                return cls

        raise HandlerResolutionError(
            f"Controller {name} not found. Check that it is registered or lives in a configured controller namespace."
        )
