"""
Core application class for Pype Web.

:class:`PypeApp` owns the router, the template engine, the session store
and, optionally, a :class:`~pypeweb.database.Database`. It is a WSGI
application::

    app = PypeApp("blog", db=connect())

    @app.route("/posts/{id}", name="posts.show")
    def show(request, id):
        return app.view("posts.show", {"post": app.db.posts.find_or_fail(id)}, request)

Errors raised while handling a request are converted into responses here:
router errors become their status code, a missing record becomes a 404
and anything else is logged and rendered as a 500.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from pypeweb.config import AppSettings, load_app_settings
from pypeweb.errors import HttpError, NotFoundError
from pypeweb.logging import bind_request_context, clear_request_context, configure_logging, get_logger
from pypeweb.middleware import register_defaults
from pypeweb.request import Request
from pypeweb.response import HTMLResponse, JSONResponse, RedirectResponse, Response, error_response, make_response
from pypeweb.routing import Handler, Route, Router
from pypeweb.session import SESSION_COOKIE, Session, SessionStore
from pypeweb.templating import TemplateEngine

logger = get_logger(__name__)


class Controller:
    """Base class for controllers; gives actions access to the application."""

    def __init__(self, app: "PypeApp"):
        self.app = app

    @property
    def db(self):
        return self.app.db

    def view(self, name: str, context: Optional[Dict[str, Any]] = None, request: Optional[Request] = None) -> HTMLResponse:
        return self.app.view(name, context, request)

    def json(self, data: Any, status_code: int = 200) -> JSONResponse:
        return JSONResponse(data, status_code=status_code)

    def redirect(self, route_name: str, **params: Any) -> RedirectResponse:
        return RedirectResponse(self.app.url_for(route_name, **params))


class PypeApp:
    """Main application class that handles routing and request dispatching."""

    def __init__(
        self,
        app_name: str = "pypeweb",
        debug: bool = False,
        db=None,
        template_dir: str = "templates",
        controller_namespaces: Sequence[str] = (),
    ):
        self.app_name = app_name
        self.debug = debug
        self.db = db
        self.router = Router(controller_namespaces)
        self.router.controller_factory = self._make_controller
        self.sessions = SessionStore()
        self.templates = TemplateEngine(template_dir, url_for=self.url_for)
        self._middleware: List[Any] = []
        self._config: Dict[str, Any] = {}
        register_defaults(self.router)

    @classmethod
    def from_settings(cls, settings: Optional[AppSettings] = None, db=None) -> "PypeApp":
        """Build an application from ``APP_*`` settings and configure logging."""
        settings = settings or load_app_settings()
        configure_logging(settings.log_level, settings.log_json, service=settings.name)
        namespaces = [n.strip() for n in (settings.controllers or "").split(",") if n.strip()]
        app = cls(settings.name, debug=settings.debug, db=db, template_dir=settings.view_path, controller_namespaces=namespaces)
        app.sessions.idle_timeout = settings.session_lifetime
        return app

    def _make_controller(self, cls: type) -> Any:
        if issubclass(cls, Controller):
            return cls(self)
        return cls()

    # ── Registration ────────────────────────────────────────────────

    def route(
        self,
        path: str,
        methods: Optional[Iterable[str]] = None,
        name: Optional[str] = None,
        middleware: Optional[Sequence[Any]] = None,
        csrf_exempt: bool = False,
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Decorator to register a route handler."""
        if methods is None:
            methods = ["GET"]

        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            for index, method in enumerate(methods):
                route = self.router.add(method, path, func)
                if name and index == 0:
                    route.name(name)
                if middleware:
                    route.middleware(list(middleware))
                if csrf_exempt:
                    route.csrf_exempt()
            return func

        return decorator

    def get(self, path: str, handler: Handler, action: Optional[str] = None) -> Route:
        return self.router.get(path, handler, action)

    def post(self, path: str, handler: Handler, action: Optional[str] = None) -> Route:
        return self.router.post(path, handler, action)

    def put(self, path: str, handler: Handler, action: Optional[str] = None) -> Route:
        return self.router.put(path, handler, action)

    def patch(self, path: str, handler: Handler, action: Optional[str] = None) -> Route:
        return self.router.patch(path, handler, action)

    def delete(self, path: str, handler: Handler, action: Optional[str] = None) -> Route:
        return self.router.delete(path, handler, action)

    def group(self, prefix: str = "", middleware: Any = None):
        return self.router.group(prefix=prefix, middleware=middleware)

    def add_middleware(self, middleware: Any) -> None:
        """Add middleware that wraps every request, before routing."""
        self._middleware.append(middleware)

    def register_middleware(self, alias: str, middleware: Any) -> None:
        self.router.register_middleware(alias, middleware)

    def register_controller(self, controller: type, name: Optional[str] = None) -> type:
        return self.router.register_controller(controller, name)

    def configure(self, config: Dict[str, Any]) -> None:
        """Load application configuration."""
        self._config.update(config)

    def get_config(self, key: str, default: Any = None) -> Any:
        return self._config.get(key, default)

    # ── Helpers ─────────────────────────────────────────────────────

    def url_for(self, name: str, **params: Any) -> str:
        return self.router.url_for(name, **params)

    def view(self, name: str, context: Optional[Dict[str, Any]] = None, request: Optional[Request] = None) -> HTMLResponse:
        return HTMLResponse(self.templates.view(name, context, request))

    # ── Dispatch ────────────────────────────────────────────────────

    def handle(self, request: Request) -> Response:
        """Run one request through global middleware, routing and the handler."""
        request.app = self
        bind_request_context(method=request.method, path=request.path)
        try:
            pipeline = self._build_global_pipeline()
            response = pipeline(request, {})
        except HttpError as exc:
            logger.info("http_error", status=exc.status_code, message=exc.message)
            response = error_response(exc.status_code, exc.message, as_json=request.wants_json)
        except NotFoundError as exc:
            logger.info("record_not_found", table=exc.table, key=exc.key)
            response = error_response(404, str(exc) if self.debug else "Not Found", as_json=request.wants_json)
        except Exception as exc:
            logger.exception("unhandled_exception", error=str(exc))
            message = f"{type(exc).__name__}: {exc}" if self.debug else "Internal Server Error"
            response = error_response(500, message, as_json=request.wants_json)
        finally:
            clear_request_context()

        if request.raw_method == "HEAD":
            response.body = ""
        return response

    def _build_global_pipeline(self):
        def endpoint(request: Request, params: Dict[str, str]) -> Response:
            return self.router.dispatch(request)

        pipeline = endpoint
        for middleware in reversed([self.router.resolve_middleware(m) for m in self._middleware]):
            pipeline = self.router._wrap(middleware, pipeline)
        return pipeline

    def dispatch(self, method: str, path: str, session: Optional[Session] = None, **environ: Any) -> Response:
        """Handle a request described by keyword arguments (see :class:`Request`)."""
        environ.update(method=method, path=path)
        return self.handle(Request(environ, session=session))

    # ── WSGI ────────────────────────────────────────────────────────

    def __call__(self, environ: Dict[str, Any], start_response: Callable[..., Any]) -> List[bytes]:
        request = Request.from_wsgi(environ)
        session = self.sessions.load(request.get_cookie(SESSION_COOKIE))
        request.session = session

        response = make_response(self.handle(request))

        # empty new sessions are never stored
        if session.previous_id:
            self.sessions.delete(session.previous_id)
        if session.modified:
            self.sessions.save(session)
            if session.is_new:
                response.set_cookie(SESSION_COOKIE, session.id)

        start_response(response.status_line, response.wsgi_headers())
        return [response.encoded_body()]

    def run(self, host: str = "127.0.0.1", port: int = 8000) -> None:
        """Serve the application with the stdlib reference WSGI server."""
        from wsgiref.simple_server import make_server

        logger.info("server_starting", app=self.app_name, host=host, port=port, debug=self.debug)
        with make_server(host, port, self) as server:
            server.serve_forever()
