"""
Demo application entry point using the Pype Web framework.

This wires up the routes and starts the server. Without ``DB_*`` settings
the blog runs on a local SQLite file; create its tables first with::

    pype migrate run --dir app/migrations
    pype db seed
"""

import os
from typing import Optional

from pypeweb import PypeApp, configure_logging
from pypeweb.config import DatabaseSettings
from pypeweb.database import Database
from pypeweb.middleware import CorsMiddleware, LogMiddleware

from app.views import ApiController, AuthController, DashboardController, PostController

BASE_DIR = os.path.dirname(os.path.abspath(__file__))


def demo_database() -> Database:
    settings = DatabaseSettings()
    if not settings.type:
        settings = DatabaseSettings(type="sqlite", path=os.path.join(BASE_DIR, os.pardir, "blog.sqlite"))
    return Database(settings.validate_backend())


# ── Application setup ───────────────────────────────────────────────


def create_app(db: Optional[Database] = None, debug: bool = True) -> PypeApp:
    if db is None:
        db = demo_database()
    app = PypeApp("blog", debug=debug, db=db, template_dir=os.path.join(BASE_DIR, "templates"))
    app.add_middleware(LogMiddleware)
    app.add_middleware(CorsMiddleware(allow_origin="*"))

    for controller in (PostController, AuthController, DashboardController, ApiController):
        app.register_controller(controller)

    # ── Route registration ──────────────────────────────────────────

    @app.route("/", name="home")
    def home(request):
        return app.view("home", {}, request)

    app.get("/posts", "PostController@index").name("posts.index")
    app.get("/posts/create", "PostController@create").name("posts.create").middleware("auth")
    app.post("/posts", "PostController@store").name("posts.store").middleware("auth")
    app.get("/posts/{id}", "PostController@show").name("posts.show")
    app.get("/posts/{id}/edit", "PostController@edit").name("posts.edit").middleware("auth")
    app.put("/posts/{id}", "PostController@update").name("posts.update").middleware(["csrf", "auth"])
    app.delete("/posts/{id}", "PostController@destroy").name("posts.destroy").middleware(["csrf", "auth"])

    with app.group(middleware="guest"):
        app.get("/login", "AuthController@show_login").name("login")
        app.post("/login", "AuthController@login")
        app.get("/register", "AuthController@show_register").name("register")
        app.post("/register", "AuthController@register")

    with app.group(middleware="auth"):
        app.get("/dashboard", "DashboardController@index").name("dashboard")
        app.post("/logout", "AuthController@logout").name("logout")

    with app.group(prefix="/api", middleware="throttle"):
        app.get("/posts", ApiController, "posts").name("api.posts.index")
        app.get("/posts/{id}", ApiController, "post").name("api.posts.show")
        app.get("/users", ApiController, "users").name("api.users.index").middleware("auth")

    return app


app = create_app()


# ── Start the server ────────────────────────────────────────────────

if __name__ == "__main__":
    configure_logging("DEBUG")
    app.run(host="0.0.0.0", port=8080)
