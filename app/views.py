"""
Controllers for the demo blog.

Post CRUD renders HTML views; the ``/api`` routes return JSON envelopes.
Form submissions are validated, sanitized and then written through the
``Post`` model. Validation errors and old input travel back to the form as
flash messages.
"""

from typing import Any, Dict

from pypeweb import ApiResponse, Auth, Controller, Request, Sanitizer, Validator
from pypeweb.resources import HiddenFieldsResource, Resource
from pypeweb.utils import excerpt, slugify

from app.models import Post, User

PER_PAGE = 10
SLUG_LENGTH = 255

POST_RULES = {
    "title": "required|min:3|max:255",
    "body": "required",
}


def _int_param(request: Request, name: str, default: int) -> int:
    try:
        return max(int(request.get_query_param(name, str(default))), 1)
    except ValueError:
        return default


class PostResource(Resource):
    @classmethod
    def to_dict(cls, post: Any) -> Dict[str, Any]:
        return {
            "id": post["id"],
            "title": post["title"],
            "slug": post["slug"],
            "excerpt": excerpt(post.get("body") or ""),
            "created_at": post.get("created_at"),
        }


class UserResource(HiddenFieldsResource):
    pass


# ── Posts ───────────────────────────────────────────────────────────


class PostController(Controller):
    def _clean(self, request: Request) -> Dict[str, Any]:
        title = Sanitizer.strip_tags(request.input("title", "")).strip()
        return {
            "title": title,
            # "@" expands to "-at-", so a valid title can still overflow the column
            "slug": Sanitizer.truncate(slugify(title), SLUG_LENGTH).rstrip("-"),
            "body": Sanitizer.clean(request.input("body", "")),
        }

    def index(self, request: Request):
        page = _int_param(request, "page", 1)
        posts = Post.using(self.db).order_by("id", "DESC").paginate(PER_PAGE, page)
        total = Post.using(self.db).count()
        return self.view(
            "posts.index",
            {"posts": posts, "page": page, "has_more": page * PER_PAGE < total},
            request,
        )

    def create(self, request: Request):
        return self.view(
            "posts.create",
            {"errors": request.session.get_flash("errors", {}), "old": request.session.get_flash("old", {})},
            request,
        )

    def store(self, request: Request):
        validator = Validator.make(request.all(), POST_RULES)
        if validator.fails():
            request.session.flash("errors", validator.errors())
            request.session.flash("old", {"title": request.input("title", ""), "body": request.input("body", "")})
            return self.redirect("posts.create")

        data = self._clean(request)
        data["user_id"] = request.session.get("user_id")
        post = Post.using(self.db).create(data)
        request.session.flash("status", "Post created.")
        return self.redirect("posts.show", id=post.key)

    def show(self, request: Request, id: str):
        post = Post.using(self.db).find_or_fail(id)
        return self.view("posts.show", {"post": post, "status": request.session.get_flash("status")}, request)

    def edit(self, request: Request, id: str):
        post = Post.using(self.db).find_or_fail(id)
        return self.view("posts.edit", {"post": post, "errors": request.session.get_flash("errors", {})}, request)

    def update(self, request: Request, id: str):
        post = Post.using(self.db).find_or_fail(id)
        validator = Validator.make(request.all(), POST_RULES)
        if validator.fails():
            request.session.flash("errors", validator.errors())
            return self.redirect("posts.edit", id=post.key)

        for column, value in self._clean(request).items():
            post[column] = value
        post.save()
        request.session.flash("status", "Post updated.")
        return self.redirect("posts.show", id=post.key)

    def destroy(self, request: Request, id: str):
        Post.using(self.db).find_or_fail(id).remove()
        request.session.flash("status", "Post deleted.")
        return self.redirect("posts.index")


# ── Authentication ──────────────────────────────────────────────────


class AuthController(Controller):
    def show_login(self, request: Request):
        return self.view("auth.login", {"error": request.session.get_flash("error")}, request)

    def login(self, request: Request):
        validator = Validator.make(request.all(), {"email": "required|email", "password": "required"})
        if validator.fails():
            request.session.flash("error", validator.first("email") or validator.first("password"))
            return self.redirect("login")

        response = self.redirect("dashboard")
        user = Auth.from_request(self.db, request).login(
            Sanitizer.to_lowercase(request.input("email")),
            request.input("password"),
            remember=bool(request.input("remember")),
            response=response,
        )
        if user is None:
            request.session.flash("error", "These credentials do not match our records.")
            return self.redirect("login")
        request.session.regenerate()
        return response

    def show_register(self, request: Request):
        return self.view("auth.register", {"errors": request.session.get_flash("errors", {})}, request)

    def register(self, request: Request):
        validator = Validator.make(
            request.all(),
            {"name": "required|max:100", "email": "required|email", "password": "required|min:8|confirmed"},
        )
        if validator.fails():
            request.session.flash("errors", validator.errors())
            return self.redirect("register")
        email = Sanitizer.to_lowercase(request.input("email"))
        if User.using(self.db).find_by("email", email) is not None:
            request.session.flash("errors", {"email": ["email has already been taken"]})
            return self.redirect("register")

        data = validator.validated()
        Auth.from_request(self.db, request).register(
            {"name": data["name"], "email": email, "password": data["password"]}
        )
        request.session.regenerate()
        return self.redirect("dashboard")

    def logout(self, request: Request):
        response = self.redirect("home")
        Auth.from_request(self.db, request).logout(response)
        request.session.invalidate()
        return response


class DashboardController(Controller):
    def index(self, request: Request):
        user = Auth.from_request(self.db, request).user()
        posts = Post.using(self.db).where("user_id", request.session.get("user_id")).order_by("id", "DESC").get_models()
        return self.view("dashboard", {"user": user, "posts": posts}, request)


# ── JSON API ────────────────────────────────────────────────────────


class ApiController(Controller):
    def posts(self, request: Request):
        page = _int_param(request, "page", 1)
        per_page = min(_int_param(request, "per_page", PER_PAGE), 100)
        rows = self.db.table("posts").order_by("id", "DESC").paginate(per_page, page)
        total = self.db.table("posts").count()
        return ApiResponse.pagination(PostResource.collection(rows), total, per_page, page)

    def post(self, request: Request, id: str):
        row = self.db.table("posts").find(id)
        if row is None:
            return ApiResponse.error("Post not found", 404)
        return ApiResponse.success(PostResource.make(row), "Post retrieved successfully")

    def users(self, request: Request):
        return ApiResponse.success(UserResource.collection(self.db.table("users").get()), "Users retrieved successfully")
