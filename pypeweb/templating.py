"""
Templating engine for Pype Web, built on Jinja2 with HTML autoescaping.

View names use dots for directories: ``view("admin.login")`` renders
``<template_dir>/admin/login.html``.
"""

import os
from typing import Any, Callable, Dict, Optional

from jinja2 import Environment, FileSystemLoader, pass_context, select_autoescape
from markupsafe import Markup

from pypeweb.security import CSRF
from pypeweb.utils import excerpt, reading_time, slugify

TEMPLATE_EXTENSIONS = (".html", ".htm", ".jinja", ".j2", ".twig", ".txt")


def template_path(name: str) -> str:
    """Map a dotted view name to a relative template path."""
    if name.endswith(TEMPLATE_EXTENSIONS):
        return name
    return name.replace(".", "/") + ".html"


@pass_context
def _csrf_field(context) -> Markup:
    session = context.get("session")
    if session is None:
        return Markup("")
    return Markup(CSRF.token_field(session))


@pass_context
def _csrf_token(context) -> str:
    session = context.get("session")
    return CSRF.generate_token(session) if session is not None else ""


class TemplateEngine:
    """Renders files from ``template_dir`` and inline template strings."""

    def __init__(self, template_dir: str = "templates", url_for: Optional[Callable[..., str]] = None):
        self.template_dir = template_dir
        self.env = Environment(
            loader=FileSystemLoader(os.path.abspath(template_dir)),
            autoescape=select_autoescape(["html", "htm", "xml", "twig", "jinja", "j2"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.globals["csrf_field"] = _csrf_field
        self.env.globals["csrf_token"] = _csrf_token
        if url_for is not None:
            self.env.globals["url_for"] = url_for
        self.env.filters["slugify"] = slugify
        self.env.filters["excerpt"] = excerpt
        self.env.filters["reading_time"] = reading_time

    def add_global(self, name: str, value: Any) -> None:
        self.env.globals[name] = value

    def add_filter(self, name: str, func: Callable[..., Any]) -> None:
        self.env.filters[name] = func

    def exists(self, name: str) -> bool:
        return os.path.isfile(os.path.join(self.template_dir, template_path(name)))

    def render(self, template_name: str, context: Optional[Dict[str, Any]] = None) -> str:
        """Render a template file with the given context."""
        return self.env.get_template(template_name).render(**(context or {}))

    def view(self, name: str, context: Optional[Dict[str, Any]] = None, request: Any = None) -> str:
        """Render a dotted view name. ``request`` exposes its session to the template."""
        context = dict(context or {})
        if request is not None:
            context.setdefault("request", request)
            context.setdefault("session", request.session)
        return self.render(template_path(name), context)

    def render_string(self, template_str: str, context: Optional[Dict[str, Any]] = None) -> str:
        """Render an inline template string with the given context."""
        return self.env.from_string(template_str).render(**(context or {}))
