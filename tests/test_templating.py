"""Tests for pypeweb.templating."""

import pytest

from pypeweb.templating import TemplateEngine, template_path


@pytest.fixture
def engine(templates_dir):
    return TemplateEngine(str(templates_dir), url_for=lambda name, **params: f"/{name}/{params.get('id', '')}")


class TestTemplatePath:
    @pytest.mark.parametrize(
        "name, expected",
        [
            ("home", "home.html"),
            ("admin.login", "admin/login.html"),
            ("emails/welcome.txt", "emails/welcome.txt"),
            ("page.html", "page.html"),
        ],
    )
    def test_mapping(self, name, expected):
        assert template_path(name) == expected


class TestRendering:
    def test_view_with_nested_directory(self, engine, templates_dir):
        (templates_dir / "admin").mkdir()
        (templates_dir / "admin" / "login.html").write_text("Login: {{ who }}")
        assert engine.view("admin.login", {"who": "Ada"}) == "Login: Ada"

    def test_html_is_autoescaped(self, engine, templates_dir):
        (templates_dir / "page.html").write_text("{{ content }}|{{ content|safe }}")
        assert engine.view("page", {"content": "<b>x</b>"}) == "&lt;b&gt;x&lt;/b&gt;|<b>x</b>"

    def test_text_templates_are_not_escaped(self, engine, templates_dir):
        (templates_dir / "mail.txt").write_text("{{ content }}")
        assert engine.view("mail.txt", {"content": "<b>x</b>"}) == "<b>x</b>"

    def test_inheritance(self, engine, templates_dir):
        (templates_dir / "base.html").write_text("<main>{% block body %}{% endblock %}</main>")
        (templates_dir / "child.html").write_text('{% extends "base.html" %}{% block body %}hi{% endblock %}')
        assert engine.view("child") == "<main>hi</main>"

    def test_exists(self, engine, templates_dir):
        (templates_dir / "home.html").write_text("")
        assert engine.exists("home")
        assert not engine.exists("missing")

    def test_render_string(self, engine):
        assert engine.render_string("Hello {{ name }}", {"name": "Ada"}) == "Hello Ada"


class TestHelpers:
    def test_csrf_field_uses_the_session(self, engine, session):
        html = engine.render_string("{{ csrf_field() }}", {"session": session})
        assert html == f'<input type="hidden" name="csrf_token" value="{session["csrf_token"]}">'
        assert engine.render_string("{{ csrf_token() }}", {"session": session}) == session["csrf_token"]

    def test_csrf_field_without_session(self, engine):
        assert engine.render_string("{{ csrf_field() }}") == ""

    def test_view_exposes_session_from_request(self, engine, templates_dir, request_factory, session):
        session["name"] = "Ada"
        (templates_dir / "who.html").write_text("{{ session.get('name') }}")
        assert engine.view("who", {}, request_factory(session=session)) == "Ada"

    def test_url_for_global(self, engine):
        assert engine.render_string("{{ url_for('posts.show', id=3) }}") == "/posts.show/3"

    def test_filters(self, engine):
        rendered = engine.render_string(
            "{{ title|slugify }}|{{ body|excerpt(10) }}|{{ body|reading_time }}",
            {"title": "Hello World", "body": "<p>one two three four</p>"},
        )
        assert rendered == "hello-world|one two...|1"

    def test_custom_filter_and_global(self, engine):
        engine.add_filter("shout", lambda value: value.upper() + "!")
        engine.add_global("site", "Pype")
        assert engine.render_string("{{ site|shout }}") == "PYPE!"
