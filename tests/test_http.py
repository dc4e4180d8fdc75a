"""Tests for pypeweb.request and pypeweb.response."""

import io
import json

import pytest

from conftest import MULTIPART_TYPE, multipart_body
from pypeweb.request import Request
from pypeweb.response import (
    ApiResponse,
    HTMLResponse,
    JSONResponse,
    RedirectResponse,
    Response,
    error_response,
    make_response,
)
from pypeweb.session import Session
from pypeweb.uploads import UploadedFile


def wsgi_environ(method="GET", path="/", query="", body=b"", content_type="", **headers):
    environ = {
        "REQUEST_METHOD": method,
        "PATH_INFO": path,
        "QUERY_STRING": query,
        "REMOTE_ADDR": "10.0.0.7",
        "wsgi.input": io.BytesIO(body),
        "CONTENT_LENGTH": str(len(body)) if body else "",
    }
    if content_type:
        environ["CONTENT_TYPE"] = content_type
    for name, value in headers.items():
        environ["HTTP_" + name.upper()] = value
    return environ


class TestRequestFromWsgi:
    def test_query_headers_and_cookies(self):
        environ = wsgi_environ(
            path="/search",
            query="q=pype&page=2",
            accept="application/json",
            cookie="theme=dark; pype_session=abc",
        )
        request = Request.from_wsgi(environ)
        assert request.path == "/search"
        assert request.get_all_query_params() == {"q": "pype", "page": "2"}
        assert request.get_header("Accept") == "application/json"
        assert request.wants_json
        assert request.cookies == {"theme": "dark", "pype_session": "abc"}
        assert request.get_cookie("missing", "none") == "none"
        assert request.remote_addr == "10.0.0.7"

    def test_form_body(self):
        body = b"title=Hello&_method=put"
        request = Request.from_wsgi(
            wsgi_environ("POST", body=body, content_type="application/x-www-form-urlencoded")
        )
        assert request.get_all_form_fields() == {"title": "Hello", "_method": "put"}
        assert request.raw_method == "POST"
        assert request.method == "PUT"

    def test_json_body(self):
        body = json.dumps({"title": "Hello"}).encode("utf-8")
        request = Request.from_wsgi(wsgi_environ("POST", body=body, content_type="application/json"))
        assert request.is_json
        assert request.get_json_body() == {"title": "Hello"}
        assert request.get_all_form_fields() == {}

    def test_multipart_body(self):
        png = b"\x89PNG\r\n\x1a\n\x00\xff"
        body = multipart_body(
            {"title": "Héllo", "csrf_token": "abc"},
            {"avatar": ("../../etc/me.png", "image/png", png)},
        )
        request = Request.from_wsgi(wsgi_environ("POST", body=body, content_type=MULTIPART_TYPE))
        assert request.get_all_form_fields() == {"title": "Héllo", "csrf_token": "abc"}
        avatar = request.file("avatar")
        assert avatar.filename == "me.png"
        assert avatar.content_type == "image/png"
        assert avatar.content == png
        assert request.get_raw_body() == ""

    def test_multipart_without_a_chosen_file(self):
        body = multipart_body({"title": "x"}, {"avatar": ("", "application/octet-stream", b"")})
        request = Request.from_wsgi(wsgi_environ("POST", body=body, content_type=MULTIPART_TYPE))
        assert request.input("title") == "x"
        assert not request.has_file("avatar")

    def test_bad_content_length(self):
        environ = wsgi_environ("POST")
        environ["CONTENT_LENGTH"] = "lots"
        assert Request.from_wsgi(environ).get_raw_body() == ""

    def test_keeps_the_given_session(self):
        session = Session()
        assert Request.from_wsgi(wsgi_environ(), session=session).session is session


class TestRequestInput:
    def test_method_override_only_applies_to_post(self):
        assert Request({"method": "GET", "form_data": {"_method": "DELETE"}}).method == "GET"
        assert Request({"method": "POST", "form_data": {"_method": "OPTIONS"}}).method == "POST"
        assert Request({"method": "post", "form_data": {"_method": "patch"}}).method == "PATCH"

    def test_input_precedence(self):
        request = Request(
            {
                "method": "POST",
                "headers": {"Content-Type": "application/json"},
                "query_params": {"a": "query", "b": "query", "c": "query"},
                "body": json.dumps({"a": "json", "b": "json"}),
                "form_data": {"a": "form"},
            }
        )
        assert request.input("a") == "form"
        assert request.input("b") == "json"
        assert request.input("c") == "query"
        assert request.input("d", "default") == "default"
        assert request.all() == {"a": "form", "b": "json", "c": "query"}

    def test_ajax(self):
        request = Request({"headers": {"X-Requested-With": "XMLHttpRequest"}})
        assert request.is_ajax and request.wants_json

    def test_uploaded_files(self):
        avatar = UploadedFile("me.png", "image/png", b"png")
        request = Request({"files": {"avatar": avatar}})
        assert request.file("avatar") is avatar
        assert request.has_file("avatar")
        assert request.get_uploaded_filename("avatar") == "me.png"
        assert request.file("other") is None
        assert not request.has_file("other")
        assert request.get_uploaded_filename("other") == ""

    def test_defaults(self):
        request = Request()
        assert (request.method, request.path) == ("GET", "/")
        assert request.get_json_body() == {}
        assert isinstance(request.session, Session)


class TestResponse:
    def test_headers_are_case_insensitive(self):
        response = Response("x").set_header("X-Trace", "1")
        assert response.get_header("x-trace") == "1"
        assert response.get_header("Content-Type") == "text/plain; charset=utf-8"

    def test_cookies(self):
        response = Response()
        response.set_cookie("theme", "dark", max_age=60, secure=True)
        cookie = dict(response.wsgi_headers())["Set-Cookie"]
        assert cookie.startswith("theme=dark")
        assert "Max-Age=60" in cookie
        assert "HttpOnly" in cookie and "Secure" in cookie
        response.delete_cookie("theme")
        assert response.cookies == {"theme": ""}

    @pytest.mark.parametrize("status, line", [(200, "200 OK"), (404, "404 Not Found"), (419, "419 Page Expired")])
    def test_status_line(self, status, line):
        assert Response(status_code=status).status_line == line

    def test_redirects(self):
        assert RedirectResponse("/home").get_header("Location") == "/home"
        response = Response().redirect("/new", permanent=True)
        assert response.status_code == 301
        assert response.get_header("Location") == "/new"

    def test_json_response_serializes_anything(self):
        response = JSONResponse({"when": Session})
        assert response.content_type == "application/json"
        assert "Session" in json.loads(response.body)["when"]


class TestMakeResponse:
    def test_coercion(self):
        assert isinstance(make_response("hi"), HTMLResponse)
        assert isinstance(make_response(b"hi"), HTMLResponse)
        assert json.loads(make_response({"a": 1}).body) == {"a": 1}
        assert json.loads(make_response([1, 2]).body) == [1, 2]
        assert make_response(None).status_code == 204
        assert make_response(42).body == "42"

    def test_passes_responses_through(self):
        response = Response("x")
        assert make_response(response) is response


class TestErrorResponses:
    def test_html_error_escapes_message(self):
        response = error_response(404, "<missing>")
        assert response.status_code == 404
        assert "<h1>404 Not Found</h1>" in response.body
        assert "&lt;missing&gt;" in response.body

    def test_json_error(self):
        response = error_response(419, "expired", as_json=True)
        assert json.loads(response.body) == {"success": False, "status": 419, "message": "expired"}


class TestApiResponse:
    def test_success(self):
        body = json.loads(ApiResponse.success({"id": 1}, "Created", 201).body)
        assert body == {"success": True, "message": "Created", "data": {"id": 1}}

    def test_error_with_validation_messages(self):
        response = ApiResponse.error("Invalid input", 422, {"email": ["email is required"]})
        assert response.status_code == 422
        assert json.loads(response.body)["errors"] == {"email": ["email is required"]}

    def test_pagination(self):
        body = json.loads(ApiResponse.pagination([1, 2], total=5, per_page=2, current_page=1).body)
        assert body["pagination"] == {"total": 5, "per_page": 2, "current_page": 1, "last_page": 3}

    def test_pagination_guards_zero_page_size(self):
        body = json.loads(ApiResponse.pagination([], total=0, per_page=0, current_page=1).body)
        assert body["pagination"]["per_page"] == 1
        assert body["pagination"]["last_page"] == 0
