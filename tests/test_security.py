"""Tests for pypeweb.security."""

import pytest

from pypeweb.security import CSRF, Sanitizer, escape, hash_password, verify_password


class TestCsrf:
    def test_token_is_stable_per_session(self, session):
        token = CSRF.generate_token(session)
        assert len(token) == 64
        assert CSRF.generate_token(session) == token

    def test_validate(self, csrf_session):
        token = csrf_session["csrf_token"]
        assert CSRF.validate_token(csrf_session, token)
        assert not CSRF.validate_token(csrf_session, "forged")
        assert not CSRF.validate_token(csrf_session, None)

    def test_validate_without_session_token(self, session):
        assert not CSRF.validate_token(session, "")
        assert not CSRF.validate_token(session, "anything")

    def test_clear(self, csrf_session):
        CSRF.clear_token(csrf_session)
        assert "csrf_token" not in csrf_session

    def test_token_field(self, session):
        field = CSRF.token_field(session)
        assert field == f'<input type="hidden" name="csrf_token" value="{session["csrf_token"]}">'


class TestPasswords:
    def test_hash_and_verify(self):
        encoded = hash_password("s3cret", iterations=1000)
        algorithm, iterations, salt, digest = encoded.split("$")
        assert (algorithm, iterations) == ("pbkdf2_sha256", "1000")
        assert verify_password("s3cret", encoded)
        assert not verify_password("wrong", encoded)

    def test_salts_differ(self):
        assert hash_password("same", iterations=1000) != hash_password("same", iterations=1000)

    @pytest.mark.parametrize("encoded", ["", "plaintext", "md5$1$salt$hash", "pbkdf2_sha256$many$salt$hash"])
    def test_malformed_hashes_never_verify(self, encoded):
        assert not verify_password("anything", encoded)


class TestSanitizer:
    def test_strip_tags(self):
        assert Sanitizer.strip_tags("<p>Hello <b>World</b></p>") == "Hello World"

    def test_clean_keeps_allowed_formatting(self):
        assert Sanitizer.clean("<p>Hi <strong>there</strong><br/></p>") == "<p>Hi <strong>there</strong><br /></p>"

    def test_clean_drops_scripts_and_handlers(self):
        dirty = '<p onclick="evil()">Hi</p><script>alert(1)</script><div>x</div>'
        assert Sanitizer.clean(dirty) == "<p>Hi</p>x"

    def test_clean_filters_link_targets(self):
        assert Sanitizer.clean('<a href="javascript:alert(1)" title="t">x</a>') == "<a>x</a>"
        assert Sanitizer.clean('<a href="https://example.com">x</a>') == '<a href="https://example.com">x</a>'

    def test_clean_nested_structures(self):
        data = {"title": "<b>T</b>", "tags": ["<em>a</em>", "<i>b</i>"], "count": 3}
        assert Sanitizer.clean(data) == {"title": "T", "tags": ["<em>a</em>", "b"], "count": 3}

    def test_escape(self):
        assert escape('<a href="x">') == "&lt;a href=&quot;x&quot;&gt;"
        assert Sanitizer.escape("it's") == "it&#x27;s"

    def test_truncate_and_lowercase(self):
        assert Sanitizer.truncate("abcdef", 3) == "abc"
        assert Sanitizer.to_lowercase("MiXeD") == "mixed"
