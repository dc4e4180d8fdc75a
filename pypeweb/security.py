"""
Security utilities for Pype Web: CSRF tokens, password hashing and HTML
sanitizing.
"""

import base64
import hashlib
import hmac
import html
import re
import secrets
from typing import Any, Dict, MutableMapping, Optional

CSRF_TOKEN_NAME = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"

PASSWORD_ALGORITHM = "pbkdf2_sha256"
PASSWORD_ITERATIONS = 260000

ALLOWED_TAGS = {
    "p", "br", "strong", "em", "u", "a", "img", "ul", "ol", "li",
    "h1", "h2", "h3", "h4", "h5", "h6", "blockquote", "hr",
}
ALLOWED_ATTRIBUTES = {"a": {"href"}, "img": {"src", "alt"}}

_TAG_RE = re.compile(r"<(/?)([a-zA-Z][a-zA-Z0-9]*)([^>]*)>")
_ATTR_RE = re.compile(r"""([a-zA-Z_:][-a-zA-Z0-9_:.]*)\s*=\s*("[^"]*"|'[^']*'|[^\s"'>]+)""")
_DANGEROUS_BLOCK_RE = re.compile(r"<(script|style|iframe|object|embed)\b.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_SAFE_URL_RE = re.compile(r"^(https?:|mailto:|/|#|[^:]*$)", re.IGNORECASE)


def escape(value: Any) -> str:
    """HTML-escape ``value`` including quotes."""
    return html.escape(str(value), quote=True)


# ── CSRF ────────────────────────────────────────────────────────────


class CSRF:
    """Per-session CSRF token helpers. ``session`` is any mutable mapping."""

    token_name = CSRF_TOKEN_NAME

    @staticmethod
    def generate_token(session: MutableMapping[str, Any]) -> str:
        """Return the session's token, creating one if needed."""
        token = session.get(CSRF_TOKEN_NAME)
        if not token:
            token = secrets.token_hex(32)
            session[CSRF_TOKEN_NAME] = token
        return token

    @staticmethod
    def validate_token(session: MutableMapping[str, Any], submitted: Optional[str]) -> bool:
        expected = session.get(CSRF_TOKEN_NAME)
        if not expected or not submitted:
            return False
        return hmac.compare_digest(str(expected), str(submitted))

    @staticmethod
    def clear_token(session: MutableMapping[str, Any]) -> None:
        session.pop(CSRF_TOKEN_NAME, None)

    @staticmethod
    def token_field(session: MutableMapping[str, Any]) -> str:
        token = CSRF.generate_token(session)
        return f'<input type="hidden" name="{CSRF_TOKEN_NAME}" value="{escape(token)}">'


# ── Passwords ───────────────────────────────────────────────────────


def hash_password(password: str, iterations: int = PASSWORD_ITERATIONS, salt: Optional[str] = None) -> str:
    """Hash ``password`` as ``pbkdf2_sha256$<iterations>$<salt>$<hash>``."""
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), iterations)
    return f"{PASSWORD_ALGORITHM}${iterations}${salt}${base64.b64encode(digest).decode('ascii')}"


def verify_password(password: str, encoded: str) -> bool:
    try:
        algorithm, iterations, salt, _ = encoded.split("$", 3)
        rounds = int(iterations)
    except (AttributeError, ValueError):
        return False
    if algorithm != PASSWORD_ALGORITHM:
        return False
    return hmac.compare_digest(hash_password(password, rounds, salt), encoded)


# ── Sanitizing ──────────────────────────────────────────────────────


class Sanitizer:
    """Input sanitization utilities."""

    @staticmethod
    def strip_tags(html_text: str) -> str:
        """Remove every HTML tag from a string."""
        return re.sub(r"<[^>]*>", "", html_text)

    @staticmethod
    def truncate(value: str, max_length: int = 255) -> str:
        return value[:max_length]

    @staticmethod
    def to_lowercase(value: str) -> str:
        return value.lower()

    @staticmethod
    def escape(value: Any) -> str:
        return escape(value)

    @staticmethod
    def clean(value: Any) -> Any:
        """Keep a small allow-list of formatting tags and drop everything else.

        Lists and dicts are cleaned element-wise.
        """
        if isinstance(value, dict):
            return Sanitizer.clean_dict(value)
        if isinstance(value, (list, tuple)):
            return [Sanitizer.clean(item) for item in value]
        if not isinstance(value, str):
            return value
        text = _DANGEROUS_BLOCK_RE.sub("", value)
        return _TAG_RE.sub(_rewrite_tag, text)

    @staticmethod
    def clean_dict(data: Dict[str, Any]) -> Dict[str, Any]:
        return {key: Sanitizer.clean(value) for key, value in data.items()}


def _rewrite_tag(match: "re.Match") -> str:
    closing, tag, rest = match.group(1), match.group(2).lower(), match.group(3)
    if tag not in ALLOWED_TAGS:
        return ""
    if closing:
        return f"</{tag}>"
    attributes = []
    for name, raw in _ATTR_RE.findall(rest):
        name = name.lower()
        if name not in ALLOWED_ATTRIBUTES.get(tag, set()):
            continue
        value = html.unescape(raw.strip("\"'"))
        if name in ("href", "src") and not _SAFE_URL_RE.match(value.strip()):
            continue
        attributes.append(f'{name}="{escape(value)}"')
    suffix = " /" if rest.rstrip().endswith("/") else ""
    return "<" + " ".join([tag] + attributes) + suffix + ">"
