"""
Session authentication against any table with an email and a password
hash column::

    auth = Auth.from_request(db, request)
    user = auth.login(email, password, remember=True, response=response)
    if auth.check():
        ...

Remember-me tokens are only persisted when a ``remember_me_tokens`` table
(``user_id``, ``token``, ``expires_at``, ``created_at``) exists.
"""

import secrets
from datetime import datetime, timedelta
from typing import Any, Dict, Mapping, MutableMapping, Optional

from pypeweb.logging import get_logger
from pypeweb.response import Response
from pypeweb.security import hash_password, verify_password

logger = get_logger(__name__)

REMEMBER_TABLE = "remember_me_tokens"
REMEMBER_DAYS = 30
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class Auth:
    """Login state for one session."""

    def __init__(
        self,
        db,
        session: MutableMapping[str, Any],
        table: str = "users",
        email_column: str = "email",
        password_column: str = "password",
        session_key: str = "auth_user",
        cookie_name: str = "remember_me",
        cookies: Optional[Mapping[str, str]] = None,
    ):
        self.db = db
        self.session = session
        self.table = table
        self.email_column = email_column
        self.password_column = password_column
        self.session_key = session_key
        self.cookie_name = cookie_name
        self.cookies = cookies or {}

    @classmethod
    def from_request(cls, db, request, **options: Any) -> "Auth":
        return cls(db, request.session, cookies=request.cookies, **options)

    # ── Login / registration ────────────────────────────────────────

    def login(
        self, email: str, password: str, remember: bool = False, response: Optional[Response] = None
    ) -> Optional[Dict[str, Any]]:
        """Check credentials and store the user in the session.

        Returns the user row without its password, or ``None``.
        """
        user = self.db.table(self.table).where(self.email_column, email).first()
        if user is None or not verify_password(password, user.get(self.password_column) or ""):
            logger.info("login_failed", table=self.table)
            return None

        self._set_session(user)
        if remember:
            self._remember(user, response)
        logger.info("login_succeeded", table=self.table, user_id=user.get("id"))
        return self._public(user)

    def register(self, data: Dict[str, Any], auto_login: bool = True) -> Dict[str, Any]:
        """Insert a user, hashing the password column first."""
        data = dict(data)
        if data.get(self.password_column):
            data[self.password_column] = hash_password(data[self.password_column])
        data["id"] = self.db.table(self.table).insert(data)
        if auto_login:
            self._set_session(data)
        return self._public(data)

    # ── State ───────────────────────────────────────────────────────

    def user(self) -> Optional[Dict[str, Any]]:
        user = self.session.get(self.session_key)
        if user is not None:
            return user

        token = self.cookies.get(self.cookie_name)
        if token:
            user = self._consume_remember_token(token)
            if user is not None:
                self._set_session(user)
                return self._public(user)
        return None

    def check(self) -> bool:
        return self.user() is not None

    def id(self) -> Any:
        user = self.user()
        return user.get("id") if user else None

    def logout(self, response: Optional[Response] = None) -> None:
        self.session.pop(self.session_key, None)
        self.session.pop("user_id", None)
        if response is not None and self.cookie_name in self.cookies:
            response.delete_cookie(self.cookie_name)

    # ── Internals ───────────────────────────────────────────────────

    def _public(self, user: Dict[str, Any]) -> Dict[str, Any]:
        return {k: v for k, v in user.items() if k != self.password_column}

    def _set_session(self, user: Dict[str, Any]) -> None:
        public = self._public(user)
        self.session[self.session_key] = public
        self.session["user_id"] = public.get("id")

    def _remember(self, user: Dict[str, Any], response: Optional[Response]) -> Optional[str]:
        if not self.db.has_table(REMEMBER_TABLE):
            return None
        token = secrets.token_hex(32)
        now = datetime.now()
        self.db.table(REMEMBER_TABLE).insert(
            {
                "user_id": user.get("id"),
                "token": token,
                "expires_at": (now + timedelta(days=REMEMBER_DAYS)).strftime(TIMESTAMP_FORMAT),
                "created_at": now.strftime(TIMESTAMP_FORMAT),
            }
        )
        if response is not None:
            response.set_cookie(self.cookie_name, token, max_age=REMEMBER_DAYS * 86400)
        return token

    def _consume_remember_token(self, token: str) -> Optional[Dict[str, Any]]:
        if not self.db.has_table(REMEMBER_TABLE):
            return None
        tokens = self.db.table(REMEMBER_TABLE)
        row = tokens.where("token", token).where("expires_at", datetime.now().strftime(TIMESTAMP_FORMAT), ">").first()
        if row is None:
            return None
        tokens.delete({"token": token})
        return self.db.table(self.table).find(row["user_id"])
