"""
Rule-string validation of request data::

    validator = Validator.make(request.all(), {
        "email": "required|email",
        "password": "required|min:8|confirmed",
        "role": "in:admin,editor",
    })
    if validator.fails():
        return ApiResponse.error("Invalid input", 422, validator.errors())

A ``regex:`` pattern that contains ``|`` must be the last rule of the
string, or the rules can be given as a list instead::

    {"status": ["required", "regex:^(draft|published)$", "max:20"]}
"""

import ipaddress
import re
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union
from urllib.parse import urlparse

from pypeweb.errors import PypeError

EMAIL_RE = re.compile(r"^[A-Za-z0-9.!#$%&'*+/=?^_`{|}~-]+@[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?(?:\.[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?)+$")
ALPHA_DASH_RE = re.compile(r"^[\w-]+$", re.UNICODE)
_REGEX_RULE_RE = re.compile(r"(?:^|\|)\s*regex:")


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def _is_numeric(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    try:
        float(str(value).strip())
    except ValueError:
        return False
    return str(value).strip() != ""


def _size(value: Any) -> float:
    """Characters for strings, items for lists."""
    if value is None:
        return 0
    if isinstance(value, (list, tuple, dict)):
        return len(value)
    return len(str(value))


def _is_url(value: Any) -> bool:
    parsed = urlparse(str(value))
    return parsed.scheme in ("http", "https", "ftp") and bool(parsed.netloc)


def _is_ip(value: Any) -> bool:
    try:
        ipaddress.ip_address(str(value))
    except ValueError:
        return False
    return True


def parse_rules(rules: Union[str, Sequence[str]]) -> List[str]:
    """Split a ``|`` rule string into rules.

    A ``regex:`` rule takes the rest of the string as its pattern, so a
    pattern containing ``|`` must come last. Lists are used as given.
    """
    if not isinstance(rules, str):
        return [rule.strip() for rule in rules]
    match = _REGEX_RULE_RE.search(rules)
    head, pattern = (rules[: match.start()], rules[match.end() :]) if match else (rules, None)
    parsed = [rule.strip() for rule in head.split("|") if rule.strip()]
    if pattern is not None:
        parsed.append("regex:" + pattern)
    return parsed


class Validator:
    """Applies ``|``-separated rules per field and collects messages."""

    def __init__(self, data: Mapping[str, Any]):
        self.data = dict(data)
        self._errors: Dict[str, List[str]] = {}
        self._rules: Dict[str, List[str]] = {}

    @classmethod
    def make(cls, data: Mapping[str, Any], rules: Mapping[str, Union[str, Sequence[str]]]) -> "Validator":
        return cls(data).validate(rules)

    def validate(self, rules: Mapping[str, Union[str, Sequence[str]]]) -> "Validator":
        for field, rule_list in rules.items():
            parsed = parse_rules(rule_list)
            self._rules[field] = parsed
            for rule in parsed:
                self._apply(field, rule.strip())
        return self

    def _apply(self, field: str, rule: str) -> None:
        value = self.data.get(field)
        name, _, argument = rule.partition(":")

        # only "required" and "confirmed" look at empty values
        if name not in ("required", "confirmed") and _is_empty(value):
            return

        check = self._checks().get(name)
        if check is None:
            raise PypeError(f"Unknown validation rule: {name}")
        message = check(field, value, argument)
        if message:
            self._errors.setdefault(field, []).append(message)

    def _checks(self) -> Dict[str, Callable[[str, Any, str], Optional[str]]]:
        return {
            "required": self._required,
            "email": lambda f, v, a: None if EMAIL_RE.match(str(v)) else f"{f} must be a valid email",
            "numeric": lambda f, v, a: None if _is_numeric(v) else f"{f} must be a number",
            "integer": lambda f, v, a: None if re.fullmatch(r"-?\d+", str(v).strip()) else f"{f} must be an integer",
            "alpha": lambda f, v, a: None if str(v).replace(" ", "").isalpha() else f"{f} must contain only letters",
            "alpha_num": lambda f, v, a: None
            if str(v).replace(" ", "").isalnum()
            else f"{f} must contain only letters and numbers",
            "alpha_dash": lambda f, v, a: None
            if ALPHA_DASH_RE.match(str(v))
            else f"{f} may only contain letters, numbers, dashes and underscores",
            "url": lambda f, v, a: None if _is_url(v) else f"{f} must be a valid URL",
            "ip": lambda f, v, a: None if _is_ip(v) else f"{f} must be a valid IP address",
            "confirmed": self._confirmed,
            "min": lambda f, v, a: None if _size(v) >= int(a) else f"{f} must be at least {a} characters",
            "max": lambda f, v, a: None if _size(v) <= int(a) else f"{f} must not exceed {a} characters",
            "between": self._between,
            "in": lambda f, v, a: None if str(v) in a.split(",") else f"{f} must be one of: {', '.join(a.split(','))}",
            "not_in": lambda f, v, a: None
            if str(v) not in a.split(",")
            else f"{f} must not be one of: {', '.join(a.split(','))}",
            "regex": lambda f, v, a: None if re.search(a, str(v)) else f"{f} format is invalid",
        }

    @staticmethod
    def _required(field: str, value: Any, argument: str) -> Optional[str]:
        if _is_empty(value) or (isinstance(value, str) and not value.strip()):
            return f"{field} is required"
        return None

    def _confirmed(self, field: str, value: Any, argument: str) -> Optional[str]:
        if self.data.get(f"{field}_confirmation") != value:
            return f"{field} confirmation does not match"
        return None

    @staticmethod
    def _between(field: str, value: Any, argument: str) -> Optional[str]:
        low, _, high = argument.partition(":")
        if not high:
            low, _, high = argument.partition(",")
        size = _size(value)
        if size < int(low) or size > int(high):
            return f"{field} must be between {low} and {high} characters"
        return None

    # ── Results ─────────────────────────────────────────────────────

    def fails(self) -> bool:
        return bool(self._errors)

    def passes(self) -> bool:
        return not self._errors

    def errors(self) -> Dict[str, List[str]]:
        return {field: list(messages) for field, messages in self._errors.items()}

    def first(self, field: str) -> Optional[str]:
        messages = self._errors.get(field)
        return messages[0] if messages else None

    def validated(self) -> Dict[str, Any]:
        """The validated fields only (excluding ``*_confirmation`` helpers)."""
        return {field: self.data.get(field) for field in self._rules if field in self.data}
