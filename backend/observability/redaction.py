"""Redaction of credentials and contact data in log lines and event details.

Applied by the log formatters and by the event sink. Rules run in order;
JWTs go first so a `Bearer <jwt>` header is reported as a JWT.
"""
import re
from typing import Any, FrozenSet, List, Optional, Tuple

_RULES: List[Tuple[str, re.Pattern]] = [
    ("JWT", re.compile(r"eyJ[A-Za-z0-9_-]+\.eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+")),
    ("BEARER", re.compile(r"Bearer\s+[A-Za-z0-9_\-\.]+", re.IGNORECASE)),
    ("API_KEY", re.compile(r"AIza[0-9A-Za-z_\-]{35}")),
    ("SECRET", re.compile(
        r"(?:api[_-]?key|token|secret|password)[\s:=]+[\"']?[A-Za-z0-9_\-\.]{20,}[\"']?",
        re.IGNORECASE,
    )),
    # Only URIs that embed user:password
    ("MONGO_URI", re.compile(r"mongodb(?:\+srv)?://[^\s@/]+:[^\s@/]+@\S+")),
    ("EMAIL", re.compile(r"[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+")),
]

SENSITIVE_KEYS: FrozenSet[str] = frozenset({
    "token",
    "credential",
    "password",
    "secret",
    "api_key",
    "jwt",
    "authorization",
})


def redact(text: str) -> str:
    """Replace every rule match with `[REDACTED_<RULE>]`."""
    for label, pattern in _RULES:
        text = pattern.sub(f"[REDACTED_{label}]", text)
    return text


def _redact_value(value: Any, keys: FrozenSet[str]) -> Any:
    if isinstance(value, dict):
        return redact_dict(value, keys)
    if isinstance(value, (list, tuple)):
        return [_redact_value(v, keys) for v in value]
    if isinstance(value, str):
        return redact(value)
    return value


def redact_dict(data: dict, sensitive_keys: Optional[FrozenSet[str]] = None) -> dict:
    """Copy of `data` with sensitive keys masked and string values redacted, recursively."""
    keys = SENSITIVE_KEYS if sensitive_keys is None else sensitive_keys
    return {
        k: "[REDACTED]" if str(k).lower() in keys else _redact_value(v, keys)
        for k, v in data.items()
    }
