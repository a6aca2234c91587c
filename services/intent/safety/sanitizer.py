"""
SafetySanitizer -- strips secrets and PII from anything crossing the
system boundary (prompt egress to the AI provider, AI response ingress,
knowledge-base writes).

sanitize(value) keeps the shape of its input:

  mapping  -> every key checked against SENSITIVE_KEYWORDS (substring,
              case-insensitive); a sensitive key's value becomes
              "[FILTERED]" wholesale, other values recurse
  list     -> each item recurses (tuples stay tuples)
  str      -> value patterns replaced in place with a category
              placeholder ([EMAIL_FILTERED], [CARD_FILTERED], ...)
  number   -> "[FILTERED]" when its digits look like a card / IP / key
  other    -> "[OBJECT]"; foreign objects are never traversed

Placeholders contain no digits, '@' or 32-char alnum runs, so
sanitize(sanitize(x)) == sanitize(x).

Apply at every egress point. There is no global "already sanitized" flag.
"""

from __future__ import annotations

import re
from typing import Any, Mapping

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

SENSITIVE_KEYWORDS: tuple[str, ...] = (
    "password",
    "passwd",
    "pwd",
    "api_key",
    "apikey",
    "secret",
    "token",
    "access_token",
    "refresh_token",
    "private_key",
    "public_key",
    "access_key",
    "secret_key",
    "auth",
    "authentication",
    "authorization",
    "credential",
    "salt",
    "hash",
    "session",
    "cookie",
    "csrf",
    "nonce",
    "license_key",
    "activation_key",
)

FILTERED = "[FILTERED]"
OBJECT = "[OBJECT]"

# Applied in this order. JWT goes first so its segments are not eaten by
# the generic key pattern.
_JWT_RE = re.compile(r"eyJ[A-Za-z0-9_-]+\.eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+")
_EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b")
_CARD_RE = re.compile(r"\b\d{4}[\s\-]?\d{4}[\s\-]?\d{4}[\s\-]?\d{4}\b")
_IP_RE = re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}\b")
_KEY_RE = re.compile(r"\b[A-Za-z0-9]{32,64}\b")
_LONG_ALNUM_RE = re.compile(r"^[A-Za-z0-9]{31,}$")

VALUE_PATTERNS: tuple[tuple[str, re.Pattern[str], str], ...] = (
    ("jwt", _JWT_RE, "[TOKEN_FILTERED]"),
    ("email", _EMAIL_RE, "[EMAIL_FILTERED]"),
    ("card", _CARD_RE, "[CARD_FILTERED]"),
    ("ip", _IP_RE, "[IP_FILTERED]"),
    ("key", _KEY_RE, "[KEY_FILTERED]"),
)

_API_KEY_FORMAT_RE = re.compile(r"^[A-Za-z0-9_-]+$")


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------


def is_sensitive_key(key: Any) -> bool:
    key_lower = str(key).lower()
    return any(keyword in key_lower for keyword in SENSITIVE_KEYWORDS)


def is_sensitive_value(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        return False
    text = str(value)
    if any(pattern.search(text) for _, pattern, _ in VALUE_PATTERNS):
        return True
    return bool(_LONG_ALNUM_RE.match(text))


# ---------------------------------------------------------------------------
# Sanitizers
# ---------------------------------------------------------------------------


def sanitize_text(text: str) -> str:
    for _, pattern, placeholder in VALUE_PATTERNS:
        text = pattern.sub(placeholder, text)
    if _LONG_ALNUM_RE.match(text):
        return "[KEY_FILTERED]"
    return text


def sanitize(value: Any) -> Any:
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, str):
        return sanitize_text(value)
    if isinstance(value, (int, float)):
        return FILTERED if is_sensitive_value(value) else value
    if isinstance(value, Mapping):
        return {
            key: FILTERED if is_sensitive_key(key) else sanitize(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [sanitize(item) for item in value]
    if isinstance(value, tuple):
        return tuple(sanitize(item) for item in value)
    return OBJECT


def is_safe_for_ai(value: Any) -> bool:
    if isinstance(value, Mapping):
        return all(
            not is_sensitive_key(k) and is_safe_for_ai(v) for k, v in value.items()
        )
    if isinstance(value, (list, tuple)):
        return all(is_safe_for_ai(v) for v in value)
    if isinstance(value, (str, int, float)) and not isinstance(value, bool):
        return not is_sensitive_value(value)
    return True


def sanitize_metadata(metadata: Mapping[str, Mapping[str, Any]]) -> dict[str, dict[str, Any]]:
    """
    Per-plugin metadata blobs as reported by the CMS collaborator:
    {slug: {options, options_human, tables, capabilities, facts}}.
    Tables and capabilities are structural and pass through.
    """
    out: dict[str, dict[str, Any]] = {}
    for slug, data in metadata.items():
        entry: dict[str, Any] = {"plugin_slug": slug}
        if data.get("extraction_time"):
            entry["extraction_time"] = data["extraction_time"]
        if data.get("options"):
            entry["options"] = sanitize(data["options"])
        if data.get("options_human"):
            entry["options_human"] = {
                k: sanitize_text(str(v))
                for k, v in data["options_human"].items()
                if not is_sensitive_key(k)
            }
        if data.get("tables"):
            entry["tables"] = list(data["tables"])
        if data.get("capabilities"):
            entry["capabilities"] = list(data["capabilities"])
        if data.get("facts"):
            facts: dict[str, Any] = {}
            for k, v in data["facts"].items():
                if is_sensitive_key(k):
                    continue
                if isinstance(v, (list, tuple)):
                    facts[k] = [sanitize_text(str(x)) for x in v]
                else:
                    facts[k] = sanitize_text(str(v))
            entry["facts"] = facts
        out[slug] = entry
    return out


def is_valid_api_key_format(api_key: str) -> bool:
    return len(api_key) >= 20 and bool(_API_KEY_FORMAT_RE.match(api_key))


def mask_sensitive(data: str, visible_chars: int = 4) -> str:
    if len(data) <= visible_chars:
        return "*" * len(data)
    return data[:visible_chars] + "*" * (len(data) - visible_chars)
