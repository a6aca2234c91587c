"""
Context compressor -- shrinks raw chat history and form snapshots into a
short list of facts that fits the prompt's context budget.

Chat history is never embedded verbatim. User turns are mined for
numeric mentions (quantities, prices) and domain keywords; the facts are
de-duplicated (first occurrence wins), capped at MAX_FACTS, joined with
". " and truncated to the token budget (tokens x TOKEN_CHAR_RATIO chars)
with a trailing "...". Python strings are code-point sequences, so the
cut never lands inside a multi-byte character.
"""

from __future__ import annotations

import re
from typing import Any, Iterable, Mapping

MAX_TOKENS = 500
TOKEN_CHAR_RATIO = 4
MAX_FACTS = 10
ELLIPSIS = "..."

_NUMBER_RE = re.compile(r"([0-9]+(?:,[0-9]{3})*(?:\.[0-9]+)?)\s*(?:تومان|ریال|عدد|نسخه)?")

FACT_KEYWORDS: tuple[str, ...] = ("چاپ", "کتاب", "کاغذ", "بالک", "فاکتور", "تیراژ", "صحافی", "جلد")

FIELD_LABELS: dict[str, str] = {
    "tirage": "تیراژ",
    "paper_type": "نوع کاغذ",
    "binding": "صحافی",
    "color": "رنگ",
    "pages": "تعداد صفحات",
    "size": "اندازه",
    "quantity": "تعداد",
    "price": "قیمت",
    "delivery": "زمان تحویل",
}


def _user_turns(messages: Iterable[Mapping[str, Any]]) -> list[str]:
    return [
        str(m.get("content") or "")
        for m in messages
        if (m.get("role") or "user") == "user"
    ]


def extract_facts(user_queries: Iterable[str]) -> list[str]:
    facts: list[str] = []
    for query in user_queries:
        for match in _NUMBER_RE.finditer(query):
            facts.append(f"کاربر درخواست کرد: {match.group(0).strip()}")
        for keyword in FACT_KEYWORDS:
            if keyword in query:
                facts.append(f"کاربر علاقه‌مند به {keyword} است")
    return list(dict.fromkeys(facts))[:MAX_FACTS]


def truncate_to_token_limit(text: str, max_tokens: int = MAX_TOKENS) -> str:
    max_chars = max_tokens * TOKEN_CHAR_RATIO
    if len(text) <= max_chars:
        return text
    return text[: max(0, max_chars - len(ELLIPSIS))] + ELLIPSIS


def compress_messages(messages: Iterable[Mapping[str, Any]], max_tokens: int = MAX_TOKENS) -> str:
    facts = extract_facts(_user_turns(messages))
    if not facts:
        return ""
    return truncate_to_token_limit(". ".join(facts), max_tokens)


def compress_form_data(form_snapshot: Mapping[str, Any]) -> str:
    parts = [
        f"{FIELD_LABELS.get(name, name)}: {value}"
        for name, value in form_snapshot.items()
        if value not in (None, "", 0, [], {})
    ]
    return ", ".join(parts)
