"""
Prompt construction for the storefront assistant.

System instruction sections, in order:
  identity -> business knowledge -> persona -> storefront context ->
  recent behavior -> response guidelines (JSON output contract)

User prompt: current page, current element, then the visitor's message
after sanitize_input() has stripped instruction-override phrases.
"""

from __future__ import annotations

import json
import re
from typing import Any, Iterable

from services.intent.context.knowledge import KnowledgeBase
from services.intent.persona.profiles import persona_prompt_prefix
from services.intent.persona.types import DominantPersona

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MAX_INPUT_CHARS = 1000

DEFAULT_MESSAGE = "کاربر در حال بررسی وبسایت است"

_INJECTION_PATTERNS = [
    re.compile(r"ignore\s+previous\s+instructions?", re.IGNORECASE),
    re.compile(r"system\s*:\s*", re.IGNORECASE),
    re.compile(r"you\s+are\s+now", re.IGNORECASE),
    re.compile(r"forget\s+everything", re.IGNORECASE),
    re.compile(r"disregard\s+all", re.IGNORECASE),
]

_INTRO = "شما دستیار هوشمند فروشگاه چاپ هستید.\n\n"

_IDENTITY = """## هویت شما
شما یک دستیار هوشمند تخصصی برای صنعت چاپ هستید که:
- درک عمیقی از نیازهای مشتریان چاپی دارید
- می‌توانید بهترین گزینه را بر اساس بودجه و نیاز مشتری پیشنهاد دهید
- قادر به صدور دستورات UI برای راهنمایی کاربر هستید
- همیشه صادق و شفاف هستید و قیمت‌های دقیق ارائه می‌دهید
"""

_GUIDELINES = """## دستورالعمل‌های پاسخ‌دهی

### فرمت خروجی
پاسخ را فقط در قالب JSON با این ساختار بده:
{"thought": "...", "response": "...", "action": "...", "target": "...", "data": {}, "persona_update": "..."}
فیلدهای thought و response اجباری هستند.

### اکشن‌های مجاز:
- highlight_element, show_tooltip, scroll_to, open_modal, update_calculator,
  suggest_product, show_discount, change_css, redirect, none

### قوانین مهم:
1. همیشه صادق باشید - قیمت‌های دقیق و واقعی ارائه دهید
2. اگر اطلاعات کافی ندارید، از کاربر سوال کنید
3. پیشنهادات را با دلیل منطقی ارائه کنید
4. از زبان ساده و دوستانه استفاده کنید
5. فقط بر اساس دانش موجود پاسخ دهید
"""


def screen_input(text: str | None, max_chars: int = MAX_INPUT_CHARS) -> tuple[str, bool]:
    """
    Strip instruction-override phrases and cap length.

    Removal repeats until nothing matches, so a phrase split around another
    copy of itself cannot reassemble. The flag is True when anything was
    removed.
    """
    text = (text or "").strip()
    flagged = False
    while True:
        stripped = text
        for pattern in _INJECTION_PATTERNS:
            stripped = pattern.sub("", stripped)
        if stripped == text:
            break
        flagged = True
        text = stripped
    return text.strip()[:max_chars], flagged


def sanitize_input(text: str | None, max_chars: int = MAX_INPUT_CHARS) -> str:
    return screen_input(text, max_chars)[0]


def contains_injection(*texts: str | None) -> bool:
    return any(screen_input(text)[1] for text in texts)


def _format_value(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        if all(not isinstance(v, (dict, list, tuple)) for v in value):
            return ", ".join(str(v) for v in value)
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def _format_pricing(pricing: Any) -> str:
    if not isinstance(pricing, dict) or not pricing:
        return ""
    lines = ["### قوانین قیمت‌گذاری"]
    for category, rules in pricing.items():
        if isinstance(rules, dict):
            lines.append(f"**{category}:**")
            lines.extend(f"  - {k}: {_format_value(v)}" for k, v in rules.items())
        else:
            lines.append(f"- {category}: {_format_value(rules)}")
    return "\n".join(lines) + "\n"


def _persona_section(dominant: DominantPersona, knowledge: KnowledgeBase | None) -> str:
    lines = [
        "## پرسونای کاربر",
        f"- نوع: {dominant.type.value}",
        f"- امتیاز: {dominant.score}",
        f"- اطمینان: {dominant.confidence:.1f}%",
    ]
    personas = knowledge.load_rules("personas") if knowledge is not None else {}
    recommendations = []
    if isinstance(personas, dict):
        recommendations = (personas.get(dominant.type.value) or {}).get("recommendations") or []
    if recommendations:
        lines.append("")
        lines.append("### پیشنهادات مرتبط با این پرسونا:")
        lines.extend(f"- {r}" for r in recommendations)

    prefix = persona_prompt_prefix(dominant)
    if prefix:
        lines.append("")
        lines.append(prefix.strip())
    return "\n".join(lines) + "\n"


def build_system_instruction(
    dominant: DominantPersona,
    *,
    knowledge: KnowledgeBase | None = None,
    knowledge_types: Iterable[str] = ("products", "personas", "responses"),
    context: str = "",
    behavior_summary: str = "",
) -> str:
    parts = [_INTRO, _IDENTITY]

    if knowledge is not None:
        rules = [knowledge.rules_to_prompt(t) for t in knowledge_types if t != "pricing"]
        body = "\n".join(r for r in rules if r)
        pricing = _format_pricing(knowledge.load_rules("pricing")) if "pricing" in knowledge_types else ""
        if body or pricing:
            parts.append("## دانش کسب‌وکار\n\n" + body + ("\n" + pricing if pricing else ""))

    parts.append(_persona_section(dominant, knowledge))

    if context:
        parts.append("## بستر فعلی\n" + context + "\n")
    if behavior_summary:
        parts.append("## رفتار اخیر کاربر\n" + behavior_summary + "\n")

    parts.append(_GUIDELINES)
    return "\n".join(parts)


def build_user_prompt(message: str | None, current_page: str = "", current_element: str = "") -> str:
    lines: list[str] = []
    if current_page:
        lines.append(f"صفحه فعلی کاربر: {sanitize_input(current_page, 300)}")
    if current_element:
        lines.append(f"المان در حال بررسی: {sanitize_input(current_element, 300)}")
    cleaned = sanitize_input(message or "") or DEFAULT_MESSAGE
    lines.append("")
    lines.append(f"پیام کاربر: {cleaned}")
    return "\n".join(lines)
