"""
Offline replies used when the AI provider cannot answer.

Tier order:
  1. Purchase / inquiry intent  -> lead-collection form (show_lead_form)
  2. Anything else              -> short general "assistant offline" reply

Intent is a plain keyword scan over the visitor's message (Persian +
English). The reply keeps the frontend contract of to_frontend():
success flag, response text, optional action / data.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping


PURCHASE_KEYWORDS: tuple[str, ...] = (
    "خرید", "سفارش", "ثبت", "محصول", "قیمت", "موجود",
    "buy", "purchase", "order", "price",
)
INQUIRY_KEYWORDS: tuple[str, ...] = (
    "سوال", "پرسش", "اطلاعات", "راهنما", "کمک", "مشاوره",
    "question", "help", "info", "support",
)

LEAD_FORM_FIELDS: tuple[str, ...] = ("full_name", "phone", "email", "message")
REQUIRED_LEAD_FIELDS: tuple[str, ...] = ("full_name", "phone")

_LEAD_FORM_MESSAGE = (
    "در حال حاضر دستیار هوشمند در دسترس نیست. "
    "لطفاً اطلاعات تماس خود را وارد کنید تا کارشناسان ما در اسرع وقت با شما تماس بگیرند."
)
_GENERAL_MESSAGE = (
    "دستیار هوشمند موقتاً در دسترس نیست. "
    "می‌توانید محصولات را مرور کنید یا کمی بعد دوباره پیام دهید."
)


def detect_intent(text: str | None) -> str:
    """'purchase', 'inquiry' or 'general'. Purchase wins when both match."""
    lowered = (text or "").lower()
    if any(k in lowered for k in PURCHASE_KEYWORDS):
        return "purchase"
    if any(k in lowered for k in INQUIRY_KEYWORDS):
        return "inquiry"
    return "general"


def offline_response(user_input: str | None) -> dict[str, Any]:
    intent = detect_intent(user_input)
    now = datetime.now(timezone.utc).isoformat()

    if intent in ("purchase", "inquiry"):
        return {
            "success": True,
            "offline": True,
            "response": _LEAD_FORM_MESSAGE,
            "action": "show_lead_form",
            "data": {"intent": intent, "fields": list(LEAD_FORM_FIELDS)},
            "timestamp": now,
        }
    return {"success": True, "offline": True, "response": _GENERAL_MESSAGE, "timestamp": now}


def missing_lead_fields(form: Mapping[str, Any]) -> list[str]:
    return [f for f in REQUIRED_LEAD_FIELDS if not str(form.get(f) or "").strip()]
