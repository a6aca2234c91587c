"""
Ticket triage -- keyword rules that pick a category, urgency and subject
for a customer message.

Category: the category whose keyword list has the most hits in the
message wins; ties go to the earlier entry in CATEGORY_KEYWORDS. No hits
at all is general_inquiry.

Urgency, first match wins:
  any ANGRY_KEYWORDS hit        critical
  any URGENT_KEYWORDS hit       high
  quality_complaint category    high
  otherwise                     medium

Matching is plain substring search on the lower-cased message.
"""

from __future__ import annotations

from enum import Enum


class TicketCategory(str, Enum):
    QUALITY_COMPLAINT = "quality_complaint"
    SHIPPING_INQUIRY = "shipping_inquiry"
    REFUND_REQUEST = "refund_request"
    ORDER_MODIFICATION = "order_modification"
    TECHNICAL_ISSUE = "technical_issue"
    GENERAL_INQUIRY = "general_inquiry"


class TicketUrgency(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


CATEGORY_KEYWORDS: dict[TicketCategory, tuple[str, ...]] = {
    TicketCategory.QUALITY_COMPLAINT: ("کیفیت", "مشکل", "خراب", "معیوب", "ضعیف", "بد", "ناراضی", "شکایت"),
    TicketCategory.SHIPPING_INQUIRY: ("ارسال", "پست", "رسید", "کجاست", "تحویل", "رهگیری", "گیر کرده"),
    TicketCategory.REFUND_REQUEST: ("بازگشت", "پول", "مرجوع", "کنسل", "لغو", "استرداد", "پس بده"),
    TicketCategory.ORDER_MODIFICATION: ("تغییر", "ویرایش", "اصلاح", "اشتباه", "آدرس", "مشخصات"),
    TicketCategory.TECHNICAL_ISSUE: ("فنی", "باگ", "خطا", "نمیشه", "کار نمی‌کند", "مشکل فنی"),
}

URGENT_KEYWORDS: tuple[str, ...] = ("فوری", "اضطراری", "سریع", "زود", "فوراً", "خیلی مهم", "ضروری", "حتماً")
ANGRY_KEYWORDS: tuple[str, ...] = ("عصبانی", "ناراضی", "بد", "افتضاح", "وحشتناک", "غیرقابل قبول", "شکایت")

CATEGORY_LABELS: dict[TicketCategory, str] = {
    TicketCategory.QUALITY_COMPLAINT: "شکایت از کیفیت",
    TicketCategory.TECHNICAL_ISSUE: "مشکل فنی",
    TicketCategory.SHIPPING_INQUIRY: "استعلام ارسال",
    TicketCategory.ORDER_MODIFICATION: "تغییر سفارش",
    TicketCategory.REFUND_REQUEST: "درخواست بازگشت وجه",
    TicketCategory.GENERAL_INQUIRY: "سوال عمومی",
}

URGENCY_LABELS: dict[TicketUrgency, str] = {
    TicketUrgency.CRITICAL: "بحرانی",
    TicketUrgency.HIGH: "فوری",
    TicketUrgency.MEDIUM: "متوسط",
    TicketUrgency.LOW: "عادی",
}

# Urgencies that page staff on creation
NOTIFY_URGENCIES: frozenset[TicketUrgency] = frozenset({TicketUrgency.CRITICAL, TicketUrgency.HIGH})

SUBJECT_EXCERPT_CHARS = 50


def detect_category(message: str) -> TicketCategory:
    text = message.lower()
    hits = {
        category: sum(1 for word in words if word in text)
        for category, words in CATEGORY_KEYWORDS.items()
    }
    best = max(hits, key=hits.__getitem__)
    return best if hits[best] > 0 else TicketCategory.GENERAL_INQUIRY


def detect_urgency(message: str, category: TicketCategory) -> TicketUrgency:
    text = message.lower()
    if any(word in text for word in ANGRY_KEYWORDS):
        return TicketUrgency.CRITICAL
    if any(word in text for word in URGENT_KEYWORDS):
        return TicketUrgency.HIGH
    if category is TicketCategory.QUALITY_COMPLAINT:
        return TicketUrgency.HIGH
    return TicketUrgency.MEDIUM


def make_subject(category: TicketCategory, message: str) -> str:
    return f"{CATEGORY_LABELS[category]}: {message[:SUBJECT_EXCERPT_CHARS]}..."


def classify(message: str) -> dict[str, str]:
    """Category, urgency, their labels and the generated subject."""
    category = detect_category(message)
    urgency = detect_urgency(message, category)
    return {
        "category": category.value,
        "category_label": CATEGORY_LABELS[category],
        "urgency": urgency.value,
        "urgency_label": URGENCY_LABELS[urgency],
        "subject": make_subject(category, message),
    }
