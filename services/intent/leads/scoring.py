"""
Lead scoring -- 0..100 sales-readiness rating for a prospective customer.

Six independent sub-scores, summed and clamped:

  source      referral channel lookup          (max 18)
  volume      print-run tier thresholds        (max 25)
  product     product-type lookup              (max 15)
  engagement  chat / product / invoice counts  (max 28)
  completeness contact, name, specs, budget    (max 30)
  decision    seconds from chat start to contact request (max 10)

The raw sum can exceed 100; score_lead() always clamps to [0, 100].
All tables are literal constants -- change them here, not in callers.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping

SOURCE_SCORES: dict[str, int] = {
    "instagram": 15,
    "telegram": 15,
    "google_ads": 12,
    "facebook": 10,
    "direct": 8,
    "organic": 5,
    "referral": 18,
}
DEFAULT_SOURCE_SCORE = 5

# (minimum volume, points), checked top-down. Any positive volume earns 5.
VOLUME_TIERS: tuple[tuple[int, int], ...] = (
    (10000, 25),
    (5000, 20),
    (1000, 15),
    (500, 10),
    (1, 5),
)

PRODUCT_SCORES: dict[str, int] = {
    "gold_foil": 15,
    "uv_coating": 12,
    "embossing": 12,
    "luxury_paper": 10,
    "spot_uv": 10,
    "lamination": 8,
    "standard_print": 5,
}
DEFAULT_PRODUCT_SCORE = 5

MESSAGE_COUNT_TIERS: tuple[tuple[int, int], ...] = ((10, 10), (5, 7), (3, 5))
VIEWED_PRODUCTS_TIERS: tuple[tuple[int, int], ...] = ((5, 8), (3, 5), (1, 3))
VIEWED_INVOICES_TIERS: tuple[tuple[int, int], ...] = ((3, 10), (1, 5))

COMPLETENESS_POINTS: dict[str, int] = {
    "contact_info": 10,
    "contact_name": 5,
    "requirements_summary": 8,
    "budget": 7,
}

# (max seconds, points). Non-positive or unknown decision time scores 0.
DECISION_TIME_TIERS: tuple[tuple[int, int], ...] = ((300, 10), (600, 7), (1800, 5))

STATUS_HOT = 80
STATUS_WARM = 60
STATUS_MEDIUM = 40

DEFAULT_NOTIFICATION_THRESHOLD = 70


class LeadStatus(str, Enum):
    HOT = "hot"
    WARM = "warm"
    MEDIUM = "medium"
    COLD = "cold"


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _tier(value: int, tiers: tuple[tuple[int, int], ...]) -> int:
    for minimum, points in tiers:
        if value >= minimum:
            return points
    return 0


def score_source(source: str | None) -> int:
    return SOURCE_SCORES.get(source or "organic", DEFAULT_SOURCE_SCORE)


def score_volume(volume: Any) -> int:
    return _tier(_as_int(volume), VOLUME_TIERS)


def score_product(product_type: str | None) -> int:
    return PRODUCT_SCORES.get(product_type or "", DEFAULT_PRODUCT_SCORE)


def score_engagement(engagement: Mapping[str, Any] | None) -> int:
    if not isinstance(engagement, Mapping):
        return 0
    return (
        _tier(_as_int(engagement.get("message_count")), MESSAGE_COUNT_TIERS)
        + _tier(_as_int(engagement.get("viewed_products")), VIEWED_PRODUCTS_TIERS)
        + _tier(_as_int(engagement.get("viewed_invoices")), VIEWED_INVOICES_TIERS)
    )


def score_completeness(params: Mapping[str, Any]) -> int:
    return sum(points for key, points in COMPLETENESS_POINTS.items() if params.get(key))


def score_decision_time(decision_time: Any) -> int:
    """Unknown or non-positive times fall past the fastest tier and land on the 600s one."""
    seconds = _as_int(decision_time)
    if seconds <= 0:
        return DECISION_TIME_TIERS[1][1]
    for limit, points in DECISION_TIME_TIERS:
        if seconds <= limit:
            return points
    return 0


def score_lead(params: Mapping[str, Any]) -> int:
    total = (
        score_source(params.get("source_referral"))
        + score_volume(params.get("volume"))
        + score_product(params.get("product_type"))
        + score_engagement(params.get("engagement"))
        + score_completeness(params)
        + score_decision_time(params.get("decision_time"))
    )
    return min(100, max(0, total))


def lead_status(score: int) -> LeadStatus:
    if score >= STATUS_HOT:
        return LeadStatus.HOT
    if score >= STATUS_WARM:
        return LeadStatus.WARM
    if score >= STATUS_MEDIUM:
        return LeadStatus.MEDIUM
    return LeadStatus.COLD


def needs_notification(score: int, threshold: int = DEFAULT_NOTIFICATION_THRESHOLD) -> bool:
    return score >= threshold
