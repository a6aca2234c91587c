"""
Persona scoring rules -- pure mapping from one interaction event to
per-persona score deltas.

    score_event(event_type, element_class, element_data) -> {PersonaType: delta}

Three independent layers contribute and are summed:

  1. Telemetry base delta
     Fixed points per event type (hover 1, click 5, long_view 10,
     scroll_to 2) plus class bonuses (price +3, product +5,
     license/permission +10). The whole base delta goes to a single
     persona inferred from the element class.

  2. Page-builder module mapping x content patterns
     The element class is matched against known page-builder modules
     (first match wins) and the class + visible text against content
     patterns (first pattern wins). Their persona weights are summed,
     multiplied by the event multiplier and rounded half away from zero.

  3. Named scoring rules
     A fixed-order keyword detector picks at most one named rule
     (tirage_calculator, view_licensing, ...), whose points are added as-is.

All matching is case-insensitive substring matching. No I/O, no state:
callers can unit test this module exhaustively.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping, TypedDict

from services.intent.events.types import EventType
from services.intent.persona.types import PersonaType

A = PersonaType.AUTHOR
B = PersonaType.BUSINESS
D = PersonaType.DESIGNER
S = PersonaType.STUDENT
G = PersonaType.GENERAL
P = PersonaType.PUBLISHER

# ---------------------------------------------------------------------------
# Layer 1 -- telemetry base delta
# ---------------------------------------------------------------------------

BASE_EVENT_POINTS: dict[EventType, int] = {
    EventType.HOVER: 1,
    EventType.CLICK: 5,
    EventType.LONG_VIEW: 10,
    EventType.SCROLL_TO: 2,
}

# (class keywords, bonus) -- every matching row applies
CLASS_BONUSES: tuple[tuple[tuple[str, ...], int], ...] = (
    (("price",), 3),
    (("product",), 5),
    (("license", "permission"), 10),
)

# (class keywords, persona) -- first matching row wins, else general
BASE_PERSONA_HINTS: tuple[tuple[tuple[str, ...], PersonaType], ...] = (
    (("license", "permission"), A),
    (("bulk", "wholesale"), B),
    (("custom", "design"), D),
)

# ---------------------------------------------------------------------------
# Layer 2 -- modules and content patterns
# ---------------------------------------------------------------------------


class ModuleSpec(TypedDict):
    type: str
    category: str
    intent: str
    persona_weight: dict[PersonaType, int]


class ContentPatternSpec(TypedDict):
    keywords: tuple[str, ...]
    type: str
    category: str
    intent: str
    persona_weight: dict[PersonaType, int]


# Insertion order is the match order.
MODULE_MAPPING: dict[str, ModuleSpec] = {
    "et_pb_pricing_table": ModuleSpec(
        type="pricing", category="commercial", intent="purchase_consideration",
        persona_weight={B: 15, A: 10},
    ),
    "et_pb_contact_form": ModuleSpec(
        type="contact", category="engagement", intent="inquiry",
        persona_weight={G: 5},
    ),
    "et_pb_wc_price": ModuleSpec(
        type="product_price", category="commercial", intent="purchase_interest",
        persona_weight={B: 10, A: 8},
    ),
    "et_pb_wc_add_to_cart": ModuleSpec(
        type="add_to_cart", category="conversion", intent="purchase_action",
        persona_weight={B: 20, A: 15},
    ),
    "et_pb_button": ModuleSpec(
        type="button", category="interaction", intent="navigation",
        persona_weight={G: 3},
    ),
    "et_pb_cta": ModuleSpec(
        type="call_to_action", category="conversion", intent="engagement",
        persona_weight={G: 8},
    ),
    "et_pb_gallery": ModuleSpec(
        type="gallery", category="content", intent="exploration",
        persona_weight={D: 10, G: 5},
    ),
    "et_pb_portfolio": ModuleSpec(
        type="portfolio", category="content", intent="exploration",
        persona_weight={D: 15, B: 8},
    ),
    "et_pb_testimonial": ModuleSpec(
        type="testimonial", category="social_proof", intent="trust_building",
        persona_weight={G: 5},
    ),
}

CONTENT_PATTERNS: dict[str, ContentPatternSpec] = {
    "calculator": ContentPatternSpec(
        keywords=("محاسبه", "قیمت", "تیراژ", "calculator", "price"),
        type="calculator", category="tool", intent="price_calculation",
        persona_weight={A: 20, B: 15},
    ),
    "licensing": ContentPatternSpec(
        keywords=("مجوز", "حق", "کپی‌رایت", "license", "permission", "isbn"),
        type="licensing", category="legal", intent="rights_inquiry",
        persona_weight={A: 25},
    ),
    "bulk_order": ContentPatternSpec(
        keywords=("عمده", "انبوه", "تیراژ بالا", "bulk", "wholesale"),
        type="bulk_order", category="commercial", intent="bulk_purchase",
        persona_weight={B: 20, A: 10},
    ),
    "design_specs": ContentPatternSpec(
        keywords=("طراحی", "cmyk", "dpi", "رنگ", "design", "color"),
        type="design_specs", category="technical", intent="design_inquiry",
        persona_weight={D: 20, A: 8},
    ),
    "student_discount": ContentPatternSpec(
        keywords=("دانشجویی", "تخفیف", "student", "discount"),
        type="student_offer", category="pricing", intent="discount_inquiry",
        persona_weight={S: 15},
    ),
}

EVENT_MULTIPLIERS: dict[EventType, float] = {
    EventType.CLICK: 1.5,
    EventType.LONG_VIEW: 1.3,
    EventType.MODULE_DWELL: 1.2,
    EventType.HOVER: 0.8,
    EventType.SCROLL_TO: 0.6,
}

_DEFAULT_MULTIPLIER = 1.0

# ---------------------------------------------------------------------------
# Layer 3 -- named scoring rules
# ---------------------------------------------------------------------------

SCORING_RULES: dict[str, dict[PersonaType, int]] = {
    "view_calculator": {A: 10, P: 5, B: 5},
    "view_licensing": {A: 20},
    "high_price_stay": {B: 15, A: 10},
    "pricing_table_focus": {B: 12, A: 8},
    "bulk_order_interest": {B: 18},
    "design_specs_view": {D: 15},
    "student_discount_check": {S: 12},
    "tirage_calculator": {A: 15, B: 10},
    "isbn_search": {A: 20},
    "cart_add_high_value": {B: 15, A: 10},
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ElementClassification:
    module: str | None
    pattern: str | None
    type: str
    category: str
    intent: str


def _contains_any(haystack: str, needles: tuple[str, ...]) -> bool:
    return any(n in haystack for n in needles)


def _round_half_away(value: float) -> int:
    """Round like PHP's round(): 22.5 -> 23, -22.5 -> -23."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def _text_of(element_data: Mapping[str, Any] | None) -> str:
    if not isinstance(element_data, Mapping):
        return ""
    value = element_data.get("text")
    return str(value).lower() if value is not None else ""


def identify_module(element_class: str) -> str | None:
    class_lower = (element_class or "").lower()
    for module_key in MODULE_MAPPING:
        if module_key in class_lower:
            return module_key
    return None


def detect_content_pattern(text: str, element_class: str = "") -> str | None:
    text_lower = (text or "").lower()
    class_lower = (element_class or "").lower()
    for name, spec in CONTENT_PATTERNS.items():
        for keyword in spec["keywords"]:
            if keyword in text_lower or keyword in class_lower:
                return name
    return None


def classify_element(element_class: str, text: str = "") -> ElementClassification:
    """Module/pattern metadata for an element. Content pattern wins on intent and category."""
    module_key = identify_module(element_class)
    pattern_key = detect_content_pattern(text, element_class)
    module = MODULE_MAPPING.get(module_key) if module_key else None
    pattern = CONTENT_PATTERNS.get(pattern_key) if pattern_key else None

    intent, category, kind = "unknown", "general", "unknown"
    if module is not None:
        intent, category, kind = module["intent"], module["category"], module["type"]
    if pattern is not None:
        intent, category, kind = pattern["intent"], pattern["category"], pattern["type"]
    return ElementClassification(
        module=module_key, pattern=pattern_key, type=kind, category=category, intent=intent,
    )


def persona_weights(element_class: str, element_data: Mapping[str, Any] | None) -> dict[PersonaType, int]:
    """Module weights plus content-pattern weights, summed per persona."""
    weights: dict[PersonaType, int] = {}
    module_key = identify_module(element_class)
    if module_key:
        weights.update(MODULE_MAPPING[module_key]["persona_weight"])
    pattern_key = detect_content_pattern(_text_of(element_data), element_class)
    if pattern_key:
        for persona, weight in CONTENT_PATTERNS[pattern_key]["persona_weight"].items():
            weights[persona] = weights.get(persona, 0) + weight
    return weights


def detect_scoring_rule(element_class: str, element_data: Mapping[str, Any] | None) -> str | None:
    """Pick at most one named rule. Order matters -- first hit wins."""
    content = _text_of(element_data)
    class_lower = (element_class or "").lower()

    if "محاسبه" in content or "calculator" in class_lower:
        return "tirage_calculator" if "تیراژ" in content else "view_calculator"
    if "مجوز" in content or "license" in content:
        return "view_licensing"
    if "isbn" in content:
        return "isbn_search"
    if _contains_any(content, ("عمده", "انبوه", "bulk")):
        return "bulk_order_interest"
    if _contains_any(content, ("cmyk", "dpi")) or "design" in class_lower:
        return "design_specs_view"
    if "دانشجویی" in content or "student" in content:
        return "student_discount_check"
    if "pricing" in class_lower:
        return "pricing_table_focus"
    return None


def base_delta(event_type: str | EventType, element_class: str) -> tuple[PersonaType, int]:
    """Telemetry base points and the single persona they are credited to."""
    kind = EventType.coerce(event_type)
    class_lower = (element_class or "").lower()

    points = BASE_EVENT_POINTS.get(kind, 0)
    for keywords, bonus in CLASS_BONUSES:
        if _contains_any(class_lower, keywords):
            points += bonus

    persona = G
    for keywords, hinted in BASE_PERSONA_HINTS:
        if _contains_any(class_lower, keywords):
            persona = hinted
            break
    return persona, points


def event_multiplier(event_type: str | EventType) -> float:
    return EVENT_MULTIPLIERS.get(EventType.coerce(event_type), _DEFAULT_MULTIPLIER)


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------


def score_event(
    event_type: str | EventType,
    element_class: str,
    element_data: Mapping[str, Any] | None = None,
) -> dict[PersonaType, int]:
    """
    Map one interaction event to persona score deltas.

    Returns only strictly positive deltas. An empty dict (unknown event type,
    no keyword match) is a valid result meaning "no persona impact".
    """
    element_data = element_data if isinstance(element_data, Mapping) else {}
    deltas: dict[PersonaType, int] = {}

    persona, points = base_delta(event_type, element_class)
    if points > 0:
        deltas[persona] = points

    multiplier = event_multiplier(event_type)
    for p, weight in persona_weights(element_class, element_data).items():
        deltas[p] = deltas.get(p, 0) + _round_half_away(weight * multiplier)

    rule_key = detect_scoring_rule(element_class, element_data)
    if rule_key:
        for p, points in SCORING_RULES[rule_key].items():
            deltas[p] = deltas.get(p, 0) + points

    return {p: d for p, d in deltas.items() if d > 0}
