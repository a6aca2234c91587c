"""
Persona profiles -- display labels, descriptions and conversational
strategies the assistant should adopt for each persona type.

Used by the prompt builder (persona context section) and by the persona
router (full analysis payload).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass

from services.intent.persona.types import DominantPersona, PersonaType

# Below this confidence the persona guess is noise -- no prompt prefix.
MIN_CONFIDENCE_FOR_PREFIX = 10.0

_UNKNOWN_LABEL = "ناشناخته"


@dataclass(frozen=True)
class PersonaStrategy:
    tone: str
    focus: str
    discount: str
    upsell: str


PERSONA_LABELS: dict[PersonaType, str] = {
    PersonaType.AUTHOR: "نویسنده",
    PersonaType.BUSINESS: "مشتری تجاری",
    PersonaType.DESIGNER: "گرافیست",
    PersonaType.STUDENT: "دانشجو",
    PersonaType.GENERAL: "کاربر عمومی",
    PersonaType.PUBLISHER: "ناشر",
    PersonaType.LOYAL_CUSTOMER: "مشتری وفادار",
    PersonaType.CASUAL_BROWSER: "استعلامگیرنده گذرا",
    PersonaType.PRICE_SENSITIVE: "حساس به قیمت",
}

PERSONA_DESCRIPTIONS: dict[PersonaType, str] = {
    PersonaType.AUTHOR: "نویسنده‌ای که به دنبال چاپ کتاب خود است، معمولاً با تیراژ پایین",
    PersonaType.BUSINESS: "کسب‌وکاری که سفارش عمده و قیمت‌گذاری حجمی برایش مهم است",
    PersonaType.DESIGNER: "گرافیست یا طراح که به کیفیت چاپ و جزئیات بصری اهمیت می‌دهد",
    PersonaType.STUDENT: "دانشجویی که به دنبال چاپ پایان‌نامه یا جزوه با تخفیف است",
    PersonaType.GENERAL: "بازدیدکننده‌ای که هنوز الگوی رفتاری مشخصی ندارد",
    PersonaType.PUBLISHER: "ناشر یا مشتری تجاری با تیراژ بالا و نیاز به خدمات حرفه‌ای",
    PersonaType.LOYAL_CUSTOMER: "مشتری وفاداری که قبلاً با ما کار کرده و به سایت برمی‌گردد",
    PersonaType.CASUAL_BROWSER: "بازدیدکننده‌ای که در حال مقایسه قیمت و بررسی گزینه‌ها است",
    PersonaType.PRICE_SENSITIVE: "مشتری‌ای که قیمت برای او اهمیت بالایی دارد",
}

PERSONA_STRATEGIES: dict[PersonaType, PersonaStrategy] = {
    PersonaType.AUTHOR: PersonaStrategy(
        tone="friendly and supportive",
        focus="quality and personal attention",
        discount="offer first-time author discount",
        upsell="professional editing and design services",
    ),
    PersonaType.PUBLISHER: PersonaStrategy(
        tone="professional and efficient",
        focus="volume pricing and delivery speed",
        discount="bulk discount",
        upsell="dedicated account manager",
    ),
    PersonaType.BUSINESS: PersonaStrategy(
        tone="professional and efficient",
        focus="volume pricing and delivery speed",
        discount="bulk discount",
        upsell="dedicated account manager",
    ),
    PersonaType.DESIGNER: PersonaStrategy(
        tone="technical and detailed",
        focus="print quality and color accuracy",
        discount="portfolio discount",
        upsell="premium paper and finishing options",
    ),
    PersonaType.STUDENT: PersonaStrategy(
        tone="friendly and encouraging",
        focus="affordable options and fast turnaround",
        discount="student discount",
        upsell="binding and cover upgrades",
    ),
    PersonaType.LOYAL_CUSTOMER: PersonaStrategy(
        tone="warm and appreciative",
        focus="loyalty rewards",
        discount="returning customer discount",
        upsell="new services and products",
    ),
    PersonaType.CASUAL_BROWSER: PersonaStrategy(
        tone="informative and helpful",
        focus="competitive pricing",
        discount="limited-time offer",
        upsell="quality benefits over cheaper alternatives",
    ),
    PersonaType.PRICE_SENSITIVE: PersonaStrategy(
        tone="value-focused",
        focus="cost savings and discounts",
        discount="price match or special offer",
        upsell="bundle deals for better value",
    ),
}


def persona_label(persona: PersonaType | str) -> str:
    parsed = persona if isinstance(persona, PersonaType) else PersonaType.parse(persona)
    return PERSONA_LABELS.get(parsed, _UNKNOWN_LABEL) if parsed else _UNKNOWN_LABEL


def persona_strategy(persona: PersonaType) -> PersonaStrategy:
    """Unknown / general personas get the casual-browser playbook."""
    return PERSONA_STRATEGIES.get(persona, PERSONA_STRATEGIES[PersonaType.CASUAL_BROWSER])


def persona_profile(persona: PersonaType) -> dict:
    return {
        "label": persona_label(persona),
        "description": PERSONA_DESCRIPTIONS.get(persona, ""),
        "strategy": asdict(persona_strategy(persona)),
    }


def persona_prompt_prefix(dominant: DominantPersona) -> str:
    """One-paragraph steering hint for the system instruction. Empty when unsure."""
    if dominant.confidence < MIN_CONFIDENCE_FOR_PREFIX:
        return ""

    label = persona_label(dominant.type)
    description = PERSONA_DESCRIPTIONS.get(dominant.type, "")
    strategy = persona_strategy(dominant.type)

    prefix = f"توجه: تحلیل رفتار نشان می‌دهد که کاربر احتمالاً یک {label} است ({description}). "
    prefix += f"استراتژی پیشنهادی: لحن {strategy.tone}، تمرکز بر {strategy.focus}. "
    if strategy.discount:
        prefix += f"پیشنهاد تخفیف: {strategy.discount}. "
    return prefix
