"""
Response parser / validator for the assistant's structured answer.

The model is asked for RESPONSE_SCHEMA. Whatever comes back is untrusted:
validate() accepts it only if

  - it is a JSON object
  - `thought` and `response` are non-empty strings
  - `action`, when present, is one of ActionType (or "none")
  - `target` is a string, `data` an object, `persona_update` a string

Anything else is rejected wholesale -- a response is never partially used.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

from services.intent.persona.types import PersonaType
from services.intent.safety.sanitizer import sanitize, sanitize_text

logger = logging.getLogger(__name__)


class ActionType(str, Enum):
    HIGHLIGHT_ELEMENT = "highlight_element"
    SHOW_TOOLTIP = "show_tooltip"
    SCROLL_TO = "scroll_to"
    OPEN_MODAL = "open_modal"
    UPDATE_CALCULATOR = "update_calculator"
    SUGGEST_PRODUCT = "suggest_product"
    SHOW_DISCOUNT = "show_discount"
    CHANGE_CSS = "change_css"
    REDIRECT = "redirect"
    NONE = "none"


_VALID_ACTIONS = frozenset(a.value for a in ActionType)

RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "thought": {"type": "string", "description": "تحلیل داخلی از وضعیت کاربر و نیاز او"},
        "response": {"type": "string", "description": "پاسخ متنی که به کاربر نمایش داده می‌شود"},
        "action": {
            "type": "string",
            "description": "نوع اکشن UI (اختیاری)",
            "enum": [a.value for a in ActionType],
        },
        "target": {"type": "string", "description": "هدف اکشن (CSS selector یا ID)"},
        "data": {"type": "object", "description": "داده‌های اضافی برای اکشن"},
        "persona_update": {"type": "string", "description": "به‌روزرسانی پرسونا (اختیاری)"},
    },
    "required": ["thought", "response"],
}


@dataclass
class AIResponse:
    thought: str
    response: str
    action: ActionType | None = None
    target: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    persona_update: PersonaType | None = None

    @property
    def has_action(self) -> bool:
        return self.action is not None and self.action is not ActionType.NONE


def _non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def validate(raw: Any) -> bool:
    if not isinstance(raw, Mapping):
        return False
    if not _non_empty_str(raw.get("thought")) or not _non_empty_str(raw.get("response")):
        return False

    action = raw.get("action")
    if action is not None and action not in _VALID_ACTIONS:
        return False
    if raw.get("target") is not None and not isinstance(raw["target"], str):
        return False
    if raw.get("data") is not None and not isinstance(raw["data"], Mapping):
        return False
    if raw.get("persona_update") is not None and not isinstance(raw["persona_update"], str):
        return False
    return True


def parse(raw: Any) -> AIResponse | None:
    """AIResponse for a valid payload, None otherwise."""
    if not validate(raw):
        logger.info("rejected AI response: failed validation")
        return None

    persona_update = None
    if raw.get("persona_update"):
        persona_update = PersonaType.parse(raw["persona_update"])
        if persona_update is None:
            logger.info("ignoring unknown persona_update=%r", raw["persona_update"])

    return AIResponse(
        thought=raw["thought"].strip(),
        response=raw["response"].strip(),
        action=ActionType(raw["action"]) if raw.get("action") else None,
        target=raw.get("target") or None,
        data=dict(raw.get("data") or {}),
        persona_update=persona_update,
    )


def to_frontend(response: AIResponse) -> dict[str, Any]:
    """
    Payload the storefront widget renders. The internal `thought` never
    leaves the service. Everything else the model wrote is sanitized on
    the way out, the reply text and selector included.
    """
    out: dict[str, Any] = {
        "success": True,
        "response": sanitize_text(response.response),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if response.has_action:
        out["action"] = response.action.value
        if response.target:
            out["target"] = sanitize_text(response.target)
        if response.data:
            out["data"] = sanitize(response.data)
    return out
