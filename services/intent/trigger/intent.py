"""
High-intent detection for the decision trigger.

The trigger only asks one question -- "does this window contain a
high-intent event?" -- through the IntentMatcher protocol, so the
keyword heuristic below can be replaced by a classifier without
touching the trigger's gate order.
"""

from __future__ import annotations

from typing import Iterable, Protocol

from services.intent.events.types import EventType, InteractionEvent

HIGH_INTENT_KEYWORDS: tuple[str, ...] = (
    "pricing",
    "calculator",
    "add_to_cart",
    "license",
    "contact",
    "checkout",
)


class IntentMatcher(Protocol):
    def is_high_intent(self, event: InteractionEvent) -> bool: ...


class KeywordIntentMatcher:
    """Case-insensitive substring match on class/text, plus long module dwell."""

    def __init__(
        self,
        keywords: Iterable[str] = HIGH_INTENT_KEYWORDS,
        dwell_threshold_ms: int = 5000,
    ) -> None:
        self.keywords = tuple(k.lower() for k in keywords)
        self.dwell_threshold_ms = dwell_threshold_ms

    def is_high_intent(self, event: InteractionEvent) -> bool:
        element_class = event.element_class.lower()
        text = event.text.lower()
        for keyword in self.keywords:
            if keyword in element_class or keyword in text:
                return True
        return event.kind is EventType.MODULE_DWELL and event.dwell_time > self.dwell_threshold_ms


def first_high_intent(matcher: IntentMatcher, events: Iterable[InteractionEvent]) -> InteractionEvent | None:
    for event in events:
        if matcher.is_high_intent(event):
            return event
    return None
