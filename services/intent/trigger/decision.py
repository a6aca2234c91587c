"""
DecisionTrigger -- decides whether a visitor's recent behavior justifies
a call to the AI engine.

Each should_trigger() call is one pass through a fixed gate:

  1. dominant persona score >= ai_trigger_threshold  else insufficient_score
  2. events in the activity window >= min_events     else insufficient_activity
  3. at least one high-intent event in the window    else no_high_intent_events
  4. Triggered(conditions_met) with the assembled trigger context

Checks run cheapest first: the score lookup and the event count short
circuit before the O(n) content scan. Keep this order.

Storage failures never escape: an unreadable score map resolves to
"general / 0" and an unreadable event window to [], which simply blocks.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable

from services.intent.context.commerce import CommerceProvider, load_snapshot
from services.intent.events.ingest import EventStore
from services.intent.events.types import InteractionEvent
from services.intent.persona.resolver import DominantPersonaResolver
from services.intent.persona.types import DominantPersona
from services.intent.trigger.intent import IntentMatcher, KeywordIntentMatcher, first_high_intent

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Defaults (overridable via Settings)
# ---------------------------------------------------------------------------

AI_TRIGGER_THRESHOLD = 50
MIN_EVENTS_COUNT = 5
ACTIVITY_WINDOW_S = 300
HIGH_INTENT_DWELL_TIME_MS = 5000


class TriggerReason(str, Enum):
    INSUFFICIENT_SCORE = "insufficient_score"
    INSUFFICIENT_ACTIVITY = "insufficient_activity"
    NO_HIGH_INTENT_EVENTS = "no_high_intent_events"
    CONDITIONS_MET = "conditions_met"


@dataclass
class TriggerDecision:
    trigger: bool
    reason: TriggerReason
    persona: DominantPersona | None = None
    event_count: int | None = None
    context: dict[str, Any] | None = None
    extra: dict[str, Any] = field(default_factory=dict)
    """Diagnostics for blocked results: {score, threshold} or {event_count, min_required}."""

    def to_dict(self) -> dict:
        out: dict[str, Any] = {"trigger": self.trigger, "reason": self.reason.value}
        out.update(self.extra)
        if self.persona is not None:
            out["persona"] = self.persona.to_dict()
        if self.event_count is not None:
            out["event_count"] = self.event_count
        if self.context is not None:
            out["context"] = self.context
        return out


def summarize_events(events: Iterable[InteractionEvent]) -> dict[str, Any]:
    events = list(events)
    focused_modules = [
        e.element_data["module_id"] for e in events
        if isinstance(e.element_data, dict) and "module_id" in e.element_data
    ]
    return {
        "total_events": len(events),
        "event_types": dict(Counter(e.event_type for e in events)),
        "focused_modules": focused_modules,
        "total_dwell_time": sum(e.dwell_time for e in events),
    }


class DecisionTrigger:
    def __init__(
        self,
        resolver: DominantPersonaResolver,
        events: EventStore,
        commerce: CommerceProvider | None = None,
        matcher: IntentMatcher | None = None,
        *,
        score_threshold: int = AI_TRIGGER_THRESHOLD,
        min_events: int = MIN_EVENTS_COUNT,
        window_s: int = ACTIVITY_WINDOW_S,
        dwell_threshold_ms: int = HIGH_INTENT_DWELL_TIME_MS,
    ) -> None:
        self._resolver = resolver
        self._events = events
        self._commerce = commerce
        self._matcher = matcher or KeywordIntentMatcher(dwell_threshold_ms=dwell_threshold_ms)
        self.score_threshold = score_threshold
        self.min_events = min_events
        self.window_s = window_s

    async def should_trigger(self, user_id: str) -> TriggerDecision:
        # 1. Score gate
        persona = await self._resolver.resolve(user_id)
        if persona.score < self.score_threshold:
            return TriggerDecision(
                trigger=False,
                reason=TriggerReason.INSUFFICIENT_SCORE,
                extra={"score": persona.score, "threshold": self.score_threshold},
            )

        # 2. Activity gate
        recent = await self._events.recent(user_id, self.window_s)
        if len(recent) < self.min_events:
            return TriggerDecision(
                trigger=False,
                reason=TriggerReason.INSUFFICIENT_ACTIVITY,
                extra={"event_count": len(recent), "min_required": self.min_events},
            )

        # 3. High-intent scan
        hit = first_high_intent(self._matcher, recent)
        if hit is None:
            return TriggerDecision(trigger=False, reason=TriggerReason.NO_HIGH_INTENT_EVENTS)

        logger.info(
            "ai trigger fired user=%s persona=%s score=%d events=%d hit=%s",
            user_id, persona.type.value, persona.score, len(recent), hit.element_class,
        )
        return TriggerDecision(
            trigger=True,
            reason=TriggerReason.CONDITIONS_MET,
            persona=persona,
            event_count=len(recent),
            context=await self._build_context(user_id, recent),
        )

    async def _build_context(self, user_id: str, recent: list[InteractionEvent]) -> dict[str, Any]:
        snapshot = await load_snapshot(self._commerce, user_id)
        return {
            "user": user_id,
            "persona": await self._resolver.full_analysis(user_id),
            "recent_activity": summarize_events(recent),
            "commerce": snapshot.model_dump() if snapshot is not None else None,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    async def trigger_stats(self, user_id: str) -> dict[str, Any]:
        persona = await self._resolver.resolve(user_id)
        recent = await self._events.recent(user_id, self.window_s)
        pct = min(100.0, persona.score / self.score_threshold * 100) if self.score_threshold > 0 else 100.0
        decision = await self.should_trigger(user_id)
        return {
            "score": persona.score,
            "threshold": self.score_threshold,
            "score_percentage": round(pct, 2),
            "event_count": len(recent),
            "min_events": self.min_events,
            "ready_to_trigger": decision.trigger,
        }
