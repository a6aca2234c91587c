"""
DominantPersonaResolver -- ranks a user's persona scores and derives
confidence against the per-persona thresholds.

Ranking: highest score first; equal scores are ordered alphabetically
by persona_type value so the winner never depends on row order.

Confidence: min(100, round(score / threshold * 100, 2)). Personas with a
zero or unconfigured threshold (general, publisher, ...) always report 0.
"""

from __future__ import annotations

from collections import Counter
from typing import Mapping

from services.intent.events.ingest import EventStore
from services.intent.persona.profiles import persona_profile
from services.intent.persona.store import PersonaScoreStore
from services.intent.persona.types import DominantPersona, PersonaType


DEFAULT_THRESHOLDS: dict[str, int] = {
    "author": 100,
    "business": 80,
    "designer": 70,
    "student": 50,
    "general": 0,
}

NO_HISTORY_SUMMARY = "کاربر جدید بدون تاریخچه رفتاری"


def rank_scores(scores: Mapping[str, int]) -> list[tuple[str, int]]:
    return sorted(scores.items(), key=lambda kv: (-kv[1], kv[0]))


def confidence_for(persona_type: str, score: int, thresholds: Mapping[str, int]) -> float:
    threshold = thresholds.get(persona_type, 0)
    if threshold <= 0:
        return 0.0
    return min(100.0, round(score / threshold * 100, 2))


def dominant_from_scores(scores: Mapping[str, int], thresholds: Mapping[str, int]) -> DominantPersona:
    """Pure core of resolve(); also used when the caller already holds the map."""
    ranked = [(t, s) for t, s in rank_scores(scores) if PersonaType.parse(t) is not None]
    if not ranked:
        return DominantPersona(type=PersonaType.GENERAL, score=0, confidence=0.0, all_scores={})

    top_type, top_score = ranked[0]
    return DominantPersona(
        type=PersonaType(top_type),
        score=top_score,
        confidence=confidence_for(top_type, top_score, thresholds),
        all_scores=dict(ranked),
    )


class DominantPersonaResolver:
    def __init__(
        self,
        scores: PersonaScoreStore,
        events: EventStore | None = None,
        thresholds: Mapping[str, int] | None = None,
    ) -> None:
        self._scores = scores
        self._events = events
        self._thresholds = dict(thresholds or DEFAULT_THRESHOLDS)

    async def resolve(self, user_id: str) -> DominantPersona:
        scores = await self._scores.get_scores(user_id)
        return dominant_from_scores(scores, self._thresholds)

    async def behavior_summary(self, user_id: str, limit: int = 20, dominant: DominantPersona | None = None) -> str:
        """
        Human-readable (Persian) digest of the last `limit` events, grouped by
        (event_type, element_class), followed by the detected persona line.
        """
        if self._events is None:
            return NO_HISTORY_SUMMARY
        events = await self._events.latest(user_id, limit)
        if not events:
            return NO_HISTORY_SUMMARY

        counts = Counter((e.event_type, e.element_class) for e in events)
        lines = ["رفتارهای اخیر کاربر:"]
        for (event_type, element_class), count in counts.items():
            lines.append(f"- {event_type} روی {element_class or '-'}: {count} بار")

        dominant = dominant or await self.resolve(user_id)
        lines.append("")
        lines.append(f"پرسونای شناسایی‌شده: {dominant.type.value} (اطمینان: {dominant.confidence:.1f}%)")
        return "\n".join(lines)

    async def full_analysis(self, user_id: str) -> dict:
        dominant = await self.resolve(user_id)
        return {
            "dominant_persona": dominant.to_dict(),
            "all_scores": dict(dominant.all_scores),
            "behavior_summary": await self.behavior_summary(user_id, dominant=dominant),
            "profile": persona_profile(dominant.type),
        }
