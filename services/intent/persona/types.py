"""
PersonaType, PersonaScore and DominantPersona.

These are the canonical persona types for the whole service. The score
store produces PersonaScore rows; the resolver turns them into a
DominantPersona, which the trigger, context assembler and inference
engine consume. Nothing downstream reads persona_scores directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class PersonaType(str, Enum):
    AUTHOR = "author"
    BUSINESS = "business"
    DESIGNER = "designer"
    STUDENT = "student"
    GENERAL = "general"
    PUBLISHER = "publisher"
    LOYAL_CUSTOMER = "loyal_customer"
    CASUAL_BROWSER = "casual_browser"
    PRICE_SENSITIVE = "price_sensitive"

    @classmethod
    def parse(cls, value: str | None) -> PersonaType | None:
        """Lenient lookup -- returns None for unknown values instead of raising."""
        if not value:
            return None
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


@dataclass
class PersonaScore:
    """One accumulated (user, persona) counter."""

    user_identifier: str
    persona_type: PersonaType
    score: int
    """Always >= 0. Only grows via additive deltas until an explicit reset."""

    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class DominantPersona:
    """
    Highest-ranked persona for a user at query time.

    Derived on demand from PersonaScore rows; never stored.
    """

    type: PersonaType
    score: int
    confidence: float
    """score / threshold[type] * 100, rounded to 2 places and capped at 100."""

    all_scores: dict[str, int] = field(default_factory=dict)
    """persona_type value -> score, ordered by rank."""

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "score": self.score,
            "confidence": self.confidence,
            "all_scores": dict(self.all_scores),
        }
