"""
services.intent.persona -- persona scoring, storage and resolution.

  rules.py     pure event -> {persona: delta} scoring
  store.py     atomic per-(user, persona) counters in Postgres
  cache.py     Redis read-through cache for score maps
  resolver.py  dominant persona + confidence, behavior summary
  profiles.py  labels, tone strategies, prompt prefix per persona
"""

from __future__ import annotations

from services.intent.persona.types import DominantPersona, PersonaScore, PersonaType

__all__ = [
    "DominantPersona",
    "PersonaScore",
    "PersonaType",
]
