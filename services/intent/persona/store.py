"""
PersonaScoreStore -- per-(user, persona_type) accumulating counters.

    add_score(user_id, persona_type, delta)  -> bool
    add_scores(user_id, {persona_type: delta}) -> bool
    get_scores(user_id)                        -> {persona_type: score}
    reset(user_id)                             -> bool

Increments are a single INSERT ... ON CONFLICT DO UPDATE statement, so
concurrent writers for the same (user, persona_type) row never lose an
update: Postgres serialises them on the row lock and each one adds its
own delta to whatever is committed. The final score is therefore the sum
of deltas regardless of arrival order.

Storage errors are never raised to callers. Writes report False, reads
report an empty map; callers treat both as "no persona impact".
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from services.intent.persona.cache import PersonaScoreCache
from services.intent.persona.types import PersonaScore, PersonaType

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------

# unnest() lets one statement upsert every persona touched by an event.
_UPSERT_SCORES_SQL = """
INSERT INTO persona_scores (user_identifier, persona_type, score, created_at, updated_at)
SELECT $1, t.persona_type, t.delta, NOW(), NOW()
FROM unnest($2::text[], $3::int[]) AS t(persona_type, delta)
ON CONFLICT (user_identifier, persona_type)
DO UPDATE SET score = persona_scores.score + EXCLUDED.score,
              updated_at = NOW()
"""

_GET_SCORES_SQL = """
SELECT persona_type, score, created_at, updated_at
FROM persona_scores
WHERE user_identifier = $1
ORDER BY score DESC, persona_type ASC
"""

_RESET_SQL = """
DELETE FROM persona_scores WHERE user_identifier = $1
"""


def _type_value(persona_type: PersonaType | str) -> str:
    return persona_type.value if isinstance(persona_type, PersonaType) else str(persona_type)


class PersonaScoreStore:
    """
    Thin asyncpg wrapper. One instance per request (or shared -- it holds no
    per-user state of its own).
    """

    def __init__(self, db: Any, cache: PersonaScoreCache | None = None) -> None:
        self._db = db
        self._cache = cache

    async def add_score(self, user_id: str, persona_type: PersonaType | str, delta: int) -> bool:
        return await self.add_scores(user_id, {persona_type: delta})

    async def add_scores(self, user_id: str, deltas: Mapping[PersonaType | str, int]) -> bool:
        """
        Apply several deltas atomically. Non-positive deltas are skipped --
        the score may only grow until an explicit reset.
        """
        if not user_id:
            return False

        types: list[str] = []
        values: list[int] = []
        for persona_type, delta in deltas.items():
            if int(delta) <= 0:
                continue
            types.append(_type_value(persona_type))
            values.append(int(delta))
        if not types:
            return True

        try:
            await self._db.execute(_UPSERT_SCORES_SQL, user_id, types, values)
        except Exception:
            logger.warning(
                "persona score upsert failed user=%s types=%s", user_id, types, exc_info=True,
            )
            return False

        if self._cache is not None:
            await self._cache.invalidate(user_id)
        return True

    async def get_scores(self, user_id: str) -> dict[str, int]:
        """Score map ordered by score desc, persona_type asc."""
        version = None
        if self._cache is not None:
            cached = await self._cache.get(user_id)
            if cached is not None:
                return dict(sorted(cached.items(), key=lambda kv: (-kv[1], kv[0])))
            # taken before the query so a write landing mid-read voids the fill
            version = await self._cache.version(user_id)

        rows = await self._fetch_rows(user_id)
        if rows is None:
            return {}
        scores = {row.persona_type.value: row.score for row in rows}
        if version is not None:
            await self._cache.set(user_id, scores, version)
        return scores

    async def get_rows(self, user_id: str) -> list[PersonaScore]:
        return await self._fetch_rows(user_id) or []

    async def _fetch_rows(self, user_id: str) -> list[PersonaScore] | None:
        """None on storage failure so a failed read is never cached as empty."""
        try:
            records = await self._db.fetch(_GET_SCORES_SQL, user_id)
        except Exception:
            logger.warning("persona score read failed user=%s", user_id, exc_info=True)
            return None

        rows: list[PersonaScore] = []
        for r in records:
            persona_type = PersonaType.parse(r["persona_type"])
            if persona_type is None:
                logger.debug("skipping unknown persona_type=%r user=%s", r["persona_type"], user_id)
                continue
            rows.append(PersonaScore(
                user_identifier=user_id,
                persona_type=persona_type,
                score=int(r["score"]),
                created_at=r["created_at"],
                updated_at=r["updated_at"],
            ))
        return rows

    async def reset(self, user_id: str) -> bool:
        try:
            await self._db.execute(_RESET_SQL, user_id)
        except Exception:
            logger.warning("persona score reset failed user=%s", user_id, exc_info=True)
            return False
        if self._cache is not None:
            await self._cache.invalidate(user_id)
        return True
