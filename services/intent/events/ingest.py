"""
Event ingest -- append-only interaction event log plus the scoring hook.

EventStore owns the interaction_events table:
  - record()        insert one immutable event
  - recent()        events for a user inside a trailing time window
  - latest()        last N events for a user (behavior summaries)
  - purge_before()  age-based cleanup, called by jobs/event_cleanup.py

EventIngestor is the inbound `record_event` operation:
  1. persist the raw event
  2. run the pure scoring rules
  3. add the resulting deltas to the persona score store

Step 3 runs even when step 1 fails: the event log and the score store
are independent, and losing one must not lose the other. Neither
failure raises -- IngestResult reports what happened.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from services.intent.events.types import InteractionEvent
from services.intent.persona.rules import score_event
from services.intent.persona.store import PersonaScoreStore

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------

_INSERT_EVENT_SQL = """
INSERT INTO interaction_events (user_identifier, event_type, element_class, element_data, created_at)
VALUES ($1, $2, $3, $4::jsonb, $5)
"""

_RECENT_EVENTS_SQL = """
SELECT user_identifier, event_type, element_class, element_data, created_at
FROM interaction_events
WHERE user_identifier = $1
  AND created_at >= $2
ORDER BY created_at DESC
"""

_LATEST_EVENTS_SQL = """
SELECT user_identifier, event_type, element_class, element_data, created_at
FROM interaction_events
WHERE user_identifier = $1
ORDER BY created_at DESC
LIMIT $2
"""

_PURGE_EVENTS_SQL = """
DELETE FROM interaction_events WHERE created_at < $1
"""


def _row_to_event(row: Mapping[str, Any]) -> InteractionEvent:
    data = row["element_data"]
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except (ValueError, TypeError):
            data = {}
    return InteractionEvent(
        user_identifier=row["user_identifier"],
        event_type=row["event_type"],
        element_class=row["element_class"] or "",
        element_data=data if isinstance(data, dict) else {},
        timestamp=row["created_at"],
    )


class EventStore:
    def __init__(self, db: Any) -> None:
        self._db = db

    async def record(self, event: InteractionEvent) -> bool:
        try:
            await self._db.execute(
                _INSERT_EVENT_SQL,
                event.user_identifier,
                event.event_type,
                event.element_class,
                json.dumps(event.element_data, ensure_ascii=False, default=str),
                event.timestamp,
            )
        except Exception:
            logger.warning(
                "event insert failed user=%s type=%s",
                event.user_identifier, event.event_type, exc_info=True,
            )
            return False
        return True

    async def recent(self, user_id: str, window_s: int, now: datetime | None = None) -> list[InteractionEvent]:
        """Events within the last `window_s` seconds, newest first. [] on failure."""
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(seconds=window_s)
        try:
            rows = await self._db.fetch(_RECENT_EVENTS_SQL, user_id, cutoff)
        except Exception:
            logger.warning("recent events read failed user=%s", user_id, exc_info=True)
            return []
        return [_row_to_event(r) for r in rows]

    async def latest(self, user_id: str, limit: int = 20) -> list[InteractionEvent]:
        try:
            rows = await self._db.fetch(_LATEST_EVENTS_SQL, user_id, limit)
        except Exception:
            logger.warning("latest events read failed user=%s", user_id, exc_info=True)
            return []
        return [_row_to_event(r) for r in rows]

    async def purge_before(self, cutoff: datetime) -> int:
        """Delete events older than cutoff. Returns deleted row count."""
        status = await self._db.execute(_PURGE_EVENTS_SQL, cutoff)
        # asyncpg returns the command tag, e.g. "DELETE 42"
        try:
            return int(str(status).rsplit(" ", 1)[-1])
        except ValueError:
            return 0


@dataclass
class IngestResult:
    recorded: bool
    scored: bool
    persona_deltas: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "recorded": self.recorded,
            "scored": self.scored,
            "persona_deltas": dict(self.persona_deltas),
        }


class EventIngestor:
    def __init__(self, events: EventStore, scores: PersonaScoreStore) -> None:
        self._events = events
        self._scores = scores

    async def record_event(
        self,
        user_id: str,
        event_type: str,
        element_class: str = "",
        element_data: Mapping[str, Any] | None = None,
        timestamp: datetime | None = None,
    ) -> IngestResult:
        event = InteractionEvent(
            user_identifier=user_id,
            event_type=event_type,
            element_class=element_class or "",
            element_data=dict(element_data or {}),
            timestamp=timestamp or datetime.now(timezone.utc),
        )
        recorded = await self._events.record(event)

        deltas = score_event(event.event_type, event.element_class, event.element_data)
        scored = await self._scores.add_scores(user_id, deltas) if deltas else True
        if not scored:
            logger.info("event scored as no-op after storage failure user=%s", user_id)

        return IngestResult(
            recorded=recorded,
            scored=scored,
            persona_deltas={p.value: d for p, d in deltas.items()},
        )
