"""
SecurityTracker -- per-visitor security score, the source of SecurityBlock.

Every visitor starts at SCORE_MAX (100). Suspicious activity reported by
the WAF / prompt shield subtracts penalty points and appends a row to
security_events; the latest row's current_score is the visitor's score.
At or below SCORE_BLOCKED (20) the visitor is blocked and the inference
engine answers with the fixed "access restricted" message before doing
any AI or storage work.

Read failures fail open (visitor treated as unblocked): the security
store being down must not take the assistant down with it.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from services.intent.errors import SecurityBlock

logger = logging.getLogger(__name__)

SCORE_MAX = 100
SCORE_SUSPICIOUS = 50
SCORE_BLOCKED = 20

EVENT_PENALTIES: dict[str, int] = {
    "waf_block": 30,
    "llm_shield_block": 25,
    "sensitive_file_access": 35,
    "sql_injection": 40,
    "xss_attempt": 35,
    "rce_attempt": 50,
    "rapid_scanning": 25,
    "brute_force": 30,
    "404_spam": 10,
    "suspicious_query": 15,
}

_DEFAULT_PENALTY = 10

_LATEST_SCORE_SQL = """
SELECT current_score FROM security_events
WHERE user_identifier = $1
ORDER BY created_at DESC
LIMIT 1
"""

_INSERT_SECURITY_EVENT_SQL = """
INSERT INTO security_events (user_identifier, event_type, event_data, penalty_points, current_score, created_at)
VALUES ($1, $2, $3::jsonb, $4, $5, NOW())
"""


class SecurityTracker:
    def __init__(self, db: Any) -> None:
        self._db = db

    async def get_security_score(self, user_id: str) -> int:
        try:
            value = await self._db.fetchval(_LATEST_SCORE_SQL, user_id)
        except Exception:
            logger.warning("security score read failed user=%s", user_id, exc_info=True)
            return SCORE_MAX
        return SCORE_MAX if value is None else int(value)

    async def record_suspicious_activity(
        self,
        user_id: str,
        event_type: str,
        penalty: int = 0,
        event_data: dict | None = None,
    ) -> int | None:
        """Apply a penalty. Returns the new score, or None if it could not be stored."""
        points = penalty if penalty > 0 else EVENT_PENALTIES.get(event_type, _DEFAULT_PENALTY)
        current = await self.get_security_score(user_id)
        new_score = max(0, current - points)
        try:
            await self._db.execute(
                _INSERT_SECURITY_EVENT_SQL,
                user_id,
                event_type,
                json.dumps(event_data, ensure_ascii=False) if event_data else None,
                points,
                new_score,
            )
        except Exception:
            logger.warning("security event insert failed user=%s", user_id, exc_info=True)
            return None

        if new_score <= SCORE_BLOCKED:
            logger.warning("visitor blocked user=%s score=%d after %s", user_id, new_score, event_type)
        return new_score

    async def is_blocked(self, user_id: str) -> bool:
        return await self.get_security_score(user_id) <= SCORE_BLOCKED

    async def ensure_allowed(self, user_id: str) -> None:
        """Raise SecurityBlock for blocked visitors."""
        if await self.is_blocked(user_id):
            raise SecurityBlock(f"security score at or below {SCORE_BLOCKED}")
