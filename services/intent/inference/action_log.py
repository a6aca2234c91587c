"""
Append-only log of UI actions the assistant asked the storefront to run.

One row per executed action in ai_action_log. Writes never fail the
request: a storage error is logged and reported as False.

The re-entrancy flag is a ContextVar, so it is scoped to the current
task's call stack. A write that re-enters log() from inside itself (a
storage hook that logs its own action) is skipped, while concurrent
requests for other visitors are never suppressed by it.
"""

from __future__ import annotations

import contextvars
import json
import logging
from typing import Any, Mapping

from services.intent.safety.sanitizer import sanitize, sanitize_text

logger = logging.getLogger(__name__)

_INSERT_ACTION_SQL = """
INSERT INTO ai_action_log (user_identifier, action, target, data, success, created_at)
VALUES ($1, $2, $3, $4::jsonb, $5, NOW())
"""

_in_action_log: contextvars.ContextVar[bool] = contextvars.ContextVar("_in_action_log", default=False)


class ActionLog:
    def __init__(self, db: Any) -> None:
        self._db = db

    async def log(
        self,
        user_id: str,
        action: str,
        target: str | None = None,
        data: Mapping[str, Any] | None = None,
        success: bool = True,
    ) -> bool:
        if _in_action_log.get():
            logger.debug("nested action log skipped user=%s action=%s", user_id, action)
            return False

        token = _in_action_log.set(True)
        try:
            await self._db.execute(
                _INSERT_ACTION_SQL,
                user_id,
                action,
                sanitize_text(target) if target else target,
                json.dumps(sanitize(dict(data or {})), ensure_ascii=False, default=str),
                success,
            )
        except Exception:
            logger.warning("action log insert failed user=%s action=%s", user_id, action, exc_info=True)
            return False
        finally:
            _in_action_log.reset(token)
        return True
