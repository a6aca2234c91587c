"""
Per-visitor request throttling for the storefront widget.

Each (tier, client) pair owns one Redis sorted set of request timestamps
covering the last WINDOW_S seconds. Tiers, in match order:

  events  POST /events/batch            rate_limit_events_per_min
  ai      /decision, /assistant/*       rate_limit_ai_per_min
  auth    widget sent x-user-identifier rate_limit_auth_per_min
  anon    keyed by client IP            rate_limit_anon_per_min

Redis missing or erroring lets the request through: throttling is never
a reason to refuse a visitor.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from services.intent.config import settings

logger = logging.getLogger(__name__)

AI_PREFIXES = ("/decision", "/assistant/")
EVENTS_BATCH_PATH = "/events/batch"
UNTHROTTLED_PATHS = frozenset({"/health"})
WINDOW_S = 60


def _get_rate_limit(path: str, is_authenticated: bool) -> tuple[int, str]:
    """(limit_per_min, tier_name) for the given path and identity state."""
    if path == EVENTS_BATCH_PATH:
        return settings.rate_limit_events_per_min, "events"
    if path.startswith(AI_PREFIXES):
        return settings.rate_limit_ai_per_min, "ai"
    if is_authenticated:
        return settings.rate_limit_auth_per_min, "auth"
    return settings.rate_limit_anon_per_min, "anon"


def _get_client_key(request: Request) -> tuple[str, bool]:
    visitor = request.headers.get("x-user-identifier", "").strip()
    if visitor:
        return f"user:{visitor}", True
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}", False
    return f"ip:{request.client.host if request.client else 'unknown'}", False


@dataclass(frozen=True)
class WindowState:
    limit: int
    used: int
    reset_at: int

    @property
    def exceeded(self) -> bool:
        return self.used >= self.limit

    def headers(self) -> dict[str, str]:
        out = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(max(0, self.limit - self.used - 1)),
            "X-RateLimit-Reset": str(self.reset_at),
        }
        if self.exceeded:
            out["Retry-After"] = str(WINDOW_S)
        return out


async def _record_hit(redis: Any, key: str, limit: int, now: float) -> WindowState:
    """Drop expired entries, count the window, then add this request."""
    pipe = redis.pipeline()
    pipe.zremrangebyscore(key, 0, now - WINDOW_S)
    pipe.zcard(key)
    pipe.zadd(key, {f"{now}:{id(pipe)}": now})
    pipe.expire(key, WINDOW_S * 2)
    results = await pipe.execute()
    return WindowState(limit=limit, used=int(results[1]), reset_at=int(now + WINDOW_S))


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, redis_client=None):
        super().__init__(app)
        self.redis = redis_client

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if path in UNTHROTTLED_PATHS or self.redis is None:
            return await call_next(request)

        client_key, identified = _get_client_key(request)
        limit, tier = _get_rate_limit(path, identified)
        try:
            state = await _record_hit(self.redis, f"ratelimit:{tier}:{client_key}", limit, time.time())
        except Exception:
            logger.warning("rate limiter unavailable, letting %s through", path, exc_info=True)
            return await call_next(request)

        if state.exceeded:
            logger.info("rate limited tier=%s client=%s", tier, client_key)
            return JSONResponse(
                status_code=429,
                content={
                    "success": False,
                    "error": {
                        "code": "RATE_LIMITED",
                        "message": f"Too many requests: at most {limit} per minute on the {tier} tier.",
                    },
                    "requestId": request.state.__dict__.get("request_id", ""),
                },
                headers=state.headers(),
            )

        response = await call_next(request)
        response.headers.update(state.headers())
        return response
