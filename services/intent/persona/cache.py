"""
PersonaScoreCache -- Redis read-through cache for a user's score map.

Two keys per user:

    persona_scores:{user_identifier}          hash, field = persona_type, value = score
    persona_scores_version:{user_identifier}  counter bumped by every invalidate()

A reader takes version() before it queries the database and hands that
token to set(). set() WATCHes the counter and only writes when it still
holds the token, so a map read before a concurrent write can never land
after that write's invalidate().

The cache is advisory. Every Redis error degrades to a miss (reads) or a
no-op (writes); the database stays the source of truth. Writers must call
invalidate() after every successful mutation so the next read refills.
"""

from __future__ import annotations

import logging
from typing import Any

from redis.exceptions import WatchError

logger = logging.getLogger(__name__)

_CACHE_KEY_TEMPLATE = "persona_scores:{user_id}"
_VERSION_KEY_TEMPLATE = "persona_scores_version:{user_id}"

# Marker field so an empty score map can be cached without looking like a miss
_EMPTY_MARKER = "__empty__"

# Counters outlive the maps they guard
_VERSION_TTL_FACTOR = 24


def _cache_key(user_id: str) -> str:
    return _CACHE_KEY_TEMPLATE.format(user_id=user_id)


def _version_key(user_id: str) -> str:
    return _VERSION_KEY_TEMPLATE.format(user_id=user_id)


def _decode(value: Any) -> str:
    return value.decode() if isinstance(value, bytes) else str(value)


def _version_token(value: Any) -> str:
    return "0" if value is None else _decode(value)


class PersonaScoreCache:
    def __init__(self, redis_client: Any, ttl_s: int = 3600) -> None:
        self._redis = redis_client
        self._ttl_s = ttl_s

    async def get(self, user_id: str) -> dict[str, int] | None:
        """Cached score map, or None on miss / Redis unavailable."""
        if self._redis is None:
            return None
        try:
            raw = await self._redis.hgetall(_cache_key(user_id))
        except Exception:
            logger.warning("persona cache read failed user=%s", user_id, exc_info=True)
            return None
        if not raw:
            return None

        scores: dict[str, int] = {}
        for field, value in raw.items():
            name = _decode(field)
            if name == _EMPTY_MARKER:
                continue
            try:
                scores[name] = int(_decode(value))
            except ValueError:
                logger.debug("persona cache: dropping malformed field %s=%r", name, value)
        return scores

    async def version(self, user_id: str) -> str | None:
        """Token for set(). None means Redis is unusable and the fill should be skipped."""
        if self._redis is None:
            return None
        try:
            return _version_token(await self._redis.get(_version_key(user_id)))
        except Exception:
            logger.warning("persona cache version read failed user=%s", user_id, exc_info=True)
            return None

    async def set(self, user_id: str, scores: dict[str, int], version: str) -> bool:
        """Store the map unless a writer invalidated since `version` was taken."""
        if self._redis is None:
            return False
        mapping = {k: str(v) for k, v in scores.items()} or {_EMPTY_MARKER: "1"}
        try:
            written = await self._write_if_unchanged(user_id, mapping, version)
        except WatchError:
            written = False
        except Exception:
            logger.warning("persona cache write failed user=%s", user_id, exc_info=True)
            return False
        if not written:
            logger.debug("persona cache fill skipped user=%s: scores changed during read", user_id)
        return written

    async def _write_if_unchanged(self, user_id: str, mapping: dict[str, str], version: str) -> bool:
        key = _cache_key(user_id)
        version_key = _version_key(user_id)
        pipe = self._redis.pipeline()
        try:
            await pipe.watch(version_key)
            if _version_token(await pipe.get(version_key)) != version:
                return False
            pipe.multi()
            pipe.delete(key)
            pipe.hset(key, mapping=mapping)
            pipe.expire(key, self._ttl_s)
            await pipe.execute()
            return True
        finally:
            await pipe.reset()

    async def invalidate(self, user_id: str) -> None:
        if self._redis is None:
            return
        version_key = _version_key(user_id)
        try:
            pipe = self._redis.pipeline()
            pipe.incr(version_key)
            pipe.expire(version_key, self._ttl_s * _VERSION_TTL_FACTOR)
            pipe.delete(_cache_key(user_id))
            await pipe.execute()
        except Exception:
            logger.warning("persona cache invalidate failed user=%s", user_id, exc_info=True)
