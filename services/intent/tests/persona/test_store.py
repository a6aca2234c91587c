"""
Tests for PersonaScoreStore and PersonaScoreCache.

Covers:
- add_scores: one upsert per event, non-positive deltas skipped, empty user rejected
- storage failures report False / {} and never raise
- read-through cache: hit skips the DB, miss fills it, failed reads are not cached
- invalidation after every successful write / reset bumps the version counter
- a fill read before a concurrent write never overwrites that write's invalidation
- concurrent deltas commute
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import WatchError

from services.intent.persona.cache import PersonaScoreCache
from services.intent.persona.store import PersonaScoreStore
from services.intent.persona.types import PersonaType
from services.intent.tests.conftest import make_score_rows


def _cache(mock_redis) -> PersonaScoreCache:
    return PersonaScoreCache(mock_redis, ttl_s=60)


class _FakePipeline:
    def __init__(self, redis: _FakeRedis) -> None:
        self._redis = redis
        self._queued: list[tuple] = []
        self._watched: tuple[str, str | None] | None = None

    async def watch(self, key):
        self._watched = (key, self._redis.versions.get(key))

    async def get(self, key):
        return self._redis.versions.get(key)

    def multi(self):
        pass

    def incr(self, key):
        self._queued.append(("incr", key))

    def expire(self, key, ttl):
        pass

    def delete(self, key):
        self._queued.append(("delete", key))

    def hset(self, key, mapping):
        self._queued.append(("hset", key, dict(mapping)))

    async def execute(self):
        if self._watched is not None:
            key, seen = self._watched
            if self._redis.versions.get(key) != seen:
                raise WatchError("watched key changed")
        for op in self._queued:
            if op[0] == "incr":
                self._redis.versions[op[1]] = str(int(self._redis.versions.get(op[1]) or 0) + 1)
            elif op[0] == "delete":
                self._redis.hashes.pop(op[1], None)
            else:
                self._redis.hashes[op[1]] = op[2]
        self._queued = []
        return []

    async def reset(self):
        self._queued = []
        self._watched = None


class _FakeRedis:
    """Just enough of redis.asyncio for PersonaScoreCache."""

    def __init__(self) -> None:
        self.hashes: dict[str, dict[str, str]] = {}
        self.versions: dict[str, str] = {}

    async def hgetall(self, key):
        return dict(self.hashes.get(key, {}))

    async def get(self, key):
        return self.versions.get(key)

    def pipeline(self):
        return _FakePipeline(self)


class _AccumulatingDB:
    """
    One visitor's persona_scores rows in memory. execute() yields to the
    loop, then adds each delta to the stored score, as the upsert's
    ON CONFLICT clause does. on_fetch runs once, after fetch() has taken
    its snapshot.
    """

    def __init__(self) -> None:
        self.scores: dict[str, int] = {}
        self.statements: list[str] = []
        self.on_fetch = None

    async def execute(self, sql, user_id, types, values):
        self.statements.append(sql)
        await asyncio.sleep(0)
        for persona_type, delta in zip(types, values):
            self.scores[persona_type] = self.scores.get(persona_type, 0) + delta

    async def fetch(self, sql, user_id):
        now = datetime.now(timezone.utc)
        snapshot = [
            {"persona_type": t, "score": s, "created_at": now, "updated_at": now}
            for t, s in sorted(self.scores.items(), key=lambda kv: (-kv[1], kv[0]))
        ]
        hook, self.on_fetch = self.on_fetch, None
        if hook is not None:
            await hook()
        return snapshot


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

class TestAddScores:

    @pytest.mark.asyncio
    async def test_single_upsert_for_all_personas(self, mock_db):
        store = PersonaScoreStore(mock_db)
        ok = await store.add_scores("v1", {PersonaType.BUSINESS: 30, PersonaType.AUTHOR: 23})

        assert ok is True
        mock_db.execute.assert_awaited_once()
        _, user_id, types, values = mock_db.execute.call_args.args
        assert user_id == "v1"
        assert types == ["business", "author"]
        assert values == [30, 23]

    @pytest.mark.asyncio
    async def test_non_positive_deltas_skipped(self, mock_db):
        store = PersonaScoreStore(mock_db)
        ok = await store.add_scores("v1", {"author": 0, "business": -5, "student": 4})

        assert ok is True
        _, _, types, values = mock_db.execute.call_args.args
        assert types == ["student"]
        assert values == [4]

    @pytest.mark.asyncio
    async def test_only_non_positive_is_noop_success(self, mock_db):
        store = PersonaScoreStore(mock_db)
        assert await store.add_scores("v1", {"author": 0}) is True
        mock_db.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_user_rejected(self, mock_db):
        store = PersonaScoreStore(mock_db)
        assert await store.add_score("", PersonaType.AUTHOR, 10) is False
        mock_db.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_db_failure_returns_false(self, mock_db):
        mock_db.execute = AsyncMock(side_effect=ConnectionError("db down"))
        store = PersonaScoreStore(mock_db)
        assert await store.add_score("v1", PersonaType.AUTHOR, 10) is False

    @pytest.mark.asyncio
    async def test_successful_write_invalidates_cache(self, mock_db, mock_redis):
        store = PersonaScoreStore(mock_db, cache=_cache(mock_redis))
        await store.add_score("v1", "designer", 15)
        pipe = mock_redis.pipeline.return_value
        pipe.incr.assert_called_once_with("persona_scores_version:v1")
        pipe.delete.assert_called_once_with("persona_scores:v1")
        pipe.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_write_keeps_cache(self, mock_db, mock_redis):
        mock_db.execute = AsyncMock(side_effect=ConnectionError("db down"))
        store = PersonaScoreStore(mock_db, cache=_cache(mock_redis))
        await store.add_score("v1", "designer", 15)
        mock_redis.pipeline.assert_not_called()


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

class TestGetScores:

    @pytest.mark.asyncio
    async def test_reads_rows_in_rank_order(self, mock_db):
        mock_db.fetch = AsyncMock(return_value=make_score_rows({"author": 40, "business": 55}))
        store = PersonaScoreStore(mock_db)
        scores = await store.get_scores("v1")
        assert list(scores.items()) == [("business", 55), ("author", 40)]

    @pytest.mark.asyncio
    async def test_unknown_persona_rows_skipped(self, mock_db):
        mock_db.fetch = AsyncMock(return_value=make_score_rows({"author": 40, "alien": 90}))
        store = PersonaScoreStore(mock_db)
        assert await store.get_scores("v1") == {"author": 40}

    @pytest.mark.asyncio
    async def test_db_failure_returns_empty(self, mock_db):
        mock_db.fetch = AsyncMock(side_effect=ConnectionError("db down"))
        store = PersonaScoreStore(mock_db)
        assert await store.get_scores("v1") == {}

    @pytest.mark.asyncio
    async def test_get_rows_returns_dataclasses(self, mock_db):
        mock_db.fetch = AsyncMock(return_value=make_score_rows({"student": 12}))
        rows = await PersonaScoreStore(mock_db).get_rows("v1")
        assert len(rows) == 1
        assert rows[0].persona_type is PersonaType.STUDENT
        assert rows[0].score == 12


class TestCacheReadThrough:

    @pytest.mark.asyncio
    async def test_cache_hit_skips_db(self, mock_db, mock_redis):
        mock_redis.hgetall = AsyncMock(return_value={"author": "10", "business": "30"})
        store = PersonaScoreStore(mock_db, cache=_cache(mock_redis))

        scores = await store.get_scores("v1")

        assert list(scores.items()) == [("business", 30), ("author", 10)]
        mock_db.fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cache_miss_fills_cache(self, mock_db, mock_redis):
        mock_db.fetch = AsyncMock(return_value=make_score_rows({"designer": 70}))
        store = PersonaScoreStore(mock_db, cache=_cache(mock_redis))

        assert await store.get_scores("v1") == {"designer": 70}

        pipe = mock_redis.pipeline.return_value
        pipe.watch.assert_awaited_once_with("persona_scores_version:v1")
        pipe.hset.assert_called_once_with("persona_scores:v1", mapping={"designer": "70"})
        pipe.expire.assert_called_once_with("persona_scores:v1", 60)

    @pytest.mark.asyncio
    async def test_empty_map_cached_with_marker(self, mock_db, mock_redis):
        store = PersonaScoreStore(mock_db, cache=_cache(mock_redis))
        assert await store.get_scores("v1") == {}
        pipe = mock_redis.pipeline.return_value
        pipe.hset.assert_called_once_with("persona_scores:v1", mapping={"__empty__": "1"})

    @pytest.mark.asyncio
    async def test_empty_marker_reads_as_empty_hit(self, mock_db, mock_redis):
        mock_redis.hgetall = AsyncMock(return_value={b"__empty__": b"1"})
        store = PersonaScoreStore(mock_db, cache=_cache(mock_redis))
        assert await store.get_scores("v1") == {}
        mock_db.fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_read_not_cached(self, mock_db, mock_redis):
        mock_db.fetch = AsyncMock(side_effect=ConnectionError("db down"))
        store = PersonaScoreStore(mock_db, cache=_cache(mock_redis))
        await store.get_scores("v1")
        mock_redis.pipeline.assert_not_called()

    @pytest.mark.asyncio
    async def test_redis_errors_degrade_to_db(self, mock_db, mock_redis):
        mock_redis.hgetall = AsyncMock(side_effect=ConnectionError("redis down"))
        mock_redis.pipeline = MagicMock(side_effect=ConnectionError("redis down"))
        mock_db.fetch = AsyncMock(return_value=make_score_rows({"author": 5}))
        store = PersonaScoreStore(mock_db, cache=_cache(mock_redis))
        assert await store.get_scores("v1") == {"author": 5}

    @pytest.mark.asyncio
    async def test_malformed_cached_value_dropped(self, mock_redis):
        mock_redis.hgetall = AsyncMock(return_value={"author": "ten", "business": "3"})
        assert await _cache(mock_redis).get("v1") == {"business": 3}


class TestReset:

    @pytest.mark.asyncio
    async def test_reset_deletes_and_invalidates(self, mock_db, mock_redis):
        store = PersonaScoreStore(mock_db, cache=_cache(mock_redis))
        assert await store.reset("v1") is True
        assert mock_db.execute.call_args.args[1] == "v1"
        mock_redis.pipeline.return_value.delete.assert_called_once_with("persona_scores:v1")
        mock_redis.pipeline.return_value.incr.assert_called_once_with("persona_scores_version:v1")

    @pytest.mark.asyncio
    async def test_reset_failure_returns_false(self, mock_db):
        mock_db.execute = AsyncMock(side_effect=ConnectionError("db down"))
        assert await PersonaScoreStore(mock_db).reset("v1") is False


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------

class TestCacheFillGuard:

    @pytest.mark.asyncio
    async def test_fill_skipped_when_version_moved(self, mock_db, mock_redis):
        mock_redis.get = AsyncMock(return_value="3")
        pipe = mock_redis.pipeline.return_value
        pipe.get = AsyncMock(return_value="4")
        mock_db.fetch = AsyncMock(return_value=make_score_rows({"author": 10}))
        store = PersonaScoreStore(mock_db, cache=_cache(mock_redis))

        assert await store.get_scores("v1") == {"author": 10}
        pipe.hset.assert_not_called()
        pipe.execute.assert_not_awaited()
        pipe.reset.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_watch_conflict_still_returns_db_scores(self, mock_db, mock_redis):
        pipe = mock_redis.pipeline.return_value
        pipe.execute = AsyncMock(side_effect=WatchError("changed"))
        mock_db.fetch = AsyncMock(return_value=make_score_rows({"author": 10}))
        store = PersonaScoreStore(mock_db, cache=_cache(mock_redis))

        assert await store.get_scores("v1") == {"author": 10}
        pipe.reset.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_version_read_failure_skips_fill(self, mock_db, mock_redis):
        mock_redis.get = AsyncMock(side_effect=ConnectionError("redis down"))
        mock_db.fetch = AsyncMock(return_value=make_score_rows({"author": 10}))
        store = PersonaScoreStore(mock_db, cache=_cache(mock_redis))

        assert await store.get_scores("v1") == {"author": 10}
        mock_redis.pipeline.assert_not_called()

    @pytest.mark.asyncio
    async def test_write_during_read_is_not_masked_by_stale_fill(self):
        db = _AccumulatingDB()
        store = PersonaScoreStore(db, cache=PersonaScoreCache(_FakeRedis(), ttl_s=60))
        await store.add_score("v1", "author", 10)

        async def concurrent_write():
            assert await store.add_score("v1", "author", 100)

        db.on_fetch = concurrent_write

        # this read took its rows before the write landed
        assert await store.get_scores("v1") == {"author": 10}
        assert db.scores == {"author": 110}
        assert await store.get_scores("v1") == {"author": 110}

    @pytest.mark.asyncio
    async def test_quiet_read_fills_and_next_read_hits(self):
        db = _AccumulatingDB()
        redis = _FakeRedis()
        store = PersonaScoreStore(db, cache=PersonaScoreCache(redis, ttl_s=60))
        await store.add_score("v1", "author", 10)

        assert await store.get_scores("v1") == {"author": 10}
        assert redis.hashes["persona_scores:v1"] == {"author": "10"}

        db.scores["author"] = 999  # behind the store's back: only a cache hit returns 10
        assert await store.get_scores("v1") == {"author": 10}


class TestConcurrentDeltas:

    @pytest.mark.asyncio
    async def test_deltas_commute_in_either_order(self):
        d1 = {"author": 30, "business": 5}
        d2 = {"author": 12, "student": 7}

        forward, backward = _AccumulatingDB(), _AccumulatingDB()
        forward_store, backward_store = PersonaScoreStore(forward), PersonaScoreStore(backward)

        assert all(await asyncio.gather(
            forward_store.add_scores("v1", d1), forward_store.add_scores("v1", d2),
        ))
        assert all(await asyncio.gather(
            backward_store.add_scores("v1", d2), backward_store.add_scores("v1", d1),
        ))

        expected = {"author": 42, "student": 7, "business": 5}
        assert await forward_store.get_scores("v1") == expected
        assert await backward_store.get_scores("v1") == expected

    @pytest.mark.asyncio
    async def test_each_call_is_one_accumulating_upsert(self):
        db = _AccumulatingDB()
        store = PersonaScoreStore(db)

        await asyncio.gather(*(store.add_score("v1", "designer", 3) for _ in range(10)))

        assert db.scores == {"designer": 30}
        assert len(db.statements) == 10
        for sql in db.statements:
            assert "ON CONFLICT (user_identifier, persona_type)" in sql
            assert "score = persona_scores.score + EXCLUDED.score" in sql
