"""
Tests for services/intent/safety/tracker.py

Covers:
- default score for unknown visitors, fail-open on read errors
- penalties: table lookup, explicit override, default, floor at 0
- block threshold (<= 20) and ensure_allowed raising SecurityBlock
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest

from services.intent.errors import SecurityBlock
from services.intent.safety.tracker import SCORE_BLOCKED, SCORE_MAX, SecurityTracker


class TestSecurityScore:

    @pytest.mark.asyncio
    async def test_unknown_visitor_starts_at_max(self, mock_db):
        assert await SecurityTracker(mock_db).get_security_score("v1") == SCORE_MAX

    @pytest.mark.asyncio
    async def test_latest_row_wins(self, mock_db):
        mock_db.fetchval = AsyncMock(return_value=45)
        assert await SecurityTracker(mock_db).get_security_score("v1") == 45

    @pytest.mark.asyncio
    async def test_read_failure_fails_open(self, mock_db):
        mock_db.fetchval = AsyncMock(side_effect=ConnectionError("db down"))
        tracker = SecurityTracker(mock_db)
        assert await tracker.get_security_score("v1") == SCORE_MAX
        assert await tracker.is_blocked("v1") is False


class TestRecordSuspiciousActivity:

    @pytest.mark.asyncio
    async def test_table_penalty(self, mock_db):
        new_score = await SecurityTracker(mock_db).record_suspicious_activity("v1", "sql_injection")
        assert new_score == 60
        args = mock_db.execute.call_args.args
        assert args[1:3] == ("v1", "sql_injection")
        assert args[4:6] == (40, 60)

    @pytest.mark.asyncio
    async def test_explicit_penalty_overrides_table(self, mock_db):
        assert await SecurityTracker(mock_db).record_suspicious_activity("v1", "waf_block", penalty=5) == 95

    @pytest.mark.asyncio
    async def test_unknown_event_uses_default_penalty(self, mock_db):
        assert await SecurityTracker(mock_db).record_suspicious_activity("v1", "weird") == 90

    @pytest.mark.asyncio
    async def test_score_floors_at_zero(self, mock_db):
        mock_db.fetchval = AsyncMock(return_value=30)
        assert await SecurityTracker(mock_db).record_suspicious_activity("v1", "rce_attempt") == 0

    @pytest.mark.asyncio
    async def test_event_data_stored_as_json(self, mock_db):
        await SecurityTracker(mock_db).record_suspicious_activity("v1", "xss_attempt", event_data={"path": "/q"})
        assert json.loads(mock_db.execute.call_args.args[3]) == {"path": "/q"}

    @pytest.mark.asyncio
    async def test_insert_failure_returns_none(self, mock_db):
        mock_db.execute = AsyncMock(side_effect=ConnectionError("db down"))
        assert await SecurityTracker(mock_db).record_suspicious_activity("v1", "waf_block") is None


class TestBlocking:

    @pytest.mark.asyncio
    async def test_at_threshold_is_blocked(self, mock_db):
        mock_db.fetchval = AsyncMock(return_value=SCORE_BLOCKED)
        tracker = SecurityTracker(mock_db)
        assert await tracker.is_blocked("v1") is True
        with pytest.raises(SecurityBlock) as exc_info:
            await tracker.ensure_allowed("v1")
        assert exc_info.value.code == "ACCESS_RESTRICTED"

    @pytest.mark.asyncio
    async def test_above_threshold_allowed(self, mock_db):
        mock_db.fetchval = AsyncMock(return_value=SCORE_BLOCKED + 1)
        await SecurityTracker(mock_db).ensure_allowed("v1")
