"""
Tests for services/intent/leads/scoring.py

Covers:
- each sub-score table and its tier boundaries
- clamping of the total to [0, 100]
- status bands and the notification threshold
"""

from __future__ import annotations

import pytest

from services.intent.leads.scoring import (
    LeadStatus,
    lead_status,
    needs_notification,
    score_completeness,
    score_decision_time,
    score_engagement,
    score_lead,
    score_product,
    score_source,
    score_volume,
)


class TestSubScores:

    @pytest.mark.parametrize("source,points", [
        ("referral", 18),
        ("instagram", 15),
        ("telegram", 15),
        ("google_ads", 12),
        ("facebook", 10),
        ("direct", 8),
        ("organic", 5),
        ("carrier_pigeon", 5),
        (None, 5),
    ])
    def test_source(self, source, points):
        assert score_source(source) == points

    @pytest.mark.parametrize("volume,points", [
        (0, 0),
        (1, 5),
        (499, 5),
        (500, 10),
        (999, 10),
        (1000, 15),
        (5000, 20),
        (9999, 20),
        (10000, 25),
        ("2500", 15),
        ("lots", 0),
        (None, 0),
    ])
    def test_volume(self, volume, points):
        assert score_volume(volume) == points

    def test_product(self):
        assert score_product("gold_foil") == 15
        assert score_product("lamination") == 8
        assert score_product("mystery_ink") == 5
        assert score_product(None) == 5

    def test_engagement_tiers(self):
        assert score_engagement({"message_count": 10, "viewed_products": 5, "viewed_invoices": 3}) == 28
        assert score_engagement({"message_count": 4, "viewed_products": 2, "viewed_invoices": 1}) == 5 + 3 + 5
        assert score_engagement({"message_count": 2}) == 0
        assert score_engagement(None) == 0

    def test_completeness(self):
        full = {"contact_info": "0912", "contact_name": "سارا", "requirements_summary": {"x": 1}, "budget": "10M"}
        assert score_completeness(full) == 30
        assert score_completeness({"contact_info": "", "budget": "5M"}) == 7

    @pytest.mark.parametrize("seconds,points", [
        (0, 7),
        (-30, 7),
        (1, 10),
        (300, 10),
        (301, 7),
        (600, 7),
        (1800, 5),
        (1801, 0),
        (None, 7),
        ("soon", 7),
    ])
    def test_decision_time(self, seconds, points):
        assert score_decision_time(seconds) == points


class TestScoreLead:

    def test_everything_maxed_clamps_to_100(self):
        params = {
            "source_referral": "referral",
            "volume": 20000,
            "product_type": "gold_foil",
            "engagement": {"message_count": 12, "viewed_products": 9, "viewed_invoices": 4},
            "contact_info": "09121234567",
            "contact_name": "Sara",
            "requirements_summary": {"volume": 20000},
            "budget": "50,000,000",
            "decision_time": 120,
        }
        assert score_lead(params) == 100
        assert lead_status(score_lead(params)) is LeadStatus.HOT

    def test_slow_but_complete_lead_still_clamped(self):
        # 18 + 25 + 15 + 28 + 15 + 7 = 108
        params = {
            "source_referral": "referral",
            "volume": 12000,
            "product_type": "gold_foil",
            "engagement": {"message_count": 10, "viewed_products": 5, "viewed_invoices": 3},
            "contact_info": "sara@example.com",
            "contact_name": "Sara",
            "decision_time": 0,
        }
        assert score_lead(params) == 100

    def test_bare_lead(self):
        # organic 5 + default product 5 + unknown decision time 7
        assert score_lead({}) == 17
        assert score_lead({"source_referral": "organic"}) == 17
        assert lead_status(17) is LeadStatus.COLD

    def test_mid_lead(self):
        params = {
            "source_referral": "instagram",
            "volume": 1000,
            "product_type": "lamination",
            "engagement": {"message_count": 5},
            "contact_info": "0912",
        }
        # 15 + 15 + 8 + 7 + 10 + 7 = 62
        assert score_lead(params) == 62
        assert lead_status(62) is LeadStatus.WARM


class TestStatus:

    @pytest.mark.parametrize("score,status", [
        (100, LeadStatus.HOT),
        (80, LeadStatus.HOT),
        (79, LeadStatus.WARM),
        (60, LeadStatus.WARM),
        (59, LeadStatus.MEDIUM),
        (40, LeadStatus.MEDIUM),
        (39, LeadStatus.COLD),
        (0, LeadStatus.COLD),
    ])
    def test_bands(self, score, status):
        assert lead_status(score) is status

    def test_notification_threshold(self):
        assert needs_notification(70)
        assert not needs_notification(69)
        assert needs_notification(50, threshold=50)
