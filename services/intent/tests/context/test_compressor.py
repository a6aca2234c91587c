"""
Tests for services/intent/context/compressor.py
"""

from __future__ import annotations

from services.intent.context.compressor import (
    ELLIPSIS,
    MAX_FACTS,
    compress_form_data,
    compress_messages,
    extract_facts,
    truncate_to_token_limit,
)


class TestExtractFacts:

    def test_numbers_and_keywords(self):
        facts = extract_facts(["چاپ 500 نسخه کتاب"])
        assert "کاربر درخواست کرد: 500 نسخه" in facts
        assert "کاربر علاقه‌مند به چاپ است" in facts
        assert "کاربر علاقه‌مند به کتاب است" in facts

    def test_deduplicated_first_occurrence_wins(self):
        facts = extract_facts(["کتاب", "کتاب دوباره"])
        assert facts.count("کاربر علاقه‌مند به کتاب است") == 1
        assert facts[0] == "کاربر علاقه‌مند به کتاب است"

    def test_capped(self):
        queries = [f"{n} عدد" for n in range(1, 30)]
        assert len(extract_facts(queries)) == MAX_FACTS


class TestTruncate:

    def test_short_text_unchanged(self):
        assert truncate_to_token_limit("abc", 10) == "abc"

    def test_long_text_cut_with_ellipsis(self):
        out = truncate_to_token_limit("x" * 100, 5)
        assert len(out) == 20
        assert out.endswith(ELLIPSIS)

    def test_cut_never_splits_persian_characters(self):
        out = truncate_to_token_limit("سلام" * 50, 3)
        assert out == ("سلام" * 50)[:9] + ELLIPSIS


class TestCompressMessages:

    def test_only_user_turns_mined(self):
        messages = [
            {"role": "assistant", "content": "قیمت 900 تومان است"},
            {"role": "user", "content": "تیراژ 300"},
        ]
        summary = compress_messages(messages)
        assert "300" in summary
        assert "900" not in summary

    def test_missing_role_counts_as_user(self):
        assert "کاغذ" in compress_messages([{"content": "کاغذ گلاسه"}])

    def test_nothing_to_say(self):
        assert compress_messages([{"role": "user", "content": "سلام"}]) == ""


class TestFormData:

    def test_form_labels_and_empty_skipped(self):
        out = compress_form_data({"tirage": 500, "binding": "", "custom": "x", "pages": 0})
        assert out == "تیراژ: 500, custom: x"
