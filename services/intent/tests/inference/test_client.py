"""
Tests for services/intent/inference/client.py

The HTTP layer is an httpx.MockTransport, so every upstream failure mode
is exercised without network access.

Covers:
- request shape: endpoint, api key header, generation config, system instruction
- success paths: JSON answer parsed, plain text kept raw
- every failure code: missing_api_key, timeout, network_error, 429/401/403,
  other non-200, malformed body, empty response
"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from services.intent.errors import UPSTREAM_APOLOGY
from services.intent.inference.client import (
    AIResult,
    GeminiClient,
    build_payload,
    parse_candidate_text,
    parse_text,
)


def _gemini_body(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def _client(handler, api_key: str = "test-key", timeout_s: float = 5.0) -> GeminiClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GeminiClient(api_key, model="gemini-test", base_url="https://ai.test/v1beta/", timeout_s=timeout_s, http_client=http)


# ---------------------------------------------------------------------------
# Payload / parsing helpers
# ---------------------------------------------------------------------------

class TestBuildPayload:

    def test_plain_prompt(self):
        payload = build_payload("سلام")
        assert payload["contents"][0]["parts"][0]["text"] == "سلام"
        assert payload["generationConfig"]["temperature"] == 0.7
        assert "responseSchema" not in payload["generationConfig"]
        assert "systemInstruction" not in payload

    def test_schema_switches_to_json_mode(self):
        payload = build_payload("p", context="ctx", schema={"type": "object"}, system_instruction="sys")
        config = payload["generationConfig"]
        assert config["temperature"] == 0.1
        assert config["responseMimeType"] == "application/json"
        assert config["responseSchema"] == {"type": "object"}
        assert payload["contents"][0]["parts"][0]["text"] == "ctx\n\np"
        assert payload["systemInstruction"]["parts"][0]["text"] == "sys"


class TestParsing:

    def test_candidate_text_joins_parts(self):
        body = {"candidates": [{"content": {"parts": [{"text": "a"}, {"text": "b"}]}}]}
        assert parse_candidate_text(body) == "ab"

    def test_no_candidates(self):
        assert parse_candidate_text({"promptFeedback": {}}) is None
        assert parse_candidate_text({"candidates": []}) is None

    def test_json_text(self):
        result = parse_text('  {"thought": "t", "response": "r"} ')
        assert result.success is True
        assert result.data == {"thought": "t", "response": "r"}

    def test_plain_text(self):
        result = parse_text("just words")
        assert result.success is True
        assert result.data is None
        assert result.raw_text == "just words"

    def test_broken_json_kept_as_text(self):
        result = parse_text('{"thought": ')
        assert result.success is True
        assert result.data is None

    def test_empty_text(self):
        assert parse_text("   ").error == "empty_response"

    def test_fallback_to_dict_never_leaks_error_detail(self):
        out = AIResult.fallback("quota_exceeded").to_dict()
        assert out == {"success": False, "error": "quota_exceeded", "data": {"message": UPSTREAM_APOLOGY}}


# ---------------------------------------------------------------------------
# invoke()
# ---------------------------------------------------------------------------

class TestKeyFormat:

    def test_malformed_key_warns(self, caplog):
        with caplog.at_level("WARNING", logger="services.intent.inference.client"):
            GeminiClient("not a key!")
        assert "malformed" in caplog.text

    def test_well_formed_or_missing_key_is_quiet(self, caplog):
        with caplog.at_level("WARNING", logger="services.intent.inference.client"):
            GeminiClient("AIzaSyA1b2C3d4E5f6G7h8I9j0K_-lmnop")
            GeminiClient("")
        assert caplog.text == ""


class TestInvoke:

    @pytest.mark.asyncio
    async def test_success_request_shape(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["key"] = request.headers.get("x-goog-api-key")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_gemini_body('{"thought": "t", "response": "r"}'))

        result = await _client(handler).invoke("prompt", schema={"type": "object"}, system_instruction="sys")

        assert result.success is True
        assert result.data == {"thought": "t", "response": "r"}
        assert seen["url"] == "https://ai.test/v1beta/models/gemini-test:generateContent"
        assert seen["key"] == "test-key"
        assert "key=" not in seen["url"]
        assert seen["body"]["systemInstruction"]["parts"][0]["text"] == "sys"

    @pytest.mark.asyncio
    async def test_missing_api_key_makes_no_call(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=_gemini_body("x"))

        result = await _client(handler, api_key="").invoke("prompt")
        assert result.success is False
        assert result.error == "missing_api_key"
        assert result.message == UPSTREAM_APOLOGY
        assert calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,error", [
        (429, "quota_exceeded"),
        (401, "auth_failed"),
        (403, "access_denied"),
        (500, "http_error"),
        (404, "http_error"),
    ])
    async def test_status_errors(self, status, error):
        result = await _client(lambda r: httpx.Response(status, text="upstream detail")).invoke("p")
        assert result.success is False
        assert result.error == error
        assert "upstream detail" not in (result.message or "")

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("dns failure", request=request)

        result = await _client(handler).invoke("p")
        assert result.error == "network_error"

    @pytest.mark.asyncio
    async def test_httpx_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        result = await _client(handler).invoke("p")
        assert result.error == "timeout"

    @pytest.mark.asyncio
    async def test_hard_deadline(self):
        async def handler(request):
            await asyncio.sleep(1)
            return httpx.Response(200, json=_gemini_body("late"))

        result = await _client(handler, timeout_s=0.05).invoke("p")
        assert result.error == "timeout"

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        result = await _client(lambda r: httpx.Response(200, text="<html>")).invoke("p")
        assert result.error == "malformed_body"

    @pytest.mark.asyncio
    async def test_body_without_candidates(self):
        result = await _client(lambda r: httpx.Response(200, json={"candidates": []})).invoke("p")
        assert result.error == "malformed_body"

    @pytest.mark.asyncio
    async def test_empty_candidate_text(self):
        result = await _client(lambda r: httpx.Response(200, json=_gemini_body(""))).invoke("p")
        assert result.error == "empty_response"
