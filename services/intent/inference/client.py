"""
GeminiClient -- single-shot structured generation over the Gemini REST API.

    invoke(prompt, context="", schema=None) -> AIResult

Contract: never raises for upstream trouble. Every failure path returns
AIResult(success=False, error=<code>, message=<Persian apology>):

  missing_api_key      no key configured -- no network call is made
  timeout              no answer within ai_timeout_s (hard asyncio deadline)
  network_error        transport failure (DNS, TLS, connection reset)
  quota_exceeded       HTTP 429
  auth_failed          HTTP 401
  access_denied        HTTP 403
  http_error           any other non-200
  malformed_body       body is not JSON / has no candidates
  empty_response       candidate present but its text is empty

One attempt per call, no retry: retries belong to whoever owns the
request. The call holds no locks, and asyncio.CancelledError is left to
propagate so a cancelled request cancels its in-flight HTTP call.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from services.intent.errors import UPSTREAM_APOLOGY
from services.intent.safety.sanitizer import is_valid_api_key_format

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_MODEL = "gemini-2.0-flash"
DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_TIMEOUT_S = 30.0

TEMPERATURE = 0.7
JSON_TEMPERATURE = 0.1
TOP_K = 40
TOP_P = 0.95
MAX_OUTPUT_TOKENS = 2048

_STATUS_ERRORS: dict[int, str] = {
    429: "quota_exceeded",
    401: "auth_failed",
    403: "access_denied",
}


@dataclass
class AIResult:
    success: bool
    data: Any = None
    """Parsed JSON when the model answered with JSON, else None."""

    raw_text: str = ""
    error: str | None = None
    """Machine-readable failure code. For logs only, never shown to visitors."""

    message: str | None = None
    """User-facing apology on failure."""

    @classmethod
    def fallback(cls, error: str, message: str = UPSTREAM_APOLOGY) -> AIResult:
        return cls(success=False, error=error, message=message)

    def to_dict(self) -> dict:
        if not self.success:
            return {"success": False, "error": self.error, "data": {"message": self.message}}
        return {"success": True, "data": self.data, "raw_text": self.raw_text}


def build_payload(prompt: str, context: str = "", schema: dict | None = None, system_instruction: str = "") -> dict:
    """Request body for models/{model}:generateContent."""
    text = f"{context}\n\n{prompt}" if context else prompt
    generation_config: dict[str, Any] = {
        "temperature": JSON_TEMPERATURE if schema else TEMPERATURE,
        "topK": TOP_K,
        "topP": TOP_P,
        "maxOutputTokens": MAX_OUTPUT_TOKENS,
    }
    if schema:
        generation_config["responseMimeType"] = "application/json"
        generation_config["responseSchema"] = schema

    payload: dict[str, Any] = {
        "contents": [{"parts": [{"text": text}]}],
        "generationConfig": generation_config,
    }
    if system_instruction:
        payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}
    return payload


def parse_candidate_text(body: Any) -> str | None:
    """Text of the first candidate, or None when the body has no candidates."""
    try:
        parts = body["candidates"][0]["content"]["parts"]
    except (KeyError, IndexError, TypeError):
        return None
    return "".join(str(p.get("text", "")) for p in parts if isinstance(p, dict))


def parse_text(text: str) -> AIResult:
    stripped = text.strip()
    if not stripped:
        return AIResult.fallback("empty_response")
    if stripped[0] in "{[":
        try:
            return AIResult(success=True, data=json.loads(stripped), raw_text=text)
        except json.JSONDecodeError:
            logger.info("model returned JSON-shaped text that failed to parse")
    return AIResult(success=True, data=None, raw_text=text)


class GeminiClient:
    def __init__(
        self,
        api_key: str,
        *,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self._http = http_client
        if api_key and not is_valid_api_key_format(api_key):
            logger.warning("gemini api key looks malformed; expect auth_failed from upstream")

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    async def invoke(
        self,
        prompt: str,
        context: str = "",
        schema: dict | None = None,
        system_instruction: str = "",
    ) -> AIResult:
        if not self.api_key:
            logger.warning("gemini call skipped: no api key configured")
            return AIResult.fallback("missing_api_key")

        payload = build_payload(prompt, context, schema, system_instruction)
        own_client = self._http is None
        client = httpx.AsyncClient() if own_client else self._http
        t0 = time.monotonic()
        try:
            resp = await asyncio.wait_for(
                client.post(
                    self.endpoint,
                    json=payload,
                    headers={"x-goog-api-key": self.api_key, "content-type": "application/json"},
                    timeout=self.timeout_s,
                ),
                timeout=self.timeout_s,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning("gemini timeout after %.1fs model=%s", self.timeout_s, self.model)
            return AIResult.fallback("timeout")
        except httpx.HTTPError as exc:
            logger.warning("gemini transport error model=%s: %s", self.model, exc)
            return AIResult.fallback("network_error")
        finally:
            if own_client:
                await client.aclose()

        latency_ms = int((time.monotonic() - t0) * 1000)
        if resp.status_code != 200:
            error = _STATUS_ERRORS.get(resp.status_code, "http_error")
            logger.warning(
                "gemini http %d model=%s latency_ms=%d error=%s",
                resp.status_code, self.model, latency_ms, error,
            )
            return AIResult.fallback(error)

        try:
            body = resp.json()
        except ValueError:
            logger.warning("gemini returned non-JSON body model=%s", self.model)
            return AIResult.fallback("malformed_body")

        text = parse_candidate_text(body)
        if text is None:
            logger.warning("gemini body has no candidates model=%s", self.model)
            return AIResult.fallback("malformed_body")

        result = parse_text(text)
        logger.info(
            "gemini call model=%s latency_ms=%d success=%s structured=%s",
            self.model, latency_ms, result.success, result.data is not None,
        )
        return result
