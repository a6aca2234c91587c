"""
InferenceEngine -- one assistant turn for one visitor.

Flow of generate_decision(user_context):
  1. Reject re-entrant calls and requests without a user identifier
  2. Security gate: blocked visitors get the fixed "access restricted" reply.
     Instruction-override phrases in the input cost a security penalty and
     are stripped before the prompt is built
  3. Pick knowledge-base sections for the current page
  4. Resolve the dominant persona, behavior summary and assembled context
  5. Build system instruction + user prompt, sanitized at egress
  6. Single AI call with RESPONSE_SCHEMA
  7. Validate the structured answer (invalid -> structured failure)
  8. Apply persona_update, log the UI action
  9. Return the frontend payload

Every failure path returns {"success": False, "response", "message",
"error", "timestamp"}. The error code is for logs; the visitor only
ever sees the Persian message. Nothing here raises except cancellation.
"""

from __future__ import annotations

import contextvars
import logging
import time
from datetime import datetime, timezone
from typing import Any, Mapping

from services.intent.config import settings
from services.intent.context.assembler import ContextAssembler
from services.intent.context.compressor import compress_form_data
from services.intent.context.knowledge import KnowledgeBase
from services.intent.errors import (
    GENERIC_APOLOGY,
    SecurityBlock,
    UpstreamError,
    ValidationError,
)
from services.intent.inference.action_log import ActionLog
from services.intent.inference.client import GeminiClient
from services.intent.inference.fallbacks import offline_response
from services.intent.inference.parser import RESPONSE_SCHEMA, parse, to_frontend
from services.intent.inference.prompts import build_system_instruction, build_user_prompt, contains_injection
from services.intent.persona.resolver import DominantPersonaResolver
from services.intent.persona.store import PersonaScoreStore
from services.intent.persona.types import PersonaType
from services.intent.safety.sanitizer import is_safe_for_ai, sanitize_text
from services.intent.safety.tracker import SCORE_BLOCKED, SecurityTracker

logger = logging.getLogger(__name__)

BEHAVIOR_SUMMARY_LIMIT = 15

# Above this confidence the dominant persona maps to a concrete intent.
INTENT_CONFIDENCE_THRESHOLD = 70

PERSONA_INTENTS: dict[PersonaType, str] = {
    PersonaType.AUTHOR: "book_printing",
    PersonaType.BUSINESS: "bulk_order",
    PersonaType.DESIGNER: "print_design",
}

_generating: contextvars.ContextVar[bool] = contextvars.ContextVar("_generating", default=False)


def knowledge_types_for_page(current_page: str | None) -> list[str]:
    page = (current_page or "").lower()
    types: list[str] = []
    if "product" in page:
        types.append("products")
    if "pricing" in page or "calculator" in page:
        types.append("pricing")
    types.extend(["responses", "personas"])
    return types


def error_response(error: str, message: str = GENERIC_APOLOGY) -> dict[str, Any]:
    return {
        "success": False,
        "response": message,
        "message": message,
        "error": error,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


class InferenceEngine:
    """
    Injected dependencies make this testable without a database or the
    AI provider. Only `client` and `resolver` are required.
    """

    def __init__(
        self,
        *,
        client: GeminiClient,
        resolver: DominantPersonaResolver,
        scores: PersonaScoreStore | None = None,
        assembler: ContextAssembler | None = None,
        knowledge: KnowledgeBase | None = None,
        security: SecurityTracker | None = None,
        actions: ActionLog | None = None,
        persona_update_delta: int | None = None,
    ) -> None:
        self._client = client
        self._resolver = resolver
        self._scores = scores
        self._assembler = assembler
        self._knowledge = knowledge
        self._security = security
        self._actions = actions
        self._persona_update_delta = (
            settings.persona_update_delta if persona_update_delta is None else persona_update_delta
        )

    async def generate_decision(self, user_context: Mapping[str, Any]) -> dict[str, Any]:
        if _generating.get():
            logger.warning("re-entrant generate_decision call rejected")
            return error_response("reentrant_call")

        token = _generating.set(True)
        try:
            return await self._generate(user_context)
        finally:
            _generating.reset(token)

    async def _generate(self, user_context: Mapping[str, Any]) -> dict[str, Any]:
        t0 = time.monotonic()
        user_id = str(user_context.get("user_identifier") or "").strip()
        if not user_id:
            err = ValidationError("missing user_identifier")
            return error_response(err.code.lower())

        message = user_context.get("message") or ""
        current_page = user_context.get("current_page") or ""
        current_element = user_context.get("current_element") or ""

        # ------------------------------------------------------------------
        # Security gate -- before any AI or storage work
        # ------------------------------------------------------------------
        if self._security is not None:
            try:
                await self._security.ensure_allowed(user_id)
            except SecurityBlock as exc:
                logger.info("assistant blocked user=%s", user_id)
                return error_response(exc.code.lower(), exc.user_message)

            if contains_injection(message, current_page, current_element):
                blocked = await self._report_injection(user_id, message)
                if blocked:
                    exc = SecurityBlock(f"security score at or below {SCORE_BLOCKED} after prompt shield")
                    return error_response(exc.code.lower(), exc.user_message)

        # ------------------------------------------------------------------
        # Persona, behavior and grounding context
        # ------------------------------------------------------------------
        dominant = await self._resolver.resolve(user_id)
        behavior = await self._resolver.behavior_summary(
            user_id, limit=BEHAVIOR_SUMMARY_LIMIT, dominant=dominant,
        )
        context = ""
        if self._assembler is not None:
            context = await self._assembler.assemble(user_id, message, user_context.get("messages"))
        role_context = user_context.get("user_role_context")
        if role_context:
            context = f"{context}\n\nنقش کاربر: {role_context}".strip()
        form_data = user_context.get("form_data")
        if isinstance(form_data, Mapping):
            form_summary = compress_form_data(form_data)
            if form_summary:
                context = f"{context}\n\nزمینه جلسه فعلی: {form_summary}".strip()

        system_instruction = sanitize_text(
            build_system_instruction(
                dominant,
                knowledge=self._knowledge,
                knowledge_types=knowledge_types_for_page(current_page),
                context=context,
                behavior_summary=behavior,
            )
        )
        prompt = sanitize_text(build_user_prompt(message, current_page, current_element))

        # ------------------------------------------------------------------
        # AI call -- single attempt, fallback on failure
        # ------------------------------------------------------------------
        result = await self._client.invoke(
            prompt, schema=RESPONSE_SCHEMA, system_instruction=system_instruction,
        )
        if not result.success:
            err = UpstreamError(result.error or "unknown")
            logger.warning("assistant upstream failure user=%s error=%s", user_id, result.error)
            out = error_response(result.error or err.code.lower(), err.user_message)
            out["fallback"] = offline_response(message)
            return out

        response = parse(result.data)
        if response is None:
            err = ValidationError("malformed AI response")
            return error_response("invalid_response", err.user_message)
        if not is_safe_for_ai([response.response, response.target, response.data]):
            logger.warning("model answer carried sensitive values user=%s; filtered before egress", user_id)

        # ------------------------------------------------------------------
        # Side effects: persona nudge, action log
        # ------------------------------------------------------------------
        if response.persona_update is not None and self._scores is not None:
            stored = await self._scores.add_score(
                user_id, response.persona_update, self._persona_update_delta,
            )
            if not stored:
                logger.info("persona_update not stored user=%s", user_id)

        if response.has_action and self._actions is not None:
            await self._actions.log(user_id, response.action.value, response.target, response.data)

        logger.info(
            "assistant turn user=%s persona=%s action=%s latency_ms=%d",
            user_id,
            dominant.type.value,
            response.action.value if response.action else None,
            int((time.monotonic() - t0) * 1000),
        )
        return to_frontend(response)

    async def _report_injection(self, user_id: str, message: Any) -> bool:
        """Record the shield hit. True when the penalty pushed the visitor into the blocked band."""
        score = await self._security.record_suspicious_activity(
            user_id,
            "llm_shield_block",
            event_data={"excerpt": sanitize_text(str(message)[:200])},
        )
        logger.info("instruction override stripped user=%s security_score=%s", user_id, score)
        return score is not None and score <= SCORE_BLOCKED

    async def analyze_user_intent(self, user_id: str) -> dict[str, Any]:
        """Coarse intent from the dominant persona alone -- no AI call."""
        dominant = await self._resolver.resolve(user_id)
        intent = "browsing"
        if dominant.confidence > INTENT_CONFIDENCE_THRESHOLD:
            intent = PERSONA_INTENTS.get(dominant.type, "browsing")
        return {
            "intent": intent,
            "persona": dominant.type.value,
            "confidence": dominant.confidence,
        }

    async def context_suggestion(self, user_id: str, current_page: str = "") -> dict[str, Any]:
        """Proactive opener for the widget when the trigger fires."""
        analysis = await self.analyze_user_intent(user_id)
        out = await self.generate_decision({
            "user_identifier": user_id,
            "message": f"پیشنهاد مناسب برای کاربر با نیت {analysis['intent']}",
            "current_page": current_page,
        })
        out["intent"] = analysis["intent"]
        return out
