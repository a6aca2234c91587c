"""
In-process entry points of the intent pipeline.

    pipeline = build_pipeline(db, redis=..., http_client=..., knowledge=...)

    await pipeline.record_event(user_id, event_type, element_class, element_data)
    await pipeline.evaluate_trigger(user_id)          -> TriggerDecision
    await pipeline.generate_decision(user_context)    -> frontend payload
    await pipeline.suggest_opener(user_id, page)      -> frontend payload + intent
    pipeline.score_lead(params)                       -> int 0..100

Every component is built here, once, from explicit arguments. The
FastAPI app builds one Pipeline in its lifespan hook; jobs and tests
build their own.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

import httpx

from services.intent.config import Settings, settings as default_settings
from services.intent.context.assembler import CapabilityProvider, ContextAssembler, OrderTracker
from services.intent.context.commerce import CommerceProvider
from services.intent.context.knowledge import KnowledgeBase
from services.intent.events.ingest import EventIngestor, EventStore, IngestResult
from services.intent.inference.action_log import ActionLog
from services.intent.inference.client import GeminiClient
from services.intent.inference.engine import InferenceEngine
from services.intent.leads.scoring import score_lead
from services.intent.persona.cache import PersonaScoreCache
from services.intent.persona.resolver import DominantPersonaResolver
from services.intent.persona.store import PersonaScoreStore
from services.intent.safety.tracker import SecurityTracker
from services.intent.trigger.decision import DecisionTrigger, TriggerDecision


@dataclass
class Pipeline:
    events: EventStore
    scores: PersonaScoreStore
    ingestor: EventIngestor
    resolver: DominantPersonaResolver
    trigger: DecisionTrigger
    engine: InferenceEngine
    security: SecurityTracker

    async def record_event(
        self,
        user_id: str,
        event_type: str,
        element_class: str = "",
        element_data: Mapping[str, Any] | None = None,
    ) -> IngestResult:
        return await self.ingestor.record_event(user_id, event_type, element_class, element_data)

    async def evaluate_trigger(self, user_id: str) -> TriggerDecision:
        return await self.trigger.should_trigger(user_id)

    async def generate_decision(self, user_context: Mapping[str, Any]) -> dict[str, Any]:
        return await self.engine.generate_decision(user_context)

    async def suggest_opener(self, user_id: str, current_page: str = "") -> dict[str, Any]:
        return await self.engine.context_suggestion(user_id, current_page)

    def score_lead(self, params: Mapping[str, Any]) -> int:
        return score_lead(params)


def build_pipeline(
    db: Any,
    *,
    redis: Any = None,
    http_client: httpx.AsyncClient | None = None,
    knowledge: KnowledgeBase | None = None,
    commerce: CommerceProvider | None = None,
    capabilities: CapabilityProvider | None = None,
    orders: OrderTracker | None = None,
    config: Settings | None = None,
) -> Pipeline:
    cfg = config or default_settings

    cache = PersonaScoreCache(redis, ttl_s=cfg.persona_cache_ttl_s) if redis is not None else None
    events = EventStore(db)
    scores = PersonaScoreStore(db, cache=cache)
    resolver = DominantPersonaResolver(scores, events, thresholds=cfg.persona_thresholds)
    security = SecurityTracker(db)

    trigger = DecisionTrigger(
        resolver,
        events,
        commerce,
        score_threshold=cfg.ai_trigger_threshold,
        min_events=cfg.min_events_count,
        window_s=cfg.activity_window_s,
        dwell_threshold_ms=cfg.high_intent_dwell_time_ms,
    )
    assembler = ContextAssembler(
        resolver=resolver,
        events=events,
        knowledge=knowledge,
        commerce=commerce,
        capabilities=capabilities,
        orders=orders,
        max_tokens=cfg.context_max_tokens,
    )
    client = GeminiClient(
        cfg.gemini_api_key,
        model=cfg.gemini_model,
        base_url=cfg.gemini_base_url,
        timeout_s=cfg.ai_timeout_s,
        http_client=http_client,
    )
    engine = InferenceEngine(
        client=client,
        resolver=resolver,
        scores=scores,
        assembler=assembler,
        knowledge=knowledge,
        security=security,
        actions=ActionLog(db),
        persona_update_delta=cfg.persona_update_delta,
    )
    return Pipeline(
        events=events,
        scores=scores,
        ingestor=EventIngestor(events, scores),
        resolver=resolver,
        trigger=trigger,
        engine=engine,
        security=security,
    )
