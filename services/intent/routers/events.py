"""
Interaction event ingestion.

POST /events        one event   -> {recorded, scored, persona_deltas}
POST /events/batch  many events -> {recorded, scored, total}

Each event is stored and scored independently: a storage failure on
one event shows up as recorded=False for it (or a lower batch count)
and never fails the request.
Request body size limit for the batch endpoint is enforced in middleware.
"""

import logging

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field, field_validator

from services.intent.config import settings
from services.intent.pipeline import Pipeline
from services.intent.routers._deps import get_pipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["events"])


class EventPayload(BaseModel):
    user_identifier: str = Field(..., min_length=1, max_length=100)
    event_type: str = Field(..., max_length=50)
    element_class: str = Field(default="", max_length=255)
    element_data: dict = Field(default_factory=dict)

    @field_validator("user_identifier", "event_type")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v.strip()


class BatchRequest(BaseModel):
    events: list[EventPayload] = Field(max_length=settings.events_batch_max_size)


@router.post("")
async def ingest_event(
    body: EventPayload,
    request: Request,
    pipeline: Pipeline = Depends(get_pipeline),
) -> dict:
    result = await pipeline.record_event(
        body.user_identifier, body.event_type, body.element_class, body.element_data,
    )
    return {
        "success": True,
        "data": result.to_dict(),
        "requestId": request.state.request_id,
    }


@router.post("/batch")
async def ingest_events(
    body: BatchRequest,
    request: Request,
    pipeline: Pipeline = Depends(get_pipeline),
) -> dict:
    recorded = 0
    scored = 0
    for event in body.events:
        result = await pipeline.record_event(
            event.user_identifier, event.event_type, event.element_class, event.element_data,
        )
        recorded += int(result.recorded)
        scored += int(result.scored)

    total = len(body.events)
    if recorded < total:
        logger.warning("event batch partially stored: %d/%d", recorded, total)

    return {
        "success": True,
        "data": {"recorded": recorded, "scored": scored, "total": total},
        "requestId": request.state.request_id,
    }
