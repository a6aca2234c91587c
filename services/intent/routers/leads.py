"""
Lead endpoints.

POST  /leads/score                  score only, nothing stored
POST  /leads                        score + store, notify when hot
GET   /leads                        paginated list, optional ?status=
GET   /leads/{lead_id}
PATCH /leads/{lead_id}              status / contact / requirements
POST  /leads/{lead_id}/draft-order  draft order from a stored lead
"""

from __future__ import annotations

import math
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from services.intent.config import settings
from services.intent.db.session import get_db
from services.intent.leads.scoring import LeadStatus, lead_status, needs_notification, score_lead
from services.intent.leads.service import LeadService, lead_to_dict

router = APIRouter(prefix="/leads", tags=["leads"])


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class Engagement(BaseModel):
    message_count: int = Field(default=0, ge=0)
    viewed_products: int = Field(default=0, ge=0)
    viewed_invoices: int = Field(default=0, ge=0)


class LeadScoreRequest(BaseModel):
    source_referral: str = "organic"
    volume: int = Field(default=0, ge=0)
    product_type: str = ""
    engagement: Engagement = Field(default_factory=Engagement)
    contact_info: str | None = None
    contact_name: str | None = None
    requirements_summary: dict[str, Any] | str | None = None
    budget: str | None = None
    decision_time: int = 0


class LeadCreateRequest(LeadScoreRequest):
    user_identifier: str = Field(..., min_length=1, max_length=100)


class LeadUpdateRequest(BaseModel):
    lead_status: str | None = Field(default=None, max_length=50)
    contact_info: str | None = Field(default=None, max_length=100)
    contact_name: str | None = Field(default=None, max_length=100)
    requirements_summary: dict[str, Any] | str | None = None


class DraftOrderItem(BaseModel):
    id: int = Field(..., gt=0)
    quantity: int = Field(default=1, ge=1)


class DraftOrderRequest(BaseModel):
    products: list[DraftOrderItem] = Field(default_factory=list)


def _not_found(lead_id: int) -> HTTPException:
    return HTTPException(
        status_code=404,
        detail={"code": "LEAD_NOT_FOUND", "message": f"Lead {lead_id} not found."},
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/score")
async def score(body: LeadScoreRequest, request: Request) -> dict:
    value = score_lead(body.model_dump())
    return {
        "success": True,
        "data": {
            "score": value,
            "status": lead_status(value).value,
            "needs_notification": needs_notification(value, settings.lead_hot_score_threshold),
        },
        "requestId": request.state.request_id,
    }


@router.post("", status_code=201)
async def create_lead(
    body: LeadCreateRequest,
    request: Request,
    session: AsyncSession = Depends(get_db),
) -> dict:
    lead = await LeadService(session).create_lead(body.model_dump())
    return {
        "success": True,
        "data": {
            "lead_id": lead.id,
            "lead_score": lead.lead_score,
            "lead_status": lead.lead_status,
        },
        "requestId": request.state.request_id,
    }


@router.get("")
async def list_leads(
    request: Request,
    status: LeadStatus | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1, le=100),
    session: AsyncSession = Depends(get_db),
) -> dict:
    leads, total = await LeadService(session).list_leads(
        status.value if status else None, page, per_page,
    )
    return {
        "success": True,
        "data": {
            "leads": [lead_to_dict(lead) for lead in leads],
            "total": total,
            "page": page,
            "per_page": per_page,
            "pages": math.ceil(total / per_page) if total else 0,
        },
        "requestId": request.state.request_id,
    }


@router.get("/{lead_id}")
async def get_lead(
    lead_id: int,
    request: Request,
    session: AsyncSession = Depends(get_db),
) -> dict:
    lead = await LeadService(session).get_lead(lead_id)
    if lead is None:
        raise _not_found(lead_id)
    return {"success": True, "data": lead_to_dict(lead), "requestId": request.state.request_id}


@router.patch("/{lead_id}")
async def update_lead(
    lead_id: int,
    body: LeadUpdateRequest,
    request: Request,
    session: AsyncSession = Depends(get_db),
) -> dict:
    lead = await LeadService(session).update_lead(lead_id, body.model_dump(exclude_unset=True))
    if lead is None:
        raise _not_found(lead_id)
    return {"success": True, "data": lead_to_dict(lead), "requestId": request.state.request_id}


@router.post("/{lead_id}/draft-order", status_code=201)
async def create_draft_order(
    lead_id: int,
    body: DraftOrderRequest,
    request: Request,
    session: AsyncSession = Depends(get_db),
) -> dict:
    products = [item.model_dump() for item in body.products]
    order_id = await LeadService(session).create_draft_order(lead_id, products)
    if order_id is None:
        raise _not_found(lead_id)
    return {
        "success": True,
        "data": {"lead_id": lead_id, "order_id": order_id},
        "requestId": request.state.request_id,
    }
