"""
Support ticket endpoints.

POST /tickets                          triage + store, notify when urgent
GET  /tickets?user_identifier=...      a visitor's newest tickets
GET  /tickets/{ticket_id}
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from services.intent.db.session import get_db
from services.intent.tickets.service import DEFAULT_USER_TICKET_LIMIT, TicketService, ticket_to_dict

router = APIRouter(prefix="/tickets", tags=["tickets"])

TICKET_CREATED_MESSAGE = "تیکت پشتیبانی با موفقیت ثبت شد. تیم ما به زودی بررسی می‌کنند."


class TicketCreateRequest(BaseModel):
    user_identifier: str = Field(..., min_length=1, max_length=100)
    message: str = Field(..., max_length=5000)
    context: dict[str, Any] | None = None


@router.post("", status_code=201)
async def create_ticket(
    body: TicketCreateRequest,
    request: Request,
    session: AsyncSession = Depends(get_db),
) -> dict:
    ticket = await TicketService(session).create_ticket(body.model_dump())
    data = ticket_to_dict(ticket)
    return {
        "success": True,
        "data": {
            "ticket_id": ticket.id,
            "category": data["category"],
            "category_label": data["category_label"],
            "urgency": data["urgency"],
            "urgency_label": data["urgency_label"],
            "message": TICKET_CREATED_MESSAGE,
        },
        "requestId": request.state.request_id,
    }


@router.get("")
async def list_tickets(
    request: Request,
    user_identifier: str = Query(..., min_length=1, max_length=100),
    limit: int = Query(default=DEFAULT_USER_TICKET_LIMIT, ge=1, le=50),
    session: AsyncSession = Depends(get_db),
) -> dict:
    tickets = await TicketService(session).list_user_tickets(user_identifier, limit)
    return {
        "success": True,
        "data": {"tickets": [ticket_to_dict(t) for t in tickets]},
        "requestId": request.state.request_id,
    }


@router.get("/{ticket_id}")
async def get_ticket(
    ticket_id: int,
    request: Request,
    session: AsyncSession = Depends(get_db),
) -> dict:
    ticket = await TicketService(session).get_ticket(ticket_id)
    if ticket is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "TICKET_NOT_FOUND", "message": f"Ticket {ticket_id} not found."},
        )
    return {"success": True, "data": ticket_to_dict(ticket), "requestId": request.state.request_id}
