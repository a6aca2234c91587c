"""
TicketService -- store support tickets and read them back.

    create_ticket(data)                  -> SupportTicket
    get_ticket(ticket_id)                -> SupportTicket | None
    list_user_tickets(user_id, limit)    -> newest first

Tickets are triaged with classify() at creation. Critical and high
urgency tickets go to the TicketNotifier. The conversation context is
sanitized before it is stored as the ticket's metadata.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from services.intent.db.models import SupportTicket
from services.intent.errors import StorageError, ValidationError
from services.intent.safety.sanitizer import sanitize
from services.intent.tickets.classify import (
    CATEGORY_LABELS,
    NOTIFY_URGENCIES,
    URGENCY_LABELS,
    TicketCategory,
    TicketUrgency,
    classify,
)

logger = logging.getLogger(__name__)

DEFAULT_USER_TICKET_LIMIT = 10


def ticket_to_dict(ticket: SupportTicket) -> dict[str, Any]:
    category = TicketCategory(ticket.category)
    urgency = TicketUrgency(ticket.urgency)
    return {
        "id": ticket.id,
        "user_identifier": ticket.user_identifier,
        "subject": ticket.subject,
        "message": ticket.message,
        "category": category.value,
        "category_label": CATEGORY_LABELS[category],
        "urgency": urgency.value,
        "urgency_label": URGENCY_LABELS[urgency],
        "status": ticket.status,
        "assigned_to": ticket.assigned_to,
        "metadata": ticket.metadata_,
        "created_at": ticket.created_at.isoformat() if ticket.created_at else None,
        "resolved_at": ticket.resolved_at.isoformat() if ticket.resolved_at else None,
    }


class TicketNotifier(Protocol):
    async def notify_new_ticket(self, ticket: SupportTicket) -> None: ...


class LoggingTicketNotifier:
    async def notify_new_ticket(self, ticket: SupportTicket) -> None:
        logger.warning(
            "urgent ticket id=%s urgency=%s category=%s user=%s",
            ticket.id, ticket.urgency, ticket.category, ticket.user_identifier,
        )


class TicketService:
    def __init__(self, session: AsyncSession, *, notifier: TicketNotifier | None = None) -> None:
        self._session = session
        self._notifier = notifier or LoggingTicketNotifier()

    async def create_ticket(self, data: Mapping[str, Any]) -> SupportTicket:
        user_id = str(data.get("user_identifier") or "").strip()
        if not user_id:
            raise ValidationError("missing user_identifier")
        message = str(data.get("message") or "").strip()
        if not message:
            raise ValidationError("empty ticket message")

        triage = classify(message)
        context = data.get("context")
        ticket = SupportTicket(
            user_identifier=user_id,
            subject=triage["subject"],
            message=message,
            category=triage["category"],
            urgency=triage["urgency"],
            status="open",
            metadata_=sanitize(dict(context)) if context else None,
        )
        try:
            self._session.add(ticket)
            await self._session.commit()
            await self._session.refresh(ticket)
        except SQLAlchemyError as exc:
            await self._session.rollback()
            logger.exception("ticket insert failed user=%s", user_id)
            raise StorageError("ticket insert failed") from exc

        logger.info("ticket created id=%s category=%s urgency=%s", ticket.id, ticket.category, ticket.urgency)
        if TicketUrgency(ticket.urgency) in NOTIFY_URGENCIES:
            try:
                await self._notifier.notify_new_ticket(ticket)
            except Exception:
                logger.warning("ticket notification failed id=%s", ticket.id, exc_info=True)
        return ticket

    async def get_ticket(self, ticket_id: int) -> SupportTicket | None:
        return await self._session.get(SupportTicket, ticket_id)

    async def list_user_tickets(self, user_id: str, limit: int = DEFAULT_USER_TICKET_LIMIT) -> list[SupportTicket]:
        query = (
            select(SupportTicket)
            .where(SupportTicket.user_identifier == user_id)
            .order_by(SupportTicket.created_at.desc())
            .limit(limit)
        )
        result = await self._session.execute(query)
        return list(result.scalars().all())
