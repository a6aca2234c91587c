"""
LeadService -- persist scored leads and turn them into draft orders.

    create_lead(data)                      -> Lead
    get_lead(lead_id)                      -> Lead | None
    list_leads(status, page, per_page)     -> (leads, total)
    update_lead(lead_id, fields)           -> Lead | None
    create_draft_order(lead_id, products)  -> order id | None

Leads are scored with score_lead() at creation. Hot leads (score at or
above the notification threshold) go to the LeadNotifier. Draft orders
are created through a DraftOrderGateway; the default gateway stores a
draft_orders row in the same session.

Storage failures roll back and raise StorageError; bad input raises
ValidationError. Routers translate both.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Mapping, Protocol

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from services.intent.config import settings
from services.intent.db.models import DraftOrder, Lead
from services.intent.errors import StorageError, ValidationError
from services.intent.leads.scoring import lead_status, needs_notification, score_lead
from services.intent.safety.sanitizer import mask_sensitive

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS: tuple[str, ...] = ("lead_status", "contact_info", "contact_name", "requirements_summary")

REQUIREMENT_LABELS: dict[str, str] = {
    "volume": "تیراژ",
    "paper_type": "نوع کاغذ",
    "print_type": "نوع چاپ",
    "coating": "پوشش",
    "binding": "صحافی",
    "size": "ابعاد",
    "pages": "تعداد صفحات",
    "colors": "رنگ‌بندی",
    "delivery_date": "تاریخ تحویل",
    "budget": "بودجه",
    "notes": "توضیحات",
}

_IRANIAN_MOBILE_RE = re.compile(r"^(?:\+98|0098|0)?9\d{9}$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _encode_requirements(value: Any) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def decode_requirements(value: str | None) -> Any:
    if not value:
        return None
    try:
        return json.loads(value)
    except ValueError:
        return value


def lead_to_dict(lead: Lead) -> dict[str, Any]:
    return {
        "id": lead.id,
        "user_identifier": lead.user_identifier,
        "lead_score": lead.lead_score,
        "lead_status": lead.lead_status,
        "requirements_summary": decode_requirements(lead.requirements_summary),
        "contact_info": lead.contact_info,
        "contact_name": lead.contact_name,
        "source_referral": lead.source_referral,
        "draft_order_id": lead.draft_order_id,
        "created_at": lead.created_at.isoformat() if lead.created_at else None,
    }


def billing_from_lead(lead: Lead) -> dict[str, str]:
    billing: dict[str, str] = {}
    if lead.contact_name:
        first, _, last = lead.contact_name.strip().partition(" ")
        billing["first_name"] = first
        billing["last_name"] = last
    contact = (lead.contact_info or "").strip()
    if _IRANIAN_MOBILE_RE.match(contact):
        billing["phone"] = contact
    elif _EMAIL_RE.match(contact):
        billing["email"] = contact
    return billing


def order_note(lead: Lead) -> str:
    lines = ["سفارش پیش‌نویس ایجاد شده توسط دستیار هوشمند", ""]
    requirements = decode_requirements(lead.requirements_summary)
    if isinstance(requirements, dict) and requirements:
        lines.append("مشخصات درخواست:")
        lines.extend(f"• {REQUIREMENT_LABELS.get(k, k)}: {v}" for k, v in requirements.items())
    if lead.lead_score:
        lines.append("")
        lines.append(f"امتیاز لید: {lead.lead_score}/100")
    if lead.source_referral:
        lines.append(f"منبع: {lead.source_referral}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


class LeadNotifier(Protocol):
    async def notify_new_lead(self, lead: Lead) -> None: ...


class LoggingLeadNotifier:
    """Default notifier: a log line for the sales team's alerting to pick up."""

    async def notify_new_lead(self, lead: Lead) -> None:
        logger.warning(
            "hot lead id=%s score=%d source=%s contact=%s",
            lead.id, lead.lead_score, lead.source_referral, mask_sensitive(lead.contact_info or ""),
        )


class DraftOrderGateway(Protocol):
    async def create_draft_order(self, lead: Lead, products: list[dict[str, Any]]) -> int | None: ...


class SessionDraftOrderGateway:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_draft_order(self, lead: Lead, products: list[dict[str, Any]]) -> int | None:
        items = [
            {"id": int(p["id"]), "quantity": max(1, int(p.get("quantity", 1)))}
            for p in products
            if int(p.get("id", 0) or 0) > 0
        ]
        order = DraftOrder(
            lead_id=lead.id,
            status="pending",
            products=items,
            billing=billing_from_lead(lead),
            note=order_note(lead),
        )
        self._session.add(order)
        await self._session.flush()
        return order.id


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class LeadService:
    def __init__(
        self,
        session: AsyncSession,
        *,
        notifier: LeadNotifier | None = None,
        gateway: DraftOrderGateway | None = None,
        hot_threshold: int | None = None,
    ) -> None:
        self._session = session
        self._notifier = notifier or LoggingLeadNotifier()
        self._gateway = gateway or SessionDraftOrderGateway(session)
        self._hot_threshold = settings.lead_hot_score_threshold if hot_threshold is None else hot_threshold

    async def create_lead(self, data: Mapping[str, Any]) -> Lead:
        user_id = str(data.get("user_identifier") or "").strip()
        if not user_id:
            raise ValidationError("missing user_identifier")

        source = data.get("source_referral") or "organic"
        params = {
            "source_referral": source,
            "volume": data.get("volume") or 0,
            "product_type": data.get("product_type") or "",
            "engagement": data.get("engagement") or {},
            "contact_info": data.get("contact_info"),
            "contact_name": data.get("contact_name"),
            "requirements_summary": data.get("requirements_summary"),
            "budget": data.get("budget"),
            "decision_time": data.get("decision_time") or 0,
        }
        score = score_lead(params)

        lead = Lead(
            user_identifier=user_id,
            lead_score=score,
            lead_status=lead_status(score).value,
            requirements_summary=_encode_requirements(data.get("requirements_summary")),
            contact_info=data.get("contact_info"),
            contact_name=data.get("contact_name"),
            source_referral=source,
        )
        try:
            self._session.add(lead)
            await self._session.commit()
            await self._session.refresh(lead)
        except SQLAlchemyError as exc:
            await self._session.rollback()
            logger.exception("lead insert failed user=%s", user_id)
            raise StorageError("lead insert failed") from exc

        logger.info("lead created id=%s score=%d status=%s", lead.id, score, lead.lead_status)
        if needs_notification(score, self._hot_threshold):
            try:
                await self._notifier.notify_new_lead(lead)
            except Exception:
                logger.warning("lead notification failed id=%s", lead.id, exc_info=True)
        return lead

    async def get_lead(self, lead_id: int) -> Lead | None:
        return await self._session.get(Lead, lead_id)

    async def list_leads(
        self,
        status: str | None = None,
        page: int = 1,
        per_page: int = 20,
    ) -> tuple[list[Lead], int]:
        page = max(1, page)
        count_q = select(func.count()).select_from(Lead)
        list_q = select(Lead).order_by(Lead.created_at.desc())
        if status:
            count_q = count_q.where(Lead.lead_status == status)
            list_q = list_q.where(Lead.lead_status == status)

        total = (await self._session.execute(count_q)).scalar() or 0
        result = await self._session.execute(list_q.limit(per_page).offset((page - 1) * per_page))
        return list(result.scalars().all()), int(total)

    async def update_lead(self, lead_id: int, fields: Mapping[str, Any]) -> Lead | None:
        changes = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS}
        if not changes:
            raise ValidationError("no updatable fields")

        lead = await self._session.get(Lead, lead_id)
        if lead is None:
            return None
        for key, value in changes.items():
            if key == "requirements_summary":
                value = _encode_requirements(value)
            setattr(lead, key, value)
        try:
            await self._session.commit()
        except SQLAlchemyError as exc:
            await self._session.rollback()
            logger.exception("lead update failed id=%s", lead_id)
            raise StorageError("lead update failed") from exc
        return lead

    async def create_draft_order(self, lead_id: int, products: list[dict[str, Any]] | None = None) -> int | None:
        """Draft order id, or None when the lead does not exist."""
        lead = await self._session.get(Lead, lead_id)
        if lead is None:
            return None

        try:
            order_id = await self._gateway.create_draft_order(lead, list(products or []))
        except (SQLAlchemyError, ValueError, TypeError, KeyError) as exc:
            await self._session.rollback()
            logger.exception("draft order creation failed lead=%s", lead_id)
            raise StorageError("draft order creation failed") from exc
        if order_id is None:
            raise StorageError("draft order gateway returned no id")

        lead.draft_order_id = order_id
        try:
            await self._session.commit()
        except SQLAlchemyError as exc:
            await self._session.rollback()
            logger.exception("lead draft_order_id update failed lead=%s", lead_id)
            raise StorageError("lead update failed") from exc
        logger.info("draft order created id=%s lead=%s", order_id, lead_id)
        return order_id
