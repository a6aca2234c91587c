"""
ContextAssembler -- builds the grounding text embedded in every AI prompt.

Section order (each omitted when its source is empty):

  1. capabilities    active storefront plugins + sanitized plugin metadata
  2. knowledge       knowledge-base facts
  3. recent events   the visitor's latest interactions, classified
  4. commerce        cart / product / page snapshot
  5. user facts      dominant persona + compressed conversation history
  6. order tracking  only when the query mentions orders / delivery

The joined text goes through sanitize_text() right before it is returned.
That is the egress point toward the AI provider; callers must not
assume anything upstream already sanitized.

Every collaborator is optional and every failure degrades to "section
missing" -- assembly itself never raises.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Protocol

from services.intent.context.commerce import CommerceProvider, format_for_ai, load_snapshot
from services.intent.context.compressor import MAX_TOKENS, compress_messages
from services.intent.context.knowledge import KnowledgeBase
from services.intent.events.ingest import EventStore
from services.intent.persona.profiles import persona_label
from services.intent.persona.resolver import DominantPersonaResolver
from services.intent.persona.rules import classify_element
from services.intent.safety.sanitizer import sanitize_metadata, sanitize_text

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

HEADER = "=== بستر سیستم و قابلیت‌های فعال ==="

ORDER_KEYWORDS: tuple[str, ...] = ("سفارش", "ارسال", "پست", "کجاست", "رسید", "تحویل", "رهگیری")

RECENT_EVENTS_LIMIT = 5


def _section(title: str, body: str) -> str:
    return f"=== {title} ===\n{body.strip()}"


def is_order_related(query: str | None) -> bool:
    if not query:
        return False
    query_lower = query.lower()
    return any(keyword in query_lower for keyword in ORDER_KEYWORDS)


# ---------------------------------------------------------------------------
# Collaborator protocols
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PluginInfo:
    name: str
    version: str = ""
    is_active: bool = True


class CapabilityProvider(Protocol):
    async def plugins(self) -> list[PluginInfo]: ...

    async def metadata(self) -> dict[str, dict[str, Any]]: ...


class OrderTracker(Protocol):
    async def active_orders(self, user_id: str) -> list[dict[str, Any]]: ...


class StaticCapabilityProvider:
    def __init__(
        self,
        plugins: Iterable[PluginInfo] = (),
        metadata: Mapping[str, dict[str, Any]] | None = None,
    ) -> None:
        self._plugins = list(plugins)
        self._metadata = dict(metadata or {})

    async def plugins(self) -> list[PluginInfo]:
        return list(self._plugins)

    async def metadata(self) -> dict[str, dict[str, Any]]:
        return dict(self._metadata)


# ---------------------------------------------------------------------------
# Assembler
# ---------------------------------------------------------------------------


class ContextAssembler:
    def __init__(
        self,
        *,
        resolver: DominantPersonaResolver | None = None,
        events: EventStore | None = None,
        knowledge: KnowledgeBase | None = None,
        commerce: CommerceProvider | None = None,
        capabilities: CapabilityProvider | None = None,
        orders: OrderTracker | None = None,
        max_tokens: int = MAX_TOKENS,
    ) -> None:
        self._resolver = resolver
        self._events = events
        self._knowledge = knowledge
        self._commerce = commerce
        self._capabilities = capabilities
        self._orders = orders
        self._max_tokens = max_tokens

    async def assemble(
        self,
        user_id: str,
        query: str | None = None,
        messages: list[Mapping[str, Any]] | None = None,
    ) -> str:
        sections = [
            await self._capabilities_section(),
            self._knowledge_section(),
            await self._recent_events_section(user_id),
            await self._commerce_section(user_id),
            await self._user_section(user_id, messages),
        ]
        if is_order_related(query):
            sections.append(await self._orders_section(user_id))

        body = "\n\n".join(s for s in sections if s)
        return sanitize_text(f"{HEADER}\n\n{body}" if body else "")

    # -- sections ----------------------------------------------------------

    async def _capabilities_section(self) -> str:
        if self._capabilities is None:
            return ""
        try:
            plugins = await self._capabilities.plugins()
            metadata = await self._capabilities.metadata()
        except Exception:
            logger.warning("capability provider failed", exc_info=True)
            return ""

        lines = [f"✓ {p.name} ({p.version})" if p.version else f"✓ {p.name}" for p in plugins if p.is_active]
        for slug, entry in sanitize_metadata(metadata).items():
            for key, value in entry.get("facts", {}).items():
                rendered = ", ".join(value) if isinstance(value, list) else value
                lines.append(f"- {slug} / {key}: {rendered}")
        if not lines:
            return ""
        return _section("افزونه‌های فعال و تحت نظارت", "\n".join(lines))

    def _knowledge_section(self) -> str:
        if self._knowledge is None:
            return ""
        facts = self._knowledge.facts()
        if not facts:
            return ""
        return _section("دانش پایه", "\n".join(f"- {f}" for f in facts))

    async def _recent_events_section(self, user_id: str) -> str:
        if self._events is None:
            return ""
        events = await self._events.latest(user_id, RECENT_EVENTS_LIMIT)
        if not events:
            return ""
        lines = []
        for e in events:
            cls = classify_element(e.element_class, e.text)
            lines.append(f"- {e.event_type} روی {e.element_class or '-'} (نیت: {cls.intent})")
        return _section("رویدادهای اخیر کاربر", "\n".join(lines))

    async def _commerce_section(self, user_id: str) -> str:
        snapshot = await load_snapshot(self._commerce, user_id)
        if snapshot is None:
            return ""
        return _section("وضعیت فروشگاه", format_for_ai(snapshot))

    async def _user_section(self, user_id: str, messages: list[Mapping[str, Any]] | None) -> str:
        lines: list[str] = []
        if self._resolver is not None:
            dominant = await self._resolver.resolve(user_id)
            if dominant.score > 0:
                lines.append(
                    f"پرسونا: {persona_label(dominant.type)} ({dominant.type.value}) "
                    f"امتیاز {dominant.score}، اطمینان {dominant.confidence:.1f}%"
                )
        if messages:
            summary = compress_messages(messages, self._max_tokens)
            if summary:
                lines.append(f"خلاصه گفتگوی قبلی: {summary}")
        if not lines:
            return ""
        return _section("اطلاعات کاربر فعلی", "\n".join(lines))

    async def _orders_section(self, user_id: str) -> str:
        if self._orders is None:
            return ""
        try:
            orders = await self._orders.active_orders(user_id)
        except Exception:
            logger.warning("order tracker failed user=%s", user_id, exc_info=True)
            return ""
        if not orders:
            return ""
        lines = [
            f"- سفارش #{o.get('order_id')}: {o.get('status_label', o.get('status', ''))}"
            + (f" (کد رهگیری: {o['tracking_code']})" if o.get("tracking_code") else "")
            for o in orders
        ]
        return _section("اطلاعات رهگیری سفارشات", "\n".join(lines))
