"""
Commerce snapshot -- the storefront state (cart, product being viewed,
page type) handed to the AI as grounding.

The storefront itself is an external collaborator. It exposes a
CommerceProvider; this module only validates what comes back and renders
it into the Persian block the prompt expects. Provider failures degrade
to "no commerce section".
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class CartItem(BaseModel):
    name: str
    quantity: int = 1
    product_id: str | None = None


class CartState(BaseModel):
    status: str = Field(default="empty", pattern=r"^(empty|has_items|unavailable)$")
    item_count: int = 0
    total_formatted: str = ""
    items: list[CartItem] = Field(default_factory=list)


class ProductState(BaseModel):
    status: str = Field(default="unavailable", pattern=r"^(available|unavailable)$")
    name: str = ""
    price_formatted: str = ""
    on_sale: bool = False
    categories: list[str] = Field(default_factory=list)
    meta_data: dict[str, Any] = Field(default_factory=dict)


class CommerceSnapshot(BaseModel):
    cart: CartState = Field(default_factory=CartState)
    current_product: ProductState = Field(default_factory=ProductState)
    page_type: str = "unknown"


class CommerceProvider(Protocol):
    async def snapshot(self, user_id: str) -> CommerceSnapshot | dict | None: ...


class StaticCommerceProvider:
    """Returns a fixed snapshot. Used when the storefront pushes state with the request."""

    def __init__(self, snapshot: CommerceSnapshot | dict | None = None) -> None:
        self._snapshot = snapshot

    async def snapshot(self, user_id: str) -> CommerceSnapshot | dict | None:
        return self._snapshot


async def load_snapshot(provider: CommerceProvider | None, user_id: str) -> CommerceSnapshot | None:
    """Fetch + validate. None when there is no provider or it misbehaves."""
    if provider is None:
        return None
    try:
        raw = await provider.snapshot(user_id)
    except Exception:
        logger.warning("commerce provider failed user=%s", user_id, exc_info=True)
        return None
    if raw is None:
        return None
    if isinstance(raw, CommerceSnapshot):
        return raw
    try:
        return CommerceSnapshot.model_validate(raw)
    except Exception:
        logger.warning("commerce snapshot rejected user=%s", user_id, exc_info=True)
        return None


def format_for_ai(snapshot: CommerceSnapshot) -> str:
    lines = ["وضعیت فعلی فروشگاه:", ""]

    cart = snapshot.cart
    if cart.status == "empty":
        lines.append("- سبد خرید: خالی")
    elif cart.status == "has_items":
        lines.append(f"- سبد خرید: {cart.item_count} محصول (جمع: {cart.total_formatted})")
        if cart.items:
            lines.append("- محصولات در سبد:")
            lines.extend(f"  * {item.name} (تعداد: {item.quantity})" for item in cart.items)

    product = snapshot.current_product
    if product.status == "available":
        lines.append("")
        lines.append(f"- محصول در حال مشاهده: {product.name}")
        lines.append(f"- قیمت: {product.price_formatted}")
        if product.on_sale:
            lines.append("- در حال تخفیف: بله")
        if product.categories:
            lines.append(f"- دسته‌بندی: {', '.join(product.categories)}")
        if product.meta_data:
            lines.append("- مشخصات فنی:")
            lines.extend(f"  * {k}: {v}" for k, v in product.meta_data.items())

    lines.append("")
    lines.append(f"- نوع صفحه: {snapshot.page_type}")
    return "\n".join(lines)
