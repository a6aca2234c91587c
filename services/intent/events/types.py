"""
InteractionEvent -- the immutable raw record produced by Event Ingest.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class EventType(str, Enum):
    HOVER = "hover"
    CLICK = "click"
    LONG_VIEW = "long_view"
    SCROLL_TO = "scroll_to"
    MODULE_DWELL = "module_dwell"
    PAGE_VIEW = "page_view"
    FORM_FOCUS = "form_focus"
    OTHER = "other"

    @classmethod
    def coerce(cls, value: str | EventType) -> EventType:
        """Map any raw tracker string onto the closed set; unknown -> OTHER."""
        if isinstance(value, EventType):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.OTHER


@dataclass(frozen=True)
class InteractionEvent:
    user_identifier: str
    event_type: str
    """Raw event type as sent by the tracker. Use `kind` for branch logic."""

    element_class: str = ""
    element_data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def kind(self) -> EventType:
        return EventType.coerce(self.event_type)

    @property
    def text(self) -> str:
        value = self.element_data.get("text") if isinstance(self.element_data, dict) else None
        return str(value) if value is not None else ""

    @property
    def dwell_time(self) -> float:
        """Dwell time in ms from the payload; 0.0 when absent, non-numeric or not finite."""
        if not isinstance(self.element_data, dict):
            return 0.0
        try:
            value = float(self.element_data.get("dwell_time") or 0)
        except (TypeError, ValueError, OverflowError):
            return 0.0
        return value if math.isfinite(value) else 0.0
