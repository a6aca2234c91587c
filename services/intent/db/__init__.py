"""
SQLAlchemy async database module.

Engine factory, request-scoped session dependency and the declarative
mirrors of every table the intent service touches.
"""

from services.intent.db.engine import create_engine
from services.intent.db.session import get_db
from services.intent.db.models import (
    Base,
    PersonaScoreRow,
    InteractionEventRow,
    AIActionLog,
    SecurityEvent,
    Lead,
    DraftOrder,
    SupportTicket,
)

__all__ = [
    "create_engine",
    "get_db",
    "Base",
    "PersonaScoreRow",
    "InteractionEventRow",
    "AIActionLog",
    "SecurityEvent",
    "Lead",
    "DraftOrder",
    "SupportTicket",
]
