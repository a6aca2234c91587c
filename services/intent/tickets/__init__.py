"""
Support tickets raised from assistant conversations.

Triage rules are pure (tickets.classify); persistence goes through
SQLAlchemy async sessions (tickets.service).
"""

from services.intent.tickets.classify import TicketCategory, TicketUrgency, classify

__all__ = [
    "TicketCategory",
    "TicketUrgency",
    "classify",
]
