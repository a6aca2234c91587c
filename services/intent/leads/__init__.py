"""
Lead scoring and lead / draft-order records.

Scoring is pure (leads.scoring); persistence goes through SQLAlchemy
async sessions (leads.service).
"""

from services.intent.leads.scoring import LeadStatus, lead_status, needs_notification, score_lead

__all__ = [
    "LeadStatus",
    "lead_status",
    "needs_notification",
    "score_lead",
]
