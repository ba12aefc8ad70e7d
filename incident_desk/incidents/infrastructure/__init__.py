"""
Incident Infrastructure Layer
=============================

Infrastructure implementations for the ticket lifecycle:
- Models: SQLAlchemy ORM models
- Repositories: compare-and-swap ticket store
- External: chat gateway webhook, reminder scheduler
"""

from incident_desk.incidents.infrastructure.models import TicketModel
from incident_desk.incidents.infrastructure.repositories import SQLAlchemyTicketStore
from incident_desk.incidents.infrastructure.external import (
    CircuitBreaker,
    CircuitState,
    ReminderScheduler,
    WebhookChatTransport,
)

__all__ = [
    "TicketModel",
    "SQLAlchemyTicketStore",
    "CircuitBreaker",
    "CircuitState",
    "ReminderScheduler",
    "WebhookChatTransport",
]
