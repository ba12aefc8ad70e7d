"""
Incident Domain Layer
=====================

Contains:
- Entities: Ticket, FeedbackRecord
- Value Objects: ChannelMap, InboundMessage, Delivery

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from incident_desk.incidents.domain.entities import (
    TicketState,
    FeedbackKind,
    FeedbackRecord,
    Ticket,
    compute_phase,
)
from incident_desk.incidents.domain.value_objects import (
    ChannelMap,
    QuotedMessage,
    InboundMessage,
    Delivery,
    DeliveryOutcome,
)

__all__ = [
    # Entities
    "TicketState",
    "FeedbackKind",
    "FeedbackRecord",
    "Ticket",
    "compute_phase",
    # Value Objects
    "ChannelMap",
    "QuotedMessage",
    "InboundMessage",
    "Delivery",
    "DeliveryOutcome",
]
