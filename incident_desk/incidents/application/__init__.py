"""
Incident Application Layer
==========================

Contains:
- Services: lifecycle coordinator, identifier resolver, reminders, event router
- Interfaces: ticket store and chat transport
- DTOs: request/response models for the incidents API

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from incident_desk.incidents.application.dto import (
    InboundMessageRequest,
    QuotedMessageDTO,
    MessageEditRequest,
    ReportCreateRequest,
    ConfirmationRequest,
    CancellationRequest,
    FeedbackRequestRequest,
    FeedbackResponseRequest,
    TicketQueryDTO,
    TicketResponse,
    TicketListResponse,
    FeedbackRecordResponse,
    DeliveryOutcomeResponse,
    SubmissionResponse,
    ConfirmationResponse,
    FeedbackRequestResponse,
    RouteResponse,
)
from incident_desk.incidents.application.services import (
    ITicketStore,
    IChatTransport,
    NotificationFanout,
    IdentifierResolver,
    parse_ticket_id,
    ConfirmationStatus,
    ConfirmationOutcome,
    SubmissionOutcome,
    LifecycleCoordinator,
    ReminderService,
    RouteAction,
    RouteResult,
    InboundEventRouter,
    utc_now,
)

__all__ = [
    # DTOs
    "InboundMessageRequest",
    "QuotedMessageDTO",
    "MessageEditRequest",
    "ReportCreateRequest",
    "ConfirmationRequest",
    "CancellationRequest",
    "FeedbackRequestRequest",
    "FeedbackResponseRequest",
    "TicketQueryDTO",
    "TicketResponse",
    "TicketListResponse",
    "FeedbackRecordResponse",
    "DeliveryOutcomeResponse",
    "SubmissionResponse",
    "ConfirmationResponse",
    "FeedbackRequestResponse",
    "RouteResponse",
    # Interfaces
    "ITicketStore",
    "IChatTransport",
    # Services
    "NotificationFanout",
    "IdentifierResolver",
    "parse_ticket_id",
    "ConfirmationStatus",
    "ConfirmationOutcome",
    "SubmissionOutcome",
    "LifecycleCoordinator",
    "ReminderService",
    "RouteAction",
    "RouteResult",
    "InboundEventRouter",
    "utc_now",
]
