"""
Incident Controllers (API Routes)
=================================

FastAPI routes for the chat gateway events and the ticket lifecycle.

Controllers are thin - they delegate to application services. Domain
errors propagate to the application exception handler, which maps them
to HTTP status codes.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, status

from incident_desk.core import ResourceNotFoundException
from incident_desk.incidents.application import (
    CancellationRequest,
    ConfirmationRequest,
    ConfirmationResponse,
    DeliveryOutcomeResponse,
    FeedbackRequestRequest,
    FeedbackRequestResponse,
    FeedbackResponseRequest,
    InboundEventRouter,
    InboundMessageRequest,
    ITicketStore,
    LifecycleCoordinator,
    MessageEditRequest,
    ReportCreateRequest,
    RouteResponse,
    SubmissionResponse,
    TicketListResponse,
    TicketQueryDTO,
    TicketResponse,
)
from incident_desk.incidents.domain import DeliveryOutcome
from incident_desk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/incidents", tags=["Incidents"])


# ========== Example payloads for Swagger ==========

INBOUND_MESSAGE_EXAMPLE = {
    "channel_id": "it@g.us",
    "sender_id": "5215550001@c.us",
    "text": "listo, ya quedó",
    "message_id": "wamid.HBgL",
    "quoted": {
        "text": "Nueva tarea recibida (ID: 42): No hay internet en la habitación 1203",
        "unique_id": None,
        "original_id": None
    },
    "mentioned_user_ids": []
}


# ========== Dependencies ==========

def _from_state(request: Request, name: str, label: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} not available"
        )
    return service


def get_coordinator(request: Request) -> LifecycleCoordinator:
    """Get the lifecycle coordinator from app state."""
    return _from_state(request, "coordinator", "Lifecycle coordinator")


def get_event_router(request: Request) -> InboundEventRouter:
    """Get the inbound event router from app state."""
    return _from_state(request, "event_router", "Event router")


def get_ticket_store(request: Request) -> ITicketStore:
    """Get the ticket store from app state."""
    return _from_state(request, "ticket_store", "Ticket store")


def _deliveries(outcomes: List[DeliveryOutcome]) -> List[DeliveryOutcomeResponse]:
    return [
        DeliveryOutcomeResponse(channel_id=o.channel_id, delivered=o.delivered, error=o.error)
        for o in outcomes
    ]


# ========== Chat gateway events ==========

@router.post(
    "/events/messages",
    response_model=RouteResponse,
    summary="Handle an inbound chat message",
    description="""
    Entry point for the chat gateway.

    - No reply context, in the primary channel or a direct chat: new report.
    - Reply to a bot message: resolved to a ticket, then handled as a
      cancellation, confirmation, feedback request, team feedback or
      reporter comment.

    User-facing errors are answered in the chat and reported as
    `action = "rejected"`.
    """,
    responses={200: {"content": {"application/json": {"example": {"action": "confirmed", "ticket_id": 42, "detail": "completed"}}}}},
    openapi_extra={"requestBody": {"content": {"application/json": {"example": INBOUND_MESSAGE_EXAMPLE}}}},
)
async def handle_inbound_message(
    body: InboundMessageRequest,
    event_router: InboundEventRouter = Depends(get_event_router),
):
    result = await event_router.handle_message(body.to_domain())
    return RouteResponse(action=result.action, ticket_id=result.ticket_id, detail=result.detail)


@router.post(
    "/events/edits",
    response_model=RouteResponse,
    summary="Handle an edit of a reporting message",
)
async def handle_message_edit(
    body: MessageEditRequest,
    event_router: InboundEventRouter = Depends(get_event_router),
):
    ticket = await event_router.handle_edit(body.original_msg_id, body.new_text, body.mentioned_user_ids)
    if ticket is None:
        return RouteResponse(action="ignored", detail="no ticket for this message")
    return RouteResponse(action="edited", ticket_id=ticket.id, detail=",".join(ticket.categories))


# ========== Tickets ==========

@router.post(
    "",
    response_model=SubmissionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a report",
    description="""
    Classify a report and open a ticket for every detected team.

    When no team is detected, no ticket is stored, `ticket` is null and
    `needs_clarification` is true.
    """
)
async def submit_report(
    body: ReportCreateRequest,
    coordinator: LifecycleCoordinator = Depends(get_coordinator),
):
    outcome = await coordinator.submit_report(
        text=body.text,
        reporter_id=body.reporter_id,
        origin_channel=body.origin_channel,
        mentioned_user_ids=body.mentioned_user_ids,
        original_msg_id=body.original_msg_id,
        media=body.media,
    )
    return SubmissionResponse(
        ticket=TicketResponse.from_domain(outcome.ticket) if outcome.ticket else None,
        teams=list(outcome.classification.teams),
        tier=outcome.classification.tier,
        needs_clarification=outcome.needs_clarification,
        deliveries=_deliveries(outcome.deliveries),
    )


@router.get(
    "",
    response_model=TicketListResponse,
    summary="List tickets",
    description="""
    **Query Parameters:**
    - `category`: team code (it, man, ama, rs, seg)
    - `state`: pending, completed or cancelled
    - `created_from` / `created_to`: inclusive creation window
    - `limit`, `offset`: pagination
    """
)
async def list_tickets(
    query: TicketQueryDTO = Depends(),
    store: ITicketStore = Depends(get_ticket_store),
):
    tickets = await store.list(query.to_filters(), limit=query.limit, offset=query.offset)
    return TicketListResponse(
        tickets=[TicketResponse.from_domain(t) for t in tickets],
        count=len(tickets),
    )


@router.get(
    "/{ticket_id}",
    response_model=TicketResponse,
    summary="Get a ticket",
    responses={404: {"description": "Ticket not found"}}
)
async def get_ticket(
    ticket_id: int,
    store: ITicketStore = Depends(get_ticket_store),
):
    ticket = await store.get_by_id(ticket_id)
    if ticket is None:
        raise ResourceNotFoundException("Ticket", str(ticket_id))
    return TicketResponse.from_domain(ticket)


@router.post(
    "/{ticket_id}/confirmations",
    response_model=ConfirmationResponse,
    summary="Confirm a ticket for one team",
    description="""
    Record that a team finished its part.

    - `status = "completed"`: single-team ticket, or the last outstanding team
    - `status = "partial"`: other teams still outstanding
    - `status = "already_confirmed"`: the team had confirmed before; nothing changed

    When `team` is omitted it is taken from `channel_id`, then from the
    user's directory team.
    """,
    responses={
        404: {"description": "Ticket not found"},
        409: {"description": "Ticket is not pending"},
        422: {"description": "Team is not assigned to the ticket"},
    }
)
async def confirm_ticket(
    ticket_id: int,
    body: ConfirmationRequest,
    coordinator: LifecycleCoordinator = Depends(get_coordinator),
):
    outcome = await coordinator.on_confirmation(
        ticket_id,
        body.user_id,
        comment=body.comment,
        team=body.team,
        channel_id=body.channel_id,
    )
    return ConfirmationResponse(
        status=outcome.status,
        team=outcome.team,
        ticket=TicketResponse.from_domain(outcome.ticket),
        deliveries=_deliveries(outcome.deliveries),
    )


@router.post(
    "/{ticket_id}/cancel",
    response_model=TicketResponse,
    summary="Cancel a pending ticket (reporter or admin)",
    responses={
        403: {"description": "Requester is neither the reporter nor an admin"},
        404: {"description": "Ticket not found"},
        409: {"description": "Ticket is not pending"},
    }
)
async def cancel_ticket(
    ticket_id: int,
    body: CancellationRequest,
    coordinator: LifecycleCoordinator = Depends(get_coordinator),
):
    ticket = await coordinator.on_cancellation_request(ticket_id, body.requester_id, body.channel_id)
    return TicketResponse.from_domain(ticket)


@router.post(
    "/{ticket_id}/feedback-requests",
    response_model=FeedbackRequestResponse,
    summary="Ask outstanding teams for a status update",
)
async def request_feedback(
    ticket_id: int,
    body: FeedbackRequestRequest,
    coordinator: LifecycleCoordinator = Depends(get_coordinator),
):
    teams = await coordinator.on_feedback_request(ticket_id, body.requester_id, body.channel_id)
    return FeedbackRequestResponse(ticket_id=ticket_id, teams_asked=teams)


@router.post(
    "/{ticket_id}/feedback",
    response_model=TicketResponse,
    summary="Record a team's status update",
)
async def record_feedback(
    ticket_id: int,
    body: FeedbackResponseRequest,
    coordinator: LifecycleCoordinator = Depends(get_coordinator),
):
    ticket = await coordinator.on_feedback_response(
        ticket_id,
        body.team,
        body.comment,
        body.user_id,
        channel_id=body.channel_id,
    )
    return TicketResponse.from_domain(ticket)
