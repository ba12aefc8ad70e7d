"""
Incident Application DTOs
=========================

Data Transfer Objects for the incidents API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses.
"""

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from incident_desk.incidents.domain import (
    FeedbackRecord, InboundMessage, QuotedMessage, Ticket
)


# ========== Type Aliases for Literals ==========
TicketStateStr = Literal["pending", "completed", "cancelled"]
FeedbackKindStr = Literal["confirmation", "feedback_response"]


# ========== Request DTOs ==========

class QuotedMessageDTO(BaseModel):
    """Reply context of an inbound chat message."""
    text: str = Field(default="", description="Body of the quoted message")
    unique_id: Optional[str] = Field(None, description="Bot correlation id of the quoted message")
    original_id: Optional[str] = Field(None, description="Transport id of the quoted message")


class InboundMessageRequest(BaseModel):
    """Inbound chat message pushed by the chat gateway."""
    channel_id: str = Field(..., min_length=1, description="Chat the message arrived in")
    sender_id: str = Field(..., min_length=1, description="Author of the message")
    text: str = Field(default="", description="Message body")
    message_id: Optional[str] = Field(None, description="Transport message id")
    quoted: Optional[QuotedMessageDTO] = Field(None, description="Reply context, if any")
    mentioned_user_ids: List[str] = Field(default_factory=list)
    media: Optional[str] = Field(None, description="Opaque media reference")

    def to_domain(self) -> InboundMessage:
        quoted = None
        if self.quoted is not None:
            quoted = QuotedMessage(
                text=self.quoted.text,
                unique_id=self.quoted.unique_id,
                original_id=self.quoted.original_id,
            )
        return InboundMessage(
            channel_id=self.channel_id,
            sender_id=self.sender_id,
            text=self.text,
            message_id=self.message_id,
            quoted=quoted,
            mentioned_user_ids=tuple(self.mentioned_user_ids),
            media=self.media,
        )


class MessageEditRequest(BaseModel):
    """Edit of a previously sent report."""
    original_msg_id: str = Field(..., min_length=1)
    new_text: str = Field(..., min_length=1)
    mentioned_user_ids: List[str] = Field(default_factory=list)


class ReportCreateRequest(BaseModel):
    """Submit a report without going through the chat gateway."""
    text: str = Field(..., min_length=1, description="Free-text report")
    reporter_id: str = Field(..., min_length=1)
    origin_channel: str = Field(..., min_length=1)
    mentioned_user_ids: List[str] = Field(default_factory=list)
    original_msg_id: Optional[str] = None
    media: Optional[str] = None


class ConfirmationRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    team: Optional[str] = Field(None, description="Team confirming; inferred when omitted")
    comment: str = Field(default="")
    channel_id: Optional[str] = Field(None, description="Channel to acknowledge in")

    @field_validator("team")
    @classmethod
    def lowercase_team(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().lower() if v else v


class CancellationRequest(BaseModel):
    requester_id: str = Field(..., min_length=1)
    channel_id: Optional[str] = None


class FeedbackRequestRequest(BaseModel):
    requester_id: str = Field(..., min_length=1)
    channel_id: Optional[str] = None


class FeedbackResponseRequest(BaseModel):
    team: str = Field(..., min_length=1)
    comment: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    channel_id: Optional[str] = None

    @field_validator("team")
    @classmethod
    def lowercase_team(cls, v: str) -> str:
        return v.strip().lower()


class TicketQueryDTO(BaseModel):
    """Query parameters for listing tickets."""
    category: Optional[str] = None
    state: Optional[TicketStateStr] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    limit: int = Field(default=100, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)

    def to_filters(self) -> dict:
        filters = {}
        if self.category:
            filters["category"] = self.category.lower()
        if self.state:
            filters["state"] = self.state
        if self.created_from:
            filters["created_from"] = self.created_from
        if self.created_to:
            filters["created_to"] = self.created_to
        return filters


# ========== Response DTOs ==========

class FeedbackRecordResponse(BaseModel):
    user_id: str
    team: str
    comment: str
    timestamp: datetime
    kind: FeedbackKindStr

    @classmethod
    def from_domain(cls, record: FeedbackRecord) -> "FeedbackRecordResponse":
        return cls(
            user_id=record.user_id,
            team=record.team,
            comment=record.comment,
            timestamp=record.timestamp,
            kind=record.kind.value,
        )


class TicketResponse(BaseModel):
    """Full ticket representation."""
    id: int
    unique_message_id: str
    original_msg_id: Optional[str]
    description: str
    reporter_id: str
    origin_channel: str
    state: TicketStateStr
    categories: List[str]
    confirmations: Dict[str, datetime]
    phase: str
    feedback_history: List[FeedbackRecordResponse]
    media: Optional[str]
    created_at: datetime
    cancelled_at: Optional[datetime]
    completed_at: Optional[datetime]
    completed_by: Optional[str]
    completed_by_display_name: Optional[str]

    @classmethod
    def from_domain(cls, ticket: Ticket) -> "TicketResponse":
        return cls(
            id=ticket.id,
            unique_message_id=ticket.unique_message_id,
            original_msg_id=ticket.original_msg_id,
            description=ticket.description,
            reporter_id=ticket.reporter_id,
            origin_channel=ticket.origin_channel,
            state=ticket.state.value,
            categories=list(ticket.categories),
            confirmations=dict(ticket.confirmations),
            phase=ticket.phase,
            feedback_history=[FeedbackRecordResponse.from_domain(r) for r in ticket.feedback_history],
            media=ticket.media,
            created_at=ticket.created_at,
            cancelled_at=ticket.cancelled_at,
            completed_at=ticket.completed_at,
            completed_by=ticket.completed_by,
            completed_by_display_name=ticket.completed_by_display_name,
        )


class TicketListResponse(BaseModel):
    tickets: List[TicketResponse]
    count: int


class DeliveryOutcomeResponse(BaseModel):
    channel_id: str
    delivered: bool
    error: Optional[str] = None


class SubmissionResponse(BaseModel):
    """Result of submitting a report."""
    ticket: Optional[TicketResponse]
    teams: List[str]
    tier: str
    needs_clarification: bool
    deliveries: List[DeliveryOutcomeResponse] = Field(default_factory=list)


class ConfirmationResponse(BaseModel):
    status: Literal["already_confirmed", "partial", "completed"]
    team: str
    ticket: TicketResponse
    deliveries: List[DeliveryOutcomeResponse] = Field(default_factory=list)


class FeedbackRequestResponse(BaseModel):
    ticket_id: int
    teams_asked: List[str]


class RouteResponse(BaseModel):
    """What happened to an inbound chat event."""
    action: str
    ticket_id: Optional[int] = None
    detail: Optional[str] = None
