"""
Incident Application Services
=============================

Application services orchestrate the ticket lifecycle and coordinate
between domain entities, the ticket store and the chat transport.

Ordering rule for every transition: the store write commits first, then
notifications fan out. A failed delivery never undoes a committed write.
"""

import asyncio
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, List, Optional

from incident_desk.config import ORIGIN_TEAM
from incident_desk.classification.application import ClassificationService
from incident_desk.classification.domain import ClassificationResult
from incident_desk.core import (
    AlreadyConfirmedException,
    ApplicationException,
    PermissionDeniedException,
    PreconditionFailedException,
    RepositoryException,
    ResourceNotFoundException,
    ValidationException,
)
from incident_desk.incidents.application import messages
from incident_desk.incidents.domain import (
    ChannelMap,
    Delivery,
    DeliveryOutcome,
    FeedbackKind,
    FeedbackRecord,
    InboundMessage,
    Ticket,
    TicketState,
)
from incident_desk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ========== Repository / Transport Interfaces (Dependency Inversion) ==========

class ITicketStore(ABC):
    """
    Interface for ticket persistence.

    Every mutation is atomic per ticket and committed before it returns.
    Mutations return the ticket as persisted after the write.
    """

    @abstractmethod
    async def create(
        self,
        description: str,
        reporter_id: str,
        categories: List[str],
        origin_channel: str,
        media: Optional[str] = None,
        original_msg_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> Ticket:
        """Create a Pending ticket with no confirmations."""

    @abstractmethod
    async def get_by_id(self, ticket_id: int) -> Optional[Ticket]:
        """Get ticket by id."""

    @abstractmethod
    async def find_by_unique_message_id(self, unique_message_id: str) -> Optional[Ticket]:
        """Get ticket by the correlation key generated at creation."""

    @abstractmethod
    async def find_by_original_msg_id(self, original_msg_id: str) -> Optional[Ticket]:
        """Get ticket by the transport id of the reporting message."""

    @abstractmethod
    async def list(
        self,
        filters: dict,
        limit: int = 100,
        offset: int = 0
    ) -> List[Ticket]:
        """List tickets with filters, newest first."""

    @abstractmethod
    async def record_confirmation(
        self,
        ticket_id: int,
        record: FeedbackRecord,
        display_name: Optional[Callable[[str], str]] = None,
    ) -> Ticket:
        """
        Add a team confirmation, its history record and the new phase.

        When the confirmation covers every category the same write moves
        the ticket to Completed, naming the confirmers via ``display_name``.
        Raises AlreadyConfirmedException if the team already confirmed.
        """

    @abstractmethod
    async def append_feedback(self, ticket_id: int, record: FeedbackRecord) -> Ticket:
        """Append a record to the feedback history."""

    @abstractmethod
    async def update_phase(self, ticket_id: int, phase: str) -> Ticket:
        """Overwrite the phase string."""

    @abstractmethod
    async def complete(
        self,
        ticket_id: int,
        completed_by: str,
        completed_by_display_name: str,
        completed_at: datetime,
    ) -> Ticket:
        """Pending -> Completed. Raises PreconditionFailedException otherwise."""

    @abstractmethod
    async def cancel(self, ticket_id: int, cancelled_at: datetime) -> Ticket:
        """Pending -> Cancelled. Raises PreconditionFailedException otherwise."""

    @abstractmethod
    async def update_categories(
        self,
        ticket_id: int,
        categories: List[str],
        display_name: Optional[Callable[[str], str]] = None,
        completed_at: Optional[datetime] = None,
    ) -> Ticket:
        """
        Replace categories, keeping every already-confirmed team.

        A Pending ticket whose new categories are all confirmed completes
        in the same write.
        """

    @abstractmethod
    async def update_description(self, ticket_id: int, description: str) -> Ticket:
        """Replace the description."""


class IChatTransport(ABC):
    """Interface for outbound chat messages."""

    @abstractmethod
    async def deliver(self, channel_id: str, text: str, media: Optional[str] = None) -> None:
        """Send one message. Raises TransportException on failure."""


# ========== Notification Fan-out ==========

class NotificationFanout:
    """
    Best-effort delivery to many channels with bounded concurrency.

    Identical (channel, text) pairs are sent once. Each failure is logged
    and reported in the outcomes; none is raised.
    """

    def __init__(self, transport: IChatTransport, concurrency: int = 4):
        self._transport = transport
        self._concurrency = max(1, concurrency)

    async def broadcast(self, deliveries: Iterable[Delivery]) -> List[DeliveryOutcome]:
        unique: List[Delivery] = []
        seen = set()
        for delivery in deliveries:
            key = (delivery.channel_id, delivery.text)
            if not delivery.channel_id or key in seen:
                continue
            seen.add(key)
            unique.append(delivery)

        if not unique:
            return []

        semaphore = asyncio.Semaphore(self._concurrency)

        async def send(delivery: Delivery) -> DeliveryOutcome:
            async with semaphore:
                try:
                    await self._transport.deliver(delivery.channel_id, delivery.text, delivery.media)
                except Exception as e:
                    logger.warning(
                        "Notification delivery failed",
                        extra={"channel_id": delivery.channel_id, "error": str(e)}
                    )
                    return DeliveryOutcome(delivery.channel_id, False, str(e))
            return DeliveryOutcome(delivery.channel_id, True)

        outcomes = await asyncio.gather(*(send(d) for d in unique))

        failed = [o.channel_id for o in outcomes if not o.delivered]
        if failed:
            logger.error(
                "Fan-out finished with failures",
                extra={"failed_channels": failed, "total": len(outcomes)}
            )
        return list(outcomes)


# ========== Identifier Resolution ==========

_ID_PATTERN = re.compile(r"\(ID:\s*(\d+)\)|ID:\s*(\d+)", re.IGNORECASE)


def parse_ticket_id(text: Optional[str]) -> Optional[int]:
    """Pull a ticket id out of bot-generated text, ignoring * markup."""
    if not text:
        return None
    match = _ID_PATTERN.search(text.replace("*", ""))
    if not match:
        return None
    return int(match.group(1) or match.group(2))


class IdentifierResolver:
    """
    Resolves which ticket a quoted message refers to.

    Order: "ID: n" in the quoted text, then the quoted message's unique id,
    then its original message id. None means the caller should say it could
    not identify the ticket.
    """

    def __init__(self, store: ITicketStore):
        self._store = store

    async def extract(
        self,
        quoted_text: Optional[str],
        quoted_unique_id: Optional[str] = None,
        quoted_original_id: Optional[str] = None,
    ) -> Optional[int]:
        ticket_id = parse_ticket_id(quoted_text)
        if ticket_id is not None:
            return ticket_id

        if quoted_unique_id:
            ticket = await self._store.find_by_unique_message_id(quoted_unique_id)
            if ticket:
                return ticket.id

        if quoted_original_id:
            ticket = await self._store.find_by_original_msg_id(quoted_original_id)
            if ticket:
                return ticket.id

        return None


# ========== Outcomes ==========

class ConfirmationStatus(str):
    """What a confirmation did to the ticket."""
    ALREADY_CONFIRMED = "already_confirmed"
    PARTIAL = "partial"
    COMPLETED = "completed"


@dataclass
class ConfirmationOutcome:
    status: str
    ticket: Ticket
    team: str
    deliveries: List[DeliveryOutcome] = field(default_factory=list)


@dataclass
class SubmissionOutcome:
    classification: ClassificationResult
    ticket: Optional[Ticket] = None
    deliveries: List[DeliveryOutcome] = field(default_factory=list)

    @property
    def needs_clarification(self) -> bool:
        return self.ticket is None


# ========== Lifecycle Coordinator ==========

class LifecycleCoordinator:
    """
    Orchestrates report submission, confirmation, cancellation, feedback
    and edit reconciliation against the ticket store.
    """

    def __init__(
        self,
        store: ITicketStore,
        classification: ClassificationService,
        fanout: NotificationFanout,
        channels: ChannelMap,
        display_timezone: str = messages.DEFAULT_TIMEZONE,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._classification = classification
        self._fanout = fanout
        self._channels = channels
        self._tz = display_timezone
        self._clock = clock

    @property
    def channels(self) -> ChannelMap:
        return self._channels

    async def _require(self, ticket_id: int) -> Ticket:
        ticket = await self._store.get_by_id(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", str(ticket_id))
        return ticket

    def _summary_targets(self, ticket: Ticket) -> List[str]:
        return [ticket.origin_channel, self._channels.primary_channel_id]

    # ---------- New reports ----------

    async def submit_report(
        self,
        text: str,
        reporter_id: str,
        origin_channel: str,
        mentioned_user_ids: Iterable[str] = (),
        original_msg_id: Optional[str] = None,
        media: Optional[str] = None,
        is_direct: Optional[bool] = None,
    ) -> SubmissionOutcome:
        """
        Classify a report and open a ticket for the detected teams.

        No team detected: the reporter gets the clarification prompt and
        nothing is stored.
        """
        if not text or not text.strip():
            raise ValidationException("Report text is empty")

        result = self._classification.classify(text, mentioned_user_ids)
        if result.is_empty:
            known = self._classification.keywords.known_teams
            outcomes = await self._fanout.broadcast(
                [Delivery(origin_channel, messages.clarification_prompt(known))]
            )
            logger.info(
                "Report needs clarification",
                extra={"reporter_id": reporter_id, "origin_channel": origin_channel}
            )
            return SubmissionOutcome(classification=result, deliveries=outcomes)

        ticket = await self._store.create(
            description=text.strip(),
            reporter_id=reporter_id,
            categories=list(result.teams),
            origin_channel=origin_channel,
            media=media,
            original_msg_id=original_msg_id,
            created_at=self._clock(),
        )
        logger.info(
            "Ticket created",
            extra={
                "ticket_id": ticket.id,
                "categories": ticket.categories,
                "tier": result.tier,
                "reporter_id": reporter_id,
            }
        )

        deliveries: List[Delivery] = []
        for team in ticket.categories:
            channel = self._channels.channel_for(team)
            if channel is None:
                logger.warning(
                    "No destination channel for team",
                    extra={"ticket_id": ticket.id, "team": team}
                )
                continue
            deliveries.append(Delivery(channel, messages.new_task(ticket), media))

        deliveries.append(Delivery(origin_channel, messages.report_acknowledged(ticket)))

        direct = self._channels.is_direct(origin_channel) if is_direct is None else is_direct
        if direct:
            reporter_name = self._classification.directory.display_name(reporter_id)
            deliveries.append(Delivery(
                self._channels.primary_channel_id,
                messages.direct_report_notice(ticket, reporter_name),
                media,
            ))

        outcomes = await self._fanout.broadcast(deliveries)
        return SubmissionOutcome(classification=result, ticket=ticket, deliveries=outcomes)

    # ---------- Confirmation ----------

    def attribute_team(
        self,
        ticket: Ticket,
        user_id: str,
        channel_id: Optional[str] = None,
    ) -> str:
        """
        Which team a confirmation speaks for.

        The team owning the channel it arrived in; else the confirmer's
        directory team when assigned to the ticket; else the first team
        that has not confirmed yet.
        """
        team = self._channels.team_for_channel(channel_id)
        if team:
            return team

        user_team = self._classification.directory.team_of(user_id)
        if user_team and user_team in ticket.categories:
            return user_team

        outstanding = ticket.outstanding_teams
        return outstanding[0] if outstanding else ticket.categories[0]

    async def on_confirmation(
        self,
        ticket_id: int,
        user_id: str,
        comment: str = "",
        team: Optional[str] = None,
        channel_id: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> ConfirmationOutcome:
        """
        Record one team's confirmation.

        A single-team ticket completes immediately. A multi-team ticket
        completes when the last assigned team confirms, otherwise a partial
        status goes to the origin and primary channels.
        """
        ts = timestamp or self._clock()
        ticket = await self._require(ticket_id)
        directory = self._classification.directory
        team = (team or self.attribute_team(ticket, user_id, channel_id)).lower()

        if ticket.has_confirmed(team):
            return await self._already_confirmed(ticket, team, channel_id)
        if not ticket.is_pending:
            raise PreconditionFailedException(
                ticket.id,
                f"Ticket {ticket.id} is {ticket.state.value}",
                state=ticket.state.value,
            )
        if team not in ticket.categories:
            raise ValidationException(
                f"Team '{team}' is not assigned to ticket {ticket.id}",
                {"ticket_id": ticket.id, "team": team, "categories": ticket.categories}
            )

        record = FeedbackRecord(
            user_id=user_id,
            team=team,
            comment=comment or "",
            timestamp=ts,
            kind=FeedbackKind.CONFIRMATION,
        )
        try:
            ticket = await self._store.record_confirmation(ticket_id, record, directory.display_name)
        except AlreadyConfirmedException:
            return await self._already_confirmed(await self._require(ticket_id), team, channel_id)

        logger.info(
            "Ticket confirmed",
            extra={"ticket_id": ticket.id, "team": team, "user_id": user_id, "phase": ticket.phase}
        )

        deliveries: List[Delivery] = []
        if ticket.state == TicketState.COMPLETED:
            completed_name = ticket.completed_by_display_name or directory.display_name(user_id)
            logger.info(
                "Ticket completed",
                extra={"ticket_id": ticket.id, "completed_by": completed_name, "phase": ticket.phase}
            )
            if channel_id:
                deliveries.append(Delivery(channel_id, messages.completed_ack(ticket, completed_name, self._tz)))
            summary = messages.final_summary(ticket, self._tz)
            deliveries.extend(Delivery(c, summary) for c in self._summary_targets(ticket))
            status = ConfirmationStatus.COMPLETED
        else:
            confirmer_names = [directory.display_name(u) for u in ticket.confirmer_ids()]
            partial = messages.partial_status(ticket, confirmer_names, ts)
            deliveries.extend(Delivery(c, partial) for c in self._summary_targets(ticket))
            if channel_id:
                deliveries.append(Delivery(
                    channel_id,
                    messages.partial_ack(ticket, directory.display_name(user_id), ts, self._tz)
                ))
            status = ConfirmationStatus.PARTIAL

        outcomes = await self._fanout.broadcast(deliveries)
        return ConfirmationOutcome(status=status, ticket=ticket, team=team, deliveries=outcomes)

    async def _already_confirmed(
        self,
        ticket: Ticket,
        team: str,
        channel_id: Optional[str],
    ) -> ConfirmationOutcome:
        logger.info(
            "Duplicate confirmation ignored",
            extra={"ticket_id": ticket.id, "team": team}
        )
        outcomes = []
        if channel_id:
            outcomes = await self._fanout.broadcast(
                [Delivery(channel_id, messages.already_confirmed(ticket, team))]
            )
        return ConfirmationOutcome(
            status=ConfirmationStatus.ALREADY_CONFIRMED,
            ticket=ticket,
            team=team,
            deliveries=outcomes,
        )

    # ---------- Cancellation ----------

    async def on_cancellation_request(
        self,
        ticket_id: int,
        requester_id: str,
        channel_id: Optional[str] = None,
    ) -> Ticket:
        """Cancel a Pending ticket on behalf of its reporter or an admin."""
        ticket = await self._require(ticket_id)
        directory = self._classification.directory

        if requester_id != ticket.reporter_id and not directory.is_admin(requester_id):
            raise PermissionDeniedException(requester_id, f"cancel ticket {ticket_id}")
        if not ticket.is_pending:
            raise PreconditionFailedException(
                ticket.id,
                f"Ticket {ticket.id} is {ticket.state.value} and cannot be cancelled",
                state=ticket.state.value,
            )

        ticket = await self._store.cancel(ticket_id, self._clock())
        logger.info(
            "Ticket cancelled",
            extra={"ticket_id": ticket.id, "requester_id": requester_id}
        )

        who = directory.display_with_title(requester_id)
        notice = messages.cancelled_notice(ticket, who)
        deliveries: List[Delivery] = []
        if channel_id:
            deliveries.append(Delivery(channel_id, messages.cancelled_ack(ticket, who)))
        if ticket.origin_channel != channel_id:
            deliveries.append(Delivery(ticket.origin_channel, notice))
        for team in ticket.categories:
            channel = self._channels.channel_for(team)
            if channel:
                deliveries.append(Delivery(channel, notice))
        if not self._channels.is_primary(ticket.origin_channel):
            deliveries.append(Delivery(self._channels.primary_channel_id, notice))

        await self._fanout.broadcast(deliveries)
        return ticket

    # ---------- Feedback ----------

    async def on_feedback_request(
        self,
        ticket_id: int,
        requester_id: str,
        channel_id: Optional[str] = None,
    ) -> List[str]:
        """
        Ask every team that has not confirmed for a status update.

        Returns the teams that were asked.
        """
        ticket = await self._require(ticket_id)
        if ticket.state == TicketState.CANCELLED:
            raise PreconditionFailedException(
                ticket.id,
                f"Ticket {ticket.id} is cancelled",
                state=ticket.state.value,
            )

        asked: List[str] = []
        deliveries: List[Delivery] = []
        for team in ticket.outstanding_teams:
            channel = self._channels.channel_for(team)
            if channel is None:
                logger.warning(
                    "No destination channel for team",
                    extra={"ticket_id": ticket.id, "team": team}
                )
                continue
            asked.append(team)
            deliveries.append(Delivery(channel, messages.feedback_request(ticket, team)))

        if channel_id:
            deliveries.append(Delivery(channel_id, messages.feedback_request_ack(ticket, asked)))

        logger.info(
            "Feedback requested",
            extra={"ticket_id": ticket.id, "requester_id": requester_id, "teams": asked}
        )
        await self._fanout.broadcast(deliveries)
        return asked

    async def on_feedback_response(
        self,
        ticket_id: int,
        team: str,
        comment: str,
        user_id: str,
        timestamp: Optional[datetime] = None,
        channel_id: Optional[str] = None,
    ) -> Ticket:
        """
        Store a team's progress update. State and phase are untouched.
        """
        record = FeedbackRecord(
            user_id=user_id,
            team=team,
            comment=comment or "",
            timestamp=timestamp or self._clock(),
            kind=FeedbackKind.FEEDBACK_RESPONSE,
        )
        ticket = await self._store.append_feedback(ticket_id, record)
        logger.info(
            "Feedback response recorded",
            extra={"ticket_id": ticket.id, "team": team, "user_id": user_id}
        )

        text = messages.feedback_response(ticket, team, comment)
        deliveries = [Delivery(ticket.origin_channel, text)]
        if self._channels.is_direct(ticket.origin_channel):
            deliveries.append(Delivery(ticket.reporter_id, text))
        if channel_id:
            deliveries.append(Delivery(channel_id, messages.feedback_response_ack(ticket)))

        await self._fanout.broadcast(deliveries)
        return ticket

    async def on_origin_comment(
        self,
        ticket_id: int,
        user_id: str,
        comment: str,
        channel_id: Optional[str] = None,
    ) -> Ticket:
        """Store a comment written from the reporting side."""
        record = FeedbackRecord(
            user_id=user_id,
            team=ORIGIN_TEAM,
            comment=comment or "",
            timestamp=self._clock(),
            kind=FeedbackKind.FEEDBACK_RESPONSE,
        )
        ticket = await self._store.append_feedback(ticket_id, record)
        logger.info(
            "Origin comment recorded",
            extra={"ticket_id": ticket.id, "user_id": user_id}
        )
        if channel_id:
            await self._fanout.broadcast([Delivery(channel_id, messages.origin_comment_ack(ticket))])
        return ticket

    # ---------- Edits ----------

    async def reconcile_edit(
        self,
        original_msg_id: str,
        new_text: str,
        mentioned_user_ids: Iterable[str] = (),
    ) -> Optional[Ticket]:
        """
        Apply an edit of the reporting message.

        The description always follows the edit. While Pending, categories
        become the new classification plus every team that already
        confirmed; an empty classification keeps the current categories.
        """
        ticket = await self._store.find_by_original_msg_id(original_msg_id)
        if ticket is None:
            logger.info("Edited message has no ticket", extra={"original_msg_id": original_msg_id})
            return None

        if new_text and new_text.strip() and new_text.strip() != ticket.description:
            ticket = await self._store.update_description(ticket.id, new_text.strip())
            logger.info("Ticket description updated", extra={"ticket_id": ticket.id})

        if not ticket.is_pending:
            return ticket

        result = self._classification.classify(new_text, mentioned_user_ids)
        if result.is_empty:
            return ticket

        categories = list(result.teams)
        categories += [team for team in ticket.confirmed_teams if team not in categories]
        if categories == ticket.categories:
            return ticket

        previous = list(ticket.categories)
        ticket = await self._store.update_categories(
            ticket.id,
            categories,
            display_name=self._classification.directory.display_name,
            completed_at=self._clock(),
        )
        logger.info(
            "Ticket recategorized",
            extra={"ticket_id": ticket.id, "previous": previous, "categories": ticket.categories}
        )

        deliveries = [Delivery(self._channels.primary_channel_id, messages.recategorized(ticket, previous))]
        for team in ticket.categories:
            channel = self._channels.channel_for(team)
            if team not in previous and channel:
                deliveries.append(Delivery(channel, messages.new_task(ticket), ticket.media))

        if ticket.state == TicketState.COMPLETED:
            logger.info("Ticket completed by recategorization", extra={"ticket_id": ticket.id})
            summary = messages.final_summary(ticket, self._tz)
            deliveries.extend(Delivery(c, summary) for c in self._summary_targets(ticket))

        await self._fanout.broadcast(deliveries)
        return ticket


# ========== Reminders ==========

class ReminderService:
    """
    Nudges teams about Pending tickets they have not confirmed.

    Reminders never change ticket state.
    """

    def __init__(
        self,
        store: ITicketStore,
        fanout: NotificationFanout,
        channels: ChannelMap,
        after_minutes: int = 60,
        display_timezone: str = messages.DEFAULT_TIMEZONE,
        clock: Callable[[], datetime] = utc_now,
        batch_size: int = 500,
    ):
        self._store = store
        self._fanout = fanout
        self._channels = channels
        self._after = timedelta(minutes=after_minutes)
        self._tz = display_timezone
        self._clock = clock
        self._batch_size = batch_size

    async def send_reminders(self) -> int:
        """Send one reminder per outstanding team. Returns deliveries made."""
        now = self._clock()
        tickets = await self._store.list(
            {"state": TicketState.PENDING.value, "created_to": now - self._after},
            limit=self._batch_size,
        )

        deliveries: List[Delivery] = []
        for ticket in tickets:
            for team in ticket.outstanding_teams:
                channel = self._channels.channel_for(team)
                if channel:
                    deliveries.append(Delivery(channel, messages.reminder(ticket, team, now, self._tz)))

        outcomes = await self._fanout.broadcast(deliveries)
        delivered = sum(1 for o in outcomes if o.delivered)
        logger.info(
            "Reminders sent",
            extra={"tickets": len(tickets), "delivered": delivered, "attempted": len(outcomes)}
        )
        return delivered


# ========== Inbound Event Routing ==========

class RouteAction(str):
    """What the router did with an inbound message."""
    REPORTED = "reported"
    CLARIFICATION = "clarification"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    FEEDBACK_REQUESTED = "feedback_requested"
    FEEDBACK_RECORDED = "feedback_recorded"
    COMMENT_RECORDED = "comment_recorded"
    UNIDENTIFIED = "unidentified"
    REJECTED = "rejected"
    IGNORED = "ignored"


@dataclass
class RouteResult:
    action: str
    ticket_id: Optional[int] = None
    detail: Optional[str] = None
    outcome: Any = None


class InboundEventRouter:
    """
    Dispatches chat events to the lifecycle coordinator.

    A message without reply context in the primary channel or a direct chat
    is a new report. A reply is resolved to a ticket and dispatched by
    intent: cancellation, then confirmation. Any other reply in a team
    channel is that team's progress update; elsewhere it is a feedback
    request or, failing that, an origin comment.
    """

    def __init__(
        self,
        coordinator: LifecycleCoordinator,
        resolver: IdentifierResolver,
        classification: ClassificationService,
        fanout: NotificationFanout,
    ):
        self._coordinator = coordinator
        self._resolver = resolver
        self._classification = classification
        self._fanout = fanout

    async def _reply(self, channel_id: str, text: str) -> None:
        await self._fanout.broadcast([Delivery(channel_id, text)])

    async def handle_message(self, message: InboundMessage) -> RouteResult:
        channels = self._coordinator.channels
        try:
            if message.quoted is None:
                if channels.is_primary(message.channel_id) or channels.is_direct(message.channel_id):
                    return await self._new_report(message)
                return RouteResult(RouteAction.IGNORED)
            return await self._reply_to_ticket(message)
        except (
            ResourceNotFoundException,
            PermissionDeniedException,
            PreconditionFailedException,
            ValidationException,
        ) as e:
            await self._reply(message.channel_id, self._user_message(e))
            logger.info(
                "Inbound message rejected",
                extra={"channel_id": message.channel_id, "error_type": type(e).__name__, "error": e.message}
            )
            return RouteResult(RouteAction.REJECTED, detail=e.message, outcome=e)
        except RepositoryException:
            await self._reply(message.channel_id, messages.GENERIC_ERROR)
            raise

    async def handle_edit(
        self,
        original_msg_id: str,
        new_text: str,
        mentioned_user_ids: Iterable[str] = (),
    ) -> Optional[Ticket]:
        return await self._coordinator.reconcile_edit(original_msg_id, new_text, mentioned_user_ids)

    async def _new_report(self, message: InboundMessage) -> RouteResult:
        outcome = await self._coordinator.submit_report(
            text=message.text,
            reporter_id=message.sender_id,
            origin_channel=message.channel_id,
            mentioned_user_ids=message.mentioned_user_ids,
            original_msg_id=message.message_id,
            media=message.media,
        )
        if outcome.needs_clarification:
            return RouteResult(RouteAction.CLARIFICATION, outcome=outcome)
        return RouteResult(RouteAction.REPORTED, ticket_id=outcome.ticket.id, outcome=outcome)

    async def _reply_to_ticket(self, message: InboundMessage) -> RouteResult:
        quoted = message.quoted
        ticket_id = await self._resolver.extract(quoted.text, quoted.unique_id, quoted.original_id)
        if ticket_id is None:
            await self._reply(message.channel_id, messages.UNIDENTIFIED_TICKET)
            return RouteResult(RouteAction.UNIDENTIFIED)

        keywords = self._classification.keywords
        channel_team = self._coordinator.channels.team_for_channel(message.channel_id)

        if keywords.cancellation.matches_fuzzy(message.text):
            ticket = await self._coordinator.on_cancellation_request(
                ticket_id, message.sender_id, channel_id=message.channel_id
            )
            return RouteResult(RouteAction.CANCELLED, ticket_id=ticket.id, outcome=ticket)

        if keywords.confirmation.matches(message.text):
            outcome = await self._coordinator.on_confirmation(
                ticket_id,
                message.sender_id,
                comment=message.text,
                channel_id=message.channel_id,
            )
            return RouteResult(RouteAction.CONFIRMED, ticket_id=ticket_id, detail=outcome.status, outcome=outcome)

        if channel_team:
            ticket = await self._coordinator.on_feedback_response(
                ticket_id,
                channel_team,
                message.text,
                message.sender_id,
                channel_id=message.channel_id,
            )
            return RouteResult(RouteAction.FEEDBACK_RECORDED, ticket_id=ticket.id, outcome=ticket)

        if keywords.feedback_request.matches(message.text):
            teams = await self._coordinator.on_feedback_request(
                ticket_id, message.sender_id, channel_id=message.channel_id
            )
            return RouteResult(RouteAction.FEEDBACK_REQUESTED, ticket_id=ticket_id, outcome=teams)

        ticket = await self._coordinator.on_origin_comment(
            ticket_id, message.sender_id, message.text, channel_id=message.channel_id
        )
        return RouteResult(RouteAction.COMMENT_RECORDED, ticket_id=ticket.id, outcome=ticket)

    @staticmethod
    def _user_message(error: ApplicationException) -> str:
        if isinstance(error, ResourceNotFoundException):
            return messages.ticket_not_found(error.resource_id)
        if isinstance(error, PermissionDeniedException):
            return messages.PERMISSION_DENIED
        if isinstance(error, PreconditionFailedException):
            return messages.not_pending(error.ticket_id, error.state or "")
        return f"❌ {error.message}"
