"""
Incident Infrastructure Repositories
====================================

SQLAlchemy implementation of the ticket store.

Each operation runs in its own short transaction and is committed before
it returns. Mutations are compare-and-swap writes:

    UPDATE incidents SET ..., version = v + 1
    WHERE id = :id AND version = v [AND state = 'pending']

Zero rows affected means another writer got there first; the operation
re-reads the row and tries again, so checks such as "team already
confirmed" or "ticket still pending" are always made against the latest
committed state.
"""

from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional
from uuid import uuid4

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from incident_desk.core import (
    AlreadyConfirmedException,
    PreconditionFailedException,
    RepositoryException,
    ResourceNotFoundException,
    ValidationException,
)
from incident_desk.incidents.application import ITicketStore
from incident_desk.incidents.domain import (
    FeedbackKind,
    FeedbackRecord,
    Ticket,
    TicketState,
    compute_phase,
)
from incident_desk.incidents.infrastructure.models import TicketModel
from incident_desk.shared.infrastructure.logging import get_logger, log_latency

logger = get_logger(__name__)


# ========== Boundary conversion ==========

def _utc(value: Optional[datetime]) -> Optional[datetime]:
    """Aware UTC datetime. Naive values (SQLite) are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _split_categories(raw: str) -> List[str]:
    return [c.strip().lower() for c in (raw or "").split(",") if c.strip()]


def _join_categories(categories: List[str]) -> str:
    return ",".join(categories)


def _dump_confirmations(confirmations: Dict[str, datetime]) -> Dict[str, str]:
    return {team: _utc(ts).isoformat() for team, ts in confirmations.items()}


def _load_confirmations(raw: Optional[dict]) -> Dict[str, datetime]:
    return {team: _utc(datetime.fromisoformat(ts)) for team, ts in (raw or {}).items()}


def _dump_history(history: List[FeedbackRecord]) -> List[dict]:
    return [record.to_dict() for record in history]


def _load_history(raw: Optional[list]) -> List[FeedbackRecord]:
    return [FeedbackRecord.from_dict(entry) for entry in (raw or [])]


def _dedupe(teams: List[str]) -> List[str]:
    ordered: List[str] = []
    for team in teams:
        team = team.strip().lower()
        if team and team not in ordered:
            ordered.append(team)
    return ordered


def _ensure_pending(ticket: Ticket, action: str) -> None:
    if not ticket.is_pending:
        raise PreconditionFailedException(
            ticket.id,
            f"Ticket {ticket.id} is {ticket.state.value}; cannot {action}",
            state=ticket.state.value,
        )


def _completion(
    ticket: Ticket,
    completed_by: str,
    display_name: Optional[Callable[[str], str]],
    completed_at: datetime,
) -> dict:
    """Column values that move a fully confirmed ticket to Completed."""
    return {
        "state": TicketState.COMPLETED.value,
        "completed_by": completed_by,
        "completed_by_display_name": ticket.completion_display_name(display_name or str),
        "completed_at": _utc(completed_at),
    }


class SQLAlchemyTicketStore(ITicketStore):
    """
    SQLAlchemy implementation of the ticket store.

    Owns a session factory rather than a session: every call opens its own
    transaction so a compare-and-swap retry always re-reads committed data.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        max_retries: int = 5,
    ):
        self._session_maker = session_maker
        self._max_retries = max(1, max_retries)

    # ---------- Conversion ----------

    @staticmethod
    def _to_entity(model: TicketModel) -> Ticket:
        return Ticket(
            id=model.id,
            unique_message_id=model.unique_message_id,
            original_msg_id=model.original_msg_id,
            description=model.description,
            reporter_id=model.reporter_id,
            origin_channel=model.origin_channel,
            categories=_split_categories(model.categories),
            created_at=_utc(model.created_at),
            state=TicketState(model.state),
            media=model.media,
            confirmations=_load_confirmations(model.confirmations),
            feedback_history=_load_history(model.feedback_history),
            phase=model.phase,
            cancelled_at=_utc(model.cancelled_at),
            completed_at=_utc(model.completed_at),
            completed_by=model.completed_by,
            completed_by_display_name=model.completed_by_display_name,
            version=model.version,
        )

    # ---------- Create / read ----------

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
        categories = _dedupe(categories)
        if not categories:
            raise ValidationException("A ticket needs at least one category")

        model = TicketModel(
            unique_message_id=str(uuid4()),
            original_msg_id=original_msg_id,
            description=description,
            reporter_id=reporter_id,
            origin_channel=origin_channel,
            media=media,
            state=TicketState.PENDING.value,
            categories=_join_categories(categories),
            confirmations={},
            feedback_history=[],
            phase=compute_phase(categories, {}),
            created_at=_utc(created_at) or datetime.now(timezone.utc),
            version=1,
        )

        try:
            async with self._session_maker() as session:
                with log_latency(logger, "ticket_create"):
                    session.add(model)
                    await session.commit()
        except SQLAlchemyError as e:
            raise RepositoryException("Failed to create ticket", {"error": str(e)}) from e

        return self._to_entity(model)

    async def _find_one(self, *criteria) -> Optional[Ticket]:
        stmt = select(TicketModel).where(*criteria).order_by(TicketModel.id.desc()).limit(1)
        try:
            async with self._session_maker() as session:
                result = await session.execute(stmt)
                model = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise RepositoryException("Failed to read ticket", {"error": str(e)}) from e
        return self._to_entity(model) if model else None

    async def get_by_id(self, ticket_id: int) -> Optional[Ticket]:
        return await self._find_one(TicketModel.id == ticket_id)

    async def find_by_unique_message_id(self, unique_message_id: str) -> Optional[Ticket]:
        return await self._find_one(TicketModel.unique_message_id == unique_message_id)

    async def find_by_original_msg_id(self, original_msg_id: str) -> Optional[Ticket]:
        return await self._find_one(TicketModel.original_msg_id == original_msg_id)

    async def list(
        self,
        filters: dict,
        limit: int = 100,
        offset: int = 0
    ) -> List[Ticket]:
        """
        List tickets with filters.

        Supported filters: ``state`` (value or list), ``category`` (team
        code), ``created_from`` / ``created_to`` (inclusive bounds).
        """
        stmt = select(TicketModel)

        conditions = []
        if "state" in filters:
            states = filters["state"]
            if isinstance(states, (list, tuple, set)):
                conditions.append(TicketModel.state.in_([str(s) for s in states]))
            else:
                conditions.append(TicketModel.state == str(states))

        if filters.get("category"):
            team = filters["category"].lower()
            conditions.append(or_(
                TicketModel.categories == team,
                TicketModel.categories.like(f"{team},%"),
                TicketModel.categories.like(f"%,{team}"),
                TicketModel.categories.like(f"%,{team},%"),
            ))

        if filters.get("created_from"):
            conditions.append(TicketModel.created_at >= _utc(filters["created_from"]))

        if filters.get("created_to"):
            conditions.append(TicketModel.created_at <= _utc(filters["created_to"]))

        if conditions:
            stmt = stmt.where(and_(*conditions))

        # Order by created_at descending
        stmt = stmt.order_by(TicketModel.created_at.desc(), TicketModel.id.desc())
        stmt = stmt.limit(limit).offset(offset)

        try:
            async with self._session_maker() as session:
                result = await session.execute(stmt)
                models = result.scalars().all()
        except SQLAlchemyError as e:
            raise RepositoryException("Failed to list tickets", {"error": str(e)}) from e

        return [self._to_entity(m) for m in models]

    # ---------- Compare-and-swap mutations ----------

    async def _mutate(
        self,
        ticket_id: int,
        operation: str,
        change: Callable[[Ticket], dict],
        pending_only: bool = False,
    ) -> Ticket:
        """
        Read, compute new column values, and write them only if the row is
        still at the version that was read.

        ``change`` may raise to reject the mutation; it is re-run against
        fresh data after every lost race.
        """
        for attempt in range(1, self._max_retries + 1):
            try:
                async with self._session_maker() as session:
                    with log_latency(logger, operation, ticket_id=ticket_id, attempt=attempt):
                        model = await session.get(TicketModel, ticket_id)
                        if model is None:
                            raise ResourceNotFoundException("Ticket", str(ticket_id))
                        current = self._to_entity(model)

                        values = change(current)

                        conditions = [
                            TicketModel.id == ticket_id,
                            TicketModel.version == current.version,
                        ]
                        if pending_only:
                            conditions.append(TicketModel.state == TicketState.PENDING.value)

                        stmt = (
                            update(TicketModel)
                            .where(*conditions)
                            .values(**values, version=current.version + 1)
                            .execution_options(synchronize_session=False)
                        )
                        result = await session.execute(stmt)

                        if result.rowcount == 1:
                            await session.commit()
                            # The row as this write left it, not as a later writer did
                            session.expunge(model)
                            for key, value in values.items():
                                setattr(model, key, value)
                            model.version = current.version + 1
                            return self._to_entity(model)

                        await session.rollback()
            except SQLAlchemyError as e:
                raise RepositoryException(
                    f"Failed to {operation} ticket {ticket_id}", {"error": str(e)}
                ) from e

            logger.debug(
                "Concurrent update detected, retrying",
                extra={"ticket_id": ticket_id, "operation": operation, "attempt": attempt}
            )

        raise RepositoryException(
            f"Ticket {ticket_id} changed concurrently {self._max_retries} times during {operation}",
            {"ticket_id": ticket_id, "operation": operation}
        )

    async def record_confirmation(
        self,
        ticket_id: int,
        record: FeedbackRecord,
        display_name: Optional[Callable[[str], str]] = None,
    ) -> Ticket:
        team = record.team.lower()

        def change(ticket: Ticket) -> dict:
            if ticket.has_confirmed(team):
                raise AlreadyConfirmedException(ticket.id, team)
            _ensure_pending(ticket, "confirm")
            if team not in ticket.categories:
                raise ValidationException(
                    f"Team '{team}' is not assigned to ticket {ticket.id}",
                    {"ticket_id": ticket.id, "team": team}
                )
            confirmed = replace(
                ticket,
                confirmations={**ticket.confirmations, team: record.timestamp},
                feedback_history=ticket.feedback_history + [record],
            )
            values = {
                "confirmations": _dump_confirmations(confirmed.confirmations),
                "feedback_history": _dump_history(confirmed.feedback_history),
                "phase": compute_phase(confirmed.categories, confirmed.confirmations),
            }
            if confirmed.all_confirmed:
                values.update(_completion(confirmed, record.user_id, display_name, record.timestamp))
            return values

        return await self._mutate(ticket_id, "record_confirmation", change, pending_only=True)

    async def append_feedback(self, ticket_id: int, record: FeedbackRecord) -> Ticket:
        def change(ticket: Ticket) -> dict:
            return {"feedback_history": _dump_history(ticket.feedback_history + [record])}

        return await self._mutate(ticket_id, "append_feedback", change)

    async def update_phase(self, ticket_id: int, phase: str) -> Ticket:
        def change(ticket: Ticket) -> dict:
            return {"phase": phase}

        return await self._mutate(ticket_id, "update_phase", change)

    async def complete(
        self,
        ticket_id: int,
        completed_by: str,
        completed_by_display_name: str,
        completed_at: datetime,
    ) -> Ticket:
        def change(ticket: Ticket) -> dict:
            _ensure_pending(ticket, "complete")
            return {
                "state": TicketState.COMPLETED.value,
                "completed_by": completed_by,
                "completed_by_display_name": completed_by_display_name,
                "completed_at": _utc(completed_at),
            }

        return await self._mutate(ticket_id, "complete", change, pending_only=True)

    async def cancel(self, ticket_id: int, cancelled_at: datetime) -> Ticket:
        def change(ticket: Ticket) -> dict:
            _ensure_pending(ticket, "cancel")
            return {
                "state": TicketState.CANCELLED.value,
                "cancelled_at": _utc(cancelled_at),
            }

        return await self._mutate(ticket_id, "cancel", change, pending_only=True)

    async def update_categories(
        self,
        ticket_id: int,
        categories: List[str],
        display_name: Optional[Callable[[str], str]] = None,
        completed_at: Optional[datetime] = None,
    ) -> Ticket:
        requested = _dedupe(categories)
        if not requested:
            raise ValidationException("A ticket needs at least one category")

        def change(ticket: Ticket) -> dict:
            merged = requested + [t for t in ticket.confirmed_teams if t not in requested]
            values = {
                "categories": _join_categories(merged),
                "phase": compute_phase(merged, ticket.confirmations),
            }
            recategorized = replace(ticket, categories=merged)
            if ticket.is_pending and recategorized.all_confirmed:
                last = recategorized.latest_record_for(
                    recategorized.confirmed_teams[-1], FeedbackKind.CONFIRMATION
                )
                completed_by = last.user_id if last else ticket.reporter_id
                values.update(_completion(
                    recategorized,
                    completed_by,
                    display_name,
                    completed_at or datetime.now(timezone.utc),
                ))
            return values

        return await self._mutate(ticket_id, "update_categories", change)

    async def update_description(self, ticket_id: int, description: str) -> Ticket:
        def change(ticket: Ticket) -> dict:
            return {"description": description}

        return await self._mutate(ticket_id, "update_description", change)
