"""
Incident Domain Entities
========================

Pure Python domain entities for the ticket lifecycle.

A ticket starts Pending and moves exactly once to Completed or Cancelled.
While Pending, each assigned team confirms its own portion; the phase
"k/n" counts confirmed teams against assigned teams.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional


class TicketState(str, Enum):
    """Ticket lifecycle states. Pending is the only non-terminal state."""
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class FeedbackKind(str, Enum):
    """Kinds of feedback history entries."""
    CONFIRMATION = "confirmation"
    FEEDBACK_RESPONSE = "feedback_response"


@dataclass(frozen=True)
class FeedbackRecord:
    """One append-only entry in a ticket's feedback history."""
    user_id: str
    team: str
    comment: str
    timestamp: datetime
    kind: FeedbackKind

    def to_dict(self) -> dict:
        return {
            "user": self.user_id,
            "team": self.team,
            "comment": self.comment,
            "timestamp": self.timestamp.isoformat(),
            "kind": self.kind.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FeedbackRecord":
        return cls(
            user_id=data["user"],
            team=data["team"],
            comment=data.get("comment") or "",
            timestamp=datetime.fromisoformat(data["timestamp"]),
            kind=FeedbackKind(data["kind"]),
        )


def compute_phase(categories: Iterable[str], confirmations: Dict[str, datetime]) -> str:
    """Phase string: confirmed assigned teams over assigned teams."""
    categories = list(categories)
    confirmed = [team for team in categories if team in confirmations]
    return f"{len(confirmed)}/{len(categories)}"


@dataclass
class Ticket:
    """
    Ticket entity representing a routed incident report.

    Contains only domain logic, no infrastructure.
    """

    # Core attributes
    id: int
    unique_message_id: str
    description: str
    reporter_id: str
    origin_channel: str
    categories: List[str]
    created_at: datetime

    state: TicketState = TicketState.PENDING
    original_msg_id: Optional[str] = None
    media: Optional[str] = None

    # Multi-team acknowledgment
    confirmations: Dict[str, datetime] = field(default_factory=dict)
    feedback_history: List[FeedbackRecord] = field(default_factory=list)
    phase: str = ""

    # Terminal transition details
    cancelled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    completed_by: Optional[str] = None
    completed_by_display_name: Optional[str] = None

    # Optimistic concurrency token
    version: int = 1

    def __post_init__(self):
        """Validate ticket on initialization."""
        if not self.categories:
            raise ValueError("a ticket needs at least one category")
        if not self.phase:
            self.phase = compute_phase(self.categories, self.confirmations)

    @property
    def is_pending(self) -> bool:
        return self.state == TicketState.PENDING

    @property
    def confirmed_teams(self) -> List[str]:
        """Assigned teams that have confirmed, in category order."""
        return [team for team in self.categories if team in self.confirmations]

    @property
    def outstanding_teams(self) -> List[str]:
        return [team for team in self.categories if team not in self.confirmations]

    @property
    def all_confirmed(self) -> bool:
        return not self.outstanding_teams

    def has_confirmed(self, team: str) -> bool:
        return team in self.confirmations

    def latest_record_for(
        self,
        team: str,
        kind: Optional[FeedbackKind] = None
    ) -> Optional[FeedbackRecord]:
        """Most recent history entry for a team, optionally of one kind."""
        for record in reversed(self.feedback_history):
            if record.team == team and (kind is None or record.kind == kind):
                return record
        return None

    def confirmer_ids(self) -> List[str]:
        """Distinct users behind the confirmations, in category order."""
        users: List[str] = []
        for team in self.confirmed_teams:
            record = self.latest_record_for(team, FeedbackKind.CONFIRMATION)
            if record and record.user_id not in users:
                users.append(record.user_id)
        return users

    def completion_display_name(self, display_name: Callable[[str], str]) -> str:
        """Comma-joined display names of the distinct confirmers."""
        return ", ".join(display_name(user_id) for user_id in self.confirmer_ids())
