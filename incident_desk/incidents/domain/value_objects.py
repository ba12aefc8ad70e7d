"""
Incident Value Objects
======================

Immutable value objects for the incident domain.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple


@dataclass(frozen=True)
class ChannelMap:
    """
    Where notifications go.

    ``team_channels`` maps a team code to its destination group; the
    primary channel receives new direct reports and summaries.
    """
    primary_channel_id: str
    team_channels: Dict[str, str] = field(default_factory=dict)
    group_suffix: str = "@g.us"

    def channel_for(self, team: str) -> Optional[str]:
        return self.team_channels.get(team)

    def team_for_channel(self, channel_id: Optional[str]) -> Optional[str]:
        if not channel_id:
            return None
        for team, channel in self.team_channels.items():
            if channel == channel_id:
                return team
        return None

    def is_primary(self, channel_id: Optional[str]) -> bool:
        return channel_id == self.primary_channel_id

    def is_direct(self, channel_id: Optional[str]) -> bool:
        """A one-to-one chat rather than a group."""
        if not channel_id:
            return False
        if self.is_primary(channel_id) or self.team_for_channel(channel_id):
            return False
        return not channel_id.endswith(self.group_suffix)


@dataclass(frozen=True)
class QuotedMessage:
    """Reply context of an inbound message."""
    text: str = ""
    unique_id: Optional[str] = None
    original_id: Optional[str] = None


@dataclass(frozen=True)
class InboundMessage:
    """A chat message as delivered by the transport."""
    channel_id: str
    sender_id: str
    text: str
    message_id: Optional[str] = None
    quoted: Optional[QuotedMessage] = None
    mentioned_user_ids: Tuple[str, ...] = ()
    media: Optional[str] = None


@dataclass(frozen=True)
class Delivery:
    """One outbound message to one channel."""
    channel_id: str
    text: str
    media: Optional[str] = None


@dataclass(frozen=True)
class DeliveryOutcome:
    """Result of attempting one delivery."""
    channel_id: str
    delivered: bool
    error: Optional[str] = None
