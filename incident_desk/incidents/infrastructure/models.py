"""
Incident Infrastructure Models
==============================

SQLAlchemy ORM models for the incidents module.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from incident_desk.config import TicketStateValue
from incident_desk.infrastructure.database import Base


class TicketModel(Base):
    """
    Database model for Ticket entity.

    Maps to the 'incidents' table. ``version`` is bumped by every write and
    used as the compare-and-swap guard.
    """
    __tablename__ = "incidents"

    # Primary key (store-assigned ticket number)
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Correlation keys from the chat transport
    unique_message_id: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    original_msg_id: Mapped[Optional[str]] = mapped_column(String(255), index=True, nullable=True)

    # Report content
    description: Mapped[str] = mapped_column(Text, nullable=False)
    reporter_id: Mapped[str] = mapped_column(String(255), nullable=False)
    origin_channel: Mapped[str] = mapped_column(String(255), nullable=False)
    media: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Lifecycle
    state: Mapped[str] = mapped_column(String(20), nullable=False, index=True, default=TicketStateValue.PENDING)
    categories: Mapped[str] = mapped_column(String(255), nullable=False)  # comma-joined team codes
    confirmations: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    feedback_history: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    phase: Mapped[str] = mapped_column(String(20), nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True,
        default=lambda: datetime.now(timezone.utc)
    )
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Completion
    completed_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    completed_by_display_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Optimistic concurrency
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
