"""
Notification Archive — SQLAlchemy models for the persisted notification log.

The archive is append-only: rows are inserted as notifications are emitted
and never updated or deleted. Each row keeps the previous and own hash so
the chain can be re-verified straight from the database.
"""

from __future__ import annotations

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all archive models."""
    pass


class NotificationDB(Base):
    """A single archived notification."""

    __tablename__ = "notifications"

    # Chain ordering
    sequence_number = Column(
        Integer, primary_key=True, autoincrement=False,
        comment="Position in the notification log, from 1",
    )

    # Hash chain
    previous_hash = Column(
        String(64), nullable=False,
        comment="SHA-256 hash of the previous notification",
    )
    entry_hash = Column(
        String(64), nullable=False, unique=True,
        comment="SHA-256 hash of this notification",
    )

    timestamp = Column(
        DateTime(timezone=True), nullable=False,
        comment="When the operation completed",
    )

    name = Column(
        String(50), nullable=False, index=True,
        comment="Notification name (e.g. ProposalExecuted)",
    )
    source = Column(
        String(64), nullable=False,
        comment="Address of the emitting component",
    )
    payload = Column(
        JSON, nullable=False,
        comment="Operation-specific ids, principals and amounts",
    )

    __table_args__ = (
        Index("ix_notification_source_name", "source", "name"),
    )

    def __repr__(self) -> str:
        return (
            f"<Notification seq={self.sequence_number} "
            f"name={self.name} hash={self.entry_hash[:12]}...>"
        )
