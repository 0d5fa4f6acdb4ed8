"""Relay command ORM models."""

from datetime import datetime
from typing import Optional

from sqlalchemy import Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from ..base import Base


class RelayCommandMixin:
    """Columns shared by every relay command table.

    Stores relay commands queued for field devices. Uses polling model -
    the controller claims pending commands on each poll cycle and reports
    the outcome afterwards.
    """

    # Primary key
    command_id: Mapped[str] = mapped_column(String(36), primary_key=True)

    # Polling controller
    origin_device_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    origin_address: Mapped[Optional[str]] = mapped_column(String(32))

    # Physical relay owner
    target_device_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    target_address: Mapped[Optional[str]] = mapped_column(String(32))

    # Parallel arrays (stored as JSON strings)
    targets: Mapped[str] = mapped_column(Text, nullable=False)
    actions: Mapped[str] = mapped_column(Text, nullable=False)
    durations: Mapped[str] = mapped_column(Text, nullable=False)

    kind: Mapped[str] = mapped_column(String(20), nullable=False, default="manual")
    priority: Mapped[int] = mapped_column(Integer, default=50, index=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column()

    # Status tracking
    # pending: Waiting for a controller to claim
    # processing: Claimed, awaiting completion report
    # synced: Executed on the relays (terminal)
    # failed: Error reported or retries exhausted (terminal)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", index=True)
    attempt_count: Mapped[int] = mapped_column(Integer, default=0)
    completed: Mapped[bool] = mapped_column(default=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    execution_details: Mapped[Optional[str]] = mapped_column(Text)

    # Provenance
    origin_context: Mapped[str] = mapped_column(String(50), default="manual")
    rule_id: Mapped[Optional[str]] = mapped_column(String(100), index=True)
    rule_name: Mapped[Optional[str]] = mapped_column(String(255))

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(default=func.now(), index=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column()
    claimed_at: Mapped[Optional[datetime]] = mapped_column()
    lock_expires_at: Mapped[Optional[datetime]] = mapped_column(index=True)
    finalized_at: Mapped[Optional[datetime]] = mapped_column()
    completed_at: Mapped[Optional[datetime]] = mapped_column()


class MasterCommandORM(RelayCommandMixin, Base):
    """ORM model for relay_commands_master table (controller-local relays)."""

    __tablename__ = "relay_commands_master"


class SlaveCommandORM(RelayCommandMixin, Base):
    """ORM model for relay_commands_slave table (remote relay boxes)."""

    __tablename__ = "relay_commands_slave"
