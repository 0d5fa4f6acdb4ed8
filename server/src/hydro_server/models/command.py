"""Relay command models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class CommandStatus(str, Enum):
    """Lifecycle status of a command."""

    PENDING = "pending"
    PROCESSING = "processing"
    SYNCED = "synced"
    FAILED = "failed"


TERMINAL_STATUSES = (CommandStatus.SYNCED, CommandStatus.FAILED)


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Stored timestamps are naive UTC; convert offset-carrying input."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class CommandPartition(str, Enum):
    """Which command table a command lives in."""

    MASTER = "master"  # Relays wired to the polling controller
    SLAVE = "slave"    # Remote relay boxes reached through the controller


class CommandKind(str, Enum):
    """What produced the command."""

    MANUAL = "manual"
    RULE = "rule"
    PERISTALTIC = "peristaltic"


class RelayAction(str, Enum):
    """Relay action."""

    ON = "on"
    OFF = "off"


class CompletionOutcome(str, Enum):
    """Outcome a device may report for a claimed command."""

    SYNCED = "synced"
    FAILED = "failed"


class CommandCreate(BaseModel):
    """Request to enqueue a command.

    Array items are left untyped so every violated field can be reported
    together instead of failing on the first bad element.
    """

    origin_device_id: str
    origin_address: Optional[str] = None
    target_device_id: Optional[str] = None  # Defaults to origin for master commands
    target_address: Optional[str] = None

    targets: list[Any]
    actions: list[Any]
    durations: Optional[list[Any]] = None  # Defaults to zeros (until turned off)

    kind: str = CommandKind.MANUAL.value
    priority: Optional[int] = None  # 0-100, higher = served first
    expires_at: Optional[datetime] = None

    origin_context: str = "manual"
    rule_id: Optional[str] = None
    rule_name: Optional[str] = None

    @field_validator("expires_at")
    @classmethod
    def normalize_expires_at(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _naive_utc(value)


class RelayToggleRequest(BaseModel):
    """Request to switch a single relay."""

    origin_device_id: str
    origin_address: Optional[str] = None
    target_device_id: Optional[str] = None
    target_address: Optional[str] = None
    relay_number: int
    state: bool
    duration_seconds: int = 0
    priority: Optional[int] = None
    expires_at: Optional[datetime] = None

    @field_validator("expires_at")
    @classmethod
    def normalize_expires_at(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _naive_utc(value)


class CommandClaimRequest(BaseModel):
    """Poll request from a field device."""

    origin_device_id: str
    target_device_id: Optional[str] = None
    limit: Optional[int] = Field(default=None, ge=1)
    lock_timeout_seconds: Optional[int] = Field(default=None, ge=1)


class CommandComplete(BaseModel):
    """Completion report from a field device."""

    status: CompletionOutcome
    error_message: Optional[str] = None
    execution_details: Optional[dict[str, Any]] = None
    attempt_count: Optional[int] = None  # Claim attempt being reported


class Command(BaseModel):
    """A queued relay command."""

    command_id: str
    partition: CommandPartition

    origin_device_id: str
    origin_address: Optional[str] = None
    target_device_id: str
    target_address: Optional[str] = None

    targets: list[int]
    actions: list[RelayAction]
    durations: list[int]

    kind: CommandKind = CommandKind.MANUAL
    priority: int = 50
    expires_at: Optional[datetime] = None

    status: CommandStatus = CommandStatus.PENDING
    attempt_count: int = 0
    completed: bool = False
    error_message: Optional[str] = None
    execution_details: Optional[dict[str, Any]] = None

    origin_context: str = "manual"
    rule_id: Optional[str] = None
    rule_name: Optional[str] = None

    # Timestamps
    created_at: datetime
    updated_at: Optional[datetime] = None
    claimed_at: Optional[datetime] = None
    lock_expires_at: Optional[datetime] = None
    finalized_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class CommandAck(BaseModel):
    """Acknowledgment view of a command that has been claimed at least once."""

    command_id: str
    partition: CommandPartition
    origin_device_id: str
    target_device_id: str
    targets: list[int]
    actions: list[RelayAction]
    success: bool
    status: CommandStatus
    attempt_count: int
    error_message: Optional[str] = None
    created_at: datetime
    claimed_at: Optional[datetime] = None
    finalized_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_command(cls, command: Command) -> "CommandAck":
        return cls(
            command_id=command.command_id,
            partition=command.partition,
            origin_device_id=command.origin_device_id,
            target_device_id=command.target_device_id,
            targets=command.targets,
            actions=command.actions,
            success=command.status == CommandStatus.SYNCED,
            status=command.status,
            attempt_count=command.attempt_count,
            error_message=command.error_message,
            created_at=command.created_at,
            claimed_at=command.claimed_at,
            finalized_at=command.finalized_at,
            updated_at=command.updated_at,
        )


class SweepResult(BaseModel):
    """Commands moved by a timeout recovery pass."""

    requeued: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.requeued) + len(self.failed)
