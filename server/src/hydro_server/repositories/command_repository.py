"""Relay command repository for database operations.

Every status change is a single UPDATE whose WHERE clause repeats the
expected current state. ``rowcount == 0`` means another caller got there
first; nothing here reads a row, decides in memory and writes it back.
"""

import json
from datetime import datetime
from typing import Any, Optional, Type, Union

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.models.command import MasterCommandORM, SlaveCommandORM
from ..models.command import (
    TERMINAL_STATUSES,
    Command,
    CommandKind,
    CommandPartition,
    CommandStatus,
    CompletionOutcome,
    RelayAction,
)
from .base import BaseRepository

CommandORM = Union[MasterCommandORM, SlaveCommandORM]

_PARTITION_MODELS: dict[CommandPartition, Type[CommandORM]] = {
    CommandPartition.MASTER: MasterCommandORM,
    CommandPartition.SLAVE: SlaveCommandORM,
}

TIMEOUT_ERROR_MESSAGE = "timeout, retries exhausted"


def orm_for_partition(partition: CommandPartition) -> Type[CommandORM]:
    """Get the ORM class backing a partition."""
    return _PARTITION_MODELS[partition]


class CommandRepository(BaseRepository[CommandORM]):
    """Repository for relay command database operations."""

    def __init__(self, session: AsyncSession, partition: CommandPartition):
        """Initialize command repository for one partition."""
        super().__init__(orm_for_partition(partition), session)
        self.partition = partition

    async def create_from_pydantic(self, command: Command) -> CommandORM:
        """
        Create command from Pydantic model.

        Args:
            command: Pydantic Command model

        Returns:
            ORM command instance
        """
        command_orm = self.model(
            command_id=command.command_id,
            origin_device_id=command.origin_device_id,
            origin_address=command.origin_address,
            target_device_id=command.target_device_id,
            target_address=command.target_address,
            targets=json.dumps(command.targets),
            actions=json.dumps([a.value for a in command.actions]),
            durations=json.dumps(command.durations),
            kind=command.kind.value,
            priority=command.priority,
            expires_at=command.expires_at,
            status=command.status.value,
            attempt_count=command.attempt_count,
            completed=command.completed,
            error_message=command.error_message,
            execution_details=(
                json.dumps(command.execution_details) if command.execution_details is not None else None
            ),
            origin_context=command.origin_context,
            rule_id=command.rule_id,
            rule_name=command.rule_name,
            created_at=command.created_at,
            updated_at=command.updated_at,
        )
        return await self.create(command_orm)

    def to_pydantic(self, command_orm: CommandORM) -> Command:
        """
        Convert ORM model to Pydantic model.

        Args:
            command_orm: ORM command instance

        Returns:
            Pydantic Command model
        """
        return Command(
            command_id=command_orm.command_id,
            partition=self.partition,
            origin_device_id=command_orm.origin_device_id,
            origin_address=command_orm.origin_address,
            target_device_id=command_orm.target_device_id,
            target_address=command_orm.target_address,
            targets=json.loads(command_orm.targets),
            actions=[RelayAction(a) for a in json.loads(command_orm.actions)],
            durations=json.loads(command_orm.durations),
            kind=CommandKind(command_orm.kind),
            priority=command_orm.priority,
            expires_at=command_orm.expires_at,
            status=CommandStatus(command_orm.status),
            attempt_count=command_orm.attempt_count,
            completed=command_orm.completed,
            error_message=command_orm.error_message,
            execution_details=(
                json.loads(command_orm.execution_details) if command_orm.execution_details else None
            ),
            origin_context=command_orm.origin_context,
            rule_id=command_orm.rule_id,
            rule_name=command_orm.rule_name,
            created_at=command_orm.created_at,
            updated_at=command_orm.updated_at,
            claimed_at=command_orm.claimed_at,
            lock_expires_at=command_orm.lock_expires_at,
            finalized_at=command_orm.finalized_at,
            completed_at=command_orm.completed_at,
        )

    async def get_command(self, command_id: str) -> Optional[Command]:
        """
        Get a command by ID.

        Args:
            command_id: Command ID

        Returns:
            Command or None
        """
        command_orm = await self.get(command_id)
        return self.to_pydantic(command_orm) if command_orm else None

    async def get_commands(self, command_ids: list[str]) -> list[Command]:
        """
        Get several commands, keeping the order of ``command_ids``.

        Args:
            command_ids: Command IDs

        Returns:
            Commands that exist, in the requested order
        """
        if not command_ids:
            return []
        result = await self.session.execute(
            select(self.model)
            .where(self.model.command_id.in_(command_ids))
            .execution_options(populate_existing=True)
        )
        by_id = {c.command_id: c for c in result.scalars().all()}
        return [self.to_pydantic(by_id[cid]) for cid in command_ids if cid in by_id]

    async def select_claimable_ids(
        self,
        origin_device_id: str,
        limit: int,
        now: datetime,
        target_device_id: Optional[str] = None,
    ) -> list[str]:
        """
        Find pending, unexpired commands for a controller.

        Ordered by priority (highest first), then age (oldest first). Rows
        locked by another claimant are skipped where the backend supports
        row locks.

        Args:
            origin_device_id: Polling controller
            limit: Maximum rows
            now: Current time
            target_device_id: Optional narrower device filter

        Returns:
            Candidate command IDs
        """
        model = self.model
        query = (
            select(model.command_id)
            .where(model.status == CommandStatus.PENDING.value)
            .where(model.origin_device_id == origin_device_id)
            .where(or_(model.expires_at.is_(None), model.expires_at > now))
        )
        if target_device_id:
            query = query.where(model.target_device_id == target_device_id)

        query = (
            query.order_by(model.priority.desc(), model.created_at.asc(), model.command_id.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def try_claim(self, command_id: str, now: datetime, lock_expires_at: datetime) -> bool:
        """
        Move one command from pending to processing.

        Args:
            command_id: Command ID
            now: Claim time
            lock_expires_at: When timeout recovery may take the command back

        Returns:
            True if this caller won the command
        """
        model = self.model
        result = await self.session.execute(
            update(model)
            .where(model.command_id == command_id)
            .where(model.status == CommandStatus.PENDING.value)
            .where(or_(model.expires_at.is_(None), model.expires_at > now))
            .values(
                status=CommandStatus.PROCESSING.value,
                claimed_at=now,
                lock_expires_at=lock_expires_at,
                attempt_count=model.attempt_count + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def try_complete(
        self,
        command_id: str,
        outcome: CompletionOutcome,
        now: datetime,
        error_message: Optional[str] = None,
        execution_details: Optional[dict[str, Any]] = None,
        attempt_count: Optional[int] = None,
    ) -> bool:
        """
        Finalize a processing command.

        Args:
            command_id: Command ID
            outcome: synced or failed
            now: Completion time
            error_message: Failure reason reported by the device
            execution_details: Free-form execution report
            attempt_count: If given, only the claim with this attempt number may finish

        Returns:
            True if the command was finalized by this call
        """
        model = self.model
        values: dict[str, Any] = {
            "status": outcome.value,
            "finalized_at": now,
            "updated_at": now,
        }
        if outcome == CompletionOutcome.SYNCED:
            values["completed"] = True
            values["completed_at"] = now
        if error_message:
            values["error_message"] = error_message
        if execution_details is not None:
            values["execution_details"] = json.dumps(execution_details)

        stmt = (
            update(model)
            .where(model.command_id == command_id)
            .where(model.status == CommandStatus.PROCESSING.value)
        )
        if attempt_count is not None:
            stmt = stmt.where(model.attempt_count == attempt_count)

        result = await self.session.execute(
            stmt.values(**values).execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def try_expire(self, command_id: str, now: datetime) -> bool:
        """
        Cancel a pending command by moving its expiry to now.

        Args:
            command_id: Command ID
            now: Current time

        Returns:
            True if the command was still pending
        """
        model = self.model
        result = await self.session.execute(
            update(model)
            .where(model.command_id == command_id)
            .where(model.status == CommandStatus.PENDING.value)
            .values(expires_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def select_timed_out(self, now: datetime) -> list[tuple[str, int]]:
        """
        Find processing commands whose claim lock has lapsed.

        Args:
            now: Current time

        Returns:
            (command_id, attempt_count) pairs
        """
        model = self.model
        result = await self.session.execute(
            select(model.command_id, model.attempt_count)
            .where(model.status == CommandStatus.PROCESSING.value)
            .where(model.lock_expires_at < now)
            .order_by(model.lock_expires_at.asc())
        )
        return [(row.command_id, row.attempt_count) for row in result.all()]

    async def try_requeue(self, command_id: str, now: datetime, max_attempts: int) -> bool:
        """
        Return a timed-out command to pending while it has attempts left.

        Args:
            command_id: Command ID
            now: Current time
            max_attempts: Claim budget

        Returns:
            True if the command was requeued
        """
        model = self.model
        result = await self.session.execute(
            update(model)
            .where(model.command_id == command_id)
            .where(model.status == CommandStatus.PROCESSING.value)
            .where(model.lock_expires_at < now)
            .where(model.attempt_count < max_attempts)
            .values(
                status=CommandStatus.PENDING.value,
                lock_expires_at=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def try_fail_exhausted(self, command_id: str, now: datetime, max_attempts: int) -> bool:
        """
        Fail a timed-out command that used up its attempts.

        Args:
            command_id: Command ID
            now: Current time
            max_attempts: Claim budget

        Returns:
            True if the command was failed
        """
        model = self.model
        result = await self.session.execute(
            update(model)
            .where(model.command_id == command_id)
            .where(model.status == CommandStatus.PROCESSING.value)
            .where(model.lock_expires_at < now)
            .where(model.attempt_count >= max_attempts)
            .values(
                status=CommandStatus.FAILED.value,
                error_message=TIMEOUT_ERROR_MESSAGE,
                finalized_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def list_history(
        self,
        origin_device_id: Optional[str] = None,
        target_device_id: Optional[str] = None,
        statuses: Optional[list[CommandStatus]] = None,
        command_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Command]:
        """
        List commands that finished or were claimed at least once.

        Args:
            origin_device_id: Optional controller filter
            target_device_id: Optional device filter
            statuses: Optional status filter
            command_id: Optional single command
            limit: Page size
            offset: Page start

        Returns:
            Commands, most recently updated first
        """
        model = self.model
        query = select(model).where(
            or_(
                model.status.in_([s.value for s in TERMINAL_STATUSES]),
                model.attempt_count >= 1,
            )
        )
        if origin_device_id:
            query = query.where(model.origin_device_id == origin_device_id)
        if target_device_id:
            query = query.where(model.target_device_id == target_device_id)
        if statuses:
            query = query.where(model.status.in_([s.value for s in statuses]))
        if command_id:
            query = query.where(model.command_id == command_id)

        query = (
            query.order_by(
                func.coalesce(model.updated_at, model.created_at).desc(),
                model.command_id.asc(),
            )
            .limit(limit)
            .offset(offset)
        )

        result = await self.session.execute(query)
        return [self.to_pydantic(c) for c in result.scalars().all()]

    async def count_by_status(self, origin_device_id: Optional[str] = None) -> dict[str, int]:
        """
        Count commands per status.

        Args:
            origin_device_id: Optional controller filter

        Returns:
            Mapping of status value to count (every status present)
        """
        model = self.model
        query = select(model.status, func.count()).group_by(model.status)
        if origin_device_id:
            query = query.where(model.origin_device_id == origin_device_id)

        result = await self.session.execute(query)
        counts = {status.value: 0 for status in CommandStatus}
        for status, count in result.all():
            counts[status] = count
        return counts
