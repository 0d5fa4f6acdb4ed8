"""Database-backed relay command queue service."""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Optional, TypeVar
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.clock import Clock, utcnow
from ..core.config import settings
from ..core.exceptions import (
    CommandConflictError,
    CommandNotFoundError,
    StoreTimeoutError,
)
from ..database.session import SessionLocal, lock_for_write
from ..models.command import (
    Command,
    CommandCreate,
    CommandKind,
    CommandPartition,
    CommandStatus,
    CompletionOutcome,
    SweepResult,
)
from ..repositories.command_repository import CommandRepository
from .command_validator import CommandValidator

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CommandQueue:
    """Manages relay commands: submit, claim, complete and timeout recovery.

    Holds no state between calls; every transition is one guarded write
    against the store, so any number of server processes can share it.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        clock: Clock = utcnow,
        validator: Optional[CommandValidator] = None,
        max_attempts: int = settings.max_attempts,
        lock_timeout_seconds: int = settings.lock_timeout_seconds,
        claim_default_limit: int = settings.claim_default_limit,
        claim_max_limit: int = settings.claim_max_limit,
        request_timeout_seconds: float = settings.request_timeout_seconds,
    ):
        """Initialize command queue.

        Args:
            session_factory: Session factory, defaults to the application database
            clock: Time source
            validator: Payload validator
            max_attempts: Claims before a timed-out command is failed
            lock_timeout_seconds: Default claim lock duration
            claim_default_limit: Commands per claim when the caller gives no limit
            claim_max_limit: Upper bound on commands per claim
            request_timeout_seconds: Deadline for claim and complete calls
        """
        self._session_factory = session_factory or SessionLocal
        self._clock = clock
        self.validator = validator or CommandValidator()
        self.max_attempts = max_attempts
        self.lock_timeout_seconds = lock_timeout_seconds
        self.claim_default_limit = claim_default_limit
        self.claim_max_limit = claim_max_limit
        self.request_timeout_seconds = request_timeout_seconds

    async def _get_session(self) -> AsyncSession:
        """Get a new database session."""
        return self._session_factory()

    async def _bounded(self, operation: str, coro: Awaitable[T]) -> T:
        """Run a store operation under the request timeout."""
        try:
            return await asyncio.wait_for(coro, timeout=self.request_timeout_seconds)
        except asyncio.TimeoutError:
            logger.error(f"{operation} exceeded {self.request_timeout_seconds}s")
            raise StoreTimeoutError(operation, self.request_timeout_seconds)

    async def submit(self, partition: CommandPartition, request: CommandCreate) -> Command:
        """
        Validate and enqueue a command.

        Args:
            partition: Command table
            request: Submitted payload

        Returns:
            The pending command

        Raises:
            CommandValidationError: With every violated field
        """
        validated = self.validator.validate(partition, request)
        now = self._clock()

        command = Command(
            command_id=str(uuid4()),
            partition=partition,
            origin_device_id=validated.origin_device_id,
            origin_address=request.origin_address,
            target_device_id=validated.target_device_id,
            target_address=validated.target_address,
            targets=validated.targets,
            actions=validated.actions,
            durations=validated.durations,
            kind=validated.kind,
            priority=validated.priority,
            expires_at=request.expires_at,
            status=CommandStatus.PENDING,
            origin_context=request.origin_context,
            rule_id=request.rule_id,
            rule_name=request.rule_name,
            created_at=now,
            updated_at=now,
        )

        async with await self._get_session() as session:
            await lock_for_write(session)
            repo = CommandRepository(session, partition)
            command_orm = await repo.create_from_pydantic(command)
            await session.commit()
            logger.info(
                f"Command queued: {command.command_id} ({partition.value}) "
                f"for {command.target_device_id}, relays={command.targets}, "
                f"actions={[a.value for a in command.actions]}, priority={command.priority}"
            )
            return repo.to_pydantic(command_orm)

    async def get_command(self, partition: CommandPartition, command_id: str) -> Command:
        """
        Get a command by ID.

        Raises:
            CommandNotFoundError: If the command does not exist
        """
        async with await self._get_session() as session:
            repo = CommandRepository(session, partition)
            command = await repo.get_command(command_id)
            if not command:
                raise CommandNotFoundError(command_id)
            return command

    async def claim(
        self,
        partition: CommandPartition,
        origin_device_id: str,
        target_device_id: Optional[str] = None,
        limit: Optional[int] = None,
        lock_timeout_seconds: Optional[int] = None,
    ) -> list[Command]:
        """
        Atomically lock pending commands for a polling controller.

        Commands another caller won between selection and update are left
        out of the result rather than retried.

        Args:
            partition: Command table
            origin_device_id: Polling controller
            target_device_id: Optional narrower device filter
            limit: Maximum commands to return
            lock_timeout_seconds: How long the claim holds before recovery

        Returns:
            Claimed commands, highest priority then oldest first
        """
        return await self._bounded(
            "claim",
            self._claim(partition, origin_device_id, target_device_id, limit, lock_timeout_seconds),
        )

    async def _claim(
        self,
        partition: CommandPartition,
        origin_device_id: str,
        target_device_id: Optional[str],
        limit: Optional[int],
        lock_timeout_seconds: Optional[int],
    ) -> list[Command]:
        if limit is None:
            limit = self.claim_default_limit
        limit = min(limit, self.claim_max_limit)
        lock_timeout = self.lock_timeout_seconds if lock_timeout_seconds is None else lock_timeout_seconds

        async with await self._get_session() as session:
            await lock_for_write(session)
            repo = CommandRepository(session, partition)
            now = self._clock()

            sweep = await self._sweep_with(repo, now)

            candidate_ids = await repo.select_claimable_ids(
                origin_device_id, limit, now, target_device_id=target_device_id
            )
            lock_expires_at = now + timedelta(seconds=lock_timeout)

            won: list[str] = []
            for command_id in candidate_ids:
                if await repo.try_claim(command_id, now, lock_expires_at):
                    won.append(command_id)
                else:
                    logger.debug(f"Command {command_id} claimed by another poller")

            commands = await repo.get_commands(won)
            await session.commit()

        if sweep.total:
            self._log_sweep(partition, sweep)
        if commands:
            logger.info(
                f"Claimed {len(commands)} {partition.value} commands for {origin_device_id}: "
                f"{[c.command_id for c in commands]}"
            )
        return commands

    async def complete(
        self,
        partition: CommandPartition,
        command_id: str,
        outcome: CompletionOutcome,
        error_message: Optional[str] = None,
        execution_details: Optional[dict[str, Any]] = None,
        attempt_count: Optional[int] = None,
    ) -> Command:
        """
        Record the outcome reported by the controller.

        Args:
            partition: Command table
            command_id: Command ID
            outcome: synced or failed
            error_message: Failure reason
            execution_details: Free-form execution report
            attempt_count: Claim attempt the report belongs to

        Returns:
            The finalized command

        Raises:
            CommandNotFoundError: If the command does not exist
            CommandConflictError: If the command is no longer processing
                (or is processing under another attempt)
        """
        return await self._bounded(
            "complete",
            self._complete(partition, command_id, outcome, error_message, execution_details, attempt_count),
        )

    async def _complete(
        self,
        partition: CommandPartition,
        command_id: str,
        outcome: CompletionOutcome,
        error_message: Optional[str],
        execution_details: Optional[dict[str, Any]],
        attempt_count: Optional[int],
    ) -> Command:
        async with await self._get_session() as session:
            await lock_for_write(session)
            repo = CommandRepository(session, partition)
            now = self._clock()

            finalized = await repo.try_complete(
                command_id,
                outcome,
                now,
                error_message=error_message,
                execution_details=execution_details,
                attempt_count=attempt_count,
            )
            command = await repo.get_command(command_id)
            await session.commit()

        if command is None:
            logger.warning(f"Completion for unknown command: {command_id}")
            raise CommandNotFoundError(command_id)

        if not finalized:
            logger.warning(
                f"Completion conflict on {command_id}: status={command.status.value}, "
                f"attempt={command.attempt_count}, reported_attempt={attempt_count}"
            )
            raise CommandConflictError(
                command_id,
                command.status.value,
                CommandStatus.PROCESSING.value,
                attempt_count=command.attempt_count,
            )

        logger.info(f"Command {command_id}: {outcome.value}")
        return command

    async def expire(self, partition: CommandPartition, command_id: str) -> Command:
        """
        Cancel a command that has not been claimed yet.

        Raises:
            CommandNotFoundError: If the command does not exist
            CommandConflictError: If the command is no longer pending
        """
        async with await self._get_session() as session:
            await lock_for_write(session)
            repo = CommandRepository(session, partition)
            expired = await repo.try_expire(command_id, self._clock())
            command = await repo.get_command(command_id)
            await session.commit()

        if command is None:
            raise CommandNotFoundError(command_id)
        if not expired:
            raise CommandConflictError(command_id, command.status.value, CommandStatus.PENDING.value)

        logger.info(f"Command {command_id} expired before claim")
        return command

    async def sweep_timeouts(self, partition: CommandPartition) -> SweepResult:
        """
        Reclaim commands whose claimant never reported back.

        Args:
            partition: Command table

        Returns:
            Requeued and failed command IDs
        """
        async with await self._get_session() as session:
            await lock_for_write(session)
            repo = CommandRepository(session, partition)
            result = await self._sweep_with(repo, self._clock())
            await session.commit()

        if result.total:
            self._log_sweep(partition, result)
        return result

    async def _sweep_with(self, repo: CommandRepository, now: datetime) -> SweepResult:
        result = SweepResult()
        for command_id, attempts in await repo.select_timed_out(now):
            if attempts < self.max_attempts:
                if await repo.try_requeue(command_id, now, self.max_attempts):
                    result.requeued.append(command_id)
            elif await repo.try_fail_exhausted(command_id, now, self.max_attempts):
                result.failed.append(command_id)
        return result

    def _log_sweep(self, partition: CommandPartition, result: SweepResult) -> None:
        if result.requeued:
            logger.warning(
                f"Requeued {len(result.requeued)} timed-out {partition.value} commands: {result.requeued}"
            )
        if result.failed:
            logger.warning(
                f"Failed {len(result.failed)} {partition.value} commands after "
                f"{self.max_attempts} attempts: {result.failed}"
            )

    async def list_history(
        self,
        partition: CommandPartition,
        origin_device_id: Optional[str] = None,
        target_device_id: Optional[str] = None,
        statuses: Optional[list[CommandStatus]] = None,
        command_id: Optional[str] = None,
        limit: int = settings.history_default_limit,
        offset: int = 0,
    ) -> list[Command]:
        """List finished or claimed commands, newest activity first."""
        async with await self._get_session() as session:
            repo = CommandRepository(session, partition)
            return await repo.list_history(
                origin_device_id=origin_device_id,
                target_device_id=target_device_id,
                statuses=statuses,
                command_id=command_id,
                limit=limit,
                offset=offset,
            )

    async def get_queue_stats(
        self,
        partition: Optional[CommandPartition] = None,
        origin_device_id: Optional[str] = None,
    ) -> dict:
        """Get command counts per status for one or all partitions."""
        partitions = [partition] if partition else list(CommandPartition)
        stats: dict[str, Any] = {}
        async with await self._get_session() as session:
            for part in partitions:
                repo = CommandRepository(session, part)
                counts = await repo.count_by_status(origin_device_id)
                stats[part.value] = {"total": sum(counts.values()), **counts}
        return stats

    async def toggle(
        self,
        partition: CommandPartition,
        origin_device_id: str,
        relay_number: int,
        state: bool,
        duration_seconds: int = 0,
        target_device_id: Optional[str] = None,
        target_address: Optional[str] = None,
        origin_address: Optional[str] = None,
        priority: Optional[int] = None,
        expires_at: Optional[datetime] = None,
    ) -> Command:
        """Queue a single-relay command."""
        return await self.submit(
            partition,
            CommandCreate(
                origin_device_id=origin_device_id,
                origin_address=origin_address,
                target_device_id=target_device_id,
                target_address=target_address,
                targets=[relay_number],
                actions=["on" if state else "off"],
                durations=[duration_seconds],
                kind=CommandKind.MANUAL.value,
                priority=priority,
                expires_at=expires_at,
                origin_context="manual",
            ),
        )
