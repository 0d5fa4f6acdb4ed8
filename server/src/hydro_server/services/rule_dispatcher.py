"""Queues the relay actions of a rule script as batched commands."""

import logging
from typing import Optional

from ..core.exceptions import CommandValidationError
from ..models.command import CommandCreate, CommandKind
from ..models.rule import RuleExecutionRequest, RuleExecutionResult
from .batching import CommandBatcher
from .command_queue import CommandQueue

logger = logging.getLogger(__name__)


class RuleDispatcher:
    """Executes rule scripts into one command per target device."""

    def __init__(self, command_queue: CommandQueue, batcher: Optional[CommandBatcher] = None):
        self._command_queue = command_queue
        self._batcher = batcher or CommandBatcher(command_queue.validator)

    async def execute(self, request: RuleExecutionRequest) -> RuleExecutionResult:
        """
        Flatten, group and enqueue a rule script.

        Bad leaves and failed groups are reported without stopping the
        other groups from being queued.

        Args:
            request: Rule script and its provenance

        Returns:
            Created command IDs and per-leaf / per-group errors
        """
        plan = self._batcher.plan(request.instructions, request.origin_device_id)
        result = RuleExecutionResult(success=True, errors=list(plan.errors))

        for group in plan.groups:
            try:
                command = await self._command_queue.submit(
                    group.partition,
                    CommandCreate(
                        origin_device_id=request.origin_device_id,
                        origin_address=request.origin_address,
                        target_device_id=group.target_device_id,
                        target_address=group.target_address,
                        targets=group.targets,
                        actions=[a.value for a in group.actions],
                        durations=group.durations,
                        kind=CommandKind.RULE.value,
                        priority=request.priority,
                        origin_context="rule",
                        rule_id=request.rule_id,
                        rule_name=request.rule_name,
                    ),
                )
            except CommandValidationError as e:
                result.errors.extend(
                    {**err, "target_device_id": group.target_device_id} for err in e.errors
                )
                continue

            result.command_ids.append(command.command_id)

        result.commands_created = len(result.command_ids)
        result.success = not result.errors
        logger.info(
            f"Rule {request.rule_id} for {request.origin_device_id}: "
            f"{result.commands_created} commands, {len(result.errors)} errors"
        )
        return result
