"""Relay instruction batching.

Merges relay actions addressed to the same device into one command with
parallel arrays, so a controller applies them in a single operation instead
of one round trip per relay.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterator, Optional

from ..models.command import CommandPartition, RelayAction
from ..models.rule import Instruction
from .command_validator import CommandValidator

logger = logging.getLogger(__name__)

RELAY_ACTION = "relay_action"


@dataclass
class RelayInstruction:
    """A single relay change after flattening a rule script."""

    partition: CommandPartition
    target_device_id: str
    relay_number: int
    action: RelayAction
    duration_seconds: int = 0
    target_address: Optional[str] = None


@dataclass
class RelayGroup:
    """All relay changes for one device, one slot per relay."""

    partition: CommandPartition
    target_device_id: str
    target_address: Optional[str] = None
    targets: list[int] = field(default_factory=list)
    actions: list[RelayAction] = field(default_factory=list)
    durations: list[int] = field(default_factory=list)

    def put(self, instruction: RelayInstruction) -> None:
        """Add a relay change; a repeated relay keeps its slot and takes the new values."""
        if instruction.target_address and not self.target_address:
            self.target_address = instruction.target_address

        if instruction.relay_number in self.targets:
            slot = self.targets.index(instruction.relay_number)
            self.actions[slot] = instruction.action
            self.durations[slot] = instruction.duration_seconds
        else:
            self.targets.append(instruction.relay_number)
            self.actions.append(instruction.action)
            self.durations.append(instruction.duration_seconds)


@dataclass
class BatchPlan:
    """Groups to enqueue plus the leaves that were rejected."""

    groups: list[RelayGroup] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)


def iter_relay_actions(
    instructions: list[Instruction], path: str = "instructions"
) -> Iterator[tuple[str, Instruction]]:
    """
    Walk a rule script depth-first and yield its relay_action leaves.

    Nested ``body``, ``then`` and ``else`` blocks are visited in document
    order. Control-flow nodes themselves are not yielded.

    Args:
        instructions: Top-level instruction list
        path: Location prefix used in error messages

    Yields:
        (location, instruction) pairs
    """
    for i, instruction in enumerate(instructions):
        location = f"{path}[{i}]"
        if instruction.type == RELAY_ACTION:
            yield location, instruction
        yield from iter_relay_actions(instruction.body, f"{location}.body")
        yield from iter_relay_actions(instruction.then, f"{location}.then")
        yield from iter_relay_actions(instruction.else_, f"{location}.else")


def group_relay_instructions(relay_instructions: list[RelayInstruction]) -> list[RelayGroup]:
    """
    Group relay changes by target device.

    Groups come out in the order their device was first seen. Within a
    group the last change to a relay wins.

    Args:
        relay_instructions: Flattened, already validated relay changes

    Returns:
        One group per (partition, device)
    """
    grouped: dict[tuple[CommandPartition, str], RelayGroup] = {}

    for instruction in relay_instructions:
        key = (instruction.partition, instruction.target_device_id)
        group = grouped.get(key)
        if group is None:
            group = RelayGroup(
                partition=instruction.partition,
                target_device_id=instruction.target_device_id,
            )
            grouped[key] = group
        group.put(instruction)

    return [group for group in grouped.values() if group.targets]


class CommandBatcher:
    """Turns rule scripts into per-device relay groups."""

    def __init__(self, validator: Optional[CommandValidator] = None):
        self.validator = validator or CommandValidator()

    def _partition_of(self, instruction: Instruction) -> Optional[CommandPartition]:
        if instruction.target is None:
            if instruction.target_device_id or instruction.target_address:
                return CommandPartition.SLAVE
            return CommandPartition.MASTER
        try:
            return CommandPartition(instruction.target)
        except ValueError:
            return None

    def to_relay_instruction(
        self,
        instruction: Instruction,
        location: str,
        origin_device_id: str,
    ) -> tuple[Optional[RelayInstruction], list[dict]]:
        """
        Validate one relay_action leaf.

        Args:
            instruction: The leaf
            location: Where the leaf sits in the script
            origin_device_id: Controller the rule runs for

        Returns:
            (relay instruction or None, errors)
        """
        partition = self._partition_of(instruction)
        if partition is None:
            return None, [{
                "field": f"{location}.target",
                "message": f"target {instruction.target!r} must be 'master' or 'slave'",
            }]

        target_device_id, errors = self.validator.resolve_target(
            partition, origin_device_id, instruction.target_device_id, instruction.target_address
        )
        errors = [{**e, "field": f"{location}.{e['field']}"} for e in errors]

        duration = instruction.duration_seconds if instruction.duration_seconds is not None else 0
        errors.extend(self.validator.check_relay_number(partition, instruction.relay_number, f"{location}.relay_number"))
        errors.extend(self.validator.check_action(instruction.action, f"{location}.action"))
        errors.extend(self.validator.check_duration(duration, f"{location}.duration_seconds"))

        if errors:
            return None, errors

        return RelayInstruction(
            partition=partition,
            target_device_id=target_device_id,
            target_address=instruction.target_address,
            relay_number=instruction.relay_number,
            action=RelayAction(instruction.action.lower()),
            duration_seconds=duration,
        ), []

    def plan(self, instructions: list[Instruction], origin_device_id: str) -> BatchPlan:
        """
        Flatten, validate and group a rule script.

        A malformed leaf is reported and skipped; the remaining leaves are
        still grouped.

        Args:
            instructions: Rule script
            origin_device_id: Controller the rule runs for

        Returns:
            BatchPlan with groups and per-leaf errors
        """
        plan = BatchPlan()
        valid: list[RelayInstruction] = []

        for location, instruction in iter_relay_actions(instructions):
            relay_instruction, errors = self.to_relay_instruction(instruction, location, origin_device_id)
            if errors:
                logger.warning(f"Rejected relay action at {location}: {errors[0]['message']}")
                plan.errors.extend(errors)
                continue
            valid.append(relay_instruction)

        plan.groups = group_relay_instructions(valid)
        logger.debug(
            f"Batched {len(valid)} relay actions into {len(plan.groups)} commands "
            f"({len(plan.errors)} rejected)"
        )
        return plan
