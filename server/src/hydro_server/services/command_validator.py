"""Validation of relay command payloads."""

from dataclasses import dataclass
from typing import Any, Optional

from ..core.config import settings
from ..core.exceptions import CommandValidationError
from ..models.command import CommandCreate, CommandKind, CommandPartition, RelayAction

SLAVE_DEVICE_PREFIX = "ESP32_SLAVE_"


def derive_slave_device_id(address: str) -> str:
    """Build the device id a relay box registers under from its MAC address."""
    return SLAVE_DEVICE_PREFIX + address.replace(":", "_")


def _error(field: str, message: str) -> dict:
    return {"field": field, "message": message}


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass
class ValidatedCommand:
    """Normalized fields of a command that passed validation."""

    partition: CommandPartition
    origin_device_id: str
    target_device_id: str
    target_address: Optional[str]
    targets: list[int]
    actions: list[RelayAction]
    durations: list[int]
    kind: CommandKind
    priority: int


class CommandValidator:
    """Checks relay command invariants and reports every violation."""

    def __init__(
        self,
        master_relay_count: int = settings.master_relay_count,
        slave_relay_count: int = settings.slave_relay_count,
        max_duration_seconds: int = settings.max_duration_seconds,
        default_priority: int = settings.default_priority,
    ):
        self.relay_counts = {
            CommandPartition.MASTER: master_relay_count,
            CommandPartition.SLAVE: slave_relay_count,
        }
        self.max_duration_seconds = max_duration_seconds
        self.default_priority = default_priority

    def relay_count(self, partition: CommandPartition) -> int:
        return self.relay_counts[partition]

    def check_relay_number(self, partition: CommandPartition, value: Any, field: str) -> list[dict]:
        """Validate one relay index for the partition."""
        highest = self.relay_count(partition) - 1
        if not _is_int(value) or value < 0 or value > highest:
            return [_error(field, f"relay number {value!r} must be an integer 0-{highest} for {partition.value} relays")]
        return []

    def check_action(self, value: Any, field: str) -> list[dict]:
        """Validate one relay action."""
        if not isinstance(value, str) or value.lower() not in (RelayAction.ON.value, RelayAction.OFF.value):
            return [_error(field, f"action {value!r} must be 'on' or 'off'")]
        return []

    def check_duration(self, value: Any, field: str) -> list[dict]:
        """Validate one duration in seconds."""
        if not _is_int(value) or value < 0 or value > self.max_duration_seconds:
            return [_error(field, f"duration {value!r} must be an integer 0-{self.max_duration_seconds}")]
        return []

    def resolve_target(
        self,
        partition: CommandPartition,
        origin_device_id: str,
        target_device_id: Optional[str],
        target_address: Optional[str],
    ) -> tuple[Optional[str], list[dict]]:
        """Work out which device owns the relays.

        Master relays always belong to the polling controller. Slave boxes
        are addressed by device id, or by MAC address when no id is known.
        """
        if partition == CommandPartition.MASTER:
            if target_device_id and target_device_id != origin_device_id:
                return None, [_error("target_device_id", "master commands must target the origin controller")]
            return origin_device_id, []

        if target_device_id:
            return target_device_id, []
        if target_address:
            return derive_slave_device_id(target_address), []
        return None, [_error("target_device_id", "slave commands require target_device_id or target_address")]

    def validate(self, partition: CommandPartition, request: CommandCreate) -> ValidatedCommand:
        """
        Validate a submit request.

        Args:
            partition: Command table the request is for
            request: Submitted payload

        Returns:
            Normalized command fields

        Raises:
            CommandValidationError: With every violated field
        """
        errors: list[dict] = []

        if not request.origin_device_id:
            errors.append(_error("origin_device_id", "origin_device_id is required"))

        target_device_id, target_errors = self.resolve_target(
            partition, request.origin_device_id, request.target_device_id, request.target_address
        )
        errors.extend(target_errors)

        targets = request.targets
        if not targets:
            errors.append(_error("targets", "targets must be a non-empty list"))
        for i, value in enumerate(targets):
            errors.extend(self.check_relay_number(partition, value, f"targets[{i}]"))

        actions = request.actions
        if len(actions) != len(targets):
            errors.append(_error("actions", f"actions has {len(actions)} items, expected {len(targets)}"))
        for i, value in enumerate(actions):
            errors.extend(self.check_action(value, f"actions[{i}]"))

        durations = request.durations if request.durations is not None else [0] * len(targets)
        if len(durations) != len(targets):
            errors.append(_error("durations", f"durations has {len(durations)} items, expected {len(targets)}"))
        for i, value in enumerate(durations):
            errors.extend(self.check_duration(value, f"durations[{i}]"))

        kinds = [k.value for k in CommandKind]
        if request.kind not in kinds:
            errors.append(_error("kind", f"kind {request.kind!r} must be one of {', '.join(kinds)}"))

        priority = request.priority if request.priority is not None else self.default_priority
        if priority < 0 or priority > 100:
            errors.append(_error("priority", f"priority {priority} must be 0-100"))

        if errors:
            raise CommandValidationError(errors)

        return ValidatedCommand(
            partition=partition,
            origin_device_id=request.origin_device_id,
            target_device_id=target_device_id,
            target_address=request.target_address,
            targets=list(targets),
            actions=[RelayAction(a.lower()) for a in actions],
            durations=list(durations),
            kind=CommandKind(request.kind),
            priority=priority,
        )
