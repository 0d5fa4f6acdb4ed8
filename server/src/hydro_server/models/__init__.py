"""Pydantic models for API requests/responses and domain objects."""

from .command import (
    TERMINAL_STATUSES,
    Command,
    CommandAck,
    CommandClaimRequest,
    CommandComplete,
    CommandCreate,
    CommandKind,
    CommandPartition,
    CommandStatus,
    CompletionOutcome,
    RelayAction,
    RelayToggleRequest,
    SweepResult,
)
from .rule import Instruction, RuleExecutionRequest, RuleExecutionResult

__all__ = [
    "TERMINAL_STATUSES",
    "Command",
    "CommandAck",
    "CommandClaimRequest",
    "CommandComplete",
    "CommandCreate",
    "CommandKind",
    "CommandPartition",
    "CommandStatus",
    "CompletionOutcome",
    "Instruction",
    "RelayAction",
    "RelayToggleRequest",
    "RuleExecutionRequest",
    "RuleExecutionResult",
    "SweepResult",
]
