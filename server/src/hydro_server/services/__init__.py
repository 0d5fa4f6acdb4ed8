"""Server services."""

from .batching import CommandBatcher
from .command_queue import CommandQueue
from .command_validator import CommandValidator
from .rule_dispatcher import RuleDispatcher
from .timeout_recovery import TimeoutRecovery

__all__ = [
    "CommandBatcher",
    "CommandQueue",
    "CommandValidator",
    "RuleDispatcher",
    "TimeoutRecovery",
]
