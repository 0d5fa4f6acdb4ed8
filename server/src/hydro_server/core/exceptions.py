"""Command queue errors."""

from typing import Optional


class CommandQueueError(Exception):
    """Base exception for command queue errors."""
    pass


class CommandValidationError(CommandQueueError):
    """Raised when a submitted command violates one or more invariants.

    Carries every violated field, not just the first one found.
    """

    def __init__(self, errors: list[dict]):
        self.errors = errors
        fields = ", ".join(sorted({e["field"] for e in errors}))
        super().__init__(f"Invalid command: {fields}")


class CommandNotFoundError(CommandQueueError):
    """Raised when a command id does not exist in the partition."""

    def __init__(self, command_id: str):
        self.command_id = command_id
        super().__init__(f"Command not found: {command_id}")


class CommandConflictError(CommandQueueError):
    """Raised when a guarded transition finds the row in another state.

    The caller reported against a command that was already finalized,
    reclaimed by timeout recovery, or claimed again under a newer attempt.
    """

    def __init__(
        self,
        command_id: str,
        current_status: str,
        expected_status: str,
        attempt_count: Optional[int] = None,
    ):
        self.command_id = command_id
        self.current_status = current_status
        self.expected_status = expected_status
        self.attempt_count = attempt_count
        super().__init__(
            f"Command {command_id} is '{current_status}', expected '{expected_status}'"
        )


class StoreTimeoutError(CommandQueueError):
    """Raised when a store operation exceeds the request timeout."""

    def __init__(self, operation: str, timeout: float):
        self.operation = operation
        self.timeout = timeout
        super().__init__(f"{operation} timed out after {timeout}s")
