"""API dependencies."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException

from hydro_server.core.config import settings
from hydro_server.services.command_queue import CommandQueue
from hydro_server.services.rule_dispatcher import RuleDispatcher

# Global service instances
_command_queue: CommandQueue | None = None
_rule_dispatcher: RuleDispatcher | None = None


def init_services(command_queue: CommandQueue, rule_dispatcher: RuleDispatcher) -> None:
    """Initialize service instances."""
    global _command_queue, _rule_dispatcher
    _command_queue = command_queue
    _rule_dispatcher = rule_dispatcher


def get_command_queue() -> CommandQueue:
    """Get the command queue instance."""
    if _command_queue is None:
        raise RuntimeError("Services not initialized")
    return _command_queue


def get_rule_dispatcher() -> RuleDispatcher:
    """Get the rule dispatcher instance."""
    if _rule_dispatcher is None:
        raise RuntimeError("Services not initialized")
    return _rule_dispatcher


async def verify_api_key(
    authorization: Annotated[str | None, Header()] = None,
) -> None:
    """Verify API key if configured."""
    if not settings.api_key:
        return  # No API key required

    if not authorization:
        raise HTTPException(status_code=401, detail="Missing authorization header")

    # Expect "Bearer <token>"
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=401, detail="Invalid authorization format")

    if parts[1] != settings.api_key:
        raise HTTPException(status_code=401, detail="Invalid API key")


# Type aliases for dependency injection
CommandQueueDep = Annotated[CommandQueue, Depends(get_command_queue)]
RuleDispatcherDep = Annotated[RuleDispatcher, Depends(get_rule_dispatcher)]
ApiKeyDep = Annotated[None, Depends(verify_api_key)]
