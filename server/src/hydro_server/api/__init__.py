"""API routers."""

from .acks import router as acks_router
from .commands import router as commands_router
from .rules import router as rules_router

__all__ = ["acks_router", "commands_router", "rules_router"]
