"""Repository layer for database operations."""

from .command_repository import CommandRepository, orm_for_partition

__all__ = [
    "CommandRepository",
    "orm_for_partition",
]
