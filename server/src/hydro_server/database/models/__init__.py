"""Database ORM models."""

from .command import MasterCommandORM, RelayCommandMixin, SlaveCommandORM

__all__ = [
    "MasterCommandORM",
    "RelayCommandMixin",
    "SlaveCommandORM",
]
