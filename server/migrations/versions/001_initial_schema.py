"""Initial database schema.

Revision ID: 001
Revises:
Create Date: 2026-10-17

This migration creates the master and slave relay command tables.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

COMMAND_TABLES = ("relay_commands_master", "relay_commands_slave")


def _command_columns() -> list[sa.Column]:
    return [
        sa.Column("command_id", sa.String(36), primary_key=True),
        sa.Column("origin_device_id", sa.String(100), nullable=False, index=True),
        sa.Column("origin_address", sa.String(32), nullable=True),
        sa.Column("target_device_id", sa.String(100), nullable=False, index=True),
        sa.Column("target_address", sa.String(32), nullable=True),
        sa.Column("targets", sa.Text, nullable=False),
        sa.Column("actions", sa.Text, nullable=False),
        sa.Column("durations", sa.Text, nullable=False),
        sa.Column("kind", sa.String(20), nullable=False, default="manual"),
        sa.Column("priority", sa.Integer, default=50, index=True),
        sa.Column("expires_at", sa.DateTime, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, default="pending", index=True),
        sa.Column("attempt_count", sa.Integer, default=0),
        sa.Column("completed", sa.Boolean, default=False),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("execution_details", sa.Text, nullable=True),
        sa.Column("origin_context", sa.String(50), default="manual"),
        sa.Column("rule_id", sa.String(100), nullable=True, index=True),
        sa.Column("rule_name", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now(), index=True),
        sa.Column("updated_at", sa.DateTime, nullable=True),
        sa.Column("claimed_at", sa.DateTime, nullable=True),
        sa.Column("lock_expires_at", sa.DateTime, nullable=True, index=True),
        sa.Column("finalized_at", sa.DateTime, nullable=True),
        sa.Column("completed_at", sa.DateTime, nullable=True),
    ]


def upgrade() -> None:
    for table in COMMAND_TABLES:
        op.create_table(table, *_command_columns())


def downgrade() -> None:
    for table in reversed(COMMAND_TABLES):
        op.drop_table(table)
