"""Diagnostic script to inspect stuck relay commands."""

import asyncio
import json
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from sqlalchemy import select

from hydro_server.database import SessionLocal
from hydro_server.models.command import CommandPartition, CommandStatus
from hydro_server.repositories.command_repository import orm_for_partition


async def debug_queue(origin_device_id: str | None = None):
    """Print every command that is not yet finalized."""
    async with SessionLocal() as session:
        for partition in CommandPartition:
            orm = orm_for_partition(partition)
            query = select(orm).where(
                orm.status.in_([CommandStatus.PENDING.value, CommandStatus.PROCESSING.value])
            )
            if origin_device_id:
                query = query.where(orm.origin_device_id == origin_device_id)
            result = await session.execute(query.order_by(orm.created_at))
            commands = result.scalars().all()

            print("=" * 80)
            print(f"{partition.value.upper()}: {len(commands)} open commands")
            for cmd in commands:
                print("-" * 80)
                print(f"  ID: {cmd.command_id}")
                print(f"  Status: {cmd.status} (attempt {cmd.attempt_count})")
                print(f"  Origin: {cmd.origin_device_id} -> Target: {cmd.target_device_id}")
                print(f"  Relays: {json.loads(cmd.targets)} {json.loads(cmd.actions)}")
                print(f"  Priority: {cmd.priority}  Created: {cmd.created_at}")
                if cmd.lock_expires_at:
                    print(f"  Claimed: {cmd.claimed_at}  Lock expires: {cmd.lock_expires_at}")


if __name__ == "__main__":
    asyncio.run(debug_queue(sys.argv[1] if len(sys.argv) > 1 else None))
