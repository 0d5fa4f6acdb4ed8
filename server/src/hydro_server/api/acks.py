"""Command acknowledgment (history) API endpoints."""

from fastapi import APIRouter, HTTPException, Query

from hydro_server.api.deps import CommandQueueDep
from hydro_server.core.config import settings
from hydro_server.models.command import CommandAck, CommandPartition, CommandStatus

router = APIRouter(prefix="/api/command-acks", tags=["command-acks"])

ACK_STATUSES = (CommandStatus.SYNCED, CommandStatus.FAILED, CommandStatus.PROCESSING)


@router.get("")
async def list_acks(
    command_queue: CommandQueueDep,
    partition: CommandPartition = CommandPartition.SLAVE,
    origin_device_id: str | None = None,
    target_device_id: str | None = None,
    status: CommandStatus | None = None,
    command_id: str | None = None,
    limit: int = Query(default=settings.history_default_limit, ge=1, le=settings.history_max_limit),
    offset: int = Query(default=0, ge=0),
) -> dict:
    """List acknowledgments, newest activity first.

    An acknowledgment is the command row itself once it has been claimed or
    finalized; there is no separate ACK table.
    """
    if status is not None and status not in ACK_STATUSES:
        raise HTTPException(
            status_code=400,
            detail=f"status must be one of {', '.join(s.value for s in ACK_STATUSES)}",
        )

    commands = await command_queue.list_history(
        partition,
        origin_device_id=origin_device_id,
        target_device_id=target_device_id,
        statuses=[status] if status else None,
        command_id=command_id,
        limit=limit,
        offset=offset,
    )
    acks = [CommandAck.from_command(c) for c in commands]
    return {"acks": acks, "count": len(acks), "limit": limit, "offset": offset}
