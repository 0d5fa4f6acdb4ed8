"""Relay command API endpoints.

Producers submit commands here; field controllers claim them on each poll
cycle and report the outcome after switching their relays.
"""

import logging

from fastapi import APIRouter, HTTPException

from hydro_server.api.deps import ApiKeyDep, CommandQueueDep
from hydro_server.core.exceptions import (
    CommandConflictError,
    CommandNotFoundError,
    CommandValidationError,
    StoreTimeoutError,
)
from hydro_server.models.command import (
    Command,
    CommandClaimRequest,
    CommandComplete,
    CommandCreate,
    CommandPartition,
    RelayToggleRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/relay-commands", tags=["relay-commands"])


def _validation_failed(e: CommandValidationError) -> HTTPException:
    return HTTPException(status_code=422, detail={"message": str(e), "errors": e.errors})


def _conflict(e: CommandConflictError) -> HTTPException:
    return HTTPException(
        status_code=409,
        detail={
            "message": str(e),
            "command_id": e.command_id,
            "current_status": e.current_status,
            "attempt_count": e.attempt_count,
        },
    )


def _timed_out(e: StoreTimeoutError) -> HTTPException:
    return HTTPException(status_code=504, detail=str(e))


@router.post("/{partition}", response_model=Command)
async def submit_command(
    partition: CommandPartition,
    request: CommandCreate,
    command_queue: CommandQueueDep,
    _: ApiKeyDep,
) -> Command:
    """Queue a multi-relay command.

    Every invalid field is reported in one 422 response.
    """
    try:
        return await command_queue.submit(partition, request)
    except CommandValidationError as e:
        raise _validation_failed(e)


@router.post("/{partition}/toggle", response_model=Command)
async def toggle_relay(
    partition: CommandPartition,
    request: RelayToggleRequest,
    command_queue: CommandQueueDep,
    _: ApiKeyDep,
) -> Command:
    """Queue a command that switches a single relay."""
    try:
        return await command_queue.toggle(
            partition,
            origin_device_id=request.origin_device_id,
            relay_number=request.relay_number,
            state=request.state,
            duration_seconds=request.duration_seconds,
            target_device_id=request.target_device_id,
            target_address=request.target_address,
            origin_address=request.origin_address,
            priority=request.priority,
            expires_at=request.expires_at,
        )
    except CommandValidationError as e:
        raise _validation_failed(e)


@router.post("/{partition}/claim")
async def claim_commands(
    partition: CommandPartition,
    request: CommandClaimRequest,
    command_queue: CommandQueueDep,
    _: ApiKeyDep,
) -> dict:
    """Lock pending commands for the polling controller.

    Called by controllers during their poll cycle. Each returned command is
    moved to 'processing' and is handed to no other caller.
    """
    try:
        commands = await command_queue.claim(
            partition,
            origin_device_id=request.origin_device_id,
            target_device_id=request.target_device_id,
            limit=request.limit,
            lock_timeout_seconds=request.lock_timeout_seconds,
        )
    except StoreTimeoutError as e:
        raise _timed_out(e)

    return {"commands": commands, "count": len(commands)}


@router.post("/{partition}/sweep")
async def sweep_timeouts(
    partition: CommandPartition,
    command_queue: CommandQueueDep,
    _: ApiKeyDep,
) -> dict:
    """Reclaim commands whose claim lock has lapsed."""
    result = await command_queue.sweep_timeouts(partition)
    return {"requeued": result.requeued, "failed": result.failed}


@router.get("/{partition}/stats")
async def get_command_stats(
    partition: CommandPartition,
    command_queue: CommandQueueDep,
    origin_device_id: str | None = None,
) -> dict:
    """Get command counts per status."""
    stats = await command_queue.get_queue_stats(partition, origin_device_id)
    return stats[partition.value]


@router.get("/{partition}/{command_id}", response_model=Command)
async def get_command(
    partition: CommandPartition,
    command_id: str,
    command_queue: CommandQueueDep,
) -> Command:
    """Get a command with its current status."""
    try:
        return await command_queue.get_command(partition, command_id)
    except CommandNotFoundError:
        raise HTTPException(status_code=404, detail="Command not found")


@router.post("/{partition}/{command_id}/complete", response_model=Command)
async def complete_command(
    partition: CommandPartition,
    command_id: str,
    request: CommandComplete,
    command_queue: CommandQueueDep,
    _: ApiKeyDep,
) -> Command:
    """Report the outcome of a claimed command.

    Returns 409 when the command is no longer 'processing': it was already
    finalized, or timeout recovery took it back. Callers should log that and
    move on rather than retry.
    """
    try:
        return await command_queue.complete(
            partition,
            command_id,
            request.status,
            error_message=request.error_message,
            execution_details=request.execution_details,
            attempt_count=request.attempt_count,
        )
    except CommandNotFoundError:
        raise HTTPException(status_code=404, detail="Command not found")
    except CommandConflictError as e:
        raise _conflict(e)
    except StoreTimeoutError as e:
        raise _timed_out(e)


@router.post("/{partition}/{command_id}/expire", response_model=Command)
async def expire_command(
    partition: CommandPartition,
    command_id: str,
    command_queue: CommandQueueDep,
    _: ApiKeyDep,
) -> Command:
    """Cancel a command before any controller claims it."""
    try:
        return await command_queue.expire(partition, command_id)
    except CommandNotFoundError:
        raise HTTPException(status_code=404, detail="Command not found")
    except CommandConflictError as e:
        raise _conflict(e)
