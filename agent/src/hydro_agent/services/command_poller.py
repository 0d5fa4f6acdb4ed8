"""Command poller - claims relay commands and executes them."""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import structlog

from hydro_agent.core.config import Settings
from hydro_agent.services.relay_bank import RelayBank, RelayFault
from hydro_agent.services.server_client import ServerClient

logger = structlog.get_logger()


@dataclass
class PollSummary:
    """Outcome counts for one poll cycle."""

    claimed: int = 0
    synced: int = 0
    failed: int = 0
    conflicts: int = 0


class CommandPoller:
    """Polls the server for claimed commands and reports their outcome."""

    def __init__(
        self,
        settings: Settings,
        server_client: ServerClient,
        relay_bank: RelayBank,
    ):
        self.settings = settings
        self.server_client = server_client
        self.relay_bank = relay_bank

        self._running = False
        self._poll_task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the poll loop."""
        self._running = True
        self._poll_task = asyncio.create_task(self._poll_loop())
        logger.info(
            "command_poller_started",
            device_id=self.settings.device.id,
            interval=self.settings.polling.interval,
            partitions=self.settings.polling.partitions,
        )

    async def stop(self) -> None:
        """Stop the poll loop."""
        self._running = False

        if self._poll_task:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None

        logger.info("command_poller_stopped")

    async def _poll_loop(self) -> None:
        """Poll for commands and execute them."""
        while self._running:
            try:
                await self.poll_once()
                await asyncio.sleep(self.settings.polling.interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("command_poll_error", error=str(e))
                await asyncio.sleep(self.settings.polling.interval * 2)

    async def poll_once(self) -> PollSummary:
        """Run one claim, execute and report cycle over every partition."""
        summary = PollSummary()
        polling = self.settings.polling

        for partition in polling.partitions:
            commands = await self.server_client.claim_commands(
                partition,
                self.settings.device.id,
                limit=polling.limit,
                lock_timeout_seconds=polling.lock_timeout_seconds,
            )
            summary.claimed += len(commands)

            for command in commands:
                outcome = await self._execute(partition, command)
                if outcome is None:
                    summary.conflicts += 1
                elif outcome == "synced":
                    summary.synced += 1
                else:
                    summary.failed += 1

        return summary

    async def _execute(self, partition: str, command: dict) -> Optional[str]:
        """Switch the command's relays in order and report back.

        Returns:
            The reported status, or None if the server rejected the report
        """
        command_id = command["command_id"]
        device_id = command["target_device_id"]
        executed = []
        error_message = None

        logger.info(
            "executing_command",
            command_id=command_id,
            target=device_id,
            relays=command["targets"],
            attempt=command.get("attempt_count"),
        )

        try:
            for relay, action, duration in zip(command["targets"], command["actions"], command["durations"]):
                await self.relay_bank.apply(partition, device_id, relay, action, duration)
                executed.append({"relay": relay, "action": action, "duration": duration})
        except RelayFault as e:
            error_message = str(e)
            logger.warning("command_execution_failed", command_id=command_id, error=error_message)

        status = "failed" if error_message else "synced"
        result = await self.server_client.complete_command(
            partition,
            command_id,
            status,
            attempt_count=command.get("attempt_count"),
            error_message=error_message,
            execution_details={
                "executed": executed,
                "executed_at": datetime.now(timezone.utc).isoformat(),
                "device_id": self.settings.device.id,
            },
        )
        if result is None:
            return None
        return status
