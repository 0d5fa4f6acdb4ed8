"""Simulated relay hardware for the local controller and its relay boxes."""

import asyncio
from typing import Optional

import structlog

from hydro_agent.core.config import RelayConfig

logger = structlog.get_logger()


class RelayFault(Exception):
    """Raised when a relay cannot be switched."""


class RelayBank:
    """Relay states per device with timed auto-off.

    Master commands switch the controller's own relays; slave commands
    switch the relays of the addressed relay box.
    """

    def __init__(self, config: RelayConfig):
        self.config = config
        self._states: dict[str, list[bool]] = {}
        self._timers: dict[tuple[str, int], asyncio.Task] = {}

    def _relays_for(self, partition: str, device_id: str) -> list[bool]:
        if device_id not in self._states:
            count = self.config.master_count if partition == "master" else self.config.slave_count
            self._states[device_id] = [False] * count
        return self._states[device_id]

    def state(self, device_id: str, relay: int) -> Optional[bool]:
        """Get a relay state, or None if the device has never been switched."""
        relays = self._states.get(device_id)
        if relays is None or not 0 <= relay < len(relays):
            return None
        return relays[relay]

    async def apply(
        self,
        partition: str,
        device_id: str,
        relay: int,
        action: str,
        duration: int = 0,
    ) -> None:
        """Switch one relay.

        An 'on' with a positive duration turns the relay off again after
        that many seconds. A new switch of the same relay cancels the timer.

        Raises:
            RelayFault: If the relay does not exist or is marked faulty
        """
        relays = self._relays_for(partition, device_id)
        if not 0 <= relay < len(relays):
            raise RelayFault(f"relay {relay} out of range on {device_id}")
        if relay in self.config.faulty:
            raise RelayFault(f"relay {relay} on {device_id} did not respond")

        self._cancel_timer(device_id, relay)
        relays[relay] = action == "on"
        logger.debug("relay_switched", device_id=device_id, relay=relay, action=action, duration=duration)

        if relays[relay] and duration > 0:
            self._timers[(device_id, relay)] = asyncio.create_task(
                self._auto_off(device_id, relay, duration)
            )

    async def _auto_off(self, device_id: str, relay: int, duration: int) -> None:
        await asyncio.sleep(duration)
        self._states[device_id][relay] = False
        self._timers.pop((device_id, relay), None)
        logger.info("relay_auto_off", device_id=device_id, relay=relay)

    def _cancel_timer(self, device_id: str, relay: int) -> None:
        timer = self._timers.pop((device_id, relay), None)
        if timer:
            timer.cancel()

    async def close(self) -> None:
        """Cancel pending auto-off timers."""
        timers = list(self._timers.values())
        self._timers.clear()
        for timer in timers:
            timer.cancel()
        await asyncio.gather(*timers, return_exceptions=True)
