"""HTTP client for communicating with the relay command server."""

from typing import Any, Optional

import httpx
import structlog

from hydro_agent import __version__
from hydro_agent.core.config import ServerConfig

logger = structlog.get_logger()


class ServerClient:
    """Client for the relay command REST API."""

    def __init__(self, config: ServerConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.config.url,
                timeout=self.config.timeout,
                headers=self._get_headers(),
                transport=self._transport,
            )
        return self._client

    def _get_headers(self) -> dict[str, str]:
        """Get request headers including authentication."""
        headers = {
            "Content-Type": "application/json",
            "User-Agent": f"HydroAgent/{__version__}",
        }
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def health(self) -> Optional[dict]:
        """Fetch the server health report, or None if unreachable."""
        try:
            client = await self._get_client()
            response = await client.get("/health")
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            logger.warning("server_unreachable", url=self.config.url, error=str(e))
            return None

    async def claim_commands(
        self,
        partition: str,
        device_id: str,
        limit: int = 5,
        lock_timeout_seconds: Optional[int] = None,
    ) -> list[dict]:
        """Claim pending commands for this controller.

        Args:
            partition: master or slave
            device_id: This controller's device ID
            limit: Maximum commands to claim
            lock_timeout_seconds: Claim lock override

        Returns:
            Claimed command dictionaries, empty when the server is unreachable
        """
        payload: dict[str, Any] = {"origin_device_id": device_id, "limit": limit}
        if lock_timeout_seconds:
            payload["lock_timeout_seconds"] = lock_timeout_seconds

        try:
            client = await self._get_client()
            response = await client.post(f"/api/relay-commands/{partition}/claim", json=payload)
            response.raise_for_status()
            commands = response.json().get("commands", [])
            if commands:
                logger.info("commands_claimed", partition=partition, count=len(commands))
            return commands
        except httpx.HTTPStatusError as e:
            logger.error(
                "claim_failed",
                partition=partition,
                status_code=e.response.status_code,
                detail=e.response.text,
            )
            return []
        except httpx.RequestError as e:
            logger.warning("server_unreachable", url=self.config.url, error=str(e))
            return []

    async def complete_command(
        self,
        partition: str,
        command_id: str,
        status: str,
        attempt_count: Optional[int] = None,
        error_message: Optional[str] = None,
        execution_details: Optional[dict] = None,
    ) -> Optional[dict]:
        """Report the outcome of a claimed command.

        Args:
            partition: master or slave
            command_id: Command identifier
            status: synced or failed
            attempt_count: Claim attempt being reported
            error_message: Failure reason
            execution_details: Free-form execution report

        Returns:
            The finalized command, or None if the report was not accepted
        """
        payload = {
            "status": status,
            "attempt_count": attempt_count,
            "error_message": error_message,
            "execution_details": execution_details or {},
        }

        try:
            client = await self._get_client()
            response = await client.post(
                f"/api/relay-commands/{partition}/{command_id}/complete",
                json=payload,
            )
            response.raise_for_status()
            logger.info("command_completed", command_id=command_id, status=status)
            return response.json()
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 409:
                # Already finalized or reclaimed by timeout recovery
                logger.warning("completion_conflict", command_id=command_id, detail=e.response.text)
            else:
                logger.error(
                    "completion_failed",
                    command_id=command_id,
                    status_code=e.response.status_code,
                    detail=e.response.text,
                )
            return None
        except httpx.RequestError as e:
            logger.warning("server_unreachable", url=self.config.url, error=str(e))
            return None
