"""Main entry point for Hydro Agent."""

import asyncio
import signal
import sys
from pathlib import Path
from typing import Optional

import structlog
import typer
from rich.console import Console
from rich.table import Table

from hydro_agent import __version__
from hydro_agent.core.config import Settings
from hydro_agent.core.logging import configure_logging
from hydro_agent.services.command_poller import CommandPoller, PollSummary
from hydro_agent.services.relay_bank import RelayBank
from hydro_agent.services.server_client import ServerClient

app = typer.Typer(
    name="hydro-agent",
    help="Hydro Agent - polls the relay command queue and switches relays",
)
console = Console()
logger = structlog.get_logger()


class Agent:
    """Main agent orchestrator."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.running = False

        self.server_client = ServerClient(settings.server)
        self.relay_bank = RelayBank(settings.relays)
        self.poller = CommandPoller(settings, self.server_client, self.relay_bank)

    async def start(self) -> None:
        """Start the agent."""
        self.running = True
        logger.info(
            "agent_starting",
            device_id=self.settings.device.id,
            server=self.settings.server.url,
            version=__version__,
        )
        await self.poller.start()
        logger.info("agent_started")

    async def stop(self) -> None:
        """Stop the agent gracefully."""
        if not self.running:
            return
        logger.info("agent_stopping")
        self.running = False

        await self.poller.stop()
        await self.relay_bank.close()
        await self.server_client.close()

        logger.info("agent_stopped")


def load_settings(config_path: Optional[Path]) -> Settings:
    """Load settings from file or defaults."""
    if config_path and config_path.exists():
        logger.info("loading_config", path=str(config_path))
        return Settings.from_yaml(config_path)

    # Try default locations
    default_paths = [
        Path("config/config.yaml"),
        Path("config.yaml"),
        Path.home() / ".hydro-agent" / "config.yaml",
    ]

    for path in default_paths:
        if path.exists():
            logger.info("loading_config", path=str(path))
            return Settings.from_yaml(path)

    logger.info("using_default_config")
    return Settings()


async def run_agent(settings: Settings) -> None:
    """Run the agent main loop."""
    agent = Agent(settings)

    # Set up signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()

    def signal_handler():
        asyncio.create_task(agent.stop())

    if sys.platform != "win32":
        loop.add_signal_handler(signal.SIGINT, signal_handler)
        loop.add_signal_handler(signal.SIGTERM, signal_handler)

    try:
        await agent.start()

        # Keep running until stopped
        while agent.running:
            await asyncio.sleep(1)

    except KeyboardInterrupt:
        pass
    finally:
        await agent.stop()


async def run_poll_once(settings: Settings) -> PollSummary:
    """Run a single poll cycle and release resources."""
    agent = Agent(settings)
    try:
        return await agent.poller.poll_once()
    finally:
        await agent.relay_bank.close()
        await agent.server_client.close()


ConfigOption = typer.Option(None, "--config", "-c", help="Path to configuration file")


@app.command()
def run(config: Optional[Path] = ConfigOption) -> None:
    """Run the Hydro agent."""
    settings = load_settings(config)
    configure_logging(settings.logging)
    asyncio.run(run_agent(settings))


@app.command("poll-once")
def poll_once(config: Optional[Path] = ConfigOption) -> None:
    """Claim and execute pending commands once, then exit."""
    settings = load_settings(config)
    configure_logging(settings.logging)
    summary = asyncio.run(run_poll_once(settings))

    table = Table(title=f"Poll cycle for {settings.device.id}")
    table.add_column("Claimed", justify="right")
    table.add_column("Synced", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Conflicts", justify="right", style="yellow")
    table.add_row(
        str(summary.claimed),
        str(summary.synced),
        str(summary.failed),
        str(summary.conflicts),
    )
    console.print(table)


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"Hydro Agent v{__version__}")


@app.command()
def check(config: Optional[Path] = ConfigOption) -> None:
    """Check configuration and server connectivity."""
    console.print("[bold]Hydro Agent - System Check[/bold]\n")

    settings = load_settings(config)
    console.print(f"Device: {settings.device.id} ({settings.device.name})")
    console.print(f"Partitions: {', '.join(settings.polling.partitions)}")

    unknown = [p for p in settings.polling.partitions if p not in ("master", "slave")]
    if unknown:
        console.print(f"[red][X][/red] Unknown partitions: {', '.join(unknown)}")
    else:
        console.print("[green][OK][/green] Partitions valid")

    async def _health() -> Optional[dict]:
        client = ServerClient(settings.server)
        try:
            return await client.health()
        finally:
            await client.close()

    health = asyncio.run(_health())
    if health:
        console.print(f"[green][OK][/green] Server reachable: {settings.server.url} (v{health.get('version')})")
    else:
        console.print(f"[red][X][/red] Server unreachable: {settings.server.url}")

    if settings.relays.faulty:
        console.print(f"[yellow][!][/yellow] Simulated faulty relays: {settings.relays.faulty}")


if __name__ == "__main__":
    app()
