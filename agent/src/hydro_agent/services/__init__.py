"""Agent services - server communication, command polling, relay control."""

from .command_poller import CommandPoller, PollSummary
from .relay_bank import RelayBank, RelayFault
from .server_client import ServerClient

__all__ = [
    "CommandPoller",
    "PollSummary",
    "RelayBank",
    "RelayFault",
    "ServerClient",
]
