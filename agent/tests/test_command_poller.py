"""Tests for the command poller against a mocked server."""

import asyncio
import json

import httpx
import pytest

from hydro_agent.core.config import RelayConfig, ServerConfig, Settings
from hydro_agent.services.command_poller import CommandPoller
from hydro_agent.services.relay_bank import RelayBank, RelayFault
from hydro_agent.services.server_client import ServerClient

DEVICE = "ESP32_MASTER_001"


class FakeServer:
    """Serves queued commands and records completion reports."""

    def __init__(self, commands=None, conflict_ids=()):
        self.commands = {"master": [], "slave": [], **(commands or {})}
        self.conflict_ids = set(conflict_ids)
        self.claims = []
        self.completions = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        parts = request.url.path.strip("/").split("/")
        body = json.loads(request.content) if request.content else {}

        if parts[-1] == "claim":
            partition = parts[2]
            self.claims.append((partition, body))
            batch, self.commands[partition] = self.commands[partition], []
            return httpx.Response(200, json={"commands": batch, "count": len(batch)})

        if parts[-1] == "complete":
            command_id = parts[3]
            if command_id in self.conflict_ids:
                return httpx.Response(409, json={"detail": {"current_status": "pending"}})
            self.completions[command_id] = body
            return httpx.Response(200, json={"command_id": command_id, "status": body["status"]})

        return httpx.Response(404)


def command(command_id, targets, actions, durations=None, target=DEVICE, attempt=1):
    return {
        "command_id": command_id,
        "target_device_id": target,
        "targets": targets,
        "actions": actions,
        "durations": durations or [0] * len(targets),
        "attempt_count": attempt,
    }


def make_poller(server: FakeServer, faulty=()):
    settings = Settings(relays=RelayConfig(faulty=list(faulty)))
    client = ServerClient(ServerConfig(url="http://hydro.test"), transport=httpx.MockTransport(server.handler))
    bank = RelayBank(settings.relays)
    return CommandPoller(settings, client, bank), client, bank


async def test_poll_once_executes_and_reports_synced():
    server = FakeServer({
        "master": [command("m1", [0, 5], ["on", "off"])],
        "slave": [command("s1", [2], ["on"], target="ESP32_SLAVE_AA")],
    })
    poller, client, bank = make_poller(server)

    summary = await poller.poll_once()
    await bank.close()
    await client.close()

    assert (summary.claimed, summary.synced, summary.failed, summary.conflicts) == (2, 2, 0, 0)
    assert bank.state(DEVICE, 0) is True
    assert bank.state(DEVICE, 5) is False
    assert bank.state("ESP32_SLAVE_AA", 2) is True

    report = server.completions["m1"]
    assert report["status"] == "synced"
    assert report["attempt_count"] == 1
    assert report["execution_details"]["executed"] == [
        {"relay": 0, "action": "on", "duration": 0},
        {"relay": 5, "action": "off", "duration": 0},
    ]


async def test_poll_once_sends_claim_parameters():
    server = FakeServer()
    poller, client, bank = make_poller(server)

    await poller.poll_once()
    await client.close()

    assert [p for p, _ in server.claims] == ["master", "slave"]
    assert server.claims[0][1] == {"origin_device_id": DEVICE, "limit": 5, "lock_timeout_seconds": 60}


async def test_faulty_relay_reports_failed():
    server = FakeServer({"master": [command("m1", [1, 3], ["on", "on"])]})
    poller, client, bank = make_poller(server, faulty=[3])

    summary = await poller.poll_once()
    await client.close()

    assert summary.failed == 1
    report = server.completions["m1"]
    assert report["status"] == "failed"
    assert "relay 3" in report["error_message"]
    assert report["execution_details"]["executed"] == [{"relay": 1, "action": "on", "duration": 0}]


async def test_conflict_is_counted_not_raised():
    server = FakeServer({"master": [command("m1", [0], ["on"])]}, conflict_ids={"m1"})
    poller, client, bank = make_poller(server)

    summary = await poller.poll_once()
    await client.close()

    assert summary.conflicts == 1
    assert summary.synced == 0


async def test_unreachable_server_returns_no_commands():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = ServerClient(ServerConfig(url="http://hydro.test"), transport=httpx.MockTransport(refuse))

    assert await client.claim_commands("master", DEVICE) == []
    assert await client.complete_command("master", "m1", "synced") is None
    await client.close()


async def test_api_key_is_sent_as_bearer_token():
    seen = {}

    def handler(request):
        seen["authorization"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"commands": [], "count": 0})

    client = ServerClient(
        ServerConfig(url="http://hydro.test", api_key="secret"),
        transport=httpx.MockTransport(handler),
    )
    await client.claim_commands("master", DEVICE)
    await client.close()

    assert seen["authorization"] == "Bearer secret"


async def test_relay_auto_off_after_duration():
    bank = RelayBank(RelayConfig())

    await bank.apply("master", DEVICE, 4, "on", duration=1)
    assert bank.state(DEVICE, 4) is True

    await asyncio.sleep(1.2)
    assert bank.state(DEVICE, 4) is False
    await bank.close()


async def test_relay_switch_cancels_pending_auto_off():
    bank = RelayBank(RelayConfig())

    await bank.apply("master", DEVICE, 4, "on", duration=1)
    await bank.apply("master", DEVICE, 4, "on")
    await asyncio.sleep(1.2)

    assert bank.state(DEVICE, 4) is True
    await bank.close()


async def test_relay_out_of_range():
    bank = RelayBank(RelayConfig())

    with pytest.raises(RelayFault):
        await bank.apply("slave", "ESP32_SLAVE_AA", 8, "on")
