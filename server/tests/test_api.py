"""API tests."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from hydro_server.main import app


@pytest.fixture
def client():
    """Create a test client with the application lifespan running."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def device_id():
    """Fresh controller id so tests sharing the app database stay isolated."""
    return f"ESP32_MASTER_{uuid4().hex[:8].upper()}"


def submit(client, device_id, partition="master", **fields):
    payload = {"origin_device_id": device_id, "targets": [0], "actions": ["on"], **fields}
    return client.post(f"/api/relay-commands/{partition}", json=payload)


def claim(client, device_id, partition="master", **fields):
    return client.post(
        f"/api/relay-commands/{partition}/claim",
        json={"origin_device_id": device_id, **fields},
    )


def test_root(client):
    """Test root endpoint."""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "Hydro Relay Queue"
    assert "version" in data


def test_health(client):
    """Test health endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert set(data["queue"]) == {"master", "slave"}


def test_submit_command(client, device_id):
    response = submit(client, device_id, targets=[1, 2], actions=["on", "off"], durations=[60, 0])

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "pending"
    assert data["partition"] == "master"
    assert data["target_device_id"] == device_id
    assert data["targets"] == [1, 2]
    assert data["actions"] == ["on", "off"]
    assert data["durations"] == [60, 0]


def test_submit_invalid_command_lists_every_error(client, device_id):
    response = submit(client, device_id, targets=[0, 20], actions=["on", "maybe"], durations=[0, -5])

    assert response.status_code == 422
    errors = response.json()["detail"]["errors"]
    assert {e["field"] for e in errors} == {"targets[1]", "actions[1]", "durations[1]"}


def test_submit_unknown_partition(client, device_id):
    response = submit(client, device_id, partition="satellite")
    assert response.status_code == 422


def test_claim_and_complete(client, device_id):
    command_id = submit(client, device_id).json()["command_id"]

    response = claim(client, device_id)
    assert response.status_code == 200
    data = response.json()
    assert data["count"] == 1
    claimed = data["commands"][0]
    assert claimed["command_id"] == command_id
    assert claimed["status"] == "processing"
    assert claimed["attempt_count"] == 1

    response = client.post(
        f"/api/relay-commands/master/{command_id}/complete",
        json={"status": "synced", "attempt_count": 1, "execution_details": {"relays": [0]}},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "synced"

    response = client.get(f"/api/relay-commands/master/{command_id}")
    assert response.status_code == 200
    assert response.json()["completed"] is True


def test_claim_empty(client, device_id):
    response = claim(client, device_id)
    assert response.status_code == 200
    assert response.json() == {"commands": [], "count": 0}


def test_claim_rejects_zero_limit(client, device_id):
    response = claim(client, device_id, limit=0)
    assert response.status_code == 422


def test_duplicate_completion_returns_conflict(client, device_id):
    command_id = submit(client, device_id).json()["command_id"]
    claim(client, device_id)

    first = client.post(f"/api/relay-commands/master/{command_id}/complete", json={"status": "synced"})
    second = client.post(f"/api/relay-commands/master/{command_id}/complete", json={"status": "failed"})

    assert first.status_code == 200
    assert second.status_code == 409
    assert second.json()["detail"]["current_status"] == "synced"


def test_complete_unknown_command(client):
    response = client.post("/api/relay-commands/master/does-not-exist/complete", json={"status": "synced"})
    assert response.status_code == 404


def test_complete_rejects_non_terminal_status(client, device_id):
    command_id = submit(client, device_id).json()["command_id"]
    claim(client, device_id)

    response = client.post(f"/api/relay-commands/master/{command_id}/complete", json={"status": "pending"})
    assert response.status_code == 422


def test_get_unknown_command(client):
    response = client.get("/api/relay-commands/slave/does-not-exist")
    assert response.status_code == 404


def test_toggle_relay(client, device_id):
    response = client.post(
        "/api/relay-commands/slave/toggle",
        json={
            "origin_device_id": device_id,
            "target_address": "aa:bb:cc:00:11:22",
            "relay_number": 4,
            "state": True,
            "duration_seconds": 15,
        },
    )

    assert response.status_code == 200
    data = response.json()
    assert data["target_device_id"] == "ESP32_SLAVE_aa_bb_cc_00_11_22"
    assert data["targets"] == [4]
    assert data["actions"] == ["on"]
    assert data["durations"] == [15]


def test_expire_command(client, device_id):
    command_id = submit(client, device_id).json()["command_id"]

    response = client.post(f"/api/relay-commands/master/{command_id}/expire")
    assert response.status_code == 200
    assert claim(client, device_id).json()["count"] == 0

    # Already claimed commands cannot be cancelled
    other_id = submit(client, device_id).json()["command_id"]
    claim(client, device_id)
    response = client.post(f"/api/relay-commands/master/{other_id}/expire")
    assert response.status_code == 409


def test_expired_command_not_claimed(client, device_id):
    past = (datetime.now(timezone.utc) - timedelta(minutes=5)).replace(tzinfo=None)
    submit(client, device_id, expires_at=past.isoformat())

    assert claim(client, device_id).json()["count"] == 0


def test_offset_deadline_in_the_past_not_claimed(client, device_id):
    past = (datetime.now(timezone.utc) - timedelta(minutes=30)).astimezone(timezone(timedelta(hours=5)))
    submit(client, device_id, expires_at=past.isoformat())

    assert claim(client, device_id).json()["count"] == 0


def test_offset_deadline_in_the_future_is_claimed(client, device_id):
    future = (datetime.now(timezone.utc) + timedelta(minutes=30)).astimezone(timezone(timedelta(hours=-5)))
    command_id = submit(client, device_id, expires_at=future.isoformat()).json()["command_id"]

    data = claim(client, device_id).json()
    assert [c["command_id"] for c in data["commands"]] == [command_id]


def test_utc_designator_deadline_is_stored_as_utc(client, device_id):
    deadline = datetime.now(timezone.utc).replace(microsecond=0) + timedelta(hours=1)
    response = submit(client, device_id, expires_at=deadline.isoformat().replace("+00:00", "Z"))

    assert response.status_code == 200
    assert response.json()["expires_at"] == deadline.replace(tzinfo=None).isoformat()


def test_stats(client, device_id):
    submit(client, device_id)
    submit(client, device_id, targets=[1])
    claim(client, device_id, limit=1)

    response = client.get("/api/relay-commands/master/stats", params={"origin_device_id": device_id})

    assert response.status_code == 200
    assert response.json() == {"total": 2, "pending": 1, "processing": 1, "synced": 0, "failed": 0}


def test_sweep_endpoint(client):
    response = client.post("/api/relay-commands/master/sweep")
    assert response.status_code == 200
    assert set(response.json()) == {"requeued", "failed"}


def test_command_acks(client, device_id):
    command_id = submit(client, device_id).json()["command_id"]
    claim(client, device_id)
    client.post(f"/api/relay-commands/master/{command_id}/complete", json={"status": "synced"})

    response = client.get(
        "/api/command-acks",
        params={"partition": "master", "origin_device_id": device_id},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["count"] == 1
    ack = data["acks"][0]
    assert ack["command_id"] == command_id
    assert ack["success"] is True
    assert ack["status"] == "synced"


def test_command_acks_rejects_pending_filter(client):
    response = client.get("/api/command-acks", params={"status": "pending"})
    assert response.status_code == 400


def test_execute_rule(client, device_id):
    response = client.post(
        "/api/rules/execute",
        json={
            "origin_device_id": device_id,
            "rule_id": "rule-1",
            "rule_name": "Night mode",
            "instructions": [
                {"type": "relay_action", "target": "master", "relay_number": 0, "action": "off"},
                {
                    "type": "if",
                    "condition": {"sensor": "humidity", "op": "<", "value": 40},
                    "then": [
                        {"type": "relay_action", "target": "master", "relay_number": 1, "action": "on"},
                    ],
                },
                {"type": "relay_action", "target": "slave", "relay_number": 0, "action": "on"},
            ],
        },
    )

    assert response.status_code == 200
    data = response.json()
    assert data["commands_created"] == 1
    assert data["success"] is False
    assert data["errors"][0]["field"] == "instructions[2].target_device_id"

    commands = claim(client, device_id).json()["commands"]
    assert len(commands) == 1
    assert commands[0]["targets"] == [0, 1]
    assert commands[0]["actions"] == ["off", "on"]
    assert commands[0]["kind"] == "rule"
