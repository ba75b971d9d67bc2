"""
Tests for the fleet HTTP API.

============================================================
PURPOSE
============================================================
- Every endpoint returns camelCase JSON
- InvalidInputError -> 400, NotFoundError -> 404
- Request validation failures -> 400
- Delivery failure on /send-email -> 500, replayed by /notifications/retry

All setup goes through the API itself; time moves through
the shared MockClock.

============================================================
"""

import json

import pytest
from fastapi.testclient import TestClient

from dashboard.container import build_container
from dashboard.main import create_app


def register(client, name="Lobby Snack", serial="SN-001", **extra):
    body = {
        "name": name,
        "serialNumber": serial,
        "notifications": {"emailAddresses": ["ops@example.com"]},
    }
    body.update(extra)
    response = client.post("/machines", json=body)
    assert response.status_code == 201
    return response.json()["data"]


# ============================================================
# HEALTH
# ============================================================

class TestHealth:

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["emailProvider"] == "recording"
        assert data["schedulerRunning"] is False


# ============================================================
# HEARTBEAT
# ============================================================

class TestHeartbeatEndpoint:

    def test_post_heartbeat(self, client):
        machine = register(client)

        response = client.post("/heartbeat", json={"machineId": machine["id"], "deviceData": {"batteryLevel": 90}})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["machineId"] == machine["id"]
        assert data["message"] == "Heartbeat updated successfully"

    def test_heartbeat_by_iot_number(self, client):
        machine = register(client, iotNumber="IOT-77")

        response = client.post("/heartbeat", json={"machineId": "IOT-77"})

        assert response.json()["machineId"] == machine["id"]

    def test_missing_machine_id(self, client):
        response = client.post("/heartbeat", json={})

        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "error": "Machine ID is required",
            "details": {"field": "machineId"},
        }

    def test_unknown_machine(self, client):
        response = client.post("/heartbeat", json={"machineId": "ghost"})

        assert response.status_code == 404
        assert response.json()["success"] is False
        assert "ghost" in response.json()["error"]

    def test_get_heartbeat(self, client):
        machine = register(client)
        device_data = json.dumps({"operationalMode": "Automatic", "powerStatus": True})

        response = client.get("/heartbeat", params={"machineId": machine["id"], "deviceData": device_data})

        assert response.status_code == 200
        assert response.json()["machineId"] == machine["id"]

    def test_get_heartbeat_bad_json(self, client):
        machine = register(client)

        response = client.get("/heartbeat", params={"machineId": machine["id"], "deviceData": "{not json"})

        assert response.status_code == 400
        assert response.json()["error"] == "deviceData is not valid JSON"

    def test_malformed_device_data(self, client):
        machine = register(client)

        response = client.post(
            "/heartbeat",
            json={"machineId": machine["id"], "deviceData": {"temperatureReadings": "hot"}},
        )

        assert response.status_code == 400


# ============================================================
# MONITORING
# ============================================================

class TestMonitorEndpoints:

    def test_sweep_reports_offline(self, client, clock):
        register(client, name="M2", serial="SN-2")
        clock.advance(minutes=6)

        response = client.post("/monitor")

        assert response.status_code == 200
        data = response.json()
        assert data["totalMachines"] == 1
        assert data["offlineMachines"] == 1
        assert data["criticalOfflineMachines"] == 0
        assert data["alarmsCreated"] >= 1
        assert data["failedMachines"] == 0

    def test_sweep_empty_fleet(self, client):
        data = client.post("/monitor").json()

        assert data["totalMachines"] == 0
        assert data["alarmsCreated"] == 0

    def test_status_check(self, client, clock):
        fresh = register(client, name="Fresh", serial="SN-F")
        stale = register(client, name="Stale", serial="SN-S")
        clock.advance(minutes=31)
        client.post("/heartbeat", json={"machineId": fresh["id"]})

        response = client.get("/status-check")

        assert response.status_code == 200
        data = response.json()
        assert data["stats"] == {
            "totalMachines": 2,
            "onlineMachines": 1,
            "offlineMachines": 1,
            "errorMachines": 0,
        }
        rows = {row["id"]: row for row in data["machines"]}
        assert rows[fresh["id"]]["status"] == "online"
        assert rows[stale["id"]]["status"] == "offline"
        assert rows[stale["id"]]["liveness"] == "critical_offline"
        assert rows[stale["id"]]["minutesSinceLastHeartbeat"] == 31


# ============================================================
# EMAIL
# ============================================================

class TestSendEmail:

    def test_send(self, client, transport):
        response = client.post("/send-email", json={
            "to": ["ops@example.com"],
            "subject": "Hello",
            "htmlContent": "<p>Hi</p>",
        })

        assert response.status_code == 200
        assert response.json()["provider"] == "recording"
        assert transport.sent[0].subject == "Hello"

    @pytest.mark.parametrize("body", [
        {"subject": "Hello", "htmlContent": "<p>Hi</p>"},
        {"to": [], "subject": "Hello", "htmlContent": "<p>Hi</p>"},
        {"to": ["ops@example.com"], "htmlContent": "<p>Hi</p>"},
    ])
    def test_missing_fields(self, client, body):
        response = client.post("/send-email", json=body)

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request"

    def test_delivery_failure(self, config, store, clock, failing_transport):
        container = build_container(config, store, clock=clock, transport=failing_transport)

        with TestClient(create_app(container)) as failing_client:
            response = failing_client.post("/send-email", json={
                "to": ["ops@example.com"],
                "subject": "Hello",
                "htmlContent": "<p>Hi</p>",
            })

        assert response.status_code == 500
        assert response.json()["success"] is False
        assert response.json()["details"] == {"provider": "recording"}

    def test_retry_dead_letters(self, config, store, clock, failing_transport):
        container = build_container(config, store, clock=clock, transport=failing_transport)

        with TestClient(create_app(container)) as retry_client:
            retry_client.post("/send-email", json={
                "to": ["ops@example.com"],
                "subject": "Hello",
                "htmlContent": "<p>Hi</p>",
            })
            still_failing = retry_client.post("/notifications/retry")
            failing_transport.fail = False
            response = retry_client.post("/notifications/retry")
            again = retry_client.post("/notifications/retry")

        assert still_failing.json()["retried"] == 0
        assert response.status_code == 200
        assert response.json()["retried"] == 1
        assert response.json()["provider"] == "recording"
        assert [m.subject for m in failing_transport.sent] == ["Hello"]
        assert again.json()["retried"] == 0


# ============================================================
# ALARMS
# ============================================================

def raise_offline_alarm(client, clock):
    machine = register(client, name="M2", serial="SN-2")
    clock.advance(minutes=6)
    client.post("/monitor")
    alarms = client.get("/alarms", params={"machineId": machine["id"], "status": "active"}).json()["data"]
    return machine, next(a for a in alarms if a["code"] == "OFFLINE")


class TestAlarmEndpoints:

    def test_list_and_get(self, client, clock):
        machine, alarm = raise_offline_alarm(client, clock)

        assert alarm["machineId"] == machine["id"]
        assert alarm["severity"] == "high"
        assert alarm["notified"] is True

        response = client.get(f"/alarms/{alarm['id']}")
        assert response.status_code == 200
        assert response.json()["data"]["id"] == alarm["id"]

    def test_unknown_alarm(self, client):
        assert client.get("/alarms/nope").status_code == 404
        assert client.post("/alarms/nope/acknowledge").status_code == 404

    def test_invalid_status_filter(self, client):
        assert client.get("/alarms", params={"status": "sleeping"}).status_code == 400

    def test_acknowledge_and_resolve(self, client, clock):
        _, alarm = raise_offline_alarm(client, clock)

        acked = client.post(f"/alarms/{alarm['id']}/acknowledge", json={"user": "alice"}).json()
        assert acked["message"] == "Alarm acknowledged"
        assert acked["data"]["status"] == "acknowledged"
        assert acked["data"]["acknowledgedBy"] == "alice"

        resolved = client.post(f"/alarms/{alarm['id']}/resolve").json()
        assert resolved["data"]["status"] == "resolved"
        assert resolved["data"]["resolvedBy"] == "operator"

        stats = client.get("/alarms/stats").json()["data"]
        assert stats["resolved"] == 1

    def test_acknowledge_resolved_alarm(self, client, clock):
        _, alarm = raise_offline_alarm(client, clock)
        client.post(f"/alarms/{alarm['id']}/resolve")

        response = client.post(f"/alarms/{alarm['id']}/acknowledge")

        assert response.status_code == 400

    def test_delete_resolved(self, client, clock):
        _, alarm = raise_offline_alarm(client, clock)
        client.post(f"/alarms/{alarm['id']}/resolve")

        response = client.delete("/alarms/resolved")

        assert response.status_code == 200
        assert response.json()["deleted"] == 1
        assert client.get(f"/alarms/{alarm['id']}").status_code == 404

    def test_delete_old(self, client, clock):
        raise_offline_alarm(client, clock)
        clock.advance(days=31)

        response = client.delete("/alarms/old", params={"days": 30})

        assert response.json()["deleted"] >= 1
        assert client.get("/alarms").json()["data"] == []


# ============================================================
# MACHINES
# ============================================================

class TestMachineEndpoints:

    def test_register(self, client, clock):
        machine = register(client, type="coffee", location="Lobby", isTest=True)

        assert machine["name"] == "Lobby Snack"
        assert machine["serialNumber"] == "SN-001"
        assert machine["type"] == "coffee"
        assert machine["isTest"] is True
        assert machine["createdAt"] == clock.now().isoformat()

    def test_register_requires_name(self, client):
        response = client.post("/machines", json={"serialNumber": "SN-1"})

        assert response.status_code == 400

    def test_register_unknown_type(self, client):
        response = client.post("/machines", json={"name": "X", "serialNumber": "SN-1", "type": "toaster"})

        assert response.status_code == 400

    def test_delete(self, client):
        machine = register(client)

        response = client.delete(f"/machines/{machine['id']}")

        assert response.status_code == 200
        assert response.json()["message"] == f"Machine {machine['id']} deleted"
        assert client.post("/heartbeat", json={"machineId": machine["id"]}).status_code == 404
        assert client.delete(f"/machines/{machine['id']}").status_code == 404

    def test_cleaning_log(self, client):
        machine = register(client)

        response = client.post(f"/machines/{machine['id']}/cleaning-logs", json={"performedBy": "tech"})

        assert response.status_code == 201
        assert response.json()["machineId"] == machine["id"]
        assert response.json()["id"]

    def test_cleaning_log_unknown_machine(self, client):
        assert client.post("/machines/ghost/cleaning-logs", json={}).status_code == 404


# ============================================================
# COMMANDS
# ============================================================

class TestCommandEndpoints:

    def test_submit_and_get(self, client):
        machine = register(client)

        response = client.post("/commands", json={
            "machineId": machine["id"],
            "type": "UNIVERSAL_SET_DISPLAY_MESSAGE",
            "parameters": {"message": "Out of order"},
            "priority": "critical",
        })

        assert response.status_code == 201
        command_id = response.json()["commandId"]

        data = client.get(f"/commands/{command_id}").json()["data"]
        assert data["status"] == "pending"
        assert data["maxRetries"] == 5
        assert data["parameters"] == {"message": "Out of order", "priority": "normal"}

    def test_bad_parameters(self, client):
        machine = register(client)

        response = client.post("/commands", json={
            "machineId": machine["id"],
            "type": "UNIVERSAL_REBOOT",
            "parameters": {"reboot": "now"},
        })

        assert response.status_code == 400
        assert response.json()["details"]["field"] == "parameters"

    def test_unknown_type(self, client):
        machine = register(client)

        response = client.post("/commands", json={"machineId": machine["id"], "type": "MAKE_TOAST"})

        assert response.status_code == 400

    def test_unknown_machine(self, client):
        response = client.post("/commands", json={"machineId": "ghost", "type": "UNIVERSAL_GET_STATUS"})

        assert response.status_code == 404

    def test_update_status(self, client):
        machine = register(client)
        command_id = client.post("/commands", json={
            "machineId": machine["id"],
            "type": "UNIVERSAL_GET_STATUS",
        }).json()["commandId"]

        response = client.patch(f"/commands/{command_id}", json={"status": "delivered"})

        assert response.status_code == 200
        assert response.json()["message"] == "Command delivered"
        assert response.json()["data"]["status"] == "delivered"

    def test_unknown_command(self, client):
        assert client.get("/commands/nope").status_code == 404

    def test_sweep_timeouts(self, client, clock):
        machine = register(client)
        client.post("/commands", json={"machineId": machine["id"], "type": "UNIVERSAL_GET_STATUS"})
        clock.advance(seconds=61)

        response = client.post("/commands/sweep-timeouts")

        assert response.status_code == 200
        assert response.json()["timedOut"] == 1
