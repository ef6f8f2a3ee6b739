"""
API endpoint tests for the registry HTTP adapter.

Tests cover:
- GET /health - fixed liveness payload
- POST /v1/capabilities - register / re-register
- POST /v1/capabilities/{id}/renew
- DELETE /v1/capabilities/{id}
- GET /v1/capabilities/{id} and GET /v1/capabilities
- Error mapping, API key auth, event publishing, metrics

The app is built with create_app() around a registry driven by a fake
clock, so expiry is simulated rather than waited for.
"""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from qcap_registry.main import create_app
from qcap_registry.modules.events import RegistryEventPublisher


# =============================================================================
# GET /health
# =============================================================================


class TestHealth:
    def test_health_exact_payload(self, client):
        """Health returns status 200 and the exact fixed body."""
        response = client.get("/health")

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/json"
        assert response.content == b'{"status":"ok"}\n'
        assert response.json() == {"status": "ok"}

    def test_health_independent_of_registry_content(self, client, registry):
        registry.register("svc-a", {}, ttl=60)
        assert client.get("/health").content == b'{"status":"ok"}\n'

    def test_healthz_details(self, client, registry):
        registry.register("svc-a", {}, ttl=60)

        response = client.get("/healthz")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["registry"]["live"] == 1
        assert data["events"] == "disabled"
        assert data["auth"] == "disabled"
        assert data["sweeper"] == "stopped"

    def test_healthz_reports_running_sweeper(self, app):
        with TestClient(app) as client:
            assert client.get("/healthz").json()["sweeper"] == "running"

    def test_healthz_unavailable_when_lock_stuck(self, client, registry, monkeypatch):
        monkeypatch.setattr(registry, "health_check", lambda timeout=1.0: False)

        response = client.get("/healthz")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"


# =============================================================================
# Register / Lookup
# =============================================================================


class TestRegisterEndpoint:
    def test_register_creates_record(self, client, clock):
        response = client.post(
            "/v1/capabilities",
            json={"id": "svc-a", "metadata": {"address": "10.0.0.1:9000"}, "ttl": 60},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["id"] == "svc-a"
        assert data["metadata"] == {"address": "10.0.0.1:9000"}
        assert data["ttl"] == 60
        assert set(data) == {"id", "metadata", "registeredAt", "lastRenewedAt", "ttl", "expiresAt"}
        assert data["registeredAt"] == data["lastRenewedAt"]

    def test_reregister_returns_200_with_latest_metadata(self, client, clock):
        first = client.post("/v1/capabilities", json={"id": "svc-a", "metadata": {"v": "1"}, "ttl": 60})
        clock.advance(5)
        second = client.post("/v1/capabilities", json={"id": "svc-a", "metadata": {"v": "2"}, "ttl": 60})

        assert second.status_code == 200
        assert second.json()["metadata"] == {"v": "2"}
        assert second.json()["registeredAt"] == first.json()["registeredAt"]
        assert client.get("/v1/capabilities/svc-a").json()["metadata"] == {"v": "2"}

    def test_register_uses_default_ttl(self, client, config):
        response = client.post("/v1/capabilities", json={"id": "svc-a"})

        assert response.status_code == 201
        assert response.json()["ttl"] == config.get("default_ttl")

    @pytest.mark.parametrize(
        "body",
        [
            {"id": "", "ttl": 60},
            {"id": "   ", "ttl": 60},
            {"id": "svc-a", "ttl": 0},
            {"id": "svc-a", "ttl": -5},
        ],
    )
    def test_register_invalid_argument(self, client, body):
        response = client.post("/v1/capabilities", json=body)

        assert response.status_code == 400
        assert response.json()["code"] == "invalid_argument"

    def test_register_rejects_oversized_ttl(self, client):
        response = client.post("/v1/capabilities", json={"id": "big", "ttl": 1e15})

        assert response.status_code == 400
        assert response.json()["code"] == "invalid_argument"
        assert client.get("/v1/capabilities").json()["count"] == 0
        assert client.get("/metrics").status_code == 200

    def test_register_rejects_malformed_body(self, client):
        response = client.post("/v1/capabilities", json={"metadata": {"a": "b"}})
        assert response.status_code == 422

    def test_lookup_unknown(self, client):
        response = client.get("/v1/capabilities/ghost")

        assert response.status_code == 404
        assert response.json() == {"error": "Capability 'ghost' not found", "code": "not_found"}

    def test_end_to_end_expiry(self, client, clock):
        """Register with 60s TTL, lookup succeeds, fails after 61s without renewal."""
        client.post("/v1/capabilities", json={"id": "svc-a", "metadata": {}, "ttl": 60})

        assert client.get("/v1/capabilities/svc-a").status_code == 200

        clock.advance(61)
        response = client.get("/v1/capabilities/svc-a")
        assert response.status_code == 404
        assert response.json()["code"] == "not_found"


# =============================================================================
# Renew / Deregister
# =============================================================================


class TestRenewEndpoint:
    def test_renew_extends_expiry(self, client, clock):
        client.post("/v1/capabilities", json={"id": "svc-a", "ttl": 60})
        clock.advance(50)

        response = client.post("/v1/capabilities/svc-a/renew")
        assert response.status_code == 200
        assert response.json()["lastRenewedAt"] != response.json()["registeredAt"]

        clock.advance(50)
        assert client.get("/v1/capabilities/svc-a").status_code == 200

    def test_renew_unknown(self, client):
        assert client.post("/v1/capabilities/ghost/renew").status_code == 404


class TestDeregisterEndpoint:
    def test_deregister(self, client):
        client.post("/v1/capabilities", json={"id": "svc-a", "ttl": 60})

        response = client.delete("/v1/capabilities/svc-a")

        assert response.status_code == 204
        assert response.content == b""
        assert client.get("/v1/capabilities/svc-a").status_code == 404

    def test_deregister_unknown(self, client):
        assert client.delete("/v1/capabilities/ghost").status_code == 404


class TestSlashedIds:
    """Ids containing slashes stay addressable on every per-record route."""

    @pytest.mark.parametrize("path_id", ["team/svc", "team%2Fsvc"])
    def test_lifecycle(self, client, path_id):
        assert client.post("/v1/capabilities", json={"id": "team/svc", "ttl": 60}).status_code == 201

        assert client.get(f"/v1/capabilities/{path_id}").json()["id"] == "team/svc"
        assert client.post(f"/v1/capabilities/{path_id}/renew").status_code == 200
        assert client.delete(f"/v1/capabilities/{path_id}").status_code == 204
        assert client.get(f"/v1/capabilities/{path_id}").status_code == 404

    def test_id_ending_in_renew(self, client):
        client.post("/v1/capabilities", json={"id": "jobs/renew", "ttl": 60})

        assert client.get("/v1/capabilities/jobs/renew").json()["id"] == "jobs/renew"
        assert client.post("/v1/capabilities/jobs/renew/renew").json()["id"] == "jobs/renew"


# =============================================================================
# List
# =============================================================================


class TestListEndpoint:
    def test_list_live_records(self, client, clock):
        client.post("/v1/capabilities", json={"id": "short", "ttl": 5})
        client.post("/v1/capabilities", json={"id": "long", "ttl": 60})
        clock.advance(10)

        data = client.get("/v1/capabilities").json()

        assert data["count"] == 1
        assert [c["id"] for c in data["capabilities"]] == ["long"]

    def test_list_metadata_filter(self, client):
        client.post("/v1/capabilities", json={"id": "a", "metadata": {"zone": "eu"}, "ttl": 60})
        client.post("/v1/capabilities", json={"id": "b", "metadata": {"zone": "us"}, "ttl": 60})

        data = client.get("/v1/capabilities", params={"metadata.zone": "eu"}).json()

        assert [c["id"] for c in data["capabilities"]] == ["a"]

    def test_list_ignores_unrelated_params(self, client):
        client.post("/v1/capabilities", json={"id": "a", "ttl": 60})

        data = client.get("/v1/capabilities", params={"page": "2", "metadata.": "x"}).json()

        assert data["count"] == 1

    def test_list_empty(self, client):
        assert client.get("/v1/capabilities").json() == {"capabilities": [], "count": 0}


# =============================================================================
# Auth
# =============================================================================


class TestAuth:
    def test_mutations_require_api_key(self, auth_app):
        client = TestClient(auth_app)

        assert client.post("/v1/capabilities", json={"id": "a", "ttl": 60}).status_code == 401
        assert (
            client.post(
                "/v1/capabilities", json={"id": "a", "ttl": 60}, headers={"X-API-Key": "wrong"}
            ).status_code
            == 401
        )

    def test_mutations_with_valid_key(self, auth_app):
        client = TestClient(auth_app)
        headers = {"X-API-Key": "orch-key"}

        assert client.post("/v1/capabilities", json={"id": "a", "ttl": 60}, headers=headers).status_code == 201
        assert client.post("/v1/capabilities/a/renew", headers=headers).status_code == 200
        assert client.delete("/v1/capabilities/a", headers=headers).status_code == 204

    def test_reads_do_not_require_key(self, auth_app, registry):
        registry.register("a", {}, ttl=60)
        client = TestClient(auth_app)

        assert client.get("/v1/capabilities/a").status_code == 200
        assert client.get("/v1/capabilities").status_code == 200
        assert client.get("/health").status_code == 200


# =============================================================================
# Events and metrics
# =============================================================================


class TestEvents:
    @pytest.fixture
    def publisher(self, mock_redis):
        return RegistryEventPublisher(mock_redis)

    @pytest.fixture
    def events_client(self, config, registry, publisher):
        return TestClient(create_app(config=config, registry=registry, publisher=publisher))

    def test_lifecycle_events_published(self, events_client, publisher):
        publisher.publish = AsyncMock(return_value=True)

        events_client.post("/v1/capabilities", json={"id": "a", "ttl": 60})
        events_client.post("/v1/capabilities", json={"id": "a", "ttl": 60})
        events_client.post("/v1/capabilities/a/renew")
        events_client.delete("/v1/capabilities/a")

        event_types = [call.args[0] for call in publisher.publish.await_args_list]
        assert event_types == [
            "capability.registered",
            "capability.renewed",
            "capability.renewed",
            "capability.deregistered",
        ]

    def test_failed_operations_publish_nothing(self, events_client, publisher):
        publisher.publish = AsyncMock(return_value=True)

        events_client.delete("/v1/capabilities/ghost")

        publisher.publish.assert_not_awaited()

    def test_healthz_reports_event_backend(self, events_client, mock_redis):
        assert events_client.get("/healthz").json()["events"] == "connected"

        mock_redis.ping.side_effect = ConnectionError("down")
        assert events_client.get("/healthz").json()["events"] == "disconnected"


class TestMetrics:
    def test_metrics_text(self, client, clock):
        client.post("/v1/capabilities", json={"id": "a", "ttl": 5})
        client.post("/v1/capabilities", json={"id": "b", "ttl": 60})
        clock.advance(10)

        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "qcap_registry_live_capabilities 1" in response.text
        assert "qcap_registry_stored_capabilities 2" in response.text
        assert 'qcap_registry_operations_total{operation="register"} 2' in response.text
