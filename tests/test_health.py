"""
Tests for health, statistics and diagnostic endpoints.
"""
from fastapi.testclient import TestClient
from callbackrelay.config import get_settings
from callbackrelay.main import app
from callbackrelay.services.relay import engine

client = TestClient(app)


def test_health_snapshot():
    client.post("/callback", json={"actionId": "h1"}, headers={"User-Agent": "wallet"})

    r = client.get("/health")

    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "ok"
    assert data["service"] == "callbackrelay"
    assert data["webSocket"] == {"activeConnections": 0, "connectionIds": [], "socketCount": 0}
    assert data["httpPolling"]["storedCallbacks"] == 1
    assert data["httpPolling"]["callbackActionIds"] == ["h1"]
    assert data["httpPolling"]["oldestCallback"]["source"] == "wallet"
    assert data["system"]["uptime"] >= 0
    assert "rss" in data["system"]["memory"]


def test_health_readiness():
    r = client.get("/health/ready")
    assert r.status_code in [200, 503]
    data = r.json()
    assert data["service"] == "callbackrelay"
    assert set(data["checks"]) == {"disk_space", "memory"}


def test_stats_lists_ages():
    client.post("/callback", json={"actionId": "s1"})

    data = client.get("/stats").json()

    assert data["current"]["storedCallbacks"] == 1
    assert data["callbackAges"][0]["actionId"] == "s1"
    assert data["callbackAges"][0]["ageMs"] >= 0
    assert "uptime" in data["server"]


def test_debug_dumps_state():
    client.post("/callback", json={"actionId": "d1", "secret": "payload"})

    data = client.get("/debug").json()

    assert data["storedCallbacks"] == {"d1": {"actionId": "d1", "secret": "payload"}}
    assert data["callbackMetadata"]["d1"]["received"].endswith("Z")
    assert data["activeConnections"] == {}
    assert data["stats"]["storedCallbacks"] == 1


def test_cleanup_resets_state():
    client.post("/callback", json={"actionId": "c1"})
    client.post("/callback", json={"actionId": "c2"})

    r = client.post("/cleanup")

    assert r.status_code == 200
    assert r.json()["cleaned"] == {"webSocketConnections": 0, "storedCallbacks": 2}
    assert engine.counts() == (0, 0)


def test_diagnostics_can_be_disabled(monkeypatch):
    monkeypatch.setattr(get_settings(), "ENABLE_DIAGNOSTICS", False)

    assert client.get("/debug").status_code == 404
    assert client.post("/cleanup").status_code == 404
    assert client.get("/stats").status_code == 200


def test_metrics_endpoint():
    """Test Prometheus metrics endpoint."""
    client.post("/callback", json={"actionId": "m1"})

    r = client.get("/metrics/")

    assert r.status_code == 200
    content = r.text
    assert "http_requests_total" in content
    assert "app_up" in content
    assert "callbackrelay_callbacks_received_total" in content
    assert "callbackrelay_stored_callbacks" in content


def test_correlation_id_in_response():
    r = client.get("/health")
    assert "x-correlation-id" in r.headers


def test_correlation_id_propagation():
    correlation_id = "test-correlation-id-123"
    r = client.get("/health", headers={"x-correlation-id": correlation_id})
    assert r.headers["x-correlation-id"] == correlation_id
