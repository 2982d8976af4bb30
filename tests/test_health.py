"""Health endpoint tests."""


def test_health_returns_ok(client):
    """GET /health reports the engine and live connection count."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "engine": True, "connections": 0}
