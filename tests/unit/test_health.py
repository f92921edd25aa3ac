"""
Tests for health check endpoints.
"""

from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from app.main import app

client = TestClient(app)

HEALTHY_DB = {
    "healthy": True,
    "pool_stats": {"pool_size": 2, "pool_available": 2, "requests_waiting": 0},
}


def _configured():
    return (
        patch("app.routes.health.settings.TOKEN_ENCRYPTION_KEY", "key"),
        patch("app.routes.health.settings.GOOGLE_CLIENT_ID", "client-id"),
        patch("app.routes.health.settings.GOOGLE_CLIENT_SECRET", "client-secret"),
        patch("app.routes.health.settings.AI_API_KEY", "ai-key"),
    )


def test_healthz_endpoint():
    """Test the basic health check endpoint."""
    response = client.get("/healthz")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"


def test_readyz_endpoint_all_healthy():
    key, client_id, client_secret, ai_key = _configured()
    with (
        patch("app.routes.health.db_health_check", AsyncMock(return_value=HEALTHY_DB)),
        key,
        client_id,
        client_secret,
        ai_key,
    ):
        response = client.get("/readyz")

    assert response.status_code == 200
    data = response.json()
    assert data["overall_ok"] is True
    assert data["checks"]["database"]["ok"] is True
    assert data["checks"]["database"]["pool_size"] == 2
    assert isinstance(data["checks"]["database"]["latency_ms"], (int, float))
    assert data["checks"]["configuration"]["ok"] is True


def test_readyz_endpoint_database_unhealthy():
    """Readiness stays 200 but reports the database failure."""
    key, client_id, client_secret, ai_key = _configured()
    with (
        patch(
            "app.routes.health.db_health_check",
            AsyncMock(return_value={"healthy": False, "error": "Connection failed"}),
        ),
        key,
        client_id,
        client_secret,
        ai_key,
    ):
        response = client.get("/readyz")

    data = response.json()
    assert response.status_code == 200
    assert data["overall_ok"] is False
    assert data["checks"]["database"]["error"] == "Connection failed"


def test_readyz_endpoint_database_raises():
    key, client_id, client_secret, ai_key = _configured()
    with (
        patch("app.routes.health.db_health_check", AsyncMock(side_effect=RuntimeError("boom"))),
        key,
        client_id,
        client_secret,
        ai_key,
    ):
        response = client.get("/readyz")

    data = response.json()
    assert data["overall_ok"] is False
    assert data["checks"]["database"]["error"] == "RuntimeError: boom"


def test_readyz_endpoint_missing_configuration():
    with (
        patch("app.routes.health.db_health_check", AsyncMock(return_value=HEALTHY_DB)),
        patch("app.routes.health.settings.TOKEN_ENCRYPTION_KEY", None),
        patch("app.routes.health.settings.GOOGLE_CLIENT_ID", "client-id"),
        patch("app.routes.health.settings.GOOGLE_CLIENT_SECRET", "client-secret"),
        patch("app.routes.health.settings.AI_API_KEY", None),
    ):
        response = client.get("/readyz")

    data = response.json()
    assert data["overall_ok"] is False
    assert data["checks"]["configuration"]["issues"] == [
        "TOKEN_ENCRYPTION_KEY not set",
        "AI_API_KEY not set",
    ]


def test_request_id_is_echoed():
    response = client.get("/healthz", headers={"X-Request-ID": "req-abc"})

    assert response.headers["X-Request-ID"] == "req-abc"
