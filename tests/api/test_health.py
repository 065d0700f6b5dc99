from __future__ import annotations

from fastapi.testclient import TestClient


def test_health_without_backends(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {
        "status": "ok",
        "checks": {"database": "not_configured", "redis": "not_configured"},
    }


def test_ready_without_database(client: TestClient) -> None:
    assert client.get("/ready").status_code == 200


def test_health_is_public(client: TestClient) -> None:
    resp = client.get("/health", headers={"Authorization": "Bearer garbage"})
    assert resp.status_code == 200
