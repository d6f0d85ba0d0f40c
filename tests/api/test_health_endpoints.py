from __future__ import annotations

from fastapi import FastAPI
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError


class _DownRedis:
    async def ping(self) -> bool:
        raise RedisConnectionError("connection refused")


class _UpRedis:
    async def ping(self) -> bool:
        return True


def test_health_without_redis(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    # In tests, Redis is not configured: host sessions live in memory.
    assert body["status"] == "ok"
    assert body["checks"] == {"redis": "not_configured"}
    assert set(body["login_flows"]) == {"total", "failed", "failure_ratio"}


def test_health_counts_login_flows(client: TestClient) -> None:
    before = client.get("/health").json()["login_flows"]
    client.get("/c/shoes", follow_redirects=False)
    after = client.get("/health").json()["login_flows"]

    assert after["total"] - before["total"] == 1
    assert 0.0 <= after["failure_ratio"] <= 1.0


def test_health_degraded_when_redis_down(client: TestClient, app: FastAPI) -> None:
    app.state.components.redis = _DownRedis()
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "degraded"
    assert resp.json()["checks"]["redis"] == "degraded"


def test_ready_ok_without_redis(client: TestClient) -> None:
    assert client.get("/ready").status_code == 200


def test_ready_ok_with_live_redis(client: TestClient, app: FastAPI) -> None:
    app.state.components.redis = _UpRedis()
    assert client.get("/ready").status_code == 200


def test_ready_unavailable_when_redis_down(client: TestClient, app: FastAPI) -> None:
    app.state.components.redis = _DownRedis()
    assert client.get("/ready").status_code == 503
