"""Tests for health check endpoints."""

from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    """Test basic health check."""
    response = await client.get("/api/v1/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "version" in data
    assert "environment" in data


@pytest.mark.asyncio
async def test_detailed_health_check(client: AsyncClient):
    with patch(
        "app.api.v1.endpoints.health.check_redis_connection", AsyncMock(return_value=True)
    ):
        response = await client.get("/api/v1/health/detailed")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["document_store"] == "healthy"
    assert data["document_store_backend"] == "memory"
    assert data["redis"] == "healthy"


@pytest.mark.asyncio
async def test_detailed_health_check_degraded(client: AsyncClient):
    with patch(
        "app.api.v1.endpoints.health.check_redis_connection", AsyncMock(return_value=False)
    ):
        response = await client.get("/api/v1/health/detailed")

    assert response.status_code == 200
    assert response.json()["status"] == "degraded"
    assert response.json()["redis"] == "unhealthy"


@pytest.mark.asyncio
async def test_ping(client: AsyncClient):
    response = await client.get("/api/v1/ping")

    assert response.status_code == 200
    assert response.json() == {"message": "pong"}


@pytest.mark.asyncio
async def test_request_id_header(client: AsyncClient):
    response = await client.get("/api/v1/ping", headers={"X-Request-ID": "abc123"})

    assert response.headers["X-Request-ID"] == "abc123"
    assert "X-Process-Time" in response.headers
