"""
Unit tests for health endpoints.
"""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_health_check(async_client: AsyncClient) -> None:
    """Test basic health check endpoint."""
    response = await async_client.get("/api/v1/health")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "healthy"
    assert "timestamp" in data


@pytest.mark.asyncio
async def test_readiness_check_opens_a_store_transaction(async_client: AsyncClient) -> None:
    response = await async_client.get("/api/v1/health/ready")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "ready"
    assert data["checks"] == {"app": True, "store": True}
    assert data["team_cache"]["total_entries"] == 0
    assert data["team_cache"]["max_entries"] > 0


@pytest.mark.asyncio
async def test_liveness_check(async_client: AsyncClient) -> None:
    """Test liveness check endpoint."""
    response = await async_client.get("/api/v1/health/live")
    assert response.status_code == 200
    assert response.json()["status"] == "alive"


@pytest.mark.asyncio
async def test_api_info_lists_issue_routes(async_client: AsyncClient) -> None:
    response = await async_client.get("/api")
    assert response.status_code == 200

    endpoints = response.json()["endpoints"]
    assert endpoints["aep_summary"] == "/api/v1/teams/{team_id}/aep-summary"
    assert "review" in endpoints


@pytest.mark.asyncio
async def test_request_id_is_echoed(async_client: AsyncClient) -> None:
    response = await async_client.get("/api/v1/health/live", headers={"X-Request-Id": "req_test"})
    assert response.headers["X-Request-Id"] == "req_test"

    generated = await async_client.get("/api/v1/health/live")
    assert generated.headers["X-Request-Id"].startswith("req_")
