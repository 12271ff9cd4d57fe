"""Tests for HttpClientPool."""

import httpx
import pytest

from query_router.core.http_client_pool import HttpClientPool


def test_get_lazy_init_and_reuse():
    """Clients are created on first access and shared afterwards."""
    pool = HttpClientPool()

    assert pool.providers == []

    client = pool.get("store", base_url="http://records.test", timeout=5.0)

    assert isinstance(client, httpx.AsyncClient)
    assert str(client.base_url).startswith("http://records.test")
    assert client.timeout == httpx.Timeout(5.0)
    # Options on later calls are ignored
    assert pool.get("store", base_url="http://other.test") is client
    assert pool.providers == ["store"]


def test_providers_get_separate_clients():
    pool = HttpClientPool()

    assert pool.get("store") is not pool.get("azure")
    assert pool.providers == ["azure", "store"]


@pytest.mark.asyncio
async def test_close_all():
    """Test closing all resources."""
    pool = HttpClientPool()
    store_client = pool.get("store")
    model_client = pool.get("azure")

    await pool.close_all()

    assert store_client.is_closed
    assert model_client.is_closed
    assert pool.providers == []
