"""HTTP tests for the query router API."""

import json
from datetime import date

import pytest
from fastapi.testclient import TestClient

from query_router.config.models import RetryConfig, RouterConfig, RoutingConfig
from query_router.core.http_client_pool import HttpClientPool
from query_router.main import create_app
from query_router.memory.intent_cache import InMemoryIntentCache
from query_router.memory.rate_counter import InMemoryRateCounter
from query_router.services.exceptions import StoreUnavailableError
from query_router.services.router_manager import RouterManager, RouterProviders


def build_client(store, model=None):
    config = RouterConfig(
        routing_config=RoutingConfig(
            model_assisted_extraction=False,
            retry=RetryConfig(max_attempts=1, min_wait=0, max_wait=0),
        )
    )
    app = create_app()
    # The lifespan is not run; wire the manager directly
    app.state.router_manager = RouterManager(
        config,
        HttpClientPool(),
        providers=RouterProviders(
            store=store,
            model=model,
            rate_counter=InMemoryRateCounter(today=lambda: date(2025, 6, 1)),
            intent_cache=InMemoryIntentCache(),
        ),
    )
    return TestClient(app)


@pytest.fixture
def client(memory_store, mock_model):
    return build_client(memory_store, mock_model)


def parse_events(body: str) -> list[dict]:
    return [
        json.loads(line.removeprefix("data: "))
        for line in body.splitlines()
        if line.startswith("data: ")
    ]


def test_query_simple(client):
    response = client.post(
        "/api/v1/query", json={"query": "Show Critical findings in Hotel from 2024"}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["kind"] == "simple"
    assert [r["id"] for r in body["records"]] == ["F-101"]
    assert body["metadata"]["filters"]["severityLevels"] == ["Critical"]
    assert "tokensUsed" not in body["metadata"]
    assert "sources" not in body


def test_query_complex_uses_header_identity(client, mock_model):
    response = client.post(
        "/api/v1/query",
        json={"query": "Analyze critical hotel findings", "thinkingMode": "high"},
        headers={"X-User-Id": "alice"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["kind"] == "complex"
    assert body["sources"] == [
        {"id": "F-101", "title": "Fire exits blocked by stored furniture"}
    ]
    assert body["metadata"]["tokensUsed"] > 0
    assert mock_model.generate.await_args.args[1] == "high"


def test_query_forced_hybrid(client):
    response = client.post(
        "/api/v1/query/hybrid", json={"query": "Show findings from 2031 and explain"}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["kind"] == "hybrid"
    assert body["analysis"]["performed"] is False
    assert body["metadata"]["confidence"] == 1.0


def test_unknown_kind_is_rejected(client):
    response = client.post("/api/v1/query/sideways", json={"query": "anything"})

    assert response.status_code == 422


def test_classify(client):
    response = client.post(
        "/api/v1/classify", json={"query": "recommend priorities based on 2024 findings trends"}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["kind"] == "complex"
    assert body["requiresModel"] is True
    assert "trends" in body["triggerTerms"]


def test_blank_query_is_a_validation_error(client):
    response = client.post("/api/v1/query", json={"query": "   "})

    assert response.status_code == 422
    assert response.json()["code"] == "VALIDATION"


def test_store_failure_maps_to_503(mock_store):
    mock_store.query.side_effect = StoreUnavailableError("connection refused")
    client = build_client(mock_store)

    response = client.post("/api/v1/query", json={"query": "Show open hotel findings"})

    assert response.status_code == 503
    body = response.json()
    assert body["code"] == "DATABASE"
    assert body["suggestion"]


def test_stream_emits_steps_then_done(client):
    response = client.post(
        "/api/v1/query/stream", json={"query": "Show Critical findings in Hotel from 2024"}
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    events = parse_events(response.text)
    assert events[0] == {"type": "step_start", "step": "classifying"}
    assert events[-1]["type"] == "done"
    assert events[-1]["data"]["kind"] == "simple"
    assert {"type": "step_start", "step": "executing_simple"} in events


def test_stream_reports_errors(mock_store):
    mock_store.query.side_effect = StoreUnavailableError("connection refused")
    client = build_client(mock_store)

    response = client.post("/api/v1/query/stream", json={"query": "Show open hotel findings"})

    events = parse_events(response.text)
    assert events[-1]["type"] == "error"
    assert events[-1]["data"]["code"] == "DATABASE"


def test_health(client):
    response = client.get("/api/v1/health")

    assert response.status_code == 200
    assert response.json() == {
        "status": "ok",
        "backends": {"store": "memory", "model": None, "rateLimit": "memory", "cache": "memory"},
    }
