"""Pytest configuration and fixtures."""

from datetime import date
from unittest.mock import AsyncMock

import pytest

from query_router.config.models import RetryConfig, RouterConfig, RoutingConfig
from query_router.core.catalog import Category, Severity, Status
from query_router.memory.intent_cache import InMemoryIntentCache
from query_router.memory.rate_counter import InMemoryRateCounter
from query_router.models.domain import Record
from query_router.providers.base import BaseLanguageModel, BaseRecordStore
from query_router.providers.store.memory_store import InMemoryRecordStore
from query_router.services.events import EventEmitter
from query_router.services.query_router import QueryRouter

TODAY = date(2025, 6, 1)


def make_record(record_id: str, **overrides) -> Record:
    """Build a record with sensible defaults."""
    values = {
        "id": record_id,
        "title": f"Finding {record_id}",
        "severity": Severity.MEDIUM,
        "status": Status.OPEN,
        "category": Category.OFFICE_BUILDING,
        "department": "Operations",
        "year": 2022,
        "identified_on": date(2022, 1, 15),
        "description": "Routine observation.",
    }
    values.update(overrides)
    return Record(**values)


@pytest.fixture
def record_factory():
    return make_record


@pytest.fixture
def sample_records():
    return [
        make_record(
            "F-101",
            title="Fire exits blocked by stored furniture",
            severity=Severity.CRITICAL,
            status=Status.OPEN,
            category=Category.HOTEL,
            department="Facilities",
            year=2024,
            identified_on=date(2024, 3, 12),
            description="Two fire exits obstructed during inspection.",
            tags=["fire safety"],
        ),
        make_record(
            "F-102",
            title="Vendor invoices approved without purchase orders",
            severity=Severity.HIGH,
            status=Status.IN_PROGRESS,
            category=Category.HOSPITAL,
            department="Procurement",
            year=2024,
            identified_on=date(2024, 5, 2),
            description="Invoices lacked a matching purchase order.",
        ),
        make_record(
            "F-103",
            title="Access reviews not performed",
            severity=Severity.MEDIUM,
            status=Status.CLOSED,
            category=Category.OFFICE_BUILDING,
            department="IT",
            year=2023,
            identified_on=date(2023, 9, 18),
        ),
        make_record(
            "F-104",
            title="Handrail height below code",
            severity=Severity.LOW,
            status=Status.DEFERRED,
            category=Category.SCHOOL,
            department="Engineering",
            year=2023,
            identified_on=date(2023, 11, 7),
        ),
    ]


@pytest.fixture
def memory_store(sample_records):
    return InMemoryRecordStore(records=sample_records)


@pytest.fixture
def mock_store():
    """Mock record store."""
    return AsyncMock(spec=BaseRecordStore)


@pytest.fixture
def mock_model():
    """Mock language model answering every prompt."""
    model = AsyncMock(spec=BaseLanguageModel)
    model.generate.return_value = "Fire exits are the main risk [F-101]."
    model.extract_structured.return_value = {}
    return model


@pytest.fixture
def mock_emitter():
    """Mock EventEmitter."""
    return AsyncMock(spec=EventEmitter)


@pytest.fixture
def router_config():
    """Router config with single-attempt retries and pattern-only extraction."""
    return RouterConfig(
        routing_config=RoutingConfig(
            model_assisted_extraction=False,
            retry=RetryConfig(max_attempts=1, min_wait=0, max_wait=0),
        )
    )


@pytest.fixture
def rate_counter():
    return InMemoryRateCounter(today=lambda: TODAY)


@pytest.fixture
def intent_cache():
    return InMemoryIntentCache(max_entries=100)


@pytest.fixture
def query_router(memory_store, mock_model, router_config, rate_counter, intent_cache):
    return QueryRouter(
        memory_store,
        mock_model,
        config=router_config,
        rate_counter=rate_counter,
        intent_cache=intent_cache,
    )
