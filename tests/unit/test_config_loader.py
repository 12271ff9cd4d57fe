"""Unit tests for the config loader."""

import json
from pathlib import Path

import pydantic
import pytest

from query_router.config.loader import CONFIG_PATH_ENV, load_config

REPO_ROOT = Path(__file__).resolve().parents[2]


def write_config(tmp_path, document):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(document), encoding="utf-8")
    return path


def test_load_resolves_env_placeholders(tmp_path, monkeypatch):
    monkeypatch.setenv("RECORDS_URL", "https://records.internal")
    monkeypatch.setenv("RECORDS_TOKEN", "s3cret")
    path = write_config(
        tmp_path,
        {
            "storeConfig": {
                "provider": "http",
                "baseUrl": "${RECORDS_URL}/v2",
                "apiKey": "${RECORDS_TOKEN}",
            },
            "routingConfig": {"confidenceFloor": 0.7, "retry": {"maxAttempts": 5}},
            "rateLimitConfig": {"dailyModelCalls": 10, "backend": "redis"},
        },
    )

    config = load_config(path)

    assert config.store_config.base_url == "https://records.internal/v2"
    assert config.store_config.api_key == "s3cret"
    assert config.routing_config.confidence_floor == 0.7
    assert config.routing_config.retry.max_attempts == 5
    assert config.rate_limit_config.daily_model_calls == 10
    assert config.rate_limit_config.backend == "redis"
    assert config.capability_config is None


def test_unknown_placeholder_is_left_untouched(tmp_path, monkeypatch):
    monkeypatch.delenv("MISSING_VAR", raising=False)
    path = write_config(tmp_path, {"storeConfig": {"path": "${MISSING_VAR}/records.json"}})

    assert load_config(path).store_config.path == "${MISSING_VAR}/records.json"


def test_path_comes_from_environment(tmp_path, monkeypatch):
    path = write_config(tmp_path, {"responseConfig": {"pageSize": 25}})
    monkeypatch.setenv(CONFIG_PATH_ENV, str(path))

    assert load_config().response_config.page_size == 25


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "absent.json")


def test_non_object_document(tmp_path):
    with pytest.raises(ValueError, match="JSON object"):
        load_config(write_config(tmp_path, ["not", "an", "object"]))


def test_invalid_values_are_rejected(tmp_path):
    path = write_config(tmp_path, {"rateLimitConfig": {"dailyModelCalls": -1}})

    with pytest.raises(pydantic.ValidationError):
        load_config(path)


def test_example_config_is_valid(monkeypatch):
    monkeypatch.setenv("AZURE_OPENAI_API_KEY", "key")
    config = load_config(REPO_ROOT / "config.example.json")

    assert config.capability_config is not None
    assert config.capability_config.low_model in config.llm_config.models
    assert config.capability_config.high_model in config.llm_config.models
