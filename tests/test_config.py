"""Config: env loading, duration parsing, validation."""
from __future__ import annotations

import pytest

from conftest import make_config
from upgrade_responder.config import load_config, parse_duration
from upgrade_responder.errors import ConfigurationError


@pytest.mark.parametrize(
    "value, seconds",
    [("1h", 3600), ("30m", 1800), ("1h30m", 5400), ("1.5h", 5400), ("500ms", 0.5), ("0", 0), ("-1m", -60), ("2h0m10s", 7210)],
)
def test_parse_duration(value, seconds):
    assert parse_duration(value) == pytest.approx(seconds)


@pytest.mark.parametrize("value", ["", "h", "1", "1x", "1h 30m", "one hour", "1h-30m"])
def test_parse_duration_rejects(value):
    with pytest.raises(ValueError):
        parse_duration(value)


def test_load_config_from_env(monkeypatch):
    monkeypatch.setenv("APPLICATION_NAME", "longhorn")
    monkeypatch.setenv("QUERY_PERIOD", "30m")
    monkeypatch.setenv("CACHE_SIZE", "not-a-number")
    monkeypatch.setenv("CACHE_SYNC_INTERVAL", "2.5")
    monkeypatch.setenv("DEBUG", "true")
    monkeypatch.delenv("INFLUXDB_URL", raising=False)

    cfg = load_config()
    assert cfg.database == "longhorn_upgrade_responder"
    assert cfg.query_period_seconds == 1800
    assert cfg.cache_size == 100
    assert cfg.cache_sync_interval_s == 2.5
    assert cfg.port == 8314
    assert cfg.debug is True
    assert cfg.telemetry_enabled is False


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"response_config_path": ""}, "response configuration"),
        ({"request_schema_path": ""}, "request schema"),
        ({"application_name": ""}, "application name"),
        ({"query_period": "1 hour"}, "query period"),
        ({"cache_size": 0}, "cache size"),
        ({"cache_sync_interval_s": 0}, "sync interval"),
    ],
)
def test_validate(overrides, message):
    with pytest.raises(ConfigurationError, match=message):
        make_config(**overrides).validate()


def test_valid_config():
    make_config().validate()
