"""Tests for client options, environment overrides and callback slots."""

from __future__ import annotations

import pytest

from pigeon.errors import InvalidArgument
from pigeon.resilience.breakers import BreakerConfig
from pigeon.settings import (
    Callbacks,
    ClientOptions,
    get_env_overrides,
    load_client_options,
)


class TestClientOptions:
    def test_defaults(self):
        options = ClientOptions()
        assert options.request_timeout == 60
        assert options.request_open_timeout == 10
        assert options.retry_threshold == 3
        assert options.retryable is True
        assert options.monitoring_sink == "memory"
        assert options.breaker_config() == BreakerConfig()

    def test_unknown_key(self):
        with pytest.raises(InvalidArgument, match="unknown option timeout_ms"):
            ClientOptions.from_mapping({"timeout_ms": 5})

    @pytest.mark.parametrize(
        "options",
        [
            {"request_timeout": -1},
            {"error_threshold": 150},
            {"time_window": 0},
            {"volume_threshold": 0},
            {"retry_threshold": "several"},
            {"monitoring_sink": "statsd"},
        ],
    )
    def test_invalid_values(self, options):
        with pytest.raises(InvalidArgument):
            ClientOptions.from_mapping(options)

    def test_frozen(self):
        options = ClientOptions()
        with pytest.raises(Exception):
            options.retry_threshold = 9

    def test_with_value(self):
        options = ClientOptions()
        updated = options.with_value("sleep_window", 2)
        assert updated.sleep_window == 2
        assert options.sleep_window == 10
        with pytest.raises(InvalidArgument, match="unknown option"):
            options.with_value("nope", 1)

    def test_breaker_config(self):
        config = ClientOptions.from_mapping(
            {"volume_threshold": 4, "error_threshold": 25, "time_window": 3, "sleep_window": 1}
        ).breaker_config()
        assert config == BreakerConfig(4, 25, 3, 1)

    def test_request_defaults(self):
        defaults = ClientOptions.from_mapping({"request_timeout": 5, "ssl_verify": False}).request_defaults()
        assert defaults == {"open_timeout": 10, "read_timeout": 5, "ssl_verify": False}


class TestEnvironment:
    def test_no_overrides(self):
        assert get_env_overrides() == {}
        assert load_client_options() == ClientOptions()

    def test_env_values_applied(self, monkeypatch):
        monkeypatch.setenv("PIGEON_REQUEST_TIMEOUT", "30")
        monkeypatch.setenv("pigeon_monitoring", "false")
        options = load_client_options()
        assert options.request_timeout == 30
        assert options.monitoring is False

    def test_explicit_overrides_win(self, monkeypatch):
        monkeypatch.setenv("PIGEON_RETRY_THRESHOLD", "7")
        assert load_client_options(retry_threshold=2).retry_threshold == 2

    def test_invalid_env_value(self, monkeypatch):
        monkeypatch.setenv("PIGEON_VOLUME_THRESHOLD", "lots")
        with pytest.raises(InvalidArgument, match="PIGEON_"):
            load_client_options()


class TestCallbacks:
    def test_empty(self):
        assert Callbacks.from_mapping(None) == Callbacks()

    def test_slots_and_aliases(self):
        def opened(name):
            return name

        callbacks = Callbacks.from_mapping({"CircuitBreakerOpen": opened, "on_retry_success": print})
        assert callbacks.on_circuit_open is opened
        assert callbacks.on_retry_success is print
        assert callbacks.on_http_error is None

    def test_unknown_slot(self):
        with pytest.raises(InvalidArgument, match="unknown callback Timeout"):
            Callbacks.from_mapping({"Timeout": print})

    def test_not_callable(self):
        with pytest.raises(InvalidArgument, match="not callable"):
            Callbacks.from_mapping({"HttpError": "log it"})
