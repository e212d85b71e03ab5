"""Tests for the Logfire wiring."""

from decimal import Decimal

from library_lending.observability import (
    ObservabilityConfig,
    get_observability_config,
    initialize_observability,
    metrics,
)
from library_lending.observability.decorators import trace_tool


class TestObservabilityConfig:
    def test_environment_switches(self, monkeypatch):
        monkeypatch.setenv("LOGFIRE_ENABLED", "false")
        monkeypatch.setenv("LOGFIRE_SEND", "true")
        monkeypatch.delenv("LOGFIRE_ENVIRONMENT", raising=False)
        monkeypatch.setenv("ENVIRONMENT", "staging")

        config = ObservabilityConfig()

        assert config.enabled is False
        assert config.send_to_logfire is True
        assert config.environment == "staging"
        assert config.service_name == "library-lending"
        assert not config.is_production

    def test_defaults_keep_data_local(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        for key in ("LOGFIRE_TOKEN", "LOGFIRE_ENABLED", "LOGFIRE_SEND", "LOGFIRE_CONSOLE"):
            monkeypatch.delenv(key, raising=False)
        monkeypatch.delenv("LOGFIRE_ENVIRONMENT", raising=False)
        monkeypatch.delenv("ENVIRONMENT", raising=False)

        config = ObservabilityConfig()

        assert config.enabled is True
        assert config.send_to_logfire is False
        assert config.console_output is False
        assert config.environment == "development"

    def test_prefixed_environment_wins(self, monkeypatch):
        monkeypatch.setenv("LOGFIRE_ENVIRONMENT", "production")
        monkeypatch.setenv("ENVIRONMENT", "staging")

        assert ObservabilityConfig().is_production

    def test_disabled_initialization_keeps_config(self):
        config = ObservabilityConfig(enabled=False)

        initialize_observability(config)

        assert get_observability_config() is config


class TestTraceTool:
    async def test_result_passes_through(self):
        @trace_tool("echo")
        async def echo(arguments):
            return {"content": [{"type": "text", "text": arguments["text"]}], "data": {}}

        result = await echo({"text": "hello"})

        assert result["content"][0]["text"] == "hello"
        assert echo.__name__ == "echo"

    async def test_error_result_passes_through(self):
        @trace_tool("fail")
        async def fail(arguments):  # noqa: ARG001
            return {"isError": True, "errorType": "bad_request", "content": []}

        assert (await fail({}))["errorType"] == "bad_request"


class TestMetrics:
    def test_recorders_accept_lending_values(self):
        metrics.record_issue_created()
        metrics.record_issue_returned(Decimal("90.00"))
        metrics.record_payment(Decimal("50.00"), "CASH")
        metrics.record_overdue_flipped(0)
        metrics.record_sweep_failure("fines")
