"""Tests for kubediag.config: environment variable loading and validation.

Covers:
  - Default values when no variables are set
  - Each config field read from its corresponding variable
  - Numeric clamping (min/max bounds for int fields)
  - Invalid values raise ValueError for validated fields
  - Boolean parsing for various truthy/falsy strings
"""

from __future__ import annotations

import pytest

from kubediag.config import load_config
from kubediag.models.config import KubeDiagConfig, ReasoningConfig

_ALL_VARS = (
    "AI_API_URL",
    "AI_API_KEY",
    "AI_MODEL",
    "KUBEDIAG_REASONING_TIMEOUT",
    "KUBEDIAG_HTTP_TIMEOUT",
    "KUBEDIAG_WORKERS",
    "KUBEDIAG_WATCH_NAMESPACE",
    "KUBEDIAG_LOG_LEVEL",
    "KUBEDIAG_API_PORT",
    "KUBEDIAG_API_ENABLED",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ALL_VARS:
        monkeypatch.delenv(name, raising=False)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


class TestConfigDefaults:
    def test_returns_kubediag_config_type(self) -> None:
        assert isinstance(load_config(), KubeDiagConfig)

    def test_reasoning_unconfigured_by_default(self) -> None:
        config = load_config()
        assert config.reasoning.endpoint == ""
        assert config.reasoning.api_key == ""
        assert config.reasoning.configured is False

    def test_reasoning_defaults(self) -> None:
        config = load_config()
        assert config.reasoning.temperature == 0.2
        assert config.reasoning.timeout_seconds == 45
        assert config.reasoning.http_timeout_seconds == 30

    def test_controller_defaults(self) -> None:
        config = load_config()
        assert config.controller.workers == 4
        assert config.controller.namespace == ""
        assert config.controller.default_tail_lines == 100

    def test_api_defaults(self) -> None:
        config = load_config()
        assert config.api.enabled is True
        assert config.api.port == 8081

    def test_log_default_level(self) -> None:
        assert load_config().log.level == "info"


# ---------------------------------------------------------------------------
# Reading values
# ---------------------------------------------------------------------------


class TestConfigFromEnv:
    def test_reasoning_endpoint_credentials_and_model(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AI_API_URL", " https://llm.example.com/v1/chat/completions ")
        monkeypatch.setenv("AI_API_KEY", "sk-123")
        monkeypatch.setenv("AI_MODEL", "gpt-4o-mini")
        config = load_config()
        assert config.reasoning.endpoint == "https://llm.example.com/v1/chat/completions"
        assert config.reasoning.api_key == "sk-123"
        assert config.reasoning.model == "gpt-4o-mini"
        assert config.reasoning.configured is True

    def test_watch_namespace(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEDIAG_WATCH_NAMESPACE", "payments")
        assert load_config().controller.namespace == "payments"

    def test_workers(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEDIAG_WORKERS", "8")
        assert load_config().controller.workers == 8

    def test_log_level_case_insensitive(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEDIAG_LOG_LEVEL", "DEBUG")
        assert load_config().log.level == "debug"


# ---------------------------------------------------------------------------
# Clamping
# ---------------------------------------------------------------------------


class TestConfigClamping:
    def test_reasoning_timeout_clamped_low(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEDIAG_REASONING_TIMEOUT", "1")
        assert load_config().reasoning.timeout_seconds == 5

    def test_reasoning_timeout_clamped_high(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEDIAG_REASONING_TIMEOUT", "9999")
        assert load_config().reasoning.timeout_seconds == 300

    def test_workers_clamped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEDIAG_WORKERS", "0")
        assert load_config().controller.workers == 1
        monkeypatch.setenv("KUBEDIAG_WORKERS", "1000")
        assert load_config().controller.workers == 64

    def test_api_port_clamped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEDIAG_API_PORT", "80")
        assert load_config().api.port == 1024


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestConfigValidation:
    def test_non_integer_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEDIAG_WORKERS", "four")
        with pytest.raises(ValueError, match="KUBEDIAG_WORKERS"):
            load_config()

    def test_unknown_log_level_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEDIAG_LOG_LEVEL", "verbose")
        with pytest.raises(ValueError, match="Invalid log level"):
            load_config()

    def test_unknown_boolean_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEDIAG_API_ENABLED", "maybe")
        with pytest.raises(ValueError, match="Invalid boolean"):
            load_config()

    @pytest.mark.parametrize("raw", ["1", "true", "YES", "on"])
    def test_truthy_booleans(self, monkeypatch: pytest.MonkeyPatch, raw: str) -> None:
        monkeypatch.setenv("KUBEDIAG_API_ENABLED", raw)
        assert load_config().api.enabled is True

    @pytest.mark.parametrize("raw", ["0", "false", "No", "off", ""])
    def test_falsy_booleans(self, monkeypatch: pytest.MonkeyPatch, raw: str) -> None:
        monkeypatch.setenv("KUBEDIAG_API_ENABLED", raw)
        assert load_config().api.enabled is False


class TestReasoningConfig:
    def test_configured_requires_endpoint_and_key(self) -> None:
        assert ReasoningConfig(endpoint="https://x", api_key="").configured is False
        assert ReasoningConfig(endpoint="", api_key="k").configured is False
        assert ReasoningConfig(endpoint="https://x", api_key="k").configured is True
