"""Unit tests for configuration loading, validation and env overrides."""

from __future__ import annotations

import json

import pytest

from src.relay.config import (
    ConfigError,
    RelayConfig,
    Settings,
    apply_environment_overrides,
    load_config,
    write_example_config,
)
from src.relay.delivery.schemas import RetryStrategy


def _settings(**overrides) -> Settings:
    values = {
        "WEBHOOK_SECRET": "",
        "WEBHOOK_ENVIRONMENT": "",
        "SLACK_WEBHOOK_URL": "",
        "DISCORD_WEBHOOK_URL": "",
        "AIRTABLE_API_KEY": "",
        "SMTP_PASSWORD": "",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def _raw_config(**overrides) -> dict:
    raw = {
        "environments": {
            "test": {"url": "https://hooks.example.com/test", "headers": {"X-Api-Key": "t"}},
            "production": {"url": "https://hooks.example.com/prod"},
        },
        "webhook": {"active_environment": "test", "max_retries": 2},
    }
    raw.update(overrides)
    return raw


def _write(tmp_path, raw) -> str:
    path = tmp_path / "relay-config.json"
    path.write_text(raw if isinstance(raw, str) else json.dumps(raw))
    return str(path)


class TestLoadConfig:
    def test_valid_file(self, tmp_path):
        config = load_config(_write(tmp_path, _raw_config()), _settings())

        assert config.webhook.active_environment == "test"
        assert config.webhook.max_retries == 2
        assert config.webhook.retry_strategy == RetryStrategy.EXPONENTIAL
        assert config.monitoring.lookback_days == 3
        assert config.outputs.enabled_destinations() == ["webhook"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError) as exc_info:
            load_config(tmp_path / "nope.json", _settings())
        assert "not found" in str(exc_info.value)

    def test_invalid_json(self, tmp_path):
        with pytest.raises(ConfigError) as exc_info:
            load_config(_write(tmp_path, "{oops"), _settings())
        assert "Invalid JSON" in str(exc_info.value)

    def test_non_object_root(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(_write(tmp_path, "[1, 2]"), _settings())

    def test_all_errors_reported_with_paths(self, tmp_path):
        raw = _raw_config()
        raw["environments"]["test"]["url"] = "ftp://nope"
        raw["webhook"]["max_retries"] = 50
        raw["monitoring"] = {"lookback_days": 0}

        with pytest.raises(ConfigError) as exc_info:
            load_config(_write(tmp_path, raw), _settings())

        paths = {path for path, _message in exc_info.value.errors}
        assert {
            "environments.test.url",
            "webhook.max_retries",
            "monitoring.lookback_days",
        } <= paths

    def test_unknown_keys_rejected(self, tmp_path):
        with pytest.raises(ConfigError) as exc_info:
            load_config(_write(tmp_path, _raw_config(surprise=True)), _settings())
        assert exc_info.value.errors[0][0] == "surprise"

    def test_unknown_active_environment(self, tmp_path):
        raw = _raw_config(webhook={"active_environment": "staging"})
        with pytest.raises(ConfigError) as exc_info:
            load_config(_write(tmp_path, raw), _settings())

        path, message = exc_info.value.errors[0]
        assert path == "webhook.active_environment"
        assert "production, test" in message

    def test_enabled_channel_requires_url(self, tmp_path):
        raw = _raw_config(notifications={"slack": {"enabled": True}})
        with pytest.raises(ConfigError) as exc_info:
            load_config(_write(tmp_path, raw), _settings())
        assert exc_info.value.errors[0][0] == "notifications.slack"


class TestEnvironmentOverrides:
    def test_env_values_win(self, tmp_path):
        raw = _raw_config(
            notifications={"slack": {"enabled": True, "webhook_url": "https://file.example.com"}}
        )
        settings = _settings(
            WEBHOOK_SECRET="env-secret",
            WEBHOOK_ENVIRONMENT="production",
            SLACK_WEBHOOK_URL="https://hooks.slack.com/services/env",
        )

        config = load_config(_write(tmp_path, raw), settings)

        assert config.webhook.secret == "env-secret"
        assert config.webhook.active_environment == "production"
        assert config.notifications.slack.webhook_url == "https://hooks.slack.com/services/env"

    def test_overrides_do_not_mutate_input(self):
        raw = _raw_config()
        merged = apply_environment_overrides(raw, _settings(AIRTABLE_API_KEY="k"))

        assert merged["outputs"]["airtable"]["api_key"] == "k"
        assert "outputs" not in raw

    def test_empty_env_keeps_file_value(self):
        raw = _raw_config(webhook={"active_environment": "test", "secret": "file"})
        merged = apply_environment_overrides(raw, _settings())
        assert merged["webhook"]["secret"] == "file"


class TestDeliveryConfig:
    def test_resolves_active_environment(self):
        config = RelayConfig.model_validate(
            _raw_config(webhook={"active_environment": "test", "secret": "s", "retry_delay": 2})
        )

        delivery = config.delivery_config()

        assert delivery.url == "https://hooks.example.com/test"
        assert delivery.headers == {"X-Api-Key": "t"}
        assert delivery.secret == "s"
        assert delivery.retry_delay == 2
        assert delivery.timeout == 30

    def test_output_url_and_headers_override_environment(self):
        config = RelayConfig.model_validate(
            _raw_config(
                outputs={
                    "webhook": {
                        "url": "https://override.example.com/hook",
                        "headers": {"X-Api-Key": "o", "X-Extra": "1"},
                    }
                }
            )
        )

        delivery = config.delivery_config()

        assert delivery.url == "https://override.example.com/hook"
        assert delivery.headers == {"X-Api-Key": "o", "X-Extra": "1"}


class TestExampleConfig:
    def test_example_config_loads(self, tmp_path):
        path = tmp_path / "example.json"
        write_example_config(path)

        config = load_config(path, _settings())

        assert set(config.environments) == {"test", "production"}
        assert config.template_validation.enabled is False
