"""Relay configuration.

Two layers:

- ``Settings`` (pydantic BaseSettings): process-level settings and secret
  overrides read from environment variables and ``.env``.
- ``RelayConfig`` (pydantic BaseModel): the JSON configuration file,
  validated in a single parse step. Environment values win over file
  values; the merged document is validated as a whole so every problem is
  reported at once with its dotted field path.
"""

from __future__ import annotations

import json
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.relay.delivery.schemas import (
    DeliveryConfig,
    OutputConfig,
    RetryStrategy,
    check_http_url,
)
from src.relay.meetings.schemas import OrganizationConfig, TemplateValidationConfig
from src.relay.notifications.schemas import NotificationConfig

logger = structlog.get_logger(__name__)


class Environment(str, Enum):
    development = "development"
    staging = "staging"
    production = "production"


class Settings(BaseSettings):
    """Process settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # Environment
    ENVIRONMENT: Environment = Environment.development

    # Logging
    LOG_LEVEL: str = "INFO"

    # Config file and meeting-data source factory ("package.module:factory")
    RELAY_CONFIG_PATH: str = "./relay-config.json"
    RELAY_SOURCE: str = ""

    # Secret overrides -- empty means "use the config file value"
    WEBHOOK_SECRET: str = ""
    WEBHOOK_ENVIRONMENT: str = ""
    SLACK_WEBHOOK_URL: str = ""
    DISCORD_WEBHOOK_URL: str = ""
    AIRTABLE_API_KEY: str = ""
    SMTP_PASSWORD: str = ""


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()


class ConfigError(Exception):
    """Invalid or missing configuration.

    Args:
        errors: ``(path, message)`` pairs, one per problem found.
    """

    def __init__(self, errors: list[tuple[str, str]]) -> None:
        self.errors = errors
        lines = "\n".join(f"  - {path}: {message}" for path, message in errors)
        super().__init__(f"Configuration validation failed:\n{lines}")

    @classmethod
    def from_validation_error(cls, exc: ValidationError) -> ConfigError:
        return cls(
            [
                (
                    ".".join(str(part) for part in err["loc"]) or "(root)",
                    err["msg"],
                )
                for err in exc.errors()
            ]
        )


# ── Config File Models ───────────────────────────────────────────────────────


class EnvironmentTarget(BaseModel):
    """A named webhook target (e.g. test, production)."""

    model_config = ConfigDict(extra="forbid")

    url: str
    headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("url")
    @classmethod
    def _valid_url(cls, value: str) -> str:
        return check_http_url(value)


class WebhookSettings(BaseModel):
    """Delivery options shared by every environment."""

    model_config = ConfigDict(extra="forbid")

    active_environment: str = "test"
    secret: str | None = None
    max_retries: int = Field(3, ge=0, le=10)
    retry_strategy: RetryStrategy = RetryStrategy.EXPONENTIAL
    retry_delay: float = Field(1.0, ge=0)
    include_transcript: bool = False
    timeout_seconds: float = Field(30.0, gt=0)


class MonitoringConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    lookback_days: int = Field(3, ge=1)
    max_meetings_per_run: int = Field(10, ge=1)
    state_file_path: str = "./data/processed-meetings.json"


class RelayConfig(BaseModel):
    """The validated configuration file."""

    model_config = ConfigDict(extra="forbid")

    environments: dict[str, EnvironmentTarget] = Field(min_length=1)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    template_validation: TemplateValidationConfig = Field(
        default_factory=TemplateValidationConfig
    )
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    outputs: OutputConfig = Field(default_factory=OutputConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    organizations: list[OrganizationConfig] = Field(default_factory=list)
    default_organization: str = "Unknown"

    def active_target(self) -> EnvironmentTarget:
        name = self.webhook.active_environment
        target = self.environments.get(name)
        if target is None:
            raise ConfigError(
                [
                    (
                        "webhook.active_environment",
                        f"environment '{name}' not found "
                        f"(available: {', '.join(sorted(self.environments))})",
                    )
                ]
            )
        return target

    def delivery_config(self) -> DeliveryConfig:
        """Resolve the active environment into a webhook DeliveryConfig.

        A URL on the webhook output overrides the environment URL; output
        headers are layered over the environment headers.
        """
        target = self.active_target()
        output = self.outputs.webhook
        return DeliveryConfig(
            url=output.url or target.url,
            headers={**target.headers, **output.headers},
            secret=self.webhook.secret or None,
            max_retries=self.webhook.max_retries,
            retry_strategy=self.webhook.retry_strategy,
            retry_delay=self.webhook.retry_delay,
            timeout=self.webhook.timeout_seconds,
        )


# ── Loading ──────────────────────────────────────────────────────────────────


def _section(raw: dict[str, Any], *path: str) -> dict[str, Any] | None:
    """Walk/create nested dict sections; None if a non-dict is in the way."""
    node = raw
    for key in path:
        child = node.setdefault(key, {})
        if not isinstance(child, dict):
            return None
        node = child
    return node


def apply_environment_overrides(
    raw: dict[str, Any], settings: Settings
) -> dict[str, Any]:
    """Overlay secrets and the active environment from Settings.

    Returns a new dict; ``raw`` is not modified. Structural mismatches are
    left in place so validation reports them.
    """
    merged = json.loads(json.dumps(raw))

    overrides = (
        (settings.WEBHOOK_SECRET, ("webhook",), "secret"),
        (settings.WEBHOOK_ENVIRONMENT, ("webhook",), "active_environment"),
        (settings.SLACK_WEBHOOK_URL, ("notifications", "slack"), "webhook_url"),
        (settings.DISCORD_WEBHOOK_URL, ("notifications", "discord"), "webhook_url"),
        (settings.AIRTABLE_API_KEY, ("outputs", "airtable"), "api_key"),
        (settings.SMTP_PASSWORD, ("notifications", "email"), "password"),
    )
    for value, path, key in overrides:
        if not value:
            continue
        section = _section(merged, *path)
        if section is None:
            continue
        section[key] = value
        logger.debug("config_override_applied", field=".".join((*path, key)))
    return merged


def load_config(path: str | Path, settings: Settings | None = None) -> RelayConfig:
    """Load, merge and validate the configuration file.

    Raises:
        ConfigError: File missing, invalid JSON, schema mismatch, or an
            active environment that is not defined.
    """
    settings = settings or get_settings()
    config_path = Path(path)
    logger.info("config_loading", path=str(config_path))

    if not config_path.exists():
        raise ConfigError([("(file)", f"Configuration file not found: {config_path}")])

    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError([("(file)", f"Invalid JSON in configuration file: {exc}")]) from exc

    if not isinstance(raw, dict):
        raise ConfigError([("(root)", "Configuration must be a JSON object")])

    try:
        config = RelayConfig.model_validate(apply_environment_overrides(raw, settings))
    except ValidationError as exc:
        error = ConfigError.from_validation_error(exc)
        logger.error("config_invalid", errors=error.errors)
        raise error from exc

    config.active_target()

    logger.info(
        "config_loaded",
        environment=config.webhook.active_environment,
        notification_channels=[
            name
            for name in ("slack", "discord", "email", "desktop")
            if getattr(config.notifications, name).enabled
        ],
        output_destinations=config.outputs.enabled_destinations(),
    )
    return config


def write_example_config(path: str | Path) -> None:
    """Write a starter configuration file."""
    example = {
        "environments": {
            "test": {
                "url": "https://your-webhook-endpoint.example.com/test",
                "headers": {"X-Api-Key": "your-test-api-key"},
            },
            "production": {
                "url": "https://your-webhook-endpoint.example.com/prod",
                "headers": {"X-Api-Key": "your-prod-api-key"},
            },
        },
        "webhook": {
            "active_environment": "test",
            "max_retries": 3,
            "retry_strategy": "exponential",
            "retry_delay": 1.0,
            "include_transcript": False,
        },
        "template_validation": {
            "enabled": False,
            "mode": "disabled",
            "required_template_ids": [],
            "template_names": {},
        },
        "notifications": {
            "slack": {"enabled": False},
        },
        "outputs": {
            "webhook": {"enabled": True},
        },
        "monitoring": {
            "lookback_days": 3,
            "max_meetings_per_run": 10,
            "state_file_path": "./data/processed-meetings.json",
        },
        "organizations": [],
        "default_organization": "Unknown",
    }
    Path(path).write_text(json.dumps(example, indent=2) + "\n", encoding="utf-8")
