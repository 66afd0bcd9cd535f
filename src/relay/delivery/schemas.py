"""Pydantic v2 schemas for delivery targets and their outcomes.

DeliveryConfig describes one HTTP sink for the Delivery Engine.
OutputConfig groups the independently enabled output destinations
(webhook, tabular store, JSON file). DeliveryResult and OutputResult are
always returned, never raised, so callers can tell partial failure from
total failure.
"""

from __future__ import annotations

from enum import Enum
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def check_http_url(value: str) -> str:
    """Reject anything that is not an absolute http(s) URL."""
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Invalid URL: {value!r}")
    return value


class RetryStrategy(str, Enum):
    """Backoff strategy between delivery attempts."""

    LINEAR = "linear"
    EXPONENTIAL = "exponential"


class DeliveryConfig(BaseModel):
    """One webhook sink: target, signing and retry options."""

    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    secret: str | None = None
    max_retries: int = Field(3, ge=0, le=10)
    retry_strategy: RetryStrategy = RetryStrategy.EXPONENTIAL
    retry_delay: float = Field(1.0, ge=0, description="Base backoff delay in seconds")
    timeout: float = Field(30.0, gt=0, description="Per-attempt HTTP timeout in seconds")

    @field_validator("url")
    @classmethod
    def _valid_url(cls, value: str) -> str:
        return check_http_url(value)


class DeliveryResult(BaseModel):
    """Outcome of delivering one payload to one webhook sink."""

    success: bool
    status_code: int | None = None
    retries: int = 0
    response: str | None = None
    error: str | None = None


# ── Output Destinations ──────────────────────────────────────────────────────


class WebhookOutputConfig(BaseModel):
    """Webhook output; falls back to the active environment URL."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    url: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("url")
    @classmethod
    def _valid_url(cls, value: str | None) -> str | None:
        return check_http_url(value) if value else value


class AirtableOutputConfig(BaseModel):
    """Tabular-store output (Airtable REST API)."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = False
    api_key: str | None = None
    base_id: str | None = None
    table_name: str = "Meetings"
    api_url: str = "https://api.airtable.com/v0"
    field_mapping: dict[str, str] = Field(
        default_factory=dict,
        description="Rename default columns: {default column: target column}",
    )

    @model_validator(mode="after")
    def _require_credentials(self) -> AirtableOutputConfig:
        if self.enabled and not (self.api_key and self.base_id):
            raise ValueError("api_key and base_id are required when airtable output is enabled")
        return self


class JsonFileOutputConfig(BaseModel):
    """Flat JSON file output, append or overwrite."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = False
    file_path: str | None = None
    append_mode: bool = True

    @model_validator(mode="after")
    def _require_path(self) -> JsonFileOutputConfig:
        if self.enabled and not self.file_path:
            raise ValueError("file_path is required when json_file output is enabled")
        return self


class OutputConfig(BaseModel):
    """All output destinations, each enabled independently."""

    model_config = ConfigDict(extra="forbid")

    webhook: WebhookOutputConfig = Field(default_factory=WebhookOutputConfig)
    airtable: AirtableOutputConfig = Field(default_factory=AirtableOutputConfig)
    json_file: JsonFileOutputConfig = Field(default_factory=JsonFileOutputConfig)

    def enabled_destinations(self) -> list[str]:
        """Names of the enabled destinations, in dispatch order."""
        return [
            name
            for name, output in (
                ("webhook", self.webhook),
                ("airtable", self.airtable),
                ("json_file", self.json_file),
            )
            if output.enabled
        ]


class OutputResult(BaseModel):
    """Outcome of sending one payload to one output destination."""

    destination: str
    success: bool
    error: str | None = None
    status_code: int | None = None
    retries: int | None = None
