"""Pydantic schemas for notification channel settings and results."""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from src.relay.delivery.schemas import check_http_url

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


def _valid_optional_url(value: str | None) -> str | None:
    return check_http_url(value) if value else value


class SlackConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = False
    webhook_url: str | None = None
    channel: str | None = None
    mention_users: list[str] = Field(default_factory=list)

    _url = field_validator("webhook_url")(_valid_optional_url)

    @model_validator(mode="after")
    def _require_url(self) -> SlackConfig:
        if self.enabled and not self.webhook_url:
            raise ValueError("webhook_url is required when slack is enabled")
        return self


class DiscordConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = False
    webhook_url: str | None = None

    _url = field_validator("webhook_url")(_valid_optional_url)

    @model_validator(mode="after")
    def _require_url(self) -> DiscordConfig:
        if self.enabled and not self.webhook_url:
            raise ValueError("webhook_url is required when discord is enabled")
        return self


class EmailConfig(BaseModel):
    """SMTP email settings. STARTTLS is used when credentials are set."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = False
    smtp_host: str = "localhost"
    smtp_port: int = Field(25, ge=1, le=65535)
    username: str | None = None
    password: str | None = None
    sender: str = "meeting-relay@localhost"
    to: list[str] = Field(default_factory=list)

    @field_validator("to")
    @classmethod
    def _valid_recipients(cls, value: list[str]) -> list[str]:
        for address in value:
            if not EMAIL_PATTERN.match(address):
                raise ValueError(f"Invalid email address: {address!r}")
        return value

    @model_validator(mode="after")
    def _require_recipients(self) -> EmailConfig:
        if self.enabled and not self.to:
            raise ValueError("at least one recipient is required when email is enabled")
        return self


class DesktopConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = False
    open_app_on_click: bool = True
    app_name: str = "Granola"


class NotificationConfig(BaseModel):
    """Per-channel notification settings."""

    model_config = ConfigDict(extra="forbid")

    slack: SlackConfig = Field(default_factory=SlackConfig)
    discord: DiscordConfig = Field(default_factory=DiscordConfig)
    email: EmailConfig = Field(default_factory=EmailConfig)
    desktop: DesktopConfig = Field(default_factory=DesktopConfig)


class NotificationResult(BaseModel):
    """Outcome of one notification on one channel."""

    channel: str
    success: bool
    error: str | None = None
