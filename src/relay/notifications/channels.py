"""Notification channels.

Every channel implements ``send(subject, body) -> NotificationResult`` and
reports its own failures as results. HTTP channels use httpx; email goes
through SMTP and the desktop channel through the platform notifier, both
kept off the event loop.
"""

from __future__ import annotations

import asyncio
import smtplib
import sys
from abc import ABC, abstractmethod
from email.message import EmailMessage

import httpx
import structlog

from src.relay.notifications.schemas import (
    EMAIL_PATTERN,
    DesktopConfig,
    DiscordConfig,
    EmailConfig,
    NotificationResult,
    SlackConfig,
)

logger = structlog.get_logger(__name__)

BOT_USERNAME = "Meeting Relay"
HTTP_TIMEOUT = 10.0
SMTP_TIMEOUT = 30.0


class NotificationChannel(ABC):
    """A destination for human-readable alerts."""

    name: str

    @abstractmethod
    async def send(self, subject: str, body: str) -> NotificationResult:
        """Deliver one notification; never raises for delivery failures."""
        ...

    def _ok(self) -> NotificationResult:
        return NotificationResult(channel=self.name, success=True)

    def _failed(self, error: str) -> NotificationResult:
        return NotificationResult(channel=self.name, success=False, error=error)


class _WebhookChannel(NotificationChannel):
    """Shared POST-JSON logic for chat webhooks."""

    def __init__(self, webhook_url: str, client: httpx.AsyncClient | None = None) -> None:
        self._webhook_url = webhook_url
        self._client = client

    @abstractmethod
    def _message(self, subject: str, body: str) -> dict:
        ...

    async def send(self, subject: str, body: str) -> NotificationResult:
        message = self._message(subject, body)
        try:
            if self._client is not None:
                response = await self._client.post(
                    self._webhook_url, json=message, timeout=HTTP_TIMEOUT
                )
            else:
                async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
                    response = await client.post(self._webhook_url, json=message)
        except httpx.HTTPError as exc:
            logger.error("notification_send_failed", channel=self.name, error=str(exc))
            return self._failed(str(exc))

        if not response.is_success:
            error = (
                f"{self.name.capitalize()} webhook error: "
                f"{response.status_code} {response.reason_phrase}"
            )
            logger.error("notification_rejected", channel=self.name, status_code=response.status_code)
            return self._failed(error)

        logger.info("notification_sent", channel=self.name)
        return self._ok()


class SlackChannel(_WebhookChannel):
    name = "slack"

    def __init__(self, config: SlackConfig, client: httpx.AsyncClient | None = None) -> None:
        super().__init__(config.webhook_url or "", client)
        self._config = config

    def _message(self, subject: str, body: str) -> dict:
        text = f"*{subject}*\n\n{body}"
        if self._config.mention_users:
            text += f"\n\nCC: {' '.join(self._config.mention_users)}"
        message: dict = {"text": text, "username": BOT_USERNAME}
        if self._config.channel:
            message["channel"] = self._config.channel
        return message


class DiscordChannel(_WebhookChannel):
    name = "discord"

    def __init__(self, config: DiscordConfig, client: httpx.AsyncClient | None = None) -> None:
        super().__init__(config.webhook_url or "", client)

    def _message(self, subject: str, body: str) -> dict:
        return {"content": f"**{subject}**\n\n{body}"}


def is_valid_email(address: str) -> bool:
    return 0 < len(address) < 254 and bool(EMAIL_PATTERN.match(address))


class EmailChannel(NotificationChannel):
    """Plain-text email over SMTP."""

    name = "email"

    def __init__(self, config: EmailConfig) -> None:
        self._config = config

    def _build_message(self, subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self._config.sender
        msg["To"] = ", ".join(self._config.to)
        msg["Subject"] = subject
        msg.set_content(body)
        return msg

    def _deliver(self, msg: EmailMessage) -> None:
        config = self._config
        with smtplib.SMTP(config.smtp_host, config.smtp_port, timeout=SMTP_TIMEOUT) as smtp:
            if config.username and config.password:
                smtp.starttls()
                smtp.login(config.username, config.password)
            smtp.send_message(msg)

    async def send(self, subject: str, body: str) -> NotificationResult:
        if not self._config.to:
            return self._failed("No email recipients configured")

        for address in self._config.to:
            if not is_valid_email(address):
                logger.error("notification_invalid_recipient", channel=self.name)
                return self._failed(f"Invalid email address: {address}")

        try:
            await asyncio.to_thread(self._deliver, self._build_message(subject, body))
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("notification_send_failed", channel=self.name, error=str(exc))
            return self._failed(str(exc))

        logger.info("notification_sent", channel=self.name, recipients=len(self._config.to))
        return self._ok()


def _applescript_quote(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')


class DesktopChannel(NotificationChannel):
    """Local desktop alert: osascript on macOS, notify-send on Linux."""

    name = "desktop"

    def __init__(
        self, config: DesktopConfig | None = None, platform: str | None = None
    ) -> None:
        self._config = config or DesktopConfig(enabled=True, open_app_on_click=False)
        self._platform = platform or sys.platform

    def _command(self, subject: str, body: str) -> list[str] | None:
        if self._platform == "darwin":
            title = _applescript_quote(subject)
            message = _applescript_quote(body)
            if self._config.open_app_on_click:
                app = _applescript_quote(self._config.app_name)
                script = (
                    f'set userChoice to display alert "{title}" message "{message}" '
                    f'buttons {{"Open {app}", "Dismiss"}} default button "Open {app}" as warning\n'
                    f'if button returned of userChoice is "Open {app}" then\n'
                    f'  tell application "{app}" to activate\n'
                    f"end if"
                )
            else:
                script = (
                    f'display notification "{message}" with title "{BOT_USERNAME}" '
                    f'subtitle "{title}" sound name "Basso"'
                )
            return ["osascript", "-e", script]
        if self._platform.startswith("linux"):
            return ["notify-send", "--app-name", BOT_USERNAME, subject, body]
        return None

    async def send(self, subject: str, body: str) -> NotificationResult:
        command = self._command(subject, body)
        if command is None:
            logger.warning("desktop_notifications_unsupported", platform=self._platform)
            return self._failed(f"Desktop notifications are not supported on {self._platform}")

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            _stdout, stderr = await process.communicate()
        except OSError as exc:
            logger.error("notification_send_failed", channel=self.name, error=str(exc))
            return self._failed(str(exc))

        if process.returncode != 0:
            error = stderr.decode(errors="replace").strip() or f"exit code {process.returncode}"
            logger.error("notification_send_failed", channel=self.name, error=error)
            return self._failed(error)

        logger.info("notification_sent", channel=self.name)
        return self._ok()
