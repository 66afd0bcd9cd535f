"""NotificationManager -- fans one alert out to every configured channel.

The channel set is built once from the enabled configuration entries.
Each send() dispatches to all channels concurrently and waits for all of
them; one channel failing or raising never affects the others. Callers
can ask for the urgent (desktop) channel on a single call even when it is
not configured.
"""

from __future__ import annotations

from collections.abc import Callable

import httpx
import structlog

from src.relay.core.concurrency import settle_all
from src.relay.notifications.channels import (
    DesktopChannel,
    DiscordChannel,
    EmailChannel,
    NotificationChannel,
    SlackChannel,
)
from src.relay.notifications.schemas import (
    DesktopConfig,
    NotificationConfig,
    NotificationResult,
)

logger = structlog.get_logger(__name__)


def urgent_desktop_channel() -> DesktopChannel:
    """One-off desktop channel; a banner, never a modal alert that waits for a click."""
    return DesktopChannel(DesktopConfig(enabled=True, open_app_on_click=False))


class NotificationManager:
    """Sends notifications to all enabled channels.

    Args:
        config: Per-channel notification settings.
        client: Optional shared httpx.AsyncClient for webhook channels.
        urgent_channel_factory: Builds the one-off urgent channel; defaults
            to a banner-only DesktopChannel.
    """

    def __init__(
        self,
        config: NotificationConfig,
        client: httpx.AsyncClient | None = None,
        urgent_channel_factory: Callable[[], NotificationChannel] = urgent_desktop_channel,
    ) -> None:
        self._urgent_channel_factory = urgent_channel_factory
        self._channels: list[NotificationChannel] = []

        if config.slack.enabled and config.slack.webhook_url:
            self._channels.append(SlackChannel(config.slack, client))
        if config.discord.enabled and config.discord.webhook_url:
            self._channels.append(DiscordChannel(config.discord, client))
        if config.email.enabled and config.email.to:
            self._channels.append(EmailChannel(config.email))
        if config.desktop.enabled:
            self._channels.append(DesktopChannel(config.desktop))

        logger.info("notification_channels_initialized", channels=self.enabled_channels())

    def enabled_channels(self) -> list[str]:
        return [channel.name for channel in self._channels]

    async def send(
        self,
        subject: str,
        body: str,
        force_include_urgent: bool = False,
    ) -> list[NotificationResult]:
        """Send to every channel and collect one result per channel.

        Args:
            subject: Notification subject/title.
            body: Notification body.
            force_include_urgent: Also send to the urgent channel for this
                call only, unless a channel of that name is configured.

        Returns:
            NotificationResults in channel order.
        """
        channels = list(self._channels)
        if force_include_urgent:
            urgent = self._urgent_channel_factory()
            if urgent.name not in self.enabled_channels():
                channels.append(urgent)

        if not channels:
            logger.warning("no_notification_channels", subject=subject)
            return []

        logger.info("sending_notification", subject=subject, channels=len(channels))

        def _on_error(index: int, exc: BaseException) -> NotificationResult:
            name = channels[index].name
            logger.error("notification_channel_error", channel=name, error=str(exc), exc_info=exc)
            return NotificationResult(channel=name, success=False, error=f"Channel failed: {exc}")

        results = await settle_all(
            [channel.send(subject, body) for channel in channels], _on_error
        )

        logger.info(
            "notification_results",
            successful=sum(1 for r in results if r.success),
            failed=sum(1 for r in results if not r.success),
            channels={r.channel: r.success for r in results},
        )
        return results
