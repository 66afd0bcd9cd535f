"""Command-line entry point for the meeting relay.

Usage:
    python -m src.relay.main --config relay-config.json
    python -m src.relay.main --config relay-config.json --env production
    python -m src.relay.main --meeting <meeting-id>
    python -m src.relay.main --init-config relay-config.json

The meeting-data client is loaded from ``RELAY_SOURCE``
(``package.module:factory``); the factory is called with no arguments and
must return a MeetingSource.

Exit code 0 on a completed run, 1 on a configuration error, a failed
document fetch, an interrupted run, or a state file that cannot be saved.
"""

from __future__ import annotations

import argparse
import asyncio
import importlib
import signal
import sys

import httpx
import structlog

from src.relay.config import (
    ConfigError,
    RelayConfig,
    Settings,
    get_settings,
    load_config,
    write_example_config,
)
from src.relay.core.logging import configure_structlog
from src.relay.delivery.engine import DeliveryEngine
from src.relay.delivery.outputs import OutputDestinationManager
from src.relay.meetings.organization import OrganizationDetector
from src.relay.meetings.payload import PayloadBuilder
from src.relay.meetings.processor import MeetingProcessor
from src.relay.meetings.source import MeetingSource
from src.relay.notifications.manager import NotificationManager
from src.relay.state.manager import StateFileError, StateManager

logger = structlog.get_logger(__name__)


def load_source(import_path: str) -> MeetingSource:
    """Import ``package.module:factory`` and build the meeting source.

    Raises:
        ConfigError: The path is empty, malformed, cannot be imported, or
            the factory does not return a MeetingSource.
    """
    if not import_path:
        raise ConfigError([("RELAY_SOURCE", "no meeting source configured")])

    module_name, _, attr = import_path.partition(":")
    if not module_name or not attr:
        raise ConfigError(
            [("RELAY_SOURCE", f"expected 'package.module:factory', got '{import_path}'")]
        )

    try:
        factory = getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as exc:
        raise ConfigError([("RELAY_SOURCE", f"cannot load '{import_path}': {exc}")]) from exc

    source = factory()
    if not isinstance(source, MeetingSource):
        raise ConfigError(
            [("RELAY_SOURCE", f"'{import_path}' returned {type(source).__name__}, not a MeetingSource")]
        )
    return source


def build_processor(
    config: RelayConfig,
    source: MeetingSource,
    state: StateManager,
    client: httpx.AsyncClient | None = None,
) -> MeetingProcessor:
    """Wire one processor and its collaborators from the configuration."""
    delivery_config = config.delivery_config() if config.outputs.webhook.enabled else None
    detector = OrganizationDetector(config.organizations, config.default_organization)

    return MeetingProcessor(
        source=source,
        state=state,
        notifications=NotificationManager(config.notifications, client=client),
        outputs=OutputDestinationManager(
            config.outputs,
            delivery_config=delivery_config,
            engine=DeliveryEngine(client=client),
            client=client,
        ),
        builder=PayloadBuilder(detector),
        template_config=config.template_validation,
        include_transcript=config.webhook.include_transcript,
        lookback_days=config.monitoring.lookback_days,
        max_meetings_per_run=config.monitoring.max_meetings_per_run,
        environment=config.webhook.active_environment,
    )


def _install_signal_handlers(task: asyncio.Task) -> list[signal.Signals]:
    """Cancel the run on SIGINT/SIGTERM; returns the signals handled."""
    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []

    def _interrupt(signame: str) -> None:
        logger.warning("shutdown_signal_received", signal=signame)
        task.cancel()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _interrupt, sig.name)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform's event loop.
            continue
        installed.append(sig)
    return installed


async def _execute(processor: MeetingProcessor, meeting_id: str | None) -> bool:
    if meeting_id:
        result = await processor.process_meeting(meeting_id)
        logger.info(
            "single_meeting_completed",
            meeting_id=meeting_id,
            success=result.success,
            skipped=result.skipped,
            error=result.error,
        )
        return True

    batch = await processor.process_unprocessed_meetings()
    return batch.error is None


async def run(args: argparse.Namespace, settings: Settings) -> int:
    """Load configuration, process meetings, and persist state."""
    if args.env:
        settings = settings.model_copy(update={"WEBHOOK_ENVIRONMENT": args.env})

    try:
        config = load_config(args.config or settings.RELAY_CONFIG_PATH, settings)
        source = load_source(settings.RELAY_SOURCE)
    except ConfigError as exc:
        logger.error("startup_failed", errors=exc.errors)
        print(exc, file=sys.stderr)
        return 1

    state = StateManager(
        config.monitoring.state_file_path,
        lookback_days=config.monitoring.lookback_days,
    )

    async with httpx.AsyncClient() as client:
        processor = build_processor(config, source, state, client)
        work = asyncio.create_task(_execute(processor, args.meeting))
        handled = _install_signal_handlers(work)
        try:
            completed = await work
        except asyncio.CancelledError:
            logger.warning("run_interrupted")
            completed = False
        finally:
            loop = asyncio.get_running_loop()
            for sig in handled:
                loop.remove_signal_handler(sig)

    try:
        state.save()
    except StateFileError as exc:
        logger.error("state_save_failed_on_exit", error=str(exc))
        return 1

    return 0 if completed else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Deliver processed meeting notes to webhooks and other sinks"
    )
    parser.add_argument(
        "--config",
        "-c",
        help="Path to the JSON configuration file (default: RELAY_CONFIG_PATH)",
    )
    parser.add_argument(
        "--env",
        "-e",
        help="Webhook environment to deliver to (overrides the config file)",
    )
    parser.add_argument(
        "--meeting",
        "-m",
        help="Process a single meeting by id instead of the recent batch",
    )
    parser.add_argument(
        "--init-config",
        metavar="PATH",
        help="Write an example configuration file and exit",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    if args.init_config:
        write_example_config(args.init_config)
        print(f"Example configuration written to {args.init_config}")
        sys.exit(0)

    settings = get_settings()
    configure_structlog(settings)
    sys.exit(asyncio.run(run(args, settings)))


if __name__ == "__main__":
    main()
