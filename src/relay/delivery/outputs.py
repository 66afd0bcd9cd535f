"""OutputDestinationManager -- fans one payload out to every enabled sink.

Sinks:
- webhook: DeliveryEngine against the resolved DeliveryConfig
- airtable: one record per meeting via the Airtable REST API
- json_file: local JSON file, append (array) or overwrite (last wins)

Sinks run concurrently and fail independently: an exception in one sink
becomes a failed OutputResult for that sink only, and every enabled sink
always reports exactly one result.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from src.relay.core.concurrency import settle_all
from src.relay.delivery.engine import DeliveryEngine
from src.relay.delivery.schemas import (
    AirtableOutputConfig,
    DeliveryConfig,
    JsonFileOutputConfig,
    OutputConfig,
    OutputResult,
)
from src.relay.meetings.schemas import MeetingPayload

logger = structlog.get_logger(__name__)

AIRTABLE_TIMEOUT = 30.0


class OutputError(Exception):
    """An output destination rejected or could not store the payload."""


def airtable_fields(
    payload: MeetingPayload, field_mapping: dict[str, str] | None = None
) -> dict[str, Any]:
    """Map a payload onto tabular columns, applying any column renames."""
    metadata = payload.metadata
    sections = payload.josh_template.model_dump().values()
    fields: dict[str, Any] = {
        "Meeting ID": payload.meeting_id,
        "Title": payload.meeting_title,
        "Date": payload.meeting_date,
        "Organization": metadata.organization.name if metadata.organization else "Unknown",
        "Creator": (metadata.creator.name if metadata.creator else None) or "Unknown",
        "Participants": ", ".join(p.name for p in metadata.participants),
        "Duration": metadata.duration or 0,
        "Has Template": "Yes" if any(sections) else "No",
        "Processing Timestamp": payload.processing_timestamp,
    }
    if not field_mapping:
        return fields
    return {field_mapping.get(column, column): value for column, value in fields.items()}


def _write_json_file(path: Path, payload: dict[str, Any], append: bool) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)

    if not append:
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        return

    existing: list[Any] = []
    if path.exists():
        try:
            loaded = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("json_output_unreadable_starting_fresh", path=str(path))
        else:
            existing = loaded if isinstance(loaded, list) else [loaded]

    existing.append(payload)
    path.write_text(json.dumps(existing, indent=2), encoding="utf-8")


class OutputDestinationManager:
    """Sends payloads to all enabled output destinations.

    Args:
        config: Output destination settings.
        delivery_config: Resolved webhook target; required when the webhook
            output is enabled.
        engine: DeliveryEngine for the webhook sink.
        client: Optional shared httpx.AsyncClient for the tabular store.
    """

    def __init__(
        self,
        config: OutputConfig,
        delivery_config: DeliveryConfig | None = None,
        engine: DeliveryEngine | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._delivery_config = delivery_config
        self._engine = engine or DeliveryEngine(client=client)
        self._client = client

    def enabled_destinations(self) -> list[str]:
        return self._config.enabled_destinations()

    async def send_all(self, payload: MeetingPayload) -> list[OutputResult]:
        """Send a payload to every enabled destination concurrently.

        Returns:
            One OutputResult per enabled destination, in dispatch order.
        """
        senders: dict[str, Callable[[MeetingPayload], Awaitable[OutputResult]]] = {
            "webhook": self._send_webhook,
            "airtable": self._send_airtable,
            "json_file": self._send_json_file,
        }
        names = self.enabled_destinations()
        if not names:
            logger.warning("no_output_destinations_enabled", meeting_id=payload.meeting_id)
            return []

        def _on_error(index: int, exc: BaseException) -> OutputResult:
            logger.error(
                "output_destination_failed",
                destination=names[index],
                meeting_id=payload.meeting_id,
                error=str(exc),
                exc_info=exc,
            )
            return OutputResult(destination=names[index], success=False, error=str(exc))

        results = await settle_all([senders[name](payload) for name in names], _on_error)

        logger.info(
            "outputs_sent",
            meeting_id=payload.meeting_id,
            successful=sum(1 for r in results if r.success),
            failed=sum(1 for r in results if not r.success),
        )
        return results

    # ── Sinks ────────────────────────────────────────────────────────────

    async def _send_webhook(self, payload: MeetingPayload) -> OutputResult:
        if self._delivery_config is None:
            raise OutputError("No webhook target configured")

        result = await self._engine.deliver(payload, self._delivery_config)
        return OutputResult(
            destination="webhook",
            success=result.success,
            error=result.error,
            status_code=result.status_code,
            retries=result.retries,
        )

    async def _send_airtable(self, payload: MeetingPayload) -> OutputResult:
        config: AirtableOutputConfig = self._config.airtable
        url = f"{config.api_url.rstrip('/')}/{config.base_id}/{quote(config.table_name)}"
        body = {"records": [{"fields": airtable_fields(payload, config.field_mapping)}]}
        headers = {
            "Authorization": f"Bearer {config.api_key}",
            "Content-Type": "application/json",
        }

        if self._client is not None:
            response = await self._client.post(
                url, json=body, headers=headers, timeout=AIRTABLE_TIMEOUT
            )
        else:
            async with httpx.AsyncClient(timeout=AIRTABLE_TIMEOUT) as client:
                response = await client.post(url, json=body, headers=headers)

        if not response.is_success:
            raise OutputError(
                f"Airtable request failed: {response.status_code} "
                f"{response.reason_phrase} - {response.text}"
            )

        logger.info("airtable_record_created", meeting_id=payload.meeting_id, table=config.table_name)
        return OutputResult(
            destination="airtable", success=True, status_code=response.status_code
        )

    async def _send_json_file(self, payload: MeetingPayload) -> OutputResult:
        config: JsonFileOutputConfig = self._config.json_file
        path = Path(config.file_path or "")
        await asyncio.to_thread(
            _write_json_file, path, payload.to_dict(), config.append_mode
        )
        logger.info(
            "json_output_written",
            meeting_id=payload.meeting_id,
            path=str(path),
            append=config.append_mode,
        )
        return OutputResult(destination="json_file", success=True)
