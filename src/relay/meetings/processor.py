"""MeetingProcessor -- per-meeting and per-batch delivery workflow.

Per meeting:
    fetch metadata -> fetch panels -> admission check
      admitted: (transcript) -> build payload -> fan out to sinks
                -> record outcome -> notify
      rejected: count the skip -> notify when the throttle allows

process_meeting() never raises: any exception in the chain becomes a
failed MeetingResult and counts toward the failure streak. Batch runs
process meetings one at a time so notifications stay in meeting order and
the state file has a single writer. Persisting state is left to the
caller (StateManager.save()).
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import structlog

from src.relay.delivery.outputs import OutputDestinationManager
from src.relay.delivery.schemas import OutputResult
from src.relay.meetings.payload import PayloadBuilder
from src.relay.meetings.schemas import (
    BatchResult,
    MeetingResult,
    SourceDocument,
    TemplateValidationConfig,
    TemplateValidationResult,
)
from src.relay.meetings.source import (
    MeetingNotFoundError,
    MeetingSource,
    TranscriptFormatter,
)
from src.relay.meetings.templates import validate_templates
from src.relay.notifications import messages
from src.relay.notifications.manager import NotificationManager
from src.relay.state.manager import StateManager

logger = structlog.get_logger(__name__)

DOCUMENT_PAGE_SIZE = 100
NO_DESTINATIONS_ERROR = "No output destinations enabled"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _created_at(document: SourceDocument) -> datetime | None:
    if not document.created_at:
        return None
    try:
        parsed = datetime.fromisoformat(document.created_at.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _summarize_failures(outputs: list[OutputResult]) -> str:
    if not outputs:
        return NO_DESTINATIONS_ERROR
    return "; ".join(
        f"{r.destination}: {r.error or 'failed'}" for r in outputs if not r.success
    )


class MeetingProcessor:
    """Orchestrates admission, delivery, bookkeeping and notifications.

    Args:
        source: Meeting-data source.
        state: StateManager owning the ledgers and failure streak.
        notifications: NotificationManager for operator alerts.
        outputs: OutputDestinationManager for payload fan-out.
        builder: PayloadBuilder.
        template_config: Admission policy; None admits everything.
        include_transcript: Fetch and attach transcripts to payloads.
        transcript_formatter: Renders ``transcriptMarkdown``; omitted means
            the field stays empty.
        lookback_days: Oldest meeting age considered by batch runs.
        max_meetings_per_run: Default batch cap.
        environment: Active environment name, shown in notifications.
        clock: Returns the current time (injectable in tests).
    """

    def __init__(
        self,
        source: MeetingSource,
        state: StateManager,
        notifications: NotificationManager,
        outputs: OutputDestinationManager,
        builder: PayloadBuilder,
        template_config: TemplateValidationConfig | None = None,
        include_transcript: bool = False,
        transcript_formatter: TranscriptFormatter | None = None,
        lookback_days: int = 3,
        max_meetings_per_run: int = 10,
        environment: str = "test",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._source = source
        self._state = state
        self._notifications = notifications
        self._outputs = outputs
        self._builder = builder
        self._template_config = template_config
        self._include_transcript = include_transcript
        self._transcript_formatter = transcript_formatter
        self._lookback_days = lookback_days
        self._max_meetings_per_run = max_meetings_per_run
        self._environment = environment
        self._clock = clock

    # ── Single Meeting ───────────────────────────────────────────────────

    async def process_meeting(
        self, meeting_id: str, document: SourceDocument | None = None
    ) -> MeetingResult:
        """Process one meeting end to end.

        Args:
            meeting_id: Meeting to process.
            document: Already-fetched metadata; fetched from the source
                when omitted.

        Returns:
            MeetingResult. Skips have ``skipped=True``; nothing is raised.
        """
        title = "Unknown"
        log = logger.bind(meeting_id=meeting_id)

        try:
            if document is None:
                document = await self._source.get_document(meeting_id)
                if document is None:
                    raise MeetingNotFoundError(f"Document not found: {meeting_id}")
            title = document.title or "Untitled Meeting"
            log.info("processing_meeting", title=title)

            panels = await self._source.get_document_panels(meeting_id)
            validation = validate_templates(panels, title, self._template_config)
            if not validation.admit:
                return await self._handle_skip(meeting_id, title, validation)

            transcript = None
            transcript_markdown = ""
            if self._include_transcript:
                transcript = await self._source.get_transcript(meeting_id)
                if transcript and self._transcript_formatter is not None:
                    transcript_markdown = self._transcript_formatter(transcript)

            payload = self._builder.build(
                document,
                matched_panel=validation.matched_panel,
                transcript=transcript,
                transcript_markdown=transcript_markdown,
            )
            outputs = await self._outputs.send_all(payload)
        except Exception as exc:
            log.error("meeting_processing_error", title=title, error=str(exc), exc_info=True)
            result = MeetingResult(
                meeting_id=meeting_id, title=title, success=False, error=str(exc)
            )
            self._state.add_processed(meeting_id, title, success=False)
            await self._notify_failure(result)
            return result

        return await self._record_outcome(meeting_id, title, outputs)

    async def _handle_skip(
        self, meeting_id: str, title: str, validation: TemplateValidationResult
    ) -> MeetingResult:
        skip_reason = validation.skip_reason or "skipped"
        logger.info(
            "meeting_skipped",
            meeting_id=meeting_id,
            title=title,
            skip_reason=skip_reason,
            reason=validation.reason,
        )

        if self._state.should_notify_for_skipped(meeting_id, title, skip_reason):
            subject, body = messages.template_missing_message(
                title,
                meeting_id,
                validation.missing_templates,
                self._environment,
                self._clock(),
            )
            await self._notify(subject, body, force_include_urgent=True)
        else:
            logger.debug("skip_notification_throttled", meeting_id=meeting_id)

        return MeetingResult(
            meeting_id=meeting_id,
            title=title,
            success=False,
            skipped=True,
            skip_reason=skip_reason,
            error=validation.reason,
        )

    async def _record_outcome(
        self, meeting_id: str, title: str, outputs: list[OutputResult]
    ) -> MeetingResult:
        success = bool(outputs) and all(r.success for r in outputs)
        webhook = next((r for r in outputs if r.destination == "webhook"), None)
        result = MeetingResult(
            meeting_id=meeting_id,
            title=title,
            success=success,
            status_code=webhook.status_code if webhook else None,
            retries=webhook.retries if webhook else None,
            error=None if success else _summarize_failures(outputs),
            outputs=outputs,
        )
        self._state.add_processed(meeting_id, title, success=success)

        if not success:
            logger.warning("meeting_delivery_failed", meeting_id=meeting_id, error=result.error)
            await self._notify_failure(result)
            return result

        previous_failures = self._state.record_success()
        logger.info("meeting_processed", meeting_id=meeting_id, title=title, retries=result.retries)

        subject, body = messages.success_message(
            title, meeting_id, self._environment, self._clock()
        )
        await self._notify(subject, body)

        if self._state.is_recovery(previous_failures):
            subject, body = messages.recovery_message(
                previous_failures, self._environment, self._clock()
            )
            await self._notify(subject, body)
        return result

    async def _notify_failure(self, result: MeetingResult) -> None:
        update = self._state.record_failure()
        if not update.should_notify:
            logger.debug("failure_notification_throttled", consecutive_failures=update.count)
            return

        if update.count == 1:
            subject, body = messages.meeting_failure_message(
                result.title,
                result.meeting_id,
                result.error,
                update.count,
                self._environment,
                self._clock(),
            )
        else:
            subject, body = self._streak_message(
                f'{result.error or "Unknown error"} (meeting "{result.title}")', update.count
            )
        await self._notify(subject, body)

    def _streak_message(self, error: str, count: int) -> tuple[str, str]:
        return messages.run_failure_message(
            error,
            count,
            self._state.failure_tracking.last_success_time,
            self._environment,
            str(self._state.file_path),
            self._clock(),
        )

    async def _notify(self, subject: str, body: str, force_include_urgent: bool = False) -> None:
        # Alerts are best effort.
        try:
            await self._notifications.send(subject, body, force_include_urgent=force_include_urgent)
        except Exception:
            logger.warning("notification_dispatch_failed", subject=subject, exc_info=True)

    # ── Batch ────────────────────────────────────────────────────────────

    async def process_unprocessed_meetings(self, limit: int | None = None) -> BatchResult:
        """Process recent meetings that have not been delivered yet.

        Meetings already delivered successfully, and meetings created
        before the lookback cutoff, are ignored. Every attempted id is
        remembered for the rest of the run whatever its outcome.

        Args:
            limit: Maximum meetings to attempt; defaults to the configured
                per-run cap.

        Returns:
            BatchResult. ``error`` is set when the source could not be read.
        """
        cap = limit if limit is not None else self._max_meetings_per_run
        since = min(
            self._state.last_check_timestamp,
            self._clock() - timedelta(days=self._lookback_days),
        )
        logger.info("batch_started", since=since.isoformat(), limit=cap)

        try:
            documents = await self._source.get_documents(limit=DOCUMENT_PAGE_SIZE)
        except Exception as exc:
            logger.error("document_fetch_failed", error=str(exc), exc_info=True)
            update = self._state.record_failure()
            if update.should_notify:
                subject, body = self._streak_message(str(exc), update.count)
                await self._notify(subject, body)
            return BatchResult(error=str(exc))

        attempted = self._state.processed_ids()
        results: list[MeetingResult] = []

        for document in documents:
            if len(results) >= cap:
                logger.info("batch_limit_reached", limit=cap)
                break

            meeting_id = document.meeting_id
            if not meeting_id or meeting_id in attempted:
                continue

            created_at = _created_at(document)
            if created_at is not None and created_at < since:
                continue

            attempted.add(meeting_id)
            results.append(await self.process_meeting(meeting_id, document))

        self._state.update_last_check_timestamp()
        batch = BatchResult(results=results, documents_found=len(documents))
        logger.info(
            "batch_completed",
            documents_found=batch.documents_found,
            attempted=len(results),
            succeeded=batch.succeeded,
            skipped=batch.skipped,
            failed=batch.failed,
        )
        return batch
