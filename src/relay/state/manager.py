"""StateManager -- idempotency ledger and failure-streak bookkeeping.

Owns the persisted state for one process run: loaded (or freshly
initialized) at construction, mutated in memory, and written back with
save(). Writes go to a temporary sibling file which is then renamed over
the target, so a crash mid-write leaves the previous file intact.

Notification throttling lives here too:
- skipped meetings notify on the first skip, then on every 5th skip or
  once 24h have passed since the last notification;
- failures notify on the first failure and on every 3rd consecutive one;
- a success after a streak of RECOVERY_THRESHOLD or more is a recovery.
"""

from __future__ import annotations

import json
import os
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path

import structlog
from pydantic import ValidationError

from src.relay.state.schemas import (
    FailureTrackingState,
    FailureUpdate,
    PersistedState,
    ProcessedMeetingRecord,
    SkippedMeetingRecord,
)

logger = structlog.get_logger(__name__)

SKIP_NOTIFY_EVERY = 5
SKIP_NOTIFY_AFTER = timedelta(hours=24)
FAILURE_NOTIFY_EVERY = 3
RECOVERY_THRESHOLD = 3


class StateFileError(Exception):
    """The state file could not be written."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StateManager:
    """Persisted state for the relay.

    Args:
        file_path: Path of the JSON state file.
        lookback_days: How far back a fresh state starts looking.
        clock: Returns the current time (injectable in tests).
    """

    def __init__(
        self,
        file_path: str | Path,
        lookback_days: int = 3,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._path = Path(file_path)
        self._clock = clock
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._state = self._load_or_initialize(lookback_days)

    @property
    def file_path(self) -> Path:
        return self._path

    @property
    def state(self) -> PersistedState:
        """Snapshot copy of the current in-memory state."""
        return self._state.model_copy(deep=True)

    # ── Persistence ──────────────────────────────────────────────────────

    def _fresh_state(self, lookback_days: int) -> PersistedState:
        now = self._clock()
        return PersistedState(
            last_check_timestamp=now - timedelta(days=lookback_days),
            failure_tracking=FailureTrackingState(last_success_time=now),
        )

    def _load_or_initialize(self, lookback_days: int) -> PersistedState:
        if self._path.exists():
            try:
                raw = json.loads(self._path.read_text(encoding="utf-8"))
                state = PersistedState.model_validate(raw)
            except (OSError, json.JSONDecodeError, ValidationError) as exc:
                logger.warning(
                    "state_file_corrupt_reinitializing",
                    path=str(self._path),
                    error=str(exc),
                )
            else:
                logger.info(
                    "state_loaded",
                    path=str(self._path),
                    processed_meetings=len(state.processed_meetings),
                    skipped_meetings=len(state.skipped_meetings),
                )
                return state

        logger.info("state_initialized", path=str(self._path), lookback_days=lookback_days)
        return self._fresh_state(lookback_days)

    def save(self) -> None:
        """Write the state atomically (temp file, then rename).

        Raises:
            StateFileError: The file could not be written or renamed.
        """
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        data = self._state.model_dump_json(by_alias=True, indent=2)
        try:
            tmp_path.write_text(data, encoding="utf-8")
            os.replace(tmp_path, self._path)
        except OSError as exc:
            logger.error("state_save_failed", path=str(self._path), error=str(exc))
            raise StateFileError(f"Failed to save state to {self._path}: {exc}") from exc
        logger.debug("state_saved", path=str(self._path))

    # ── Check Timestamp ──────────────────────────────────────────────────

    @property
    def last_check_timestamp(self) -> datetime:
        return self._state.last_check_timestamp

    def update_last_check_timestamp(self) -> None:
        self._state.last_check_timestamp = self._clock()

    # ── Processed Ledger ─────────────────────────────────────────────────

    def is_processed(self, meeting_id: str) -> bool:
        """True once the meeting has been delivered successfully."""
        return any(
            record.id == meeting_id and record.success
            for record in self._state.processed_meetings
        )

    def processed_ids(self) -> set[str]:
        """Ids of successfully delivered meetings."""
        return {r.id for r in self._state.processed_meetings if r.success}

    def add_processed(self, meeting_id: str, title: str, success: bool) -> ProcessedMeetingRecord:
        """Record the latest delivery outcome; one ledger entry per meeting id.

        A success is never downgraded by a later failed attempt.
        """
        now = self._clock()
        existing = next(
            (r for r in self._state.processed_meetings if r.id == meeting_id), None
        )
        if existing is None:
            record = ProcessedMeetingRecord(
                id=meeting_id, title=title, processed_at=now, success=success
            )
            self._state.processed_meetings.append(record)
        else:
            record = existing
            record.title = title
            record.processed_at = now
            record.success = record.success or success

        logger.debug("processed_meeting_recorded", meeting_id=meeting_id, success=success)
        return record

    # ── Skip Ledger ──────────────────────────────────────────────────────

    def should_notify_for_skipped(
        self, meeting_id: str, title: str, skip_reason: str
    ) -> bool:
        """Count a skip and decide whether to notify about it.

        Not idempotent: every call counts one more skip and, when it
        returns True, stamps the notification time.
        """
        now = self._clock()
        existing = next(
            (s for s in self._state.skipped_meetings if s.id == meeting_id), None
        )

        if existing is None:
            self._state.skipped_meetings.append(
                SkippedMeetingRecord(
                    id=meeting_id,
                    title=title,
                    skip_reason=skip_reason,
                    last_notified_at=now,
                    skip_count=1,
                )
            )
            logger.debug("first_skip_notifying", meeting_id=meeting_id)
            return True

        existing.skip_count += 1
        existing.title = title
        existing.skip_reason = skip_reason

        since_last = now - existing.last_notified_at
        should_notify = (
            existing.skip_count % SKIP_NOTIFY_EVERY == 0
            or since_last >= SKIP_NOTIFY_AFTER
        )
        if should_notify:
            existing.last_notified_at = now

        logger.debug(
            "skip_notification_decision",
            meeting_id=meeting_id,
            skip_count=existing.skip_count,
            hours_since_last_notification=round(since_last.total_seconds() / 3600, 2),
            should_notify=should_notify,
        )
        return should_notify

    # ── Failure Streak ───────────────────────────────────────────────────

    @property
    def failure_tracking(self) -> FailureTrackingState:
        return self._state.failure_tracking.model_copy()

    def record_failure(self) -> FailureUpdate:
        tracking = self._state.failure_tracking
        previous = tracking.consecutive_failures
        tracking.consecutive_failures += 1
        count = tracking.consecutive_failures

        should_notify = count == 1 or count % FAILURE_NOTIFY_EVERY == 0
        if should_notify:
            tracking.last_notification_time = self._clock()

        logger.warning(
            "failure_recorded",
            consecutive_failures=count,
            should_notify=should_notify,
            last_success=(
                tracking.last_success_time.isoformat() if tracking.last_success_time else None
            ),
        )
        return FailureUpdate(should_notify=should_notify, count=count, previous_count=previous)

    def record_success(self) -> int:
        """Reset the streak; returns the streak length it replaced."""
        tracking = self._state.failure_tracking
        previous = tracking.consecutive_failures
        tracking.consecutive_failures = 0
        tracking.last_success_time = self._clock()
        if previous > 0:
            logger.info("recovered_from_failures", previous_failures=previous)
        return previous

    @staticmethod
    def is_recovery(previous_failures: int) -> bool:
        return previous_failures >= RECOVERY_THRESHOLD
