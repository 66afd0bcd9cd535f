"""Pydantic schemas for the persisted run state.

Serialized with the historical camelCase/snake_case mix of the state file
(``lastCheckTimestamp``, ``processed_at``, ``skipReason``...) so existing
state files keep loading.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict, Field


def _as_utc(value: datetime) -> datetime:
    # Older state files may carry naive timestamps; those are UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


class StateModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ProcessedMeetingRecord(StateModel):
    """Ledger entry holding the latest delivery outcome for one meeting id."""

    id: str
    title: str
    processed_at: UtcDatetime
    success: bool


class SkippedMeetingRecord(StateModel):
    """Skip ledger entry; one per meeting id, updated in place."""

    id: str
    title: str
    skip_reason: str = Field(alias="skipReason")
    last_notified_at: UtcDatetime
    skip_count: int = 1


class FailureTrackingState(StateModel):
    """Process-wide consecutive failure streak."""

    consecutive_failures: int = Field(0, alias="consecutiveFailures")
    last_notification_time: UtcDatetime | None = Field(None, alias="lastNotificationTime")
    last_success_time: UtcDatetime | None = Field(None, alias="lastSuccessTime")


class PersistedState(StateModel):
    """Everything written to the state file."""

    last_check_timestamp: UtcDatetime = Field(alias="lastCheckTimestamp")
    processed_meetings: list[ProcessedMeetingRecord] = Field(
        default_factory=list, alias="processedMeetings"
    )
    skipped_meetings: list[SkippedMeetingRecord] = Field(
        default_factory=list, alias="skippedMeetings"
    )
    failure_tracking: FailureTrackingState = Field(
        default_factory=FailureTrackingState, alias="failureTracking"
    )


class FailureUpdate(BaseModel):
    """Result of recording one failure."""

    should_notify: bool
    count: int
    previous_count: int
