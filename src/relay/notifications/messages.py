"""Subjects and bodies for operator notifications."""

from __future__ import annotations

from datetime import datetime


def _when(now: datetime) -> str:
    return now.strftime("%Y-%m-%d %H:%M:%S %Z").strip()


def success_message(
    title: str, meeting_id: str, environment: str, now: datetime
) -> tuple[str, str]:
    return (
        f'✅ Success: processed "{title}"',
        "Successfully processed meeting:\n"
        f"- Title: {title}\n"
        f"- ID: {meeting_id}\n"
        f"- Time: {_when(now)}\n"
        f"- Environment: {environment}",
    )


def template_missing_message(
    title: str,
    meeting_id: str,
    required: list[str],
    environment: str,
    now: datetime,
) -> tuple[str, str]:
    return (
        "🟡 Required Template Missing",
        "*REQUIRED TEMPLATE MISSING*\n\n"
        "Meeting requires template(s) but none were found:\n"
        f"- Title: {title}\n"
        f"- ID: {meeting_id}\n"
        f"- Environment: {environment}\n"
        f"- Time: {_when(now)}\n"
        f"- Required: {', '.join(required) or 'Unknown templates'}\n\n"
        "Apply the required template and the meeting will be processed "
        "on the next run.",
    )


def meeting_failure_message(
    title: str,
    meeting_id: str,
    error: str | None,
    failure_count: int,
    environment: str,
    now: datetime,
) -> tuple[str, str]:
    return (
        f'🔴 ERROR: Failed to process "{title}"',
        "*MEETING PROCESSING ERROR*\n\n"
        "Failed to process meeting:\n"
        f"- Title: {title}\n"
        f"- ID: {meeting_id}\n"
        f"- Error: {error or 'Unknown error'}\n"
        f"- Consecutive failures: {failure_count}\n"
        f"- Time: {_when(now)}\n"
        f"- Environment: {environment}\n\n"
        "Check the logs for detailed error information.",
    )


def run_failure_message(
    error: str,
    failure_count: int,
    last_success: datetime | None,
    environment: str,
    state_path: str,
    now: datetime,
) -> tuple[str, str]:
    return (
        f"🔴 ERROR IN MEETING PROCESSING ({failure_count} consecutive failures)",
        "*ERROR IN MEETING PROCESSING*\n\n"
        f"The meeting relay encountered an error at {_when(now)}\n\n"
        f"Error: {error}\n\n"
        f"Environment: {environment}\n"
        f"State file: {state_path}\n"
        f"Consecutive failures: {failure_count}\n"
        f"Last success: {last_success.isoformat() if last_success else 'Unknown'}\n\n"
        "The meeting-notes API may have changed, or there are network or "
        "authentication issues.",
    )


def recovery_message(
    previous_failures: int, environment: str, now: datetime
) -> tuple[str, str]:
    return (
        f"🟢 Recovered after {previous_failures} consecutive failures",
        f"Meeting processing recovered at {_when(now)}.\n"
        f"- Previous consecutive failures: {previous_failures}\n"
        f"- Environment: {environment}",
    )
