"""PayloadBuilder -- assembles the normalized MeetingPayload.

Deterministic given its inputs and clock: participants come from the
creator plus attendees, the organization from OrganizationDetector, the
template sections from the matched panel, and the duration from the
transcript bounds.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

import structlog

from src.relay.meetings.organization import OrganizationDetector, email_domain
from src.relay.meetings.schemas import (
    CreatorInfo,
    EnhancedTranscript,
    MeetingMetadata,
    MeetingParticipant,
    MeetingPayload,
    Panel,
    ParticipantCompany,
    Person,
    SourceDocument,
    TranscriptSegment,
)
from src.relay.meetings.templates import extract_sections

logger = structlog.get_logger(__name__)

UNKNOWN_NAME = "Unknown"
UNKNOWN_EMAIL = "unknown@example.com"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _participant(person: Person, role: str) -> MeetingParticipant:
    company = None
    if person.company_name:
        company = ParticipantCompany(
            name=person.company_name, domain=email_domain(person.email)
        )
    return MeetingParticipant(
        name=person.name or UNKNOWN_NAME,
        email=person.email or UNKNOWN_EMAIL,
        role=role,
        company=company,
    )


def extract_participants(document: SourceDocument) -> list[MeetingParticipant]:
    """Creator first, then attendees not already listed by email."""
    people = document.people
    if people is None:
        return []

    participants: list[MeetingParticipant] = []
    seen: set[str] = set()

    if people.creator is not None:
        participants.append(_participant(people.creator, "Creator"))
        if people.creator.email:
            seen.add(people.creator.email.lower())

    for attendee in people.attendees:
        key = attendee.email.lower() if attendee.email else None
        if key is not None and key in seen:
            continue
        participants.append(_participant(attendee, "Attendee"))
        if key is not None:
            seen.add(key)
    return participants


def transcript_duration(segments: list[TranscriptSegment] | None) -> float | None:
    """Seconds from the first segment's start to the last segment's end."""
    if not segments:
        return None
    start = segments[0].start_time
    end = segments[-1].end_time
    if start is None or end is None:
        return None
    return (end - start).total_seconds()


def meeting_date(document: SourceDocument, now: datetime) -> str:
    """The document's original creation timestamp, verbatim.

    Re-serializing the parsed value would shift timezone offsets, so the
    source string is returned as-is once it is known to parse.
    """
    raw = document.created_at
    if raw:
        try:
            datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            logger.warning("invalid_meeting_date", raw=raw, meeting_id=document.meeting_id)
        else:
            return raw
    return now.isoformat()


class PayloadBuilder:
    """Builds MeetingPayloads.

    Args:
        detector: OrganizationDetector for the organization block.
        clock: Returns the current time; used for the processing timestamp
            and as the fallback meeting date.
    """

    def __init__(
        self,
        detector: OrganizationDetector,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._detector = detector
        self._clock = clock

    def build(
        self,
        document: SourceDocument,
        matched_panel: Panel | None = None,
        transcript: list[TranscriptSegment] | None = None,
        transcript_markdown: str = "",
    ) -> MeetingPayload:
        """Assemble the payload for one meeting.

        Args:
            document: Source meeting record.
            matched_panel: Panel admitted by template validation, if any.
            transcript: Transcript segments; attached only when given.
            transcript_markdown: Pre-formatted transcript text.

        Returns:
            MeetingPayload with template sections always present.
        """
        now = self._clock()
        creator = document.people.creator if document.people else None

        metadata = MeetingMetadata(
            participants=extract_participants(document),
            duration=transcript_duration(transcript),
            organization=self._detector.detect_with_signals(document),
            creator=(
                CreatorInfo(
                    name=creator.name,
                    email=creator.email,
                    company=creator.company_name,
                )
                if creator is not None
                else None
            ),
        )

        return MeetingPayload(
            meeting_id=document.meeting_id,
            meeting_title=document.title or "Untitled Meeting",
            meeting_date=meeting_date(document, now),
            metadata=metadata,
            josh_template=extract_sections(matched_panel),
            transcript_markdown=transcript_markdown or "",
            enhanced_transcript=(
                EnhancedTranscript(segments=transcript) if transcript is not None else None
            ),
            processing_timestamp=now.isoformat(),
        )
