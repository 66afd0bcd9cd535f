"""Unit tests for PayloadBuilder.

Covers participant extraction and de-duplication, transcript duration,
the verbatim creation timestamp (timezone drift regression), template
section defaults, and the camelCase wire format.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone

from src.relay.meetings.organization import OrganizationDetector
from src.relay.meetings.payload import (
    UNKNOWN_EMAIL,
    PayloadBuilder,
    extract_participants,
    meeting_date,
    transcript_duration,
)
from src.relay.meetings.schemas import (
    OrganizationConfig,
    Panel,
    SourceDocument,
    TranscriptSegment,
)

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _make_builder() -> PayloadBuilder:
    detector = OrganizationDetector(
        [OrganizationConfig(name="Acme", email_domains=["acme.com"])]
    )
    return PayloadBuilder(detector, clock=lambda: NOW)


def _make_document(**kwargs) -> SourceDocument:
    data = {
        "id": "doc-123",
        "title": "Acme sync",
        "created_at": "2024-02-28T09:30:00.000-08:00",
        "people": {
            "creator": {
                "name": "Wile E.",
                "email": "wile@acme.com",
                "details": {"company": {"name": "Acme Corp"}},
            },
            "attendees": [
                {"name": "Wile again", "email": "WILE@acme.com"},
                {"name": "Road Runner", "email": "rr@desert.org"},
                {"name": "No Email"},
            ],
        },
    }
    data.update(kwargs)
    return SourceDocument.model_validate(data)


def _segment(start: str, end: str, text: str = "hi") -> TranscriptSegment:
    return TranscriptSegment(
        speaker="Wile",
        text=text,
        start_time=datetime.fromisoformat(start),
        end_time=datetime.fromisoformat(end),
    )


class TestParticipants:
    def test_creator_first_and_deduplicated_by_email(self):
        participants = extract_participants(_make_document())

        assert [p.name for p in participants] == ["Wile E.", "Road Runner", "No Email"]
        assert [p.role for p in participants] == ["Creator", "Attendee", "Attendee"]
        assert participants[0].company.name == "Acme Corp"
        assert participants[0].company.domain == "acme.com"
        assert participants[2].email == UNKNOWN_EMAIL

    def test_no_people(self):
        assert extract_participants(SourceDocument(id="x")) == []


class TestDuration:
    def test_first_start_to_last_end(self):
        segments = [
            _segment("2024-03-01T10:00:00+00:00", "2024-03-01T10:00:30+00:00"),
            _segment("2024-03-01T10:00:30+00:00", "2024-03-01T10:45:00+00:00"),
        ]
        assert transcript_duration(segments) == 45 * 60

    def test_no_transcript_is_undefined_not_zero(self):
        assert transcript_duration(None) is None
        assert transcript_duration([]) is None


class TestMeetingDate:
    def test_created_at_preserved_verbatim(self):
        # Re-serializing would turn -08:00 into +00:00 and move the date.
        doc = _make_document(created_at="2024-02-28T23:30:00.000-08:00")
        assert meeting_date(doc, NOW) == "2024-02-28T23:30:00.000-08:00"

    def test_zulu_suffix_preserved(self):
        doc = _make_document(created_at="2024-02-28T23:30:00.000Z")
        assert meeting_date(doc, NOW) == "2024-02-28T23:30:00.000Z"

    def test_invalid_falls_back_to_now(self):
        doc = _make_document(created_at="last tuesday")
        assert meeting_date(doc, NOW) == NOW.isoformat()


class TestBuild:
    def test_build_full_payload(self):
        panel = Panel(template_slug="T1", content="## Action Items\n- call Acme")
        transcript = [
            _segment("2024-03-01T10:00:00+00:00", "2024-03-01T10:30:00+00:00"),
        ]
        payload = _make_builder().build(
            _make_document(),
            matched_panel=panel,
            transcript=transcript,
            transcript_markdown="**Wile**: hi",
        )

        assert payload.meeting_id == "doc-123"
        assert payload.meeting_title == "Acme sync"
        assert payload.meeting_date == "2024-02-28T09:30:00.000-08:00"
        assert payload.processing_timestamp == NOW.isoformat()
        assert payload.metadata.organization.name == "Acme"
        assert payload.metadata.duration == 1800
        assert payload.metadata.creator.company == "Acme Corp"
        assert payload.josh_template.action_items == "- call Acme"
        assert payload.transcript_markdown == "**Wile**: hi"
        assert payload.enhanced_transcript.segments == transcript

    def test_no_template_panel_gives_six_empty_fields(self):
        payload = _make_builder().build(_make_document())
        wire = json.loads(payload.to_json())

        assert wire["joshTemplate"] == {
            "introduction": "",
            "agendaItems": "",
            "keyDecisions": "",
            "actionItems": "",
            "meetingNarrative": "",
            "otherNotes": "",
        }

    def test_wire_format_is_camel_case_without_nulls(self):
        payload = _make_builder().build(_make_document())
        wire = json.loads(payload.to_json())

        assert wire["meetingId"] == "doc-123"
        assert wire["meetingTitle"] == "Acme sync"
        assert wire["processingTimestamp"] == NOW.isoformat()
        assert wire["transcriptMarkdown"] == ""
        assert "enhancedTranscript" not in wire
        assert "duration" not in wire["metadata"]
        assert wire["metadata"]["organization"]["signals"]["creatorDomainMatch"] is True

    def test_document_id_preferred_over_id(self):
        payload = _make_builder().build(_make_document(document_id="doc-999"))
        assert payload.meeting_id == "doc-999"

    def test_untitled_meeting(self):
        payload = _make_builder().build(_make_document(title=None))
        assert payload.meeting_title == "Untitled Meeting"
