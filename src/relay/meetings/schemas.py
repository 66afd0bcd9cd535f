"""Pydantic v2 schemas for the meeting relay domain.

Three groups of contracts live here:

- Source records as returned by the meeting-notes service (documents,
  people, calendar events, panels, transcript segments). These tolerate
  extra fields since the upstream API adds them freely.
- Admission and detection configuration (template validation policy,
  organization definitions).
- The normalized MeetingPayload delivered to every sink, serialized with
  camelCase keys, plus the per-meeting MeetingResult.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.relay.delivery.schemas import OutputResult

SKIP_MISSING_TEMPLATE = "missing_required_template"


# ── Source Records ───────────────────────────────────────────────────────────


class SourceModel(BaseModel):
    """Base for upstream records; unknown fields are kept, not rejected."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)


class Company(SourceModel):
    name: str | None = None


class PersonDetails(SourceModel):
    company: Company | None = None


class Person(SourceModel):
    """A creator or attendee in the document's people metadata."""

    id: str | None = None
    name: str | None = None
    email: str | None = None
    details: PersonDetails | None = None

    @property
    def company_name(self) -> str | None:
        if self.details and self.details.company:
            return self.details.company.name
        return None


class People(SourceModel):
    creator: Person | None = None
    attendees: list[Person] = Field(default_factory=list)


class CalendarPerson(SourceModel):
    email: str | None = None
    display_name: str | None = Field(
        None, validation_alias=AliasChoices("displayName", "display_name")
    )


class CalendarEvent(SourceModel):
    """Calendar event attached to a meeting document."""

    creator: CalendarPerson | None = None
    organizer: CalendarPerson | None = None
    attendees: list[CalendarPerson] = Field(default_factory=list)


class SourceDocument(SourceModel):
    """A meeting record from the meeting-notes service."""

    id: str | None = None
    document_id: str | None = None
    title: str | None = None
    created_at: str | None = None
    people: People | None = None
    google_calendar_event: CalendarEvent | None = None

    @property
    def meeting_id(self) -> str:
        return self.document_id or self.id or ""


class Panel(SourceModel):
    """A structured-content panel generated from a note template."""

    id: str | None = None
    template_slug: str = ""
    title: str | None = None
    content: str = Field(
        "", validation_alias=AliasChoices("content", "original_content")
    )


class TranscriptSegment(SourceModel):
    """One speech segment of a meeting transcript."""

    speaker: str = "Unknown"
    text: str = ""
    start_time: datetime | None = None
    end_time: datetime | None = None
    confidence: float | None = None


# ── Admission & Detection Config ─────────────────────────────────────────────


class TemplateValidationMode(str, Enum):
    """How the admission policy treats required template ids."""

    DISABLED = "disabled"
    ANY = "any"
    SPECIFIC = "specific"


class TemplateValidationConfig(BaseModel):
    """Admission policy gating which meetings are delivered."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = False
    mode: TemplateValidationMode = TemplateValidationMode.DISABLED
    required_template_ids: list[str] = Field(default_factory=list)
    template_names: dict[str, str] = Field(
        default_factory=dict,
        description="Display names keyed by template id",
    )


class OrganizationConfig(BaseModel):
    """Signals that identify one organization."""

    model_config = ConfigDict(extra="forbid")

    name: str
    title_keywords: list[str] = Field(default_factory=list)
    email_domains: list[str] = Field(default_factory=list)
    email_addresses: list[str] = Field(default_factory=list)
    company_names: list[str] = Field(default_factory=list)


class TemplateValidationResult(BaseModel):
    """Admission decision for one meeting."""

    admit: bool
    matched_panel: Panel | None = None
    reason: str | None = None
    skip_reason: str | None = None
    missing_templates: list[str] = Field(default_factory=list)


# ── Delivery Payload ─────────────────────────────────────────────────────────


class PayloadModel(BaseModel):
    """Base for payload parts: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ParticipantCompany(PayloadModel):
    name: str | None = None
    domain: str | None = None


class MeetingParticipant(PayloadModel):
    name: str
    email: str
    role: str
    company: ParticipantCompany | None = None


class OrganizationSignals(PayloadModel):
    """Which detection signals contributed to the organization label."""

    calendar_match: bool = False
    title_match: bool = False
    creator_domain_match: bool = False
    creator_company_match: bool = False
    matching_domain_attendees: int = 0
    total_attendees_with_domain: int = 0


class OrganizationInfo(PayloadModel):
    name: str
    confidence: float
    signals: OrganizationSignals = Field(default_factory=OrganizationSignals)


class CreatorInfo(PayloadModel):
    name: str | None = None
    email: str | None = None
    company: str | None = None


class TemplateSections(PayloadModel):
    """The six template sections, always present as strings."""

    introduction: str = ""
    agenda_items: str = ""
    key_decisions: str = ""
    action_items: str = ""
    meeting_narrative: str = ""
    other_notes: str = ""


class MeetingMetadata(PayloadModel):
    participants: list[MeetingParticipant] = Field(default_factory=list)
    duration: float | None = Field(None, description="Seconds, from transcript bounds")
    organization: OrganizationInfo
    creator: CreatorInfo | None = None


class EnhancedTranscript(PayloadModel):
    segments: list[TranscriptSegment] | None = None


class MeetingPayload(PayloadModel):
    """Normalized, sink-agnostic representation of one processed meeting."""

    meeting_id: str
    meeting_title: str
    meeting_date: str
    metadata: MeetingMetadata
    josh_template: TemplateSections = Field(default_factory=TemplateSections)
    transcript_markdown: str = ""
    enhanced_transcript: EnhancedTranscript | None = None
    processing_timestamp: str

    def to_json(self) -> str:
        """Serialize for the wire; the exact bytes that get signed."""
        return self.model_dump_json(by_alias=True, exclude_none=True)

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ── Processing Result ────────────────────────────────────────────────────────


class MeetingResult(BaseModel):
    """Outcome of processing one meeting end to end."""

    meeting_id: str
    title: str = "Unknown"
    success: bool
    skipped: bool = False
    skip_reason: str | None = None
    status_code: int | None = None
    retries: int | None = None
    error: str | None = None
    outputs: list[OutputResult] = Field(default_factory=list)


class BatchResult(BaseModel):
    """Outcome of one batch run."""

    results: list[MeetingResult] = Field(default_factory=list)
    documents_found: int = 0
    error: str | None = None

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.skipped)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success and not r.skipped)
