"""OrganizationDetector -- maps a meeting to an organization label.

Signals are evaluated in fixed priority order and the first source that
produces a match wins:

1. Calendar event: creator/organizer address or domain, then attendee
   addresses/domains (the organization with the most matching attendees
   wins; ties go to the organization listed first in config).
2. Meeting title: case-insensitive keyword substrings.
3. People metadata: creator address/domain, creator company, then
   attendee companies and addresses (most matches wins).

Pure and deterministic: no I/O, output depends only on the document and
the configured organizations.
"""

from __future__ import annotations

from collections.abc import Iterable

from src.relay.meetings.schemas import (
    OrganizationConfig,
    OrganizationInfo,
    OrganizationSignals,
    Person,
    SourceDocument,
)

CONFIDENCE_CALENDAR = 0.9
CONFIDENCE_TITLE = 0.8
CONFIDENCE_PEOPLE = 0.7
CONFIDENCE_DEFAULT = 0.5


def email_domain(email: str | None) -> str | None:
    if not email or "@" not in email:
        return None
    return email.rsplit("@", 1)[1].strip().lower() or None


def email_matches(email: str | None, org: OrganizationConfig) -> bool:
    """True if the address is listed, or its domain (or a subdomain) is."""
    if not email:
        return False
    address = email.strip().lower()
    if address in {a.strip().lower() for a in org.email_addresses}:
        return True
    domain = email_domain(address)
    if domain is None:
        return False
    for configured in org.email_domains:
        configured = configured.strip().lower().lstrip("@")
        if configured and (domain == configured or domain.endswith("." + configured)):
            return True
    return False


def company_matches(company: str | None, org: OrganizationConfig) -> bool:
    if not company:
        return False
    wanted = company.strip().lower()
    return any(wanted == name.strip().lower() for name in org.company_names)


class OrganizationDetector:
    """Detects the organization a meeting belongs to.

    Args:
        organizations: Organization definitions, in tie-break order.
        default_organization: Label returned when no signal matches.
    """

    def __init__(
        self,
        organizations: list[OrganizationConfig] | None = None,
        default_organization: str = "Unknown",
    ) -> None:
        self._organizations = list(organizations or [])
        self._default = default_organization

    @property
    def default_organization(self) -> str:
        return self._default

    def detect(self, document: SourceDocument) -> str:
        """Return the organization label for a meeting document."""
        return self.detect_with_signals(document).name

    def detect_with_signals(self, document: SourceDocument) -> OrganizationInfo:
        """Return the label with confidence and the signals that matched."""
        if self._organizations:
            for signal in (self._from_calendar, self._from_title, self._from_people):
                info = signal(document)
                if info is not None:
                    return info

        return OrganizationInfo(name=self._default, confidence=CONFIDENCE_DEFAULT)

    # ── Signals ──────────────────────────────────────────────────────────

    def _from_calendar(self, document: SourceDocument) -> OrganizationInfo | None:
        event = document.google_calendar_event
        if event is None:
            return None

        for person in (event.creator, event.organizer):
            if person is None:
                continue
            for org in self._organizations:
                if email_matches(person.email, org):
                    return OrganizationInfo(
                        name=org.name,
                        confidence=CONFIDENCE_CALENDAR,
                        signals=OrganizationSignals(
                            calendar_match=True,
                            creator_domain_match=True,
                        ),
                    )

        emails = [a.email for a in event.attendees if email_domain(a.email)]
        best, count = self._most_matched(
            emails, lambda email, org: email_matches(email, org)
        )
        if best is None:
            return None
        return OrganizationInfo(
            name=best.name,
            confidence=CONFIDENCE_CALENDAR,
            signals=OrganizationSignals(
                calendar_match=True,
                matching_domain_attendees=count,
                total_attendees_with_domain=len(emails),
            ),
        )

    def _from_title(self, document: SourceDocument) -> OrganizationInfo | None:
        title = (document.title or "").lower()
        if not title:
            return None
        for org in self._organizations:
            if any(kw.strip() and kw.strip().lower() in title for kw in org.title_keywords):
                return OrganizationInfo(
                    name=org.name,
                    confidence=CONFIDENCE_TITLE,
                    signals=OrganizationSignals(title_match=True),
                )
        return None

    def _from_people(self, document: SourceDocument) -> OrganizationInfo | None:
        people = document.people
        if people is None:
            return None

        creator = people.creator
        if creator is not None:
            for org in self._organizations:
                domain_match = email_matches(creator.email, org)
                company_match = company_matches(creator.company_name, org)
                if domain_match or company_match:
                    return OrganizationInfo(
                        name=org.name,
                        confidence=CONFIDENCE_PEOPLE,
                        signals=OrganizationSignals(
                            creator_domain_match=domain_match,
                            creator_company_match=company_match,
                        ),
                    )

        attendees = people.attendees
        best, count = self._most_matched(
            attendees,
            lambda person, org: email_matches(person.email, org)
            or company_matches(person.company_name, org),
        )
        if best is None:
            return None
        return OrganizationInfo(
            name=best.name,
            confidence=CONFIDENCE_PEOPLE,
            signals=OrganizationSignals(
                matching_domain_attendees=count,
                total_attendees_with_domain=sum(
                    1 for p in attendees if email_domain(p.email)
                ),
            ),
        )

    def _most_matched(
        self, items: Iterable[str | Person | None], matches
    ) -> tuple[OrganizationConfig | None, int]:
        """Organization matching the most items; first configured wins ties."""
        items = list(items)
        best: OrganizationConfig | None = None
        best_count = 0
        for org in self._organizations:
            count = sum(1 for item in items if matches(item, org))
            if count > best_count:
                best, best_count = org, count
        return best, best_count
