"""Template admission policy and template section extraction.

validate_templates decides whether a meeting's panels satisfy the
configured admission policy. extract_sections turns the matched panel's
markdown into the six fixed template sections carried by the payload.
"""

from __future__ import annotations

import re

import structlog

from src.relay.meetings.schemas import (
    SKIP_MISSING_TEMPLATE,
    Panel,
    TemplateSections,
    TemplateValidationConfig,
    TemplateValidationMode,
    TemplateValidationResult,
)

logger = structlog.get_logger(__name__)

# Panel heading -> TemplateSections field
SECTION_HEADINGS: dict[str, str] = {
    "introduction": "introduction",
    "agenda items": "agenda_items",
    "key decisions": "key_decisions",
    "action items": "action_items",
    "meeting narrative": "meeting_narrative",
    "other discussion & notes": "other_notes",
}

_HEADING = re.compile(r"^\s{0,3}#{1,6}\s+(?P<title>.+?)\s*#*\s*$")


def validate_templates(
    panels: list[Panel],
    title: str,
    config: TemplateValidationConfig | None,
) -> TemplateValidationResult:
    """Decide whether a meeting is admitted for delivery.

    Disabled policy (or ``mode=disabled``) always admits. ``any`` and
    ``specific`` both admit when at least one panel uses a required
    template; the first such panel is returned as ``matched_panel``.

    Args:
        panels: Panels attached to the meeting.
        title: Meeting title, used in the rejection reason.
        config: Admission policy; None means no policy.

    Returns:
        TemplateValidationResult with ``admit`` set. On rejection the
        reason names the missing templates by display name (raw id when
        no display name is configured).
    """
    if config is None or not config.enabled or config.mode == TemplateValidationMode.DISABLED:
        return TemplateValidationResult(admit=True)

    required = set(config.required_template_ids)
    matching = [panel for panel in panels if panel.template_slug in required]

    # ``specific`` shares the any-match rule with ``any``.
    if matching:
        return TemplateValidationResult(admit=True, matched_panel=matching[0])

    names = [config.template_names.get(tid) or tid for tid in config.required_template_ids]
    joined = ", ".join(names)
    logger.info(
        "meeting_missing_required_template",
        title=title,
        required=names,
        mode=config.mode.value,
    )
    return TemplateValidationResult(
        admit=False,
        skip_reason=SKIP_MISSING_TEMPLATE,
        reason=(
            f'Meeting skipped: Required template(s) not applied to "{title}". '
            f"Required: {joined}"
        ),
        missing_templates=names,
    )


def split_sections(content: str) -> dict[str, str]:
    """Split markdown into ``{heading: body}`` by heading lines."""
    sections: dict[str, str] = {}
    current: str | None = None
    lines: list[str] = []

    for line in content.splitlines():
        match = _HEADING.match(line)
        if match:
            if current is not None:
                sections[current] = "\n".join(lines).strip()
            current = match.group("title").strip()
            lines = []
        elif current is not None:
            lines.append(line)

    if current is not None:
        sections[current] = "\n".join(lines).strip()
    return sections


def extract_sections(panel: Panel | None) -> TemplateSections:
    """Map a template panel onto the six template fields.

    Unknown headings are ignored; missing headings stay empty strings.
    """
    if panel is None or not panel.content:
        return TemplateSections()

    values: dict[str, str] = {}
    for heading, body in split_sections(panel.content).items():
        field = SECTION_HEADINGS.get(heading.lower().rstrip(":"))
        if field and field not in values:
            values[field] = body
    return TemplateSections(**values)
