"""Unit tests for template admission and section extraction."""

from __future__ import annotations

import pytest

from src.relay.meetings.schemas import (
    SKIP_MISSING_TEMPLATE,
    Panel,
    TemplateValidationConfig,
    TemplateValidationMode,
)
from src.relay.meetings.templates import extract_sections, split_sections, validate_templates


def _make_config(mode: str = "any", enabled: bool = True, **kwargs) -> TemplateValidationConfig:
    return TemplateValidationConfig(
        enabled=enabled,
        mode=mode,
        required_template_ids=kwargs.pop("required_template_ids", ["T1"]),
        **kwargs,
    )


def _panel(slug: str, content: str = "") -> Panel:
    return Panel(id=f"panel-{slug}", template_slug=slug, title=slug, content=content)


# ── Admission ────────────────────────────────────────────────────────────────


class TestValidateTemplates:
    def test_no_config_admits(self):
        assert validate_templates([], "Sync", None).admit is True

    def test_disabled_flag_admits(self):
        result = validate_templates([], "Sync", _make_config(enabled=False))
        assert result.admit is True

    def test_disabled_mode_ignores_required_ids(self):
        result = validate_templates([], "Sync", _make_config(mode="disabled"))
        assert result.admit is True
        assert result.matched_panel is None

    def test_any_mode_admits_with_first_matching_panel(self):
        panels = [_panel("other"), _panel("T1", "a"), _panel("T1", "b")]
        result = validate_templates(panels, "Sync", _make_config())

        assert result.admit is True
        assert result.matched_panel is not None
        assert result.matched_panel.content == "a"

    def test_rejection_names_missing_templates(self):
        config = _make_config(
            required_template_ids=["T1", "T2"], template_names={"T1": "Josh Template"}
        )
        result = validate_templates([_panel("other")], "Board Sync", config)

        assert result.admit is False
        assert result.skip_reason == SKIP_MISSING_TEMPLATE
        assert result.missing_templates == ["Josh Template", "T2"]
        assert result.reason == (
            'Meeting skipped: Required template(s) not applied to "Board Sync". '
            "Required: Josh Template, T2"
        )

    @pytest.mark.parametrize("mode", [TemplateValidationMode.ANY, TemplateValidationMode.SPECIFIC])
    def test_specific_uses_any_match_rule(self, mode):
        # One of two required templates is enough in both modes.
        config = _make_config(mode=mode, required_template_ids=["T1", "T2"])
        result = validate_templates([_panel("T2")], "Sync", config)

        assert result.admit is True
        assert result.matched_panel.template_slug == "T2"


# ── Sections ─────────────────────────────────────────────────────────────────


PANEL_MARKDOWN = """\
## Introduction
Quarterly review with Acme.

### Agenda Items
- Budget
- Hiring

## Key Decisions:
Ship in May.

## Action Items
- [ ] Send deck

## Unrelated Heading
ignored

## Other Discussion & Notes
Coffee was good.
"""


class TestSections:
    def test_split_sections_by_heading(self):
        sections = split_sections("intro text\n# One\nfirst\n\n## Two ##\nsecond")
        assert sections == {"One": "first", "Two": "second"}

    def test_extract_sections_maps_known_headings(self):
        sections = extract_sections(_panel("T1", PANEL_MARKDOWN))

        assert sections.introduction == "Quarterly review with Acme."
        assert sections.agenda_items == "- Budget\n- Hiring"
        assert sections.key_decisions == "Ship in May."
        assert sections.action_items == "- [ ] Send deck"
        assert sections.meeting_narrative == ""
        assert sections.other_notes == "Coffee was good."

    def test_no_panel_gives_empty_strings(self):
        sections = extract_sections(None)
        assert sections.model_dump() == {
            "introduction": "",
            "agenda_items": "",
            "key_decisions": "",
            "action_items": "",
            "meeting_narrative": "",
            "other_notes": "",
        }

    def test_original_content_alias(self):
        panel = Panel.model_validate(
            {"template_slug": "T1", "original_content": "## Introduction\nHi"}
        )
        assert extract_sections(panel).introduction == "Hi"
