"""Tests for prompt construction and response parsing."""
import pytest
from datetime import datetime, timezone
from gitmonitor.models import Event, EventKind
from gitmonitor.services.prompts import (
    DEFAULT_OVERALL_SUMMARY,
    FALLBACKS,
    build_prompt,
    extract_section,
    fallback_content,
    parse_response,
    parse_response_fallback,
)

WELL_FORMED = """ROOT_CAUSE:
• Force push rewrote main
• Commits were squashed
• Branch protection disabled

IMPACT:
• History lost for 3 commits
• Open PRs now conflict
• CI artifacts are stale

NEXT_STEPS:
• Restore from reflog
• Re-enable branch protection
• Notify contributors

OVERALL_SUMMARY:
A forced push to main rewrote recent history. Contributors should rebase.
"""


def push_fallback():
    return fallback_content("PushEvent", "octo/repo")


def test_build_prompt_embeds_event_details():
    event = Event(
        id="1",
        type="PushEvent",
        repo_name="octo/repo",
        actor_name="octocat",
        created_at=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        raw_payload={"payload": {"forced": True, "ref": "refs/heads/main"}},
    )

    prompt = build_prompt(event)

    assert "Type: PushEvent" in prompt
    assert "Repository: octo/repo" in prompt
    assert "Actor: octocat" in prompt
    assert "2024-05-01T12:00:00+00:00" in prompt
    assert '"ref": "refs/heads/main"' in prompt
    for header in ("ROOT_CAUSE:", "IMPACT:", "NEXT_STEPS:", "OVERALL_SUMMARY:"):
        assert header in prompt


def test_extract_section_stops_at_next_header():
    assert extract_section(WELL_FORMED, "IMPACT") == (
        "• History lost for 3 commits\n• Open PRs now conflict\n• CI artifacts are stale"
    )
    assert extract_section(WELL_FORMED, "OVERALL_SUMMARY").startswith("A forced push")


def test_extract_section_tolerates_markdown_headers():
    text = "**ROOT_CAUSE:**\n- a\n\n## Impact:\n- b\n\n**NEXT STEPS**:\n- c\n"
    assert extract_section(text, "ROOT_CAUSE") == "- a"
    assert extract_section(text, "IMPACT") == "- b"
    assert extract_section(text, "NEXT_STEPS") == "- c"


def test_extract_section_missing_header():
    assert extract_section("nothing here", "IMPACT") == ""


def test_parse_well_formed_response():
    content = parse_response(WELL_FORMED, push_fallback())

    assert content.root_cause.splitlines()[0] == "• Force push rewrote main"
    assert content.impact.count("•") == 3
    assert content.next_steps.endswith("• Notify contributors")
    assert content.overall.startswith("A forced push to main")


def test_parse_falls_back_to_bullet_chunks():
    text = """Here is my analysis of the suspicious event:
- one
- two
- three
- four
- five
- six
- seven
"""
    content = parse_response(text, push_fallback())

    assert content.overall == "Here is my analysis of the suspicious event:"
    assert content.root_cause == "- one\n- two"
    assert content.impact == "- three\n- four"
    assert content.next_steps == "- five\n- six\n- seven"


def test_fallback_parser_default_overall():
    content = parse_response_fallback("• a\n• b\n• c\nshort line")
    assert content.overall == DEFAULT_OVERALL_SUMMARY
    assert (content.root_cause, content.impact, content.next_steps) == ("• a", "• b", "• c")


@pytest.mark.parametrize("text", ["", "   ", "I cannot help with that.", "• only one bullet"])
def test_parse_always_returns_four_non_empty_fields(text):
    content = parse_response(text, push_fallback())
    assert all([content.overall, content.root_cause, content.impact, content.next_steps])


def test_every_event_kind_has_fallback_text():
    assert set(FALLBACKS) == set(EventKind)
    assert len({canned.root_cause for canned in FALLBACKS.values()}) == len(EventKind)


def test_fallback_content_for_unknown_type():
    content = fallback_content("GollumEvent", "octo/wiki")
    assert content.root_cause == FALLBACKS[EventKind.UNKNOWN].root_cause
    assert content.overall == "Suspicious GollumEvent activity detected in octo/wiki requiring investigation."
