"""Prompt construction, response parsing and canned fallback content."""
import json
import re
from dataclasses import dataclass, replace
from ..models import Event, EventKind

SECTION_HEADERS = ("ROOT_CAUSE", "IMPACT", "NEXT_STEPS", "OVERALL_SUMMARY")
BULLET_MARKERS = ("•", "-", "* ")
DEFAULT_OVERALL_SUMMARY = "Suspicious activity detected requiring investigation."

# Headers may be decorated with markdown ("**ROOT_CAUSE:**", "## IMPACT:")
# and use a space instead of the underscore.
_HEADER_PREFIX = r"^[ \t#*]*"
_HEADER_SUFFIX = r"[ \t*]*:[ \t*]*"


def _header_pattern(name: str) -> str:
    return name.replace("_", "[ _]")


_ANY_HEADER = _HEADER_PREFIX + "(?:" + "|".join(_header_pattern(h) for h in SECTION_HEADERS) + ")" + _HEADER_SUFFIX


@dataclass(frozen=True)
class ReportContent:
    """The four text blocks of an incident report."""
    overall: str
    root_cause: str
    impact: str
    next_steps: str


PROMPT_TEMPLATE = """You are a cybersecurity analyst reviewing GitHub activity. Analyze this suspicious event and provide a structured incident summary.

EVENT DATA:
Type: {type}
Repository: {repo}
Actor: {actor}
Created: {created_at}
Payload: {payload}

Provide EXACTLY this format:

ROOT_CAUSE:
• [bullet point 1]
• [bullet point 2]
• [bullet point 3]

IMPACT:
• [bullet point 1]
• [bullet point 2]
• [bullet point 3]

NEXT_STEPS:
• [bullet point 1]
• [bullet point 2]
• [bullet point 3]

OVERALL_SUMMARY:
[2-3 sentence overview]

Keep each section to exactly 3 bullet points. Be specific about technical details, potential risks, and actionable recommendations."""


def build_prompt(event: Event) -> str:
    return PROMPT_TEMPLATE.format(
        type=event.type,
        repo=event.repo_name,
        actor=event.actor_name,
        created_at=event.created_at.isoformat(),
        payload=json.dumps(event.payload, indent=2, default=str),
    )


def extract_section(text: str, name: str) -> str:
    """
    Return the text under a section header, up to the next known header.

    Returns an empty string when the header is absent.
    """
    pattern = _HEADER_PREFIX + _header_pattern(name) + _HEADER_SUFFIX + r"(.*?)(?=" + _ANY_HEADER + r"|\Z)"
    match = re.search(pattern, text, re.IGNORECASE | re.MULTILINE | re.DOTALL)
    return match.group(1).strip() if match else ""


def _is_bullet(line: str) -> bool:
    return line.startswith(BULLET_MARKERS)


def parse_response_fallback(text: str) -> ReportContent:
    """
    Heuristic parse for responses that ignored the requested format.

    Bullet lines are split into three chunks (root cause, impact, next
    steps) with the last chunk taking the remainder. The first plain line
    longer than 20 characters becomes the overall summary.
    """
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    bullets = [line for line in lines if _is_bullet(line)]

    chunk = max(len(bullets) // 3, 1)
    overall = next(
        (line for line in lines if not _is_bullet(line) and len(line) > 20),
        DEFAULT_OVERALL_SUMMARY,
    )
    return ReportContent(
        overall=overall,
        root_cause="\n".join(bullets[:chunk]),
        impact="\n".join(bullets[chunk:chunk * 2]),
        next_steps="\n".join(bullets[chunk * 2:]),
    )


def parse_response(text: str, fallback: ReportContent) -> ReportContent:
    """
    Parse a generated response into report content.

    Labeled sections are tried first; if any bulleted section is missing the
    heuristic parser is used instead. Fields that are still empty are taken
    from ``fallback``, so every field of the result is non-empty.
    """
    content = ReportContent(
        overall=extract_section(text, "OVERALL_SUMMARY"),
        root_cause=extract_section(text, "ROOT_CAUSE"),
        impact=extract_section(text, "IMPACT"),
        next_steps=extract_section(text, "NEXT_STEPS"),
    )
    if not (content.root_cause and content.impact and content.next_steps):
        content = parse_response_fallback(text)

    return replace(
        content,
        overall=content.overall or fallback.overall,
        root_cause=content.root_cause or fallback.root_cause,
        impact=content.impact or fallback.impact,
        next_steps=content.next_steps or fallback.next_steps,
    )


@dataclass(frozen=True)
class CannedText:
    root_cause: str
    impact: str
    next_steps: str


FALLBACKS: dict[EventKind, CannedText] = {
    EventKind.WORKFLOW_RUN: CannedText(
        root_cause="• CI/CD pipeline failure in automated workflow\n• Potential code quality or test failures\n• Build environment or dependency issues",
        impact="• Development workflow disruption\n• Potential deployment delays\n• Code quality concerns",
        next_steps="• Review workflow logs for error details\n• Check recent commits for breaking changes\n• Verify build environment configuration",
    ),
    EventKind.PUSH: CannedText(
        root_cause="• Force push detected to protected branch\n• Potential history rewriting or unauthorized changes\n• Git workflow violation",
        impact="• Code history integrity compromised\n• Potential data loss or security issues\n• Team collaboration disruption",
        next_steps="• Review pushed changes immediately\n• Verify author authorization\n• Implement branch protection rules",
    ),
    EventKind.ISSUES: CannedText(
        root_cause="• High volume of issue creation detected\n• Potential spam or coordinated reporting\n• System or process-related problems",
        impact="• Project management workflow disruption\n• Increased maintenance overhead\n• Community trust concerns",
        next_steps="• Review issue content for legitimacy\n• Check for spam patterns\n• Implement issue templates if needed",
    ),
    EventKind.REPOSITORY: CannedText(
        root_cause="• Repository deleted or made private\n• Possible owner action or compromised account\n• Change in project availability",
        impact="• Dependent projects may lose access\n• Loss of public history and artifacts\n• Supply chain disruption for consumers",
        next_steps="• Confirm the change with repository owners\n• Audit recent administrative actions\n• Check downstream dependencies for breakage",
    ),
    EventKind.DELETE: CannedText(
        root_cause="• Branch deleted from repository\n• Possible cleanup or unauthorized removal\n• Ref lifecycle change",
        impact="• Unmerged work may be lost\n• Open pull requests may be orphaned\n• Build pipelines referencing the branch may fail",
        next_steps="• Verify the deletion was intended\n• Restore the branch from a known commit if needed\n• Review branch protection settings",
    ),
    EventKind.SECURITY_ADVISORY: CannedText(
        root_cause="• Security advisory published\n• Vulnerability disclosed in a dependency or package\n• Coordinated disclosure activity",
        impact="• Affected versions may be exploitable\n• Downstream users exposed until patched\n• Increased attention from attackers",
        next_steps="• Identify affected versions in use\n• Apply the recommended patch or upgrade\n• Monitor for exploitation attempts",
    ),
    EventKind.RELEASE: CannedText(
        root_cause="• New release published\n• Release artifacts distributed to users\n• Possible automated or manual publishing",
        impact="• Consumers may upgrade automatically\n• Tampered artifacts would propagate widely\n• Release integrity is security relevant",
        next_steps="• Verify release author and signatures\n• Compare artifacts against the tagged source\n• Watch for reports of unexpected behaviour",
    ),
    EventKind.UNKNOWN: CannedText(
        root_cause="• Suspicious activity pattern detected\n• Requires manual investigation\n• Potential security or operational concern",
        impact="• Repository security or stability risk\n• Development workflow disruption\n• Requires immediate attention",
        next_steps="• Investigate event details manually\n• Review recent repository activity\n• Contact repository maintainers if needed",
    ),
}


def fallback_content(event_type: str, repo_name: str | None) -> ReportContent:
    """Canned report content for an event type, used when generation fails."""
    canned = FALLBACKS[EventKind.from_type(event_type)]
    repo = repo_name or "unknown repository"
    return ReportContent(
        overall=f"Suspicious {event_type} activity detected in {repo} requiring investigation.",
        root_cause=canned.root_cause,
        impact=canned.impact,
        next_steps=canned.next_steps,
    )
