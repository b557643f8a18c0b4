"""Event, report and view models shared across the pipeline."""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventKind(str, Enum):
    """Upstream event types the monitor knows how to reason about."""
    WORKFLOW_RUN = "WorkflowRunEvent"
    PUSH = "PushEvent"
    ISSUES = "IssuesEvent"
    REPOSITORY = "RepositoryEvent"
    DELETE = "DeleteEvent"
    SECURITY_ADVISORY = "SecurityAdvisoryEvent"
    RELEASE = "ReleaseEvent"
    UNKNOWN = "UnknownEvent"

    @classmethod
    def from_type(cls, event_type: str | None) -> "EventKind":
        try:
            return cls(event_type)
        except ValueError:
            return cls.UNKNOWN


class Event(BaseModel):
    """An upstream activity record as stored by the monitor."""
    id: str = Field(..., description="Upstream-assigned id, dedup key and cursor")
    type: str
    repo_name: str = "unknown"
    actor_name: str = "unknown"
    created_at: datetime
    raw_payload: dict[str, Any] = Field(default_factory=dict)
    is_suspicious: bool = False
    processed: bool = False

    @classmethod
    def from_feed(cls, record: dict[str, Any], is_suspicious: bool = False) -> "Event":
        """
        Build an event from a raw feed record.

        The whole record is kept as ``raw_payload`` so prompts and later
        reclassification see exactly what the feed returned. A ``repo`` or
        ``actor`` that is not an object reads as "unknown".
        """
        repo = record.get("repo")
        actor = record.get("actor")
        repo = repo if isinstance(repo, dict) else {}
        actor = actor if isinstance(actor, dict) else {}
        return cls(
            id=str(record["id"]),
            type=record.get("type") or EventKind.UNKNOWN.value,
            repo_name=repo.get("name") or "unknown",
            actor_name=actor.get("login") or "unknown",
            created_at=record.get("created_at") or utcnow(),
            raw_payload=record,
            is_suspicious=is_suspicious,
        )

    @property
    def payload(self) -> dict[str, Any]:
        payload = self.raw_payload.get("payload")
        return payload if isinstance(payload, dict) else {}

    @property
    def kind(self) -> EventKind:
        return EventKind.from_type(self.type)


class Report(BaseModel):
    """Structured incident summary for one suspicious event."""
    model_config = ConfigDict(frozen=True)

    event_id: str
    repo_name: str
    event_type: str
    overall_summary: str
    root_cause: str
    impact: str
    next_steps: str
    created_at: datetime = Field(default_factory=utcnow)
    source: Literal["model", "fallback"] = "model"


def relative_time(ts: datetime, now: datetime | None = None) -> str:
    """Render a timestamp as a short human-relative string ("5m ago")."""
    now = now or utcnow()
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    minutes = int((now - ts).total_seconds() // 60)
    hours = minutes // 60
    days = hours // 24

    if days > 0:
        return f"{days}d ago"
    if hours > 0:
        return f"{hours}h ago"
    if minutes > 0:
        return f"{minutes}m ago"
    return "just now"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SummaryBody(_CamelModel):
    overall: str
    root_cause: str
    impact: str
    next_steps: str


class ReportView(_CamelModel):
    """Dashboard-facing rendering of a report (camelCase keys on the wire)."""
    id: str
    event_id: str
    repo_name: str
    event_type: str
    summary: SummaryBody
    timestamp: datetime
    timestamp_relative: str

    @classmethod
    def from_report(cls, report: Report, now: datetime | None = None) -> "ReportView":
        return cls(
            id=report.event_id,
            event_id=report.event_id,
            repo_name=report.repo_name,
            event_type=report.event_type,
            summary=SummaryBody(
                overall=report.overall_summary,
                root_cause=report.root_cause,
                impact=report.impact,
                next_steps=report.next_steps,
            ),
            timestamp=report.created_at,
            timestamp_relative=relative_time(report.created_at, now),
        )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")
