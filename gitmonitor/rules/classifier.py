"""Suspicion rules for upstream activity events."""
from dataclasses import dataclass
from typing import Any, Callable, Iterable
import structlog
from ..models import Event, EventKind

log = structlog.get_logger()

Predicate = Callable[[str, dict[str, Any]], bool]

DEFAULT_PROTECTED_BRANCHES = frozenset({"main", "master"})
DEFAULT_LARGE_PUSH_THRESHOLD = 10


@dataclass(frozen=True)
class SuspicionRule:
    """A named predicate over an event's type and payload."""
    name: str
    predicate: Predicate

    def matches(self, event_type: str, payload: dict[str, Any]) -> bool:
        """Evaluate the predicate; any evaluation error counts as no match."""
        try:
            return bool(self.predicate(event_type, payload))
        except Exception as e:
            log.debug("rule.evaluation_error", rule=self.name, error=str(e))
            return False


def _branch_name(ref: str) -> str:
    return ref.removeprefix("refs/heads/")


class Classifier:
    """
    Stateless classifier flagging suspicious events.

    Rules are independent of each other, so the verdict does not depend on
    their order; evaluation stops at the first match.
    """

    def __init__(
        self,
        protected_branches: Iterable[str] = DEFAULT_PROTECTED_BRANCHES,
        large_push_threshold: int = DEFAULT_LARGE_PUSH_THRESHOLD,
    ):
        """
        Initialize classifier.

        Args:
            protected_branches: Branch names where a forced push is suspicious
            large_push_threshold: Pushes with more commits than this are suspicious
        """
        self.protected_branches = frozenset(protected_branches)
        self.large_push_threshold = large_push_threshold
        self.rules = self._build_rules()

    def _build_rules(self) -> list[SuspicionRule]:
        protected = self.protected_branches
        threshold = self.large_push_threshold

        return [
            SuspicionRule(
                "workflow_failure",
                lambda t, p: t == EventKind.WORKFLOW_RUN
                and p["workflow_run"]["conclusion"] == "failure",
            ),
            SuspicionRule(
                "force_push_protected_branch",
                lambda t, p: t == EventKind.PUSH
                and bool(p.get("forced"))
                and _branch_name(p["ref"]) in protected,
            ),
            # Flags every opened issue; there is no burst correlation window.
            SuspicionRule(
                "issue_opened",
                lambda t, p: t == EventKind.ISSUES and p.get("action") == "opened",
            ),
            SuspicionRule(
                "repository_deleted",
                lambda t, p: t == EventKind.REPOSITORY and p.get("action") == "deleted",
            ),
            SuspicionRule(
                "large_push",
                lambda t, p: t == EventKind.PUSH and len(p["commits"]) > threshold,
            ),
            SuspicionRule(
                "branch_deleted",
                lambda t, p: t == EventKind.DELETE and p.get("ref_type") == "branch",
            ),
            SuspicionRule(
                "repository_privatized",
                lambda t, p: t == EventKind.REPOSITORY and p.get("action") == "privatized",
            ),
            SuspicionRule(
                "security_advisory",
                lambda t, p: t == EventKind.SECURITY_ADVISORY,
            ),
            SuspicionRule(
                "release_published",
                lambda t, p: t == EventKind.RELEASE and p.get("action") == "published",
            ),
        ]

    def is_suspicious(self, event_type: str, payload: dict[str, Any] | None) -> bool:
        """Return True if any rule matches. Never raises."""
        payload = payload if isinstance(payload, dict) else {}
        return any(rule.matches(event_type, payload) for rule in self.rules)

    def matched_rules(self, event_type: str, payload: dict[str, Any] | None) -> list[str]:
        """Return the names of every matching rule, in rule order."""
        payload = payload if isinstance(payload, dict) else {}
        return [rule.name for rule in self.rules if rule.matches(event_type, payload)]

    def classify(self, event: Event) -> bool:
        return self.is_suspicious(event.type, event.payload)
