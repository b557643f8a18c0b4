"""Tests for the suspicion classifier."""
import pytest
from gitmonitor.models import Event
from gitmonitor.rules.classifier import Classifier, SuspicionRule


@pytest.fixture
def classifier():
    return Classifier()


def test_failed_workflow_run_is_suspicious(classifier):
    payload = {"workflow_run": {"conclusion": "failure"}}
    assert classifier.is_suspicious("WorkflowRunEvent", payload) is True


def test_successful_workflow_run_is_not_suspicious(classifier):
    payload = {"workflow_run": {"conclusion": "success"}}
    assert classifier.is_suspicious("WorkflowRunEvent", payload) is False


@pytest.mark.parametrize("ref", ["refs/heads/main", "refs/heads/master", "main"])
def test_force_push_to_protected_branch(classifier, ref):
    payload = {"forced": True, "ref": ref, "commits": []}
    assert classifier.is_suspicious("PushEvent", payload) is True


def test_force_push_to_feature_branch_is_not_suspicious(classifier):
    payload = {"forced": True, "ref": "refs/heads/feature/x", "commits": []}
    assert classifier.is_suspicious("PushEvent", payload) is False


def test_protected_branches_are_configurable():
    classifier = Classifier(protected_branches={"trunk"})
    payload = {"forced": True, "ref": "refs/heads/trunk", "commits": []}

    assert classifier.is_suspicious("PushEvent", payload) is True
    assert classifier.is_suspicious("PushEvent", {**payload, "ref": "refs/heads/main"}) is False


def test_large_push_threshold(classifier):
    eleven = {"ref": "refs/heads/dev", "commits": [{}] * 11}
    ten = {"ref": "refs/heads/dev", "commits": [{}] * 10}

    assert classifier.is_suspicious("PushEvent", eleven) is True
    assert classifier.is_suspicious("PushEvent", ten) is False
    assert Classifier(large_push_threshold=5).is_suspicious("PushEvent", {"commits": [{}] * 6}) is True


@pytest.mark.parametrize(
    "event_type,payload,expected",
    [
        ("IssuesEvent", {"action": "opened"}, True),
        ("IssuesEvent", {"action": "closed"}, False),
        ("RepositoryEvent", {"action": "deleted"}, True),
        ("RepositoryEvent", {"action": "privatized"}, True),
        ("RepositoryEvent", {"action": "created"}, False),
        ("DeleteEvent", {"ref_type": "branch"}, True),
        ("DeleteEvent", {"ref_type": "tag"}, False),
        ("SecurityAdvisoryEvent", {}, True),
        ("ReleaseEvent", {"action": "published"}, True),
        ("ReleaseEvent", {"action": "edited"}, False),
        ("WatchEvent", {"action": "started"}, False),
    ],
)
def test_rule_table(classifier, event_type, payload, expected):
    assert classifier.is_suspicious(event_type, payload) is expected


@pytest.mark.parametrize(
    "event_type,payload",
    [
        ("WorkflowRunEvent", {}),
        ("WorkflowRunEvent", {"workflow_run": None}),
        ("PushEvent", {"forced": True}),
        ("PushEvent", {"commits": None}),
        ("PushEvent", None),
        (None, None),
    ],
)
def test_missing_fields_never_raise(classifier, event_type, payload):
    assert classifier.is_suspicious(event_type, payload) is False


def test_rule_errors_count_as_no_match():
    def explode(event_type, payload):
        raise KeyError("boom")

    rule = SuspicionRule("explodes", explode)
    assert rule.matches("PushEvent", {}) is False


def test_classification_is_stable_and_order_independent(classifier):
    payload = {"forced": True, "ref": "refs/heads/main", "commits": [{}] * 20}
    verdicts = {classifier.is_suspicious("PushEvent", payload) for _ in range(5)}

    reversed_classifier = Classifier()
    reversed_classifier.rules = list(reversed(reversed_classifier.rules))

    assert verdicts == {True}
    assert reversed_classifier.is_suspicious("PushEvent", payload) is True


def test_matched_rules_lists_every_match(classifier):
    payload = {"forced": True, "ref": "refs/heads/main", "commits": [{}] * 20}
    assert classifier.matched_rules("PushEvent", payload) == [
        "force_push_protected_branch",
        "large_push",
    ]


def test_classify_stored_event(classifier):
    event = Event.from_feed({
        "id": "1",
        "type": "DeleteEvent",
        "payload": {"ref_type": "branch", "ref": "release-1.x"},
        "created_at": "2024-05-01T12:00:00Z",
    })
    assert classifier.classify(event) is True
