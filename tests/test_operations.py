from __future__ import annotations

import asyncio

import pytest

from linearsuite.batch import BatchRunner
from linearsuite.errors import ErrorKind, InvalidIdentifierFormat, InvalidInput, NotFound
from linearsuite.operations import (
    add_labels,
    build_update_fields,
    bulk_archive,
    bulk_label,
    bulk_update,
    remove_labels,
)

UUID = "0b9e2d3c-4f5a-4b6c-8d7e-9f0a1b2c3d4e"


def _by_identifier(outcome) -> dict[str, dict]:
    return {r["identifier"]: r for r in outcome.to_dict()["results"]}


def test_bulk_label_mixed_batch(tracker_factory) -> None:
    api = tracker_factory(
        issues={"ENG-1": "id-1", "ENG-2": "id-2"},
        labels={"id-1": ["L2", "L3"], "id-2": ["L1"]},
    )
    outcome = asyncio.run(
        bulk_label(api, ["ENG-1", "ENG-2", "not-a-real-id"], ["L1"], ["L2"], BatchRunner(2))
    )
    data = outcome.to_dict()

    assert (data["totalRequested"], data["successCount"], data["failedCount"]) == (3, 2, 1)
    assert data["labelsToAdd"] == ["L1"]
    assert data["labelsToRemove"] == ["L2"]

    results = _by_identifier(outcome)
    assert results["ENG-1"]["success"] is True
    assert results["ENG-1"]["labelsAdded"] == ["L1"]
    assert results["ENG-1"]["labelsRemoved"] == ["L2"]
    assert api.labels["id-1"] == ["L3", "L1"]

    # ENG-2 already carried L1 and never had L2: success with nothing applied
    assert results["ENG-2"]["success"] is True
    assert "labelsAdded" not in results["ENG-2"]
    assert "labelsRemoved" not in results["ENG-2"]
    assert [c[1] for c in api.calls_to("apply_update")] == ["id-1"]

    assert results["not-a-real-id"]["success"] is False
    assert results["not-a-real-id"]["errorKind"] == ErrorKind.INVALID_IDENTIFIER_FORMAT
    assert results["not-a-real-id"]["id"] == ""


def test_bulk_label_resolves_each_key_with_one_lookup(tracker_factory) -> None:
    api = tracker_factory(issues={"ENG-1": "id-1", "ENG-2": "id-2"})
    asyncio.run(bulk_label(api, ["ENG-1", "ENG-2", UUID], ["L1"], []))
    lookups = sorted(c[1] for c in api.calls_to("lookup_by_composite"))
    assert lookups == ["ENG-1", "ENG-2"]


def test_bulk_label_is_idempotent(tracker_factory) -> None:
    api = tracker_factory(issues={"ENG-1": "id-1"}, labels={"id-1": ["L2"]})
    asyncio.run(bulk_label(api, ["ENG-1"], ["L1"], ["L2"]))
    first = list(api.labels["id-1"])
    outcome = asyncio.run(bulk_label(api, ["ENG-1"], ["L1"], ["L2"]))
    assert api.labels["id-1"] == first == ["L1"]
    assert outcome.to_dict()["results"][0] == {"identifier": "ENG-1", "id": "id-1", "success": True}
    assert len(api.calls_to("apply_update")) == 1


def test_bulk_label_reports_remote_failure_message(tracker_factory) -> None:
    api = tracker_factory(
        issues={"ENG-1": "id-1", "ENG-2": "id-2"},
        failing={"id-2": "Label belongs to another team"},
    )
    results = _by_identifier(asyncio.run(bulk_label(api, ["ENG-1", "ENG-2"], ["L1"], [])))
    assert results["ENG-1"]["success"] is True
    assert results["ENG-2"] == {
        "identifier": "ENG-2",
        "id": "id-2",
        "success": False,
        "error": "Label belongs to another team",
        "errorKind": ErrorKind.REMOTE_OPERATION_FAILED,
    }


def test_bulk_label_unexpected_exception_is_contained(tracker_factory) -> None:
    api = tracker_factory(issues={"ENG-1": "id-1"}, raising={"id-1": ConnectionError("reset")})
    outcome = asyncio.run(bulk_label(api, ["ENG-1"], ["L1"], []))
    (result,) = outcome.to_dict()["results"]
    assert result["success"] is False
    assert result["errorKind"] == ErrorKind.UNKNOWN_FAILURE
    assert result["id"] == "id-1"


def test_bulk_label_requires_a_change_and_ids(tracker_factory) -> None:
    api = tracker_factory()
    with pytest.raises(InvalidInput):
        asyncio.run(bulk_label(api, ["ENG-1"], [], []))
    with pytest.raises(InvalidInput):
        asyncio.run(bulk_label(api, [], ["L1"], []))
    assert api.calls == []


def test_bulk_update_applies_fields_to_resolved_issues(tracker_factory) -> None:
    api = tracker_factory(issues={"ENG-1": "id-1"})
    fields = build_update_fields(state_id="state-done", priority=2)
    outcome = asyncio.run(bulk_update(api, ["ENG-1", "ENG-404", UUID], fields))
    data = outcome.to_dict()

    assert data["updatedFields"] == ["priority", "stateId"]
    assert (data["successCount"], data["failedCount"]) == (2, 1)
    results = _by_identifier(outcome)
    assert results["ENG-404"]["errorKind"] == ErrorKind.NOT_FOUND
    updated = {c[1]: c[2] for c in api.calls_to("apply_update")}
    assert updated == {
        "id-1": {"stateId": "state-done", "priority": 2},
        UUID: {"stateId": "state-done", "priority": 2},
    }


def test_bulk_update_requires_fields(tracker_factory) -> None:
    with pytest.raises(InvalidInput):
        asyncio.run(bulk_update(tracker_factory(), ["ENG-1"], {}))


def test_build_update_fields_validation() -> None:
    assert build_update_fields(assignee_id="") == {"assigneeId": None}
    assert build_update_fields(label_ids=["L1"], estimate=0) == {"labelIds": ["L1"], "estimate": 0}
    assert build_update_fields() == {}
    with pytest.raises(InvalidInput):
        build_update_fields(priority=5)


def test_bulk_archive_and_unarchive(tracker_factory) -> None:
    api = tracker_factory(issues={"ENG-1": "id-1", "ENG-2": "id-2"}, failing={"id-2": ""})
    outcome = asyncio.run(bulk_archive(api, ["ENG-1", "ENG-2"]))
    data = outcome.to_dict()
    assert data["action"] == "archived"
    results = _by_identifier(outcome)
    assert results["ENG-1"]["success"] is True
    assert results["ENG-2"]["error"] == "Failed to archive issue"

    outcome = asyncio.run(bulk_archive(api, ["ENG-1"], unarchive=True))
    assert outcome.to_dict()["action"] == "unarchived"
    assert api.calls_to("unarchive") == [("unarchive", "id-1")]


def test_add_labels_single_issue(tracker_factory) -> None:
    api = tracker_factory(issues={"ENG-5": "id-5"}, labels={"id-5": ["L1"]})
    result = asyncio.run(add_labels(api, "ENG-5", ["L1", "L2"]))
    assert result == {
        "id": "id-5",
        "identifier": "ENG-5",
        "labelIds": ["L1", "L2"],
        "labelsAdded": ["L2"],
    }


def test_remove_labels_single_issue(tracker_factory) -> None:
    api = tracker_factory(labels={UUID: ["L1", "L2"]})
    result = asyncio.run(remove_labels(api, UUID, ["L2", "L9"]))
    assert result["labelIds"] == ["L1"]
    assert result["labelsRemoved"] == ["L2"]


def test_single_issue_label_errors_propagate(tracker_factory) -> None:
    api = tracker_factory()
    with pytest.raises(NotFound):
        asyncio.run(add_labels(api, "ENG-1", ["L1"]))
    with pytest.raises(InvalidIdentifierFormat):
        asyncio.run(remove_labels(api, "???", ["L1"]))
    with pytest.raises(InvalidInput):
        asyncio.run(add_labels(api, UUID, []))
