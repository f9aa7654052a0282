"""Bulk and single-issue operations.

Each bulk operation follows the same flow:

1. resolve every token to an internal issue ID (a batch of its own),
2. for label operations, reconcile the requested changes against the
   issue's current labels,
3. run the mutation for every issue on the ``BatchRunner``,
4. aggregate the per-item results into a ``BatchSummary``.

Rendering the outcome is left to the CLI layer. Validation of the request as a
whole (no IDs, nothing to change) raises ``InvalidInput`` before any network
call is made.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from .batch import BatchItemResult, BatchRunner, BatchSummary, aggregate
from .errors import InvalidInput, RemoteOperationFailed
from .identifiers import ResolutionResult, resolve_identifier, resolve_identifiers
from .labels import LabelDelta, ordered_label_ids, reconcile
from .linear_api import TrackerApi
from .logging import get_logger

PRIORITY_RANGE = range(0, 5)  # 0=none, 1=urgent, 2=high, 3=medium, 4=low


@dataclass
class OperationOutcome:
    summary: BatchSummary
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = self.summary.to_dict()
        for key, value in self.metadata.items():
            if value is not None:
                data[key] = value
        return data


def build_update_fields(
    *,
    state_id: str | None = None,
    priority: int | None = None,
    assignee_id: str | None = None,
    project_id: str | None = None,
    estimate: int | None = None,
    label_ids: Sequence[str] | None = None,
) -> dict[str, Any]:
    """Translate flag values into an ``IssueUpdateInput`` mapping.

    An empty ``assignee_id`` unassigns (sent as null).
    """
    fields: dict[str, Any] = {}
    if state_id:
        fields["stateId"] = state_id
    if priority is not None:
        if priority not in PRIORITY_RANGE:
            raise InvalidInput(f"Priority must be between 0 and 4, got {priority}")
        fields["priority"] = priority
    if assignee_id is not None:
        fields["assigneeId"] = assignee_id or None
    if project_id:
        fields["projectId"] = project_id
    if estimate is not None:
        fields["estimate"] = estimate
    if label_ids:
        fields["labelIds"] = list(label_ids)
    return fields


def require_tokens(tokens: Sequence[str]) -> list[str]:
    items = list(tokens)
    if not items:
        raise InvalidInput("No issue IDs provided")
    return items


def validate_update(fields: Mapping[str, Any], tokens: Sequence[str]) -> None:
    if not fields:
        raise InvalidInput(
            "No update fields provided. Use at least one of: --state-id, --priority, "
            "--assignee-id, --project-id, --estimate, --label-ids"
        )
    require_tokens(tokens)


def validate_label_request(
    add: Sequence[str], remove: Sequence[str], tokens: Sequence[str]
) -> None:
    """A label request with nothing to add or remove is rejected up front."""
    if not add and not remove:
        raise InvalidInput(
            "No label operations specified. Use --add-labels and/or --remove-labels"
        )
    require_tokens(tokens)


def _ensure_success(payload: Mapping[str, Any] | None, action: str) -> dict[str, Any]:
    if not payload or not payload.get("success"):
        message = (payload or {}).get("message") or f"Failed to {action}"
        raise RemoteOperationFailed(str(message))
    issue = payload.get("issue")
    return issue if isinstance(issue, dict) else {}


def _unresolved(resolution: ResolutionResult) -> BatchItemResult:
    return BatchItemResult.failed(
        resolution.token,
        resolution.error or "Failed to resolve issue ID",
        error_kind=resolution.error_kind,
    )


async def bulk_update(
    api: TrackerApi,
    tokens: Sequence[str],
    fields: Mapping[str, Any],
    runner: BatchRunner | None = None,
) -> OperationOutcome:
    """Apply the same field update to every issue in ``tokens``."""
    validate_update(fields, tokens)
    items = list(tokens)
    runner = runner or BatchRunner(operation="bulk_update")
    update = dict(fields)

    resolutions = await resolve_identifiers(items, api, runner)

    async def _work(resolution: ResolutionResult) -> BatchItemResult:
        if not resolution.ok:
            return _unresolved(resolution)
        issue_id = str(resolution.resolved_id)
        try:
            _ensure_success(await api.apply_update(issue_id, update), "update issue")
        except Exception as exc:
            return BatchItemResult.from_exception(resolution.token, exc, internal_id=issue_id)
        return BatchItemResult.ok(resolution.token, issue_id)

    results = await runner.run(resolutions, _work, identify=lambda r: r.token)
    return OperationOutcome(aggregate(results), {"updatedFields": sorted(update)})


async def _apply_label_delta(
    api: TrackerApi,
    issue_id: str,
    add: Sequence[str],
    remove: Sequence[str],
) -> tuple[list[str], LabelDelta]:
    """Reconcile against the live labels and push the final set.

    Returns the final label IDs in payload order together with the delta.
    """
    current = list(await api.get_labels(issue_id))
    delta = reconcile(current, add, remove)
    label_ids = ordered_label_ids(current, delta, add)
    if not delta.changed:
        # Requested state already holds; re-applying would be a no-op.
        get_logger().debug("labels unchanged", internal_id=issue_id)
        return label_ids, delta
    _ensure_success(await api.apply_update(issue_id, {"labelIds": label_ids}), "update labels")
    return label_ids, delta


def _ordered(requested: Sequence[str], effective: frozenset[str]) -> list[str]:
    return [label_id for label_id in requested if label_id in effective]


async def bulk_label(
    api: TrackerApi,
    tokens: Sequence[str],
    add: Sequence[str],
    remove: Sequence[str],
    runner: BatchRunner | None = None,
) -> OperationOutcome:
    """Add and/or remove labels on many issues at once."""
    validate_label_request(add, remove, tokens)
    items = list(tokens)
    runner = runner or BatchRunner(operation="bulk_label")

    async def _work(token: str) -> BatchItemResult:
        issue_id = ""
        try:
            issue_id = await resolve_identifier(token, api)
            _, delta = await _apply_label_delta(api, issue_id, add, remove)
        except Exception as exc:
            return BatchItemResult.from_exception(token, exc, internal_id=issue_id)
        payload: dict[str, Any] = {}
        if delta.effective_add:
            payload["labelsAdded"] = _ordered(add, delta.effective_add)
        if delta.effective_remove:
            payload["labelsRemoved"] = _ordered(remove, delta.effective_remove)
        return BatchItemResult.ok(token, issue_id, payload)

    results = await runner.run(items, _work)
    return OperationOutcome(
        aggregate(results),
        {
            "labelsToAdd": list(add) or None,
            "labelsToRemove": list(remove) or None,
        },
    )


async def bulk_archive(
    api: TrackerApi,
    tokens: Sequence[str],
    runner: BatchRunner | None = None,
    unarchive: bool = False,
) -> OperationOutcome:
    items = require_tokens(tokens)
    action = "unarchive" if unarchive else "archive"
    runner = runner or BatchRunner(operation=f"bulk_{action}")

    resolutions = await resolve_identifiers(items, api, runner)

    async def _work(resolution: ResolutionResult) -> BatchItemResult:
        if not resolution.ok:
            return _unresolved(resolution)
        issue_id = str(resolution.resolved_id)
        call = api.unarchive if unarchive else api.archive
        try:
            _ensure_success(await call(issue_id), f"{action} issue")
        except Exception as exc:
            return BatchItemResult.from_exception(resolution.token, exc, internal_id=issue_id)
        return BatchItemResult.ok(resolution.token, issue_id)

    results = await runner.run(resolutions, _work, identify=lambda r: r.token)
    return OperationOutcome(aggregate(results), {"action": f"{action}d"})


async def _single_label_change(
    api: TrackerApi, token: str, add: Sequence[str], remove: Sequence[str]
) -> dict[str, Any]:
    if not add and not remove:
        raise InvalidInput("No label IDs provided")
    issue_id = await resolve_identifier(token, api)
    label_ids, delta = await _apply_label_delta(api, issue_id, add, remove)
    return {
        "id": issue_id,
        "identifier": token,
        "labelIds": label_ids,
        "delta": delta,
    }


async def add_labels(api: TrackerApi, token: str, label_ids: Sequence[str]) -> dict[str, Any]:
    """Add labels to one issue; raises on failure."""
    result = await _single_label_change(api, token, label_ids, ())
    delta: LabelDelta = result.pop("delta")
    result["labelsAdded"] = _ordered(label_ids, delta.effective_add)
    return result


async def remove_labels(api: TrackerApi, token: str, label_ids: Sequence[str]) -> dict[str, Any]:
    """Remove labels from one issue; raises on failure."""
    result = await _single_label_change(api, token, (), label_ids)
    delta: LabelDelta = result.pop("delta")
    result["labelsRemoved"] = _ordered(label_ids, delta.effective_remove)
    return result


__all__ = [
    "OperationOutcome",
    "add_labels",
    "build_update_fields",
    "bulk_archive",
    "bulk_label",
    "bulk_update",
    "remove_labels",
    "require_tokens",
    "validate_label_request",
    "validate_update",
]
