"""Linear GraphQL transport.

``LinearClient`` is a small blocking client over ``requests`` exposing the
handful of queries and mutations the CLI needs. ``AsyncLinearApi`` adapts it
to the async collaborator contract used by the batch core (``TrackerApi``),
running each blocking call in a thread pool so many requests can be in flight
at once.

Retries and backoff happen here (via ``run_with_retries``); the core never
retries on its own.
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from types import TracebackType
from typing import Any, Protocol, TypeVar

import requests

from . import __version__
from .errors import NotFound, RemoteOperationFailed
from .logging import get_logger
from .retry import RetryConfig, run_with_retries

DEFAULT_API_URL = "https://api.linear.app/graphql"
USER_AGENT = f"linearsuite/{__version__}"
HTTP_ERROR_STATUS = 400

T = TypeVar("T")

FIND_ISSUE_QUERY = """
query FindIssue($teamKey: String!, $number: Float!) {
  issues(filter: {team: {key: {eq: $teamKey}}, number: {eq: $number}}, first: 1) {
    nodes { id identifier }
  }
}
"""

ISSUE_LABELS_QUERY = """
query IssueLabels($id: String!) {
  issue(id: $id) {
    id
    identifier
    labels { nodes { id name } }
  }
}
"""

UPDATE_ISSUE_MUTATION = """
mutation UpdateIssue($id: String!, $input: IssueUpdateInput!) {
  issueUpdate(id: $id, input: $input) {
    success
    issue { id identifier title url }
  }
}
"""

ARCHIVE_ISSUE_MUTATION = """
mutation ArchiveIssue($id: String!) {
  issueArchive(id: $id) {
    success
    entity { id identifier }
  }
}
"""

UNARCHIVE_ISSUE_MUTATION = """
mutation UnarchiveIssue($id: String!) {
  issueUnarchive(id: $id) {
    success
    entity { id identifier }
  }
}
"""


class LinearAPIError(RemoteOperationFailed):
    """Raised when the Linear API returns an HTTP or GraphQL error."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        response_text: str | None = None,
    ):
        super().__init__(message, details={"status": status} if status else None)
        self.status = status
        self.response_text = response_text


class TrackerApi(Protocol):
    """Async collaborator contract consumed by the batch core."""

    async def lookup_by_composite(self, prefix: str, number: int) -> str | None: ...

    async def get_labels(self, entity_id: str) -> list[str]: ...

    async def apply_update(self, entity_id: str, fields: Mapping[str, Any]) -> dict[str, Any]: ...

    async def archive(self, entity_id: str) -> dict[str, Any]: ...

    async def unarchive(self, entity_id: str) -> dict[str, Any]: ...


def _first_error_message(errors: Any) -> str:
    if isinstance(errors, list) and errors:
        first = errors[0]
        if isinstance(first, dict):
            return str(first.get("message") or first)
        return str(first)
    return str(errors)


def _is_not_found(errors: Any) -> bool:
    if not isinstance(errors, list):
        return False
    for err in errors:
        if not isinstance(err, dict):
            continue
        message = str(err.get("message") or "").lower()
        if "not found" in message:
            return True
    return False


@dataclass
class LinearClient:
    api_key: str
    api_url: str = DEFAULT_API_URL
    timeout: float = 30
    session: requests.Session | None = None
    retry: RetryConfig | None = None
    _session: requests.Session = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._session = self.session or requests.Session()
        # Personal API keys are sent bare; OAuth tokens need the Bearer prefix.
        auth = self.api_key if self.api_key.startswith("lin_api_") else f"Bearer {self.api_key}"
        self._session.headers.setdefault("Authorization", auth)
        self._session.headers.setdefault("Content-Type", "application/json")
        # requests ships its own User-Agent, so overwrite rather than setdefault.
        self._session.headers["User-Agent"] = USER_AGENT

    # ---- transport ----------------------------------------------------
    def graphql(self, query: str, variables: Mapping[str, Any] | None = None) -> dict[str, Any]:
        payload = {"query": query, "variables": dict(variables or {})}

        def _run() -> requests.Response:
            return self._session.request(
                "POST",
                self.api_url,
                json=payload,
                headers=self._session.headers,
                timeout=self.timeout,
            )

        response = run_with_retries(_run, cfg=self.retry)
        body: Any = None
        if response.text:
            try:
                body = response.json()
            except ValueError:
                body = None
        errors = body.get("errors") if isinstance(body, dict) else None
        if errors and _is_not_found(errors):
            raise NotFound(_first_error_message(errors))
        if response.status_code >= HTTP_ERROR_STATUS:
            message = _first_error_message(errors) if errors else response.text
            raise LinearAPIError(
                f"Linear API request failed with {response.status_code}: {message}",
                status=response.status_code,
                response_text=response.text,
            )
        if errors:
            raise LinearAPIError(_first_error_message(errors), status=response.status_code)
        if not isinstance(body, dict) or not isinstance(body.get("data"), dict):
            raise LinearAPIError("Linear API returned no data", status=response.status_code)
        return body["data"]

    # ---- issue operations ---------------------------------------------
    def find_issue_id(self, team_key: str, number: int) -> str | None:
        data = self.graphql(FIND_ISSUE_QUERY, {"teamKey": team_key, "number": number})
        nodes = (data.get("issues") or {}).get("nodes") or []
        for node in nodes:
            if isinstance(node, dict) and node.get("id"):
                return str(node["id"])
        return None

    def issue_label_ids(self, issue_id: str) -> list[str]:
        data = self.graphql(ISSUE_LABELS_QUERY, {"id": issue_id})
        issue = data.get("issue")
        if not isinstance(issue, dict):
            raise NotFound(f"Issue {issue_id} not found")
        nodes = (issue.get("labels") or {}).get("nodes") or []
        return [str(n["id"]) for n in nodes if isinstance(n, dict) and n.get("id")]

    def update_issue(self, issue_id: str, input: Mapping[str, Any]) -> dict[str, Any]:
        data = self.graphql(UPDATE_ISSUE_MUTATION, {"id": issue_id, "input": dict(input)})
        return dict(data.get("issueUpdate") or {"success": False})

    def archive_issue(self, issue_id: str) -> dict[str, Any]:
        data = self.graphql(ARCHIVE_ISSUE_MUTATION, {"id": issue_id})
        return _entity_as_issue(data.get("issueArchive"))

    def unarchive_issue(self, issue_id: str) -> dict[str, Any]:
        data = self.graphql(UNARCHIVE_ISSUE_MUTATION, {"id": issue_id})
        return _entity_as_issue(data.get("issueUnarchive"))


def _entity_as_issue(payload: Any) -> dict[str, Any]:
    if not isinstance(payload, dict):
        return {"success": False}
    return {"success": bool(payload.get("success")), "issue": payload.get("entity")}


class AsyncLinearApi:
    """Runs ``LinearClient`` calls on a thread pool for concurrent batches."""

    def __init__(self, client: LinearClient, max_workers: int | None = None):
        self.client = client
        self.max_workers = max_workers
        self.logger = get_logger()
        self._executor: ThreadPoolExecutor | None = None

    def __enter__(self) -> AsyncLinearApi:
        self._executor = ThreadPoolExecutor(max_workers=self.max_workers)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._executor:
            self._executor.shutdown(wait=True)
            self._executor = None

    async def __aenter__(self) -> AsyncLinearApi:
        return self.__enter__()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)

    async def _call(self, fn: Callable[..., T], *args: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(fn, *args))

    async def lookup_by_composite(self, prefix: str, number: int) -> str | None:
        self.logger.debug("Resolving identifier", identifier=f"{prefix}-{number}")
        return await self._call(self.client.find_issue_id, prefix, number)

    async def get_labels(self, entity_id: str) -> list[str]:
        return await self._call(self.client.issue_label_ids, entity_id)

    async def apply_update(self, entity_id: str, fields: Mapping[str, Any]) -> dict[str, Any]:
        self.logger.debug("Updating issue", internal_id=entity_id, fields=sorted(fields))
        return await self._call(self.client.update_issue, entity_id, fields)

    async def archive(self, entity_id: str) -> dict[str, Any]:
        return await self._call(self.client.archive_issue, entity_id)

    async def unarchive(self, entity_id: str) -> dict[str, Any]:
        return await self._call(self.client.unarchive_issue, entity_id)


__all__ = [
    "DEFAULT_API_URL",
    "AsyncLinearApi",
    "LinearAPIError",
    "LinearClient",
    "TrackerApi",
]
