"""Pytest configuration for linearsuite tests.

Ensures the in-repo `src` directory is on `sys.path` so the package can be
imported without an editable install (`pip install -e .`).
"""

from __future__ import annotations

import sys
import time
from pathlib import Path

import pytest

_TEST_START_TIMES: dict[str, float] = {}
_TEST_DURATIONS: list[tuple[str, float]] = []

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

# Ensure pytest-asyncio plugin is loaded explicitly so @pytest.mark.asyncio tests run
pytest_plugins = ["pytest_asyncio"]


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Keep tests away from real credentials, settings and retry sleeps."""
    from linearsuite import logging as ls_logging

    monkeypatch.delenv("LINEAR_API_KEY", raising=False)
    monkeypatch.delenv("LINEARSUITE_SETTINGS", raising=False)
    monkeypatch.setenv("LINEARSUITE_RETRY_BASE", "0")
    monkeypatch.setenv("LINEARSUITE_RETRY_MAX_SLEEP", "0")
    monkeypatch.chdir(tmp_path)
    # The global logger binds sys.stderr when created; rebuild it per test so
    # it never writes to a previous test's captured stream.
    monkeypatch.setattr(ls_logging, "_GLOBAL", None)
    yield


# --- Timing utilities to help identify slow/stalling tests ---


def pytest_runtest_setup(item):  # type: ignore
    _TEST_START_TIMES[item.nodeid] = time.perf_counter()


def pytest_runtest_teardown(item):  # type: ignore
    start = _TEST_START_TIMES.pop(item.nodeid, None)
    if start is not None:
        _TEST_DURATIONS.append((item.nodeid, time.perf_counter() - start))


def pytest_sessionfinish(session, exitstatus):  # type: ignore
    if not _TEST_DURATIONS:
        return
    slow = sorted(_TEST_DURATIONS, key=lambda x: x[1], reverse=True)[:10]
    print("\n=== Slowest Tests (top 10) ===")
    for nodeid, secs in slow:
        print(f"{secs:0.3f}s  {nodeid}")


class FakeTracker:
    """In-memory stand-in for ``TrackerApi`` recording every call."""

    def __init__(
        self,
        issues: dict[str, str] | None = None,
        labels: dict[str, list[str]] | None = None,
        failing: dict[str, str] | None = None,
        raising: dict[str, Exception] | None = None,
    ) -> None:
        self.issues = dict(issues or {})
        self.labels = {k: list(v) for k, v in (labels or {}).items()}
        self.failing = dict(failing or {})
        self.raising = dict(raising or {})
        self.calls: list[tuple] = []
        self.entered = False

    async def __aenter__(self) -> FakeTracker:
        self.entered = True
        return self

    async def __aexit__(self, *exc: object) -> None:
        self.entered = False

    def calls_to(self, method: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == method]

    async def lookup_by_composite(self, prefix: str, number: int) -> str | None:
        key = f"{prefix}-{number}"
        self.calls.append(("lookup_by_composite", key))
        if key in self.raising:
            raise self.raising[key]
        return self.issues.get(key)

    async def get_labels(self, entity_id: str) -> list[str]:
        self.calls.append(("get_labels", entity_id))
        return list(self.labels.get(entity_id, []))

    def _mutate(self, method: str, entity_id: str) -> dict | None:
        if entity_id in self.raising:
            raise self.raising[entity_id]
        if entity_id in self.failing:
            return {"success": False, "message": self.failing[entity_id]}
        return None

    async def apply_update(self, entity_id: str, fields) -> dict:
        self.calls.append(("apply_update", entity_id, dict(fields)))
        failed = self._mutate("apply_update", entity_id)
        if failed is not None:
            return failed
        if "labelIds" in fields:
            self.labels[entity_id] = list(fields["labelIds"])
        return {"success": True, "issue": {"id": entity_id}}

    async def archive(self, entity_id: str) -> dict:
        self.calls.append(("archive", entity_id))
        return self._mutate("archive", entity_id) or {"success": True, "issue": {"id": entity_id}}

    async def unarchive(self, entity_id: str) -> dict:
        self.calls.append(("unarchive", entity_id))
        return self._mutate("unarchive", entity_id) or {"success": True, "issue": {"id": entity_id}}


@pytest.fixture
def tracker_factory():
    return FakeTracker
