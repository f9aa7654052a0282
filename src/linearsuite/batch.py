"""Concurrent batch execution with per-item failure isolation.

Every item of a batch is scheduled as its own asyncio task and the batch joins
on all of them. A failure while processing one item is caught at that item's
boundary and turned into a failed ``BatchItemResult``; it never cancels the
sibling tasks or fails the batch. The only way ``BatchRunner.run`` itself
raises is a contract violation by the caller (``work`` missing).

An optional ``max_workers`` bounds the number of in-flight items so bulk
commands do not flood the remote API.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeVar

from .errors import UnknownFailure, describe, error_kind_for
from .logging import get_logger

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class BatchItemResult:
    identifier: str
    internal_id: str
    success: bool
    error: str | None = None
    error_kind: str | None = None
    payload: dict[str, Any] | None = None

    @classmethod
    def ok(
        cls, identifier: str, internal_id: str, payload: dict[str, Any] | None = None
    ) -> BatchItemResult:
        return cls(identifier, internal_id, True, payload=payload or None)

    @classmethod
    def failed(
        cls, identifier: str, error: str, *, internal_id: str = "", error_kind: str | None = None
    ) -> BatchItemResult:
        return cls(identifier, internal_id, False, error=error, error_kind=error_kind)

    @classmethod
    def from_exception(
        cls, identifier: str, exc: BaseException, internal_id: str = ""
    ) -> BatchItemResult:
        return cls.failed(
            identifier, describe(exc), internal_id=internal_id, error_kind=error_kind_for(exc)
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "identifier": self.identifier,
            "id": self.internal_id,
            "success": self.success,
        }
        if self.payload:
            out.update(self.payload)
        if self.error is not None:
            out["error"] = self.error
            out["errorKind"] = self.error_kind
        return out


@dataclass(frozen=True)
class BatchSummary:
    total_requested: int
    success_count: int
    failed_count: int
    results: list[BatchItemResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalRequested": self.total_requested,
            "successCount": self.success_count,
            "failedCount": self.failed_count,
            "results": [r.to_dict() for r in self.results],
        }


def aggregate(results: Sequence[BatchItemResult]) -> BatchSummary:
    """Reduce per-item results to counts; ``results`` is kept as given."""
    items = list(results)
    success_count = sum(1 for r in items if r.success)
    return BatchSummary(
        total_requested=len(items),
        success_count=success_count,
        failed_count=len(items) - success_count,
        results=items,
    )


class BatchRunner:
    """Runs units of work concurrently and collects exactly one result per item."""

    def __init__(self, max_workers: int | None = None, operation: str = "batch"):
        if max_workers is not None and max_workers < 1:
            raise ValueError("max_workers must be positive or None")
        self.max_workers = max_workers
        self.operation = operation
        self.logger = get_logger()

    async def _gather(self, items: Sequence[T], fn: Callable[[T], Awaitable[R]]) -> list[Any]:
        semaphore = asyncio.Semaphore(self.max_workers) if self.max_workers else None

        async def _slot(item: T) -> R:
            if semaphore is None:
                return await fn(item)
            async with semaphore:
                return await fn(item)

        tasks = [asyncio.create_task(_slot(item)) for item in items]
        return await asyncio.gather(*tasks, return_exceptions=True)

    async def map(self, items: Sequence[T], fn: Callable[[T], Awaitable[R]]) -> list[R]:
        """Apply ``fn`` to every item concurrently, preserving input order.

        ``fn`` is expected to capture its own failures. If it raises anyway the
        first exception is re-raised, but only after every item has finished.
        """
        if fn is None or not callable(fn):
            raise TypeError("map() requires a callable unit of work")
        outcomes = await self._gather(items, fn)
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
        return outcomes

    async def run(
        self,
        items: Sequence[T],
        work: Callable[[T], Awaitable[BatchItemResult]],
        identify: Callable[[T], str] = str,
    ) -> list[BatchItemResult]:
        """Execute ``work`` for every item; failures become failed results.

        Results come back in input order, although items complete in any order.
        """
        if work is None or not callable(work):
            raise TypeError("run() requires a callable unit of work")
        items = list(items)
        self.logger.log_operation(
            f"{self.operation}_start", item_count=len(items), max_workers=self.max_workers
        )
        start = time.perf_counter()
        outcomes = await self._gather(items, work)

        results: list[BatchItemResult] = []
        for item, outcome in zip(items, outcomes):
            if isinstance(outcome, BatchItemResult):
                result = outcome
            elif isinstance(outcome, Exception):
                result = BatchItemResult.from_exception(identify(item), outcome)
            elif isinstance(outcome, BaseException):
                # KeyboardInterrupt / SystemExit / cancellation are not item failures
                raise outcome
            else:
                result = BatchItemResult.from_exception(
                    identify(item),
                    UnknownFailure(
                        f"unit of work returned {type(outcome).__name__}, expected BatchItemResult"
                    ),
                )
            self.logger.log_item_result(
                self.operation,
                result.identifier,
                result.success,
                internal_id=result.internal_id,
                error=result.error,
            )
            results.append(result)

        duration_ms = (time.perf_counter() - start) * 1000
        self.logger.log_performance(self.operation, duration_ms, item_count=len(items))
        return results


async def run_batch(
    items: Sequence[T],
    work: Callable[[T], Awaitable[BatchItemResult]],
    max_workers: int | None = None,
) -> list[BatchItemResult]:
    """Convenience wrapper around ``BatchRunner(max_workers).run``."""
    return await BatchRunner(max_workers).run(items, work)


__all__ = [
    "BatchItemResult",
    "BatchRunner",
    "BatchSummary",
    "aggregate",
    "run_batch",
]
