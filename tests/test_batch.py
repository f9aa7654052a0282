"""Batch runner tests (synchronous asyncio.run wrappers)."""

from __future__ import annotations

import asyncio

import pytest

from linearsuite.batch import BatchItemResult, BatchRunner, aggregate, run_batch
from linearsuite.errors import ErrorKind, NotFound


async def _echo(item: str) -> BatchItemResult:
    await asyncio.sleep(0)
    return BatchItemResult.ok(item, f"id-{item}")


def test_run_returns_one_result_per_item_in_input_order() -> None:
    items = [f"ENG-{n}" for n in range(1, 21)]
    results = asyncio.run(BatchRunner(4).run(items, _echo))
    assert [r.identifier for r in results] == items
    assert all(r.success for r in results)


def test_run_with_no_items_returns_empty_list() -> None:
    results = asyncio.run(BatchRunner().run([], _echo))
    summary = aggregate(results)
    assert results == []
    assert (summary.total_requested, summary.success_count, summary.failed_count) == (0, 0, 0)


def test_run_isolates_failures_per_item() -> None:
    async def work(item: str) -> BatchItemResult:
        if item == "ENG-2":
            raise NotFound("Issue ENG-2 not found")
        if item == "ENG-3":
            raise ValueError("")
        return BatchItemResult.ok(item, f"id-{item}")

    results = asyncio.run(BatchRunner().run(["ENG-1", "ENG-2", "ENG-3"], work))
    assert [r.success for r in results] == [True, False, False]
    assert results[1].error == "Issue ENG-2 not found"
    assert results[1].error_kind == ErrorKind.NOT_FOUND
    # empty messages fall back to the exception type
    assert results[2].error == "ValueError"
    assert results[2].error_kind == ErrorKind.UNKNOWN_FAILURE


def test_run_failure_does_not_cancel_siblings() -> None:
    finished: list[str] = []

    async def work(item: str) -> BatchItemResult:
        if item == "fast-fail":
            raise RuntimeError("boom")
        await asyncio.sleep(0.01)
        finished.append(item)
        return BatchItemResult.ok(item, item)

    results = asyncio.run(BatchRunner().run(["a", "fast-fail", "b"], work))
    assert sorted(finished) == ["a", "b"]
    assert aggregate(results).failed_count == 1


def test_run_wraps_unexpected_return_values() -> None:
    async def work(item: str):
        return {"not": "a result"}

    (result,) = asyncio.run(BatchRunner().run(["x"], work))
    assert not result.success
    assert "dict" in (result.error or "")
    assert result.error_kind == ErrorKind.UNKNOWN_FAILURE


def test_run_requires_callable_work() -> None:
    with pytest.raises(TypeError):
        asyncio.run(BatchRunner().run(["x"], None))  # type: ignore[arg-type]


def test_max_workers_caps_in_flight_items() -> None:
    in_flight = 0
    peak = 0

    async def work(item: int) -> BatchItemResult:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.005)
        in_flight -= 1
        return BatchItemResult.ok(str(item), str(item))

    results = asyncio.run(BatchRunner(max_workers=3).run(list(range(12)), work))
    assert len(results) == 12
    assert peak == 3


def test_unbounded_runner_starts_everything_at_once() -> None:
    started = 0
    gate = None

    async def work(item: int) -> BatchItemResult:
        nonlocal started
        started += 1
        if started == 5:
            gate.set()
        await gate.wait()
        return BatchItemResult.ok(str(item), str(item))

    async def _run() -> list[BatchItemResult]:
        nonlocal gate
        gate = asyncio.Event()
        return await asyncio.wait_for(BatchRunner().run(list(range(5)), work), timeout=2)

    assert len(asyncio.run(_run())) == 5


def test_max_workers_must_be_positive() -> None:
    with pytest.raises(ValueError):
        BatchRunner(max_workers=0)


def test_map_reraises_after_all_items_finish() -> None:
    done: list[int] = []

    async def fn(item: int) -> int:
        if item == 0:
            raise KeyError("first")
        await asyncio.sleep(0.005)
        done.append(item)
        return item

    with pytest.raises(KeyError):
        asyncio.run(BatchRunner().map([0, 1, 2], fn))
    assert sorted(done) == [1, 2]


def test_aggregate_counts_and_serializes() -> None:
    results = [
        BatchItemResult.ok("ENG-1", "id-1", {"labelsAdded": ["L1"]}),
        BatchItemResult.failed("ENG-2", "nope", error_kind=ErrorKind.NOT_FOUND),
    ]
    summary = aggregate(results)
    assert summary.success_count + summary.failed_count == summary.total_requested == 2
    data = summary.to_dict()
    assert data["results"][0] == {
        "identifier": "ENG-1",
        "id": "id-1",
        "success": True,
        "labelsAdded": ["L1"],
    }
    assert data["results"][1]["errorKind"] == "not_found"
    assert data["results"][1]["id"] == ""


def test_run_batch_helper() -> None:
    results = asyncio.run(run_batch(["a", "b"], _echo, max_workers=1))
    assert [r.internal_id for r in results] == ["id-a", "id-b"]


@pytest.mark.asyncio
async def test_run_inside_running_loop() -> None:
    results = await BatchRunner(2).run(["x", "y"], _echo)
    assert [r.identifier for r in results] == ["x", "y"]
