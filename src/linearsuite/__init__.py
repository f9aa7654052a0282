"""linearsuite - concurrent bulk issue mutations for Linear.

High-level public API:

    import asyncio

    from linearsuite import BatchRunner, bulk_label, reconcile

    outcome = asyncio.run(bulk_label(api, ["ENG-1", "ENG-2"], ["L1"], [], BatchRunner(8)))
    print(outcome.to_dict()["successCount"])

The CLI (``linearsuite`` / ``python -m linearsuite``) delegates to this library.
"""

from __future__ import annotations

# Defined before submodule imports; linear_api reads it for the user agent.
__version__ = "0.1.0"

from .batch import BatchItemResult, BatchRunner, BatchSummary, aggregate, run_batch  # noqa: E402
from .identifiers import parse_identifier, resolve_identifier, split_tokens  # noqa: E402
from .labels import LabelDelta, reconcile  # noqa: E402
from .operations import add_labels, bulk_archive, bulk_label, bulk_update, remove_labels  # noqa: E402

__all__ = [
    "BatchItemResult",
    "BatchRunner",
    "BatchSummary",
    "LabelDelta",
    "__version__",
    "add_labels",
    "aggregate",
    "bulk_archive",
    "bulk_label",
    "bulk_update",
    "parse_identifier",
    "reconcile",
    "remove_labels",
    "resolve_identifier",
    "run_batch",
    "split_tokens",
]
