"""Label set reconciliation.

Given the labels currently on an issue and the requested additions and
removals, compute the resulting label set plus the changes that actually take
effect. Removals are applied before additions, so a label requested in both
sets ends up present (add wins).
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass


@dataclass(frozen=True)
class LabelDelta:
    effective_add: frozenset[str]
    effective_remove: frozenset[str]
    final_set: frozenset[str]

    @property
    def changed(self) -> bool:
        return bool(self.effective_add or self.effective_remove)


def reconcile(
    current: Iterable[str], to_add: Iterable[str], to_remove: Iterable[str]
) -> LabelDelta:
    cur = frozenset(current)
    add = frozenset(to_add)
    remove = frozenset(to_remove)
    return LabelDelta(
        effective_add=add - cur,
        effective_remove=remove & cur,
        final_set=(cur - remove) | add,
    )


def ordered_label_ids(
    current: Sequence[str], delta: LabelDelta, requested_add: Sequence[str] = ()
) -> list[str]:
    """Order ``delta.final_set`` for the API payload.

    Surviving labels keep their existing order, new labels follow in request
    order. Anything left over (not expected) is appended sorted.
    """
    out: list[str] = []
    seen: set[str] = set()
    for label_id in [*current, *requested_add]:
        if label_id in delta.final_set and label_id not in seen:
            seen.add(label_id)
            out.append(label_id)
    out.extend(sorted(delta.final_set - seen))
    return out


__all__ = ["LabelDelta", "ordered_label_ids", "reconcile"]
