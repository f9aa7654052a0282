"""Issue identifier parsing and resolution.

Users refer to issues either by the opaque UUID Linear uses internally or by
the human key shown in the UI (``ENG-123``). ``parse_identifier`` turns a raw
token into exactly one of three variants:

* ``OpaqueId``       - already an internal ID; resolving it is free
* ``CompositeKey``   - ``PREFIX-NUMBER``; needs one lookup call
* ``InvalidIdentifier`` - neither shape; rejected before any network call

Retries for the lookup call belong to the transport, not to this module.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

from .errors import InvalidIdentifierFormat, NotFound, describe, error_kind_for

if TYPE_CHECKING:
    from .batch import BatchRunner
    from .linear_api import TrackerApi

_OPAQUE_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
_COMPOSITE_RE = re.compile(r"^([A-Za-z][A-Za-z0-9]*)-([1-9][0-9]*)$")


@dataclass(frozen=True)
class OpaqueId:
    value: str


@dataclass(frozen=True)
class CompositeKey:
    prefix: str
    number: int

    def __str__(self) -> str:
        return f"{self.prefix}-{self.number}"


@dataclass(frozen=True)
class InvalidIdentifier:
    token: str
    reason: str


Identifier = Union[OpaqueId, CompositeKey, InvalidIdentifier]


@dataclass(frozen=True)
class ResolutionResult:
    token: str
    resolved_id: str | None = None
    error: str | None = None
    error_kind: str | None = None

    @property
    def ok(self) -> bool:
        return self.resolved_id is not None


def parse_identifier(token: str) -> Identifier:
    """Classify ``token`` as given; surrounding whitespace makes it invalid.

    Callers reading user input trim first (see ``split_tokens``).
    """
    candidate = token or ""
    if not candidate.strip():
        return InvalidIdentifier(token, "identifier is empty")
    if _OPAQUE_RE.fullmatch(candidate):
        return OpaqueId(candidate)
    m = _COMPOSITE_RE.fullmatch(candidate)
    if m:
        return CompositeKey(m.group(1).upper(), int(m.group(2)))
    return InvalidIdentifier(
        token, f"'{candidate}' is neither an issue ID nor an identifier like ENG-123"
    )


async def resolve_identifier(token: str, api: TrackerApi) -> str:
    """Resolve ``token`` to an internal issue ID.

    Raises ``InvalidIdentifierFormat`` for malformed tokens and ``NotFound``
    when a composite key matches no issue.
    """
    parsed = parse_identifier(token)
    if isinstance(parsed, OpaqueId):
        return parsed.value
    if isinstance(parsed, InvalidIdentifier):
        raise InvalidIdentifierFormat(parsed.reason, details={"identifier": token})
    resolved = await api.lookup_by_composite(parsed.prefix, parsed.number)
    if not resolved:
        raise NotFound(f"Issue {parsed} not found", details={"identifier": token})
    return resolved


async def resolve_identifiers(
    tokens: Iterable[str], api: TrackerApi, runner: BatchRunner
) -> list[ResolutionResult]:
    """Resolve every token independently on ``runner``; never raises per token."""

    async def _resolve(token: str) -> ResolutionResult:
        try:
            return ResolutionResult(token, resolved_id=await resolve_identifier(token, api))
        except Exception as exc:
            return ResolutionResult(token, error=describe(exc), error_kind=error_kind_for(exc))

    return await runner.map(list(tokens), _resolve)


def split_tokens(raw: str | None) -> list[str]:
    """Split a comma-separated flag value, trimming blanks and duplicates."""
    if not raw:
        return []
    seen: set[str] = set()
    out: list[str] = []
    for part in raw.split(","):
        item = part.strip()
        if item and item not in seen:
            seen.add(item)
            out.append(item)
    return out


__all__ = [
    "CompositeKey",
    "Identifier",
    "InvalidIdentifier",
    "OpaqueId",
    "ResolutionResult",
    "parse_identifier",
    "resolve_identifier",
    "resolve_identifiers",
    "split_tokens",
]
