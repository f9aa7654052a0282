"""Response envelopes and terminal formatting - no external dependencies.

Every command prints either ``{"success": true, "data": ...}`` or
``{"success": false, "error": {...}}`` in JSON mode. Table and plain modes are
for humans and scripts that only need identifiers.
"""

from __future__ import annotations

import json
import os
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, TextIO

OUTPUT_FORMATS = ("json", "table", "plain")

_NO_COLOR_FLAG = False


class Colors:
    """ANSI color codes for terminal output."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[31m"
    CYAN = "\033[36m"


def disable_colors(disabled: bool = True) -> None:
    """Force colours off (``--no-color``)."""
    global _NO_COLOR_FLAG  # noqa: PLW0603
    _NO_COLOR_FLAG = disabled


def _supports_color(stream: TextIO | None = None) -> bool:
    stream = stream or sys.stdout
    if _NO_COLOR_FLAG or os.environ.get("NO_COLOR"):
        return False
    if not hasattr(stream, "isatty") or not stream.isatty():
        return False
    if os.environ.get("TERM") == "dumb":
        return False
    return True


def colorize(text: str, color: str, bold: bool = False, stream: TextIO | None = None) -> str:
    if not _supports_color(stream):
        return text
    prefix = (Colors.BOLD if bold else "") + color
    return f"{prefix}{text}{Colors.RESET}"


# ---- envelopes ----------------------------------------------------------


def success(data: Any) -> dict[str, Any]:
    return {"success": True, "data": data}


def failure(code: str, message: str, details: Mapping[str, Any] | None = None) -> dict[str, Any]:
    error: dict[str, Any] = {"code": code, "message": message}
    if details:
        error["details"] = dict(details)
    return {"success": False, "error": error}


def print_json(payload: Any, stream: TextIO | None = None) -> None:
    stream = stream or sys.stdout
    print(json.dumps(payload, indent=2, default=str), file=stream)


# ---- tables -------------------------------------------------------------


@dataclass(frozen=True)
class Column:
    key: str
    header: str
    width: int | None = None


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, (list, tuple, set, frozenset)):
        return ", ".join(str(v) for v in value)
    return str(value)


def truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 1] + "…"


def format_table(
    rows: Sequence[Mapping[str, Any]], columns: Sequence[Column], stream: TextIO | None = None
) -> str:
    if not rows:
        return colorize("No results found.", Colors.DIM, stream=stream)
    cells = [
        [
            truncate(_cell(row.get(col.key)), col.width) if col.width else _cell(row.get(col.key))
            for col in columns
        ]
        for row in rows
    ]
    widths = [
        max(len(col.header), *(len(r[i]) for r in cells)) for i, col in enumerate(columns)
    ]
    header = "  ".join(
        colorize(col.header.ljust(widths[i]), "", bold=True, stream=stream)
        for i, col in enumerate(columns)
    )
    lines = [header.rstrip()]
    for r in cells:
        lines.append("  ".join(value.ljust(widths[i]) for i, value in enumerate(r)).rstrip())
    return "\n".join(lines)


def format_key_value(item: Mapping[str, Any], stream: TextIO | None = None) -> str:
    pairs = [(k, v) for k, v in item.items() if v is not None]
    width = max((len(k) for k, _ in pairs), default=0)
    lines = []
    for key, value in pairs:
        rendered = (
            colorize(json.dumps(value), Colors.DIM, stream=stream)
            if isinstance(value, Mapping)
            else _cell(value)
        )
        lines.append(f"{colorize(key.ljust(width), Colors.CYAN, stream=stream)}  {rendered}")
    return "\n".join(lines)


def format_plain(
    rows: Sequence[Mapping[str, Any]], primary: str = "id", secondary: str | None = None
) -> str:
    lines = []
    for row in rows:
        line = _cell(row.get(primary))
        if secondary and row.get(secondary):
            line += f"\t{_cell(row.get(secondary))}"
        lines.append(line)
    return "\n".join(lines)


# ---- batch rendering ----------------------------------------------------

SUMMARY_COLUMNS = (
    Column("identifier", "IDENTIFIER"),
    Column("status", "STATUS"),
    Column("labelsAdded", "ADDED"),
    Column("labelsRemoved", "REMOVED"),
    Column("error", "ERROR", width=60),
)


def _status_cell(row: Mapping[str, Any]) -> str:
    return "ok" if row.get("success") else "failed"


def render_batch(
    payload: Mapping[str, Any], fmt: str = "json", stream: TextIO | None = None
) -> str:
    """Render a batch envelope payload (``OperationOutcome.to_dict()``)."""
    if fmt == "json":
        return json.dumps(success(payload), indent=2, default=str)
    results = list(payload.get("results") or [])
    if fmt == "plain":
        return format_plain([r for r in results if r.get("success")], "identifier")
    rows = [{**r, "status": _status_cell(r)} for r in results]
    columns = [
        c
        for c in SUMMARY_COLUMNS
        if c.key in ("identifier", "status") or any(r.get(c.key) for r in results)
    ]
    totals = (
        f"{payload.get('successCount', 0)}/{payload.get('totalRequested', 0)} succeeded"
        f", {payload.get('failedCount', 0)} failed"
    )
    color = Colors.RED if payload.get("failedCount") else ""
    summary_line = colorize(totals, color, bold=True, stream=stream)
    return f"{format_table(rows, columns, stream=stream)}\n\n{summary_line}"


def render_item(
    item: Mapping[str, Any], fmt: str = "json", primary: str = "identifier", stream: TextIO | None = None
) -> str:
    if fmt == "json":
        return json.dumps(success(item), indent=2, default=str)
    if fmt == "plain":
        return _cell(item.get(primary))
    return format_key_value(item, stream=stream)


__all__ = [
    "Colors",
    "Column",
    "OUTPUT_FORMATS",
    "colorize",
    "disable_colors",
    "failure",
    "format_key_value",
    "format_plain",
    "format_table",
    "print_json",
    "render_batch",
    "render_item",
    "success",
    "truncate",
]
