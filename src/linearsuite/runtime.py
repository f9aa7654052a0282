"""Runtime helpers for linearsuite CLI orchestration."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any, Protocol

from linearsuite.config import CliSettings, load_settings
from linearsuite.errors import InvalidInput, LinearSuiteError, classify_error
from linearsuite.logging import configure_logging, get_logger


class _HandlerCallable(Protocol):
    def __call__(self) -> Any: ...


def prepare_settings(
    args: Any, *, loader: Callable[[str | None], CliSettings] = load_settings
) -> CliSettings:
    """Load settings and apply command-line overrides, then configure logging."""
    settings = loader(getattr(args, "settings", None))
    max_workers = getattr(args, "max_workers", None)
    if max_workers is not None:
        if int(max_workers) < 0:
            raise InvalidInput(f"--max-workers must be >= 0, got {max_workers}")
        settings.concurrency_max_workers = int(max_workers)
    if getattr(args, "verbose", False):
        settings.logging_level = "DEBUG"
    elif getattr(args, "quiet", False):
        settings.logging_level = "ERROR"
    configure_logging(json_logging=settings.logging_json_enabled, level=settings.logging_level)
    return settings


def execute_command(handler: _HandlerCallable, command: str) -> int:
    """Execute a command handler, logging its outcome and duration."""
    logger = get_logger()
    start = time.monotonic()
    try:
        result = handler()
        exit_code = int(result) if result is not None else 0
    except LinearSuiteError as exc:
        logger.debug(f"command {command} rejected", error=exc.code, command=command)
        raise
    except Exception as exc:
        info = classify_error(exc)
        logger.log_error(
            f"command {command} failed",
            error=str(exc),
            command=command,
            category=info.category,
            transient=info.transient,
        )
        raise
    finally:
        duration_ms = max(0.0, time.monotonic() - start) * 1000
        logger.log_performance(f"command_{command}", duration_ms, command=command)
    return exit_code


__all__ = ["execute_command", "prepare_settings"]
