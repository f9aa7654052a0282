"""Centralized retry / backoff helpers for the Linear transport.

``run_with_retries`` wraps a thunk performing one HTTP request. It retries
with exponential backoff plus jitter when the request failed transiently:

* connection errors and timeouts raised by ``requests``
* HTTP 429 and 5xx responses
* GraphQL ``RATELIMITED`` responses delivered with a 4xx status

Environment overrides:
  LINEARSUITE_RETRY_ATTEMPTS (default 3)
  LINEARSUITE_RETRY_BASE (seconds base, default 0.5)
  LINEARSUITE_RETRY_MAX_SLEEP (cap for a single sleep)

Non-transient responses are returned unchanged so the caller can map them to
errors; non-transient exceptions propagate immediately.
"""

from __future__ import annotations

import os
import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field

import requests

from .logging import get_logger

TRANSIENT_TOKENS = (
    "ratelimited",
    "rate limit",
    "too many requests",
)

HTTP_TOO_MANY_REQUESTS = 429
HTTP_SERVER_ERROR = 500
_JITTER = random.SystemRandom()


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, str(default)))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, str(default)))
    except ValueError:
        return default


@dataclass
class RetryConfig:
    attempts: int = field(default_factory=lambda: _env_int("LINEARSUITE_RETRY_ATTEMPTS", 3))
    base_sleep: float = field(default_factory=lambda: _env_float("LINEARSUITE_RETRY_BASE", 0.5))


def is_transient(status: int | None, text: str = "") -> bool:
    if status is not None and (status == HTTP_TOO_MANY_REQUESTS or status >= HTTP_SERVER_ERROR):
        return True
    low = (text or "").lower()
    return any(tok in low for tok in TRANSIENT_TOKENS)


def _retry_after(response: requests.Response | None) -> float | None:
    if response is None:
        return None
    value = response.headers.get("Retry-After") if response.headers else None
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds > 0 else None


def _compute_sleep(attempt: int, cfg: RetryConfig, explicit: float | None) -> float:
    backoff = cfg.base_sleep * (2 ** (attempt - 1)) + _JITTER.uniform(0, 0.25)
    sleep_for = explicit if explicit is not None else backoff
    max_cap_env = os.environ.get("LINEARSUITE_RETRY_MAX_SLEEP")
    if max_cap_env:
        try:
            cap = float(max_cap_env)
        except ValueError:
            return sleep_for
        if cap >= 0:
            sleep_for = min(sleep_for, cap)
    return sleep_for


def _sleep(attempt: int, attempts: int, cfg: RetryConfig, reason: str, explicit: float | None) -> None:
    sleep_for = _compute_sleep(attempt, cfg, explicit)
    get_logger().warning(
        f"transient error, attempt {attempt}/{attempts}, sleeping {sleep_for:.2f}s",
        reason=reason,
    )
    time.sleep(sleep_for)


def run_with_retries(
    fn: Callable[[], requests.Response], *, cfg: RetryConfig | None = None
) -> requests.Response:
    cfg = cfg or RetryConfig()
    attempts = max(1, cfg.attempts)
    for attempt in range(1, attempts + 1):
        try:
            response = fn()
        except (requests.ConnectionError, requests.Timeout) as exc:
            if attempt >= attempts:
                raise
            _sleep(attempt, attempts, cfg, exc.__class__.__name__, None)
            continue
        if attempt < attempts and is_transient(response.status_code, _body_hint(response)):
            _sleep(attempt, attempts, cfg, f"HTTP {response.status_code}", _retry_after(response))
            continue
        return response
    raise RuntimeError("retry logic exited unexpectedly")  # pragma: no cover


def _body_hint(response: requests.Response) -> str:
    # Only 4xx bodies are inspected; 2xx GraphQL errors are handled by the client.
    if response.status_code < 400:
        return ""
    try:
        return response.text or ""
    except Exception:  # pragma: no cover - undecodable body
        return ""


__all__ = ["RetryConfig", "is_transient", "run_with_retries"]
