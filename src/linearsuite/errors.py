"""Error taxonomy & redaction helpers.

Two layers live here:

- The exception hierarchy raised by commands and the core. Every exception
  carries a stable ``code`` so the CLI can render a machine-readable error
  envelope.
- ``ErrorKind`` values attached to per-item batch results. Per-item failures
  never propagate out of a batch; they are converted with ``error_kind_for``.

Public API:
- classify_error(exc) -> ErrorInfo
- redact(text) -> str
- error_kind_for(exc) -> str
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any


class ErrorCodes:
    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"
    API_ERROR = "API_ERROR"
    CONFIG_ERROR = "CONFIG_ERROR"
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class ErrorKind:
    """Per-item failure kinds surfaced on batch results."""

    INVALID_IDENTIFIER_FORMAT = "invalid_identifier_format"
    NOT_FOUND = "not_found"
    REMOTE_OPERATION_FAILED = "remote_operation_failed"
    UNKNOWN_FAILURE = "unknown_failure"


class LinearSuiteError(RuntimeError):
    code = ErrorCodes.UNKNOWN_ERROR
    kind = ErrorKind.UNKNOWN_FAILURE

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidIdentifierFormat(LinearSuiteError):
    """Token matches neither the opaque-ID nor the composite-key shape."""

    code = ErrorCodes.INVALID_INPUT
    kind = ErrorKind.INVALID_IDENTIFIER_FORMAT


class NotFound(LinearSuiteError):
    code = ErrorCodes.NOT_FOUND
    kind = ErrorKind.NOT_FOUND


class RemoteOperationFailed(LinearSuiteError):
    """The remote mutation reported failure; message is kept verbatim."""

    code = ErrorCodes.API_ERROR
    kind = ErrorKind.REMOTE_OPERATION_FAILED


class UnknownFailure(LinearSuiteError):
    pass


class InvalidInput(LinearSuiteError):
    code = ErrorCodes.INVALID_INPUT


class ConfigError(LinearSuiteError):
    code = ErrorCodes.CONFIG_ERROR


class NotAuthenticated(LinearSuiteError):
    code = ErrorCodes.NOT_AUTHENTICATED


_SENSITIVE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"lin_api_[A-Za-z0-9]{20,}"),  # personal API keys
    re.compile(r"lin_oauth_[A-Za-z0-9]{20,}"),  # OAuth access tokens
    re.compile(r"(?i)bearer\s+[A-Za-z0-9._\-]{16,}"),
]

_REDACTION_PLACEHOLDER = "<redacted>"


@dataclass
class ErrorInfo:
    category: str
    message: str
    original_type: str
    transient: bool = False
    details: dict[str, Any] | None = None


def redact(text: str) -> str:
    """Redact API keys and bearer tokens in arbitrary text."""
    if not text:
        return text
    redacted = text
    for pat in _SENSITIVE_PATTERNS:
        redacted = pat.sub(_REDACTION_PLACEHOLDER, redacted)
    return redacted


def describe(exc: BaseException) -> str:
    """Return a printable message for ``exc``, falling back to its type name."""
    msg = str(exc)
    return redact(msg) if msg else exc.__class__.__name__


def error_kind_for(exc: BaseException) -> str:
    if isinstance(exc, LinearSuiteError):
        return exc.kind
    return ErrorKind.UNKNOWN_FAILURE


def classify_error(exc: BaseException) -> ErrorInfo:
    """Best-effort classification of an exception.

    - rate limit wording / HTTP 429 -> 'linear.rate_limit', transient
    - authentication wording -> 'auth'
    - network-y keywords -> 'network', transient
    - fallback -> 'generic'
    """
    msg = str(exc) if exc else ""
    low = msg.lower()
    status = getattr(exc, "status", None)

    if status == 429 or "rate limit" in low or "ratelimited" in low:
        return ErrorInfo("linear.rate_limit", redact(msg), exc.__class__.__name__, transient=True)
    if isinstance(exc, NotAuthenticated) or status in (401, 403) or "authentication" in low:
        return ErrorInfo("auth", redact(msg), exc.__class__.__name__)
    if any(k in low for k in ("timeout", "timed out", "connection reset", "temporarily unavailable")):
        return ErrorInfo("network", redact(msg), exc.__class__.__name__, transient=True)
    return ErrorInfo("generic", redact(msg), exc.__class__.__name__)


__all__ = [
    "ConfigError",
    "ErrorCodes",
    "ErrorInfo",
    "ErrorKind",
    "InvalidIdentifierFormat",
    "InvalidInput",
    "LinearSuiteError",
    "NotAuthenticated",
    "NotFound",
    "RemoteOperationFailed",
    "UnknownFailure",
    "classify_error",
    "describe",
    "error_kind_for",
    "redact",
]
