"""Error taxonomy & redaction.

Public API:
- ViewCacheError / NotInitializedError / ConfigError
- classify_error(exc) -> ErrorInfo
- redact(text) -> str

Retrieval failures are never recovered here; they end up stored in a failed
view cell. ``classify_error`` only decides how such a failure is reported in
the logs (category + whether it looks transient).
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

_SENSITIVE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"ghp_[A-Za-z0-9]{20,40}"),  # GitHub classic tokens
    re.compile(r"github_pat_\w{20,}"),  # GitHub fine-grained tokens
    re.compile(r"(?i)(authorization:\s*bearer\s+)\S+"),
]

_REDACTION_PLACEHOLDER = "<redacted>"


class ViewCacheError(RuntimeError):
    """Base class for errors raised by issueview itself."""


class NotInitializedError(ViewCacheError):
    """An operation was invoked before the coordinator reached READY."""


class ConfigError(ViewCacheError):
    pass


@dataclass
class ErrorInfo:
    category: str
    message: str
    original_type: str
    transient: bool = False
    details: dict[str, Any] | None = None


def redact(text: str) -> str:
    """Replace token-looking substrings with a placeholder."""
    if not text:
        return text
    redacted = text
    for pat in _SENSITIVE_PATTERNS:
        if pat.groups:
            redacted = pat.sub(lambda m: m.group(1) + _REDACTION_PLACEHOLDER, redacted)
        else:
            redacted = pat.sub(_REDACTION_PLACEHOLDER, redacted)
    return redacted


def classify_error(exc: BaseException) -> ErrorInfo:
    """Best-effort classification of a retrieval failure.

    - rate limit / secondary rate limit -> 'github.rate_limit' (transient)
    - abuse detection -> 'github.abuse' (transient)
    - timeouts / connection problems -> 'network' (transient)
    - anything carrying an HTTP ``status`` attribute -> 'http'
    - fallback -> 'generic'
    """
    msg = str(exc) if exc else ""
    low = msg.lower()
    name = exc.__class__.__name__

    if "rate limit" in low or "secondary rate" in low:
        return ErrorInfo("github.rate_limit", redact(msg), name, transient=True)
    if "abuse" in low:
        return ErrorInfo("github.abuse", redact(msg), name, transient=True)
    if isinstance(exc, (TimeoutError, ConnectionError)) or any(
        k in low for k in ("timeout", "timed out", "connection reset", "temporarily unavailable")
    ):
        return ErrorInfo("network", redact(msg), name, transient=True)
    status = getattr(exc, "status", None)
    if isinstance(status, int):
        return ErrorInfo(
            "http",
            redact(msg),
            name,
            transient=status >= 500,
            details={"status": status},
        )
    return ErrorInfo("generic", redact(msg), name)


__all__ = [
    "ConfigError",
    "ErrorInfo",
    "NotInitializedError",
    "ViewCacheError",
    "classify_error",
    "redact",
]
