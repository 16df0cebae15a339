"""Retry / backoff for GitHub HTTP calls.

``run_with_retries`` wraps a thunk returning a ``requests.Response``. It
retries on connection errors and timeouts, on HTTP 429, and on HTTP 403
responses whose body mentions a rate limit. Everything else is returned (or
raised) immediately. Only the upstream adapters use it; the view cache itself
never retries a failed refresh.

Environment overrides:
  ISSUEVIEW_RETRY_ATTEMPTS (default 3)
  ISSUEVIEW_RETRY_BASE (seconds base, default 0.5)
  ISSUEVIEW_RETRY_MAX_SLEEP (cap in seconds, unset = no cap)
"""

from __future__ import annotations

import os
import random
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field

import requests

from .logging import get_logger

TRANSIENT_TOKENS = (
    "rate limit",
    "abuse detection",
    "secondary rate",
)
HTTP_FORBIDDEN = 403
HTTP_TOO_MANY_REQUESTS = 429

_RE_SECONDS_HINT = re.compile(r"wait\s*(\d+)\s*seconds", re.IGNORECASE)
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
    attempts: int = field(default_factory=lambda: _env_int("ISSUEVIEW_RETRY_ATTEMPTS", 3))
    base_sleep: float = field(default_factory=lambda: _env_float("ISSUEVIEW_RETRY_BASE", 0.5))


def is_transient(output: str) -> bool:
    out_lower = output.lower()
    return any(tok in out_lower for tok in TRANSIENT_TOKENS)


def is_transient_response(response: requests.Response) -> bool:
    if response.status_code == HTTP_TOO_MANY_REQUESTS:
        return True
    return response.status_code == HTTP_FORBIDDEN and is_transient(response.text or "")


def _explicit_backoff(response: requests.Response | None) -> float | None:
    """Seconds requested by the server via Retry-After or a 'wait N seconds' hint."""
    if response is None:
        return None
    header = response.headers.get("Retry-After")
    if header:
        try:
            val = float(header)
            return val if val > 0 else None
        except ValueError:
            return None
    m = _RE_SECONDS_HINT.search(response.text or "")
    if m:
        val = float(m.group(1))
        return val if val > 0 else None
    return None


def _compute_sleep(attempt: int, cfg: RetryConfig, response: requests.Response | None) -> float:
    explicit = _explicit_backoff(response)
    backoff = cfg.base_sleep * (2 ** (attempt - 1)) + _JITTER.uniform(0, 0.25)
    sleep_for: float = explicit if explicit is not None else backoff
    max_cap_env = os.environ.get("ISSUEVIEW_RETRY_MAX_SLEEP")
    if max_cap_env:
        try:
            cap = float(max_cap_env)
            if cap >= 0:
                sleep_for = min(sleep_for, cap)
        except ValueError:
            return sleep_for
    return sleep_for


def run_with_retries(
    fn: Callable[[], requests.Response],
    *,
    cfg: RetryConfig | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> requests.Response:
    cfg = cfg or RetryConfig()
    attempts = max(1, cfg.attempts)
    logger = get_logger()
    for attempt in range(1, attempts + 1):
        try:
            response = fn()
        except (requests.ConnectionError, requests.Timeout) as exc:
            if attempt >= attempts:
                raise
            sleep_for = _compute_sleep(attempt, cfg, None)
            logger.warning(
                "transient network error, retrying",
                operation="retry",
                attempt=attempt,
                sleep_s=round(sleep_for, 2),
                error=str(exc),
            )
            sleep(sleep_for)
            continue
        if attempt >= attempts or not is_transient_response(response):
            return response
        sleep_for = _compute_sleep(attempt, cfg, response)
        logger.warning(
            "transient HTTP response, retrying",
            operation="retry",
            attempt=attempt,
            status=response.status_code,
            sleep_s=round(sleep_for, 2),
        )
        sleep(sleep_for)
    raise AssertionError("unreachable")  # pragma: no cover


__all__ = ["RetryConfig", "is_transient", "is_transient_response", "run_with_retries"]
