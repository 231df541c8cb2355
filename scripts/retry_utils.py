"""Bounded retries for GitHub API calls.

Only transport failures and gateway-level 5xx responses are retried.
Rate-limit responses (403/429) are returned untouched: the API gateway
classifies them and the run skips the affected repository instead of
sleeping through the quota window.
"""

from __future__ import annotations

import random
import time
from dataclasses import dataclass

import requests

try:
    from logging_config import setup_logging
except ImportError:
    from scripts.logging_config import setup_logging

logger = setup_logging(__name__)

MAX_RETRIES = 3
BASE_DELAY = 2.0
MAX_JITTER = 1.0
RETRY_STATUSES = (502, 503, 504)
# Longest server-requested wait we are willing to honour for one retry.
MAX_RETRY_AFTER = 60.0


def exponential_backoff_delay(attempt: int, base: float = BASE_DELAY, max_jitter: float = MAX_JITTER) -> float:
    """``base * 2^attempt + uniform(0, max_jitter)`` seconds.

    Attempts 1 and 2 wait roughly 4-5 s and 8-9 s with the defaults.
    """
    return base * (2 ** attempt) + random.uniform(0, max_jitter)


def _retry_after(resp: requests.Response) -> float | None:
    raw = (resp.headers or {}).get("Retry-After")
    if raw is None or not str(raw).strip().isdigit():
        return None
    return min(float(raw), MAX_RETRY_AFTER)


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = MAX_RETRIES
    base_delay: float = BASE_DELAY
    max_jitter: float = MAX_JITTER
    retry_statuses: tuple[int, ...] = RETRY_STATUSES

    def delay(self, attempt: int, resp: requests.Response | None = None) -> float:
        """Seconds to wait before the attempt after *attempt*.

        A ``Retry-After`` header on *resp* wins over the backoff curve.
        """
        if resp is not None:
            server_delay = _retry_after(resp)
            if server_delay is not None:
                return server_delay
        return exponential_backoff_delay(attempt, self.base_delay, self.max_jitter)


DEFAULT_POLICY = RetryPolicy()


def request_with_retry(
    method: str,
    url: str,
    *,
    policy: RetryPolicy = DEFAULT_POLICY,
    session: requests.Session | None = None,
    **kwargs,
) -> requests.Response:
    """Send one request, retrying transient failures under *policy*.

    After the last attempt the final response is returned as-is, or the
    last ``ConnectionError``/``Timeout`` is re-raised.

    Parameters
    ----------
    method : str
        HTTP method (``"GET"``, ``"POST"``, ``"PATCH"``).
    url : str
        Request URL.
    policy : RetryPolicy
        Attempt count, backoff and retryable statuses.
    session : requests.Session | None
        Session to send through; ``requests.request`` when omitted.
    **kwargs
        Forwarded to ``request()`` (headers, json, params, timeout).
    """
    send = session.request if session is not None else requests.request
    attempt = 1
    while True:
        try:
            resp = send(method, url, **kwargs)
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as exc:
            if attempt >= policy.attempts:
                raise
            delay = policy.delay(attempt)
            logger.warning("Retry %d/%d for %s (error: %s, waiting %.1fs)",
                           attempt, policy.attempts, url, exc, delay, extra={"endpoint": url})
        else:
            if resp.status_code not in policy.retry_statuses or attempt >= policy.attempts:
                return resp
            delay = policy.delay(attempt, resp)
            logger.warning("Retry %d/%d for %s (status %d, waiting %.1fs)",
                           attempt, policy.attempts, url, resp.status_code, delay,
                           extra={"endpoint": url, "status_code": resp.status_code})
        time.sleep(delay)
        attempt += 1
