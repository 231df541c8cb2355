"""Rate-limit-aware access to the GitHub REST API.

Every outbound call made by the monitor goes through
:class:`GitHubGateway`.  The gateway owns three policies so that no other
component has to re-implement them:

* **Request budget** -- a shared :class:`RateBudget` is consulted before
  each call.  Below the low-water mark the call is refused with
  :class:`RateLimitedError` without touching the network.  After every
  real call the budget is overwritten from ``X-RateLimit-Remaining``.
* **Error classification** -- responses become typed errors
  (``RateLimitedError``, ``ApiError``, ``MalformedResponseError``) rather
  than strings the caller has to sniff.
* **Dry-run** -- mutating calls (issue create, comment, close) are
  reported and skipped; reads are always real so discovery and
  classification behave exactly as in a live run.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

import requests

from .errors import ApiError, MalformedResponseError, RateLimitedError
from .models import Issue, ScheduledRun, Workflow

try:
    from github_utils import GITHUB_API, gh_headers, parse_rate_limit_remaining
    from logging_config import sanitize_log, setup_logging
    from retry_utils import MAX_RETRIES, RetryPolicy, request_with_retry
except ImportError:
    from scripts.github_utils import GITHUB_API, gh_headers, parse_rate_limit_remaining
    from scripts.logging_config import sanitize_log, setup_logging
    from scripts.retry_utils import MAX_RETRIES, RetryPolicy, request_with_retry

logger = setup_logging(__name__)

LOW_WATER_MARK = 10
DEFAULT_BUDGET = 5000
PAGE_SIZE = 100

RATE_LIMIT_SIGNATURES = ("api rate limit exceeded", "secondary rate limit")


@dataclass
class RateBudget:
    """Remaining-request counter shared by every call in a run.

    Only two operations touch ``remaining``: :meth:`try_acquire` reserves
    one request (compare-and-decrement) and :meth:`observe` overwrites the
    counter with server telemetry.  Both hold the lock so the budget
    stays consistent if calls are ever issued concurrently.
    """

    remaining: int = DEFAULT_BUDGET
    threshold: int = LOW_WATER_MARK
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def try_acquire(self) -> bool:
        with self._lock:
            if self.remaining < self.threshold:
                return False
            self.remaining -= 1
            return True

    def observe(self, remaining: int | None) -> None:
        if remaining is None:
            return
        with self._lock:
            self.remaining = remaining

    @property
    def exhausted(self) -> bool:
        return self.remaining < self.threshold


def _error_message(body: Any, status_code: int) -> str:
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"HTTP {status_code}"


def is_rate_limit_message(message: str) -> bool:
    lowered = message.lower()
    return any(sig in lowered for sig in RATE_LIMIT_SIGNATURES)


def _is_rate_limited(resp: requests.Response, message: str) -> bool:
    # GitHub answers quota exhaustion with 403 as often as 429.
    return resp.status_code in (403, 429) or is_rate_limit_message(message)


class GitHubGateway:
    """Typed, budget-checked wrapper around the GitHub endpoints we use."""

    def __init__(
        self,
        token: str,
        budget: RateBudget | None = None,
        dry_run: bool = False,
        session: requests.Session | None = None,
        api_base: str = GITHUB_API,
        timeout: int = 30,
        max_retries: int = MAX_RETRIES,
    ):
        self.token = token
        self.budget = budget if budget is not None else RateBudget()
        self.dry_run = dry_run
        self.session = session if session is not None else requests.Session()
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.retry_policy = RetryPolicy(attempts=max_retries)
        self.dry_run_actions: list[str] = []
        self._login: str | None = None
        self._owner_kind: dict[str, str] = {}

    # -- core call ------------------------------------------------------------

    def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
        allow_skip: bool = True,
    ) -> Any:
        """Perform one API call and return the decoded JSON body.

        Raises
        ------
        RateLimitedError
            Budget below the low-water mark (no call made) or GitHub
            rejected the call for quota.  ``skippable`` mirrors
            *allow_skip*.
        MalformedResponseError
            The body is not valid JSON.
        ApiError
            Any other error response, or the transport failed after
            retries.
        """
        url = path if path.startswith("http") else f"{self.api_base}{path}"

        if not self.budget.try_acquire():
            raise RateLimitedError(
                f"Only {self.budget.remaining} requests remaining; pausing to avoid the rate limit",
                endpoint=path,
                remaining=self.budget.remaining,
                skippable=allow_skip,
            )

        try:
            resp = request_with_retry(
                method,
                url,
                policy=self.retry_policy,
                session=self.session,
                headers=gh_headers(self.token),
                params=params,
                json=payload,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as exc:
            raise ApiError(f"Request failed: {exc}", endpoint=path) from exc

        # Search has its own, much smaller, quota; only core telemetry feeds the budget.
        if resp.headers.get("X-RateLimit-Resource", "core") == "core":
            self.budget.observe(parse_rate_limit_remaining(resp.headers))

        if resp.status_code == 204 or not resp.content:
            if resp.ok:
                return None
            raise ApiError(f"HTTP {resp.status_code}", endpoint=path, status_code=resp.status_code)

        try:
            body = resp.json()
        except ValueError:
            logger.debug("Response was not valid JSON: %s", sanitize_log(resp.text[:200]),
                         extra={"endpoint": path})
            raise MalformedResponseError(
                "Invalid JSON response", endpoint=path, status_code=resp.status_code,
            ) from None

        if resp.status_code >= 400:
            message = _error_message(body, resp.status_code)
            if _is_rate_limited(resp, message):
                raise RateLimitedError(
                    message,
                    endpoint=path,
                    status_code=resp.status_code,
                    remaining=self.budget.remaining,
                    skippable=allow_skip,
                )
            raise ApiError(message, endpoint=path, status_code=resp.status_code)

        return body

    def _mutate(self, method: str, path: str, payload: dict[str, Any], description: str) -> Any:
        if self.dry_run:
            self.dry_run_actions.append(description)
            logger.info("[DRY-RUN] Would %s", description, extra={"endpoint": path})
            return None
        return self.request(method, path, payload=payload)

    # -- telemetry ------------------------------------------------------------

    def fetch_rate_limit(self) -> int:
        """Correct the budget from ``GET /rate_limit`` and return it."""
        body = self.request("GET", "/rate_limit")
        core = ((body or {}).get("resources") or {}).get("core") or {}
        remaining = core.get("remaining")
        if isinstance(remaining, int):
            self.budget.observe(remaining)
        return self.budget.remaining

    def authenticated_login(self) -> str:
        """Login of the token's user, cached for the run."""
        if self._login is None:
            body = self.request("GET", "/user")
            self._login = (body or {}).get("login", "")
        return self._login

    # -- discovery ------------------------------------------------------------

    def search_repositories(self, query: str, page: int, allow_skip: bool = True) -> list[str]:
        body = self.request(
            "GET",
            "/search/repositories",
            params={"q": query, "per_page": PAGE_SIZE, "page": page},
            allow_skip=allow_skip,
        )
        return [item["full_name"] for item in (body or {}).get("items", []) if item.get("full_name")]

    def list_owner_repos(self, owner: str, page: int) -> list[str]:
        """List an organization's repositories, or a user's if it is not an org."""
        kind = self._owner_kind.get(owner, "orgs")
        params = {"per_page": PAGE_SIZE, "page": page}
        try:
            body = self.request("GET", f"/{kind}/{owner}/repos", params=params)
        except ApiError as exc:
            if exc.status_code != 404 or kind != "orgs":
                raise
            self._owner_kind[owner] = kind = "users"
            body = self.request("GET", f"/{kind}/{owner}/repos", params=params)
        self._owner_kind[owner] = kind
        return [repo["full_name"] for repo in body or [] if repo.get("full_name")]

    def get_topics(self, repo: str) -> list[str]:
        body = self.request("GET", f"/repos/{repo}/topics")
        return list((body or {}).get("names", []))

    # -- workflows ------------------------------------------------------------

    def list_workflows(self, repo: str) -> list[Workflow]:
        body = self.request("GET", f"/repos/{repo}/actions/workflows", params={"per_page": PAGE_SIZE})
        if not isinstance(body, dict) or not isinstance(body.get("workflows"), list):
            raise MalformedResponseError("Workflow list missing from response", endpoint=repo)
        return [Workflow.from_api(w) for w in body["workflows"]]

    def latest_scheduled_run(self, repo: str) -> ScheduledRun | None:
        body = self.request(
            "GET",
            f"/repos/{repo}/actions/runs",
            params={"event": "schedule", "per_page": 1},
        )
        if not isinstance(body, dict) or not isinstance(body.get("workflow_runs"), list):
            raise MalformedResponseError("Workflow runs missing from response", endpoint=repo)
        runs = body["workflow_runs"]
        return ScheduledRun.from_api(runs[0]) if runs else None

    # -- issues ---------------------------------------------------------------

    def list_issues(self, repo: str, state: str = "open") -> list[Issue]:
        """All issues in *state*, pull requests excluded."""
        params: dict[str, Any] = {"state": state, "per_page": PAGE_SIZE}
        issues: list[Issue] = []
        page = 1
        while True:
            body = self.request("GET", f"/repos/{repo}/issues", params={**params, "page": page})
            if not isinstance(body, list):
                raise MalformedResponseError("Issue list is not an array", endpoint=repo)
            issues.extend(Issue.from_api(i) for i in body if "pull_request" not in i)
            if len(body) < PAGE_SIZE:
                return issues
            page += 1

    def list_comments(self, repo: str, number: int, since: str = "") -> list[dict[str, Any]]:
        params: dict[str, Any] = {"per_page": PAGE_SIZE}
        if since:
            params["since"] = since
        body = self.request("GET", f"/repos/{repo}/issues/{number}/comments", params=params)
        if not isinstance(body, list):
            raise MalformedResponseError("Comment list is not an array", endpoint=repo)
        return body

    def create_issue(self, repo: str, title: str, body: str, labels: list[str] | None = None) -> Issue | None:
        data = self._mutate(
            "POST",
            f"/repos/{repo}/issues",
            {"title": title, "body": body, "labels": labels or []},
            f"create notification issue in {repo}",
        )
        return Issue.from_api(data) if data else None

    def comment_on_issue(self, repo: str, number: int, body: str) -> None:
        self._mutate(
            "POST",
            f"/repos/{repo}/issues/{number}/comments",
            {"body": body},
            f"comment on issue #{number} in {repo}",
        )

    def close_issue(self, repo: str, number: int, title: str) -> None:
        self._mutate(
            "PATCH",
            f"/repos/{repo}/issues/{number}",
            {"title": title, "state": "closed", "state_reason": "completed"},
            f"retitle and close issue #{number} in {repo}",
        )
