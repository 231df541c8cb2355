"""Owner-notification lifecycle backed by GitHub Issues.

A repository whose test workflow is disabled moves through::

    NONE -> OPEN -> FOLLOWED_UP* -> MAX_REACHED | RESOLVED -> COOLDOWN -> NONE

The tracking issue *is* the state: its comment count is the notification
counter, its creation date and ``[RESOLVED]`` title marker drive the
interval and cooldown rules.  Tracking issues are found by label or by
the hidden body marker.  The title is only consulted for issues the
token itself opened before either existed.

Every lookup goes through the gateway and is allowed to raise.  A
repository whose state could not be determined is skipped by the caller;
nothing here turns a failed lookup into "no issue exists".
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable

from . import templates
from .errors import ApiError, GatewayError, RateLimitedError
from .gateway import GitHubGateway, is_rate_limit_message
from .models import HealthState, Issue, parse_ts

try:
    from logging_config import sanitize_log, setup_logging
    from monitor_config import MonitorConfig
except ImportError:
    from scripts.logging_config import sanitize_log, setup_logging
    from scripts.monitor_config import MonitorConfig

logger = setup_logging(__name__)

DATE_STAMP_RE = re.compile(r"\(\d{4}-\d{2}-\d{2}\)")

ISSUE_ERROR_HINTS: dict[str, str] = {
    "Not Found": "Issues are disabled on this repository or token lacks permissions",
    "Resource not accessible by personal access token": "Token lacks write permissions for this repository",
    "Bad credentials": "Invalid GitHub token",
    "Issues are disabled for this repo": "Issues are disabled on this repository",
}


class Action(str, Enum):
    NONE = "none"
    COOLDOWN = "cooldown"
    CREATED = "created"
    FOLLOWED_UP = "followed_up"
    MAX_REACHED = "max_reached"
    RECENTLY_NOTIFIED = "recently_notified"
    RESOLVED = "resolved"
    CREATE_FAILED = "create_failed"


@dataclass(frozen=True)
class NotificationOutcome:
    action: Action
    issue_number: int | None = None
    count: int | None = None
    detail: str = ""


def notification_count(issue: Issue) -> int:
    """Notifications sent so far: the issue itself plus each comment."""
    return issue.comments + 1


def is_resolution_closed(issue: Issue, cutoff: datetime) -> bool:
    """Closed by resolution (not by the owner) after *cutoff*.

    A title without its ``(YYYY-MM-DD)`` stamp, e.g. after a manual edit,
    does not count.
    """
    return (
        issue.state == "closed"
        and templates.RESOLVED_MARKER in issue.title
        and DATE_STAMP_RE.search(issue.title) is not None
        and issue.closed_at is not None
        and issue.closed_at > cutoff
    )


def issue_error_hint(message: str) -> str:
    return ISSUE_ERROR_HINTS.get(message, message)


def _create_failed(repo: str, exc: GatewayError) -> NotificationOutcome:
    hint = issue_error_hint(exc.message)
    logger.error("Cannot create notification issue: %s", sanitize_log(hint),
                 extra={"repo": repo, "status_code": exc.status_code})
    return NotificationOutcome(Action.CREATE_FAILED, detail=f"cannot create notification issue: {hint}")


class NotificationStateMachine:
    def __init__(
        self,
        gateway: GitHubGateway,
        config: MonitorConfig,
        now_fn: Callable[[], datetime] | None = None,
    ):
        self.gateway = gateway
        self.config = config
        self.now_fn = now_fn or (lambda: datetime.now(timezone.utc))

    # -- lookups ----------------------------------------------------------------

    def is_tracking_issue(self, issue: Issue) -> bool:
        if self.config.tracking_label in issue.labels or templates.TRACKING_MARKER in issue.body:
            return True
        # Issues opened before the label and marker existed carry only the title.
        return templates.TITLE_PHRASE in issue.title and issue.author == self.gateway.authenticated_login()

    def tracking_issues(self, repo: str, state: str) -> list[Issue]:
        """Tracking issues in *state*.

        No creator or label filter is sent: GitHub drops labels set by
        tokens without push access, so marker-only issues must be listed too.
        """
        return [i for i in self.gateway.list_issues(repo, state=state) if self.is_tracking_issue(i)]

    def in_cooldown(self, repo: str, now: datetime) -> bool:
        cutoff = now - timedelta(days=self.config.renotification_cooldown_days)
        return any(is_resolution_closed(i, cutoff) for i in self.tracking_issues(repo, "closed"))

    def find_open_issue(self, repo: str) -> Issue | None:
        candidates = [
            i for i in self.tracking_issues(repo, "open")
            if templates.RESOLVED_MARKER not in i.title
        ]
        return min(candidates, key=lambda i: i.number) if candidates else None

    def recently_notified(self, repo: str, issue: Issue, now: datetime) -> bool:
        cutoff = now - timedelta(days=self.config.notification_interval_days)
        if issue.created_at is not None and issue.created_at > cutoff:
            return True
        since = cutoff.strftime("%Y-%m-%dT%H:%M:%SZ")
        for comment in self.gateway.list_comments(repo, issue.number, since=since):
            created = parse_ts(comment.get("created_at"))
            if created is not None and created > cutoff:
                return True
        return False

    # -- transitions -------------------------------------------------------------

    def handle(self, repo: str, health: HealthState) -> NotificationOutcome:
        if health == HealthState.TESTS_DISABLED:
            return self._handle_disabled(repo)
        if health == HealthState.TESTS_HEALTHY:
            return self._handle_healthy(repo)
        return NotificationOutcome(Action.NONE)

    def _handle_disabled(self, repo: str) -> NotificationOutcome:
        now = self.now_fn()
        if self.in_cooldown(repo, now):
            return NotificationOutcome(Action.COOLDOWN, detail="in cooldown period")

        issue = self.find_open_issue(repo)
        if issue is None:
            return self._create(repo, now)

        count = notification_count(issue)
        if count >= self.config.max_notifications:
            return NotificationOutcome(Action.MAX_REACHED, issue.number, count, "max notifications reached")
        if self.recently_notified(repo, issue, now):
            return NotificationOutcome(Action.RECENTLY_NOTIFIED, issue.number, count, "recently notified")

        new_count = count + 1
        self.gateway.comment_on_issue(
            repo, issue.number, templates.render_follow_up(new_count, self.config.max_notifications),
        )
        verb = "would add" if self.config.dry_run else "added"
        return NotificationOutcome(
            Action.FOLLOWED_UP, issue.number, new_count,
            f"{verb} follow-up comment to issue #{issue.number}",
        )

    def _create(self, repo: str, now: datetime) -> NotificationOutcome:
        date = now.strftime("%Y-%m-%d")
        title = templates.render_title(date)
        body = templates.render_body(
            repo, date, self.config.topic, self.config.max_notifications,
            workflow_file=f"{self.config.test_workflow_name}.yml",
        )
        try:
            created = self.gateway.create_issue(repo, title, body, labels=[self.config.tracking_label])
        except RateLimitedError as exc:
            # A plain 403 on create is a permission problem, not quota.
            if exc.status_code != 403 or is_rate_limit_message(exc.message):
                raise
            return _create_failed(repo, exc)
        except ApiError as exc:
            return _create_failed(repo, exc)
        if created is None:
            return NotificationOutcome(Action.CREATED, count=1, detail="would create notification issue")
        return NotificationOutcome(
            Action.CREATED, created.number, 1,
            f"created notification issue #{created.number}: {created.html_url}",
        )

    def _handle_healthy(self, repo: str) -> NotificationOutcome:
        issue = self.find_open_issue(repo)
        if issue is None:
            return NotificationOutcome(Action.NONE)
        # Resolution comment only after a successful close, so a failed close posts nothing.
        self.gateway.close_issue(repo, issue.number, templates.resolved_title(issue.title))
        self.gateway.comment_on_issue(repo, issue.number, templates.render_resolution())
        verb = "would close" if self.config.dry_run else "closed"
        return NotificationOutcome(
            Action.RESOLVED, issue.number, notification_count(issue),
            f"{verb} resolved notification issue #{issue.number}",
        )

