"""Drive a full run over the resolved repositories.

``run_notify`` and ``run_check`` are the two orchestrators.  Both resolve
the repository set, then evaluate one repository at a time.  A failure
in one repository is logged, recorded as that repository's outcome and
never stops the batch; rate limiting is additionally folded into a
batch-wide degraded flag and into the exit code.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from .classifier import classify_schedule, classify_workflows
from .errors import GatewayError, RateLimitedError
from .exit_codes import CheckExitCode, NotifyExitCode, worst_check_code
from .gateway import GitHubGateway
from .models import HealthState
from .notifier import Action, NotificationStateMachine
from .resolver import Resolution, RepositoryResolver

try:
    from logging_config import sanitize_log, setup_logging
    from monitor_config import MonitorConfig
except ImportError:
    from scripts.logging_config import sanitize_log, setup_logging
    from scripts.monitor_config import MonitorConfig

logger = setup_logging(__name__)

Printer = Callable[[str], None]

_HEALTH_TAGS: dict[HealthState, str] = {
    HealthState.TESTS_DISABLED: "⚠️  DISABLED WORKFLOWS",
    HealthState.TESTS_HEALTHY: "✅ OK",
    HealthState.NO_WORKFLOWS: "⚠️  No test workflows found",
    HealthState.NO_TEST_WORKFLOW: "⚠️  No test workflows found",
}

_ACTION_ICONS: dict[Action, str] = {
    Action.COOLDOWN: "✓",
    Action.MAX_REACHED: "✓",
    Action.RECENTLY_NOTIFIED: "✓",
    Action.CREATED: "🔔",
    Action.FOLLOWED_UP: "📝",
    Action.RESOLVED: "🔒",
    Action.CREATE_FAILED: "❌",
}


@dataclass
class RepoOutcome:
    repo: str
    status: str
    states: tuple[HealthState, ...] = ()
    action: Action | None = None
    detail: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "repo": self.repo,
            "status": self.status,
            "states": [s.value for s in self.states],
            "action": self.action.value if self.action else None,
            "detail": self.detail,
        }


@dataclass
class RunSummary:
    command: str
    dry_run: bool
    org: str
    topic: str
    topic_count: int = 0
    additional_count: int = 0
    rate_limited: bool = False
    stopped_early: bool = False
    rate_limit_remaining: int = 0
    outcomes: list[RepoOutcome] = field(default_factory=list)
    exit_code: int = 0

    @property
    def repos_checked(self) -> int:
        return len(self.outcomes)

    @property
    def status_counts(self) -> dict[str, int]:
        return dict(Counter(o.status for o in self.outcomes))

    @property
    def action_counts(self) -> dict[str, int]:
        return dict(Counter(o.action.value for o in self.outcomes if o.action))

    @property
    def mode(self) -> str:
        return "DRY RUN" if self.dry_run else "LIVE"

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "command": self.command,
            "mode": self.mode,
            "org": self.org or "all",
            "topic": self.topic,
            "repos_checked": self.repos_checked,
            "topic_repos": self.topic_count,
            "additional_repos": self.additional_count,
            "status_counts": self.status_counts,
            "action_counts": self.action_counts,
            "rate_limited": self.rate_limited,
            "stopped_early": self.stopped_early,
            "rate_limit_remaining": self.rate_limit_remaining,
            "exit_code": self.exit_code,
            "results": [o.to_dict() for o in self.outcomes],
        }


def _prime_budget(gateway: GitHubGateway, out: Printer) -> None:
    try:
        remaining = gateway.fetch_rate_limit()
    except GatewayError as exc:
        logger.warning("Could not read rate limit status: %s", exc.message)
        return
    out(f"Starting with {remaining} API requests remaining")


def _discover(config: MonitorConfig, gateway: GitHubGateway, summary: RunSummary, out: Printer) -> Resolution:
    resolution = RepositoryResolver(gateway).resolve(
        config.topic, config.org, config.critical_repos, config.additional_repos,
    )
    summary.topic_count = resolution.topic_count
    summary.additional_count = resolution.additional_count
    if resolution.rate_limited:
        summary.rate_limited = True
        out("❌ Rate limit reached while fetching repositories. Stopping repository discovery.")
    out(
        f"Checking {len(resolution.repos)} total repositories "
        f"({resolution.topic_count} from topic '{config.topic}', "
        f"{resolution.additional_count} additional)"
    )
    out("")
    return resolution


def _drive(
    repos: list[str],
    process: Callable[[str], RepoOutcome],
    summary: RunSummary,
    gateway: GitHubGateway,
    out: Printer,
) -> None:
    for repo in repos:
        try:
            outcome = process(repo)
        except RateLimitedError as exc:
            summary.rate_limited = True
            logger.warning("Rate limit reached: %s", exc.message,
                           extra={"repo": repo, "endpoint": exc.endpoint, "remaining": exc.remaining})
            outcome = RepoOutcome(repo, "rate_limited", detail=exc.message)
            _report(out, outcome, f"❌ RATE LIMIT: {gateway.budget.remaining}")
            summary.outcomes.append(outcome)
            if not exc.skippable:
                summary.stopped_early = True
                break
            continue
        except GatewayError as exc:
            logger.error("API error: %s", sanitize_log(exc.message),
                         extra={"repo": repo, "endpoint": exc.endpoint, "status_code": exc.status_code})
            outcome = RepoOutcome(repo, "error", detail=exc.message)
            _report(out, outcome, f"❌ API error, skipping: {sanitize_log(exc.message)}")
            summary.outcomes.append(outcome)
            continue
        except Exception as exc:
            logger.exception("Unexpected error processing repository", extra={"repo": repo})
            outcome = RepoOutcome(repo, "error", detail=str(exc))
            _report(out, outcome, "❌ ERROR processing repository")
            summary.outcomes.append(outcome)
            continue
        summary.outcomes.append(outcome)
        _report(out, outcome, f"[RATE LIMIT: {gateway.budget.remaining}]")


def _report(out: Printer, outcome: RepoOutcome, suffix: str) -> None:
    if outcome.status in ("rate_limited", "error") and outcome.action is None:
        out(f"Checking {outcome.repo}... {suffix}")
        return
    head, _, rest = outcome.detail.partition("\n")
    out(f"Checking {outcome.repo}... {head} {suffix}".rstrip())
    if rest:
        out(rest)


# -- notify --------------------------------------------------------------------


def run_notify(
    config: MonitorConfig,
    gateway: GitHubGateway,
    out: Printer = print,
    now_fn: Callable[[], datetime] | None = None,
) -> RunSummary:
    summary = RunSummary("notify", config.dry_run, config.org, config.topic)
    out(f"Organization: {config.scope_label}")
    if config.dry_run:
        out("Mode: DRY RUN (no actions will be taken)")
    _prime_budget(gateway, out)

    resolution = _discover(config, gateway, summary, out)
    machine = NotificationStateMachine(gateway, config, now_fn=now_fn)

    def process(repo: str) -> RepoOutcome:
        health = classify_workflows(gateway, repo, config.test_workflow_name)
        lines = [_HEALTH_TAGS[health]]
        result = machine.handle(repo, health)
        if result.action not in (None, Action.NONE):
            icon = _ACTION_ICONS.get(result.action, "")
            lines.append(f"  {icon} ({result.detail})" if icon == "✓" else f"  {icon} {result.detail}")
        elif health in (HealthState.NO_WORKFLOWS, HealthState.NO_TEST_WORKFLOW) and config.dry_run:
            lines.append(f"  💡 Consider suggesting they add tests or remove '{config.topic}' topic")
        status = "error" if result.action == Action.CREATE_FAILED else health.value.lower()
        return RepoOutcome(repo, status, (health,), result.action, "\n".join(lines))

    _drive(resolution.repos, process, summary, gateway, out)

    summary.rate_limit_remaining = gateway.budget.remaining
    summary.exit_code = int(NotifyExitCode.RATE_LIMITED if summary.rate_limited else NotifyExitCode.OK)
    return summary


# -- check ---------------------------------------------------------------------


def _check_codes(outcome: RepoOutcome) -> list[CheckExitCode]:
    codes = []
    if HealthState.LAST_RUN_FAILED in outcome.states:
        codes.append(CheckExitCode.RUN_FAILED)
    if HealthState.SCHEDULE_STALE in outcome.states:
        codes.append(CheckExitCode.SCHEDULE_STALE)
    if HealthState.NO_SCHEDULED_RUNS in outcome.states:
        codes.append(CheckExitCode.NO_SCHEDULED_RUNS)
    if outcome.status in ("rate_limited", "error"):
        codes.append(CheckExitCode.DEGRADED)
    return codes


def run_check(
    config: MonitorConfig,
    gateway: GitHubGateway,
    out: Printer = print,
    now_fn: Callable[[], datetime] | None = None,
) -> RunSummary:
    summary = RunSummary("check", config.dry_run, config.org, config.topic)
    stale_after = timedelta(days=config.stale_after_days)
    window = {1: "day", 7: "week"}.get(config.stale_after_days, f"{config.stale_after_days} days")
    out(f"Organization: {config.scope_label}")
    _prime_budget(gateway, out)

    resolution = _discover(config, gateway, summary, out)

    def process(repo: str) -> RepoOutcome:
        now = now_fn() if now_fn else datetime.now(timezone.utc)
        report = classify_schedule(gateway, repo, stale_after, now)
        if report.outcome == HealthState.NO_SCHEDULED_RUNS:
            return RepoOutcome(repo, "no_scheduled_runs", report.states, detail="No scheduled runs found")
        run = report.run
        timestamp = run.updated_at.strftime("%Y-%m-%dT%H:%M:%SZ") if run.updated_at else "unknown"
        lines = [f"{run.conclusion or 'in progress'} ({timestamp})"]
        if report.stale:
            lines.append(f"  ERROR: The most recent scheduled run was not within the last {window}.")
        if report.outcome == HealthState.LAST_RUN_FAILED:
            lines.append(f"  ERROR: Scheduled test failed at {run.html_url} ({timestamp})")
        status = report.outcome.value.lower()
        if report.stale and report.outcome == HealthState.LAST_RUN_OK:
            status = "schedule_stale"
        return RepoOutcome(repo, status, report.states, detail="\n".join(lines))

    _drive(resolution.repos, process, summary, gateway, out)

    summary.rate_limit_remaining = gateway.budget.remaining
    codes = [code for o in summary.outcomes for code in _check_codes(o)]
    if summary.rate_limited:
        codes.append(CheckExitCode.DEGRADED)
    summary.exit_code = int(worst_check_code(codes))
    return summary


def print_summary(summary: RunSummary, out: Printer = print) -> None:
    if summary.rate_limited:
        out("")
        out("⚠️  Rate limit was reached during processing.")
        out("Some repositories may have been skipped due to API rate limiting.")
        out("Consider running again later or using a token with higher rate limits.")
    out("")
    out("Summary:")
    out(f"- Repositories checked: {summary.repos_checked}")
    for status, count in sorted(summary.status_counts.items()):
        out(f"  - {status}: {count}")
    for action, count in sorted(summary.action_counts.items()):
        if action != Action.NONE.value:
            out(f"- Notifications {action}: {count}")
    out(f"- API rate limit remaining: {summary.rate_limit_remaining}")
    if summary.rate_limited:
        out("- ⚠️  Rate limit was reached during processing")
    if summary.dry_run:
        out("- Mode: DRY RUN (no actions taken)")
    else:
        out("- Mode: LIVE (actions may have been taken)")
