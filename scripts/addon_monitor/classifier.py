"""Workflow health classification.

Two judgments share the same gateway:

* :func:`classify_workflows` (notifier) looks at the workflow list and
  decides whether the test workflow exists and is enabled.
* :func:`classify_schedule` (checker) looks at the single most recent
  scheduled run and reports both its age and its conclusion.

The pure ``*_from_*`` helpers hold the decision logic; the wrappers only
fetch.  A failed fetch raises and never yields a health state, so an
unknown answer can never be mistaken for "healthy".
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from .gateway import GitHubGateway
from .models import HealthState, ScheduledRun, Workflow

PERIODIC_STALE_AFTER = timedelta(weeks=1)
STRICT_STALE_AFTER = timedelta(days=1)


def classify_from_workflows(workflows: list[Workflow], test_workflow_name: str = "tests") -> HealthState:
    if not workflows:
        return HealthState.NO_WORKFLOWS
    wanted = test_workflow_name.lower()
    tests = [w for w in workflows if w.name.lower() == wanted]
    if not tests:
        return HealthState.NO_TEST_WORKFLOW
    if any(w.is_disabled for w in tests):
        return HealthState.TESTS_DISABLED
    return HealthState.TESTS_HEALTHY


def classify_workflows(gateway: GitHubGateway, repo: str, test_workflow_name: str = "tests") -> HealthState:
    return classify_from_workflows(gateway.list_workflows(repo), test_workflow_name)


@dataclass(frozen=True)
class ScheduleReport:
    """Outcome of the checker for one repository.

    ``stale`` and ``outcome`` are independent: a stale schedule whose last
    run succeeded is still reported as stale.
    """

    outcome: HealthState
    stale: bool = False
    run: ScheduledRun | None = None
    age: timedelta | None = None

    @property
    def states(self) -> tuple[HealthState, ...]:
        if self.stale:
            return (HealthState.SCHEDULE_STALE, self.outcome)
        return (self.outcome,)


def classify_from_run(
    run: ScheduledRun | None,
    stale_after: timedelta = PERIODIC_STALE_AFTER,
    now: datetime | None = None,
) -> ScheduleReport:
    if run is None:
        return ScheduleReport(outcome=HealthState.NO_SCHEDULED_RUNS)
    now = now or datetime.now(timezone.utc)
    age = now - run.updated_at if run.updated_at else None
    stale = age is None or age > stale_after
    outcome = HealthState.LAST_RUN_FAILED if run.conclusion == "failure" else HealthState.LAST_RUN_OK
    return ScheduleReport(outcome=outcome, stale=stale, run=run, age=age)


def classify_schedule(
    gateway: GitHubGateway,
    repo: str,
    stale_after: timedelta = PERIODIC_STALE_AFTER,
    now: datetime | None = None,
) -> ScheduleReport:
    return classify_from_run(gateway.latest_scheduled_run(repo), stale_after, now)
