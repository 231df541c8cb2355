"""Process exit codes for the ``check`` and ``notify`` commands.

| Code | check                                 | notify                      |
|------|---------------------------------------|-----------------------------|
| 0    | every scheduled run healthy           | normal completion           |
| 1    | a scheduled run failed                | usage error                 |
| 2    | a schedule is stale                   | rate limiting degraded run  |
| 3    | a repository has no scheduled runs    |                             |
| 4    | degraded by rate limits or API errors |                             |
| 5    | missing credential                    | missing credential          |

``check`` reports the worst code seen, in the order 1, 2, 3, 4.
"""

from __future__ import annotations

from enum import IntEnum


class CheckExitCode(IntEnum):
    HEALTHY = 0
    RUN_FAILED = 1
    SCHEDULE_STALE = 2
    NO_SCHEDULED_RUNS = 3
    DEGRADED = 4
    MISSING_CREDENTIAL = 5


class NotifyExitCode(IntEnum):
    OK = 0
    USAGE_ERROR = 1
    RATE_LIMITED = 2
    MISSING_CREDENTIAL = 5


# Most severe first.
CHECK_SEVERITY: tuple[CheckExitCode, ...] = (
    CheckExitCode.RUN_FAILED,
    CheckExitCode.SCHEDULE_STALE,
    CheckExitCode.NO_SCHEDULED_RUNS,
    CheckExitCode.DEGRADED,
)


def worst_check_code(codes) -> CheckExitCode:
    seen = set(codes)
    for code in CHECK_SEVERITY:
        if code in seen:
            return code
    return CheckExitCode.HEALTHY
