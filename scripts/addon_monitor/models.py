"""Value types shared across the monitor.

All of these are read-only snapshots of API data fetched during a run.
Nothing here is persisted locally: the issue tracker is the only durable
store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

DISABLED_STATES = frozenset({"disabled_manually", "disabled_inactivity"})


class HealthState(str, Enum):
    # notifier variant
    NO_WORKFLOWS = "NO_WORKFLOWS"
    NO_TEST_WORKFLOW = "NO_TEST_WORKFLOW"
    TESTS_DISABLED = "TESTS_DISABLED"
    TESTS_HEALTHY = "TESTS_HEALTHY"
    # checker variant
    NO_SCHEDULED_RUNS = "NO_SCHEDULED_RUNS"
    SCHEDULE_STALE = "SCHEDULE_STALE"
    LAST_RUN_FAILED = "LAST_RUN_FAILED"
    LAST_RUN_OK = "LAST_RUN_OK"


def parse_ts(ts: str | None) -> datetime | None:
    """Parse a GitHub ISO-8601 timestamp into an aware UTC datetime."""
    if not ts:
        return None
    for fmt in ("%Y-%m-%dT%H:%M:%SZ", "%Y-%m-%dT%H:%M:%S.%fZ"):
        try:
            return datetime.strptime(ts, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    try:
        parsed = datetime.fromisoformat(ts)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class Workflow:
    name: str
    state: str

    @property
    def is_disabled(self) -> bool:
        return self.state in DISABLED_STATES

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Workflow:
        return cls(name=data.get("name") or "", state=data.get("state") or "")


@dataclass(frozen=True)
class ScheduledRun:
    conclusion: str | None
    updated_at: datetime | None
    html_url: str = ""

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> ScheduledRun:
        return cls(
            conclusion=data.get("conclusion"),
            updated_at=parse_ts(data.get("updated_at")),
            html_url=data.get("html_url") or "",
        )


@dataclass(frozen=True)
class Issue:
    number: int
    title: str
    state: str = "open"
    comments: int = 0
    created_at: datetime | None = None
    closed_at: datetime | None = None
    html_url: str = ""
    body: str = ""
    author: str = ""
    labels: tuple[str, ...] = field(default=())

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Issue:
        return cls(
            number=int(data["number"]),
            title=data.get("title") or "",
            state=data.get("state") or "open",
            comments=int(data.get("comments") or 0),
            created_at=parse_ts(data.get("created_at")),
            closed_at=parse_ts(data.get("closed_at")),
            html_url=data.get("html_url") or "",
            body=data.get("body") or "",
            author=(data.get("user") or {}).get("login", ""),
            labels=tuple(
                lbl.get("name", "") if isinstance(lbl, dict) else str(lbl)
                for lbl in data.get("labels") or []
            ),
        )
