"""DDEV add-on workflow monitor -- package entry point.

Re-exports the public symbols of the submodules so callers can write
``from scripts.addon_monitor import GitHubGateway``.  Internal helpers
(prefixed with ``_``) should be imported from their owning submodule.
"""

from scripts.addon_monitor.errors import (  # noqa: F401
    ApiError,
    ConfigError,
    GatewayError,
    MalformedResponseError,
    MonitorError,
    RateLimitedError,
)

from scripts.addon_monitor.models import (  # noqa: F401
    HealthState,
    Issue,
    ScheduledRun,
    Workflow,
    parse_ts,
)

from scripts.addon_monitor.gateway import (  # noqa: F401
    LOW_WATER_MARK,
    GitHubGateway,
    RateBudget,
)

from scripts.addon_monitor.resolver import (  # noqa: F401
    Resolution,
    RepositoryResolver,
    select_static_repos,
)

from scripts.addon_monitor.classifier import (  # noqa: F401
    PERIODIC_STALE_AFTER,
    STRICT_STALE_AFTER,
    ScheduleReport,
    classify_from_run,
    classify_from_workflows,
    classify_schedule,
    classify_workflows,
)

from scripts.addon_monitor.notifier import (  # noqa: F401
    Action,
    NotificationOutcome,
    NotificationStateMachine,
)

from scripts.addon_monitor.exit_codes import (  # noqa: F401
    CheckExitCode,
    NotifyExitCode,
    worst_check_code,
)

from scripts.addon_monitor.aggregator import (  # noqa: F401
    RepoOutcome,
    RunSummary,
    print_summary,
    run_check,
    run_notify,
)

from scripts.addon_monitor.cli import (  # noqa: F401
    cmd_check,
    cmd_notify,
    main,
)
