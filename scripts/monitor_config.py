"""Centralised configuration for the add-on monitor.

Every environment variable the monitor consumes is declared here as a
field on :class:`MonitorConfig`.  Values are validated before any network
activity so that a typo in a scheduled workflow fails fast instead of
half-way through a run over hundreds of repositories.

Precedence, lowest first: built-in defaults, an optional YAML file
(``--config`` or ``ADDON_MONITOR_CONFIG``), environment variables, CLI
flags.

Supported YAML keys
-------------------
topic : str
    Repository topic used for discovery (default ``ddev-get``).
test_workflow_name : str
    Name of the authoritative test workflow (default ``tests``).
critical_repos : list[str]
    Static list of repositories always monitored.
tracking_label : str
    Label applied to tracking issues.
max_notifications, notification_interval_days, renotification_cooldown_days : int
    Notification policy.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Any

import yaml

try:
    from github_utils import normalize_repo_slug, parse_csv_repos
    from logging_config import setup_logging
except ImportError:
    from scripts.github_utils import normalize_repo_slug, parse_csv_repos
    from scripts.logging_config import setup_logging

logger = setup_logging(__name__)

DEFAULT_TOPIC = "ddev-get"
DEFAULT_TEST_WORKFLOW = "tests"
DEFAULT_TRACKING_LABEL = "addon-monitor"

DEFAULT_CRITICAL_REPOS: tuple[str, ...] = (
    "ddev/ddev",
    "ddev/github-action-add-on-test",
    "ddev/github-action-setup-ddev",
    "ddev/signing_tools",
    "ddev/sponsorship-data",
)

# Environment variable -> config field, for the integer policy values.
_INT_ENV_FIELDS: dict[str, str] = {
    "MAX_NOTIFICATIONS": "max_notifications",
    "NOTIFICATION_INTERVAL_DAYS": "notification_interval_days",
    "RENOTIFICATION_COOLDOWN_DAYS": "renotification_cooldown_days",
}

_STR_FILE_KEYS = ("topic", "test_workflow_name", "tracking_label")


class ConfigValueError(ValueError):
    """An environment variable or config-file value failed validation."""


def _positive_int(name: str, raw: Any) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ConfigValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < 1:
        raise ConfigValueError(f"{name} must be at least 1, got {value}")
    return value


def normalize_org(org: str | None) -> str:
    """Map the ``all`` sentinel (or nothing) to an unscoped run."""
    org = (org or "").strip()
    return "" if org.lower() == "all" else org


@dataclass(frozen=True)
class MonitorConfig:
    """Immutable snapshot of the monitor's configuration."""

    github_token: str = ""
    org: str = ""
    additional_repos: tuple[str, ...] = ()
    dry_run: bool = False

    topic: str = DEFAULT_TOPIC
    test_workflow_name: str = DEFAULT_TEST_WORKFLOW
    tracking_label: str = DEFAULT_TRACKING_LABEL
    critical_repos: tuple[str, ...] = field(default=DEFAULT_CRITICAL_REPOS)

    # -- notify --------------------------------------------------------------
    max_notifications: int = 2
    notification_interval_days: int = 30
    renotification_cooldown_days: int = 60

    # -- check ---------------------------------------------------------------
    stale_after_days: int = 7

    @property
    def scope_label(self) -> str:
        return self.org or "all"

    @classmethod
    def from_env(cls, config_path: str = "") -> MonitorConfig:
        """Build a config from the optional YAML file and the environment.

        Raises
        ------
        ConfigValueError
            When an integer variable is not a positive integer or the
            config file cannot be read.
        """
        cfg = cls()
        path = config_path or os.environ.get("ADDON_MONITOR_CONFIG", "")
        if path:
            cfg = cfg.merged(load_config_file(path))

        overrides: dict[str, Any] = {}
        for env_name, field_name in _INT_ENV_FIELDS.items():
            raw = os.environ.get(env_name, "")
            if raw.strip():
                overrides[field_name] = _positive_int(env_name, raw.strip())
        if "GITHUB_TOKEN" in os.environ:
            overrides["github_token"] = os.environ["GITHUB_TOKEN"].strip()
        if "ORG" in os.environ:
            overrides["org"] = normalize_org(os.environ["ORG"])
        return replace(cfg, **overrides)

    def merged(self, values: dict[str, Any]) -> MonitorConfig:
        """Return a copy with *values* (already validated) applied."""
        return replace(self, **values) if values else self

    def with_cli(
        self,
        github_token: str | None = None,
        org: str | None = None,
        additional_repos_csv: str | None = None,
        dry_run: bool = False,
        stale_after_days: int | None = None,
    ) -> MonitorConfig:
        """Apply command-line flags; ``None`` means "flag not given"."""
        updates: dict[str, Any] = {"dry_run": dry_run or self.dry_run}
        if github_token is not None:
            updates["github_token"] = github_token.strip()
        if org is not None:
            updates["org"] = normalize_org(org)
        if additional_repos_csv is not None:
            updates["additional_repos"] = parse_additional_repos(additional_repos_csv)
        if stale_after_days is not None:
            updates["stale_after_days"] = stale_after_days
        return replace(self, **updates)


def parse_additional_repos(csv: str) -> tuple[str, ...]:
    """Parse ``--additional-github-repos`` into normalised slugs."""
    repos: list[str] = []
    for ref in parse_csv_repos(csv):
        try:
            repos.append(normalize_repo_slug(ref))
        except ValueError as exc:
            raise ConfigValueError(str(exc)) from None
    return tuple(repos)


def load_config_file(path: str) -> dict[str, Any]:
    """Read and validate a YAML config file.

    Invalid entries are dropped with a warning rather than failing the
    run; an unreadable or malformed file is an error.
    """
    try:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    except OSError as exc:
        raise ConfigValueError(f"Cannot read config file {path}: {exc}") from None
    except yaml.YAMLError as exc:
        raise ConfigValueError(f"Config file {path} is not valid YAML: {exc}") from None

    if not isinstance(raw, dict):
        logger.warning("%s did not parse as a mapping; ignoring", path)
        return {}

    values: dict[str, Any] = {}
    for key in _STR_FILE_KEYS:
        val = raw.get(key)
        if val is None:
            continue
        if isinstance(val, str) and val.strip():
            values[key] = val.strip()
        else:
            logger.warning("invalid %s %r in %s; ignoring", key, val, path)

    for field_name in _INT_ENV_FIELDS.values():
        if field_name not in raw:
            continue
        try:
            values[field_name] = _positive_int(field_name, raw[field_name])
        except ConfigValueError as exc:
            logger.warning("%s in %s; ignoring", exc, path)

    repos = raw.get("critical_repos")
    if repos is not None:
        if isinstance(repos, list):
            slugs = []
            for ref in repos:
                try:
                    slugs.append(normalize_repo_slug(str(ref)))
                except ValueError:
                    logger.warning("invalid critical repo %r in %s; ignoring", ref, path)
            values["critical_repos"] = tuple(slugs)
        else:
            logger.warning("critical_repos must be a list in %s; ignoring", path)

    unknown = set(raw) - set(_STR_FILE_KEYS) - set(_INT_ENV_FIELDS.values()) - {"critical_repos"}
    for key in sorted(unknown):
        logger.warning("unknown key %r in %s; ignoring", key, path)

    return values
