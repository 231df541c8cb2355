"""CLI argument parsing and command routing.

Contains the ``main()`` entry point, the ``check`` and ``notify``
sub-commands and the shared flags.  Configuration problems are reported
before the first network call: a missing token exits with status 5, any
other usage error with status 1.
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Any, NoReturn

from dotenv import load_dotenv

from .aggregator import print_summary, run_check, run_notify
from .classifier import STRICT_STALE_AFTER
from .errors import ConfigError
from .exit_codes import CheckExitCode, NotifyExitCode
from .gateway import GitHubGateway

try:
    from logging_config import setup_logging
    from monitor_config import ConfigValueError, MonitorConfig
except ImportError:
    from scripts.logging_config import setup_logging
    from scripts.monitor_config import ConfigValueError, MonitorConfig

logger = setup_logging(__name__)


class MonitorArgumentParser(argparse.ArgumentParser):
    """``ArgumentParser`` that reports usage errors with exit status 1."""

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_config(args: argparse.Namespace) -> MonitorConfig:
    """Resolve config from file, environment and flags.

    Raises
    ------
    ConfigError
        Invalid values (exit 1) or no GitHub token (exit 5).
    """
    missing_credential = (
        CheckExitCode.MISSING_CREDENTIAL if args.command == "check" else NotifyExitCode.MISSING_CREDENTIAL
    )
    strict_days = STRICT_STALE_AFTER.days if getattr(args, "strict", False) else None
    try:
        config = MonitorConfig.from_env(args.config).with_cli(
            github_token=args.github_token,
            org=args.org,
            additional_repos_csv=args.additional_github_repos,
            dry_run=args.dry_run,
            stale_after_days=strict_days,
        )
    except ConfigValueError as exc:
        raise ConfigError(str(exc)) from None
    if not config.github_token:
        raise ConfigError(
            "GitHub token is required. Pass --github-token or set GITHUB_TOKEN.",
            exit_code=int(missing_credential),
        )
    return config


def _run(args: argparse.Namespace, runner) -> int:
    try:
        config = build_config(args)
    except ConfigError as exc:
        logger.error("%s", exc)
        return exc.exit_code

    gateway = GitHubGateway(config.github_token, dry_run=config.dry_run)
    if args.json:
        def out(line: str) -> None:
            logger.info("%s", line)
    else:
        out = print

    summary = runner(config, gateway, out=out)

    if args.json:
        result: dict[str, Any] = summary.to_dict()
        if config.dry_run:
            result["dry_run_actions"] = list(gateway.dry_run_actions)
        print(json.dumps(result, indent=2))
    else:
        print_summary(summary, out)
    return summary.exit_code


def cmd_notify(args: argparse.Namespace) -> int:
    return _run(args, run_notify)


def cmd_check(args: argparse.Namespace) -> int:
    return _run(args, run_check)


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--github-token", default=None, help="GitHub token (defaults to $GITHUB_TOKEN)")
    parser.add_argument("--org", default=None, help="Limit to a GitHub organization or user ('all' for no limit)")
    parser.add_argument(
        "--additional-github-repos", default=None,
        help="Comma-separated owner/name slugs or GitHub URLs to monitor as well",
    )
    parser.add_argument("--config", default="", help="Path to a YAML config file")
    parser.add_argument("--json", action="store_true", help="Output the run summary as JSON")
    parser.add_argument(
        "--dry-run", action="store_true",
        help="Report issue changes without creating, commenting on or closing issues",
    )


def build_parser() -> MonitorArgumentParser:
    parser = MonitorArgumentParser(
        prog="addon-monitor",
        description="Monitor DDEV add-on test workflows",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Monitor command")

    notify_parser = subparsers.add_parser(
        "notify", help="Open, follow up on and close tracking issues for disabled test workflows",
    )
    _add_common_arguments(notify_parser)

    check_parser = subparsers.add_parser(
        "check", help="Check the most recent scheduled run of every add-on",
    )
    _add_common_arguments(check_parser)
    check_parser.add_argument(
        "--strict", action="store_true",
        help="Treat a scheduled run older than one day as stale",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    env_path = os.path.join(os.getcwd(), ".env")
    if os.path.exists(env_path):
        load_dotenv(env_path)

    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    commands = {
        "notify": cmd_notify,
        "check": cmd_check,
    }

    return commands[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
