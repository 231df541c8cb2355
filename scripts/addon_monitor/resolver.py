"""Build the set of repositories a run evaluates.

Three sources are merged: a topic search (optionally scoped to one
organization), a static list of critical infrastructure repositories,
and caller-supplied extras.  The result is de-duplicated and sorted so
two runs over the same remote state print the same report.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from .errors import GatewayError, RateLimitedError
from .gateway import GitHubGateway

try:
    from github_utils import normalize_repo_slug, parse_csv_repos, repo_owner
    from logging_config import setup_logging
except ImportError:
    from scripts.github_utils import normalize_repo_slug, parse_csv_repos, repo_owner
    from scripts.logging_config import setup_logging

logger = setup_logging(__name__)


@dataclass
class Resolution:
    repos: list[str] = field(default_factory=list)
    topic_count: int = 0
    additional_count: int = 0
    rate_limited: bool = False
    errors: list[str] = field(default_factory=list)


class RepositoryResolver:
    def __init__(self, gateway: GitHubGateway):
        self.gateway = gateway

    def resolve(
        self,
        topic: str,
        org: str = "",
        static_repos: Iterable[str] = (),
        extra_csv: str | Iterable[str] = "",
    ) -> Resolution:
        result = Resolution()
        topic_repos = self._search_topic(topic, org, result)
        if org and not topic_repos and not result.rate_limited:
            # Search indexes lag behind topic changes; ask the org directly.
            topic_repos = self._scan_owner(topic, org, result)
        result.topic_count = len(topic_repos)

        additional = select_static_repos(static_repos, org)
        if isinstance(extra_csv, str):
            extras = [normalize_repo_slug(ref) for ref in parse_csv_repos(extra_csv)]
        else:
            extras = list(extra_csv)
        additional.extend(extras)
        result.additional_count = len(additional)

        result.repos = sorted(set(topic_repos) | set(additional))
        return result

    def _search_topic(self, topic: str, org: str, result: Resolution) -> list[str]:
        query = f"topic:{topic}"
        if org:
            query = f"{query} org:{org}"
        repos: list[str] = []
        page = 1
        while True:
            try:
                batch = self.gateway.search_repositories(query, page, allow_skip=False)
            except RateLimitedError as exc:
                logger.warning("Rate limit reached while fetching repositories; stopping discovery: %s",
                               exc.message, extra={"endpoint": exc.endpoint})
                result.rate_limited = True
                break
            except GatewayError as exc:
                logger.error("Repository search failed on page %d: %s", page, exc.message,
                             extra={"endpoint": exc.endpoint, "status_code": exc.status_code})
                result.errors.append(exc.message)
                break
            if not batch:
                break
            repos.extend(batch)
            page += 1
        return repos

    def _scan_owner(self, topic: str, owner: str, result: Resolution) -> list[str]:
        logger.info("Topic search returned nothing for %s; listing its repositories", owner)
        matched: list[str] = []
        page = 1
        try:
            while True:
                batch = self.gateway.list_owner_repos(owner, page)
                if not batch:
                    break
                for repo in batch:
                    if topic in self.gateway.get_topics(repo):
                        matched.append(repo)
                page += 1
        except RateLimitedError as exc:
            logger.warning("Rate limit reached while listing %s repositories: %s", owner, exc.message)
            result.rate_limited = True
        except GatewayError as exc:
            logger.error("Listing %s repositories failed: %s", owner, exc.message,
                         extra={"endpoint": exc.endpoint, "status_code": exc.status_code})
            result.errors.append(exc.message)
        return matched


def select_static_repos(static_repos: Iterable[str], org: str = "") -> list[str]:
    """Static entries to append: all of them, or the scoped owner's only."""
    if not org:
        return list(static_repos)
    return [r for r in static_repos if repo_owner(r).lower() == org.lower()]
