"""Shared GitHub API and repository-reference utilities.

Small pure helpers used by the API gateway and the repository resolver:
request headers, ``owner/name`` slug handling and rate-limit header
parsing.  Keeping them free of I/O makes them trivial to test.
"""

import re

GITHUB_API = "https://api.github.com"

_SLUG_RE = re.compile(r"^[\w.-]+/[\w.-]+$")
_URL_RE = re.compile(r"^https?://github\.com/([\w.-]+)/([\w.-]+?)(?:\.git)?/?$")


def gh_headers(token: str = "") -> dict[str, str]:
    """Return standard GitHub API request headers.

    Parameters
    ----------
    token : str
        A GitHub Personal Access Token.  When empty the ``Authorization``
        header is omitted (anonymous requests).
    """
    h: dict[str, str] = {
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": "2022-11-28",
    }
    if token:
        h["Authorization"] = f"token {token}"
    return h


def normalize_repo_slug(ref: str) -> str:
    """Reduce a repository reference to its ``owner/name`` slug.

    Accepts ``owner/name`` shorthand as well as full HTTPS URLs with an
    optional trailing slash or ``.git`` suffix.  Raises ``ValueError`` for
    anything else.
    """
    ref = ref.strip()
    m = _URL_RE.match(ref)
    if m:
        return f"{m.group(1)}/{m.group(2)}"
    ref = ref.rstrip("/")
    if ref.endswith(".git"):
        ref = ref[:-4]
    if not _SLUG_RE.match(ref):
        raise ValueError(f"Cannot parse repository reference: {ref!r}")
    return ref


def repo_owner(slug: str) -> str:
    """Return the owner half of an ``owner/name`` slug."""
    return slug.split("/", 1)[0]


def parse_csv_repos(csv: str) -> list[str]:
    """Split a comma-separated repository list, dropping blank entries."""
    return [part.strip() for part in (csv or "").split(",") if part.strip()]


def parse_rate_limit_remaining(headers) -> int | None:
    """Extract ``X-RateLimit-Remaining`` as an int, or ``None`` if absent.

    *headers* may be any case-insensitive mapping (``requests`` returns a
    ``CaseInsensitiveDict``).  Non-numeric values are ignored.
    """
    raw = headers.get("X-RateLimit-Remaining") if headers else None
    if raw is None:
        return None
    raw = str(raw).strip()
    if not raw.isdigit():
        return None
    return int(raw)
