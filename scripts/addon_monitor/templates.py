"""Jinja2 templates for tracking-issue titles, bodies and comments.

The hidden ``TRACKING_MARKER`` line is what identifies a tracking issue
when the label could not be applied (tokens without push access have
labels silently dropped), so it must stay in :data:`ISSUE_BODY`.
"""

from __future__ import annotations

import jinja2

TRACKING_MARKER = "<!-- addon-monitor:tracking-issue -->"
TITLE_PHRASE = "DDEV Add-on Test Workflows Suspended"
RESOLVED_MARKER = "[RESOLVED]"

_env = jinja2.Environment(
    autoescape=False,
    undefined=jinja2.StrictUndefined,
    keep_trailing_newline=True,
)

ISSUE_TITLE = _env.from_string("⚠️ {{ phrase }} ({{ date }})")

ISSUE_BODY = _env.from_string("""\
{{ marker }}
## Test Workflows Suspended - Please re-enable

The automated test workflows for this add-on are currently disabled
(GitHub disables scheduled workflows after two months of inactivity).

This may affect the reliability and compatibility of your add-on with future
DDEV releases, and it means we won't hear from you about problems in DDEV HEAD.

### Action Required
Please re-enable the suspended test workflow by visiting the workflow page:

🔗 **[Re-enable Test Workflows](https://github.com/{{ repo }}/actions/workflows/{{ workflow_file }})**

Click the "Enable workflow" button on that page to restore automated testing.

If the tests or the add-on are no longer relevant, please remove the
'{{ topic }}' topic from the repository and you will not be notified again.

### Resources
- [DDEV Add-on Maintenance Guide](https://ddev.com/blog/ddev-add-on-maintenance-guide/)
- [GitHub Actions Documentation](https://docs.github.com/en/actions)

### Notification Info
- This is an automated notification (1/{{ max_notifications }})
- Created: {{ date }}
- Repository: {{ repo }}

---
*This issue is updated automatically while the problem persists and closed once the tests are active again.*
""")

FOLLOW_UP_COMMENT = _env.from_string(
    "⚠️ **Follow-up notification** ({{ count }}/{{ max_notifications }}): "
    "Test workflows remain suspended. Please re-enable them to ensure continued "
    "testing of your add-on with DDEV."
)

RESOLUTION_COMMENT = _env.from_string(
    "✅ Test workflows are now active. Closing this notification."
)


def render_title(date: str) -> str:
    return ISSUE_TITLE.render(phrase=TITLE_PHRASE, date=date)


def render_body(repo: str, date: str, topic: str, max_notifications: int, workflow_file: str = "tests.yml") -> str:
    return ISSUE_BODY.render(
        marker=TRACKING_MARKER,
        repo=repo,
        date=date,
        topic=topic,
        max_notifications=max_notifications,
        workflow_file=workflow_file,
    )


def render_follow_up(count: int, max_notifications: int) -> str:
    return FOLLOW_UP_COMMENT.render(count=count, max_notifications=max_notifications)


def render_resolution() -> str:
    return RESOLUTION_COMMENT.render()


def resolved_title(title: str) -> str:
    """Prefix *title* with the resolved marker unless it already has it."""
    if RESOLVED_MARKER in title:
        return title
    return f"{RESOLVED_MARKER} {title}"
