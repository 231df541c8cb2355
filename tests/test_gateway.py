"""Tests for the rate-limit-aware GitHub gateway."""

import json
import os
import sys
import threading
from unittest.mock import MagicMock

import pytest
import requests
from requests.structures import CaseInsensitiveDict

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from scripts.addon_monitor.errors import ApiError, MalformedResponseError, RateLimitedError
from scripts.addon_monitor.gateway import LOW_WATER_MARK, GitHubGateway, RateBudget


def _response(status=200, body=None, remaining=None, resource="core", raw=None):
    resp = requests.Response()
    resp.status_code = status
    if raw is not None:
        resp._content = raw.encode()
    elif body is not None:
        resp._content = json.dumps(body).encode()
    else:
        resp._content = b""
    headers = {}
    if remaining is not None:
        headers["X-RateLimit-Remaining"] = str(remaining)
        headers["X-RateLimit-Resource"] = resource
    resp.headers = CaseInsensitiveDict(headers)
    return resp


def _gateway(*responses, budget=None, dry_run=False):
    session = MagicMock()
    session.request.side_effect = list(responses)
    gw = GitHubGateway("tok", budget=budget, dry_run=dry_run, session=session, max_retries=1)
    return gw, session


class TestRateBudget:
    def test_try_acquire_decrements(self):
        budget = RateBudget(remaining=50)
        assert budget.try_acquire() is True
        assert budget.remaining == 49

    def test_refuses_below_low_water_mark(self):
        budget = RateBudget(remaining=LOW_WATER_MARK - 1)
        assert budget.try_acquire() is False
        assert budget.remaining == LOW_WATER_MARK - 1
        assert budget.exhausted

    def test_observe_overwrites(self):
        budget = RateBudget(remaining=100)
        budget.observe(4000)
        assert budget.remaining == 4000
        budget.observe(None)
        assert budget.remaining == 4000

    def test_concurrent_acquire_never_overspends(self):
        budget = RateBudget(remaining=LOW_WATER_MARK + 50)
        granted = []

        def worker():
            for _ in range(20):
                if budget.try_acquire():
                    granted.append(1)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(granted) == 51
        assert budget.remaining == LOW_WATER_MARK - 1


class TestRequest:
    def test_returns_json_and_observes_remaining(self):
        gw, session = _gateway(_response(body={"ok": True}, remaining=4321))
        assert gw.request("GET", "/x") == {"ok": True}
        assert gw.budget.remaining == 4321
        method, url = session.request.call_args[0]
        assert (method, url) == ("GET", "https://api.github.com/x")
        assert session.request.call_args.kwargs["headers"]["Authorization"] == "token tok"

    def test_search_resource_does_not_feed_budget(self):
        gw, _ = _gateway(_response(body={"items": []}, remaining=29, resource="search"))
        gw.request("GET", "/search/repositories")
        assert gw.budget.remaining == 4999

    def test_below_low_water_mark_makes_no_call(self):
        gw, session = _gateway(budget=RateBudget(remaining=5))
        with pytest.raises(RateLimitedError) as info:
            gw.request("GET", "/x", allow_skip=False)
        assert info.value.skippable is False
        session.request.assert_not_called()

    def test_403_rate_limit_message(self):
        gw, _ = _gateway(_response(403, {"message": "API rate limit exceeded for user"}, remaining=0))
        with pytest.raises(RateLimitedError) as info:
            gw.request("GET", "/x")
        assert info.value.skippable is True
        assert info.value.status_code == 403

    def test_429_is_rate_limited(self):
        gw, _ = _gateway(_response(429, {"message": "slow down"}))
        with pytest.raises(RateLimitedError):
            gw.request("GET", "/x")

    def test_secondary_rate_limit(self):
        gw, _ = _gateway(_response(403, {"message": "You have exceeded a secondary rate limit"}, remaining=100))
        with pytest.raises(RateLimitedError):
            gw.request("GET", "/x")

    def test_any_403_is_rate_limited(self):
        body = {"message": "Resource not accessible by integration", "status": "403"}
        gw, _ = _gateway(_response(403, body, remaining=4000))
        with pytest.raises(RateLimitedError) as info:
            gw.request("GET", "/x")
        assert info.value.status_code == 403
        assert info.value.message == "Resource not accessible by integration"

    def test_404_api_error(self):
        gw, _ = _gateway(_response(404, {"message": "Not Found"}))
        with pytest.raises(ApiError) as info:
            gw.request("GET", "/x")
        assert info.value.status_code == 404

    def test_malformed_json(self):
        gw, _ = _gateway(_response(200, raw="<html>oops</html>"))
        with pytest.raises(MalformedResponseError):
            gw.request("GET", "/x")

    def test_empty_success_returns_none(self):
        gw, _ = _gateway(_response(204))
        assert gw.request("DELETE", "/x") is None

    def test_empty_error_body(self):
        gw, _ = _gateway(_response(500))
        with pytest.raises(ApiError, match="HTTP 500"):
            gw.request("GET", "/x")

    def test_transport_failure_becomes_api_error(self):
        session = MagicMock()
        session.request.side_effect = requests.exceptions.ConnectionError("down")
        gw = GitHubGateway("tok", session=session, max_retries=1)
        with pytest.raises(ApiError, match="Request failed"):
            gw.request("GET", "/x")


class TestDryRun:
    def test_mutations_are_not_sent(self):
        gw, session = _gateway(dry_run=True)
        assert gw.create_issue("a/b", "t", "body", ["addon-monitor"]) is None
        gw.comment_on_issue("a/b", 3, "hi")
        gw.close_issue("a/b", 3, "[RESOLVED] t")
        session.request.assert_not_called()
        assert gw.dry_run_actions == [
            "create notification issue in a/b",
            "comment on issue #3 in a/b",
            "retitle and close issue #3 in a/b",
        ]

    def test_reads_are_real(self):
        gw, session = _gateway(_response(body={"names": ["ddev-get"]}), dry_run=True)
        assert gw.get_topics("a/b") == ["ddev-get"]
        assert session.request.call_count == 1


class TestEndpoints:
    def test_fetch_rate_limit(self):
        gw, _ = _gateway(_response(body={"resources": {"core": {"remaining": 1234}}}))
        assert gw.fetch_rate_limit() == 1234
        assert gw.budget.remaining == 1234

    def test_authenticated_login_cached(self):
        gw, session = _gateway(_response(body={"login": "monitor-bot"}))
        assert gw.authenticated_login() == "monitor-bot"
        assert gw.authenticated_login() == "monitor-bot"
        assert session.request.call_count == 1

    def test_search_repositories(self):
        gw, session = _gateway(_response(body={"items": [{"full_name": "a/b"}, {"full_name": "c/d"}]}))
        assert gw.search_repositories("topic:ddev-get", 2) == ["a/b", "c/d"]
        params = session.request.call_args.kwargs["params"]
        assert params == {"q": "topic:ddev-get", "per_page": 100, "page": 2}

    def test_list_owner_repos_falls_back_to_user(self):
        gw, session = _gateway(
            _response(404, {"message": "Not Found"}),
            _response(body=[{"full_name": "someone/x"}]),
            _response(body=[]),
        )
        assert gw.list_owner_repos("someone", 1) == ["someone/x"]
        assert gw.list_owner_repos("someone", 2) == []
        urls = [c.args[1] for c in session.request.call_args_list]
        assert urls == [
            "https://api.github.com/orgs/someone/repos",
            "https://api.github.com/users/someone/repos",
            "https://api.github.com/users/someone/repos",
        ]

    def test_list_workflows(self):
        gw, _ = _gateway(_response(body={"workflows": [{"name": "tests", "state": "disabled_inactivity"}]}))
        [wf] = gw.list_workflows("a/b")
        assert wf.name == "tests"
        assert wf.is_disabled

    def test_list_workflows_malformed(self):
        gw, _ = _gateway(_response(body={"total_count": 0}))
        with pytest.raises(MalformedResponseError):
            gw.list_workflows("a/b")

    def test_latest_scheduled_run(self):
        gw, session = _gateway(_response(body={"workflow_runs": [
            {"conclusion": "failure", "updated_at": "2024-06-01T12:00:00Z", "html_url": "https://x/1"},
        ]}))
        run = gw.latest_scheduled_run("a/b")
        assert run.conclusion == "failure"
        assert run.updated_at.year == 2024
        assert session.request.call_args.kwargs["params"] == {"event": "schedule", "per_page": 1}

    def test_latest_scheduled_run_empty(self):
        gw, _ = _gateway(_response(body={"workflow_runs": []}))
        assert gw.latest_scheduled_run("a/b") is None

    def test_list_issues_paginates_and_skips_pulls(self):
        page1 = [{"number": n, "title": f"t{n}"} for n in range(1, 100)] + [
            {"number": 100, "title": "pr", "pull_request": {}},
        ]
        page2 = [{"number": 101, "title": "last"}]
        gw, session = _gateway(_response(body=page1), _response(body=page2))
        issues = gw.list_issues("a/b", state="closed")
        assert len(issues) == 100
        assert issues[-1].number == 101
        params = session.request.call_args.kwargs["params"]
        assert params["state"] == "closed"
        assert "creator" not in params and "labels" not in params
        assert params["page"] == 2

    def test_create_issue_live(self):
        gw, session = _gateway(_response(201, {"number": 7, "title": "t", "html_url": "https://x/7"}))
        issue = gw.create_issue("a/b", "t", "body", ["addon-monitor"])
        assert issue.number == 7
        assert session.request.call_args.kwargs["json"] == {
            "title": "t", "body": "body", "labels": ["addon-monitor"],
        }

    def test_close_issue_payload(self):
        gw, session = _gateway(_response(body={"number": 7}))
        gw.close_issue("a/b", 7, "[RESOLVED] t")
        assert session.request.call_args.args[0] == "PATCH"
        assert session.request.call_args.kwargs["json"] == {
            "title": "[RESOLVED] t", "state": "closed", "state_reason": "completed",
        }
