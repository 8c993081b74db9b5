from __future__ import annotations

import json

import pytest

from prdeck.github_gateway import (
    GitHubAuthenticationError,
    GitHubConflictError,
    GitHubGateway,
    GitHubGatewayError,
    GitHubNotFoundError,
    GitHubPollingError,
    GitHubRateLimitError,
    _as_bool,
    _as_int,
    _as_optional_int,
    _duration_seconds,
    _job_status,
    _latest_runs_by_name,
    _parse_http_response,
    _preview_for_log,
)
from prdeck.models import WorkflowJobSnapshot, WorkflowRunSnapshot
from prdeck.observability import configure_logging
from prdeck.shell import CommandError


ApiCall = tuple[str, str, dict[str, object] | None]


def _detail(
    number: int,
    *,
    sha: str,
    state: str = "open",
    merged: bool = False,
    mergeable: bool | None = True,
    mergeable_state: str = "clean",
    comments: int = 0,
    review_comments: int = 0,
) -> dict[str, object]:
    return {
        "number": number,
        "state": state,
        "merged": merged,
        "mergeable": mergeable,
        "mergeable_state": mergeable_state,
        "head": {"sha": sha},
        "comments": comments,
        "review_comments": review_comments,
    }


def _run(
    run_id: int,
    name: str,
    *,
    status: str = "completed",
    conclusion: str | None = "success",
    prs: tuple[int, ...] = (),
) -> dict[str, object]:
    return {
        "id": run_id,
        "name": name,
        "status": status,
        "conclusion": conclusion,
        "html_url": f"https://example/runs/{run_id}",
        "head_sha": "s",
        "pull_requests": [{"number": number} for number in prs],
    }


def _install_api(
    monkeypatch: pytest.MonkeyPatch, routes: dict[str, object]
) -> list[ApiCall]:
    calls: list[ApiCall] = []

    def fake_api(
        self: GitHubGateway, method: str, path: str, payload: dict[str, object] | None = None
    ) -> object:
        _ = self
        calls.append((method, path, payload))
        for prefix, response in routes.items():
            if path == prefix or (prefix.endswith("?") and path.startswith(prefix)):
                if isinstance(response, Exception):
                    raise response
                return response
        raise AssertionError((method, path))

    monkeypatch.setattr(GitHubGateway, "_api_json", fake_api)
    return calls


def _http(status_line: str, body: str, *headers: str) -> str:
    return "\n".join((status_line, *headers, "", body))


def test_list_pull_requests_enriches_status_and_sorts(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = _install_api(
        monkeypatch,
        {
            "/repos/o/r/pulls?": [
                {
                    "number": 1,
                    "title": "feat: one",
                    "user": {"login": "  Alice "},
                    "head": {"sha": "s1"},
                    "html_url": "https://example/pr/1",
                },
                {"number": 2, "title": "fix: two", "user": {"login": "bob"}, "head": {"sha": "s2"}},
                "skip",
            ],
            "/repos/o/r/pulls/1": _detail(1, sha="s1", comments=2, review_comments=1),
            "/repos/o/r/pulls/2": GitHubNotFoundError("gone"),
            "/repos/o/r/actions/runs?": {"workflow_runs": [_run(10, "CI")]},
        },
    )

    prs = GitHubGateway("o", "r").list_pull_requests("main")
    assert [pr.number for pr in prs] == [2, 1]
    first = prs[1]
    assert first.author == "alice"
    assert first.mergeable == "ready"
    assert first.ci_status == "success"
    assert first.comment_count == 3
    assert first.html_url == "https://example/pr/1"
    # Status lookup failures leave the pull request listed without status.
    assert prs[0].mergeable == "unknown"
    assert calls[0][1].startswith("/repos/o/r/pulls?")
    assert "base=main" in calls[0][1]


def test_list_pull_requests_rejects_non_list(monkeypatch: pytest.MonkeyPatch) -> None:
    _install_api(monkeypatch, {"/repos/o/r/pulls?": {"bad": "shape"}})
    with pytest.raises(GitHubPollingError, match="expected list for pull requests"):
        GitHubGateway("o", "r").list_pull_requests("main")


def test_pull_request_status_uses_compare_and_latest_runs(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    _install_api(
        monkeypatch,
        {
            "/repos/o/r/pulls/5": _detail(5, sha="abc", mergeable_state="blocked"),
            "/repos/o/r/compare/main...abc": {"status": "diverged"},
            "/repos/o/r/actions/runs?": {
                "workflow_runs": [
                    _run(10, "CI", conclusion="failure"),
                    _run(11, "CI", status="in_progress", conclusion=None),
                    _run(12, "Lint", conclusion="failure", prs=(99,)),
                ]
            },
        },
    )
    status = GitHubGateway("o", "r").get_pull_request_status(5, "main")
    assert status.behind_base is True
    assert status.conflicted is False
    assert status.ci_status == "pending"
    assert status.head_sha == "abc"


def test_pull_request_status_for_conflicts_and_failures(monkeypatch: pytest.MonkeyPatch) -> None:
    _install_api(
        monkeypatch,
        {
            "/repos/o/r/pulls/5": _detail(
                5, sha="abc", mergeable=False, mergeable_state="dirty"
            ),
            "/repos/o/r/compare/main...abc": {"status": "ahead"},
            "/repos/o/r/actions/runs?": {
                "workflow_runs": [_run(10, "CI"), _run(11, "Lint", conclusion="timed_out")]
            },
        },
    )
    status = GitHubGateway("o", "r").get_pull_request_status(5, "main")
    assert status.conflicted is True
    assert status.behind_base is False
    assert status.ci_status == "failure"


def test_pull_request_status_without_runs_is_success(monkeypatch: pytest.MonkeyPatch) -> None:
    _install_api(
        monkeypatch,
        {
            "/repos/o/r/pulls/5": _detail(5, sha="abc", mergeable_state="behind"),
            "/repos/o/r/actions/runs?": {"workflow_runs": []},
        },
    )
    status = GitHubGateway("o", "r").get_pull_request_status(5, "main")
    assert status.ci_status == "success"
    assert status.behind_base is True


def test_merged_pull_request_skips_ci_lookup(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = _install_api(
        monkeypatch, {"/repos/o/r/pulls/5": _detail(5, sha="abc", merged=True, state="closed")}
    )
    status = GitHubGateway("o", "r").get_pull_request_status(5, "main")
    assert status.merged is True
    assert status.ci_status == "unknown"
    assert len(calls) == 1


def test_compare_commits_rejects_unknown_status(monkeypatch: pytest.MonkeyPatch) -> None:
    _install_api(monkeypatch, {"/repos/o/r/compare/main...h": {"status": "weird"}})
    with pytest.raises(GitHubPollingError, match="compare status"):
        GitHubGateway("o", "r").compare_commits("main", "h")


def test_load_build_logs_fetches_completed_job_logs(monkeypatch: pytest.MonkeyPatch) -> None:
    _install_api(
        monkeypatch,
        {
            "/repos/o/r/pulls/5": _detail(5, sha="abc"),
            "/repos/o/r/actions/runs?": {
                "workflow_runs": [_run(9, "CI", conclusion="failure"), _run(10, "CI")]
            },
            "/repos/o/r/actions/runs/10/jobs?per_page=100": {
                "jobs": [
                    {
                        "id": 100,
                        "name": "test",
                        "status": "completed",
                        "conclusion": "failure",
                        "html_url": "https://example/jobs/100",
                        "started_at": "2024-01-15T10:00:00Z",
                        "completed_at": "2024-01-15T10:01:05Z",
                    },
                    {"id": 101, "name": "lint", "status": "completed", "conclusion": "success"},
                    {"id": 102, "name": "deploy", "status": "in_progress", "conclusion": None},
                ]
            },
        },
    )
    fetched: list[str] = []

    def fake_text(self: GitHubGateway, method: str, path: str) -> str:
        _ = self, method
        fetched.append(path)
        if path.endswith("/jobs/101/logs"):
            raise GitHubNotFoundError("expired")
        return "##[error]boom"

    monkeypatch.setattr(GitHubGateway, "_api_text", fake_text)

    logs = GitHubGateway("o", "r").load_build_logs(5)
    assert [log.metadata.name for log in logs] == ["test", "lint", "deploy"]
    assert logs[0].text == "##[error]boom"
    assert logs[0].metadata.status == "failure"
    assert logs[0].metadata.workflow_name == "CI"
    assert logs[0].metadata.duration_seconds == 65.0
    assert logs[1].text == ""
    assert logs[2].metadata.status == "in_progress"
    assert fetched == ["/repos/o/r/actions/jobs/100/logs", "/repos/o/r/actions/jobs/101/logs"]


def test_merge_pull_request_puts_method_and_requires_merged(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    calls = _install_api(monkeypatch, {"/repos/o/r/pulls/5/merge": {"merged": True}})
    GitHubGateway("o", "r").merge_pull_request(5, "squash")
    assert calls == [("PUT", "/repos/o/r/pulls/5/merge", {"merge_method": "squash"})]

    _install_api(
        monkeypatch, {"/repos/o/r/pulls/5/merge": {"merged": False, "message": "Base changed"}}
    )
    with pytest.raises(GitHubConflictError, match="Base changed"):
        GitHubGateway("o", "r").merge_pull_request(5, "merge")


def test_rebase_comments_for_dependabot_and_uses_gh_otherwise(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    calls = _install_api(monkeypatch, {"/repos/o/r/issues/5/comments": {"id": 1}})
    commands: list[list[str]] = []

    def fake_run(
        cmd: list[str], *, cwd=None, input_text: str | None = None, check: bool = True
    ) -> str:
        _ = cwd, input_text, check
        commands.append(cmd)
        return ""

    monkeypatch.setattr("prdeck.github_gateway.run", fake_run)

    gateway = GitHubGateway("o", "r")
    gateway.rebase_pull_request(5, author="dependabot[bot]")
    assert calls == [("POST", "/repos/o/r/issues/5/comments", {"body": "@dependabot rebase"})]
    assert commands == []

    gateway.rebase_pull_request(6, author="alice")
    assert commands == [["gh", "pr", "update-branch", "6", "--rebase", "--repo", "o/r"]]


@pytest.mark.parametrize(
    ("stderr", "error_type"),
    [
        ("pull request is not mergeable: conflict", GitHubConflictError),
        ("GraphQL: Could not resolve to a PullRequest", GitHubNotFoundError),
        ("gh auth login required", GitHubAuthenticationError),
        ("connection reset", GitHubPollingError),
    ],
)
def test_gh_cli_failures_map_to_typed_errors(
    monkeypatch: pytest.MonkeyPatch, stderr: str, error_type: type[GitHubGatewayError]
) -> None:
    def fake_run(
        cmd: list[str], *, cwd=None, input_text: str | None = None, check: bool = True
    ) -> str:
        _ = cwd, input_text, check
        raise CommandError("Command failed", argv=tuple(cmd), stderr=stderr)

    monkeypatch.setattr("prdeck.github_gateway.run", fake_run)
    with pytest.raises(error_type):
        GitHubGateway("o", "r").rebase_pull_request(6, author="alice")


def test_rerun_failed_jobs_posts_for_failed_latest_runs(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = _install_api(
        monkeypatch,
        {
            "/repos/o/r/pulls/5": _detail(5, sha="abc"),
            "/repos/o/r/actions/runs?": {
                "workflow_runs": [
                    _run(10, "CI", conclusion="failure"),
                    _run(11, "Lint", conclusion="success"),
                    _run(12, "Docs", status="queued", conclusion=None),
                ]
            },
            "/repos/o/r/actions/runs/10/rerun-failed-jobs": None,
        },
    )
    assert GitHubGateway("o", "r").rerun_failed_jobs(5) == 1
    assert ("POST", "/repos/o/r/actions/runs/10/rerun-failed-jobs", None) in calls


def test_approve_posts_review(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = _install_api(monkeypatch, {"/repos/o/r/pulls/5/reviews": {"id": 3}})
    GitHubGateway("o", "r").approve_pull_request(5, "thanks")
    assert calls == [
        ("POST", "/repos/o/r/pulls/5/reviews", {"event": "APPROVE", "body": "thanks"})
    ]


def test_close_comments_then_patches_state(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = _install_api(
        monkeypatch,
        {
            "/repos/o/r/issues/5/comments": {"id": 1},
            "/repos/o/r/pulls/5": {"number": 5, "state": "closed"},
        },
    )
    gateway = GitHubGateway("o", "r")
    gateway.close_pull_request(5, "Superseded by #6")
    assert calls == [
        ("POST", "/repos/o/r/issues/5/comments", {"body": "Superseded by #6"}),
        ("PATCH", "/repos/o/r/pulls/5", {"state": "closed"}),
    ]

    calls.clear()
    gateway.close_pull_request(5, "  ")
    assert calls == [("PATCH", "/repos/o/r/pulls/5", {"state": "closed"})]

    _install_api(monkeypatch, {"/repos/o/r/pulls/5": {"number": 5, "state": "open"}})
    with pytest.raises(GitHubPollingError, match="still open"):
        gateway.close_pull_request(5, "")


def test_enable_auto_merge_uses_gh_with_method(monkeypatch: pytest.MonkeyPatch) -> None:
    commands: list[list[str]] = []

    def fake_run(
        cmd: list[str], *, cwd=None, input_text: str | None = None, check: bool = True
    ) -> str:
        _ = cwd, input_text, check
        commands.append(cmd)
        return ""

    monkeypatch.setattr("prdeck.github_gateway.run", fake_run)
    GitHubGateway("o", "r").enable_auto_merge(7, "squash")
    assert commands == [["gh", "pr", "merge", "7", "--auto", "--squash", "--repo", "o/r"]]


def test_api_json_get_uses_etag_cache_and_post_sends_input(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    calls: list[tuple[list[str], str | None, bool]] = []

    def fake_run(
        cmd: list[str], *, cwd=None, input_text: str | None = None, check: bool = True
    ) -> str:
        _ = cwd
        calls.append((cmd, input_text, check))
        if cmd[3] == "POST":
            return _http("HTTP/2.0 201 Created", '{"ok": true}')
        if len(calls) == 1:
            return _http("HTTP/2.0 200 OK", '{"value": 7}', 'ETag: "etag-1"')
        return _http("HTTP/2.0 304 Not Modified", "")

    monkeypatch.setattr("prdeck.github_gateway.run", fake_run)

    gateway = GitHubGateway("o", "r")
    assert gateway._api_json("GET", "/path") == {"value": 7}
    assert gateway._api_json("GET", "/path") == {"value": 7}
    assert gateway._api_json("POST", "/path", payload={"k": "v"}) == {"ok": True}

    assert calls[0][0] == ["gh", "api", "--method", "GET", "--include", "/path"]
    assert calls[1][0][4:6] == ["--header", 'If-None-Match: "etag-1"']
    assert calls[2][0] == ["gh", "api", "--method", "POST", "--input", "-", "--include", "/path"]
    assert calls[2][1] == json.dumps({"k": "v"})
    assert all(check is False for _, _, check in calls)


def test_api_json_rejects_not_modified_without_cache(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        "prdeck.github_gateway.run",
        lambda cmd, *, cwd=None, input_text=None, check=True: _http("HTTP/2.0 304 X", ""),
    )
    with pytest.raises(GitHubPollingError, match="304 for uncached path"):
        GitHubGateway("o", "r")._api_json("GET", "/path")


@pytest.mark.parametrize(
    ("status_line", "body", "error_type"),
    [
        ("HTTP/2.0 404 Not Found", '{"message":"Not Found"}', GitHubNotFoundError),
        ("HTTP/2.0 429 Too Many Requests", "{}", GitHubRateLimitError),
        ("HTTP/2.0 403 Forbidden", '{"message":"API rate limit exceeded"}', GitHubRateLimitError),
        ("HTTP/2.0 403 Forbidden", '{"message":"forbidden"}', GitHubAuthenticationError),
        ("HTTP/2.0 401 Unauthorized", "{}", GitHubAuthenticationError),
        ("HTTP/2.0 405 Method Not Allowed", "{}", GitHubConflictError),
        ("HTTP/2.0 422 Unprocessable Entity", "{}", GitHubConflictError),
        ("HTTP/2.0 502 Bad Gateway", "", GitHubPollingError),
    ],
)
def test_api_json_maps_http_status_to_error_kind(
    monkeypatch: pytest.MonkeyPatch,
    status_line: str,
    body: str,
    error_type: type[GitHubGatewayError],
) -> None:
    monkeypatch.setattr(
        "prdeck.github_gateway.run",
        lambda cmd, *, cwd=None, input_text=None, check=True: _http(status_line, body),
    )
    with pytest.raises(error_type) as info:
        GitHubGateway("o", "r")._api_json("GET", "/path")
    assert "status" in str(info.value)
    assert info.value.kind == error_type.kind


def test_api_json_wraps_malformed_http(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    configure_logging(verbose=True)
    monkeypatch.setattr(
        "prdeck.github_gateway.run",
        lambda cmd, *, cwd=None, input_text=None, check=True: "not-http",
    )
    with pytest.raises(GitHubPollingError, match="GitHub request failed for path /path"):
        GitHubGateway("o", "r")._api_json("GET", "/path")

    text = capsys.readouterr().err
    assert "event=github_request_failed" in text
    assert "raw_preview=not-http" in text


def test_api_text_get_only(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        "prdeck.github_gateway.run",
        lambda cmd, *, cwd=None, input_text=None, check=True: _http(
            "HTTP/2.0 200 OK", "line1\nline2"
        ),
    )
    gateway = GitHubGateway("o", "r")
    with pytest.raises(ValueError, match="only supports GET"):
        gateway._api_text("POST", "/path")
    assert gateway._api_text("GET", "/path") == "line1\nline2"


def test_parse_http_response_handles_redirects_and_rejects_garbage() -> None:
    status, headers, body = _parse_http_response(
        "\n".join(
            (
                "HTTP/2.0 302 Found",
                "Location: somewhere",
                "",
                "HTTP/2.0 200 OK",
                'ETag: "abc"',
                "X-Ignored",
                "",
                '{"ok": true}',
            )
        )
    )
    assert status == 200
    assert headers == {"etag": '"abc"'}
    assert body == '{"ok": true}'

    with pytest.raises(RuntimeError, match="missing HTTP status"):
        _parse_http_response("not-http")
    with pytest.raises(RuntimeError, match="status line"):
        _parse_http_response("HTTP/2.0 okay\n\n{}")


def test_helper_functions() -> None:
    runs = (
        WorkflowRunSnapshot(10, "CI", "completed", "failure", "", "s", "", ""),
        WorkflowRunSnapshot(12, "CI", "completed", "success", "", "s", "", ""),
        WorkflowRunSnapshot(11, "Lint", "completed", "success", "", "s", "", ""),
    )
    assert [run.run_id for run in _latest_runs_by_name(runs)] == [11, 12]

    def job(status: str, conclusion: str | None) -> WorkflowJobSnapshot:
        return WorkflowJobSnapshot(1, "j", status, conclusion, "")

    assert _job_status(job("queued", None)) == "in_progress"
    assert _job_status(job("completed", "neutral")) == "success"
    assert _job_status(job("completed", "startup_failure")) == "failure"
    assert _job_status(job("completed", "cancelled")) == "cancelled"
    assert _job_status(job("completed", "skipped")) == "skipped"
    assert _job_status(job("completed", "stale")) == "unknown"

    assert _duration_seconds("2024-01-01T00:00:00Z", "2024-01-01T00:00:30Z") == 30.0
    assert _duration_seconds(None, "2024-01-01T00:00:30Z") is None
    assert _duration_seconds("bad", "2024-01-01T00:00:30Z") is None

    assert _preview_for_log("") == "<empty>"
    assert _preview_for_log("abcdef", limit=4) == "abcd..."
    assert _as_int("7", field="x") == 7
    with pytest.raises(GitHubPollingError):
        _as_int(True, field="x")
    assert _as_optional_int("x") is None
    assert _as_bool(None) is False
    with pytest.raises(GitHubPollingError):
        _as_bool("yes")


def test_gateway_emits_write_logs(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    configure_logging(verbose=True)
    _install_api(
        monkeypatch,
        {
            "/repos/o/r/pulls/5/merge": {"merged": True},
            "/repos/o/r/issues/5/comments": {"id": 1},
        },
    )
    gateway = GitHubGateway("o", "r")
    gateway.merge_pull_request(5, "squash")
    gateway.rebase_pull_request(5, author="dependabot[bot]")

    text = capsys.readouterr().err
    assert "event=pull_request_merged method=squash pr_number=5 repo_full_name=o/r" in text
    assert "event=pull_request_rebase_requested" in text
    assert "via_comment=true" in text
