from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import json
import logging
from typing import Literal, cast
from urllib.parse import urlencode

from prdeck.models import (
    CiStatus,
    FailureKind,
    JobLogText,
    JobMetadata,
    JobStatus,
    MergeMethod,
    PullRequest,
    PullRequestStatus,
    WorkflowJobSnapshot,
    WorkflowRunSnapshot,
    mergeable_status_from,
)
from prdeck.observability import log_event
from prdeck.shell import CommandError, run


LOGGER = logging.getLogger("prdeck.github_gateway")
CompareCommitsStatus = Literal["ahead", "identical", "behind", "diverged"]
_ACTIONS_GREEN_CONCLUSIONS = {"success", "neutral", "skipped"}
_ACTIONS_FAILED_CONCLUSIONS = {"failure", "timed_out", "startup_failure", "action_required"}
_DEPENDABOT_LOGIN_PREFIX = "dependabot"


class GitHubGatewayError(RuntimeError):
    """GitHub request failed; ``kind`` tells the engine how to react."""

    kind: FailureKind = "unknown"


class GitHubPollingError(GitHubGatewayError):
    """Recoverable GitHub failure; caller should retry on its next poll."""

    kind: FailureKind = "network"


class GitHubNotFoundError(GitHubGatewayError):
    """Repository, pull request or run does not exist (or is not visible)."""

    kind: FailureKind = "not_found"


class GitHubRateLimitError(GitHubGatewayError):
    """GitHub API rate limit exhausted; retry after a backoff."""

    kind: FailureKind = "rate_limited"


class GitHubAuthenticationError(GitHubGatewayError):
    """The gh CLI is not authenticated or lacks permission for the request."""

    kind: FailureKind = "auth_failed"


class GitHubConflictError(GitHubGatewayError):
    """GitHub refused a mutation because the pull request is not in a mergeable state."""

    kind: FailureKind = "conflict"


@dataclass(frozen=True)
class GitHubGateway:
    owner: str
    name: str
    _etags_by_path: dict[str, str] = field(
        default_factory=dict,
        init=False,
        repr=False,
        compare=False,
    )
    _cached_get_payload_by_path: dict[str, object] = field(
        default_factory=dict,
        init=False,
        repr=False,
        compare=False,
    )

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    def list_pull_requests(self, base_branch: str) -> tuple[PullRequest, ...]:
        query = urlencode({"state": "open", "base": base_branch, "per_page": "100"})
        path = f"/repos/{self.owner}/{self.name}/pulls?{query}"
        payload = self._api_json("GET", path)
        if not isinstance(payload, list):
            raise GitHubPollingError("Unexpected GitHub response: expected list for pull requests")

        prs: list[PullRequest] = []
        for item in payload:
            item_obj = _as_object_dict(item)
            if item_obj is None:
                continue
            number = _as_int(item_obj.get("number"), field="number")
            user_obj = _as_object_dict(item_obj.get("user"))
            head_obj = _as_object_dict(item_obj.get("head"))
            pr = PullRequest(
                number=number,
                title=_as_string(item_obj.get("title")),
                author=_as_login(user_obj.get("login") if user_obj else None),
                head_sha=_as_string(head_obj.get("sha") if head_obj else None),
                html_url=_as_string(item_obj.get("html_url")),
            )
            prs.append(self._with_status(pr, base_branch))

        log_event(
            LOGGER,
            "github_read",
            endpoint="pull_requests",
            repo_full_name=self.full_name,
            base=base_branch,
            count=len(prs),
        )
        return tuple(sorted(prs, key=lambda pr: pr.number, reverse=True))

    def _with_status(self, pr: PullRequest, base_branch: str) -> PullRequest:
        try:
            detail = self._pull_request_detail(pr.number)
            status = self._status_from_detail(detail, base_branch)
        except GitHubGatewayError as exc:
            log_event(
                LOGGER,
                "pull_request_status_unavailable",
                repo_full_name=self.full_name,
                pr_number=pr.number,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return pr
        comments = _as_optional_int(detail.get("comments")) or 0
        review_comments = _as_optional_int(detail.get("review_comments")) or 0
        return PullRequest(
            number=pr.number,
            title=pr.title,
            author=pr.author,
            mergeable=mergeable_status_from(status),
            ci_status=status.ci_status,
            needs_rebase=status.behind_base,
            comment_count=comments + review_comments,
            head_sha=status.head_sha or pr.head_sha,
            html_url=pr.html_url,
        )

    def get_pull_request_status(self, pr_number: int, base_branch: str) -> PullRequestStatus:
        detail = self._pull_request_detail(pr_number)
        status = self._status_from_detail(detail, base_branch)
        log_event(
            LOGGER,
            "github_read",
            endpoint="pull_request_status",
            pr_number=pr_number,
            ci_status=status.ci_status,
            behind_base=status.behind_base,
            merged=status.merged,
        )
        return status

    def _pull_request_detail(self, pr_number: int) -> dict[str, object]:
        path = f"/repos/{self.owner}/{self.name}/pulls/{pr_number}"
        payload_obj = _as_object_dict(self._api_json("GET", path))
        if payload_obj is None:
            raise GitHubPollingError("Unexpected GitHub response: expected object for pull request")
        return payload_obj

    def _status_from_detail(self, detail: dict[str, object], base_branch: str) -> PullRequestStatus:
        head = _as_object_dict(detail.get("head"))
        if head is None:
            raise GitHubPollingError("Unexpected GitHub response: missing pull request head")
        number = _as_int(detail.get("number"), field="number")
        head_sha = _as_string(head.get("sha"))
        state = _as_string(detail.get("state")).strip().lower()
        merged = _as_bool(detail.get("merged"))
        raw_mergeable = detail.get("mergeable")
        mergeable = raw_mergeable if isinstance(raw_mergeable, bool) else None
        mergeable_state = _as_string(detail.get("mergeable_state")).strip().lower()

        if merged or state != "open":
            return PullRequestStatus(
                number=number,
                head_sha=head_sha,
                state=state,
                merged=merged,
                mergeable=mergeable,
                behind_base=False,
                conflicted=False,
                ci_status="unknown",
            )

        if mergeable_state == "behind":
            behind_base = True
        elif mergeable_state == "clean":
            behind_base = False
        else:
            behind_base = self.compare_commits(base_branch, head_sha) in {"behind", "diverged"}

        return PullRequestStatus(
            number=number,
            head_sha=head_sha,
            state=state,
            merged=merged,
            mergeable=mergeable,
            behind_base=behind_base,
            conflicted=mergeable is False and mergeable_state == "dirty",
            ci_status=self._ci_status(number, head_sha),
        )

    def _ci_status(self, pr_number: int, head_sha: str) -> CiStatus:
        runs = _latest_runs_by_name(self.list_workflow_runs_for_head(pr_number, head_sha))
        if not runs:
            return "success"
        if any(run.status != "completed" for run in runs):
            return "pending"
        if any(run.conclusion not in _ACTIONS_GREEN_CONCLUSIONS for run in runs):
            return "failure"
        return "success"

    def compare_commits(self, base: str, head: str) -> CompareCommitsStatus:
        path = f"/repos/{self.owner}/{self.name}/compare/{base}...{head}"
        payload_obj = _as_object_dict(self._api_json("GET", path))
        if payload_obj is None:
            raise GitHubPollingError("Unexpected GitHub response: expected object for compare")

        status_raw = _as_string(payload_obj.get("status")).strip().lower()
        if status_raw not in {"ahead", "identical", "behind", "diverged"}:
            raise GitHubPollingError(f"Unexpected GitHub compare status: {status_raw!r}")
        status = cast(CompareCommitsStatus, status_raw)
        log_event(
            LOGGER,
            "github_read",
            endpoint="compare_commits",
            base=base,
            head=head,
            status=status,
        )
        return status

    def list_workflow_runs_for_head(
        self, pr_number: int, head_sha: str
    ) -> tuple[WorkflowRunSnapshot, ...]:
        query = urlencode({"head_sha": head_sha, "per_page": "100"})
        path = f"/repos/{self.owner}/{self.name}/actions/runs?{query}"
        payload_obj = _as_object_dict(self._api_json("GET", path))
        if payload_obj is None:
            raise GitHubPollingError(
                "Unexpected GitHub response: expected object for workflow runs"
            )
        runs_payload = payload_obj.get("workflow_runs")
        if not isinstance(runs_payload, list):
            raise GitHubPollingError("Unexpected GitHub response: expected workflow_runs list")

        runs: list[WorkflowRunSnapshot] = []
        for item in runs_payload:
            item_obj = _as_object_dict(item)
            if item_obj is None:
                continue

            pull_requests_payload = item_obj.get("pull_requests")
            if isinstance(pull_requests_payload, list) and pull_requests_payload:
                linked_numbers = {
                    _as_int(pr_obj.get("number"), field="number")
                    for raw in pull_requests_payload
                    if (pr_obj := _as_object_dict(raw)) is not None and "number" in pr_obj
                }
                if pr_number not in linked_numbers:
                    continue

            runs.append(
                WorkflowRunSnapshot(
                    run_id=_as_int(item_obj.get("id"), field="id"),
                    name=_as_string(item_obj.get("name")),
                    status=_as_string(item_obj.get("status")).strip().lower(),
                    conclusion=_normalize_optional_lower_str(item_obj.get("conclusion")),
                    html_url=_as_string(item_obj.get("html_url")),
                    head_sha=_as_string(item_obj.get("head_sha")),
                    created_at=_as_string(item_obj.get("created_at")),
                    updated_at=_as_string(item_obj.get("updated_at")),
                )
            )

        log_event(
            LOGGER,
            "github_read",
            endpoint="workflow_runs",
            pr_number=pr_number,
            head_sha=head_sha,
            count=len(runs),
        )
        return tuple(sorted(runs, key=lambda run: run.run_id))

    def list_workflow_jobs(self, run_id: int) -> tuple[WorkflowJobSnapshot, ...]:
        path = f"/repos/{self.owner}/{self.name}/actions/runs/{run_id}/jobs?per_page=100"
        payload_obj = _as_object_dict(self._api_json("GET", path))
        if payload_obj is None:
            raise GitHubPollingError(
                "Unexpected GitHub response: expected object for workflow jobs"
            )
        jobs_payload = payload_obj.get("jobs")
        if not isinstance(jobs_payload, list):
            raise GitHubPollingError("Unexpected GitHub response: expected jobs list")

        jobs: list[WorkflowJobSnapshot] = []
        for item in jobs_payload:
            item_obj = _as_object_dict(item)
            if item_obj is None:
                continue
            jobs.append(
                WorkflowJobSnapshot(
                    job_id=_as_int(item_obj.get("id"), field="id"),
                    name=_as_string(item_obj.get("name")),
                    status=_as_string(item_obj.get("status")).strip().lower(),
                    conclusion=_normalize_optional_lower_str(item_obj.get("conclusion")),
                    html_url=_as_string(item_obj.get("html_url")),
                    started_at=_as_optional_str(item_obj.get("started_at")),
                    completed_at=_as_optional_str(item_obj.get("completed_at")),
                )
            )

        log_event(LOGGER, "github_read", endpoint="workflow_jobs", run_id=run_id, count=len(jobs))
        return tuple(sorted(jobs, key=lambda job: job.job_id))

    def get_job_log(self, job_id: int) -> str:
        return self._api_text("GET", f"/repos/{self.owner}/{self.name}/actions/jobs/{job_id}/logs")

    def load_build_logs(self, pr_number: int) -> tuple[JobLogText, ...]:
        detail = self._pull_request_detail(pr_number)
        head = _as_object_dict(detail.get("head"))
        head_sha = _as_string(head.get("sha") if head else None)
        runs = _latest_runs_by_name(self.list_workflow_runs_for_head(pr_number, head_sha))

        logs: list[JobLogText] = []
        for run_snapshot in runs:
            for job in self.list_workflow_jobs(run_snapshot.run_id):
                text = ""
                if job.status == "completed":
                    try:
                        text = self.get_job_log(job.job_id)
                    except GitHubGatewayError as exc:
                        log_event(
                            LOGGER,
                            "job_log_unavailable",
                            run_id=run_snapshot.run_id,
                            job_id=job.job_id,
                            error_type=type(exc).__name__,
                            error=str(exc),
                        )
                logs.append(
                    JobLogText(
                        metadata=JobMetadata(
                            name=job.name,
                            workflow_name=run_snapshot.name,
                            status=_job_status(job),
                            duration_seconds=_duration_seconds(job.started_at, job.completed_at),
                            html_url=job.html_url,
                        ),
                        text=text,
                    )
                )

        log_event(
            LOGGER,
            "build_logs_loaded",
            repo_full_name=self.full_name,
            pr_number=pr_number,
            run_count=len(runs),
            job_count=len(logs),
        )
        return tuple(logs)

    def merge_pull_request(self, pr_number: int, method: MergeMethod) -> None:
        path = f"/repos/{self.owner}/{self.name}/pulls/{pr_number}/merge"
        try:
            payload_obj = _as_object_dict(
                self._api_json("PUT", path, payload={"merge_method": method})
            )
            if payload_obj is None or payload_obj.get("merged") is not True:
                message = _as_string(payload_obj.get("message") if payload_obj else None)
                raise GitHubConflictError(f"Merge was not performed: {message or '<empty>'}")
        except Exception as exc:  # noqa: BLE001
            log_event(
                LOGGER,
                "github_merge_failed",
                repo_full_name=self.full_name,
                pr_number=pr_number,
                error_type=type(exc).__name__,
            )
            raise
        log_event(
            LOGGER,
            "pull_request_merged",
            repo_full_name=self.full_name,
            pr_number=pr_number,
            method=method,
        )

    def rebase_pull_request(self, pr_number: int, *, author: str = "") -> None:
        if author.strip().lower().startswith(_DEPENDABOT_LOGIN_PREFIX):
            self.post_issue_comment(pr_number, "@dependabot rebase")
        else:
            self._run_gh_cli(
                [
                    "gh",
                    "pr",
                    "update-branch",
                    str(pr_number),
                    "--rebase",
                    "--repo",
                    self.full_name,
                ]
            )
        log_event(
            LOGGER,
            "pull_request_rebase_requested",
            repo_full_name=self.full_name,
            pr_number=pr_number,
            via_comment=author.strip().lower().startswith(_DEPENDABOT_LOGIN_PREFIX),
        )

    def enable_auto_merge(self, pr_number: int, method: MergeMethod) -> None:
        self._run_gh_cli(
            [
                "gh",
                "pr",
                "merge",
                str(pr_number),
                "--auto",
                f"--{method}",
                "--repo",
                self.full_name,
            ]
        )
        log_event(
            LOGGER,
            "pull_request_auto_merge_enabled",
            repo_full_name=self.full_name,
            pr_number=pr_number,
            method=method,
        )

    def close_pull_request(self, pr_number: int, comment: str) -> None:
        if comment.strip():
            self.post_issue_comment(pr_number, comment)
        path = f"/repos/{self.owner}/{self.name}/pulls/{pr_number}"
        payload_obj = _as_object_dict(self._api_json("PATCH", path, payload={"state": "closed"}))
        state = _as_string(payload_obj.get("state") if payload_obj else None)
        if state != "closed":
            raise GitHubPollingError(
                f"Pull request #{pr_number} is still {state or '<unknown>'} after closing"
            )
        log_event(
            LOGGER,
            "pull_request_closed",
            repo_full_name=self.full_name,
            pr_number=pr_number,
            commented=bool(comment.strip()),
        )

    def rerun_failed_jobs(self, pr_number: int) -> int:
        detail = self._pull_request_detail(pr_number)
        head = _as_object_dict(detail.get("head"))
        head_sha = _as_string(head.get("sha") if head else None)
        runs = _latest_runs_by_name(self.list_workflow_runs_for_head(pr_number, head_sha))
        failed_runs = [
            run_snapshot
            for run_snapshot in runs
            if run_snapshot.status == "completed"
            and run_snapshot.conclusion not in _ACTIONS_GREEN_CONCLUSIONS
        ]
        for run_snapshot in failed_runs:
            path = (
                f"/repos/{self.owner}/{self.name}/actions/runs/"
                f"{run_snapshot.run_id}/rerun-failed-jobs"
            )
            self._api_json("POST", path)
        log_event(
            LOGGER,
            "workflow_rerun_requested",
            repo_full_name=self.full_name,
            pr_number=pr_number,
            run_count=len(failed_runs),
        )
        return len(failed_runs)

    def approve_pull_request(self, pr_number: int, body: str) -> None:
        path = f"/repos/{self.owner}/{self.name}/pulls/{pr_number}/reviews"
        self._api_json("POST", path, payload={"event": "APPROVE", "body": body})
        log_event(
            LOGGER, "pull_request_approved", repo_full_name=self.full_name, pr_number=pr_number
        )

    def post_issue_comment(self, issue_number: int, body: str) -> None:
        path = f"/repos/{self.owner}/{self.name}/issues/{issue_number}/comments"
        try:
            self._api_json("POST", path, payload={"body": body})
        except Exception as exc:  # noqa: BLE001
            log_event(
                LOGGER,
                "github_issue_comment_failed",
                repo_full_name=self.full_name,
                issue_number=issue_number,
                error_type=type(exc).__name__,
            )
            raise
        log_event(LOGGER, "github_issue_comment_posted", issue_number=issue_number)

    def _run_gh_cli(self, argv: list[str]) -> str:
        try:
            return run(argv)
        except CommandError as exc:
            stderr = exc.stderr.lower()
            if "conflict" in stderr or "not mergeable" in stderr:
                raise GitHubConflictError(str(exc)) from exc
            if "not found" in stderr or "could not resolve" in stderr:
                raise GitHubNotFoundError(str(exc)) from exc
            if "auth" in stderr:
                raise GitHubAuthenticationError(str(exc)) from exc
            raise GitHubPollingError(str(exc)) from exc

    def _api_text(self, method: str, path: str) -> str:
        method_upper = method.upper()
        if method_upper != "GET":
            raise ValueError("_api_text currently only supports GET")
        raw = run(["gh", "api", "--method", method_upper, "--include", path], check=False)
        status_code, _headers, body = self._parse_or_raise(raw, path)
        if status_code < 200 or status_code >= 300:
            raise self._request_failed(status_code, body, path)
        return body

    def _api_json(self, method: str, path: str, payload: dict[str, object] | None = None) -> object:
        method_upper = method.upper()
        cmd = ["gh", "api", "--method", method_upper]
        stdin_payload: str | None = None
        if method_upper == "GET":
            etag = self._etags_by_path.get(path)
            if etag:
                cmd.extend(["--header", f"If-None-Match: {etag}"])
        elif payload is not None:
            cmd.extend(["--input", "-"])
            stdin_payload = json.dumps(payload)
        cmd.extend(["--include", path])

        raw = run(cmd, input_text=stdin_payload, check=False)
        status_code, headers, body = self._parse_or_raise(raw, path)

        if method_upper == "GET" and status_code == 304:
            cached_payload = self._cached_get_payload_by_path.get(path)
            if cached_payload is None:
                raise GitHubPollingError(f"GitHub returned 304 for uncached path: {path}")
            return cached_payload

        if status_code < 200 or status_code >= 300:
            raise self._request_failed(status_code, body, path)

        if not body.strip():
            return None
        try:
            payload_obj = json.loads(body)
        except ValueError as exc:
            raise GitHubPollingError(f"GitHub returned invalid JSON for path {path}") from exc

        if method_upper == "GET":
            etag = headers.get("etag")
            if etag:
                self._etags_by_path[path] = etag
                self._cached_get_payload_by_path[path] = payload_obj
        return payload_obj

    def _parse_or_raise(self, raw: str, path: str) -> tuple[int, dict[str, str], str]:
        try:
            return _parse_http_response(raw)
        except Exception as exc:
            log_event(
                LOGGER,
                "github_request_failed",
                path=path,
                error_type=type(exc).__name__,
                error=str(exc),
                raw_preview=_preview_for_log(raw),
            )
            raise GitHubPollingError(f"GitHub request failed for path {path}: {exc}") from exc

    def _request_failed(self, status_code: int, body: str, path: str) -> GitHubGatewayError:
        error = _error_for_status(status_code, body, path)
        log_event(
            LOGGER,
            "github_request_failed",
            path=path,
            status_code=status_code,
            error_type=type(error).__name__,
            raw_preview=_preview_for_log(body),
        )
        return error


def _error_for_status(status_code: int, body: str, path: str) -> GitHubGatewayError:
    message = f"GitHub API request for {path} failed with status {status_code}: "
    message += body.strip() or "<empty>"
    lowered = body.lower()
    if status_code == 404:
        return GitHubNotFoundError(message)
    if status_code == 429 or (status_code == 403 and "rate limit" in lowered):
        return GitHubRateLimitError(message)
    if status_code in {401, 403}:
        return GitHubAuthenticationError(message)
    if status_code in {405, 409, 422}:
        return GitHubConflictError(message)
    return GitHubPollingError(message)


def _latest_runs_by_name(
    runs: tuple[WorkflowRunSnapshot, ...],
) -> tuple[WorkflowRunSnapshot, ...]:
    latest: dict[str, WorkflowRunSnapshot] = {}
    for run_snapshot in runs:
        existing = latest.get(run_snapshot.name)
        if existing is None or run_snapshot.run_id > existing.run_id:
            latest[run_snapshot.name] = run_snapshot
    return tuple(sorted(latest.values(), key=lambda item: item.run_id))


def _job_status(job: WorkflowJobSnapshot) -> JobStatus:
    if job.status != "completed":
        return "in_progress"
    if job.conclusion == "success" or job.conclusion == "neutral":
        return "success"
    if job.conclusion in _ACTIONS_FAILED_CONCLUSIONS:
        return "failure"
    if job.conclusion == "cancelled":
        return "cancelled"
    if job.conclusion == "skipped":
        return "skipped"
    return "unknown"


def _duration_seconds(started_at: str | None, completed_at: str | None) -> float | None:
    if not started_at or not completed_at:
        return None
    try:
        started = datetime.fromisoformat(started_at.replace("Z", "+00:00"))
        completed = datetime.fromisoformat(completed_at.replace("Z", "+00:00"))
    except ValueError:
        return None
    return max((completed - started).total_seconds(), 0.0)


def _parse_http_response(raw: str) -> tuple[int, dict[str, str], str]:
    normalized = raw.replace("\r\n", "\n")
    lines = normalized.split("\n")

    status_line_index = -1
    for index, line in enumerate(lines):
        if line.startswith("HTTP/"):
            status_line_index = index
            break

    if status_line_index < 0:
        raise RuntimeError("Unexpected GitHub response: missing HTTP status line")

    status_line = lines[status_line_index]
    status_parts = status_line.split(" ", 2)
    if len(status_parts) < 2:
        raise RuntimeError(f"Unexpected GitHub response status line: {status_line!r}")

    try:
        status_code = int(status_parts[1])
    except ValueError as exc:
        raise RuntimeError(f"Unexpected GitHub response status line: {status_line!r}") from exc

    headers: dict[str, str] = {}
    body_start = len(lines)
    for index in range(status_line_index + 1, len(lines)):
        line = lines[index]
        if line == "":
            body_start = index + 1
            break
        if ":" not in line:
            continue
        key, value = line.split(":", 1)
        headers[key.strip().lower()] = value.strip()

    body = "\n".join(lines[body_start:])
    return status_code, headers, body


def _preview_for_log(text: str, *, limit: int = 240) -> str:
    compact = text.replace("\n", "\\n").strip()
    if not compact:
        return "<empty>"
    if len(compact) <= limit:
        return compact
    return f"{compact[:limit]}..."


def _normalize_optional_lower_str(value: object) -> str | None:
    raw = _as_optional_str(value)
    if raw is None:
        return None
    normalized = raw.strip().lower()
    return normalized or None


def _as_object_dict(value: object) -> dict[str, object] | None:
    if not isinstance(value, dict):
        return None
    if not all(isinstance(key, str) for key in value.keys()):
        return None
    return cast(dict[str, object], value)


def _as_string(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


def _as_optional_str(value: object) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return str(value)


def _as_login(value: object) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip().lower()


def _as_int(value: object, *, field: str) -> int:
    if isinstance(value, bool):
        raise GitHubPollingError(f"Unexpected GitHub response type for {field}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError as exc:
            raise GitHubPollingError(
                f"Unexpected GitHub response value for {field}: {value}"
            ) from exc
    raise GitHubPollingError(f"Unexpected GitHub response type for {field}")


def _as_optional_int(value: object) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    raise GitHubPollingError("Unexpected GitHub response type for bool field")
