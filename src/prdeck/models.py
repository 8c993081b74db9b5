from __future__ import annotations

from dataclasses import dataclass
from typing import Literal


MergeableStatus = Literal[
    "unknown",
    "build_in_progress",
    "ready",
    "needs_rebase",
    "build_failed",
    "conflicted",
    "blocked",
    "rebasing",
    "merging",
]
CiStatus = Literal["pending", "success", "failure", "unknown"]
JobStatus = Literal["success", "failure", "cancelled", "skipped", "in_progress", "unknown"]
PrFilter = Literal["all", "feat", "fix", "chore"]
FailureKind = Literal["not_found", "rate_limited", "auth_failed", "network", "conflict", "unknown"]
Direction = Literal["forward", "backward"]
MergeMethod = Literal["merge", "squash", "rebase"]
PrOperation = Literal["merge", "rebase", "rerun", "approve", "close", "auto_merge"]

PR_FILTER_ORDER: tuple[PrFilter, ...] = ("all", "feat", "fix", "chore")
_TRANSIENT_FAILURE_KINDS: frozenset[FailureKind] = frozenset(
    {"network", "rate_limited", "conflict", "unknown"}
)


@dataclass(frozen=True)
class Repo:
    org: str
    repo: str
    branch: str = "main"

    @property
    def full_name(self) -> str:
        return f"{self.org}/{self.repo}"


@dataclass(frozen=True)
class PullRequest:
    number: int
    title: str
    author: str
    mergeable: MergeableStatus = "unknown"
    ci_status: CiStatus = "unknown"
    needs_rebase: bool = False
    comment_count: int = 0
    head_sha: str = ""
    html_url: str = ""


@dataclass(frozen=True)
class PullRequestStatus:
    number: int
    head_sha: str
    state: str
    merged: bool
    mergeable: bool | None
    behind_base: bool
    conflicted: bool
    ci_status: CiStatus


@dataclass(frozen=True)
class JobMetadata:
    name: str
    workflow_name: str
    status: JobStatus
    duration_seconds: float | None = None
    html_url: str = ""


@dataclass(frozen=True)
class JobLogText:
    metadata: JobMetadata
    text: str


@dataclass(frozen=True)
class PrContext:
    number: int
    title: str
    author: str


@dataclass(frozen=True)
class PrKey:
    repo_full_name: str
    number: int


@dataclass(frozen=True)
class GatewayFailure:
    kind: FailureKind
    message: str

    @property
    def is_transient(self) -> bool:
        return self.kind in _TRANSIENT_FAILURE_KINDS


def mergeable_status_from(status: PullRequestStatus) -> MergeableStatus:
    if status.conflicted:
        return "conflicted"
    if status.ci_status == "failure":
        return "build_failed"
    if status.ci_status == "pending":
        return "build_in_progress"
    if status.behind_base:
        return "needs_rebase"
    if status.mergeable is False:
        return "blocked"
    if status.ci_status == "success":
        return "ready"
    return "unknown"


def pr_filter_matches(pr_filter: PrFilter, title: str) -> bool:
    if pr_filter == "all":
        return True
    return pr_filter in title.lower()


def next_pr_filter(current: PrFilter) -> PrFilter:
    index = PR_FILTER_ORDER.index(current)
    return PR_FILTER_ORDER[(index + 1) % len(PR_FILTER_ORDER)]


@dataclass(frozen=True)
class SessionSnapshot:
    repos: tuple[Repo, ...] = ()
    selected_repo: int = 0
    pr_filter: PrFilter = "all"
    pr_cursors: tuple[tuple[str, int], ...] = ()
    selected_prs: tuple[tuple[str, tuple[int, ...]], ...] = ()
    show_timestamps: bool = False


@dataclass(frozen=True)
class WorkflowRunSnapshot:
    run_id: int
    name: str
    status: str
    conclusion: str | None
    html_url: str
    head_sha: str
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class WorkflowJobSnapshot:
    job_id: int
    name: str
    status: str
    conclusion: str | None
    html_url: str
    started_at: str | None = None
    completed_at: str | None = None
