from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from prdeck.log_tree import LogTree, NodePath
from prdeck.models import (
    JobMetadata,
    MergeMethod,
    PrContext,
    PrFilter,
    PrKey,
    PullRequest,
    Repo,
    pr_filter_matches,
)
from prdeck.theme import DARK_THEME, Theme

if TYPE_CHECKING:
    from prdeck.view_models import (
        LogPanelViewModel,
        MergeBotViewModel,
        PrTableViewModel,
        RepoTabsViewModel,
    )


LoadState = Literal["idle", "loading", "loaded", "error"]
StatusLevel = Literal["info", "success", "warning", "error"]
EntryState = Literal[
    "queued",
    "needs_rebase",
    "rebasing",
    "waiting_for_ci",
    "ready_to_merge",
    "merging",
    "merged",
    "failed",
]
Outstanding = Literal["status_check", "rebase", "merge", "rerun", "poll_timer", "retry_timer"]
ResumeState = Literal["needs_rebase", "waiting_for_ci", "rerun_ci"]
MonitoredOperation = Literal["merge", "rebase", "auto_merge"]

DEFAULT_VIEWPORT_HEIGHT = 20


@dataclass(frozen=True)
class StatusMessage:
    text: str
    level: StatusLevel = "info"


@dataclass(frozen=True)
class AppSettings:
    ide_command: str = "code"
    temp_dir: Path = Path("/tmp/prdeck")
    approval_message: str = ":rocket: thanks for your contribution"
    close_comment: str = "Closing this pull request."
    monitor_interval_seconds: float = 30.0
    monitor_max_checks: int = 40
    seed_repos: tuple[Repo, ...] = ()


# Repositories


@dataclass(frozen=True)
class RepoData:
    prs: tuple[PullRequest, ...] = ()
    load_state: LoadState = "idle"
    error: str | None = None
    cursor: int = 0
    selected: frozenset[int] = frozenset()
    scroll_offset: int = 0


@dataclass(frozen=True)
class OperationMonitor:
    """Polls a pull request after a manual operation until its status settles."""

    repo: Repo
    pr_number: int
    operation: MonitoredOperation
    checks: int = 0


@dataclass(frozen=True)
class ReposState:
    repos: tuple[Repo, ...] = ()
    selected_index: int = 0
    pr_filter: PrFilter = "all"
    data: Mapping[Repo, RepoData] = field(default_factory=dict)
    viewport_height: int = DEFAULT_VIEWPORT_HEIGHT
    monitors: tuple[OperationMonitor, ...] = ()
    tabs_view: RepoTabsViewModel | None = None
    table_view: PrTableViewModel | None = None

    @property
    def current_repo(self) -> Repo | None:
        if 0 <= self.selected_index < len(self.repos):
            return self.repos[self.selected_index]
        return None

    @property
    def current_data(self) -> RepoData | None:
        repo = self.current_repo
        if repo is None:
            return None
        return self.data.get(repo, RepoData())

    @property
    def visible_prs(self) -> tuple[PullRequest, ...]:
        data = self.current_data
        if data is None:
            return ()
        return tuple(pr for pr in data.prs if pr_filter_matches(self.pr_filter, pr.title))

    @property
    def current_pr(self) -> PullRequest | None:
        data = self.current_data
        prs = self.visible_prs
        if data is None or not prs:
            return None
        return prs[min(data.cursor, len(prs) - 1)]

    @property
    def target_prs(self) -> tuple[PullRequest, ...]:
        """Selected PRs in the current repository, or the PR under the cursor."""
        data = self.current_data
        if data is None:
            return ()
        if data.selected:
            return tuple(pr for pr in data.prs if pr.number in data.selected)
        current = self.current_pr
        return (current,) if current is not None else ()

    def monitor(self, repo: Repo, pr_number: int) -> OperationMonitor | None:
        for monitor in self.monitors:
            if monitor.repo == repo and monitor.pr_number == pr_number:
                return monitor
        return None


# Log panel


@dataclass(frozen=True)
class LogPanel:
    repo: Repo
    pr_context: PrContext
    tree: LogTree
    job_metadata: Mapping[str, JobMetadata]
    expanded: frozenset[NodePath]
    cursor: NodePath = ()
    scroll_offset: int = 0
    horizontal_scroll: int = 0
    notice: str | None = None


@dataclass(frozen=True)
class LogPanelState:
    panel: LogPanel | None = None
    loading_pr: int | None = None
    error: str | None = None
    show_timestamps: bool = False
    viewport_height: int = DEFAULT_VIEWPORT_HEIGHT
    view: LogPanelViewModel | None = None


# Merge bot


@dataclass(frozen=True)
class MergeBotSettings:
    concurrency_limit: int
    retry_budget: int
    ci_poll_interval_seconds: float = 15.0
    backoff_base_seconds: float = 5.0
    backoff_max_seconds: float = 300.0
    rerun_failed_jobs: bool = True
    merge_method: MergeMethod = "squash"


@dataclass(frozen=True)
class QueueEntry:
    key: PrKey
    repo: Repo
    author: str = ""
    state: EntryState = "queued"
    attempts: int = 0
    last_error: str | None = None
    outstanding: Outstanding | None = None
    resume: ResumeState | None = None
    permanent: bool = False
    retry_remaining_seconds: float | None = None

    @property
    def is_active(self) -> bool:
        if self.state == "merged":
            return False
        return not (self.state == "failed" and self.permanent)


@dataclass(frozen=True)
class MergeBotState:
    settings: MergeBotSettings
    running: bool = False
    entries: tuple[QueueEntry, ...] = ()
    merged: tuple[PrKey, ...] = ()
    view: MergeBotViewModel | None = None

    def entry(self, key: PrKey) -> QueueEntry | None:
        for entry in self.entries:
            if entry.key == key:
                return entry
        return None


# UI


@dataclass(frozen=True)
class UiState:
    status: StatusMessage | None = None
    should_quit: bool = False
    session_loaded: bool = False


@dataclass(frozen=True)
class AppState:
    settings: AppSettings
    repos: ReposState
    log_panel: LogPanelState
    merge_bot: MergeBotState
    ui: UiState
    theme: Theme = DARK_THEME


def initial_state(
    *,
    bot_settings: MergeBotSettings,
    settings: AppSettings | None = None,
    theme: Theme = DARK_THEME,
) -> AppState:
    return AppState(
        settings=settings if settings is not None else AppSettings(),
        repos=ReposState(),
        log_panel=LogPanelState(),
        merge_bot=MergeBotState(settings=bot_settings),
        ui=UiState(),
        theme=theme,
    )
