from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from prdeck.app_state import (
    EntryState,
    LogPanel,
    LogPanelState,
    MergeBotState,
    QueueEntry,
    ReposState,
)
from prdeck.log_parser import LogLine
from prdeck.log_tree import (
    JobNode,
    LogTree,
    NodePath,
    children,
    metadata_key,
    node_at,
)
from prdeck.models import JobStatus, MergeableStatus, PullRequest
from prdeck.navigator import flatten_visible
from prdeck.theme import Theme


MERGEABLE_ICONS: Final[dict[MergeableStatus, str]] = {
    "unknown": "?",
    "build_in_progress": "⋯",
    "ready": "✓",
    "needs_rebase": "↻",
    "build_failed": "✗",
    "conflicted": "✗",
    "blocked": "⊗",
    "rebasing": "⟳",
    "merging": "⇒",
}
MERGEABLE_LABELS: Final[dict[MergeableStatus, str]] = {
    "unknown": "Unknown",
    "build_in_progress": "Building",
    "ready": "Ready",
    "needs_rebase": "Needs Rebase",
    "build_failed": "Build Failed",
    "conflicted": "Conflicts",
    "blocked": "Blocked",
    "rebasing": "Rebasing...",
    "merging": "Merging...",
}
JOB_STATUS_ICONS: Final[dict[JobStatus, str]] = {
    "success": "✓",
    "failure": "✗",
    "cancelled": "⊘",
    "skipped": "⊝",
    "in_progress": "⋯",
    "unknown": "?",
}
ENTRY_STATE_LABELS: Final[dict[EntryState, str]] = {
    "queued": "Queued",
    "needs_rebase": "Needs rebase",
    "rebasing": "Rebasing",
    "waiting_for_ci": "Waiting for CI",
    "ready_to_merge": "Ready to merge",
    "merging": "Merging",
    "merged": "Merged",
    "failed": "Failed",
}


@dataclass(frozen=True)
class LogRow:
    path: NodePath
    text: str
    color: str
    is_cursor: bool


@dataclass(frozen=True)
class LogPanelViewModel:
    header: str
    summary: str
    rows: tuple[LogRow, ...]
    total_rows: int
    scroll_offset: int
    viewport_height: int
    notice: str | None
    cursor_background: str
    background: str


@dataclass(frozen=True)
class PrRow:
    number: int
    number_text: str
    title: str
    author: str
    comments: str
    status_text: str
    status_color: str
    is_selected: bool
    is_cursor: bool


@dataclass(frozen=True)
class PrTableViewModel:
    title: str
    rows: tuple[PrRow, ...]
    total_rows: int
    scroll_offset: int
    empty_message: str | None
    selection_summary: str | None


@dataclass(frozen=True)
class RepoTab:
    label: str
    is_selected: bool
    color: str


@dataclass(frozen=True)
class RepoTabsViewModel:
    tabs: tuple[RepoTab, ...]


@dataclass(frozen=True)
class MergeBotRow:
    pr_text: str
    state_text: str
    attempts_text: str
    detail: str
    color: str


@dataclass(frozen=True)
class MergeBotViewModel:
    summary: str
    rows: tuple[MergeBotRow, ...]
    running: bool


def format_duration(seconds: float) -> str:
    total = max(int(seconds), 0)
    minutes, secs = divmod(total, 60)
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def format_error_count(count: int) -> str:
    return "1 error" if count == 1 else f"{count} errors"


# Log panel


def recompute_log_panel(state: LogPanelState, theme: Theme) -> LogPanelViewModel | None:
    panel = state.panel
    if panel is None:
        return None

    height = max(state.viewport_height, 1)
    window_end = panel.scroll_offset + height
    rows: list[LogRow] = []
    total = 0
    for index, path in enumerate(flatten_visible(panel.tree, panel.expanded)):
        total = index + 1
        if panel.scroll_offset <= index < window_end:
            rows.append(_log_row(panel, path, theme, show_timestamps=state.show_timestamps))

    context = panel.pr_context
    return LogPanelViewModel(
        header=f"#{context.number} {context.title} by {context.author}",
        summary=_tree_summary(panel.tree),
        rows=tuple(rows),
        total_rows=total,
        scroll_offset=panel.scroll_offset,
        viewport_height=height,
        notice=panel.notice,
        cursor_background=theme.selected_bg,
        background=theme.bg_panel,
    )


def _tree_summary(tree: LogTree) -> str:
    if not tree.workflows:
        return "No build logs available"
    if not tree.has_failures:
        return "All checks passed"
    failing_jobs = sum(
        1 for workflow in tree.workflows for job in workflow.jobs if job.has_failures
    )
    noun = "job" if failing_jobs == 1 else "jobs"
    return f"{format_error_count(tree.error_count)} in {failing_jobs} {noun}"


def _log_row(panel: LogPanel, path: NodePath, theme: Theme, *, show_timestamps: bool) -> LogRow:
    node = node_at(panel.tree, path)
    indent = "  " * (len(path) - 1)
    is_cursor = path == panel.cursor
    if isinstance(node, LogLine):
        return LogRow(
            path=path,
            text=f"{indent}{_line_text(node, panel.horizontal_scroll, show_timestamps)}",
            color=_line_color(node, theme),
            is_cursor=is_cursor,
        )

    if node is None or isinstance(node, LogTree):
        return LogRow(path=path, text=indent, color=theme.text_muted, is_cursor=is_cursor)

    if children(node):
        marker = "▼" if path in panel.expanded else "▶"
    else:
        marker = " "
    color = theme.status_error if node.has_failures else theme.status_success
    icon = "✗" if node.has_failures else "✓"
    suffix = f" ({format_error_count(node.error_count)})" if node.error_count else ""

    if isinstance(node, JobNode):
        workflow = panel.tree.workflows[path[0]]
        metadata = panel.job_metadata.get(metadata_key(workflow.name, node.name))
        if metadata is not None:
            if not node.has_failures:
                icon = JOB_STATUS_ICONS[metadata.status]
                color = _job_status_color(metadata.status, theme)
            if metadata.duration_seconds is not None:
                suffix = f"{suffix}, {format_duration(metadata.duration_seconds)}"

    return LogRow(
        path=path,
        text=f"{indent}{marker} {icon} {node.name}{suffix}",
        color=color,
        is_cursor=is_cursor,
    )


def _line_text(line: LogLine, horizontal_scroll: int, show_timestamps: bool) -> str:
    text = line.text
    if line.location:
        text = f"{line.location}: {text}"
    if horizontal_scroll > 0:
        text = text[horizontal_scroll:]
    if show_timestamps and line.timestamp:
        text = f"{_short_timestamp(line.timestamp)} {text}"
    return text


def _short_timestamp(timestamp: str) -> str:
    # 2024-01-15T10:30:00.1234567Z -> 10:30:00
    _, _, clock = timestamp.partition("T")
    return clock[:8] if clock else timestamp


def _line_color(line: LogLine, theme: Theme) -> str:
    if line.is_error:
        return theme.status_error
    if line.command == "warning":
        return theme.status_warning
    if line.command == "notice":
        return theme.status_info
    if line.is_command:
        return theme.accent_primary
    return theme.text_primary


def _job_status_color(status: JobStatus, theme: Theme) -> str:
    if status == "failure":
        return theme.status_error
    if status == "in_progress":
        return theme.status_info
    if status in {"cancelled", "skipped", "unknown"}:
        return theme.text_muted
    return theme.status_success


# Pull request table


def recompute_pr_table(repos: ReposState, theme: Theme) -> PrTableViewModel | None:
    repo = repos.current_repo
    data = repos.current_data
    if repo is None or data is None:
        return None

    prs = repos.visible_prs
    height = max(repos.viewport_height, 1)
    window = prs[data.scroll_offset : data.scroll_offset + height]
    cursor = min(data.cursor, len(prs) - 1) if prs else -1
    rows = tuple(
        _pr_row(pr, theme, is_selected=pr.number in data.selected, is_cursor=offset == cursor)
        for offset, pr in enumerate(window, start=data.scroll_offset)
    )

    title = f"{repo.full_name} @ {repo.branch}"
    if repos.pr_filter != "all":
        title = f"{title} [filter: {repos.pr_filter}]"

    empty_message: str | None = None
    if not prs:
        if data.load_state == "loading":
            empty_message = "Loading pull requests..."
        elif data.load_state == "error":
            empty_message = f"Failed to load: {data.error or 'unknown error'}"
        elif data.load_state == "idle":
            empty_message = "Press r to load pull requests"
        else:
            empty_message = "No open pull requests"

    return PrTableViewModel(
        title=title,
        rows=rows,
        total_rows=len(prs),
        scroll_offset=data.scroll_offset,
        empty_message=empty_message,
        selection_summary=f"{len(data.selected)} selected" if data.selected else None,
    )


def _pr_row(pr: PullRequest, theme: Theme, *, is_selected: bool, is_cursor: bool) -> PrRow:
    return PrRow(
        number=pr.number,
        number_text=f"#{pr.number}",
        title=pr.title,
        author=pr.author,
        comments=str(pr.comment_count),
        status_text=f"{MERGEABLE_ICONS[pr.mergeable]} {MERGEABLE_LABELS[pr.mergeable]}",
        status_color=_mergeable_color(pr.mergeable, theme),
        is_selected=is_selected,
        is_cursor=is_cursor,
    )


def _mergeable_color(status: MergeableStatus, theme: Theme) -> str:
    if status == "ready":
        return theme.status_success
    if status in {"build_failed", "conflicted", "blocked"}:
        return theme.status_error
    if status in {"needs_rebase", "build_in_progress"}:
        return theme.status_warning
    if status in {"rebasing", "merging"}:
        return theme.status_info
    return theme.text_muted


def recompute_repo_tabs(repos: ReposState, theme: Theme) -> RepoTabsViewModel | None:
    if not repos.repos:
        return None
    return RepoTabsViewModel(
        tabs=tuple(
            RepoTab(
                label=f"{index + 1}:{repo.full_name}",
                is_selected=index == repos.selected_index,
                color=theme.accent_primary if index == repos.selected_index else theme.text_muted,
            )
            for index, repo in enumerate(repos.repos)
        )
    )


# Merge bot


def recompute_merge_bot(bot: MergeBotState, theme: Theme) -> MergeBotViewModel | None:
    if not bot.entries and not bot.merged and not bot.running:
        return None
    rows = tuple(_merge_bot_row(entry, bot.settings.retry_budget, theme) for entry in bot.entries)
    failed = sum(1 for entry in bot.entries if entry.state == "failed" and entry.permanent)
    active = sum(1 for entry in bot.entries if entry.is_active)
    prefix = "Merge bot running" if bot.running else "Merge bot stopped"
    return MergeBotViewModel(
        summary=f"{prefix}: {active} active, {len(bot.merged)} merged, {failed} failed",
        rows=rows,
        running=bot.running,
    )


def _merge_bot_row(entry: QueueEntry, retry_budget: int, theme: Theme) -> MergeBotRow:
    detail = ""
    if entry.state == "failed":
        reason = entry.last_error or "unknown error"
        if entry.permanent:
            detail = f"{reason} (gave up)"
        elif entry.retry_remaining_seconds is not None:
            detail = (
                f"{reason}; retry {entry.attempts}/{retry_budget} "
                f"in {format_duration(entry.retry_remaining_seconds)}"
            )
        else:
            detail = reason
    elif entry.last_error:
        detail = f"last error: {entry.last_error}"

    return MergeBotRow(
        pr_text=f"{entry.key.repo_full_name}#{entry.key.number}",
        state_text=ENTRY_STATE_LABELS[entry.state],
        attempts_text=f"{entry.attempts}/{retry_budget}",
        detail=detail,
        color=_entry_color(entry, theme),
    )


def _entry_color(entry: QueueEntry, theme: Theme) -> str:
    if entry.state == "failed":
        return theme.status_error if entry.permanent else theme.status_warning
    if entry.state in {"rebasing", "merging"}:
        return theme.status_info
    if entry.state in {"ready_to_merge", "merged"}:
        return theme.status_success
    return theme.text_primary
