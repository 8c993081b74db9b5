from __future__ import annotations

from dataclasses import replace

from prdeck import merge_bot, operation_monitor
from prdeck.actions import (
    Action,
    AddRepository,
    AddToMergeQueue,
    ApproveSelectedPrs,
    Bootstrap,
    BuildLogsFailed,
    BuildLogsLoaded,
    ClearPrSelection,
    CloseLogPanel,
    ClosePrs,
    CycleFilter,
    DismissMergeQueueEntry,
    ExternalOpenFinished,
    JumpToError,
    JumpToStep,
    LogCursorDown,
    LogCursorUp,
    MergeBotMergeFinished,
    MergeBotPollDue,
    MergeBotRebaseFinished,
    MergeBotRerunFinished,
    MergeBotRetryCountdown,
    MergeBotRetryDue,
    MergeBotStatusChecked,
    MergeBotStatusCheckFailed,
    MergeBotTick,
    MergeSelectedPrs,
    NavigateToNextPr,
    NavigateToPreviousPr,
    OpenBuildLogs,
    OpenCurrentPrInBrowser,
    OpenCurrentPrInIde,
    OperationMonitorDue,
    OperationStatusChecked,
    OperationStatusCheckFailed,
    PageLogDown,
    PrOperationFinished,
    Quit,
    RebaseSelectedPrs,
    RefreshCurrentRepo,
    RemoveCurrentRepository,
    RemoveFromMergeQueue,
    RepoDataLoaded,
    RepoLoadFailed,
    RerunFailedJobs,
    ScrollLogHorizontally,
    SelectNextRepo,
    SelectPreviousRepo,
    SelectRepoByIndex,
    SessionLoaded,
    SessionLoadFailed,
    SessionSaveFailed,
    SetTheme,
    StartMergeBot,
    StopMergeBot,
    TogglePrSelection,
    ToggleLogNode,
    ToggleTimestamps,
    UpdateLogViewport,
    UpdatePrViewport,
)
from prdeck.app_state import (
    AppState,
    LogPanel,
    LogPanelState,
    MergeBotState,
    MonitoredOperation,
    RepoData,
    ReposState,
    StatusLevel,
    StatusMessage,
    UiState,
)
from prdeck.effects import (
    ApprovePullRequest,
    ClosePullRequest,
    Effect,
    EnableAutoMerge,
    LoadBuildLogs,
    LoadRepository,
    LoadSession,
    MergePullRequest,
    OpenInBrowser,
    OpenInIde,
    RebasePullRequest,
    RerunFailedJobsEffect,
    SaveSession,
)
from prdeck.log_tree import build_log_tree, default_expansion, is_valid_path
from prdeck.models import (
    MergeableStatus,
    PrContext,
    PrOperation,
    PullRequest,
    Repo,
    SessionSnapshot,
    next_pr_filter,
)
from prdeck.navigator import (
    find_next_error,
    find_step,
    flatten_visible,
    move_cursor,
    reveal,
    scroll_to_cursor,
    toggle,
    visible_index,
)
from prdeck.theme import theme_by_name
from prdeck.view_models import (
    recompute_log_panel,
    recompute_merge_bot,
    recompute_pr_table,
    recompute_repo_tabs,
)


Reduction = tuple[AppState, tuple[Effect, ...]]
NO_FURTHER_ERRORS = "No further errors"
NO_FURTHER_STEPS = "No further steps"
_LOG_NAVIGATION = (
    LogCursorDown,
    LogCursorUp,
    PageLogDown,
    ToggleLogNode,
    JumpToError,
    JumpToStep,
    ScrollLogHorizontally,
)
_PR_OPERATIONS = (
    MergeSelectedPrs,
    RebaseSelectedPrs,
    RerunFailedJobs,
    ApproveSelectedPrs,
    ClosePrs,
)
_RELOADING_OPERATIONS: frozenset[PrOperation] = frozenset({"merge", "rebase", "close"})
_MONITORED_OPERATIONS: dict[PrOperation, MonitoredOperation] = {
    "merge": "merge",
    "rebase": "rebase",
    "auto_merge": "auto_merge",
}
_OPERATION_LABELS: dict[PrOperation, str] = {
    "merge": "Merge",
    "rebase": "Rebase",
    "rerun": "Rerun",
    "approve": "Approve",
    "close": "Close",
    "auto_merge": "Auto-merge",
}


class InvariantViolation(RuntimeError):
    """A slice holds data that the reducers never produce (e.g. a dangling cursor)."""


def reduce(state: AppState, action: Action) -> Reduction:
    if isinstance(action, SetTheme):
        return _reduce_theme(state, action)

    repos, repo_effects = _reduce_repos(state, action)
    log_panel, log_effects = _reduce_log_panel(state, action)
    bot, bot_effects = _reduce_merge_bot(state, action)
    ui, ui_effects = _reduce_ui(state, action, repos=repos, log_panel=log_panel, bot=bot)

    if (
        repos is state.repos
        and log_panel is state.log_panel
        and bot is state.merge_bot
        and ui is state.ui
    ):
        return state, ()

    theme = state.theme
    if repos is not state.repos:
        repos = replace(
            repos,
            tabs_view=recompute_repo_tabs(repos, theme),
            table_view=recompute_pr_table(repos, theme),
        )
    if log_panel is not state.log_panel:
        log_panel = replace(log_panel, view=recompute_log_panel(log_panel, theme))
    if bot is not state.merge_bot:
        bot = replace(bot, view=recompute_merge_bot(bot, theme))

    next_state = replace(state, repos=repos, log_panel=log_panel, merge_bot=bot, ui=ui)
    return next_state, repo_effects + log_effects + bot_effects + ui_effects


def snapshot_from_state(state: AppState) -> SessionSnapshot:
    repos = state.repos
    return SessionSnapshot(
        repos=repos.repos,
        selected_repo=repos.selected_index,
        pr_filter=repos.pr_filter,
        pr_cursors=tuple(
            (repo.full_name, repos.data[repo].cursor) for repo in repos.repos if repo in repos.data
        ),
        selected_prs=tuple(
            (repo.full_name, tuple(sorted(repos.data[repo].selected)))
            for repo in repos.repos
            if repo in repos.data and repos.data[repo].selected
        ),
        show_timestamps=state.log_panel.show_timestamps,
    )


# Theme


def _reduce_theme(state: AppState, action: SetTheme) -> Reduction:
    theme = theme_by_name(action.name)
    if theme is None:
        status = StatusMessage(f"Unknown theme: {action.name}", "warning")
        return replace(state, ui=replace(state.ui, status=status)), ()
    if theme == state.theme:
        return state, ()
    repos = replace(
        state.repos,
        tabs_view=recompute_repo_tabs(state.repos, theme),
        table_view=recompute_pr_table(state.repos, theme),
    )
    log_panel = replace(state.log_panel, view=recompute_log_panel(state.log_panel, theme))
    bot = replace(state.merge_bot, view=recompute_merge_bot(state.merge_bot, theme))
    return replace(state, theme=theme, repos=repos, log_panel=log_panel, merge_bot=bot), ()


# Repositories


def _reduce_repos(state: AppState, action: Action) -> tuple[ReposState, tuple[Effect, ...]]:
    repos = state.repos

    if isinstance(action, SessionLoaded | SessionLoadFailed):
        snapshot = action.snapshot if isinstance(action, SessionLoaded) else SessionSnapshot()
        return _restore_session(state, snapshot)

    if isinstance(action, AddRepository):
        if action.repo in repos.repos:
            index = repos.repos.index(action.repo)
            if index == repos.selected_index:
                return repos, ()
            return replace(repos, selected_index=index), ()
        added = replace(
            repos,
            repos=repos.repos + (action.repo,),
            selected_index=len(repos.repos),
            data={**repos.data, action.repo: RepoData(load_state="loading")},
        )
        return added, (LoadRepository(repo=action.repo),)

    if isinstance(action, RemoveCurrentRepository):
        current = repos.current_repo
        if current is None:
            return repos, ()
        remaining = tuple(repo for repo in repos.repos if repo != current)
        data = {repo: value for repo, value in repos.data.items() if repo != current}
        index = min(repos.selected_index, max(len(remaining) - 1, 0))
        return (
            operation_monitor.forget_repo(
                replace(repos, repos=remaining, data=data, selected_index=index), current
            ),
            (),
        )

    if isinstance(action, SelectNextRepo | SelectPreviousRepo | SelectRepoByIndex):
        if not repos.repos:
            return repos, ()
        if isinstance(action, SelectRepoByIndex):
            if not 0 <= action.index < len(repos.repos):
                return repos, ()
            index = action.index
        else:
            step = 1 if isinstance(action, SelectNextRepo) else -1
            index = (repos.selected_index + step) % len(repos.repos)
        if index == repos.selected_index:
            return repos, ()
        selected = replace(repos, selected_index=index)
        repo = repos.repos[index]
        if repos.data.get(repo, RepoData()).load_state == "idle":
            return _mark_loading(selected, repo), (LoadRepository(repo=repo),)
        return selected, ()

    if isinstance(action, RefreshCurrentRepo):
        current = repos.current_repo
        if current is None:
            return repos, ()
        return _mark_loading(repos, current), (LoadRepository(repo=current),)

    if isinstance(action, RepoDataLoaded):
        if action.repo not in repos.repos:
            return repos, ()
        previous = repos.data.get(action.repo, RepoData())
        numbers = {pr.number for pr in action.prs}
        loaded = replace(
            previous,
            prs=action.prs,
            load_state="loaded",
            error=None,
            cursor=min(previous.cursor, max(len(action.prs) - 1, 0)),
            selected=frozenset(number for number in previous.selected if number in numbers),
        )
        return _with_data(repos, action.repo, _clamp_scroll(loaded, repos.viewport_height)), ()

    if isinstance(action, RepoLoadFailed):
        if action.repo not in repos.repos:
            return repos, ()
        previous = repos.data.get(action.repo, RepoData())
        failed = replace(previous, load_state="error", error=action.failure.message)
        return _with_data(repos, action.repo, failed), ()

    if isinstance(action, CycleFilter):
        filtered = replace(repos, pr_filter=next_pr_filter(repos.pr_filter))
        current = filtered.current_repo
        if current is None:
            return filtered, ()
        data = filtered.data.get(current, RepoData())
        return _with_data(filtered, current, replace(data, cursor=0, scroll_offset=0)), ()

    if isinstance(action, NavigateToNextPr | NavigateToPreviousPr):
        current = repos.current_repo
        count = len(repos.visible_prs)
        if current is None or count == 0:
            return repos, ()
        data = repos.data.get(current, RepoData())
        delta = 1 if isinstance(action, NavigateToNextPr) else -1
        cursor = min(max(data.cursor + delta, 0), count - 1)
        if cursor == data.cursor:
            return repos, ()
        moved = replace(data, cursor=cursor)
        return _with_data(repos, current, _clamp_scroll(moved, repos.viewport_height)), ()

    if isinstance(action, TogglePrSelection):
        current = repos.current_repo
        pr = repos.current_pr
        if current is None or pr is None:
            return repos, ()
        data = repos.data.get(current, RepoData())
        selected = data.selected ^ {pr.number}
        return _with_data(repos, current, replace(data, selected=selected)), ()

    if isinstance(action, ClearPrSelection):
        current = repos.current_repo
        data = repos.current_data
        if current is None or data is None or not data.selected:
            return repos, ()
        return _with_data(repos, current, replace(data, selected=frozenset())), ()

    if isinstance(action, UpdatePrViewport):
        height = max(action.height, 1)
        if height == repos.viewport_height:
            return repos, ()
        resized = replace(repos, viewport_height=height)
        current = resized.current_repo
        if current is None:
            return resized, ()
        data = resized.data.get(current, RepoData())
        return _with_data(resized, current, _clamp_scroll(data, height)), ()

    if isinstance(action, MergeSelectedPrs | RebaseSelectedPrs):
        current = repos.current_repo
        targets = repos.target_prs
        if current is None or not targets:
            return repos, ()
        effects: list[Effect] = []
        numbers: set[int] = set()
        if isinstance(action, MergeSelectedPrs):
            status: MergeableStatus = "merging"
            method = state.merge_bot.settings.merge_method
            for pr in targets:
                # GitHub merges these itself once their build passes.
                if pr.mergeable == "build_in_progress":
                    effects.append(
                        EnableAutoMerge(repo=current, pr_number=pr.number, method=method)
                    )
                    continue
                effects.append(MergePullRequest(repo=current, pr_number=pr.number, method=method))
                numbers.add(pr.number)
        else:
            status = "rebasing"
            for pr in targets:
                effects.append(
                    RebasePullRequest(repo=current, pr_number=pr.number, author=pr.author)
                )
                numbers.add(pr.number)
        data = repos.data.get(current, RepoData())
        updated = replace(
            data,
            prs=_with_mergeable(data.prs, numbers, status),
            selected=frozenset(),
        )
        return _with_data(repos, current, updated), tuple(effects)

    if isinstance(action, RerunFailedJobs | ApproveSelectedPrs):
        current = repos.current_repo
        targets = repos.target_prs
        if current is None or not targets:
            return repos, ()
        if isinstance(action, RerunFailedJobs):
            return repos, tuple(
                RerunFailedJobsEffect(repo=current, pr_number=pr.number) for pr in targets
            )
        return repos, tuple(
            ApprovePullRequest(
                repo=current, pr_number=pr.number, message=state.settings.approval_message
            )
            for pr in targets
        )

    if isinstance(action, OpenCurrentPrInBrowser | OpenCurrentPrInIde):
        current = repos.current_repo
        pr = repos.current_pr
        if current is None or pr is None:
            return repos, ()
        if isinstance(action, OpenCurrentPrInBrowser):
            url = pr.html_url or f"https://github.com/{current.full_name}/pull/{pr.number}"
            return repos, (OpenInBrowser(url=url),)
        return repos, (
            OpenInIde(
                repo=current,
                pr_number=pr.number,
                ide_command=state.settings.ide_command,
                temp_dir=state.settings.temp_dir,
            ),
        )

    if isinstance(action, ClosePrs):
        current = repos.current_repo
        targets = repos.target_prs
        if current is None or not targets:
            return repos, ()
        comment = action.comment.strip() or state.settings.close_comment
        data = repos.data.get(current, RepoData())
        return _with_data(repos, current, replace(data, selected=frozenset())), tuple(
            ClosePullRequest(repo=current, pr_number=pr.number, comment=comment) for pr in targets
        )

    if isinstance(action, PrOperationFinished):
        if action.repo not in repos.repos:
            return repos, ()
        finished = repos
        reload: tuple[Effect, ...] = ()
        if action.operation in _RELOADING_OPERATIONS:
            finished = _mark_loading(repos, action.repo)
            reload = (LoadRepository(repo=action.repo),)
        monitored = _MONITORED_OPERATIONS.get(action.operation)
        if action.failure is not None or monitored is None:
            return finished, reload
        finished, monitoring = operation_monitor.start(
            finished, state.settings, action.repo, action.pr_number, monitored
        )
        return finished, reload + monitoring

    if isinstance(action, OperationMonitorDue):
        return operation_monitor.on_due(repos, action.repo, action.pr_number)
    if isinstance(action, OperationStatusChecked):
        return operation_monitor.on_checked(
            repos, state.settings, action.repo, action.pr_number, action.status
        )
    if isinstance(action, OperationStatusCheckFailed):
        return operation_monitor.on_check_failed(
            repos, state.settings, action.repo, action.pr_number, action.failure
        )

    return repos, ()


def _restore_session(
    state: AppState, snapshot: SessionSnapshot
) -> tuple[ReposState, tuple[Effect, ...]]:
    repos = state.repos
    ordered = list(snapshot.repos)
    for seed in state.settings.seed_repos:
        if seed not in ordered:
            ordered.append(seed)
    cursors = dict(snapshot.pr_cursors)
    selections = dict(snapshot.selected_prs)
    data = {
        repo: RepoData(
            load_state="loading",
            cursor=max(cursors.get(repo.full_name, 0), 0),
            selected=frozenset(selections.get(repo.full_name, ())),
        )
        for repo in ordered
    }
    restored = replace(
        repos,
        repos=tuple(ordered),
        selected_index=min(max(snapshot.selected_repo, 0), max(len(ordered) - 1, 0)),
        pr_filter=snapshot.pr_filter,
        data=data,
    )
    return restored, tuple(LoadRepository(repo=repo) for repo in ordered)


def _with_data(repos: ReposState, repo: Repo, data: RepoData) -> ReposState:
    return replace(repos, data={**repos.data, repo: data})


def _mark_loading(repos: ReposState, repo: Repo) -> ReposState:
    data = repos.data.get(repo, RepoData())
    return _with_data(repos, repo, replace(data, load_state="loading", error=None))


def _clamp_scroll(data: RepoData, viewport_height: int) -> RepoData:
    scroll = scroll_to_cursor(data.cursor, data.scroll_offset, viewport_height)
    if scroll == data.scroll_offset:
        return data
    return replace(data, scroll_offset=scroll)


def _with_mergeable(
    prs: tuple[PullRequest, ...], numbers: set[int], status: MergeableStatus
) -> tuple[PullRequest, ...]:
    return tuple(replace(pr, mergeable=status) if pr.number in numbers else pr for pr in prs)


# Log panel


def _reduce_log_panel(
    state: AppState, action: Action
) -> tuple[LogPanelState, tuple[Effect, ...]]:
    slice_ = state.log_panel

    if isinstance(action, SessionLoaded):
        if action.snapshot.show_timestamps == slice_.show_timestamps:
            return slice_, ()
        return replace(slice_, show_timestamps=action.snapshot.show_timestamps), ()

    if isinstance(action, OpenBuildLogs):
        repo = state.repos.current_repo
        pr = state.repos.current_pr
        if repo is None or pr is None:
            return slice_, ()
        context = PrContext(number=pr.number, title=pr.title, author=pr.author)
        loading = replace(slice_, loading_pr=pr.number, error=None)
        return loading, (LoadBuildLogs(repo=repo, pr_context=context),)

    if isinstance(action, BuildLogsLoaded):
        if slice_.loading_pr != action.pr_context.number:
            return slice_, ()
        tree, metadata = build_log_tree(action.jobs)
        panel = LogPanel(
            repo=action.repo,
            pr_context=action.pr_context,
            tree=tree,
            job_metadata=metadata,
            expanded=default_expansion(tree),
            cursor=(0,) if tree.workflows else (),
        )
        return replace(slice_, panel=panel, loading_pr=None, error=None), ()

    if isinstance(action, BuildLogsFailed):
        if slice_.loading_pr != action.pr_number:
            return slice_, ()
        return replace(slice_, loading_pr=None, error=action.failure.message), ()

    if isinstance(action, CloseLogPanel):
        if slice_.panel is None and slice_.loading_pr is None and slice_.error is None:
            return slice_, ()
        return replace(slice_, panel=None, loading_pr=None, error=None), ()

    if isinstance(action, ToggleTimestamps):
        return replace(slice_, show_timestamps=not slice_.show_timestamps), ()

    if isinstance(action, UpdateLogViewport):
        height = max(action.height, 1)
        if height == slice_.viewport_height:
            return slice_, ()
        resized = replace(slice_, viewport_height=height)
        if resized.panel is None:
            return resized, ()
        return replace(resized, panel=_follow_cursor(resized.panel, height)), ()

    if not isinstance(action, _LOG_NAVIGATION):
        return slice_, ()
    panel = slice_.panel
    if panel is None:
        return slice_, ()
    if not is_valid_path(panel.tree, panel.cursor):
        raise InvariantViolation(f"log cursor {panel.cursor!r} does not address a node")
    height = slice_.viewport_height

    if isinstance(action, LogCursorDown | LogCursorUp | PageLogDown):
        if isinstance(action, PageLogDown):
            delta = height
        else:
            delta = 1 if isinstance(action, LogCursorDown) else -1
        cursor = move_cursor(panel.tree, panel.expanded, panel.cursor, delta)
        if cursor == panel.cursor and panel.notice is None:
            return slice_, ()
        moved = replace(panel, cursor=cursor, notice=None)
        return replace(slice_, panel=_follow_cursor(moved, height)), ()

    if isinstance(action, ToggleLogNode):
        expanded = toggle(panel.tree, panel.expanded, panel.cursor)
        if expanded == panel.expanded:
            return slice_, ()
        toggled = _clamp_log_scroll(replace(panel, expanded=expanded, notice=None), height)
        return replace(slice_, panel=_follow_cursor(toggled, height)), ()

    if isinstance(action, JumpToError | JumpToStep):
        if isinstance(action, JumpToError):
            target = find_next_error(panel.tree, panel.cursor, action.direction)
            notice = NO_FURTHER_ERRORS
        else:
            target = find_step(panel.tree, panel.cursor, action.direction)
            notice = NO_FURTHER_STEPS
        if target is None:
            if panel.notice == notice:
                return slice_, ()
            return replace(slice_, panel=replace(panel, notice=notice)), ()
        jumped = replace(
            panel,
            cursor=target,
            expanded=reveal(panel.expanded, target),
            notice=None,
        )
        return replace(slice_, panel=_follow_cursor(jumped, height)), ()

    if isinstance(action, ScrollLogHorizontally):
        offset = max(panel.horizontal_scroll + action.delta, 0)
        if offset == panel.horizontal_scroll:
            return slice_, ()
        return replace(slice_, panel=replace(panel, horizontal_scroll=offset)), ()

    return slice_, ()


def _follow_cursor(panel: LogPanel, height: int) -> LogPanel:
    index = visible_index(panel.tree, panel.expanded, panel.cursor)
    if index is None:
        return panel
    scroll = scroll_to_cursor(index, panel.scroll_offset, height)
    if scroll == panel.scroll_offset:
        return panel
    return replace(panel, scroll_offset=scroll)


def _clamp_log_scroll(panel: LogPanel, height: int) -> LogPanel:
    total = sum(1 for _ in flatten_visible(panel.tree, panel.expanded))
    scroll = min(panel.scroll_offset, max(total - height, 0))
    if scroll == panel.scroll_offset:
        return panel
    return replace(panel, scroll_offset=scroll)


# Merge bot


def _reduce_merge_bot(
    state: AppState, action: Action
) -> tuple[MergeBotState, tuple[Effect, ...]]:
    bot = state.merge_bot

    if isinstance(action, StartMergeBot):
        repo = state.repos.current_repo
        candidates = (
            [(repo, pr.number, pr.author) for pr in state.repos.target_prs]
            if repo is not None
            else []
        )
        if not candidates and not bot.entries:
            return bot, ()
        return merge_bot.start(bot, candidates)
    if isinstance(action, StopMergeBot):
        return merge_bot.stop(bot)
    if isinstance(action, AddToMergeQueue):
        return merge_bot.enqueue(bot, action.repo, action.pr_number, action.author)
    if isinstance(action, RemoveFromMergeQueue):
        return merge_bot.remove(bot, action.key)
    if isinstance(action, DismissMergeQueueEntry):
        return merge_bot.dismiss(bot, action.key)
    if isinstance(action, MergeBotTick):
        return merge_bot.drive(bot)
    if isinstance(action, MergeBotStatusChecked):
        return merge_bot.on_status_checked(bot, action.key, action.status)
    if isinstance(action, MergeBotStatusCheckFailed):
        return merge_bot.on_status_check_failed(bot, action.key, action.failure)
    if isinstance(action, MergeBotRebaseFinished):
        return merge_bot.on_rebase_finished(bot, action.key, action.failure)
    if isinstance(action, MergeBotMergeFinished):
        return merge_bot.on_merge_finished(bot, action.key, action.failure)
    if isinstance(action, MergeBotRerunFinished):
        return merge_bot.on_rerun_finished(bot, action.key, action.failure)
    if isinstance(action, MergeBotPollDue):
        return merge_bot.on_poll_due(bot, action.key)
    if isinstance(action, MergeBotRetryDue):
        return merge_bot.on_retry_due(bot, action.key)
    if isinstance(action, MergeBotRetryCountdown):
        return merge_bot.on_retry_countdown(bot, action.key)
    return bot, ()


# UI


def _reduce_ui(
    state: AppState,
    action: Action,
    *,
    repos: ReposState,
    log_panel: LogPanelState,
    bot: MergeBotState,
) -> tuple[UiState, tuple[Effect, ...]]:
    ui = state.ui

    if isinstance(action, Bootstrap):
        if ui.session_loaded:
            return ui, ()
        return replace(ui, status=StatusMessage("Restoring session...")), (LoadSession(),)
    if isinstance(action, SessionLoaded):
        return replace(ui, session_loaded=True, status=None), ()
    if isinstance(action, SessionLoadFailed):
        status = StatusMessage(
            f"Could not restore session: {action.failure.message}", "error"
        )
        return replace(ui, session_loaded=True, status=status), ()
    if isinstance(action, Quit):
        if ui.should_quit:
            return ui, ()
        return replace(ui, should_quit=True), (SaveSession(snapshot=snapshot_from_state(state)),)
    if isinstance(action, SessionSaveFailed):
        return _with_status(ui, f"Could not save session: {action.failure.message}", "error")

    if isinstance(action, RepoLoadFailed):
        if action.repo not in state.repos.repos:
            return ui, ()
        return _with_status(
            ui, f"Failed to load {action.repo.full_name}: {action.failure.message}", "error"
        )

    if isinstance(action, _PR_OPERATIONS):
        count = len(state.repos.target_prs)
        if count == 0:
            return _with_status(ui, "No pull request selected", "warning")
        verb = {
            MergeSelectedPrs: "Merging",
            RebaseSelectedPrs: "Rebasing",
            RerunFailedJobs: "Rerunning failed jobs for",
            ApproveSelectedPrs: "Approving",
            ClosePrs: "Closing",
        }[type(action)]
        noun = "pull request" if count == 1 else "pull requests"
        return _with_status(ui, f"{verb} {count} {noun}...")
    if isinstance(action, PrOperationFinished):
        if action.failure is not None:
            return _with_status(
                ui,
                f"{_OPERATION_LABELS[action.operation]} #{action.pr_number} failed: "
                f"{action.failure.message}",
                "error",
            )
        done = {
            "merge": "Merged",
            "rebase": "Rebase requested for",
            "rerun": "Rerun requested for",
            "approve": "Approved",
            "close": "Closed",
            "auto_merge": "Auto-merge enabled for",
        }[action.operation]
        return _with_status(ui, f"{done} #{action.pr_number}", "success")
    if isinstance(action, OperationStatusChecked | OperationStatusCheckFailed):
        return _monitor_status(state, action, repos, ui)
    if isinstance(action, ExternalOpenFinished):
        if action.failure is None:
            return ui, ()
        return _with_status(
            ui, f"Could not open {action.target}: {action.failure.message}", "error"
        )

    if isinstance(action, OpenBuildLogs):
        if log_panel.loading_pr is None or log_panel is state.log_panel:
            return ui, ()
        return _with_status(ui, f"Loading build logs for #{log_panel.loading_pr}...")
    if isinstance(action, BuildLogsLoaded):
        if log_panel is state.log_panel:
            return ui, ()
        return _with_status(ui, None)
    if isinstance(action, BuildLogsFailed):
        if log_panel is state.log_panel:
            return ui, ()
        return _with_status(
            ui, f"Failed to load build logs: {action.failure.message}", "error"
        )

    if bot is not state.merge_bot:
        was_running = state.merge_bot.running
        if isinstance(action, StopMergeBot):
            return _with_status(ui, "Merge bot stopped", "warning")
        if not was_running and bot.running:
            active = sum(1 for entry in bot.entries if entry.is_active)
            noun = "pull request" if active == 1 else "pull requests"
            return _with_status(ui, f"Merge bot started with {active} {noun}")
        if was_running and not bot.running:
            failed = sum(1 for entry in bot.entries if entry.state == "failed")
            level: StatusLevel = "warning" if failed else "success"
            return _with_status(
                ui, f"Merge bot finished: {len(bot.merged)} merged, {failed} failed", level
            )
    elif isinstance(action, StartMergeBot) and not bot.running:
        return _with_status(ui, "Select pull requests for the merge bot first", "warning")

    return ui, ()


def _monitor_status(
    state: AppState,
    action: OperationStatusChecked | OperationStatusCheckFailed,
    repos: ReposState,
    ui: UiState,
) -> tuple[UiState, tuple[Effect, ...]]:
    monitor = state.repos.monitor(action.repo, action.pr_number)
    if monitor is None or repos.monitor(action.repo, action.pr_number) is not None:
        return ui, ()
    number = action.pr_number
    if isinstance(action, OperationStatusCheckFailed):
        if not action.failure.is_transient:
            return _with_status(
                ui, f"Stopped monitoring #{number}: {action.failure.message}", "error"
            )
    else:
        settled = operation_monitor.settlement(monitor.operation, action.status)
        if settled == "merged":
            return _with_status(ui, f"#{number} merged", "success")
        if settled == "closed":
            return _with_status(ui, f"#{number} was closed without merging", "error")
        if settled == "ci_passed":
            return _with_status(ui, f"#{number} rebased; CI passed", "success")
        if settled == "ci_failed":
            return _with_status(ui, f"#{number} rebased; CI failed", "error")
        if settled == "conflicted":
            return _with_status(ui, f"#{number} has conflicts after rebase", "error")
    return _with_status(
        ui,
        f"Stopped monitoring #{number} after {state.settings.monitor_max_checks} checks",
        "warning",
    )


def _with_status(
    ui: UiState, text: str | None, level: StatusLevel = "info"
) -> tuple[UiState, tuple[Effect, ...]]:
    status = None if text is None else StatusMessage(text, level)
    if status == ui.status:
        return ui, ()
    return replace(ui, status=status), ()
