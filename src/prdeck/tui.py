from __future__ import annotations

from typing import Protocol

from rich.text import Text
from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.widgets import Footer, Header, Static

from prdeck.actions import (
    Action,
    AddToMergeQueue,
    ApproveSelectedPrs,
    ClearPrSelection,
    CloseLogPanel,
    ClosePrs,
    CycleFilter,
    DismissMergeQueueEntry,
    JumpToError,
    JumpToStep,
    LogCursorDown,
    LogCursorUp,
    MergeSelectedPrs,
    NavigateToNextPr,
    NavigateToPreviousPr,
    OpenBuildLogs,
    OpenCurrentPrInBrowser,
    OpenCurrentPrInIde,
    PageLogDown,
    Quit,
    RebaseSelectedPrs,
    RefreshCurrentRepo,
    RemoveCurrentRepository,
    RemoveFromMergeQueue,
    RerunFailedJobs,
    ScrollLogHorizontally,
    SelectNextRepo,
    SelectPreviousRepo,
    SelectRepoByIndex,
    SetTheme,
    StartMergeBot,
    StopMergeBot,
    TogglePrSelection,
    ToggleLogNode,
    ToggleTimestamps,
    UpdateLogViewport,
    UpdatePrViewport,
)
from prdeck.app_state import AppState, StatusMessage
from prdeck.models import PrKey, PullRequest, Repo
from prdeck.view_models import (
    LogPanelViewModel,
    MergeBotViewModel,
    PrTableViewModel,
    RepoTabsViewModel,
)


_HORIZONTAL_SCROLL_STEP = 8
_CHROME_ROWS = 8


class StateSource(Protocol):
    @property
    def fatal_error(self) -> BaseException | None: ...

    def dispatch(self, action: Action) -> None: ...

    def current_state(self) -> AppState: ...


class DashboardApp(App[None]):
    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("j,down", "cursor_down", "Down", show=False),
        Binding("k,up", "cursor_up", "Up", show=False),
        Binding("space", "toggle_select", "Select"),
        Binding("escape", "back", "Back", show=False),
        Binding("enter", "toggle_node", "Expand", show=False),
        Binding("l", "open_logs", "Logs"),
        Binding("n", "next_error", "Next Error"),
        Binding("p", "previous_error", "Prev Error"),
        Binding("]", "next_step", "Next Step", show=False),
        Binding("[", "previous_step", "Prev Step", show=False),
        Binding("pagedown", "page_down", "Page", show=False),
        Binding("left", "scroll_left", "Left", show=False),
        Binding("right", "scroll_right", "Right", show=False),
        Binding("tab", "next_repo", "Next Repo", show=False),
        Binding("shift+tab", "previous_repo", "Prev Repo", show=False),
        Binding("r", "refresh", "Refresh"),
        Binding("f", "cycle_filter", "Filter"),
        Binding("m", "merge", "Merge"),
        Binding("R", "rebase", "Rebase"),
        Binding("e", "rerun", "Rerun", show=False),
        Binding("a", "approve", "Approve", show=False),
        Binding("x", "close_prs", "Close", show=False),
        Binding("o", "open_browser", "Browser", show=False),
        Binding("i", "open_ide", "IDE", show=False),
        Binding("t", "toggle_timestamps", "Timestamps", show=False),
        Binding("b", "start_bot", "Merge Bot"),
        Binding("B", "stop_bot", "Stop Bot", show=False),
        Binding("plus", "enqueue", "Queue PR", show=False),
        Binding("minus", "dequeue", "Unqueue PR", show=False),
        Binding("D", "dismiss_entry", "Dismiss", show=False),
        Binding("ctrl+t", "cycle_theme", "Theme", show=False),
        Binding("ctrl+d", "remove_repo", "Remove Repo", show=False),
    ] + [
        Binding(str(digit), f"select_repo({digit - 1})", show=False) for digit in range(1, 10)
    ]
    CSS = """
    Screen {
        layout: vertical;
    }
    #repo-tabs {
        height: 1;
        padding: 0 1;
    }
    #pr-table {
        height: 1fr;
        padding: 0 1;
    }
    #log-panel {
        height: 2fr;
        border: round $accent;
        padding: 0 1;
    }
    #merge-bot {
        height: auto;
        max-height: 8;
        padding: 0 1;
    }
    #status {
        height: 1;
        padding: 0 1;
    }
    """

    def __init__(self, *, store: StateSource, refresh_seconds: float = 0.25) -> None:
        super().__init__()
        self._store = store
        self._refresh_seconds = refresh_seconds
        self._rendered_state: AppState | None = None
        self._rendered_tabs: RepoTabsViewModel | None = None
        self._rendered_table: PrTableViewModel | None = None
        self._rendered_log: LogPanelViewModel | None = None
        self._rendered_bot: MergeBotViewModel | None = None
        self._rendered_status: StatusMessage | None = None
        self._fatal_error: str | None = None
        self._quit_dispatched = False

    def compose(self) -> ComposeResult:
        yield Header()
        with Vertical():
            yield Static("", id="repo-tabs")
            yield Static("", id="pr-table")
            yield Static("", id="log-panel")
            yield Static("", id="merge-bot")
            yield Static("", id="status")
        yield Footer()

    def on_mount(self) -> None:
        self.title = "prdeck"
        self.refresh_view(force=True)
        self.set_interval(self._refresh_seconds, self.refresh_view)

    def on_resize(self, event: events.Resize) -> None:
        height = max(event.size.height - _CHROME_ROWS, 1)
        self._store.dispatch(UpdatePrViewport(height=height))
        self._store.dispatch(UpdateLogViewport(height=height))

    @property
    def fatal_error(self) -> str | None:
        return self._fatal_error

    def refresh_view(self, force: bool = False) -> None:
        if self._store.fatal_error is not None:
            if self._fatal_error is None:
                self._fatal_error = f"State loop failed: {self._store.fatal_error}"
            self.exit()
            return

        state = self._store.current_state()
        if state is self._rendered_state and not force:
            return
        self._rendered_state = state

        tabs_view = state.repos.tabs_view
        if force or tabs_view is not self._rendered_tabs:
            self._rendered_tabs = tabs_view
            self._static("#repo-tabs").update(render_repo_tabs(tabs_view))
        table_view = state.repos.table_view
        if force or table_view is not self._rendered_table:
            self._rendered_table = table_view
            self._static("#pr-table").update(render_pr_table(table_view))
        log_view = state.log_panel.view
        if force or log_view is not self._rendered_log:
            self._rendered_log = log_view
            log_widget = self._static("#log-panel")
            log_widget.display = log_view is not None
            log_widget.update(render_log_panel(log_view))
        bot_view = state.merge_bot.view
        if force or bot_view is not self._rendered_bot:
            self._rendered_bot = bot_view
            bot_widget = self._static("#merge-bot")
            bot_widget.display = bot_view is not None
            bot_widget.update(render_merge_bot(bot_view))
        if force or state.ui.status != self._rendered_status:
            self._rendered_status = state.ui.status
            self._static("#status").update(render_status(state.ui.status, state))

    def _static(self, selector: str) -> Static:
        return self.query_one(selector, Static)

    def _log_open(self) -> bool:
        return self._store.current_state().log_panel.panel is not None

    def _cursor_pr(self) -> tuple[Repo, PullRequest] | None:
        repos = self._store.current_state().repos
        repo = repos.current_repo
        pr = repos.current_pr
        if repo is None or pr is None:
            return None
        return repo, pr

    def _cursor_key(self) -> PrKey | None:
        target = self._cursor_pr()
        if target is None:
            return None
        repo, pr = target
        return PrKey(repo_full_name=repo.full_name, number=pr.number)

    def _dispatch(self, action: Action) -> None:
        self._store.dispatch(action)

    async def action_quit(self) -> None:
        if not self._quit_dispatched:
            self._quit_dispatched = True
            self._dispatch(Quit())
        await super().action_quit()

    def action_cursor_down(self) -> None:
        self._dispatch(LogCursorDown() if self._log_open() else NavigateToNextPr())

    def action_cursor_up(self) -> None:
        self._dispatch(LogCursorUp() if self._log_open() else NavigateToPreviousPr())

    def action_toggle_select(self) -> None:
        self._dispatch(ToggleLogNode() if self._log_open() else TogglePrSelection())

    def action_toggle_node(self) -> None:
        self._dispatch(ToggleLogNode() if self._log_open() else OpenBuildLogs())

    def action_back(self) -> None:
        self._dispatch(CloseLogPanel() if self._log_open() else ClearPrSelection())

    def action_open_logs(self) -> None:
        self._dispatch(OpenBuildLogs())

    def action_next_error(self) -> None:
        self._dispatch(JumpToError(direction="forward"))

    def action_previous_error(self) -> None:
        self._dispatch(JumpToError(direction="backward"))

    def action_next_step(self) -> None:
        self._dispatch(JumpToStep(direction="forward"))

    def action_previous_step(self) -> None:
        self._dispatch(JumpToStep(direction="backward"))

    def action_page_down(self) -> None:
        self._dispatch(PageLogDown())

    def action_scroll_left(self) -> None:
        self._dispatch(ScrollLogHorizontally(delta=-_HORIZONTAL_SCROLL_STEP))

    def action_scroll_right(self) -> None:
        self._dispatch(ScrollLogHorizontally(delta=_HORIZONTAL_SCROLL_STEP))

    def action_next_repo(self) -> None:
        self._dispatch(SelectNextRepo())

    def action_previous_repo(self) -> None:
        self._dispatch(SelectPreviousRepo())

    def action_select_repo(self, index: int) -> None:
        self._dispatch(SelectRepoByIndex(index=index))

    def action_refresh(self) -> None:
        self._dispatch(RefreshCurrentRepo())

    def action_cycle_filter(self) -> None:
        self._dispatch(CycleFilter())

    def action_merge(self) -> None:
        self._dispatch(MergeSelectedPrs())

    def action_rebase(self) -> None:
        self._dispatch(RebaseSelectedPrs())

    def action_rerun(self) -> None:
        self._dispatch(RerunFailedJobs())

    def action_approve(self) -> None:
        self._dispatch(ApproveSelectedPrs())

    def action_close_prs(self) -> None:
        self._dispatch(ClosePrs())

    def action_open_browser(self) -> None:
        self._dispatch(OpenCurrentPrInBrowser())

    def action_open_ide(self) -> None:
        self._dispatch(OpenCurrentPrInIde())

    def action_toggle_timestamps(self) -> None:
        self._dispatch(ToggleTimestamps())

    def action_start_bot(self) -> None:
        self._dispatch(StartMergeBot())

    def action_stop_bot(self) -> None:
        self._dispatch(StopMergeBot())

    def action_enqueue(self) -> None:
        target = self._cursor_pr()
        if target is not None:
            repo, pr = target
            self._dispatch(AddToMergeQueue(repo=repo, pr_number=pr.number, author=pr.author))

    def action_dequeue(self) -> None:
        key = self._cursor_key()
        if key is not None:
            self._dispatch(RemoveFromMergeQueue(key=key))

    def action_dismiss_entry(self) -> None:
        key = self._cursor_key()
        if key is not None:
            self._dispatch(DismissMergeQueueEntry(key=key))

    def action_cycle_theme(self) -> None:
        current = self._store.current_state().theme.name
        self._dispatch(SetTheme(name="light" if current == "dark" else "dark"))

    def action_remove_repo(self) -> None:
        self._dispatch(RemoveCurrentRepository())


def run_dashboard_tui(*, store: StateSource, refresh_seconds: float) -> None:
    app = DashboardApp(store=store, refresh_seconds=refresh_seconds)
    app.run()
    if app.fatal_error is not None:
        raise RuntimeError(app.fatal_error)


def render_repo_tabs(view: RepoTabsViewModel | None) -> Text:
    if view is None:
        return Text("No repositories. Add one with `prdeck repos add OWNER/REPO`.")
    text = Text()
    for index, tab in enumerate(view.tabs):
        if index:
            text.append("  ")
        style = f"bold {tab.color}" if tab.is_selected else tab.color
        text.append(f" {tab.label} ", style=f"{style} reverse" if tab.is_selected else style)
    return text


def render_pr_table(view: PrTableViewModel | None) -> Text:
    if view is None:
        return Text("")
    text = Text(view.title, style="bold")
    if view.selection_summary:
        text.append(f"  ({view.selection_summary})")
    if view.empty_message is not None:
        text.append(f"\n{view.empty_message}")
        return text
    for row in view.rows:
        marker = "●" if row.is_selected else " "
        line = Text(f"\n{marker} {row.number_text:>6} ")
        line.append(f"{row.status_text:<16}", style=row.status_color)
        line.append(f" {row.title}  ")
        line.append(f"{row.author} ({row.comments})", style="dim")
        if row.is_cursor:
            line.stylize("reverse", 1)
        text.append_text(line)
    return text


def render_log_panel(view: LogPanelViewModel | None) -> Text:
    if view is None:
        return Text("")
    text = Text(view.header, style="bold")
    text.append(f"\n{view.summary}", style="dim")
    if view.notice:
        text.append(f"  [{view.notice}]", style="italic")
    for row in view.rows:
        style = f"{row.color} on {view.cursor_background}" if row.is_cursor else row.color
        text.append(f"\n{row.text}", style=style)
    return text


def render_merge_bot(view: MergeBotViewModel | None) -> Text:
    if view is None:
        return Text("")
    text = Text(view.summary, style="bold")
    for row in view.rows:
        line = f"\n{row.pr_text:<32} {row.state_text:<16} {row.attempts_text:>5}"
        if row.detail:
            line = f"{line}  {row.detail}"
        text.append(line, style=row.color)
    return text


def render_status(status: StatusMessage | None, state: AppState) -> Text:
    if status is None:
        return Text("")
    color = {
        "info": state.theme.status_info,
        "success": state.theme.status_success,
        "warning": state.theme.status_warning,
        "error": state.theme.status_error,
    }[status.level]
    return Text(status.text, style=color)
