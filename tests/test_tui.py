from __future__ import annotations

import asyncio

import pytest

from prdeck import tui
from prdeck.actions import (
    Action,
    AddToMergeQueue,
    BuildLogsLoaded,
    ClosePrs,
    DismissMergeQueueEntry,
    JumpToError,
    LogCursorDown,
    NavigateToNextPr,
    OpenBuildLogs,
    Quit,
    RemoveFromMergeQueue,
    RepoDataLoaded,
    SelectRepoByIndex,
    SessionLoaded,
    SetTheme,
    TogglePrSelection,
    UpdateLogViewport,
    UpdatePrViewport,
)
from prdeck.app_state import AppState, MergeBotSettings, StatusMessage, initial_state
from prdeck.models import (
    JobLogText,
    JobMetadata,
    PrContext,
    PrKey,
    PullRequest,
    Repo,
    SessionSnapshot,
)
from prdeck.reducer import reduce


REPO = Repo(org="o", repo="a")
PRS = (
    PullRequest(number=3, title="feat: add x", author="alice", mergeable="ready"),
    PullRequest(number=2, title="fix: bug", author="bob", mergeable="conflicted"),
)
JOBS = (
    JobLogText(
        metadata=JobMetadata(name="test", workflow_name="CI", status="failure"),
        text="##[group]Run tests\nrunning\n##[error]boom",
    ),
)


class FakeStore:
    """Applies actions synchronously and drops effects."""

    def __init__(self, state: AppState) -> None:
        self.state = state
        self.actions: list[Action] = []
        self.fatal_error: BaseException | None = None

    def dispatch(self, action: Action) -> None:
        self.actions.append(action)
        self.state, _ = reduce(self.state, action)

    def current_state(self) -> AppState:
        return self.state


def _loaded_state() -> AppState:
    state = initial_state(bot_settings=MergeBotSettings(concurrency_limit=1, retry_budget=2))
    for action in (
        SessionLoaded(SessionSnapshot(repos=(REPO, Repo(org="o", repo="b")))),
        RepoDataLoaded(repo=REPO, prs=PRS),
    ):
        state, _ = reduce(state, action)
    return state


def test_render_functions() -> None:
    state = _loaded_state()
    tabs = tui.render_repo_tabs(state.repos.tabs_view)
    assert "1:o/a" in tabs.plain
    assert "2:o/b" in tabs.plain
    assert "prdeck repos add" in tui.render_repo_tabs(None).plain

    table = tui.render_pr_table(state.repos.table_view).plain
    assert table.startswith("o/a @ main")
    assert "feat: add x" in table
    assert "bob (0)" in table
    assert tui.render_pr_table(None).plain == ""

    assert tui.render_log_panel(None).plain == ""
    assert tui.render_merge_bot(None).plain == ""
    assert tui.render_status(None, state).plain == ""
    warning = tui.render_status(StatusMessage(text="careful", level="warning"), state)
    assert warning.plain == "careful"
    assert str(warning.style) == state.theme.status_warning


def test_render_log_panel() -> None:
    store = FakeStore(_loaded_state())
    store.dispatch(OpenBuildLogs())
    context = PrContext(number=3, title="feat: add x", author="alice")
    store.dispatch(BuildLogsLoaded(repo=REPO, pr_context=context, jobs=JOBS))
    panel = tui.render_log_panel(store.state.log_panel.view).plain
    assert panel.startswith("#3 feat: add x by alice")
    assert "boom" in panel


def test_run_dashboard_tui_runs_app(monkeypatch: pytest.MonkeyPatch) -> None:
    called: dict[str, object] = {}

    class FakeApp:
        fatal_error: str | None = None

        def __init__(self, **kwargs: object) -> None:
            called["kwargs"] = kwargs

        def run(self) -> None:
            called["ran"] = True

    monkeypatch.setattr(tui, "DashboardApp", FakeApp)
    store = FakeStore(_loaded_state())
    tui.run_dashboard_tui(store=store, refresh_seconds=0.5)
    assert called["ran"] is True
    assert called["kwargs"] == {"store": store, "refresh_seconds": 0.5}

    FakeApp.fatal_error = "State loop failed: boom"
    with pytest.raises(RuntimeError, match="State loop failed: boom"):
        tui.run_dashboard_tui(store=store, refresh_seconds=0.5)


def test_dashboard_app_keybindings_dispatch_actions() -> None:
    store = FakeStore(_loaded_state())
    app = tui.DashboardApp(store=store, refresh_seconds=60)

    async def run_app() -> None:
        async with app.run_test() as pilot:
            await pilot.pause()
            assert app.query_one("#log-panel").display is False

            await pilot.press("j", "space", "2")
            assert NavigateToNextPr() in store.actions
            assert TogglePrSelection() in store.actions
            assert SelectRepoByIndex(index=1) in store.actions

            store.dispatch(SelectRepoByIndex(index=0))
            await pilot.press("l")
            assert OpenBuildLogs() in store.actions
            pr = store.state.repos.current_pr
            assert pr is not None
            context = PrContext(number=pr.number, title=pr.title, author=pr.author)
            store.dispatch(BuildLogsLoaded(repo=REPO, pr_context=context, jobs=JOBS))
            app.refresh_view()
            assert app.query_one("#log-panel").display is True

            store.actions.clear()
            await pilot.press("j", "n", "ctrl+t")
            assert [
                action
                for action in store.actions
                if not isinstance(action, UpdatePrViewport | UpdateLogViewport)
            ] == [
                LogCursorDown(),
                JumpToError(direction="forward"),
                SetTheme(name="light"),
            ]

            await pilot.press("q")
            await pilot.pause()

    asyncio.run(run_app())
    assert store.actions[-1] == Quit()
    assert store.state.ui.should_quit is True

def test_dashboard_app_queue_and_close_keys_target_cursor_pr() -> None:
    store = FakeStore(_loaded_state())
    app = tui.DashboardApp(store=store, refresh_seconds=60)
    key = PrKey(repo_full_name="o/a", number=3)

    async def run_app() -> None:
        async with app.run_test() as pilot:
            await pilot.pause()
            store.actions.clear()
            await pilot.press("plus", "D", "minus", "x")

    asyncio.run(run_app())
    assert [
        action
        for action in store.actions
        if not isinstance(action, UpdatePrViewport | UpdateLogViewport | Quit)
    ] == [
        AddToMergeQueue(repo=REPO, pr_number=3, author="alice"),
        DismissMergeQueueEntry(key=key),
        RemoveFromMergeQueue(key=key),
        ClosePrs(),
    ]


def test_dashboard_app_queue_keys_ignore_empty_repository() -> None:
    state = initial_state(bot_settings=MergeBotSettings(concurrency_limit=1, retry_budget=2))
    state, _ = reduce(state, SessionLoaded(SessionSnapshot(repos=(REPO,))))
    store = FakeStore(state)
    app = tui.DashboardApp(store=store, refresh_seconds=60)

    async def run_app() -> None:
        async with app.run_test() as pilot:
            await pilot.pause()
            store.actions.clear()
            await pilot.press("plus", "minus", "D")

    asyncio.run(run_app())
    assert not any(
        isinstance(action, AddToMergeQueue | RemoveFromMergeQueue | DismissMergeQueueEntry)
        for action in store.actions
    )



def test_dashboard_app_exits_on_store_failure() -> None:
    store = FakeStore(_loaded_state())
    app = tui.DashboardApp(store=store, refresh_seconds=60)

    async def run_app() -> None:
        async with app.run_test() as pilot:
            await pilot.pause()
            store.fatal_error = RuntimeError("boom")
            app.refresh_view()
            await pilot.pause()

    asyncio.run(run_app())
    assert app.fatal_error == "State loop failed: boom"
