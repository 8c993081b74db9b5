from __future__ import annotations

from collections.abc import Callable
import logging
import sys

from prdeck.actions import Bootstrap
from prdeck.app_state import initial_state
from prdeck.config import AppConfig
from prdeck.effect_executor import EffectExecutor
from prdeck.github_gateway import GitHubGateway
from prdeck.models import Repo
from prdeck.observability import log_event
from prdeck.session_store import SessionStore
from prdeck.store import Store
from prdeck.theme import DARK_THEME, theme_by_name
from prdeck.tui import run_dashboard_tui


LOGGER = logging.getLogger("prdeck.default_mode")

DashboardRunner = Callable[..., None]


def run_dashboard(
    *,
    config: AppConfig,
    session_store: SessionStore,
    tui_runner: DashboardRunner = run_dashboard_tui,
) -> None:
    if not _is_interactive_terminal():
        raise RuntimeError(
            "The dashboard requires an interactive terminal. "
            "Use `prdeck logs OWNER/REPO PR` for headless output."
        )

    store = build_store(config=config, session_store=session_store)
    store.start()
    store.dispatch(Bootstrap())
    log_event(LOGGER, "dashboard_started", repo_count=len(config.repos))

    tui_error: BaseException | None = None
    try:
        tui_runner(store=store, refresh_seconds=config.runtime.refresh_seconds)
    except BaseException as exc:  # noqa: BLE001
        tui_error = exc
    finally:
        store.stop()
        log_event(LOGGER, "dashboard_stopped", failed=tui_error is not None)

    if store.fatal_error is not None and tui_error is None:
        raise RuntimeError("State loop failed") from store.fatal_error
    if tui_error is not None:
        raise tui_error


def build_store(*, config: AppConfig, session_store: SessionStore) -> Store:
    executor = EffectExecutor(
        gateway_factory=_gateway_for,
        session_store=session_store,
        worker_count=config.runtime.worker_count,
    )
    state = initial_state(
        bot_settings=config.merge_bot,
        settings=config.app_settings(),
        theme=theme_by_name(config.ui.theme) or DARK_THEME,
    )
    return Store(state, executor)


def _gateway_for(repo: Repo) -> GitHubGateway:
    return GitHubGateway(repo.org, repo.repo)


def _is_interactive_terminal() -> bool:
    return bool(sys.stdin.isatty() and sys.stdout.isatty())
