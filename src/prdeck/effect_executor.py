from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
import itertools
import logging
import platform
import subprocess
import threading
import webbrowser

from prdeck.actions import (
    Action,
    BuildLogsFailed,
    BuildLogsLoaded,
    ExternalOpenFinished,
    MergeBotMergeFinished,
    MergeBotRebaseFinished,
    MergeBotRerunFinished,
    MergeBotStatusChecked,
    MergeBotStatusCheckFailed,
    OperationStatusChecked,
    OperationStatusCheckFailed,
    PrOperationFinished,
    RepoDataLoaded,
    RepoLoadFailed,
    SessionLoaded,
    SessionLoadFailed,
    SessionSaveFailed,
)
from prdeck.effects import (
    ApprovePullRequest,
    BotMerge,
    BotRebase,
    BotRerunFailedJobs,
    CancelSubsystem,
    CheckMonitoredPullRequest,
    CheckPullRequestStatus,
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
    Timer,
)
from prdeck.git_ops import GitRepoManager
from prdeck.github_gateway import GitHubGateway, GitHubGatewayError
from prdeck.models import FailureKind, GatewayFailure, Repo
from prdeck.observability import log_event, log_warning_event
from prdeck.session_store import SessionStore
from prdeck.shell import CommandError


LOGGER = logging.getLogger("prdeck.effect_executor")

ActionSink = Callable[[Action, str | None, int], None]
GatewayFactory = Callable[[Repo], GitHubGateway]
WorkspaceFactory = Callable[[Path], GitRepoManager]
BrowserOpener = Callable[[str], bool]


def open_external_url(url: str) -> bool:
    if platform.system().lower() == "darwin":
        try:
            process = subprocess.run(["open", url], check=False, capture_output=True)
            if process.returncode == 0:
                return True
        except OSError:
            pass
    try:
        return bool(webbrowser.open_new_tab(url))
    except webbrowser.Error:
        return False


def failure_from_exception(exc: BaseException) -> GatewayFailure:
    kind: FailureKind = "unknown"
    if isinstance(exc, GitHubGatewayError):
        kind = exc.kind
    elif isinstance(exc, CommandError | OSError):
        kind = "network"
    return GatewayFailure(kind=kind, message=_failure_message(exc))


def _failure_message(exc: BaseException) -> str:
    if isinstance(exc, CommandError) and exc.stderr.strip():
        return exc.stderr.strip().splitlines()[-1]
    lines = [line for line in str(exc).splitlines() if line.strip()]
    if not lines:
        return type(exc).__name__
    return lines[0]


class EffectExecutor:
    def __init__(
        self,
        *,
        gateway_factory: GatewayFactory,
        session_store: SessionStore,
        worker_count: int = 4,
        workspace_factory: WorkspaceFactory = GitRepoManager,
        browser_opener: BrowserOpener = open_external_url,
    ) -> None:
        self._gateway_factory = gateway_factory
        self._session_store = session_store
        self._workspace_factory = workspace_factory
        self._browser_opener = browser_opener
        self._pool = ThreadPoolExecutor(
            max_workers=max(worker_count, 1), thread_name_prefix="prdeck-effect"
        )
        self._lock = threading.Lock()
        self._generations: dict[str | None, int] = {}
        self._timers: dict[str | None, dict[int, threading.Timer]] = {}
        self._timer_ids = itertools.count(1)
        self._gateways: dict[str, GitHubGateway] = {}
        self._sink: ActionSink | None = None
        self._closed = False

    def bind(self, sink: ActionSink) -> None:
        self._sink = sink

    def generation(self, subsystem: str | None) -> int:
        with self._lock:
            return self._generations.get(subsystem, 0)

    def is_current(self, subsystem: str | None, generation: int) -> bool:
        with self._lock:
            return self._generations.get(subsystem, 0) == generation

    def submit(self, effect: Effect) -> None:
        if isinstance(effect, CancelSubsystem):
            self.cancel(effect.target)
            return
        with self._lock:
            if self._closed:
                log_warning_event(LOGGER, "effect_dropped", effect=type(effect).__name__)
                return
            generation = self._generations.get(effect.subsystem, 0)
            if isinstance(effect, Timer):
                self._schedule_locked(effect, generation)
                return
        self._pool.submit(self._run, effect, generation)

    def cancel(self, subsystem: str) -> None:
        with self._lock:
            generation = self._generations.get(subsystem, 0) + 1
            self._generations[subsystem] = generation
            timers = self._timers.pop(subsystem, {})
            for timer in timers.values():
                timer.cancel()
        log_event(
            LOGGER,
            "subsystem_cancelled",
            subsystem=subsystem,
            generation=generation,
            cancelled_timers=len(timers),
        )

    def shutdown(self, *, wait: bool = True) -> None:
        with self._lock:
            self._closed = True
            timers = [timer for by_id in self._timers.values() for timer in by_id.values()]
            self._timers.clear()
        for timer in timers:
            timer.cancel()
        self._pool.shutdown(wait=wait)
        log_event(LOGGER, "effect_executor_stopped", cancelled_timers=len(timers))

    def perform(self, effect: Effect) -> Action | None:
        try:
            return self._perform(effect)
        except Exception as exc:  # noqa: BLE001
            failure = failure_from_exception(exc)
            log_warning_event(
                LOGGER,
                "effect_failed",
                effect=type(effect).__name__,
                error_type=type(exc).__name__,
                kind=failure.kind,
                error=failure.message,
            )
            return _failure_action(effect, failure)

    def _run(self, effect: Effect, generation: int) -> None:
        action = self.perform(effect)
        if action is not None:
            self._deliver(action, effect.subsystem, generation)

    def _schedule_locked(self, effect: Timer, generation: int) -> None:
        timer_id = next(self._timer_ids)
        timer = threading.Timer(
            effect.delay_seconds,
            self._fire,
            args=(effect, generation, timer_id),
        )
        timer.daemon = True
        self._timers.setdefault(effect.subsystem, {})[timer_id] = timer
        timer.start()

    def _fire(self, effect: Timer, generation: int, timer_id: int) -> None:
        with self._lock:
            self._timers.get(effect.subsystem, {}).pop(timer_id, None)
        self._deliver(effect.action, effect.subsystem, generation)

    def _deliver(self, action: Action, subsystem: str | None, generation: int) -> None:
        with self._lock:
            if self._generations.get(subsystem, 0) != generation:
                log_event(
                    LOGGER,
                    "stale_completion_dropped",
                    action=type(action).__name__,
                    subsystem=subsystem,
                )
                return
            sink = self._sink
            if sink is None:
                log_warning_event(LOGGER, "effect_unbound", action=type(action).__name__)
                return
            sink(action, subsystem, generation)

    def _gateway(self, repo: Repo) -> GitHubGateway:
        with self._lock:
            gateway = self._gateways.get(repo.full_name)
            if gateway is None:
                gateway = self._gateway_factory(repo)
                self._gateways[repo.full_name] = gateway
            return gateway

    def _perform(self, effect: Effect) -> Action | None:
        if isinstance(effect, LoadSession):
            return SessionLoaded(snapshot=self._session_store.load())
        if isinstance(effect, SaveSession):
            self._session_store.save(effect.snapshot)
            return None
        if isinstance(effect, LoadRepository):
            prs = self._gateway(effect.repo).list_pull_requests(effect.repo.branch)
            log_event(
                LOGGER,
                "repository_loaded",
                repo_full_name=effect.repo.full_name,
                pr_count=len(prs),
            )
            return RepoDataLoaded(repo=effect.repo, prs=prs)
        if isinstance(effect, LoadBuildLogs):
            jobs = self._gateway(effect.repo).load_build_logs(effect.pr_context.number)
            return BuildLogsLoaded(repo=effect.repo, pr_context=effect.pr_context, jobs=jobs)
        if isinstance(effect, MergePullRequest):
            self._gateway(effect.repo).merge_pull_request(effect.pr_number, effect.method)
            return PrOperationFinished(
                repo=effect.repo, pr_number=effect.pr_number, operation="merge"
            )
        if isinstance(effect, RebasePullRequest):
            self._gateway(effect.repo).rebase_pull_request(effect.pr_number, author=effect.author)
            return PrOperationFinished(
                repo=effect.repo, pr_number=effect.pr_number, operation="rebase"
            )
        if isinstance(effect, RerunFailedJobsEffect):
            self._gateway(effect.repo).rerun_failed_jobs(effect.pr_number)
            return PrOperationFinished(
                repo=effect.repo, pr_number=effect.pr_number, operation="rerun"
            )
        if isinstance(effect, ApprovePullRequest):
            self._gateway(effect.repo).approve_pull_request(effect.pr_number, effect.message)
            return PrOperationFinished(
                repo=effect.repo, pr_number=effect.pr_number, operation="approve"
            )
        if isinstance(effect, ClosePullRequest):
            self._gateway(effect.repo).close_pull_request(effect.pr_number, effect.comment)
            return PrOperationFinished(
                repo=effect.repo, pr_number=effect.pr_number, operation="close"
            )
        if isinstance(effect, EnableAutoMerge):
            self._gateway(effect.repo).enable_auto_merge(effect.pr_number, effect.method)
            return PrOperationFinished(
                repo=effect.repo, pr_number=effect.pr_number, operation="auto_merge"
            )
        if isinstance(effect, OpenInBrowser):
            if not self._browser_opener(effect.url):
                return ExternalOpenFinished(
                    target="browser",
                    failure=GatewayFailure(kind="unknown", message=f"Could not open {effect.url}"),
                )
            return ExternalOpenFinished(target="browser")
        if isinstance(effect, OpenInIde):
            workspace = self._workspace_factory(effect.temp_dir)
            checkout_path = workspace.checkout_pull_request(effect.repo, effect.pr_number)
            workspace.open_in_ide(checkout_path, effect.ide_command)
            return ExternalOpenFinished(target="ide")
        if isinstance(effect, CheckPullRequestStatus):
            status = self._gateway(effect.repo).get_pull_request_status(
                effect.key.number, effect.repo.branch
            )
            return MergeBotStatusChecked(key=effect.key, status=status)
        if isinstance(effect, CheckMonitoredPullRequest):
            status = self._gateway(effect.repo).get_pull_request_status(
                effect.pr_number, effect.repo.branch
            )
            return OperationStatusChecked(
                repo=effect.repo, pr_number=effect.pr_number, status=status
            )
        if isinstance(effect, BotRebase):
            self._gateway(effect.repo).rebase_pull_request(effect.key.number, author=effect.author)
            return MergeBotRebaseFinished(key=effect.key)
        if isinstance(effect, BotMerge):
            self._gateway(effect.repo).merge_pull_request(effect.key.number, effect.method)
            return MergeBotMergeFinished(key=effect.key)
        if isinstance(effect, BotRerunFailedJobs):
            self._gateway(effect.repo).rerun_failed_jobs(effect.key.number)
            return MergeBotRerunFinished(key=effect.key)
        raise ValueError(f"Effect {type(effect).__name__} is not executed by a worker")


def _failure_action(effect: Effect, failure: GatewayFailure) -> Action | None:
    if isinstance(effect, LoadSession):
        return SessionLoadFailed(failure=failure)
    if isinstance(effect, SaveSession):
        return SessionSaveFailed(failure=failure)
    if isinstance(effect, LoadRepository):
        return RepoLoadFailed(repo=effect.repo, failure=failure)
    if isinstance(effect, LoadBuildLogs):
        return BuildLogsFailed(
            repo=effect.repo, pr_number=effect.pr_context.number, failure=failure
        )
    if isinstance(effect, MergePullRequest):
        return PrOperationFinished(
            repo=effect.repo, pr_number=effect.pr_number, operation="merge", failure=failure
        )
    if isinstance(effect, RebasePullRequest):
        return PrOperationFinished(
            repo=effect.repo, pr_number=effect.pr_number, operation="rebase", failure=failure
        )
    if isinstance(effect, RerunFailedJobsEffect):
        return PrOperationFinished(
            repo=effect.repo, pr_number=effect.pr_number, operation="rerun", failure=failure
        )
    if isinstance(effect, ApprovePullRequest):
        return PrOperationFinished(
            repo=effect.repo, pr_number=effect.pr_number, operation="approve", failure=failure
        )
    if isinstance(effect, ClosePullRequest):
        return PrOperationFinished(
            repo=effect.repo, pr_number=effect.pr_number, operation="close", failure=failure
        )
    if isinstance(effect, EnableAutoMerge):
        return PrOperationFinished(
            repo=effect.repo, pr_number=effect.pr_number, operation="auto_merge", failure=failure
        )
    if isinstance(effect, OpenInBrowser):
        return ExternalOpenFinished(target="browser", failure=failure)
    if isinstance(effect, OpenInIde):
        return ExternalOpenFinished(target="ide", failure=failure)
    if isinstance(effect, CheckPullRequestStatus):
        return MergeBotStatusCheckFailed(key=effect.key, failure=failure)
    if isinstance(effect, CheckMonitoredPullRequest):
        return OperationStatusCheckFailed(
            repo=effect.repo, pr_number=effect.pr_number, failure=failure
        )
    if isinstance(effect, BotRebase):
        return MergeBotRebaseFinished(key=effect.key, failure=failure)
    if isinstance(effect, BotMerge):
        return MergeBotMergeFinished(key=effect.key, failure=failure)
    if isinstance(effect, BotRerunFailedJobs):
        return MergeBotRerunFinished(key=effect.key, failure=failure)
    return None
