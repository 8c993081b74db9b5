from __future__ import annotations

from dataclasses import replace
from typing import Literal

from prdeck.actions import OperationMonitorDue
from prdeck.app_state import AppSettings, MonitoredOperation, OperationMonitor, ReposState
from prdeck.effects import (
    OPERATION_MONITOR_SUBSYSTEM,
    CheckMonitoredPullRequest,
    Effect,
    LoadRepository,
    Timer,
)
from prdeck.models import GatewayFailure, PullRequestStatus, Repo, mergeable_status_from


MonitorResult = tuple[ReposState, tuple[Effect, ...]]
Settlement = Literal["merged", "closed", "ci_passed", "ci_failed", "conflicted"]


def start(
    repos: ReposState,
    settings: AppSettings,
    repo: Repo,
    pr_number: int,
    operation: MonitoredOperation,
) -> MonitorResult:
    if repo not in repos.repos or repos.monitor(repo, pr_number) is not None:
        return repos, ()
    monitor = OperationMonitor(repo=repo, pr_number=pr_number, operation=operation)
    return replace(repos, monitors=repos.monitors + (monitor,)), (_schedule(settings, monitor),)


def on_due(repos: ReposState, repo: Repo, pr_number: int) -> MonitorResult:
    if repos.monitor(repo, pr_number) is None:
        return repos, ()
    return repos, (CheckMonitoredPullRequest(repo=repo, pr_number=pr_number),)


def settlement(operation: MonitoredOperation, status: PullRequestStatus) -> Settlement | None:
    """How a monitored operation ended, or None while GitHub is still working on it.

    Merges (direct or automatic) only settle once the pull request is merged or
    closed. A rebase settles when the new head has a finished CI run, or when
    it left the branch conflicted.
    """
    if status.merged:
        return "merged"
    if status.state != "open":
        return "closed"
    if operation != "rebase":
        return None
    if status.conflicted:
        return "conflicted"
    if status.behind_base:
        return None
    if status.ci_status == "success":
        return "ci_passed"
    if status.ci_status == "failure":
        return "ci_failed"
    return None


def on_checked(
    repos: ReposState,
    settings: AppSettings,
    repo: Repo,
    pr_number: int,
    status: PullRequestStatus,
) -> MonitorResult:
    monitor = repos.monitor(repo, pr_number)
    if monitor is None:
        return repos, ()
    if status.state == "open" and not status.merged:
        repos = _with_mergeable(repos, monitor, status)
    if settlement(monitor.operation, status) is not None:
        return _drop(repos, monitor), (LoadRepository(repo=repo),)
    return _next_check(repos, settings, monitor)


def on_check_failed(
    repos: ReposState,
    settings: AppSettings,
    repo: Repo,
    pr_number: int,
    failure: GatewayFailure,
) -> MonitorResult:
    monitor = repos.monitor(repo, pr_number)
    if monitor is None:
        return repos, ()
    if not failure.is_transient:
        return _drop(repos, monitor), ()
    return _next_check(repos, settings, monitor)


def forget_repo(repos: ReposState, repo: Repo) -> ReposState:
    remaining = tuple(monitor for monitor in repos.monitors if monitor.repo != repo)
    if len(remaining) == len(repos.monitors):
        return repos
    return replace(repos, monitors=remaining)


def _next_check(
    repos: ReposState, settings: AppSettings, monitor: OperationMonitor
) -> MonitorResult:
    checks = monitor.checks + 1
    if checks >= settings.monitor_max_checks:
        return _drop(repos, monitor), ()
    counted = replace(monitor, checks=checks)
    monitors = tuple(counted if item == monitor else item for item in repos.monitors)
    return replace(repos, monitors=monitors), (_schedule(settings, counted),)


def _schedule(settings: AppSettings, monitor: OperationMonitor) -> Timer:
    return Timer(
        delay_seconds=settings.monitor_interval_seconds,
        action=OperationMonitorDue(repo=monitor.repo, pr_number=monitor.pr_number),
        subsystem=OPERATION_MONITOR_SUBSYSTEM,
    )


def _drop(repos: ReposState, monitor: OperationMonitor) -> ReposState:
    return replace(repos, monitors=tuple(item for item in repos.monitors if item != monitor))


def _with_mergeable(
    repos: ReposState, monitor: OperationMonitor, status: PullRequestStatus
) -> ReposState:
    data = repos.data.get(monitor.repo)
    if data is None:
        return repos
    mergeable = mergeable_status_from(status)
    if not any(pr.number == monitor.pr_number and pr.mergeable != mergeable for pr in data.prs):
        return repos
    prs = tuple(
        replace(pr, mergeable=mergeable) if pr.number == monitor.pr_number else pr
        for pr in data.prs
    )
    return replace(repos, data={**repos.data, monitor.repo: replace(data, prs=prs)})
