from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Final

from prdeck.actions import Action
from prdeck.models import MergeMethod, PrContext, PrKey, Repo, SessionSnapshot


MERGE_BOT_SUBSYSTEM: Final[str] = "merge_bot"
OPERATION_MONITOR_SUBSYSTEM: Final[str] = "operation_monitor"


@dataclass(frozen=True)
class LoadSession:
    subsystem: str | None = None


@dataclass(frozen=True)
class SaveSession:
    snapshot: SessionSnapshot
    subsystem: str | None = None


@dataclass(frozen=True)
class LoadRepository:
    repo: Repo
    subsystem: str | None = None


@dataclass(frozen=True)
class LoadBuildLogs:
    repo: Repo
    pr_context: PrContext
    subsystem: str | None = None


@dataclass(frozen=True)
class MergePullRequest:
    repo: Repo
    pr_number: int
    method: MergeMethod
    subsystem: str | None = None


@dataclass(frozen=True)
class RebasePullRequest:
    repo: Repo
    pr_number: int
    author: str
    subsystem: str | None = None


@dataclass(frozen=True)
class RerunFailedJobsEffect:
    repo: Repo
    pr_number: int
    subsystem: str | None = None


@dataclass(frozen=True)
class ApprovePullRequest:
    repo: Repo
    pr_number: int
    message: str
    subsystem: str | None = None


@dataclass(frozen=True)
class ClosePullRequest:
    repo: Repo
    pr_number: int
    comment: str
    subsystem: str | None = None


@dataclass(frozen=True)
class EnableAutoMerge:
    repo: Repo
    pr_number: int
    method: MergeMethod
    subsystem: str | None = None


@dataclass(frozen=True)
class CheckMonitoredPullRequest:
    repo: Repo
    pr_number: int
    subsystem: str | None = OPERATION_MONITOR_SUBSYSTEM


@dataclass(frozen=True)
class OpenInBrowser:
    url: str
    subsystem: str | None = None


@dataclass(frozen=True)
class OpenInIde:
    repo: Repo
    pr_number: int
    ide_command: str
    temp_dir: Path
    subsystem: str | None = None


@dataclass(frozen=True)
class CheckPullRequestStatus:
    key: PrKey
    repo: Repo
    subsystem: str | None = MERGE_BOT_SUBSYSTEM


@dataclass(frozen=True)
class BotRebase:
    key: PrKey
    repo: Repo
    author: str
    subsystem: str | None = MERGE_BOT_SUBSYSTEM


@dataclass(frozen=True)
class BotMerge:
    key: PrKey
    repo: Repo
    method: MergeMethod
    subsystem: str | None = MERGE_BOT_SUBSYSTEM


@dataclass(frozen=True)
class BotRerunFailedJobs:
    key: PrKey
    repo: Repo
    subsystem: str | None = MERGE_BOT_SUBSYSTEM


@dataclass(frozen=True)
class Timer:
    """Dispatch ``action`` once ``delay_seconds`` have elapsed, unless cancelled."""

    delay_seconds: float
    action: Action
    subsystem: str | None = MERGE_BOT_SUBSYSTEM


@dataclass(frozen=True)
class CancelSubsystem:
    """Drop every pending timer and follow-up action tagged with ``target``."""

    target: str
    subsystem: str | None = None


Effect = (
    LoadSession
    | SaveSession
    | LoadRepository
    | LoadBuildLogs
    | MergePullRequest
    | RebasePullRequest
    | RerunFailedJobsEffect
    | ApprovePullRequest
    | ClosePullRequest
    | EnableAutoMerge
    | CheckMonitoredPullRequest
    | OpenInBrowser
    | OpenInIde
    | CheckPullRequestStatus
    | BotRebase
    | BotMerge
    | BotRerunFailedJobs
    | Timer
    | CancelSubsystem
)
