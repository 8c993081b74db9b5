from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from prdeck.models import (
    Direction,
    GatewayFailure,
    JobLogText,
    PrContext,
    PrKey,
    PrOperation,
    PullRequest,
    PullRequestStatus,
    Repo,
    SessionSnapshot,
)


ExternalTarget = Literal["browser", "ide"]


# Session


@dataclass(frozen=True)
class Bootstrap:
    pass


@dataclass(frozen=True)
class SessionLoaded:
    snapshot: SessionSnapshot


@dataclass(frozen=True)
class SessionLoadFailed:
    failure: GatewayFailure


@dataclass(frozen=True)
class Quit:
    pass


@dataclass(frozen=True)
class SessionSaveFailed:
    failure: GatewayFailure


# Repositories


@dataclass(frozen=True)
class AddRepository:
    repo: Repo


@dataclass(frozen=True)
class RemoveCurrentRepository:
    pass


@dataclass(frozen=True)
class SelectNextRepo:
    pass


@dataclass(frozen=True)
class SelectPreviousRepo:
    pass


@dataclass(frozen=True)
class SelectRepoByIndex:
    index: int


@dataclass(frozen=True)
class RefreshCurrentRepo:
    pass


@dataclass(frozen=True)
class RepoDataLoaded:
    repo: Repo
    prs: tuple[PullRequest, ...]


@dataclass(frozen=True)
class RepoLoadFailed:
    repo: Repo
    failure: GatewayFailure


@dataclass(frozen=True)
class CycleFilter:
    pass


# Pull request table


@dataclass(frozen=True)
class NavigateToNextPr:
    pass


@dataclass(frozen=True)
class NavigateToPreviousPr:
    pass


@dataclass(frozen=True)
class TogglePrSelection:
    pass


@dataclass(frozen=True)
class ClearPrSelection:
    pass


@dataclass(frozen=True)
class UpdatePrViewport:
    height: int


# Pull request operations


@dataclass(frozen=True)
class MergeSelectedPrs:
    pass


@dataclass(frozen=True)
class RebaseSelectedPrs:
    pass


@dataclass(frozen=True)
class RerunFailedJobs:
    pass


@dataclass(frozen=True)
class ApproveSelectedPrs:
    pass


@dataclass(frozen=True)
class ClosePrs:
    """Close the target pull requests; an empty comment uses the configured default."""

    comment: str = ""


@dataclass(frozen=True)
class OpenCurrentPrInBrowser:
    pass


@dataclass(frozen=True)
class OpenCurrentPrInIde:
    pass


@dataclass(frozen=True)
class PrOperationFinished:
    repo: Repo
    pr_number: int
    operation: PrOperation
    failure: GatewayFailure | None = None


@dataclass(frozen=True)
class ExternalOpenFinished:
    target: ExternalTarget
    failure: GatewayFailure | None = None


# Operation monitoring


@dataclass(frozen=True)
class OperationMonitorDue:
    repo: Repo
    pr_number: int


@dataclass(frozen=True)
class OperationStatusChecked:
    repo: Repo
    pr_number: int
    status: PullRequestStatus


@dataclass(frozen=True)
class OperationStatusCheckFailed:
    repo: Repo
    pr_number: int
    failure: GatewayFailure


# Log panel


@dataclass(frozen=True)
class OpenBuildLogs:
    pass


@dataclass(frozen=True)
class BuildLogsLoaded:
    repo: Repo
    pr_context: PrContext
    jobs: tuple[JobLogText, ...]


@dataclass(frozen=True)
class BuildLogsFailed:
    repo: Repo
    pr_number: int
    failure: GatewayFailure


@dataclass(frozen=True)
class CloseLogPanel:
    pass


@dataclass(frozen=True)
class LogCursorDown:
    pass


@dataclass(frozen=True)
class LogCursorUp:
    pass


@dataclass(frozen=True)
class ToggleLogNode:
    pass


@dataclass(frozen=True)
class JumpToError:
    direction: Direction


@dataclass(frozen=True)
class JumpToStep:
    direction: Direction


@dataclass(frozen=True)
class PageLogDown:
    pass


@dataclass(frozen=True)
class ScrollLogHorizontally:
    delta: int


@dataclass(frozen=True)
class UpdateLogViewport:
    height: int


@dataclass(frozen=True)
class ToggleTimestamps:
    pass


# Theme


@dataclass(frozen=True)
class SetTheme:
    name: str


# Merge bot


@dataclass(frozen=True)
class StartMergeBot:
    pass


@dataclass(frozen=True)
class StopMergeBot:
    pass


@dataclass(frozen=True)
class AddToMergeQueue:
    repo: Repo
    pr_number: int
    author: str = ""


@dataclass(frozen=True)
class RemoveFromMergeQueue:
    key: PrKey


@dataclass(frozen=True)
class DismissMergeQueueEntry:
    key: PrKey


@dataclass(frozen=True)
class MergeBotTick:
    pass


@dataclass(frozen=True)
class MergeBotStatusChecked:
    key: PrKey
    status: PullRequestStatus


@dataclass(frozen=True)
class MergeBotStatusCheckFailed:
    key: PrKey
    failure: GatewayFailure


@dataclass(frozen=True)
class MergeBotRebaseFinished:
    key: PrKey
    failure: GatewayFailure | None = None


@dataclass(frozen=True)
class MergeBotMergeFinished:
    key: PrKey
    failure: GatewayFailure | None = None


@dataclass(frozen=True)
class MergeBotRerunFinished:
    key: PrKey
    failure: GatewayFailure | None = None


@dataclass(frozen=True)
class MergeBotPollDue:
    key: PrKey


@dataclass(frozen=True)
class MergeBotRetryDue:
    key: PrKey


@dataclass(frozen=True)
class MergeBotRetryCountdown:
    """One second of a pending retry has elapsed."""

    key: PrKey


Action = (
    Bootstrap
    | SessionLoaded
    | SessionLoadFailed
    | Quit
    | SessionSaveFailed
    | AddRepository
    | RemoveCurrentRepository
    | SelectNextRepo
    | SelectPreviousRepo
    | SelectRepoByIndex
    | RefreshCurrentRepo
    | RepoDataLoaded
    | RepoLoadFailed
    | CycleFilter
    | NavigateToNextPr
    | NavigateToPreviousPr
    | TogglePrSelection
    | ClearPrSelection
    | UpdatePrViewport
    | MergeSelectedPrs
    | RebaseSelectedPrs
    | RerunFailedJobs
    | ApproveSelectedPrs
    | ClosePrs
    | OpenCurrentPrInBrowser
    | OpenCurrentPrInIde
    | PrOperationFinished
    | ExternalOpenFinished
    | OperationMonitorDue
    | OperationStatusChecked
    | OperationStatusCheckFailed
    | OpenBuildLogs
    | BuildLogsLoaded
    | BuildLogsFailed
    | CloseLogPanel
    | LogCursorDown
    | LogCursorUp
    | ToggleLogNode
    | JumpToError
    | JumpToStep
    | PageLogDown
    | ScrollLogHorizontally
    | UpdateLogViewport
    | ToggleTimestamps
    | SetTheme
    | StartMergeBot
    | StopMergeBot
    | AddToMergeQueue
    | RemoveFromMergeQueue
    | DismissMergeQueueEntry
    | MergeBotTick
    | MergeBotStatusChecked
    | MergeBotStatusCheckFailed
    | MergeBotRebaseFinished
    | MergeBotMergeFinished
    | MergeBotRerunFinished
    | MergeBotPollDue
    | MergeBotRetryDue
    | MergeBotRetryCountdown
)
