from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace

from prdeck.actions import MergeBotPollDue, MergeBotRetryCountdown, MergeBotRetryDue
from prdeck.app_state import MergeBotSettings, MergeBotState, QueueEntry, ResumeState
from prdeck.effects import (
    MERGE_BOT_SUBSYSTEM,
    BotMerge,
    BotRebase,
    BotRerunFailedJobs,
    CancelSubsystem,
    CheckPullRequestStatus,
    Effect,
    LoadRepository,
    Timer,
)
from prdeck.models import GatewayFailure, PrKey, PullRequestStatus, Repo


BotResult = tuple[MergeBotState, tuple[Effect, ...]]
_OPERATION_STATES = frozenset({"rebasing", "merging"})
_COUNTDOWN_STEP_SECONDS = 1.0


def backoff_delay(settings: MergeBotSettings, attempts: int) -> float:
    exponent = max(attempts - 1, 0)
    return float(min(settings.backoff_base_seconds * (2**exponent), settings.backoff_max_seconds))


def start(bot: MergeBotState, candidates: Iterable[tuple[Repo, int, str]]) -> BotResult:
    entries = list(bot.entries)
    if not bot.running:
        # Anything in flight when the bot was stopped was cancelled; re-check from scratch.
        entries = [
            replace(
                entry,
                state="queued",
                outstanding=None,
                resume=None,
                retry_remaining_seconds=None,
            )
            if entry.is_active
            else entry
            for entry in entries
        ]
    entries = _with_candidates(entries, candidates)
    return drive(replace(bot, running=True, entries=tuple(entries)))


def stop(bot: MergeBotState) -> BotResult:
    if not bot.running:
        return bot, ()
    return replace(bot, running=False), (CancelSubsystem(target=MERGE_BOT_SUBSYSTEM),)


def enqueue(bot: MergeBotState, repo: Repo, pr_number: int, author: str) -> BotResult:
    entries = _with_candidates(list(bot.entries), ((repo, pr_number, author),))
    if tuple(entries) == bot.entries:
        return bot, ()
    return drive(replace(bot, entries=tuple(entries)))


def remove(bot: MergeBotState, key: PrKey) -> BotResult:
    if bot.entry(key) is None:
        return bot, ()
    remaining = tuple(entry for entry in bot.entries if entry.key != key)
    return drive(replace(bot, entries=remaining))


def dismiss(bot: MergeBotState, key: PrKey) -> BotResult:
    entry = bot.entry(key)
    if entry is None or entry.is_active:
        return bot, ()
    return replace(bot, entries=tuple(item for item in bot.entries if item.key != key)), ()


def on_status_checked(bot: MergeBotState, key: PrKey, status: PullRequestStatus) -> BotResult:
    entry = _awaiting(bot, key, "status_check")
    if entry is None:
        return bot, ()
    entry = replace(entry, outstanding=None)

    if status.merged:
        return _mark_merged(bot, entry)
    if status.state != "open":
        failed, effects = _fail(bot.settings, entry, "Pull request is closed", transient=False)
        return _update(bot, failed, effects)
    if status.conflicted or status.behind_base:
        return _update(bot, replace(entry, state="needs_rebase"))
    if status.ci_status == "success" and status.mergeable is not False:
        return _update(bot, replace(entry, state="ready_to_merge"))
    if status.ci_status == "failure":
        resume: ResumeState = "rerun_ci" if bot.settings.rerun_failed_jobs else "waiting_for_ci"
        failed, effects = _fail(bot.settings, entry, "CI failed", resume=resume)
        return _update(bot, failed, effects)
    if status.ci_status == "success":
        failed, effects = _fail(bot.settings, entry, "Blocked by branch protection")
        return _update(bot, failed, effects)
    return _update(bot, replace(entry, state="waiting_for_ci"))


def on_status_check_failed(bot: MergeBotState, key: PrKey, failure: GatewayFailure) -> BotResult:
    entry = _awaiting(bot, key, "status_check")
    if entry is None:
        return bot, ()
    failed, effects = _fail(
        bot.settings,
        entry,
        f"Status check failed: {failure.message}",
        transient=failure.is_transient,
    )
    return _update(bot, failed, effects)


def on_rebase_finished(bot: MergeBotState, key: PrKey, failure: GatewayFailure | None) -> BotResult:
    entry = _awaiting(bot, key, "rebase")
    if entry is None:
        return bot, ()
    if failure is None:
        return _update(bot, replace(entry, state="waiting_for_ci", outstanding=None))
    failed, effects = _fail(
        bot.settings,
        entry,
        f"Rebase failed: {failure.message}",
        transient=failure.is_transient,
        resume="needs_rebase",
    )
    return _update(bot, failed, effects)


def on_merge_finished(bot: MergeBotState, key: PrKey, failure: GatewayFailure | None) -> BotResult:
    entry = _awaiting(bot, key, "merge")
    if entry is None:
        return bot, ()
    if failure is None:
        return _mark_merged(bot, replace(entry, outstanding=None))
    failed, effects = _fail(
        bot.settings,
        entry,
        f"Merge failed: {failure.message}",
        transient=failure.is_transient,
        resume="needs_rebase" if failure.kind == "conflict" else "waiting_for_ci",
    )
    return _update(bot, failed, effects)


def on_rerun_finished(bot: MergeBotState, key: PrKey, failure: GatewayFailure | None) -> BotResult:
    entry = _awaiting(bot, key, "rerun")
    if entry is None:
        return bot, ()
    if failure is None:
        return _update(bot, replace(entry, state="waiting_for_ci", outstanding=None))
    failed, effects = _fail(
        bot.settings,
        entry,
        f"Rerun failed: {failure.message}",
        transient=failure.is_transient,
        resume="rerun_ci",
    )
    return _update(bot, failed, effects)


def on_poll_due(bot: MergeBotState, key: PrKey) -> BotResult:
    entry = _awaiting(bot, key, "poll_timer")
    if entry is None:
        return bot, ()
    checking = replace(entry, outstanding="status_check")
    return _update(bot, checking, (CheckPullRequestStatus(key=entry.key, repo=entry.repo),))


def on_retry_due(bot: MergeBotState, key: PrKey) -> BotResult:
    entry = _awaiting(bot, key, "retry_timer")
    if entry is None:
        return bot, ()
    base = replace(entry, resume=None, retry_remaining_seconds=None)
    if entry.resume == "needs_rebase":
        return _update(bot, replace(base, state="needs_rebase", outstanding=None))
    if entry.resume == "rerun_ci":
        rerunning = replace(base, state="waiting_for_ci", outstanding="rerun")
        return _update(bot, rerunning, (BotRerunFailedJobs(key=entry.key, repo=entry.repo),))
    checking = replace(base, state="waiting_for_ci", outstanding="status_check")
    return _update(bot, checking, (CheckPullRequestStatus(key=entry.key, repo=entry.repo),))


def on_retry_countdown(bot: MergeBotState, key: PrKey) -> BotResult:
    entry = _awaiting(bot, key, "retry_timer")
    if entry is None or entry.retry_remaining_seconds is None:
        return bot, ()
    remaining = max(entry.retry_remaining_seconds - _COUNTDOWN_STEP_SECONDS, 0.0)
    counted = replace(entry, retry_remaining_seconds=remaining)
    return _update(bot, counted, _countdown(key, remaining))


def drive(bot: MergeBotState) -> BotResult:
    """Arm the next effect for every idle entry, honouring the concurrency limit."""
    if not bot.running:
        return bot, ()

    settings = bot.settings
    entries = list(bot.entries)
    effects: list[Effect] = []
    busy = sum(1 for entry in entries if entry.state in _OPERATION_STATES)
    for index, entry in enumerate(entries):
        if entry.outstanding is not None:
            continue
        if entry.state == "queued":
            entries[index] = replace(entry, outstanding="status_check")
            effects.append(CheckPullRequestStatus(key=entry.key, repo=entry.repo))
        elif entry.state == "waiting_for_ci":
            entries[index] = replace(entry, outstanding="poll_timer")
            effects.append(
                Timer(
                    delay_seconds=settings.ci_poll_interval_seconds,
                    action=MergeBotPollDue(key=entry.key),
                )
            )
        elif entry.state == "needs_rebase" and busy < settings.concurrency_limit:
            entries[index] = replace(entry, state="rebasing", outstanding="rebase")
            effects.append(BotRebase(key=entry.key, repo=entry.repo, author=entry.author))
            busy += 1
        elif entry.state == "ready_to_merge" and busy < settings.concurrency_limit:
            entries[index] = replace(entry, state="merging", outstanding="merge")
            effects.append(BotMerge(key=entry.key, repo=entry.repo, method=settings.merge_method))
            busy += 1

    running = any(entry.is_active for entry in entries)
    if not effects and running == bot.running:
        return bot, ()
    return replace(bot, running=running, entries=tuple(entries)), tuple(effects)


def _with_candidates(
    entries: list[QueueEntry], candidates: Iterable[tuple[Repo, int, str]]
) -> list[QueueEntry]:
    out = list(entries)
    for repo, pr_number, author in candidates:
        key = PrKey(repo_full_name=repo.full_name, number=pr_number)
        fresh = QueueEntry(key=key, repo=repo, author=author)
        existing = next((i for i, entry in enumerate(out) if entry.key == key), None)
        if existing is None:
            out.append(fresh)
        elif not out[existing].is_active:
            out[existing] = fresh
    return out


def _awaiting(bot: MergeBotState, key: PrKey, outstanding: str) -> QueueEntry | None:
    if not bot.running:
        return None
    entry = bot.entry(key)
    if entry is None or entry.outstanding != outstanding:
        return None
    return entry


def _fail(
    settings: MergeBotSettings,
    entry: QueueEntry,
    reason: str,
    *,
    transient: bool = True,
    resume: ResumeState = "waiting_for_ci",
) -> tuple[QueueEntry, tuple[Effect, ...]]:
    attempts = entry.attempts + 1
    if not transient or attempts > settings.retry_budget:
        return (
            replace(
                entry,
                state="failed",
                attempts=attempts,
                last_error=reason,
                outstanding=None,
                resume=None,
                permanent=True,
                retry_remaining_seconds=None,
            ),
            (),
        )
    delay = backoff_delay(settings, attempts)
    return (
        replace(
            entry,
            state="failed",
            attempts=attempts,
            last_error=reason,
            outstanding="retry_timer",
            resume=resume,
            permanent=False,
            retry_remaining_seconds=delay,
        ),
        (Timer(delay_seconds=delay, action=MergeBotRetryDue(key=entry.key)),)
        + _countdown(entry.key, delay),
    )


def _countdown(key: PrKey, remaining: float) -> tuple[Effect, ...]:
    # The last second is covered by the retry timer itself.
    if remaining <= _COUNTDOWN_STEP_SECONDS:
        return ()
    return (
        Timer(delay_seconds=_COUNTDOWN_STEP_SECONDS, action=MergeBotRetryCountdown(key=key)),
    )


def _mark_merged(bot: MergeBotState, entry: QueueEntry) -> BotResult:
    remaining = tuple(item for item in bot.entries if item.key != entry.key)
    merged = replace(bot, entries=remaining, merged=bot.merged + (entry.key,))
    driven, effects = drive(merged)
    return driven, (LoadRepository(repo=entry.repo),) + effects


def _update(
    bot: MergeBotState, entry: QueueEntry, effects: tuple[Effect, ...] = ()
) -> BotResult:
    entries = tuple(entry if item.key == entry.key else item for item in bot.entries)
    driven, scheduled = drive(replace(bot, entries=entries))
    return driven, effects + scheduled
