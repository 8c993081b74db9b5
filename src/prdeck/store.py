from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import logging
import os
import queue
import threading
from typing import Protocol

from prdeck.actions import Action
from prdeck.app_state import AppState
from prdeck.effects import Effect
from prdeck.observability import log_event, log_warning_event
from prdeck.reducer import InvariantViolation, reduce


LOGGER = logging.getLogger("prdeck.store")
STRICT_INVARIANTS_ENV = "PRDECK_STRICT_INVARIANTS"

Reducer = Callable[[AppState, Action], tuple[AppState, tuple[Effect, ...]]]


class EffectRunner(Protocol):
    def bind(self, sink: Callable[[Action, str | None, int], None]) -> None: ...

    def submit(self, effect: Effect) -> None: ...

    def is_current(self, subsystem: str | None, generation: int) -> bool: ...

    def shutdown(self, *, wait: bool = True) -> None: ...


@dataclass(frozen=True)
class _Envelope:
    action: Action
    subsystem: str | None = None
    generation: int = 0
    from_effect: bool = False


_STOP = object()


def strict_invariants_enabled() -> bool:
    return __debug__ and os.environ.get(STRICT_INVARIANTS_ENV, "").strip() == "1"


class Store:
    def __init__(
        self,
        initial_state: AppState,
        executor: EffectRunner,
        *,
        reducer: Reducer = reduce,
    ) -> None:
        self._state = initial_state
        self._executor = executor
        self._reducer = reducer
        self._queue: queue.Queue[object] = queue.Queue()
        self._thread: threading.Thread | None = None
        self._fatal_error: BaseException | None = None
        self._strict = strict_invariants_enabled()
        executor.bind(self._dispatch_from_effect)

    @property
    def fatal_error(self) -> BaseException | None:
        return self._fatal_error

    def current_state(self) -> AppState:
        return self._state

    def dispatch(self, action: Action) -> None:
        self._queue.put(_Envelope(action=action))

    def _dispatch_from_effect(self, action: Action, subsystem: str | None, generation: int) -> None:
        self._queue.put(
            _Envelope(action=action, subsystem=subsystem, generation=generation, from_effect=True)
        )

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._loop, name="prdeck-store", daemon=True)
        self._thread.start()
        log_event(LOGGER, "store_started")

    def stop(self, *, timeout: float | None = 10.0) -> None:
        thread = self._thread
        if thread is not None:
            self._queue.put(_STOP)
            thread.join(timeout)
            self._thread = None
        # Pending effects such as the final SaveSession finish before shutdown returns.
        self._executor.shutdown(wait=True)
        log_event(LOGGER, "store_stopped", fatal=self._fatal_error is not None)

    def drain(self) -> int:
        """Apply every queued action on the calling thread; returns how many were applied."""
        applied = 0
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return applied
            if item is _STOP or not isinstance(item, _Envelope):
                continue
            if self._apply(item):
                applied += 1

    def _loop(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP or not isinstance(item, _Envelope):
                return
            try:
                self._apply(item)
            except Exception as exc:  # noqa: BLE001
                self._fatal_error = exc
                log_event(
                    LOGGER,
                    "store_loop_failed",
                    action=type(item.action).__name__,
                    error_type=type(exc).__name__,
                )
                return

    def _apply(self, envelope: _Envelope) -> bool:
        if envelope.from_effect and not self._executor.is_current(
            envelope.subsystem, envelope.generation
        ):
            log_event(
                LOGGER,
                "stale_action_dropped",
                action=type(envelope.action).__name__,
                subsystem=envelope.subsystem,
            )
            return False

        try:
            next_state, effects = self._reducer(self._state, envelope.action)
        except InvariantViolation as exc:
            log_warning_event(
                LOGGER,
                "reducer_invariant_violation",
                action=type(envelope.action).__name__,
                error=str(exc),
            )
            if self._strict:
                raise
            return False

        self._state = next_state
        for effect in effects:
            self._executor.submit(effect)
        return True
