"""Debouncer - coalesces bursts of change notifications into single fires.

State machine:

    IDLE --trigger--> PENDING --timer--> FIRING --done--> IDLE
                      ^    |                |
                      +----+ trigger        | trigger while firing
                      (re-arm)              v
                                       re-armed to PENDING after the fire

Timers come from an injectable factory (``threading.Timer`` by default), so
the machine can be driven by synthetic events in tests.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from enum import Enum
from typing import Any, Protocol

log = logging.getLogger(__name__)


class TimerLike(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], Any]


class DebounceState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    FIRING = "firing"


class Debouncer:
    """Calls ``callback`` once after ``delay`` seconds without new triggers."""

    def __init__(
        self,
        delay: float,
        callback: Callable[[], Any],
        timer_factory: TimerFactory = threading.Timer,
    ):
        self.delay = delay
        self._callback = callback
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._state = DebounceState.IDLE
        self._timer: TimerLike | None = None
        self._generation = 0
        self._rearm = False

    @property
    def state(self) -> DebounceState:
        with self._lock:
            return self._state

    def trigger(self) -> None:
        """Record a change; (re)starts the quiet period."""
        with self._lock:
            if self._state is DebounceState.FIRING:
                self._rearm = True
                return
            if self._timer is not None:
                self._timer.cancel()
            self._arm()

    def cancel(self) -> None:
        """Drop any pending fire."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._generation += 1
            self._rearm = False
            self._state = DebounceState.IDLE

    def _arm(self) -> None:
        # Caller holds the lock.
        self._generation += 1
        generation = self._generation
        timer = self._timer_factory(self.delay, lambda: self._fire(generation))
        if hasattr(timer, "daemon"):
            timer.daemon = True
        self._timer = timer
        self._state = DebounceState.PENDING
        timer.start()

    def _fire(self, generation: int) -> None:
        with self._lock:
            if self._state is not DebounceState.PENDING or generation != self._generation:
                return  # cancelled or superseded
            self._state = DebounceState.FIRING
            self._timer = None

        try:
            self._callback()
        except Exception:
            log.exception("Error in debounced callback")
        finally:
            with self._lock:
                if self._state is DebounceState.FIRING:
                    if self._rearm:
                        self._rearm = False
                        self._arm()
                    else:
                        self._state = DebounceState.IDLE
