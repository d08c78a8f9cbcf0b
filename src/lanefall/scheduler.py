"""Frame-driven timers with cancellation handles."""

from __future__ import annotations

import itertools
from typing import Callable


class TimerHandle:
    """A scheduled callback. Once cancelled it never runs again."""

    def __init__(
        self,
        scheduler: Scheduler,
        deadline_ms: float,
        callback: Callable[[], None],
        interval_ms: float | None,
        seq: int,
    ) -> None:
        self._scheduler = scheduler
        self.deadline_ms = deadline_ms
        self.callback = callback
        self.interval_ms = interval_ms
        self.seq = seq
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def remaining_ms(self) -> float:
        if self._cancelled:
            return 0.0
        return max(0.0, self.deadline_ms - self._scheduler.now_ms)

    def cancel(self) -> None:
        self._cancelled = True
        self._scheduler._discard(self)

    def __repr__(self) -> str:
        kind = "every" if self.interval_ms is not None else "once"
        return f"TimerHandle({kind}, deadline={self.deadline_ms:.0f}ms, cancelled={self._cancelled})"


class Scheduler:
    """Owns virtual time and fires callbacks as the host loop advances it.

    Time only moves in `update`, so callbacks run between frames and never
    reenter each other.
    """

    def __init__(self) -> None:
        self.now_ms: float = 0.0
        self._handles: list[TimerHandle] = []
        self._seq = itertools.count()

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        """Run `callback` once, `delay_ms` from now."""
        return self._add(self.now_ms + max(0.0, delay_ms), callback, None)

    def call_every(self, interval_ms: float, callback: Callable[[], None]) -> TimerHandle:
        """Run `callback` every `interval_ms`, first time one interval from now."""
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {interval_ms}")
        return self._add(self.now_ms + interval_ms, callback, interval_ms)

    def update(self, dt: float) -> int:
        """Advance by dt seconds, firing everything that falls due. Returns the fire count."""
        target = self.now_ms + dt * 1000.0
        fired = 0
        while (handle := self._next_due(target)) is not None:
            self.now_ms = max(self.now_ms, handle.deadline_ms)
            if handle.interval_ms is None:
                self._discard(handle)
            else:
                handle.deadline_ms += handle.interval_ms
            handle.callback()
            fired += 1
        self.now_ms = max(self.now_ms, target)
        return fired

    def cancel_all(self) -> None:
        for handle in list(self._handles):
            handle.cancel()

    @property
    def active(self) -> list[TimerHandle]:
        return list(self._handles)

    def _add(self, deadline_ms: float, callback: Callable[[], None], interval_ms: float | None) -> TimerHandle:
        handle = TimerHandle(self, deadline_ms, callback, interval_ms, next(self._seq))
        self._handles.append(handle)
        return handle

    def _next_due(self, target: float) -> TimerHandle | None:
        due = [h for h in self._handles if h.deadline_ms <= target]
        if not due:
            return None
        return min(due, key=lambda h: (h.deadline_ms, h.seq))

    def _discard(self, handle: TimerHandle) -> None:
        if handle in self._handles:
            self._handles.remove(handle)
