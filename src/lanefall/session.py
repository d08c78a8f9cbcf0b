"""Play session: lifecycle state machine over clock, judge, tracker and timers."""

from __future__ import annotations

import logging
from collections import deque
from pathlib import Path
from types import MappingProxyType
from typing import Callable

from lanefall.beatmap import Beatmap, load_beatmap
from lanefall.clock import AudioTransport, Clock
from lanefall.config import EngineConfig
from lanefall.judgment import JudgmentEngine
from lanefall.models import (
    ComboState,
    JudgmentEvent,
    LaneInputEvent,
    SessionSnapshot,
    SessionState,
)
from lanefall.scheduler import Scheduler, TimerHandle
from lanefall.scoring import ComboTracker

logger = logging.getLogger(__name__)

RECENT_EVENTS = 32


class SessionStartError(RuntimeError):
    """Raised when the audio transport refuses to start or resume playback."""


class Session:
    """One play-through of a beatmap.

    The host loop calls `update(dt)` once per frame and forwards lane input
    to `handle_input`. Sweeps and the play-time counter only exist as timers
    while the session is RUNNING; they are cancelled, not skipped, otherwise.
    Calls that are not legal in the current state are ignored.
    """

    def __init__(
        self,
        beatmap: Beatmap,
        audio: AudioTransport,
        config: EngineConfig | None = None,
        *,
        scheduler: Scheduler | None = None,
        listener: Callable[[JudgmentEvent], None] | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.beatmap = beatmap
        self.audio = audio
        self.clock = Clock(audio, self.config.latency_offset_ms)
        self.scheduler = scheduler or Scheduler()
        self.engine = JudgmentEngine(beatmap, self.config.tolerance_ms)
        self.tracker = ComboTracker(self.config.score_formula)
        self.play_seconds = 0
        self._listener = listener
        self._state = SessionState.NOT_STARTED
        self._sweep_timer: TimerHandle | None = None
        self._counter_timer: TimerHandle | None = None
        self._resume_timer: TimerHandle | None = None
        self._held: set[int] = set()
        self._last_judgments: dict[int, JudgmentEvent] = {}
        self._recent: deque[JudgmentEvent] = deque(maxlen=RECENT_EVENTS)
        self._frame_events: list[JudgmentEvent] = []

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def combo(self) -> ComboState:
        return self.tracker.state

    @property
    def can_skip_intro(self) -> bool:
        return (
            self._state is SessionState.RUNNING
            and self.clock.elapsed_ms() < self.beatmap.skip_time_ms
        )

    # Lifecycle

    def start(self) -> None:
        if self._state is not SessionState.NOT_STARTED:
            logger.debug("start() ignored in state %s", self._state.name)
            return
        try:
            self.audio.play()
        except Exception as exc:
            raise SessionStartError(f"Could not start playback of {self.beatmap.title}: {exc}") from exc
        self.clock.thaw()
        self._start_timers()
        self._state = SessionState.RUNNING
        logger.info("Session started: %s", self.beatmap.title)

    def pause(self) -> None:
        if self._state is SessionState.RUNNING:
            self.audio.pause()
            self.clock.freeze()
            self._stop_timers()
            self._state = SessionState.PAUSED
            logger.info("Paused at %.0fms", self.clock.elapsed_ms())
        elif self._state is SessionState.RESUMING:
            self._cancel_resume()
            self._state = SessionState.PAUSED
            logger.info("Resume countdown cancelled")
        else:
            logger.debug("pause() ignored in state %s", self._state.name)

    def resume(self) -> None:
        if self._state is not SessionState.PAUSED:
            logger.debug("resume() ignored in state %s", self._state.name)
            return
        self._cancel_resume()
        handle = self.scheduler.call_later(
            self.config.resume_countdown_ms,
            lambda: self._complete_resume(handle),
        )
        self._resume_timer = handle
        self._state = SessionState.RESUMING
        logger.info("Resuming in %.0fms", self.config.resume_countdown_ms)

    def skip_intro(self) -> list[JudgmentEvent]:
        """Seek to the end of the intro; notes before it count as missed."""
        if not self.can_skip_intro:
            logger.debug("skip_intro() ignored in state %s", self._state.name)
            return []
        skip_ms = self.beatmap.skip_time_ms
        self.clock.seek(skip_ms)
        events = self.engine.resolve_before(skip_ms, skip_ms)
        self._dispatch(events)
        logger.info("Skipped intro to %.0fms, %d notes dropped", skip_ms, len(events))
        return events

    def finish(self) -> list[JudgmentEvent]:
        if self._state is SessionState.FINISHED:
            return []
        if self._state is SessionState.RUNNING:
            self.audio.pause()
        self._stop_timers()
        self._cancel_resume()
        self.clock.freeze()
        events = self.engine.resolve_all(self.clock.elapsed_ms())
        self._dispatch(events)
        self._state = SessionState.FINISHED
        state = self.tracker.state
        logger.info(
            "Session finished: score=%d max_combo=%d accuracy=%.1f%%",
            state.score, state.max_combo, state.accuracy_pct,
        )
        return events

    # Frame and input

    def update(self, dt: float) -> list[JudgmentEvent]:
        """Advance timers by dt seconds. Returns the judgments made this frame."""
        self._frame_events = []
        if self._state is SessionState.FINISHED:
            return []
        self.scheduler.update(dt)
        if self._state is SessionState.RUNNING and self.clock.ended:
            self.finish()
        events, self._frame_events = self._frame_events, []
        return events

    def handle_input(self, event: LaneInputEvent) -> JudgmentEvent | None:
        if event.lane not in self.config.lanes:
            logger.debug("Input on unknown lane %s ignored", event.lane)
            return None
        if not event.is_down:
            self._held.discard(event.lane)
            return None
        if self._state is not SessionState.RUNNING:
            return None
        self._held.add(event.lane)
        judgment = self.engine.on_key_down(event.lane, self.clock.elapsed_ms())
        if judgment is not None:
            self._dispatch([judgment])
        return judgment

    def recent_events(self) -> list[JudgmentEvent]:
        return list(self._recent)

    def snapshot(self) -> SessionSnapshot:
        resume_remaining = None
        if self._state is SessionState.RESUMING and self._resume_timer is not None:
            resume_remaining = self._resume_timer.remaining_ms
        return SessionSnapshot(
            state=self._state,
            elapsed_ms=self.clock.elapsed_ms(),
            combo=self.tracker.state,
            held_lanes=frozenset(self._held),
            last_judgments=MappingProxyType(dict(self._last_judgments)),
            resume_remaining_ms=resume_remaining,
            play_seconds=self.play_seconds,
            can_skip_intro=self.can_skip_intro,
            pending_notes=self.engine.pending_count,
        )

    # Internals

    def _complete_resume(self, handle: TimerHandle) -> None:
        if handle is not self._resume_timer or self._state is not SessionState.RESUMING:
            return
        self._resume_timer = None
        try:
            self.audio.play()
        except Exception as exc:
            self._state = SessionState.PAUSED
            logger.warning("Playback failed on resume, staying paused: %s", exc)
            raise SessionStartError(f"Could not resume playback of {self.beatmap.title}: {exc}") from exc
        self.clock.thaw()
        self._start_timers()
        self._state = SessionState.RUNNING
        logger.info("Resumed at %.0fms", self.clock.elapsed_ms())

    def _cancel_resume(self) -> None:
        if self._resume_timer is not None:
            self._resume_timer.cancel()
            self._resume_timer = None

    def _start_timers(self) -> None:
        self._stop_timers()
        self._sweep_timer = self.scheduler.call_every(self.config.sweep_interval_ms, self._sweep)
        self._counter_timer = self.scheduler.call_every(
            self.config.play_counter_interval_ms, self._count_play_time,
        )

    def _stop_timers(self) -> None:
        for timer in (self._sweep_timer, self._counter_timer):
            if timer is not None:
                timer.cancel()
        self._sweep_timer = None
        self._counter_timer = None

    def _sweep(self) -> None:
        self._dispatch(self.engine.sweep(self.clock.elapsed_ms()))

    def _count_play_time(self) -> None:
        self.play_seconds += 1

    def _dispatch(self, events: list[JudgmentEvent]) -> None:
        for event in events:
            self.tracker.apply(event)
            self._last_judgments[event.lane] = event
            self._recent.append(event)
            self._frame_events.append(event)
            if self._listener is not None:
                self._listener(event)


def open_session(file_path: str | Path, config: EngineConfig | None = None, **kwargs) -> Session:
    """Load a beatmap file and pair it with pygame audio for its song."""
    from lanefall.audio import PygameAudio

    beatmap = load_beatmap(file_path, config)
    if beatmap.song is None:
        raise SessionStartError(f"Beatmap {beatmap.title} names no song")
    return Session(beatmap, PygameAudio(beatmap.song), config, **kwargs)
