"""Hit judgment: match key presses to notes and sweep for misses."""

from __future__ import annotations

import logging

from lanefall.beatmap import Beatmap
from lanefall.config import TOLERANCE_MS
from lanefall.models import JudgmentEvent, JudgmentKind, Note, NoteState

logger = logging.getLogger(__name__)


def within_tolerance(note: Note, at_ms: float, tolerance_ms: float = TOLERANCE_MS) -> bool:
    """True if a press at `at_ms` lands inside the note's hit window."""
    return abs(at_ms - note.start_ms) <= tolerance_ms


def window_closed(note: Note, at_ms: float, tolerance_ms: float = TOLERANCE_MS) -> bool:
    """True once `at_ms` is past the late edge of the note's hit window."""
    return at_ms - note.start_ms > tolerance_ms


class JudgmentEngine:
    """Per-lane judge over a beatmap.

    Each lane keeps a cursor at its earliest pending note (the head). Only the
    head is ever judged, so notes in a lane resolve strictly in time order.
    """

    def __init__(self, beatmap: Beatmap, tolerance_ms: float = TOLERANCE_MS) -> None:
        self._beatmap = beatmap
        self._tolerance_ms = tolerance_ms
        self._cursors: dict[int, int] = {lane: 0 for lane in beatmap.lane_ids}
        for lane in self._cursors:
            self._skip_resolved(lane)

    @property
    def tolerance_ms(self) -> float:
        return self._tolerance_ms

    @property
    def pending_count(self) -> int:
        return sum(len(self._beatmap.lane(lane)) - idx for lane, idx in self._cursors.items())

    def head(self, lane: int) -> Note | None:
        """Earliest pending note in a lane, or None when the lane is done."""
        idx = self._cursors.get(lane)
        if idx is None:
            return None
        notes = self._beatmap.lane(lane)
        return notes[idx] if idx < len(notes) else None

    def on_key_down(self, lane: int, at_ms: float) -> JudgmentEvent | None:
        """Judge a press against the lane's head note.

        Returns a HIT event, or None for a press that matches nothing.
        """
        note = self.head(lane)
        if note is None or not within_tolerance(note, at_ms, self._tolerance_ms):
            logger.debug("Stray press on lane %s at %.0fms", lane, at_ms)
            return None
        return self._resolve(note, JudgmentKind.HIT, at_ms)

    def sweep(self, at_ms: float) -> list[JudgmentEvent]:
        """Mark every head whose window has closed by `at_ms` as missed."""
        events: list[JudgmentEvent] = []
        for lane in self._cursors:
            while (note := self.head(lane)) is not None and window_closed(note, at_ms, self._tolerance_ms):
                events.append(self._resolve(note, JudgmentKind.MISS, at_ms))
        return _in_note_order(events)

    def resolve_before(self, cutoff_ms: float, at_ms: float) -> list[JudgmentEvent]:
        """Force every pending note starting before `cutoff_ms` to missed."""
        events: list[JudgmentEvent] = []
        for lane in self._cursors:
            while (note := self.head(lane)) is not None and note.start_ms < cutoff_ms:
                events.append(self._resolve(note, JudgmentKind.MISS, at_ms))
        return _in_note_order(events)

    def resolve_all(self, at_ms: float) -> list[JudgmentEvent]:
        """Force every remaining pending note to missed."""
        events: list[JudgmentEvent] = []
        for lane in self._cursors:
            while (note := self.head(lane)) is not None:
                events.append(self._resolve(note, JudgmentKind.MISS, at_ms))
        return _in_note_order(events)

    def _resolve(self, note: Note, kind: JudgmentKind, at_ms: float) -> JudgmentEvent:
        note.state = NoteState.HIT if kind is JudgmentKind.HIT else NoteState.MISSED
        self._cursors[note.lane] += 1
        self._skip_resolved(note.lane)
        return JudgmentEvent(
            lane=note.lane,
            note=note,
            kind=kind,
            at_ms=at_ms,
            offset_ms=at_ms - note.start_ms,
        )

    def _skip_resolved(self, lane: int) -> None:
        notes = self._beatmap.lane(lane)
        idx = self._cursors[lane]
        while idx < len(notes) and not notes[idx].is_pending:
            idx += 1
        self._cursors[lane] = idx


def _in_note_order(events: list[JudgmentEvent]) -> list[JudgmentEvent]:
    return sorted(events, key=lambda e: (e.note.start_ms, e.lane, e.note.id))
