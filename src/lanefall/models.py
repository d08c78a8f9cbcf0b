"""Core data models shared across the engine."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum, auto
from types import MappingProxyType


class NoteState(Enum):
    PENDING = auto()
    HIT = auto()
    MISSED = auto()


class JudgmentKind(Enum):
    HIT = auto()
    MISS = auto()


class SessionState(Enum):
    NOT_STARTED = auto()
    RUNNING = auto()
    PAUSED = auto()
    RESUMING = auto()
    FINISHED = auto()


@dataclass(eq=False)
class Note:
    """A single judgable beat in one lane.

    Compared by identity: two notes at the same time in the same lane are
    still different notes.
    """

    id: int  # index in the beatmap file
    lane: int
    start_ms: float
    end_ms: float | None = None  # set for hold-notes
    state: NoteState = NoteState.PENDING

    @property
    def is_hold(self) -> bool:
        return self.end_ms is not None

    @property
    def is_pending(self) -> bool:
        return self.state is NoteState.PENDING


@dataclass(frozen=True)
class JudgmentEvent:
    lane: int
    note: Note
    kind: JudgmentKind
    at_ms: float
    offset_ms: float  # negative = early, positive = late


@dataclass
class ComboState:
    combo: int = 0
    score: int = 0
    multiplier: float = 1.0
    max_combo: int = 0
    hits: int = 0
    misses: int = 0

    @property
    def accuracy_pct(self) -> float:
        total = self.hits + self.misses
        return round(self.hits / total * 100.0, 1) if total > 0 else 0.0


@dataclass(frozen=True)
class LaneInputEvent:
    """A key press or release already mapped to a lane."""

    lane: int
    is_down: bool
    timestamp: float  # seconds, wall clock of the input device


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of a session for the render collaborator.

    `combo` is a copy of the tracker state and `last_judgments` a read-only
    mapping, so nothing a renderer does to a snapshot reaches the session.
    """

    state: SessionState
    elapsed_ms: float
    combo: ComboState
    held_lanes: frozenset[int] = frozenset()
    last_judgments: Mapping[int, JudgmentEvent] = field(default_factory=lambda: MappingProxyType({}))
    resume_remaining_ms: float | None = None
    play_seconds: int = 0
    can_skip_intro: bool = False
    pending_notes: int = 0
