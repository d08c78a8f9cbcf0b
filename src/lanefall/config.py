"""Global constants and default engine settings."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Callable

LANE_COUNT = 4

# Judgment timing (milliseconds)
TOLERANCE_MS = 100
SWEEP_INTERVAL_MS = 50

# Session timers (milliseconds)
RESUME_COUNTDOWN_MS = 3000
PLAY_COUNTER_INTERVAL_MS = 1000

# Time a note takes to fall from the top of its lane to the hit line
SCROLL_TIME_MS = 500

HIT_SCORE = 100

# One key per lane, left to right
DEFAULT_KEYBINDS = "dfjk"


def reference_score(combo: int) -> int:
    """HIT_SCORE * (1 + combo / 100), floored, computed without floats."""
    return HIT_SCORE * (100 + combo) // 100


def flat_score(combo: int) -> int:
    return HIT_SCORE


SCORE_FORMULAS: dict[str, Callable[[int], int]] = {
    "reference": reference_score,
    "flat": flat_score,
}


@dataclass(frozen=True)
class EngineConfig:
    """Knobs that select one game variant without duplicating the engine."""

    lane_count: int = LANE_COUNT
    tolerance_ms: float = TOLERANCE_MS
    hold_notes: bool = True
    score_formula: Callable[[int], int] = field(default=reference_score, compare=False)
    sweep_interval_ms: float = SWEEP_INTERVAL_MS
    resume_countdown_ms: float = RESUME_COUNTDOWN_MS
    play_counter_interval_ms: float = PLAY_COUNTER_INTERVAL_MS
    scroll_time_ms: float = SCROLL_TIME_MS
    latency_offset_ms: float = 0.0  # added to audio time, negative = earlier

    def __post_init__(self) -> None:
        if self.lane_count <= 0:
            raise ValueError(f"lane_count must be positive, got {self.lane_count}")
        if self.tolerance_ms < 0:
            raise ValueError(f"tolerance_ms must be >= 0, got {self.tolerance_ms}")
        for name in ("sweep_interval_ms", "play_counter_interval_ms", "scroll_time_ms"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if self.resume_countdown_ms < 0:
            raise ValueError(f"resume_countdown_ms must be >= 0, got {self.resume_countdown_ms}")

    @property
    def lanes(self) -> range:
        return range(self.lane_count)

    def with_overrides(self, **overrides) -> EngineConfig:
        """Return a copy with some fields replaced; `score_formula` may be a name."""
        formula = overrides.get("score_formula")
        if isinstance(formula, str):
            try:
                overrides["score_formula"] = SCORE_FORMULAS[formula]
            except KeyError:
                raise ValueError(f"Unknown score formula: {formula}") from None
        return replace(self, **overrides)
