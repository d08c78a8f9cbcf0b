"""Combo and score tracking derived from the judgment stream."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from typing import Callable

from lanefall.config import reference_score
from lanefall.models import ComboState, JudgmentEvent, JudgmentKind


class ComboTracker:
    """Folds judgment events into a ComboState.

    A hit scores with the combo as it stood before the hit, then extends the
    combo. A miss breaks it.
    """

    def __init__(self, score_formula: Callable[[int], int] = reference_score) -> None:
        self._score_formula = score_formula
        self._state = ComboState()

    @property
    def state(self) -> ComboState:
        return replace(self._state)

    @property
    def combo(self) -> int:
        return self._state.combo

    @property
    def score(self) -> int:
        return self._state.score

    def apply(self, event: JudgmentEvent) -> ComboState:
        s = self._state
        if event.kind is JudgmentKind.HIT:
            s.score += self._score_formula(s.combo)
            s.combo += 1
            s.hits += 1
            s.max_combo = max(s.max_combo, s.combo)
        else:
            s.combo = 0
            s.misses += 1
        s.multiplier = 1 + s.combo / 100
        return self.state

    def apply_all(self, events: Iterable[JudgmentEvent]) -> ComboState:
        for event in events:
            self.apply(event)
        return self.state

    def reset(self) -> None:
        self._state = ComboState()
