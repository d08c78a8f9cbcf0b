"""Load beatmap JSON files into the Beatmap model."""

from __future__ import annotations

import json
import logging
import math
import re
from bisect import bisect_right
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from lanefall.config import EngineConfig
from lanefall.models import Note

logger = logging.getLogger(__name__)

_TIMECODE_RE = re.compile(r"^(\d+):(\d{1,2}):(\d{1,3})$")


class MalformedBeatmap(ValueError):
    """Raised when a beatmap or one of its notes cannot be accepted."""


def parse_timecode(value: str | None) -> int | None:
    """Convert a "MM:SS:mmm" string into milliseconds. None passes through."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise MalformedBeatmap(f"Timecode must be a string, got {type(value).__name__}")
    match = _TIMECODE_RE.match(value.strip())
    if match is None:
        raise MalformedBeatmap(f"Malformed timecode {value!r}, expected MM:SS:mmm")
    minutes, seconds, millis = (int(part) for part in match.groups())
    if seconds >= 60:
        raise MalformedBeatmap(f"Malformed timecode {value!r}: seconds out of range")
    return minutes * 60_000 + seconds * 1000 + millis


def fall_progress(note: Note, elapsed_ms: float, scroll_ms: float) -> float:
    """How far a note has travelled down its lane.

    0.0 when it enters the top of the lane (scroll_ms before its start),
    1.0 when it reaches the hit line. Values outside [0, 1] are not clamped.
    """
    return 1.0 - (note.start_ms - elapsed_ms) / scroll_ms


class Beatmap:
    """Immutable, time-ordered note set partitioned by lane."""

    def __init__(
        self,
        notes: Iterable[Note],
        skip_time_ms: float = 0,
        lane_count: int = 4,
        song: Path | None = None,
        title: str = "Untitled",
    ) -> None:
        ordered = sorted(notes, key=lambda n: (n.start_ms, n.lane, n.id))
        self._notes = tuple(ordered)
        self._starts = [n.start_ms for n in ordered]
        self._lanes: dict[int, tuple[Note, ...]] = {
            lane: tuple(n for n in ordered if n.lane == lane) for lane in range(lane_count)
        }
        self._skip_time_ms = skip_time_ms
        self._song = song
        self._title = title

    @property
    def notes(self) -> tuple[Note, ...]:
        return self._notes

    @property
    def lane_ids(self) -> tuple[int, ...]:
        return tuple(self._lanes)

    @property
    def skip_time_ms(self) -> float:
        return self._skip_time_ms

    @property
    def song(self) -> Path | None:
        return self._song

    @property
    def title(self) -> str:
        return self._title

    @property
    def duration_ms(self) -> float:
        if not self._notes:
            return 0.0
        return max(n.end_ms if n.end_ms is not None else n.start_ms for n in self._notes)

    def lane(self, lane: int) -> tuple[Note, ...]:
        return self._lanes.get(lane, ())

    def visible_notes(
        self,
        elapsed_ms: float,
        lookahead_ms: float,
        lookbehind_ms: float = 0.0,
    ) -> list[Note]:
        """Notes that overlap [elapsed - lookbehind, elapsed + lookahead]."""
        stop = bisect_right(self._starts, elapsed_ms + lookahead_ms)
        earliest = elapsed_ms - lookbehind_ms
        visible: list[Note] = []
        for note in self._notes[:stop]:
            tail = note.end_ms if note.end_ms is not None else note.start_ms
            if tail >= earliest:
                visible.append(note)
        return visible

    def __len__(self) -> int:
        return len(self._notes)

    def __repr__(self) -> str:
        return f"Beatmap(title={self._title!r}, notes={len(self._notes)}, skip_time_ms={self._skip_time_ms})"


def _coerce_time(value: Any, what: str) -> float | None:
    if value is None:
        return None
    if isinstance(value, str):
        return parse_timecode(value)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedBeatmap(f"{what} must be a timecode or milliseconds, got {value!r}")
    if isinstance(value, float) and not math.isfinite(value):
        raise MalformedBeatmap(f"{what} must be a finite number, got {value!r}")
    return value


def _build_note(index: int, raw: Any, config: EngineConfig) -> Note:
    if not isinstance(raw, Mapping):
        raise MalformedBeatmap(f"Note {index}: expected an object, got {type(raw).__name__}")

    lane = raw.get("key", raw.get("lane"))
    if isinstance(lane, bool) or not isinstance(lane, int) or lane not in config.lanes:
        raise MalformedBeatmap(f"Note {index}: unrecognized lane {lane!r}")

    if "start" not in raw:
        raise MalformedBeatmap(f"Note {index}: missing start time")
    try:
        start = _coerce_time(raw["start"], "start")
        end = _coerce_time(raw.get("end"), "end")
    except MalformedBeatmap as exc:
        raise MalformedBeatmap(f"Note {index}: {exc}") from None

    if start is None or start < 0:
        raise MalformedBeatmap(f"Note {index}: start must be >= 0, got {start!r}")
    if end is not None and end <= start:
        raise MalformedBeatmap(f"Note {index}: end ({end}) must be after start ({start})")
    if not config.hold_notes:
        end = None

    return Note(id=index, lane=lane, start_ms=start, end_ms=end)


def load(
    raw_notes: Iterable[Any],
    skip_time_ms: float | str | None = 0,
    config: EngineConfig | None = None,
    *,
    song: Path | None = None,
    title: str = "Untitled",
) -> Beatmap:
    """Validate raw note records and build a Beatmap.

    Each record is a mapping with `key` (or `lane`), `start` and optional
    `end`; times are "MM:SS:mmm" strings or millisecond numbers.

    Raises:
        MalformedBeatmap: On an unknown lane, negative start, an end that is
            not after its start, or a malformed time.
    """
    config = config or EngineConfig()
    skip = _coerce_time(skip_time_ms, "skipTime") or 0
    if skip < 0:
        raise MalformedBeatmap(f"skipTime must be >= 0, got {skip}")
    notes = [_build_note(i, raw, config) for i, raw in enumerate(raw_notes)]
    return Beatmap(notes, skip_time_ms=skip, lane_count=config.lane_count, song=song, title=title)


def load_beatmap(file_path: str | Path, config: EngineConfig | None = None) -> Beatmap:
    """Load a beatmap JSON file, or a directory holding `beatmap.json`.

    Raises:
        MalformedBeatmap: If the file cannot be read or parsed.
    """
    path = Path(file_path)
    if path.is_dir():
        title = path.name
        path = path / "beatmap.json"
    else:
        title = path.stem

    try:
        with path.open(encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, json.JSONDecodeError) as exc:
        raise MalformedBeatmap(f"Failed to load {path.name}: {exc}") from exc

    if not isinstance(data, dict):
        raise MalformedBeatmap(f"{path.name}: top level must be an object")
    raw_notes = data.get("notes")
    if not isinstance(raw_notes, list):
        raise MalformedBeatmap(f"{path.name}: 'notes' must be a list")

    song = data.get("song")
    if song is not None and not isinstance(song, str):
        raise MalformedBeatmap(f"{path.name}: 'song' must be a path string")

    beatmap = load(
        raw_notes,
        skip_time_ms=data.get("skipTime", 0),
        config=config,
        song=path.parent / song if song else None,
        title=title,
    )
    logger.info("Loaded beatmap %s: %d notes, skip at %sms", title, len(beatmap), beatmap.skip_time_ms)
    return beatmap
