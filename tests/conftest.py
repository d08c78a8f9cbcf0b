"""Shared fixtures: a scripted audio transport and small beatmaps."""

import pytest

from lanefall.beatmap import load
from lanefall.session import Session


class FakeAudio:
    """Audio transport whose position only moves when a test advances it."""

    def __init__(self, duration: float = 60.0, fail_play: bool = False) -> None:
        self.current_time = 0.0
        self.duration = duration
        self.playing = False
        self.fail_play = fail_play
        self.calls: list[str] = []

    @property
    def ended(self) -> bool:
        return self.current_time >= self.duration

    def play(self) -> None:
        self.calls.append("play")
        if self.fail_play:
            raise OSError("device busy")
        self.playing = True

    def pause(self) -> None:
        self.calls.append("pause")
        self.playing = False

    def advance(self, seconds: float) -> None:
        if self.playing:
            self.current_time = min(self.duration, self.current_time + seconds)


@pytest.fixture
def audio():
    return FakeAudio()


@pytest.fixture
def simple_beatmap():
    """One note per lane, a second apart, with a 5s intro marker."""
    return load(
        [
            {"key": 0, "start": 1000},
            {"key": 1, "start": 2000},
            {"key": 2, "start": 3000},
            {"key": 3, "start": 4000},
            {"key": 0, "start": 6000},
            {"key": 1, "start": 7000, "end": 7500},
        ],
        skip_time_ms=5000,
    )


@pytest.fixture
def session(simple_beatmap, audio):
    return Session(simple_beatmap, audio)


@pytest.fixture
def run():
    """Advance audio and session together in 50ms frames."""

    def _run(session, audio, seconds: float, frame: float = 0.05):
        events = []
        frames = round(seconds / frame)
        for _ in range(frames):
            audio.advance(frame)
            events.extend(session.update(frame))
        return events

    return _run


@pytest.fixture
def make_audio():
    return FakeAudio
