"""Playback clock: audio position as a monotonic millisecond timeline."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class AudioTransport(Protocol):
    """What the engine needs from audio playback. Times are in seconds."""

    current_time: float

    @property
    def ended(self) -> bool: ...
    def play(self) -> None: ...
    def pause(self) -> None: ...


class Clock:
    """Reads elapsed time from the audio transport.

    The audio side speaks seconds; everything the clock hands out is
    milliseconds. While running, readings never go backwards; while frozen,
    the last reading is returned unchanged. Only `seek` may move time back.
    """

    def __init__(self, audio: AudioTransport, latency_offset_ms: float = 0.0) -> None:
        self._audio = audio
        self._latency_offset_ms = latency_offset_ms
        self._frozen = True
        self._last_ms = self._read()

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def ended(self) -> bool:
        return bool(self._audio.ended)

    def elapsed_ms(self) -> float:
        if not self._frozen:
            self._last_ms = max(self._last_ms, self._read())
        return self._last_ms

    def seek(self, ms: float) -> None:
        """Jump the timeline so the next `elapsed_ms()` returns `ms`."""
        self._audio.current_time = max(0.0, (ms - self._latency_offset_ms) / 1000.0)
        self._last_ms = ms

    def freeze(self) -> None:
        self.elapsed_ms()
        self._frozen = True

    def thaw(self) -> None:
        self._frozen = False

    def _read(self) -> float:
        return float(self._audio.current_time) * 1000.0 + self._latency_offset_ms
