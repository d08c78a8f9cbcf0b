"""Song playback via pygame.mixer.music."""

from __future__ import annotations

from pathlib import Path

import pygame


class PygameAudio:
    """Audio transport over the pygame music stream.

    pygame reports position relative to the last `play()` call, so seeks
    restart the stream at the requested offset and the offset is tracked
    here. Times are in seconds.
    """

    def __init__(self, song_path: str | Path, volume: float = 1.0) -> None:
        if not pygame.mixer.get_init():
            pygame.mixer.init()
        self._path = Path(song_path)
        pygame.mixer.music.load(str(self._path))
        pygame.mixer.music.set_volume(max(0.0, min(1.0, volume)))
        self._offset = 0.0  # seconds into the song at the last (re)start
        self._position = 0.0  # last known position while not playing
        self._started = False
        self._paused = False
        self._seek_pending = False

    @property
    def current_time(self) -> float:
        if not self._started or self._paused:
            return self._position
        pos_ms = pygame.mixer.music.get_pos()
        if pos_ms < 0:
            return self._position
        return self._offset + pos_ms / 1000.0

    @current_time.setter
    def current_time(self, seconds: float) -> None:
        seconds = max(0.0, float(seconds))
        self._position = seconds
        if self._started and not self._paused:
            self._restart(seconds)
        else:
            self._seek_pending = True

    @property
    def ended(self) -> bool:
        return self._started and not self._paused and not pygame.mixer.music.get_busy()

    def play(self) -> None:
        if not self._started or self._seek_pending:
            self._restart(self._position)
        elif self._paused:
            pygame.mixer.music.unpause()
        self._started = True
        self._paused = False

    def pause(self) -> None:
        if not self._started or self._paused:
            return
        self._position = self.current_time
        pygame.mixer.music.pause()
        self._paused = True

    def set_volume(self, volume: float) -> None:
        pygame.mixer.music.set_volume(max(0.0, min(1.0, volume)))

    def stop(self) -> None:
        pygame.mixer.music.stop()
        self._started = False
        self._paused = False
        self._seek_pending = False
        self._offset = 0.0
        self._position = 0.0

    def _restart(self, seconds: float) -> None:
        pygame.mixer.music.play(start=seconds)
        self._offset = seconds
        self._seek_pending = False
