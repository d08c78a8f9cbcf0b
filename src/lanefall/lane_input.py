"""Input sources that turn key and MIDI events into lane events."""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from typing import Protocol, runtime_checkable

import pygame

from lanefall.config import DEFAULT_KEYBINDS
from lanefall.models import LaneInputEvent

try:
    import rtmidi
    _HAS_RTMIDI = True
except ImportError:
    _HAS_RTMIDI = False

logger = logging.getLogger(__name__)

# General MIDI drum pads: kick, snare, closed hi-hat, open hi-hat
DEFAULT_PAD_NOTES: dict[int, int] = {36: 0, 38: 1, 42: 2, 46: 3}


class MidiDeviceError(Exception):
    """Raised when no MIDI device is found or connection fails."""


@runtime_checkable
class InputSource(Protocol):
    """Common interface for keyboard and MIDI input sources."""
    def poll(self) -> LaneInputEvent | None: ...
    def close(self) -> None: ...


def keymap_from_binds(binds: str = DEFAULT_KEYBINDS) -> dict[int, int]:
    """Map pygame key codes to lanes, one character per lane, left to right."""
    keymap: dict[int, int] = {}
    for lane, char in enumerate(binds):
        key = getattr(pygame, f"K_{char.lower()}", None)
        if key is None:
            raise ValueError(f"No pygame key for bind {char!r}")
        if key in keymap:
            raise ValueError(f"Key {char!r} bound to more than one lane")
        keymap[key] = lane
    return keymap


class KeyboardInput:
    """Computer keyboard mapped to lanes."""

    def __init__(self, binds: str = DEFAULT_KEYBINDS) -> None:
        self._key_to_lane = keymap_from_binds(binds)
        self._events: list[LaneInputEvent] = []
        self._held: set[int] = set()

    @property
    def lane_count(self) -> int:
        return len(self._key_to_lane)

    def feed_event(self, event: pygame.event.Event) -> None:
        """Call from the game loop for each pygame event."""
        if event.type not in (pygame.KEYDOWN, pygame.KEYUP):
            return
        lane = self._key_to_lane.get(event.key)
        if lane is None:
            return
        if event.type == pygame.KEYDOWN:
            # Key repeat must not strike a second note
            if lane in self._held:
                return
            self._held.add(lane)
            self._events.append(LaneInputEvent(lane=lane, is_down=True, timestamp=time.time()))
        else:
            self._held.discard(lane)
            self._events.append(LaneInputEvent(lane=lane, is_down=False, timestamp=time.time()))

    def poll(self) -> LaneInputEvent | None:
        if self._events:
            return self._events.pop(0)
        return None

    def close(self) -> None:
        self._events.clear()
        self._held.clear()


class MidiInput:
    """MIDI pads or keys mapped to lanes by note number."""

    def __init__(
        self,
        port_index: int | None = None,
        note_to_lane: Mapping[int, int] | None = None,
    ) -> None:
        if not _HAS_RTMIDI:
            raise MidiDeviceError("python-rtmidi is not installed")
        self.midi_in = rtmidi.MidiIn()
        self._port_index = port_index
        self._note_to_lane = dict(note_to_lane or DEFAULT_PAD_NOTES)
        self._open = False

    @staticmethod
    def list_ports() -> list[str]:
        if not _HAS_RTMIDI:
            return []
        midi_in = rtmidi.MidiIn()
        return midi_in.get_ports()

    def open(self) -> None:
        ports = self.midi_in.get_ports()
        if not ports:
            raise MidiDeviceError("No MIDI input devices found")
        idx = self._port_index if self._port_index is not None else 0
        if not 0 <= idx < len(ports):
            raise MidiDeviceError(f"MIDI port {idx} out of range ({len(ports)} available)")
        self.midi_in.open_port(idx)
        self._open = True
        logger.info("Opened MIDI input %s", ports[idx])

    def poll(self) -> LaneInputEvent | None:
        """Non-blocking poll. Returns None when nothing mapped is waiting."""
        if not self._open:
            return None
        while (msg := self.midi_in.get_message()) is not None:
            data, _delta = msg
            event = self._translate(data)
            if event is not None:
                return event
        return None

    def _translate(self, data: list[int]) -> LaneInputEvent | None:
        if len(data) < 3:
            return None
        status = data[0] & 0xF0
        lane = self._note_to_lane.get(data[1])
        if lane is None:
            return None
        if status == 0x90 and data[2] > 0:
            return LaneInputEvent(lane=lane, is_down=True, timestamp=time.time())
        if status == 0x80 or (status == 0x90 and data[2] == 0):
            return LaneInputEvent(lane=lane, is_down=False, timestamp=time.time())
        return None

    def close(self) -> None:
        if self._open:
            self.midi_in.close_port()
            self._open = False


def drain(source: InputSource) -> list[LaneInputEvent]:
    """Pull every waiting event from a source."""
    events: list[LaneInputEvent] = []
    while (evt := source.poll()) is not None:
        events.append(evt)
    return events
