"""Tests for keyboard and MIDI lane input mapping."""

from types import SimpleNamespace

import pygame
import pytest

from lanefall import lane_input
from lanefall.lane_input import InputSource, KeyboardInput, drain, keymap_from_binds


def _key(kind, key):
    return pygame.event.Event(kind, key=key)


def test_default_binds():
    assert keymap_from_binds() == {pygame.K_d: 0, pygame.K_f: 1, pygame.K_j: 2, pygame.K_k: 3}


def test_duplicate_bind_rejected():
    with pytest.raises(ValueError):
        keymap_from_binds("ddjk")


def test_keyboard_emits_lane_events():
    kb = KeyboardInput()
    assert isinstance(kb, InputSource)
    kb.feed_event(_key(pygame.KEYDOWN, pygame.K_j))
    kb.feed_event(_key(pygame.KEYUP, pygame.K_j))
    events = drain(kb)
    assert [(e.lane, e.is_down) for e in events] == [(2, True), (2, False)]
    assert kb.poll() is None


def test_key_repeat_ignored_until_release():
    kb = KeyboardInput()
    kb.feed_event(_key(pygame.KEYDOWN, pygame.K_d))
    kb.feed_event(_key(pygame.KEYDOWN, pygame.K_d))
    kb.feed_event(_key(pygame.KEYUP, pygame.K_d))
    kb.feed_event(_key(pygame.KEYDOWN, pygame.K_d))
    assert [e.is_down for e in drain(kb)] == [True, False, True]


def test_unbound_keys_and_other_events_ignored():
    kb = KeyboardInput()
    kb.feed_event(_key(pygame.KEYDOWN, pygame.K_q))
    kb.feed_event(pygame.event.Event(pygame.MOUSEBUTTONDOWN, button=1, pos=(0, 0)))
    assert kb.poll() is None


def test_custom_binds():
    kb = KeyboardInput(binds="asdjkl")
    assert kb.lane_count == 6
    kb.feed_event(_key(pygame.KEYDOWN, pygame.K_l))
    assert kb.poll().lane == 5


class _StubMidiIn:
    def __init__(self, ports=("Pad Kit",), messages=()):
        self.ports = list(ports)
        self.messages = list(messages)
        self.opened = None

    def get_ports(self):
        return self.ports

    def open_port(self, idx):
        self.opened = idx

    def get_message(self):
        if self.messages:
            return self.messages.pop(0), 0.0
        return None

    def close_port(self):
        self.opened = None


@pytest.fixture
def midi(monkeypatch):
    monkeypatch.setattr(lane_input, "_HAS_RTMIDI", True)
    monkeypatch.setattr(lane_input, "rtmidi", SimpleNamespace(MidiIn=_StubMidiIn), raising=False)
    return lane_input.MidiInput()


def test_midi_translates_pads_to_lanes(midi):
    assert midi._translate([0x99, 38, 100]).lane == 1
    assert midi._translate([0x99, 38, 100]).is_down
    assert not midi._translate([0x89, 42, 0]).is_down
    assert not midi._translate([0x90, 46, 0]).is_down
    assert midi._translate([0x90, 60, 100]) is None
    assert midi._translate([0xB0, 36, 127]) is None
    assert midi._translate([0x90, 36]) is None


def test_midi_poll_skips_unmapped_messages(midi):
    midi.midi_in.messages = [[0x90, 60, 100], [0x90, 36, 90], [0x80, 36, 0]]
    assert midi.poll() is None  # not opened yet
    midi.open()
    assert midi.midi_in.opened == 0
    assert [(e.lane, e.is_down) for e in drain(midi)] == [(0, True), (0, False)]
    midi.close()
    assert midi.midi_in.opened is None
    assert midi.poll() is None


def test_midi_open_errors(midi):
    midi.midi_in.ports = []
    with pytest.raises(lane_input.MidiDeviceError):
        midi.open()


def test_midi_requires_backend(monkeypatch):
    monkeypatch.setattr(lane_input, "_HAS_RTMIDI", False)
    with pytest.raises(lane_input.MidiDeviceError):
        lane_input.MidiInput()
    assert lane_input.MidiInput.list_ports() == []
