"""MIDI message values and the interfaces a DSMI connection can use."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

NOTE_ON = 0x90
NOTE_OFF = 0x80
MIDI_CC = 0xB0
# Pitch bend: a 14 bit value split into two 7 bit data bytes, LSB first.
MIDI_PC = 0xE0

PITCH_BEND_MAX = (1 << 14) - 1


class Interface(IntEnum):
    """Transport used to carry MIDI messages."""

    SERIAL = 0
    WIFI = 1


def _check_range(name: str, value: int, upper: int) -> int:
    if not 0 <= value <= upper:
        raise ValueError(f"{name} must be between 0 and {upper}, got {value}")
    return value


@dataclass(frozen=True)
class MidiMessage:
    """A three byte MIDI message: status byte and two data bytes."""

    status: int
    data1: int = 0
    data2: int = 0

    def __post_init__(self) -> None:
        _check_range("status", self.status, 0xFF)
        _check_range("data1", self.data1, 0xFF)
        _check_range("data2", self.data2, 0xFF)

    def to_bytes(self) -> bytes:
        """Return the message as it travels on the wire."""
        return bytes((self.status, self.data1, self.data2))

    @classmethod
    def from_bytes(cls, data: bytes) -> "MidiMessage":
        """Build a message from the first three bytes of ``data``."""
        raw = bytes(data)
        if len(raw) < 3:
            raise ValueError(f"a MIDI message needs 3 bytes, got {len(raw)}")
        return cls(raw[0], raw[1], raw[2])

    @property
    def command(self) -> int:
        """The message type, with the channel bits cleared."""
        return self.status & 0xF0

    @property
    def channel(self) -> int:
        """The MIDI channel (0-15) carried in the status byte."""
        return self.status & 0x0F


def _status(command: int, channel: int) -> int:
    return command | _check_range("channel", channel, 15)


def note_on(channel: int, note: int, velocity: int) -> MidiMessage:
    """Key press: ``note`` struck with ``velocity``."""
    return MidiMessage(
        _status(NOTE_ON, channel),
        _check_range("note", note, 127),
        _check_range("velocity", velocity, 127),
    )


def note_off(channel: int, note: int, velocity: int = 0) -> MidiMessage:
    """Key release: ``note`` released with ``velocity``."""
    return MidiMessage(
        _status(NOTE_OFF, channel),
        _check_range("note", note, 127),
        _check_range("velocity", velocity, 127),
    )


def control_change(channel: int, control: int, value: int) -> MidiMessage:
    """Set controller number ``control`` to ``value``."""
    return MidiMessage(
        _status(MIDI_CC, channel),
        _check_range("control", control, 127),
        _check_range("value", value, 127),
    )


def pitch_bend(channel: int, value: int) -> MidiMessage:
    """Pitch bend with a 14 bit ``value``; 8192 is the centre."""
    _check_range("value", value, PITCH_BEND_MAX)
    return MidiMessage(_status(MIDI_PC, channel), value & 0x7F, (value >> 7) & 0x7F)