"""A small synthesiser that turns MIDI notes into square-wave channel settings."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

from dsmidi.midi import NOTE_OFF, NOTE_ON

DELTA_ATTACK = 40
HEIGHT_ATTACK = 127
DELTA_DECAY = 40
HEIGHT_DECAY = 32
LENGTH_SUSTAIN = 15
DELTA_RELEASE = 2

NUM_CHANNELS = 8
FIRST_HARDWARE_CHANNEL = 8
CENTER_PAN = 64

LINEAR_FREQ_TABLE_MIN_NOTE = 0
LINEAR_FREQ_TABLE_MAX_NOTE = 127

LINEAR_FREQ_TABLE = (
    261, 277, 293, 311, 329, 349, 369, 391, 415, 439, 466, 493,
    523, 554, 587, 622, 659, 698, 739, 783, 830, 879, 932, 987,
    1046, 1108, 1174, 1244, 1318, 1396, 1479, 1567, 1661, 1759, 1864, 1975,
    2093, 2217, 2349, 2489, 2637, 2793, 2959, 3135, 3322, 3519, 3729, 3951,
    4186, 4434, 4698, 4978, 5274, 5587, 5919, 6271, 6644, 7039, 7458, 7902,
    8372, 8869, 9397, 9956, 10548, 11175, 11839, 12543, 13289, 14079, 14917, 15804,
    16744, 17739, 18794, 19912, 21096, 22350, 23679, 25087, 26579, 28159, 29834, 31608,
    33488, 35479, 37589, 39824, 42192, 44701, 47359, 50175, 53159, 56319, 59668, 63217,
    66976, 70958, 75178, 79648, 84384, 89402, 94718, 100350, 106318, 112639, 119337, 126434,
    133952, 141917, 150356, 159297, 168769, 178804, 189437, 200701, 212636, 225279, 238675, 252868,
    267904, 283835, 300712, 318594, 337538, 357609, 378874, 40140,
)


def note_frequency(note: int) -> int:
    """Frequency table entry for MIDI ``note`` (0-127)."""
    if not LINEAR_FREQ_TABLE_MIN_NOTE <= note <= LINEAR_FREQ_TABLE_MAX_NOTE:
        raise ValueError(f"note must be between 0 and 127, got {note}")
    return LINEAR_FREQ_TABLE[note]


class EnvelopeState(IntEnum):
    INACTIVE = 0
    ATTACK = 1
    DECAY = 2
    SUSTAIN = 3
    RELEASE = 4


@dataclass
class ChannelState:
    """Envelope and pitch of one synthesiser voice."""

    vol: int = 127
    duty: int = 0
    freq: int = 0
    envelope: int = 0
    sustain: int = 0
    state: EnvelopeState = EnvelopeState.INACTIVE

    def _advance(self) -> None:
        if self.state is EnvelopeState.ATTACK:
            self.envelope += DELTA_ATTACK
            if self.envelope >= HEIGHT_ATTACK:
                self.envelope = HEIGHT_ATTACK
                self.state = EnvelopeState.DECAY
        elif self.state is EnvelopeState.DECAY:
            self.envelope -= DELTA_DECAY
            if self.envelope <= HEIGHT_DECAY:
                self.envelope = HEIGHT_DECAY
                self.state = EnvelopeState.SUSTAIN
                self.sustain = 0
        elif self.state is EnvelopeState.SUSTAIN:
            self.sustain += 1
            if self.sustain == LENGTH_SUSTAIN:
                self.state = EnvelopeState.RELEASE
        elif self.state is EnvelopeState.RELEASE:
            if self.envelope < DELTA_RELEASE:
                self.state = EnvelopeState.INACTIVE
            else:
                self.envelope -= DELTA_RELEASE


@dataclass(frozen=True)
class ChannelOutput:
    """What one sounding voice asks of its hardware channel for this frame."""

    hardware_channel: int
    frequency: int
    volume: int
    pan: int
    duty: int


class Psg:
    """Eight square-wave voices driven by MIDI channels 0-7."""

    def __init__(self) -> None:
        self.channels = [ChannelState() for _ in range(NUM_CHANNELS)]

    def update(self) -> list[ChannelOutput]:
        """Advance every envelope by one frame and return the sounding voices."""
        outputs = []
        for index, channel in enumerate(self.channels):
            channel._advance()
            if channel.state is not EnvelopeState.INACTIVE:
                outputs.append(
                    ChannelOutput(
                        hardware_channel=index + FIRST_HARDWARE_CHANNEL,
                        frequency=channel.freq,
                        volume=channel.envelope,
                        pan=CENTER_PAN,
                        duty=index + 1,
                    )
                )
        return outputs

    def midi(self, status: int, data1: int, data2: int) -> None:
        """Handle a MIDI message; only note on/off on channels 0-7 are used."""
        command = status & 0xF0
        channel = status & 0x0F
        if channel >= NUM_CHANNELS:
            return
        if command == NOTE_ON:
            self.note_on(channel, data1, data2)
        elif command == NOTE_OFF:
            self.note_off(channel)

    def _channel(self, channel: int) -> ChannelState:
        if not 0 <= channel < NUM_CHANNELS:
            raise ValueError(f"channel must be between 0 and {NUM_CHANNELS - 1}")
        return self.channels[channel]

    def note_on(self, channel: int, note: int, velocity: int) -> None:
        """Start ``note`` on ``channel`` from a silent attack."""
        state = self._channel(channel)
        frequency = note_frequency(note)
        state.envelope = 0
        state.state = EnvelopeState.ATTACK
        state.freq = frequency

    def note_off(self, channel: int) -> None:
        """Move a sounding ``channel`` into its release."""
        state = self._channel(channel)
        if state.state is not EnvelopeState.INACTIVE:
            state.state = EnvelopeState.RELEASE