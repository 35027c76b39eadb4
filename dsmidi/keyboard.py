"""A touch screen piano keyboard that plays MIDI notes, pitch bend and pressure."""

from __future__ import annotations

from typing import Callable, Optional

from dsmidi.midi import MIDI_CC, MIDI_PC, NOTE_OFF, NOTE_ON

Writer = Callable[[int, int, int], None]

# Which note lies under each tile of the keyboard, row by row. The upper
# rows hold the black keys, the two lower rows only the white ones.
KEYB_HIT = (
    (0, 1, 1, 3, 3, 4, 5, 6, 6, 8, 8, 10, 10, 11, 12, 13, 13, 15, 15, 16, 17, 18, 18, 20, 20, 22, 22, 23),
    (0, 1, 1, 3, 3, 4, 5, 6, 6, 8, 8, 10, 10, 11, 12, 13, 13, 15, 15, 16, 17, 18, 18, 20, 20, 22, 22, 23),
    (0, 1, 1, 3, 3, 4, 5, 6, 6, 8, 8, 10, 10, 11, 12, 13, 13, 15, 15, 16, 17, 18, 18, 20, 20, 22, 22, 23),
    (0, 0, 2, 2, 4, 4, 5, 5, 7, 7, 9, 9, 11, 11, 12, 12, 14, 14, 16, 16, 17, 17, 19, 19, 21, 21, 23, 23),
    (0, 0, 2, 2, 4, 4, 5, 5, 7, 7, 9, 9, 11, 11, 12, 12, 14, 14, 16, 16, 17, 17, 19, 19, 21, 21, 23, 23),
)

HALF_TONES = (1, 3, 6, 8, 10, 13, 15, 18, 20, 22)

# Keyboard position and size, in 8x8 pixel tiles.
KEYB_X = 2
KEYB_Y = 10
KEYB_WIDTH = 28
KEYB_HEIGHT = 5
TILE_SIZE = 8

MAX_OCTAVE = 9
MAX_CHANNEL = 15
DEFAULT_OCTAVE = 2
VELOCITY = 127

FULL_TONE_PALETTE = 1
HALF_TONE_PALETTE = 2

# The demo tune: one entry per row, REST where nothing new starts.
REST = 255
SMOKE_NOTES = (
    2, REST, 5, REST, 7, REST, REST, 2, REST, 5, REST, 8, 7, REST,
    REST, REST, 2, REST, 5, REST, 7, REST, REST, 5, REST, 2, REST, REST,
)
TICKS_PER_ROW = 200


def is_half_tone(note: int) -> bool:
    """True if ``note`` (0-23 within the two octaves) is a black key."""
    return note in HALF_TONES


class Keyboard:
    """Two octaves of keys with an adjustable base octave and MIDI channel."""

    def __init__(self, write: Writer) -> None:
        self.write = write
        self.channel = 0
        self.base_octave = DEFAULT_OCTAVE
        self.pen_is_down = False
        self.pen_origin = (0, 0)
        self.current_note = 0
        self.last_note = 0
        # (note, palette) of the highlighted key, or None.
        self.highlight: Optional[tuple[int, int]] = None

    def play(self, note: int) -> None:
        """Strike ``note`` of the keyboard at full velocity."""
        self.write(NOTE_ON | self.channel, note + 12 * self.base_octave, VELOCITY)

    def stop(self, note: int) -> None:
        """Release ``note`` of the keyboard."""
        self.write(NOTE_OFF | self.channel, note + 12 * self.base_octave, 0)

    def pitch_change(self, value: int) -> None:
        """Bend the pitch by ``value``, clamped to -64..63; 0 is the centre."""
        clamped = max(-64, min(63, value)) + 64
        scaled = clamped * 128
        self.write(MIDI_PC + self.channel, scaled & 0x7F, (scaled >> 7) & 0x7F)

    def pressure_change(self, value: int) -> None:
        """Send ``value``, clamped to 127, on controller 0."""
        if value < 0:
            raise ValueError(f"pressure cannot be negative, got {value}")
        self.write(MIDI_CC + self.channel, 0, min(value, 127))

    def note_at(self, x: int, y: int) -> Optional[int]:
        """Keyboard note under screen pixel (``x``, ``y``), or None if off the keys."""
        inside = (
            TILE_SIZE * KEYB_X < x < TILE_SIZE * (KEYB_X + KEYB_WIDTH)
            and TILE_SIZE * KEYB_Y < y < TILE_SIZE * (KEYB_Y + KEYB_HEIGHT)
        )
        if not inside:
            return None
        return KEYB_HIT[y // TILE_SIZE - KEYB_Y][x // TILE_SIZE - KEYB_X]

    def pen_down(self, x: int, y: int) -> Optional[int]:
        """Touch the screen; plays and returns the note hit, if any."""
        self.pen_is_down = True
        self.pen_origin = (x, y)
        note = self.note_at(x, y)
        if note is not None:
            self.current_note = note + 12 * self.base_octave
            self.last_note = note
            palette = HALF_TONE_PALETTE if is_half_tone(note) else FULL_TONE_PALETTE
            self.highlight = (note, palette)
            self.play(note)
        return note

    def pen_move(self, x: int, y: int) -> None:
        """Drag the pen: up and down bend the pitch, to the right adds pressure."""
        if not self.pen_is_down:
            return
        x0, y0 = self.pen_origin
        dx = max(0, x - x0)
        dy = y - y0
        self.pitch_change(-dy)
        self.pressure_change(dx)

    def pen_up(self) -> None:
        """Lift the pen: release the last note and recentre the pitch."""
        self.pen_is_down = False
        self.highlight = None
        self.stop(self.last_note)
        self.pitch_change(0)

    def octave_up(self) -> int:
        if self.base_octave < MAX_OCTAVE:
            self.base_octave += 1
        return self.base_octave

    def octave_down(self) -> int:
        if self.base_octave > 0:
            self.base_octave -= 1
        return self.base_octave

    def channel_up(self) -> int:
        if self.channel < MAX_CHANNEL:
            self.channel += 1
        return self.channel

    def channel_down(self) -> int:
        if self.channel > 0:
            self.channel -= 1
        return self.channel


class SmokePlayer:
    """Plays the demo tune on a keyboard, one row every TICKS_PER_ROW ticks."""

    def __init__(self, keyboard: Keyboard) -> None:
        self.keyboard = keyboard
        self.row = 0
        self.ticks = 0
        self.last_note: Optional[int] = None
        self.running = True

    def tick(self) -> bool:
        """Advance one tick; returns whether the tune is still playing."""
        if not self.running:
            return False
        if self.ticks == 0:
            note = SMOKE_NOTES[self.row]
            if note != REST:
                if self.row > 0 and self.last_note is not None:
                    self.keyboard.stop(self.last_note)
                self.keyboard.play(note)
                self.last_note = note
            self.row += 1
        if self.row == len(SMOKE_NOTES):
            self.running = False
        self.ticks = (self.ticks + 1) % TICKS_PER_ROW
        return self.running