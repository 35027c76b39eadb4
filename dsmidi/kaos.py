"""An X/Y touch pad that sends its position as two MIDI controllers."""

from __future__ import annotations

from typing import Callable

from dsmidi.midi import MIDI_CC

Writer = Callable[[int, int, int], None]

SCREEN_WIDTH = 256
SCREEN_HEIGHT = 192
CONTROL_X = 0x00
CONTROL_Y = 0x01
MAX_CHANNEL = 15


def kaos_values(x: int, y: int) -> tuple[int, int]:
    """Controller values for a touch at (``x``, ``y``); y grows upwards."""
    if not 0 <= x < SCREEN_WIDTH:
        raise ValueError(f"x must be between 0 and {SCREEN_WIDTH - 1}, got {x}")
    if not 0 <= y < SCREEN_HEIGHT:
        raise ValueError(f"y must be between 0 and {SCREEN_HEIGHT - 1}, got {y}")
    kaos_x = min(x * 128 // SCREEN_WIDTH, 127)
    kaos_y = min((SCREEN_HEIGHT - 1 - y) * 128 // SCREEN_HEIGHT, 127)
    return kaos_x, kaos_y


class KaosPad:
    """Turns touches into controller 0 (X) and controller 1 (Y) messages."""

    def __init__(self, write: Writer) -> None:
        self.write = write
        self.channel = 0

    def touch(self, x: int, y: int) -> None:
        kaos_x, kaos_y = kaos_values(x, y)
        self.write(MIDI_CC | self.channel, CONTROL_X, kaos_x)
        self.write(MIDI_CC | self.channel, CONTROL_Y, kaos_y)

    def send_x(self) -> None:
        """Send a single X axis event, so a receiver can learn the controller."""
        self.write(MIDI_CC | self.channel, CONTROL_X, 0)

    def send_y(self) -> None:
        """Send a single Y axis event."""
        self.write(MIDI_CC | self.channel, CONTROL_Y, 0)

    def channel_up(self) -> int:
        if self.channel < MAX_CHANNEL:
            self.channel += 1
        return self.channel

    def channel_down(self) -> int:
        if self.channel > 0:
            self.channel -= 1
        return self.channel