"""A touch surface with three sliders and an X/Y pad that sends OSC messages."""

from __future__ import annotations

AREA_TOP = 10
AREA_BOTTOM = 160
KAOS_LEFT = 10
KAOS_RIGHT = 160
VALUE_RANGE = 150.0
SLIDER_SPANS = ((170, 190), (200, 220), (230, 250))
SLIDER_START = 160
KAOS_START = (85, 85)


def _clamp(value: int) -> int:
    return max(AREA_TOP, min(AREA_BOTTOM, value))


class OscPad:
    """Sends pen, slider and pad positions through an OSC capable client."""

    def __init__(self, client) -> None:
        self.client = client
        self.pen_is_down = False
        self.slider_touched = [False] * len(SLIDER_SPANS)
        self.sliders = [SLIDER_START] * len(SLIDER_SPANS)
        self.kaos_touched = False
        self.kaos = KAOS_START

    def _send(self, address: str, value) -> None:
        self.client.osc_new(address)
        if isinstance(value, int):
            self.client.osc_add_int(value)
        else:
            self.client.osc_add_float(value)
        self.client.osc_send()

    def _send_slider(self, index: int) -> None:
        self._send(f"/ds/slider{index + 1}", (AREA_BOTTOM - self.sliders[index]) / VALUE_RANGE)

    def _send_kaos(self) -> None:
        x, y = self.kaos
        self._send("/ds/kaos/x", (x - KAOS_LEFT) / VALUE_RANGE)
        self._send("/ds/kaos/y", (AREA_BOTTOM - y) / VALUE_RANGE)

    def _drag(self, x: int, y: int) -> None:
        for index, touched in enumerate(self.slider_touched):
            if touched:
                self.sliders[index] = _clamp(y)
                self._send_slider(index)
        if self.kaos_touched:
            self.kaos = (_clamp(x), _clamp(y))
            self._send_kaos()

    def pen_down(self, x: int, y: int) -> None:
        """The pen touches (``x``, ``y``), grabbing the control under it."""
        if self.pen_is_down:
            self._drag(x, y)
            return
        self.pen_is_down = True
        self._send("/ds/touch/pendown", 1)
        in_rows = AREA_TOP < y < AREA_BOTTOM
        for index, (left, right) in enumerate(SLIDER_SPANS):
            if left < x < right and in_rows:
                self.slider_touched[index] = True
                self.sliders[index] = y
                self._send_slider(index)
        if KAOS_LEFT < x < KAOS_RIGHT and in_rows:
            self.kaos_touched = True
            self.kaos = (x, y)
            self._send_kaos()
        self._send("/ds/touch/x", float(x))
        self._send("/ds/touch/y", float(y))
        self._drag(x, y)

    def pen_move(self, x: int, y: int) -> None:
        """The held pen is at (``x``, ``y``); grabbed controls follow it."""
        if not self.pen_is_down:
            self.pen_down(x, y)
            return
        self._drag(x, y)

    def pen_up(self) -> None:
        """The pen leaves the screen and lets go of every control."""
        if not self.pen_is_down:
            return
        self.pen_is_down = False
        self.slider_touched = [False] * len(SLIDER_SPANS)
        self.kaos_touched = False
        self._send("/ds/touch/pendown", 0)