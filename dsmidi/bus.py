"""Byte transfers over the cartridge slot's SPI bus."""

from __future__ import annotations

from enum import IntEnum
from typing import Callable, Optional

CR1_HOLD_CS = 1 << 6
CR1_BUSY = 1 << 7
CR1_CE = 1 << 13
CR1_ENABLE_IRQ = 1 << 14
CR1_ENABLE_SLOT = 1 << 15


class SpiClock(IntEnum):
    """Clock rate of the card SPI bus."""

    CLOCK_4MHZ = 0
    CLOCK_2MHZ = 1
    CLOCK_1MHZ = 2
    CLOCK_512KHZ = 3


class SpiPort:
    """The control and data registers of a card SPI bus.

    This implementation is a loopback bus: every byte sent is recorded in
    ``sent`` and comes straight back. Subclass it and override both methods
    to talk to a real or emulated device.
    """

    def __init__(self) -> None:
        self.control = 0
        self.sent = bytearray()

    def write_control(self, value: int) -> None:
        """Store a new value in the bus control register."""
        self.control = value

    def exchange(self, value: int) -> int:
        """Clock ``value`` out and return the byte clocked in."""
        byte = value & 0xFF
        self.sent.append(byte)
        return byte


class CardSpi:
    """Chip-select aware transfers on a :class:`SpiPort`."""

    def __init__(self, port: SpiPort, clock: SpiClock = SpiClock.CLOCK_512KHZ) -> None:
        self.port = port
        self.clock = SpiClock(clock)
        self.enable_irq = 0
        self.handler: Optional[Callable[[], None]] = None
        self.set_handler(None)

    def start(self, hold: bool) -> None:
        """Select the card; with ``hold`` the chip select stays low after the next byte."""
        self.port.write_control(
            self.clock | (CR1_HOLD_CS if hold else 0) | CR1_CE | CR1_ENABLE_SLOT
        )

    def stop(self) -> None:
        """Release the card and restore the interrupt setting."""
        self.port.write_control(self.clock | self.enable_irq)

    def set_handler(self, handler: Optional[Callable[[], None]]) -> None:
        """Install the card interrupt handler, or disable interrupts with None."""
        self.handler = handler
        self.enable_irq = 0 if handler is None else CR1_ENABLE_IRQ
        self.stop()

    def exchange(self, value: int) -> int:
        """Send one byte inside an already started transfer and return the reply."""
        if not 0 <= value <= 0xFF:
            raise ValueError(f"a byte must be between 0 and 255, got {value}")
        return self.port.exchange(value) & 0xFF

    def transfer(self, value: int) -> int:
        """Send a single byte as a complete transfer and return the reply."""
        self.start(False)
        reply = self.exchange(value)
        self.stop()
        return reply

    def transfer_buffer(self, data: bytes) -> bytes:
        """Send ``data`` as one transfer and return the bytes received."""
        data = bytes(data)
        if not data:
            return b""
        if len(data) == 1:
            return bytes([self.transfer(data[0])])
        self.start(True)
        received = bytearray(self.exchange(byte) for byte in data[:-1])
        # The last byte goes out with the chip select hold released.
        self.start(False)
        received.append(self.exchange(data[-1]))
        self.stop()
        return bytes(received)

    def write_buffer(self, data: bytes) -> None:
        """Send ``data`` as one transfer, discarding what comes back."""
        self.transfer_buffer(data)