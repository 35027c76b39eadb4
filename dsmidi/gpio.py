"""General purpose and analog pins of the DSerial board."""

from __future__ import annotations

from enum import IntEnum

from dsmidi.dserial import (
    MCU_P0,
    MCU_P0MDIN,
    MCU_P0MDOUT,
    MCU_P0SKIP,
    MCU_P1,
    MCU_P1MDIN,
    MCU_P1MDOUT,
    MCU_P1SKIP,
    MCU_P2,
    MCU_P2MDIN,
    MCU_P2MDOUT,
    MCU_P2SKIP,
    MCU_P3,
    MCU_P3MDIN,
    MCU_P3MDOUT,
    MCU_P3SKIP,
    SELECT_ADC,
    SELECT_ADC_SEQUENCE,
    SELECT_READ,
    DSerial,
)

NUM_ANALOG_INDEXES = 16
# Period, in microseconds, between two conversions of the ADC sequence.
ADC_PERIOD_US = 10
_SEQUENCE_END = 0xFF


class PinMode(IntEnum):
    INPUT = 0
    OUTPUT = 1
    ANALOG_INPUT = 2


class Port(IntEnum):
    PORT0 = 0
    PORT1 = 1
    PORT2 = 2
    PORT3 = 3


_PIN_P = (MCU_P0, MCU_P1, MCU_P2, MCU_P3)
_PIN_MDIN = (MCU_P0MDIN, MCU_P1MDIN, MCU_P2MDIN, MCU_P3MDIN)
_PIN_MDOUT = (MCU_P0MDOUT, MCU_P1MDOUT, MCU_P2MDOUT, MCU_P3MDOUT)
_PIN_SKIP = (MCU_P0SKIP, MCU_P1SKIP, MCU_P2SKIP, MCU_P3SKIP)
# Usable pins per port, indexed by whether UART1 is enabled.
_PIN_MASK = ((0xC0, 0xFF, 0xFF, 0x00), (0xC0, 0xFF, 0x3F, 0x00))
_PIN_ADC_MASK = ((0x00, 0xFF, 0xFF, 0x00), (0x00, 0xFF, 0x3F, 0x00))


def _analog_index(port: Port, pin: int) -> int:
    return ((port - 1) << 3) | pin


class Gpio:
    """Configures, reads and drives the pins of a :class:`DSerial` board."""

    def __init__(self, device: DSerial) -> None:
        self.device = device
        self._analog = [False] * NUM_ANALOG_INDEXES
        self._sequence: list[int] = []

    def _uart_index(self) -> int:
        return 1 if self.device.uart_enabled[1] else 0

    def _check(self, port: int, pin: int, analog: bool = False) -> Port:
        try:
            port = Port(port)
        except ValueError:
            raise ValueError(f"no such port: {port}") from None
        if not 0 <= pin <= 7:
            raise ValueError(f"pin must be between 0 and 7, got {pin}")
        masks = _PIN_ADC_MASK if analog else _PIN_MASK
        if not masks[self._uart_index()][port] & (1 << pin):
            kind = "an analog" if analog else "a usable"
            raise ValueError(f"pin {pin} of {port.name} is not {kind} pin")
        return port

    def _update_sequence(self) -> None:
        self.device.timer_stop()
        self._sequence = [i for i, on in enumerate(self._analog) if on]
        if self._sequence:
            padding = [_SEQUENCE_END] * (NUM_ANALOG_INDEXES - len(self._sequence))
            self.device.write_buffer(SELECT_ADC_SEQUENCE, bytes(self._sequence + padding))
            self.device.timer_start(ADC_PERIOD_US)

    def pin_mode(self, port: Port, pin: int, mode: PinMode) -> None:
        """Make ``pin`` of ``port`` a digital input, a digital output or an analog input."""
        mode = PinMode(mode)
        port = self._check(port, pin, analog=mode is PinMode.ANALOG_INPUT)
        device = self.device
        bit = 1 << pin

        # The crossbar must skip the pin.
        skip = device.read_register(_PIN_SKIP[port]) | bit
        device.write_register(_PIN_SKIP[port], skip)

        mdin = device.read_register(_PIN_MDIN[port])
        has_analog_index = port in (Port.PORT1, Port.PORT2)
        index = _analog_index(port, pin)

        if mode is PinMode.ANALOG_INPUT:
            if not self._analog[index]:
                self._analog[index] = True
                self._update_sequence()
            mdin &= ~bit & 0xFF
        else:
            if has_analog_index and self._analog[index]:
                self._analog[index] = False
                self._update_sequence()
            mdout = device.read_register(_PIN_MDOUT[port])
            mdin |= bit
            if mode is PinMode.INPUT:
                mdout &= ~bit & 0xFF  # open drain
            else:
                mdout |= bit  # push-pull
            device.write_register(_PIN_MDOUT[port], mdout)
        device.write_register(_PIN_MDIN[port], mdin)

    def read(self, port: Port, pin: int) -> bool:
        """Digital level of ``pin``."""
        port = self._check(port, pin)
        return bool(self.device.read_register(_PIN_P[port]) & (1 << pin))

    def write(self, port: Port, pin: int, state: bool) -> None:
        """Drive ``pin`` high when ``state`` is true, low otherwise."""
        port = self._check(port, pin)
        value = self.device.read_register(_PIN_P[port])
        if state:
            value |= 1 << pin
        else:
            value &= ~(1 << pin) & 0xFF
        self.device.write_register(_PIN_P[port], value)

    def read_analog(self, port: Port, pin: int) -> int:
        """Latest conversion result of an analog input pin."""
        port = self._check(port, pin, analog=True)
        index = _analog_index(port, pin)
        if not self._analog[index]:
            raise ValueError(f"pin {pin} of {port.name} is not set up as an analog input")
        position = self._sequence.index(index)

        spi = self.device.spi
        spi.start(True)
        spi.exchange(SELECT_READ | SELECT_ADC)
        spi.exchange(position)
        spi.exchange(0)
        high = spi.exchange(0)
        spi.start(False)
        low = spi.exchange(0)
        spi.stop()
        return (high << 8) | low

    def analog_sequence(self) -> tuple[int, ...]:
        """Analog multiplexer indexes converted by the board, in order."""
        return tuple(self._sequence)