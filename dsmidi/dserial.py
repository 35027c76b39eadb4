"""Driver for the DSerial cartridge: registers, UARTs and firmware over card SPI."""

from __future__ import annotations

import logging
import sys
import threading
from enum import IntEnum
from typing import Callable, Optional

from dsmidi.bus import CardSpi, SpiClock

log = logging.getLogger(__name__)

MAX_DATA_SIZE = 32
NUM_SERVOS = 5

SELECT_READ = 0x00
SELECT_WRITE = 0x80
SELECT_INTERRUPT = 0x01
SELECT_CHECK = 0x9F
SELECT_FLASH = 0x02
SELECT_FLASH_ERASE = 0x03
SELECT_BOOT = 0x04
SELECT_REGISTER = 0x05
SELECT_ENABLE = 0x06
SELECT_VERSION = 0x07
SELECT_UART0_BUFFER = 0x11
SELECT_UART1_BUFFER = 0x12
SELECT_ADC = 0x20
SELECT_ADC_SEQUENCE = 0x21
SELECT_SERVO = 0x30

ENABLE_RS232 = 0x01
ENABLE_CMOS = 0x00
ENABLE_SERVO = 0x02

INTERRUPT_BOOTLOADER = 0x01
INTERRUPT_UART0_TX = 0x02
INTERRUPT_UART0_RX = 0x04
INTERRUPT_UART1_TX = 0x08
INTERRUPT_UART1_RX = 0x10

MCU_P0 = 0x80
MCU_TL0 = 0x8A
MCU_TL1 = 0x8B
MCU_TH0 = 0x8C
MCU_TH1 = 0x8D
MCU_CKCON = 0x8E
MCU_P1 = 0x90
MCU_P2 = 0xA0
MCU_P0MDOUT = 0xA4
MCU_P1MDOUT = 0xA5
MCU_P2MDOUT = 0xA6
MCU_P3MDOUT = 0xA7
MCU_SBCON1 = 0xAC
MCU_P3 = 0xB0
MCU_SBRLL1 = 0xB4
MCU_SBRLH1 = 0xB5
MCU_TMR2CN = 0xC8
MCU_TMR2RLL = 0xCA
MCU_TMR2RLH = 0xCB
MCU_TMR2L = 0xCC
MCU_TMR2H = 0xCD
MCU_P0SKIP = 0xD4
MCU_P1SKIP = 0xD5
MCU_P2SKIP = 0xD6
MCU_P3SKIP = 0xDF
MCU_P0MDIN = 0xF1
MCU_P1MDIN = 0xF2
MCU_P2MDIN = 0xF3
MCU_P3MDIN = 0xF4

CHECK_BOOTLOADER = 0xAB
CHECK_FIRMWARE = 0xAC

FIRMWARE_BASE = 0x0800
_UPLOAD_BLOCK = 32
_VERIFY_BLOCK = 16
_ERASE_PAGE = 512
# Flash writes carry a two byte address in front of a full data block.
_MAX_WRITE_SIZE = MAX_DATA_SIZE + 2


class DSerialError(Exception):
    """The DSerial refused a request or did not answer in time."""


class Status(IntEnum):
    DISCONNECTED = 0
    BOOTLOADER = 1
    FIRMWARE = 2


class Uart(IntEnum):
    UART0 = 0
    UART1 = 1


_UART_SELECT = {Uart.UART0: SELECT_UART0_BUFFER, Uart.UART1: SELECT_UART1_BUFFER}
_UART_FLAGS = {
    Uart.UART0: (INTERRUPT_UART0_TX, INTERRUPT_UART0_RX),
    Uart.UART1: (INTERRUPT_UART1_TX, INTERRUPT_UART1_RX),
}

ReceiveHandler = Callable[[bytes], None]
SendHandler = Callable[[], None]


def _default_receive(data: bytes) -> None:
    sys.stdout.write(data.decode("latin-1"))


def uart0_timer_settings(version: int, baudrate: int) -> tuple[int, int]:
    """Return the CKCON clock bits and TH1 reload byte giving ``baudrate`` on UART0."""
    if baudrate <= 0:
        raise ValueError(f"baud rate must be positive, got {baudrate}")
    counter = (24000000 if version == 0 else 48000000) // 2 // baudrate
    if counter < 256:
        ckcon = 0x08  # SYSCLK
    else:
        counter //= 4
        if counter < 256:
            ckcon = 0x01  # SYSCLK / 4
        else:
            counter //= 3
            if counter < 256:
                ckcon = 0x00  # SYSCLK / 12
            else:
                counter //= 4
                ckcon = 0x02  # SYSCLK / 48
    return ckcon, (256 - counter) & 0xFF


def uart1_reload(baudrate: int) -> int:
    """Return the 16 bit baud rate reload value giving ``baudrate`` on UART1."""
    if baudrate <= 0:
        raise ValueError(f"baud rate must be positive, got {baudrate}")
    return (65536 - 48000000 // baudrate // 2) & 0xFFFF


class DSerial:
    """A DSerial board reached through a :class:`CardSpi` bus."""

    timeout = 5.0

    def __init__(self, spi: CardSpi) -> None:
        self.spi = spi
        self.version = 0
        self.uart_enabled = (True, False)
        self._flash_done = threading.Event()
        self._flash_done.set()
        self._uart_idle = {uart: threading.Event() for uart in Uart}
        for event in self._uart_idle.values():
            event.set()
        self._receive_handlers: dict[Uart, Optional[ReceiveHandler]] = {
            uart: _default_receive for uart in Uart
        }
        self._send_handlers: dict[Uart, Optional[SendHandler]] = {
            uart: None for uart in Uart
        }

    # Helpers

    def write_buffer(self, selector: int, data: bytes) -> None:
        """Write ``data`` to the buffer chosen by ``selector``."""
        data = bytes(data)
        if len(data) > _MAX_WRITE_SIZE:
            raise DSerialError(f"at most {_MAX_WRITE_SIZE} bytes fit in one write")
        self.spi.write_buffer(bytes([SELECT_WRITE | selector, len(data)]) + data)

    def read_buffer(self, selector: int) -> bytes:
        """Read the buffer chosen by ``selector``; empty if the board sent no valid size."""
        spi = self.spi
        spi.start(True)
        spi.exchange(SELECT_READ | selector)
        spi.exchange(0)
        size = spi.exchange(0)
        data = bytearray()
        if 0 < size <= MAX_DATA_SIZE:
            data.extend(spi.exchange(0) for _ in range(size - 1))
            spi.start(False)
            data.append(spi.exchange(0))
        spi.stop()
        return bytes(data)

    def read_flash(self, pos: int, size: int) -> bytes:
        """Read ``size`` bytes of the board's flash starting at ``pos``."""
        if not 0 < size <= 0xFF:
            raise DSerialError(f"flash reads take 1 to 255 bytes, got {size}")
        spi = self.spi
        spi.start(True)
        for byte in (SELECT_READ | SELECT_FLASH, size, (pos >> 8) & 0xFF, pos & 0xFF, 0):
            spi.exchange(byte)
        data = bytearray(spi.exchange(0) for _ in range(size - 1))
        spi.start(False)
        data.append(spi.exchange(0))
        spi.stop()
        return bytes(data)

    def write_register(self, reg: int, value: int) -> None:
        """Set microcontroller register ``reg`` to ``value``."""
        self.write_buffer(SELECT_REGISTER, bytes([reg, value & 0xFF]))

    def read_register(self, reg: int) -> int:
        """Return the value of microcontroller register ``reg``."""
        spi = self.spi
        spi.start(True)
        spi.exchange(SELECT_READ | SELECT_REGISTER)
        spi.exchange(reg)
        spi.exchange(0)
        spi.start(False)
        value = spi.exchange(0)
        spi.stop()
        return value

    # Configuration

    def init(self) -> bool:
        """Find the board and prepare it for use; False if none answers."""
        self._flash_done.set()
        for event in self._uart_idle.values():
            event.set()
        self.spi.clock = SpiClock.CLOCK_512KHZ
        self.spi.set_handler(None)
        # A few zeros first, to flush whatever the board expects.
        self.write_buffer(0, bytes(MAX_DATA_SIZE))
        if self.status() is Status.DISCONNECTED:
            return False
        self.spi.set_handler(self.handle_interrupt)
        self.version = self.version_number()
        self.uart_enabled = (True, self.version > 0)
        self._receive_handlers = {uart: _default_receive for uart in Uart}
        self._send_handlers = {uart: None for uart in Uart}
        return True

    def status(self) -> Status:
        """Report whether the bootloader, the firmware or nothing answers."""
        data = self.read_buffer(SELECT_READ | SELECT_CHECK)
        if len(data) != 1:
            return Status.DISCONNECTED
        if data[0] == CHECK_BOOTLOADER:
            return Status.BOOTLOADER
        if data[0] == CHECK_FIRMWARE:
            return Status.FIRMWARE
        return Status.DISCONNECTED

    def version_number(self) -> int:
        data = self.read_buffer(SELECT_READ | SELECT_VERSION)
        return data[0] if len(data) == 1 else 0

    def version(self) -> int:  # type: ignore[no-redef]
        """Ask the board for its hardware version; 0 if it gives none."""
        return self.version_number()

    def _wait(self, event: threading.Event, what: str) -> None:
        if not event.wait(self.timeout):
            raise DSerialError(f"timed out waiting for {what}")

    def _flash_command(self, selector: int, data: bytes) -> None:
        self._flash_done.clear()
        self.write_buffer(selector, data)
        self._wait(self._flash_done, "the flash")

    def upload_firmware(self, firmware: bytes) -> None:
        """Erase and write ``firmware`` into the board's program flash."""
        firmware = bytes(firmware)
        for pos in range(0, len(firmware), _UPLOAD_BLOCK):
            loc = FIRMWARE_BASE + pos
            address = bytes([(loc >> 8) & 0xFF, loc & 0xFF])
            if pos % _ERASE_PAGE == 0:
                self._flash_command(SELECT_FLASH_ERASE, address)
            self._flash_command(SELECT_FLASH, address + firmware[pos : pos + _UPLOAD_BLOCK])

    def match_firmware(self, firmware: bytes) -> bool:
        """True if the board's flash already holds ``firmware``."""
        firmware = bytes(firmware)
        log.info("Firmware size is 0x%04X.", len(firmware))
        for start in range(0, len(firmware), _VERIFY_BLOCK):
            expected = firmware[start : start + _VERIFY_BLOCK]
            stored = self.read_flash(FIRMWARE_BASE + start, len(expected))
            for offset, (want, have) in enumerate(zip(expected, stored)):
                if want != have:
                    log.info("Difference at 0x%04X.", start + offset)
                    return False
        return True

    def boot(self) -> None:
        """Leave the bootloader and start the firmware."""
        self.spi.transfer(SELECT_BOOT)

    def set_modes(self, modes: int) -> None:
        """Select the board's operating modes (ENABLE_* flags)."""
        self.write_buffer(SELECT_ENABLE, bytes([modes & 0xFF]))

    # UART

    def uart_send(self, uart: Uart, data: bytes, blocking: bool = False) -> None:
        """Send ``data`` out of ``uart``; with ``blocking`` wait until it has gone."""
        uart = Uart(uart)
        data = bytes(data)
        if len(data) > MAX_DATA_SIZE:
            raise DSerialError(f"at most {MAX_DATA_SIZE} bytes can be sent at once")
        idle = self._uart_idle[uart]
        if blocking:
            idle.clear()
        self.write_buffer(_UART_SELECT[uart], data)
        if blocking:
            self._wait(idle, f"{uart.name} to send")

    def set_receive_handler(self, uart: Uart, handler: Optional[ReceiveHandler]) -> None:
        """Call ``handler`` with each block of bytes ``uart`` receives."""
        self._receive_handlers[Uart(uart)] = handler

    def set_send_handler(self, uart: Uart, handler: Optional[SendHandler]) -> None:
        """Call ``handler`` whenever ``uart`` has finished sending."""
        self._send_handlers[Uart(uart)] = handler

    def set_baudrate(self, uart: Uart, baudrate: int) -> None:
        """Program the timer that clocks ``uart`` for ``baudrate``."""
        uart = Uart(uart)
        if uart is Uart.UART0:
            ckcon, th1 = uart0_timer_settings(self.version, baudrate)
            current = self.read_register(MCU_CKCON)
            self.write_register(MCU_CKCON, (current & ~0x0B & 0xFF) | ckcon)
            self.write_register(MCU_TH1, th1)
        else:
            reload = uart1_reload(baudrate)
            self.write_register(MCU_SBRLH1, reload >> 8)
            self.write_register(MCU_SBRLL1, reload & 0xFF)

    def handle_interrupt(self) -> None:
        """Serve and acknowledge the board's pending interrupts."""
        flags_data = self.read_buffer(SELECT_INTERRUPT)
        flags = flags_data[0] if flags_data else 0
        for uart, (tx_flag, rx_flag) in _UART_FLAGS.items():
            if flags & tx_flag:
                self._uart_idle[uart].set()
                send_handler = self._send_handlers[uart]
                if send_handler is not None:
                    send_handler()
            if flags & rx_flag:
                data = self.read_buffer(_UART_SELECT[uart])
                receive_handler = self._receive_handlers[uart]
                if receive_handler is not None:
                    receive_handler(data)
        self.write_buffer(SELECT_INTERRUPT, bytes([flags]))
        if flags & INTERRUPT_BOOTLOADER:
            self._flash_done.set()

    # Timer

    def timer_start(self, delay_us: int) -> None:
        """Run Timer2 with a period of ``delay_us`` microseconds."""
        self.write_register(MCU_TMR2CN, 0x00)
        ckcon = self.read_register(MCU_CKCON)
        self.write_register(MCU_CKCON, ckcon & ~0x10 & 0xFF)  # SYSCLK / 12
        step = 4 if self.version > 0 else 2
        reload = (0xFFFF - step * delay_us) & 0xFFFF
        self.write_register(MCU_TMR2RLH, reload >> 8)
        self.write_register(MCU_TMR2RLL, reload & 0xFF)
        self.write_register(MCU_TMR2CN, 0x04)

    def timer_stop(self) -> None:
        """Stop Timer2."""
        self.write_register(MCU_TMR2CN, 0x00)