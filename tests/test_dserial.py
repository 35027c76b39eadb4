import pytest

from dsmidi.bus import CR1_CE, CR1_ENABLE_IRQ, CardSpi, SpiClock, SpiPort
from dsmidi.dserial import (
    ENABLE_CMOS,
    FIRMWARE_BASE,
    INTERRUPT_BOOTLOADER,
    INTERRUPT_UART0_RX,
    INTERRUPT_UART0_TX,
    INTERRUPT_UART1_TX,
    MCU_CKCON,
    MCU_SBRLH1,
    MCU_SBRLL1,
    MCU_TH1,
    MCU_TMR2CN,
    MCU_TMR2RLH,
    MCU_TMR2RLL,
    SELECT_BOOT,
    SELECT_ENABLE,
    SELECT_FLASH,
    SELECT_FLASH_ERASE,
    SELECT_INTERRUPT,
    SELECT_REGISTER,
    SELECT_UART0_BUFFER,
    SELECT_UART1_BUFFER,
    SELECT_VERSION,
    DSerial,
    DSerialError,
    Status,
    Uart,
    uart0_timer_settings,
    uart1_reload,
)


class FakeBoard(SpiPort):
    """Emulates the DSerial microcontroller on the other end of the bus."""

    def __init__(self, check=0xAC, version=1, raise_irq=True):
        super().__init__()
        self.card = None
        self.check = check
        self.version = version
        self.raise_irq = raise_irq
        self.registers = {}
        self.flash = bytearray(0x2000)
        self.erased = []
        self.uart_out = {0: [], 1: []}
        self.uart_in = {0: b"", 1: b""}
        self.modes = []
        self.irq = 0
        self.booted = False
        self.transaction = []
        self.payload = None
        self.in_irq = False

    def _payload(self, selector):
        if self.payload is None:
            if selector == 0x9F:
                self.payload = bytes([self.check])
            elif selector == SELECT_VERSION:
                self.payload = bytes([self.version])
            elif selector == SELECT_INTERRUPT:
                self.payload = bytes([self.irq])
            elif selector == SELECT_UART0_BUFFER:
                self.payload, self.uart_in[0] = self.uart_in[0], b""
            elif selector == SELECT_UART1_BUFFER:
                self.payload, self.uart_in[1] = self.uart_in[1], b""
            else:
                self.payload = b""
        return self.payload

    def _reply(self, index):
        tx = self.transaction
        first = tx[0]
        if first & 0x80 and first != 0x9F:
            return 0
        if first == SELECT_REGISTER:
            return self.registers.get(tx[1], 0) if index == 3 else 0
        if first == SELECT_FLASH:
            if index >= 5:
                pos = (tx[2] << 8) | tx[3]
                return self.flash[pos + index - 5]
            return 0
        payload = self._payload(first)
        if index == 2:
            return len(payload)
        if index >= 3:
            return payload[index - 3]
        return 0

    def exchange(self, value):
        self.transaction.append(value)
        return self._reply(len(self.transaction) - 1)

    def _finish(self):
        tx, self.transaction, self.payload = self.transaction, [], None
        if not tx:
            return
        first = tx[0]
        if first == SELECT_BOOT:
            self.booted = True
            return
        if not first & 0x80 or first == 0x9F:
            return
        selector = first & 0x7F
        data = bytes(tx[2 : 2 + tx[1]])
        if selector == SELECT_REGISTER:
            self.registers[data[0]] = data[1]
        elif selector == SELECT_FLASH_ERASE:
            self.erased.append((data[0] << 8) | data[1])
            self._signal(INTERRUPT_BOOTLOADER)
        elif selector == SELECT_FLASH:
            addr = (data[0] << 8) | data[1]
            self.flash[addr : addr + len(data) - 2] = data[2:]
            self._signal(INTERRUPT_BOOTLOADER)
        elif selector == SELECT_UART0_BUFFER:
            self.uart_out[0].append(data)
            self._signal(INTERRUPT_UART0_TX)
        elif selector == SELECT_UART1_BUFFER:
            self.uart_out[1].append(data)
            self._signal(INTERRUPT_UART1_TX)
        elif selector == SELECT_INTERRUPT:
            self.irq &= ~data[0]
        elif selector == SELECT_ENABLE:
            self.modes.append(data[0])

    def _signal(self, flag):
        if self.raise_irq:
            self.irq |= flag

    def write_control(self, value):
        super().write_control(value)
        if value & CR1_CE:
            return
        self._finish()
        if value & CR1_ENABLE_IRQ and self.irq and not self.in_irq:
            self.in_irq = True
            try:
                self.card.handler()
            finally:
                self.in_irq = False


def make(**kwargs):
    board = FakeBoard(**kwargs)
    spi = CardSpi(board, SpiClock.CLOCK_4MHZ)
    board.card = spi
    return board, DSerial(spi)


def test_init_finds_firmware():
    board, dev = make(version=2)
    assert dev.init() is True
    assert dev.status() is Status.FIRMWARE
    assert dev.version == 2
    assert dev.uart_enabled == (True, True)
    assert dev.spi.clock == SpiClock.CLOCK_512KHZ


def test_init_fails_when_disconnected():
    _, dev = make(check=0x00)
    assert dev.init() is False
    assert dev.status() is Status.DISCONNECTED


def test_bootloader_status():
    _, dev = make(check=0xAB)
    assert dev.init() is True
    assert dev.status() is Status.BOOTLOADER


def test_version_zero_disables_uart1():
    _, dev = make(version=0)
    dev.init()
    assert dev.uart_enabled == (True, False)


def test_register_round_trip():
    board, dev = make()
    dev.init()
    dev.write_register(MCU_TH1, 0x42)
    assert board.registers[MCU_TH1] == 0x42
    assert dev.read_register(MCU_TH1) == 0x42


def test_read_flash_returns_stored_bytes():
    board, dev = make()
    dev.init()
    board.flash[0x900:0x905] = b"hello"
    assert dev.read_flash(0x900, 5) == b"hello"
    assert dev.read_flash(0x900, 1) == b"h"


def test_read_flash_rejects_zero_size():
    _, dev = make()
    with pytest.raises(DSerialError):
        dev.read_flash(0x800, 0)


def test_upload_then_match_firmware():
    board, dev = make()
    dev.init()
    firmware = bytes((i * 7) & 0xFF for i in range(600))
    assert dev.match_firmware(firmware) is False
    dev.upload_firmware(firmware)
    assert board.flash[FIRMWARE_BASE : FIRMWARE_BASE + len(firmware)] == firmware
    assert board.erased == [FIRMWARE_BASE, FIRMWARE_BASE + 512]
    assert board.irq == 0
    assert dev.match_firmware(firmware) is True


def test_match_firmware_detects_difference():
    board, dev = make()
    dev.init()
    firmware = bytes(range(40))
    dev.upload_firmware(firmware)
    board.flash[FIRMWARE_BASE + 33] ^= 0xFF
    assert dev.match_firmware(firmware) is False


def test_upload_times_out_without_interrupt():
    _, dev = make(raise_irq=False)
    dev.init()
    dev.timeout = 0.01
    with pytest.raises(DSerialError):
        dev.upload_firmware(b"\x01\x02")


def test_uart_send_blocking():
    board, dev = make()
    dev.init()
    sent = []
    dev.set_send_handler(Uart.UART0, lambda: sent.append(True))
    dev.uart_send(Uart.UART0, b"\x90\x3c\x7f", blocking=True)
    assert board.uart_out[0] == [b"\x90\x3c\x7f"]
    assert sent == [True]


def test_uart_send_rejects_long_data():
    _, dev = make()
    dev.init()
    with pytest.raises(DSerialError):
        dev.uart_send(Uart.UART0, bytes(33))


def test_receive_handler_gets_incoming_data():
    board, dev = make()
    dev.init()
    received = []
    dev.set_receive_handler(Uart.UART0, received.append)
    board.uart_in[0] = b"\x80\x3c\x00"
    board.irq |= INTERRUPT_UART0_RX
    dev.status()
    assert received == [b"\x80\x3c\x00"]
    assert board.irq == 0


def test_default_receive_handler_prints(capsys):
    board, dev = make()
    dev.init()
    board.uart_in[0] = b"ping"
    board.irq |= INTERRUPT_UART0_RX
    dev.status()
    assert capsys.readouterr().out == "ping"


def test_set_baudrate_uart0_preserves_other_clock_bits():
    board, dev = make(version=1)
    dev.init()
    board.registers[MCU_CKCON] = 0xF4
    dev.set_baudrate(Uart.UART0, 31250)
    ckcon, th1 = uart0_timer_settings(1, 31250)
    assert board.registers[MCU_TH1] == th1
    assert board.registers[MCU_CKCON] & 0x0B == ckcon
    assert board.registers[MCU_CKCON] & ~0x0B == 0xF4 & ~0x0B


def test_uart0_timer_settings_for_midi():
    assert uart0_timer_settings(0, 31250) == (0x01, 160)


@pytest.mark.parametrize("baudrate", [300, 1200, 9600, 31250, 115200, 1000000])
def test_uart0_timer_settings_uses_known_clocks(baudrate):
    ckcon, th1 = uart0_timer_settings(1, baudrate)
    assert ckcon in (0x08, 0x01, 0x00, 0x02)
    assert 0 <= th1 <= 0xFF


def test_set_baudrate_uart1_writes_reload():
    board, dev = make()
    dev.init()
    dev.set_baudrate(Uart.UART1, 31250)
    reload = (board.registers[MCU_SBRLH1] << 8) | board.registers[MCU_SBRLL1]
    assert reload == uart1_reload(31250) == 64768


def test_baudrate_must_be_positive():
    with pytest.raises(ValueError):
        uart1_reload(0)
    with pytest.raises(ValueError):
        uart0_timer_settings(1, -5)


def test_timer_start_and_stop():
    board, dev = make(version=1)
    dev.init()
    board.registers[MCU_CKCON] = 0x1F
    dev.timer_start(10)
    reload = (board.registers[MCU_TMR2RLH] << 8) | board.registers[MCU_TMR2RLL]
    assert 0xFFFF - reload == 40
    assert board.registers[MCU_TMR2CN] == 0x04
    assert not board.registers[MCU_CKCON] & 0x10
    dev.timer_stop()
    assert board.registers[MCU_TMR2CN] == 0x00


def test_set_modes_and_boot():
    board, dev = make()
    dev.init()
    dev.set_modes(ENABLE_CMOS)
    dev.boot()
    assert board.modes == [ENABLE_CMOS]
    assert board.booted is True


def test_write_buffer_rejects_oversized_data():
    _, dev = make()
    with pytest.raises(DSerialError):
        dev.write_buffer(SELECT_FLASH, bytes(35))


def test_read_buffer_without_data_is_empty():
    _, dev = make()
    dev.init()
    assert dev.read_buffer(0x55) == b""