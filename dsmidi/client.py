"""A DSMI connection: MIDI and OSC over a DSerial board or UDP."""

from __future__ import annotations

import ipaddress
import socket
import time
from typing import Optional

from dsmidi.dserial import ENABLE_CMOS, DSerial, Status, Uart
from dsmidi.midi import Interface, MidiMessage
from dsmidi.osc import OSC_MAX_SIZE, OscBuilder, OscError, OscMessage, decode_packet

PC_PORT = 9000
DS_PORT = 9001
DS_SENDER_PORT = 9002

MIDI_BAUDRATE = 31250
# Keepalive ticks come every 50 ms; a beacon goes out every 60 of them.
KEEPALIVE_TICKS = 60

_LIMITED_BROADCAST = "255.255.255.255"


class ConnectionError_(ConnectionError):
    """No DSMI interface could be set up, or none is connected."""


def broadcast_address(ip: str, netmask: str) -> str:
    """Broadcast address of the network holding ``ip`` under ``netmask``."""
    address = int(ipaddress.IPv4Address(ip))
    mask = int(ipaddress.IPv4Address(netmask))
    return str(ipaddress.IPv4Address(address | (~mask & 0xFFFFFFFF)))


class Dsmi:
    """Sends and receives MIDI and OSC over a DSerial board or the network."""

    boot_delay = 0.0

    def __init__(
        self,
        dserial: Optional[DSerial] = None,
        firmware: bytes = b"",
        pc_port: int = PC_PORT,
        ds_port: int = DS_PORT,
        sender_port: int = DS_SENDER_PORT,
    ) -> None:
        self.dserial = dserial
        self.firmware = bytes(firmware)
        self.pc_port = pc_port
        self.ds_port = ds_port
        self.sender_port = sender_port
        self.wifi_enabled = False
        self.dserial_enabled = False
        self._interface: Optional[Interface] = None
        self._sock_out: Optional[socket.socket] = None
        self._sock_in: Optional[socket.socket] = None
        self._destination: Optional[tuple[str, int]] = None
        self._osc = OscBuilder()
        self._keepalive = 0

    def __enter__(self) -> "Dsmi":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # Connecting

    def connect(self, ip: Optional[str] = None, netmask: Optional[str] = None) -> Interface:
        """Use a DSerial board if one answers, the network otherwise."""
        try:
            return self.connect_dserial()
        except ConnectionError_:
            pass
        return self.connect_wifi(ip, netmask)

    def connect_dserial(self) -> Interface:
        """Bring up the DSerial board as a MIDI port and make it the default."""
        device = self.dserial
        if device is None or not device.init():
            raise ConnectionError_("no DSerial board answers")
        if not device.match_firmware(self.firmware):
            device.upload_firmware(self.firmware)
        device.boot()
        if self.boot_delay > 0:
            time.sleep(self.boot_delay)
        if device.status() is not Status.FIRMWARE:
            raise ConnectionError_("the DSerial firmware did not start")
        device.set_modes(ENABLE_CMOS)
        device.set_baudrate(Uart.UART0, MIDI_BAUDRATE)
        # Incoming serial MIDI is not read; drop it.
        device.set_receive_handler(Uart.UART0, None)
        self._interface = Interface.SERIAL
        self.dserial_enabled = True
        return Interface.SERIAL

    def connect_wifi(self, ip: Optional[str] = None, netmask: Optional[str] = None) -> Interface:
        """Open the UDP sockets and make the network the default.

        Messages go to the broadcast address of ``ip``/``netmask``; with no
        ``ip`` they go to the limited broadcast address.
        """
        self._close_sockets()
        if ip is None:
            host = _LIMITED_BROADCAST
        else:
            host = broadcast_address(ip, netmask or _LIMITED_BROADCAST)
        sock_out = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock_in = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock_out.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            sock_out.bind(("", self.sender_port))
            sock_in.bind(("", self.ds_port))
            sock_in.setblocking(False)
        except OSError as exc:
            sock_out.close()
            sock_in.close()
            raise ConnectionError_(f"cannot open the network sockets: {exc}") from exc
        self._sock_out = sock_out
        self._sock_in = sock_in
        self._destination = (host, self.pc_port)
        self._interface = Interface.WIFI
        self.wifi_enabled = True
        return Interface.WIFI

    @property
    def default_interface(self) -> Optional[Interface]:
        """The interface plain reads and writes use, or None before connecting."""
        return self._interface

    # Writing

    def write(self, status: int, data1: int, data2: int) -> None:
        """Send a MIDI message over the default interface."""
        if self._interface is Interface.WIFI:
            self.write_wifi(status, data1, data2)
        elif self._interface is Interface.SERIAL:
            self.write_dserial(status, data1, data2)
        else:
            raise ConnectionError_("not connected")

    def write_dserial(self, status: int, data1: int, data2: int) -> None:
        """Send a MIDI message out of the DSerial board's UART."""
        if self.dserial is None or not self.dserial_enabled:
            raise ConnectionError_("the DSerial board is not connected")
        message = MidiMessage(status, data1, data2)
        self.dserial.uart_send(Uart.UART0, message.to_bytes(), True)

    def _wifi_socket(self) -> socket.socket:
        if self._sock_out is None or not self.wifi_enabled:
            raise ConnectionError_("the network is not connected")
        return self._sock_out

    def write_wifi(self, status: int, data1: int, data2: int) -> None:
        """Send a MIDI message as a UDP datagram."""
        message = MidiMessage(status, data1, data2)
        self._wifi_socket().sendto(message.to_bytes(), self._destination)

    def keepalive_tick(self) -> bool:
        """Count one 50 ms tick; True when a keepalive beacon was sent."""
        if not (self.wifi_enabled and self._interface is Interface.WIFI):
            return False
        self._keepalive += 1
        if self._keepalive < KEEPALIVE_TICKS:
            return False
        self._keepalive = 0
        self.write(0, 0, 0)
        return True

    # OSC

    def osc_new(self, address: str) -> None:
        """Start a new OSC message for ``address``."""
        self._osc.reset()
        self._osc.set_address(address)

    def osc_add_int(self, value: int) -> None:
        self._osc.add_int(value)

    def osc_add_float(self, value: float) -> None:
        self._osc.add_float(value)

    def osc_add_string(self, value: str) -> None:
        self._osc.add_string(value)

    def osc_send(self) -> int:
        """Send the OSC message; returns the number of bytes sent."""
        sock = self._wifi_socket()
        return sock.sendto(self._osc.packet(), self._destination)

    # Reading

    def _receive(self) -> Optional[bytes]:
        if self._sock_in is None or not self.wifi_enabled:
            raise ConnectionError_("the network is not connected")
        try:
            data, _sender = self._sock_in.recvfrom(OSC_MAX_SIZE)
        except (BlockingIOError, InterruptedError):
            return None
        return data or None

    def read(self) -> Optional[MidiMessage]:
        """Next MIDI message from the default interface, or None if none waits."""
        if self._interface is Interface.WIFI:
            return self.read_wifi()
        if self._interface is Interface.SERIAL:
            return None
        raise ConnectionError_("not connected")

    def read_wifi(self) -> Optional[MidiMessage]:
        """Next MIDI message from the network, or None if none waits."""
        data = self._receive()
        if data is None:
            return None
        return MidiMessage.from_bytes(data[:3].ljust(3, b"\x00"))

    def osc_read(self) -> Optional[OscMessage]:
        """Next OSC message from the network, or None if no valid one waits."""
        data = self._receive()
        if data is None:
            return None
        try:
            return decode_packet(data)
        except OscError:
            return None

    def _close_sockets(self) -> None:
        for sock in (self._sock_out, self._sock_in):
            if sock is not None:
                sock.close()
        self._sock_out = self._sock_in = None

    def close(self) -> None:
        """Close the network sockets and forget the network interface."""
        self._close_sockets()
        self.wifi_enabled = False
        if self._interface is Interface.WIFI:
            self._interface = Interface.SERIAL if self.dserial_enabled else None