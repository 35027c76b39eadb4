"""Building and decoding Open Sound Control packets of bounded size."""

from __future__ import annotations

import math
import struct
from dataclasses import dataclass, field
from enum import IntEnum

OSC_MAX_SIZE = 256
# Room reserved for the type tag string; one byte of it is the leading ','.
OSC_MAX_ARGS = 32

_INT32_MIN = -(1 << 31)
_INT32_MAX = (1 << 31) - 1


class OscError(ValueError):
    """An OSC packet could not be built or decoded."""


class OscStatus(IntEnum):
    EMPTY = 0
    ADDRESS = 1
    PACKED = 2
    DECODED = 3


def _raw(text: str | bytes) -> bytes:
    raw = text.encode("utf-8") if isinstance(text, str) else bytes(text)
    if b"\x00" in raw:
        raise OscError("OSC strings cannot contain NUL bytes")
    return raw


def padded_length(text: str | bytes) -> int:
    """Length of ``text`` once NUL terminated and padded to 4 bytes."""
    length = len(_raw(text)) + 1
    return length + (-length) % 4


def padded_string(text: str | bytes) -> bytes:
    """``text`` NUL terminated and padded with NULs to a multiple of 4."""
    raw = _raw(text)
    return raw + b"\x00" * (padded_length(raw) - len(raw))


def _float32(value: float) -> bytes:
    try:
        return struct.pack(">f", value)
    except OverflowError:
        return struct.pack(">f", math.copysign(math.inf, value))


class OscBuilder:
    """Assembles one OSC message: an address followed by up to 31 arguments."""

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        """Discard the current message and start an empty one."""
        self._address = b""
        self._tags: list[str] = []
        self._args = bytearray()
        self._packet: bytes | None = None
        self.status = OscStatus.EMPTY

    @property
    def _pos(self) -> int:
        return padded_length(self._address) + OSC_MAX_ARGS + len(self._args)

    def set_address(self, address: str | bytes) -> None:
        """Set the destination address; it must begin with '/'."""
        if self.status is not OscStatus.EMPTY:
            raise OscError("the message already has an address; reset it first")
        raw = _raw(address)
        if not raw.startswith(b"/"):
            raise OscError("an OSC address must start with '/'")
        if len(raw) >= OSC_MAX_SIZE:
            raise OscError("the OSC address is too long")
        self._address = raw
        self.status = OscStatus.ADDRESS

    def _append(self, tag: str, payload: bytes) -> None:
        if self.status is not OscStatus.ADDRESS:
            raise OscError("arguments need an address and an unsent message")
        if len(self._tags) >= OSC_MAX_ARGS - 1:
            raise OscError("too many arguments")
        if self._pos + len(payload) > OSC_MAX_SIZE - 1:
            raise OscError("the packet would grow too large")
        self._tags.append(tag)
        self._args += payload

    def add_int(self, value: int) -> None:
        """Append a 32 bit signed integer argument."""
        if not _INT32_MIN <= value <= _INT32_MAX:
            raise OscError(f"{value} does not fit in 32 bits")
        self._append("i", struct.pack(">i", value))

    def add_float(self, value: float) -> None:
        """Append a 32 bit float argument."""
        self._append("f", _float32(value))

    def add_string(self, value: str | bytes) -> None:
        """Append a string argument."""
        self._append("s", padded_string(value))

    def _assemble(self) -> bytes:
        type_string = ("," + "".join(self._tags)).encode("ascii")
        padding = b"\x00" * ((-len(type_string)) % 4)
        return padded_string(self._address) + type_string + padding + bytes(self._args)

    def packet(self) -> bytes:
        """Finish the message and return its bytes; no more arguments may follow."""
        if self.status is OscStatus.EMPTY:
            raise OscError("the message has no address")
        if self._packet is None:
            self._packet = self._assemble()
            self.status = OscStatus.PACKED
        return self._packet

    def packet_size(self) -> int:
        """Size in bytes of the finished message."""
        if self.status is OscStatus.EMPTY:
            raise OscError("the message has no address")
        if self._packet is not None:
            return len(self._packet)
        return len(self._assemble())


@dataclass
class OscMessage:
    """A decoded OSC message whose arguments can be walked one at a time."""

    address: str | None
    type_tags: str
    data: bytes
    offset: int
    _tag_index: int = field(default=0, init=False, repr=False)
    _pos: int = field(default=0, init=False, repr=False)

    def __post_init__(self) -> None:
        self._pos = self.offset

    @property
    def status(self) -> OscStatus:
        return OscStatus.DECODED

    def _read(self, tag_index: int, pos: int, max_size: int):
        if max_size < 4:
            raise OscError("the argument buffer is too small")
        if tag_index >= len(self.type_tags):
            return None, pos
        tag = self.type_tags[tag_index]
        if tag in ("i", "f"):
            chunk = self.data[pos : pos + 4]
            if len(chunk) < 4:
                raise OscError("the packet is truncated")
            value = struct.unpack(">i" if tag == "i" else ">f", chunk)[0]
            return (tag, value), pos + 4
        if tag == "s":
            end = self.data.find(b"\x00", pos)
            if end < 0:
                raise OscError("unterminated string argument")
            raw = self.data[pos:end]
            length = padded_length(raw)
            if max_size < length:
                raise OscError("the argument buffer is too small")
            return (tag, raw.decode("utf-8", "replace")), pos + length
        return None, pos

    def next_argument(self, max_size: int = OSC_MAX_SIZE):
        """Return the next ``(tag, value)`` pair, or None when none is left.

        Raises OscError, without moving on, if the argument needs more than
        ``max_size`` bytes.
        """
        result, pos = self._read(self._tag_index, self._pos, max_size)
        if result is not None:
            self._tag_index += 1
            self._pos = pos
        return result

    def arguments(self) -> list:
        """All ``(tag, value)`` pairs of the message, from the first."""
        found = []
        tag_index, pos = 0, self.offset
        while True:
            result, pos = self._read(tag_index, pos, OSC_MAX_SIZE)
            if result is None:
                return found
            found.append(result)
            tag_index += 1


def decode_packet(data: bytes) -> OscMessage:
    """Parse the address and type tags of an OSC packet."""
    data = bytes(data)
    if not data:
        raise OscError("empty packet")
    if data.startswith(b","):
        address = None
        type_pos = 0
    else:
        end = data.find(b"\x00")
        if end < 0:
            raise OscError("unterminated address")
        raw_address = data[:end]
        address = raw_address.decode("utf-8", "replace")
        type_pos = padded_length(raw_address)
    if data[type_pos : type_pos + 1] != b",":
        raise OscError("missing type tag string")
    end = data.find(b"\x00", type_pos)
    if end < 0:
        end = len(data)
    type_string = data[type_pos:end]
    offset = type_pos + padded_length(type_string)
    return OscMessage(address, type_string[1:].decode("latin-1"), data, offset)