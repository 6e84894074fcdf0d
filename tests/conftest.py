"""Shared fixtures: an in-memory I2C bus and fake devices to hang on it."""

from collections import deque
from unittest.mock import patch

import pytest

from homesense.errors import BusError
from homesense.sensors.sensirion import crc8


def encode_words(words):
    """Sensirion wire format: each word followed by its CRC."""
    out = bytearray()
    for word in words:
        raw = (word & 0xFFFF).to_bytes(2, "big")
        out += raw + bytes([crc8(raw)])
    return bytes(out)


def words_from_bytes(data):
    """Pack bytes into big-endian words (pads an odd tail with 0)."""
    if len(data) % 2:
        data += b"\x00"
    return [int.from_bytes(data[i:i + 2], "big") for i in range(0, len(data), 2)]


class FakeDevice:
    address = None

    def nack(self, message="no ACK"):
        raise BusError(self.address, message)


class SensirionDevice(FakeDevice):
    """Answers commands from a table of opcode -> words (or raw bytes)."""

    def __init__(self, answers=None):
        self.answers = dict(answers or {})
        self.nacks = set()
        self.commands = []
        self.pending = b""

    def write(self, data):
        opcode = int.from_bytes(data[:2], "big")
        argument = int.from_bytes(data[2:4], "big") if len(data) >= 5 else None
        self.commands.append((opcode, argument))
        if opcode in self.nacks:
            self.nack()

        answer = self.answers.get(opcode)
        if answer is None:
            self.pending = b""
        elif isinstance(answer, (bytes, bytearray)):
            self.pending = bytes(answer)
        else:
            self.pending = encode_words(answer)

    def read(self, length):
        return self.pending[:length]

    @property
    def opcodes(self):
        return [opcode for opcode, _ in self.commands]


class RegisterDevice(FakeDevice):
    """Register-pointer device: first written byte selects the register."""

    def __init__(self, size=256):
        self.regs = bytearray(size)
        self.pointer = 0
        self.fail_reads = set()

    def write(self, data):
        self.pointer = data[0]
        for i, value in enumerate(data[1:]):
            self.regs[self.pointer + i] = value

    def read(self, length):
        if self.pointer in self.fail_reads:
            self.nack(f"read of 0x{self.pointer:02X} failed")
        return bytes(self.regs[self.pointer:self.pointer + length])

    def load(self, register, data):
        self.regs[register:register + len(data)] = data


class StreamDevice(FakeDevice):
    """Returns queued blobs on read; the last one repeats."""

    def __init__(self, *blobs):
        self.blobs = deque(blobs)
        self.last = b""

    def write(self, data):
        pass

    def read(self, length):
        if self.blobs:
            self.last = self.blobs.popleft()
        return self.last[:length]


class FakeBus:
    """Drop-in for I2CBus that routes transfers to fake devices."""

    def __init__(self):
        self.devices = {}
        self.writes = []
        self.closed = False

    def attach(self, address, device):
        device.address = address
        self.devices[address] = device
        return device

    def _device(self, address):
        if address not in self.devices:
            raise BusError(address, "no ACK")
        return self.devices[address]

    def write(self, address, data):
        self.writes.append((address, bytes(data)))
        self._device(address).write(bytes(data))

    def read(self, address, length):
        return self._device(address).read(length)

    def write_read(self, address, data, length):
        self.write(address, data)
        return self.read(address, length)

    def close(self):
        self.closed = True


@pytest.fixture
def bus():
    return FakeBus()


@pytest.fixture
def no_sleep():
    """Patch out settle delays. Yields the mock to inspect calls."""
    with patch("time.sleep") as sleep:
        yield sleep
