"""
Shared I2C bus access.

Every transaction goes through smbus2's combined-message interface
(``i2c_rdwr``), so a write-then-read is a single transaction with a repeated
start and nothing else on the bus can interleave with it. A bus-wide lock
serialises transactions issued from different threads.

Usage:
    from homesense.bus import I2CBus

    with I2CBus(1) as bus:
        bus.write(0x62, b"\\x21\\xb1")
        data = bus.write_read(0x77, b"\\xd0", 1)
"""

import logging
import threading
from typing import Optional

from .errors import BusError

logger = logging.getLogger(__name__)


class I2CBus:
    """
    Thin wrapper around an smbus2 SMBus handle.

    Args:
        bus: I2C bus number (1 on a Raspberry Pi).
    """

    def __init__(self, bus: int = 1):
        self.bus_num = bus
        self._bus = None
        self._lock = threading.RLock()

    def open(self) -> None:
        try:
            from smbus2 import SMBus
        except ImportError:
            raise ImportError(
                "smbus2 is required for I2C access. Install with: pip install smbus2"
            )

        with self._lock:
            if self._bus is None:
                self._bus = SMBus(self.bus_num)
                logger.debug("Opened I2C bus %d", self.bus_num)

    def close(self) -> None:
        with self._lock:
            if self._bus:
                self._bus.close()
                self._bus = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, *args):
        self.close()

    def write(self, address: int, data: bytes) -> None:
        """Write raw bytes to a device in one transaction."""
        from smbus2 import i2c_msg

        self._transfer(address, i2c_msg.write(address, list(data)))

    def read(self, address: int, length: int) -> bytes:
        """Read raw bytes from a device in one transaction."""
        from smbus2 import i2c_msg

        msg = i2c_msg.read(address, length)
        self._transfer(address, msg)
        return bytes(list(msg))

    def write_read(self, address: int, data: bytes, length: int) -> bytes:
        """Write then read with a repeated start, as one transaction."""
        from smbus2 import i2c_msg

        msgs = []
        if data:
            msgs.append(i2c_msg.write(address, list(data)))
        read = i2c_msg.read(address, length)
        msgs.append(read)
        self._transfer(address, *msgs)
        return bytes(list(read))

    def _transfer(self, address: int, *msgs) -> None:
        with self._lock:
            if self._bus is None:
                self.open()
            try:
                self._bus.i2c_rdwr(*msgs)
            except OSError as e:
                raise BusError(address, str(e)) from e


def scan(bus: Optional[I2CBus] = None, bus_num: int = 1) -> list:
    """Return the 7-bit addresses that acknowledge a one-byte read."""
    own = bus is None
    bus = bus or I2CBus(bus_num)
    found = []
    try:
        for address in range(0x08, 0x78):
            try:
                bus.read(address, 1)
                found.append(address)
            except BusError:
                continue
    finally:
        if own:
            bus.close()
    return found
