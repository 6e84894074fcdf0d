"""
Sensirion I2C command protocol.

Shared by the SCD4x and SEN5x drivers. A command is a 16-bit opcode sent
big-endian, optionally followed by a 16-bit argument and its CRC. Responses
arrive as repeating (data-high, data-low, crc) triplets. Every command has a
settle time that must pass before the device accepts the next one.

CRC-8 per the Sensirion datasheets: polynomial 0x31, init 0xFF, no
reflection, no final XOR. crc8(b"\\xbe\\xef") == 0x92.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from ..errors import ChecksumError, ProtocolError, RangeError

if TYPE_CHECKING:
    from ..bus import I2CBus

logger = logging.getLogger(__name__)

WORD_SIZE = 2
CRC_WORD_SIZE = 3


@dataclass(frozen=True)
class Command:
    """A device command.

    Args:
        code: 16-bit opcode.
        description: Human-readable name used in log and error messages.
        delay: Settle time in seconds after the command is written.
        words: Number of 16-bit words the device answers with (0 for none).
    """

    code: int
    description: str
    delay: float = 0.0
    words: int = 0


def crc8(data: bytes) -> int:
    """CRC-8 check per Sensirion datasheet (polynomial 0x31)."""
    crc = 0xFF
    for byte in data:
        crc ^= byte
        for _ in range(8):
            if crc & 0x80:
                crc = (crc << 1) ^ 0x31
            else:
                crc = crc << 1
            crc &= 0xFF
    return crc


def encode(command: Command, argument: Optional[int] = None) -> bytes:
    """Encode a command, and its argument word plus CRC if given."""
    frame = command.code.to_bytes(2, "big")
    if argument is None:
        return frame
    if not 0 <= argument <= 0xFFFF:
        raise RangeError(
            f"{command.description}: argument {argument} does not fit in 16 bits"
        )
    word = argument.to_bytes(2, "big")
    return frame + word + bytes([crc8(word)])


def decode(response: bytes, words: int) -> bytes:
    """Verify and strip the CRC bytes from a response.

    Raises:
        ProtocolError: response is not exactly ``words`` CRC words long.
        ChecksumError: any word fails its CRC. No partial data is returned.
    """
    if len(response) != words * CRC_WORD_SIZE:
        raise ProtocolError(
            f"Expected {words * CRC_WORD_SIZE} bytes, received {len(response)}"
        )

    data = bytearray()
    for i in range(0, len(response), CRC_WORD_SIZE):
        word = response[i:i + WORD_SIZE]
        expected = crc8(word)
        if expected != response[i + WORD_SIZE]:
            raise ChecksumError(expected, response[i + WORD_SIZE])
        data += word
    return bytes(data)


def unpack_words(data: bytes) -> list:
    """Split decoded data into unsigned 16-bit big-endian words."""
    return [int.from_bytes(data[i:i + WORD_SIZE], "big") for i in range(0, len(data), WORD_SIZE)]


def to_int16(word: int) -> int:
    return word - 0x10000 if word & 0x8000 else word


class CommandChannel:
    """
    Executes commands against one device.

    A write, the settle delay and the read of the answer happen under one
    per-device lock, so nothing can be sent to the device while it is still
    processing the previous command. The delay is a blocking sleep.

    Args:
        bus: Bus collaborator providing write() and read().
        address: 7-bit device address.
    """

    def __init__(self, bus: "I2CBus", address: int):
        self.bus = bus
        self.address = address
        self._lock = threading.Lock()

    def execute(self, command: Command, argument: Optional[int] = None) -> bytes:
        """Send a command and return its decoded answer (empty if none)."""
        frame = encode(command, argument)

        with self._lock:
            logger.debug(
                "0x%02X <- %s (0x%04X)", self.address, command.description, command.code
            )
            self.bus.write(self.address, frame)
            if command.delay > 0:
                time.sleep(command.delay)
            if not command.words:
                return b""
            response = self.bus.read(self.address, command.words * CRC_WORD_SIZE)

        return decode(response, command.words)

    def read_words(self, command: Command, argument: Optional[int] = None) -> list:
        return unpack_words(self.execute(command, argument))


def bytes_to_string(data: bytes) -> str:
    """Decode a NUL-padded ASCII field."""
    return data.split(b"\x00", 1)[0].decode("ascii", errors="replace").strip()
