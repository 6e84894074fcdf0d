"""
Plantower PMSA003I particulate matter sensor driver.

The sensor answers every I2C read with a fixed 32-byte frame:

    bytes 0-1    header (0x42 0x4D)
    bytes 2-3    payload length, big-endian, always 28
    bytes 4-27   twelve big-endian uint16 fields
    bytes 28-29  reserved
    bytes 30-31  big-endian sum of bytes 0-29

A frame with a bad length or checksum is dropped and the previous values
are kept.

Usage:
    from homesense.sensors import PMSA003I

    sensor = PMSA003I()
    sensor.initialize(bus, 0x12)
    for reading in sensor.collect():
        print(f"{reading.metric} {reading.tags}: {reading.value}")
"""

import logging
import struct
from dataclasses import astuple, dataclass
from typing import List, Optional

from ..errors import ChecksumError, ProtocolError
from . import measurements
from .base import BaseSensor, SensorReading

logger = logging.getLogger(__name__)

PMSA003I_ADDR = 0x12

FRAME_LENGTH = 32
PAYLOAD_LENGTH = 28
CHECKSUM_OFFSET = 30


@dataclass(frozen=True)
class ParticulateFrame:
    """Decoded PMSA003I frame. Concentrations in µg/m³, counts per 0.1 L."""

    pm1_standard: int
    pm2_5_standard: int
    pm10_standard: int
    pm1_env: int
    pm2_5_env: int
    pm10_env: int
    particles_0_3um: int
    particles_0_5um: int
    particles_1um: int
    particles_2_5um: int
    particles_5um: int
    particles_10um: int


def frame_checksum(frame: bytes) -> int:
    """16-bit additive checksum over the first 30 bytes."""
    return sum(frame[:CHECKSUM_OFFSET]) & 0xFFFF


def decode_frame(frame: bytes) -> ParticulateFrame:
    """Validate and decode one 32-byte frame.

    Raises:
        ProtocolError: wrong frame size or payload length field != 28.
            Checked before the checksum.
        ChecksumError: checksum mismatch.
    """
    if len(frame) != FRAME_LENGTH:
        raise ProtocolError(f"Invalid PM2.5 frame size {len(frame)}")

    (length,) = struct.unpack_from(">H", frame, 2)
    if length != PAYLOAD_LENGTH:
        raise ProtocolError(f"Invalid PM2.5 frame length {length}")

    (checksum,) = struct.unpack_from(">H", frame, CHECKSUM_OFFSET)
    computed = frame_checksum(frame)
    if computed != checksum:
        raise ChecksumError(computed, checksum)

    return ParticulateFrame(*struct.unpack_from(">12H", frame, 4))


def encode_frame(values: ParticulateFrame, header: bytes = b"\x42\x4d") -> bytes:
    """Build a valid frame for the given field values (simulation and tests)."""
    body = header + struct.pack(">H12H", PAYLOAD_LENGTH, *astuple(values)) + b"\x00\x00"
    return body + struct.pack(">H", frame_checksum(body))


class PMSA003I(BaseSensor):
    """
    PMSA003I particulate matter sensor.

    Provides:
    - room_air_quality_pm_concentration_standard: PM1.0/2.5/10 (CF=1)
    - room_air_quality_pm_concentration_env: PM1.0/2.5/10 (atmospheric)
    - room_air_quality_particles_count: particles > 0.3/0.5/1/2.5/5/10 µm
    """

    name = "pmsa003i"
    description = "Particulate matter PM1.0/2.5/10 and particle counts"
    i2c_addresses = [PMSA003I_ADDR]

    def __init__(self, tags: Optional[dict] = None):
        super().__init__(tags=tags)
        self.frame: Optional[ParticulateFrame] = None

    def matches_family(self, token: str) -> bool:
        return len(token) == 8 and token.lower() == self.name

    def setup(self) -> None:
        # No configuration; fail early if nothing answers at the address
        self.bus.read(self.address, FRAME_LENGTH)

    def read_frame(self) -> ParticulateFrame:
        """Read and decode a frame, keeping the previous one on error."""
        self.frame = decode_frame(self.bus.read(self.address, FRAME_LENGTH))
        return self.frame

    def sample(self) -> List[SensorReading]:
        f = self.read_frame()

        concentration = measurements.PARTICLE_CONCENTRATION
        size = measurements.PARTICLE_SIZE
        standard = measurements.PM_STANDARD
        env = measurements.PM_ENVIRONMENTAL
        count = measurements.PARTICLE_COUNT
        return [
            self.reading(standard, float(f.pm1_standard), **{concentration: "1.0pm"}),
            self.reading(standard, float(f.pm2_5_standard), **{concentration: "2.5pm"}),
            self.reading(standard, float(f.pm10_standard), **{concentration: "10pm"}),
            self.reading(env, float(f.pm1_env), **{concentration: "1.0pm"}),
            self.reading(env, float(f.pm2_5_env), **{concentration: "2.5pm"}),
            self.reading(env, float(f.pm10_env), **{concentration: "10pm"}),
            self.reading(count, float(f.particles_0_3um), **{size: "0.3um"}),
            self.reading(count, float(f.particles_0_5um), **{size: "0.5um"}),
            self.reading(count, float(f.particles_1um), **{size: "1um"}),
            self.reading(count, float(f.particles_2_5um), **{size: "2.5um"}),
            self.reading(count, float(f.particles_5um), **{size: "5.0um"}),
            self.reading(count, float(f.particles_10um), **{size: "10um"}),
        ]
