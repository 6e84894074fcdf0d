"""
Exceptions raised by the bus, codecs and sensor drivers.

Per-cycle errors (BusError, ChecksumError, ProtocolError) are caught by the
driver's collect() and counted. CalibrationError is raised from
initialize() and left for the caller to handle. RangeError is raised before
any bus I/O when a caller passes a parameter outside its documented bounds.
"""


class SensorError(Exception):
    """Base exception for homesense errors."""

    pass


class BusError(SensorError):
    """Transport-level failure (no response, NACK, adapter error)."""

    def __init__(self, address: int, message: str):
        self.address = address
        super().__init__(f"I2C 0x{address:02X}: {message}")


class ChecksumError(SensorError):
    """CRC or frame checksum mismatch."""

    def __init__(self, expected: int, received: int):
        self.expected = expected
        self.received = received
        super().__init__(
            f"Checksum mismatch: expected 0x{expected:02X}, received 0x{received:02X}"
        )


class ProtocolError(SensorError):
    """Structurally malformed response (wrong length, bad length field)."""

    pass


class CalibrationError(SensorError):
    """Calibration coefficients could not be read or parsed."""

    pass


class RangeError(SensorError, ValueError):
    """Caller-supplied parameter outside documented bounds."""

    pass
