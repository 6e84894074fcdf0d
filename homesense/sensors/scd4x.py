"""
Sensirion SCD4x (SCD40/SCD41) CO2 sensor driver.

Photoacoustic NDIR CO2 sensor with on-board temperature and humidity.
Communicates via I2C at address 0x62 using the Sensirion command protocol.
The driver runs the sensor in periodic measurement mode (one sample every
5 seconds) and reads the latest sample whenever one is ready.

Usage:
    from homesense.bus import I2CBus
    from homesense.sensors import SCD4x

    sensor = SCD4x()
    sensor.initialize(I2CBus(1), 0x62)
    for reading in sensor.collect():
        print(f"{reading.metric}: {reading.value}")
"""

import logging
from typing import List, Optional

from ..errors import BusError, CalibrationError, RangeError
from . import measurements
from .base import BaseSensor, SensorReading
from .sensirion import Command, CommandChannel, unpack_words

logger = logging.getLogger(__name__)

SCD4X_ADDR = 0x62

SCD4X_REINIT = Command(0x3646, "Reinit", delay=0.030)
SCD4X_FACTORYRESET = Command(0x3632, "Factory reset", delay=1.200)
SCD4X_FORCEDRECAL = Command(0x362F, "Force recal", delay=0.400, words=1)
SCD4X_SELFTEST = Command(0x3639, "Self test", delay=10.0, words=1)
SCD4X_DATAREADY = Command(0xE4B8, "Data ready", delay=0.001, words=1)
SCD4X_STOPPERIODICMEASUREMENT = Command(0x3F86, "Stop periodic measurement", delay=0.500)
SCD4X_STARTPERIODICMEASUREMENT = Command(0x21B1, "Start periodic measurement")
SCD4X_STARTLOWPOWERPERIODICMEASUREMENT = Command(0x21AC, "Start low power periodic measurement")
SCD4X_READMEASUREMENT = Command(0xEC05, "Read measurement", delay=0.001, words=3)
SCD4X_SERIALNUMBER = Command(0x3682, "Serial number", delay=0.001, words=3)
SCD4X_GETTEMPOFFSET = Command(0x2318, "Get temp offset", delay=0.001, words=1)
SCD4X_SETTEMPOFFSET = Command(0x241D, "Set temp offset", delay=0.001)
SCD4X_GETALTITUDE = Command(0x2322, "Get altitude", delay=0.001, words=1)
SCD4X_SETALTITUDE = Command(0x2427, "Set altitude", delay=0.001)
SCD4X_SETPRESSURE = Command(0xE000, "Set pressure", delay=0.001)
SCD4X_PERSISTSETTINGS = Command(0x3615, "Persist settings", delay=0.800)
SCD4X_GETASCE = Command(0x2313, "Get asce", delay=0.001, words=1)
SCD4X_SETASCE = Command(0x2416, "Set asce", delay=0.001)
SCD4X_WAKEUP = Command(0x36F6, "Wake up", delay=0.030)

MAX_TEMPERATURE_OFFSET = 374
MAX_ENCODABLE_OFFSET = 175.0 * 0xFFFF / 2 ** 16


class SCD4x(BaseSensor):
    """
    SCD4x CO2, temperature and humidity sensor.

    Provides:
    - room_co2: CO2 concentration in ppm
    - room_temperature: Temperature in °C
    - room_humidity: Relative humidity in %
    """

    name = "scd4x"
    description = "CO2 (ppm), temperature and humidity"
    i2c_addresses = [SCD4X_ADDR]

    def __init__(self, tags: Optional[dict] = None):
        super().__init__(tags=tags)
        self.channel: Optional[CommandChannel] = None
        self.serial_number: Optional[str] = None
        self.co2: Optional[float] = None
        self.temperature: Optional[float] = None
        self.humidity: Optional[float] = None

    def matches_family(self, token: str) -> bool:
        return len(token) == 5 and token.lower().startswith("scd4")

    def setup(self) -> None:
        self.channel = CommandChannel(self.bus, self.address)

        # The sensor does not acknowledge the wake-up command
        try:
            self.channel.execute(SCD4X_WAKEUP)
        except BusError:
            logger.debug("SCD4x wake-up not acknowledged (expected)")

        self.channel.execute(SCD4X_STOPPERIODICMEASUREMENT)
        self.channel.execute(SCD4X_REINIT)
        try:
            self.read_serial_number()
        except BusError as e:
            logger.error("Failed to read SCD4x serial number: %s", e)

        logger.info("Sensirion SCD4X\n\tSerialNumber: %s", self.serial_number)
        self.start_periodic_measurement()

    def cleanup(self) -> None:
        if self.channel:
            self.stop_periodic_measurement()

    def sample(self) -> List[SensorReading]:
        if self.data_ready():
            self.read_measurement()

        if self.co2 is None:
            return []

        return [
            self.reading(measurements.TEMPERATURE, self.temperature),
            self.reading(measurements.HUMIDITY, self.humidity),
            self.reading(measurements.CARBON_DIOXIDE, self.co2),
        ]

    # =========================================================================
    # Measurement
    # =========================================================================

    def data_ready(self) -> bool:
        """True when a new sample is waiting (lower 11 status bits non-zero)."""
        (status,) = self.channel.read_words(SCD4X_DATAREADY)
        return (status & 0x07FF) != 0

    def read_measurement(self) -> None:
        data = self.channel.execute(SCD4X_READMEASUREMENT)
        self.co2, self.temperature, self.humidity = decode_measurement(data)

    def start_periodic_measurement(self) -> None:
        self.channel.execute(SCD4X_STARTPERIODICMEASUREMENT)

    def start_low_power_periodic_measurement(self) -> None:
        self.channel.execute(SCD4X_STARTLOWPOWERPERIODICMEASUREMENT)

    def stop_periodic_measurement(self) -> None:
        self.channel.execute(SCD4X_STOPPERIODICMEASUREMENT)

    def read_serial_number(self) -> str:
        words = self.channel.read_words(SCD4X_SERIALNUMBER)
        value = 0
        for word in words:
            value = (value << 16) | word
        self.serial_number = f"0x{value:012X}"
        return self.serial_number

    # =========================================================================
    # Calibration and settings
    #
    # Settings are volatile and reset on power cycle unless persist_settings()
    # is called. Most of them can only be changed while periodic measurement
    # is stopped.
    # =========================================================================

    def get_temperature_offset(self) -> float:
        """Temperature offset in °C subtracted from the measured temperature."""
        (raw,) = self.channel.read_words(SCD4X_GETTEMPOFFSET)
        return 175.0 * raw / 2 ** 16

    def set_temperature_offset(self, offset: float) -> None:
        """Set the temperature offset, 0.01 °C resolution.

        The register holds offset * 2^16 / 175, so anything from
        MAX_ENCODABLE_OFFSET up to the 374 °C limit is rejected as well.
        """
        if offset < 0:
            raise RangeError("Offset value must not be negative")
        if offset > MAX_TEMPERATURE_OFFSET:
            raise RangeError(
                f"Offset value must be less than or equal to {MAX_TEMPERATURE_OFFSET} degrees Celsius"
            )
        if offset > MAX_ENCODABLE_OFFSET:
            raise RangeError(
                f"Offset value {offset} degrees Celsius exceeds the largest encodable "
                f"offset of {MAX_ENCODABLE_OFFSET:.2f} degrees Celsius"
            )
        self.channel.execute(SCD4X_SETTEMPOFFSET, int(offset * 2 ** 16 / 175))

    def get_altitude(self) -> int:
        """Altitude above sea level in metres used for pressure compensation."""
        (altitude,) = self.channel.read_words(SCD4X_GETALTITUDE)
        return altitude

    def set_altitude(self, altitude: int) -> None:
        if not 0 <= altitude <= 0xFFFF:
            raise RangeError(f"Altitude must be between 0 and 65535 metres, got {altitude}")
        self.channel.execute(SCD4X_SETALTITUDE, altitude)

    def set_ambient_pressure(self, pressure_hpa: int) -> None:
        """Override altitude compensation with the current ambient pressure."""
        self.channel.execute(SCD4X_SETPRESSURE, pressure_hpa)

    def is_self_calibration_enabled(self) -> bool:
        (enabled,) = self.channel.read_words(SCD4X_GETASCE)
        return enabled == 1

    def set_self_calibration(self, enable: bool) -> None:
        self.channel.execute(SCD4X_SETASCE, 1 if enable else 0)

    def force_recalibration(self, target_co2: int) -> int:
        """Calibrate against a known CO2 concentration.

        The sensor must have been measuring for at least 3 minutes in the
        target atmosphere. Stops periodic measurement.

        Returns:
            The applied correction in ppm.
        """
        self.stop_periodic_measurement()
        (correction,) = self.channel.read_words(SCD4X_FORCEDRECAL, target_co2)
        if correction == 0xFFFF:
            raise CalibrationError(
                "Force recalibration failed, please make sure sensor is active for 3m first"
            )
        return correction - 0x8000

    def self_test(self) -> bool:
        """Run the on-chip self test (takes 10 s). Stops periodic measurement."""
        self.stop_periodic_measurement()
        (result,) = self.channel.read_words(SCD4X_SELFTEST)
        return result == 0

    def persist_settings(self) -> None:
        """Store offset, altitude and ASC settings in EEPROM."""
        self.channel.execute(SCD4X_PERSISTSETTINGS)

    def factory_reset(self) -> None:
        self.stop_periodic_measurement()
        self.channel.execute(SCD4X_FACTORYRESET)


def decode_measurement(data: bytes) -> tuple:
    """Convert a decoded read-measurement answer into (co2, °C, %RH)."""
    co2, raw_temp, raw_hum = unpack_words(data)
    return float(co2), -45 + 175 * (raw_temp / 2 ** 16), 100 * (raw_hum / 2 ** 16)
