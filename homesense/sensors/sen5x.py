"""
Sensirion SEN5x (SEN50/SEN54/SEN55) environmental sensor module driver.

Particulate matter (PM1.0/2.5/4.0/10), VOC and NOx index, temperature and
humidity in one module. Communicates via I2C at address 0x69.

Usage:
    from homesense.sensors import SEN5x

    sensor = SEN5x()
    sensor.initialize(bus, 0x69)
    for reading in sensor.collect():
        print(f"{reading.metric}: {reading.value}")
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from . import measurements
from .base import BaseSensor, SensorReading
from .sensirion import Command, CommandChannel, bytes_to_string, to_int16, unpack_words

logger = logging.getLogger(__name__)

SEN5X_ADDR = 0x69

SEN5X_RESET = Command(0xD304, "Reset device", delay=0.100)
SEN5X_SERIAL_NUMBER = Command(0xD033, "Serial number", delay=0.020, words=16)
SEN5X_PRODUCT_NAME = Command(0xD014, "Product name", delay=0.020, words=16)
SEN5X_VERSION = Command(0xD100, "Versions", delay=0.020, words=4)
SEN5X_READ_STATUS = Command(0xD206, "Read status", delay=0.020, words=2)
SEN5X_START_MEASUREMENT = Command(0x0021, "Start measurement", delay=0.050)
SEN5X_STOP_MEASUREMENT = Command(0x0104, "Stop measurement", delay=0.200)
SEN5X_READ_MEASUREMENTS = Command(0x03C4, "Read measurements", delay=0.020, words=8)


@dataclass
class SEN5xDeviceInfo:
    serial_number: str = ""
    product_name: str = ""
    firmware_major: int = 0
    firmware_minor: int = 0
    firmware_debug: bool = False
    hardware_major: int = 0
    hardware_minor: int = 0
    protocol_major: int = 0
    protocol_minor: int = 0
    status: int = 0


@dataclass
class SEN5xMeasurement:
    pm1_0: float
    pm2_5: float
    pm4_0: float
    pm10: float
    humidity: float
    temperature: float
    voc_index: float
    nox_index: float


def decode_measurement(data: bytes) -> SEN5xMeasurement:
    """Scale a decoded read-measurements answer (8 words) to physical units."""
    words = unpack_words(data)
    return SEN5xMeasurement(
        pm1_0=words[0] / 10,
        pm2_5=words[1] / 10,
        pm4_0=words[2] / 10,
        pm10=words[3] / 10,
        humidity=to_int16(words[4]) / 100,
        temperature=to_int16(words[5]) / 200,
        voc_index=to_int16(words[6]) / 10,
        nox_index=to_int16(words[7]) / 10,
    )


class SEN5x(BaseSensor):
    """
    SEN5x environmental sensor module.

    Provides:
    - room_humidity, room_temperature
    - room_voc, room_nox: VOC and NOx index (1-500)
    - room_air_quality_pm_concentration_env: PM1.0/2.5/4.0/10 in µg/m³,
      tagged with particleConcentration
    """

    name = "sen5x"
    description = "PM1.0/2.5/4.0/10, VOC, NOx, temperature and humidity"
    i2c_addresses = [SEN5X_ADDR]

    def __init__(self, tags: Optional[dict] = None):
        super().__init__(tags=tags)
        self.channel: Optional[CommandChannel] = None
        self.device_info = SEN5xDeviceInfo()
        self.data: Optional[SEN5xMeasurement] = None

    @property
    def source_id(self) -> str:
        return self._qualified(self.device_info.product_name or self.name)

    def matches_family(self, token: str) -> bool:
        return len(token) == 5 and token.lower().startswith("sen5")

    def setup(self) -> None:
        self.channel = CommandChannel(self.bus, self.address)
        self.reset()
        self.read_versions()
        self.read_product_name()
        self.read_serial_number()
        self.read_status()

        info = self.device_info
        logger.info(
            "Sensirion SEN5x\n"
            "\tProductName: %s\n"
            "\tSerialNumber: %s\n"
            "\tStatus: %d\n"
            "\tFirmwareDebug: %s\n"
            "\tVersions:\n"
            "\t\tFirmware: %d.%d\n"
            "\t\tHardware: %d.%d\n"
            "\t\tProtocol: %d.%d",
            info.product_name, info.serial_number, info.status, info.firmware_debug,
            info.firmware_major, info.firmware_minor,
            info.hardware_major, info.hardware_minor,
            info.protocol_major, info.protocol_minor,
        )

        self.channel.execute(SEN5X_START_MEASUREMENT)

    def cleanup(self) -> None:
        if self.channel:
            self.channel.execute(SEN5X_STOP_MEASUREMENT)

    def sample(self) -> List[SensorReading]:
        self.data = decode_measurement(self.channel.execute(SEN5X_READ_MEASUREMENTS))
        data = self.data

        concentration = measurements.PARTICLE_CONCENTRATION
        return [
            self.reading(measurements.HUMIDITY, data.humidity),
            self.reading(measurements.TEMPERATURE, data.temperature),
            self.reading(measurements.NOX, data.nox_index),
            self.reading(measurements.VOC, data.voc_index),
            self.reading(measurements.PM_ENVIRONMENTAL, data.pm1_0, **{concentration: "1.0pm"}),
            self.reading(measurements.PM_ENVIRONMENTAL, data.pm2_5, **{concentration: "2.5pm"}),
            self.reading(measurements.PM_ENVIRONMENTAL, data.pm4_0, **{concentration: "4.0pm"}),
            self.reading(measurements.PM_ENVIRONMENTAL, data.pm10, **{concentration: "10pm"}),
        ]

    def reset(self) -> None:
        self.channel.execute(SEN5X_RESET)

    def read_serial_number(self) -> str:
        self.device_info.serial_number = bytes_to_string(self.channel.execute(SEN5X_SERIAL_NUMBER))
        return self.device_info.serial_number

    def read_product_name(self) -> str:
        self.device_info.product_name = bytes_to_string(self.channel.execute(SEN5X_PRODUCT_NAME))
        return self.device_info.product_name

    def read_versions(self) -> None:
        data = self.channel.execute(SEN5X_VERSION)
        info = self.device_info
        info.firmware_major = data[0]
        info.firmware_minor = data[1]
        info.firmware_debug = data[2] == 1
        info.hardware_major = data[3]
        info.hardware_minor = data[4]
        info.protocol_major = data[5]
        info.protocol_minor = data[6]

    def read_status(self) -> int:
        self.device_info.status = int.from_bytes(self.channel.execute(SEN5X_READ_STATUS), "big")
        return self.device_info.status
