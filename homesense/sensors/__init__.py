"""
homesense sensor drivers

Drivers for the environmental sensors homesense polls over I2C.

Quick Start:
    from homesense.bus import I2CBus
    from homesense.sensors import SCD4x

    scd = SCD4x()
    scd.initialize(I2CBus(1), 0x62)
    for reading in scd.collect():
        print(reading.metric, reading.value)

With SensorHub:
    from homesense.sensors import SensorHub, SCD4x, BME68x

    hub = SensorHub(interval=10)
    hub.add(scd)
    hub.add(bme)
    hub.run()

By name:
    from homesense.sensors import sniff

    sensor = sniff("bme680")   # a fresh BME68x, or None if unknown

Supported Sensors:
    - SCD4x: CO2, temperature and humidity (SCD40/SCD41)
    - SEN5x: PM1.0/2.5/4.0/10, VOC, NOx, temperature and humidity
    - PMSA003I: PM concentrations and particle counts
    - BME68x: Temperature, pressure, humidity, gas resistance and IAQ
"""

from typing import List, Optional

from .base import BaseSensor, SensorReading, SensorHub
from .bme68x import BME68x
from .pmsa003i import PMSA003I
from .scd4x import SCD4x
from .sen5x import SEN5x

__all__ = [
    # Base classes
    "BaseSensor",
    "SensorReading",
    "SensorHub",
    # I2C sensors
    "SCD4x",
    "SEN5x",
    "PMSA003I",
    "BME68x",
    # Registry
    "SUPPORTED_SENSORS",
    "sniff",
    "supported",
]

# Driver constructors, in the order sniff() tries them
SUPPORTED_SENSORS = [SCD4x, SEN5x, PMSA003I, BME68x]


def sniff(token: str) -> Optional[BaseSensor]:
    """Return a new, uninitialized driver whose family matches token."""
    for factory in SUPPORTED_SENSORS:
        sensor = factory()
        if sensor.matches_family(token):
            return sensor
    return None


def supported() -> List[str]:
    return [factory.name for factory in SUPPORTED_SENSORS]
