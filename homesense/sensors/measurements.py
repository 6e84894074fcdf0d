"""
Catalogue of the measurement kinds drivers report.

Each SensorReading points at one of these. Exporters use the id as the
metric name and the labels to know which tag keys a kind carries.
"""

from dataclasses import dataclass
from typing import Tuple


class Unit:
    HECTOPASCAL = "Hectopascal"
    CELSIUS = "Celsius"
    PERCENTAGE = "Percentage"
    PARTS_PER_MILLION = "PartsPerMillion"
    OHM = "Ohm"
    AIR_QUALITY_INDEX = "AirQualityIndex"
    COUNT = "Count"
    MICROGRAMS_PER_CUBIC_METRE = "MicrogramsPerCubicMetre"
    VOC_INDEX = "VOC Index"
    NOX_INDEX = "NOx Index"


# Tag keys
SENSOR_NAME = "sensor"
PARTICLE_SIZE = "particleSize"
PARTICLE_CONCENTRATION = "particleConcentration"


@dataclass(frozen=True)
class Measurement:
    """A kind of physical quantity with its unit and tag keys."""

    id: str
    description: str
    unit: str
    labels: Tuple[str, ...] = (SENSOR_NAME,)


PRESSURE = Measurement("room_pressure", "Pressure hPa", Unit.HECTOPASCAL)
TEMPERATURE = Measurement("room_temperature", "Ambient temperature in C", Unit.CELSIUS)
HUMIDITY = Measurement("room_humidity", "Ambient relative humidity", Unit.PERCENTAGE)
VOC = Measurement("room_voc", "Volatile organic compounds", Unit.VOC_INDEX)
NOX = Measurement("room_nox", "Nitric Oxide", Unit.NOX_INDEX)
CARBON_DIOXIDE = Measurement("room_co2", "CO2 in ppm", Unit.PARTS_PER_MILLION)
IAQ = Measurement("room_iaq", "Indoor Air Quality", Unit.AIR_QUALITY_INDEX)
GAS_RESISTANCE = Measurement("room_gasResistance", "Gas resistance in Ohm", Unit.OHM)
PM_ENVIRONMENTAL = Measurement(
    "room_air_quality_pm_concentration_env",
    "Air quality. PM concentration in environmental units.",
    Unit.MICROGRAMS_PER_CUBIC_METRE,
    (PARTICLE_CONCENTRATION, SENSOR_NAME),
)
PM_STANDARD = Measurement(
    "room_air_quality_pm_concentration_standard",
    "Air quality. PM concentration in standard units.",
    Unit.MICROGRAMS_PER_CUBIC_METRE,
    (PARTICLE_CONCENTRATION, SENSOR_NAME),
)
PARTICLE_COUNT = Measurement(
    "room_air_quality_particles_count",
    "Air quality. Particulate matter per 0.1L air.",
    Unit.COUNT,
    (PARTICLE_SIZE, SENSOR_NAME),
)

MEASUREMENTS = [
    PRESSURE,
    TEMPERATURE,
    HUMIDITY,
    CARBON_DIOXIDE,
    IAQ,
    GAS_RESISTANCE,
    PARTICLE_COUNT,
    PM_ENVIRONMENTAL,
    PM_STANDARD,
    NOX,
    VOC,
]
