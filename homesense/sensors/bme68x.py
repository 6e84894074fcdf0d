"""
Bosch BME680/BME688 environmental sensor driver.

Temperature, pressure, humidity and gas resistance, plus a simple indoor air
quality score derived from humidity and a rolling gas resistance baseline.
Communicates via I2C at address 0x77 (0x76 with SDO pulled low).

Each poll runs one forced-mode measurement:

    sleep -> apply configuration -> forced -> wait for new data -> read

after which the device drops back to sleep by itself.

Usage:
    from homesense.sensors import BME68x

    sensor = BME68x()
    sensor.initialize(bus, 0x77)
    for reading in sensor.collect():
        print(f"{reading.metric}: {reading.value}")
"""

import logging
import time
from typing import List, Optional

from ..errors import BusError, CalibrationError, ProtocolError
from . import measurements
from .base import BaseSensor, SensorReading
from .bme68x_calibration import (
    LEN_COEFF1,
    LEN_COEFF2,
    LEN_COEFF3,
    LEN_FIELD,
    NEW_DATA_MSK,
    VARIANT_GAS_HIGH,
    CalibrationCoefficients,
    CompensatedReading,
    GasBaselineWindow,
    air_quality_score,
    compensate,
    heater_duration_code,
    heater_resistance_code,
    parse_coefficients,
    parse_field,
)

logger = logging.getLogger(__name__)

BME68X_ADDR = 0x77
BME68X_ADDR_LOW = 0x76
BME68X_CHIP_ID = 0x61

# Registers
REG_COEFF3 = 0x00
REG_FIELD0 = 0x1D
REG_RES_HEAT0 = 0x5A
REG_GAS_WAIT0 = 0x64
REG_CTRL_GAS_1 = 0x71
REG_CTRL_HUM = 0x72
REG_CTRL_MEAS = 0x74
REG_CONFIG = 0x75
REG_COEFF1 = 0x8A
REG_CHIP_ID = 0xD0
REG_SOFT_RESET = 0xE0
REG_COEFF2 = 0xE1
REG_VARIANT_ID = 0xF0

SOFT_RESET_CMD = 0xB6

# Bit masks and positions
MODE_MSK = 0x03
OSH_MSK = 0x07
OSP_MSK = 0x1C
OSP_POS = 2
OST_MSK = 0xE0
OST_POS = 5
FILTER_MSK = 0x1C
FILTER_POS = 2
NBCONV_MSK = 0x0F
RUN_GAS_MSK = 0x30
RUN_GAS_POS = 4

SLEEP_MODE = 0
FORCED_MODE = 1

OS_NONE = 0
OS_1X = 1
OS_2X = 2
OS_4X = 3
OS_8X = 4
OS_16X = 5

FILTER_OFF = 0
FILTER_SIZE_3 = 2

ENABLE_GAS_MEAS_L = 0x01
ENABLE_GAS_MEAS_H = 0x02

# Measurement cycles per oversampling setting
OS_TO_MEAS_CYCLES = (0, 1, 2, 4, 8, 16)

POLL_ATTEMPTS = 10
POLL_PERIOD = 0.010
RESET_DELAY = 0.010

DEFAULT_AMBIENT_TEMPERATURE = 25


class BME68x(BaseSensor):
    """
    BME680/BME688 temperature, pressure, humidity and gas sensor.

    Provides:
    - room_temperature: °C
    - room_pressure: hPa
    - room_humidity: %RH
    - room_gas_resistance: Ohm
    - room_iaq: 0-100 air quality score, once the heater is stable

    Args:
        heater_temperature: Target heater plate temperature in °C.
        heater_duration: Heating time per measurement in ms.
        tags: Extra tags added to every reading.
    """

    name = "bme68x"
    description = "Temperature, pressure, humidity, gas resistance and IAQ"
    i2c_addresses = [BME68X_ADDR, BME68X_ADDR_LOW]

    def __init__(
        self,
        heater_temperature: int = 320,
        heater_duration: int = 150,
        tags: Optional[dict] = None,
    ):
        super().__init__(tags=tags)
        self.heater_temperature = heater_temperature
        self.heater_duration = heater_duration
        self.os_hum = OS_2X
        self.os_pres = OS_4X
        self.os_temp = OS_8X
        self.filter = FILTER_SIZE_3

        self.variant_id = 0
        self.calibration: Optional[CalibrationCoefficients] = None
        self.ambient_temperature = DEFAULT_AMBIENT_TEMPERATURE
        self.baseline = GasBaselineWindow()
        self.data: Optional[CompensatedReading] = None

    def matches_family(self, token: str) -> bool:
        return len(token) == 6 and token.lower().startswith("bme68")

    @property
    def gas_enable(self) -> int:
        if self.variant_id == VARIANT_GAS_HIGH:
            return ENABLE_GAS_MEAS_H
        return ENABLE_GAS_MEAS_L

    def setup(self) -> None:
        self.soft_reset()

        chip_id = self._read_regs(REG_CHIP_ID, 1)[0]
        if chip_id != BME68X_CHIP_ID:
            raise ProtocolError(f"Failed to find BME68X! Chip ID 0x{chip_id:02X}")
        self.variant_id = self._read_regs(REG_VARIANT_ID, 1)[0]

        self.set_power_mode(SLEEP_MODE)
        self.read_calibration()
        self.apply_configuration()

        logger.info(
            "Bosch BME68X\n\tVariant: %s\n\tHeater: %d°C for %dms",
            "BME688" if self.variant_id == VARIANT_GAS_HIGH else "BME680",
            self.heater_temperature, self.heater_duration,
        )

    def cleanup(self) -> None:
        if self.calibration is not None:
            self.set_power_mode(SLEEP_MODE)

    def sample(self) -> List[SensorReading]:
        data = self.measure()

        readings = [
            self.reading(measurements.TEMPERATURE, data.temperature),
            self.reading(measurements.PRESSURE, data.pressure),
            self.reading(measurements.HUMIDITY, data.humidity),
            self.reading(measurements.GAS_RESISTANCE, data.gas_resistance),
        ]
        if data.iaq is not None:
            readings.append(self.reading(measurements.IAQ, float(data.iaq)))
        return readings

    # =========================================================================
    # Measurement
    # =========================================================================

    def measure(self) -> CompensatedReading:
        """Run one forced-mode measurement and compensate it."""
        self.set_power_mode(SLEEP_MODE)
        self.apply_configuration()
        self._set_bits(REG_CTRL_MEAS, MODE_MSK, 0, FORCED_MODE)

        time.sleep(self.measurement_duration())
        for _ in range(POLL_ATTEMPTS):
            status = self._read_regs(REG_FIELD0, 1)[0]
            if status & NEW_DATA_MSK:
                break
            time.sleep(POLL_PERIOD)
        else:
            raise ProtocolError(f"No new data after {POLL_ATTEMPTS} attempts")

        raw = parse_field(self._read_regs(REG_FIELD0, LEN_FIELD), self.variant_id)
        data = compensate(raw, self.calibration, self.variant_id)

        # Heater encoding works in whole degrees
        self.ambient_temperature = int(data.temperature)
        self.baseline.add(data.gas_resistance)

        iaq = None
        if raw.heat_stable:
            iaq = air_quality_score(data.humidity, data.gas_resistance, self.baseline.baseline)
        else:
            logger.debug("BME68X heater not stable yet, skipping IAQ")

        self.data = CompensatedReading(
            temperature=data.temperature,
            pressure=data.pressure,
            humidity=data.humidity,
            gas_resistance=data.gas_resistance,
            iaq=iaq,
        )
        return self.data

    def measurement_duration(self) -> float:
        """Expected TPH conversion plus heating time in seconds."""
        cycles = (
            OS_TO_MEAS_CYCLES[self.os_temp]
            + OS_TO_MEAS_CYCLES[self.os_pres]
            + OS_TO_MEAS_CYCLES[self.os_hum]
        )
        # 1963 us per cycle, TPH switching, gas measurement and wake up
        micros = cycles * 1963 + 477 * 4 + 477 * 5 + 1000
        return micros / 1e6 + self.heater_duration / 1000

    # =========================================================================
    # Configuration
    # =========================================================================

    def soft_reset(self) -> None:
        self._write_reg(REG_SOFT_RESET, SOFT_RESET_CMD)
        time.sleep(RESET_DELAY)

    def read_calibration(self) -> CalibrationCoefficients:
        try:
            block = (
                self._read_regs(REG_COEFF1, LEN_COEFF1)
                + self._read_regs(REG_COEFF2, LEN_COEFF2)
                + self._read_regs(REG_COEFF3, LEN_COEFF3)
            )
        except BusError as e:
            raise CalibrationError(f"could not retrieve calibration data: {e}") from e

        self.calibration = parse_coefficients(block)
        return self.calibration

    def apply_configuration(self) -> None:
        """Write oversampling, filter and heater settings. Device must sleep."""
        self._set_bits(REG_CTRL_HUM, OSH_MSK, 0, self.os_hum)
        self._set_bits(REG_CTRL_MEAS, OSP_MSK, OSP_POS, self.os_pres)
        self._set_bits(REG_CTRL_MEAS, OST_MSK, OST_POS, self.os_temp)
        self._set_bits(REG_CONFIG, FILTER_MSK, FILTER_POS, self.filter)
        self._set_bits(REG_CTRL_GAS_1, RUN_GAS_MSK, RUN_GAS_POS, self.gas_enable)

        self._write_reg(
            REG_RES_HEAT0,
            heater_resistance_code(self.heater_temperature, self.ambient_temperature, self.calibration),
        )
        self._write_reg(REG_GAS_WAIT0, heater_duration_code(self.heater_duration))
        # Heater profile 0
        self._set_bits(REG_CTRL_GAS_1, NBCONV_MSK, 0, 0)

    def get_power_mode(self) -> int:
        return self._read_regs(REG_CTRL_MEAS, 1)[0] & MODE_MSK

    def set_power_mode(self, mode: int) -> None:
        """Switch mode and wait until the device reports it."""
        current = self.get_power_mode()
        if current == mode:
            return

        self._set_bits(REG_CTRL_MEAS, MODE_MSK, 0, mode)
        for _ in range(POLL_ATTEMPTS):
            current = self.get_power_mode()
            if current == mode:
                return
            logger.debug("BME68X mode: desired %d, actual %d", mode, current)
            time.sleep(POLL_PERIOD)
        raise ProtocolError(f"Power mode stuck at {current}, wanted {mode}")

    # =========================================================================
    # Register access
    # =========================================================================

    def _read_regs(self, register: int, length: int) -> bytes:
        return self.bus.write_read(self.address, bytes([register]), length)

    def _write_reg(self, register: int, value: int) -> None:
        self.bus.write(self.address, bytes([register, value & 0xFF]))

    def _set_bits(self, register: int, mask: int, pos: int, value: int) -> None:
        current = self._read_regs(register, 1)[0]
        current &= ~mask & 0xFF
        current |= (value << pos) & mask
        self._write_reg(register, current)
