"""
BME68x compensation formulas.

Integer (fixed-point) versions of the Bosch BME680/BME688 compensation
routines: temperature, pressure, humidity, gas resistance, heater register
encodings and the indoor air quality heuristic.

The arithmetic mirrors the vendor's 32-bit integer code, including int32
wraparound and division that truncates toward zero. Python integers do
neither on their own, so every step that can leave the int32 range goes
through _s32() and every signed division through _div().

All functions here are pure; the driver in bme68x.py owns the bus I/O.
"""

from collections import deque
from dataclasses import dataclass
from typing import Optional, Tuple

from ..errors import CalibrationError, ProtocolError

# Coefficient block: registers 0x8A-0xA0, 0xE1-0xEE, 0x00-0x04 concatenated
LEN_COEFF1 = 23
LEN_COEFF2 = 14
LEN_COEFF3 = 5
LEN_COEFF_ALL = LEN_COEFF1 + LEN_COEFF2 + LEN_COEFF3

IDX_T2_LSB = 0
IDX_T2_MSB = 1
IDX_T3 = 2
IDX_P1_LSB = 4
IDX_P1_MSB = 5
IDX_P2_LSB = 6
IDX_P2_MSB = 7
IDX_P3 = 8
IDX_P4_LSB = 10
IDX_P4_MSB = 11
IDX_P5_LSB = 12
IDX_P5_MSB = 13
IDX_P7 = 14
IDX_P6 = 15
IDX_P8_LSB = 18
IDX_P8_MSB = 19
IDX_P9_LSB = 20
IDX_P9_MSB = 21
IDX_P10 = 22
IDX_H2_MSB = 23
IDX_H2_LSB = 24
IDX_H1_LSB = 24
IDX_H1_MSB = 25
IDX_H3 = 26
IDX_H4 = 27
IDX_H5 = 28
IDX_H6 = 29
IDX_H7 = 30
IDX_T1_LSB = 31
IDX_T1_MSB = 32
IDX_GH2_LSB = 33
IDX_GH2_MSB = 34
IDX_GH1 = 35
IDX_GH3 = 36
IDX_RES_HEAT_VAL = 37
IDX_RES_HEAT_RANGE = 39
IDX_RANGE_SW_ERR = 41

BIT_H1_DATA_MSK = 0x0F
RHRANGE_MSK = 0x30
RSERROR_MSK = 0xF0

# Field register layout (17 bytes from 0x1D)
LEN_FIELD = 17
NEW_DATA_MSK = 0x80
GAS_INDEX_MSK = 0x0F
GAS_RANGE_MSK = 0x0F
GASM_VALID_MSK = 0x20
HEAT_STAB_MSK = 0x10

VARIANT_GAS_LOW = 0x00  # BME680
VARIANT_GAS_HIGH = 0x01  # BME688

# Precision switch in the pressure formula: (1 << 31) >> 1
PRES_OVF_CHECK = 0x40000000

MAX_HEATER_TEMPERATURE = 400
MAX_HEATER_DURATION = 0xFC0

HUM_REFERENCE = 40.0
HUM_WEIGHTING = 0.25
BASELINE_WINDOW = 50

LOOKUP_TABLE_1 = (
    2147483647, 2147483647, 2147483647, 2147483647,
    2147483647, 2126008810, 2147483647, 2130303777,
    2147483647, 2147483647, 2143188679, 2136746228,
    2147483647, 2126008810, 2147483647, 2147483647,
)

LOOKUP_TABLE_2 = (
    4096000000, 2048000000, 1024000000, 512000000,
    255744255, 127110228, 64000000, 32258064,
    16016016, 8000000, 4000000, 2000000,
    1000000, 500000, 250000, 125000,
)


def _s32(value: int) -> int:
    """Wrap to a signed 32-bit integer."""
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def _div(a: int, b: int) -> int:
    """Integer division truncating toward zero."""
    q = abs(a) // abs(b)
    return q if (a < 0) == (b < 0) else -q


def _s8(byte: int) -> int:
    return byte - 0x100 if byte & 0x80 else byte


def _u16(msb: int, lsb: int) -> int:
    return (msb << 8) | lsb


def _s16(msb: int, lsb: int) -> int:
    value = _u16(msb, lsb)
    return value - 0x10000 if value & 0x8000 else value


@dataclass(frozen=True)
class CalibrationCoefficients:
    """Factory calibration of one BME68x. Read once at initialization."""

    par_t1: int
    par_t2: int
    par_t3: int
    par_p1: int
    par_p2: int
    par_p3: int
    par_p4: int
    par_p5: int
    par_p6: int
    par_p7: int
    par_p8: int
    par_p9: int
    par_p10: int
    par_h1: int
    par_h2: int
    par_h3: int
    par_h4: int
    par_h5: int
    par_h6: int
    par_h7: int
    par_gh1: int
    par_gh2: int
    par_gh3: int
    res_heat_range: int
    res_heat_val: int
    range_sw_err: int


def parse_coefficients(block: bytes) -> CalibrationCoefficients:
    """Unpack the 42-byte coefficient block."""
    if len(block) != LEN_COEFF_ALL:
        raise CalibrationError(
            f"Expected {LEN_COEFF_ALL} calibration bytes, got {len(block)}"
        )
    c = block

    return CalibrationCoefficients(
        # Temperature
        par_t1=_u16(c[IDX_T1_MSB], c[IDX_T1_LSB]),
        par_t2=_s16(c[IDX_T2_MSB], c[IDX_T2_LSB]),
        par_t3=_s8(c[IDX_T3]),
        # Pressure
        par_p1=_u16(c[IDX_P1_MSB], c[IDX_P1_LSB]),
        par_p2=_s16(c[IDX_P2_MSB], c[IDX_P2_LSB]),
        par_p3=_s8(c[IDX_P3]),
        par_p4=_s16(c[IDX_P4_MSB], c[IDX_P4_LSB]),
        par_p5=_s16(c[IDX_P5_MSB], c[IDX_P5_LSB]),
        par_p6=_s8(c[IDX_P6]),
        par_p7=_s8(c[IDX_P7]),
        par_p8=_s16(c[IDX_P8_MSB], c[IDX_P8_LSB]),
        par_p9=_s16(c[IDX_P9_MSB], c[IDX_P9_LSB]),
        par_p10=c[IDX_P10],
        # Humidity: H1 and H2 share the nibbles of byte 24
        par_h1=(c[IDX_H1_MSB] << 4) | (c[IDX_H1_LSB] & BIT_H1_DATA_MSK),
        par_h2=(c[IDX_H2_MSB] << 4) | (c[IDX_H2_LSB] >> 4),
        par_h3=_s8(c[IDX_H3]),
        par_h4=_s8(c[IDX_H4]),
        par_h5=_s8(c[IDX_H5]),
        par_h6=c[IDX_H6],
        par_h7=_s8(c[IDX_H7]),
        # Gas heater
        par_gh1=_s8(c[IDX_GH1]),
        par_gh2=_s16(c[IDX_GH2_MSB], c[IDX_GH2_LSB]),
        par_gh3=_s8(c[IDX_GH3]),
        # Other
        res_heat_range=(c[IDX_RES_HEAT_RANGE] & RHRANGE_MSK) // 16,
        res_heat_val=_s8(c[IDX_RES_HEAT_VAL]),
        range_sw_err=_div(_s8(c[IDX_RANGE_SW_ERR] & RSERROR_MSK), 16),
    )


def compute_temperature(adc_temp: int, calib: CalibrationCoefficients) -> Tuple[int, int]:
    """Return (temperature in 0.01 °C, t_fine).

    t_fine feeds compute_pressure() and compute_humidity() of the same
    measurement.
    """
    var1 = (adc_temp >> 3) - (calib.par_t1 << 1)
    var2 = (var1 * calib.par_t2) >> 11
    var3 = ((var1 >> 1) * (var1 >> 1)) >> 12
    var3 = (var3 * (calib.par_t3 << 4)) >> 14
    t_fine = _s32(var2 + var3)
    return ((t_fine * 5) + 128) >> 8, t_fine


def compute_pressure(adc_pres: int, t_fine: int, calib: CalibrationCoefficients) -> int:
    """Return pressure in Pa."""
    var1 = _s32((t_fine >> 1) - 64000)
    var2 = _s32(_s32(_s32((var1 >> 2) * (var1 >> 2)) >> 11) * calib.par_p6) >> 2
    var2 = _s32(var2 + _s32(_s32(var1 * calib.par_p5) << 1))
    var2 = _s32((var2 >> 2) + _s32(calib.par_p4 << 16))
    var1 = _s32(
        (_s32(_s32(_s32((var1 >> 2) * (var1 >> 2)) >> 13) * _s32(calib.par_p3 << 5)) >> 3)
        + (_s32(calib.par_p2 * var1) >> 1)
    )
    var1 = var1 >> 18
    var1 = _s32((32768 + var1) * calib.par_p1) >> 15
    if var1 == 0:
        raise CalibrationError("Pressure coefficients produce a zero divisor")

    pressure = _s32(1048576 - adc_pres)
    pressure = _s32((pressure - (var2 >> 12)) * 3125)
    if pressure >= PRES_OVF_CHECK:
        pressure = _s32(_div(pressure, var1) << 1)
    else:
        pressure = _div(_s32(pressure << 1), var1)

    var1 = _s32(calib.par_p9 * _s32(_s32((pressure >> 3) * (pressure >> 3)) >> 13)) >> 12
    var2 = _s32((pressure >> 2) * calib.par_p8) >> 13
    var3 = _s32(_s32(_s32((pressure >> 8) * (pressure >> 8)) * (pressure >> 8)) * calib.par_p10) >> 17
    pressure = _s32(pressure + (_s32(var1 + var2 + var3 + (calib.par_p7 << 7)) >> 4))
    return pressure & 0xFFFFFFFF


def compute_humidity(adc_hum: int, t_fine: int, calib: CalibrationCoefficients) -> int:
    """Return relative humidity in milli-percent, clamped to [0, 100000]."""
    temp_scaled = ((t_fine * 5) + 128) >> 8
    var1 = _s32(
        (adc_hum - calib.par_h1 * 16)
        - (_div(_s32(temp_scaled * calib.par_h3), 100) >> 1)
    )
    var2 = _s32(
        calib.par_h2 * (
            _div(_s32(temp_scaled * calib.par_h4), 100)
            + _div(_s32(temp_scaled * _div(_s32(temp_scaled * calib.par_h5), 100)) >> 6, 100)
            + (1 << 14)
        )
    ) >> 10
    var3 = _s32(var1 * var2)
    var4 = calib.par_h6 << 7
    var4 = (var4 + _div(_s32(temp_scaled * calib.par_h7), 100)) >> 4
    var5 = _s32((var3 >> 14) * (var3 >> 14)) >> 10
    var6 = _s32(var4 * var5) >> 1
    calc_hum = _s32((_s32(var3 + var6) >> 10) * 1000) >> 12

    # Cap at 100 %rH
    return max(0, min(100000, calc_hum))


def calc_gas_resistance_low(adc_gas_res: int, gas_range: int, calib: CalibrationCoefficients) -> int:
    """Gas resistance in Ohm for the BME680 (low gas variant)."""
    var1 = ((1340 + 5 * calib.range_sw_err) * LOOKUP_TABLE_1[gas_range]) >> 16
    var2 = (adc_gas_res << 15) - 16777216 + var1
    var3 = (LOOKUP_TABLE_2[gas_range] * var1) >> 9
    return _div(var3 + (var2 >> 1), var2) & 0xFFFFFFFF


def calc_gas_resistance_high(adc_gas_res: int, gas_range: int) -> int:
    """Gas resistance in Ohm for the BME688 (high gas variant)."""
    var1 = 262144 >> gas_range
    var2 = 4096 + (adc_gas_res - 512) * 3

    # 10000 * var1 / var2 * 100 instead of * 1000000 to stay within 32 bits
    return ((10000 * var1) // var2) * 100


def calc_gas_resistance(
    adc_gas_res: int, gas_range: int, variant: int, calib: CalibrationCoefficients
) -> int:
    if variant == VARIANT_GAS_HIGH:
        return calc_gas_resistance_high(adc_gas_res, gas_range)
    return calc_gas_resistance_low(adc_gas_res, gas_range, calib)


def heater_resistance_code(
    target_temp: int, ambient_temp: int, calib: CalibrationCoefficients
) -> int:
    """Encode a heater plate temperature (°C) as the res_heat register value.

    Args:
        target_temp: Desired heater temperature, capped at 400 °C.
        ambient_temp: Last known ambient temperature in whole °C.
    """
    temp = min(target_temp, MAX_HEATER_TEMPERATURE)

    var1 = _div(ambient_temp * calib.par_gh3, 1000) * 256
    var2 = (calib.par_gh1 + 784) * _div(
        _div((calib.par_gh2 + 154009) * temp * 5, 100) + 3276800, 10
    )
    var3 = var1 + _div(var2, 2)
    var4 = _div(var3, calib.res_heat_range + 4)
    var5 = (131 * calib.res_heat_val) + 65536
    heatr_res_x100 = (_div(var4, var5) - 250) * 34
    return _div(heatr_res_x100 + 50, 100) & 0xFF


def heater_duration_code(duration_ms: int) -> int:
    """Encode a heating duration as a 6-bit value and a multiplier exponent.

    Bits 0-5 hold the value, bits 6-7 how many times it was divided by 4.
    Durations of 4032 ms and above saturate to 0xFF.
    """
    if duration_ms >= MAX_HEATER_DURATION:
        return 0xFF

    factor = 0
    while duration_ms > 0x3F:
        duration_ms //= 4
        factor += 1
    return (duration_ms + factor * 64) & 0xFF


@dataclass(frozen=True)
class RawSample:
    """Raw ADC counts from one field read."""

    adc_temp: int
    adc_pres: int
    adc_hum: int
    adc_gas_res: int
    gas_range: int
    heat_stable: bool
    gas_valid: bool
    new_data: bool = True
    gas_index: int = 0
    meas_index: int = 0


def parse_field(regs: bytes, variant: int) -> RawSample:
    """Unpack the 17-byte field block starting at register 0x1D."""
    if len(regs) < LEN_FIELD:
        raise ProtocolError(f"Expected {LEN_FIELD} field bytes, got {len(regs)}")

    if variant == VARIANT_GAS_HIGH:
        adc_gas_res = (regs[15] << 2) | (regs[16] >> 6)
        gas_range = regs[16] & GAS_RANGE_MSK
        gas_flags = regs[16]
    else:
        adc_gas_res = (regs[13] << 2) | (regs[14] >> 6)
        gas_range = regs[14] & GAS_RANGE_MSK
        gas_flags = regs[14]

    return RawSample(
        adc_pres=(regs[2] << 12) | (regs[3] << 4) | (regs[4] >> 4),
        adc_temp=(regs[5] << 12) | (regs[6] << 4) | (regs[7] >> 4),
        adc_hum=(regs[8] << 8) | regs[9],
        adc_gas_res=adc_gas_res,
        gas_range=gas_range,
        heat_stable=bool(gas_flags & HEAT_STAB_MSK),
        gas_valid=bool(gas_flags & GASM_VALID_MSK),
        new_data=bool(regs[0] & NEW_DATA_MSK),
        gas_index=regs[0] & GAS_INDEX_MSK,
        meas_index=regs[1],
    )


@dataclass(frozen=True)
class CompensatedReading:
    """Physical values for one measurement."""

    temperature: float  # °C
    pressure: float  # hPa
    humidity: float  # %RH
    gas_resistance: float  # Ohm
    iaq: Optional[int] = None


def compensate(
    raw: RawSample, calib: CalibrationCoefficients, variant: int
) -> CompensatedReading:
    """Run the full pipeline. Temperature goes first to produce t_fine."""
    temperature, t_fine = compute_temperature(raw.adc_temp, calib)
    pressure = compute_pressure(raw.adc_pres, t_fine, calib)
    humidity = compute_humidity(raw.adc_hum, t_fine, calib)
    gas_resistance = calc_gas_resistance(raw.adc_gas_res, raw.gas_range, variant, calib)

    return CompensatedReading(
        temperature=temperature / 100.0,
        pressure=pressure / 100.0,
        humidity=humidity / 1000.0,
        gas_resistance=float(gas_resistance),
    )


class GasBaselineWindow:
    """The last 50 gas resistance samples, oldest evicted first."""

    def __init__(self, size: int = BASELINE_WINDOW):
        self._samples: deque = deque(maxlen=size)

    def add(self, gas_resistance: float) -> None:
        self._samples.append(float(gas_resistance))

    @property
    def baseline(self) -> Optional[float]:
        if not self._samples:
            return None
        return sum(self._samples) / len(self._samples)

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self):
        return iter(self._samples)


def air_quality_score(humidity: float, gas_resistance: float, gas_baseline: float) -> int:
    """Blend humidity and gas deviation into a 0-100 score (higher is better).

    A community approximation, not Bosch's calibrated IAQ: 25 % weight on
    the distance from 40 %RH, 75 % on gas resistance relative to baseline.
    """
    hum_offset = humidity - HUM_REFERENCE
    if hum_offset > 0:
        hum_score = (100 - HUM_REFERENCE - hum_offset) / (100 - HUM_REFERENCE)
    else:
        hum_score = (HUM_REFERENCE + hum_offset) / HUM_REFERENCE
    hum_score *= HUM_WEIGHTING * 100

    gas_offset = gas_baseline - gas_resistance
    if gas_offset > 0:
        gas_score = (gas_resistance / gas_baseline) * (100 - HUM_WEIGHTING * 100)
    else:
        gas_score = 100 - HUM_WEIGHTING * 100

    return int(hum_score + gas_score)
