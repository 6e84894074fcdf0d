"""
Tests for the SCD4x CO2 sensor driver

Run with: pytest tests/test_scd4x.py -v
"""

import pytest

from homesense.errors import CalibrationError, RangeError
from homesense.sensors import measurements
from homesense.sensors.scd4x import (
    SCD4X_ADDR,
    SCD4X_DATAREADY,
    SCD4X_FORCEDRECAL,
    SCD4X_READMEASUREMENT,
    SCD4X_REINIT,
    SCD4X_SELFTEST,
    SCD4X_SERIALNUMBER,
    SCD4X_SETTEMPOFFSET,
    SCD4X_STARTPERIODICMEASUREMENT,
    SCD4X_STOPPERIODICMEASUREMENT,
    SCD4X_WAKEUP,
    SCD4x,
    decode_measurement,
)

from conftest import SensirionDevice, encode_words

pytestmark = pytest.mark.usefixtures("no_sleep")

# 800 ppm, ~25.0 °C, ~37.0 %RH
MEASUREMENT = [800, 0x6667, 0x5EB9]


@pytest.fixture
def device(bus):
    dev = SensirionDevice({
        SCD4X_SERIALNUMBER.code: [0x1234, 0x5678, 0x9ABC],
        SCD4X_DATAREADY.code: [0x8006],
        SCD4X_READMEASUREMENT.code: MEASUREMENT,
    })
    dev.nacks.add(SCD4X_WAKEUP.code)
    return bus.attach(SCD4X_ADDR, dev)


@pytest.fixture
def sensor(bus, device):
    scd = SCD4x()
    scd.initialize(bus, SCD4X_ADDR)
    return scd


class TestSetup:
    def test_init_sequence(self, sensor, device):
        assert device.opcodes == [
            SCD4X_WAKEUP.code,
            SCD4X_STOPPERIODICMEASUREMENT.code,
            SCD4X_REINIT.code,
            SCD4X_SERIALNUMBER.code,
            SCD4X_STARTPERIODICMEASUREMENT.code,
        ]
        assert sensor.active

    def test_serial_number(self, sensor):
        assert sensor.serial_number == "0x123456789ABC"

    def test_initialize_twice(self, sensor, bus):
        with pytest.raises(RuntimeError):
            sensor.initialize(bus, SCD4X_ADDR)


class TestSample:
    def test_conversion(self):
        co2, temperature, humidity = decode_measurement(
            b"\x03\x20\x66\x67\x5e\xb9"
        )
        assert co2 == 800.0
        assert temperature == pytest.approx(25.0, abs=0.01)
        assert humidity == pytest.approx(37.0, abs=0.01)

    def test_conversion_extremes(self):
        _, temperature, humidity = decode_measurement(b"\x00\x00\x00\x00\x00\x00")
        assert temperature == -45
        assert humidity == 0

    def test_collect(self, sensor):
        readings = sensor.collect()
        by_metric = {r.metric: r for r in readings}
        assert set(by_metric) == {
            measurements.TEMPERATURE.id,
            measurements.HUMIDITY.id,
            measurements.CARBON_DIOXIDE.id,
        }
        assert by_metric["room_co2"].value == 800.0
        assert by_metric["room_co2"].source == "scd4x"

    def test_not_ready_returns_nothing_at_first(self, sensor, device):
        # Upper bits set, lower 11 bits clear: no data yet
        device.answers[SCD4X_DATAREADY.code] = [0x8000]
        assert sensor.collect() == []
        assert SCD4X_READMEASUREMENT.code not in device.opcodes

    def test_not_ready_keeps_previous_values(self, sensor, device):
        first = sensor.collect()
        device.answers[SCD4X_DATAREADY.code] = [0x0000]
        second = sensor.collect()
        assert [r.value for r in second] == [r.value for r in first]

    def test_checksum_error_keeps_previous(self, sensor, device):
        first = sensor.collect()
        corrupt = bytearray(encode_words([1200, 0x6667, 0x5EB9]))
        corrupt[2] ^= 0x01
        device.answers[SCD4X_READMEASUREMENT.code] = bytes(corrupt)

        second = sensor.collect()
        assert [r.value for r in second] == [r.value for r in first]
        assert sensor.error_counts["ChecksumError"] == 1


class TestSettings:
    def test_temperature_offset_bound(self, sensor, device):
        sent = len(device.commands)
        with pytest.raises(RangeError):
            sensor.set_temperature_offset(375)
        assert len(device.commands) == sent

    @pytest.mark.parametrize("offset,message", [
        (-1.0, "negative"),
        (200.0, "largest encodable"),
        (374.0, "largest encodable"),
    ])
    def test_temperature_offset_rejected_before_bus_io(self, sensor, device, offset, message):
        sent = len(device.commands)
        with pytest.raises(RangeError, match=message):
            sensor.set_temperature_offset(offset)
        assert len(device.commands) == sent

    def test_temperature_offset_largest_encodable(self, sensor, device):
        sensor.set_temperature_offset(174.99)
        assert device.commands[-1][0] == SCD4X_SETTEMPOFFSET.code
        assert device.commands[-1][1] <= 0xFFFF

    def test_temperature_offset_encoding(self, sensor, device):
        sensor.set_temperature_offset(4.0)
        assert device.commands[-1] == (SCD4X_SETTEMPOFFSET.code, 1497)

    def test_forced_recalibration(self, sensor, device):
        device.answers[SCD4X_FORCEDRECAL.code] = [0x8000 + 25]
        assert sensor.force_recalibration(420) == 25
        assert device.commands[-1] == (SCD4X_FORCEDRECAL.code, 420)

    def test_forced_recalibration_failure(self, sensor, device):
        device.answers[SCD4X_FORCEDRECAL.code] = [0xFFFF]
        with pytest.raises(CalibrationError):
            sensor.force_recalibration(420)

    def test_self_test(self, sensor, device):
        device.answers[SCD4X_SELFTEST.code] = [0]
        assert sensor.self_test() is True
        device.answers[SCD4X_SELFTEST.code] = [1]
        assert sensor.self_test() is False

    def test_cleanup_stops_measurement(self, sensor, device):
        sensor.cleanup()
        assert device.opcodes[-1] == SCD4X_STOPPERIODICMEASUREMENT.code


class TestFamily:
    @pytest.mark.parametrize("token", ["scd40", "scd41", "SCD4x"])
    def test_matches(self, token):
        assert SCD4x().matches_family(token)

    @pytest.mark.parametrize("token", ["scd4", "scd410", "scd30", "sen55"])
    def test_rejects(self, token):
        assert not SCD4x().matches_family(token)
