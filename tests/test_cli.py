"""Tests for the sensor registry, hub composition and CLI commands."""

import pytest
from click.testing import CliRunner

from homesense.cli import build_hub, main
from homesense.config import SensorConfig
from homesense.errors import BusError
from homesense.sensors import BME68x, PMSA003I, SCD4x, SEN5x, sniff, supported
from homesense.sensors.pmsa003i import encode_frame, ParticulateFrame

from homesense.sensors.scd4x import SCD4X_SETALTITUDE, SCD4X_SETTEMPOFFSET, SCD4X_STARTPERIODICMEASUREMENT

from conftest import FakeBus, SensirionDevice, StreamDevice


class TestRegistry:
    @pytest.mark.parametrize("token,cls", [
        ("scd41", SCD4x),
        ("sen55", SEN5x),
        ("pmsa003i", PMSA003I),
        ("bme680", BME68x),
        ("BME688", BME68x),
        ("bme68x", BME68x),
    ])
    def test_sniff(self, token, cls):
        assert isinstance(sniff(token), cls)

    @pytest.mark.parametrize("token", ["", "bme280", "scd30", "sht31"])
    def test_sniff_unknown(self, token):
        assert sniff(token) is None

    def test_sniff_returns_new_instances(self):
        assert sniff("scd41") is not sniff("scd41")

    def test_supported(self):
        assert supported() == ["scd4x", "sen5x", "pmsa003i", "bme68x"]


@pytest.mark.usefixtures("no_sleep")
class TestBuildHub:
    CONFIGS = {
        "scd4x": SensorConfig("scd4x", 0x62),
        "pmsa003i": SensorConfig("pmsa003i", 0x12),
        "sen5x": SensorConfig("sen5x", 0x69, enabled=False),
    }

    def test_skips_missing_and_disabled(self, bus):
        bus.attach(0x12, StreamDevice(encode_frame(ParticulateFrame(*([1] * 12)))))
        hub = build_hub(bus, self.CONFIGS, interval=5)
        assert [s.name for s in hub.sensors] == ["pmsa003i"]
        assert hub.interval == 5

    def test_strict_aborts(self, bus):
        bus.attach(0x12, StreamDevice(encode_frame(ParticulateFrame(*([1] * 12)))))
        with pytest.raises(BusError):
            build_hub(bus, self.CONFIGS, interval=5, strict=True)

    def test_all_up(self, bus):
        bus.attach(0x12, StreamDevice(encode_frame(ParticulateFrame(*([1] * 12)))))
        bus.attach(0x62, SensirionDevice({0x3682: [0, 0, 1]}))
        hub = build_hub(bus, self.CONFIGS, interval=5)
        assert sorted(s.name for s in hub.sensors) == ["pmsa003i", "scd4x"]


class TestCommands:
    def test_sensors(self):
        result = CliRunner().invoke(main, ["sensors"])
        assert result.exit_code == 0
        for name in ("scd4x", "sen5x", "pmsa003i", "bme68x"):
            assert name in result.output
        assert "0x62" in result.output

    def test_config(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HOMESENSE_CONFIG", str(tmp_path / "config.json"))
        monkeypatch.delenv("HOMESENSE_INTERVAL", raising=False)
        monkeypatch.delenv("HOMESENSE_I2C_BUS", raising=False)
        result = CliRunner().invoke(main, ["config"])
        assert result.exit_code == 0
        assert "interval: 10.0s" in result.output
        assert "bme68x: 0x77 (enabled)" in result.output

    def test_read_unknown_sensor(self):
        result = CliRunner().invoke(main, ["read", "bme280"])
        assert result.exit_code == 1
        assert "Unknown sensor" in result.output

    def test_version(self):
        result = CliRunner().invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "homesense" in result.output


@pytest.mark.usefixtures("no_sleep")
class TestScd4xCommands:
    @pytest.fixture
    def device(self, monkeypatch):
        bus = FakeBus()
        dev = bus.attach(0x62, SensirionDevice({0x3682: [0, 0, 1], 0x2322: [120]}))
        monkeypatch.setattr("homesense.cli.I2CBus", lambda bus_num: bus)
        return dev

    @pytest.mark.parametrize("metres", ["-5", "70000"])
    def test_set_altitude_out_of_range(self, device, metres):
        result = CliRunner().invoke(main, ["scd4x", "set-altitude", "--", metres])
        assert result.exit_code == 1
        assert "Altitude must be between 0 and 65535" in result.output
        assert SCD4X_SETALTITUDE.code not in device.opcodes
        # Measurement is restarted after the rejected setting
        assert device.opcodes[-1] == SCD4X_STARTPERIODICMEASUREMENT.code

    def test_set_altitude(self, device):
        result = CliRunner().invoke(main, ["scd4x", "set-altitude", "120"])
        assert result.exit_code == 0
        assert "Altitude: 120 m" in result.output
        assert (SCD4X_SETALTITUDE.code, 120) in device.commands

    def test_set_temperature_offset_out_of_range(self, device):
        result = CliRunner().invoke(main, ["scd4x", "set-temperature-offset", "--", "-2"])
        assert result.exit_code == 1
        assert "must not be negative" in result.output
        assert SCD4X_SETTEMPOFFSET.code not in device.opcodes
