"""Tests for homesense.config."""

import json

import pytest

from homesense import config


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    path = tmp_path / "config.json"
    monkeypatch.setenv("HOMESENSE_CONFIG", str(path))
    monkeypatch.delenv("HOMESENSE_INTERVAL", raising=False)
    monkeypatch.delenv("HOMESENSE_I2C_BUS", raising=False)
    return path


class TestLoadSave:
    def test_path_from_env(self, config_file):
        assert config.get_config_path() == config_file

    def test_defaults_without_file(self, config_file):
        assert config.load_config() == config.DEFAULT_CONFIG

    def test_save_and_load(self, config_file):
        config.save_config({"interval": 30})
        loaded = config.load_config()
        assert loaded["interval"] == 30
        # Missing keys filled from defaults
        assert "sensors" in loaded

    def test_invalid_json(self, config_file):
        config_file.write_text("{not json")
        assert config.load_config() == config.DEFAULT_CONFIG


class TestGetters:
    def test_interval_default(self, config_file):
        assert config.get_interval() == 10.0

    def test_interval_from_file(self, config_file):
        config_file.write_text(json.dumps({"interval": 30}))
        assert config.get_interval() == 30.0

    def test_interval_env_wins(self, config_file, monkeypatch):
        config_file.write_text(json.dumps({"interval": 30}))
        monkeypatch.setenv("HOMESENSE_INTERVAL", "2.5")
        assert config.get_interval() == 2.5

    def test_bus_number(self, config_file, monkeypatch):
        assert config.get_bus_number() == 1
        config_file.write_text(json.dumps({"i2c_bus": 0}))
        assert config.get_bus_number() == 0
        monkeypatch.setenv("HOMESENSE_I2C_BUS", "3")
        assert config.get_bus_number() == 3


class TestSensorConfigs:
    def test_defaults(self, config_file):
        sensors = config.get_sensor_configs()
        assert sensors["scd4x"] == config.SensorConfig("scd4x", 0x62, True)
        assert sensors["sen5x"].address == 0x69
        assert sensors["pmsa003i"].address == 0x12
        assert sensors["bme68x"].address == 0x77

    def test_overrides(self, config_file):
        config_file.write_text(json.dumps({
            "sensors": {
                "bme68x": {"address": "0x76"},
                "sen5x": {"enabled": False},
            }
        }))
        sensors = config.get_sensor_configs()
        assert sensors["bme68x"].address == 0x76
        assert sensors["bme68x"].enabled is True
        assert sensors["sen5x"].enabled is False
        assert sensors["sen5x"].address == 0x69

    def test_default_address(self):
        assert config.get_default_address("scd4x") == 0x62
        assert config.get_default_address("unknown") is None
