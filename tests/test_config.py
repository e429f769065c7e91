"""Tests for YAML configuration loading."""

import pytest

from ibswatch.config import MIN_CONFIG_UPDATE_INTERVAL, ConfigError, load_config, parse_sensor
from ibswatch.models import UNCHECKED, SensorSelection


def _write(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestParseSensor:
    def test_defaults(self):
        sensor = parse_sensor({"name": "cellar"})

        assert sensor.model == ""
        assert sensor.mac_address == ""
        assert sensor.update_interval is None
        assert sensor.sensor is SensorSelection.AUTO
        assert sensor.offsets.int_temperature == 0
        assert sensor.loglevel == 3
        assert sensor.variant is UNCHECKED

    def test_full_entry(self):
        sensor = parse_sensor(
            {
                "name": "freezer",
                "model": "IBS-TH2-Plus",
                "mac_address": "49:42:08:AA:BB:CC",
                "update_interval": 60,
                "sensor": "external",
                "offset_int_temperature": -20,
                "offset_ext_temperature": 35,
                "offset_int_humidity": 100,
                "loglevel": 4,
            }
        )

        assert sensor.mac_address == "49:42:08:aa:bb:cc"
        assert sensor.update_interval == 60
        assert sensor.sensor is SensorSelection.EXTERNAL
        assert sensor.offsets.int_temperature == -20
        assert sensor.offsets.ext_temperature == 35
        assert sensor.offsets.int_humidity == 100
        assert sensor.loglevel == 4
        assert sensor.variant.dual_view is True

    def test_short_update_interval_raised_to_minimum(self):
        sensor = parse_sensor({"name": "cellar", "update_interval": 5})
        assert sensor.update_interval == MIN_CONFIG_UPDATE_INTERVAL

    def test_unknown_selection_rejected(self):
        with pytest.raises(ValueError):
            parse_sensor({"name": "cellar", "sensor": "both"})

    def test_missing_name_rejected(self):
        with pytest.raises(KeyError):
            parse_sensor({"model": "IBS-TH1"})


class TestLoadConfig:
    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml")

    def test_empty_file(self, tmp_path):
        config = load_config(_write(tmp_path, ""))

        assert config.sensors == []
        assert config.api_port is None

    def test_sensors_and_port(self, tmp_path):
        path = _write(
            tmp_path,
            """
api_port: "8080"
sensors:
  - name: cellar
    model: IBS-TH1
    mac_address: "49:42:08:00:12:34"
  - name: garage
    model: IBS-TH2
    update_interval: 300
""",
        )
        config = load_config(path)

        assert [s.name for s in config.sensors] == ["cellar", "garage"]
        assert config.api_port == 8080
        assert config.sensors[0].mac_address == "49:42:08:00:12:34"
        assert config.sensors[1].update_interval == 300

    def test_invalid_entries_skipped(self, tmp_path):
        path = _write(
            tmp_path,
            """
sensors:
  - model: IBS-TH1
  - name: bad-selection
    sensor: sideways
  - just a string
  - name: ok
""",
        )
        config = load_config(path)

        assert [s.name for s in config.sensors] == ["ok"]

    def test_duplicate_names_skipped(self, tmp_path):
        path = _write(
            tmp_path,
            """
sensors:
  - name: cellar
    model: IBS-TH1
  - name: cellar
    model: IBS-TH2
""",
        )
        config = load_config(path)

        assert len(config.sensors) == 1
        assert config.sensors[0].model == "IBS-TH1"

    def test_invalid_port_ignored(self, tmp_path):
        config = load_config(_write(tmp_path, "api_port: eighty\n"))
        assert config.api_port is None

    def test_non_mapping_rejected(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(_write(tmp_path, "- a\n- b\n"))

    def test_sensors_not_a_list_rejected(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(_write(tmp_path, "sensors: cellar\n"))
