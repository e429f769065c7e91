"""Configuration loading from YAML."""

import logging
from pathlib import Path
from typing import Any

import yaml

from .models import AppConfig, CalibrationOffsets, SensorConfig, SensorSelection

logger = logging.getLogger(__name__)

# Shortest auto-refresh interval accepted from the configuration file
MIN_CONFIG_UPDATE_INTERVAL = 15


class ConfigError(ValueError):
    """Configuration file is structurally unusable."""


def parse_sensor(sensor_data: dict[str, Any]) -> SensorConfig:
    """Build a SensorConfig from one entry of the sensors list.

    Raises:
        KeyError: if the name is missing
        ValueError: if a value has the wrong type or an unknown sensor selection
    """
    update_interval = sensor_data.get("update_interval")
    if update_interval is not None:
        update_interval = int(update_interval)
        if update_interval < MIN_CONFIG_UPDATE_INTERVAL:
            logger.warning(
                "update_interval %ds for %s too short, using %ds",
                update_interval,
                sensor_data["name"],
                MIN_CONFIG_UPDATE_INTERVAL,
            )
            update_interval = MIN_CONFIG_UPDATE_INTERVAL

    offsets = CalibrationOffsets(
        int_temperature=int(sensor_data.get("offset_int_temperature") or 0),
        ext_temperature=int(sensor_data.get("offset_ext_temperature") or 0),
        int_humidity=int(sensor_data.get("offset_int_humidity") or 0),
    )

    return SensorConfig(
        name=str(sensor_data["name"]),
        model=str(sensor_data.get("model") or ""),
        mac_address=str(sensor_data.get("mac_address") or ""),
        update_interval=update_interval,
        sensor=SensorSelection(sensor_data.get("sensor") or "auto"),
        offsets=offsets,
        loglevel=int(sensor_data.get("loglevel", 3)),
    )


def load_config(config_path: Path) -> AppConfig:
    """Load configuration from a YAML file."""
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if not data:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration must be a mapping, got {type(data).__name__}")

    sensors_data = data.get("sensors") or []
    if not isinstance(sensors_data, list):
        raise ConfigError("'sensors' must be a list")

    sensors = []
    for sensor_data in sensors_data:
        try:
            sensor = parse_sensor(sensor_data)
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            logger.warning("Invalid sensor configuration: %s - %s", sensor_data, e)
            continue

        if any(s.name == sensor.name for s in sensors):
            logger.warning("Duplicate sensor name %s, skipping", sensor.name)
            continue

        sensors.append(sensor)
        logger.debug("Loaded sensor: %s (%s)", sensor.name, sensor.model)

    api_port = data.get("api_port")
    if api_port is not None:
        try:
            api_port = int(api_port)
        except (ValueError, TypeError):
            logger.warning("Invalid api_port value: %s", api_port)
            api_port = None

    config = AppConfig(sensors=sensors, api_port=api_port)
    logger.info("Loaded configuration with %d sensors", len(sensors))
    return config
