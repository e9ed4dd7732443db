from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import configparser

DEFAULT_THRESHOLD_S = 5.0


@dataclass(frozen=True)
class MqttConfig:
    host: str
    port: int
    base_topic: str
    discovery_topic: str
    client_id: str
    username: str | None
    password: str | None
    qos: int
    retain: bool
    tls_enabled: bool
    ca_cert: str | None
    keepalive: int


@dataclass(frozen=True)
class PublishConfig:
    interval_s: int


@dataclass(frozen=True)
class DiskIoConfig:
    threshold_s: float = DEFAULT_THRESHOLD_S
    disabled_devices: tuple[str, ...] = ()
    # Delay between the two priming samples taken at init; 0 skips priming.
    prime_interval_s: float = 1.0
    extended_metrics: str = "auto"
    sysfs_root: str = "/sys"
    group: str = "diskio"


@dataclass(frozen=True)
class AppConfig:
    mqtt: MqttConfig
    publish: PublishConfig
    diskio: DiskIoConfig


def _get_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value if value else None


def _get_list(value: str | None) -> list[str]:
    if value is None:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _get_extended_mode(value: str) -> str:
    mode = value.strip().lower()
    if mode not in ("auto", "off"):
        raise ValueError(f"Invalid extended_metrics value: {value!r} (expected auto or off)")
    return mode


def load_config(path: str | Path) -> AppConfig:
    parser = configparser.ConfigParser()
    read_files = parser.read(path)
    if not read_files:
        raise FileNotFoundError(f"Config file not found: {path}")

    mqtt_section = parser["mqtt"]
    publish_section = parser["publish"]

    mqtt = MqttConfig(
        host=mqtt_section.get("host", "localhost"),
        port=mqtt_section.getint("port", 1883),
        base_topic=mqtt_section.get("base_topic", "telemetry/diskio"),
        discovery_topic=mqtt_section.get("discovery_topic", "homeassistant"),
        client_id=mqtt_section.get("client_id", "diskio-tap"),
        username=_get_optional(mqtt_section.get("username")),
        password=_get_optional(mqtt_section.get("password")),
        qos=mqtt_section.getint("qos", 0),
        retain=mqtt_section.getboolean("retain", False),
        tls_enabled=mqtt_section.getboolean("tls", False),
        ca_cert=_get_optional(mqtt_section.get("ca_cert")),
        keepalive=mqtt_section.getint("keepalive", 60),
    )

    publish = PublishConfig(
        interval_s=publish_section.getint("interval_s", 15),
    )

    # Use parser.get with fallback to handle missing [diskio] section
    diskio = DiskIoConfig(
        threshold_s=parser.getfloat("diskio", "threshold_s", fallback=DEFAULT_THRESHOLD_S),
        disabled_devices=tuple(
            _get_list(parser.get("diskio", "disabled_devices", fallback=None))
        ),
        prime_interval_s=parser.getfloat("diskio", "prime_interval_s", fallback=1.0),
        extended_metrics=_get_extended_mode(
            parser.get("diskio", "extended_metrics", fallback="auto")
        ),
        sysfs_root=parser.get("diskio", "sysfs_root", fallback="/sys"),
        group=parser.get("diskio", "group", fallback="diskio"),
    )

    return AppConfig(mqtt=mqtt, publish=publish, diskio=diskio)
