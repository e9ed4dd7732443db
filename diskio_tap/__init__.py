"""Disk I/O Tap per-device disk rate exporter."""

from diskio_tap.collector import MetricsCollector
from diskio_tap.config import AppConfig, DiskIoConfig, load_config
from diskio_tap.metrics import MetricKind
from diskio_tap.module import DiskIoModule, MetricDescriptor
from diskio_tap.mqtt_client import MqttPublisher
from diskio_tap.schema import validate_payload
from diskio_tap.source import DiskCounters, DiskSource, PsutilDiskSource

__all__ = [
    "AppConfig",
    "DiskCounters",
    "DiskIoConfig",
    "DiskIoModule",
    "DiskSource",
    "MetricDescriptor",
    "MetricKind",
    "MetricsCollector",
    "MqttPublisher",
    "PsutilDiskSource",
    "load_config",
    "validate_payload",
]
