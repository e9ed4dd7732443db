"""Tests for configuration loading."""
from __future__ import annotations

from pathlib import Path

import pytest

from diskio_tap.config import load_config

FULL_CONFIG = """
[mqtt]
host = broker.local
port = 8883
base_topic = lab/diskio
username = tap
password =
tls = true
keepalive = 30

[publish]
interval_s = 30

[diskio]
threshold_s = 10.5
disabled_devices = loop0, , cd0
prime_interval_s = 0
extended_metrics = OFF
sysfs_root = /host/sys
group = aixdisk
"""


@pytest.fixture
def write_config(tmp_path):
    def write(text):
        path = tmp_path / "diskio.cfg"
        path.write_text(text)
        return path

    return write


def test_load_full_config(write_config):
    config = load_config(write_config(FULL_CONFIG))

    assert config.mqtt.host == "broker.local"
    assert config.mqtt.port == 8883
    assert config.mqtt.username == "tap"
    assert config.mqtt.password is None
    assert config.mqtt.tls_enabled is True
    assert config.mqtt.keepalive == 30
    assert config.publish.interval_s == 30
    assert config.diskio.threshold_s == 10.5
    assert config.diskio.disabled_devices == ("loop0", "cd0")
    assert config.diskio.prime_interval_s == 0.0
    assert config.diskio.extended_metrics == "off"
    assert config.diskio.sysfs_root == "/host/sys"
    assert config.diskio.group == "aixdisk"


def test_diskio_section_defaults(write_config):
    config = load_config(write_config("[mqtt]\n[publish]\n"))

    assert config.mqtt.base_topic == "telemetry/diskio"
    assert config.mqtt.keepalive == 60
    assert config.publish.interval_s == 15
    assert config.diskio.threshold_s == 5.0
    assert config.diskio.disabled_devices == ()
    assert config.diskio.prime_interval_s == 1.0
    assert config.diskio.extended_metrics == "auto"


def test_invalid_extended_mode(write_config):
    with pytest.raises(ValueError, match="extended_metrics"):
        load_config(write_config("[mqtt]\n[publish]\n[diskio]\nextended_metrics = on\n"))


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.cfg")


def test_example_config_loads():
    config = load_config(Path(__file__).parent.parent / "config" / "example.cfg")

    assert config.diskio.disabled_devices == ("loop0", "loop1")
