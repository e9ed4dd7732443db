"""Tests for MQTT publishing and Home Assistant discovery."""
from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest

from diskio_tap.config import MqttConfig
from diskio_tap.metrics import Category, MetricKind
from diskio_tap.module import MetricDescriptor
from diskio_tap.mqtt_client import MqttPublisher


@pytest.fixture
def mqtt_config():
    return MqttConfig(
        host="localhost",
        port=1883,
        base_topic="telemetry/diskio",
        discovery_topic="homeassistant",
        client_id="diskio-tap",
        username=None,
        password=None,
        qos=0,
        retain=False,
        tls_enabled=False,
        ca_cert=None,
        keepalive=60,
    )


@pytest.fixture
def publisher(mqtt_config):
    with patch("diskio_tap.mqtt_client.mqtt.Client") as client_cls:
        client = MagicMock()
        client.publish.return_value = MagicMock(rc=0)
        client_cls.return_value = client
        yield MqttPublisher(mqtt_config)


def descriptor(name="dm-0_xfers", units="transfers/sec"):
    device, _, metric = name.partition("_")
    return MetricDescriptor(
        name=name,
        device=device,
        kind=MetricKind(metric),
        description=f"{device} number of transfers to/from disk",
        units=units,
        category=Category.COUNTER,
        group="diskio",
    )


def test_will_and_availability(publisher):
    publisher.client.will_set.assert_called_once_with(
        "telemetry/diskio/status", payload="offline", qos=1, retain=True
    )


def test_connect_callback_publishes_online(publisher):
    publisher._on_connect(publisher.client, None, None, MagicMock(is_failure=False), None)

    assert publisher.connected is True
    publisher.client.publish.assert_called_with(
        "telemetry/diskio/status", payload="online", qos=1, retain=True
    )


def test_failed_connect(publisher):
    publisher._on_connect(publisher.client, None, None, MagicMock(is_failure=True), None)

    assert publisher.connected is False
    publisher.client.publish.assert_not_called()


def test_publish_payload(publisher):
    assert publisher.publish('{"metrics": {}}') is True
    publisher.client.publish.assert_called_once_with(
        "telemetry/diskio", payload='{"metrics": {}}', qos=0, retain=False
    )


def test_publish_failure(publisher):
    publisher.client.publish.return_value = MagicMock(rc=4)

    assert publisher.publish("{}") is False


def test_discovery_payload(publisher):
    payload = publisher.discovery_payload(descriptor(), "host1")

    assert payload["unique_id"] == "diskio-tap_dm-0_xfers"
    assert payload["value_template"] == "{{ value_json.metrics['dm-0_xfers'].value }}"
    assert payload["unit_of_measurement"] == "transfers/sec"
    assert payload["device"]["name"] == "host1 Disk I/O"


def test_discovery_payload_without_units(publisher):
    payload = publisher.discovery_payload(descriptor("sda_qdepth", units=""), "host1")

    assert "unit_of_measurement" not in payload


def test_publish_discovery_per_metric(publisher):
    publisher.publish_discovery(
        [descriptor("sda_xfers"), descriptor("sdb_xfers")],
        {"host": {"name": "host1"}},
    )

    topics = [call.args[0] for call in publisher.client.publish.call_args_list]
    assert topics == [
        "homeassistant/sensor/diskio-tap/sda_xfers/config",
        "homeassistant/sensor/diskio-tap/sdb_xfers/config",
    ]
    first = json.loads(publisher.client.publish.call_args_list[0].kwargs["payload"])
    assert first["name"] == "sda number of transfers to/from disk"
