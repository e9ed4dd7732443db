from __future__ import annotations

import json
import logging
import re
import ssl
from typing import Any

import paho.mqtt.client as mqtt

from diskio_tap.config import MqttConfig
from diskio_tap.module import MetricDescriptor

# Home Assistant only accepts [a-zA-Z0-9_-] in object ids.
_OBJECT_ID_RE = re.compile(r"[^a-zA-Z0-9_-]")


class MqttPublisher:
    def __init__(self, config: MqttConfig) -> None:
        self.config = config
        self.client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=config.client_id,
            protocol=mqtt.MQTTv311,
        )
        self.logger = logging.getLogger(self.__class__.__name__)
        self._connected = False

        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect

        if config.username:
            self.client.username_pw_set(config.username, config.password)
        if config.tls_enabled:
            self.client.tls_set(
                ca_certs=config.ca_cert,
                cert_reqs=ssl.CERT_REQUIRED,
            )

        # Last Will and Testament for availability
        self.client.will_set(
            self._availability_topic,
            payload="offline",
            qos=1,
            retain=True,
        )

        self.client.reconnect_delay_set(min_delay=1, max_delay=120)

    @property
    def _availability_topic(self) -> str:
        return f"{self.config.base_topic}/status"

    @property
    def connected(self) -> bool:
        return self._connected

    def _on_connect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any,
    ) -> None:
        if not reason_code.is_failure:
            self._connected = True
            self.logger.info(
                "Connected to MQTT broker %s:%s", self.config.host, self.config.port
            )
            self.client.publish(
                self._availability_topic,
                payload="online",
                qos=1,
                retain=True,
            )
        else:
            self._connected = False
            self.logger.error("Failed to connect to MQTT broker: %s", reason_code)

    def _on_disconnect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any,
    ) -> None:
        self._connected = False
        if not reason_code.is_failure:
            self.logger.info("Disconnected from MQTT broker (clean)")
        else:
            self.logger.warning(
                "Unexpectedly disconnected from MQTT broker: %s. Will attempt to reconnect.",
                reason_code,
            )

    def connect(self) -> None:
        self.logger.info(
            "Connecting to MQTT broker %s:%s", self.config.host, self.config.port
        )
        self.client.connect(
            self.config.host,
            self.config.port,
            keepalive=self.config.keepalive,
        )
        # Background network loop handles reconnects
        self.client.loop_start()

    def disconnect(self) -> None:
        if self._connected:
            self.client.publish(
                self._availability_topic,
                payload="offline",
                qos=1,
                retain=True,
            )
        self.client.loop_stop()
        self.client.disconnect()
        self.logger.info("Disconnected from MQTT broker")

    def publish_status(self, status: str) -> bool:
        """Publish a custom status to the availability topic.

        Args:
            status: Status string (e.g., "online", "offline", "sleeping")

        Returns:
            True if publish succeeded, False otherwise.
        """
        self.logger.info("Publishing status '%s' to %s", status, self._availability_topic)
        result = self.client.publish(
            self._availability_topic,
            payload=status,
            qos=1,
            retain=True,
        )
        if result.rc != mqtt.MQTT_ERR_SUCCESS:
            self.logger.error("Failed to publish status, error code: %s", result.rc)
            return False
        return True

    def publish(self, payload: str) -> bool:
        if not self._connected:
            self.logger.warning(
                "Not connected to MQTT broker, message may be queued"
            )
        self.logger.debug("Publishing metrics payload to %s", self.config.base_topic)
        result = self.client.publish(
            self.config.base_topic,
            payload=payload,
            qos=self.config.qos,
            retain=self.config.retain,
        )
        if result.rc != mqtt.MQTT_ERR_SUCCESS:
            self.logger.error("Failed to publish message, error code: %s", result.rc)
            return False
        return True

    def discovery_payload(self, descriptor: MetricDescriptor, host_name: str) -> dict[str, Any]:
        device_id = self.config.client_id
        object_id = _OBJECT_ID_RE.sub("_", descriptor.name)
        payload: dict[str, Any] = {
            "name": descriptor.description,
            "unique_id": f"{device_id}_{object_id}",
            "object_id": f"{device_id}_{object_id}",
            "state_topic": self.config.base_topic,
            "value_template": (
                f"{{{{ value_json.metrics['{descriptor.name}'].value }}}}"
            ),
            "availability_topic": self._availability_topic,
            "payload_available": "online",
            "payload_not_available": "offline",
            "state_class": "measurement",
            "device": {
                "identifiers": [device_id],
                "name": f"{host_name} Disk I/O",
                "manufacturer": "diskio-tap",
            },
        }
        if descriptor.units:
            payload["unit_of_measurement"] = descriptor.units
        return payload

    def publish_discovery(
        self, metrics: list[MetricDescriptor], host_payload: dict[str, Any]
    ) -> None:
        host_name = host_payload.get("host", {}).get("name", self.config.client_id)
        for descriptor in metrics:
            object_id = _OBJECT_ID_RE.sub("_", descriptor.name)
            topic = (
                f"{self.config.discovery_topic}/sensor/"
                f"{self.config.client_id}/{object_id}/config"
            )
            self.logger.debug("Publishing Home Assistant discovery to %s", topic)
            self.client.publish(
                topic,
                payload=json.dumps(self.discovery_payload(descriptor, host_name)),
                qos=self.config.qos,
                retain=True,
            )
