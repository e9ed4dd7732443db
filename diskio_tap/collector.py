from __future__ import annotations

from datetime import datetime, timezone
import logging
import platform
import socket
from typing import Any

import psutil

from diskio_tap.module import DiskIoModule

SCHEMA_NAME = "diskio-tap"
SCHEMA_VERSION = 1


class MetricsCollector:
    """Builds the published payload from every registered disk metric."""

    def __init__(self, module: DiskIoModule) -> None:
        self.module = module
        self.logger = logging.getLogger(self.__class__.__name__)

    def collect(self) -> dict[str, Any]:
        self.logger.debug("Collecting metrics payload.")
        ts = datetime.now(timezone.utc).isoformat()
        values = self.module.read_all()
        payload: dict[str, Any] = {
            "schema": {"name": SCHEMA_NAME, "version": SCHEMA_VERSION},
            "ts": ts,
            "host": self._collect_host(),
            "devices": self._collect_devices(),
            "metrics": {
                descriptor.name: {
                    "device": descriptor.device,
                    "metric": descriptor.kind.value,
                    "value": values[descriptor.name],
                    "units": descriptor.units,
                    "type": descriptor.metric_type,
                }
                for descriptor in self.module.metrics
            },
        }
        self.logger.debug("Completed metrics payload collection.")
        return payload

    def _collect_host(self) -> dict[str, Any]:
        boot = datetime.fromtimestamp(psutil.boot_time(), tz=timezone.utc)
        uptime_s = int(datetime.now(timezone.utc).timestamp() - boot.timestamp())
        return {
            "name": socket.gethostname(),
            "system": platform.system(),
            "machine": platform.machine(),
            "boot_time": boot.isoformat(),
            "uptime_s": uptime_s,
        }

    def _collect_devices(self) -> list[dict[str, Any]]:
        if self.module.registry is None:
            return []
        return [
            {
                "name": device.name,
                "enabled": device.enabled,
                "threshold_s": device.threshold,
            }
            for device in self.module.registry
        ]
