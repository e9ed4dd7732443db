from __future__ import annotations

import logging

from diskio_tap.logging_utils import TRACE_LEVEL
from diskio_tap.metrics import METRIC_SPECS, Sample
from diskio_tap.registry import DeviceRegistry
from diskio_tap.source import DiskSource


class Sampler:
    def __init__(self, registry: DeviceRegistry, source: DiskSource) -> None:
        self.registry = registry
        self.source = source
        # Platform constants are read once, not per sample.
        self.tick_ratio = source.tick_ratio
        self.cpu_count = max(1, source.cpu_count)
        self.specs = [METRIC_SPECS[kind] for kind in registry.kinds]
        self.logger = logging.getLogger(self.__class__.__name__)

    def sample(self, index: int, elapsed: float) -> bool:
        """Query the OS for one device and update all of its series.

        Returns False when the device could not be read; its series then keep
        their previous values. With a non-positive ``elapsed`` only gauges are
        refreshed and the counter baselines moved forward.
        """
        device = self.registry[index]
        try:
            counters = self.source.query(device.name)
        except OSError as exc:
            self.logger.debug("Query of disk %s failed: %s", device.name, exc)
            counters = None
        if counters is None:
            self.logger.debug("No data for disk %s; keeping previous values.", device.name)
            for series in device.series.values():
                series.current_value = series.last_value
            return False

        deltas = {
            spec.kind: getattr(counters, spec.field) - device.series[spec.kind].last_raw
            for spec in self.specs
            if spec.baseline
        }

        sample = Sample(
            counters=counters,
            deltas=deltas,
            elapsed=elapsed,
            tick_ratio=self.tick_ratio,
            cpu_count=self.cpu_count,
        )
        for spec in self.specs:
            series = device.series[spec.kind]
            if spec.guarded and elapsed <= 0:
                # No interval to divide by; only gauges are refreshed.
                value = series.last_value
            elif spec.regressed(sample):
                self.logger.log(
                    TRACE_LEVEL,
                    "Counters of %s on disk %s went backwards; keeping %s",
                    spec.name,
                    device.name,
                    series.last_value,
                )
                value = series.last_value
            else:
                value = spec.convert(sample)
            series.current_value = value
            series.last_value = value

        for spec in self.specs:
            if spec.baseline:
                device.series[spec.kind].last_raw = getattr(counters, spec.field)

        self.logger.log(
            TRACE_LEVEL,
            "Sampled disk %s over %.3fs: %s",
            device.name,
            elapsed,
            {spec.name: device.series[spec.kind].current_value for spec in self.specs},
        )
        return True
