"""Metric entry points handed to the collector.

:class:`DiskIoModule` owns the device registry for the lifetime of the
process. ``init`` discovers the disks and returns one
:class:`MetricDescriptor` per (disk, metric) pair; ``handler`` answers a read
for one of those descriptors by name; ``cleanup`` undoes what ``init``
changed on the host.
"""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import logging
import time

from diskio_tap.config import DiskIoConfig
from diskio_tap.metrics import METRIC_SPECS, Category, MetricKind, metric_kinds
from diskio_tap.registry import DeviceRegistry
from diskio_tap.sampler import Sampler
from diskio_tap.source import DiskSource, PsutilDiskSource

UNAVAILABLE = -1.0
UNRESOLVED = 0.0


class RateLimitedAccessor:
    """Returns cached metric values, sampling a device at most once per threshold."""

    def __init__(
        self,
        registry: DeviceRegistry,
        sampler: Sampler,
        clock: Callable[[], float],
    ) -> None:
        self.registry = registry
        self.sampler = sampler
        self.clock = clock

    def read(self, index: int, kind: MetricKind) -> float:
        device = self.registry[index]
        if not device.enabled:
            return UNAVAILABLE
        with device.lock:
            now = self.clock()
            elapsed = now - device.last_sample_time
            if elapsed > device.threshold:
                self.sampler.sample(index, elapsed)
                device.last_sample_time = now
            return device.series[kind].current_value


@dataclass(frozen=True)
class Resolution:
    index: int
    kind: MetricKind


class MetricDispatcher:
    """Maps ``<device>_<metric>`` identifiers to accessor reads.

    The table is built once from the registry. When two (device, metric)
    pairs produce the same identifier (``sd`` + ``min_rserv`` and ``sd_min``
    + ``rserv``), the longer device name wins.
    """

    def __init__(self, registry: DeviceRegistry, accessor: RateLimitedAccessor) -> None:
        self.registry = registry
        self.accessor = accessor
        self.logger = logging.getLogger(self.__class__.__name__)
        self._table: dict[str, Resolution] = {}
        for index, device in enumerate(registry):
            for kind in registry.kinds:
                name = identifier(device.name, kind)
                existing = self._table.get(name)
                if existing is not None:
                    self.logger.warning("Metric name %s is ambiguous.", name)
                    if len(registry[existing.index].name) >= len(device.name):
                        continue
                self._table[name] = Resolution(index, kind)

    @property
    def identifiers(self) -> list[str]:
        return list(self._table)

    def resolve(self, metric: str) -> Resolution | None:
        return self._table.get(metric)

    def handle(self, metric: str) -> float:
        resolution = self.resolve(metric)
        if resolution is None:
            self.logger.debug("Unknown metric %s", metric)
            return UNRESOLVED
        return self.accessor.read(resolution.index, resolution.kind)


def identifier(device: str, kind: MetricKind) -> str:
    return f"{device}_{kind.value}"


@dataclass(frozen=True)
class MetricDescriptor:
    name: str
    device: str
    kind: MetricKind
    description: str
    units: str
    category: Category
    group: str
    value_type: str = "double"
    slope: str = "both"
    fmt: str = "%.1f"
    tmax: int = 60

    @property
    def metric_type(self) -> str:
        return "gauge" if self.category is Category.GAUGE else "counter"


class DiskIoModule:
    def __init__(
        self,
        config: DiskIoConfig,
        source: DiskSource | None = None,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.source = source or PsutilDiskSource(config.sysfs_root)
        self.clock = clock or self.source.now
        self.sleep = sleep
        self.logger = logging.getLogger(self.__class__.__name__)
        self.registry: DeviceRegistry | None = None
        self.dispatcher: MetricDispatcher | None = None
        self.metrics: list[MetricDescriptor] = []
        self._previous_accounting: dict[str, bool] | None = None

    @property
    def extended(self) -> bool:
        return self.source.extended and self.config.extended_metrics != "off"

    def init(self) -> list[MetricDescriptor]:
        kinds = metric_kinds(self.extended)
        registry = DeviceRegistry.discover(self.source, self.config, kinds)
        self._previous_accounting = self.source.enable_io_accounting(registry.names)

        sampler = Sampler(registry, self.source)
        accessor = RateLimitedAccessor(registry, sampler, self.clock)
        self.registry = registry
        self.dispatcher = MetricDispatcher(registry, accessor)
        self.metrics = self._describe(registry, self.dispatcher)
        self.logger.info(
            "Registered %s metrics for %s disks (extended=%s).",
            len(self.metrics),
            len(registry),
            self.extended,
        )
        self._prime(registry, sampler)
        return self.metrics

    def cleanup(self) -> None:
        if self._previous_accounting is None:
            return
        self.source.restore_io_accounting(self._previous_accounting)
        self._previous_accounting = None

    def handler(self, metric: str) -> float:
        if self.dispatcher is None:
            return UNRESOLVED
        return self.dispatcher.handle(metric)

    def read_all(self) -> dict[str, float]:
        return {descriptor.name: self.handler(descriptor.name) for descriptor in self.metrics}

    def _describe(
        self, registry: DeviceRegistry, dispatcher: MetricDispatcher
    ) -> list[MetricDescriptor]:
        descriptors = []
        for kind in registry.kinds:
            spec = METRIC_SPECS[kind]
            for index, device in enumerate(registry):
                name = identifier(device.name, kind)
                if dispatcher.resolve(name) != Resolution(index, kind):
                    continue
                descriptors.append(
                    MetricDescriptor(
                        name=name,
                        device=device.name,
                        kind=kind,
                        description=f"{device.name} {spec.description}",
                        units=spec.units,
                        category=spec.category,
                        group=self.config.group,
                    )
                )
        return descriptors

    def _prime(self, registry: DeviceRegistry, sampler: Sampler) -> None:
        """Take baseline samples so the first reported rates cover a real interval."""
        enabled = [
            (index, device) for index, device in enumerate(registry) if device.enabled
        ]
        if not enabled:
            return
        start = self.clock()
        for index, device in enabled:
            with device.lock:
                sampler.sample(index, 0.0)
                device.last_sample_time = start
        if self.config.prime_interval_s <= 0:
            return
        self.sleep(self.config.prime_interval_s)
        now = self.clock()
        for index, device in enabled:
            with device.lock:
                sampler.sample(index, now - device.last_sample_time)
                device.last_sample_time = now
