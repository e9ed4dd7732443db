from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
import logging
import threading

from diskio_tap.config import DEFAULT_THRESHOLD_S, DiskIoConfig
from diskio_tap.metrics import MetricKind
from diskio_tap.source import DiskSource

logger = logging.getLogger(__name__)


@dataclass
class MetricSeries:
    last_raw: int = 0
    last_value: float = 0.0
    current_value: float = 0.0


@dataclass
class Device:
    name: str
    enabled: bool = True
    threshold: float = DEFAULT_THRESHOLD_S
    last_sample_time: float = 0.0
    series: dict[MetricKind, MetricSeries] = field(default_factory=dict)
    # Held for the duration of a sample; samples of one device never overlap.
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


class DeviceRegistry:
    """Disks found at startup together with their counter series.

    The device list is fixed for the lifetime of the registry.
    """

    def __init__(self, devices: Sequence[Device], kinds: Sequence[MetricKind]) -> None:
        self.kinds = tuple(kinds)
        self._devices = list(devices)
        for device in self._devices:
            for kind in self.kinds:
                device.series.setdefault(kind, MetricSeries())

    @classmethod
    def discover(
        cls,
        source: DiskSource,
        config: DiskIoConfig,
        kinds: Sequence[MetricKind],
    ) -> DeviceRegistry:
        try:
            names = source.list_devices()
        except OSError as exc:
            logger.warning("Disk enumeration failed: %s", exc)
            names = []
        if not names:
            logger.warning("No disks found; no disk metrics will be reported.")
        disabled = set(config.disabled_devices)
        devices = [
            Device(
                name=name,
                enabled=name not in disabled,
                threshold=config.threshold_s,
            )
            for name in names
        ]
        for device in devices:
            logger.debug(
                "Disk %s (%s)", device.name, "enabled" if device.enabled else "disabled"
            )
        return cls(devices, kinds)

    def __len__(self) -> int:
        return len(self._devices)

    def __iter__(self) -> Iterator[Device]:
        return iter(self._devices)

    def __getitem__(self, index: int) -> Device:
        return self._devices[index]

    @property
    def names(self) -> list[str]:
        return [device.name for device in self._devices]

    def index_of(self, name: str) -> int | None:
        for index, device in enumerate(self._devices):
            if device.name == name:
                return index
        return None
