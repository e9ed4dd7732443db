"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import pytest

from diskio_tap.config import DiskIoConfig
from diskio_tap.source import DiskCounters, DiskSource


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "linux: mark test as Linux-specific"
    )
    config.addinivalue_line(
        "markers", "extended: mark test as covering extended service statistics"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )


class FakeDiskSource(DiskSource):
    """In-memory disk source; tests set ``current[name]`` before each sample."""

    def __init__(
        self,
        devices: list[str] | None = None,
        extended: bool = False,
        tick_ratio: float = 1_000_000.0,
        cpus: int = 1,
    ) -> None:
        self.devices = list(devices or [])
        self.extended = extended
        self.tick_ratio = tick_ratio
        self.cpus = cpus
        self.current: dict[str, DiskCounters | None] = {
            name: DiskCounters(name=name) for name in self.devices
        }
        self.queries: list[str] = []
        self.accounting: dict[str, bool] = {name: False for name in self.devices}
        self.restored: dict[str, bool] | None = None

    @property
    def cpu_count(self) -> int:
        return self.cpus

    def list_devices(self) -> list[str]:
        return list(self.devices)

    def query(self, name: str) -> DiskCounters | None:
        self.queries.append(name)
        return self.current.get(name)

    def set(self, name: str, **fields: int) -> None:
        self.current[name] = DiskCounters(name=name, **fields)

    def enable_io_accounting(self, devices: list[str]) -> dict[str, bool]:
        previous = {name: self.accounting.get(name, False) for name in devices}
        for name in devices:
            self.accounting[name] = True
        return previous

    def restore_io_accounting(self, previous: dict[str, bool]) -> None:
        self.restored = dict(previous)
        self.accounting.update(previous)


class FakeClock:
    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def source():
    """Disk source with two disks."""
    return FakeDiskSource(devices=["disk1", "disk2"])


@pytest.fixture
def extended_source():
    """Disk source reporting extended service statistics."""
    return FakeDiskSource(devices=["hdisk0"], extended=True, cpus=2)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def diskio_config():
    """Config with priming disabled so tests control every sample."""
    return DiskIoConfig(threshold_s=5.0, prime_interval_s=0.0)


@pytest.fixture
def make_source():
    return FakeDiskSource
