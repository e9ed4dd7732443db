from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from pathlib import Path
import time

import psutil

from diskio_tap.logging_utils import TRACE_LEVEL

SECTOR_SIZE = 512
DEFAULT_BLOCK_SIZE = 512


@dataclass(frozen=True)
class DiskCounters:
    """Raw counters of one disk as reported by the operating system.

    Units follow the platform conventions the conversion rules expect: sizes
    in MiB, capability in KiB/s, block counts, busy time in 1/100 s ticks and
    service times in hardware ticks.
    """

    name: str
    size: int = 0
    free: int = 0
    bsize: int = 0
    xrate: int = 0
    xfers: int = 0
    rblks: int = 0
    wblks: int = 0
    qdepth: int = 0
    time: int = 0
    q_full: int = 0
    rserv: int = 0
    rtimeout: int = 0
    rfailed: int = 0
    min_rserv: int = 0
    max_rserv: int = 0
    wserv: int = 0
    wtimeout: int = 0
    wfailed: int = 0
    min_wserv: int = 0
    max_wserv: int = 0
    wq_depth: int = 0
    wq_sampled: int = 0
    wq_time: int = 0
    wq_min_time: int = 0
    wq_max_time: int = 0


class DiskSource:
    """Operating system view of the host's disks.

    Subclasses answer two queries: the list of all disks (used once at
    startup) and the counters of one named disk (used once per sample).
    ``extended`` tells whether the platform reports service and wait queue
    statistics; ``tick_ratio`` converts hardware ticks to nanoseconds.
    """

    extended: bool = False
    tick_ratio: float = 1.0

    @property
    def cpu_count(self) -> int:
        return 1

    def list_devices(self) -> list[str]:
        raise NotImplementedError

    def query(self, name: str) -> DiskCounters | None:
        raise NotImplementedError

    def now(self) -> float:
        return time.time()

    def enable_io_accounting(self, devices: list[str]) -> dict[str, bool]:
        """Turn on I/O statistics collection, returning the previous state."""
        return {}

    def restore_io_accounting(self, previous: dict[str, bool]) -> None:
        pass


class PsutilDiskSource(DiskSource):
    """Disk counters from psutil, completed with sysfs details on Linux."""

    def __init__(self, sysfs_root: str = "/sys") -> None:
        self.sysfs_root = Path(sysfs_root)
        self.logger = logging.getLogger(self.__class__.__name__)
        self._boot_time = psutil.boot_time()

    @property
    def cpu_count(self) -> int:
        return psutil.cpu_count() or 1

    def now(self) -> float:
        """Wall-clock seconds since boot."""
        return time.time() - self._boot_time

    def list_devices(self) -> list[str]:
        io_stats = psutil.disk_io_counters(perdisk=True) or {}
        self.logger.debug("Found %s disks: %s", len(io_stats), ", ".join(io_stats))
        return list(io_stats)

    def query(self, name: str) -> DiskCounters | None:
        io_stats = psutil.disk_io_counters(perdisk=True) or {}
        io_entry = io_stats.get(name)
        if io_entry is None:
            self.logger.debug("Disk %s missing from IO stats.", name)
            return None
        bsize = self._block_size(name)
        counters = DiskCounters(
            name=name,
            size=self._size_mib(name),
            free=self._free_mib(name),
            bsize=bsize,
            xfers=int(io_entry.read_count + io_entry.write_count),
            rblks=int(io_entry.read_bytes) // bsize,
            wblks=int(io_entry.write_bytes) // bsize,
            qdepth=self._inflight(name),
            # busy_time is only reported on Linux and a few BSDs (ms)
            time=int(getattr(io_entry, "busy_time", 0)) // 10,
        )
        self.logger.log(TRACE_LEVEL, "Raw counters: %s", counters)
        return counters

    def enable_io_accounting(self, devices: list[str]) -> dict[str, bool]:
        previous: dict[str, bool] = {}
        for name in devices:
            path = self._block_path(name) / "queue" / "iostats"
            value = self._read_sysfs_file(path)
            if value is None:
                continue
            previous[name] = value == "1"
            if value != "1":
                self._write_sysfs_file(path, "1")
        return previous

    def restore_io_accounting(self, previous: dict[str, bool]) -> None:
        for name, enabled in previous.items():
            if not enabled:
                self._write_sysfs_file(self._block_path(name) / "queue" / "iostats", "0")

    def _block_path(self, name: str) -> Path:
        return self.sysfs_root / "class" / "block" / name

    def _size_mib(self, name: str) -> int:
        sectors = self._read_sysfs_int(self._block_path(name) / "size")
        if sectors is None:
            return 0
        return sectors * SECTOR_SIZE // (1024 * 1024)

    def _block_size(self, name: str) -> int:
        base = self._block_path(name)
        # Partitions have no queue directory of their own; use the parent disk's.
        for path in (
            base / "queue" / "logical_block_size",
            base / ".." / "queue" / "logical_block_size",
        ):
            value = self._read_sysfs_int(path)
            if value:
                return value
        return DEFAULT_BLOCK_SIZE

    def _inflight(self, name: str) -> int:
        value = self._read_sysfs_file(self._block_path(name) / "inflight")
        if not value:
            return 0
        try:
            return sum(int(part) for part in value.split())
        except ValueError:
            self.logger.debug("Unexpected inflight content for %s: %r", name, value)
            return 0

    def _free_mib(self, name: str) -> int:
        free = 0
        seen: set[str] = set()
        try:
            partitions = psutil.disk_partitions(all=False)
        except OSError:
            self.logger.debug("Failed to list partitions.")
            return 0
        for part in partitions:
            device = os.path.basename(part.device)
            if device in seen or not self._belongs_to(device, name):
                continue
            seen.add(device)
            try:
                free += psutil.disk_usage(part.mountpoint).free
            except OSError:
                self.logger.debug("Failed to read usage for %s.", part.mountpoint)
        return free // (1024 * 1024)

    def _belongs_to(self, device: str, name: str) -> bool:
        return device == name or (self._block_path(name) / device).exists()

    def _read_sysfs_int(self, path: Path) -> int | None:
        value = self._read_sysfs_file(path)
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            return None

    def _read_sysfs_file(self, path: Path) -> str | None:
        try:
            return path.read_text().strip()
        except OSError:
            return None

    def _write_sysfs_file(self, path: Path, value: str) -> bool:
        try:
            path.write_text(value)
        except OSError as exc:
            self.logger.debug("Failed to write %s to %s: %s", value, path, exc)
            return False
        self.logger.debug("Set %s to %s", path, value)
        return True
