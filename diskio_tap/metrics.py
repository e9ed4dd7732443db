"""Disk metric kinds and the per-kind conversion rules.

Every metric exposed for a device is described by one :class:`MetricSpec`.
Each entry names the raw counter it is computed from, whether that counter is a
cumulative value whose baseline must be kept between samples, and the rule
that turns a :class:`Sample` into the value shown to the collector.
"""
from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum

from diskio_tap.source import DiskCounters

MIB = 1024 * 1024
KIB = 1024


class MetricKind(str, Enum):
    SIZE = "size"
    FREE = "free"
    BSIZE = "bsize"
    XRATE = "xrate"
    XFERS = "xfers"
    WBYTES = "wbytes"
    RBYTES = "rbytes"
    QDEPTH = "qdepth"
    TIME = "time"
    # Extended service statistics
    Q_FULL = "q_full"
    RSERV = "rserv"
    RTIMEOUT = "rtimeout"
    RFAILED = "rfailed"
    MIN_RSERV = "min_rserv"
    MAX_RSERV = "max_rserv"
    WSERV = "wserv"
    WTIMEOUT = "wtimeout"
    WFAILED = "wfailed"
    MIN_WSERV = "min_wserv"
    MAX_WSERV = "max_wserv"
    WQ_DEPTH = "wq_depth"
    WQ_SAMPLED = "wq_sampled"
    WQ_TIME = "wq_time"
    WQ_MIN_TIME = "wq_min_time"
    WQ_MAX_TIME = "wq_max_time"


class Category(str, Enum):
    GAUGE = "gauge"
    COUNTER = "counter"
    DERIVED = "derived"


def nonzero(value: float) -> float:
    return value if value else 1


@dataclass(frozen=True)
class Sample:
    """One OS reading of a device plus what is needed to convert it."""

    counters: DiskCounters
    # Raw deltas against the baselines held before this sample.
    deltas: Mapping[MetricKind, int]
    elapsed: float
    tick_ratio: float
    cpu_count: int

    def raw(self, name: str) -> int:
        return getattr(self.counters, name)

    def delta(self, kind: MetricKind) -> int:
        return self.deltas[kind]

    def ticks_to_ms(self, ticks: float) -> float:
        return ticks * self.tick_ratio / 1_000_000.0

    def rate(self, kind: MetricKind) -> float:
        return self.delta(kind) / self.elapsed


@dataclass(frozen=True)
class MetricSpec:
    kind: MetricKind
    description: str
    units: str
    category: Category
    field: str
    convert: Callable[[Sample], float]
    # Raw value is remembered between samples so that deltas can be taken.
    baseline: bool = False
    extended: bool = False
    # Transfer count a derived value is divided by, computed from other deltas.
    divisor: Callable[[Sample], int] | None = None

    @property
    def name(self) -> str:
        return self.kind.value

    @property
    def guarded(self) -> bool:
        """Whether a negative delta keeps the previously displayed value."""
        return self.category is not Category.GAUGE

    def regressed(self, sample: Sample) -> bool:
        """Whether ``sample`` must not replace the previously displayed value.

        True when the metric's own counter went backwards, or when the
        divisor built from companion counters is negative.
        """
        if not self.guarded:
            return False
        if sample.delta(self.kind) < 0:
            return True
        return self.divisor is not None and self.divisor(sample) < 0


def _gauge(
    kind: MetricKind,
    description: str,
    units: str,
    field: str,
    scale: float = 1.0,
    *,
    baseline: bool = False,
    extended: bool = False,
) -> MetricSpec:
    return MetricSpec(
        kind=kind,
        description=description,
        units=units,
        category=Category.GAUGE,
        field=field,
        convert=lambda s: float(s.raw(field)) * scale,
        baseline=baseline,
        extended=extended,
    )


def _ticks_gauge(kind: MetricKind, description: str, field: str) -> MetricSpec:
    return MetricSpec(
        kind=kind,
        description=description,
        units="ms",
        category=Category.GAUGE,
        field=field,
        convert=lambda s: s.ticks_to_ms(s.raw(field)),
        extended=True,
    )


def _counter(
    kind: MetricKind,
    description: str,
    units: str,
    field: str,
    convert: Callable[[Sample], float],
    *,
    extended: bool = False,
) -> MetricSpec:
    return MetricSpec(
        kind=kind,
        description=description,
        units=units,
        category=Category.COUNTER,
        field=field,
        convert=convert,
        baseline=True,
        extended=extended,
    )


def _derived(
    kind: MetricKind,
    description: str,
    field: str,
    divisor: Callable[[Sample], int],
    *,
    per_second: bool = False,
) -> MetricSpec:
    def convert(s: Sample) -> float:
        value = s.ticks_to_ms(s.delta(kind)) / nonzero(divisor(s))
        return value / s.elapsed if per_second else value

    return MetricSpec(
        kind=kind,
        description=description,
        units="ms",
        category=Category.DERIVED,
        field=field,
        convert=convert,
        baseline=True,
        extended=True,
        divisor=divisor,
    )


def _read_transfers(s: Sample) -> int:
    return s.delta(MetricKind.XRATE)


def _write_transfers(s: Sample) -> int:
    # Only correct where xrate carries the read transfer count (AIX perfstat
    # does). A platform reporting a real transfer rate capability in xrate
    # would get a meaningless write service time here.
    return s.delta(MetricKind.XFERS) - s.delta(MetricKind.XRATE)


def _transfers(s: Sample) -> int:
    return s.delta(MetricKind.XFERS)


_SPECS: tuple[MetricSpec, ...] = (
    _gauge(MetricKind.SIZE, "total disk size", "bytes", "size", MIB),
    _gauge(MetricKind.FREE, "free disk size", "bytes", "free", MIB),
    _gauge(MetricKind.BSIZE, "block size", "bytes", "bsize"),
    # xrate also serves as the read transfer companion of the service times.
    _gauge(
        MetricKind.XRATE, "transfer rate capability", "bytes/sec", "xrate", KIB,
        baseline=True,
    ),
    _counter(
        MetricKind.XFERS,
        "number of transfers to/from disk",
        "transfers/sec",
        "xfers",
        lambda s: s.rate(MetricKind.XFERS),
    ),
    _counter(
        MetricKind.WBYTES,
        "number of bytes written to disk",
        "bytes",
        "wblks",
        lambda s: s.rate(MetricKind.WBYTES) * s.raw("bsize"),
    ),
    _counter(
        MetricKind.RBYTES,
        "number of bytes read from disk",
        "bytes",
        "rblks",
        lambda s: s.rate(MetricKind.RBYTES) * s.raw("bsize"),
    ),
    _gauge(MetricKind.QDEPTH, "instantaneous service queue depth", "", "qdepth"),
    _counter(
        MetricKind.TIME,
        "percentage of time disk is active",
        "",
        "time",
        lambda s: s.rate(MetricKind.TIME),
    ),
    _counter(
        MetricKind.Q_FULL,
        "service queue full occurrence count",
        "",
        "q_full",
        lambda s: float(s.delta(MetricKind.Q_FULL)),
        extended=True,
    ),
    _derived(MetricKind.RSERV, "read or receive service time", "rserv", _read_transfers),
    _gauge(MetricKind.RTIMEOUT, "number of read request timeouts", "", "rtimeout", extended=True),
    _gauge(MetricKind.RFAILED, "number of failed read requests", "", "rfailed", extended=True),
    _ticks_gauge(MetricKind.MIN_RSERV, "minimum read or receive service time", "min_rserv"),
    _ticks_gauge(MetricKind.MAX_RSERV, "maximum read or receive service time", "max_rserv"),
    _derived(MetricKind.WSERV, "write or send service time", "wserv", _write_transfers),
    _gauge(MetricKind.WTIMEOUT, "number of write request timeouts", "", "wtimeout", extended=True),
    _gauge(MetricKind.WFAILED, "number of failed write requests", "", "wfailed", extended=True),
    _ticks_gauge(MetricKind.MIN_WSERV, "minimum write or send service time", "min_wserv"),
    _ticks_gauge(MetricKind.MAX_WSERV, "maximum write or send service time", "max_wserv"),
    _gauge(MetricKind.WQ_DEPTH, "instantaneous wait queue depth", "", "wq_depth", extended=True),
    _counter(
        MetricKind.WQ_SAMPLED,
        "accumulated sampled dk_wq_depth",
        "",
        "wq_sampled",
        lambda s: s.delta(MetricKind.WQ_SAMPLED) / (100.0 * s.elapsed * s.cpu_count),
        extended=True,
    ),
    _derived(
        MetricKind.WQ_TIME,
        "accumulated wait queueing time",
        "wq_time",
        _transfers,
        per_second=True,
    ),
    _ticks_gauge(MetricKind.WQ_MIN_TIME, "minimum wait queueing time", "wq_min_time"),
    _ticks_gauge(MetricKind.WQ_MAX_TIME, "maximum wait queueing time", "wq_max_time"),
)

METRIC_SPECS: dict[MetricKind, MetricSpec] = {spec.kind: spec for spec in _SPECS}


def metric_kinds(extended: bool) -> tuple[MetricKind, ...]:
    """Kinds exposed for every device, in registration order."""
    return tuple(spec.kind for spec in _SPECS if extended or not spec.extended)
