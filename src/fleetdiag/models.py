"""Result records produced by the collection pipeline."""

from __future__ import annotations

import re
from dataclasses import dataclass, fields
from datetime import datetime
from enum import StrEnum
from typing import Any


class Transport(StrEnum):
    WINRM = "WinRM"
    RPC = "RPC"


class TransportPreference(StrEnum):
    AUTO = "Auto"
    WINRM = "WinRM"
    RPC = "RPC"


class Direction(StrEnum):
    MISMATCH = "Mismatch"
    DELTA = "Delta"
    LOWER_IS_BAD = "LowerIsBad"
    HIGHER_IS_BAD = "HigherIsBad"


class Severity(StrEnum):
    INFO = "Info"
    WARNING = "Warning"


EVENT_COUNT_FIELDS = (
    "app_crash_count",
    "kernel_power_count",
    "unexpected_shutdown_count",
    "resource_exhaustion_count",
    "boot_degradation_count",
)

CRASH_FAMILY_FIELDS = ("app_crash_count", "kernel_power_count", "unexpected_shutdown_count")

_DATETIME_FIELDS = ("timestamp", "last_boot", "defender_last_quick_scan")

_EXCESS_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def parse_datetime(value: Any) -> datetime | None:
    """Accept a datetime or an ISO-8601 string (``Z`` suffix allowed)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        # .NET round-trip format carries 7 fractional digits
        text = _EXCESS_FRACTION_RE.sub(r"\1", text)
        return datetime.fromisoformat(text)
    raise ValueError(f"Cannot interpret {value!r} as a datetime")


@dataclass(frozen=True, slots=True)
class HostSnapshot:
    """Point-in-time diagnostic record for one target.

    Either ``reachable`` is true and ``failure_reason`` is ``None``, or the
    target is unreachable and ``failure_reason`` says why. Event counts use
    ``None`` for "could not be determined", which is distinct from ``0``.
    """

    target: str
    timestamp: datetime
    reachable: bool = False
    failure_reason: str | None = None
    transport: Transport | None = None

    # Host facts
    domain: str | None = None
    os_name: str | None = None
    os_build: str | None = None
    last_boot: datetime | None = None
    uptime_days: float | None = None

    # Resource facts
    total_ram_gb: float | None = None
    free_ram_gb: float | None = None
    lowest_free_disk_percent: float | None = None

    # Event counts over the lookback window
    app_crash_count: int | None = None
    kernel_power_count: int | None = None
    unexpected_shutdown_count: int | None = None
    resource_exhaustion_count: int | None = None
    boot_degradation_count: int | None = None

    # Optional extended facts
    defender_last_quick_scan: datetime | None = None
    defender_detections: int | None = None
    fault_report_count: int | None = None
    crash_dump_count: int | None = None
    recent_update_count: int | None = None

    # Derived flags
    low_disk: bool = False
    low_ram: bool = False
    high_crash: bool = False

    metric_errors: tuple[tuple[str, str], ...] = ()

    def __post_init__(self) -> None:
        if self.reachable and self.failure_reason is not None:
            raise ValueError("a reachable snapshot cannot carry a failure reason")
        if not self.reachable and not self.failure_reason:
            raise ValueError("an unreachable snapshot needs a failure reason")

    @classmethod
    def unreachable(
        cls,
        target: str,
        reason: str,
        *,
        timestamp: datetime,
        transport: Transport | None = None,
    ) -> HostSnapshot:
        return cls(
            target=target,
            timestamp=timestamp,
            reachable=False,
            failure_reason=reason or "Unknown failure",
            transport=transport,
        )

    @property
    def crash_family_total(self) -> int:
        return sum(getattr(self, name) or 0 for name in CRASH_FAMILY_FIELDS)

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly mapping; datetimes become ISO-8601 strings."""
        data: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, datetime):
                value = value.isoformat(timespec="seconds")
            elif isinstance(value, Transport):
                value = str(value)
            elif f.name == "metric_errors":
                value = {name: message for name, message in value}
            data[f.name] = value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HostSnapshot:
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {k: v for k, v in data.items() if k in known}
        for name in _DATETIME_FIELDS:
            if name in kwargs:
                kwargs[name] = parse_datetime(kwargs[name])
        if kwargs.get("transport"):
            kwargs["transport"] = Transport(kwargs["transport"])
        errors = kwargs.get("metric_errors") or {}
        if isinstance(errors, dict):
            kwargs["metric_errors"] = tuple(errors.items())
        else:
            kwargs["metric_errors"] = tuple(tuple(pair) for pair in errors)
        return cls(**kwargs)


# ── collection outcome ───────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class Unreachable:
    """The execution channel failed; nothing collected is trustworthy."""

    reason: str


@dataclass(frozen=True, slots=True)
class Partial:
    """The channel worked but some collectors yielded no value."""

    values: dict[str, Any]
    errors: dict[str, str]


@dataclass(frozen=True, slots=True)
class Complete:
    values: dict[str, Any]


CollectionOutcome = Unreachable | Partial | Complete


# ── comparison ───────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class MetricComparison:
    metric: str
    direction: Direction
    reference: Any
    difference: Any
    delta: float | None
    severity: Severity


@dataclass(frozen=True, slots=True)
class ComparisonResult:
    reference_target: str
    difference_target: str
    rows: tuple[MetricComparison, ...]
    contributors: tuple[str, ...] = ()

    @property
    def warnings(self) -> list[MetricComparison]:
        return [row for row in self.rows if row.severity is Severity.WARNING]

    def to_dict(self) -> dict[str, Any]:
        return {
            "reference": self.reference_target,
            "difference": self.difference_target,
            "rows": [
                {
                    "metric": row.metric,
                    "direction": str(row.direction),
                    "reference": _jsonable(row.reference),
                    "difference": _jsonable(row.difference),
                    "delta": row.delta,
                    "severity": str(row.severity),
                }
                for row in self.rows
            ],
            "contributors": list(self.contributors),
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat(timespec="seconds")
    return value


# ── performance sampling ─────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class CounterSample:
    target: str
    timestamp: datetime
    counter: str
    value: float


@dataclass(frozen=True, slots=True)
class CounterSummary:
    counter: str
    average: float
    minimum: float
    maximum: float
    samples: int


@dataclass(frozen=True, slots=True)
class PerformanceSample:
    target: str
    duration_seconds: float
    interval_seconds: float
    counters: tuple[str, ...]
    samples: tuple[CounterSample, ...] = ()
    summary: tuple[CounterSummary, ...] = ()
    failure_reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.failure_reason is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "duration_seconds": self.duration_seconds,
            "interval_seconds": self.interval_seconds,
            "counters": list(self.counters),
            "failure_reason": self.failure_reason,
            "summary": [
                {
                    "counter": s.counter,
                    "average": s.average,
                    "minimum": s.minimum,
                    "maximum": s.maximum,
                    "samples": s.samples,
                }
                for s in self.summary
            ],
            "samples": [
                {
                    "target": s.target,
                    "timestamp": s.timestamp.isoformat(timespec="seconds"),
                    "counter": s.counter,
                    "value": s.value,
                }
                for s in self.samples
            ],
        }
