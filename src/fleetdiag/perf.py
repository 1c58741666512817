"""Performance counter sampling across targets."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import replace

from .backends.base import RemoteBackend
from .config import Credentials, Settings, settings
from .errors import ConfigError
from .fleet import validate_targets
from .logging import ActivityLog, NullActivityLog
from .models import CounterSample, CounterSummary, PerformanceSample

DEFAULT_COUNTERS: tuple[str, ...] = (
    r"\Processor(_Total)\% Processor Time",
    r"\Memory\Available MBytes",
    r"\Memory\% Committed Bytes In Use",
    r"\System\Processor Queue Length",
)


def sample_count(duration: float, interval: float) -> int:
    """Number of samples for a run; always at least one."""
    return max(math.floor(duration / interval), 1)


def summarize(samples: Iterable[CounterSample]) -> list[CounterSummary]:
    """Per-counter average/min/max, in the order counters first appear."""
    grouped: dict[str, list[float]] = {}
    for sample in samples:
        grouped.setdefault(sample.counter, []).append(sample.value)
    return [
        CounterSummary(
            counter=counter,
            average=round(sum(values) / len(values), 4),
            minimum=round(min(values), 4),
            maximum=round(max(values), 4),
            samples=len(values),
        )
        for counter, values in grouped.items()
    ]


def _sample_target(
    target: str,
    counters: tuple[str, ...],
    duration: float,
    interval: float,
    *,
    backend: RemoteBackend,
    credentials: Credentials | None,
    sink: ActivityLog,
    config: Settings,
) -> PerformanceSample:
    base = PerformanceSample(
        target=target,
        duration_seconds=duration,
        interval_seconds=interval,
        counters=counters,
    )
    try:
        if not backend.probe_connectivity(target, config.precheck_timeout_seconds):
            reason = "Unreachable (no response to connectivity check)"
            sink.log(logging.WARNING, f"{target}: {reason}", target=target)
            return replace(base, failure_reason=reason)

        raw = backend.sample_counters(
            target, counters, interval, sample_count(duration, interval), credentials
        )
    except Exception as e:
        reason = str(e) or type(e).__name__
        sink.log(logging.ERROR, f"{target}: counter sampling failed: {reason}", target=target)
        return replace(base, failure_reason=reason)

    samples = tuple(replace(s, value=round(s.value, 4)) for s in raw)
    sink.log(
        logging.INFO,
        f"{target}: collected {len(samples)} counter sample(s)",
        target=target,
    )
    return replace(base, samples=samples, summary=tuple(summarize(samples)))


def sample_performance(
    targets: Iterable[str] | str,
    duration: float,
    interval: float,
    counters: Sequence[str] | None = None,
    *,
    backend: RemoteBackend,
    credentials: Credentials | None = None,
    sink: ActivityLog | None = None,
    config: Settings = settings,
) -> list[PerformanceSample]:
    """Sample *counters* on each target; one result per target, input order."""
    names = validate_targets(targets)
    if duration <= 0:
        raise ConfigError(code="invalid_duration", message="duration must be > 0")
    if interval <= 0:
        raise ConfigError(code="invalid_interval", message="interval must be > 0")
    if interval < backend.min_sample_interval:
        raise ConfigError(
            code="invalid_interval",
            message=f"{backend.name} cannot sample faster than every {backend.min_sample_interval:g}s",
        )
    paths = tuple(counters) if counters else DEFAULT_COUNTERS
    sink = sink or NullActivityLog()

    return [
        _sample_target(
            name,
            paths,
            duration,
            interval,
            backend=backend,
            credentials=credentials,
            sink=sink,
            config=config,
        )
        for name in names
    ]
