"""Known-good vs known-bad snapshot comparison."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .config import Settings, settings
from .models import (
    ComparisonResult,
    Direction,
    HostSnapshot,
    MetricComparison,
    Severity,
)


@dataclass(frozen=True, slots=True)
class TrackedMetric:
    """One comparison row definition."""

    metric: str
    field: str
    direction: Direction


TRACKED_METRICS: tuple[TrackedMetric, ...] = (
    TrackedMetric("OS build", "os_build", Direction.MISMATCH),
    TrackedMetric("Uptime (days)", "uptime_days", Direction.DELTA),
    TrackedMetric("Lowest free disk %", "lowest_free_disk_percent", Direction.LOWER_IS_BAD),
    TrackedMetric("Free RAM (GB)", "free_ram_gb", Direction.LOWER_IS_BAD),
    TrackedMetric("App crashes", "app_crash_count", Direction.HIGHER_IS_BAD),
    TrackedMetric("Kernel-Power events", "kernel_power_count", Direction.HIGHER_IS_BAD),
    TrackedMetric("Unexpected shutdowns", "unexpected_shutdown_count", Direction.HIGHER_IS_BAD),
    TrackedMetric("Resource exhaustion events", "resource_exhaustion_count", Direction.HIGHER_IS_BAD),
    TrackedMetric("Boot degradation events", "boot_degradation_count", Direction.HIGHER_IS_BAD),
)


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def metric_delta(reference: Any, difference: Any) -> float | None:
    """``difference - reference`` when both are numeric, else ``None``."""
    if _is_number(reference) and _is_number(difference):
        return round(float(difference) - float(reference), 4)
    return None


def classify(direction: Direction, reference: Any, difference: Any) -> Severity:
    """Severity for one row, recomputed from the values every time.

    Uptime (``Delta``) is informational and never escalates. Directional
    rules need both values; a missing value on either side stays ``Info``.
    A mismatch counts a value missing on only one side as a difference.
    """
    if direction is Direction.MISMATCH:
        if reference is None and difference is None:
            return Severity.INFO
        return Severity.WARNING if reference != difference else Severity.INFO

    if direction is Direction.DELTA:
        return Severity.INFO

    delta = metric_delta(reference, difference)
    if delta is None:
        return Severity.INFO
    if direction is Direction.LOWER_IS_BAD and delta < 0:
        return Severity.WARNING
    if direction is Direction.HIGHER_IS_BAD and delta > 0:
        return Severity.WARNING
    return Severity.INFO


def likely_contributors(
    reference: HostSnapshot,
    difference: HostSnapshot,
    config: Settings = settings,
) -> list[str]:
    """Advisory statements; each fires independently of the others."""
    hints: list[str] = []

    free_pct = difference.lowest_free_disk_percent
    if free_pct is not None and free_pct < config.low_disk_percent:
        hints.append(
            f"Low free disk on {difference.target}: lowest volume at {free_pct:.1f}% free "
            f"(threshold {config.low_disk_percent:g}%)."
        )

    ref_exhaustion = reference.resource_exhaustion_count or 0
    diff_exhaustion = difference.resource_exhaustion_count or 0
    if diff_exhaustion > ref_exhaustion:
        hints.append(
            f"Resource exhaustion events are higher on {difference.target} "
            f"({diff_exhaustion} vs {ref_exhaustion}); check memory and commit pressure."
        )

    crash_gap = difference.crash_family_total - reference.crash_family_total
    if crash_gap > config.crash_delta_threshold:
        hints.append(
            f"Crash and unexpected-shutdown events are higher on {difference.target} by "
            f"{crash_gap} ({difference.crash_family_total} vs {reference.crash_family_total}); "
            "check drivers, power and recent updates."
        )

    ref_boot = reference.boot_degradation_count or 0
    diff_boot = difference.boot_degradation_count or 0
    if diff_boot > ref_boot:
        hints.append(
            f"Boot performance degradation events are higher on {difference.target} "
            f"({diff_boot} vs {ref_boot}); review startup applications and services."
        )

    return hints


def compare_snapshots(
    reference: HostSnapshot,
    difference: HostSnapshot,
    *,
    config: Settings = settings,
) -> ComparisonResult:
    """Metric-by-metric diff of a known-good and a known-bad host."""
    rows = []
    for tracked in TRACKED_METRICS:
        ref_value = getattr(reference, tracked.field)
        diff_value = getattr(difference, tracked.field)
        rows.append(
            MetricComparison(
                metric=tracked.metric,
                direction=tracked.direction,
                reference=ref_value,
                difference=diff_value,
                delta=metric_delta(ref_value, diff_value),
                severity=classify(tracked.direction, ref_value, diff_value),
            )
        )

    return ComparisonResult(
        reference_target=reference.target,
        difference_target=difference.target,
        rows=tuple(rows),
        contributors=tuple(likely_contributors(reference, difference, config)),
    )
