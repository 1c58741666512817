"""Tests for known-good vs known-bad comparison."""

from __future__ import annotations

from typing import Any

from conftest import NOW

from fleetdiag.compare import TRACKED_METRICS, classify, compare_snapshots, metric_delta
from fleetdiag.models import Direction, HostSnapshot, Severity


def _snapshot(target: str, **values: Any) -> HostSnapshot:
    return HostSnapshot(target=target, timestamp=NOW, reachable=True, **values)


def _row(result, metric: str):
    return next(r for r in result.rows if r.metric == metric)


def test_rows_follow_tracked_metric_order() -> None:
    result = compare_snapshots(_snapshot("good"), _snapshot("bad"))
    assert [r.metric for r in result.rows] == [m.metric for m in TRACKED_METRICS]
    assert result.reference_target == "good"
    assert result.difference_target == "bad"


def test_os_build_mismatch_is_warning_without_delta() -> None:
    result = compare_snapshots(
        _snapshot("good", os_build="10.0.19045"), _snapshot("bad", os_build="10.0.22631")
    )
    row = _row(result, "OS build")
    assert row.severity is Severity.WARNING
    assert row.delta is None


def test_lower_free_disk_on_difference_is_warning() -> None:
    result = compare_snapshots(
        _snapshot("good", lowest_free_disk_percent=40.0),
        _snapshot("bad", lowest_free_disk_percent=10.0),
    )
    row = _row(result, "Lowest free disk %")
    assert row.delta == -30.0
    assert row.severity is Severity.WARNING


def test_uptime_is_informational() -> None:
    result = compare_snapshots(_snapshot("good", uptime_days=1.0), _snapshot("bad", uptime_days=40.0))
    row = _row(result, "Uptime (days)")
    assert row.delta == 39.0
    assert row.severity is Severity.INFO


def test_higher_crash_count_is_warning() -> None:
    result = compare_snapshots(_snapshot("good", app_crash_count=0), _snapshot("bad", app_crash_count=2))
    row = _row(result, "App crashes")
    assert row.delta == 2.0
    assert row.severity is Severity.WARNING
    assert result.warnings == [row]


def test_missing_value_on_directional_metric_is_info() -> None:
    result = compare_snapshots(_snapshot("good", app_crash_count=0), _snapshot("bad"))
    row = _row(result, "App crashes")
    assert row.delta is None
    assert row.severity is Severity.INFO


def test_classify_mismatch_rules() -> None:
    assert classify(Direction.MISMATCH, None, None) is Severity.INFO
    assert classify(Direction.MISMATCH, "a", "a") is Severity.INFO
    assert classify(Direction.MISMATCH, "a", None) is Severity.WARNING


def test_metric_delta_requires_numbers() -> None:
    assert metric_delta(1, 2.5) == 1.5
    assert metric_delta("1", 2) is None
    assert metric_delta(True, 2) is None


def test_low_disk_hint_independent_of_reference() -> None:
    result = compare_snapshots(
        _snapshot("good", lowest_free_disk_percent=5.0),
        _snapshot("bad", lowest_free_disk_percent=8.0),
    )
    assert any("Low free disk on bad" in hint for hint in result.contributors)
    assert _row(result, "Lowest free disk %").severity is Severity.INFO


def test_contributor_heuristics() -> None:
    reference = _snapshot("good", app_crash_count=1, resource_exhaustion_count=0)
    difference = _snapshot(
        "bad",
        app_crash_count=3,
        kernel_power_count=2,
        resource_exhaustion_count=1,
        boot_degradation_count=1,
    )
    hints = compare_snapshots(reference, difference).contributors
    assert len(hints) == 3
    assert any("Resource exhaustion" in h for h in hints)
    assert any("higher on bad by 4" in h for h in hints)
    assert any("Boot performance" in h for h in hints)


def test_crash_gap_at_threshold_is_not_a_contributor() -> None:
    reference = _snapshot("good", app_crash_count=1)
    difference = _snapshot("bad", app_crash_count=4)
    assert compare_snapshots(reference, difference).contributors == ()


def test_comparison_is_repeatable() -> None:
    reference = _snapshot("good", os_build="1", lowest_free_disk_percent=50.0, app_crash_count=0)
    difference = _snapshot("bad", os_build="2", lowest_free_disk_percent=9.0, app_crash_count=7)
    assert compare_snapshots(reference, difference) == compare_snapshots(reference, difference)


def test_to_dict_is_json_friendly() -> None:
    data = compare_snapshots(_snapshot("good"), _snapshot("bad")).to_dict()
    assert data["reference"] == "good"
    assert data["rows"][0]["severity"] == "Info"
    assert data["rows"][0]["direction"] == "Mismatch"
