"""Tests for snapshot records."""

from __future__ import annotations

import json
from datetime import UTC, datetime

import pytest
from conftest import NOW

from fleetdiag.models import HostSnapshot, Transport, parse_datetime


def test_reachable_snapshot_cannot_carry_reason() -> None:
    with pytest.raises(ValueError):
        HostSnapshot(target="pc1", timestamp=NOW, reachable=True, failure_reason="nope")


def test_unreachable_snapshot_needs_reason() -> None:
    with pytest.raises(ValueError):
        HostSnapshot(target="pc1", timestamp=NOW)


def test_unreachable_factory_fills_reason() -> None:
    snapshot = HostSnapshot.unreachable("pc1", "", timestamp=NOW)
    assert snapshot.reachable is False
    assert snapshot.failure_reason == "Unknown failure"
    assert snapshot.app_crash_count is None
    assert snapshot.low_disk is False


def test_crash_family_total_treats_null_as_zero() -> None:
    snapshot = HostSnapshot(
        target="pc1",
        timestamp=NOW,
        reachable=True,
        app_crash_count=2,
        kernel_power_count=None,
        unexpected_shutdown_count=1,
    )
    assert snapshot.crash_family_total == 3


def test_to_dict_and_back() -> None:
    snapshot = HostSnapshot(
        target="pc1",
        timestamp=NOW,
        reachable=True,
        transport=Transport.WINRM,
        os_build="10.0.22631",
        last_boot=datetime(2024, 5, 17, 8, 30, tzinfo=UTC),
        app_crash_count=0,
        kernel_power_count=None,
        metric_errors=(("kernel_power", "RPC server unavailable"),),
    )
    data = snapshot.to_dict()
    assert data["timestamp"] == "2024-05-20T12:00:00+00:00"
    assert data["transport"] == "WinRM"
    assert data["app_crash_count"] == 0
    assert data["kernel_power_count"] is None
    assert data["metric_errors"] == {"kernel_power": "RPC server unavailable"}

    restored = HostSnapshot.from_dict(json.loads(json.dumps(data)))
    assert restored == snapshot


def test_from_dict_ignores_unknown_keys() -> None:
    snapshot = HostSnapshot.from_dict(
        {"target": "pc1", "timestamp": "2024-05-20T12:00:00Z", "reachable": False,
         "failure_reason": "timeout", "extra": 1}
    )
    assert snapshot.timestamp == NOW
    assert snapshot.transport is None
    assert snapshot.metric_errors == ()


def test_parse_datetime() -> None:
    assert parse_datetime(None) is None
    assert parse_datetime("") is None
    assert parse_datetime(NOW) is NOW
    assert parse_datetime("2024-05-20T12:00:00.0000000Z") == NOW
    with pytest.raises(ValueError):
        parse_datetime(12)
