"""Table formatter for human-readable output."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from ..models import HostSnapshot
from .base import BaseFormatter


def _cell(value: Any, spec: str = "") -> str:
    if value is None:
        return "N/A"
    if spec:
        return format(value, spec)
    return str(value)


def _flags(snapshot: HostSnapshot) -> str:
    flags = [
        name
        for name, on in (
            ("LOW-DISK", snapshot.low_disk),
            ("LOW-RAM", snapshot.low_ram),
            ("HIGH-CRASH", snapshot.high_crash),
        )
        if on
    ]
    return ",".join(flags) or "-"


class TableFormatter(BaseFormatter):
    """Format snapshots as a fixed-width fleet table."""

    def format(self, snapshots: Sequence[HostSnapshot]) -> str:
        lines: list[str] = [
            f"{'=' * 118}",
            f"  Fleet Snapshot - {len(snapshots)} target(s)",
            f"{'=' * 118}",
            f"{'Target':<20} {'Via':<6} {'Build':<14} {'Uptime':>7} {'FreeGB':>7} "
            f"{'Disk%':>6} {'App':>4} {'KP':>4} {'Shut':>4} {'Exh':>4} {'Boot':>4}  Flags",
            "-" * 118,
        ]

        for s in snapshots:
            if not s.reachable:
                lines.append(f"{s.target[:20]:<20} {'-':<6} UNREACHABLE: {s.failure_reason}")
                continue
            lines.append(
                f"{s.target[:20]:<20} {_cell(s.transport):<6} {_cell(s.os_build)[:14]:<14} "
                f"{_cell(s.uptime_days, '.1f'):>7} {_cell(s.free_ram_gb, '.2f'):>7} "
                f"{_cell(s.lowest_free_disk_percent, '.1f'):>6} "
                f"{_cell(s.app_crash_count):>4} {_cell(s.kernel_power_count):>4} "
                f"{_cell(s.unexpected_shutdown_count):>4} {_cell(s.resource_exhaustion_count):>4} "
                f"{_cell(s.boot_degradation_count):>4}  {_flags(s)}"
            )
            if s.metric_errors:
                missing = ", ".join(name for name, _ in s.metric_errors)
                lines.append(f"{'':<20} (unavailable: {missing})")

        reachable = sum(1 for s in snapshots if s.reachable)
        lines.append("")
        lines.append(f"Reachable: {reachable} / {len(snapshots)}")
        lines.append(f"{'=' * 118}")

        return "\n".join(lines)
