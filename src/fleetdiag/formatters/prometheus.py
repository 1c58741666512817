"""Prometheus metrics formatter."""

from __future__ import annotations

from collections.abc import Sequence

from ..models import EVENT_COUNT_FIELDS, HostSnapshot
from .base import BaseFormatter

_GAUGES = (
    ("uptime_days", "fleetdiag_uptime_days", "Days since last boot"),
    ("free_ram_gb", "fleetdiag_free_ram_gb", "Free physical memory in GB"),
    ("total_ram_gb", "fleetdiag_total_ram_gb", "Total physical memory in GB"),
    (
        "lowest_free_disk_percent",
        "fleetdiag_lowest_free_disk_percent",
        "Lowest free space percentage across fixed volumes",
    ),
)


def _label(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


class PrometheusFormatter(BaseFormatter):
    """Format snapshots as Prometheus exposition text.

    Unknown values are omitted rather than exported as zero.
    """

    def format(self, snapshots: Sequence[HostSnapshot]) -> str:
        lines: list[str] = [
            "# HELP fleetdiag_host_reachable Whether the host could be collected",
            "# TYPE fleetdiag_host_reachable gauge",
        ]
        for s in snapshots:
            lines.append(f'fleetdiag_host_reachable{{host="{_label(s.target)}"}} {int(s.reachable)}')

        for field, metric, help_text in _GAUGES:
            lines.append(f"# HELP {metric} {help_text}")
            lines.append(f"# TYPE {metric} gauge")
            for s in snapshots:
                value = getattr(s, field)
                if value is not None:
                    lines.append(f'{metric}{{host="{_label(s.target)}"}} {value}')

        lines.append("# HELP fleetdiag_events Event count within the lookback window")
        lines.append("# TYPE fleetdiag_events gauge")
        for s in snapshots:
            for field in EVENT_COUNT_FIELDS:
                value = getattr(s, field)
                if value is not None:
                    event = field.removesuffix("_count")
                    lines.append(
                        f'fleetdiag_events{{host="{_label(s.target)}",event="{event}"}} {value}'
                    )

        lines.append("# HELP fleetdiag_flag Derived risk flag")
        lines.append("# TYPE fleetdiag_flag gauge")
        for s in snapshots:
            if not s.reachable:
                continue
            for flag in ("low_disk", "low_ram", "high_crash"):
                lines.append(
                    f'fleetdiag_flag{{host="{_label(s.target)}",flag="{flag}"}} {int(getattr(s, flag))}'
                )

        return "\n".join(lines)
