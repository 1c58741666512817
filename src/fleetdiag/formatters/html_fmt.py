"""HTML report formatter."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime
from html import escape

from ..models import HostSnapshot
from .base import BaseFormatter, flatten_snapshot

_COLUMNS = [
    ("target", "Target"),
    ("reachable", "Reachable"),
    ("failure_reason", "Failure"),
    ("transport", "Transport"),
    ("os_name", "OS"),
    ("os_build", "Build"),
    ("uptime_days", "Uptime (d)"),
    ("free_ram_gb", "Free RAM (GB)"),
    ("lowest_free_disk_percent", "Lowest free disk %"),
    ("app_crash_count", "App crashes"),
    ("kernel_power_count", "Kernel-Power"),
    ("unexpected_shutdown_count", "Unexpected shutdowns"),
    ("resource_exhaustion_count", "Resource exhaustion"),
    ("boot_degradation_count", "Boot degradation"),
    ("low_disk", "Low disk"),
    ("low_ram", "Low RAM"),
    ("high_crash", "High crash"),
]

_STYLE = """
body { font-family: Segoe UI, Arial, sans-serif; margin: 1.5em; }
table { border-collapse: collapse; }
th, td { border: 1px solid #ccc; padding: 4px 8px; font-size: 13px; }
th { background: #f0f0f0; }
tr.unreachable td { background: #fbe3e3; }
td.flag { background: #fff2cc; font-weight: bold; }
"""


class HtmlFormatter(BaseFormatter):
    """Format snapshots as a standalone HTML page."""

    def format(self, snapshots: Sequence[HostSnapshot]) -> str:
        generated = datetime.now(UTC).isoformat(timespec="seconds")
        lines = [
            "<!DOCTYPE html>",
            "<html><head><meta charset=\"utf-8\"><title>Fleet diagnostics</title>",
            f"<style>{_STYLE}</style></head><body>",
            "<h1>Fleet diagnostics</h1>",
            f"<p>Generated {escape(generated)} &middot; {len(snapshots)} target(s)</p>",
            "<table>",
            "<tr>" + "".join(f"<th>{escape(label)}</th>" for _, label in _COLUMNS) + "</tr>",
        ]
        for snapshot in snapshots:
            row = flatten_snapshot(snapshot)
            css = "" if snapshot.reachable else " class=\"unreachable\""
            cells = []
            for key, _ in _COLUMNS:
                value = row.get(key, "")
                flagged = key in ("low_disk", "low_ram", "high_crash") and value is True
                cls = " class=\"flag\"" if flagged else ""
                cells.append(f"<td{cls}>{escape(str(value))}</td>")
            lines.append(f"<tr{css}>" + "".join(cells) + "</tr>")
        lines.extend(["</table>", "</body></html>"])
        return "\n".join(lines)
