"""Compare command handler."""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any

from ..compare import compare_snapshots
from ..errors import ConfigError
from ..fleet import FleetDriver
from ..models import ComparisonResult, HostSnapshot, Severity
from ..utils import output_text
from . import activity_sink, backend_from_args, options_from_args, report_error


def load_snapshots(path: str) -> list[HostSnapshot]:
    """Read a report produced by ``collect --format json``."""
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(code="snapshots_file", message=f"Cannot read {path}: {e}") from e
    if isinstance(data, dict):
        data = [data]
    try:
        return [HostSnapshot.from_dict(item) for item in data]
    except (TypeError, ValueError) as e:
        raise ConfigError(code="snapshots_file", message=f"Invalid snapshot in {path}: {e}") from e


def find_snapshot(snapshots: list[HostSnapshot], target: str) -> HostSnapshot:
    wanted = target.strip().lower()
    for snapshot in snapshots:
        if snapshot.target.lower() == wanted:
            return snapshot
    raise ConfigError(code="unknown_target", message=f"No snapshot for {target} in the report")


def _value(value: Any) -> str:
    if value is None:
        return "N/A"
    if isinstance(value, float):
        return f"{value:.2f}"
    return str(value)


def format_comparison_table(result: ComparisonResult) -> str:
    lines: list[str] = [
        "=" * 92,
        f"  Comparison - reference {result.reference_target} vs difference {result.difference_target}",
        "=" * 92,
        "+------------------------------+----------------+----------------+----------+----------+",
        "| Metric                       | Reference      | Difference     | Delta    | Severity |",
        "+------------------------------+----------------+----------------+----------+----------+",
    ]
    for row in result.rows:
        delta = f"{row.delta:+.2f}" if row.delta is not None else ""
        marker = "WARNING" if row.severity is Severity.WARNING else "info"
        lines.append(
            f"| {row.metric:<28} | {_value(row.reference)[:14]:>14} | "
            f"{_value(row.difference)[:14]:>14} | {delta:>8} | {marker:>8} |"
        )
    lines.append(
        "+------------------------------+----------------+----------------+----------+----------+"
    )
    lines.append("")
    if result.contributors:
        lines.append("Likely contributors:")
        for hint in result.contributors:
            lines.append(f"  - {hint}")
    else:
        lines.append("No likely contributors identified.")
    lines.append("")
    return "\n".join(lines)


def cmd_compare(args: argparse.Namespace) -> int:
    """Compare a known-good (reference) and a known-bad (difference) host."""
    try:
        names = [args.reference.strip(), args.difference.strip()]
        if not all(names):
            raise ConfigError(
                code="empty_targets", message="Both a reference and a difference host are required."
            )
        if args.snapshots:
            snapshots = load_snapshots(args.snapshots)
            reference, difference = (find_snapshot(snapshots, name) for name in names)
        else:
            driver = FleetDriver(
                backend_from_args(args), options_from_args(args), sink=activity_sink()
            )
            reference, difference = driver.collect(names)
    except ConfigError as e:
        return report_error(e)

    for snapshot in (reference, difference):
        if not snapshot.reachable:
            sys.stderr.write(
                f"Warning: {snapshot.target} is unreachable ({snapshot.failure_reason}); "
                "its values are empty.\n"
            )

    result = compare_snapshots(reference, difference)
    if args.format == "json":
        output_text(json.dumps(result.to_dict(), indent=2), args.output)
    else:
        output_text(format_comparison_table(result), args.output)

    return 1 if result.warnings else 0
