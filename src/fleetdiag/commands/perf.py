"""Performance sampling command handler."""

from __future__ import annotations

import argparse
import json

from ..errors import ConfigError
from ..models import PerformanceSample
from ..perf import sample_performance
from ..utils import output_text
from . import activity_sink, backend_from_args, credentials_from_args, report_error, targets_from_args


def format_perf_table(results: list[PerformanceSample]) -> str:
    lines: list[str] = []
    for result in results:
        lines.extend(
            [
                "=" * 84,
                f"  Performance - {result.target} "
                f"({result.duration_seconds:g}s every {result.interval_seconds:g}s)",
                "=" * 84,
            ]
        )
        if not result.ok:
            lines.append(f"  FAILED: {result.failure_reason}")
            lines.append("")
            continue
        lines.append(f"{'Counter':<46} {'Avg':>11} {'Min':>11} {'Max':>11}")
        lines.append("-" * 84)
        for row in result.summary:
            lines.append(
                f"{row.counter[:46]:<46} {row.average:>11.4f} {row.minimum:>11.4f} {row.maximum:>11.4f}"
            )
        lines.append("")
    return "\n".join(lines)


def cmd_perf(args: argparse.Namespace) -> int:
    """Sample performance counters on each target."""
    try:
        results = sample_performance(
            targets_from_args(args),
            args.duration,
            args.interval,
            args.counter or None,
            backend=backend_from_args(args),
            credentials=credentials_from_args(args),
            sink=activity_sink(),
        )
    except ConfigError as e:
        return report_error(e)

    if args.format == "json":
        output_text(json.dumps([r.to_dict() for r in results], indent=2), args.output)
    else:
        output_text(format_perf_table(results), args.output)

    return 0 if all(r.ok for r in results) else 1
