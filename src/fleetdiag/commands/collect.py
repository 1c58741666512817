"""Collect command handler."""

from __future__ import annotations

import argparse
import logging
import sys

from ..errors import ConfigError, FleetError
from ..fleet import FleetDriver
from ..formatters import get_formatter
from ..models import HostSnapshot
from ..utils import output_text
from . import activity_sink, backend_from_args, options_from_args, report_error, targets_from_args

log = logging.getLogger(__name__)

# How long a cancelled run may take to wind down before partial results are reported.
CANCEL_GRACE_SECONDS = 10.0


def _progress(snapshot: HostSnapshot) -> None:
    status = "ok" if snapshot.reachable else f"unreachable ({snapshot.failure_reason})"
    sys.stderr.write(f"[fleetdiag] {snapshot.target}: {status}\n")
    sys.stderr.flush()


def _stream(driver: FleetDriver, targets: list[str]) -> list[HostSnapshot]:
    run = driver.start(targets)
    try:
        for snapshot in run:
            _progress(snapshot)
    except KeyboardInterrupt:
        run.cancel()
        sys.stderr.write("\n[fleetdiag] Cancelled, reporting targets finished so far...\n")
        try:
            return run.wait(timeout=CANCEL_GRACE_SECONDS)
        except TimeoutError:
            log.warning("Run did not stop within %ss of cancel", CANCEL_GRACE_SECONDS)
            return run.delivered
    return run.wait()


def cmd_collect(args: argparse.Namespace) -> int:
    """Collect one snapshot per target and write a report."""
    try:
        targets = targets_from_args(args)
        formatter = get_formatter(args.format)
        driver = FleetDriver(
            backend_from_args(args),
            options_from_args(args),
            sink=activity_sink(),
            max_workers=args.workers,
        )
        if args.stream:
            snapshots = _stream(driver, targets)
        else:
            snapshots = driver.collect(targets)
    except ConfigError as e:
        return report_error(e)
    except FleetError as e:
        sys.stderr.write(f"Error: {e.message}\n")
        return 1

    output_text(formatter.format(snapshots), args.output)
    return 0 if all(s.reachable for s in snapshots) else 1
