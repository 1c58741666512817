"""CLI interface for fleetdiag."""

from __future__ import annotations

import argparse
import sys

from .backends import BACKENDS
from .commands.collect import cmd_collect
from .commands.compare import cmd_compare
from .commands.perf import cmd_perf
from .commands.version import cmd_version
from .config import settings
from .formatters import FORMATTERS
from .logging import configure_logging


def build_parser() -> argparse.ArgumentParser:
    """Build argument parser."""
    parser = argparse.ArgumentParser(
        prog="fleetdiag",
        description="Fleet-wide Windows health diagnostics",
    )

    # Global options
    parser.add_argument(
        "--version",
        "-V",
        action="store_true",
        help="Show version and exit",
    )

    subparsers = parser.add_subparsers(dest="command")

    def add_connection_args(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "--backend",
            choices=list(BACKENDS),
            default="powershell",
            help="Management backend (default: powershell)",
        )
        p.add_argument(
            "--username",
            "-u",
            type=str,
            default=None,
            help="Remote account; password is read from FLEETDIAG_PASSWORD",
        )
        p.add_argument(
            "--output",
            "-o",
            type=str,
            default=None,
            help="Output file (default: stdout)",
        )

    def add_collection_args(p: argparse.ArgumentParser) -> None:
        add_connection_args(p)
        p.add_argument(
            "--transport",
            "-t",
            choices=["auto", "winrm", "rpc"],
            default="auto",
            help="Transport preference (default: auto)",
        )
        p.add_argument(
            "--lookback-days",
            "-d",
            type=int,
            default=settings.lookback_days,
            help=f"Event log lookback window in days (default: {settings.lookback_days})",
        )
        p.add_argument("--security", action="store_true", help="Include Defender status")
        p.add_argument(
            "--crash-artifacts",
            action="store_true",
            help="Include fault report and crash dump counts",
        )
        p.add_argument("--updates", action="store_true", help="Include recent update count")
        p.add_argument(
            "--fast",
            action="store_true",
            help="Core metrics only; ignores the optional collector switches",
        )

    def add_target_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("targets", nargs="*", help="Target host names")
        p.add_argument(
            "--targets-file",
            "-T",
            type=str,
            default=None,
            help="File with one target per line",
        )

    # collect command
    p_collect = subparsers.add_parser(
        "collect",
        help="Collect a health snapshot from each target",
    )
    add_target_args(p_collect)
    add_collection_args(p_collect)
    p_collect.add_argument(
        "--workers",
        "-w",
        type=int,
        default=None,
        help=f"Concurrent targets (default: {settings.max_workers})",
    )
    p_collect.add_argument(
        "--stream",
        action="store_true",
        help="Report progress per target as it completes; Ctrl-C cancels the run",
    )
    p_collect.add_argument(
        "--format",
        "-f",
        choices=list(FORMATTERS),
        default="json",
        help="Output format (default: json)",
    )
    p_collect.set_defaults(func=cmd_collect)

    # compare command
    p_compare = subparsers.add_parser(
        "compare",
        help="Compare a known-good host against a known-bad host",
    )
    p_compare.add_argument("reference", help="Known-good host")
    p_compare.add_argument("difference", help="Host under investigation")
    p_compare.add_argument(
        "--snapshots",
        "-s",
        type=str,
        default=None,
        help="Read both hosts from a 'collect --format json' report instead of collecting",
    )
    add_collection_args(p_compare)
    p_compare.add_argument(
        "--format",
        "-f",
        choices=["table", "json"],
        default="table",
        help="Report format (default: table)",
    )
    p_compare.set_defaults(func=cmd_compare)

    # perf command
    p_perf = subparsers.add_parser(
        "perf",
        help="Sample performance counters on each target",
    )
    add_target_args(p_perf)
    add_connection_args(p_perf)
    p_perf.add_argument(
        "--duration",
        type=float,
        default=60.0,
        help="Sampling window in seconds (default: 60)",
    )
    p_perf.add_argument(
        "--interval",
        "-i",
        type=float,
        default=5.0,
        help="Seconds between samples (default: 5)",
    )
    p_perf.add_argument(
        "--counter",
        "-c",
        action="append",
        default=[],
        help="Counter path; repeat for several (default: a standard set)",
    )
    p_perf.add_argument(
        "--format",
        "-f",
        choices=["table", "json"],
        default="table",
        help="Report format (default: table)",
    )
    p_perf.set_defaults(func=cmd_perf)

    # version command
    p_version = subparsers.add_parser(
        "version",
        help="Show version",
    )
    p_version.set_defaults(func=cmd_version)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    configure_logging()
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        from . import __version__

        sys.stdout.write(f"fleetdiag version {__version__}\n")
        raise SystemExit(0)

    if not args.command:
        parser.print_help()
        raise SystemExit(0)

    rc = int(args.func(args))
    raise SystemExit(rc)
