"""CLI command handlers."""

from __future__ import annotations

import argparse
import sys

from ..backends import RemoteBackend, get_backend
from ..config import CollectionOptions, Credentials
from ..errors import ConfigError
from ..logging import LoggingActivityLog
from ..transport import parse_preference
from ..utils import password_from_env, read_targets_file


def targets_from_args(args: argparse.Namespace) -> list[str]:
    targets = list(getattr(args, "targets", None) or [])
    targets_file = getattr(args, "targets_file", None)
    if targets_file:
        try:
            targets.extend(read_targets_file(targets_file))
        except OSError as e:
            raise ConfigError(code="targets_file", message=f"Cannot read {targets_file}: {e}") from e
    return targets


def credentials_from_args(args: argparse.Namespace) -> Credentials | None:
    username = getattr(args, "username", None)
    if not username:
        return None
    return Credentials(username=username, password=password_from_env())


def options_from_args(args: argparse.Namespace) -> CollectionOptions:
    return CollectionOptions(
        lookback_days=args.lookback_days,
        transport=parse_preference(args.transport),
        include_security=args.security,
        include_crash_artifacts=args.crash_artifacts,
        include_updates=args.updates,
        fast=args.fast,
        credentials=credentials_from_args(args),
    )


def backend_from_args(args: argparse.Namespace) -> RemoteBackend:
    return get_backend(args.backend, credentials=credentials_from_args(args))


def activity_sink() -> LoggingActivityLog:
    return LoggingActivityLog()


def report_error(err: ConfigError) -> int:
    sys.stderr.write(f"Error: {err.message}\n")
    return 2


__all__ = [
    "activity_sink",
    "backend_from_args",
    "credentials_from_args",
    "options_from_args",
    "report_error",
    "targets_from_args",
]
