"""Shared utility functions."""

from __future__ import annotations

import os
import sys
from pathlib import Path


def output_text(data: str, output_file: str | None = None) -> None:
    """Write *data* to *output_file* (overwrite) or stdout."""
    if output_file:
        with open(output_file, "w", encoding="utf-8") as f:
            f.write(data + "\n")
    else:
        sys.stdout.write(data + "\n")
        sys.stdout.flush()


def read_targets_file(path: str) -> list[str]:
    """One target per line; blank lines and ``#`` comments are ignored."""
    targets: list[str] = []
    for line in Path(path).read_text(encoding="utf-8").splitlines():
        entry = line.split("#", 1)[0].strip()
        if entry:
            targets.append(entry)
    return targets


def password_from_env() -> str:
    return os.getenv("FLEETDIAG_PASSWORD", "")
