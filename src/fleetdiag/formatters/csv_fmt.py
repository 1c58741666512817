"""CSV formatter."""

from __future__ import annotations

import csv
import io
from collections.abc import Sequence
from dataclasses import fields

from ..models import HostSnapshot
from .base import BaseFormatter, flatten_snapshot

COLUMNS = [f.name for f in fields(HostSnapshot)]


class CsvFormatter(BaseFormatter):
    """Format snapshots as CSV, one row per target."""

    def format(self, snapshots: Sequence[HostSnapshot]) -> str:
        buf = io.StringIO()
        writer = csv.DictWriter(buf, fieldnames=COLUMNS, lineterminator="\n")
        writer.writeheader()
        for snapshot in snapshots:
            writer.writerow(flatten_snapshot(snapshot))
        return buf.getvalue().rstrip("\n")
