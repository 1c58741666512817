"""Base formatter interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from ..models import HostSnapshot


class BaseFormatter(ABC):
    """Abstract base class for output formatters."""

    @abstractmethod
    def format(self, snapshots: Sequence[HostSnapshot]) -> str:
        """Format a batch of snapshots to string."""
        ...


def flatten_snapshot(snapshot: HostSnapshot) -> dict[str, Any]:
    """One flat row per snapshot for tabular outputs.

    Datetimes become ISO-8601, nulls become empty cells and per-metric
    errors collapse to ``name: message; ...``.
    """
    row: dict[str, Any] = {}
    for key, value in snapshot.to_dict().items():
        if key == "metric_errors":
            value = "; ".join(f"{name}: {message}" for name, message in value.items())
        elif value is None:
            value = ""
        row[key] = value
    return row
