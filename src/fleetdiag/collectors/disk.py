"""Disk free-space collector."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Any

from ..backends.base import RemoteBackend
from .base import BaseCollector


def lowest_free_percent(volumes: Iterable[tuple[float, float]]) -> float | None:
    """Minimum free percentage across fixed volumes.

    Volumes reporting zero capacity are skipped. No usable volume means the
    value is unknown, so ``None`` rather than ``0``.
    """
    percents = [
        round(float(free) / float(size) * 100, 2)
        for size, free in volumes
        if size is not None and free is not None and float(size) > 0
    ]
    if not percents:
        return None
    return min(percents)


class DiskCollector(BaseCollector):
    """Collect the lowest free-space percentage over fixed volumes."""

    @property
    def name(self) -> str:
        return "disk"

    @property
    def kind(self) -> str:
        return "disk"

    @property
    def fields(self) -> tuple[str, ...]:
        return ("lowest_free_disk_percent",)

    def query(self, backend: RemoteBackend, target: str, start: datetime) -> Any:
        return backend.query_volumes(target)

    def normalize(self, raw: Any) -> dict[str, Any]:
        if raw is None:
            raw = []
        if isinstance(raw, dict):
            raw = [raw]
        volumes: list[tuple[float, float]] = []
        for item in raw:
            if isinstance(item, dict):
                volumes.append((item.get("size") or 0, item.get("free") or 0))
            else:
                size, free = item
                volumes.append((size or 0, free or 0))
        return {"lowest_free_disk_percent": lowest_free_percent(volumes)}
