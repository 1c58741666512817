"""OS and hardware facts collector."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from ..backends.base import RemoteBackend
from ..models import parse_datetime
from .base import BaseCollector

_GB = 1024**3


def bytes_to_gb(n: float | int | None) -> float | None:
    if n is None:
        return None
    return round(float(n) / _GB, 2)


class HostFactsCollector(BaseCollector):
    """Collect domain, OS name/build, last boot and RAM."""

    @property
    def name(self) -> str:
        return "host"

    @property
    def kind(self) -> str:
        return "host"

    @property
    def fields(self) -> tuple[str, ...]:
        return ("domain", "os_name", "os_build", "last_boot", "total_ram_gb", "free_ram_gb")

    def query(self, backend: RemoteBackend, target: str, start: datetime) -> Any:
        return backend.query_host_facts(target)

    def normalize(self, raw: Any) -> dict[str, Any]:
        if not isinstance(raw, dict):
            raise TypeError(f"host facts must be a mapping, got {type(raw).__name__}")
        os_build = raw.get("os_build")
        return {
            "domain": raw.get("domain") or None,
            "os_name": raw.get("os_name") or None,
            "os_build": str(os_build) if os_build is not None else None,
            "last_boot": parse_datetime(raw.get("last_boot")),
            "total_ram_gb": bytes_to_gb(raw.get("total_memory_bytes")),
            "free_ram_gb": bytes_to_gb(raw.get("free_memory_bytes")),
        }
